"""
Boundary operations of the flow engine.

Each function loads what it needs from the store, runs the pure engine pieces
and hands results back to the routers. Fill sessions live in a bounded
in-process registry; they are transient by nature and never persisted.
"""

import logging
import time
from collections import OrderedDict
from typing import Dict, List, Mapping, Optional

from pollify.config import settings
from pollify.errors import AlreadySubmitted, DuplicateResponse, FormClosed, NotFound, ValidationFailure
from pollify.metrics import aggregate_metrics
from pollify.navigation import resolve_next_step
from pollify.rules import AnswerValue, check_answer
from pollify.schemas import (
    Form,
    FormIn,
    FormMetrics,
    NavigationRule,
    NextStep,
    Question,
    Response,
    ResponseIn,
    VisibilityRule,
)
from pollify.store import Store
from pollify.traversal import Clock, FillSession
from pollify.visibility import resolve_visible_questions

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-flight fill sessions by id, oldest evicted first once `limit` is reached."""

    def __init__(self, limit: int = 10000):
        self.limit = limit
        self._sessions: "OrderedDict[str, FillSession]" = OrderedDict()
        # ids of submitted sessions, so a late resubmit reads as such
        self._submitted: "OrderedDict[str, str]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: FillSession) -> None:
        self._sessions[session.session_id] = session
        while len(self._sessions) > self.limit:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("session %s evicted", evicted)

    def get(self, session_id: str, form_id: Optional[str] = None) -> FillSession:
        submitted_form = self._submitted.get(session_id)
        if submitted_form is not None and form_id in (None, submitted_form):
            raise AlreadySubmitted(f"session {session_id} already submitted")
        session = self._sessions.get(session_id)
        if session is None or (form_id is not None and session.form_id != form_id):
            raise NotFound(f"session {session_id} not found")
        self._sessions.move_to_end(session_id)
        return session

    def discard(self, session_id: str) -> None:
        """Drop a finished session, remembering it if it was submitted."""
        session = self._sessions.pop(session_id, None)
        if session is not None and session.submitted:
            self._submitted[session_id] = session.form_id
            while len(self._submitted) > self.limit:
                self._submitted.popitem(last=False)


_sessions = SessionRegistry(settings.SESSION_LIMIT)


def get_sessions() -> SessionRegistry:
    """FastAPI dependency: the process-wide session registry."""
    return _sessions


# ---------------------------------------------------------------------------
# Form definitions
# ---------------------------------------------------------------------------

def validate_rules(
    questions: List[Question],
    visibility_rules: List[VisibilityRule],
    navigation_rules: List[NavigationRule],
) -> None:
    known = {q.id for q in questions}
    for rule in visibility_rules:
        if rule.subject_question_id == rule.depends_on_question_id:
            raise ValidationFailure(f"visibility rule {rule.id}: a question cannot depend on itself")
        for ref in (rule.depends_on_question_id, rule.subject_question_id):
            if ref not in known:
                raise ValidationFailure(f"visibility rule {rule.id}: unknown question {ref}")
    for rule in navigation_rules:
        for ref in (rule.depends_on_question_id, rule.from_question_id):
            if ref not in known:
                raise ValidationFailure(f"navigation rule {rule.id}: unknown question {ref}")
        if rule.action in ("GO_TO", "SKIP_TO"):
            if not rule.target_question_id:
                raise ValidationFailure(f"navigation rule {rule.id}: {rule.action} needs a target question")
            if rule.target_question_id not in known:
                raise ValidationFailure(
                    f"navigation rule {rule.id}: target {rule.target_question_id} is not in this form"
                )


def validate_form(form: FormIn) -> None:
    ids = [q.id for q in form.questions]
    if len(ids) != len(set(ids)):
        raise ValidationFailure("question ids must be unique within a form")
    orders = [q.order for q in form.questions]
    if len(orders) != len(set(orders)):
        raise ValidationFailure("question order must be unique within a form")
    for question in form.questions:
        if question.type == "SINGLE_CHOICE" and not question.choices:
            raise ValidationFailure(f"question {question.id}: a single choice question needs choices")
        if question.type == "RATING" and question.min_rating >= question.max_rating:
            raise ValidationFailure(f"question {question.id}: min rating must be below max rating")
    rule_ids = [r.id for r in form.visibility_rules] + [r.id for r in form.navigation_rules]
    if len(rule_ids) != len(set(rule_ids)):
        raise ValidationFailure("rule ids must be unique within a form")
    validate_rules(form.questions, form.visibility_rules, form.navigation_rules)


async def load_form(store: Store, form_id: str) -> Form:
    form = await store.get_form(form_id)
    if form is None:
        raise NotFound(f"form {form_id} not found")
    return form


async def load_public_form(store: Store, form_id: str) -> Form:
    form = await load_form(store, form_id)
    if not form.is_public:
        raise NotFound(f"form {form_id} not found")
    return form


async def upsert_form(store: Store, payload: FormIn) -> Form:
    validate_form(payload)
    existing = await store.get_form(payload.id)
    data = payload.model_dump()
    if existing is not None:
        # preserve original creation time
        data["created_at"] = existing.created_at
    form = Form.model_validate(data)
    await store.save_form(form)
    return form


async def delete_question(store: Store, form_id: str, question_id: str) -> Form:
    """Remove a question; rules that mention it stay and are ignored from now on."""
    form = await load_form(store, form_id)
    if form.find_question(question_id) is None:
        raise NotFound(f"question {question_id} not found")
    form = form.model_copy(update={"questions": [q for q in form.questions if q.id != question_id]})
    await store.save_form(form)
    return form


async def add_visibility_rule(store: Store, form_id: str, rule: VisibilityRule) -> Form:
    form = await load_form(store, form_id)
    rules = [r for r in form.visibility_rules if r.id != rule.id] + [rule]
    validate_rules(form.questions, [rule], [])
    form = form.model_copy(update={"visibility_rules": rules})
    await store.save_form(form)
    return form


async def add_navigation_rule(store: Store, form_id: str, rule: NavigationRule) -> Form:
    form = await load_form(store, form_id)
    rules = [r for r in form.navigation_rules if r.id != rule.id] + [rule]
    validate_rules(form.questions, [], [rule])
    form = form.model_copy(update={"navigation_rules": rules})
    await store.save_form(form)
    return form


async def delete_rule(store: Store, form_id: str, rule_id: str) -> Form:
    form = await load_form(store, form_id)
    visibility = [r for r in form.visibility_rules if r.id != rule_id]
    navigation = [r for r in form.navigation_rules if r.id != rule_id]
    if len(visibility) == len(form.visibility_rules) and len(navigation) == len(form.navigation_rules):
        raise NotFound(f"rule {rule_id} not found")
    form = form.model_copy(update={"visibility_rules": visibility, "navigation_rules": navigation})
    await store.save_form(form)
    return form


# ---------------------------------------------------------------------------
# Stateless flow queries
# ---------------------------------------------------------------------------

async def visible_questions(store: Store, form_id: str, answers: Mapping[str, AnswerValue]) -> List[Question]:
    form = await load_form(store, form_id)
    return resolve_visible_questions(form.ordered_questions(), form.visibility_rules, answers)


async def next_step(
    store: Store,
    form_id: str,
    from_question_id: str,
    answers: Mapping[str, AnswerValue],
) -> NextStep:
    form = await load_form(store, form_id)
    if form.find_question(from_question_id) is None:
        raise NotFound(f"question {from_question_id} not found")
    return resolve_next_step(
        from_question_id,
        form.ordered_questions(),
        form.visibility_rules,
        form.navigation_rules,
        answers,
    )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

async def check_response_policy(store: Store, form: Form, completion_key: str) -> None:
    """
    Fast-path checks before accepting a respondent. The store's uniqueness
    constraint remains the real guard against concurrent duplicates.
    """
    if form.max_responses is not None and await store.count_responses(form.id) >= form.max_responses:
        raise FormClosed("this form has reached the maximum number of responses")
    if not form.allow_multiple_responses and await store.has_response(form.id, completion_key):
        raise DuplicateResponse("you have already submitted a response to this form")


async def start_session(
    store: Store,
    sessions: SessionRegistry,
    form_id: str,
    completion_key: str,
    clock: Clock = time.monotonic,
) -> FillSession:
    form = await load_public_form(store, form_id)
    await check_response_policy(store, form, completion_key)
    session = FillSession(form, clock=clock)
    sessions.add(session)
    return session


async def submit_session(
    store: Store,
    sessions: SessionRegistry,
    form_id: str,
    session_id: str,
    completion_key: str,
    user_agent: Optional[str] = None,
) -> Response:
    session = sessions.get(session_id, form_id)
    if session.submitted:
        raise AlreadySubmitted("session already submitted")
    form = await load_public_form(store, form_id)
    await check_response_policy(store, form, completion_key)
    response = session.build_response(completion_key, user_agent)
    # a failed write leaves the session open for a retry
    await store.create_response(response, unique=not form.allow_multiple_responses)
    session.mark_submitted()
    sessions.discard(session.session_id)
    logger.info("session %s submitted as response %s", session.session_id, response.id)
    return response


async def submit_response(
    store: Store,
    form_id: str,
    payload: ResponseIn,
    completion_key: str,
    user_agent: Optional[str] = None,
) -> Response:
    """Store a response assembled by a client that ran the flow itself."""
    form = await load_public_form(store, form_id)
    await check_response_policy(store, form, completion_key)

    questions: Dict[str, Question] = {q.id: q for q in form.questions}
    items = []
    seen = set()
    for item in payload.items:
        if item.question_id in seen:
            raise ValidationFailure(f"question {item.question_id} is answered more than once")
        seen.add(item.question_id)
        question = questions.get(item.question_id)
        if question is None:
            logger.warning("form %s: dropping answer for unknown question %s", form_id, item.question_id)
            continue
        check_answer(question, item.answer)
        items.append(item)
    if not items:
        raise ValidationFailure("a response needs at least one answer to a question of this form")

    response = Response(
        form_id=form_id,
        completion_key=completion_key,
        user_agent=user_agent,
        total_time=payload.total_time,
        items=items,
    )
    await store.create_response(response, unique=not form.allow_multiple_responses)
    logger.info("response %s stored for form %s", response.id, form_id)
    return response


async def form_metrics(store: Store, form_id: str) -> FormMetrics:
    form = await load_form(store, form_id)
    responses = await store.list_responses(form_id)
    return aggregate_metrics(form.id, form.ordered_questions(), responses)
