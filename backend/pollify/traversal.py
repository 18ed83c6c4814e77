"""
Session traversal: one respondent's walk through a form.

A FillSession owns a snapshot of the form taken when it starts, the answers
given so far, a stack of visited questions and per-question timing/change
counters. The caller holds the session between requests; nothing here is
shared between respondents.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from pollify.errors import (
    AlreadySubmitted,
    InvalidTransition,
    NotFound,
    RequiredAnswerMissing,
)
from pollify.navigation import resolve_next_step
from pollify.rules import AnswerValue, check_answer, has_answer, rule_inconsistencies
from pollify.schemas import (
    Form,
    NextStep,
    Question,
    Response,
    ResponseItem,
    SessionState,
    SessionView,
    new_id,
)
from pollify.visibility import next_visible_question, resolve_visible_questions

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class FillSession:
    """
    State machine IN_PROGRESS -> COMPLETED | TERMINATED.

    Time on a question accumulates from the moment it becomes current until the
    respondent moves away from it, over every visit.
    """

    def __init__(self, form: Form, clock: Clock = time.monotonic, session_id: Optional[str] = None):
        snapshot = form.model_copy(deep=True)
        self.session_id = session_id or new_id()
        self.form_id = snapshot.id
        self.questions: List[Question] = snapshot.ordered_questions()
        self.visibility_rules = list(snapshot.visibility_rules)
        self.navigation_rules = list(snapshot.navigation_rules)
        self._questions_by_id = {q.id: q for q in self.questions}

        self._clock = clock
        self.started_at = clock()
        self.finished_at: Optional[float] = None
        self.state: SessionState = "IN_PROGRESS"
        self.submitted = False

        self.answers: Dict[str, AnswerValue] = {}
        self.history: List[str] = []
        self.time_spent: Dict[str, float] = {}
        self.changes: Dict[str, int] = {}
        self._entered_at: Optional[float] = None

        for problem in rule_inconsistencies(self.questions, self.visibility_rules, self.navigation_rules):
            logger.warning("form %s: %s", self.form_id, problem)

        first = next_visible_question(self.questions, self.visibility_rules, self.answers)
        if first is None:
            self._finish("COMPLETED")
        else:
            self._enter(first.id)
        logger.info("session %s started on form %s", self.session_id, self.form_id)

    # -- internal helpers --------------------------------------------------

    def _enter(self, question_id: str) -> None:
        self.history.append(question_id)
        self._entered_at = self._clock()

    def _leave(self) -> None:
        if self._entered_at is None or not self.history:
            return
        current = self.history[-1]
        elapsed = max(0.0, self._clock() - self._entered_at)
        self.time_spent[current] = self.time_spent.get(current, 0.0) + elapsed
        self._entered_at = None

    def _finish(self, state: SessionState) -> None:
        self.state = state
        self.finished_at = self._clock()

    def _require_in_progress(self, action: str) -> None:
        if self.state != "IN_PROGRESS":
            raise InvalidTransition(f"cannot {action}: session is {self.state.lower()}")

    # -- state -------------------------------------------------------------

    @property
    def current_question_id(self) -> Optional[str]:
        if self.state != "IN_PROGRESS" or not self.history:
            return None
        return self.history[-1]

    @property
    def current_question(self) -> Optional[Question]:
        current = self.current_question_id
        return self._questions_by_id.get(current) if current else None

    def total_elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else self._clock()
        return max(0.0, end - self.started_at)

    def visible_questions(self) -> List[Question]:
        """Visible questions in form order; a jumped-to hidden question is kept while current."""
        visible = resolve_visible_questions(self.questions, self.visibility_rules, self.answers)
        current = self.current_question_id
        if current is not None and all(q.id != current for q in visible):
            visible_ids = {q.id for q in visible} | {current}
            visible = [q for q in self.questions if q.id in visible_ids]
        return visible

    # -- transitions -------------------------------------------------------

    def answer(self, question_id: str, answer: AnswerValue) -> None:
        self._require_in_progress("answer")
        question = self._questions_by_id.get(question_id)
        if question is None:
            raise NotFound(f"question {question_id} not found in form {self.form_id}")
        if question_id != self.current_question_id:
            raise InvalidTransition(f"question {question_id} is not the current question")
        check_answer(question, answer)

        previous = self.answers.get(question_id)
        if previous is not None and previous != answer:
            self.changes[question_id] = self.changes.get(question_id, 0) + 1
        self.answers[question_id] = answer

    def advance(self) -> NextStep:
        self._require_in_progress("advance")
        question = self.current_question
        if question.required and not has_answer(self.answers.get(question.id)):
            raise RequiredAnswerMissing(f"question {question.id} is required")

        step = resolve_next_step(
            question.id,
            self.questions,
            self.visibility_rules,
            self.navigation_rules,
            self.answers,
        )
        self._leave()

        if step.kind == "end":
            self._finish("TERMINATED")
            logger.info("session %s ended early by rule %s", self.session_id, step.rule_id)
        elif step.question_id is None:
            self._finish("COMPLETED")
            logger.info("session %s completed", self.session_id)
        else:
            self._enter(step.question_id)
        return step

    def retreat(self) -> Optional[str]:
        """Step back through the visited questions; returns the new current question id."""
        if self.submitted:
            raise AlreadySubmitted("session already submitted")
        if self.state == "TERMINATED":
            raise InvalidTransition("cannot go back: session was ended")

        if self.state == "COMPLETED":
            if not self.history:
                raise InvalidTransition("cannot go back: no question was visited")
            self.state = "IN_PROGRESS"
            self.finished_at = None
            self._entered_at = self._clock()
            return self.current_question_id

        if len(self.history) < 2:
            raise InvalidTransition("cannot go back: already at the first question")
        self._leave()
        self.history.pop()
        self._entered_at = self._clock()
        return self.current_question_id

    def build_response(self, completion_key: str, user_agent: Optional[str] = None) -> Response:
        """
        Package the completed session as a Response.

        Building does not close the session: the caller marks it submitted once
        the response is stored, so a failed write can be retried.
        """
        if self.submitted:
            raise AlreadySubmitted("session already submitted")
        if self.state != "COMPLETED":
            raise InvalidTransition(f"cannot submit: session is {self.state.lower()}")

        items = [
            ResponseItem(
                question_id=q.id,
                answer=self.answers[q.id],
                time_spent=round(self.time_spent.get(q.id, 0.0), 3),
                changed_answers=self.changes.get(q.id, 0),
            )
            for q in self.questions
            if q.id in self.answers
        ]
        return Response(
            form_id=self.form_id,
            completion_key=completion_key,
            user_agent=user_agent,
            total_time=round(self.total_elapsed(), 3),
            items=items,
        )

    def mark_submitted(self) -> None:
        if self.submitted:
            raise AlreadySubmitted("session already submitted")
        self.submitted = True

    def view(self) -> SessionView:
        visible = self.visible_questions()
        current = self.current_question
        position = 0
        if current is not None:
            position = 1 + sum(1 for q in visible if (q.order, q.id) < (current.order, current.id))
        return SessionView(
            session_id=self.session_id,
            form_id=self.form_id,
            state=self.state,
            current_question_id=self.current_question_id,
            position=position,
            visible_count=len(visible),
            visible_question_ids=[q.id for q in visible],
            answers=dict(self.answers),
            total_elapsed=round(self.total_elapsed(), 3),
            can_retreat=not self.submitted and (
                (self.state == "IN_PROGRESS" and len(self.history) > 1)
                or (self.state == "COMPLETED" and bool(self.history))
            ),
            submitted=self.submitted,
        )
