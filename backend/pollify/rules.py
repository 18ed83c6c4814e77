from __future__ import annotations

import math
from typing import Any, Iterable, List, Optional, TypeVar, Union

from pollify.errors import InvalidAnswer
from pollify.schemas import (
    ANSWER_KIND_FOR_TYPE,
    ChoiceAnswer,
    NavigationRule,
    Operator,
    Question,
    RatingAnswer,
    TextAnswer,
    VisibilityRule,
)

AnswerValue = Union[TextAnswer, ChoiceAnswer, RatingAnswer]
RuleT = TypeVar("RuleT", VisibilityRule, NavigationRule)


def to_number(x: Any) -> Optional[float]:
    # allow numeric strings like "12.3"; anything else is not a number
    if isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        number = float(x)
    elif isinstance(x, str):
        try:
            number = float(x.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def canonical_text(answer: AnswerValue, question: Optional[Question] = None) -> str:
    """
    String form of an answer as compared against a rule's literal.

    A selected choice compares by the choice's value; when the choice (or the
    question) is gone the raw choice id is used instead.
    """
    if isinstance(answer, TextAnswer):
        return answer.text
    if isinstance(answer, ChoiceAnswer):
        choice = question.find_choice(answer.choice_id) if question is not None else None
        return choice.value if choice is not None else answer.choice_id
    if isinstance(answer, RatingAnswer):
        return _format_number(answer.rating)
    raise TypeError(f"unsupported answer kind: {type(answer).__name__}")


def has_answer(answer: Optional[AnswerValue]) -> bool:
    """True for a non-empty answer: non-blank text, a selected choice, a present rating."""
    if answer is None:
        return False
    if isinstance(answer, TextAnswer):
        return bool(answer.text.strip())
    if isinstance(answer, ChoiceAnswer):
        return bool(answer.choice_id)
    if isinstance(answer, RatingAnswer):
        return to_number(answer.rating) is not None
    return False


def check_answer(question: Question, answer: AnswerValue) -> None:
    """Raise InvalidAnswer unless `answer` fits `question`: kind, choice membership, rating range."""
    expected = ANSWER_KIND_FOR_TYPE[question.type]
    if answer.kind != expected:
        raise InvalidAnswer(f"question {question.id} expects a {expected} answer, got {answer.kind}")
    if isinstance(answer, ChoiceAnswer) and question.find_choice(answer.choice_id) is None:
        raise InvalidAnswer(f"choice {answer.choice_id} does not belong to question {question.id}")
    if isinstance(answer, RatingAnswer):
        if to_number(answer.rating) is None or not question.min_rating <= answer.rating <= question.max_rating:
            raise InvalidAnswer(
                f"rating {answer.rating:g} outside {question.min_rating}..{question.max_rating}"
            )


def _compare(left: str, op: Operator, right: str) -> bool:
    if op == "EQUALS":
        return left == right
    if op == "NOT_EQUALS":
        return left != right
    if op == "CONTAINS":
        return right in left

    left_num = to_number(left)
    right_num = to_number(right)
    if left_num is None or right_num is None:
        return False
    if op == "GREATER_THAN":
        return left_num > right_num
    if op == "LESS_THAN":
        return left_num < right_num
    return False


def evaluate_condition(
    answer: Optional[AnswerValue],
    operator: Operator,
    value: str,
    question: Optional[Question] = None,
) -> bool:
    """
    Apply one comparison between a stored answer and a rule literal.

    An absent answer never matches; unparsable numbers never match. This never
    raises for data it cannot act on.
    """
    if not has_answer(answer):
        return False
    return _compare(canonical_text(answer, question), operator, str(value))


def ordered_rules(rules: Iterable[RuleT]) -> List[RuleT]:
    """Rules in evaluation order: ascending `order`, ties broken by rule id."""
    return sorted(rules, key=lambda r: (r.order, r.id))


def rule_inconsistencies(
    questions: Iterable[Question],
    visibility_rules: Iterable[VisibilityRule],
    navigation_rules: Iterable[NavigationRule],
) -> List[str]:
    """Describe every rule the engine will ignore because of a bad reference."""
    known = {q.id for q in questions}
    problems: List[str] = []

    for rule in visibility_rules:
        if rule.subject_question_id == rule.depends_on_question_id:
            problems.append(f"visibility rule {rule.id}: subject equals trigger")
        if rule.depends_on_question_id not in known:
            problems.append(f"visibility rule {rule.id}: missing trigger {rule.depends_on_question_id}")
        if rule.subject_question_id not in known:
            problems.append(f"visibility rule {rule.id}: missing subject {rule.subject_question_id}")

    for rule in navigation_rules:
        if rule.depends_on_question_id not in known:
            problems.append(f"navigation rule {rule.id}: missing trigger {rule.depends_on_question_id}")
        if rule.from_question_id not in known:
            problems.append(f"navigation rule {rule.id}: missing origin {rule.from_question_id}")
        if rule.action != "END_SURVEY":
            if not rule.target_question_id:
                problems.append(f"navigation rule {rule.id}: {rule.action} without a target")
            elif rule.target_question_id not in known:
                problems.append(f"navigation rule {rule.id}: missing target {rule.target_question_id}")

    return problems
