"""
Visibility resolution: which questions a respondent currently sees.

A question with no visibility rule is always shown. For a question that is the
subject of rules, the first rule (by order, then id) whose trigger question has
been answered decides: shown iff the condition result equals the rule's
`show_when_matched`. While no trigger is answered, the lowest-order rule's
`show_when_matched` is used. Rules pointing at unknown questions are ignored.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from pollify.rules import AnswerValue, evaluate_condition, has_answer, ordered_rules
from pollify.schemas import Question, VisibilityRule

logger = logging.getLogger(__name__)


def rules_by_subject(
    questions: Sequence[Question],
    rules: Sequence[VisibilityRule],
) -> Dict[str, List[VisibilityRule]]:
    """Group usable rules by subject question, each group in evaluation order."""
    known = {q.id for q in questions}
    grouped: Dict[str, List[VisibilityRule]] = {}
    for rule in rules:
        if rule.subject_question_id == rule.depends_on_question_id:
            logger.warning("visibility rule %s depends on its own subject; ignored", rule.id)
            continue
        if rule.subject_question_id not in known or rule.depends_on_question_id not in known:
            logger.warning("visibility rule %s references a missing question; ignored", rule.id)
            continue
        grouped.setdefault(rule.subject_question_id, []).append(rule)
    return {subject: ordered_rules(group) for subject, group in grouped.items()}


def is_question_visible(
    question: Question,
    subject_rules: Sequence[VisibilityRule],
    answers: Mapping[str, AnswerValue],
    questions_by_id: Mapping[str, Question],
) -> bool:
    if not subject_rules:
        return True

    for rule in subject_rules:
        answer = answers.get(rule.depends_on_question_id)
        if not has_answer(answer):
            continue
        matched = evaluate_condition(
            answer,
            rule.operator,
            rule.value,
            questions_by_id.get(rule.depends_on_question_id),
        )
        return matched == rule.show_when_matched

    # dependency not known yet: fall back to the declared intent
    return subject_rules[0].show_when_matched


def resolve_visible_questions(
    questions: Sequence[Question],
    rules: Sequence[VisibilityRule],
    answers: Mapping[str, AnswerValue],
) -> List[Question]:
    """
    Return the questions to present, in the same relative order as `questions`.

    Pure function of its three inputs.
    """
    questions_by_id = {q.id: q for q in questions}
    grouped = rules_by_subject(questions, rules)
    return [
        q for q in questions
        if is_question_visible(q, grouped.get(q.id, []), answers, questions_by_id)
    ]


def next_visible_question(
    questions: Sequence[Question],
    rules: Sequence[VisibilityRule],
    answers: Mapping[str, AnswerValue],
    after_question_id: Optional[str] = None,
) -> Optional[Question]:
    """
    First visible question placed after `after_question_id` in the full ordered list.

    With no anchor the first visible question is returned. The anchor itself
    does not need to be visible. None means nothing remains.
    """
    start = 0
    if after_question_id is not None:
        positions = [i for i, q in enumerate(questions) if q.id == after_question_id]
        if not positions:
            return None
        start = positions[0] + 1

    questions_by_id = {q.id: q for q in questions}
    grouped = rules_by_subject(questions, rules)
    for question in questions[start:]:
        if is_question_visible(question, grouped.get(question.id, []), answers, questions_by_id):
            return question
    return None
