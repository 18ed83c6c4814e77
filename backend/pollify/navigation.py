"""
Navigation resolution: what follows the question just answered.

Navigation rules attached to the answered question are checked in order; the
first whose condition holds decides (GO_TO / SKIP_TO jump, END_SURVEY ends).
Without a match the flow continues with the next visible question after it in
form order. A jump target is honoured even if visibility would hide it.
"""

import logging
from typing import Mapping, Sequence

from pollify.rules import AnswerValue, evaluate_condition, ordered_rules
from pollify.schemas import NavigationRule, NextStep, Question, VisibilityRule
from pollify.visibility import next_visible_question

logger = logging.getLogger(__name__)


def resolve_next_step(
    from_question_id: str,
    questions: Sequence[Question],
    visibility_rules: Sequence[VisibilityRule],
    navigation_rules: Sequence[NavigationRule],
    answers: Mapping[str, AnswerValue],
) -> NextStep:
    questions_by_id = {q.id: q for q in questions}
    candidates = [r for r in navigation_rules if r.from_question_id == from_question_id]

    for rule in ordered_rules(candidates):
        trigger = questions_by_id.get(rule.depends_on_question_id)
        if trigger is None:
            logger.warning("navigation rule %s has a missing trigger question; ignored", rule.id)
            continue
        if not evaluate_condition(answers.get(trigger.id), rule.operator, rule.value, trigger):
            continue

        if rule.action == "END_SURVEY":
            return NextStep(kind="end", rule_id=rule.id)

        if not rule.target_question_id or rule.target_question_id not in questions_by_id:
            logger.warning("navigation rule %s has no usable target; ignored", rule.id)
            continue
        return NextStep(kind="jump", question_id=rule.target_question_id, rule_id=rule.id)

    following = next_visible_question(questions, visibility_rules, answers, from_question_id)
    return NextStep(kind="continue", question_id=following.id if following else None)
