from typing import Dict, List, Sequence

from pollify.rules import canonical_text, has_answer
from pollify.schemas import (
    ChoiceAnswer,
    FormMetrics,
    Question,
    QuestionMetrics,
    RatingAnswer,
    RatingSummary,
    Response,
    ResponseItem,
    TimeDistribution,
)


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(sum(values)) / len(values)


def _choice_counts(question: Question, items: List[ResponseItem]) -> Dict[str, int]:
    counts = {choice.label: 0 for choice in sorted(question.choices, key=lambda c: (c.order, c.id))}
    for item in items:
        if not isinstance(item.answer, ChoiceAnswer):
            continue
        choice = question.find_choice(item.answer.choice_id)
        if choice is not None:
            counts[choice.label] += 1
    return counts


def _rating_key(question: Question, answer: RatingAnswer) -> str:
    return question.rating_label(answer.rating) or canonical_text(answer)


def _rating_summary(question: Question, items: List[ResponseItem]) -> RatingSummary:
    answers = [item.answer for item in items if isinstance(item.answer, RatingAnswer)]
    counts = {
        _rating_key(question, RatingAnswer(rating=value)): 0
        for value in range(question.min_rating, question.max_rating + 1)
    }
    for answer in answers:
        key = _rating_key(question, answer)
        counts[key] = counts.get(key, 0) + 1
    if not answers:
        return RatingSummary(counts=counts)
    ratings = [answer.rating for answer in answers]
    return RatingSummary(
        average=_mean(ratings),
        min=float(min(ratings)),
        max=float(max(ratings)),
        count=len(ratings),
        counts=counts,
    )


def question_metrics(question: Question, responses: Sequence[Response]) -> QuestionMetrics:
    """Statistics for one question over every response in `responses`."""
    items: List[ResponseItem] = []
    completed = 0
    for response in responses:
        item = next((i for i in response.items if i.question_id == question.id), None)
        if item is None:
            continue
        items.append(item)
        if has_answer(item.answer):
            completed += 1

    times = [float(item.time_spent) for item in items]
    metrics = QuestionMetrics(
        question_id=question.id,
        response_count=len(items),
        average_time=_mean(times),
        change_rate=_mean([float(item.changed_answers) for item in items]),
        time_distribution=TimeDistribution(
            min=min(times) if times else 0.0,
            max=max(times) if times else 0.0,
            avg=_mean(times),
        ),
        # denominator is every response, not only the ones holding an item
        completion_rate=(completed * 100.0 / len(responses)) if responses else 0.0,
    )
    if question.type == "SINGLE_CHOICE":
        metrics.choice_counts = _choice_counts(question, items)
    elif question.type == "RATING":
        metrics.rating_summary = _rating_summary(question, items)
    return metrics


def aggregate_metrics(form_id: str, questions: Sequence[Question], responses: Sequence[Response]) -> FormMetrics:
    """
    Behavioral metrics for a form, one entry per question.

    Pure: works on whatever snapshot of responses it is given. An empty
    response list produces zero-valued entries.
    """
    per_question = {q.id: question_metrics(q, responses) for q in questions}
    return FormMetrics(
        form_id=form_id,
        total_responses=len(responses),
        average_total_time=_mean([float(r.total_time) for r in responses]),
        questions=per_question,
        average_time_per_question={qid: m.average_time for qid, m in per_question.items()},
        question_change_rates={qid: m.change_rate for qid, m in per_question.items()},
        completion_rates={qid: m.completion_rate for qid, m in per_question.items()},
    )
