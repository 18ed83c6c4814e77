import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


QuestionType = Literal["TEXT", "SINGLE_CHOICE", "RATING"]
Operator = Literal["EQUALS", "NOT_EQUALS", "CONTAINS", "GREATER_THAN", "LESS_THAN"]
NavigationAction = Literal["GO_TO", "SKIP_TO", "END_SURVEY"]
SessionState = Literal["IN_PROGRESS", "COMPLETED", "TERMINATED"]


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    # snake_case in Python, camelCase on the wire
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Form structure
# ---------------------------------------------------------------------------

class Choice(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    value: str = ""
    order: int = 0

    @model_validator(mode="before")
    @classmethod
    def _default_value_to_label(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("value"):
            data = {**data, "value": data.get("label", "")}
        return data


class Question(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    type: QuestionType
    required: bool = False
    order: int
    choices: List[Choice] = Field(default_factory=list)
    min_rating: int = 1
    max_rating: int = 5
    rating_labels: List[str] = Field(default_factory=list)

    def find_choice(self, choice_id: str) -> Optional[Choice]:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None

    def rating_label(self, rating: float) -> Optional[str]:
        if not float(rating).is_integer():
            return None
        index = int(rating) - self.min_rating
        if 0 <= index < len(self.rating_labels):
            return self.rating_labels[index]
        return None


class VisibilityRule(CamelModel):
    """Show or hide `subject_question_id` depending on the answer to `depends_on_question_id`."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str = Field(default_factory=new_id)
    depends_on_question_id: str
    operator: Operator
    value: str
    subject_question_id: str
    show_when_matched: bool = True
    order: int = 0


class NavigationRule(CamelModel):
    """After `from_question_id` is answered, jump or end the survey when the condition holds."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str = Field(default_factory=new_id)
    depends_on_question_id: str
    operator: Operator
    value: str
    from_question_id: str
    action: NavigationAction = "GO_TO"
    target_question_id: Optional[str] = None
    order: int = 0


class FormIn(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    is_public: bool = True
    allow_multiple_responses: bool = False
    max_responses: Optional[int] = None
    questions: List[Question] = Field(default_factory=list)
    visibility_rules: List[VisibilityRule] = Field(default_factory=list)
    navigation_rules: List[NavigationRule] = Field(default_factory=list)
    version: int = 1


class Form(FormIn):
    created_at: datetime = Field(default_factory=utcnow)

    def ordered_questions(self) -> List[Question]:
        return sorted(self.questions, key=lambda q: (q.order, q.id))

    def find_question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


# ---------------------------------------------------------------------------
# Answers (tagged by the owning question's type)
# ---------------------------------------------------------------------------

class TextAnswer(CamelModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


class ChoiceAnswer(CamelModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["choice"] = "choice"
    choice_id: str


class RatingAnswer(CamelModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["rating"] = "rating"
    rating: float = Field(allow_inf_nan=False)


Answer = Annotated[Union[TextAnswer, ChoiceAnswer, RatingAnswer], Field(discriminator="kind")]

ANSWER_KIND_FOR_TYPE: Dict[str, str] = {
    "TEXT": "text",
    "SINGLE_CHOICE": "choice",
    "RATING": "rating",
}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ResponseItem(CamelModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    answer: Answer
    time_spent: float = Field(default=0, ge=0, allow_inf_nan=False)
    changed_answers: int = Field(default=0, ge=0)


class Response(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    form_id: str
    completion_key: str
    user_agent: Optional[str] = None
    total_time: float = 0
    items: List[ResponseItem] = Field(default_factory=list)
    submitted_at: datetime = Field(default_factory=utcnow)


class ResponseIn(CamelModel):
    total_time: float = Field(default=0, ge=0, allow_inf_nan=False)
    items: List[ResponseItem] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Flow requests / results
# ---------------------------------------------------------------------------

class AnswersIn(CamelModel):
    answers: Dict[str, Answer] = Field(default_factory=dict)


class NextStepIn(AnswersIn):
    from_question_id: str


class NextStep(CamelModel):
    """Outcome of navigation after a question: continue, jump or end."""

    kind: Literal["continue", "jump", "end"]
    question_id: Optional[str] = None  # None with "continue" means no questions remain
    rule_id: Optional[str] = None


class SessionAnswerIn(CamelModel):
    question_id: str
    answer: Answer


class SessionView(CamelModel):
    session_id: str
    form_id: str
    state: SessionState
    current_question_id: Optional[str] = None
    position: int = 0
    visible_count: int = 0
    visible_question_ids: List[str] = Field(default_factory=list)
    answers: Dict[str, Answer] = Field(default_factory=dict)
    total_elapsed: float = 0
    can_retreat: bool = False
    submitted: bool = False


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class TimeDistribution(CamelModel):
    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0


class RatingSummary(CamelModel):
    average: float = 0.0
    min: float = 0.0
    max: float = 0.0
    count: int = 0
    # keyed by rating label where the question has one, else by the rating itself
    counts: Dict[str, int] = Field(default_factory=dict)


class QuestionMetrics(CamelModel):
    question_id: str
    response_count: int = 0
    average_time: float = 0.0
    change_rate: float = 0.0
    time_distribution: TimeDistribution = Field(default_factory=TimeDistribution)
    completion_rate: float = 0.0
    choice_counts: Optional[Dict[str, int]] = None
    rating_summary: Optional[RatingSummary] = None


class FormMetrics(CamelModel):
    form_id: str
    total_responses: int = 0
    average_total_time: float = 0.0
    questions: Dict[str, QuestionMetrics] = Field(default_factory=dict)
    average_time_per_question: Dict[str, float] = Field(default_factory=dict)
    question_change_rates: Dict[str, float] = Field(default_factory=dict)
    completion_rates: Dict[str, float] = Field(default_factory=dict)
