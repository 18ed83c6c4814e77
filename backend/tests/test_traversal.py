import pytest

from pollify.errors import (
    AlreadySubmitted,
    InvalidAnswer,
    InvalidTransition,
    NotFound,
    RequiredAnswerMissing,
    ValidationFailure,
)
from pollify.schemas import ChoiceAnswer, Form, NavigationRule, Question, RatingAnswer, TextAnswer
from pollify.traversal import FillSession


def _with_navigation(form, **rule):
    defaults = {"id": "nav", "depends_on_question_id": "q1", "operator": "EQUALS", "from_question_id": "q1"}
    defaults.update(rule)
    return form.model_copy(update={"navigation_rules": [NavigationRule(**defaults)]})


def test_starts_on_first_visible_question(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)

    assert session.state == "IN_PROGRESS"
    assert session.current_question_id == "q1"
    assert session.answers == {}
    assert session.view().position == 1


def test_required_question_blocks_advance(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)

    with pytest.raises(RequiredAnswerMissing):
        session.advance()

    assert session.state == "IN_PROGRESS"
    assert session.current_question_id == "q1"


def test_blank_text_does_not_satisfy_required(clock):
    form = Form(id="f", title="f", questions=[Question(id="t", type="TEXT", order=1, required=True)])
    session = FillSession(form, clock=clock)
    session.answer("t", TextAnswer(text="   "))

    with pytest.raises(RequiredAnswerMissing):
        session.advance()


def test_hidden_follow_up_is_skipped(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))

    assert [q.id for q in session.visible_questions()] == ["q1", "q3"]

    step = session.advance()
    assert step.kind == "continue"
    assert session.current_question_id == "q3"

    # optional and unanswered: may advance
    session.advance()
    assert session.state == "COMPLETED"
    assert session.current_question_id is None


def test_follow_up_shown_for_yes(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_yes"))
    session.advance()

    assert session.current_question_id == "q2"
    assert [q.id for q in session.visible_questions()] == ["q1", "q2", "q3"]


def test_end_rule_terminates_and_blocks_submit(yes_no_form, clock):
    form = _with_navigation(yes_no_form, value="No", action="END_SURVEY")
    session = FillSession(form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))

    step = session.advance()

    assert step.kind == "end"
    assert session.state == "TERMINATED"
    with pytest.raises(ValidationFailure):
        session.build_response("1.2.3.4")
    with pytest.raises(InvalidTransition):
        session.advance()
    with pytest.raises(InvalidTransition):
        session.retreat()


def test_go_to_skips_and_retreat_follows_history(yes_no_form, clock):
    form = _with_navigation(yes_no_form, value="Yes", action="GO_TO", target_question_id="q3")
    session = FillSession(form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_yes"))

    step = session.advance()
    assert step.kind == "jump"
    assert session.current_question_id == "q3"

    assert session.retreat() == "q1"
    assert session.answers["q1"] == ChoiceAnswer(choice_id="c_yes")


def test_retreat_on_first_question_is_rejected(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)

    with pytest.raises(InvalidTransition):
        session.retreat()


def test_jump_to_hidden_question_then_recomputes_visibility(yes_no_form, clock):
    # q2 is only visible for "Yes", but a rule jumps there on "No"
    form = _with_navigation(yes_no_form, value="No", action="SKIP_TO", target_question_id="q2")
    session = FillSession(form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))
    session.advance()

    assert session.current_question_id == "q2"
    assert [q.id for q in session.visible_questions()] == ["q1", "q2", "q3"]

    session.advance()
    assert session.current_question_id == "q3"
    assert [q.id for q in session.visible_questions()] == ["q1", "q3"]


def test_answer_changes_are_counted(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_yes"))
    session.answer("q1", ChoiceAnswer(choice_id="c_yes"))
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))
    session.answer("q1", ChoiceAnswer(choice_id="c_yes"))

    assert session.changes["q1"] == 2


def test_answers_are_checked_against_the_question(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)

    with pytest.raises(InvalidAnswer):
        session.answer("q1", TextAnswer(text="Yes"))
    with pytest.raises(InvalidAnswer):
        session.answer("q1", ChoiceAnswer(choice_id="c_maybe"))
    with pytest.raises(NotFound):
        session.answer("q42", TextAnswer(text="?"))
    with pytest.raises(InvalidTransition):
        session.answer("q2", TextAnswer(text="not current yet"))

    session.answer("q1", ChoiceAnswer(choice_id="c_no"))
    session.advance()
    with pytest.raises(InvalidAnswer):
        session.answer("q3", RatingAnswer(rating=9))
    session.answer("q3", RatingAnswer(rating=5))
    assert session.answers["q3"].rating == 5


def test_submit_packages_timing_and_changes(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    clock.tick(5)
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))
    session.answer("q1", ChoiceAnswer(choice_id="c_yes"))
    session.advance()
    clock.tick(3)
    session.answer("q2", TextAnswer(text="the coffee"))
    session.advance()
    clock.tick(2)
    session.advance()

    clock.tick(100)  # time after completion is not counted
    response = session.build_response("10.0.0.1", user_agent="pytest")

    assert response.form_id == "feedback"
    assert response.completion_key == "10.0.0.1"
    assert response.user_agent == "pytest"
    assert response.total_time == 10
    items = {item.question_id: item for item in response.items}
    assert set(items) == {"q1", "q2"}
    assert items["q1"].time_spent == 5
    assert items["q1"].changed_answers == 1
    assert items["q2"].time_spent == 3
    assert items["q2"].answer == TextAnswer(text="the coffee")


def test_second_submit_is_rejected(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))
    session.advance()
    session.advance()
    session.build_response("me")
    session.mark_submitted()

    with pytest.raises(AlreadySubmitted):
        session.build_response("me")
    with pytest.raises(AlreadySubmitted):
        session.mark_submitted()
    with pytest.raises(AlreadySubmitted):
        session.retreat()


def test_building_a_response_leaves_the_session_open(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))
    session.advance()
    session.advance()

    first = session.build_response("me")
    second = session.build_response("me")

    assert not session.submitted
    assert first.items == second.items


def test_submit_before_completion_is_rejected(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)

    with pytest.raises(InvalidTransition):
        session.build_response("me")
    assert not session.submitted


def test_time_accumulates_over_revisits(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_yes"))
    clock.tick(5)
    session.advance()
    clock.tick(2)
    session.retreat()
    clock.tick(4)
    session.advance()
    clock.tick(1)
    session.advance()

    assert session.time_spent["q1"] == 9
    assert session.time_spent["q2"] == 3


def test_retreat_from_completed_reopens_last_question(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))
    session.advance()
    session.advance()
    assert session.state == "COMPLETED"

    assert session.retreat() == "q3"
    assert session.state == "IN_PROGRESS"
    assert session.finished_at is None


def test_session_uses_a_snapshot_of_the_form(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    yes_no_form.questions.append(Question(id="late", type="TEXT", order=0))

    assert session.current_question_id == "q1"
    assert "late" not in [q.id for q in session.questions]


def test_form_with_no_questions_is_complete_immediately(clock):
    session = FillSession(Form(id="empty", title="Empty"), clock=clock)

    assert session.state == "COMPLETED"
    assert session.build_response("me").items == []


def test_dangling_rules_do_not_break_the_flow(yes_no_form, clock):
    form = yes_no_form.model_copy(update={
        "navigation_rules": [
            NavigationRule(id="broken", depends_on_question_id="gone", operator="EQUALS", value="x",
                           from_question_id="q1", action="END_SURVEY"),
            NavigationRule(id="no_target", depends_on_question_id="q1", operator="EQUALS", value="No",
                           from_question_id="q1", action="GO_TO"),
        ],
    })
    session = FillSession(form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))

    session.advance()

    assert session.state == "IN_PROGRESS"
    assert session.current_question_id == "q3"


def test_view_reports_progress(yes_no_form, clock):
    session = FillSession(yes_no_form, clock=clock)
    session.answer("q1", ChoiceAnswer(choice_id="c_no"))
    session.advance()
    clock.tick(7)

    view = session.view()

    assert view.current_question_id == "q3"
    assert view.position == 2
    assert view.visible_count == 2
    assert view.visible_question_ids == ["q1", "q3"]
    assert view.total_elapsed == 7
    assert view.can_retreat is True
