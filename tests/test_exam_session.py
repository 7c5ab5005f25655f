from __future__ import annotations

from dataclasses import replace
from threading import Barrier, Thread

import pytest

from cbt_engine.core.errors import AlreadySubmittedError, ExamNotFoundError, InvalidExamError, SessionStateError
from cbt_engine.core.models import Question
from cbt_engine.core.scoring import score_attempt
from cbt_engine.core.services import exam_session as exam_session_module
from cbt_engine.core.services.exam_catalog import ExamCatalog
from cbt_engine.core.services.exam_session import ExamSession, Navigation, SessionStatus, SubmitReason
from cbt_engine.core.services.result_ledger import ResultLedger

from conftest import SUBMITTED_AT


class ToggleLookup:
    """Exam lookup whose exam can vanish and come back."""

    def __init__(self, exam) -> None:
        self.exam = exam
        self.available = True

    def __call__(self, exam_id):
        if not self.available:
            return None
        return self.exam if exam_id == self.exam.id else None


@pytest.fixture
def scoring_calls(monkeypatch):
    calls = []

    def counting_score(exam, answers):
        calls.append(dict(answers))
        return score_attempt(exam, answers)

    monkeypatch.setattr(exam_session_module, "score_attempt", counting_score)
    return calls


@pytest.fixture
def ledger() -> ResultLedger:
    return ResultLedger()


@pytest.fixture
def make_session(sample_exam, ledger, clock):
    def factory(lookup=None, sink=None, exam_id=None):
        catalog = ExamCatalog([sample_exam])
        return ExamSession(
            exam_id=exam_id or sample_exam.id,
            student_id="stu-1",
            student_name="Ada Obi",
            exam_lookup=lookup or catalog.find_exam,
            result_sink=sink or ledger,
            clock=clock,
            now=lambda: SUBMITTED_AT,
        )

    return factory


@pytest.fixture
def session(make_session, sample_exam):
    started = make_session()
    started.start(sample_exam)
    return started


# --- start ---


def test_start_initializes_attempt(session, sample_exam):
    assert session.status is SessionStatus.IN_PROGRESS
    assert session.current_index == 0
    assert session.remaining_seconds == sample_exam.duration_seconds
    assert session.answers == {}
    assert session.question_count == 3
    assert session.current_question.id == "q1"


def test_start_fetches_exam_through_lookup(make_session):
    session = make_session()

    session.start()

    assert session.status is SessionStatus.IN_PROGRESS
    assert session.question_count == 3


def test_start_with_unknown_exam_raises(make_session):
    session = make_session(exam_id="missing")

    with pytest.raises(ExamNotFoundError) as excinfo:
        session.start()

    assert excinfo.value.exam_id == "missing"
    assert session.status is SessionStatus.NOT_STARTED


def test_start_rejects_exam_without_questions(make_session, sample_exam):
    session = make_session()

    with pytest.raises(InvalidExamError):
        session.start(replace(sample_exam, questions=()))

    assert session.status is SessionStatus.NOT_STARTED


def test_start_rejects_exam_with_only_malformed_questions(make_session, sample_exam):
    session = make_session()
    broken = replace(
        sample_exam,
        questions=(Question(id="q1", text="No key", options=("a", "b"), correct_option_index=None),),
    )

    with pytest.raises(InvalidExamError):
        session.start(broken)


def test_start_rejects_non_positive_duration(make_session, sample_exam):
    session = make_session()

    with pytest.raises(InvalidExamError):
        session.start(replace(sample_exam, duration_seconds=0))


def test_start_twice_is_rejected(session, sample_exam):
    with pytest.raises(SessionStateError):
        session.start(sample_exam)


def test_start_after_submit_raises_already_submitted(session, sample_exam):
    session.submit()

    with pytest.raises(AlreadySubmittedError):
        session.start(sample_exam)


# --- answers ---


def test_select_answer_upserts_without_moving(session):
    assert session.select_answer("q2", 1) is True
    assert session.select_answer("q2", 0) is True
    assert session.select_answer("q2", 0) is False

    assert session.answers == {"q2": 0}
    assert session.current_index == 0
    assert session.is_answered("q2")
    assert session.answered_count == 1
    assert session.unanswered_question_ids() == ["q1", "q3"]


def test_select_answer_coerces_and_validates(session):
    assert session.select_answer("q1", "1") is True
    assert session.select_answer("q2", "abc") is False
    assert session.select_answer("q3", 7) is False
    assert session.select_answer("nope", 0) is False

    assert session.answers == {"q1": 1}


def test_select_none_clears_answer(session):
    session.select_answer("q1", 2)

    assert session.select_answer("q1", None) is True
    assert session.select_answer("q1", None) is False
    assert session.answers == {}


def test_select_answer_before_start_is_ignored(make_session):
    session = make_session()

    assert session.select_answer("q1", 1) is False
    assert session.answers == {}


def test_answers_are_frozen_after_submit(session):
    session.select_answer("q1", 1)
    result = session.submit()

    assert session.select_answer("q2", 0) is False
    assert result.answers == {"q1": 1}


# --- navigation ---


def test_next_at_last_question_is_clamped(session):
    session.navigate(2)

    assert session.navigate(Navigation.NEXT) == 2
    assert session.current_index == 2


def test_previous_at_first_question_is_clamped(session):
    assert session.navigate(Navigation.PREVIOUS) == 0


def test_navigate_accepts_strings_and_explicit_indexes(session):
    assert session.navigate("next") == 1
    assert session.navigate("NEXT") == 2
    assert session.navigate("previous") == 1
    assert session.navigate(99) == 2
    assert session.navigate(-4) == 0
    assert session.navigate("2") == 2
    assert session.current_question.id == "q3"


def test_navigate_ignores_garbage(session):
    session.navigate(1)

    assert session.navigate("sideways") == 1
    assert session.navigate(None) == 1


def test_navigate_outside_attempt_is_a_no_op(make_session, session):
    assert make_session().navigate(Navigation.NEXT) == 0

    session.submit()

    assert session.navigate(Navigation.NEXT) == 0


# --- timer ---


def test_tick_counts_down(session):
    assert session.tick() == 4
    assert session.tick() == 3
    assert session.remaining_seconds == 3
    assert session.status is SessionStatus.IN_PROGRESS


def test_tick_to_zero_submits_on_timeout(session, ledger):
    session.select_answer("q2", 0)

    for _ in range(5):
        session.tick()

    assert session.status is SessionStatus.TERMINATED
    assert session.submit_reason is SubmitReason.TIMEOUT
    assert ledger.results() == [session.result]
    assert session.result.total_score == 2


def test_tick_after_submit_does_nothing(session):
    session.submit()

    assert session.tick() == 5


def test_format_remaining(make_session, sample_exam):
    session = make_session()
    session.start(replace(sample_exam, duration_seconds=3725))

    assert session.format_remaining() == "1:02:05"

    session.tick()
    session.tick()
    session.tick()
    session.tick()
    session.tick()
    session.tick()

    assert session.format_remaining() == "1:01:59"


def test_format_remaining_under_an_hour(session):
    assert session.format_remaining() == "00:05"


# --- submit ---


def test_submit_builds_result(make_session, sample_exam, clock, ledger):
    session = make_session()
    session.start(replace(sample_exam, duration_seconds=600))
    session.select_answer("q1", 1)
    session.select_answer("q2", 0)
    session.select_answer("q3", 1)
    clock.advance(42)

    result = session.submit()

    assert result.exam_id == "exam-1"
    assert result.student_id == "stu-1"
    assert result.student_name == "Ada Obi"
    assert result.exam_title == "General Knowledge"
    assert (result.correct_answers, result.total_score, result.max_score, result.total_questions) == (2, 3, 4, 3)
    assert result.answers == {"q1": 1, "q2": 0, "q3": 1}
    assert result.submitted_at == SUBMITTED_AT
    assert result.time_spent_seconds == 42
    assert result.percentage == 75
    assert session.status is SessionStatus.TERMINATED
    assert session.submit_reason is SubmitReason.MANUAL
    assert ledger.results() == [result]


def test_time_spent_never_exceeds_duration(session, clock):
    clock.advance(90)

    assert session.submit().time_spent_seconds == 5


def test_timeout_with_no_answers_scores_zero(session):
    for _ in range(5):
        session.tick()

    result = session.result
    assert (result.correct_answers, result.total_score, result.max_score) == (0, 0, 4)


def test_submit_before_start_is_rejected(make_session):
    with pytest.raises(SessionStateError):
        make_session().submit()


def test_timeout_after_manual_submit_returns_original_result(session, ledger, scoring_calls):
    session.select_answer("q1", 1)
    manual = session.submit(SubmitReason.MANUAL)

    for _ in range(10):
        session.tick()
    timed_out = session.submit(SubmitReason.TIMEOUT)

    assert timed_out is manual
    assert session.submit_reason is SubmitReason.MANUAL
    assert len(ledger) == 1
    assert len(scoring_calls) == 1


def test_manual_submit_and_timeout_in_the_same_tick_score_once(session, ledger, scoring_calls):
    for _ in range(4):
        session.tick()
    assert session.remaining_seconds == 1

    barrier = Barrier(9)
    returned = []

    def submit_manually():
        barrier.wait()
        returned.append(session.submit(SubmitReason.MANUAL))

    def expire():
        barrier.wait()
        session.tick()

    threads = [Thread(target=submit_manually) for _ in range(8)] + [Thread(target=expire)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert session.status is SessionStatus.TERMINATED
    assert len(scoring_calls) == 1
    assert len(ledger) == 1
    assert all(result is session.result for result in returned)


def test_missing_exam_at_submit_keeps_session_terminating(make_session, sample_exam, ledger, scoring_calls):
    lookup = ToggleLookup(sample_exam)
    session = make_session(lookup=lookup)
    session.start()
    session.select_answer("q1", 1)
    lookup.available = False

    with pytest.raises(ExamNotFoundError):
        session.submit()

    assert session.status is SessionStatus.TERMINATING
    assert session.select_answer("q2", 0) is False
    assert len(ledger) == 0
    assert scoring_calls == []

    lookup.available = True
    result = session.submit(SubmitReason.TIMEOUT)

    assert session.status is SessionStatus.TERMINATED
    assert session.submit_reason is SubmitReason.MANUAL
    assert result.answers == {"q1": 1}
    assert len(scoring_calls) == 1
    assert session.submit() is result


def test_sink_failure_is_retried_without_rescoring(make_session, sample_exam, scoring_calls):
    delivered = []

    def flaky_sink(result):
        if not delivered:
            delivered.append(None)
            raise RuntimeError("store offline")
        delivered.append(result)

    session = make_session(sink=flaky_sink)
    session.start(sample_exam)

    with pytest.raises(RuntimeError):
        session.submit()
    assert session.status is SessionStatus.TERMINATING

    result = session.submit()

    assert delivered[-1] is result
    assert session.status is SessionStatus.TERMINATED
    assert len(scoring_calls) == 1


# --- abandon ---


def test_abandon_discards_attempt(session, ledger):
    session.abandon()

    assert session.status is SessionStatus.TERMINATED
    assert session.result is None
    assert len(ledger) == 0
    with pytest.raises(SessionStateError):
        session.submit()
    with pytest.raises(SessionStateError):
        session.abandon()


def test_abandon_after_submit_is_rejected(session):
    session.submit()

    with pytest.raises(AlreadySubmittedError):
        session.abandon()


def test_abandon_before_start_is_rejected(make_session):
    with pytest.raises(SessionStateError):
        make_session().abandon()


def test_result_sink_may_read_the_session(make_session, sample_exam):
    seen = []
    session = None

    def inspecting_sink(result):
        seen.append((session.status, session.result, session.answers))

    session = make_session(sink=inspecting_sink)
    session.start(sample_exam)
    session.select_answer("q1", 1)

    submitter = Thread(target=session.submit)
    submitter.start()
    submitter.join(timeout=2)

    assert not submitter.is_alive()
    assert seen == [(SessionStatus.TERMINATING, None, {"q1": 1})]
    assert session.status is SessionStatus.TERMINATED
