import random
import threading
from datetime import timedelta

import pytest
from conftest import NOW, answers_for, complete_chapter_lessons
from sqlalchemy import func, select

from assessment_api.errors import (
    AlreadyActive,
    GradingInvariantViolation,
    NotEligible,
    QuestionBankError,
    ScopeNotFound,
    SessionExpired,
    SessionNotActive,
    SessionNotFound,
)
from assessment_api.models.db.attempt import AttemptRecord
from assessment_api.models.db.content import ScopeType
from assessment_api.models.db.session import AssessmentSession
from assessment_api.models.db.user import User
from assessment_api.services import ledger_service, session_service


@pytest.fixture()
def chapter(db, course, student):
    chapter = course.chapters[0]
    complete_chapter_lessons(db, student, chapter)
    return chapter


def _start(db, student, chapter, now=NOW):
    return session_service.start_session(db, student, ScopeType.CHAPTER, chapter.id, now=now)


def test_start_freezes_questions_and_deadline(db, student, chapter) -> None:
    result = _start(db, student, chapter)
    session = result.session

    assert not result.resumed
    assert session.status == "active"
    assert len(session.question_ids) == 20
    assert len(set(session.question_ids)) == 20
    assert [slot.question_id for slot in session.answers] == session.question_ids
    assert all(slot.selected_answer is None for slot in session.answers)
    # 20 questions x 60 s plus the 20 minute buffer
    assert session.expires_at.replace(tzinfo=None) == (NOW + timedelta(minutes=40)).replace(
        tzinfo=None
    )


def test_start_resumes_live_session(db, student, chapter) -> None:
    first = _start(db, student, chapter)
    second = _start(db, student, chapter, now=NOW + timedelta(minutes=2))

    assert second.resumed
    assert second.session.id == first.session.id


def test_start_rejects_unmet_prerequisites(db, course, student) -> None:
    with pytest.raises(NotEligible) as exc_info:
        _start(db, student, course.chapters[1])
    assert exc_info.value.status_code == 403


def test_start_fails_when_question_bank_is_short(db, make_course, student) -> None:
    course = make_course(chapters=1, chapter_questions=10)
    complete_chapter_lessons(db, student, course.chapters[0])

    with pytest.raises(QuestionBankError) as exc_info:
        _start(db, student, course.chapters[0])
    assert exc_info.value.detail["available"] == 10
    assert exc_info.value.detail["required"] == 20


def test_concurrent_start_yields_one_active_session(session_factory, db, student, chapter) -> None:
    workers = 6
    barrier = threading.Barrier(workers)
    outcomes: list[object] = []
    lock = threading.Lock()

    def _worker() -> None:
        local = session_factory()
        try:
            user = local.get(User, student.id)
            barrier.wait()
            try:
                result = session_service.start_session(
                    local, user, ScopeType.CHAPTER, chapter.id, now=NOW
                )
                outcome = ("resumed" if result.resumed else "created", result.session.id)
            except AlreadyActive as exc:
                outcome = ("conflict", exc.session_id)
            with lock:
                outcomes.append(outcome)
        finally:
            local.close()

    threads = [threading.Thread(target=_worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    created = [session_id for kind, session_id in outcomes if kind == "created"]
    assert len(outcomes) == workers
    assert len(created) == 1
    assert all(session_id == created[0] for _, session_id in outcomes if session_id)

    active = db.execute(
        select(func.count(AssessmentSession.id)).where(AssessmentSession.status == "active")
    ).scalar()
    assert active == 1


def test_record_answer_last_write_wins(db, student, chapter) -> None:
    session = _start(db, student, chapter).session
    question_id = session.question_ids[3]

    session_service.record_answer(db, student, session.id, question_id, 1, 12, now=NOW)
    slot = session_service.record_answer(
        db, student, session.id, question_id, 2, 30, now=NOW + timedelta(seconds=40)
    )

    assert slot.selected_answer == 2
    assert slot.time_spent_seconds == 30


def test_record_answer_rejects_unknown_question_and_bad_option(db, student, chapter) -> None:
    session = _start(db, student, chapter).session

    with pytest.raises(GradingInvariantViolation):
        session_service.record_answer(db, student, session.id, 999999, 0, now=NOW)
    with pytest.raises(GradingInvariantViolation):
        session_service.record_answer(db, student, session.id, session.question_ids[0], 4, now=NOW)


def test_record_answer_after_deadline_expires_session(db, student, chapter) -> None:
    session = _start(db, student, chapter).session
    late = session.expires_at + timedelta(seconds=1)

    with pytest.raises(SessionExpired):
        session_service.record_answer(db, student, session.id, session.question_ids[0], 0, now=late)

    db.refresh(session)
    assert session.status == "expired"
    assert ledger_service.count_session_attempts(db, session.id) == 1


def test_other_learner_cannot_see_session(db, make_user, student, chapter) -> None:
    session = _start(db, student, chapter).session
    stranger = make_user()

    with pytest.raises(SessionNotFound):
        session_service.get_session(db, stranger, session.id, now=NOW)


def test_double_submit_records_one_attempt(db, student, chapter) -> None:
    session = _start(db, student, chapter).session
    answers = answers_for(session, correct=16)

    result = session_service.submit_session(
        db, student, session.id, answers, now=NOW + timedelta(minutes=10)
    )
    assert result.grading.score == 80
    assert result.grading.passed

    with pytest.raises(SessionNotActive) as exc_info:
        session_service.submit_session(
            db, student, session.id, answers, now=NOW + timedelta(minutes=11)
        )
    assert exc_info.value.status_code == 409
    assert ledger_service.count_session_attempts(db, session.id) == 1


def test_late_submit_is_rejected_and_recorded_as_expired(db, student, chapter) -> None:
    session = _start(db, student, chapter).session
    late = session.expires_at + timedelta(seconds=5)

    with pytest.raises(SessionExpired) as exc_info:
        session_service.submit_session(db, student, session.id, answers_for(session), now=late)
    assert exc_info.value.status_code == 410

    records = ledger_service.list_attempts(db, student.id)
    assert len(records) == 1
    assert records[0].outcome == "expired"
    assert records[0].score is None
    assert records[0].abandoned
    assert records[0].attempted_at.replace(tzinfo=None) == session.expires_at.replace(tzinfo=None)


def test_submit_at_exact_deadline_is_late(db, student, chapter) -> None:
    session = _start(db, student, chapter).session

    with pytest.raises(SessionExpired):
        session_service.submit_session(db, student, session.id, now=session.expires_at)


def test_submit_requires_every_question_exactly_once(db, student, chapter) -> None:
    session = _start(db, student, chapter).session
    answers = answers_for(session)

    with pytest.raises(GradingInvariantViolation):
        session_service.submit_session(db, student, session.id, answers[:-1], now=NOW)
    with pytest.raises(GradingInvariantViolation):
        session_service.submit_session(
            db, student, session.id, answers[:-1] + [answers[0]], now=NOW
        )

    db.refresh(session)
    assert session.status == "active"


def test_submit_without_answers_grades_saved_slots(db, student, chapter) -> None:
    session = _start(db, student, chapter).session
    for slot in session.answers[:10]:
        session_service.record_answer(
            db, student, session.id, slot.question_id, slot.correct_option_index, now=NOW
        )

    result = session_service.submit_session(db, student, session.id, now=NOW + timedelta(minutes=1))

    assert result.grading.correct_count == 10
    assert result.grading.score == 50
    assert not result.grading.passed
    assert result.certificate_status is None


def test_submit_after_chapter_is_unpublished(db, student, chapter) -> None:
    session = _start(db, student, chapter).session
    chapter.is_published = False
    db.commit()

    result = session_service.submit_session(
        db, student, session.id, answers_for(session), now=NOW + timedelta(minutes=5)
    )

    assert result.session.status == "submitted"
    assert result.grading.passed
    with pytest.raises(ScopeNotFound):
        _start(db, student, chapter, now=NOW + timedelta(hours=4))


def test_abandon_is_final_and_starts_cooldown(db, student, chapter) -> None:
    session = _start(db, student, chapter).session

    abandoned = session_service.abandon_session(
        db, student, session.id, "tab_hidden", now=NOW + timedelta(minutes=3)
    )
    assert abandoned.status == "abandoned"
    assert abandoned.abandon_reason == "tab_hidden"

    with pytest.raises(SessionNotActive):
        session_service.abandon_session(db, student, session.id, now=NOW + timedelta(minutes=4))
    with pytest.raises(SessionNotActive):
        session_service.submit_session(db, student, session.id, now=NOW + timedelta(minutes=4))

    record = ledger_service.list_attempts(db, student.id)[0]
    assert record.outcome == "abandoned"
    assert record.score is None
    assert not record.passed

    with pytest.raises(NotEligible) as exc_info:
        _start(db, student, chapter, now=NOW + timedelta(hours=1))
    assert exc_info.value.retry_after_seconds > 0


def test_abandon_and_expiry_give_the_same_cooldown(db, make_user, course) -> None:
    chapter = course.chapters[0]
    quitter = make_user()
    sleeper = make_user()
    for user in (quitter, sleeper):
        complete_chapter_lessons(db, user, chapter)

    quit_session = _start(db, quitter, chapter).session
    quit_at = quit_session.expires_at
    session_service.abandon_session(db, quitter, quit_session.id, now=quit_at - timedelta(microseconds=1))

    sleep_session = _start(db, sleeper, chapter).session
    session_service.expire_stale_sessions(db, now=sleep_session.expires_at + timedelta(hours=1))

    check_at = NOW + timedelta(hours=2)
    with pytest.raises(NotEligible) as quit_error:
        _start(db, quitter, chapter, now=check_at)
    with pytest.raises(NotEligible) as sleep_error:
        _start(db, sleeper, chapter, now=check_at)
    assert quit_error.value.retry_after_seconds == sleep_error.value.retry_after_seconds


def test_abandon_of_stale_session_expires_it(db, student, chapter) -> None:
    session = _start(db, student, chapter).session

    with pytest.raises(SessionExpired):
        session_service.abandon_session(
            db, student, session.id, now=session.expires_at + timedelta(minutes=1)
        )

    db.refresh(session)
    assert session.status == "expired"
    assert session.abandon_reason is None


def test_admin_abandon_records_admin_reason(db, admin, student, chapter) -> None:
    session = _start(db, student, chapter).session

    abandoned = session_service.abandon_session(
        db, admin, session.id, now=NOW + timedelta(minutes=1), as_admin=True
    )

    assert abandoned.abandon_reason == "admin"
    assert abandoned.user_id == student.id


def test_learner_cannot_use_admin_reason(db, student, chapter) -> None:
    session = _start(db, student, chapter).session

    with pytest.raises(ValueError):
        session_service.abandon_session(db, student, session.id, "admin", now=NOW)


def test_sweep_and_lazy_expiry_write_one_record(db, student, chapter) -> None:
    session = _start(db, student, chapter).session
    later = session.expires_at + timedelta(minutes=1)

    assert session_service.expire_stale_sessions(db, now=later) == 1
    assert session_service.expire_stale_sessions(db, now=later) == 0
    viewed = session_service.get_session(db, student, session.id, now=later)

    assert viewed.status == "expired"
    records = db.execute(
        select(AttemptRecord).where(AttemptRecord.session_id == session.id)
    ).scalars().all()
    assert len(records) == 1


def test_expired_session_does_not_block_new_start_after_cooldown(db, student, chapter) -> None:
    first = _start(db, student, chapter).session
    after_cooldown = first.expires_at + timedelta(hours=3)

    second = session_service.start_session(
        db, student, ScopeType.CHAPTER, chapter.id, now=after_cooldown, rng=random.Random(7)
    )

    db.refresh(first)
    assert first.status == "expired"
    assert not second.resumed
    assert second.session.id != first.id
