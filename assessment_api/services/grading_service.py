"""Grading and progress recording for submitted sessions."""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session as DbSession

from assessment_api.errors import GradingInvariantViolation
from assessment_api.models.db.content import ScopeType
from assessment_api.models.db.session import AssessmentSession, SessionAnswer, SessionStatus
from assessment_api.services import ledger_service, progress_service
from assessment_api.services.content_service import AssessmentScope

logger = logging.getLogger(__name__)


@dataclass
class ReviewItem:
    """Per-question feedback shown after submission."""

    question_id: int
    question_text: str
    options: list[str]
    selected_answer: int | None
    correct_answer: int
    is_correct: bool
    explanation: str | None = None


@dataclass
class GradingResult:
    """Aggregate score plus per-question review."""

    score: int
    correct_count: int
    total_questions: int
    passed: bool
    passing_score: int
    course_completed: bool = False
    course_newly_completed: bool = False
    review: list[ReviewItem] = field(default_factory=list)


def calculate_score(correct_count: int, total_questions: int) -> int:
    """Percentage rounded half up."""
    if total_questions <= 0:
        return 0
    return math.floor(100 * correct_count / total_questions + 0.5)


def ordered_slots(session: AssessmentSession) -> list[SessionAnswer]:
    """
    Answer slots in the frozen question order.

    Raises:
        GradingInvariantViolation: If slots and frozen questions disagree.
    """
    slots = sorted(session.answers, key=lambda slot: slot.position)
    if [slot.question_id for slot in slots] != session.question_ids:
        logger.error(
            f"Session {session.id} answer slots do not match its frozen question set"
        )
        raise GradingInvariantViolation(
            "Answer slots do not match the session's question set", sessionId=session.id
        )
    return slots


def grade_session(
    db: DbSession,
    session: AssessmentSession,
    scope: AssessmentScope,
    now: datetime,
) -> GradingResult:
    """
    Score a session that has just transitioned to submitted and record the
    consequences: the attempt, chapter pass, best score, course completion.
    Runs inside the caller's transaction; the caller commits.
    """
    slots = ordered_slots(session)
    total = len(slots)
    correct = sum(1 for slot in slots if slot.is_correct)
    score = calculate_score(correct, total)
    passed = score >= scope.passing_score

    ledger_service.add_attempt(
        db,
        session,
        outcome=SessionStatus.SUBMITTED,
        attempted_at=now,
        score=score,
        correct_count=correct,
        total_questions=total,
        passed=passed,
    )

    progress = progress_service.ensure_progress(db, session.user_id, session.course_id)
    newly_completed = False

    if scope.scope_type == ScopeType.CHAPTER:
        if passed:
            progress_service.record_chapter_pass(db, progress, scope.chapter, score, now)
    else:
        if progress.final_exam_best_score is None or score > progress.final_exam_best_score:
            progress.final_exam_best_score = score
        if passed and not progress.course_completed:
            progress.course_completed = True
            progress.completed_at = now
            newly_completed = True

    logger.info(
        f"Graded session {session.id} ({scope.scope_type.value} {scope.scope_id}): "
        f"{correct}/{total} = {score}% {'passed' if passed else 'failed'}"
    )

    return GradingResult(
        score=score,
        correct_count=correct,
        total_questions=total,
        passed=passed,
        passing_score=scope.passing_score,
        course_completed=progress.course_completed,
        course_newly_completed=newly_completed,
        review=[
            ReviewItem(
                question_id=slot.question_id,
                question_text=slot.question_text,
                options=slot.options,
                selected_answer=slot.selected_answer,
                correct_answer=slot.correct_option_index,
                is_correct=slot.is_correct,
                explanation=slot.explanation,
            )
            for slot in slots
        ],
    )
