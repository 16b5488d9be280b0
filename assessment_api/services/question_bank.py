"""Question bank: random sampling of assessment questions."""
import random

from sqlalchemy import select
from sqlalchemy.orm import Session as DbSession

from assessment_api.errors import QuestionBankError
from assessment_api.models.db.content import Question, ScopeType


def count_questions(db: DbSession, scope_type: ScopeType, scope_id: int) -> int:
    """Count eligible questions for a scope."""
    return len(_eligible_ids(db, scope_type, scope_id))


def sample(
    db: DbSession,
    scope_id: int,
    scope_type: ScopeType,
    count: int,
    rng: random.Random | None = None,
) -> list[Question]:
    """
    Return ``count`` distinct random questions for the scope, in random order.

    Raises:
        QuestionBankError: If fewer than ``count`` eligible questions exist.
    """
    ids = _eligible_ids(db, scope_type, scope_id)
    if count <= 0 or len(ids) < count:
        raise QuestionBankError(
            f"Not enough questions for this {scope_type.value} assessment",
            available=len(ids),
            required=count,
        )

    chosen = (rng or random).sample(ids, count)
    rows = db.execute(select(Question).where(Question.id.in_(chosen))).scalars().all()
    by_id = {question.id: question for question in rows}
    return [by_id[question_id] for question_id in chosen]


def _eligible_ids(db: DbSession, scope_type: ScopeType, scope_id: int) -> list[int]:
    stmt = (
        select(Question.id)
        .where(
            Question.scope_type == ScopeType(scope_type).value,
            Question.scope_id == scope_id,
            Question.is_active == True,  # noqa: E712
        )
        .order_by(Question.id)
    )
    return list(db.execute(stmt).scalars().all())
