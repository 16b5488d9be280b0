"""create_assessment_schema

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='User'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('courses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('compliance_certificate_title', sa.String(200), nullable=True),
        sa.Column('exam_question_count', sa.Integer(), nullable=True),
        sa.Column('exam_passing_score', sa.Integer(), nullable=True),
        sa.Column('exam_cooldown_hours', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_courses_id', 'courses', ['id'])

    op.create_table('chapters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('chapter_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('test_question_count', sa.Integer(), nullable=True),
        sa.Column('test_passing_score', sa.Integer(), nullable=True),
        sa.Column('test_cooldown_hours', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE')
    )
    op.create_index('ix_chapters_id', 'chapters', ['id'])
    op.create_index('ix_chapters_course_id', 'chapters', ['course_id'])

    op.create_table('lessons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('chapter_id', sa.Integer(), nullable=False),
        sa.Column('lesson_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['chapter_id'], ['chapters.id'], ondelete='CASCADE')
    )
    op.create_index('ix_lessons_id', 'lessons', ['id'])
    op.create_index('ix_lessons_chapter_id', 'lessons', ['chapter_id'])

    op.create_table('questions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('scope_type', sa.String(20), nullable=False),
        sa.Column('scope_id', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('options_json', sa.Text(), nullable=False),
        sa.Column('correct_answer', sa.Integer(), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('difficulty', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_questions_id', 'questions', ['id'])
    op.create_index('ix_questions_scope_type', 'questions', ['scope_type'])
    op.create_index('ix_questions_scope_id', 'questions', ['scope_id'])

    op.create_table('assessment_sessions',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('scope_type', sa.String(20), nullable=False),
        sa.Column('scope_id', sa.Integer(), nullable=False),
        sa.Column('question_ids_json', sa.Text(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('abandon_reason', sa.String(20), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE')
    )
    op.create_index('ix_assessment_sessions_id', 'assessment_sessions', ['id'])
    op.create_index('ix_assessment_sessions_user_id', 'assessment_sessions', ['user_id'])
    op.create_index('ix_assessment_sessions_course_id', 'assessment_sessions', ['course_id'])
    op.create_index('ix_assessment_sessions_expires_at', 'assessment_sessions', ['expires_at'])
    op.create_index('ix_assessment_sessions_status', 'assessment_sessions', ['status'])
    # At most one active session per learner and assessment
    op.create_index(
        'uq_active_session_per_scope',
        'assessment_sessions',
        ['user_id', 'scope_type', 'scope_id'],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table('session_answers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('question_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('selected_answer', sa.Integer(), nullable=True),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('options_json', sa.Text(), nullable=False),
        sa.Column('correct_option_index', sa.Integer(), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('difficulty', sa.String(20), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['session_id'], ['assessment_sessions.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('session_id', 'question_id', name='uq_session_question')
    )
    op.create_index('ix_session_answers_id', 'session_answers', ['id'])
    op.create_index('ix_session_answers_session_id', 'session_answers', ['session_id'])

    op.create_table('attempt_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('scope_type', sa.String(20), nullable=False),
        sa.Column('scope_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('attempted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('outcome', sa.String(20), nullable=False),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('correct_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('passed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('abandoned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['session_id'], ['assessment_sessions.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('session_id')
    )
    op.create_index('ix_attempt_records_id', 'attempt_records', ['id'])
    op.create_index('ix_attempt_records_user_id', 'attempt_records', ['user_id'])
    op.create_index('ix_attempt_records_course_id', 'attempt_records', ['course_id'])
    op.create_index(
        'ix_attempt_records_scope',
        'attempt_records',
        ['user_id', 'scope_type', 'scope_id', 'attempted_at'],
    )

    op.create_table('course_progress',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('current_chapter_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('current_lesson_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('final_exam_best_score', sa.Integer(), nullable=True),
        sa.Column('course_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('certificate_issued', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('certificate_issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'course_id', name='uq_progress_user_course')
    )
    op.create_index('ix_course_progress_id', 'course_progress', ['id'])
    op.create_index('ix_course_progress_user_id', 'course_progress', ['user_id'])
    op.create_index('ix_course_progress_course_id', 'course_progress', ['course_id'])

    op.create_table('lesson_completions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('progress_id', sa.Integer(), nullable=False),
        sa.Column('lesson_id', sa.Integer(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['progress_id'], ['course_progress.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['lesson_id'], ['lessons.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('progress_id', 'lesson_id', name='uq_progress_lesson')
    )
    op.create_index('ix_lesson_completions_id', 'lesson_completions', ['id'])
    op.create_index('ix_lesson_completions_progress_id', 'lesson_completions', ['progress_id'])

    op.create_table('chapter_passes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('progress_id', sa.Integer(), nullable=False),
        sa.Column('chapter_id', sa.Integer(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('passed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['progress_id'], ['course_progress.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['chapter_id'], ['chapters.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('progress_id', 'chapter_id', name='uq_progress_chapter')
    )
    op.create_index('ix_chapter_passes_id', 'chapter_passes', ['id'])
    op.create_index('ix_chapter_passes_progress_id', 'chapter_passes', ['progress_id'])

    op.create_table('certificates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('certificate_number', sa.String(32), nullable=False),
        sa.Column('verification_code', sa.String(16), nullable=False),
        sa.Column('user_name', sa.String(100), nullable=False),
        sa.Column('user_email', sa.String(255), nullable=False),
        sa.Column('course_title', sa.String(200), nullable=False),
        sa.Column('completion_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('render_claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'course_id', 'kind', name='uq_certificate_user_kind')
    )
    op.create_index('ix_certificates_id', 'certificates', ['id'])
    op.create_index('ix_certificates_user_id', 'certificates', ['user_id'])
    op.create_index('ix_certificates_course_id', 'certificates', ['course_id'])
    op.create_index('ix_certificates_certificate_number', 'certificates', ['certificate_number'], unique=True)
    op.create_index('ix_certificates_verification_code', 'certificates', ['verification_code'], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('certificates')
    op.drop_table('chapter_passes')
    op.drop_table('lesson_completions')
    op.drop_table('course_progress')
    op.drop_table('attempt_records')
    op.drop_table('session_answers')
    op.drop_index('uq_active_session_per_scope', table_name='assessment_sessions')
    op.drop_table('assessment_sessions')
    op.drop_table('questions')
    op.drop_table('lessons')
    op.drop_table('chapters')
    op.drop_table('courses')
    op.drop_table('users')
