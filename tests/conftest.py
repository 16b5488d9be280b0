from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import assessment_api.models.db  # noqa: F401
from assessment_api.database import Base
from assessment_api.errors import NotifyError, RenderError
from assessment_api.models.db.session import AssessmentSession
from assessment_api.models.db.user import User, UserRole
from assessment_api.services import content_service, progress_service
from assessment_api.services.certificate_renderer import CertificateData
from assessment_api.services.session_service import AnswerSubmission

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def session_factory(tmp_path: Path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def build_questions(count: int, label: str) -> list[dict[str, object]]:
    return [
        {
            "text": f"{label} question {index + 1}",
            "options": [f"Option {letter}" for letter in "ABCD"],
            "correctAnswer": index % 4,
            "explanation": f"Explanation {index + 1}",
            "difficulty": "easy",
        }
        for index in range(count)
    ]


def course_payload(
    chapters: int = 2,
    lessons: int = 2,
    chapter_questions: int = 25,
    final_questions: int = 60,
    compliance_title: str | None = None,
) -> dict[str, object]:
    payload: dict[str, object] = {
        "title": "Workplace Safety",
        "chapters": [
            {
                "title": f"Chapter {number}",
                "lessons": [f"Lesson {number}.{lesson}" for lesson in range(1, lessons + 1)],
                "test": {"questions": build_questions(chapter_questions, f"Chapter {number}")},
            }
            for number in range(1, chapters + 1)
        ],
        "finalExam": {"questions": build_questions(final_questions, "Final")},
    }
    if compliance_title:
        payload["complianceCertificateTitle"] = compliance_title
    return payload


@pytest.fixture()
def make_course(db):
    def _make(**kwargs):
        course = content_service.import_course(db, course_payload(**kwargs))
        return content_service.get_course(db, course.id)

    return _make


@pytest.fixture()
def course(make_course):
    return make_course()


@pytest.fixture()
def make_user(db):
    counter = {"value": 0}

    def _make(role: UserRole = UserRole.STUDENT, name: str = "Dana Learner") -> User:
        counter["value"] += 1
        user = User(
            email=f"user{counter['value']}@example.com",
            name=name,
            hashed_password="not-a-real-hash",
            role=role.value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def student(make_user):
    return make_user()


@pytest.fixture()
def admin(make_user):
    return make_user(UserRole.ADMIN, name="Ada Admin")


def complete_chapter_lessons(db, user, chapter, now=NOW) -> None:
    for lesson in chapter.lessons:
        progress_service.mark_lesson_completed(db, user, lesson, now=now)


def complete_all_lessons(db, user, course, now=NOW) -> None:
    for chapter in course.chapters:
        complete_chapter_lessons(db, user, chapter, now=now)


def answers_for(session: AssessmentSession, correct: int | None = None) -> list[AnswerSubmission]:
    """Answer sequence with the first `correct` slots right and the rest wrong."""
    slots = sorted(session.answers, key=lambda slot: slot.position)
    if correct is None:
        correct = len(slots)
    return [
        AnswerSubmission(
            question_id=slot.question_id,
            selected_answer=(
                slot.correct_option_index
                if index < correct
                else (slot.correct_option_index + 1) % 4
            ),
        )
        for index, slot in enumerate(slots)
    ]


class FakeRenderer:
    def __init__(self) -> None:
        self.calls: list[CertificateData] = []

    def render(self, data: CertificateData) -> str:
        self.calls.append(data)
        return f"/certificates/{data.file_name}"


class FailingRenderer:
    def __init__(self) -> None:
        self.calls = 0

    def render(self, data: CertificateData) -> str:
        self.calls += 1
        raise RenderError("template missing")


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[int, list[str]]] = []

    def send_certificates(self, user, certificates) -> None:
        if self.fail:
            raise NotifyError("smtp down")
        self.sent.append((user.id, [item.certificate_number for item in certificates]))


@pytest.fixture()
def renderer():
    return FakeRenderer()


@pytest.fixture()
def notifier():
    return FakeNotifier()
