from datetime import timedelta

import pytest
from conftest import NOW, complete_chapter_lessons
from sqlalchemy.exc import OperationalError

from assessment_api.models.db.content import ScopeType
from assessment_api.services import session_service, sweep_service


def test_run_sweep_expires_stale_sessions(
    db, session_factory, course, student, renderer, monkeypatch: pytest.MonkeyPatch
) -> None:
    chapter = course.chapters[0]
    complete_chapter_lessons(db, student, chapter)
    session = session_service.start_session(db, student, ScopeType.CHAPTER, chapter.id, now=NOW)
    session_id = session.session.id

    monkeypatch.setattr(sweep_service, "SessionLocal", session_factory)
    monkeypatch.setattr(sweep_service, "get_certificate_renderer", lambda: renderer)

    # Wall clock is far past the 2026-03-02 deadline used above
    expired, issued = sweep_service.run_sweep()

    assert expired == 1
    assert issued == 0
    db.expire_all()
    viewed = session_service.get_session(db, student, session_id, now=NOW + timedelta(days=1))
    assert viewed.status == "expired"


def test_sweep_worker_logs_and_keeps_running(monkeypatch: pytest.MonkeyPatch, caplog) -> None:
    calls = {"count": 0}

    def _failing_sweep():
        calls["count"] += 1
        if calls["count"] == 1:
            raise OperationalError("UPDATE assessment_sessions", {}, Exception("database is locked"))
        raise SystemExit  # stops the worker loop on the second pass

    sleeps: list[float] = []
    monkeypatch.setattr(sweep_service, "run_sweep", _failing_sweep)
    monkeypatch.setattr(sweep_service.time, "sleep", sleeps.append)
    started: list[object] = []

    class InlineThread:
        def __init__(self, target, name, daemon):
            self.target = target
            started.append(name)

        def start(self) -> None:
            try:
                self.target()
            except SystemExit:
                pass

    monkeypatch.setattr(sweep_service.threading, "Thread", InlineThread)

    with caplog.at_level("ERROR"):
        sweep_service.schedule_session_sweep()

    assert started == ["session_sweep"]
    assert calls["count"] == 2
    assert "Session sweep failed" in caplog.text
    assert len(sleeps) == 2
