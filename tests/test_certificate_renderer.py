import io
from datetime import datetime, timezone
from pathlib import Path

import pytest
import requests
from PIL import Image

from assessment_api.errors import RenderError
from assessment_api.services import certificate_renderer
from assessment_api.services.certificate_renderer import CertificateData, PillowCertificateRenderer


def _data(kind: str = "main") -> CertificateData:
    return CertificateData(
        kind=kind,
        user_name="Dana Learner",
        course_title="Workplace Safety",
        completion_date=datetime(2026, 3, 2, tzinfo=timezone.utc),
        certificate_number="MIC-2026-0A1B2C",
        verification_code="DEADBEEF",
        score=92,
    )


def test_verification_url_carries_number_and_code() -> None:
    url = _data().verification_url
    assert "certificateNumber=MIC-2026-0A1B2C" in url
    assert "verificationCode=DEADBEEF" in url


def test_draw_certificate_returns_png() -> None:
    png = certificate_renderer.draw_certificate(_data("compliance"))
    image = Image.open(io.BytesIO(png))
    assert image.format == "PNG"
    assert image.size == certificate_renderer.CANVAS_SIZE


def test_render_stores_file_locally(tmp_path: Path) -> None:
    renderer = PillowCertificateRenderer(output_dir=tmp_path, upload_url=None)

    url = renderer.render(_data())

    assert url == "/certificates/main-MIC-2026-0A1B2C.png"
    assert (tmp_path / "main-MIC-2026-0A1B2C.png").read_bytes().startswith(b"\x89PNG")


def test_render_uploads_when_configured(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeResponse:
        def __init__(self, payload):
            self._payload = payload

        def raise_for_status(self) -> None:
            return None

        def json(self):
            return self._payload

    class FakeSession:
        instances: list["FakeSession"] = []

        def __init__(self):
            self.headers = {}
            self.calls = []
            FakeSession.instances.append(self)

        def post(self, url, data=None, files=None, timeout=None):
            self.calls.append((url, data, files["file"][0]))
            return FakeResponse({"secure_url": "https://cdn.example.com/main-MIC-2026-0A1B2C.png"})

    monkeypatch.setattr(certificate_renderer.requests, "Session", FakeSession)
    renderer = PillowCertificateRenderer(
        output_dir=tmp_path,
        upload_url="https://upload.example.com/image",
        upload_token="secret",
    )

    url = renderer.render(_data())

    assert url == "https://cdn.example.com/main-MIC-2026-0A1B2C.png"
    session = FakeSession.instances[0]
    assert session.headers["Authorization"] == "Bearer secret"
    assert session.calls[0][0] == "https://upload.example.com/image"
    assert session.calls[0][2] == "main-MIC-2026-0A1B2C.png"
    assert not any(tmp_path.iterdir())


def test_upload_failure_raises_render_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingSession:
        def __init__(self):
            self.headers = {}

        def post(self, *args, **kwargs):
            raise requests.ConnectionError("upload host unreachable")

    monkeypatch.setattr(certificate_renderer.requests, "Session", FailingSession)
    renderer = PillowCertificateRenderer(output_dir=tmp_path, upload_url="https://upload.example.com")

    with pytest.raises(RenderError):
        renderer.render(_data())


def test_upload_without_url_in_response_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class EmptySession:
        def __init__(self):
            self.headers = {}

        def post(self, *args, **kwargs):
            class Response:
                def raise_for_status(self) -> None:
                    return None

                def json(self):
                    return {"status": "ok"}

            return Response()

    monkeypatch.setattr(certificate_renderer.requests, "Session", EmptySession)
    renderer = PillowCertificateRenderer(output_dir=tmp_path, upload_url="https://upload.example.com")

    with pytest.raises(RenderError):
        renderer.render(_data())
