"""Certificate image rendering.

The renderer takes the data printed on a certificate and returns a public
image URL. Any failure surfaces as RenderError so the issuance trigger can
retry later.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol
from urllib.parse import urlencode

import requests
from PIL import Image, ImageDraw, ImageFont

from assessment_api.config import (
    CERTIFICATE_UPLOAD_TOKEN,
    CERTIFICATE_UPLOAD_URL,
    CERTIFICATES_DIR,
    FRONTEND_URL,
)
from assessment_api.errors import RenderError

logger = logging.getLogger(__name__)

CANVAS_SIZE = (1600, 1131)
BACKGROUND = "#FDFBF5"
INK = "#2C2C2C"
ACCENT = "#8A6D3B"


@dataclass(frozen=True)
class CertificateData:
    """Everything printed on one certificate."""

    kind: str
    user_name: str
    course_title: str
    completion_date: datetime
    certificate_number: str
    verification_code: str
    score: int

    @property
    def verification_url(self) -> str:
        query = urlencode(
            {
                "certificateNumber": self.certificate_number,
                "verificationCode": self.verification_code,
            }
        )
        return f"{FRONTEND_URL}/verify-certificate?{query}"

    @property
    def file_name(self) -> str:
        return f"{self.kind}-{self.certificate_number}.png"


class CertificateRenderer(Protocol):
    def render(self, data: CertificateData) -> str:
        """Return the image URL, or raise RenderError."""
        ...


def _font(size: int, bold: bool = False) -> ImageFont.ImageFont:
    name = "DejaVuSerif-Bold.ttf" if bold else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        return ImageFont.load_default(size=size)


def _draw_centered(draw: ImageDraw.ImageDraw, y: int, text: str, font, fill: str) -> None:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (CANVAS_SIZE[0] - (right - left)) // 2
    draw.text((x, y), text, font=font, fill=fill)


def draw_certificate(data: CertificateData) -> bytes:
    """Draw the certificate and return PNG bytes."""
    image = Image.new("RGB", CANVAS_SIZE, BACKGROUND)
    draw = ImageDraw.Draw(image)
    width, height = CANVAS_SIZE

    draw.rectangle((30, 30, width - 30, height - 30), outline=ACCENT, width=8)
    draw.rectangle((55, 55, width - 55, height - 55), outline=ACCENT, width=2)

    heading = "Certificate of Completion"
    if data.kind == "compliance":
        heading = "Certificate of Compliance Training"
    _draw_centered(draw, 150, heading, _font(64, bold=True), ACCENT)
    _draw_centered(draw, 300, "This certifies that", _font(32), INK)
    _draw_centered(draw, 380, data.user_name, _font(72, bold=True), INK)
    _draw_centered(draw, 520, "has successfully completed", _font(32), INK)
    _draw_centered(draw, 590, data.course_title, _font(48, bold=True), INK)

    details = [
        f"Certificate No: {data.certificate_number}",
        f"Date: {data.completion_date.strftime('%b %d, %Y')}",
    ]
    if data.kind == "main":
        details.append(f"Score: {data.score}%")
    _draw_centered(draw, 800, "    |    ".join(details), _font(26), INK)
    _draw_centered(draw, 880, f"Verification code: {data.verification_code}", _font(24), INK)
    _draw_centered(draw, 930, data.verification_url, _font(20), ACCENT)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()


class PillowCertificateRenderer:
    """
    Draws certificates with Pillow. Stores the PNG under output_dir (served at
    base_url) or, when upload_url is configured, uploads it and returns the
    URL the upload service reports.
    """

    def __init__(
        self,
        output_dir: Path = CERTIFICATES_DIR,
        base_url: str = "/certificates",
        upload_url: str | None = CERTIFICATE_UPLOAD_URL,
        upload_token: str | None = CERTIFICATE_UPLOAD_TOKEN,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.base_url = base_url.rstrip("/")
        self.upload_url = upload_url
        self.upload_token = upload_token

    def render(self, data: CertificateData) -> str:
        try:
            png = draw_certificate(data)
        except (OSError, ValueError) as exc:
            logger.error(f"Failed to draw certificate {data.certificate_number}: {exc}")
            raise RenderError(f"Failed to draw certificate: {exc}") from exc

        if self.upload_url:
            return self._upload(data, png)
        return self._store(data, png)

    def _store(self, data: CertificateData, png: bytes) -> str:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            (self.output_dir / data.file_name).write_bytes(png)
        except OSError as exc:
            logger.error(f"Failed to save certificate {data.certificate_number}: {exc}")
            raise RenderError(f"Failed to save certificate: {exc}") from exc
        logger.info(f"Saved certificate image {data.file_name}")
        return f"{self.base_url}/{data.file_name}"

    def _upload(self, data: CertificateData, png: bytes) -> str:
        session = requests.Session()
        if self.upload_token:
            session.headers.update({"Authorization": f"Bearer {self.upload_token}"})
        try:
            response = session.post(
                self.upload_url,
                data={"folder": "certificates", "public_id": data.file_name[:-4]},
                files={"file": (data.file_name, png, "image/png")},
                timeout=60,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error(f"Certificate upload failed for {data.certificate_number}: {exc}")
            raise RenderError(f"Certificate upload failed: {exc}") from exc

        url = None
        if isinstance(payload, dict):
            url = payload.get("secure_url") or payload.get("url")
        if not url:
            logger.warning("Certificate upload response missing image URL")
            raise RenderError("Certificate upload response missing image URL")
        logger.info(f"Uploaded certificate {data.certificate_number} to {url}")
        return url


_default_renderer: CertificateRenderer | None = None


def get_certificate_renderer() -> CertificateRenderer:
    """FastAPI dependency returning the configured renderer."""
    global _default_renderer
    if _default_renderer is None:
        _default_renderer = PillowCertificateRenderer()
    return _default_renderer
