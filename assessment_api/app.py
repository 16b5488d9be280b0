"""Main FastAPI application with modularized routes."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from assessment_api.config import CERTIFICATES_DIR, FRONTEND_URL
from assessment_api.database import init_db
from assessment_api.routes import admin, assessments, auth, certificates, progress, sessions
from assessment_api.services.sweep_service import schedule_session_sweep
from core.logging_setup import setup_console_logging

setup_console_logging()

app = FastAPI(title="Course Assessment API")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Startup events
@app.on_event("startup")
def startup_events() -> None:
    """Initialize database and start the session sweep on startup."""
    init_db()
    schedule_session_sweep()


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# Rendered certificate images
app.mount("/certificates", StaticFiles(directory=CERTIFICATES_DIR), name="certificates")

# Include routers
app.include_router(auth.router)
app.include_router(assessments.router)
app.include_router(sessions.router)
app.include_router(progress.router)
app.include_router(certificates.router)
app.include_router(admin.router)
