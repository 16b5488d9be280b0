"""API route modules."""
from assessment_api.routes import admin, assessments, auth, certificates, progress, sessions

__all__ = ["admin", "assessments", "auth", "certificates", "progress", "sessions"]
