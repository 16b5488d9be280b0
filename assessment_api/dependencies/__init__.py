"""FastAPI dependencies."""
from assessment_api.dependencies.auth import get_current_user, require_learner, require_staff

__all__ = ["get_current_user", "require_learner", "require_staff"]
