"""API route modules."""
from .auth import router as auth_router
from .twofa import router as twofa_router
from .recovery import router as recovery_router
from .health import router as health_router

__all__ = ["auth_router", "twofa_router", "recovery_router", "health_router"]
