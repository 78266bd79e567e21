"""API routes."""

from credential_service.api.auth import router as auth_router
from credential_service.api.users import router as users_router

__all__ = [
    "auth_router",
    "users_router",
]
