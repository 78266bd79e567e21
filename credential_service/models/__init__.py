"""Database models."""

from credential_service.models.user import User

__all__ = [
    "User",
]
