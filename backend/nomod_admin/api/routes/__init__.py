"""Route modules for the admin auth API."""
from . import auth, session, users

__all__ = ["auth", "session", "users"]
