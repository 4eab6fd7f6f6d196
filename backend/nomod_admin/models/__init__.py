"""SQLAlchemy models exposed for table creation and imports."""
from .rate_limit import LoginRateLimit
from .session import AdminSession
from .user import AdminUser

__all__ = ["AdminUser", "AdminSession", "LoginRateLimit"]
