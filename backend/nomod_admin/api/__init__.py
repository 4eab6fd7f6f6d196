"""API router aggregator."""
from fastapi import APIRouter

from nomod_admin.api.routes import auth, session, users

api_router = APIRouter(prefix="/api")
api_router.include_router(auth.router)
api_router.include_router(session.router)
api_router.include_router(users.router)

__all__ = ["api_router"]
