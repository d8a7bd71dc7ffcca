import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session as DBSession

from grouppoll.common.db.connection import get_session
from grouppoll.common.db.models import User

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/auth", tags=["auth"])


def get_bearer_token(request: Request) -> str | None:
    """Get bearer token from request"""
    bearer_token = request.headers.get("Authorization", "").split(" ")
    if len(bearer_token) != 2 or bearer_token[0].lower() != "bearer":
        return None
    return bearer_token[1]


def authenticate_api_key(api_key: str, db: DBSession) -> User | None:
    """Find the organizer owning an API key"""
    return db.query(User).filter(User.api_key == api_key).first()


def get_current_user(request: Request, db: DBSession = Depends(get_session)) -> User:
    """FastAPI dependency to get current authenticated organizer"""
    token = get_bearer_token(request)
    user = token and authenticate_api_key(token, db)
    if not user:
        logger.debug(f"Rejected request to {request.url.path}: bad or missing API key")
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return user


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    """Get current user info"""
    return {"id": user.id, "name": user.name, "email": user.email}
