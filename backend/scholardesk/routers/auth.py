import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from scholardesk.auth import create_token_for_user, verify_password
from scholardesk.db import get_db
from scholardesk.deps import Actor, get_current_actor
from scholardesk.exceptions import AuthenticationError
from scholardesk.models import User
from scholardesk.rate_limit import AUTH_RATE_LIMIT, limiter
from scholardesk.schemas import LoginRequest, Token, UserResponse
from scholardesk.config import settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
@limiter.limit(AUTH_RATE_LIMIT)
def login(login_data: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Login with email and password"""
    user = db.query(User).filter(User.email == login_data.email).first()
    if not user or not verify_password(login_data.password, user.password_hash):
        raise AuthenticationError("Incorrect email or password")
    if not user.is_active or user.is_banned:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")

    access_token = create_token_for_user(user)
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    logger.info("User logged in", extra={"user_id": str(user.id)})
    return Token(access_token=access_token)


@router.get("/me", response_model=UserResponse)
def me(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    user = db.query(User).filter(User.id == actor.id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user
