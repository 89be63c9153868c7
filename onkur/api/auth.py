"""
Auth API - signup, email verification, login, logout and current user
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from onkur.dependencies import get_current_actor, get_db, get_token
from onkur.services.auth_service import Actor, auth_service, serialize_user
from onkur.services.notifications import notifier

logger = logging.getLogger(__name__)
router = APIRouter()


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., description="At least 8 characters")
    roles: Optional[List[str]] = Field(None, description="VOLUNTEER, EVENT_MANAGER and/or SPONSOR")


class LoginRequest(BaseModel):
    email: str
    password: str


class VerifyEmailRequest(BaseModel):
    token: str


class ResendVerificationRequest(BaseModel):
    email: str


@router.post("/signup", status_code=201)
async def signup(request: SignupRequest, db: Session = Depends(get_db)):
    """Create an account and email a verification link"""
    result = auth_service.signup(db, request.name, request.email, request.password, request.roles)
    await notifier.dispatch(result.effects)
    return result.value


@router.post("/verify-email")
async def verify_email(request: VerifyEmailRequest, db: Session = Depends(get_db)):
    result = auth_service.verify_email(db, request.token)
    await notifier.dispatch(result.effects)
    return result.value


@router.post("/resend-verification", status_code=202)
async def resend_verification(request: ResendVerificationRequest, db: Session = Depends(get_db)):
    result = auth_service.resend_verification(db, request.email)
    await notifier.dispatch(result.effects)
    return result.value


@router.post("/login")
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    return auth_service.login(db, request.email, request.password)


@router.post("/logout", status_code=204)
async def logout(token: str = Depends(get_token), db: Session = Depends(get_db)):
    auth_service.logout(db, token)


@router.get("/me")
async def me(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return {"user": serialize_user(auth_service.get_user(db, actor.id))}
