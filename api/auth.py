"""Authentication API router.

Registration, login with lockout, profile updates and email verification.
Tokens are stateless bearer JWTs, so logout only acknowledges the request.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.logger import get_logger
from core.security import Principal, create_access_token, get_current_principal
from database import models
from database.deps import get_db_read, get_db_write
from schemas.common import MESS_TYPE_BY_FACILITY, MessageResponse
from schemas.user_schema import (
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UpdateDetailsRequest,
    UpdatePasswordRequest,
    UserDetailResponse,
    UserResponse,
)
from services.identity import identity_service

logger = get_logger("api.auth")
router = APIRouter(prefix="/api/auth", tags=["auth"])


def to_user_response(user: models.User) -> UserResponse:
    facility = user.facility
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        phone=user.phone,
        is_verified=user.is_verified,
        facility_id=user.facility_id,
        facility_name=facility.name if facility else None,
        facility_type=facility.type if facility else None,
        mess_id=user.mess_id,
        mess_type=MESS_TYPE_BY_FACILITY.get(facility.type) if facility else None,
        course=user.course,
        year=user.year,
        last_login=user.last_login,
        created_at=user.created_at,
    )


def token_response(user: models.User, message: str) -> TokenResponse:
    return TokenResponse(message=message, access_token=create_access_token(user), user=to_user_response(user))


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db_write)):
    """Create a student or mess-admin account and return a bearer token.

    The email-verification token is issued here; delivering it is left to
    the mail integration, so only its issue is logged.
    """
    user, _verification_token = identity_service.register(db, payload)
    logger.info("Verification token issued for user id=%s", user.id)
    return token_response(user, "User registered successfully. Please verify your email.")


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db_write)):
    user = identity_service.login(db, payload.email, payload.password)
    return token_response(user, "Login successful")


@router.post("/logout", response_model=MessageResponse)
def logout(principal: Principal = Depends(get_current_principal)):
    logger.info("User id=%s logged out", principal.id)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserDetailResponse)
def get_me(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db_read)):
    return UserDetailResponse(data=to_user_response(identity_service.get_user(db, principal.id)))


@router.put("/updatedetails", response_model=UserDetailResponse)
def update_details(
    payload: UpdateDetailsRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db_write),
):
    user = identity_service.update_details(db, principal.id, payload)
    return UserDetailResponse(message="Profile updated successfully", data=to_user_response(user))


@router.put("/updatepassword", response_model=TokenResponse)
def update_password(
    payload: UpdatePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db_write),
):
    user = identity_service.update_password(db, principal.id, payload)
    return token_response(user, "Password updated successfully")


@router.get("/verify/{token}", response_model=MessageResponse)
def verify_email(token: str, db: Session = Depends(get_db_write)):
    identity_service.verify_email(db, token)
    return MessageResponse(message="Email verified successfully")
