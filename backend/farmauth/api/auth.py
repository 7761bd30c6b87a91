"""Authentication routes"""

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional

from farmauth.config import settings
from farmauth.core.database import get_db
from farmauth.schemas.auth import (
    SignupRequest,
    LoginRequest,
    RefreshRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    VerificationRequest,
    VerifyEmailRequest,
    PublicUser,
    SessionResponse,
    RefreshResponse,
    ValidateResponse,
    LogoutResponse,
    MessageResponse,
    RefreshStatusResponse,
    VerifyEmailResponse,
)
from farmauth.services.session_service import RequestContext, SessionBundle, session_service
from farmauth.services.token_service import token_service
from farmauth.api.deps import (
    enforce_rate_limit,
    get_bearer_token,
    get_csrf_token,
    get_current_user,
    get_request_context,
)
from farmauth.models.user import User

router = APIRouter()

signup_throttle = enforce_rate_limit(
    "signup", settings.SIGNUP_RATE_LIMIT_PER_MINUTE, settings.SIGNUP_RATE_LIMIT_PER_HOUR
)
refresh_throttle = enforce_rate_limit(
    "refresh", settings.RATE_LIMIT_PER_MINUTE, settings.RATE_LIMIT_PER_HOUR
)
reset_throttle = enforce_rate_limit(
    "password-reset",
    settings.PASSWORD_RESET_RATE_LIMIT_PER_MINUTE,
    settings.PASSWORD_RESET_RATE_LIMIT_PER_HOUR,
)
verification_throttle = enforce_rate_limit(
    "email-verification",
    settings.EMAIL_VERIFICATION_RATE_LIMIT_PER_MINUTE,
    settings.EMAIL_VERIFICATION_RATE_LIMIT_PER_HOUR,
)

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a password reset link has been sent."
VERIFICATION_SENT_MESSAGE = "If this email belongs to an unverified account, a verification link has been sent."


def set_refresh_cookie(response: Response, bundle: SessionBundle) -> None:
    """Refresh token travels only as an HttpOnly, SameSite=Strict cookie"""
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=bundle.refresh_token,
        max_age=settings.refresh_token_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite="strict",
    )


def clear_refresh_cookie(response: Response) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value="",
        max_age=0,
        path="/",
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite="strict",
    )


def _session_response(bundle: SessionBundle) -> SessionResponse:
    return SessionResponse(
        user=PublicUser.from_user(bundle.user),
        access_token=bundle.access_token,
        refresh_token=bundle.refresh_token,
        csrf_token=bundle.csrf_token,
        expires_in=bundle.expires_in,
    )


@router.post(
    "/signup",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(signup_throttle)],
)
def signup(
    payload: SignupRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """
    Signup endpoint - create an account and open a session

    Returns:
        Tokens and public user info; refresh token also set as cookie
    """
    bundle = session_service.signup(db, payload.email, payload.password, payload.name, ctx)
    set_refresh_cookie(response, bundle)
    return _session_response(bundle)


@router.post("/login", response_model=SessionResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: LoginRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """
    Login endpoint - authenticate user and return tokens

    Args:
        credentials: Email and password
        db: Database session

    Returns:
        Tokens and public user info
    """
    bundle = session_service.login(db, credentials.email, credentials.password, ctx)
    set_refresh_cookie(response, bundle)
    return _session_response(bundle)


@router.get("/validate", response_model=ValidateResponse)
def validate(current_user: User = Depends(get_current_user)):
    """Check an access token and return its user"""
    return ValidateResponse(valid=True, user=PublicUser.from_user(current_user))


@router.post("/refresh", response_model=RefreshResponse, dependencies=[Depends(refresh_throttle)])
def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    csrf_token: Optional[str] = Depends(get_csrf_token),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """
    Rotate the refresh token

    The cookie is used when present, otherwise ``refreshToken`` from the body.
    """
    refresh_token = request.cookies.get(settings.REFRESH_COOKIE_NAME) or (body.refresh_token if body else None)
    bundle = session_service.refresh(db, refresh_token, csrf_token, ctx)
    set_refresh_cookie(response, bundle)
    return RefreshResponse(
        access_token=bundle.access_token,
        refresh_token=bundle.refresh_token,
        csrf_token=bundle.csrf_token,
        expires_in=bundle.expires_in,
    )


@router.get("/refresh", response_model=RefreshStatusResponse)
def refresh_status(request: Request, db: Session = Depends(get_db)):
    """Report whether the request carries a usable refresh cookie"""
    has_token = token_service.has_active_token(db, request.cookies.get(settings.REFRESH_COOKIE_NAME))
    body = RefreshStatusResponse(
        has_refresh_token=has_token,
        message="Refresh token available" if has_token else "No valid refresh token",
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if has_token else status.HTTP_404_NOT_FOUND,
        content=body.model_dump(by_alias=True),
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(
    request: Request,
    response: Response,
    access_token: Optional[str] = Depends(get_bearer_token),
    csrf_token: Optional[str] = Depends(get_csrf_token),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """
    Logout endpoint - revoke the session's tokens and clear the refresh cookie
    """
    session_service.logout(
        db,
        access_token,
        csrf_token,
        ctx,
        refresh_token=request.cookies.get(settings.REFRESH_COOKIE_NAME),
    )
    clear_refresh_cookie(response)
    return LogoutResponse(success=True)


@router.post("/forgot-password", response_model=MessageResponse, dependencies=[Depends(reset_throttle)])
def forgot_password(
    payload: ForgotPasswordRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Always answers with the same message, registered or not"""
    session_service.forgot_password(db, payload.email, ctx)
    return MessageResponse(success=True, message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse, dependencies=[Depends(reset_throttle)])
def reset_password(
    payload: ResetPasswordRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    session_service.reset_password(db, payload.token, payload.new_password, ctx)
    return MessageResponse(success=True, message="Password has been reset. Please log in again.")


@router.post("/send-verification", response_model=MessageResponse, dependencies=[Depends(verification_throttle)])
@router.post("/resend-verification", response_model=MessageResponse, dependencies=[Depends(verification_throttle)])
def send_verification(
    payload: VerificationRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Issue a fresh verification link; the answer never reveals account state"""
    session_service.send_verification(db, payload.email, ctx)
    return MessageResponse(success=True, message=VERIFICATION_SENT_MESSAGE)


@router.post("/verify-email", response_model=VerifyEmailResponse, dependencies=[Depends(verification_throttle)])
def verify_email(
    payload: VerifyEmailRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    session_service.verify_email(db, payload.token, ctx)
    return VerifyEmailResponse(success=True, message="Email verified successfully", email_verified=True)
