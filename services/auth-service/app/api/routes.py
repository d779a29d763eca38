"""HTTP route definitions for the auth service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from schemas import AccountView

from ..domain.account import Account
from ..domain.contracts import RegistrationInput, SessionGrant
from ..domain.errors import AuthError
from ..domain.service import AuthOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)


def account_view(account: Account) -> AccountView:
    """Build the public response model from the domain aggregate."""
    return AccountView(
        account_id=account.account_id,
        email=account.email,
        handle=account.handle,
        first_name=account.first_name,
        last_name=account.last_name,
        department=account.department,
        year=account.year,
        email_verified=account.email_verified,
        login_verified=account.login_verified,
        is_active=account.is_active,
        created_at=account.created_at,
        last_seen_at=account.last_seen_at,
    )


class RegisterRequest(BaseModel):
    """Payload accepted when signing up."""

    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    handle: str = Field(..., min_length=3, max_length=30)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    department: str = Field(default="", max_length=120)
    year: int | None = Field(default=None, ge=1900, le=2100)

    @field_validator("handle", "first_name", "last_name", "department", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        # Length limits apply to the trimmed value that gets stored.
        return value.strip() if isinstance(value, str) else value


class RegisterResponse(BaseModel):
    message: str
    requires_otp: bool = True
    email: EmailStr
    account_id: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    """A freshly minted session credential and the account it belongs to."""

    message: str
    token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountView


class LoginOtpRequiredResponse(BaseModel):
    """Returned instead of a session while the one-time login check is pending."""

    message: str
    requires_login_otp: bool = True
    email: EmailStr
    account_id: str


class VerifyOtpRequest(BaseModel):
    account_id: str = Field(..., min_length=1)
    otp: str = Field(..., pattern=r"^\d{6}$")


class ResendOtpRequest(BaseModel):
    account_id: str = Field(..., min_length=1)


class ResendOtpResponse(BaseModel):
    message: str
    email: EmailStr


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6, max_length=128)


class MessageResponse(BaseModel):
    message: str


def get_service(request: Request) -> AuthOrchestrator:
    """Resolve the `AuthOrchestrator` stored on the FastAPI application state."""
    service: AuthOrchestrator = request.app.state.auth_service
    return service


def _session_response(message: str, grant: SessionGrant) -> SessionResponse:
    return SessionResponse(
        message=message,
        token=grant.token,
        expires_in=grant.expires_in,
        account=account_view(grant.account),
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    service: AuthOrchestrator = Depends(get_service),
) -> RegisterResponse:
    """Create an unverified account and email it a registration code."""
    try:
        account = service.register(
            RegistrationInput(
                email=payload.email,
                handle=payload.handle,
                password=payload.password,
                first_name=payload.first_name,
                last_name=payload.last_name,
                department=payload.department,
                year=payload.year,
            )
        )
    except AuthError as exc:
        raise _http_error_from_auth_error(exc) from exc
    return RegisterResponse(
        message="User registered successfully. Please check your email for verification code.",
        email=account.email,
        account_id=account.account_id,
    )


@router.post("/login", response_model=SessionResponse | LoginOtpRequiredResponse)
def login(
    payload: LoginRequest,
    service: AuthOrchestrator = Depends(get_service),
) -> SessionResponse | LoginOtpRequiredResponse:
    """Authenticate with email and password."""
    try:
        outcome = service.login(payload.email, payload.password)
    except AuthError as exc:
        raise _http_error_from_auth_error(exc) from exc
    if outcome.session is None:
        return LoginOtpRequiredResponse(
            message="Login verification required. Please check your email for verification code.",
            email=outcome.account.email,
            account_id=outcome.account.account_id,
        )
    return _session_response("Login successful", outcome.session)


@router.post("/verify-registration-otp", response_model=SessionResponse)
def verify_registration_otp(
    payload: VerifyOtpRequest,
    service: AuthOrchestrator = Depends(get_service),
) -> SessionResponse:
    """Confirm the registration code and sign the user in."""
    try:
        grant = service.verify_registration_otp(payload.account_id, payload.otp)
    except AuthError as exc:
        raise _http_error_from_auth_error(exc) from exc
    return _session_response("Email verified successfully", grant)


@router.post("/verify-login-otp", response_model=SessionResponse)
def verify_login_otp(
    payload: VerifyOtpRequest,
    service: AuthOrchestrator = Depends(get_service),
) -> SessionResponse:
    """Confirm the one-time first-login code and sign the user in."""
    try:
        grant = service.verify_login_otp(payload.account_id, payload.otp)
    except AuthError as exc:
        raise _http_error_from_auth_error(exc) from exc
    return _session_response("Login verification successful", grant)


@router.post("/resend-registration-otp", response_model=ResendOtpResponse)
def resend_registration_otp(
    payload: ResendOtpRequest,
    service: AuthOrchestrator = Depends(get_service),
) -> ResendOtpResponse:
    try:
        account = service.resend_registration_otp(payload.account_id)
    except AuthError as exc:
        raise _http_error_from_auth_error(exc) from exc
    return ResendOtpResponse(message="Verification code sent successfully", email=account.email)


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    service: AuthOrchestrator = Depends(get_service),
) -> MessageResponse:
    """Start password recovery; the response never reveals whether the email exists."""
    try:
        service.forgot_password(payload.email)
    except AuthError as exc:
        raise _http_error_from_auth_error(exc) from exc
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    payload: ResetPasswordRequest,
    service: AuthOrchestrator = Depends(get_service),
) -> MessageResponse:
    try:
        service.reset_password(payload.token, payload.password)
    except AuthError as exc:
        raise _http_error_from_auth_error(exc) from exc
    return MessageResponse(message="Password reset successful")


_STATUS_BY_KIND = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "conflict": status.HTTP_409_CONFLICT,
    "unauthorized": status.HTTP_401_UNAUTHORIZED,
    "verification_required": status.HTTP_403_FORBIDDEN,
    "invalid_code": status.HTTP_400_BAD_REQUEST,
    "code_expired": status.HTTP_400_BAD_REQUEST,
    "invalid_or_expired_token": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
}


def _http_error_from_auth_error(exc: AuthError) -> HTTPException:
    status_code = _STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("auth request failed: %s", exc.message)
    detail = {"error": exc.kind, "message": exc.message, **exc.extra}
    return HTTPException(status_code=status_code, detail=detail)
