"""Auth orchestrator sequencing registration, verification, login and recovery."""

from __future__ import annotations

import logging

from .account import Account, OtpKind, VerificationState
from .clock import Clock, utcnow
from .contracts import LoginOutcome, LoginStatus, NewAccount, RegistrationInput, SessionGrant
from .errors import (
    AccountNotFoundError,
    AuthError,
    ConflictError,
    InternalError,
    UnauthorizedError,
    ValidationError,
    VerificationRequiredError,
)
from .otp import OtpManager
from .password_reset import PasswordResetManager
from .registry import AccountRegistry
from .transitions import mark_email_verified, mark_login_verified
from .. import metrics
from ..notifications import (
    Notification,
    NotificationGateway,
    login_otp_message,
    password_reset_message,
    registration_otp_message,
)
from ..security.passwords import hash_password, verify_password
from ..security.tokens import SessionIssuer

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only looks at the first 72 bytes and newer releases reject longer input.
MAX_PASSWORD_BYTES = 72


def validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


class AuthOrchestrator:
    """State machine over an account's two verification flags.

    ``Unverified`` (email not verified) -> ``LoginPending`` (email verified,
    first login not yet confirmed) -> ``FullyVerified`` (terminal). Sessions are
    only minted on the transitions into a verified state and on logins from
    ``FullyVerified``.
    """

    def __init__(
        self,
        registry: AccountRegistry,
        otp_manager: OtpManager,
        session_issuer: SessionIssuer,
        password_resets: PasswordResetManager,
        notifier: NotificationGateway,
        *,
        frontend_url: str = "http://localhost:8081",
        reset_ttl_minutes: int = 60,
        bcrypt_rounds: int = 12,
        clock: Clock = utcnow,
    ) -> None:
        """Store collaborators used to orchestrate persistence, codes, mail and sessions."""
        self._registry = registry
        self._otp = otp_manager
        self._sessions = session_issuer
        self._resets = password_resets
        self._notifier = notifier
        self._frontend_url = frontend_url
        self._reset_ttl_minutes = reset_ttl_minutes
        self._bcrypt_rounds = bcrypt_rounds
        self._clock = clock
        self._dummy_hash: str | None = None

    def register(self, payload: RegistrationInput) -> Account:
        """Create an unverified account and send its registration code.

        Raises
        ------
        ConflictError
            The email or handle is already taken.
        ValidationError
            The password does not meet the length rules.
        """
        validate_password(payload.password)
        candidate = NewAccount(
            email=payload.email,
            handle=payload.handle,
            password_hash=hash_password(payload.password, rounds=self._bcrypt_rounds),
            first_name=payload.first_name,
            last_name=payload.last_name,
            department=payload.department,
            year=payload.year,
        )
        try:
            account = self._registry.create(candidate)
        except ConflictError:
            metrics.record("register", "conflict")
            raise

        account, code = self._otp.issue(OtpKind.registration, account)
        account = self._registry.save(account)
        self._registry.record_event(account, "account.registered", {"handle": account.handle})
        metrics.record("register", "success")
        logger.info("account %s registered, awaiting email verification", account.account_id)

        self._deliver(registration_otp_message(account, code, self._ttl_minutes(OtpKind.registration)))
        return account

    def login(self, email: str, password: str) -> LoginOutcome:
        """Check credentials and either grant a session or start the first-login check.

        Missing account, inactive account and wrong password all raise the same
        :class:`UnauthorizedError`.
        """
        try:
            account = self._registry.find_by_email(email)
        except AccountNotFoundError:
            # Unknown emails pay the same bcrypt cost as a wrong password.
            verify_password(password, self._placeholder_hash())
            metrics.record("login", "unauthorized")
            raise UnauthorizedError() from None
        password_ok = self._registry.compare_password(account, password)
        if not account.is_active or not password_ok:
            metrics.record("login", "unauthorized")
            raise UnauthorizedError()

        state = account.verification_state
        if state is VerificationState.unverified:
            metrics.record("login", "verification_required")
            raise VerificationRequiredError(account.account_id)

        if state is VerificationState.login_pending:
            account, code = self._otp.issue(OtpKind.login, account)
            account = self._registry.save(account)
            metrics.record("login", "login_otp_required")
            logger.info("first login for %s requires a login code", account.account_id)
            self._deliver(login_otp_message(account, code, self._ttl_minutes(OtpKind.login)))
            return LoginOutcome(status=LoginStatus.login_otp_required, account=account)

        account = self._registry.touch_last_seen(account)
        metrics.record("login", "success")
        return LoginOutcome(
            status=LoginStatus.authenticated,
            account=account,
            session=self._grant(account, "login"),
        )

    def verify_registration_otp(self, account_id: str, code: str) -> SessionGrant:
        """Confirm the email address and sign the user straight in."""
        account = self._registry.find_by_id(account_id)
        account = self._verify_code(OtpKind.registration, account, code)
        account = self._registry.save(mark_email_verified(account))
        self._registry.record_event(account, "email.verified")
        logger.info("email verified for %s", account.account_id)
        return self._grant(account, "registration_otp")

    def verify_login_otp(self, account_id: str, code: str) -> SessionGrant:
        """Complete the one-time first-login check; the account stays verified for good."""
        account = self._registry.find_by_id(account_id)
        account = self._verify_code(OtpKind.login, account, code)
        account = self._registry.save(mark_login_verified(account, self._clock()))
        self._registry.record_event(account, "login.verified")
        logger.info("first login verified for %s", account.account_id)
        return self._grant(account, "login_otp")

    def resend_registration_otp(self, account_id: str) -> Account:
        """Replace any pending registration code with a fresh one and resend it."""
        account = self._registry.find_by_id(account_id)
        if account.email_verified:
            raise ConflictError("Email is already verified")
        account, code = self._otp.issue(OtpKind.registration, account)
        account = self._registry.save(account)
        metrics.record("resend_registration_otp", "success")
        self._deliver(registration_otp_message(account, code, self._ttl_minutes(OtpKind.registration)))
        return account

    def forgot_password(self, email: str) -> None:
        """Start recovery for ``email`` if such an account exists.

        Returns nothing in every case so callers cannot tell whether the
        address is registered.
        """
        try:
            account = self._registry.find_by_email(email)
        except AccountNotFoundError:
            metrics.record("forgot_password", "unknown_email")
            return
        if not account.is_active:
            metrics.record("forgot_password", "inactive")
            return

        try:
            account, token = self._resets.request_reset(account)
            self._registry.record_event(account, "password.reset_requested")
        except InternalError:
            # Store failures must look exactly like an unknown address to the caller.
            metrics.record("forgot_password", "internal")
            logger.warning("could not issue reset token for %s", account.account_id, exc_info=True)
            return
        metrics.record("forgot_password", "issued")
        self._deliver(
            password_reset_message(account, token, self._frontend_url, self._reset_ttl_minutes)
        )

    def reset_password(self, token: str, new_password: str) -> Account:
        """Consume a reset token and store the new password.

        Sessions issued before the reset remain valid; there is no revocation.
        """
        validate_password(new_password)
        try:
            account = self._resets.consume_reset(token, new_password)
        except AuthError as exc:
            metrics.record("reset_password", exc.kind)
            raise
        self._registry.record_event(account, "password.reset")
        metrics.record("reset_password", "success")
        logger.info("password reset completed for %s", account.account_id)
        return account

    def _verify_code(self, kind: OtpKind, account: Account, code: str) -> Account:
        event = f"verify_{kind.value}_otp"
        try:
            verified = self._otp.verify(kind, account, code)
        except AuthError as exc:
            metrics.record(event, exc.kind)
            raise
        metrics.record(event, "success")
        return verified

    def _grant(self, account: Account, via: str) -> SessionGrant:
        token, expires_in = self._sessions.issue(account.account_id)
        self._registry.record_event(account, "session.issued", {"via": via})
        return SessionGrant(token=token, expires_in=expires_in, account=account)

    def _deliver(self, notification: Notification) -> None:
        try:
            self._notifier.deliver(notification)
        except Exception:
            metrics.NOTIFICATION_FAILURES.labels(template=notification.template).inc()
            logger.warning(
                "failed to deliver %s email to %s; user can request it again",
                notification.template,
                notification.to,
                exc_info=True,
            )

    def _ttl_minutes(self, kind: OtpKind) -> int:
        return int(self._otp.ttl_for(kind).total_seconds() // 60)

    def _placeholder_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = hash_password("placeholder-password", rounds=self._bcrypt_rounds)
        return self._dummy_hash
