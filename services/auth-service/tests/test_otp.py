from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.domain.account import Account, OtpKind
from app.domain.errors import CodeExpiredError, InvalidCodeError
from app.domain.otp import OtpManager, generate_code


def _account(**overrides) -> Account:
    data = dict(
        account_id="6f1c1e7e-0000-4000-8000-000000000001",
        email="grace@example.com",
        handle="grace",
        password_hash="x",
        first_name="Grace",
        last_name="Hopper",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return Account(**data)


def test_generated_codes_are_six_digits():
    for _ in range(500):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()


def test_generated_codes_keep_leading_zeros(monkeypatch):
    monkeypatch.setattr("app.domain.otp.secrets.randbelow", lambda upper: 42)
    assert generate_code() == "000042"


def test_issue_sets_registration_code_with_ten_minute_expiry(otp_manager, clock):
    account, code = otp_manager.issue(OtpKind.registration, _account())

    assert account.registration_otp == code
    assert account.registration_otp_expires_at == clock.now + timedelta(minutes=10)
    assert account.login_otp is None


def test_issue_sets_login_code_with_five_minute_expiry(otp_manager, clock):
    account, code = otp_manager.issue(OtpKind.login, _account(email_verified=True))

    assert account.login_otp == code
    assert account.login_otp_expires_at == clock.now + timedelta(minutes=5)
    assert account.registration_otp is None


def test_issue_accepts_explicit_ttl(otp_manager, clock):
    account, _ = otp_manager.issue(OtpKind.registration, _account(), ttl=timedelta(seconds=30))
    assert account.registration_otp_expires_at == clock.now + timedelta(seconds=30)


def test_issue_overwrites_pending_code(otp_manager, monkeypatch):
    codes = iter([111111, 222222])
    monkeypatch.setattr("app.domain.otp.secrets.randbelow", lambda upper: next(codes))
    first, _ = otp_manager.issue(OtpKind.registration, _account())
    second, code = otp_manager.issue(OtpKind.registration, first)

    assert code == "222222"
    assert second.registration_otp == "222222"


def test_verify_clears_code_and_is_single_use(otp_manager):
    account, code = otp_manager.issue(OtpKind.registration, _account())

    verified = otp_manager.verify(OtpKind.registration, account, code)
    assert verified.registration_otp is None
    assert verified.registration_otp_expires_at is None

    with pytest.raises(InvalidCodeError):
        otp_manager.verify(OtpKind.registration, verified, code)


def test_verify_wrong_code_leaves_pending_code(otp_manager):
    account, code = otp_manager.issue(OtpKind.registration, _account())
    wrong = "000000" if code != "000000" else "111111"

    with pytest.raises(InvalidCodeError):
        otp_manager.verify(OtpKind.registration, account, wrong)

    assert account.registration_otp == code
    assert otp_manager.verify(OtpKind.registration, account, code).registration_otp is None


def test_verify_without_pending_code_is_invalid(otp_manager):
    with pytest.raises(InvalidCodeError):
        otp_manager.verify(OtpKind.login, _account(email_verified=True), "123456")


def test_verify_after_expiry_fails_even_with_matching_code(otp_manager, clock):
    account, code = otp_manager.issue(OtpKind.registration, _account())
    clock.advance(minutes=10, seconds=1)

    with pytest.raises(CodeExpiredError):
        otp_manager.verify(OtpKind.registration, account, code)


def test_verify_at_exact_deadline_is_expired(otp_manager, clock):
    account, code = otp_manager.issue(OtpKind.login, _account(email_verified=True))
    clock.advance(minutes=5)

    with pytest.raises(CodeExpiredError):
        otp_manager.verify(OtpKind.login, account, code)


def test_verify_just_before_deadline_succeeds(otp_manager, clock):
    account, code = otp_manager.issue(OtpKind.login, _account(email_verified=True))
    clock.advance(minutes=4, seconds=59)

    assert otp_manager.verify(OtpKind.login, account, code).login_otp is None


def test_codes_are_scoped_by_kind(otp_manager):
    account, code = otp_manager.issue(OtpKind.registration, _account())

    with pytest.raises(InvalidCodeError):
        otp_manager.verify(OtpKind.login, account, code)


def test_default_ttls():
    manager = OtpManager()
    assert manager.ttl_for(OtpKind.registration) == timedelta(minutes=10)
    assert manager.ttl_for(OtpKind.login) == timedelta(minutes=5)
