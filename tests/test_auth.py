"""Accounts, sign-in and password resets."""

import pytest
from werkzeug.security import check_password_hash

from thrive import auth, repository
from thrive.errors import AuthError
from thrive.models import AuditLog

SECRET = "test-secret"


@pytest.fixture
def account(session):
    return auth.sign_up(session, " Maya@Example.com ", "hunter22", name="Maya", company_name="Acme")


def test_password_is_stored_as_salted_hash(session, account) -> None:
    other = auth.sign_up(session, "lee@example.com", "hunter22")

    assert account.password_hash != "hunter22"
    assert account.password_hash != other.password_hash
    assert check_password_hash(account.password_hash, "hunter22")
    assert not check_password_hash(account.password_hash, "wrong")


def test_sign_in_rejects_unreadable_stored_hash(session, account) -> None:
    account.password_hash = "garbage"
    session.flush()

    with pytest.raises(AuthError):
        auth.sign_in(session, "maya@example.com", "hunter22")


def test_sign_up_creates_profile_and_preferences(session, account) -> None:
    assert account.email == "maya@example.com"
    assert account.role == "hr_manager"
    prefs = repository.fetch_user_preferences(session, account.id)
    assert prefs is not None
    assert prefs.risk_threshold == 70
    assert session.query(AuditLog).filter_by(user_id=account.id, action="create", entity_type="user").count() == 1


@pytest.mark.parametrize(
    "email, password, message",
    [
        ("maya@example.com", "another1", "already exists"),
        ("not-an-email", "another1", "valid email"),
        ("new@example.com", "123", "at least 6"),
    ],
)
def test_sign_up_rejects_bad_input(session, account, email, password, message) -> None:
    with pytest.raises(AuthError, match=message):
        auth.sign_up(session, email, password)


def test_sign_in(session, account) -> None:
    assert auth.sign_in(session, "MAYA@example.com", "hunter22").id == account.id
    with pytest.raises(AuthError, match="Invalid email or password"):
        auth.sign_in(session, "maya@example.com", "wrong-password")
    with pytest.raises(AuthError, match="Invalid email or password"):
        auth.sign_in(session, "nobody@example.com", "hunter22")
    assert session.query(AuditLog).filter_by(user_id=account.id, action="login").count() == 1


def test_change_password(session, account) -> None:
    with pytest.raises(AuthError):
        auth.change_password(session, account.id, "wrong", "newpass1")

    auth.change_password(session, account.id, "hunter22", "newpass1")

    assert auth.sign_in(session, "maya@example.com", "newpass1").id == account.id


def test_update_profile_only_touches_known_fields(session, account) -> None:
    profile = auth.update_profile(session, account.id, name="Maya R.", password_hash="x")

    assert profile.name == "Maya R."
    assert profile.password_hash != "x"


def test_password_reset_flow(session, account) -> None:
    token = auth.request_password_reset(session, "maya@example.com", SECRET)

    auth.reset_password(session, token, "brand-new", SECRET)

    assert auth.sign_in(session, "maya@example.com", "brand-new").id == account.id
    with pytest.raises(AuthError, match="Invalid reset token"):
        auth.reset_password(session, token, "again-new", SECRET)


def test_password_reset_rejects_expired_and_forged_tokens(session, account) -> None:
    assert auth.request_password_reset(session, "ghost@example.com", SECRET) is None

    token = auth.request_password_reset(session, "maya@example.com", SECRET, now=0)
    with pytest.raises(AuthError, match="expired"):
        auth.reset_password(session, token, "brand-new", SECRET, now=auth.RESET_TOKEN_TTL + 1)

    fresh = auth.request_password_reset(session, "maya@example.com", SECRET)
    with pytest.raises(AuthError, match="Invalid reset token"):
        auth.reset_password(session, fresh, "brand-new", "other-secret")
    with pytest.raises(AuthError, match="Invalid reset token"):
        auth.reset_password(session, "not-a-token", "brand-new", SECRET)
