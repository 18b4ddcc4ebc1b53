import base64
import hashlib
import hmac
import logging
import re
import time

from sqlalchemy import select
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from thrive import repository
from thrive.audit import log_auth_action
from thrive.errors import AuthError
from thrive.models import Profile

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
RESET_TOKEN_TTL = 3600

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _check_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def get_profile_by_email(session: Session, email: str) -> Profile | None:
    return session.scalars(select(Profile).where(Profile.email == normalize_email(email))).first()


def sign_up(
    session: Session,
    email: str,
    password: str,
    name: str | None = None,
    company_name: str | None = None,
) -> Profile:
    email = normalize_email(email)
    if not EMAIL_RE.match(email):
        raise AuthError("Please enter a valid email address")
    _check_password(password)
    if get_profile_by_email(session, email) is not None:
        raise AuthError("An account with this email already exists")

    profile = Profile(
        email=email,
        name=(name or "").strip() or None,
        company_name=(company_name or "").strip() or None,
        role="hr_manager",
        password_hash=generate_password_hash(password),
    )
    session.add(profile)
    session.flush()
    repository.save_user_preferences(session, profile.id)
    log_auth_action(session, "create", {"email": email}, profile.id)
    logger.info("Created account %s", profile.id)
    return profile


def sign_in(session: Session, email: str, password: str) -> Profile:
    profile = get_profile_by_email(session, email)
    if profile is None or not check_password_hash(profile.password_hash, password):
        raise AuthError("Invalid email or password")
    log_auth_action(session, "login", {"email": profile.email}, profile.id)
    return profile


def sign_out(session: Session, user_id: str) -> None:
    log_auth_action(session, "logout", {}, user_id)


def update_profile(session: Session, user_id: str, **fields) -> Profile:
    profile = session.get(Profile, user_id)
    if profile is None:
        raise AuthError("Profile not found")
    for key in ("name", "company_name", "role", "avatar_url"):
        if key in fields:
            setattr(profile, key, fields[key])
    session.flush()
    log_auth_action(session, "update", {"fields": sorted(fields)}, user_id)
    return profile


def change_password(session: Session, user_id: str, current_password: str, new_password: str) -> None:
    profile = session.get(Profile, user_id)
    if profile is None or not check_password_hash(profile.password_hash, current_password):
        raise AuthError("Current password is incorrect")
    _check_password(new_password)
    profile.password_hash = generate_password_hash(new_password)
    session.flush()
    log_auth_action(session, "update", {"fields": ["password"]}, user_id)


# ---------------------------
# Password reset
# ---------------------------
def _sign(secret: str, password_hash: str, payload: str) -> str:
    key = f"{secret}:{password_hash}".encode("utf-8")
    return hmac.new(key, payload.encode("utf-8"), hashlib.sha256).hexdigest()


def request_password_reset(session: Session, email: str, secret: str, now: float | None = None) -> str | None:
    profile = get_profile_by_email(session, email)
    if profile is None:
        logger.info("Password reset requested for unknown email")
        return None
    expires = int((now if now is not None else time.time()) + RESET_TOKEN_TTL)
    payload = f"{profile.email}|{expires}"
    encoded = base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")
    return f"{encoded}.{_sign(secret, profile.password_hash, payload)}"


def reset_password(session: Session, token: str, new_password: str, secret: str, now: float | None = None) -> Profile:
    try:
        encoded, signature = token.split(".", 1)
        payload = base64.urlsafe_b64decode(encoded.encode("ascii")).decode("utf-8")
        email, expires = payload.rsplit("|", 1)
        expires_at = int(expires)
    except ValueError as exc:
        raise AuthError("Invalid reset token") from exc

    if (now if now is not None else time.time()) > expires_at:
        raise AuthError("Reset token has expired")
    profile = get_profile_by_email(session, email)
    if profile is None or not hmac.compare_digest(signature, _sign(secret, profile.password_hash, payload)):
        raise AuthError("Invalid reset token")

    _check_password(new_password)
    profile.password_hash = generate_password_hash(new_password)
    session.flush()
    log_auth_action(session, "update", {"fields": ["password"], "via": "reset"}, profile.id)
    return profile
