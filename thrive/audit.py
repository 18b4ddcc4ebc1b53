import logging
from typing import Any

from sqlalchemy.orm import Session

from thrive import repository

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = ("create", "update", "delete", "predict", "export", "import", "login", "logout")
ENTITY_TYPES = ("employee", "model", "prediction", "data", "user", "system")

LOCAL_IP = "127.0.0.1"


def log_audit_event(
    session: Session,
    action: str,
    entity_type: str,
    details: dict[str, Any],
    user_id: str | None,
    entity_id: str | None = None,
    ip_address: str = LOCAL_IP,
) -> None:
    if not user_id:
        logger.warning("Could not log audit event %s/%s: no user id", action, entity_type)
        return
    try:
        # savepoint so a failed audit insert leaves the caller's work intact
        with session.begin_nested():
            repository.create_audit_log(
                session,
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details,
                ip_address=ip_address,
            )
    except Exception:
        logger.exception("Failed to log audit event %s/%s", action, entity_type)


def log_employee_action(session: Session, action: str, employee_id: str, details: dict, user_id: str | None):
    log_audit_event(session, action, "employee", details, user_id, entity_id=employee_id)


def log_model_action(session: Session, action: str, model_id: str, details: dict, user_id: str | None):
    log_audit_event(session, action, "model", details, user_id, entity_id=model_id)


def log_prediction_action(session: Session, action: str, prediction_id: str, details: dict, user_id: str | None):
    log_audit_event(session, action, "prediction", details, user_id, entity_id=prediction_id)


def log_auth_action(session: Session, action: str, details: dict, user_id: str | None):
    log_audit_event(session, action, "user", details, user_id)


def log_system_action(session: Session, action: str, details: dict, user_id: str | None):
    log_audit_event(session, action, "system", details, user_id)
