import logging
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import String, cast, delete, func, select, update
from sqlalchemy.orm import Session, joinedload

from thrive.directory import clamp_page
from thrive.errors import RecordNotFoundError
from thrive.models import (
    AuditLog,
    Employee,
    MLModel,
    Notification,
    Prediction,
    UserPreference,
)

logger = logging.getLogger(__name__)


def _get_or_raise(session: Session, entity, entity_id: str):
    row = session.get(entity, entity_id)
    if row is None:
        raise RecordNotFoundError(f"{entity.__tablename__} record {entity_id} not found")
    return row


# ---------------------------
# ML models
# ---------------------------
def fetch_ml_models(session: Session, user_id: str | None = None) -> list[MLModel]:
    stmt = select(MLModel).order_by(MLModel.created_at.desc())
    if user_id:
        stmt = stmt.where(MLModel.user_id == user_id)
    return list(session.scalars(stmt))


def fetch_ml_model(session: Session, model_id: str) -> MLModel:
    return _get_or_raise(session, MLModel, model_id)


def create_ml_model(session: Session, **fields: Any) -> MLModel:
    model = MLModel(**fields)
    session.add(model)
    session.flush()
    return model


def delete_ml_model(session: Session, model_id: str) -> None:
    model = _get_or_raise(session, MLModel, model_id)
    session.execute(update(Prediction).where(Prediction.model_id == model_id).values(model_id=None))
    session.delete(model)
    session.flush()


# ---------------------------
# Predictions
# ---------------------------
def fetch_predictions(
    session: Session,
    user_id: str | None = None,
    since: datetime | None = None,
    department: str | None = None,
) -> list[Prediction]:
    stmt = (
        select(Prediction)
        .options(joinedload(Prediction.employee), joinedload(Prediction.model))
        .order_by(Prediction.prediction_date.desc())
    )
    if user_id:
        stmt = stmt.where(Prediction.user_id == user_id)
    if since is not None:
        stmt = stmt.where(Prediction.prediction_date >= since)
    if department:
        stmt = stmt.join(Prediction.employee).where(Employee.department == department)
    return list(session.scalars(stmt).unique())


def create_prediction(session: Session, **fields: Any) -> Prediction:
    prediction = Prediction(**fields)
    session.add(prediction)
    session.flush()
    return prediction


def prediction_history(session: Session, employee_id: str | None = None, limit: int = 10) -> list[Prediction]:
    stmt = select(Prediction).order_by(Prediction.prediction_date.desc()).limit(limit)
    if employee_id:
        stmt = stmt.where(Prediction.employee_id == employee_id)
    return list(session.scalars(stmt))


# ---------------------------
# Notifications
# ---------------------------
def fetch_notifications(session: Session, user_id: str) -> list[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
    )
    return list(session.scalars(stmt))


def notifications_since(session: Session, user_id: str, since: datetime | None) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if since is not None:
        stmt = stmt.where(Notification.created_at > since)
    return list(session.scalars(stmt.order_by(Notification.created_at.asc())))


def create_notification(session: Session, user_id: str, title: str, message: str, type: str = "info") -> Notification:
    notification = Notification(user_id=user_id, title=title, message=message, type=type)
    session.add(notification)
    session.flush()
    return notification


def mark_notification_as_read(session: Session, notification_id: str) -> bool:
    session.execute(update(Notification).where(Notification.id == notification_id).values(read=True))
    return True


def mark_all_notifications_as_read(session: Session, user_id: str) -> int:
    result = session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    return result.rowcount


def delete_notification(session: Session, notification_id: str) -> bool:
    session.execute(delete(Notification).where(Notification.id == notification_id))
    return True


def delete_all_notifications(session: Session, user_id: str) -> int:
    result = session.execute(delete(Notification).where(Notification.user_id == user_id))
    return result.rowcount


def unread_count(session: Session, user_id: str) -> int:
    stmt = select(func.count()).select_from(Notification).where(
        Notification.user_id == user_id, Notification.read.is_(False)
    )
    return session.scalar(stmt) or 0


# ---------------------------
# User preferences
# ---------------------------
def fetch_user_preferences(session: Session, user_id: str) -> UserPreference | None:
    return session.scalars(select(UserPreference).where(UserPreference.user_id == user_id)).first()


def save_user_preferences(session: Session, user_id: str, **fields: Any) -> UserPreference:
    prefs = fetch_user_preferences(session, user_id)
    if prefs is None:
        prefs = UserPreference(user_id=user_id)
        session.add(prefs)
    for key, value in fields.items():
        setattr(prefs, key, value)
    session.flush()
    return prefs


# ---------------------------
# Audit logs
# ---------------------------
def fetch_audit_logs(
    session: Session,
    page: int = 1,
    page_size: int = 20,
    action: str | None = None,
    entity_type: str | None = None,
    search_term: str | None = None,
    user_id: str | None = None,
) -> tuple[list[AuditLog], int]:
    try:
        stmt = select(AuditLog)
        if user_id:
            stmt = stmt.where(AuditLog.user_id == user_id)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if entity_type:
            stmt = stmt.where(AuditLog.entity_type == entity_type)
        if search_term:
            stmt = stmt.where(cast(AuditLog.details, String).ilike(f"%{search_term}%"))

        total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        page, _ = clamp_page(page, total, page_size)
        rows = session.scalars(
            stmt.order_by(AuditLog.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
        )
        return list(rows), total
    except Exception:
        logger.exception("Failed to fetch audit logs")
        return [], 0


def create_audit_log(session: Session, **fields: Any) -> AuditLog:
    log = AuditLog(**fields)
    session.add(log)
    session.flush()
    return log


# ---------------------------
# Employees
# ---------------------------
def list_employees(session: Session, user_id: str | None = None) -> list[Employee]:
    stmt = select(Employee).order_by(Employee.last_name.asc(), Employee.first_name.asc())
    if user_id:
        stmt = stmt.where(Employee.user_id == user_id)
    return list(session.scalars(stmt))


def count_employees(session: Session, user_id: str | None = None) -> int:
    stmt = select(func.count()).select_from(Employee)
    if user_id:
        stmt = stmt.where(Employee.user_id == user_id)
    return session.scalar(stmt) or 0


def get_employee(session: Session, employee_id: str) -> Employee:
    return _get_or_raise(session, Employee, employee_id)


def create_employee(session: Session, user_id: str, **fields: Any) -> Employee:
    employee = Employee(user_id=user_id, **fields)
    session.add(employee)
    session.flush()
    return employee


def update_employee(session: Session, employee_id: str, **fields: Any) -> Employee:
    employee = get_employee(session, employee_id)
    for key, value in fields.items():
        setattr(employee, key, value)
    session.flush()
    return employee


def delete_employee(session: Session, employee_id: str) -> None:
    session.delete(get_employee(session, employee_id))
    session.flush()


def bulk_delete_employees(session: Session, employee_ids: Iterable[str]) -> int:
    ids = list(employee_ids)
    if not ids:
        return 0
    session.execute(delete(Prediction).where(Prediction.employee_id.in_(ids)))
    result = session.execute(delete(Employee).where(Employee.id.in_(ids)))
    return result.rowcount


def bulk_update_employees(session: Session, employee_ids: Iterable[str], **fields: Any) -> int:
    ids = list(employee_ids)
    if not ids or not fields:
        return 0
    result = session.execute(update(Employee).where(Employee.id.in_(ids)).values(**fields))
    return result.rowcount
