"""Database entities for profiles, employees, models, predictions and activity."""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from thrive.db import Base

RISK_LEVELS = ("low", "medium", "high")
NOTIFICATION_TYPES = ("info", "success", "warning", "error")

DEFAULT_NOTIFICATION_SETTINGS = {
    "email": True,
    "push": True,
    "high_risk_alerts": True,
    "weekly_digest": True,
    "model_training_complete": True,
}


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # stored naive; SQLite drops tzinfo on the way back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255))
    role = Column(String(64))
    company_name = Column(String(255))
    avatar_url = Column(String(1024))
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Employee(Base):
    __tablename__ = "employees"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    email = Column(String(255))
    department = Column(String(128))
    position = Column(String(128))
    location = Column(String(128))
    manager = Column(String(255))
    hire_date = Column(Date)
    salary = Column(Float)
    performance_score = Column(Float)
    engagement_score = Column(Float)
    retention_risk = Column(String(16))
    feedback = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    predictions = relationship("Prediction", back_populates="employee", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def tenure_years(self) -> float | None:
        if self.hire_date is None:
            return None
        return round((date.today() - self.hire_date).days / 365.25, 1)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "department": self.department,
            "position": self.position,
            "location": self.location,
            "manager": self.manager,
            "hire_date": self.hire_date,
            "salary": self.salary,
            "performance_score": self.performance_score,
            "engagement_score": self.engagement_score,
            "retention_risk": self.retention_risk,
            "feedback": self.feedback,
        }


class MLModel(Base):
    __tablename__ = "ml_models"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    model_type = Column(String(64), nullable=False)
    features = Column(JSON, nullable=False, default=list)
    parameters = Column(JSON, default=dict)
    metrics = Column(JSON, default=dict)
    model_data = Column(JSON)
    training_date = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    predictions = relationship("Prediction", back_populates="model")


class Prediction(Base):
    __tablename__ = "predictions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    employee_id = Column(String(36), ForeignKey("employees.id"), index=True)
    model_id = Column(String(36), ForeignKey("ml_models.id", ondelete="SET NULL"), index=True)
    prediction_date = Column(DateTime, default=utcnow, nullable=False)
    prediction_result = Column(JSON, nullable=False)
    confidence_score = Column(Float)
    factors = Column(JSON, default=dict)
    time_frame = Column(String(16))
    created_at = Column(DateTime, default=utcnow, nullable=False)

    employee = relationship("Employee", back_populates="predictions")
    model = relationship("MLModel", back_populates="predictions")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(16), nullable=False, default="info")
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class UserPreference(Base):
    __tablename__ = "user_preferences"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), unique=True, nullable=False)
    theme = Column(String(16), nullable=False, default="system")
    language = Column(String(8), nullable=False, default="en")
    notification_settings = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_NOTIFICATION_SETTINGS))
    risk_threshold = Column(Integer, nullable=False, default=70)
    default_departments = Column(JSON, default=list)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def wants(self, setting: str) -> bool:
        settings = self.notification_settings or {}
        return bool(settings.get(setting, DEFAULT_NOTIFICATION_SETTINGS.get(setting, False)))


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    action = Column(String(32), nullable=False, index=True)
    entity_type = Column(String(32), nullable=False, index=True)
    entity_id = Column(String(36))
    details = Column(JSON, default=dict)
    ip_address = Column(String(64))
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
