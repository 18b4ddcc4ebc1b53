import math
import re
from dataclasses import dataclass
from datetime import date

from thrive.errors import ValidationError
from thrive.models import RISK_LEVELS, Employee

RISK_ORDER = {"low": 0, "medium": 1, "high": 2}
SORT_FIELDS = ("name", "department", "retention_score", "risk_level")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class Page:
    items: list
    page: int
    page_count: int
    total: int


def employee_view(employee: Employee, latest_score: float | None = None) -> dict:
    retention_score = None
    if latest_score is not None:
        retention_score = int(round(max(0.0, min(1.0, 1 - latest_score)) * 100))
    return {
        "id": employee.id,
        "name": employee.full_name,
        "role": employee.position,
        "department": employee.department,
        "retention_score": retention_score,
        "risk_level": employee.retention_risk,
        "performance": employee.performance_score,
        "tenure": employee.tenure_years,
    }


def search(records: list[dict], term: str) -> list[dict]:
    term = (term or "").strip().lower()
    if not term:
        return list(records)
    return [r for r in records if any(isinstance(v, str) and term in v.lower() for v in r.values())]


def filter_employees(records: list[dict], departments=None, risk_levels=None) -> list[dict]:
    out = records
    if departments:
        out = [r for r in out if r.get("department") in departments]
    if risk_levels:
        out = [r for r in out if r.get("risk_level") in risk_levels]
    return list(out)


def _sort_key(field: str):
    def key(record: dict):
        value = record.get(field)
        if field == "risk_level":
            value = RISK_ORDER.get(value)
        elif isinstance(value, str):
            value = value.lower()
        return value

    return key


def sort_employees(records: list[dict], field: str | None, direction: str = "asc") -> list[dict]:
    if not field:
        return list(records)
    key = _sort_key(field)
    present = [r for r in records if key(r) is not None]
    missing = [r for r in records if key(r) is None]
    # records without a value stay at the end either way
    return sorted(present, key=key, reverse=(direction == "desc")) + missing


def next_sort(current_field: str | None, current_direction: str, clicked: str) -> tuple[str, str]:
    if current_field == clicked:
        return clicked, "desc" if current_direction == "asc" else "asc"
    return clicked, "asc"


def clamp_page(page: int, total: int, page_size: int) -> tuple[int, int]:
    """Return (page, page_count) with page pulled into 1..page_count."""
    page_count = max(1, math.ceil(total / page_size))
    return min(max(1, page), page_count), page_count


def paginate(items: list, page: int, page_size: int) -> Page:
    total = len(items)
    page, page_count = clamp_page(page, total, page_size)
    start = (page - 1) * page_size
    return Page(items=items[start : start + page_size], page=page, page_count=page_count, total=total)


def _optional_float(data: dict, field: str, low: float | None = None, high: float | None = None) -> float | None:
    raw = data.get(field)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(field, f"{field.replace('_', ' ').capitalize()} must be a number")
    if not math.isfinite(value):
        raise ValidationError(field, f"{field.replace('_', ' ').capitalize()} must be a number")
    if (low is not None and value < low) or (high is not None and value > high):
        bounds = f"between {low:g} and {high:g}" if high is not None else f"at least {low:g}"
        raise ValidationError(field, f"{field.replace('_', ' ').capitalize()} must be {bounds}")
    return value


def validate_employee_form(data: dict) -> dict:
    cleaned = {}
    for field in ("first_name", "last_name"):
        value = (data.get(field) or "").strip()
        if not value:
            raise ValidationError(field, f"{field.replace('_', ' ').capitalize()} is required")
        cleaned[field] = value

    email = (data.get("email") or "").strip()
    if email and not EMAIL_RE.match(email):
        raise ValidationError("email", "Please enter a valid email address")
    cleaned["email"] = email or None

    for field in ("department", "position", "location", "manager", "feedback"):
        value = (data.get(field) or "").strip()
        cleaned[field] = value or None

    hire_date = data.get("hire_date")
    if hire_date and not isinstance(hire_date, date):
        try:
            hire_date = date.fromisoformat(str(hire_date))
        except ValueError:
            raise ValidationError("hire_date", "Hire date must be YYYY-MM-DD")
    if hire_date and hire_date > date.today():
        raise ValidationError("hire_date", "Hire date cannot be in the future")
    cleaned["hire_date"] = hire_date or None

    cleaned["salary"] = _optional_float(data, "salary", low=0)
    cleaned["performance_score"] = _optional_float(data, "performance_score", low=0, high=5)
    cleaned["engagement_score"] = _optional_float(data, "engagement_score", low=0, high=100)

    risk = (data.get("retention_risk") or "").strip().lower()
    if risk and risk not in RISK_LEVELS:
        raise ValidationError("retention_risk", "Risk must be low, medium or high")
    cleaned["retention_risk"] = risk or None
    return cleaned
