import numpy as np
import pandas as pd

from thrive.models import Employee, MLModel, Prediction
from thrive.prediction import extract_risk_level

RISK_LABELS = {"low": "Low Risk", "medium": "Medium Risk", "high": "High Risk"}
RISK_COLORS = {"low": "#22c55e", "medium": "#f59e0b", "high": "#ef4444"}

COMPARISON_FIELDS = ("name", "model_type", "accuracy", "rmse", "mse", "r2", "created_at", "feature_count")


def prediction_records(predictions: list[Prediction]) -> pd.DataFrame:
    rows = []
    for p in predictions:
        result = p.prediction_result if isinstance(p.prediction_result, dict) else {}
        rows.append({
            "id": p.id,
            "prediction_date": p.prediction_date,
            "employee_id": p.employee_id,
            "employee": p.employee.full_name if p.employee else result.get("employee", ""),
            "department": p.employee.department if p.employee else None,
            "model": p.model.name if p.model else None,
            "score": result.get("score"),
            "risk": extract_risk_level(p.prediction_result),
        })
    return pd.DataFrame(
        rows, columns=["id", "prediction_date", "employee_id", "employee", "department", "model", "score", "risk"]
    )


def risk_distribution(records: pd.DataFrame) -> pd.DataFrame:
    counts = records["risk"].value_counts() if not records.empty else pd.Series(dtype=int)
    return pd.DataFrame([
        {"risk": level, "name": RISK_LABELS[level], "value": int(counts.get(level, 0)), "color": RISK_COLORS[level]}
        for level in ("low", "medium", "high")
    ])


def department_risk(records: pd.DataFrame) -> pd.DataFrame:
    cols = ["department", "low", "medium", "high"]
    valid = records.dropna(subset=["department", "risk"]) if not records.empty else records
    if valid.empty:
        return pd.DataFrame(columns=cols)
    table = pd.crosstab(valid["department"], valid["risk"])
    table = table.reindex(columns=["low", "medium", "high"], fill_value=0).reset_index()
    table.columns.name = None
    return table[cols]


def group_risk_summary(df: pd.DataFrame, group_by: str, score_col: str = "score", risk_col: str = "risk") -> pd.DataFrame:
    agg = (
        df.groupby(group_by, dropna=False)
        .agg(
            avg_risk=(score_col, "mean"),
            high_risk_count=(risk_col, lambda s: (s == "high").sum()),
            total=(risk_col, "size"),
        )
        .reset_index()
    )
    agg["high_risk_pct"] = (agg["high_risk_count"] / agg["total"]) * 100
    return agg.sort_values(["avg_risk", "high_risk_pct"], ascending=False).reset_index(drop=True)


def retention_actions(employee: Employee) -> list[str]:
    actions = []

    tenure = employee.tenure_years
    if tenure is not None:
        if tenure < 2:
            actions.append("Onboarding support: assign buddy + weekly 1:1 for 4 weeks")
        elif tenure >= 5:
            actions.append("Career path review: discuss internal mobility/promotion track")

    if employee.engagement_score is not None and employee.engagement_score < 50:
        actions.append("Engagement check-in: review workload and team dynamics with manager")

    if employee.performance_score is not None and employee.performance_score >= 4:
        actions.append("Recognition plan: high performer at risk, review growth opportunities")

    if employee.department:
        d = employee.department.strip().lower()
        if d in ("engineering", "product", "design"):
            actions.append("Role-specific: check on-call load and project allocation fairness")
        if d in ("sales", "customer support", "operations"):
            actions.append("Role-specific: check targets, shift schedule and staffing adequacy")

    if employee.position and "manager" in employee.position.lower():
        actions.append("Manager retention: leadership coaching + recognition plan")

    actions.append("Stay interview: 15-minute structured conversation this week")
    actions.append("Compensation check: compare to band midpoint (if available)")
    return actions


def get_model_accuracy(metrics: dict | None) -> float:
    if not metrics:
        return 0.0
    if metrics.get("accuracy") is not None:
        return float(metrics["accuracy"])
    if metrics.get("r2") is not None:
        return float(max(0.0, min(1.0, metrics["r2"])))
    if metrics.get("rmse") is not None:
        return float(max(0.0, 1 - metrics["rmse"] / 10))
    return 0.0


def compare_models(models: list[MLModel], sort_field: str = "created_at", direction: str = "desc") -> pd.DataFrame:
    rows = []
    for m in models:
        metrics = m.metrics or {}
        rows.append({
            "id": m.id,
            "name": m.name,
            "model_type": m.model_type,
            "accuracy": get_model_accuracy(metrics),
            "rmse": metrics.get("rmse"),
            "mse": metrics.get("mse"),
            "r2": metrics.get("r2"),
            "created_at": m.created_at,
            "feature_count": len(m.features or []),
            "features": list(m.features or []),
        })
    df = pd.DataFrame(rows, columns=["id", *COMPARISON_FIELDS, "features"])
    if df.empty or sort_field not in COMPARISON_FIELDS:
        return df
    return df.sort_values(sort_field, ascending=(direction == "asc"), na_position="last").reset_index(drop=True)


def default_comparison_selection(models: list[MLModel], limit: int = 3) -> list[str]:
    newest = sorted(models, key=lambda m: m.created_at, reverse=True)
    return [m.id for m in newest[:limit]]


def dashboard_kpis(employee_count: int, records: pd.DataFrame) -> dict:
    scores = pd.to_numeric(records["score"], errors="coerce").dropna() if not records.empty else pd.Series(dtype=float)
    high = int((records["risk"] == "high").sum()) if not records.empty else 0
    return {
        "employees": employee_count,
        "predictions": len(records),
        "high_risk": high,
        "avg_risk": float(scores.mean()) if not scores.empty else float("nan"),
        "retention_rate": float(np.clip(100 * (1 - scores.mean()), 0, 100)) if not scores.empty else float("nan"),
    }
