import json
import logging
from datetime import datetime, timezone
from typing import Callable, Sequence

import numpy as np
import pandas as pd
from sqlalchemy.orm import Session

from thrive import repository
from thrive.audit import log_prediction_action
from thrive.model_store import ModelBundle
from thrive.training import as_frame, scale

logger = logging.getLogger(__name__)

HIGH_RISK = 0.7
MEDIUM_RISK = 0.3
BATCH_SIZE = 10


def make_predictions(model, rows, feature_columns: Sequence[str], vmin, vmax) -> list[float | None]:
    """Score each row. Rows with a missing or non-numeric feature score None."""
    try:
        df = as_frame(rows)
        values = df[list(feature_columns)].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)
        finite = np.isfinite(values).all(axis=1)
        scores: list[float | None] = [None] * len(values)
        if finite.any():
            scaled = scale(values[finite], np.asarray(vmin, dtype=float), np.asarray(vmax, dtype=float))
            for index, score in zip(np.flatnonzero(finite), model.predict(scaled)):
                scores[index] = float(score)
        if not finite.all():
            logger.warning("Skipped %d row(s) with missing or non-numeric features", int((~finite).sum()))
        return scores
    except Exception:
        logger.exception("Error making predictions")
        return []


def classify_risk(score: float, high: float = HIGH_RISK, medium: float = MEDIUM_RISK) -> str:
    if score > high:
        return "high"
    if score > medium:
        return "medium"
    return "low"


def threshold_from_preference(risk_threshold: int | None) -> float:
    if risk_threshold is None:
        return HIGH_RISK
    return max(0.0, min(1.0, risk_threshold / 100))


def extract_risk_level(prediction_result) -> str | None:
    if not prediction_result:
        return None
    if isinstance(prediction_result, str):
        try:
            prediction_result = json.loads(prediction_result)
        except ValueError:
            return None
    if not isinstance(prediction_result, dict):
        return None
    risk = prediction_result.get("risk")
    if risk is None and isinstance(prediction_result.get("employee"), dict):
        risk = prediction_result["employee"].get("risk")
    return str(risk).lower() if risk else None


def save_prediction_result(
    session: Session,
    prediction: dict,
    user_id: str,
    model_id: str | None = None,
    employee_id: str | None = None,
    time_frame: str | None = None,
    factors: dict | None = None,
) -> str | None:
    try:
        with session.begin_nested():
            row = repository.create_prediction(
                session,
                user_id=user_id,
                employee_id=employee_id,
                model_id=model_id,
                prediction_result=prediction,
                time_frame=time_frame,
                factors=factors or {},
                confidence_score=prediction.get("confidence"),
            )
        return row.id
    except Exception:
        logger.exception("Error saving prediction")
        return None


def _employee_label(item: dict, index: int) -> str:
    first, last = item.get("first_name"), item.get("last_name")
    if first and last:
        return f"{first} {last}"
    return f"Employee {index + 1}"


def run_batch_prediction(
    session: Session,
    bundle: ModelBundle,
    rows: list[dict],
    user_id: str,
    model_id: str | None = None,
    high: float = HIGH_RISK,
    batch_size: int = BATCH_SIZE,
    on_progress: Callable[[int], None] | None = None,
) -> list[dict]:
    results: list[dict] = []
    batches = max(1, -(-len(rows) // batch_size))
    for i in range(batches):
        batch = rows[i * batch_size : (i + 1) * batch_size]
        if not batch:
            break
        scores = make_predictions(bundle.model, batch, bundle.feature_names, bundle.min, bundle.max)
        if len(scores) != len(batch):
            logger.warning("Skipping batch %d: predictions unavailable", i)
            continue

        for offset, (item, score) in enumerate(zip(batch, scores)):
            if score is None:
                logger.warning("Skipping row %d: missing or non-numeric features", i * batch_size + offset + 1)
                continue
            result = {
                "employee": _employee_label(item, i * batch_size + offset),
                "employee_id": item.get("id"),
                "score": score,
                "risk": classify_risk(score, high=high),
                "department": item.get("department") or "Unknown",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            results.append(result)
            if result["employee_id"]:
                prediction_id = save_prediction_result(
                    session,
                    {"score": score, "risk": result["risk"], "timestamp": result["timestamp"]},
                    user_id,
                    model_id=model_id,
                    employee_id=result["employee_id"],
                )
                if prediction_id:
                    log_prediction_action(session, "predict", prediction_id, {"risk": result["risk"]}, user_id)

        if on_progress is not None:
            on_progress(round((i + 1) / batches * 100))

    logger.info("Processed %d predictions", len(results))
    return results
