import logging
import re
from dataclasses import dataclass
from pathlib import Path

import joblib
import numpy as np
from sqlalchemy.orm import Session

from thrive import repository
from thrive.audit import log_model_action
from thrive.errors import ModelNotFoundError, RecordNotFoundError

logger = logging.getLogger(__name__)

MODEL_TYPE = "neural_network"
SUFFIX = ".joblib"


@dataclass
class ModelBundle:
    model: object
    feature_names: list[str]
    min: np.ndarray
    max: np.ndarray

    def normalization(self) -> dict:
        return {
            "feature_names": list(self.feature_names),
            "min": [float(v) for v in self.min],
            "max": [float(v) for v in self.max],
        }


def _slug(name: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_.-]+", "_", name.strip()).strip("._")
    if not slug:
        raise ValueError("Model name must contain letters or digits")
    return slug


def model_path(model_dir: str | Path, name: str) -> Path:
    return Path(model_dir) / f"{_slug(name)}{SUFFIX}"


def write_bundle(bundle: ModelBundle, name: str, model_dir: str | Path) -> Path:
    path = model_path(model_dir, name)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(
        {"model": bundle.model, "feature_names": bundle.feature_names, "min": bundle.min, "max": bundle.max},
        path,
    )
    return path


def save_model(
    session: Session,
    bundle: ModelBundle,
    name: str,
    user_id: str,
    model_dir: str | Path,
    metrics: dict | None = None,
    parameters: dict | None = None,
    description: str | None = None,
) -> str:
    path = write_bundle(bundle, name, model_dir)
    row = repository.create_ml_model(
        session,
        user_id=user_id,
        name=name,
        description=description or f"Model trained on {len(bundle.feature_names)} features",
        model_type=MODEL_TYPE,
        features=list(bundle.feature_names),
        parameters=parameters or {},
        metrics=metrics or {},
        model_data=bundle.normalization(),
    )
    log_model_action(session, "create", row.id, {"name": name, "metrics": metrics or {}}, user_id)
    logger.info("Saved model %s to %s", name, path)
    return row.id


def load_model(name: str, model_dir: str | Path) -> ModelBundle:
    path = model_path(model_dir, name)
    if not path.exists():
        raise ModelNotFoundError(f'Model "{name}" not found')
    data = joblib.load(path)
    return ModelBundle(
        model=data["model"],
        feature_names=list(data["feature_names"]),
        min=np.asarray(data["min"], dtype=float),
        max=np.asarray(data["max"], dtype=float),
    )


def load_model_by_id(session: Session, model_id: str, model_dir: str | Path) -> ModelBundle:
    try:
        row = repository.fetch_ml_model(session, model_id)
    except RecordNotFoundError as exc:
        raise ModelNotFoundError(f"Model {model_id} not found") from exc
    return load_model(row.name, model_dir)


def list_saved_models(model_dir: str | Path) -> list[str]:
    directory = Path(model_dir)
    if not directory.is_dir():
        return []
    return sorted(p.name[: -len(SUFFIX)] for p in directory.glob(f"*{SUFFIX}"))


def delete_model(session: Session, model_id: str, model_dir: str | Path, user_id: str | None = None) -> None:
    row = repository.fetch_ml_model(session, model_id)
    name = row.name
    repository.delete_ml_model(session, model_id)
    path = model_path(model_dir, name)
    if path.exists():
        path.unlink()
    log_model_action(session, "delete", model_id, {"name": name}, user_id)
