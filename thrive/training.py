"""Retention model training.

Rows from an imported CSV are filtered to the ones with numeric values for
every selected feature and the target, min-max scaled per feature, split
80/20 and fitted with a small dense network (ReLU 10 -> ReLU 5 -> linear)
trained with Adam on squared error. The min/max constants travel with the
model so predictions are scaled the same way.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Sequence

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split
from sklearn.neural_network import MLPRegressor

from thrive.errors import DataPreparationError

logger = logging.getLogger(__name__)

DEFAULT_EPOCHS = 100
DEFAULT_LEARNING_RATE = 0.01
DEFAULT_HIDDEN_LAYERS = (10, 5)
TEST_SIZE = 0.2
RANDOM_STATE = 42
LOG_EVERY = 10


@dataclass
class PreparedData:
    features: np.ndarray
    targets: np.ndarray
    feature_names: list[str]
    min: np.ndarray
    max: np.ndarray


@dataclass
class Metrics:
    mse: float
    rmse: float
    r2: float

    def as_dict(self) -> dict:
        return {"mse": self.mse, "rmse": self.rmse, "r2": self.r2}


@dataclass
class TrainingResult:
    model: MLPRegressor
    metrics: Metrics
    feature_names: list[str]
    min: np.ndarray
    max: np.ndarray
    epochs: int
    train_size: int
    test_size: int
    loss_curve: list[float] = field(default_factory=list)

    @property
    def parameters(self) -> dict:
        return {
            "epochs": self.epochs,
            "learning_rate": self.model.learning_rate_init,
            "hidden_layers": list(self.model.hidden_layer_sizes),
            "train_size": self.train_size,
            "test_size": self.test_size,
        }


def as_frame(rows) -> pd.DataFrame:
    if isinstance(rows, pd.DataFrame):
        return rows
    return pd.DataFrame(list(rows))


def scale(values: np.ndarray, vmin: np.ndarray, vmax: np.ndarray) -> np.ndarray:
    span = np.asarray(vmax, dtype=float) - np.asarray(vmin, dtype=float)
    span = np.where(span == 0, 1.0, span)
    return (np.asarray(values, dtype=float) - vmin) / span


def prepare_data_for_training(rows, feature_columns: Sequence[str], target_column: str) -> PreparedData:
    df = as_frame(rows)
    feature_columns = list(feature_columns)
    if not feature_columns:
        raise DataPreparationError("Select at least one feature column")
    missing = [c for c in feature_columns + [target_column] if c not in df.columns]
    if missing:
        raise DataPreparationError(f"Unknown columns: {', '.join(missing)}")

    numeric = df[feature_columns + [target_column]].apply(pd.to_numeric, errors="coerce")
    numeric = numeric.dropna()
    if numeric.empty:
        raise DataPreparationError("No valid data found for training after filtering")

    raw = numeric[feature_columns].to_numpy(dtype=float)
    vmin = raw.min(axis=0)
    vmax = raw.max(axis=0)
    logger.info("Prepared %d of %d rows for training", len(numeric), len(df))
    return PreparedData(
        features=scale(raw, vmin, vmax),
        targets=numeric[target_column].to_numpy(dtype=float),
        feature_names=feature_columns,
        min=vmin,
        max=vmax,
    )


def split_data(prepared: PreparedData, test_size: float = TEST_SIZE, random_state: int = RANDOM_STATE):
    if len(prepared.targets) < 2:
        raise DataPreparationError("At least two valid rows are needed to train and evaluate a model")
    return train_test_split(
        prepared.features, prepared.targets, test_size=test_size, random_state=random_state
    )


def build_model(
    learning_rate: float = DEFAULT_LEARNING_RATE,
    hidden_layers: Sequence[int] = DEFAULT_HIDDEN_LAYERS,
    random_state: int = RANDOM_STATE,
) -> MLPRegressor:
    return MLPRegressor(
        hidden_layer_sizes=tuple(hidden_layers),
        activation="relu",
        solver="adam",
        learning_rate_init=learning_rate,
        random_state=random_state,
    )


def train_model(
    features: np.ndarray,
    targets: np.ndarray,
    epochs: int = DEFAULT_EPOCHS,
    learning_rate: float = DEFAULT_LEARNING_RATE,
    hidden_layers: Sequence[int] = DEFAULT_HIDDEN_LAYERS,
    on_epoch_end: Callable[[int, float], None] | None = None,
) -> MLPRegressor:
    if epochs < 1:
        raise DataPreparationError("Epochs must be at least 1")
    model = build_model(learning_rate=learning_rate, hidden_layers=hidden_layers)
    for epoch in range(epochs):
        model.partial_fit(features, targets)
        if epoch % LOG_EVERY == 0:
            logger.info("Epoch %d: loss = %.5f", epoch, model.loss_)
        if on_epoch_end is not None:
            on_epoch_end(epoch, float(model.loss_))
    return model


def evaluate_model(model: MLPRegressor, test_features: np.ndarray, test_targets: np.ndarray) -> Metrics:
    predictions = model.predict(test_features)
    y = np.asarray(test_targets, dtype=float)
    mse = float(np.mean((y - predictions) ** 2))
    total = float(np.sum((y - y.mean()) ** 2))
    residual = float(np.sum((y - predictions) ** 2))
    r2 = 1 - residual / total if total > 0 else 0.0
    return Metrics(mse=mse, rmse=math.sqrt(mse), r2=float(r2))


def run_training_pipeline(
    rows,
    feature_columns: Sequence[str],
    target_column: str,
    epochs: int = DEFAULT_EPOCHS,
    learning_rate: float = DEFAULT_LEARNING_RATE,
    on_epoch_end: Callable[[int, float], None] | None = None,
) -> TrainingResult:
    prepared = prepare_data_for_training(rows, feature_columns, target_column)
    X_train, X_test, y_train, y_test = split_data(prepared)

    losses: list[float] = []

    def track(epoch: int, loss: float) -> None:
        losses.append(loss)
        if on_epoch_end is not None:
            on_epoch_end(epoch, loss)

    model = train_model(X_train, y_train, epochs=epochs, learning_rate=learning_rate, on_epoch_end=track)
    metrics = evaluate_model(model, X_test, y_test)
    logger.info("Trained on %d rows: mse=%.4f rmse=%.4f r2=%.4f", len(y_train), metrics.mse, metrics.rmse, metrics.r2)
    return TrainingResult(
        model=model,
        metrics=metrics,
        feature_names=prepared.feature_names,
        min=prepared.min,
        max=prepared.max,
        epochs=epochs,
        train_size=len(y_train),
        test_size=len(y_test),
        loss_curve=losses,
    )
