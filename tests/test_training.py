"""Data preparation and the training pipeline."""

import math

import numpy as np
import pandas as pd
import pytest

from thrive.errors import DataPreparationError
from thrive.training import (
    evaluate_model,
    prepare_data_for_training,
    run_training_pipeline,
    scale,
    split_data,
    train_model,
)


def synthetic_rows(n: int = 100) -> list[dict]:
    rng = np.random.default_rng(7)
    rows = []
    for _ in range(n):
        satisfaction = rng.uniform(1, 5)
        tenure = rng.uniform(0, 10)
        rows.append({
            "satisfaction": f"{satisfaction:.2f}",
            "tenure": f"{tenure:.2f}",
            "risk": f"{1 - satisfaction / 5:.3f}",
        })
    return rows


def test_scale_treats_zero_range_as_one() -> None:
    values = np.array([[2.0, 5.0], [4.0, 5.0]])

    scaled = scale(values, np.array([2.0, 5.0]), np.array([4.0, 5.0]))

    assert scaled.tolist() == [[0.0, 0.0], [1.0, 0.0]]


def test_prepare_drops_rows_with_missing_or_text_values() -> None:
    rows = [
        {"a": "1", "b": "10", "y": "0.1"},
        {"a": "", "b": "20", "y": "0.2"},
        {"a": "3", "b": "n/a", "y": "0.3"},
        {"a": "5", "b": "30", "y": "0.5"},
    ]

    prepared = prepare_data_for_training(rows, ["a", "b"], "y")

    assert prepared.feature_names == ["a", "b"]
    assert prepared.min.tolist() == [1.0, 10.0]
    assert prepared.max.tolist() == [5.0, 30.0]
    assert prepared.features.tolist() == [[0.0, 0.0], [1.0, 1.0]]
    assert prepared.targets.tolist() == [0.1, 0.5]


def test_prepare_accepts_dataframes() -> None:
    df = pd.DataFrame({"a": ["1", "2"], "y": ["0", "1"]})

    prepared = prepare_data_for_training(df, ["a"], "y")

    assert len(prepared.targets) == 2


@pytest.mark.parametrize(
    "features, target, message",
    [
        ([], "y", "at least one feature"),
        (["missing"], "y", "Unknown columns"),
    ],
)
def test_prepare_rejects_bad_column_selection(features, target, message) -> None:
    with pytest.raises(DataPreparationError, match=message):
        prepare_data_for_training([{"a": "1", "y": "1"}], features, target)


def test_prepare_rejects_when_nothing_is_numeric() -> None:
    with pytest.raises(DataPreparationError, match="No valid data"):
        prepare_data_for_training([{"a": "x", "y": "1"}, {"a": "", "y": "2"}], ["a"], "y")


def test_split_needs_two_rows() -> None:
    prepared = prepare_data_for_training([{"a": "1", "y": "1"}], ["a"], "y")

    with pytest.raises(DataPreparationError):
        split_data(prepared)


def test_split_is_eighty_twenty() -> None:
    prepared = prepare_data_for_training(synthetic_rows(50), ["satisfaction", "tenure"], "risk")

    X_train, X_test, y_train, y_test = split_data(prepared)

    assert len(X_train) == 40
    assert len(X_test) == 10


def test_train_model_rejects_zero_epochs() -> None:
    with pytest.raises(DataPreparationError):
        train_model(np.zeros((4, 1)), np.zeros(4), epochs=0)


def test_train_model_reports_every_epoch() -> None:
    seen = []

    train_model(np.random.rand(20, 2), np.random.rand(20), epochs=5, on_epoch_end=lambda e, loss: seen.append(e))

    assert seen == [0, 1, 2, 3, 4]


def test_evaluate_with_constant_targets_reports_zero_r2() -> None:
    class Flat:
        def predict(self, X):
            return np.full(len(X), 0.4)

    metrics = evaluate_model(Flat(), np.zeros((3, 1)), np.array([0.5, 0.5, 0.5]))

    assert metrics.r2 == 0.0
    assert metrics.mse == pytest.approx(0.01)
    assert metrics.rmse == pytest.approx(0.1)


def test_training_pipeline_end_to_end() -> None:
    result = run_training_pipeline(synthetic_rows(), ["satisfaction", "tenure"], "risk", epochs=30)

    assert result.feature_names == ["satisfaction", "tenure"]
    assert result.train_size == 80
    assert result.test_size == 20
    assert len(result.loss_curve) == 30
    assert math.isfinite(result.metrics.mse)
    assert result.metrics.rmse == pytest.approx(math.sqrt(result.metrics.mse))
    assert result.metrics.r2 <= 1.0
    assert result.parameters["epochs"] == 30
    assert result.parameters["hidden_layers"] == [10, 5]
    assert result.parameters["learning_rate"] == 0.01
