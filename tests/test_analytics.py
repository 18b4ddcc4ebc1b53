"""Dashboard aggregations and model comparison."""

import math
from datetime import date, timedelta

import pandas as pd

from thrive import analytics, repository
from thrive.models import Employee, MLModel, utcnow


def seed_predictions(session, user):
    sales = repository.create_employee(session, user.id, first_name="Ana", last_name="Lima", department="Sales")
    eng = repository.create_employee(session, user.id, first_name="Raj", last_name="Iyer", department="Engineering")
    model = repository.create_ml_model(session, user_id=user.id, name="m1", model_type="neural_network", features=["a"])
    for employee, score, risk in [(sales, 0.9, "high"), (sales, 0.5, "medium"), (eng, 0.1, "low")]:
        repository.create_prediction(
            session, user_id=user.id, employee_id=employee.id, model_id=model.id,
            prediction_result={"score": score, "risk": risk},
        )
    repository.create_prediction(session, user_id=user.id, prediction_result={"employee": {"risk": "HIGH"}})
    return repository.fetch_predictions(session, user.id)


def test_prediction_records_flattens_rows(session, user) -> None:
    records = analytics.prediction_records(seed_predictions(session, user))

    assert len(records) == 4
    assert sorted(records["risk"]) == ["high", "high", "low", "medium"]
    assert set(records["department"].dropna()) == {"Sales", "Engineering"}
    assert set(records["model"].dropna()) == {"m1"}


def test_risk_distribution_and_department_breakdown(session, user) -> None:
    records = analytics.prediction_records(seed_predictions(session, user))

    dist = analytics.risk_distribution(records).set_index("risk")
    assert dist["value"].to_dict() == {"low": 1, "medium": 1, "high": 2}
    assert dist.loc["high", "name"] == "High Risk"

    dept = analytics.department_risk(records).set_index("department")
    assert dept.loc["Sales"].tolist() == [0, 1, 1]
    assert dept.loc["Engineering"].tolist() == [1, 0, 0]


def test_empty_records() -> None:
    empty = analytics.prediction_records([])

    assert analytics.risk_distribution(empty)["value"].tolist() == [0, 0, 0]
    assert analytics.department_risk(empty).empty
    kpis = analytics.dashboard_kpis(5, empty)
    assert kpis["employees"] == 5
    assert kpis["predictions"] == 0
    assert math.isnan(kpis["retention_rate"])


def test_dashboard_kpis(session, user) -> None:
    records = analytics.prediction_records(seed_predictions(session, user))

    kpis = analytics.dashboard_kpis(2, records)

    assert kpis["predictions"] == 4
    assert kpis["high_risk"] == 2
    assert round(kpis["avg_risk"], 3) == 0.5
    assert round(kpis["retention_rate"], 1) == 50.0


def test_group_risk_summary_ranks_groups() -> None:
    df = pd.DataFrame({
        "department": ["Sales", "Sales", "Ops", "Ops", "Ops"],
        "score": [0.9, 0.8, 0.1, 0.2, 0.9],
        "risk": ["high", "high", "low", "low", "high"],
    })

    agg = analytics.group_risk_summary(df, "department")

    assert agg["department"].tolist() == ["Sales", "Ops"]
    assert agg.loc[0, "high_risk_count"] == 2
    assert agg.loc[1, "total"] == 3
    assert round(agg.loc[1, "high_risk_pct"], 1) == 33.3


def test_retention_actions() -> None:
    junior = Employee(
        first_name="A", last_name="B", department="Engineering", position="Engineering Manager",
        engagement_score=30, performance_score=4.5, hire_date=date.today() - timedelta(days=200),
    )

    actions = analytics.retention_actions(junior)

    assert actions[0].startswith("Onboarding support")
    assert any(a.startswith("Engagement check-in") for a in actions)
    assert any(a.startswith("Recognition plan") for a in actions)
    assert any("on-call" in a for a in actions)
    assert any(a.startswith("Manager retention") for a in actions)
    assert actions[-2:] == [
        "Stay interview: 15-minute structured conversation this week",
        "Compensation check: compare to band midpoint (if available)",
    ]


def test_get_model_accuracy() -> None:
    assert analytics.get_model_accuracy(None) == 0.0
    assert analytics.get_model_accuracy({"accuracy": 0.91}) == 0.91
    assert analytics.get_model_accuracy({"r2": 1.7}) == 1.0
    assert analytics.get_model_accuracy({"rmse": 2.0}) == 0.8


def test_compare_models_sorting_and_default_selection() -> None:
    now = utcnow()
    models = [
        MLModel(id=f"m{i}", name=f"model {i}", model_type="neural_network", features=["a"] * (i + 1),
                metrics={"rmse": rmse, "r2": r2}, created_at=now - timedelta(days=i))
        for i, (rmse, r2) in enumerate([(0.3, 0.6), (0.1, 0.9), (0.5, None), (0.2, 0.4)])
    ]

    by_r2 = analytics.compare_models(models, "r2", "desc")
    by_rmse = analytics.compare_models(models, "rmse", "asc")

    assert by_r2["id"].tolist() == ["m1", "m0", "m3", "m2"]
    assert by_rmse["id"].tolist() == ["m1", "m3", "m0", "m2"]
    assert by_r2.loc[0, "feature_count"] == 2
    assert analytics.default_comparison_selection(models) == ["m0", "m1", "m2"]
