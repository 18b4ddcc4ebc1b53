"""In-app notifications, polling and Slack alerts."""

from datetime import timedelta
from unittest.mock import MagicMock

import pandas as pd
import requests

from thrive import notifications, repository
from thrive.notifications import (
    NotificationPoller,
    format_slack_alert,
    notify,
    notify_high_risk,
    notify_training_complete,
    post_to_slack,
)


def test_notify_coerces_unknown_types(session, user) -> None:
    assert notify(session, user.id, "Hi", "There", "shouting").type == "info"


def test_poller_only_returns_new_notifications(session, user) -> None:
    first = notify(session, user.id, "One", "first")
    first.created_at -= timedelta(seconds=5)
    session.flush()
    poller = NotificationPoller(user.id)

    assert [n.title for n in poller.poll(session)] == ["One"]
    assert poller.poll(session) == []

    notify(session, user.id, "Two", "second", "success")
    assert [n.title for n in poller.poll(session)] == ["Two"]


def test_notify_high_risk_summarises_names(session, user) -> None:
    results = [{"employee": f"Employee {i}", "risk": "high"} for i in range(1, 8)] + [{"employee": "Calm", "risk": "low"}]

    n = notify_high_risk(session, user.id, results, None)

    assert n.type == "warning"
    assert n.message == (
        "7 employee(s) flagged as high risk: Employee 1, Employee 2, Employee 3, Employee 4, Employee 5 and 2 more."
    )


def test_notify_high_risk_respects_preferences(session, user) -> None:
    prefs = repository.save_user_preferences(
        session, user.id, notification_settings={"high_risk_alerts": False, "model_training_complete": True}
    )

    assert notify_high_risk(session, user.id, [{"employee": "A", "risk": "high"}], prefs) is None
    assert notify_high_risk(session, user.id, [{"employee": "A", "risk": "low"}], None) is None
    assert notify_training_complete(session, user.id, "m1", {"rmse": 0.12, "r2": 0.8}, prefs).type == "success"
    assert repository.unread_count(session, user.id) == 1


def test_format_slack_alert() -> None:
    summary = pd.DataFrame(
        {"department": ["Sales"], "avg_risk": [0.8123], "high_risk_count": [3], "total": [4], "high_risk_pct": [75.0]}
    )

    text = format_slack_alert(summary, "department", 5, "Predictions (all time)")

    assert text.splitlines()[1] == "*Scope:* Predictions (all time)"
    assert "- department=Sales: avg_risk=0.812, high_risk%=75.0 (3/4)" in text


def test_post_to_slack(monkeypatch) -> None:
    post = MagicMock(return_value=MagicMock(status_code=200, text="ok"))
    monkeypatch.setattr(notifications.requests, "post", post)

    assert post_to_slack("", "hi") == (False, "No webhook URL configured.")
    assert post_to_slack("https://hooks.slack.test/x", "hi") == (True, "ok")
    post.assert_called_once_with("https://hooks.slack.test/x", json={"text": "hi"}, timeout=10)

    post.return_value = MagicMock(status_code=404, text="no_service")
    assert post_to_slack("https://hooks.slack.test/x", "hi") == (False, "Slack returned 404: no_service")

    post.side_effect = requests.ConnectionError("refused")
    assert post_to_slack("https://hooks.slack.test/x", "hi") == (False, "refused")
