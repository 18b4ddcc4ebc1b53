import logging
from datetime import datetime

import pandas as pd
import requests
from sqlalchemy.orm import Session

from thrive import repository
from thrive.models import NOTIFICATION_TYPES, Notification, UserPreference

logger = logging.getLogger(__name__)


def notify(session: Session, user_id: str, title: str, message: str, type: str = "info") -> Notification:
    if type not in NOTIFICATION_TYPES:
        type = "info"
    return repository.create_notification(session, user_id, title, message, type)


class NotificationPoller:
    """Hands out notifications created since the previous poll."""

    def __init__(self, user_id: str, since: datetime | None = None):
        self.user_id = user_id
        self.since = since

    def poll(self, session: Session) -> list[Notification]:
        fresh = repository.notifications_since(session, self.user_id, self.since)
        if fresh:
            self.since = max(n.created_at for n in fresh)
        return fresh


def notify_high_risk(session: Session, user_id: str, results: list[dict], prefs: UserPreference | None) -> Notification | None:
    if prefs is not None and not prefs.wants("high_risk_alerts"):
        return None
    high = [r for r in results if r.get("risk") == "high"]
    if not high:
        return None
    names = ", ".join(r["employee"] for r in high[:5])
    more = f" and {len(high) - 5} more" if len(high) > 5 else ""
    return notify(
        session,
        user_id,
        "High retention risk detected",
        f"{len(high)} employee(s) flagged as high risk: {names}{more}.",
        "warning",
    )


def notify_training_complete(session: Session, user_id: str, model_name: str, metrics: dict, prefs: UserPreference | None):
    if prefs is not None and not prefs.wants("model_training_complete"):
        return None
    return notify(
        session,
        user_id,
        "Model training complete",
        f'Model "{model_name}" finished training (RMSE {metrics.get("rmse", float("nan")):.4f}, R² {metrics.get("r2", float("nan")):.4f}).',
        "success",
    )


# ---------------------------
# Slack
# ---------------------------
def format_slack_alert(summary: pd.DataFrame, group_by: str, top_n: int, title: str) -> str:
    lines = []
    for _, r in summary.head(top_n).iterrows():
        lines.append(
            f"- {group_by}={r[group_by]}: avg_risk={r['avg_risk']:.3f}, "
            f"high_risk%={r['high_risk_pct']:.1f} ({int(r['high_risk_count'])}/{int(r['total'])})"
        )
    return (
        "*🚨 Retention Risk Alert*\n"
        + f"*Scope:* {title}\n"
        + f"*Top {top_n} risk groups by {group_by}:*\n"
        + "\n".join(lines)
    )


def post_to_slack(webhook_url: str, text: str) -> tuple[bool, str]:
    if not webhook_url:
        return False, "No webhook URL configured."
    try:
        r = requests.post(webhook_url, json={"text": text}, timeout=10)
    except requests.RequestException as e:
        logger.warning("Slack post failed: %s", e)
        return False, str(e)
    if r.status_code == 200:
        return True, "ok"
    return False, f"Slack returned {r.status_code}: {r.text}"
