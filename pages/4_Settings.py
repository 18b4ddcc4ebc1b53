import pandas as pd
import streamlit as st

from thrive import auth, repository
from thrive.audit import AUDIT_ACTIONS, ENTITY_TYPES
from thrive.directory import clamp_page
from thrive.errors import AuthError
from thrive.models import DEFAULT_NOTIFICATION_SETTINGS, Profile
from thrive.ui import NOTIFICATION_ICONS, db_session, require_login, sidebar_account

st.set_page_config(page_title="Settings • Thrive", layout="wide")
user = require_login()
sidebar_account(user)

AUDIT_PAGE_SIZE = 20
THEMES = ["light", "dark", "system"]
LANGUAGES = {"en": "English", "es": "Español", "fr": "Français", "de": "Deutsch"}

st.title("⚙️ Settings")
tabs = st.tabs(["👤 Profile", "🎛️ Preferences", "🔔 Notifications", "🧾 Audit log"])

# ---------------------------
# Tab 1: Profile
# ---------------------------
with tabs[0]:
    with db_session() as session:
        profile = session.get(Profile, user["id"])
        current = {"name": profile.name or "", "company_name": profile.company_name or "", "role": profile.role or ""}

    with st.form("profile"):
        name = st.text_input("Name", value=current["name"])
        company = st.text_input("Company", value=current["company_name"])
        role = st.text_input("Role", value=current["role"])
        saved = st.form_submit_button("Save profile")
    if saved:
        with db_session() as session:
            auth.update_profile(session, user["id"], name=name.strip() or None,
                                company_name=company.strip() or None, role=role.strip() or None)
        st.session_state.user = {**user, "name": name.strip() or user["email"]}
        st.success("Profile updated.")

    with st.form("password"):
        old = st.text_input("Current password", type="password")
        new = st.text_input("New password", type="password")
        changed = st.form_submit_button("Change password")
    if changed:
        try:
            with db_session() as session:
                auth.change_password(session, user["id"], old, new)
            st.success("Password changed.")
        except AuthError as e:
            st.error(str(e))

# ---------------------------
# Tab 2: Preferences
# ---------------------------
with tabs[1]:
    with db_session() as session:
        prefs = repository.fetch_user_preferences(session, user["id"])
        departments = sorted({e.department for e in repository.list_employees(session, user["id"]) if e.department})
    if prefs is None:
        theme, language, threshold, defaults = "system", "en", 70, []
        notif = dict(DEFAULT_NOTIFICATION_SETTINGS)
    else:
        theme, language, threshold = prefs.theme, prefs.language, prefs.risk_threshold
        defaults = list(prefs.default_departments or [])
        notif = {**DEFAULT_NOTIFICATION_SETTINGS, **(prefs.notification_settings or {})}

    with st.form("preferences"):
        theme = st.selectbox("Theme", THEMES, index=THEMES.index(theme) if theme in THEMES else 2)
        language = st.selectbox("Language", list(LANGUAGES), format_func=LANGUAGES.get,
                                index=list(LANGUAGES).index(language) if language in LANGUAGES else 0)
        threshold = st.slider("High-risk threshold (%)", 5, 95, int(threshold), 5)
        options = sorted(set(departments) | set(defaults))
        defaults = st.multiselect("Default departments on the dashboard", options, default=defaults)
        st.markdown("**Notifications**")
        labels = {
            "email": "Email notifications",
            "push": "Push notifications",
            "high_risk_alerts": "High-risk alerts",
            "weekly_digest": "Weekly digest",
            "model_training_complete": "Model training complete",
        }
        notif = {k: st.toggle(label, value=bool(notif.get(k))) for k, label in labels.items()}
        submitted = st.form_submit_button("Save preferences")
    if submitted:
        with db_session() as session:
            repository.save_user_preferences(
                session, user["id"], theme=theme, language=language, risk_threshold=threshold,
                default_departments=defaults, notification_settings=notif,
            )
        st.success("Preferences saved.")

# ---------------------------
# Tab 3: Notifications
# ---------------------------
with tabs[2]:
    with db_session() as session:
        items = repository.fetch_notifications(session, user["id"])

    a1, a2 = st.columns(2)
    with a1:
        if st.button("Mark all as read", disabled=not items):
            with db_session() as session:
                repository.mark_all_notifications_as_read(session, user["id"])
            st.rerun()
    with a2:
        if st.button("🧹 Delete all", disabled=not items):
            with db_session() as session:
                repository.delete_all_notifications(session, user["id"])
            st.rerun()

    if not items:
        st.info("You're all caught up.")
    for n in items:
        with st.container(border=True):
            c1, c2, c3 = st.columns([6, 1, 1])
            with c1:
                marker = "" if n.read else "🆕 "
                st.markdown(f"{marker}{NOTIFICATION_ICONS.get(n.type, 'ℹ️')} **{n.title}**  \n{n.message}")
                st.caption(n.created_at.strftime("%Y-%m-%d %H:%M"))
            with c2:
                if not n.read and st.button("Read", key=f"read_{n.id}"):
                    with db_session() as session:
                        repository.mark_notification_as_read(session, n.id)
                    st.rerun()
            with c3:
                if st.button("Delete", key=f"del_{n.id}"):
                    with db_session() as session:
                        repository.delete_notification(session, n.id)
                    st.rerun()

# ---------------------------
# Tab 4: Audit log
# ---------------------------
with tabs[3]:
    f1, f2, f3 = st.columns(3)
    with f1:
        action = st.selectbox("Action", [""] + list(AUDIT_ACTIONS), format_func=lambda a: a or "All")
    with f2:
        entity = st.selectbox("Entity", [""] + list(ENTITY_TYPES), format_func=lambda e: e or "All")
    with f3:
        term = st.text_input("Search details")

    page = int(st.number_input("Page", min_value=1, value=1, step=1, key="audit_page"))
    with db_session() as session:
        logs, total = repository.fetch_audit_logs(
            session, page=page, page_size=AUDIT_PAGE_SIZE, action=action or None,
            entity_type=entity or None, search_term=term.strip() or None, user_id=user["id"],
        )
    page, pages = clamp_page(page, total, AUDIT_PAGE_SIZE)
    st.caption(f"Page {page} of {pages} • {total} event(s)")
    st.dataframe(
        pd.DataFrame(
            [
                {"when": l.created_at, "action": l.action, "entity": l.entity_type,
                 "entity_id": l.entity_id, "details": l.details, "ip": l.ip_address}
                for l in logs
            ],
            columns=["when", "action", "entity", "entity_id", "details", "ip"],
        ),
        width="stretch",
        hide_index=True,
    )
