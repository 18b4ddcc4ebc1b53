from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator

import streamlit as st
from sqlalchemy.orm import Session

from thrive import auth, repository
from thrive.config import NOTIFICATION_POLL_SECONDS, Settings, load_settings
from thrive.db import init_db, make_engine, make_session_factory, session_scope
from thrive.logs import configure_logging
from thrive.notifications import NotificationPoller

NOTIFICATION_ICONS = {"info": "ℹ️", "success": "✅", "warning": "⚠️", "error": "❌"}


@st.cache_resource
def get_settings() -> Settings:
    settings = load_settings()
    configure_logging(settings.log_level)
    return settings


@st.cache_resource
def get_session_factory():
    engine = make_engine(get_settings().database_url)
    init_db(engine)
    return make_session_factory(engine)


@contextmanager
def db_session() -> Iterator[Session]:
    with session_scope(get_session_factory()) as session:
        yield session


# ---------------------------
# Auth state
# ---------------------------
def current_user() -> dict | None:
    return st.session_state.get("user")


def sign_in_user(email: str, password: str) -> dict:
    with db_session() as session:
        profile = auth.sign_in(session, email, password)
        user = {"id": profile.id, "email": profile.email, "name": profile.name or profile.email}
    st.session_state.user = user
    st.session_state.poller = NotificationPoller(user["id"])
    return user


def sign_out_user() -> None:
    user = current_user()
    if user:
        with db_session() as session:
            auth.sign_out(session, user["id"])
    for key in ("user", "poller", "poller_primed", "csv_data", "training_result", "batch_results"):
        st.session_state.pop(key, None)


def require_login() -> dict:
    user = current_user()
    if user is None:
        st.warning("Please sign in from the Home page to continue.")
        st.page_link("Home.py", label="Go to sign in", icon="🔐")
        st.stop()
    return user


def sidebar_account(user: dict) -> None:
    st.sidebar.caption(f"Signed in as **{user['name']}**")
    if st.sidebar.button("Sign out", key="sidebar_sign_out"):
        sign_out_user()
        st.rerun()
    with st.sidebar:
        notification_bell()


@st.fragment(run_every=timedelta(seconds=NOTIFICATION_POLL_SECONDS))
def notification_bell() -> None:
    user = current_user()
    if user is None:
        return
    poller = st.session_state.setdefault("poller", NotificationPoller(user["id"]))
    with db_session() as session:
        fresh = poller.poll(session)
        unread = repository.unread_count(session, user["id"])
    # the first poll replays history; only toast what arrived since
    if st.session_state.get("poller_primed"):
        for n in fresh:
            st.toast(f"{n.title}: {n.message}", icon=NOTIFICATION_ICONS.get(n.type, "ℹ️"))
    st.session_state.poller_primed = True
    st.metric("🔔 Unread notifications", unread)


def risk_badge(risk: str | None) -> str:
    return {
        "low": ":green[● Low]",
        "medium": ":orange[● Medium]",
        "high": ":red[● High]",
    }.get(risk or "", ":gray[● Unknown]")
