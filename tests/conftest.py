"""Shared fixtures: an in-memory database and a signed-up account."""

import pytest

from thrive.db import init_db, make_engine, make_session_factory
from thrive.models import Profile


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    factory = make_session_factory(engine)
    with factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def user(session) -> Profile:
    profile = Profile(email="hr@example.com", name="Hannah Reed", password_hash="unused")
    session.add(profile)
    session.flush()
    return profile
