"""Shared fixtures: in-memory SQLite store, scripted places, recording dispatcher."""

from typing import Optional

import pytest

from meetsession.crud.session_store import SqlSessionStore
from meetsession.database import build_session_factory, create_db_engine
from meetsession.models.base import Base
from meetsession.models.meet_session import MeetSessionRow  # noqa: F401  (registers the table)
from meetsession.services.session_lifecycle import SessionLifecycle
from tests.mocks.mock_place_provider import MockPlaceProvider, RecordingDispatcher

WEB_BASE_URL = "https://meet.example.com"


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory) -> SqlSessionStore:
    return SqlSessionStore(session_factory)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def make_lifecycle(store, dispatcher):
    """Lifecycle factory over the shared store; each call may script its own provider."""

    def _make(provider: Optional[MockPlaceProvider] = None, **kwargs) -> SessionLifecycle:
        return SessionLifecycle(
            kwargs.pop("store", store),
            provider or MockPlaceProvider(),
            kwargs.pop("dispatcher", dispatcher),
            web_base_url=WEB_BASE_URL,
            **kwargs,
        )

    return _make
