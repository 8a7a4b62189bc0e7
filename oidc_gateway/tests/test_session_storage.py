"""
Tests for session state and the session stores.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from unittest.mock import Mock

import pytest

from oidc_gateway.exceptions import InvalidSessionTicketError, SessionStorageError
from oidc_gateway.models import TokenResponse
from oidc_gateway.session import (
    CookieSessionStorage,
    ExternalSessionStorage,
    SessionBackend,
    SessionState,
    SessionStorage,
    apply_token_refresh,
    create_session_state,
    create_session_storage,
    generate_session_id,
    is_token_expired,
)
from oidc_gateway.tests.conftest import SESSION_SECRET


class InMemoryBackend:
    """Dict-backed SessionBackend recording the timeouts it was given."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.timeouts = []

    def get(self, key: str, timeout: float) -> Optional[str]:
        self.timeouts.append(timeout)
        return self.data.get(key)

    def set(self, key: str, value: str, ttl_seconds: int, timeout: float) -> None:
        self.timeouts.append(timeout)
        self.data[key] = value


# =============================================================================
# Session state
# =============================================================================

class TestSessionState:

    def test_generate_session_id_is_uuid4(self):
        import uuid

        session_id = generate_session_id()
        assert uuid.UUID(session_id).version == 4
        assert generate_session_id() != session_id

    def test_defaults_are_unauthenticated_placeholder(self):
        state = SessionState(id="abc")
        assert state.access_token == ""
        assert state.id_token == ""
        assert state.refresh_token == ""
        assert state.is_authorized is False
        assert state.token_expires_in == 0

    def test_state_is_immutable(self, session_state):
        with pytest.raises(Exception):
            session_state.id = "other"

    def test_negative_expiry_rejected(self):
        with pytest.raises(ValueError):
            SessionState(id="abc", token_expires_in=-1)

    def test_create_session_state(self):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        state = create_session_state(
            TokenResponse(access_token="at", id_token="it", expires_in=300),
            now=now,
        )

        assert state.is_authorized is True
        assert state.access_token == "at"
        assert state.id_token == "it"
        assert state.refresh_token == ""
        assert state.refreshed_at == now
        assert state.token_expires_in == 300

    def test_token_expiry(self, session_state):
        state = session_state.model_copy(update={"token_expires_in": 300})
        refreshed_at = state.refreshed_at

        assert not is_token_expired(state, now=refreshed_at + timedelta(seconds=100))
        assert is_token_expired(state, now=refreshed_at + timedelta(seconds=295))

    def test_unknown_lifetime_never_expires(self, session_state):
        assert not is_token_expired(session_state, now=datetime(2099, 1, 1, tzinfo=timezone.utc))

    def test_apply_token_refresh_keeps_id(self, session_state):
        now = datetime(2026, 6, 1, tzinfo=timezone.utc)

        refreshed = apply_token_refresh(
            session_state,
            TokenResponse(access_token="new-at", expires_in=600),
            now=now,
        )

        assert refreshed.id == session_state.id
        assert refreshed.access_token == "new-at"
        assert refreshed.refreshed_at == now
        assert refreshed.token_expires_in == 600
        assert refreshed.id_token == session_state.id_token
        assert refreshed.refresh_token == session_state.refresh_token

    def test_apply_token_refresh_rotates_refresh_token(self, session_state):
        refreshed = apply_token_refresh(
            session_state,
            TokenResponse(access_token="new-at", refresh_token="new-rt"),
        )
        assert refreshed.refresh_token == "new-rt"


# =============================================================================
# Cookie-backed store
# =============================================================================

class TestCookieSessionStorage:

    @pytest.fixture
    def storage(self):
        return CookieSessionStorage(SESSION_SECRET)

    def test_satisfies_protocol(self, storage):
        assert isinstance(storage, SessionStorage)

    def test_round_trip(self, storage, session_state):
        ticket = storage.store_session(session_state.id, session_state)

        assert storage.try_get_session(ticket) == session_state

    def test_round_trip_unauthenticated_placeholder(self, storage):
        state = SessionState(id=generate_session_id())
        assert storage.try_get_session(storage.store_session(state.id, state)) == state

    def test_ticket_does_not_contain_tokens(self, storage, session_state):
        ticket = storage.store_session(session_state.id, session_state)
        assert session_state.access_token not in ticket

    def test_absent_ticket_is_no_session(self, storage):
        assert storage.try_get_session(None) is None

    def test_empty_ticket_is_an_error(self, storage):
        with pytest.raises(InvalidSessionTicketError):
            storage.try_get_session("")

    @pytest.mark.parametrize("ticket", ["garbage", "a" * 64, "not base64 !"])
    def test_malformed_ticket_is_an_error(self, storage, ticket):
        with pytest.raises(InvalidSessionTicketError):
            storage.try_get_session(ticket)

    def test_ticket_from_other_secret_rejected(self, storage, session_state):
        other = CookieSessionStorage("another-secret-0123456789abcdefghij")
        ticket = other.store_session(session_state.id, session_state)

        with pytest.raises(InvalidSessionTicketError):
            storage.try_get_session(ticket)

    def test_mismatched_session_id_rejected(self, storage, session_state):
        with pytest.raises(ValueError):
            storage.store_session("other-id", session_state)

    def test_invalid_ticket_is_not_storage_failure(self, storage):
        with pytest.raises(InvalidSessionTicketError) as exc_info:
            storage.try_get_session("garbage")
        assert not isinstance(exc_info.value, SessionStorageError)


# =============================================================================
# External store
# =============================================================================

class TestExternalSessionStorage:

    @pytest.fixture
    def backend(self):
        return InMemoryBackend()

    @pytest.fixture
    def storage(self, backend):
        return ExternalSessionStorage(backend, ttl_seconds=600, timeout=2.0)

    def test_backend_satisfies_protocol(self, backend):
        assert isinstance(backend, SessionBackend)

    def test_round_trip(self, storage, backend, session_state):
        ticket = storage.store_session(session_state.id, session_state)

        assert storage.try_get_session(ticket) == session_state
        assert session_state.access_token not in ticket
        assert list(backend.data) == [f"session:{ticket}"]

    def test_tickets_are_unique(self, storage, session_state):
        assert storage.store_session(session_state.id, session_state) != storage.store_session(
            session_state.id, session_state
        )

    def test_timeouts_are_passed_to_backend(self, storage, backend, session_state):
        ticket = storage.store_session(session_state.id, session_state)
        storage.try_get_session(ticket, timeout=0.5)

        assert backend.timeouts == [2.0, 0.5]

    def test_unknown_ticket_is_no_session(self, storage):
        assert storage.try_get_session("A" * 43) is None

    def test_absent_ticket_is_no_session(self, storage):
        assert storage.try_get_session(None) is None

    @pytest.mark.parametrize("ticket", ["", "short", "has spaces in it!!!!", "x" * 200])
    def test_malformed_ticket_is_an_error(self, storage, ticket):
        with pytest.raises(InvalidSessionTicketError):
            storage.try_get_session(ticket)

    def test_backend_read_failure(self, session_state):
        backend = Mock()
        backend.get.side_effect = TimeoutError("backend timed out")
        storage = ExternalSessionStorage(backend)

        with pytest.raises(SessionStorageError):
            storage.try_get_session("A" * 43)
        assert backend.get.call_count == 1

    def test_backend_write_failure(self, session_state):
        backend = Mock()
        backend.set.side_effect = ConnectionError("down")
        storage = ExternalSessionStorage(backend)

        with pytest.raises(SessionStorageError):
            storage.store_session(session_state.id, session_state)
        assert backend.set.call_count == 1

    def test_corrupt_record_is_storage_failure(self, storage, backend):
        backend.data["session:" + "A" * 43] = "{not json"

        with pytest.raises(SessionStorageError):
            storage.try_get_session("A" * 43)

    @pytest.mark.parametrize("kwargs", [{"timeout": 0}, {"ttl_seconds": 0}])
    def test_invalid_configuration(self, backend, kwargs):
        with pytest.raises(ValueError):
            ExternalSessionStorage(backend, **kwargs)


# =============================================================================
# Store selection
# =============================================================================

def test_create_cookie_storage(settings):
    assert isinstance(create_session_storage(settings), CookieSessionStorage)


def test_create_external_storage(settings):
    settings = settings.model_copy(update={"SESSION_STORAGE": "external"})

    storage = create_session_storage(settings, backend=InMemoryBackend())

    assert isinstance(storage, ExternalSessionStorage)


def test_external_storage_requires_backend(settings):
    settings = settings.model_copy(update={"SESSION_STORAGE": "external"})

    with pytest.raises(ValueError):
        create_session_storage(settings)
