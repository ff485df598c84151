"""Tests for TokenManager."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from pcf_exchange_core.exceptions import (
    AuthError,
    EndpointNotConfiguredError,
    NetworkError,
    NotFoundError,
)
from pcf_exchange_core.services.token_service import TokenManager
from pcf_exchange_core.utils.http_client import HttpResponse
from tests.fixtures.fakes import AUTH_URL, SECRET, auth_response, slow_auth_response


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tokens(credential_store, http_client, token_config, clock):
    return TokenManager(credential_store, http_client, token_config, clock=clock)


class TestGetToken:
    """Test token acquisition and caching."""

    def test_client_credentials_exchange(self, tokens, http_client, data_source, clock):
        http_client.add("POST", AUTH_URL, auth_response("token-1", expires_in=3600))

        token = tokens.get_token(data_source.data_source_id)

        assert token.token_value.get_secret_value() == "token-1"
        assert token.expires_at == clock.now + timedelta(seconds=3600)
        [call] = http_client.calls_to("POST", AUTH_URL)
        assert call.form == {"grant_type": "client_credentials"}
        assert call.auth == ("client-id", SECRET)
        assert call.headers["Accept"] == "application/json"

    def test_cached_until_refresh_margin(self, tokens, http_client, data_source, clock):
        http_client.add("POST", AUTH_URL, auth_response("token-1"), auth_response("token-2"))
        source_id = data_source.data_source_id

        assert tokens.get_token(source_id).token_value.get_secret_value() == "token-1"
        clock.advance(3600 - 61)
        assert tokens.get_token(source_id).token_value.get_secret_value() == "token-1"
        clock.advance(2)
        assert tokens.get_token(source_id).token_value.get_secret_value() == "token-2"
        assert len(http_client.calls_to("POST", AUTH_URL)) == 2

    def test_default_lifetime(self, tokens, http_client, data_source, clock):
        http_client.add("POST", AUTH_URL, auth_response(expires_in=None))
        token = tokens.get_token(data_source.data_source_id)
        assert token.expires_at == clock.now + timedelta(seconds=600)

    def test_force_refresh(self, tokens, http_client, data_source):
        http_client.add("POST", AUTH_URL, auth_response("token-1"), auth_response("token-2"))
        tokens.get_token(data_source.data_source_id)
        token = tokens.get_token(data_source.data_source_id, force_refresh=True)
        assert token.token_value.get_secret_value() == "token-2"
        assert tokens.cached_token(data_source.data_source_id) == token

    def test_invalidate(self, tokens, http_client, data_source):
        http_client.add("POST", AUTH_URL, auth_response("token-1"), auth_response("token-2"))
        tokens.get_token(data_source.data_source_id)
        tokens.invalidate(data_source.data_source_id)

        assert tokens.cached_token(data_source.data_source_id) is None
        assert tokens.get_token(data_source.data_source_id).token_value.get_secret_value() == (
            "token-2"
        )

    def test_invalidate_unknown_is_noop(self, tokens):
        tokens.invalidate("never-seen")
        tokens.forget("never-seen")
        assert tokens.cached_token("never-seen") is None

    def test_forget(self, tokens, http_client, data_source):
        http_client.add("POST", AUTH_URL, auth_response())
        tokens.get_token(data_source.data_source_id)
        tokens.forget(data_source.data_source_id)
        assert tokens.cached_token(data_source.data_source_id) is None

    def test_sources_have_separate_slots(self, tokens, http_client, credential_store, registration):
        other_auth = "https://other.example.com/auth/token"
        first = credential_store.register(registration)
        second = credential_store.register({**registration, "authenticateUrl": other_auth})
        http_client.add("POST", registration["authenticateUrl"], auth_response("token-a"))
        http_client.add("POST", other_auth, auth_response("token-b"))

        assert tokens.get_token(first.data_source_id).token_value.get_secret_value() == "token-a"
        assert tokens.get_token(second.data_source_id).token_value.get_secret_value() == "token-b"
        tokens.invalidate(first.data_source_id)
        assert tokens.cached_token(second.data_source_id) is not None


class TestConcurrency:
    """Concurrent callers share one in-flight refresh."""

    def test_single_authenticate_call(self, tokens, http_client, data_source):
        http_client.add("POST", AUTH_URL, slow_auth_response("token-1", delay=0.2))
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            return tokens.get_token(data_source.data_source_id)

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = [f.result() for f in [executor.submit(worker) for _ in range(8)]]

        assert len(http_client.calls_to("POST", AUTH_URL)) == 1
        assert {r.token_value.get_secret_value() for r in results} == {"token-1"}

    def test_waiters_share_the_failure(self, tokens, http_client, data_source):
        def slow_reject(call):
            threading.Event().wait(0.2)
            return HttpResponse(401, body={"code": "BadRequest"})

        http_client.add("POST", AUTH_URL, slow_reject)
        barrier = threading.Barrier(4)

        def worker():
            barrier.wait()
            try:
                tokens.get_token(data_source.data_source_id)
            except AuthError as e:
                return e
            return None

        with ThreadPoolExecutor(max_workers=4) as executor:
            results = [f.result() for f in [executor.submit(worker) for _ in range(4)]]

        assert all(isinstance(r, AuthError) for r in results)
        # Late arrivals may start a second attempt, but never one per caller
        assert len(http_client.calls_to("POST", AUTH_URL)) < 4
        assert tokens.cached_token(data_source.data_source_id) is None


class TestFailures:
    """Failures raise AuthError and are never cached."""

    def test_rejected_credentials(self, tokens, http_client, data_source):
        http_client.add("POST", AUTH_URL, HttpResponse(401, body={"code": "BadRequest"}), auth_response())

        with pytest.raises(AuthError) as exc_info:
            tokens.get_token(data_source.data_source_id)
        assert exc_info.value.context["status"] == 401
        assert exc_info.value.data_source_id == data_source.data_source_id

        assert tokens.cached_token(data_source.data_source_id) is None
        tokens.get_token(data_source.data_source_id)
        assert len(http_client.calls_to("POST", AUTH_URL)) == 2

    def test_malformed_body(self, tokens, http_client, data_source):
        http_client.add("POST", AUTH_URL, HttpResponse(200, body={"token_type": "Bearer"}))
        with pytest.raises(AuthError):
            tokens.get_token(data_source.data_source_id)

    def test_non_json_body(self, tokens, http_client, data_source):
        http_client.add("POST", AUTH_URL, HttpResponse(200, body=None, text="<html/>"))
        with pytest.raises(AuthError):
            tokens.get_token(data_source.data_source_id)

    def test_network_failure(self, tokens, http_client, data_source):
        http_client.add("POST", AUTH_URL, NetworkError("connection refused", url=AUTH_URL))
        with pytest.raises(AuthError) as exc_info:
            tokens.get_token(data_source.data_source_id)
        assert isinstance(exc_info.value.cause, NetworkError)

    def test_missing_authenticate_endpoint(self, tokens, credential_store, http_client):
        source = credential_store.register(
            {"dataSourceName": "P", "userName": "u", "password": SECRET}
        )
        with pytest.raises(EndpointNotConfiguredError):
            tokens.get_token(source.data_source_id)
        assert http_client.calls == []

    def test_unknown_data_source(self, tokens):
        with pytest.raises(NotFoundError):
            tokens.get_token("missing")

    def test_secrets_never_logged(self, tokens, http_client, data_source, caplog):
        http_client.add(
            "POST",
            AUTH_URL,
            HttpResponse(400, body={"error": "invalid_client"}),
            HttpResponse(200, body={"expires_in": "soon"}),
            auth_response("bearer-value-123"),
        )
        with caplog.at_level(logging.DEBUG, logger="pcf_exchange"):
            for _ in range(2):
                with pytest.raises(AuthError):
                    tokens.get_token(data_source.data_source_id)
            tokens.get_token(data_source.data_source_id)

        assert SECRET not in caplog.text
        assert "bearer-value-123" not in caplog.text
