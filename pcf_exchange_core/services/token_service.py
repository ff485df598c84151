"""
Bearer token management per data source.

Tokens are obtained from each data source's Authenticate action with a
client-credentials exchange and cached until they come within the refresh
margin of expiry. Each data source has its own cache slot: callers that need
a token while a refresh for the same source is in flight wait on that
refresh instead of authenticating again. Slots of different sources never
block each other.
"""

import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from ..config import TokenConfig, get_config
from ..constants import ActionKind, Protocol
from ..exceptions import AuthError, EndpointNotConfiguredError, NetworkError
from ..schemas.pathfinder_schemas import AuthenticateResponse
from ..schemas.token_schemas import AuthToken
from ..utils.http_client import HttpClient
from ..utils.logger import get_logger
from .credential_service import CredentialStore


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _TokenSlot:
    """Cache entry of one data source."""

    def __init__(self):
        self.lock = threading.Lock()
        self.token: Optional[AuthToken] = None
        self.inflight: Optional[Future] = None
        # Bumped on invalidate so a refresh started earlier is not cached
        self.generation = 0


class TokenManager:
    """Single-flight token cache keyed by data source id."""

    def __init__(
        self,
        credential_store: CredentialStore,
        http_client: Optional[HttpClient] = None,
        config: Optional[TokenConfig] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.credential_store = credential_store
        self.http_client = http_client or HttpClient()
        self.config = config or get_config().token
        self.clock = clock
        self._slots: Dict[str, _TokenSlot] = {}
        self._slots_lock = threading.Lock()
        self.logger = get_logger()

    def _slot(self, data_source_id: str) -> _TokenSlot:
        with self._slots_lock:
            slot = self._slots.get(data_source_id)
            if slot is None:
                slot = self._slots[data_source_id] = _TokenSlot()
            return slot

    def get_token(self, data_source_id: str, force_refresh: bool = False) -> AuthToken:
        """
        Return a usable token, authenticating if needed.

        Args:
            data_source_id: Data source to authenticate against
            force_refresh: Ignore the cached token, e.g. after the partner
                rejected it

        Raises:
            AuthError: If authentication fails; nothing is cached
            EndpointNotConfiguredError: If the source has no Authenticate endpoint
            NotFoundError: If the data source does not exist
        """
        slot = self._slot(data_source_id)
        with slot.lock:
            cached = slot.token
            if (
                not force_refresh
                and cached is not None
                and not cached.expires_within(self.config.refresh_margin_seconds, self.clock())
            ):
                return cached
            if slot.inflight is None:
                future: Future = Future()
                slot.inflight = future
                generation = slot.generation
                leader = True
            else:
                future = slot.inflight
                leader = False

        if not leader:
            try:
                return future.result(timeout=self.config.wait_timeout_seconds)
            except FutureTimeoutError as e:
                raise AuthError(
                    "Timed out waiting for an in-flight authentication",
                    data_source_id,
                    cause=e,
                )

        try:
            token = self._authenticate(data_source_id)
        except Exception as e:
            with slot.lock:
                if slot.inflight is future:
                    slot.inflight = None
            future.set_exception(e)
            raise

        with slot.lock:
            if slot.generation == generation:
                slot.token = token
            if slot.inflight is future:
                slot.inflight = None
        future.set_result(token)
        return token

    def invalidate(self, data_source_id: str) -> None:
        """Drop the cached token; the next get_token authenticates again."""
        with self._slots_lock:
            slot = self._slots.get(data_source_id)
        if slot is None:
            return
        with slot.lock:
            slot.token = None
            slot.inflight = None
            slot.generation += 1
        self.logger.info("Token invalidated", extra={"data_source_id": data_source_id})

    def forget(self, data_source_id: str) -> None:
        """Invalidate and drop the cache slot of a data source being removed."""
        with self._slots_lock:
            slot = self._slots.pop(data_source_id, None)
        if slot is None:
            return
        with slot.lock:
            slot.token = None
            slot.inflight = None
            slot.generation += 1
        self.logger.info("Token cache entry removed", extra={"data_source_id": data_source_id})

    def cached_token(self, data_source_id: str) -> Optional[AuthToken]:
        """The cached token without refreshing, if any."""
        with self._slots_lock:
            slot = self._slots.get(data_source_id)
        if slot is None:
            return None
        with slot.lock:
            return slot.token

    def _authenticate(self, data_source_id: str) -> AuthToken:
        data_source = self.credential_store.get(data_source_id)
        endpoint = data_source.endpoint(ActionKind.AUTHENTICATE)
        if endpoint is None:
            raise EndpointNotConfiguredError(data_source_id, ActionKind.AUTHENTICATE.value)

        self.logger.info(
            "Authenticating with data source",
            extra={"data_source_id": data_source_id, "url": endpoint.url},
        )
        try:
            response = self.http_client.request(
                endpoint.url,
                "POST",
                headers={"Accept": "application/json"},
                form={"grant_type": Protocol.GRANT_TYPE},
                auth=data_source.credentials(),
            )
        except NetworkError as e:
            raise AuthError(
                "Authenticate endpoint unreachable",
                data_source_id,
                cause=e,
                url=endpoint.url,
            )

        if not response.ok:
            raise AuthError(
                f"Authenticate returned HTTP {response.status}",
                data_source_id,
                status=response.status,
                url=endpoint.url,
            )

        try:
            body = AuthenticateResponse.model_validate(response.body)
        except PydanticValidationError as e:
            raise AuthError(
                "Authenticate response did not contain an access token",
                data_source_id,
                cause=e,
                url=endpoint.url,
            )

        lifetime = body.expires_in
        if lifetime is None:
            lifetime = self.config.default_lifetime_seconds
        token = AuthToken(
            data_source_id=data_source_id,
            token_value=body.access_token,
            expires_at=self.clock() + timedelta(seconds=lifetime),
            token_type=body.token_type or "Bearer",
        )
        self.logger.info(
            "Token obtained",
            extra={"data_source_id": data_source_id, "expires_at": token.expires_at.isoformat()},
        )
        return token
