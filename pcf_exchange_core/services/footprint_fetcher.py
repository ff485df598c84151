"""
Footprint retrieval through a data source's GetFootprints action.

Listings are paged with the `Link: <...>; rel="next"` header. Pages of one
data source are requested strictly one after the other with the same token;
a 401/403 is treated as an expired token and retried once after a forced
refresh. Documents that fail mapping are collected as per-item errors and do
not abort the page.
"""

import threading
from typing import Iterator, List, Optional
from urllib.parse import quote, urljoin

from ..config import FetchConfig, get_config
from ..constants import ActionKind, Protocol
from ..exceptions import (
    AuthError,
    EndpointNotConfiguredError,
    NetworkError,
    PartnerResponseError,
    SyncCancelledError,
    ValidationError,
    not_found,
)
from ..processing.filter_parser import FetchFilter
from ..processing.footprint_mapper import map_product_footprint
from ..schemas.footprint_schemas import Footprint
from ..utils.http_client import HttpClient, HttpResponse
from ..utils.logger import get_logger
from .credential_service import CredentialStore
from .token_service import TokenManager

# Statuses that mean the bearer token was not accepted
AUTH_FAILURE_STATUSES = (401, 403)


class FootprintStream:
    """
    Lazy, one-shot sequence of footprints from one listing.

    Iterating requests pages on demand. Once exhausted or failed the stream
    stays exhausted; resume a failed listing with a new fetch from
    next_cursor, which always points at the first page not fully yielded.
    """

    def __init__(
        self,
        fetcher: "FootprintFetcher",
        data_source_id: str,
        url: str,
        fetch_filter: Optional[FetchFilter] = None,
        cursor: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.data_source_id = data_source_id
        self.errors: List[ValidationError] = []
        self.next_cursor: Optional[str] = cursor
        self.pages_fetched = 0
        self.count = 0
        self._fetcher = fetcher
        self._url = url
        self._filter = fetch_filter
        self._cancel_event = cancel_event
        self._items = self._generate()

    def __iter__(self) -> "FootprintStream":
        return self

    def __next__(self) -> Footprint:
        return next(self._items)

    def _first_page_params(self) -> dict:
        params = {Protocol.LIMIT_PARAM: self._fetcher.config.page_limit}
        rendered = self._filter.render() if self._filter else None
        if rendered:
            params[Protocol.FILTER_PARAM] = rendered
        return params

    def _generate(self) -> Iterator[Footprint]:
        resumed = self.next_cursor is not None
        url = self.next_cursor or self._url
        params = None if resumed else self._first_page_params()
        seen = set()

        while url:
            if self._cancel_event is not None and self._cancel_event.is_set():
                raise SyncCancelledError(self.data_source_id)
            if self.pages_fetched >= self._fetcher.config.max_pages:
                raise PartnerResponseError(
                    f"Listing exceeded {self._fetcher.config.max_pages} pages",
                    self.data_source_id,
                )
            if url in seen:
                raise PartnerResponseError(
                    "Next link repeats an earlier page", self.data_source_id, url=url
                )
            seen.add(url)

            response = self._fetcher.get_page(self.data_source_id, url, params)
            self.pages_fetched += 1
            body = response.body
            documents = body.get("data") if isinstance(body, dict) else None
            if not isinstance(documents, list):
                raise PartnerResponseError(
                    "GetFootprints response has no data list", self.data_source_id, url=url
                )

            for document in documents:
                try:
                    footprint, issues = map_product_footprint(document, self.data_source_id)
                except ValidationError as e:
                    self.errors.append(e)
                    continue
                self.errors.extend(issues)
                if self._filter is not None and not self._filter.matches(footprint):
                    continue
                self.count += 1
                yield footprint

            next_link = response.links.get(Protocol.NEXT_LINK_REL)
            url = urljoin(url, next_link) if next_link else None
            self.next_cursor = url
            params = None

        self._fetcher.logger.info(
            "Listing complete",
            extra={
                "data_source_id": self.data_source_id,
                "pages": self.pages_fetched,
                "count": self.count,
                "item_errors": len(self.errors),
            },
        )


class FootprintFetcher:
    """Calls GetFootprints and maps the results."""

    def __init__(
        self,
        credential_store: CredentialStore,
        token_manager: TokenManager,
        http_client: Optional[HttpClient] = None,
        config: Optional[FetchConfig] = None,
    ):
        self.credential_store = credential_store
        self.token_manager = token_manager
        self.http_client = http_client or token_manager.http_client
        self.config = config or get_config().fetch
        self.logger = get_logger()

    def _footprints_url(self, data_source_id: str) -> str:
        endpoint = self.credential_store.get(data_source_id).endpoint(ActionKind.GET_FOOTPRINTS)
        if endpoint is None:
            raise EndpointNotConfiguredError(data_source_id, ActionKind.GET_FOOTPRINTS.value)
        return endpoint.url

    def fetch_all(
        self,
        data_source_id: str,
        fetch_filter: Optional[FetchFilter] = None,
        cursor: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> FootprintStream:
        """
        List the footprints of a data source.

        The endpoint is checked now; the token and the first page are only
        requested once the stream is iterated.

        Args:
            data_source_id: Data source to list
            fetch_filter: Optional selection forwarded as `$filter`
            cursor: next_cursor of an earlier failed stream to resume from
            cancel_event: Checked before each page request

        Raises:
            NotFoundError: If the data source does not exist
            EndpointNotConfiguredError: If it has no GetFootprints endpoint
        """
        url = self._footprints_url(data_source_id)
        return FootprintStream(self, data_source_id, url, fetch_filter, cursor, cancel_event)

    def fetch_one(self, data_source_id: str, data_id: str) -> Footprint:
        """
        Fetch a single footprint by dataId.

        Raises:
            NotFoundError: If the partner does not know the footprint
            ValidationError: If the document cannot be mapped
            AuthError, NetworkError, PartnerResponseError: On call failures
        """
        url = f"{self._footprints_url(data_source_id).rstrip('/')}/{quote(data_id, safe='')}"
        response = self._call(data_source_id, url)
        if response.status == 404:
            raise not_found("Footprint", data_source_id=data_source_id, data_id=data_id)
        self._raise_for_status(data_source_id, url, response)

        document = response.body.get("data") if isinstance(response.body, dict) else None
        if not isinstance(document, dict):
            raise PartnerResponseError(
                "GetFootprints response has no data object", data_source_id, url=url
            )
        footprint, issues = map_product_footprint(document, data_source_id)
        if issues:
            self.logger.warning(
                "Footprint fetched with identifier issues",
                extra={"data_source_id": data_source_id, "data_id": data_id, "issue_count": len(issues)},
            )
        return footprint

    def get_page(self, data_source_id: str, url: str, params: Optional[dict] = None) -> HttpResponse:
        """One authorized listing request; raises on any non-2xx outcome."""
        response = self._call(data_source_id, url, params)
        self._raise_for_status(data_source_id, url, response)
        return response

    def _call(self, data_source_id: str, url: str, params: Optional[dict] = None) -> HttpResponse:
        token = self.token_manager.get_token(data_source_id)
        response = self._send(data_source_id, url, token.authorization_header(), params)
        if response.status not in AUTH_FAILURE_STATUSES:
            return response

        self.logger.info(
            "Token rejected, refreshing once",
            extra={"data_source_id": data_source_id, "status": response.status},
        )
        self.token_manager.invalidate(data_source_id)
        token = self.token_manager.get_token(data_source_id, force_refresh=True)
        response = self._send(data_source_id, url, token.authorization_header(), params)
        if response.status in AUTH_FAILURE_STATUSES:
            self.token_manager.invalidate(data_source_id)
            raise AuthError(
                "GetFootprints rejected a freshly issued token",
                data_source_id,
                status=response.status,
                url=url,
            )
        return response

    def _send(
        self, data_source_id: str, url: str, authorization: str, params: Optional[dict]
    ) -> HttpResponse:
        try:
            return self.http_client.request(
                url,
                "GET",
                headers={"Authorization": authorization, "Accept": "application/json"},
                params=params,
            )
        except NetworkError as e:
            e.data_source_id = data_source_id
            raise e.add_context(data_source_id=data_source_id)

    def _raise_for_status(self, data_source_id: str, url: str, response: HttpResponse) -> None:
        if not response.ok:
            raise NetworkError(
                f"GetFootprints returned HTTP {response.status}",
                data_source_id,
                status=response.status,
                url=url,
            )
