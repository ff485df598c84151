"""Integration tests for FootprintFetcher against a scripted partner."""

import threading

import pytest

from pcf_exchange_core.config import FetchConfig
from pcf_exchange_core.exceptions import (
    AuthError,
    EndpointNotConfiguredError,
    NetworkError,
    NotFoundError,
    PartnerResponseError,
    SyncCancelledError,
)
from pcf_exchange_core.processing.filter_parser import FetchFilter
from pcf_exchange_core.services.footprint_fetcher import FootprintFetcher
from pcf_exchange_core.utils.http_client import HttpResponse
from tests.fixtures.factories import footprint_document
from tests.fixtures.fakes import AUTH_URL, FOOTPRINTS_URL, SECRET, auth_response, page_response

pytestmark = pytest.mark.integration

PAGE_2 = FOOTPRINTS_URL + "?cursor=2"
PAGE_3 = FOOTPRINTS_URL + "?cursor=3"
OTHER_PRODUCT = "urn:uuid:0f8fad5b-d9cb-469f-a165-70867728950e"


@pytest.fixture
def source_id(data_source, http_client):
    http_client.add("POST", AUTH_URL, auth_response("token-1"))
    return data_source.data_source_id


def _gets(http_client, url=None):
    return [c for c in http_client.calls if c.method == "GET" and (url is None or c.url == url)]


class TestPagination:
    """Listings follow rel="next" links page by page."""

    def test_follows_next_links(self, fetcher, http_client, source_id):
        http_client.add(
            "GET",
            FOOTPRINTS_URL,
            page_response([footprint_document("a"), footprint_document("b")], next_url=PAGE_2),
        )
        http_client.add("GET", PAGE_2, page_response([footprint_document("c")]))

        stream = fetcher.fetch_all(source_id)
        assert [f.data_id for f in stream] == ["a", "b", "c"]

        assert stream.pages_fetched == 2
        assert stream.count == 3
        assert stream.next_cursor is None
        assert stream.errors == []
        first, second = _gets(http_client)
        assert first.params == {"limit": 2}
        assert second.params is None
        assert {c.headers["Authorization"] for c in (first, second)} == {"Bearer token-1"}
        assert len(http_client.calls_to("POST", AUTH_URL)) == 1

    def test_relative_next_link(self, fetcher, http_client, source_id):
        http_client.add(
            "GET", FOOTPRINTS_URL, page_response([footprint_document("a")], next_url="/2/footprints?cursor=2")
        )
        http_client.add("GET", PAGE_2, page_response([footprint_document("b")]))
        assert [f.data_id for f in fetcher.fetch_all(source_id)] == ["a", "b"]

    def test_lazy_until_iterated(self, fetcher, http_client, source_id):
        http_client.add("GET", FOOTPRINTS_URL, page_response([footprint_document("a")]))
        stream = fetcher.fetch_all(source_id)
        assert http_client.calls == []
        assert next(stream).data_id == "a"
        with pytest.raises(StopIteration):
            next(stream)

    def test_mapping_failures_are_item_errors(self, fetcher, http_client, source_id):
        broken = footprint_document("broken")
        del broken["pcf"]
        http_client.add(
            "GET", FOOTPRINTS_URL, page_response([broken, footprint_document("ok"), "not a document"])
        )

        stream = fetcher.fetch_all(source_id)
        assert [f.data_id for f in stream] == ["ok"]
        assert len(stream.errors) == 2
        assert stream.errors[0].context["data_id"] == "broken"

    @pytest.mark.parametrize(
        "field, value",
        [
            ("dqi", "n/a"),
            ("productOrSectorSpecificRules", ["PEF"]),
            ("crossSectoralStandardsUsed", [{"name": "ISO Standard 14067"}]),
        ],
    )
    def test_malformed_nested_value_skips_only_that_item(
        self, fetcher, http_client, source_id, field, value
    ):
        malformed = footprint_document("b")
        malformed["pcf"][field] = value
        http_client.add(
            "GET",
            FOOTPRINTS_URL,
            page_response([footprint_document("a"), malformed, footprint_document("c")]),
        )

        stream = fetcher.fetch_all(source_id)
        assert [f.data_id for f in stream] == ["a", "c"]
        assert [e.context["data_id"] for e in stream.errors] == ["b"]

    def test_identifier_issues_collected(self, fetcher, http_client, source_id):
        http_client.add(
            "GET",
            FOOTPRINTS_URL,
            page_response([footprint_document("a", companyIds=["urn:nope:1"])]),
        )
        stream = fetcher.fetch_all(source_id)
        assert len(list(stream)) == 1
        assert stream.errors[0].context["field"] == "companyIds"

    def test_body_without_data_list(self, fetcher, http_client, source_id):
        http_client.add("GET", FOOTPRINTS_URL, HttpResponse(200, body={"items": []}))
        with pytest.raises(PartnerResponseError):
            list(fetcher.fetch_all(source_id))

    def test_loop_detected(self, fetcher, http_client, source_id):
        http_client.add("GET", FOOTPRINTS_URL, page_response([], next_url=PAGE_2))
        http_client.add("GET", PAGE_2, page_response([], next_url=FOOTPRINTS_URL))
        with pytest.raises(PartnerResponseError):
            list(fetcher.fetch_all(source_id))
        assert len(_gets(http_client)) == 2

    def test_page_limit_enforced(self, credential_store, token_manager, http_client, source_id):
        fetcher = FootprintFetcher(
            credential_store, token_manager, http_client, FetchConfig(page_limit=1, max_pages=2)
        )
        http_client.add("GET", FOOTPRINTS_URL, page_response([footprint_document("a")], next_url=PAGE_2))
        http_client.add("GET", PAGE_2, page_response([footprint_document("b")], next_url=PAGE_3))
        http_client.add("GET", PAGE_3, page_response([footprint_document("c")]))

        stream = fetcher.fetch_all(source_id)
        received = []
        with pytest.raises(PartnerResponseError):
            for footprint in stream:
                received.append(footprint.data_id)
        assert received == ["a", "b"]
        assert _gets(http_client, PAGE_3) == []


class TestFilters:
    def test_filter_sent_on_first_page_only(self, fetcher, http_client, source_id):
        http_client.add(
            "GET", FOOTPRINTS_URL, page_response([footprint_document("a")], next_url=PAGE_2)
        )
        http_client.add("GET", PAGE_2, page_response([]))

        list(fetcher.fetch_all(source_id, FetchFilter(odata="version gt 1")))

        first, second = _gets(http_client)
        assert first.params == {"limit": 2, "$filter": "version gt 1"}
        assert second.params is None

    def test_product_selection_applied_locally(self, fetcher, http_client, source_id):
        wanted = "urn:uuid:750db35f-c260-4f9c-8fa6-b2a573e9f923"
        http_client.add(
            "GET",
            FOOTPRINTS_URL,
            page_response(
                [
                    footprint_document("a", product_urn=wanted),
                    footprint_document("b", product_urn=OTHER_PRODUCT),
                ]
            ),
        )
        stream = fetcher.fetch_all(source_id, FetchFilter(product_ids=[wanted]))
        assert [f.data_id for f in stream] == ["a"]
        assert "productIds/any" in _gets(http_client)[0].params["$filter"]


class TestTokenHandling:
    """A rejected token is refreshed and the request retried exactly once."""

    def test_refresh_and_retry_once(self, fetcher, http_client, data_source):
        http_client.add("POST", AUTH_URL, auth_response("token-1"), auth_response("token-2"))
        http_client.add(
            "GET",
            FOOTPRINTS_URL,
            HttpResponse(401, body={"code": "TokenExpired"}),
            page_response([footprint_document("a")]),
        )

        assert [f.data_id for f in fetcher.fetch_all(data_source.data_source_id)] == ["a"]

        first, retry = _gets(http_client)
        assert first.headers["Authorization"] == "Bearer token-1"
        assert retry.headers["Authorization"] == "Bearer token-2"
        assert retry.params == {"limit": 2}
        assert len(http_client.calls_to("POST", AUTH_URL)) == 2

    def test_second_rejection_is_auth_error(self, fetcher, http_client, token_manager, data_source):
        http_client.add("POST", AUTH_URL, auth_response("token-1"), auth_response("token-2"))
        http_client.add("GET", FOOTPRINTS_URL, HttpResponse(403, body={"code": "AccessDenied"}))

        with pytest.raises(AuthError) as exc_info:
            list(fetcher.fetch_all(data_source.data_source_id))

        assert exc_info.value.context["status"] == 403
        assert len(_gets(http_client)) == 2
        assert token_manager.cached_token(data_source.data_source_id) is None

    def test_authenticate_failure_stops_listing(self, fetcher, http_client, data_source):
        http_client.add("POST", AUTH_URL, HttpResponse(400, body={"error": "invalid_client"}))
        with pytest.raises(AuthError):
            list(fetcher.fetch_all(data_source.data_source_id))
        assert _gets(http_client) == []

    def test_secret_not_sent_to_footprints_endpoint(self, fetcher, http_client, source_id):
        http_client.add("GET", FOOTPRINTS_URL, page_response([]))
        list(fetcher.fetch_all(source_id))
        [call] = _gets(http_client)
        assert call.auth is None
        assert SECRET not in str(call.headers)


class TestFailuresAndResume:
    def test_resume_from_cursor(self, fetcher, http_client, source_id):
        http_client.add(
            "GET", FOOTPRINTS_URL, page_response([footprint_document("a")], next_url=PAGE_2)
        )
        http_client.add(
            "GET", PAGE_2, HttpResponse(500, body=None), page_response([footprint_document("b")])
        )

        stream = fetcher.fetch_all(source_id)
        received = []
        with pytest.raises(NetworkError) as exc_info:
            for footprint in stream:
                received.append(footprint.data_id)
        assert received == ["a"]
        assert exc_info.value.data_source_id == source_id
        assert stream.next_cursor == PAGE_2

        resumed = fetcher.fetch_all(source_id, cursor=stream.next_cursor)
        assert [f.data_id for f in resumed] == ["b"]
        assert _gets(http_client, PAGE_2)[-1].params is None

    def test_network_error_carries_source(self, fetcher, http_client, source_id):
        http_client.add("GET", FOOTPRINTS_URL, NetworkError("connection reset", url=FOOTPRINTS_URL))
        with pytest.raises(NetworkError) as exc_info:
            list(fetcher.fetch_all(source_id))
        assert exc_info.value.data_source_id == source_id
        assert exc_info.value.context["data_source_id"] == source_id

    def test_cancelled_before_next_page(self, fetcher, http_client, source_id):
        http_client.add(
            "GET", FOOTPRINTS_URL, page_response([footprint_document("a")], next_url=PAGE_2)
        )
        http_client.add("GET", PAGE_2, page_response([footprint_document("b")]))
        cancel = threading.Event()

        stream = fetcher.fetch_all(source_id, cancel_event=cancel)
        assert next(stream).data_id == "a"
        cancel.set()
        with pytest.raises(SyncCancelledError):
            next(stream)
        assert _gets(http_client, PAGE_2) == []
        assert stream.next_cursor == PAGE_2

    def test_missing_endpoint_fails_eagerly(self, fetcher, credential_store):
        source = credential_store.register(
            {"dataSourceName": "P", "userName": "u", "password": SECRET, "authenticateUrl": AUTH_URL}
        )
        with pytest.raises(EndpointNotConfiguredError):
            fetcher.fetch_all(source.data_source_id)


class TestFetchOne:
    """Single footprint retrieval."""

    def test_fetch_by_data_id(self, fetcher, http_client, source_id):
        http_client.add(
            "GET", FOOTPRINTS_URL + "/pf-1", HttpResponse(200, body={"data": footprint_document("pf-1", 4)})
        )
        footprint = fetcher.fetch_one(source_id, "pf-1")
        assert (footprint.data_id, footprint.version) == ("pf-1", 4)
        assert footprint.data_source_id == source_id

    def test_data_id_is_quoted(self, fetcher, http_client, source_id):
        http_client.add(
            "GET",
            FOOTPRINTS_URL + "/a%2Fb%20c",
            HttpResponse(200, body={"data": footprint_document("a/b c")}),
        )
        assert fetcher.fetch_one(source_id, "a/b c").data_id == "a/b c"

    def test_not_found(self, fetcher, source_id):
        with pytest.raises(NotFoundError):
            fetcher.fetch_one(source_id, "missing")

    def test_server_error(self, fetcher, http_client, source_id):
        http_client.add("GET", FOOTPRINTS_URL + "/pf-1", HttpResponse(503, body=None))
        with pytest.raises(NetworkError) as exc_info:
            fetcher.fetch_one(source_id, "pf-1")
        assert exc_info.value.context["status"] == 503

    def test_body_without_document(self, fetcher, http_client, source_id):
        http_client.add("GET", FOOTPRINTS_URL + "/pf-1", HttpResponse(200, body={"data": []}))
        with pytest.raises(PartnerResponseError):
            fetcher.fetch_one(source_id, "pf-1")
