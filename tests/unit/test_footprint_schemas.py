"""Tests for footprint, data source, token and event schemas."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from pcf_exchange_core.constants import ActionKind, EventType, IngestAction
from pcf_exchange_core.exceptions import ValidationError
from pcf_exchange_core.schemas.data_source_schemas import (
    DataSource,
    DataSourceRegistration,
    Endpoint,
    upsert_endpoints,
)
from pcf_exchange_core.schemas.event_schemas import CloudEvent, FootprintNotification, IngestResult
from pcf_exchange_core.schemas.footprint_schemas import ChildFootprint, FieldState, Footprint
from pcf_exchange_core.schemas.pathfinder_schemas import AuthenticateResponse
from pcf_exchange_core.schemas.token_schemas import AuthToken
from tests.fixtures.factories import FootprintFactory, child
from tests.fixtures.fakes import SECRET


class TestDecimalQuantities:
    """Quantities are decimals, never binary floats."""

    def test_strings_and_ints_accepted(self):
        footprint = FootprintFactory(amount="2.50", carbon_footprint=7)
        assert footprint.amount == Decimal("2.50")
        assert footprint.carbon_footprint == Decimal("7")

    def test_float_rejected(self):
        with pytest.raises(PydanticValidationError):
            FootprintFactory(carbon_footprint=0.1)

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "abc", True])
    def test_non_finite_or_garbage_rejected(self, value):
        with pytest.raises(PydanticValidationError):
            FootprintFactory(carbon_footprint=value)

    def test_serialized_as_decimal_strings(self):
        record = FootprintFactory(amount="0.10", carbon_footprint="1.234567890123456789").to_record()
        assert record["amount"] == "0.10"
        assert record["carbonFootprint"] == "1.234567890123456789"
        assert record["amountUnit"] == "kg"

    def test_amount_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            FootprintFactory(amount="0")


class TestFootprint:
    """Footprint model invariants."""

    def test_validity_window_order(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        with pytest.raises(PydanticValidationError):
            FootprintFactory(available_start_date=start, available_end_date=start - timedelta(days=1))

    def test_open_ended_window_allowed(self):
        footprint = FootprintFactory(available_start_date=datetime(2025, 1, 1, tzinfo=timezone.utc))
        assert footprint.available_end_date is None

    def test_invalid_identifier_rejected(self):
        with pytest.raises(PydanticValidationError):
            FootprintFactory(product_ids=[{"scheme": "SGTIN", "code": "12AB"}])

    def test_local_flag(self):
        footprint = FootprintFactory()
        assert not footprint.is_local
        footprint.product_footprint_id = 3
        assert footprint.is_local

    def test_record_keeps_sparse_children(self):
        footprint = FootprintFactory(breakdown=[child(data_id="c1", carbon_footprint=None)])
        record = footprint.to_record()
        assert record["breakdown"] == [{"dataId": "c1", "carbonFootprint": None}]
        restored = Footprint.from_record(record)
        assert restored.breakdown[0].field_state("carbon_footprint") == FieldState.NULL
        assert restored.breakdown[0].field_state("primary_data_share") == FieldState.ABSENT


class TestChildFootprint:
    """Absent, null and value are three different states."""

    def test_field_states(self):
        entry = ChildFootprint.model_validate({"dataId": "c1", "carbonFootprint": None})
        assert entry.field_state("data_id") == FieldState.VALUE
        assert entry.field_state("carbon_footprint") == FieldState.NULL
        assert entry.field_state("carbon_footprint_including_biogenic") == FieldState.ABSENT
        assert entry.get("data_id") == (FieldState.VALUE, "c1")
        assert entry.present_fields() == {"data_id", "carbon_footprint"}

    def test_unset(self):
        entry = child(carbon_footprint="4")
        entry.unset("carbon_footprint")
        assert entry.field_state("carbon_footprint") == FieldState.ABSENT
        assert entry.to_record() == {}

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            child().field_state("nope")

    def test_nested_breakdown(self):
        entry = ChildFootprint.model_validate(
            {"dataId": "c1", "breakdown": [{"dataId": "c1.1", "carbonFootprint": "1"}]}
        )
        assert entry.breakdown[0].carbon_footprint == Decimal("1")
        assert entry.to_record()["breakdown"] == [{"dataId": "c1.1", "carbonFootprint": "1"}]


class TestDataSourceSchemas:
    """Endpoint sets and credentials."""

    def test_endpoint_url_scheme(self):
        with pytest.raises(PydanticValidationError):
            Endpoint(type=ActionKind.AUTHENTICATE, url="ftp://a/x")

    def test_duplicate_kinds_rejected(self):
        with pytest.raises(PydanticValidationError):
            DataSourceRegistration.model_validate(
                {
                    "dataSourceName": "P",
                    "userName": "u",
                    "password": SECRET,
                    "endpoints": [
                        {"type": "Authenticate", "url": "https://a/1"},
                        {"type": "Authenticate", "url": "https://a/2"},
                    ],
                }
            )

    def test_validation_errors_do_not_echo_secret(self):
        with pytest.raises(PydanticValidationError) as exc_info:
            DataSourceRegistration.model_validate({"password": SECRET})
        assert SECRET not in str(exc_info.value)

    def test_upsert_keeps_position_and_appends(self):
        existing = [
            Endpoint(type=ActionKind.AUTHENTICATE, url="https://a/x"),
            Endpoint(type=ActionKind.GET_FOOTPRINTS, url="https://a/y"),
        ]
        result = upsert_endpoints(
            existing,
            [
                Endpoint(type=ActionKind.UPDATE_EVENT, url="https://a/z"),
                Endpoint(type=ActionKind.AUTHENTICATE, url="https://a/x2"),
            ],
        )
        assert [(e.type, e.url) for e in result] == [
            (ActionKind.AUTHENTICATE, "https://a/x2"),
            (ActionKind.GET_FOOTPRINTS, "https://a/y"),
            (ActionKind.UPDATE_EVENT, "https://a/z"),
        ]
        assert existing[0].url == "https://a/x"

    def test_record_excludes_secret(self):
        source = DataSource(
            data_source_id="ds-1", data_source_name="P", user_name="u", password=SECRET
        )
        assert SECRET not in str(source.to_record())
        assert SECRET not in repr(source)
        assert source.credentials() == ("u", SECRET)


class TestTokenSchemas:
    """Tokens and Authenticate bodies."""

    def test_expiry_margin(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        token = AuthToken(data_source_id="ds", token_value="t", expires_at=now + timedelta(seconds=90))
        assert not token.expires_within(60, now)
        assert token.expires_within(120, now)
        assert token.authorization_header() == "Bearer t"
        assert str(token.token_value) == "**********"

    def test_authenticate_response(self):
        body = AuthenticateResponse.model_validate({"access_token": "abc", "expires_in": Decimal("3600")})
        assert body.expires_in == 3600
        with pytest.raises(PydanticValidationError):
            AuthenticateResponse.model_validate({"token_type": "Bearer"})


class TestEventSchemas:
    """Notifications derived from inbound events."""

    def test_payload(self):
        notification = FootprintNotification.from_payload({"dataId": "pf-1", "version": 3})
        assert (notification.data_id, notification.version) == ("pf-1", 3)

    @pytest.mark.parametrize(
        "payload", [{}, {"dataId": ""}, {"version": 1}, {"dataId": "pf", "version": -1}, "pf-1"]
    )
    def test_malformed_payload(self, payload):
        with pytest.raises(ValidationError):
            FootprintNotification.from_payload(payload)

    def test_published_event_expands_ids(self):
        event = CloudEvent(
            type=EventType.FOOTPRINT_PUBLISHED.value, id="e1", data={"pfIds": ["a", "b"]}
        )
        notifications = FootprintNotification.from_cloud_event(event)
        assert [n.data_id for n in notifications] == ["a", "b"]
        assert all(n.version is None and n.event_id == "e1" for n in notifications)

    def test_unknown_event_type(self):
        assert CloudEvent(type="org.example.Other").event_type is None

    def test_ignored_result(self):
        result = IngestResult.ignored("org.example.Other")
        assert result.action == IngestAction.IGNORED
        assert result.wait() is None
        assert "fetch" not in result.model_dump()
