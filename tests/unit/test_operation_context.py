"""Tests for operation logging and error enrichment."""

import logging
from unittest.mock import Mock, patch

import pytest

from pcf_exchange_core.context.operation_context import OperationHandler, operation
from pcf_exchange_core.exceptions import NotFoundError, get_correlation_id, set_correlation_id


@pytest.fixture
def mock_logger():
    return Mock(spec=logging.Logger)


class TestOperationHandler:
    """ENTER/EXIT/ERROR lines around an operation."""

    def test_success_logs_enter_and_exit_with_metrics(self, mock_logger):
        handler = OperationHandler(mock_logger)

        with handler.operation("sync_one", data_source_id="ds-1") as op:
            op.add_metric("stored", 3)

        enter, exit_ = mock_logger.info.call_args_list
        assert enter.args[0] == "ENTER: sync_one"
        assert exit_.args[0] == "EXIT: sync_one"
        assert exit_.kwargs["extra"]["stored"] == 3
        assert exit_.kwargs["extra"]["status"] == "success"
        assert exit_.kwargs["extra"]["data_source_id"] == "ds-1"

    def test_base_error_enriched_and_reraised(self, mock_logger):
        handler = OperationHandler(mock_logger)

        with pytest.raises(NotFoundError) as exc_info:
            with handler.operation("get_data_source"):
                raise NotFoundError("Data source not found", resource_id="ds-1")

        assert exc_info.value.context["operation_name"] == "get_data_source"
        assert "operation_id" in exc_info.value.context
        assert mock_logger.error.call_args.args[0].startswith("ERROR: get_data_source ->")

    def test_unexpected_error_logged_with_traceback(self, mock_logger):
        handler = OperationHandler(mock_logger)

        with pytest.raises(KeyError):
            with handler.operation("ingest"):
                raise KeyError("dataId")

        extra = mock_logger.exception.call_args.kwargs["extra"]
        assert extra["error_type"] == "KeyError"
        assert extra["status"] == "error"

    def test_existing_correlation_id_reused(self, mock_logger):
        set_correlation_id("corr-1")
        with OperationHandler(mock_logger).operation("x") as op:
            assert op.correlation_id == "corr-1"

    def test_correlation_id_generated(self, mock_logger):
        with OperationHandler(mock_logger).operation("x") as op:
            assert get_correlation_id() == op.correlation_id


class Registry:
    @operation
    def register(self, registration):
        return registration["dataSourceName"]

    @operation("custom_name")
    def named(self):
        return "ok"


class TestOperationDecorator:
    def test_method_name_and_masked_arguments(self, mock_logger):
        with patch("pcf_exchange_core.context.operation_context.get_logger", return_value=mock_logger):
            result = Registry().register({"dataSourceName": "Partner", "password": "hunter2"})

        assert result == "Partner"
        debug_line = mock_logger.debug.call_args.args[0]
        assert "hunter2" not in debug_line
        assert "Partner" in debug_line
        assert mock_logger.info.call_args_list[0].args[0] == "ENTER: test_operation_context.Registry.register"

    def test_explicit_name(self, mock_logger):
        with patch("pcf_exchange_core.context.operation_context.get_logger", return_value=mock_logger):
            assert Registry().named() == "ok"
        assert mock_logger.info.call_args_list[-1].args[0] == "EXIT: custom_name"
