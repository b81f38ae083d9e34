"""
Tests for ServiceResult and BaseService helpers.
"""

from __future__ import annotations

import logging

from core.exceptions import NotFoundError
from core.services import BaseService, ServiceResult


class ExampleService(BaseService):
    pass


# =============================================================================
# ServiceResult
# =============================================================================


class TestServiceResult:
    def test_success(self):
        result = ServiceResult.success({"id": 1})

        assert result
        assert result.data == {"id": 1}
        assert result.to_response() == {"success": True, "data": {"id": 1}}

    def test_failure(self):
        result = ServiceResult.failure(
            "No verified bank account",
            error_code="NO_BANK_ACCOUNT",
            errors={"bank_account": ["Missing"]},
        )

        assert not result
        assert result.data is None
        assert result.to_response() == {
            "success": False,
            "error": "No verified bank account",
            "error_code": "NO_BANK_ACCOUNT",
            "errors": {"bank_account": ["Missing"]},
        }

    def test_failure_response_omits_empty_fields(self):
        assert ServiceResult.failure("Boom").to_response() == {
            "success": False,
            "error": "Boom",
        }

    def test_from_exception_defaults_code_to_class_name(self):
        result = ServiceResult.from_exception(KeyError("missing"))

        assert result.error_code == "KEYERROR"

    def test_from_exception_with_code(self):
        result = ServiceResult.from_exception(RuntimeError("down"), error_code="UNAVAILABLE")

        assert result.error == "down"
        assert result.error_code == "UNAVAILABLE"


# =============================================================================
# BaseService
# =============================================================================


class TestBaseService:
    def test_logger_named_after_service(self):
        assert ExampleService.get_logger().name == f"{__name__}.ExampleService"

    def test_handle_exception_keeps_error_code(self, mocker):
        log = mocker.patch.object(logging.Logger, "log")

        result = ExampleService.handle_exception(
            NotFoundError("Payout missing", error_code="PAYOUT_NOT_FOUND"),
            context="Loading payout",
        )

        assert result.error_code == "PAYOUT_NOT_FOUND"
        log.assert_called_once()
        assert log.call_args.args[1] == "Loading payout: [PAYOUT_NOT_FOUND] Payout missing"

    def test_validate_required(self):
        result = ExampleService.validate_required(account_holder_name=" ", routing_number="x")

        assert result is not None
        assert result.errors == {"account_holder_name": ["This field is required."]}
        assert not result

    def test_validate_required_passes(self):
        assert ExampleService.validate_required(routing_number="011000015") is None
