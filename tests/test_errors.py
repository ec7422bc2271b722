"""Tests for core/errors.py and core/tiers.py."""

import pytest
from govgate.core.errors import (
    ApprovalError,
    ConfigurationError,
    ExitCode,
    GovGateError,
    InvalidSignatureError,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)
from govgate.core.tiers import TIER_DEFAULTS, get_tier_defaults, is_valid_tier


class TestErrorHierarchy:
    """Tests for exception classes."""

    def test_exit_codes(self):
        assert ConfigurationError("x").exit_code == ExitCode.CONFIG_ERROR
        assert ValidationError("x").exit_code == ExitCode.VALIDATION_ERROR
        assert GovGateError("x").exit_code == ExitCode.UNKNOWN_ERROR

    def test_details_default_to_empty(self):
        assert GovGateError("x").details == {}

    def test_approval_reason_codes(self):
        assert InvalidSignatureError("bad proof").reason_code == "invalid_signature"
        assert ApprovalError("x", reason_code="custom").reason_code == "custom"
        assert ApprovalError("x").reason_code == "approval_error"


class TestMainWithErrorHandling:
    """Tests for the CLI error decorator."""

    def test_passes_through_return_value(self):
        @main_with_error_handling()
        def command():
            return 0

        assert command() == 0

    def test_gateway_error_maps_to_exit_code(self):
        @main_with_error_handling()
        def command():
            raise ConfigurationError("bad config", {"path": "policy.yaml"})

        assert command() == ExitCode.CONFIG_ERROR

    def test_unexpected_error(self):
        @main_with_error_handling(log_errors=False)
        def command():
            raise RuntimeError("boom")

        assert command() == ExitCode.UNKNOWN_ERROR

    def test_keyboard_interrupt(self):
        @main_with_error_handling()
        def command():
            raise KeyboardInterrupt

        assert command() == 130


class TestFormatErrorMessage:
    def test_with_details(self):
        error = ValidationError("Bad input", {"field": "tier", "value": 9})

        assert format_error_message(error) == "Bad input (field=tier, value=9)"

    def test_without_details(self):
        assert format_error_message(ValidationError("Bad input")) == "Bad input"


class TestTiers:
    """Tests for built-in tier defaults."""

    def test_every_tier_has_defaults(self):
        assert sorted(TIER_DEFAULTS) == [0, 1, 2, 3]
        assert [get_tier_defaults(t).required_approvals for t in range(4)] == [0, 1, 2, 3]

    def test_high_risk_tiers_disabled_by_default(self):
        assert get_tier_defaults(0).enabled
        assert get_tier_defaults(1).enabled
        assert not get_tier_defaults(2).enabled
        assert not get_tier_defaults(3).enabled

    @pytest.mark.parametrize("value", [-1, 4, "1", True, None, 1.0])
    def test_invalid_tiers(self, value):
        assert not is_valid_tier(value)
        with pytest.raises(ValueError):
            get_tier_defaults(value)
