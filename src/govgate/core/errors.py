"""
Unified error handling for the governance gateway.

This module provides the exception hierarchy shared by every component,
plus standardized exit codes and error reporting for CLI commands.

Exit Codes:
- 0: Success
- 1: Warning (advisory, operation succeeded with warnings)
- 2: Blocked (action denied or still pending approval)
- 10: Configuration error
- 12: Validation error
- 13: Audit integrity error (hash chain broken, appends refused)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    WARNING = 1
    BLOCKED = 2
    CONFIG_ERROR = 10
    VALIDATION_ERROR = 12
    INTEGRITY_ERROR = 13
    UNKNOWN_ERROR = 127


class GovGateError(Exception):
    """Base exception for gateway errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(GovGateError):
    """Raised for malformed or unknown configuration. Always fatal at load time."""

    exit_code = ExitCode.CONFIG_ERROR


class ValidationError(GovGateError):
    """Raised for malformed inputs."""

    exit_code = ExitCode.VALIDATION_ERROR


class AuditIntegrityError(GovGateError):
    """Raised when the audit hash chain is broken or the store is halted."""

    exit_code = ExitCode.INTEGRITY_ERROR


class ApprovalError(GovGateError):
    """Base class for approval workflow refusals.

    Carries a machine-readable ``reason_code`` distinct from the message.
    """

    exit_code = ExitCode.VALIDATION_ERROR
    reason_code: str = "approval_error"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        reason_code: str | None = None,
    ):
        super().__init__(message, details)
        if reason_code is not None:
            self.reason_code = reason_code


class ApprovalNotFoundError(ApprovalError):
    reason_code = "approval_not_found"


class UnauthorizedApproverError(ApprovalError):
    reason_code = "unauthorized_approver"


class InvalidSignatureError(ApprovalError):
    reason_code = "invalid_signature"


class NotSubmitterError(ApprovalError):
    reason_code = "not_submitter"


class BudgetError(GovGateError):
    """Base class for budget tracker errors."""

    exit_code = ExitCode.VALIDATION_ERROR


class ReservationError(BudgetError):
    """Raised when committing or releasing an unknown or settled reservation."""


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - GovGateError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except GovGateError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: GovGateError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
