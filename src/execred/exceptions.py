"""Exception hierarchy for execred.

All exceptions inherit from :class:`ExecredError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`execred.exit_codes`.
The top-level error handler in :func:`execred.app.main` catches
``ExecredError`` and exits with the appropriate code.

Subclass hierarchy::

    ExecredError (exit 1)
    +-- ConfigurationError  (exit 3)
    +-- ExecutionError      (exit 4)
    +-- ValidationError     (exit 5)

None of these errors clear a provider's cached credential; a caller may
simply ask again on the next request.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from execred.exit_codes import (
    EXIT_CONFIGURATION_ERROR,
    EXIT_EXECUTION_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_VALIDATION_FAILURE,
)


class ExecutionFailure(str, Enum):
    """Why running the exec plugin failed."""

    START = "start"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    CANCELLED = "cancelled"


class ValidationFailure(str, Enum):
    """Why the exec plugin's output was rejected."""

    MALFORMED = "malformed"
    VERSION_MISMATCH = "version_mismatch"
    MISSING_CREDENTIALS = "missing_credentials"


class ExecredError(Exception):
    """Base exception for all execred errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(ExecredError):
    """Raised for malformed exec configuration (bad env entries, missing kubeconfig users)."""

    exit_code = EXIT_CONFIGURATION_ERROR


class ExecutionError(ExecredError):
    """Raised when the exec plugin cannot be started, times out, or exits non-zero.

    Args:
        message: Human-readable description, including captured stderr.
        reason: The :class:`ExecutionFailure` classification.
        returncode: The plugin's exit code, when it exited on its own.
        stderr: Standard error collected from the plugin before the failure.
    """

    exit_code = EXIT_EXECUTION_FAILURE

    def __init__(
        self,
        message: str,
        reason: ExecutionFailure,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.reason = reason
        self.returncode = returncode
        self.stderr = stderr


class ValidationError(ExecredError):
    """Raised when plugin output is malformed, version-mismatched, or carries no credential.

    Args:
        message: Human-readable description.
        reason: The :class:`ValidationFailure` classification.
        expected: The apiVersion the provider was configured for.
        actual: The apiVersion the plugin reported, if any.
    """

    exit_code = EXIT_VALIDATION_FAILURE

    def __init__(
        self,
        message: str,
        reason: ValidationFailure,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.expected = expected
        self.actual = actual
