"""Exception hierarchy for pkcecli.

All fatal errors inherit from :class:`PkcecliError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`pkcecli.exit_codes`.
The top-level error handler in :func:`pkcecli.app.main` catches
``PkcecliError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    PkcecliError (exit 1)
    +-- ConfigurationError   (exit 1)
    +-- InvalidUsageError    (exit 2)
    +-- ListenerError        (exit 8)
    +-- AuthorizationError   (exit 3)
    |   +-- CsrfMismatchError
    |   +-- ProviderDeniedError
    |   +-- TokenExchangeError
    +-- NetworkError         (exit 6)
    +-- FlowCancelledError   (exit 130)

:class:`BrowserLaunchWarning` is not part of the hierarchy: a browser that
fails to open is reported but never aborts the flow.
"""

from __future__ import annotations

from typing import Optional

from pkcecli.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LISTENER_ERROR,
)


class PkcecliError(Exception):
    """Base exception for all pkcecli errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(PkcecliError):
    """Raised for missing or invalid client configuration, before any network activity."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidUsageError(PkcecliError):
    """Raised for invalid CLI arguments."""

    exit_code = EXIT_INVALID_USAGE


class ListenerError(PkcecliError):
    """Raised when the loopback redirect listener cannot be bound."""

    exit_code = EXIT_LISTENER_ERROR


class AuthorizationError(PkcecliError):
    """Base class for failures reported by, or detected against, the provider."""

    exit_code = EXIT_AUTH_FAILURE


class CsrfMismatchError(AuthorizationError):
    """Raised when the redirect's ``state`` does not match the one that was sent."""

    def __init__(self, message: str = "State parameter mismatch on redirect (possible CSRF)"):
        super().__init__(message)


class ProviderDeniedError(AuthorizationError):
    """Raised when the redirect carries an ``error`` (e.g. the user declined consent).

    Args:
        error: The provider's error code, e.g. ``access_denied``.
        description: The provider's ``error_description``, if any.
    """

    def __init__(self, error: str, description: str = ""):
        message = f"Authorization denied by provider: {error}"
        if description:
            message += f" - {description}"
        super().__init__(message)
        self.error = error
        self.description = description


class TokenExchangeError(AuthorizationError):
    """Raised when the token endpoint answers with a non-success response.

    Args:
        status: HTTP status code of the token response.
        provider_error_code: The ``error`` field of the response body, if any.
        provider_error_description: The ``error_description`` field, if any.
        message: Optional override of the generated message.
    """

    def __init__(
        self,
        status: int,
        provider_error_code: Optional[str] = None,
        provider_error_description: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            message = f"Token exchange failed with status {status}"
            if provider_error_code:
                message += f": {provider_error_code}"
            if provider_error_description:
                message += f" - {provider_error_description}"
        super().__init__(message)
        self.status = status
        self.provider_error_code = provider_error_code
        self.provider_error_description = provider_error_description


class NetworkError(PkcecliError):
    """Raised on transport failures talking to the token endpoint (DNS, TLS, timeout).

    Not retried automatically; the caller decides whether to rerun the flow.
    """

    exit_code = EXIT_CONNECTION_ERROR


class FlowCancelledError(PkcecliError):
    """Raised when the flow is cancelled before it completes (deadline or interrupt)."""

    exit_code = EXIT_CANCELLED


class BrowserLaunchWarning(UserWarning):
    """The default browser could not be opened; the operator can open the URL by hand."""
