"""Exception hierarchy for loopauth.

All exceptions inherit from :class:`LoopauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`loopauth.exit_codes`.
Library code raises these; :class:`~loopauth.flow.orchestrator.AuthorizationCodeFlow`
turns them into a :class:`~loopauth.models.Failure` outcome, and the CLI
entry point in :func:`loopauth.app.main` exits with the matching code.

Subclass hierarchy::

    LoopauthError                   (exit 1)
    +-- ConfigurationError          (exit 2)
    +-- ListenerError               (exit 6)
    |   +-- ListenerBindError
    |   +-- ListenerAcceptError
    +-- TimeoutError_               (exit 7)
    +-- MalformedRedirectError      (exit 3)
    |   +-- AuthorizationDeniedError
    +-- CsrfMismatchError           (exit 3)
    +-- TokenExchangeFailed         (exit 3)
    +-- ResourceRequestFailed       (exit 5)
"""

from __future__ import annotations

from typing import Optional

from loopauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONFIGURATION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_LISTENER_ERROR,
    EXIT_RESOURCE_ERROR,
    EXIT_TIMEOUT,
)


class LoopauthError(Exception):
    """Base exception for all loopauth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`loopauth.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(LoopauthError):
    """Raised for missing credentials or malformed endpoint / redirect URLs."""

    exit_code = EXIT_CONFIGURATION_ERROR


class ListenerError(LoopauthError):
    """Base class for loopback listener transport failures."""

    exit_code = EXIT_LISTENER_ERROR


class ListenerBindError(ListenerError):
    """Raised when the loopback address/port cannot be bound (e.g. already in use)."""


class ListenerAcceptError(ListenerError):
    """Raised when accepting or reading the redirect connection fails."""


class TimeoutError_(LoopauthError):
    """Raised when the redirect does not arrive before the deadline or the wait is cancelled.

    Named with a trailing underscore to avoid shadowing the built-in
    ``TimeoutError``.
    """

    exit_code = EXIT_TIMEOUT


class MalformedRedirectError(LoopauthError):
    """Raised when the redirect request line is unparsable or lacks ``code``/``state``."""

    exit_code = EXIT_AUTH_FAILURE


class AuthorizationDeniedError(MalformedRedirectError):
    """Raised when the provider redirects back with an ``error`` parameter.

    Args:
        error: The provider's error code (e.g. ``access_denied``).
        description: Optional ``error_description`` sent alongside it.
    """

    def __init__(self, error: str, description: Optional[str] = None):
        message = f"Provider denied the authorization request: {error}"
        if description:
            message += f" - {description}"
        super().__init__(message)
        self.error = error
        self.description = description


class CsrfMismatchError(LoopauthError):
    """Raised when the redirect's ``state`` does not equal the generated state."""

    exit_code = EXIT_AUTH_FAILURE


class TokenExchangeFailed(LoopauthError):
    """Raised when the token endpoint cannot be reached or rejects the code.

    Args:
        message: Diagnostic text, including whatever the provider reported.
        status_code: HTTP status of the provider response, if one arrived.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResourceRequestFailed(LoopauthError):
    """Raised when a resource API returns a non-success response.

    The access token that was used remains valid from the flow's point of
    view; only the individual resource request failed.
    """

    exit_code = EXIT_RESOURCE_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
