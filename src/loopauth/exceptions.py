"""Exception hierarchy for loopauth.

All exceptions inherit from :class:`LoopauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`loopauth.exit_codes`.
The top-level error handler in :func:`loopauth.app.main` catches
``LoopauthError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    LoopauthError (exit 1)
    +-- InvalidUsageError          (exit 2)
    +-- AuthError                  (exit 3)
    +-- ConnectionError_           (exit 6)
    |   +-- DiscoveryError
    +-- ConfigurationError         (exit 1)
    +-- ProtocolError              (exit 8)
    |   +-- MalformedRequestLineError
    |   +-- MethodNotAllowedError
    |   +-- PathMismatchError
    |   +-- MalformedQueryError
    |   +-- IncompleteRequestError
    |   +-- RequestTooLargeError
    |       +-- RequestLineTooLongError
    |       +-- HeadersTooLongError
    +-- CancellationError          (exit 130)
    +-- PlatformError              (exit 9)
    +-- BindError                  (exit 9)
"""

from loopauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PLATFORM_ERROR,
    EXIT_PROTOCOL_ERROR,
)


class LoopauthError(Exception):
    """Base exception for all loopauth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`loopauth.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(LoopauthError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class AuthError(LoopauthError):
    """Raised when the authorization server redirects back with an ``error``."""

    exit_code = EXIT_AUTH_FAILURE


class ConnectionError_(LoopauthError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class DiscoveryError(ConnectionError_):
    """Raised when an OpenID Connect discovery document cannot be fetched or is invalid."""


class ConfigurationError(LoopauthError):
    """Raised for configuration problems (non-loopback redirect URI, invalid config file, bad credential source)."""

    exit_code = EXIT_GENERIC_FAILURE


class ProtocolError(LoopauthError):
    """Raised when the loopback callback request cannot be served.

    Ends the single listen attempt. The receiver reports it to the
    callback URI chooser as a failure of the template in use.
    """

    exit_code = EXIT_PROTOCOL_ERROR


class MalformedRequestLineError(ProtocolError):
    """The request line is not ``<method> <path> <version>``."""


class MethodNotAllowedError(ProtocolError):
    """The request method is not ``GET``."""


class PathMismatchError(ProtocolError):
    """The request path does not start with the callback path."""


class MalformedQueryError(ProtocolError):
    """The query string could not be split into unique key/value pairs."""


class IncompleteRequestError(ProtocolError):
    """The client closed the connection before the request was complete."""


class RequestTooLargeError(ProtocolError):
    """The request exceeded one of the configured size limits."""


class RequestLineTooLongError(RequestTooLargeError):
    """The request line exceeded the maximum request-line length."""


class HeadersTooLongError(RequestTooLargeError):
    """The header block exceeded the maximum header length."""


class CancellationError(LoopauthError):
    """Raised when a receive attempt is aborted by its cancellation token.

    Kept apart from :class:`ProtocolError` so callers can tell an aborted
    attempt from a broken one.
    """

    exit_code = EXIT_CANCELLED


class PlatformError(LoopauthError):
    """Raised when the system browser cannot be launched on this platform."""

    exit_code = EXIT_PLATFORM_ERROR


class BindError(LoopauthError):
    """Raised when the loopback listener cannot bind its port."""

    exit_code = EXIT_PLATFORM_ERROR
