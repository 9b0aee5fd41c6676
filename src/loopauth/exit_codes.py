"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~loopauth.exceptions.LoopauthError` subclass.
Shell wrappers can inspect the exit code to tell a timed-out login from a
broken one without parsing stderr.

Example::

    $ loopauth authorize --auth-url https://accounts.example.com/o/oauth2/auth
    $ echo $?
    130   # EXIT_CANCELLED -- nobody completed the browser redirect in time
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The authorization server answered the redirect with an error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_PROTOCOL_ERROR = 8
"""The loopback callback request was malformed or unsupported."""

EXIT_PLATFORM_ERROR = 9
"""The local platform could not launch a browser or bind the listener."""

EXIT_CANCELLED = 130
"""The attempt was cancelled (Ctrl-C or callback deadline)."""
