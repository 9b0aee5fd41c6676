"""Single-shot loopback HTTP listener for the authorization redirect.

:class:`LoopbackHttpServer` is an extremely limited HTTP server that only
does what the redirect needs: it listens on a loopback address, accepts a
single connection, reads one ``GET`` request line, decodes its query
string, discards the headers, answers with a fixed ``200 OK`` page and
closes. There is no keep-alive, no chunked transfer and no TLS.

Parsing is an explicit state machine (:class:`RequestParser`) fed from
1 KiB socket reads, with size guards on every transition so that an
oversized or never-ending request fails fast instead of hanging.

Socket I/O uses the running asyncio loop (``sock_accept`` / ``sock_recv``
/ ``sock_sendall``). A :class:`~loopauth.receiver.cancellation.CancellationToken`
aborts the in-flight accept/read; whatever the abort surfaces is
re-raised as :class:`~loopauth.exceptions.CancellationError`.
"""

from __future__ import annotations

import asyncio
import enum
import ipaddress
import logging
import os
import socket
from typing import Optional
from urllib.parse import unquote_to_bytes, urlsplit

from loopauth.exceptions import (
    BindError,
    CancellationError,
    ConfigurationError,
    HeadersTooLongError,
    IncompleteRequestError,
    MalformedQueryError,
    MalformedRequestLineError,
    MethodNotAllowedError,
    PathMismatchError,
    ProtocolError,
    RequestLineTooLongError,
)
from loopauth.receiver.cancellation import CancellationToken
from loopauth.receiver.chooser import CALLBACK_PATH

logger = logging.getLogger(__name__)

# RFC 7230 section 3.1.1 recommends supporting request lines of at least 8000 octets.
MAX_REQUEST_LINE_LENGTH = 16 * 1024
MAX_HEADERS_LENGTH = 64 * 1024
NETWORK_READ_BUFFER_SIZE = 1024

_RESPONSE_HEAD = b"HTTP/1.1 200 OK\r\n\r\n"


# ------------------------------------------------------------------ #
# Request parsing
# ------------------------------------------------------------------ #


def url_decode(value: str) -> str:
    """Decode one query-string component.

    ``+`` becomes a space and ``%XX`` escapes are decoded as UTF-8, with
    invalid sequences replaced. Raw non-ASCII characters (the request line
    is read as ISO-8859-1) are passed through byte for byte.
    """
    raw = value.replace("+", " ").encode("latin-1")
    return unquote_to_bytes(raw).decode("utf-8", errors="replace")


def parse_query(query: str) -> dict[str, str]:
    """Split a query string into a decoded key/value mapping.

    Empty ``&``-separated pieces are skipped and a parameter without ``=``
    maps to an empty string.

    Raises:
        MalformedQueryError: If a parameter holds more than one ``=`` or a
            key appears twice.
    """
    result: dict[str, str] = {}
    for param in query.split("&"):
        if not param:
            continue
        key_value = param.split("=")
        if len(key_value) > 2:
            raise MalformedQueryError(f"Invalid query parameter: '{param}'")
        key = url_decode(key_value[0])
        value = url_decode(key_value[1]) if len(key_value) == 2 else ""
        if key in result:
            raise MalformedQueryError(f"Duplicate query parameter: '{key}'")
        result[key] = value
    return result


def parse_request_line(request_line: str, callback_path: str = CALLBACK_PATH) -> dict[str, str]:
    """Validate a request line and return its decoded query parameters.

    Args:
        request_line: The request line without its trailing CRLF.
        callback_path: Prefix the request path must start with.

    Raises:
        MalformedRequestLineError: If the line is not three space-separated parts.
        MethodNotAllowedError: If the method is not ``GET``.
        PathMismatchError: If the path does not start with *callback_path*.
        MalformedQueryError: If the path holds more than one ``?`` or the
            query cannot be decoded.
    """
    parts = request_line.split(" ")
    if len(parts) != 3:
        raise MalformedRequestLineError(
            "Request line ill-formatted. Should be '<request-method> <request-path> HTTP/1.1'"
        )
    method, path, _version = parts
    if method != "GET":
        raise MethodNotAllowedError(f"Expected 'GET' request, got '{method}'")
    if not path.startswith(callback_path):
        raise PathMismatchError(
            f"Expected request path to start '{callback_path}', got '{path}'"
        )
    path_parts = path.split("?")
    if len(path_parts) == 1:
        return {}
    if len(path_parts) != 2:
        raise MalformedQueryError(f"Expected a single '?' in request path, got '{path}'")
    return parse_query(path_parts[1])


class ParserState(enum.Enum):
    """States of :class:`RequestParser`."""

    READ_REQUEST_LINE = "read_request_line"
    READ_HEADERS = "read_headers"
    DONE = "done"


class RequestParser:
    """Incremental parser for the single callback request.

    Feed it raw bytes with :meth:`feed` until it returns ``True``; the
    decoded parameters are then in :attr:`query_params`. The request line
    is validated as soon as it is complete, before any header is read.

    HTTP headers are ASCII, historically ISO-8859-1; bytes are decoded as
    ISO-8859-1 so that nothing is reinterpreted as UTF-8 before the
    percent-decoding step.

    Args:
        max_request_line: Maximum request-line length, CRLF included.
        max_headers: Maximum header block length, terminating blank line
            included.
        callback_path: Prefix the request path must start with.
    """

    def __init__(
        self,
        max_request_line: int = MAX_REQUEST_LINE_LENGTH,
        max_headers: int = MAX_HEADERS_LENGTH,
        callback_path: str = CALLBACK_PATH,
    ) -> None:
        self._max_request_line = max_request_line
        self._max_headers = max_headers
        self._callback_path = callback_path
        self._buffer = bytearray()
        self._header_bytes = 0
        self.state = ParserState.READ_REQUEST_LINE
        self.query_params: dict[str, str] = {}

    def feed(self, data: bytes) -> bool:
        """Consume *data*; return ``True`` once the blank line ending the headers is seen."""
        self._buffer += data
        while self.state is not ParserState.DONE:
            if self.state is ParserState.READ_REQUEST_LINE:
                progressed = self._read_request_line()
            else:
                progressed = self._read_header_line()
            if not progressed:
                return False
        return True

    def _read_request_line(self) -> bool:
        end = self._buffer.find(b"\r\n")
        if end == -1:
            if len(self._buffer) >= self._max_request_line:
                raise RequestLineTooLongError(
                    f"Request line too long: > {self._max_request_line} bytes."
                )
            return False
        if end + 2 > self._max_request_line:
            raise RequestLineTooLongError(
                f"Request line too long: > {self._max_request_line} bytes."
            )
        request_line = self._buffer[:end].decode("latin-1")
        del self._buffer[: end + 2]
        self.query_params = parse_request_line(request_line, self._callback_path)
        self.state = ParserState.READ_HEADERS
        return True

    def _read_header_line(self) -> bool:
        end = self._buffer.find(b"\r\n")
        if end == -1:
            if self._header_bytes + len(self._buffer) > self._max_headers:
                raise HeadersTooLongError(f"Headers too long: > {self._max_headers} bytes.")
            return False
        self._header_bytes += end + 2
        if self._header_bytes > self._max_headers:
            raise HeadersTooLongError(f"Headers too long: > {self._max_headers} bytes.")
        del self._buffer[: end + 2]
        if end == 0:
            self.state = ParserState.DONE
        return True


# ------------------------------------------------------------------ #
# Server
# ------------------------------------------------------------------ #


def _loopback_family(host: Optional[str]) -> Optional[socket.AddressFamily]:
    """Return the address family to listen on for *host*, or ``None`` if not loopback."""
    if not host:
        return None
    if host.lower() == "localhost":
        return socket.AF_INET
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return None
    if not address.is_loopback:
        return None
    return socket.AF_INET6 if address.version == 6 else socket.AF_INET


class LoopbackHttpServer:
    """Listener that captures exactly one authorization redirect.

    Create instances with :meth:`start`. The server is a context manager;
    leaving the block (or calling :meth:`close`) releases the port and
    aborts a pending :meth:`get_query_params`.

    Example::

        with LoopbackHttpServer.start("http://127.0.0.1:0/authorize/", page) as server:
            print(server.port)
            params = await server.get_query_params(token)
    """

    def __init__(
        self,
        listener: socket.socket,
        close_page_response: str,
        max_request_line: int = MAX_REQUEST_LINE_LENGTH,
        max_headers: int = MAX_HEADERS_LENGTH,
        callback_path: str = CALLBACK_PATH,
    ) -> None:
        self._listener = listener
        self._response = _RESPONSE_HEAD + close_page_response.encode("utf-8")
        self._max_request_line = max_request_line
        self._max_headers = max_headers
        self._callback_path = callback_path
        self._closed = CancellationToken()
        self._serving = False
        self.port: int = listener.getsockname()[1]

    @classmethod
    def start(
        cls,
        url: str,
        close_page_response: str,
        *,
        max_request_line: int = MAX_REQUEST_LINE_LENGTH,
        max_headers: int = MAX_HEADERS_LENGTH,
    ) -> LoopbackHttpServer:
        """Bind a listener for the loopback *url*.

        The port comes from *url*; port ``0`` or no port binds an ephemeral
        one, available afterwards as :attr:`port`.

        Raises:
            ConfigurationError: If *url* is not a loopback URL.
            BindError: If the listener cannot be bound.
        """
        parts = urlsplit(url)
        family = _loopback_family(parts.hostname)
        if family is None:
            raise ConfigurationError(f"Url must be loopback, but given: '{url}'")
        try:
            port = parts.port or 0
        except ValueError as exc:
            raise ConfigurationError(f"Invalid port in url: '{url}'") from exc

        host = "::1" if family == socket.AF_INET6 else "127.0.0.1"
        listener = socket.socket(family, socket.SOCK_STREAM)
        try:
            if os.name != "nt":
                # Lets the port be bound again right after the attempt ends.
                listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((host, port))
            listener.listen(1)
            listener.setblocking(False)
        except OSError as exc:
            listener.close()
            raise BindError(f"Cannot listen on {host}:{port}: {exc}") from exc

        server = cls(
            listener,
            close_page_response,
            max_request_line=max_request_line,
            max_headers=max_headers,
        )
        logger.debug("Listening for the authorization callback on %s:%d", host, server.port)
        return server

    async def get_query_params(
        self, cancellation_token: Optional[CancellationToken] = None
    ) -> dict[str, str]:
        """Wait for the redirect and return its decoded query parameters.

        The listener is closed when this returns, whatever the outcome.

        Raises:
            ProtocolError: If the request is malformed, unsupported or
                oversized, or the connection fails mid-request.
            CancellationError: If *cancellation_token* is cancelled or the
                server is closed while waiting.
        """
        loop = asyncio.get_running_loop()
        linked = CancellationToken.linked(self._closed, cancellation_token)
        task = loop.create_task(self._serve_one(loop))

        def _abort() -> None:
            # A deadline timer may fire after the loop has shut down.
            if loop.is_closed():
                return
            try:
                loop.call_soon_threadsafe(task.cancel)
            except RuntimeError:
                logger.debug("Event loop closed before the callback wait could be aborted")

        self._serving = True
        try:
            with linked.register(_abort):
                try:
                    return await task
                except ProtocolError as exc:
                    logger.warning("%s", exc)
                    raise
                except (asyncio.CancelledError, OSError) as exc:
                    current = asyncio.current_task()
                    if linked.is_cancelled and not (current and current.cancelling()):
                        raise CancellationError(
                            "Waiting for the authorization callback was cancelled"
                        ) from None
                    if isinstance(exc, OSError):
                        logger.warning("Connection error serving the callback: %s", exc)
                        raise ProtocolError(
                            f"Connection error serving the callback: {exc}"
                        ) from exc
                    raise
        finally:
            self._serving = False
            linked.dispose()
            self.close()

    async def _serve_one(self, loop: asyncio.AbstractEventLoop) -> dict[str, str]:
        client, address = await loop.sock_accept(self._listener)
        logger.debug("Accepted callback connection from %s", address)
        with client:
            parser = RequestParser(
                self._max_request_line, self._max_headers, self._callback_path
            )
            while True:
                data = await loop.sock_recv(client, NETWORK_READ_BUFFER_SIZE)
                if not data:
                    if parser.state is ParserState.READ_REQUEST_LINE:
                        raise IncompleteRequestError(
                            "Unexpected end of network stream reading request line."
                        )
                    raise IncompleteRequestError(
                        "Unexpected end of network stream waiting for headers."
                    )
                if parser.feed(data):
                    break
            await loop.sock_sendall(client, self._response)
        return parser.query_params

    def close(self) -> None:
        """Release the port and abort any pending :meth:`get_query_params`.

        Idempotent. While a wait is in progress only the abort is signalled;
        the waiting coroutine closes the socket itself on its way out.
        """
        self._closed.cancel()
        if not self._serving:
            self._listener.close()

    def __enter__(self) -> LoopbackHttpServer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
