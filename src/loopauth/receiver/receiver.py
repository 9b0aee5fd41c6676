"""OAuth2 authorization-code receiver built on a loopback listener.

:class:`AuthorizationCodeReceiver` performs the browser half of the
"installed application" authorization code flow:

1. Resolves its redirect URI once, from the process-wide
   :class:`~loopauth.receiver.chooser.CallbackUriChooser`.
2. Binds a :class:`~loopauth.receiver.server.LoopbackHttpServer` on it.
3. Opens the authorization URL in the system browser.
4. Waits for the single redirect and returns its parameters as an
   :class:`~loopauth.models.AuthorizationCodeResponse`.
5. Tells the chooser whether the redirect URI worked.

Exchanging the code for tokens is left to the caller.

See Also:
    :class:`CodeReceiver` for the interface token exchangers depend on.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from loopauth.exceptions import (
    BindError,
    PlatformError,
    ProtocolError,
)
from loopauth.models import (
    AuthorizationCodeRequest,
    AuthorizationCodeResponse,
    CallbackUriStrategy,
)
from loopauth.receiver.browser import BrowserLauncher, get_browser_launcher
from loopauth.receiver.cancellation import CancellationToken
from loopauth.receiver.chooser import CallbackUriChooser, find_free_port, get_chooser
from loopauth.receiver.server import (
    MAX_HEADERS_LENGTH,
    MAX_REQUEST_LINE_LENGTH,
    LoopbackHttpServer,
)

logger = logging.getLogger(__name__)

DEFAULT_CLOSE_PAGE_RESPONSE = """<html>
  <head><title>OAuth 2.0 Authentication Token Received</title></head>
  <body>
    Received verification code. You may now close this window.
  </body>
</html>"""
"""Page shown in the browser once the redirect has been captured."""


class CodeReceiver(ABC):
    """Obtains an authorization code from the user.

    Implementations own the redirect URI: the token exchanger must send the
    same :attr:`redirect_uri` when redeeming the code.
    """

    @property
    @abstractmethod
    def redirect_uri(self) -> str:
        """The redirect URI embedded in the authorization request."""
        ...

    @abstractmethod
    async def receive_code(
        self,
        request: AuthorizationCodeRequest,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> AuthorizationCodeResponse:
        """Send the user to *request* and return the authorization response."""
        ...


class AuthorizationCodeReceiver(CodeReceiver):
    """Receive the authorization code on an ephemeral loopback listener.

    The redirect URI is chosen on first use and kept for the lifetime of
    the instance, so the authorization URL and the listener always agree.

    Args:
        close_page_response: HTML served to the browser after the redirect.
        strategy: How the redirect URI template is chosen.
        chooser: Shared chooser; defaults to :func:`~loopauth.receiver.chooser.get_chooser`.
        launcher: Browser launcher; defaults to the one for this platform.
        port: Fixed callback port. ``None`` picks a random unused port.
        max_request_line: Request-line limit passed to the listener.
        max_headers: Header-block limit passed to the listener.

    Example::

        receiver = AuthorizationCodeReceiver()
        token = CancellationToken()
        token.cancel_after(120)
        response = await receiver.receive_code(request, token)
    """

    def __init__(
        self,
        close_page_response: str = DEFAULT_CLOSE_PAGE_RESPONSE,
        strategy: CallbackUriStrategy = CallbackUriStrategy.DEFAULT,
        chooser: Optional[CallbackUriChooser] = None,
        launcher: Optional[BrowserLauncher] = None,
        port: Optional[int] = None,
        max_request_line: int = MAX_REQUEST_LINE_LENGTH,
        max_headers: int = MAX_HEADERS_LENGTH,
    ) -> None:
        self._close_page_response = close_page_response
        self._strategy = strategy
        self._chooser = chooser or get_chooser()
        self._launcher = launcher or get_browser_launcher()
        self._port = port
        self._max_request_line = max_request_line
        self._max_headers = max_headers
        self._uri_template: Optional[str] = None
        self._redirect_uri: Optional[str] = None

    @property
    def uri_template(self) -> str:
        """The redirect URI template chosen for this instance."""
        if self._uri_template is None:
            self._uri_template = self._chooser.get_uri_template(self._strategy)
        return self._uri_template

    @property
    def redirect_uri(self) -> str:
        """The redirect URI embedded in the authorization request.

        Raises:
            BindError: If no free loopback port can be picked; reported to
                the chooser.
        """
        # There is a window between picking the free port here and binding
        # it in receive_code() in which another process could take it.
        if self._redirect_uri is None:
            template = self.uri_template
            port = self._port
            if port is None:
                try:
                    port = find_free_port()
                except OSError as exc:
                    self._chooser.report_failure(template)
                    raise BindError(f"Cannot pick a free loopback port: {exc}") from exc
            self._redirect_uri = template.format(port=port)
        return self._redirect_uri

    async def receive_code(
        self,
        request: AuthorizationCodeRequest,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> AuthorizationCodeResponse:
        """Run one browser round trip and return the authorization response.

        The listener is bound before the browser is opened and closed on
        every exit path.

        Raises:
            ConfigurationError: If the redirect URI is not loopback.
            BindError: If the listener cannot bind; reported to the chooser.
            PlatformError: If the browser cannot be launched.
            ProtocolError: If the redirect request is unusable; reported to
                the chooser.
            CancellationError: If *cancellation_token* fires first.
        """
        redirect_uri = self.redirect_uri
        authorization_url = request.build(redirect_uri)

        try:
            server = LoopbackHttpServer.start(
                redirect_uri,
                self._close_page_response,
                max_request_line=self._max_request_line,
                max_headers=self._max_headers,
            )
        except BindError:
            self._chooser.report_failure(self.uri_template)
            raise

        with server:
            self._open_browser(authorization_url)
            try:
                params = await server.get_query_params(cancellation_token)
            except ProtocolError:
                self._chooser.report_failure(self.uri_template)
                raise
            self._chooser.report_success(self.uri_template)

        response = AuthorizationCodeResponse.from_query(params)
        if response.error:
            logger.debug("Authorization server returned error '%s'", response.error)
        return response

    def _open_browser(self, authorization_url: str) -> None:
        logger.debug('Open a browser with "%s" URL', authorization_url)
        try:
            opened = self._launcher.open(authorization_url)
        except Exception as exc:
            logger.error(
                'Failed to launch browser with "%s" for authorization: %s',
                authorization_url,
                exc,
            )
            raise PlatformError(
                f'Failed to launch browser with "{authorization_url}" for authorization: {exc}'
            ) from exc
        if not opened:
            logger.error(
                'Failed to launch browser with "%s" for authorization; platform not supported.',
                authorization_url,
            )
            raise PlatformError(
                f'Failed to launch browser with "{authorization_url}" for authorization; '
                "platform not supported."
            )
