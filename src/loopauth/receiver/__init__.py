"""Loopback receiver for the OAuth2 authorization code flow.

The main entry points are:

- :class:`AuthorizationCodeReceiver` -- opens the browser and captures the
  redirect on an ephemeral loopback listener.
- :class:`CallbackUriChooser` -- process-wide choice between the
  ``127.0.0.1`` and ``localhost`` redirect URI templates.
- :class:`LoopbackHttpServer` -- the single-shot listener itself.
- :class:`CancellationToken` -- cooperative cancellation for a receive attempt.

Typical usage::

    from loopauth.receiver import AuthorizationCodeReceiver, CancellationToken

    receiver = AuthorizationCodeReceiver()
    token = CancellationToken()
    token.cancel_after(120)
    response = await receiver.receive_code(request, token)
"""

from loopauth.receiver.browser import BrowserLauncher, get_browser_launcher
from loopauth.receiver.cancellation import CancellationToken
from loopauth.receiver.chooser import (
    CALLBACK_PATH,
    LOCALHOST_TEMPLATE,
    LOOPBACK_IP_TEMPLATE,
    CallbackUriChooser,
    get_chooser,
    reset_chooser,
    set_chooser,
)
from loopauth.receiver.receiver import (
    DEFAULT_CLOSE_PAGE_RESPONSE,
    AuthorizationCodeReceiver,
    CodeReceiver,
)
from loopauth.receiver.server import LoopbackHttpServer

__all__ = [
    "AuthorizationCodeReceiver",
    "BrowserLauncher",
    "CALLBACK_PATH",
    "CallbackUriChooser",
    "CancellationToken",
    "CodeReceiver",
    "DEFAULT_CLOSE_PAGE_RESPONSE",
    "LOCALHOST_TEMPLATE",
    "LOOPBACK_IP_TEMPLATE",
    "LoopbackHttpServer",
    "get_browser_launcher",
    "get_chooser",
    "reset_chooser",
    "set_chooser",
]
