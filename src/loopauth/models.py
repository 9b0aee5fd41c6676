"""Canonical Pydantic models shared across all loopauth modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ReceiverConfig`, :class:`OutputConfig` and :class:`GlobalConfig`.

**Authorization flow models** -- the request sent to the authorization
server through the browser and the response captured on the loopback
listener:
    :class:`CallbackUriStrategy`, :class:`AuthorizationCodeRequest` and
    :class:`AuthorizationCodeResponse`.

All models use Pydantic v2. :class:`AuthorizationCodeResponse` uses
``extra="allow"`` so that provider-specific callback parameters are kept
in ``model_extra`` and handed on untouched to the token exchanger.
"""

from __future__ import annotations

import enum
from typing import Any, Literal, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field


class CallbackUriStrategy(str, enum.Enum):
    """How a receiver picks its redirect URI template.

    ``DEFAULT`` prefers ``127.0.0.1`` and falls back to ``localhost`` using
    the statistics kept by :class:`~loopauth.receiver.chooser.CallbackUriChooser`.
    The two ``FORCE_*`` values always return the named template; outcomes
    are still recorded.
    """

    DEFAULT = "default"
    FORCE_LOOPBACK_IP = "loopback_ip"
    FORCE_LOCALHOST = "localhost"


# --- Configuration ---


class ReceiverConfig(BaseModel):
    """Settings for the loopback authorization-code receiver."""

    strategy: CallbackUriStrategy = Field(
        default=CallbackUriStrategy.DEFAULT,
        description="Redirect URI strategy: default, loopback_ip, localhost",
    )
    uri_timeout_seconds: float = Field(
        default=60.0,
        description="Seconds a redirect URI template may go without an outcome "
        "before it counts as timed out",
    )
    callback_timeout_seconds: float = Field(
        default=120.0, description="Seconds to wait for the browser redirect"
    )
    port: Optional[int] = Field(
        default=None, description="Fixed callback port (default: random free port)"
    )
    max_request_line: int = Field(
        default=16 * 1024, description="Maximum request-line length in bytes"
    )
    max_headers: int = Field(
        default=64 * 1024, description="Maximum header block length in bytes"
    )
    close_page: Optional[str] = Field(
        default=None,
        description="HTML shown after the redirect: inline HTML or file:/path "
        "(default: built-in page)",
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`.

    Used when neither ``--json`` nor ``--plain`` is passed.
    """

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/loopauth/config.json``.

    Loaded and saved by :func:`~loopauth.config.load_global_config` and
    :func:`~loopauth.config.save_global_config`. Environment variables and
    CLI flags take precedence, see :func:`~loopauth.config.resolve_config`.
    """

    receiver: ReceiverConfig = Field(default_factory=ReceiverConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Authorization flow ---


class AuthorizationCodeRequest(BaseModel):
    """The authorization request the browser is sent to.

    The redirect URI is not part of the model: it belongs to the receiver
    handling the request and is supplied to :meth:`build`.

    Example::

        request = AuthorizationCodeRequest(
            authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
            client_id="1234.apps.googleusercontent.com",
            scopes=["https://www.googleapis.com/auth/calendar"],
            state="af0ifjsldkj",
        )
        url = request.build("http://127.0.0.1:53211/authorize/")
    """

    authorization_url: str
    client_id: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)
    state: Optional[str] = None
    response_type: str = "code"
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    extra_params: dict[str, str] = Field(default_factory=dict)

    def build(self, redirect_uri: str) -> str:
        """Return the full authorization URL embedding *redirect_uri*.

        Query parameters already present on ``authorization_url`` are kept
        ahead of the generated ones.
        """
        parts = urlsplit(self.authorization_url)
        params: list[tuple[str, str]] = parse_qsl(parts.query, keep_blank_values=True)
        params.append(("response_type", self.response_type))
        if self.client_id:
            params.append(("client_id", self.client_id))
        params.append(("redirect_uri", redirect_uri))
        if self.scopes:
            params.append(("scope", " ".join(self.scopes)))
        if self.state:
            params.append(("state", self.state))
        if self.code_challenge:
            params.append(("code_challenge", self.code_challenge))
            params.append(
                ("code_challenge_method", self.code_challenge_method or "S256")
            )
        params.extend(self.extra_params.items())
        return urlunsplit(parts._replace(query=urlencode(params)))


class AuthorizationCodeResponse(BaseModel):
    """The authorization response captured from the redirect query string.

    Follows the RFC 6749 section 4.1.2 shape: either ``code`` (and usually
    ``state``) on success, or ``error`` with optional ``error_description``
    and ``error_uri``. Any other parameter is preserved in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow")

    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    error_uri: Optional[str] = None

    @classmethod
    def from_query(cls, params: dict[str, str]) -> AuthorizationCodeResponse:
        """Build a response from a decoded query-parameter mapping."""
        return cls.model_validate(params)

    @property
    def is_success(self) -> bool:
        """``True`` when a code was returned and no error was reported."""
        return self.code is not None and self.error is None

    def to_query(self) -> dict[str, Any]:
        """Return every captured parameter, known and extra, as a plain dict."""
        return self.model_dump(exclude_none=True)
