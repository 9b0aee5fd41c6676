"""Authorize command -- capture one OAuth2 authorization code.

Opens the authorization endpoint in the system browser, waits for the
redirect on a loopback listener, and prints the captured response. The
token exchange is deliberately left to the caller: the output carries the
``code``, the ``redirect_uri`` it was issued for and, with PKCE, the
``code_verifier``.

Typical workflow::

    loopauth authorize --issuer https://accounts.google.com \\
        --client-id-source env:GOOGLE_CLIENT_ID \\
        --scope https://www.googleapis.com/auth/calendar --json
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from loopauth.output import error, format_response, info, progress, success, suggest


def _parse_params(values: list[str]) -> dict[str, str]:
    """Turn repeated ``--param key=value`` options into a dict."""
    from loopauth.exceptions import InvalidUsageError

    params: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise InvalidUsageError(f"Expected --param key=value, got: {item}")
        params[key] = value
    return params


def authorize_command(
    auth_url: Optional[str] = typer.Option(
        None, "--auth-url", help="Authorization endpoint URL."
    ),
    issuer: Optional[str] = typer.Option(
        None, "--issuer", help="OpenID Connect issuer or discovery document URL."
    ),
    client_id: Optional[str] = typer.Option(None, "--client-id", help="OAuth2 client id."),
    client_id_source: Optional[str] = typer.Option(
        None,
        "--client-id-source",
        help="Client id source: env:VAR, file:/path, prompt.",
    ),
    scopes: list[str] = typer.Option(
        [], "--scope", "-s", help="Scope to request (repeatable)."
    ),
    state: Optional[str] = typer.Option(
        None, "--state", help="State value (default: random)."
    ),
    pkce: bool = typer.Option(True, "--pkce/--no-pkce", help="Send a PKCE S256 challenge."),
    params: list[str] = typer.Option(
        [], "--param", help="Extra authorization parameter key=value (repeatable)."
    ),
    strategy: Optional[str] = typer.Option(
        None, "--strategy", help="Redirect URI strategy: default, loopback_ip, localhost."
    ),
    port: Optional[int] = typer.Option(None, "--port", help="Fixed callback port."),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the browser redirect."
    ),
) -> None:
    """Open the browser and capture the authorization redirect.

    Exactly one of ``--auth-url`` or ``--issuer`` is required. The state
    returned by the server is checked against the one sent.

    Raises:
        typer.Exit: With the error's exit code when the attempt fails,
            times out, or the server returns an error.

    Example::

        loopauth authorize --auth-url https://example.com/oauth/authorize --client-id abc
    """
    from loopauth.config import load_close_page, resolve_config, resolve_credential
    from loopauth.exceptions import (
        AuthError,
        CancellationError,
        InvalidUsageError,
        LoopauthError,
        PlatformError,
    )
    from loopauth.models import AuthorizationCodeRequest
    from loopauth.pkce import generate_pkce_pair, generate_state
    from loopauth.receiver import AuthorizationCodeReceiver, CancellationToken, get_chooser

    try:
        config = resolve_config(cli_strategy=strategy, cli_port=port, cli_timeout=timeout)
        receiver_config = config.receiver

        if issuer and not auth_url:
            from loopauth.discovery import discover_endpoints

            endpoint: str = discover_endpoints(issuer)["authorization_endpoint"]
        elif auth_url and not issuer:
            endpoint = auth_url
        else:
            raise InvalidUsageError("Specify exactly one of --auth-url or --issuer.")

        if client_id is None and client_id_source:
            client_id = resolve_credential(client_id_source)

        sent_state = state or generate_state()
        code_verifier: Optional[str] = None
        code_challenge: Optional[str] = None
        if pkce:
            code_verifier, code_challenge = generate_pkce_pair()

        request = AuthorizationCodeRequest(
            authorization_url=endpoint,
            client_id=client_id,
            scopes=scopes,
            state=sent_state,
            code_challenge=code_challenge,
            extra_params=_parse_params(params),
        )

        receiver = AuthorizationCodeReceiver(
            close_page_response=load_close_page(receiver_config),
            strategy=receiver_config.strategy,
            chooser=get_chooser(),
            port=receiver_config.port,
            max_request_line=receiver_config.max_request_line,
            max_headers=receiver_config.max_headers,
        )

        token = CancellationToken()
        token.cancel_after(receiver_config.callback_timeout_seconds)
        info("Opening browser for authorization...")
        progress(f"Waiting for the redirect on {receiver.redirect_uri}")
        try:
            response = asyncio.run(receiver.receive_code(request, token))
        except CancellationError:
            raise CancellationError(
                f"Authentication timed out after {receiver_config.callback_timeout_seconds:g}s."
            ) from None
        except PlatformError as exc:
            raise PlatformError(f"Browser could not be launched. {exc}") from exc
        finally:
            token.dispose()

        if response.error:
            message = f"Authorization failed: {response.error}"
            if response.error_description:
                message += f" - {response.error_description}"
            raise AuthError(message)
        if response.state != sent_state:
            raise AuthError("Authorization response state does not match the request.")
        if not response.code:
            raise AuthError("No authorization code received from callback.")
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    data = response.to_query()
    data["redirect_uri"] = receiver.redirect_uri
    if code_verifier:
        data["code_verifier"] = code_verifier
    format_response(data)
    success("Authorization code received.")
    suggest("Exchange it at the token endpoint with the same redirect_uri.")
