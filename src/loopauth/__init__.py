"""loopauth -- loopback OAuth2 authorization-code receiver.

Completes an "installed application" OAuth2 authorization code flow
without a public redirect endpoint: an ephemeral listener on the loopback
interface captures the browser redirect and hands the authorization
response to whoever exchanges the code for tokens.

Typical usage::

    loopauth authorize --issuer https://accounts.google.com --client-id-source env:CLIENT_ID

Modules:
    app: Typer application factory and CLI entry point.
    receiver: Chooser, loopback listener and receiver orchestration.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    discovery: OpenID Connect endpoint discovery.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
