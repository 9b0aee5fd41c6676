"""PKCE helpers (:rfc:`7636`) for the authorization code flow.

The receiver itself never sees the verifier: the challenge travels in the
authorization request, and the verifier is handed to whoever redeems the
code.
"""

from __future__ import annotations

import base64
import hashlib
import secrets


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def generate_state() -> str:
    """Return an unguessable ``state`` value for CSRF protection."""
    return secrets.token_urlsafe(24)
