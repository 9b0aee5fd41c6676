"""Tests for OpenID Connect discovery and PKCE helpers."""

from __future__ import annotations

import base64
import hashlib
from unittest.mock import MagicMock, patch

import httpx
import pytest

from loopauth.discovery import WELL_KNOWN_PATH, discover_endpoints, discovery_url_for
from loopauth.exceptions import DiscoveryError
from loopauth.pkce import generate_pkce_pair, generate_state

DOC = {
    "issuer": "https://accounts.example.com",
    "authorization_endpoint": "https://accounts.example.com/o/oauth2/v2/auth",
    "token_endpoint": "https://oauth2.example.com/token",
}


def _mock_response(json_data: object = None, status_code: int = 200) -> MagicMock:
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.text = "body"
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "error", request=MagicMock(), response=response
        )
    return response


class TestDiscoveryUrl:
    def test_appends_well_known(self) -> None:
        assert discovery_url_for("https://idp.example.com/") == (
            "https://idp.example.com" + WELL_KNOWN_PATH
        )

    def test_full_url_unchanged(self) -> None:
        url = "https://idp.example.com/tenant" + WELL_KNOWN_PATH
        assert discovery_url_for(url) == url


class TestDiscoverEndpoints:
    def test_success(self) -> None:
        with patch("loopauth.discovery.httpx.get", return_value=_mock_response(DOC)) as get:
            doc = discover_endpoints("https://accounts.example.com")
        assert doc["authorization_endpoint"] == DOC["authorization_endpoint"]
        assert get.call_args.args[0] == "https://accounts.example.com" + WELL_KNOWN_PATH
        assert get.call_args.kwargs["follow_redirects"] is True

    def test_http_error_status(self) -> None:
        with patch("loopauth.discovery.httpx.get", return_value=_mock_response(status_code=404)):
            with pytest.raises(DiscoveryError, match="404"):
                discover_endpoints("https://idp.example.com")

    def test_connection_error(self) -> None:
        with patch(
            "loopauth.discovery.httpx.get", side_effect=httpx.ConnectError("refused")
        ):
            with pytest.raises(DiscoveryError, match="refused"):
                discover_endpoints("https://idp.example.com")

    def test_invalid_json(self) -> None:
        response = _mock_response()
        response.json.side_effect = ValueError("Expecting value")
        with patch("loopauth.discovery.httpx.get", return_value=response):
            with pytest.raises(DiscoveryError, match="invalid JSON"):
                discover_endpoints("https://idp.example.com")

    def test_missing_authorization_endpoint(self) -> None:
        with patch(
            "loopauth.discovery.httpx.get",
            return_value=_mock_response({"issuer": "https://idp.example.com"}),
        ):
            with pytest.raises(DiscoveryError, match="authorization_endpoint"):
                discover_endpoints("https://idp.example.com")

    def test_discovery_error_exit_code(self) -> None:
        assert DiscoveryError("x").exit_code == 6


class TestPkce:
    def test_challenge_matches_verifier(self) -> None:
        verifier, challenge = generate_pkce_pair()
        assert 43 <= len(verifier) <= 128
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        assert challenge == base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

    def test_pairs_are_unique(self) -> None:
        assert generate_pkce_pair() != generate_pkce_pair()

    def test_state_is_random(self) -> None:
        assert generate_state() != generate_state()
        assert len(generate_state()) >= 32
