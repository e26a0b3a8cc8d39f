"""Tests for client credential extraction."""

import base64

import pytest

from falproxy.auth import AuthCredential, extract_credential, mask_secret, parse_authorization_value


def _basic(value: str) -> str:
    return "Basic " + base64.b64encode(value.encode("utf-8")).decode("ascii")


class TestParseAuthorizationValue:
    """Tests for the individual header schemes."""

    @pytest.mark.parametrize(
        "header, scheme",
        [
            ("Bearer tok-1", "bearer"),
            ("bearer tok-1", "bearer"),
            ("KEY tok-1", "key"),
            ("apiKey tok-1", "apikey"),
            ("ApiKey tok-1", "apikey"),
            ("Key tok-1", "key"),
        ],
    )
    def test_token_schemes(self, header, scheme):
        credential = parse_authorization_value(header)

        assert credential == AuthCredential(scheme=scheme, token="tok-1")

    def test_basic_is_decoded(self):
        credential = parse_authorization_value(_basic("alice:s3cret"))

        assert credential is not None
        assert credential.scheme == "basic"
        assert credential.token == "alice:s3cret"
        assert credential.username == "alice"
        assert credential.password == "s3cret"

    def test_basic_without_password(self):
        credential = parse_authorization_value(_basic("only-key"))

        assert credential.token == "only-key"
        assert credential.password == ""

    def test_undecodable_basic_returns_none(self, caplog):
        with caplog.at_level("WARNING", logger="falproxy"):
            assert parse_authorization_value("Basic ***not-base64***") is None
        assert "Failed to decode Basic credential" in caplog.text

    @pytest.mark.parametrize(
        "header",
        [None, "", "Bearer", "Bearer a b", "Token abc", "Bearer "],
    )
    def test_unrecognised_values(self, header):
        assert parse_authorization_value(header) is None


class TestExtractCredential:
    """Tests for header selection."""

    def test_prefers_authorization_header(self):
        credential = extract_credential(
            {"authorization": "Bearer from-auth", "x-app-token": "Key from-app"}
        )

        assert credential.token == "from-auth"

    def test_falls_back_to_app_token(self):
        credential = extract_credential({"X-App-Token": "Key app-key"})

        assert credential.scheme == "key"
        assert credential.token == "app-key"

    def test_invalid_authorization_does_not_fall_back(self):
        """X-App-Token is only consulted when Authorization is absent."""
        credential = extract_credential(
            {"Authorization": "Token nope", "x-app-token": "Key app-key"}
        )

        assert credential is None

    def test_no_headers(self):
        assert extract_credential({}) is None


def test_mask_secret():
    assert mask_secret(None) == ""
    assert mask_secret("short") == "***"
    assert mask_secret("abcdefghijkl") == "abcd...ijkl"
    assert AuthCredential("bearer", "abcdefghijkl").masked() == "abcd...ijkl"
