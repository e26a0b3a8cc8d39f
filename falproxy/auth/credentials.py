"""Client credential extraction for forwarding requests to fal."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger("falproxy")

AUTHORIZATION_HEADER = "authorization"
APP_TOKEN_HEADER = "x-app-token"

SCHEME_BEARER = "bearer"
SCHEME_BASIC = "basic"
SCHEME_API_KEY = "apikey"
SCHEME_KEY = "key"


@dataclass(frozen=True)
class AuthCredential:
    """Credential presented by a client.

    ``token`` is the value forwarded to fal. For Basic auth it is the decoded
    ``user:pass`` string, with the two halves also exposed separately.
    """

    scheme: str
    token: str
    username: str | None = None
    password: str | None = None

    def masked(self) -> str:
        """Return a log-safe representation of the token."""
        return mask_secret(self.token)


def mask_secret(value: str | None) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"


def _decode_basic(encoded: str) -> AuthCredential | None:
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Failed to decode Basic credential: %s", exc)
        return None
    username, _, password = decoded.partition(":")
    return AuthCredential(
        scheme=SCHEME_BASIC,
        token=decoded,
        username=username,
        password=password,
    )


def parse_authorization_value(value: str | None) -> AuthCredential | None:
    """Parse a single ``<Scheme> <credential>`` header value.

    Recognised schemes are Bearer, Basic, ApiKey and Key (case-insensitive).
    Anything else, including values that do not split into exactly two
    space-separated parts, yields ``None``.
    """
    if not value:
        return None
    parts = value.strip().split(" ")
    if len(parts) != 2 or not parts[1]:
        return None

    scheme, token = parts[0].lower(), parts[1]
    if scheme == SCHEME_BASIC:
        return _decode_basic(token)
    if scheme in (SCHEME_BEARER, SCHEME_API_KEY, SCHEME_KEY):
        return AuthCredential(scheme=scheme, token=token)

    logger.debug("Unsupported authorization scheme '%s'", parts[0])
    return None


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    for key, candidate in headers.items():
        if key.lower() == name:
            return candidate
    return None


def extract_credential(headers: Mapping[str, str]) -> AuthCredential | None:
    """Extract the client credential from request headers.

    ``Authorization`` is consulted first; ``X-App-Token`` is used only when
    ``Authorization`` is absent.
    """
    value = _header(headers, AUTHORIZATION_HEADER)
    if value is None:
        value = _header(headers, APP_TOKEN_HEADER)
    return parse_authorization_value(value)
