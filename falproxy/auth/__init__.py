"""Authentication module for the fal proxy."""

from .credentials import AuthCredential, extract_credential, mask_secret, parse_authorization_value

__all__ = ["AuthCredential", "extract_credential", "mask_secret", "parse_authorization_value"]
