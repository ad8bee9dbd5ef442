"""Opaque token and short-code generation."""

import secrets

TOKEN_BYTES = 32
SHORT_CODE_BYTES = 4


def generate_token() -> str:
    """Generate an opaque URL-safe token.

    Used for access, refresh, password-reset and email-verification tokens.
    The purpose of a token is determined by where it is stored, not by its
    format.

    Returns:
        43-character base64url string without padding
    """
    return secrets.token_urlsafe(TOKEN_BYTES)


def generate_short_code() -> str:
    """Generate a human-shareable code such as a family invite code.

    Collisions are possible; callers retry on conflict.

    Returns:
        8 uppercase hex characters
    """
    return secrets.token_hex(SHORT_CODE_BYTES).upper()
