"""Password strength policy and email format validation.

The same rules apply at registration and at password reset.
"""

import re
from typing import List, Literal

from pydantic import BaseModel

PASSWORD_MIN_LENGTH = 8
LONG_PASSWORD_LENGTH = 12
VERY_LONG_PASSWORD_LENGTH = 16
PASSWORD_SYMBOLS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?`~"

_UPPERCASE_RE = re.compile(r"[A-Z]")
_LOWERCASE_RE = re.compile(r"[a-z]")
_NUMBER_RE = re.compile(r"[0-9]")
_SYMBOL_RE = re.compile("[" + re.escape(PASSWORD_SYMBOLS) + "]")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

Strength = Literal["weak", "fair", "good", "strong"]


class PasswordValidationResult(BaseModel):
    """Outcome of checking a candidate password.

    Attributes:
        valid: True iff no rule failed
        errors: Tags of unmet requirements, in rule order
        strength: Display band derived from score
        score: 0-7, one point per rule plus length bonuses
    """

    valid: bool
    errors: List[str]
    strength: Strength
    score: int


def _strength_for(score: int) -> Strength:
    if score <= 2:
        return "weak"
    if score <= 4:
        return "fair"
    if score <= 5:
        return "good"
    return "strong"


def _is_utf8_encodable(password: str) -> bool:
    try:
        password.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def validate_password(password: str) -> PasswordValidationResult:
    """Score a password against the fixed rule set.

    Every rule is checked. Length bonuses (12+ and 16+ characters) apply only
    to passwords that already satisfy every rule, and only affect strength.
    A password that cannot be stored as UTF-8 (lone surrogates) is reported
    with the ``encoding`` error tag and is never valid.

    Args:
        password: Plain-text candidate

    Returns:
        PasswordValidationResult
    """
    rules = [
        ("min_length", len(password) >= PASSWORD_MIN_LENGTH),
        ("uppercase", bool(_UPPERCASE_RE.search(password))),
        ("lowercase", bool(_LOWERCASE_RE.search(password))),
        ("number", bool(_NUMBER_RE.search(password))),
        ("symbol", bool(_SYMBOL_RE.search(password))),
    ]

    errors = [tag for tag, satisfied in rules if not satisfied]
    score = sum(1 for _, satisfied in rules if satisfied)

    if not _is_utf8_encodable(password):
        errors.append("encoding")

    # Length only earns bonus points once every character rule is met.
    if not errors:
        if len(password) >= LONG_PASSWORD_LENGTH:
            score += 1
        if len(password) >= VERY_LONG_PASSWORD_LENGTH:
            score += 1

    return PasswordValidationResult(
        valid=not errors,
        errors=errors,
        strength=_strength_for(score),
        score=score,
    )


def password_policy() -> dict:
    """Public description of the password requirements."""
    return {
        "minLength": PASSWORD_MIN_LENGTH,
        "requirements": ["uppercase", "lowercase", "number", "symbol"],
        "symbols": PASSWORD_SYMBOLS,
    }


def validate_email(email: str) -> bool:
    """Loose structural email check: ``local@domain.tld`` without whitespace."""
    return bool(_EMAIL_RE.match(email))
