"""Identifier classification and normalization (email or phone)."""

import re
from enum import Enum

from otpflow.errors import InvalidIdentifierFormat, ValidationError
from otpflow.models.verification_code import VerificationType

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# E.164: +<country><number>, 10-15 digits after the plus
E164_RE = re.compile(r"^\+[1-9]\d{9,14}$")

# Local mobile format: 09XXXXXXXXX
LOCAL_PHONE_RE = re.compile(r"^09\d{9}$")

PHONE_SEPARATORS_RE = re.compile(r"[\s\-().]")

MARKUP_RE = re.compile(r"[<>]")


class IdentifierType(str, Enum):
    """Kind of identifier a user signs in with."""

    EMAIL = "email"
    PHONE = "phone"

    @property
    def verification_type(self) -> VerificationType:
        """Verification code kind issued for this identifier type."""
        match self:
            case IdentifierType.EMAIL:
                return VerificationType.EMAIL
            case IdentifierType.PHONE:
                return VerificationType.PHONE


def sanitize(raw: str) -> str:
    """Trim whitespace and strip angle brackets."""
    return MARKUP_RE.sub("", raw.strip())


def is_valid_email(value: str) -> bool:
    return EMAIL_RE.match(value) is not None


def is_valid_phone(value: str) -> bool:
    cleaned = PHONE_SEPARATORS_RE.sub("", value)
    return E164_RE.match(cleaned) is not None or LOCAL_PHONE_RE.match(cleaned) is not None


def classify(identifier: str) -> IdentifierType:
    """Classify an identifier as email or phone.

    Email is checked first, then phone.

    Raises:
        InvalidIdentifierFormat: If the identifier matches neither.
    """
    if is_valid_email(identifier):
        return IdentifierType.EMAIL
    if is_valid_phone(identifier):
        return IdentifierType.PHONE
    raise InvalidIdentifierFormat()


def normalize(identifier: str, identifier_type: IdentifierType) -> str:
    """Canonical form used for storage and lookups."""
    match identifier_type:
        case IdentifierType.EMAIL:
            return identifier.lower()
        case IdentifierType.PHONE:
            return PHONE_SEPARATORS_RE.sub("", identifier)


def resolve(
    raw: str,
    declared_type: IdentifierType | None = None,
) -> tuple[str, IdentifierType]:
    """Sanitize, classify and normalize a raw identifier.

    Args:
        raw: Identifier as received from the client
        declared_type: Type the client claims the identifier has, if any

    Returns:
        Tuple of (normalized identifier, identifier type)
    """
    cleaned = sanitize(raw)
    if not cleaned:
        raise ValidationError("Email or phone is required")

    identifier_type = classify(cleaned)
    if declared_type is not None and declared_type != identifier_type:
        raise ValidationError(f"Identifier is not a valid {declared_type.value}")

    return normalize(cleaned, identifier_type), identifier_type


def mask_identifier(identifier: str) -> str:
    """Mask an identifier for log output."""
    if "@" in identifier:
        local, _, domain = identifier.partition("@")
        if len(local) > 2:
            masked_local = local[:2] + "*" * (len(local) - 2)
        else:
            masked_local = "*" * len(local)
        return f"{masked_local}@{domain}"

    if len(identifier) > 4:
        return identifier[:2] + "*" * (len(identifier) - 4) + identifier[-2:]
    return "*" * len(identifier)
