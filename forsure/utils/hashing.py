"""
One-way lookup keys and display fragments for the shared network.

Hashes are SHA-256 hex digests of normalized values and are only ever used
as equality lookup keys. Display fragments are derived from the raw value
at write time and are deliberately lossy.
"""

import hashlib
from dataclasses import dataclass
from typing import Optional

from config.settings import MIN_ADDRESS_LENGTH, MIN_PHONE_DIGITS
from forsure.utils.normalization import normalize_address, normalize_email, normalize_phone


def hash_value(normalized: str) -> str:
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def business_key(business_id: str) -> str:
    """Opaque per-tenant key stored with network sightings."""
    return hash_value(f"business:{business_id}")


def phone_last_four(phone: str) -> str:
    return normalize_phone(phone)[-4:]


def email_domain(email: str) -> str:
    normalized = normalize_email(email)
    return normalized.split("@", 1)[1] if "@" in normalized else ""


def partial_address(address: str) -> str:
    """
    Street name and locality with the house number removed.

    "123 Main St, Springfield, PA" -> "Main St, Springfield, PA"
    """
    parts = [p.strip() for p in address.split(",")]
    words = parts[0].split()
    if words and words[0].isdigit():
        words = words[1:]
    street = " ".join(words)
    if len(parts) >= 2:
        return ", ".join([street] + parts[1:])
    return street


@dataclass
class IdentityKeys:
    """Hashes and fragments for the facts that were usable."""

    phone_hash: Optional[str] = None
    email_hash: Optional[str] = None
    address_hash: Optional[str] = None
    phone_last_four: Optional[str] = None
    email_domain: Optional[str] = None
    address_partial: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.phone_hash or self.email_hash or self.address_hash)

    def lookup_order(self) -> list[tuple[str, str]]:
        """(kind, hash) pairs in resolution priority: phone, email, address."""
        pairs = [
            ("phone", self.phone_hash),
            ("email", self.email_hash),
            ("address", self.address_hash),
        ]
        return [(kind, value) for kind, value in pairs if value]


def derive_identity_keys(
    phone: Optional[str] = None,
    email: Optional[str] = None,
    address: Optional[str] = None,
) -> IdentityKeys:
    keys = IdentityKeys()

    if phone:
        digits = normalize_phone(phone)
        if len(digits) >= MIN_PHONE_DIGITS:
            keys.phone_hash = hash_value(digits)
            keys.phone_last_four = digits[-4:]

    if email:
        normalized = normalize_email(email)
        if "@" in normalized:
            keys.email_hash = hash_value(normalized)
            keys.email_domain = normalized.split("@", 1)[1]

    if address:
        normalized = normalize_address(address)
        if len(normalized) >= MIN_ADDRESS_LENGTH:
            keys.address_hash = hash_value(normalized)
            keys.address_partial = partial_address(address.strip())

    return keys
