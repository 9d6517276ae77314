"""Content-addressed identity for inbound deliveries.

A fingerprint is MD5 over ``namespace:canonical_form`` formatted as
8-4-4-4-12 hex groups. It looks like a UUID but is NOT an RFC 4122 UUID:
no version or variant bits are set, it is a content hash reshaped for
presentation.

Two policies:

- LOGICAL: the top-level arrival timestamp is stripped before hashing, so
  redelivery of the same business event collapses to one identity.
- DELIVERY: the timestamp is included, so every physical delivery gets its
  own identity even when the content legitimately recurs.

MD5 is sufficient for deduplication at realistic event volumes; nothing
here depends on preimage or collision resistance against an adversary.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from enum import Enum
from typing import Any

from src.reshaper.core.canonical import canonical_stringify

NAMESPACE_SEPARATOR = ":"
DEFAULT_TIMESTAMP_FIELD = "timestamp"


class FingerprintPolicy(str, Enum):
    """Whether the arrival timestamp participates in the hash."""

    LOGICAL = "logical"
    DELIVERY = "delivery"

    @property
    def include_volatile_timestamp(self) -> bool:
        return self is FingerprintPolicy.DELIVERY


def md5_to_uuid(hex_digest: str) -> str:
    """Format a 32-char hex digest as 8-4-4-4-12 groups."""
    return "-".join(
        (
            hex_digest[0:8],
            hex_digest[8:12],
            hex_digest[12:16],
            hex_digest[16:20],
            hex_digest[20:32],
        )
    )


def _digest(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()  # noqa: S324 -- dedup identity, not security


def fingerprint(
    raw: Any,
    namespace: str,
    include_volatile_timestamp: bool,
    *,
    timestamp_field: str = DEFAULT_TIMESTAMP_FIELD,
) -> str:
    """Compute the deterministic identity of a delivery.

    Args:
        raw: The delivery body. Mappings have ``timestamp_field`` removed
            (on a shallow copy) unless ``include_volatile_timestamp``.
        namespace: Prefix that keeps identities of different sources apart.
        include_volatile_timestamp: DELIVERY policy when True, LOGICAL when False.
        timestamp_field: Top-level key holding the arrival timestamp.

    Returns:
        UUID-shaped lowercase hex string. Never raises: unsupported values
        degrade to null inside the canonical form.
    """
    content = raw
    if not include_volatile_timestamp and isinstance(raw, Mapping):
        content = {k: v for k, v in raw.items() if k != timestamp_field}

    canonical = canonical_stringify(content)
    return md5_to_uuid(_digest(f"{namespace}{NAMESPACE_SEPARATOR}{canonical}"))


def fingerprint_pair(
    raw: Any,
    namespace: str,
    *,
    timestamp_field: str = DEFAULT_TIMESTAMP_FIELD,
) -> tuple[str, str]:
    """Return ``(logical, delivery)`` fingerprints for the same delivery."""
    logical = fingerprint(raw, namespace, False, timestamp_field=timestamp_field)
    delivery = fingerprint(raw, namespace, True, timestamp_field=timestamp_field)
    return logical, delivery


def uuid_from_string(value: str | None) -> str | None:
    """UUID-shaped MD5 of an arbitrary string (no namespace, no canonicalization)."""
    if not value:
        return None
    return md5_to_uuid(_digest(value))
