"""Category configuration and shared extraction helpers.

A category bundles everything the ingestion pipeline needs to process one
kind of upstream delivery: identity (name, event name, schema version),
fingerprint policy, the closed tag enumeration, a classifier, and a
projector. Categories are immutable module-level configuration; the
pipeline is the only code that runs them.

Exports:
    CategoryConfig: Frozen per-category configuration.
    ProjectionContext: Identity of the delivery being projected.
    Projection: Aggregate plus secondary records produced by a projector.
    require_mapping, require_value, require_enum: Validation helpers that
        raise ValidationFailure with the right RejectionReason.
    to_epoch_ms, to_utc_datetime, to_iso, entity_ref: Small value helpers.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.reshaper.core.cascade import Cascade
from src.reshaper.core.emptiness import get_mapping, normalize
from src.reshaper.core.fingerprint import FingerprintPolicy
from src.reshaper.core.provenance import attach_provenance, stamp_provenance
from src.reshaper.ingestion.schemas import (
    ClassifiedEvent,
    Delivery,
    RejectionReason,
    ValidationFailure,
)

# Numbers below this are epoch seconds, at or above are epoch milliseconds.
_EPOCH_MS_THRESHOLD = 1e12


# ── Projection ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectionContext:
    """What a projector knows about the delivery besides its classification.

    Attributes:
        delivery: The normalized delivery.
        fingerprint: Identity selected by the category's policy.
        arrival_timestamp: Epoch ms used for arrival-time fields.
    """

    delivery: Delivery
    fingerprint: str
    arrival_timestamp: int | float

    @property
    def customer_id(self) -> Any:
        return self.delivery.customer_id

    @property
    def dealer_id(self) -> Any:
        return self.delivery.dealer_id

    def stamp(self, record: Mapping[str, Any], timestamp: Any = None) -> dict[str, Any]:
        """Return ``record`` with its own provenance maps attached."""
        when = self.arrival_timestamp if timestamp is None else timestamp
        return attach_provenance(record, stamp_provenance(record, when, self.fingerprint))


@dataclass
class Projection:
    """Output of a category projector.

    Attributes:
        aggregate: Primary sparse record; stamped with provenance by the
            pipeline.
        records: Secondary records keyed by name. Values are dicts or
            lists of dicts and are emitted as-is.
        provenance_timestamp: Overrides the arrival timestamp when
            stamping the aggregate.
    """

    aggregate: dict[str, Any]
    records: dict[str, Any] = field(default_factory=dict)
    provenance_timestamp: int | float | None = None


Classifier = Callable[[Delivery], ClassifiedEvent]
Projector = Callable[[ClassifiedEvent, ProjectionContext], Projection]


# ── Category Config ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CategoryConfig:
    """Immutable configuration for one upstream delivery category.

    Attributes:
        name: Route and registry key (e.g. "appointments").
        event_name: Event name written on every outcome.
        schema_version: Output schema version string.
        policy: LOGICAL collapses redeliveries, DELIVERY keeps each one.
        tags: Closed enumeration the classifier may return.
        classify: Delivery -> ClassifiedEvent, or raises ValidationFailure.
        project: (ClassifiedEvent, ProjectionContext) -> Projection.
        cascades: Named cascades, exposed for inspection.
        namespace: Fingerprint namespace; None means the configured default.
    """

    name: str
    event_name: str
    schema_version: str
    policy: FingerprintPolicy
    tags: tuple[str, ...]
    classify: Classifier
    project: Projector
    cascades: tuple[Cascade, ...] = ()
    namespace: str | None = None

    def check_tag(self, tag: str) -> str:
        """Guard against a classifier returning a tag outside the enumeration."""
        if tag not in self.tags:
            msg = f"category '{self.name}' produced tag '{tag}' outside {list(self.tags)}"
            raise RuntimeError(msg)
        return tag

    def describe(self, default_namespace: str) -> dict[str, Any]:
        return {
            "name": self.name,
            "event_name": self.event_name,
            "schema_version": self.schema_version,
            "namespace": self.namespace or default_namespace,
            "fingerprint_policy": self.policy.value,
            "include_volatile_timestamp": self.policy.include_volatile_timestamp,
            "tags": list(self.tags),
            "cascades": {c.name: [r.name for r in c.rules] for c in self.cascades},
        }


# ── Validation Helpers ───────────────────────────────────────────────────────


def require_mapping(obj: Any, key: str, *, path: str | None = None) -> Mapping[str, Any]:
    """Return ``obj[key]`` as a mapping or reject with ``unrecognized_shape``."""
    value = get_mapping(obj, key)
    if value is None:
        where = path or key
        msg = f"missing required {where} object"
        raise ValidationFailure(RejectionReason.UNRECOGNIZED_SHAPE, msg, field=where)
    return value


def require_value(value: Any, path: str) -> Any:
    """Return the normalized value or reject with ``missing_required_field``."""
    value = normalize(value)
    if value is None:
        msg = f"missing required field {path}"
        raise ValidationFailure(RejectionReason.MISSING_REQUIRED_FIELD, msg, field=path)
    return value


def require_enum(value: Any, allowed: Collection[Any], path: str) -> Any:
    """Reject a value outside its closed enumeration. Never guesses."""
    if value not in allowed:
        msg = f"unsupported value {value!r} for {path}"
        raise ValidationFailure(RejectionReason.UNRECOGNIZED_ENUM_VALUE, msg, field=path)
    return value


# ── Value Helpers ────────────────────────────────────────────────────────────


def to_epoch_ms(value: Any) -> int | None:
    """Parse an ISO-8601 string or epoch number into epoch milliseconds.

    Naive ISO strings are read as UTC. Numbers below 1e12 are taken as
    epoch seconds. Anything unparseable or out of range returns None.
    """
    value = normalize(value)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return int(value * 1000 if value < _EPOCH_MS_THRESHOLD else value)
        except OverflowError:
            return None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    except (ValueError, OverflowError, OSError):
        return None


def to_utc_datetime(value: Any) -> datetime | None:
    """Aware UTC datetime for ``value``, or None when datetime cannot represent it."""
    ms = to_epoch_ms(value)
    if ms is None:
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def to_iso(value: Any) -> str | None:
    """Epoch ms (or ISO string) to a UTC ISO-8601 string with ``Z``."""
    moment = to_utc_datetime(value)
    if moment is None:
        return None
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def entity_ref(ctx: ProjectionContext, **extra: Any) -> dict[str, Any]:
    """Base shape shared by customer-keyed records: id plus dealer id."""
    return {"id": ctx.customer_id, "dealer_id": ctx.dealer_id, **extra}
