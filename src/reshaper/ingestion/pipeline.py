"""process_delivery(): the single entry point for one inbound delivery.

Flow: normalize correlation keys and arrival time -> classify with the
category cascade -> fingerprint the raw body -> project the aggregate and
secondary records -> stamp provenance -> build the outcome.

Two failure tiers:

- ValidationFailure from any step becomes a RejectedOutcome. Nothing
  partially built leaks out.
- Any other exception becomes a DegradedOutcome that keeps the original
  payload, so the delivery is forwarded rather than dropped.

The function is synchronous, stateless and O(payload size); concurrent
calls share only immutable category configuration.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import structlog

from src.reshaper.categories import get_category
from src.reshaper.categories.base import CategoryConfig, ProjectionContext, to_epoch_ms
from src.reshaper.config import Settings, get_settings
from src.reshaper.core.canonical import payload_bytes, stable_stringify
from src.reshaper.core.emptiness import normalize
from src.reshaper.core.fingerprint import fingerprint_pair
from src.reshaper.core.monitoring import record_delivery, track_delivery
from src.reshaper.core.provenance import stamp_provenance
from src.reshaper.ingestion.schemas import (
    ClassifiedOutcome,
    DegradedOutcome,
    Delivery,
    ErrorInfo,
    RejectedOutcome,
    RejectionReason,
    ValidationFailure,
)

logger = structlog.get_logger(__name__)

CORRELATION_KEYS: tuple[str, ...] = ("customer_id", "dealer_id")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _payload_hash(headers: Mapping[str, Any] | None, header_name: str) -> str | None:
    if not headers:
        return None
    wanted = header_name.lower()
    for key, value in headers.items():
        if str(key).lower() == wanted:
            value = normalize(value)
            return None if value is None else str(value)
    return None


def _body_preview(body: Any, limit: int) -> str:
    # Called from the failure branches; must not raise itself.
    try:
        return stable_stringify(body)[:limit]
    except Exception as exc:
        return f"<preview unavailable: {type(exc).__name__}>"


def resolve_arrival_timestamp(
    body: Mapping[str, Any], explicit: int | float | None, timestamp_field: str
) -> int | float:
    """Explicit arrival time, else the body's timestamp field, else now (ms)."""
    if explicit is not None:
        return explicit
    raw = normalize(body.get(timestamp_field))
    if raw is None or raw == 0:
        return _now_ms()
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return raw
    parsed = to_epoch_ms(raw)
    if parsed is None:
        msg = f"unparseable arrival timestamp {raw!r}"
        raise ValidationFailure(RejectionReason.INVALID_VALUE, msg, field=timestamp_field)
    return parsed


def build_delivery(
    category: CategoryConfig,
    body: Any,
    *,
    payload_hash: str | None,
    arrival_timestamp: int | float | None,
    settings: Settings,
) -> Delivery:
    """Validate the envelope and extract correlation identity.

    Raises:
        ValidationFailure: Body is not an object, or a correlation key is
            missing.
    """
    if not isinstance(body, Mapping):
        msg = "body must be an object"
        raise ValidationFailure(RejectionReason.UNRECOGNIZED_SHAPE, msg)

    keys = {}
    for key in CORRELATION_KEYS:
        value = normalize(body.get(key))
        if value is None:
            msg = f"missing required {key}"
            raise ValidationFailure(RejectionReason.MISSING_CORRELATION_KEY, msg, field=key)
        keys[key] = value

    return Delivery(
        category=category.name,
        body=dict(body),
        customer_id=keys["customer_id"],
        dealer_id=keys["dealer_id"],
        arrival_timestamp=resolve_arrival_timestamp(body, arrival_timestamp, settings.TIMESTAMP_FIELD),
        payload_hash=payload_hash,
    )


def _classify_and_project(
    config: CategoryConfig, delivery: Delivery, settings: Settings
) -> ClassifiedOutcome:
    event = config.classify(delivery)
    config.check_tag(event.tag)

    namespace = config.namespace or settings.NAMESPACE
    logical, per_delivery = fingerprint_pair(
        delivery.body, namespace, timestamp_field=settings.TIMESTAMP_FIELD
    )
    selected = per_delivery if config.policy.include_volatile_timestamp else logical

    ctx = ProjectionContext(
        delivery=delivery,
        fingerprint=selected,
        arrival_timestamp=delivery.arrival_timestamp,
    )
    projection = config.project(event, ctx)

    stamped_at = projection.provenance_timestamp
    if stamped_at is None:
        stamped_at = delivery.arrival_timestamp
    maps = stamp_provenance(projection.aggregate, stamped_at, selected)

    return ClassifiedOutcome(
        category=config.name,
        event_name=config.event_name,
        event_version=config.schema_version,
        tag=event.tag,
        qualifiers=event.qualifiers,
        fingerprint=selected,
        logical_fingerprint=logical,
        delivery_fingerprint=per_delivery,
        arrival_timestamp=delivery.arrival_timestamp,
        payload_hash=delivery.payload_hash,
        customer_id=delivery.customer_id,
        dealer_id=delivery.dealer_id,
        classified_payload=event.payload,
        aggregate=projection.aggregate,
        last_received_at=maps.last_received_at,
        last_received_by=maps.last_received_by,
        records=projection.records,
        original_payload=delivery.body,
        sent_at=_now_iso(),
    )


def process_delivery(
    body: Any,
    category: str | CategoryConfig,
    *,
    headers: Mapping[str, Any] | None = None,
    arrival_timestamp: int | float | None = None,
    settings: Settings | None = None,
) -> ClassifiedOutcome | RejectedOutcome | DegradedOutcome:
    """Process one raw delivery into exactly one outcome.

    Args:
        body: Decoded JSON body as received.
        category: Registered category name or a CategoryConfig.
        headers: Transport headers; the idempotency header becomes
            ``payload_hash``.
        arrival_timestamp: Overrides the body's timestamp field.
        settings: Defaults to get_settings().

    Returns:
        ClassifiedOutcome, RejectedOutcome or DegradedOutcome.

    Raises:
        UnknownCategoryError: ``category`` is a name that is not registered.
    """
    config = get_category(category) if isinstance(category, str) else category
    settings = settings or get_settings()
    payload_hash = _payload_hash(headers, settings.IDEMPOTENCY_HEADER)
    log = logger.bind(category=config.name, event_version=config.schema_version, payload_hash=payload_hash)
    start = time.perf_counter()

    with track_delivery(config.name):
        try:
            size = payload_bytes(body)
            if size > settings.LARGE_PAYLOAD_BYTES:
                log.warning("large_payload_detected", body_bytes=size)

            delivery = build_delivery(
                config,
                body,
                payload_hash=payload_hash,
                arrival_timestamp=arrival_timestamp,
                settings=settings,
            )
            outcome = _classify_and_project(config, delivery, settings)

        except ValidationFailure as failure:
            log.warning(
                "delivery_rejected",
                reason=failure.reason.value,
                field=failure.field,
                error=failure.message,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                body_preview=_body_preview(body, settings.BODY_PREVIEW_CHARS),
            )
            record_delivery(config.name, "rejected", None)
            return RejectedOutcome.from_failure(config.name, failure, payload_hash)

        except Exception as exc:
            now_ms = _now_ms()
            log.error(
                "delivery_degraded",
                error=str(exc),
                error_type=type(exc).__name__,
                namespace=config.namespace or settings.NAMESPACE,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                body_preview=_body_preview(body, settings.BODY_PREVIEW_CHARS),
                exc_info=True,
            )
            record_delivery(config.name, "degraded", "unknown")
            return DegradedOutcome(
                category=config.name,
                event_name=config.event_name,
                event_version=config.schema_version,
                fingerprint=f"error-{now_ms}",
                arrival_timestamp=now_ms,
                payload_hash=payload_hash,
                original_payload=body,
                error=ErrorInfo(type=type(exc).__name__, message=str(exc), timestamp=_now_iso()),
            )

    log.info(
        "delivery_classified",
        tag=outcome.tag,
        fingerprint=outcome.fingerprint,
        customer_id=outcome.customer_id,
        dealer_id=outcome.dealer_id,
        namespace=config.namespace or settings.NAMESPACE,
        provenance_fields=len(outcome.last_received_at),
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    record_delivery(config.name, "classified", outcome.tag)
    return outcome
