"""Customer, lead and service status deliveries.

One delivery may carry any combination of the three status kinds. The tag
names the highest-priority kind present (customer, then lead, then
service); every present kind is still projected.
"""

from __future__ import annotations

from typing import Any

from src.reshaper.categories.base import (
    CategoryConfig,
    Projection,
    ProjectionContext,
    entity_ref,
    require_mapping,
)
from src.reshaper.core.cascade import Cascade, Rule
from src.reshaper.core.emptiness import add_if_has_value, get_path, has_value
from src.reshaper.core.fingerprint import FingerprintPolicy
from src.reshaper.ingestion.schemas import (
    ClassifiedEvent,
    Delivery,
    RejectionReason,
    ValidationFailure,
)

TAGS: tuple[str, ...] = ("customer_status", "lead_status", "service_status")

# Status kinds in output order: (field prefix, record type, carries dealer id).
STATUS_KINDS: tuple[tuple[str, str, bool], ...] = (
    ("customer_status", "Customer", True),
    ("service_status", "Service", True),
    ("lead_status", "Lead", False),
)

TIER_EXCLUDING_PATTERNS: tuple[str, ...] = ("bad lead", "unsubscribe", "bad - invalid info")

DELIVERED = "delivered"


def _has_status(name: str):
    return lambda statuses: has_value(get_path(statuses, name))


STATUS_CASCADE: Cascade[str] = Cascade(
    "status_kind",
    [Rule(tag, _has_status(tag), tag) for tag in TAGS],
)


def excludes_primary_tier(status: Any) -> bool:
    if not isinstance(status, str):
        return False
    lowered = status.lower()
    return any(pattern in lowered for pattern in TIER_EXCLUDING_PATTERNS)


def is_delivered(status: Any) -> bool:
    return isinstance(status, str) and status.lower() == DELIVERED


def classify(delivery: Delivery) -> ClassifiedEvent:
    statuses = require_mapping(delivery.body, "customer_status")
    tag = STATUS_CASCADE.resolve(statuses)
    if tag is None:
        msg = "customer_status carries no customer, lead or service status"
        raise ValidationFailure(RejectionReason.UNRECOGNIZED_SHAPE, msg, field="customer_status")
    return ClassifiedEvent(tag=tag, payload=dict(statuses))


def project(event: ClassifiedEvent, ctx: ProjectionContext) -> Projection:
    statuses = event.payload
    now = ctx.arrival_timestamp
    names = {kind: get_path(statuses, kind) for kind, _, _ in STATUS_KINDS}

    customer = entity_ref(ctx)
    for kind in TAGS:
        add_if_has_value(customer, kind, names[kind])
        add_if_has_value(customer, f"{kind}_id", get_path(statuses, f"{kind}_id"))

    delivered = is_delivered(names["customer_status"])
    if not any(excludes_primary_tier(name) for name in names.values()):
        customer["primary_tier"] = 1 if delivered else 4
        customer["last_primary_tier_event"] = now

    status_records = []
    for kind, record_type, with_dealer in STATUS_KINDS:
        status_id = get_path(statuses, f"{kind}_id")
        if has_value(status_id) and has_value(names[kind]):
            entry = {"id": status_id, "type": record_type, "name": names[kind]}
            if with_dealer:
                entry["dealer_id"] = ctx.dealer_id
            status_records.append(entry)

    activity = entity_ref(ctx)
    if has_value(names["customer_status"]):
        activity["last_customer_status_update"] = now
    if has_value(names["lead_status"]):
        activity["last_lead_status_update"] = now
    if delivered:
        activity["last_delivered"] = now

    return Projection(
        aggregate=customer,
        records={"status": status_records, "customer_last_activity": activity},
    )


CATEGORY = CategoryConfig(
    name="status",
    event_name="promax_websocket.status",
    schema_version="2.7",
    policy=FingerprintPolicy.LOGICAL,
    tags=TAGS,
    classify=classify,
    project=project,
    cascades=(STATUS_CASCADE,),
)
