"""Showroom visit deliveries: new visit, exit note, delete.

Whichever of ``new_visit``, ``exit_note`` or ``delete`` is present first
(in that order) decides the tag. An exit note dated ten minutes or more
before arrival carries the real visit time and backfills it.
"""

from __future__ import annotations

from typing import Any

from src.reshaper.categories.base import (
    CategoryConfig,
    Projection,
    ProjectionContext,
    entity_ref,
    require_enum,
    require_mapping,
    require_value,
    to_epoch_ms,
    to_iso,
)
from src.reshaper.core.cascade import Cascade, Rule
from src.reshaper.core.emptiness import add_if_has_value, get_mapping, get_path, has_value
from src.reshaper.core.fingerprint import FingerprintPolicy
from src.reshaper.ingestion.schemas import (
    ClassifiedEvent,
    Delivery,
    RejectionReason,
    ValidationFailure,
)

TAGS: tuple[str, ...] = ("new_visit", "exit_note", "delete")

VISIT_TYPES = frozenset(
    {
        "BeBack",
        "InternetApptShow",
        "PhoneApptShow",
        "RepeatCustomer",
        "FreshWalkIn",
        "OutsideProspect",
        "Referral",
        "ServiceCustomer",
    }
)

BACKFILL_GAP_MS = 10 * 60 * 1000


def _present(key: str):
    return lambda visit: has_value(get_mapping(visit, key))


VISIT_CASCADE: Cascade[str] = Cascade(
    "showroom_visit_event",
    [Rule(tag, _present(tag), tag) for tag in TAGS],
)


def classify(delivery: Delivery) -> ClassifiedEvent:
    visit = require_mapping(delivery.body, "showroom_visit")
    tag = VISIT_CASCADE.resolve(visit)
    if tag is None:
        msg = "showroom_visit must contain new_visit, exit_note, or delete"
        raise ValidationFailure(RejectionReason.UNRECOGNIZED_SHAPE, msg, field="showroom_visit")

    section = visit[tag]
    prefix = f"showroom_visit.{tag}"
    if tag == "new_visit":
        require_value(section.get("id"), f"{prefix}.id")
        require_value(section.get("date"), f"{prefix}.date")
        visit_type = require_value(section.get("type"), f"{prefix}.type")
        require_enum(visit_type, VISIT_TYPES, f"{prefix}.type")
    elif tag == "exit_note":
        require_value(section.get("showroom_visit_id"), f"{prefix}.showroom_visit_id")
        require_value(section.get("id"), f"{prefix}.id")
    else:
        require_value(section.get("id"), f"{prefix}.id")

    return ClassifiedEvent(tag=tag, payload=dict(section))


def _backfilled_visit_ms(exit_date: Any, arrival: Any) -> int | None:
    """Exit-note date in ms when it precedes arrival by the backfill gap."""
    exit_ms = to_epoch_ms(exit_date)
    arrival_ms = to_epoch_ms(arrival)
    if exit_ms is None or arrival_ms is None:
        return None
    return exit_ms if arrival_ms - exit_ms >= BACKFILL_GAP_MS else None


def project(event: ClassifiedEvent, ctx: ProjectionContext) -> Projection:
    tag = event.tag
    section = event.payload
    now = ctx.arrival_timestamp

    customer = entity_ref(ctx)
    activity = entity_ref(ctx)

    if tag == "new_visit":
        visit_id = get_path(section, "id")
        date_time = get_path(section, "date")
        customer["primary_tier"] = 1
        customer["last_primary_tier_event"] = date_time
        customer["last_showroom_visit"] = date_time
        record: dict[str, Any] = {"id": visit_id, "dealer_id": ctx.dealer_id, "customer_id": ctx.customer_id}
        record["date_time"] = date_time
        record["type"] = get_path(section, "type")
        add_if_has_value(record, "created_by", get_path(section, "employee_id"))
        add_if_has_value(record, "appointment_id", get_path(section, "appointment", "id"))
        activity["last_showroom_visit"] = now

    elif tag == "exit_note":
        visit_id = get_path(section, "showroom_visit_id")
        exit_date = get_path(section, "date")
        backfill = _backfilled_visit_ms(exit_date, now)
        customer["last_showroom_visit"] = now
        record = {"id": visit_id, "dealer_id": ctx.dealer_id, "customer_id": ctx.customer_id}
        if backfill is not None:
            record["date_time"] = exit_date
        record["exit_note_id"] = get_path(section, "id")
        add_if_has_value(record, "exit_at", to_iso(now))
        add_if_has_value(record, "exit_by", get_path(section, "employee_id"))
        add_if_has_value(record, "is_manager_note", get_path(section, "is_manager_note"))
        add_if_has_value(record, "exit_note", get_path(section, "quick_note"))
        add_if_has_value(record, "reason_unsold", get_path(section, "reason_unsold"))
        activity["last_showroom_visit_exit_note"] = now
        if backfill is not None:
            activity["last_showroom_visit"] = backfill

    else:
        visit_id = get_path(section, "id")
        record = {"id": visit_id, "dealer_id": ctx.dealer_id, "customer_id": ctx.customer_id}
        record["deleted_at"] = now
        add_if_has_value(record, "deleted_by", get_path(section, "employee_id"))
        activity["last_showroom_visit_deleted"] = now

    return Projection(
        aggregate=customer,
        records={"showroom_visit": record, "customer_last_activity": activity},
    )


CATEGORY = CategoryConfig(
    name="showroom_visits",
    event_name="promax_websocket.showroom_visit",
    schema_version="1.2",
    policy=FingerprintPolicy.LOGICAL,
    tags=TAGS,
    classify=classify,
    project=project,
    cascades=(VISIT_CASCADE,),
)
