"""Appointment lifecycle deliveries.

Resolves a ``sales_appointment`` payload into one of ten lifecycle tags
with an ordered cascade. The same payload can satisfy several rules (a
confirmed appointment is usually also "Current"), so priority is explicit:

1. confirmed   -- ``confirmed_status.confirmed`` is literally True.
2. set         -- status "Current", a scheduled time, and either assignment
                  evidence (root ``dealer_parties``) or a scheduled time on a
                  quarter-hour boundary.
3. rescheduled -- status "Reschedule" with a successor appointment id.
4. direct map  -- closed status set; anything else is rejected.

The quarter-hour test stands in for missing assignment evidence. It
false-positives on walk-ins that land on :00/:15/:30/:45 and misses
off-boundary appointments booked without dealer_parties. That trade-off
is accepted; do not "fix" it here without upstream evidence.

Appointment transitions legitimately recur with identical content, so this
category fingerprints with the DELIVERY policy.
"""

from __future__ import annotations

from typing import Any

from src.reshaper.categories.base import (
    CategoryConfig,
    Projection,
    ProjectionContext,
    entity_ref,
    require_mapping,
    require_value,
    to_utc_datetime,
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

CURRENT_STATUS = "Current"
RESCHEDULE_STATUS = "Reschedule"
QUARTER_HOUR_MINUTES = frozenset({0, 15, 30, 45})

STATUS_TAGS: dict[str, str] = {
    "Current": "current",
    "Missed": "missed",
    "Shown": "shown",
    "Sold": "sold",
    "Unsold": "unsold",
    "Cancelled": "cancelled",
    "Deleted": "deleted",
}

TAGS: tuple[str, ...] = (
    "set",
    "confirmed",
    "current",
    "missed",
    "shown",
    "sold",
    "unsold",
    "cancelled",
    "rescheduled",
    "deleted",
)

# Tags that move the customer to tier 1 and bump last_appt_updated_at.
PRIMARY_TIER_TAGS = frozenset({"set", "current", "confirmed", "shown", "sold", "rescheduled", "unsold"})


def is_on_quarter_hour(value: Any) -> bool:
    """True when the UTC minute of ``value`` is 0, 15, 30 or 45.

    Accepts ISO-8601 strings and epoch numbers. Unparseable or
    out-of-range input is False.
    """
    moment = to_utc_datetime(value)
    return moment is not None and moment.minute in QUARTER_HOUR_MINUTES


# ── Cascade ──────────────────────────────────────────────────────────────────
# The subject is the sales_appointment mapping.


def _appointment(sales: Any) -> Any:
    return get_mapping(sales, "appointment") or {}


def _status(sales: Any) -> Any:
    return get_path(sales, "appointment", "appointment_status", "status")


def _is_confirmed(sales: Any) -> bool:
    return get_path(sales, "appointment", "confirmed_status", "confirmed") is True


def _is_set(sales: Any) -> bool:
    if _status(sales) != CURRENT_STATUS:
        return False
    date_time = get_path(sales, "appointment", "date_time")
    if not has_value(date_time):
        return False
    has_assignment = has_value(get_path(sales, "dealer_parties"))
    return has_assignment or is_on_quarter_hour(date_time)


def _is_rescheduled(sales: Any) -> bool:
    successor = get_path(sales, "appointment", "appointment_status", "details", "new_appointment_id")
    return _status(sales) == RESCHEDULE_STATUS and has_value(successor)


def _status_rule(status: str, tag: str) -> Rule[str]:
    return Rule(f"status_{tag}", lambda sales, s=status: _status(sales) == s, tag)


APPOINTMENT_CASCADE: Cascade[str] = Cascade(
    "appointment_event",
    [
        Rule("confirmed_flag", _is_confirmed, "confirmed"),
        Rule("current_with_schedule", _is_set, "set"),
        Rule("reschedule_with_successor", _is_rescheduled, "rescheduled"),
        *(_status_rule(status, tag) for status, tag in STATUS_TAGS.items()),
    ],
)


def classify(delivery: Delivery) -> ClassifiedEvent:
    sales = require_mapping(delivery.body, "sales_appointment")
    appointment = require_mapping(sales, "appointment", path="sales_appointment.appointment")
    require_mapping(
        appointment, "appointment_status", path="sales_appointment.appointment.appointment_status"
    )
    require_value(appointment.get("appointment_id"), "sales_appointment.appointment.appointment_id")

    tag = APPOINTMENT_CASCADE.resolve(sales)
    if tag is None:
        status = _status(sales)
        msg = f"unsupported appointment status {status!r}"
        raise ValidationFailure(
            RejectionReason.UNRECOGNIZED_ENUM_VALUE,
            msg,
            field="sales_appointment.appointment.appointment_status.status",
        )
    return ClassifiedEvent(tag=tag, payload=dict(sales))


# ── Projection ───────────────────────────────────────────────────────────────


def displayed_status(tag: str, status: Any) -> Any:
    if tag == "confirmed":
        return "Confirmed"
    if tag == "rescheduled":
        return "Rescheduled"
    return status


def project(event: ClassifiedEvent, ctx: ProjectionContext) -> Projection:
    sales = event.payload
    tag = event.tag
    appointment = _appointment(sales)
    now = ctx.arrival_timestamp
    appointment_id = get_path(appointment, "appointment_id")
    date_time = get_path(appointment, "date_time")
    status = displayed_status(tag, _status(sales))
    successor = get_path(appointment, "appointment_status", "details", "new_appointment_id")
    assigned_to = get_path(sales, "dealer_parties", "employee_id")
    confirmed_by = get_path(appointment, "confirmed_status", "dealer_parties", "employee_id")

    customer = entity_ref(ctx)
    if tag in PRIMARY_TIER_TAGS:
        customer["primary_tier"] = 1
        add_if_has_value(customer, "last_primary_tier_event", now)
    if tag == "set":
        add_if_has_value(customer, "last_appt_scheduled_for", date_time)
    if tag in PRIMARY_TIER_TAGS:
        add_if_has_value(customer, "last_appt_updated_at", now)

    record: dict[str, Any] = {"id": appointment_id, "dealer_id": ctx.dealer_id, "customer_id": ctx.customer_id}
    if tag == "set":
        add_if_has_value(record, "scheduled_at", now)
        add_if_has_value(record, "scheduled_for", date_time)
        add_if_has_value(record, "scheduled_by", assigned_to)
    add_if_has_value(record, "status", status)
    add_if_has_value(record, "status_updated_at", now)
    if tag == "set":
        add_if_has_value(record, "set_via", get_path(appointment, "set_via"))
        add_if_has_value(record, "comments", get_path(appointment, "comments"))
    elif tag == "confirmed":
        add_if_has_value(record, "confirmed_at", now)
        add_if_has_value(record, "confirmed_by", confirmed_by)
    elif tag == "rescheduled":
        add_if_has_value(record, "new_appointment_id", successor)

    update: dict[str, Any] = {
        "id": ctx.fingerprint,
        "websocket_timestamp": now,
        "dealer_id": ctx.dealer_id,
        "customer_id": ctx.customer_id,
        "appointment_id": appointment_id,
        "status": status,
    }
    add_if_has_value(update, "date_time", now if tag == "confirmed" else date_time)
    if tag == "set":
        add_if_has_value(update, "employee_id", assigned_to)
        add_if_has_value(update, "comments", get_path(appointment, "comments"))
    elif tag == "confirmed":
        add_if_has_value(update, "employee_id", confirmed_by)
    elif tag == "rescheduled":
        add_if_has_value(update, "new_appointment_id", successor)

    activity = entity_ref(ctx)
    if tag == "set":
        add_if_has_value(activity, "last_appt_scheduled_for", date_time)
    activity_tag = "set" if tag in ("set", "current") else tag
    activity[f"last_appt_{activity_tag}"] = now

    return Projection(
        aggregate=customer,
        records={
            "appointment": record,
            "appointment_update": update,
            "customer_last_activity": activity,
        },
    )


CATEGORY = CategoryConfig(
    name="appointments",
    event_name="promax_websocket.appointments",
    schema_version="1.4",
    policy=FingerprintPolicy.DELIVERY,
    tags=TAGS,
    classify=classify,
    project=project,
    cascades=(APPOINTMENT_CASCADE,),
)
