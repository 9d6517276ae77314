"""Lead notification deliveries (codes 1000-1015).

The first notification whose code is in the closed code map decides the
tag. Provenance is stamped with the notification's own occurrence time
(``updates.lead_notification.date_time``), not the arrival time, so a late
redelivery cannot overwrite fields supplied by a newer notification.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from src.reshaper.categories.base import (
    CategoryConfig,
    Projection,
    ProjectionContext,
    entity_ref,
    require_value,
    to_epoch_ms,
)
from src.reshaper.core.cascade import Cascade, Rule
from src.reshaper.core.emptiness import add_if_has_value, get_path, normalize
from src.reshaper.core.fingerprint import FingerprintPolicy
from src.reshaper.ingestion.schemas import (
    ClassifiedEvent,
    Delivery,
    RejectionReason,
    ValidationFailure,
)

NOTIFICATION_CODES: dict[int, str] = {
    1000: "generic",
    1001: "other",
    1002: "merge",
    1003: "transfer",
    1004: "delete",
    1005: "license",
    1006: "credit_app",
    1007: "transunion",
    1008: "routeone",
    1009: "proposal",
    1010: "forms",
    1011: "cac",
    1012: "dealertrack",
    1013: "cudl",
    1014: "equifax",
    1015: "experian",
}

TAGS: tuple[str, ...] = tuple(NOTIFICATION_CODES.values())

PRIMARY_TIERS: dict[str, int] = {
    "license": 1,
    "routeone": 1,
    "credit_app": 2,
    "transunion": 2,
    "proposal": 2,
    "forms": 2,
}

ACTIVITY_FIELDS: dict[str, str] = {
    "license": "last_license_scanned",
    "credit_app": "last_credit_app_printed",
    "transunion": "last_transunion_pulled",
    "routeone": "last_routeone_sent",
    "proposal": "last_proposal_printed",
    "forms": "last_forms_printed",
}


def notification_code(notification: Any) -> int | None:
    """Integer code of a notification; numeric strings are accepted."""
    if not isinstance(notification, Mapping):
        return None
    code = normalize(notification.get("code"))
    if isinstance(code, bool):
        return None
    if isinstance(code, str) and code.strip().isdecimal():
        code = int(code.strip())
    if isinstance(code, float) and code.is_integer():
        code = int(code)
    return code if isinstance(code, int) else None


def _code_rule(code: int, tag: str) -> Rule[str]:
    return Rule(f"code_{code}", lambda n, c=code: notification_code(n) == c, tag)


# Applied to each notification in order; the first one any rule accepts wins.
NOTIFICATION_CASCADE: Cascade[str] = Cascade(
    "notification_code",
    [_code_rule(code, tag) for code, tag in NOTIFICATION_CODES.items()],
)


def classify(delivery: Delivery) -> ClassifiedEvent:
    notifications = delivery.body.get("notifications")
    if not isinstance(notifications, list) or not notifications:
        msg = "missing or empty notifications array"
        raise ValidationFailure(RejectionReason.UNRECOGNIZED_SHAPE, msg, field="notifications")

    for notification in notifications:
        tag = NOTIFICATION_CASCADE.resolve(notification)
        if tag is not None:
            break
    else:
        codes = [c for c in (notification_code(n) for n in notifications) if c is not None]
        msg = f"no supported notification found (found codes: {codes or 'none'})"
        raise ValidationFailure(RejectionReason.UNRECOGNIZED_ENUM_VALUE, msg, field="notifications.code")

    date_time = require_value(
        get_path(notification, "updates", "lead_notification", "date_time"),
        "notifications.updates.lead_notification.date_time",
    )
    occurred_at = to_epoch_ms(date_time)
    if occurred_at is None:
        msg = f"unable to parse date_time {date_time!r}"
        raise ValidationFailure(
            RejectionReason.INVALID_VALUE,
            msg,
            field="notifications.updates.lead_notification.date_time",
        )

    return ClassifiedEvent(
        tag=tag,
        payload=dict(notification),
        qualifiers={"code": notification_code(notification), "occurred_at": occurred_at},
    )


def project(event: ClassifiedEvent, ctx: ProjectionContext) -> Projection:
    tag = event.tag
    occurred_at = event.qualifiers["occurred_at"]
    date_time = get_path(event.payload, "updates", "lead_notification", "date_time")

    customer = entity_ref(ctx)
    tier = PRIMARY_TIERS.get(tag)
    if tier is not None:
        customer["primary_tier"] = tier
        customer["last_primary_tier_event"] = date_time
        customer[f"last_notification_{tier}"] = date_time

    record: dict[str, Any] = {
        "id": ctx.fingerprint,
        "occurred_at": occurred_at,
        "code_id": event.qualifiers["code"],
        "customer_id": ctx.customer_id,
        "dealer_id": ctx.dealer_id,
    }
    add_if_has_value(
        record, "employee_id", get_path(event.payload, "updates", "lead_notification", "employee_id")
    )

    records: dict[str, Any] = {"notification": record}
    activity_field = ACTIVITY_FIELDS.get(tag)
    if activity_field:
        records["customer_last_activity"] = entity_ref(ctx, **{activity_field: occurred_at})

    return Projection(aggregate=customer, records=records, provenance_timestamp=occurred_at)


CATEGORY = CategoryConfig(
    name="notifications",
    event_name="promax_websocket.notification",
    schema_version="2.7",
    policy=FingerprintPolicy.LOGICAL,
    tags=TAGS,
    classify=classify,
    project=project,
    cascades=(NOTIFICATION_CASCADE,),
)
