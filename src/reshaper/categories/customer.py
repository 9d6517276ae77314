"""Customer profile updates.

Every ``customer`` delivery is a profile update. The customer aggregate
carries two nested sections, ``address`` (current address) and
``sales_team`` (assigned dealer parties), so provenance is recorded per
nested leaf. Vehicle arrays are attributed as one unit each.

Profile updates are re-sent unchanged by the upstream source, so this
category uses the LOGICAL fingerprint policy and redeliveries collapse.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from src.reshaper.categories.base import (
    CategoryConfig,
    Projection,
    ProjectionContext,
    entity_ref,
    require_mapping,
)
from src.reshaper.core.cascade import Cascade, Rule
from src.reshaper.core.emptiness import add_if_has_value, get_mapping, get_path, has_value
from src.reshaper.core.fingerprint import FingerprintPolicy, uuid_from_string
from src.reshaper.ingestion.schemas import ClassifiedEvent, Delivery

TAGS: tuple[str, ...] = ("profile_update",)

CONTACT_FIELDS: dict[str, tuple[str, str]] = {
    "CellPhone": ("cell_phone", "complete_number"),
    "HomePhone": ("home_phone", "complete_number"),
    "WorkPhone": ("work_phone", "complete_number"),
    "PrimaryEmail": ("primary_email", "email_address"),
    "SecondaryEmail": ("secondary_email", "email_address"),
}

SALES_TEAM_ROLES: dict[str, str] = {
    "SalesRep1": "sales_rep_1",
    "SalesRep2": "sales_rep_2",
    "SalesBDR": "sales_bdr",
    "ServiceBDR": "service_bdr",
}

ADDRESS_FIELDS: dict[str, str] = {
    "street": "line_one",
    "street2": "line_two",
    "city": "city",
    "state": "state",
    "zip_code": "zip_code",
    "duration": "duration",
    "monthly_payment": "monthly_payment",
}

PROFILE_FIELDS: tuple[str, ...] = (
    "lead_source",
    "lead_source_id",
    "lead_type",
    "ad_source",
    "cash_down",
    "block_text",
    "block_email",
    "block_letters",
)

PLACEHOLDER_NAMES = frozenset({"-", "+", "*"})


CUSTOMER_CASCADE: Cascade[str] = Cascade(
    "customer_event",
    [Rule("customer_object", lambda customer: isinstance(customer, Mapping), "profile_update")],
)


def find_first(items: Any, key: str, wanted: str) -> Mapping[str, Any] | None:
    """First mapping in ``items`` whose ``key`` equals ``wanted`` (case-insensitive)."""
    if not isinstance(items, list):
        return None
    for item in items:
        if not isinstance(item, Mapping):
            continue
        value = item.get(key)
        if isinstance(value, str) and value.lower() == wanted.lower():
            return item
    return None


def _name(value: Any) -> Any:
    if isinstance(value, str) and value.strip() in PLACEHOLDER_NAMES:
        return None
    return value


def external_contact_key(last_name: Any, cell_phone: Any) -> str | None:
    """``<lower last name>_<cell phone>``, the key the outbound dialer matches contacts on."""
    if not isinstance(last_name, str) or not has_value(cell_phone):
        return None
    return f"{last_name.lower()}_{cell_phone}"


def classify(delivery: Delivery) -> ClassifiedEvent:
    customer = require_mapping(delivery.body, "customer")
    return ClassifiedEvent(tag=CUSTOMER_CASCADE.resolve(customer), payload=dict(customer))


def project(event: ClassifiedEvent, ctx: ProjectionContext) -> Projection:
    profile = event.payload
    person = get_mapping(profile, "person") or {}
    now = ctx.arrival_timestamp

    aggregate = entity_ref(ctx)
    aggregate["primary_tier"] = 4
    aggregate["last_primary_tier_event"] = now
    aggregate["last_customer_update"] = now

    add_if_has_value(aggregate, "first_name", _name(get_path(person, "first_name")))
    add_if_has_value(aggregate, "middle_name", _name(get_path(person, "middle_name")))
    add_if_has_value(aggregate, "last_name", _name(get_path(person, "last_name")))

    contacts = person.get("communications")
    for contact_type, (field, value_key) in CONTACT_FIELDS.items():
        add_if_has_value(aggregate, field, get_path(find_first(contacts, "communication_type", contact_type), value_key))
    work_phone = find_first(contacts, "communication_type", "WorkPhone")
    add_if_has_value(aggregate, "work_phone_extension", get_path(work_phone, "extension_number"))

    external_id = external_contact_key(aggregate.get("last_name"), aggregate.get("cell_phone"))
    external_uuid = uuid_from_string(external_id)
    add_if_has_value(aggregate, "external_uuid", external_uuid)

    for field in PROFILE_FIELDS:
        add_if_has_value(aggregate, field, get_path(profile, field))

    current = find_first(person.get("address"), "address_type", "Current")
    address: dict[str, Any] = {}
    for field, source in ADDRESS_FIELDS.items():
        add_if_has_value(address, field, get_path(current, source))
    add_if_has_value(aggregate, "address", address)

    sales_team: dict[str, Any] = {}
    for role, field in SALES_TEAM_ROLES.items():
        party = find_first(profile.get("dealer_parties"), "party_type", role)
        add_if_has_value(sales_team, field, get_path(party, "employee_id"))
    add_if_has_value(aggregate, "sales_team", sales_team)

    for field in ("desired_vehicle", "trade_vehicle"):
        vehicles = profile.get(field)
        if isinstance(vehicles, list):
            add_if_has_value(aggregate, field, vehicles)

    records: dict[str, Any] = {}
    sensitive: dict[str, Any] = {}
    add_if_has_value(sensitive, "ssn", get_path(person, "ssn"))
    add_if_has_value(sensitive, "birth_date", get_path(person, "birth_date"))
    if sensitive:
        records["customer_sensitive"] = ctx.stamp({"id": ctx.customer_id, **sensitive})

    lead_source = get_path(profile, "lead_source")
    lead_source_id = get_path(profile, "lead_source_id")
    if has_value(lead_source) and has_value(lead_source_id):
        source = {"id": lead_source_id, "dealer_id": ctx.dealer_id, "name": lead_source}
        add_if_has_value(source, "type", get_path(profile, "lead_type"))
        records["lead_source"] = source

    if external_uuid is not None:
        records["external_contact"] = {
            "id": external_uuid,
            "external_id": external_id,
            "last_name_normalized": aggregate["last_name"].lower(),
            "phone": aggregate["cell_phone"],
        }

    return Projection(aggregate=aggregate, records=records)


CATEGORY = CategoryConfig(
    name="customer",
    event_name="promax_websocket.customer",
    schema_version="2.7",
    policy=FingerprintPolicy.LOGICAL,
    tags=TAGS,
    classify=classify,
    project=project,
    cascades=(CUSTOMER_CASCADE,),
)
