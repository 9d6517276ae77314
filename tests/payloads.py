"""Raw delivery builders for every category, shaped like real upstream payloads."""

from __future__ import annotations

from typing import Any

CUSTOMER_ID = 48213377
DEALER_ID = 1042
ARRIVAL_MS = 1_718_000_000_000


def envelope(**fields: Any) -> dict[str, Any]:
    """Top-level delivery envelope with correlation keys and arrival time."""
    body: dict[str, Any] = {
        "customer_id": CUSTOMER_ID,
        "dealer_id": DEALER_ID,
        "timestamp": ARRIVAL_MS,
    }
    body.update(fields)
    return body


def appointment_body(
    status: str = "Current",
    date_time: str | None = "2024-06-10T22:30:00Z",
    *,
    confirmed: bool | None = None,
    dealer_parties: dict | None = None,
    new_appointment_id: int | None = None,
    appointment_id: int | None = 9001,
) -> dict[str, Any]:
    appointment: dict[str, Any] = {
        "appointment_id": appointment_id,
        "appointment_status": {"status": status},
        "set_via": "Phone",
        "comments": "Wants to see the blue one",
    }
    if date_time is not None:
        appointment["date_time"] = date_time
    if confirmed is not None:
        appointment["confirmed_status"] = {
            "confirmed": confirmed,
            "dealer_parties": {"employee_id": 77},
        }
    if new_appointment_id is not None:
        appointment["appointment_status"]["details"] = {"new_appointment_id": new_appointment_id}
    sales: dict[str, Any] = {"appointment": appointment}
    if dealer_parties is not None:
        sales["dealer_parties"] = dealer_parties
    return envelope(sales_appointment=sales)


def communication_body(
    message_type: str = "Text",
    direction: str | None = "Incoming",
    body: str | None = "Is the truck still available?",
    **message_fields: Any,
) -> dict[str, Any]:
    message: dict[str, Any] = {
        "type": message_type,
        "date_time": "2024-06-10T15:04:05Z",
        **message_fields,
    }
    if direction is not None:
        message["direction"] = direction
    if body is not None:
        message["body"] = body
    return envelope(communications={"employee_id": 311, "messages": [message]})


def notification_body(
    code: Any = 1005,
    date_time: Any = "2024-06-10T14:00:00Z",
    *,
    extra: list[dict] | None = None,
) -> dict[str, Any]:
    notification = {
        "code": code,
        "updates": {"lead_notification": {"date_time": date_time, "employee_id": 55}},
    }
    return envelope(notifications=[*(extra or []), notification])


def showroom_body(section: str = "new_visit", **fields: Any) -> dict[str, Any]:
    defaults: dict[str, dict[str, Any]] = {
        "new_visit": {
            "id": 501,
            "date": "2024-06-10T16:00:00Z",
            "type": "FreshWalkIn",
            "employee_id": 12,
        },
        "exit_note": {"id": 880, "showroom_visit_id": 501, "employee_id": 12, "quick_note": "Will be back"},
        "delete": {"id": 501, "employee_id": 12},
    }
    data = {**defaults[section], **fields}
    return envelope(showroom_visit={section: data})


def status_body(**statuses: Any) -> dict[str, Any]:
    return envelope(customer_status=statuses)


def customer_body(**overrides: Any) -> dict[str, Any]:
    customer: dict[str, Any] = {
        "person": {
            "first_name": "Dana",
            "middle_name": "-",
            "last_name": "Okafor",
            "ssn": "123-45-6789",
            "communications": [
                {"communication_type": "CellPhone", "complete_number": "(555) 201-3344"},
                {"communication_type": "PrimaryEmail", "email_address": "dana@example.com"},
                {"communication_type": "WorkPhone", "complete_number": "5552019999", "extension_number": "12"},
            ],
            "address": [
                {"address_type": "Current", "line_one": "12 Elm St", "city": "Tulsa", "state": "OK", "zip_code": "74103"},
                {"address_type": "Previous1", "line_one": "9 Oak Ave", "city": "Tulsa"},
            ],
        },
        "dealer_parties": [
            {"party_type": "SalesRep1", "employee_id": 41},
            {"party_type": "SalesBDR", "employee_id": 42},
        ],
        "lead_source": "Website",
        "lead_source_id": 3,
        "lead_type": "Internet",
        "desired_vehicle": [{"make": "Ford", "model_name": "F-150"}],
        "trade_vehicle": [],
        "block_text": False,
    }
    customer.update(overrides)
    return envelope(customer=customer)

