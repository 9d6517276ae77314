"""Communication deliveries: texts, calls, emails and notes.

Three independent cascades run over one message:

- MESSAGE_TYPE_CASCADE picks the tag from ``type`` and ``direction``.
- DISPOSITION_CASCADE reads free-text call notes. Order carries meaning:
  the explicit "could not leave a voicemail" phrasings are tested before
  the voicemail rule, otherwise "couldn't leave vm" would match "vm" and
  be recorded as a voicemail.
- CONSENT_CASCADE reads SMS bodies for opt-in/opt-out intent.

Only the first message of ``communications.messages`` is classified.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from src.reshaper.categories.base import (
    CategoryConfig,
    Projection,
    ProjectionContext,
    entity_ref,
    require_mapping,
    require_value,
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

TAGS: tuple[str, ...] = ("text", "call", "email", "user_note", "call_recording_note", "lead_note")

DISPOSITIONS: tuple[str, ...] = (
    "voicemail",
    "no_answer",
    "hung_up",
    "not_interested",
    "disconnected",
    "wrong_number",
    "busy",
    "no_note",
    "unknown",
)

CONSENT_ACTIONS: tuple[str, ...] = (
    "opt_in_request",
    "opt_out",
    "opt_in_reply_possible",
    "opt_in_possible",
    "opt_out_possible",
    "help",
)

DIRECTIONS = {"outgoing": "outbound", "incoming": "inbound"}

OPT_IN_REQUEST_TEMPLATE = (
    "requests permission to send you texts. Reply YES to allow. "
    "Reply STOP to end. HELP for help. Msg&data rates may apply."
)

_SMS_SIGNATURE = re.compile(r"\(Sent using \((\d{3})\)(\d{3})-(\d{4})\)")
_SMS_SIGNATURE_TAIL = re.compile(r"\s*\(Sent using \(\d{3}\)\d{3}-\d{4}\)\s*$")
_NON_DIGITS = re.compile(r"\D")
_LINE_BREAK = re.compile(r"[\r\n]")


def normalize_direction(direction: Any) -> str | None:
    direction = normalize(direction)
    if not isinstance(direction, str):
        return None
    lowered = direction.lower()
    return DIRECTIONS.get(lowered, lowered)


def _lower(value: Any) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


# ── Message Type ─────────────────────────────────────────────────────────────
# Subject: the first message mapping.


def _type_is(name: str):
    return lambda message: _lower(message.get("type")) == name


def _is_user_note(message: Mapping[str, Any]) -> bool:
    return _lower(message.get("type")) == "note" and normalize(message.get("direction")) is None


def _is_recording_note(message: Mapping[str, Any]) -> bool:
    return _lower(message.get("type")) == "note" and _lower(message.get("direction")) == "outgoing"


MESSAGE_TYPE_CASCADE: Cascade[str] = Cascade(
    "message_type",
    [
        Rule("text", _type_is("text"), "text"),
        Rule("phone", _type_is("phone"), "call"),
        Rule("email", _type_is("email"), "email"),
        Rule("lead", _type_is("lead"), "lead_note"),
        Rule("outgoing_note", _is_recording_note, "call_recording_note"),
        Rule("undirected_note", _is_user_note, "user_note"),
    ],
)


# ── Call Disposition ─────────────────────────────────────────────────────────
# Subject: lower-cased, stripped note body.

_CANT_LEAVE_OBJECTS = ("message", "msg", "voicemail", "vm", "a message", "a msg", "a voicemail", "a vm")
_CANT_LEAVE_PHRASES = tuple(
    f"{prefix} leave {obj}" for prefix in ("'t", "not") for obj in _CANT_LEAVE_OBJECTS
)
_NO_MAILBOX_PHRASES = ("no vm", "vm not set up", "vm not setup", "mb not set up", "mb not setup")
_VOICEMAIL_PHRASES = ("lvm", "vm", "left message", "left msg", "left mssg", "voicemail", "voice mail")
_STANDALONE_LM = re.compile(r"(?:^|[^a-z])lm(?:[^a-z]|$)")
_STANDALONE_NA = re.compile(r"(?:^|[^a-z])na(?:[^a-z]|$)")


def _contains_any(phrases: tuple[str, ...]):
    return lambda note: any(phrase in note for phrase in phrases)


def _is_empty_note(note: str) -> bool:
    return note in ("", "no note added")


DISPOSITION_CASCADE: Cascade[str] = Cascade(
    "call_disposition",
    [
        Rule("empty_note", _is_empty_note, "no_note"),
        Rule("no_mailbox", _contains_any(_NO_MAILBOX_PHRASES), "no_answer"),
        Rule("could_not_leave", _contains_any(_CANT_LEAVE_PHRASES), "no_answer"),
        Rule("voicemail_phrase", _contains_any(_VOICEMAIL_PHRASES), "voicemail"),
        Rule("standalone_lm", lambda note: bool(_STANDALONE_LM.search(note)), "voicemail"),
        Rule("no_answer_phrase", _contains_any(("no answer",)), "no_answer"),
        Rule("standalone_na", lambda note: bool(_STANDALONE_NA.search(note)), "no_answer"),
        Rule("hung_up", _contains_any(("hung up", "hang up", "hangup", "hungup")), "hung_up"),
        Rule("not_interested", _contains_any(("not interested",)), "not_interested"),
        Rule("disconnected", _contains_any(("disconnected", "dropped")), "disconnected"),
        Rule(
            "wrong_number",
            _contains_any(("wrong number", "wrong phone", "invalid phone", "invalid number", "bad number")),
            "wrong_number",
        ),
        Rule("busy", _contains_any(("busy",)), "busy"),
    ],
    default="unknown",
)


def detect_call_disposition(body: Any) -> str:
    return DISPOSITION_CASCADE.resolve(_lower(body))


# ── SMS Consent ──────────────────────────────────────────────────────────────
# Subject: (raw body, lower-cased stripped body, normalized direction).

_OPT_OUT_HINTS = ("do not text me", "stop texting me", "stop!", "dont text me", "don't text")


def _inbound(predicate):
    return lambda s: s[2] == "inbound" and predicate(s[1])


CONSENT_CASCADE: Cascade[str] = Cascade(
    "sms_consent",
    [
        Rule("opt_in_request_template", lambda s: OPT_IN_REQUEST_TEMPLATE in s[0], "opt_in_request"),
        Rule("help", _inbound(lambda b: b == "help"), "help"),
        Rule("opt_out", _inbound(lambda b: b in ("stop", "unsubscribe", "stop all")), "opt_out"),
        Rule("opt_out_hint", _inbound(lambda b: any(h in b for h in _OPT_OUT_HINTS)), "opt_out_possible"),
        Rule("opt_in_short", _inbound(lambda b: b in ("y", "agree")), "opt_in_possible"),
        Rule("opt_in_yes", _inbound(lambda b: b == "yes"), "opt_in_reply_possible"),
    ],
)


def detect_consent_action(body: Any, direction: str | None) -> str | None:
    if not isinstance(body, str) or not body:
        return None
    return CONSENT_CASCADE.resolve((body, body.strip().lower(), direction))


# ── Body Parsing ─────────────────────────────────────────────────────────────


def extract_sms_phone(body: Any) -> str | None:
    """Sender number from a ``(Sent using (###)###-####)`` signature."""
    if not isinstance(body, str):
        return None
    match = _SMS_SIGNATURE.search(body)
    return "".join(match.groups()) if match else None


def strip_sms_signature(body: Any) -> Any:
    if not isinstance(body, str):
        return body
    return _SMS_SIGNATURE_TAIL.sub("", body).strip()


def _phone_digits(value: Any) -> str | None:
    if value is None:
        return None
    digits = _NON_DIGITS.sub("", str(value))
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    return digits if len(digits) == 10 else None


def parse_call_recording_note(body: Any) -> dict[str, Any]:
    """Parse ``Key: Value`` lines of a call-recording note.

    Unknown dispositions are dropped rather than passed through.
    """
    if not isinstance(body, str):
        return {}
    data: dict[str, str] = {}
    for line in body.splitlines():
        key, sep, value = line.partition(":")
        if sep and value.strip():
            data[key.strip()] = value.strip()

    duration = data.get("DurationSeconds")
    disposition = data.get("CallDnaClassification")
    if disposition is not None:
        disposition = disposition.lower()
        if disposition not in DISPOSITIONS:
            disposition = None

    return {
        "talk_time": int(duration) if duration and duration.isdigit() else None,
        "disposition": disposition,
        "from_number": _phone_digits(data.get("DisplayCallerId")),
        "to_number": _phone_digits(data.get("ClickToCallForwardNumber")),
        "recording_link": data.get("CallAudioURL"),
    }


def extract_lead_note_body(body: Any) -> str | None:
    if not isinstance(body, str):
        return None
    _, marker, rest = body.partition("Original Message:")
    text = rest if marker else body
    return text.strip() or None


def extract_lead_event_name(body: Any) -> str | None:
    if not isinstance(body, str):
        return None
    _, marker, rest = body.partition("Lead Event:")
    if not marker:
        return None
    return _LINE_BREAK.split(rest, maxsplit=1)[0].strip() or None


# ── Classify ─────────────────────────────────────────────────────────────────


def classify(delivery: Delivery) -> ClassifiedEvent:
    communications = require_mapping(delivery.body, "communications")
    messages = communications.get("messages")
    if not isinstance(messages, list) or not messages:
        msg = "communications.messages array is empty"
        raise ValidationFailure(
            RejectionReason.UNRECOGNIZED_SHAPE, msg, field="communications.messages"
        )
    message = messages[0]
    if not isinstance(message, Mapping):
        msg = "communications.messages[0] must be an object"
        raise ValidationFailure(
            RejectionReason.UNRECOGNIZED_SHAPE, msg, field="communications.messages[0]"
        )
    require_value(message.get("date_time"), "communications.messages[0].date_time")

    tag = MESSAGE_TYPE_CASCADE.resolve(message)
    if tag is None:
        msg = (
            f"unsupported message type {message.get('type')!r} "
            f"with direction {message.get('direction')!r}"
        )
        raise ValidationFailure(
            RejectionReason.UNRECOGNIZED_ENUM_VALUE, msg, field="communications.messages[0].type"
        )

    direction = normalize_direction(message.get("direction"))
    body = normalize(message.get("body"))
    qualifiers: dict[str, Any] = {}
    if tag == "text":
        qualifiers["consent_action"] = detect_consent_action(body, direction)
    elif tag == "call":
        qualifiers["disposition"] = detect_call_disposition(body)
    elif tag == "call_recording_note":
        qualifiers["disposition"] = parse_call_recording_note(body).get("disposition")
    elif tag == "lead_note":
        qualifiers["lead_event"] = extract_lead_event_name(body)

    payload = {
        "employee_id": normalize(communications.get("employee_id")),
        "message": dict(message),
        "direction": direction,
    }
    return ClassifiedEvent(tag=tag, payload=payload, qualifiers=qualifiers)


# ── Projection ───────────────────────────────────────────────────────────────


def _tier_fields(tag: str, direction: str | None, consent: str | None, occurred_at: Any) -> dict[str, Any]:
    """Last-contact fields and tier for the customer aggregate."""
    fields: dict[str, Any] = {}
    if tag == "lead_note":
        return {"primary_tier": 1, "last_primary_tier_event": occurred_at, "last_lead": occurred_at}
    if tag not in ("text", "call"):
        return fields
    channel = "sms" if tag == "text" else "call"
    if direction == "inbound":
        if tag == "text" and consent == "opt_out":
            return fields
        fields[f"last_ib_{channel}"] = occurred_at
        fields["primary_tier"] = 2
    elif direction == "outbound":
        fields[f"last_ob_{channel}"] = occurred_at
        fields["primary_tier"] = 3
    else:
        return fields
    fields["last_primary_tier_event"] = occurred_at
    return fields


def project(event: ClassifiedEvent, ctx: ProjectionContext) -> Projection:
    tag = event.tag
    message = event.payload["message"]
    direction = event.payload["direction"]
    occurred_at = get_path(message, "date_time")
    raw_body = normalize(message.get("body"))
    consent = event.qualifiers.get("consent_action")

    customer = entity_ref(ctx)
    for key, value in _tier_fields(tag, direction, consent, occurred_at).items():
        add_if_has_value(customer, key, value)

    record: dict[str, Any] = {
        "id": ctx.fingerprint,
        "occurred_at": occurred_at,
        "customer_id": ctx.customer_id,
        "dealer_id": ctx.dealer_id,
    }
    if tag not in ("call_recording_note", "lead_note"):
        add_if_has_value(record, "employee_id", event.payload.get("employee_id"))
    if tag not in ("user_note", "lead_note") and direction in ("inbound", "outbound"):
        record["direction"] = direction
    if tag == "email":
        add_if_has_value(record, "subject", get_path(message, "subject"))

    if tag == "text":
        add_if_has_value(record, "body", strip_sms_signature(raw_body))
        add_if_has_value(record, "consent_action", consent)
        if direction == "outbound":
            add_if_has_value(record, "from_number", extract_sms_phone(raw_body))
    elif tag == "call":
        add_if_has_value(record, "body", raw_body)
        add_if_has_value(record, "disposition", event.qualifiers.get("disposition"))
    elif tag == "call_recording_note":
        for key, value in parse_call_recording_note(raw_body).items():
            add_if_has_value(record, key, value)
    elif tag == "lead_note":
        add_if_has_value(record, "body", extract_lead_note_body(raw_body))
    else:
        add_if_has_value(record, "body", raw_body)

    activity = entity_ref(ctx)
    now = ctx.arrival_timestamp
    channel = {"text": "sms", "call": "call", "email": "email"}.get(tag)
    if channel and direction == "inbound":
        activity[f"last_ib_{channel}"] = now
    elif channel and direction == "outbound":
        activity[f"last_ob_{channel}"] = now
    elif tag == "lead_note":
        activity["last_lead_note"] = now
        lead_event = event.qualifiers.get("lead_event")
        if lead_event:
            activity[f"last_lead_{lead_event}"] = now
    elif tag in ("user_note", "call_recording_note"):
        activity[f"last_{tag}"] = now

    return Projection(
        aggregate=customer,
        records={"communication": record, "customer_last_activity": activity},
    )


CATEGORY = CategoryConfig(
    name="communications",
    event_name="promax_websocket.communications",
    schema_version="2.7",
    policy=FingerprintPolicy.LOGICAL,
    tags=TAGS,
    classify=classify,
    project=project,
    cascades=(MESSAGE_TYPE_CASCADE, DISPOSITION_CASCADE, CONSENT_CASCADE),
)
