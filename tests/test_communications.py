"""Tests for communication classification, free-text cascades and projection.

Tests cover:
- Message type cascade (type + direction)
- Call disposition cascade ordering, including "could not leave" phrasings
- SMS consent detection (inbound only, template recognized in any direction)
- Body parsers: SMS signature, call-recording note, lead note
- Logical fingerprint policy: redelivery collapses
"""

from __future__ import annotations

import pytest

from src.reshaper.categories.communications import (
    OPT_IN_REQUEST_TEMPLATE,
    detect_call_disposition,
    detect_consent_action,
    extract_lead_event_name,
    extract_lead_note_body,
    extract_sms_phone,
    normalize_direction,
    parse_call_recording_note,
    strip_sms_signature,
)
from src.reshaper.ingestion.pipeline import process_delivery
from src.reshaper.ingestion.schemas import ClassifiedOutcome, RejectedOutcome, RejectionReason
from tests.payloads import ARRIVAL_MS, communication_body

RECORDING_NOTE = (
    "DurationSeconds: 42\n"
    "CallDnaClassification: Voicemail\n"
    "DisplayCallerId: +1 (555) 201-3344\n"
    "ClickToCallForwardNumber: 555.201.9999\n"
    "CallAudioURL: https://rec.example.com/a.mp3"
)


def _classify(*args, **kwargs) -> ClassifiedOutcome:
    outcome = process_delivery(communication_body(*args, **kwargs), "communications")
    assert isinstance(outcome, ClassifiedOutcome), outcome
    return outcome


class TestMessageType:
    """Tag selection from type and direction."""

    @pytest.mark.parametrize(
        ("message_type", "direction", "tag"),
        [
            ("Text", "Incoming", "text"),
            ("Phone", "Outgoing", "call"),
            ("Email", "Incoming", "email"),
            ("Lead", None, "lead_note"),
            ("Note", "Outgoing", "call_recording_note"),
            ("Note", None, "user_note"),
        ],
    )
    def test_tags(self, message_type, direction, tag):
        """Each supported (type, direction) pair maps to one tag."""
        assert _classify(message_type, direction).tag == tag

    def test_incoming_note_rejected(self):
        """A note with an inbound direction has no mapping."""
        outcome = process_delivery(communication_body("Note", "Incoming"), "communications")

        assert isinstance(outcome, RejectedOutcome)
        assert outcome.reason is RejectionReason.UNRECOGNIZED_ENUM_VALUE
        assert outcome.field == "communications.messages[0].type"

    def test_unknown_type_rejected(self):
        """Unknown message types are rejected."""
        outcome = process_delivery(communication_body("Fax"), "communications")

        assert isinstance(outcome, RejectedOutcome)
        assert outcome.reason is RejectionReason.UNRECOGNIZED_ENUM_VALUE

    def test_empty_messages_rejected(self):
        """An empty messages array is an unrecognized shape."""
        body = communication_body()
        body["communications"]["messages"] = []
        outcome = process_delivery(body, "communications")

        assert isinstance(outcome, RejectedOutcome)
        assert outcome.reason is RejectionReason.UNRECOGNIZED_SHAPE
        assert outcome.field == "communications.messages"

    def test_missing_date_time_rejected(self):
        """date_time is required."""
        outcome = process_delivery(communication_body(date_time=None), "communications")

        assert isinstance(outcome, RejectedOutcome)
        assert outcome.reason is RejectionReason.MISSING_REQUIRED_FIELD

    def test_direction_normalized(self):
        """Outgoing/Incoming become outbound/inbound."""
        assert normalize_direction("Outgoing") == "outbound"
        assert normalize_direction("incoming") == "inbound"
        assert normalize_direction("n/a") is None


class TestCallDisposition:
    """Ordering of the disposition cascade."""

    @pytest.mark.parametrize(
        ("note", "expected"),
        [
            ("couldn't leave a voicemail", "no_answer"),
            ("could not leave message, mailbox full", "no_answer"),
            ("no vm set up", "no_answer"),
            ("lvm", "voicemail"),
            ("no answer, left vm", "voicemail"),
            ("Left message re: trade", "voicemail"),
            ("LM 3pm", "voicemail"),
            ("NA", "no_answer"),
            ("called, no answer", "no_answer"),
            ("customer hung up", "hung_up"),
            ("Not interested anymore", "not_interested"),
            ("call dropped", "disconnected"),
            ("wrong number", "wrong_number"),
            ("line busy", "busy"),
            ("no note added", "no_note"),
            ("", "no_note"),
            ("spoke about financing", "unknown"),
        ],
    )
    def test_dispositions(self, note, expected):
        """First matching phrase family decides."""
        assert detect_call_disposition(note) == expected

    def test_words_containing_na_or_lm_do_not_match(self):
        """Standalone tokens only: 'financing' and 'film' are not NA/LM."""
        assert detect_call_disposition("discussed financing") == "unknown"
        assert detect_call_disposition("watched a film") == "unknown"

    def test_non_string_note(self):
        """A missing note counts as no note."""
        assert detect_call_disposition(None) == "no_note"

    def test_call_outcome_carries_disposition(self):
        """The disposition is reported as a qualifier and on the record."""
        outcome = _classify("Phone", "Outgoing", "lvm")

        assert outcome.qualifiers == {"disposition": "voicemail"}
        assert outcome.records["communication"]["disposition"] == "voicemail"


class TestConsent:
    """SMS consent intent."""

    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ("STOP", "opt_out"),
            (" unsubscribe ", "opt_out"),
            ("help", "help"),
            ("please stop texting me", "opt_out_possible"),
            ("Y", "opt_in_possible"),
            ("Yes", "opt_in_reply_possible"),
            ("Is the truck still available?", None),
        ],
    )
    def test_inbound(self, body, expected):
        """Inbound replies are matched on the trimmed lower-cased body."""
        assert detect_consent_action(body, "inbound") == expected

    def test_outbound_stop_ignored(self):
        """Keywords only count on inbound messages."""
        assert detect_consent_action("STOP", "outbound") is None

    def test_template_matches_any_direction(self):
        """The opt-in request template is recognized outbound."""
        body = f"Tulsa Ford {OPT_IN_REQUEST_TEMPLATE}"
        assert detect_consent_action(body, "outbound") == "opt_in_request"

    def test_inbound_opt_out_does_not_touch_tier(self):
        """An opt-out reply is not counted as customer engagement."""
        outcome = _classify("Text", "Incoming", "STOP")

        assert outcome.qualifiers == {"consent_action": "opt_out"}
        assert "primary_tier" not in outcome.aggregate
        assert outcome.records["communication"]["consent_action"] == "opt_out"

    def test_inbound_text_tier(self):
        """Inbound texts set tier 2 and the last inbound SMS time."""
        outcome = _classify("Text", "Incoming")

        assert outcome.aggregate["primary_tier"] == 2
        assert outcome.aggregate["last_ib_sms"] == "2024-06-10T15:04:05Z"
        assert outcome.records["customer_last_activity"]["last_ib_sms"] == ARRIVAL_MS


class TestBodyParsing:
    """Parsers for SMS, call-recording and lead note bodies."""

    def test_sms_signature(self):
        """The sender number is pulled from the signature and the signature is stripped."""
        body = "See you at 3 (Sent using (555)201-3344)"

        assert extract_sms_phone(body) == "5552013344"
        assert strip_sms_signature(body) == "See you at 3"
        assert extract_sms_phone("no signature") is None

    def test_outbound_text_record(self):
        """Outbound text records carry from_number and the stripped body."""
        outcome = _classify("Text", "Outgoing", "See you at 3 (Sent using (555)201-3344)")
        record = outcome.records["communication"]

        assert record["body"] == "See you at 3"
        assert record["from_number"] == "5552013344"
        assert outcome.aggregate["primary_tier"] == 3

    def test_recording_note(self):
        """Key: Value lines become typed fields."""
        assert parse_call_recording_note(RECORDING_NOTE) == {
            "talk_time": 42,
            "disposition": "voicemail",
            "from_number": "5552013344",
            "to_number": "5552019999",
            "recording_link": "https://rec.example.com/a.mp3",
        }

    def test_recording_note_unknown_disposition_dropped(self):
        """Dispositions outside the closed set are not passed through."""
        parsed = parse_call_recording_note("CallDnaClassification: Sneezed")
        assert parsed["disposition"] is None

    def test_recording_note_outcome(self):
        """Recording notes omit employee_id and carry parsed fields."""
        outcome = _classify("Note", "Outgoing", RECORDING_NOTE)
        record = outcome.records["communication"]

        assert "employee_id" not in record
        assert record["talk_time"] == 42
        assert record["direction"] == "outbound"
        assert outcome.records["customer_last_activity"]["last_call_recording_note"] == ARRIVAL_MS

    def test_lead_note(self):
        """Lead notes keep the text after the original-message marker."""
        body = "Lead Event: trade_in\nOriginal Message:\n  Want a quote on my Tacoma "

        assert extract_lead_event_name(body) == "trade_in"
        assert extract_lead_note_body(body) == "Want a quote on my Tacoma"
        assert extract_lead_event_name("plain") is None

    def test_lead_note_outcome(self):
        """Lead notes move the customer to tier 1."""
        outcome = _classify("Lead", None, "Lead Event: trade_in\nOriginal Message: hi")

        assert outcome.aggregate["primary_tier"] == 1
        assert outcome.aggregate["last_lead"] == "2024-06-10T15:04:05Z"
        assert outcome.qualifiers == {"lead_event": "trade_in"}
        activity = outcome.records["customer_last_activity"]
        assert activity["last_lead_note"] == ARRIVAL_MS
        assert activity["last_lead_trade_in"] == ARRIVAL_MS


class TestLogicalPolicy:
    """Communications collapse redeliveries."""

    def test_redelivery_same_fingerprint(self):
        """Only the arrival timestamp differs: one identity."""
        first = communication_body()
        second = communication_body()
        second["timestamp"] = first["timestamp"] + 60_000

        one = process_delivery(first, "communications")
        two = process_delivery(second, "communications")

        assert one.fingerprint == two.fingerprint == one.logical_fingerprint
        assert one.records["communication"]["id"] == one.fingerprint
        assert one.aggregate == two.aggregate
