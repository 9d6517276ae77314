"""Delivery, classification and outcome schemas for the ingestion boundary.

A delivery enters as an opaque JSON object plus transport headers and
leaves as exactly one of three outcomes:

- ClassifiedOutcome: tag, fingerprints, aggregate with provenance maps.
- RejectedOutcome: a validation failure with a machine-readable reason.
  Never carries a partially built aggregate.
- DegradedOutcome: an unexpected internal failure. Preserves the original
  payload under the sentinel tag ``unknown`` so nothing is dropped.

Outcome is a discriminated union on ``status``.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from src.reshaper.core.provenance import LAST_RECEIVED_AT, LAST_RECEIVED_BY

UNKNOWN_TAG = "unknown"


class RejectionReason(str, Enum):
    """Why a delivery was refused. Callers must inspect this before retrying."""

    MISSING_CORRELATION_KEY = "missing_correlation_key"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    UNRECOGNIZED_SHAPE = "unrecognized_shape"
    UNRECOGNIZED_ENUM_VALUE = "unrecognized_enum_value"
    INVALID_VALUE = "invalid_value"


class ValidationFailure(ValueError):
    """Expected, caller-facing refusal of a single delivery.

    Raised by category classifiers and projectors; converted into a
    RejectedOutcome by the pipeline. Any other exception is treated as an
    internal failure.

    Attributes:
        reason: Machine-readable RejectionReason.
        field: Dotted path of the offending field, if any.
        message: Human-readable description.
    """

    def __init__(self, reason: RejectionReason, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.field = field
        self.message = message

    def __repr__(self) -> str:
        return f"ValidationFailure({self.reason.value!r}, {self.message!r}, field={self.field!r})"


class Delivery(BaseModel):
    """One normalized inbound delivery with its correlation identity.

    Attributes:
        category: Registered category name the delivery was posted to.
        body: The raw JSON object exactly as received.
        customer_id: Subject correlation key (normalized, required).
        dealer_id: Tenant correlation key (normalized, required).
        arrival_timestamp: Epoch milliseconds of arrival.
        payload_hash: Transport-level delivery identifier, if any.
    """

    model_config = ConfigDict(frozen=True)

    category: str
    body: dict[str, Any]
    customer_id: Any
    dealer_id: Any
    arrival_timestamp: int | float
    payload_hash: str | None = None


class ClassifiedEvent(BaseModel):
    """Result of a category classifier: one closed-enum tag plus its input.

    Attributes:
        tag: Value from the category's tag enumeration.
        payload: The subset of the delivery the tag was decided on.
        qualifiers: Secondary cascade results (e.g. call disposition).
    """

    tag: str
    payload: dict[str, Any] = Field(default_factory=dict)
    qualifiers: dict[str, Any] = Field(default_factory=dict)


# ── Outcomes ─────────────────────────────────────────────────────────────────


class ClassifiedOutcome(BaseModel):
    """Successful processing of one delivery."""

    status: Literal["classified"] = "classified"
    category: str
    event_name: str
    event_version: str
    tag: str
    qualifiers: dict[str, Any] = Field(default_factory=dict)

    fingerprint: str
    logical_fingerprint: str
    delivery_fingerprint: str
    arrival_timestamp: int | float
    payload_hash: str | None = None

    customer_id: Any
    dealer_id: Any

    classified_payload: dict[str, Any]
    aggregate: dict[str, Any]
    last_received_at: dict[str, Any]
    last_received_by: dict[str, Any]
    records: dict[str, Any] = Field(default_factory=dict)

    original_payload: dict[str, Any]
    sent_at: str

    def to_store_record(self) -> dict[str, Any]:
        """The aggregate with both shadow maps embedded, as the store reads it."""
        record = dict(self.aggregate)
        record[LAST_RECEIVED_AT] = self.last_received_at
        record[LAST_RECEIVED_BY] = self.last_received_by
        return record


class RejectedOutcome(BaseModel):
    """Structured validation failure. No aggregate is ever attached."""

    status: Literal["rejected"] = "rejected"
    category: str
    reason: RejectionReason
    field: str | None = None
    message: str
    payload_hash: str | None = None

    @classmethod
    def from_failure(
        cls, category: str, failure: ValidationFailure, payload_hash: str | None = None
    ) -> RejectedOutcome:
        return cls(
            category=category,
            reason=failure.reason,
            field=failure.field,
            message=failure.message,
            payload_hash=payload_hash,
        )


class ErrorInfo(BaseModel):
    type: str
    message: str
    timestamp: str


class DegradedOutcome(BaseModel):
    """Minimal envelope for an unexpected internal failure."""

    status: Literal["degraded"] = "degraded"
    category: str
    event_name: str
    event_version: str
    tag: str = UNKNOWN_TAG
    fingerprint: str
    arrival_timestamp: int | float
    payload_hash: str | None = None
    original_payload: Any = None
    error: ErrorInfo


Outcome = Annotated[
    Union[ClassifiedOutcome, RejectedOutcome, DegradedOutcome],
    Field(discriminator="status"),
]
