"""
Message catalogue -- the versioned envelope and typed payloads.

Responsibility:
    Defines ``MessageEnvelope`` (delivery metadata kept apart from payload),
    the allow-list of message types, the queue each type travels on, and one
    frozen payload dataclass per type with camelCase wire encoding.

Architecture position:
    Kernel > Domain -- pure, no I/O.  Leaf module: every handler depends on
    it, it depends on nothing but the exception hierarchy.

Invariants enforced:
    - ``type`` is validated against the allow-list BEFORE ``data`` is decoded.
    - ``occurred_at`` is producer time.  It is carried for tracing only and
      is never used for ordering; lifecycle order is enforced by the
      receiving handler's state checks.
    - Envelopes and payloads are frozen; identity is ``message_id``.

Failure modes:
    - UnknownMessageTypeError: type not on the allow-list.
    - MalformedEnvelopeError: missing/invalid envelope or payload fields.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID, uuid4

from ledger_kernel.domain.clock import Clock
from ledger_kernel.exceptions import MalformedEnvelopeError, UnknownMessageTypeError


class MessageType(str, Enum):
    """Allow-listed, versioned message types."""

    RECEIPT_RECEIVED = "receipt.received.v1"
    RECEIPT_EXTRACTED = "receipt.extracted.v1"
    RECEIPT_READY = "receipt.ready.v1"
    RECEIPT_HOLD = "receipt.hold.v1"
    LEDGER_POSTED = "ledger.posted.v1"
    STATEMENT_PARSED = "statement.parsed.v1"
    RECONCILIATION_COMPLETED = "reconciliation.completed.v1"

    @property
    def queue(self) -> str:
        return QUEUES[self]


QUEUES: dict[MessageType, str] = {
    MessageType.RECEIPT_RECEIVED: "q.receipt.received",
    MessageType.RECEIPT_EXTRACTED: "q.receipt.extracted",
    MessageType.RECEIPT_READY: "q.receipt.ready",
    MessageType.RECEIPT_HOLD: "q.receipt.hold",
    MessageType.LEDGER_POSTED: "q.ledger.posted",
    MessageType.STATEMENT_PARSED: "q.statement.parsed",
    MessageType.RECONCILIATION_COMPLETED: "q.reconciliation.completed",
}


# ---------------------------------------------------------------------------
# Wire field readers
# ---------------------------------------------------------------------------


def _require(data: dict[str, Any], key: str) -> Any:
    if key not in data or data[key] is None:
        raise ValueError(f"missing field {key!r}")
    return data[key]


def _uuid(data: dict[str, Any], key: str) -> UUID:
    return UUID(str(_require(data, key)))


def _decimal(data: dict[str, Any], key: str) -> Decimal:
    try:
        return Decimal(str(_require(data, key)))
    except InvalidOperation as exc:
        raise ValueError(f"field {key!r} is not a number") from exc


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return None if value is None else str(value)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptReceived:
    """A receipt was submitted (or resubmitted after review)."""

    receipt_id: UUID
    file_object_id: UUID
    submission: int = 0

    message_type: ClassVar[MessageType] = MessageType.RECEIPT_RECEIVED

    def to_wire(self) -> dict[str, Any]:
        return {
            "receiptId": str(self.receipt_id),
            "fileObjectId": str(self.file_object_id),
            "submission": self.submission,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ReceiptReceived:
        return cls(
            receipt_id=_uuid(data, "receiptId"),
            file_object_id=_uuid(data, "fileObjectId"),
            submission=int(data.get("submission") or 0),
        )


@dataclass(frozen=True)
class ReceiptExtracted:
    """Extraction finished.  Analytics only; posting listens elsewhere."""

    receipt_id: UUID
    file_object_id: UUID
    confidence: Decimal
    is_hold: bool
    hold_reason: str | None = None

    message_type: ClassVar[MessageType] = MessageType.RECEIPT_EXTRACTED

    def to_wire(self) -> dict[str, Any]:
        return {
            "receiptId": str(self.receipt_id),
            "fileObjectId": str(self.file_object_id),
            "confidence": str(self.confidence),
            "isHold": self.is_hold,
            "holdReason": self.hold_reason,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ReceiptExtracted:
        return cls(
            receipt_id=_uuid(data, "receiptId"),
            file_object_id=_uuid(data, "fileObjectId"),
            confidence=_decimal(data, "confidence"),
            is_hold=bool(_require(data, "isHold")),
            hold_reason=_optional_str(data, "holdReason"),
        )


@dataclass(frozen=True)
class ReceiptReady:
    receipt_id: UUID
    file_object_id: UUID
    confidence: Decimal

    message_type: ClassVar[MessageType] = MessageType.RECEIPT_READY

    def to_wire(self) -> dict[str, Any]:
        return {
            "receiptId": str(self.receipt_id),
            "fileObjectId": str(self.file_object_id),
            "confidence": str(self.confidence),
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ReceiptReady:
        return cls(
            receipt_id=_uuid(data, "receiptId"),
            file_object_id=_uuid(data, "fileObjectId"),
            confidence=_decimal(data, "confidence"),
        )


@dataclass(frozen=True)
class ReceiptHold:
    receipt_id: UUID
    file_object_id: UUID
    confidence: Decimal
    hold_reason: str
    questions_json: str

    message_type: ClassVar[MessageType] = MessageType.RECEIPT_HOLD

    def to_wire(self) -> dict[str, Any]:
        return {
            "receiptId": str(self.receipt_id),
            "fileObjectId": str(self.file_object_id),
            "confidence": str(self.confidence),
            "holdReason": self.hold_reason,
            "questionsJson": self.questions_json,
        }

    @property
    def questions(self) -> dict[str, Any]:
        return json.loads(self.questions_json)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ReceiptHold:
        questions_json = str(data.get("questionsJson") or "{}")
        # Raises ValueError (malformed envelope) on bad JSON
        if not isinstance(json.loads(questions_json), dict):
            raise ValueError("field 'questionsJson' is not a JSON object")
        return cls(
            receipt_id=_uuid(data, "receiptId"),
            file_object_id=_uuid(data, "fileObjectId"),
            confidence=_decimal(data, "confidence"),
            hold_reason=str(_require(data, "holdReason")),
            questions_json=questions_json,
        )


@dataclass(frozen=True)
class LedgerPosted:
    ledger_entry_id: UUID
    source_type: str
    source_id: str
    entry_date: date

    message_type: ClassVar[MessageType] = MessageType.LEDGER_POSTED

    def to_wire(self) -> dict[str, Any]:
        return {
            "ledgerEntryId": str(self.ledger_entry_id),
            "sourceType": self.source_type,
            "sourceId": self.source_id,
            "entryDate": self.entry_date.isoformat(),
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> LedgerPosted:
        return cls(
            ledger_entry_id=_uuid(data, "ledgerEntryId"),
            source_type=str(_require(data, "sourceType")),
            source_id=str(_require(data, "sourceId")),
            entry_date=date.fromisoformat(str(_require(data, "entryDate"))),
        )


@dataclass(frozen=True)
class StatementParsed:
    statement_id: UUID

    message_type: ClassVar[MessageType] = MessageType.STATEMENT_PARSED

    def to_wire(self) -> dict[str, Any]:
        return {"statementId": str(self.statement_id)}

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> StatementParsed:
        return cls(statement_id=_uuid(data, "statementId"))


@dataclass(frozen=True)
class ReconciliationCompleted:
    run_id: UUID
    provider: str
    period_key: str

    message_type: ClassVar[MessageType] = MessageType.RECONCILIATION_COMPLETED

    def to_wire(self) -> dict[str, Any]:
        return {
            "runId": str(self.run_id),
            "provider": self.provider,
            "periodKey": self.period_key,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ReconciliationCompleted:
        return cls(
            run_id=_uuid(data, "runId"),
            provider=str(_require(data, "provider")),
            period_key=str(_require(data, "periodKey")),
        )


PAYLOAD_TYPES: dict[MessageType, type] = {
    MessageType.RECEIPT_RECEIVED: ReceiptReceived,
    MessageType.RECEIPT_EXTRACTED: ReceiptExtracted,
    MessageType.RECEIPT_READY: ReceiptReady,
    MessageType.RECEIPT_HOLD: ReceiptHold,
    MessageType.LEDGER_POSTED: LedgerPosted,
    MessageType.STATEMENT_PARSED: StatementParsed,
    MessageType.RECONCILIATION_COMPLETED: ReconciliationCompleted,
}


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

T = TypeVar("T")


@dataclass(frozen=True)
class MessageEnvelope(Generic[T]):
    """
    Delivery metadata plus a typed payload.

    Contract:
        Built by producers through ``MessageEnvelope.create`` and by consumers
        through ``MessageEnvelope.from_wire``.

    Guarantees:
        - Immutable.
        - ``type`` always matches the payload class.
        - ``tenant_id`` is the only tenant scope a handler may use.

    Non-goals:
        - Ordering.  ``occurred_at`` is informational.
    """

    message_id: str
    type: MessageType
    occurred_at: datetime
    tenant_id: UUID
    correlation_id: str
    data: T

    @classmethod
    def create(
        cls,
        data: Any,
        tenant_id: UUID,
        correlation_id: str,
        clock: Clock,
    ) -> MessageEnvelope:
        return cls(
            message_id=uuid4().hex,
            type=data.message_type,
            occurred_at=clock.now(),
            tenant_id=tenant_id,
            correlation_id=correlation_id,
            data=data,
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "type": self.type.value,
            "occurredAt": self.occurred_at.isoformat(),
            "tenantId": str(self.tenant_id),
            "correlationId": self.correlation_id,
            "data": self.data.to_wire(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), sort_keys=True)

    @classmethod
    def from_wire(cls, raw: dict[str, Any] | str | bytes) -> MessageEnvelope:
        """
        Decode and validate a wire envelope.

        Raises:
            MalformedEnvelopeError: not an object, or a required envelope or
                payload field is missing or invalid.
            UnknownMessageTypeError: ``type`` is not on the allow-list.
        """
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                raise MalformedEnvelopeError(f"invalid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise MalformedEnvelopeError("envelope is not an object")

        message_id = raw.get("messageId")
        type_name = raw.get("type")
        if not message_id or not type_name:
            raise MalformedEnvelopeError("missing messageId or type", message_id)

        try:
            message_type = MessageType(type_name)
        except ValueError:
            raise UnknownMessageTypeError(str(type_name)) from None

        data = raw.get("data")
        if not isinstance(data, dict):
            raise MalformedEnvelopeError("data is not an object", message_id)

        try:
            payload = PAYLOAD_TYPES[message_type].from_wire(data)
            occurred_at = datetime.fromisoformat(str(_require(raw, "occurredAt")))
            tenant_id = _uuid(raw, "tenantId")
            correlation_id = str(_require(raw, "correlationId"))
        except (ValueError, TypeError) as exc:
            raise MalformedEnvelopeError(str(exc), message_id) from exc

        return cls(
            message_id=str(message_id),
            type=message_type,
            occurred_at=occurred_at,
            tenant_id=tenant_id,
            correlation_id=correlation_id,
            data=payload,
        )
