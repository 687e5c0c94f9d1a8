"""
ledger_services.messaging -- Publisher and dispatcher for the event bus.

Responsibility:
    ``MessagePublisher`` is the outbound port handlers publish envelopes to
    after their transaction commits.  ``MessageDispatcher`` is the inbound
    side: it decodes a raw envelope, checks its type against the allow-list,
    opens a session and routes it to the registered handler.

Architecture position:
    Services -- transport boundary.  The broker itself is external;
    InMemoryMessagePublisher stands in for it in local runs and tests.

Invariants enforced:
    - Every consumer validates ``type`` against the allow-list before the
      payload is deserialized.
    - Malformed and unknown envelopes are logged and dropped, never retried.
    - Handler failures propagate so the transport's redelivery policy
      applies.
    - One session per handler invocation; tenant scope comes from the
      envelope only.

Failure modes:
    - Any exception raised by a handler propagates unchanged after the
      session is rolled back and closed.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy.orm import Session

from ledger_kernel.domain.cancellation import CancellationToken
from ledger_kernel.domain.messages import QUEUES, MessageEnvelope, MessageType
from ledger_kernel.exceptions import MalformedEnvelopeError, UnknownMessageTypeError
from ledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.messaging")

RawMessage = dict[str, Any] | str | bytes


class MessagePublisher(ABC):
    """Outbound port.  Implementations deliver at least once."""

    @abstractmethod
    def publish(self, queue: str, envelope: MessageEnvelope) -> None:
        ...

    def publish_all(self, envelopes: Iterable[MessageEnvelope]) -> None:
        for envelope in envelopes:
            self.publish(envelope.type.queue, envelope)


class InMemoryMessagePublisher(MessagePublisher):
    """
    FIFO broker stand-in.

    Messages are stored as JSON text so consumers always go through
    ``MessageEnvelope.from_wire``.  ``published`` keeps the full history per
    queue; ``pending`` is what ``run_until_idle`` still has to deliver.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: deque[tuple[str, str]] = deque()
        self.published: dict[str, list[str]] = {queue: [] for queue in QUEUES.values()}

    def publish(self, queue: str, envelope: MessageEnvelope) -> None:
        self.publish_raw(queue, envelope.to_json())
        logger.info(
            "message_published",
            extra={
                "queue": queue,
                "message_type": envelope.type.value,
                "message_id": envelope.message_id,
            },
        )

    def publish_raw(self, queue: str, raw: str) -> None:
        with self._lock:
            self._pending.append((queue, raw))
            self.published.setdefault(queue, []).append(raw)

    def requeue(self, queue: str, raw: str) -> None:
        """Put an undelivered message back at the head (nack)."""
        with self._lock:
            self._pending.appendleft((queue, raw))

    def pop(self) -> tuple[str, str] | None:
        with self._lock:
            return self._pending.popleft() if self._pending else None

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def envelopes(self, queue: str) -> list[MessageEnvelope]:
        """Decoded history of one queue, oldest first."""
        with self._lock:
            raws = list(self.published.get(queue, []))
        return [MessageEnvelope.from_wire(raw) for raw in raws]

    def of_type(self, message_type: MessageType) -> list[MessageEnvelope]:
        return [e for e in self.envelopes(message_type.queue) if e.type == message_type]


class DispatchResult(str, Enum):
    HANDLED = "handled"
    DROPPED_MALFORMED = "dropped_malformed"
    DROPPED_UNKNOWN_TYPE = "dropped_unknown_type"
    NO_HANDLER = "no_handler"


class MessageDispatcher:
    """
    Routes decoded envelopes to handlers.

    Contract:
        ``handlers`` maps a MessageType to a callable
        ``(session, envelope, cancel) -> Any``.  ``dispatch`` returns how
        the message was disposed of.

    Guarantees:
        - The session is always closed; on handler failure it is rolled
          back first.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        handlers: Mapping[MessageType, Callable[..., Any]],
        allowed_types: Iterable[MessageType] | None = None,
    ):
        self._session_factory = session_factory
        self._handlers = dict(handlers)
        self._allowed = frozenset(allowed_types or MessageType)

    def dispatch(
        self, raw: RawMessage, cancel: CancellationToken | None = None
    ) -> DispatchResult:
        try:
            envelope = MessageEnvelope.from_wire(raw)
        except UnknownMessageTypeError as exc:
            logger.warning(
                "envelope_dropped_unknown_type",
                extra={"message_type": exc.message_type},
            )
            return DispatchResult.DROPPED_UNKNOWN_TYPE
        except MalformedEnvelopeError as exc:
            logger.warning(
                "envelope_dropped_malformed",
                extra={"reason": exc.reason, "message_id": exc.message_id},
            )
            return DispatchResult.DROPPED_MALFORMED

        if envelope.type not in self._allowed:
            logger.warning(
                "envelope_dropped_unknown_type",
                extra={"message_type": envelope.type.value},
            )
            return DispatchResult.DROPPED_UNKNOWN_TYPE

        handler = self._handlers.get(envelope.type)
        if handler is None:
            logger.debug(
                "envelope_has_no_handler",
                extra={"message_type": envelope.type.value},
            )
            return DispatchResult.NO_HANDLER

        with LogContext.bind(
            correlation_id=envelope.correlation_id,
            tenant_id=envelope.tenant_id,
            message_id=envelope.message_id,
        ):
            session = self._session_factory()
            try:
                handler(session, envelope, cancel)
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
        return DispatchResult.HANDLED
