"""
ledger_services.handlers.base -- Common shape of every event handler.

Responsibility:
    Turns one delivered envelope into one idempotency-gated unit of work:
    derive the job key, bind log context, build the per-session service
    graph, run the handler's work inside ``IdempotencyGate.execute`` and
    publish the outbound envelopes the work produced, after commit.

Architecture position:
    Services > Handlers.  Registered with MessageDispatcher by
    ``ledger_services.worker.build_dispatcher``.

Invariants enforced:
    - Tenant scope comes from the envelope; nothing ambient.
    - Outbound messages are published only after the gate committed the
      work, and only by the invocation that actually ran it.  A duplicate
      delivery publishes nothing.
    - Exceptions propagate (after the gate marks the job Failed).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.cancellation import CancellationToken
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.messages import MessageEnvelope, MessageType
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.idempotency_gate import GateOutcome, JobKey
from ledger_services.document_store import DocumentStore
from ledger_services.extractor import ReceiptExtractor
from ledger_services.messaging import MessagePublisher
from ledger_services.orchestrator import LedgerOrchestrator

logger = get_logger("services.handlers")

P = TypeVar("P")


@dataclass(frozen=True)
class HandlerContext:
    """Process-wide collaborators shared by every handler."""

    config: LedgerConfig
    publisher: MessagePublisher
    clock: Clock = field(default_factory=SystemClock)
    extractor: ReceiptExtractor | None = None
    document_store: DocumentStore | None = None


class Outbox:
    """Envelopes produced by one invocation, published after commit."""

    def __init__(self, envelope: MessageEnvelope, clock: Clock):
        self._source = envelope
        self._clock = clock
        self.envelopes: list[MessageEnvelope] = []

    def add(self, payload: Any) -> None:
        self.envelopes.append(
            MessageEnvelope.create(
                payload,
                tenant_id=self._source.tenant_id,
                correlation_id=self._source.correlation_id,
                clock=self._clock,
            )
        )


class EventHandler(ABC, Generic[P]):
    """
    Base class for envelope handlers.

    Subclasses set ``message_type`` and ``job_type`` and implement
    ``dedupe_key`` and ``run``.
    """

    message_type: ClassVar[MessageType]
    job_type: ClassVar[str]
    entity_type: ClassVar[str] = "ProcessingJob"

    def __init__(self, context: HandlerContext):
        self.context = context

    @abstractmethod
    def dedupe_key(self, payload: P) -> str:
        ...

    @abstractmethod
    def run(
        self,
        services: LedgerOrchestrator,
        envelope: MessageEnvelope[P],
        outbox: Outbox,
    ) -> Any:
        """The side-effecting work.  Runs in the gate's savepoint."""

    def entity_id(self, payload: P) -> str:
        return self.dedupe_key(payload)

    def __call__(
        self,
        session: Session,
        envelope: MessageEnvelope[P],
        cancel: CancellationToken | None = None,
    ) -> GateOutcome:
        return self.handle(session, envelope, cancel)

    def handle(
        self,
        session: Session,
        envelope: MessageEnvelope[P],
        cancel: CancellationToken | None = None,
    ) -> GateOutcome:
        key = JobKey(envelope.tenant_id, self.job_type, self.dedupe_key(envelope.data))
        with LogContext.bind(
            correlation_id=envelope.correlation_id,
            tenant_id=envelope.tenant_id,
            message_id=envelope.message_id,
            job_type=key.job_type,
            dedupe_key=key.dedupe_key,
        ):
            services = LedgerOrchestrator(session, self.context.config, self.context.clock)
            outbox = Outbox(envelope, self.context.clock)
            outcome = services.gate.execute(
                key,
                lambda: self.run(services, envelope, outbox),
                cancel=cancel,
                correlation_id=envelope.correlation_id,
                failure_entity=(self.entity_type, self.entity_id(envelope.data)),
            )
            if outcome.executed:
                self.context.publisher.publish_all(outbox.envelopes)
            return outcome
