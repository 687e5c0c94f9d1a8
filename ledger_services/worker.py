"""
ledger_services.worker -- Handler wiring and the local worker loop.

``build_dispatcher`` registers one handler per consumed message type.
``run_until_idle`` drains an InMemoryMessagePublisher through a dispatcher,
which is how local runs and the integration tests drive the pipeline
end to end.  In production the broker's consumer calls
``MessageDispatcher.dispatch`` directly for each delivery.
"""

from __future__ import annotations

from typing import Any, Callable

from sqlalchemy.orm import Session

from ledger_kernel.domain.cancellation import CancellationToken
from ledger_kernel.domain.messages import MessageType
from ledger_kernel.logging_config import get_logger
from ledger_services.handlers import (
    ExtractedAnalyticsHandler,
    HandlerContext,
    HoldWorkflowHandler,
    ReceiptExtractionHandler,
    ReceiptPostingHandler,
    ReconciliationPostingHandler,
    SnapshotHandler,
    StatementPostingHandler,
)
from ledger_services.messaging import (
    DispatchResult,
    InMemoryMessagePublisher,
    MessageDispatcher,
)

logger = get_logger("services.worker")

DEFAULT_MAX_MESSAGES = 10_000

_HANDLER_TYPES = (
    ReceiptExtractionHandler,
    ExtractedAnalyticsHandler,
    HoldWorkflowHandler,
    ReceiptPostingHandler,
    SnapshotHandler,
    StatementPostingHandler,
    ReconciliationPostingHandler,
)


def build_handlers(context: HandlerContext) -> dict[MessageType, Callable[..., Any]]:
    return {handler.message_type: handler(context) for handler in _HANDLER_TYPES}


def build_dispatcher(
    session_factory: Callable[[], Session],
    context: HandlerContext,
) -> MessageDispatcher:
    return MessageDispatcher(session_factory, build_handlers(context))


def run_until_idle(
    publisher: InMemoryMessagePublisher,
    dispatcher: MessageDispatcher,
    cancel: CancellationToken | None = None,
    max_messages: int = DEFAULT_MAX_MESSAGES,
) -> dict[DispatchResult, int]:
    """
    Deliver pending messages, including the ones handlers publish, until
    none are left.

    A handler failure puts the message back at the head of the queue (as a
    broker nack would) and re-raises; calling again redelivers it.

    Returns:
        Count of messages per dispatch result.
    """
    counts: dict[DispatchResult, int] = {}
    delivered = 0
    while delivered < max_messages:
        item = publisher.pop()
        if item is None:
            break
        queue, raw = item
        try:
            result = dispatcher.dispatch(raw, cancel)
        except Exception:
            publisher.requeue(queue, raw)
            logger.warning("message_redelivery_scheduled", extra={"queue": queue})
            raise
        counts[result] = counts.get(result, 0) + 1
        delivered += 1
    else:
        logger.warning("worker_message_limit_reached", extra={"limit": max_messages})

    logger.info(
        "worker_idle",
        extra={"delivered": delivered, "results": {k.value: v for k, v in counts.items()}},
    )
    return counts
