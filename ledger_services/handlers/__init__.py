"""Event handlers, one per consumed message type."""

from ledger_services.handlers.base import EventHandler, HandlerContext, Outbox
from ledger_services.handlers.downstream import (
    ExtractedAnalyticsHandler,
    HoldWorkflowHandler,
)
from ledger_services.handlers.posting import (
    ReceiptPostingHandler,
    ReconciliationPostingHandler,
    StatementPostingHandler,
)
from ledger_services.handlers.receipt_extraction import ReceiptExtractionHandler
from ledger_services.handlers.snapshot import SnapshotHandler

__all__ = [
    "EventHandler",
    "ExtractedAnalyticsHandler",
    "HandlerContext",
    "HoldWorkflowHandler",
    "Outbox",
    "ReceiptExtractionHandler",
    "ReceiptPostingHandler",
    "ReconciliationPostingHandler",
    "SnapshotHandler",
    "StatementPostingHandler",
]
