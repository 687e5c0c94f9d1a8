"""
ledger_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure engines (ledger_engines/)
    with database sessions and the external collaborators: event handlers,
    caller-initiated commands, the snapshot and reconciliation services,
    message dispatch and the local worker loop.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundary.py):
        ledger_services/ -> ledger_engines/, ledger_config/, ledger_kernel/  (allowed)
        ledger_engines/  -> ledger_services/                                 (FORBIDDEN)
        ledger_kernel/   -> ledger_services/, ledger_engines/, ledger_config/ (FORBIDDEN)
"""

from ledger_services.commands import LedgerCommands
from ledger_services.document_store import DocumentStore, InMemoryDocumentStore
from ledger_services.extractor import ExtractedReceipt, FakeReceiptExtractor, ReceiptExtractor
from ledger_services.handlers import HandlerContext
from ledger_services.messaging import (
    DispatchResult,
    InMemoryMessagePublisher,
    MessageDispatcher,
    MessagePublisher,
)
from ledger_services.orchestrator import LedgerOrchestrator
from ledger_services.worker import build_dispatcher, build_handlers, run_until_idle

__all__ = [
    "DispatchResult",
    "DocumentStore",
    "ExtractedReceipt",
    "FakeReceiptExtractor",
    "HandlerContext",
    "InMemoryDocumentStore",
    "LedgerCommands",
    "LedgerOrchestrator",
    "MessageDispatcher",
    "MessagePublisher",
    "ReceiptExtractor",
    "build_dispatcher",
    "build_handlers",
    "run_until_idle",
]
