"""Read-only query selectors returning DTOs."""

from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.ledger_selector import (
    LedgerEntryView,
    LedgerLineView,
    LedgerSelector,
)
from ledger_kernel.selectors.snapshot_selector import (
    SnapshotDetailView,
    SnapshotSelector,
    SnapshotView,
)
from ledger_kernel.selectors.statement_selector import (
    StatementLineView,
    StatementSelector,
    StatementView,
)

__all__ = [
    "BaseSelector",
    "LedgerEntryView",
    "LedgerLineView",
    "LedgerSelector",
    "SnapshotDetailView",
    "SnapshotSelector",
    "SnapshotView",
    "StatementLineView",
    "StatementSelector",
    "StatementView",
]
