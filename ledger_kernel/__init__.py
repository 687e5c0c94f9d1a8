"""
Ledger Kernel - event-driven posting and reconciliation core.

An append-only bookkeeping ledger fed by idempotent event handlers:
- Duplicate-delivery gating via a durable job ledger
- Exactly one ledger entry per source document
- Append-only ledger lines with evidentiary provenance
- Recomputed period snapshots with an authority score
- Monthly vs. yearly statement reconciliation
"""

__version__ = "0.1.0"
