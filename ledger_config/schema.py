"""
LedgerConfig schema.

Frozen dataclasses the YAML configuration is parsed into.  Engine parameter
objects (``ConfidencePenalties``, ``MetricRule``) are used directly so the
loaded configuration can be handed to the engines without translation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_engines.confidence import ConfidencePenalties
from ledger_engines.reconciliation import MetricRule


@dataclass(frozen=True)
class HoldPolicy:
    confidence_threshold: Decimal


@dataclass(frozen=True)
class PostingDefaults:
    """Constants used when turning documents into ledger lines."""

    uncategorized_category_id: UUID
    receipt_deductible_pct: Decimal
    itc_memo: str
    human_review_model_version: str


@dataclass(frozen=True)
class ReconciliationProvider:
    """Metric allow-list for one statement provider."""

    name: str
    anchor_metric: str  # drives the run's header income totals
    metrics: tuple[MetricRule, ...]

    def metric(self, metric_id: str) -> MetricRule | None:
        for rule in self.metrics:
            if rule.metric_id == metric_id:
                return rule
        return None


@dataclass(frozen=True)
class ReconciliationPolicy:
    min_postable_delta: Decimal
    providers: tuple[ReconciliationProvider, ...]

    def provider(self, name: str) -> ReconciliationProvider | None:
        for provider in self.providers:
            if provider.name.casefold() == name.casefold():
                return provider
        return None


@dataclass(frozen=True)
class LedgerConfig:
    """The sole runtime configuration artifact."""

    version: str
    hold: HoldPolicy
    confidence_penalties: ConfidencePenalties
    posting: PostingDefaults
    reconciliation: ReconciliationPolicy
    checksum: str
