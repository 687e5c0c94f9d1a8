"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into typed
``ledger_config.schema`` dataclasses.  The single public runtime entry point
is ``ledger_config.get_active_config()``; this module is its tooling.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass.
* Monetary and ratio values are parsed as ``Decimal`` from their string
  form, never through float.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  configuration for identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing keys, bad values, or failed cross-checks  ->
  ``InvalidConfigurationError`` listing every problem found.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from ledger_config.schema import (
    HoldPolicy,
    LedgerConfig,
    PostingDefaults,
    ReconciliationPolicy,
    ReconciliationProvider,
)
from ledger_engines.confidence import ConfidencePenalties
from ledger_engines.reconciliation import MatchMode, MetricRule, RuleKind
from ledger_kernel.exceptions import InvalidConfigurationError
from ledger_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name}: {value!r} is not a decimal") from None


def parse_metric_rule(data: dict[str, Any]) -> MetricRule:
    return MetricRule(
        metric_id=data["metric_id"],
        kind=RuleKind(data["kind"]),
        line_type=data.get("line_type"),
        description=data.get("description"),
        match=MatchMode(data.get("match", MatchMode.EXACT.value)),
        metric_key=data.get("metric_key"),
        postable=bool(data.get("postable", False)),
    )


def parse_provider(data: dict[str, Any]) -> ReconciliationProvider:
    return ReconciliationProvider(
        name=data["name"],
        anchor_metric=data["anchor_metric"],
        metrics=tuple(parse_metric_rule(m) for m in data.get("metrics", [])),
    )


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse and validate a configuration dict.

    Raises:
        InvalidConfigurationError: on missing keys, unparseable values, or
            failed cross-checks.
    """
    try:
        hold = HoldPolicy(
            confidence_threshold=parse_decimal(
                data["hold"]["confidence_threshold"], "hold.confidence_threshold"
            ),
        )
        penalties_data = data["confidence_penalties"]
        penalties = ConfidencePenalties(
            missing_date=parse_decimal(penalties_data["missing_date"], "missing_date"),
            missing_vendor=parse_decimal(penalties_data["missing_vendor"], "missing_vendor"),
            invalid_total=parse_decimal(penalties_data["invalid_total"], "invalid_total"),
            invalid_tax=parse_decimal(penalties_data["invalid_tax"], "invalid_tax"),
        )
        posting_data = data["posting"]
        posting = PostingDefaults(
            uncategorized_category_id=UUID(str(posting_data["uncategorized_category_id"])),
            receipt_deductible_pct=parse_decimal(
                posting_data["receipt_deductible_pct"], "receipt_deductible_pct"
            ),
            itc_memo=posting_data["itc_memo"],
            human_review_model_version=posting_data["human_review_model_version"],
        )
        recon_data = data["reconciliation"]
        reconciliation = ReconciliationPolicy(
            min_postable_delta=parse_decimal(
                recon_data["min_postable_delta"], "min_postable_delta"
            ),
            providers=tuple(parse_provider(p) for p in recon_data.get("providers", [])),
        )
    except KeyError as exc:
        raise InvalidConfigurationError([f"missing key {exc.args[0]!r}"]) from exc
    except ValueError as exc:
        raise InvalidConfigurationError([str(exc)]) from exc

    config = LedgerConfig(
        version=str(data.get("version", "0")),
        hold=hold,
        confidence_penalties=penalties,
        posting=posting,
        reconciliation=reconciliation,
        checksum=compute_checksum(data),
    )
    errors = validate_config(config)
    if errors:
        raise InvalidConfigurationError(errors)
    return config


def validate_config(config: LedgerConfig) -> list[str]:
    """Cross-field checks.  Returns every problem found."""
    errors: list[str] = []

    if not Decimal("0") <= config.hold.confidence_threshold <= Decimal("1"):
        errors.append("hold.confidence_threshold must be within [0, 1]")

    penalties = config.confidence_penalties
    for name in ("missing_date", "missing_vendor", "invalid_total", "invalid_tax"):
        if getattr(penalties, name) < 0:
            errors.append(f"confidence_penalties.{name} must not be negative")

    if not Decimal("0") <= config.posting.receipt_deductible_pct <= Decimal("1"):
        errors.append("posting.receipt_deductible_pct must be within [0, 1]")

    if config.reconciliation.min_postable_delta <= 0:
        errors.append("reconciliation.min_postable_delta must be positive")

    for provider in config.reconciliation.providers:
        seen: set[str] = set()
        for rule in provider.metrics:
            if rule.metric_id in seen:
                errors.append(f"{provider.name}: duplicate metric {rule.metric_id}")
            seen.add(rule.metric_id)
            if rule.kind == RuleKind.MONEY and not (rule.line_type and rule.description):
                errors.append(
                    f"{provider.name}: money metric {rule.metric_id} needs line_type and description"
                )
            if rule.kind == RuleKind.METRIC and not rule.metric_key:
                errors.append(f"{provider.name}: metric {rule.metric_id} needs metric_key")
            if rule.kind == RuleKind.METRIC and rule.postable:
                errors.append(f"{provider.name}: metric {rule.metric_id} cannot be postable")
        anchor = provider.metric(provider.anchor_metric)
        if anchor is None or anchor.kind != RuleKind.MONEY:
            errors.append(
                f"{provider.name}: anchor_metric {provider.anchor_metric} must be a money metric"
            )

    return errors


def load_config(path: Path) -> LedgerConfig:
    """Load and parse one YAML configuration file."""
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    SHA-256 checksum of the canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    return hash_payload(data)
