"""
Tests for configuration loading and validation.

Verifies:
- The packaged defaults load and carry the documented constants
- Every problem in a bad file is reported, not just the first
- Checksums identify configuration content
"""

import copy
from decimal import Decimal
from uuid import UUID

import pytest
import yaml

from ledger_config import CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH, get_active_config
from ledger_config.loader import compute_checksum, load_yaml_file, parse_config
from ledger_engines.reconciliation import MatchMode, RuleKind
from ledger_kernel.exceptions import InvalidConfigurationError


@pytest.fixture
def raw_defaults() -> dict:
    return load_yaml_file(DEFAULT_CONFIG_PATH)


class TestDefaults:

    def test_hold_threshold(self, config):
        assert config.hold.confidence_threshold == Decimal("0.70")

    def test_posting_constants(self, config):
        assert config.posting.uncategorized_category_id == UUID(
            "00000000-0000-0000-0000-000000000001"
        )
        assert config.posting.receipt_deductible_pct == Decimal("1.0")
        assert config.posting.itc_memo == "GST/HST ITC (receipt)"
        assert config.posting.human_review_model_version == "human-review"

    def test_uber_allow_list(self, config):
        uber = config.reconciliation.provider("uber")
        assert uber is not None
        assert uber.anchor_metric == "Income.GrossUberRidesFares"
        gross = uber.metric("Income.GrossUberRidesFares")
        assert gross.kind == RuleKind.MONEY
        assert gross.match == MatchMode.PREFIX
        assert gross.postable
        km = uber.metric("Metric.OnlineKilometers")
        assert km.kind == RuleKind.METRIC
        assert not km.postable

    def test_unknown_provider(self, config):
        assert config.reconciliation.provider("Lyft") is None

    def test_checksum_is_recorded(self, config, raw_defaults):
        assert config.checksum == compute_checksum(raw_defaults)


class TestLoading:

    def test_explicit_path(self, tmp_path, raw_defaults):
        raw = copy.deepcopy(raw_defaults)
        raw["hold"]["confidence_threshold"] = "0.85"
        path = tmp_path / "ledger.yaml"
        path.write_text(yaml.safe_dump(raw))

        config = get_active_config(path)

        assert config.hold.confidence_threshold == Decimal("0.85")

    def test_environment_variable(self, tmp_path, raw_defaults, monkeypatch):
        raw = copy.deepcopy(raw_defaults)
        raw["version"] = "2.0"
        path = tmp_path / "ledger.yaml"
        path.write_text(yaml.safe_dump(raw))
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        assert get_active_config().version == "2.0"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_checksum_changes_with_content(self, raw_defaults):
        changed = copy.deepcopy(raw_defaults)
        changed["reconciliation"]["min_postable_delta"] = "0.05"
        assert compute_checksum(changed) != compute_checksum(raw_defaults)


class TestValidation:

    def test_missing_section(self, raw_defaults):
        del raw_defaults["posting"]
        with pytest.raises(InvalidConfigurationError) as exc_info:
            parse_config(raw_defaults)
        assert "posting" in str(exc_info.value)

    def test_bad_decimal(self, raw_defaults):
        raw_defaults["hold"]["confidence_threshold"] = "high"
        with pytest.raises(InvalidConfigurationError):
            parse_config(raw_defaults)

    def test_all_problems_are_reported(self, raw_defaults):
        raw_defaults["hold"]["confidence_threshold"] = "1.5"
        raw_defaults["reconciliation"]["min_postable_delta"] = "0"
        with pytest.raises(InvalidConfigurationError) as exc_info:
            parse_config(raw_defaults)
        assert len(exc_info.value.errors) == 2

    def test_duplicate_metric(self, raw_defaults):
        metrics = raw_defaults["reconciliation"]["providers"][0]["metrics"]
        metrics.append(dict(metrics[0]))
        with pytest.raises(InvalidConfigurationError) as exc_info:
            parse_config(raw_defaults)
        assert any("duplicate metric" in e for e in exc_info.value.errors)

    def test_metric_rule_cannot_be_postable(self, raw_defaults):
        metrics = raw_defaults["reconciliation"]["providers"][0]["metrics"]
        km = next(m for m in metrics if m["kind"] == "metric")
        km["postable"] = True
        with pytest.raises(InvalidConfigurationError):
            parse_config(raw_defaults)

    def test_anchor_must_exist(self, raw_defaults):
        raw_defaults["reconciliation"]["providers"][0]["anchor_metric"] = "Income.Nope"
        with pytest.raises(InvalidConfigurationError) as exc_info:
            parse_config(raw_defaults)
        assert any("anchor_metric" in e for e in exc_info.value.errors)
