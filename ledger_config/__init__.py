"""
ledger_config -- single public entrypoint for ledger core configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way handlers and services obtain
    configuration: hold threshold, confidence penalties, posting constants,
    and the reconciliation metric allow-lists.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` and ``ledger_engines`` and
    below ``ledger_services``.  The kernel MUST NEVER import from here.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``InvalidConfigurationError`` -- parse or validation failures.

Audit relevance:
    Every successful load emits a ``LEDGER_CONFIG_TRACE`` log entry with the
    version and checksum, tying processed events to the configuration that
    governed them.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_config
from ledger_config.schema import LedgerConfig

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """
    Load the active configuration.

    Resolution order: explicit ``path``, then ``$LEDGER_CONFIG_PATH``, then
    the packaged ``defaults.yaml``.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = load_config(resolved)
    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_path": str(resolved),
            "config_version": config.version,
            "checksum": config.checksum,
            "provider_count": len(config.reconciliation.providers),
        },
    )
    return config


__all__ = ["LedgerConfig", "get_active_config"]
