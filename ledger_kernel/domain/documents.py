"""
Normalized documents -- typed views of stored extraction output.

Extraction output and human review corrections are stored as JSON on
ReceiptExtraction.normalized_json.  Reading them back always goes through
``document_from_payload`` so that the evaluator and the posting handlers
work with typed fields instead of a free-form dictionary.

Payloads carry a ``kind`` tag; only receipts are stored this way:

    {"kind": "receipt", "date": "2025-12-10", "vendor": "...", "total": "113.00", ...}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _to_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _dec_str(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True)
class NormalizedReceipt:
    """The fields of a receipt the hold evaluator and posting depend on."""

    date: date | None = None
    vendor: str | None = None
    total: Decimal | None = None
    tax: Decimal | None = None
    currency: str | None = None

    kind = "receipt"

    @property
    def has_vendor(self) -> bool:
        return bool(self.vendor and self.vendor.strip())

    def to_payload(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "date": self.date.isoformat() if self.date else None,
            "vendor": self.vendor,
            "total": _dec_str(self.total),
            "tax": _dec_str(self.tax),
            "currency": self.currency,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> NormalizedReceipt:
        return cls(
            date=_to_date(payload.get("date")),
            vendor=payload.get("vendor"),
            total=_to_decimal(payload.get("total")),
            tax=_to_decimal(payload.get("tax")),
            currency=payload.get("currency"),
        )


_VARIANTS: dict[str, type[NormalizedReceipt]] = {
    NormalizedReceipt.kind: NormalizedReceipt,
}


def document_from_payload(payload: dict[str, Any]) -> NormalizedReceipt:
    """
    Decode a stored normalized payload into its variant.

    Payloads written before the tag existed carry no ``kind`` and are read
    as receipts.

    Raises:
        ValueError: unknown ``kind``.
    """
    kind = payload.get("kind", NormalizedReceipt.kind)
    variant = _VARIANTS.get(kind)
    if variant is None:
        raise ValueError(f"Unknown normalized document kind: {kind!r}")
    return variant.from_payload(payload)
