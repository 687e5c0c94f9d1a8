"""
Hold evaluator -- decides whether an extracted receipt may be posted.

Rules are applied in a fixed order and the first match wins, so a receipt
failing several rules always reports the same reason:

    1. confidence < threshold        -> "Low confidence extraction"
    2. total missing or <= 0         -> "Invalid total amount"
    3. date missing or vendor blank  -> "Missing required fields"
    4. tax > total                   -> "Tax exceeds total"
    5. otherwise                     -> Pass

Each Hold carries structured questions naming the fields a reviewer should
confirm.  A Hold is a business outcome, not an error.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.documents import NormalizedReceipt

DEFAULT_CONFIDENCE_THRESHOLD = Decimal("0.70")

LOW_CONFIDENCE = "Low confidence extraction"
INVALID_TOTAL = "Invalid total amount"
MISSING_FIELDS = "Missing required fields"
TAX_EXCEEDS_TOTAL = "Tax exceeds total"


@dataclass(frozen=True)
class HoldDecision:
    is_hold: bool
    reason: str | None = None
    questions: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def passed(cls) -> "HoldDecision":
        return cls(is_hold=False)

    @classmethod
    def hold(cls, reason: str, *fields: str) -> "HoldDecision":
        return cls(is_hold=True, reason=reason, questions={"fields": list(fields)})


@traced_engine("hold_evaluator", "1.0", fingerprint_fields=("confidence",))
def evaluate_hold(
    receipt: NormalizedReceipt,
    confidence: Decimal,
    threshold: Decimal = DEFAULT_CONFIDENCE_THRESHOLD,
) -> HoldDecision:
    if confidence < threshold:
        return HoldDecision.hold(LOW_CONFIDENCE, "date", "vendor", "total", "tax")

    if receipt.total is None or receipt.total <= 0:
        return HoldDecision.hold(INVALID_TOTAL, "total")

    if receipt.date is None or not receipt.has_vendor:
        return HoldDecision.hold(MISSING_FIELDS, "date", "vendor")

    if receipt.tax is not None and receipt.tax > receipt.total:
        return HoldDecision.hold(TAX_EXCEEDS_TOTAL, "tax")

    return HoldDecision.passed()
