"""
Receipt confidence calculator.

Policy confidence is a function of which expected fields were extracted:
full-field extraction scores 1.0 and each missing or invalid critical field
subtracts a fixed penalty, floored at 0.  The extractor's own confidence is
recorded alongside but does not drive the hold decision.
"""

from dataclasses import dataclass
from decimal import Decimal

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.documents import NormalizedReceipt

ZERO = Decimal("0")
ONE = Decimal("1")


@dataclass(frozen=True)
class ConfidencePenalties:
    missing_date: Decimal = Decimal("0.30")
    missing_vendor: Decimal = Decimal("0.30")
    invalid_total: Decimal = Decimal("0.30")
    invalid_tax: Decimal = Decimal("0.10")


DEFAULT_PENALTIES = ConfidencePenalties()


@traced_engine("receipt_confidence", "1.0")
def compute_confidence(
    receipt: NormalizedReceipt,
    penalties: ConfidencePenalties = DEFAULT_PENALTIES,
) -> Decimal:
    """Score in [0, 1].  Never increases when a field goes missing."""
    score = ONE
    if receipt.date is None:
        score -= penalties.missing_date
    if not receipt.has_vendor:
        score -= penalties.missing_vendor
    if receipt.total is None or receipt.total <= ZERO:
        score -= penalties.invalid_total
    if receipt.tax is None or receipt.tax < ZERO:
        score -= penalties.invalid_tax
    return max(ZERO, min(ONE, score))
