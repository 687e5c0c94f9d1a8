"""
Authority score -- how much of a period rests on evidence vs. estimate.

    AuthorityScore = round(100 * evidenced / total)   (half away from zero)
    EvidencePct    = evidenced / total
    EstimatedPct   = 1 - EvidencePct

total <= 0 scores 0 with EvidencePct 0 and EstimatedPct 1.  Percentages are
quantized to four places so repeated computation stores identical values.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ledger_engines.tracer import traced_engine

_PCT_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class AuthorityResult:
    score: int
    evidence_pct: Decimal
    estimated_pct: Decimal


@traced_engine("authority_score", "1.0", fingerprint_fields=("total", "evidenced"))
def compute_authority(total: int, evidenced: int) -> AuthorityResult:
    if total <= 0:
        return AuthorityResult(0, Decimal("0"), Decimal("1"))

    ratio = Decimal(evidenced) / Decimal(total)
    ratio = max(Decimal("0"), min(Decimal("1"), ratio))
    evidence_pct = ratio.quantize(_PCT_PLACES, rounding=ROUND_HALF_UP)
    score = int((ratio * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return AuthorityResult(score, evidence_pct, Decimal("1") - evidence_pct)
