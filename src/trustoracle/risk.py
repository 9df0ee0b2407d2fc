"""
trustoracle.risk — Risk and verdict classification for ledger feedback records.

Turns a raw FeedbackRecord (score, feedback counts, last update) into:
- RiskAssessment: confidence, negative feedback rate, flag, risk factors, trend
- Verdict: TRUSTED / CAUTION / DANGEROUS / UNKNOWN
- ConfidenceBand: high / low / none

Everything here is pure and deterministic. Pass ``now`` explicitly to get
byte-identical results across calls.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# ─── Risk factor names ─────────────────────────────────────────────

LOW_FEEDBACK_VOLUME = "low_feedback_volume"
HIGH_NEGATIVE_FEEDBACK_RATIO = "high_negative_feedback_ratio"
LOW_TRUST_SCORE = "low_trust_score"

BPS_SCALE = 10_000


class Trend(str, Enum):
    """Recent trend of an agent's record."""
    INSUFFICIENT_DATA = "insufficient_data"
    STABLE = "stable"
    CAUTION = "caution"
    STALE = "stale"


class Verdict(str, Enum):
    """Human-facing trust verdict derived from the score alone."""
    TRUSTED = "TRUSTED"
    CAUTION = "CAUTION"
    DANGEROUS = "DANGEROUS"
    UNKNOWN = "UNKNOWN"


class ConfidenceBand(str, Enum):
    HIGH = "high"
    LOW = "low"
    NONE = "none"


# ─── Inputs ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FeedbackRecord:
    """One agent's record as stored on the TrustScore contract."""
    score: int
    total_feedback: int
    positive_feedback: int
    last_updated: int  # unix seconds
    exists: bool = True


@dataclass(frozen=True)
class ScoringConfig:
    """Thresholds used by assess()."""
    confidence_threshold_feedback_count: int = 50
    negative_flag_threshold_bps: int = 1000
    low_trust_score_threshold: int = 500
    stale_poll_multiplier: int = 2


@dataclass(frozen=True)
class VerdictThresholds:
    """Score boundaries for verdict() and confidence_band()."""
    trusted_above: int = 700
    caution_at_or_above: int = 400
    high_confidence_feedback: int = 50


DEFAULT_SCORING = ScoringConfig()
DEFAULT_THRESHOLDS = VerdictThresholds()


# ─── Output ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RiskAssessment:
    confidence: float
    negative_rate_bps: int
    flagged: bool
    risk_factors: tuple[str, ...] = field(default_factory=tuple)
    recent_trend: Trend = Trend.INSUFFICIENT_DATA

    def to_dict(self) -> dict:
        """Response fields, named as the API exposes them."""
        return {
            "confidence": self.confidence,
            "negativeRateBps": self.negative_rate_bps,
            "flagged": self.flagged,
            "riskFactors": list(self.risk_factors),
            "recentTrend": self.recent_trend.value,
        }


def insufficient_data() -> RiskAssessment:
    """Assessment for callers that could not read the record at all."""
    return RiskAssessment(
        confidence=0.0,
        negative_rate_bps=0,
        flagged=False,
        risk_factors=(),
        recent_trend=Trend.INSUFFICIENT_DATA,
    )


# ─── Classification ────────────────────────────────────────────────

def compute_confidence(total_feedback: int, threshold: int) -> float:
    if threshold <= 0:
        return 1.0
    return round(max(0.0, min(1.0, total_feedback / threshold)), 4)


def negative_rate_bps(total_feedback: int, positive_feedback: int) -> int:
    """Share of non-positive feedback in basis points, rounded half-up."""
    if total_feedback <= 0:
        return 0
    negative = max(0, total_feedback - positive_feedback)
    # integer half-up rounding of negative / total * 10000
    bps = (2 * negative * BPS_SCALE + total_feedback) // (2 * total_feedback)
    return min(BPS_SCALE, bps)


def assess(
    record: FeedbackRecord,
    scoring: ScoringConfig = DEFAULT_SCORING,
    poll_interval_ms: int = 900_000,
    now: Optional[float] = None,
) -> RiskAssessment:
    """Classify a feedback record.

    Args:
        record: The ledger record to classify.
        scoring: Thresholds (feedback count, flag rate, low score).
        poll_interval_ms: Indexer poll interval; records older than
            ``stale_poll_multiplier`` intervals are reported as stale.
        now: Reference time in unix seconds (defaults to the current time).
    """
    now = int(time.time()) if now is None else now
    total = record.total_feedback
    threshold = scoring.confidence_threshold_feedback_count

    confidence = compute_confidence(total, threshold)
    rate = negative_rate_bps(total, record.positive_feedback)
    flagged = total > 0 and rate > scoring.negative_flag_threshold_bps

    factors: list[str] = []
    if total < threshold:
        factors.append(LOW_FEEDBACK_VOLUME)
    if flagged:
        factors.append(HIGH_NEGATIVE_FEEDBACK_RATIO)
    if record.score < scoring.low_trust_score_threshold:
        factors.append(LOW_TRUST_SCORE)

    # Clock skew between the ledger and this host is clamped to zero age
    age_seconds = max(0, now - record.last_updated)
    stale_after = poll_interval_ms / 1000 * scoring.stale_poll_multiplier
    if age_seconds > stale_after:
        trend = Trend.STALE
    elif not factors:
        trend = Trend.STABLE
    else:
        trend = Trend.CAUTION

    return RiskAssessment(
        confidence=confidence,
        negative_rate_bps=rate,
        flagged=flagged,
        risk_factors=tuple(factors),
        recent_trend=trend,
    )


def verdict(score: Any, thresholds: VerdictThresholds = DEFAULT_THRESHOLDS) -> Verdict:
    """TRUSTED above 700, CAUTION for 400..700 inclusive, DANGEROUS below 400."""
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return Verdict.UNKNOWN
    if isinstance(score, float) and math.isnan(score):
        return Verdict.UNKNOWN
    if score > thresholds.trusted_above:
        return Verdict.TRUSTED
    if score >= thresholds.caution_at_or_above:
        return Verdict.CAUTION
    return Verdict.DANGEROUS


def confidence_band(
    total_feedback: int, thresholds: VerdictThresholds = DEFAULT_THRESHOLDS
) -> ConfidenceBand:
    if total_feedback >= thresholds.high_confidence_feedback:
        return ConfidenceBand.HIGH
    if total_feedback > 0:
        return ConfidenceBand.LOW
    return ConfidenceBand.NONE
