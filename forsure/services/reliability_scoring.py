"""
Tenant-local reliability scoring.

Pure functions over one tenant's event log for one customer:
- score: start at 100, subtract a fixed deduction per event severity, clamp
- risk level: Low >= 75, Medium 50-74, High < 50
- trend: recent window vs. the window before it (average severity)
- percentile: rank among the same tenant's customers

These thresholds are independent of the network risk tiers in
``network_identity_store``.
"""

from __future__ import annotations

import datetime as dt
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Optional

from config.scoring import DEFAULT_SCORING, ScoringConfig
from forsure.models.customer import RiskLevel, TrendLabel


@dataclass(frozen=True)
class EventForScoring:
    severity: int
    created_at: Optional[dt.datetime] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class ReliabilityAnalytics:
    score: int
    risk_level: RiskLevel
    trend: TrendLabel
    breakdown: dict[str, int]
    event_count: int


def severity_deduction(severity: int, config: ScoringConfig = DEFAULT_SCORING) -> int:
    """Points removed for one event. Note the cliff between severity 2 and 3."""
    if severity in config.severity_deductions:
        return config.severity_deductions[severity]
    # Out-of-range severities are clamped to the nearest defined bucket
    known = sorted(config.severity_deductions)
    nearest = known[0] if severity < known[0] else known[-1]
    return config.severity_deductions[nearest]


def calculate_score(events: Iterable[EventForScoring], config: ScoringConfig = DEFAULT_SCORING) -> int:
    score = config.base_score
    for event in events:
        score = min(config.base_score, max(0, score - severity_deduction(event.severity, config)))
    return score


def risk_level_for(score: int, config: ScoringConfig = DEFAULT_SCORING) -> RiskLevel:
    if score >= config.low_risk_min_score:
        return RiskLevel.LOW
    if score >= config.medium_risk_min_score:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def calculate_trend(events: Sequence[EventForScoring], config: ScoringConfig = DEFAULT_SCORING) -> TrendLabel:
    """
    Compare the last ``w`` events with the ``w`` events before them.

    ``w = min(trend_window, n // 2)`` so both windows always have the same
    size; fewer than two events is Stable. Events must be in chronological
    order. Equal-sized windows let the sums stand in for the averages.
    """
    window = min(config.trend_window, len(events) // 2)
    if window < 1:
        return TrendLabel.STABLE

    recent = events[-window:]
    older = events[-2 * window:-window]
    recent_total = sum(e.severity for e in recent)
    older_total = sum(e.severity for e in older)

    if recent_total < older_total:
        return TrendLabel.IMPROVING
    if recent_total > older_total:
        return TrendLabel.DECLINING
    return TrendLabel.STABLE


def calculate_percentile(score: int, all_scores: Sequence[int]) -> int:
    """
    Share of the tenant's customers scoring strictly below ``score``.

    Ties count as not below. An empty population is 100.
    """
    if not all_scores:
        return 100
    below = sum(1 for s in all_scores if s < score)
    return (100 * below) // len(all_scores)


def category_breakdown(events: Iterable[EventForScoring]) -> dict[str, int]:
    counts = Counter(e.category or "uncategorized" for e in events)
    return dict(sorted(counts.items()))


def score_label(score: int) -> str:
    if score >= 90:
        return "Excellent"
    if score >= 75:
        return "Good"
    if score >= 60:
        return "Fair"
    if score >= 40:
        return "Risky"
    return "High risk"


def calculate_full_analytics(
    events: Sequence[EventForScoring], config: ScoringConfig = DEFAULT_SCORING
) -> ReliabilityAnalytics:
    score = calculate_score(events, config)
    return ReliabilityAnalytics(
        score=score,
        risk_level=risk_level_for(score, config),
        trend=calculate_trend(events, config),
        breakdown=category_breakdown(events),
        event_count=len(events),
    )
