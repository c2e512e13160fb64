from dataclasses import replace

import pytest

from config.scoring import DEFAULT_SCORING
from forsure.models.customer import RiskLevel, TrendLabel
from forsure.services.reliability_scoring import (
    EventForScoring,
    calculate_full_analytics,
    calculate_percentile,
    calculate_score,
    calculate_trend,
    category_breakdown,
    risk_level_for,
    score_label,
    severity_deduction,
)


def _events(*severities):
    return [EventForScoring(severity=s) for s in severities]


@pytest.mark.parametrize("severity,points", [(1, 1), (2, 2), (3, 12), (4, 24), (5, 30)])
def test_severity_deductions(severity, points):
    assert severity_deduction(severity) == points


def test_score_starts_at_100_and_deducts():
    assert calculate_score([]) == 100
    assert calculate_score(_events(4)) == 76
    assert calculate_score(_events(5, 5, 5)) == 10
    assert calculate_score(_events(5)) == 70
    assert calculate_score(_events(3, 5)) == 58


@pytest.mark.parametrize("count", [1, 7, 99, 100, 150])
def test_minor_events_cost_one_point_each(count):
    assert calculate_score(_events(*([1] * count))) == max(0, 100 - count)


def test_score_is_clamped_at_zero():
    assert calculate_score(_events(5, 5, 5, 5)) == 0
    assert calculate_score(_events(5, 5, 5, 5, 1)) == 0


def test_risk_levels():
    assert risk_level_for(100) == RiskLevel.LOW
    assert risk_level_for(75) == RiskLevel.LOW
    assert risk_level_for(74) == RiskLevel.MEDIUM
    assert risk_level_for(50) == RiskLevel.MEDIUM
    assert risk_level_for(49) == RiskLevel.HIGH


def test_trend_needs_two_events():
    assert calculate_trend([]) == TrendLabel.STABLE
    assert calculate_trend(_events(5)) == TrendLabel.STABLE


def test_trend_compares_equal_windows():
    assert calculate_trend(_events(5, 1)) == TrendLabel.IMPROVING
    assert calculate_trend(_events(1, 5)) == TrendLabel.DECLINING
    assert calculate_trend(_events(3, 3)) == TrendLabel.STABLE
    # n=5 -> window 2: older (4, 4) vs recent (1, 1); the first event is ignored
    assert calculate_trend(_events(1, 4, 4, 1, 1)) == TrendLabel.IMPROVING
    # n=7 -> window 3: older (5, 5, 1) vs recent (1, 1, 1)
    assert calculate_trend(_events(5, 5, 5, 1, 1, 1, 1)) == TrendLabel.IMPROVING


def test_trend_window_is_configurable():
    config = replace(DEFAULT_SCORING, trend_window=1)
    assert calculate_trend(_events(5, 5, 5, 1), config) == TrendLabel.IMPROVING
    assert calculate_trend(_events(1, 1, 1, 5), config) == TrendLabel.DECLINING


def test_percentile_counts_strictly_lower_scores():
    assert calculate_percentile(100, []) == 100
    assert calculate_percentile(80, [100, 80, 60, 40]) == 50
    assert calculate_percentile(100, [100, 100, 100]) == 0
    assert calculate_percentile(90, [10, 20, 100]) == 66


def test_category_breakdown_groups_missing_categories():
    events = [
        EventForScoring(severity=4, category="no_show"),
        EventForScoring(severity=3, category="no_show"),
        EventForScoring(severity=2),
    ]
    assert category_breakdown(events) == {"no_show": 2, "uncategorized": 1}


@pytest.mark.parametrize(
    "score,label",
    [(100, "Excellent"), (90, "Excellent"), (89, "Good"), (75, "Good"), (60, "Fair"), (40, "Risky"), (39, "High risk")],
)
def test_score_label(score, label):
    assert score_label(score) == label


def test_full_analytics():
    analytics = calculate_full_analytics(_events(4, 1))

    assert analytics.score == 75
    assert analytics.risk_level == RiskLevel.LOW
    assert analytics.trend == TrendLabel.IMPROVING
    assert analytics.event_count == 2
    assert analytics.breakdown == {"uncategorized": 2}
