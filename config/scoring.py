"""
Scoring and matching heuristics.

Every tunable number used by the reliability score, the network risk tiers
and the property record linkage lives here so the algorithms can be tested
against an alternative configuration.
"""

from dataclasses import dataclass, field


def _default_deductions() -> dict[int, int]:
    return {1: 1, 2: 2, 3: 12, 4: 24, 5: 30}


@dataclass(frozen=True)
class ScoringConfig:
    """Constants for reliability scoring, network weighting and linkage."""

    # Tenant-local reliability score
    base_score: int = 100
    severity_deductions: dict[int, int] = field(default_factory=_default_deductions)
    low_risk_min_score: int = 75
    medium_risk_min_score: int = 50
    trend_window: int = 3

    # Network incident weighting
    negative_severity_min: int = 3
    severe_severity_min: int = 4
    severe_multiplier: int = 6
    negative_multiplier: int = 4
    positive_decay: int = 1

    # Network risk tiers (weighted_score lower bounds)
    critical_tier_min: int = 50
    high_tier_min: int = 30
    medium_tier_min: int = 15

    # Clean streak badge
    clean_badge_months: int = 12

    # Record linkage
    address_base_confidence: float = 0.8
    address_city_confidence: float = 0.95
    address_county_confidence: float = 0.9
    name_base_confidence: float = 0.6
    name_city_boost: float = 0.2
    name_county_boost: float = 0.1
    definitive_threshold: float = 0.7
    address_candidate_limit: int = 5
    name_candidate_limit: int = 10
    max_candidates: int = 5

    # Confidence stored on links
    link_address_confidence: float = 0.9
    link_name_confidence: float = 0.7
    existing_address_link_confidence: float = 0.95
    generated_link_confidence: float = 1.0

    # Free-text property search scores
    search_address_score: float = 0.9
    search_name_score: float = 0.8
    mixed_address_score: float = 0.7
    mixed_name_score: float = 0.6


DEFAULT_SCORING = ScoringConfig()
