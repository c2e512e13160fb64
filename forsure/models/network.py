"""
Shared-network value types.

``RiskTier`` and ``IdentitySource`` are closed sets; everything that reads or
writes them goes through these enums rather than bare strings.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RiskTier(str, Enum):
    UNKNOWN = "unknown"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IdentitySource(str, Enum):
    NETWORK = "network"
    PROPERTY_ENRICHMENT = "property_enrichment"
    MERGED = "merged"


def merge_sources(a: IdentitySource, b: IdentitySource) -> IdentitySource:
    """Source of an identity that combines evidence tagged ``a`` and ``b``."""
    if a == b:
        return a
    return IdentitySource.MERGED


class MatchType(str, Enum):
    ADDRESS = "address"
    NAME = "name"
    AUTO_GENERATED = "auto_generated"


class NetworkProfile(BaseModel):
    """What a tenant sees about a shared identity. Fragments only, never raw values."""

    id: str
    risk_tier: RiskTier
    weighted_score: int
    total_incidents: int
    total_positive_events: int
    clean_streak_months: int
    seen_by_business_count: int
    source: IdentitySource
    phone_last_four: Optional[str] = None
    email_domain: Optional[str] = None
    address_partial: Optional[str] = None
    first_seen_at: Optional[dt.datetime] = None
    last_seen_at: Optional[dt.datetime] = None
    last_incident_at: Optional[dt.datetime] = None
    incident_breakdown: dict[str, int] = Field(default_factory=dict)
    has_clean_badge: bool = False
