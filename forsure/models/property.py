from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, computed_field

from forsure.models.network import MatchType
from forsure.utils.name_parser import format_name_for_display


class PropertyView(BaseModel):
    """Read-only projection of a public property record."""

    id: str
    county: Optional[str] = None
    municipality: Optional[str] = None
    parcel_id: Optional[str] = None
    address_full: Optional[str] = None
    address_street: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = None
    address_zip: Optional[str] = None
    owner_name: Optional[str] = None
    owner_name_secondary: Optional[str] = None
    property_class: Optional[str] = None
    assessed_value_total: Optional[Decimal] = None
    year_built: Optional[int] = None
    last_sale_date: Optional[dt.date] = None
    last_sale_price: Optional[Decimal] = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def owner_display(self) -> str:
        """Owner name as shown to tenants, e.g. ``DOE JANE`` -> ``Doe Jane``."""
        return format_name_for_display(self.owner_name)


@dataclass
class RankedCandidate:
    """One property record proposed as the home of a customer."""

    property: PropertyView
    match_type: MatchType
    confidence: float
    definitive: bool = False


@dataclass
class PropertySearchHit:
    property: PropertyView
    match_type: MatchType
    score: float


@dataclass
class SyncResult:
    created: int = 0
    skipped: int = 0
