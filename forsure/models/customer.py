from __future__ import annotations

import datetime as dt
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from config.settings import MAX_PHONE_DIGITS, MIN_PHONE_DIGITS
from forsure.exceptions import InputValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CustomerFacts(BaseModel):
    """Identifying facts a tenant supplies for one customer."""

    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("full name is required")
        return v

    @field_validator("phone")
    @classmethod
    def _phone_shape(cls, v: Optional[str]) -> Optional[str]:
        v = _blank_to_none(v)
        if v is None:
            return None
        digits = re.sub(r"\D", "", v)
        if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
            raise ValueError(f"phone must have {MIN_PHONE_DIGITS}-{MAX_PHONE_DIGITS} digits")
        return v

    @field_validator("email")
    @classmethod
    def _email_shape(cls, v: Optional[str]) -> Optional[str]:
        v = _blank_to_none(v)
        if v is None:
            return None
        if not _EMAIL_RE.match(v):
            raise ValueError("email is malformed")
        return v

    @field_validator("address", "city", "state", "county")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @classmethod
    def build(cls, **raw) -> "CustomerFacts":
        """Construct from raw input, raising ``InputValidationError`` on bad input."""
        try:
            return cls(**raw)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or None
            raise InputValidationError(f"{field}: {first.get('msg')}", field=field) from exc


class CustomerUpdate(BaseModel):
    """Editable contact fields; omitted fields stay as they are, an explicit ``None`` clears one."""

    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None


class TrendLabel(str, Enum):
    IMPROVING = "Improving"
    STABLE = "Stable"
    DECLINING = "Declining"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ReliabilityProfile(BaseModel):
    customer_id: str
    score: int
    risk_level: RiskLevel
    trend: TrendLabel
    percentile: int
    label: str
    event_count: int
    breakdown: dict[str, int] = Field(default_factory=dict)


class CustomerView(BaseModel):
    id: str
    business_id: str
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    model_config = {"from_attributes": True}


class EventView(BaseModel):
    id: str
    customer_id: str
    business_id: str
    category: Optional[str] = None
    note: Optional[str] = None
    severity: int
    created_at: Optional[dt.datetime] = None

    model_config = {"from_attributes": True}
