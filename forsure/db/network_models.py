"""
SQLAlchemy ORM models for the shared, tenant-agnostic network.

Tables:
- network_identities: one resolved real-world contact, hashes and fragments only
- network_sightings: (identity, hashed tenant key) pairs backing seen_by_business_count
- network_incident_counts: per-category incident aggregates
- property_customer_links: record-linkage output (property <-> identity)

Nothing here references tenant tables and no column holds raw PII.
"""

from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime
from sqlalchemy import Float
from sqlalchemy import ForeignKey
from sqlalchemy import Index
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import mapped_column

from forsure.db.models import Base
from forsure.db.models import new_id
from forsure.db.models import utcnow
from forsure.models.network import IdentitySource
from forsure.models.network import RiskTier


class NetworkIdentity(Base):
    __tablename__ = "network_identities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    phone_hash: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    email_hash: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    address_hash: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    phone_last_four: Mapped[str | None] = mapped_column(String(4), nullable=True)
    email_domain: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_partial: Mapped[str | None] = mapped_column(Text, nullable=True)
    risk_tier: Mapped[str] = mapped_column(String(16), nullable=False, default=RiskTier.UNKNOWN.value)
    weighted_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_incidents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_positive_events: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clean_streak_months: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    seen_by_business_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default=IdentitySource.NETWORK.value)
    first_seen_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_seen_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_incident_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_network_identities_risk_tier", "risk_tier"),
    )


class NetworkSighting(Base):
    __tablename__ = "network_sightings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    identity_id: Mapped[str] = mapped_column(
        ForeignKey("network_identities.id", ondelete="CASCADE"), nullable=False
    )
    business_key: Mapped[str] = mapped_column(String(64), nullable=False)
    first_seen_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("identity_id", "business_key", name="uq_network_sightings_identity_business"),
    )


class NetworkIncidentCount(Base):
    __tablename__ = "network_incident_counts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    identity_id: Mapped[str] = mapped_column(
        ForeignKey("network_identities.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    active_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("identity_id", "category", name="uq_network_incident_counts_identity_category"),
    )


class PropertyCustomerLink(Base):
    __tablename__ = "property_customer_links"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    property_record_id: Mapped[str] = mapped_column(
        ForeignKey("property_records.id", ondelete="CASCADE"), nullable=False
    )
    network_identity_id: Mapped[str] = mapped_column(
        ForeignKey("network_identities.id", ondelete="CASCADE"), nullable=False
    )
    match_type: Mapped[str] = mapped_column(String(32), nullable=False)
    match_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "property_record_id",
            "network_identity_id",
            name="uq_property_customer_links_property_identity",
        ),
        Index("idx_property_customer_links_property", "property_record_id"),
        Index("idx_property_customer_links_identity", "network_identity_id"),
    )
