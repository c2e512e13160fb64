"""
SQLAlchemy ORM model for public property records.

Rows are loaded by an external scraper and are read-only to the core; the
record-linkage engine only searches them.
"""

from __future__ import annotations

import datetime as dt

from sqlalchemy import Date
from sqlalchemy import DateTime
from sqlalchemy import Index
from sqlalchemy import Integer
from sqlalchemy import Numeric
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import mapped_column

from forsure.db.models import Base
from forsure.db.models import new_id


class PropertyRecord(Base):
    __tablename__ = "property_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    county: Mapped[str | None] = mapped_column(String(64), nullable=True)
    municipality: Mapped[str | None] = mapped_column(Text, nullable=True)
    parcel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address_full: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_street: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_state: Mapped[str | None] = mapped_column(String(16), nullable=True)
    address_zip: Mapped[str | None] = mapped_column(String(10), nullable=True)
    owner_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_name_secondary: Mapped[str | None] = mapped_column(Text, nullable=True)
    property_class: Mapped[str | None] = mapped_column(String(64), nullable=True)
    assessed_value_total: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
    year_built: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_sale_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    last_sale_price: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
    scraped_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_property_records_county", "county"),
        Index("idx_property_records_municipality", "municipality"),
        Index("idx_property_records_class", "property_class"),
        # GIN trigram indexes for ILIKE searches (requires pg_trgm extension)
        Index(
            "idx_property_records_address_trgm",
            "address_full",
            postgresql_using="gin",
            postgresql_ops={"address_full": "gin_trgm_ops"},
        ),
        Index(
            "idx_property_records_owner_trgm",
            "owner_name",
            postgresql_using="gin",
            postgresql_ops={"owner_name": "gin_trgm_ops"},
        ),
    )
