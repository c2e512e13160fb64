"""
Seed the shared network from public property records.

Each residential, individually owned property yields at most one network
identity (``source=property_enrichment``) keyed on the hash of its address,
so a tenant who later adds a customer at that address resolves to the same
identity. Property-derived identities carry no sighting and therefore start
with ``seen_by_business_count == 0``.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy import exists, select
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker

from config.scoring import DEFAULT_SCORING, ScoringConfig
from config.settings import PROPERTY_SYNC_LIMIT, RESIDENTIAL_CLASS_PATTERN
from forsure.db.engine import session_scope
from forsure.db.network_models import PropertyCustomerLink
from forsure.db.property_models import PropertyRecord
from forsure.exceptions import InputValidationError, NotFoundError
from forsure.models.network import IdentitySource, MatchType
from forsure.models.property import SyncResult
from forsure.services.network_identity_store import NetworkIdentityStore
from forsure.utils.hashing import derive_identity_keys
from forsure.utils.logging_utils import Timer
from forsure.utils.name_parser import is_business_entity


def is_residential(prop: PropertyRecord) -> bool:
    # Unclassified records are given the benefit of the doubt
    return not prop.property_class or "resid" in prop.property_class.lower()


class PropertySyncService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        store: NetworkIdentityStore | None = None,
        config: ScoringConfig = DEFAULT_SCORING,
    ):
        self._session_factory = session_factory
        self.config = config
        self.store = store or NetworkIdentityStore(session_factory, config)

    def create_identity_from_property(self, property_id: str) -> str:
        """
        Return the network identity linked to ``property_id``, creating one if needed.

        Raises ``InputValidationError`` for non-residential or business-owned
        properties and ``NotFoundError`` for unknown ids.
        """
        with session_scope(self._session_factory) as session:
            prop = session.get(PropertyRecord, property_id)
            if prop is None:
                raise NotFoundError(f"Property not found: {property_id}")
            return self._create_in(session, prop)

    def _create_in(self, session: Session, prop: PropertyRecord) -> str:
        if not is_residential(prop):
            raise InputValidationError(
                "Only residential properties can seed network identities", field="property_class"
            )
        if prop.owner_name and is_business_entity(prop.owner_name):
            raise InputValidationError(
                "Business-owned properties cannot seed network identities", field="owner_name"
            )

        existing_link = self._existing_link(session, prop.id)
        if existing_link is not None:
            return existing_link.network_identity_id

        keys = derive_identity_keys(address=prop.address_full)
        if keys.is_empty:
            raise InputValidationError("Property has no usable address", field="address_full")

        existing = self.store.find_in(session, keys)
        if existing is not None:
            session.add(PropertyCustomerLink(
                property_record_id=prop.id,
                network_identity_id=existing.id,
                match_type=MatchType.ADDRESS.value,
                match_confidence=self.config.existing_address_link_confidence,
            ))
            session.flush()
            logger.info(f"Property {prop.id} linked to existing identity {existing.id}")
            return existing.id

        identity = self.store.resolve_or_create_in(
            session, keys, business_id=None, source=IdentitySource.PROPERTY_ENRICHMENT
        )

        session.add(PropertyCustomerLink(
            property_record_id=prop.id,
            network_identity_id=identity.id,
            match_type=MatchType.AUTO_GENERATED.value,
            match_confidence=self.config.generated_link_confidence,
        ))
        session.flush()
        logger.info(f"Property {prop.id} seeded identity {identity.id}")
        return identity.id

    @staticmethod
    def _existing_link(session: Session, property_id: str) -> PropertyCustomerLink | None:
        return session.scalars(
            select(PropertyCustomerLink)
            .where(PropertyCustomerLink.property_record_id == property_id)
            .order_by(PropertyCustomerLink.match_confidence.desc())
        ).first()

    def _unlinked_page(
        self,
        session: Session,
        county: Optional[str],
        municipality: Optional[str],
        after_id: Optional[str],
        size: int,
    ) -> list[tuple[str, Optional[str]]]:
        linked = select(PropertyCustomerLink.id).where(
            PropertyCustomerLink.property_record_id == PropertyRecord.id
        )
        stmt = (
            select(PropertyRecord.id, PropertyRecord.owner_name)
            .where(PropertyRecord.property_class.ilike(RESIDENTIAL_CLASS_PATTERN))
            .where(~exists(linked))
            .order_by(PropertyRecord.id)
            .limit(size)
        )
        if after_id is not None:
            stmt = stmt.where(PropertyRecord.id > after_id)
        if county:
            stmt = stmt.where(PropertyRecord.county == county)
        if municipality:
            stmt = stmt.where(PropertyRecord.municipality == municipality)
        return [tuple(row) for row in session.execute(stmt).all()]

    def batch_sync_properties(
        self,
        county: Optional[str] = None,
        municipality: Optional[str] = None,
        limit: int = PROPERTY_SYNC_LIMIT,
    ) -> SyncResult:
        """
        Seed identities for up to ``limit`` unlinked residential properties.

        Properties are scanned in id order with a keyset cursor. Business-owned
        and unusable properties stay unlinked, count as skipped and do not use
        up the limit, so a repeated run always moves on to properties it has
        not seeded yet. Each property is handled in its own transaction.
        """
        result = SyncResult()
        cursor: Optional[str] = None

        with Timer() as timer:
            while result.created < limit:
                with session_scope(self._session_factory) as session:
                    page = self._unlinked_page(session, county, municipality, cursor, limit)
                if not page:
                    break
                logger.debug(f"Property sync page: {len(page)} unlinked after {cursor}")

                for property_id, owner_name in page:
                    if result.created >= limit:
                        break
                    cursor = property_id
                    if owner_name and is_business_entity(owner_name):
                        result.skipped += 1
                        continue
                    with session_scope(self._session_factory) as session:
                        prop = session.get(PropertyRecord, property_id)
                        try:
                            self._create_in(session, prop)
                        except InputValidationError as exc:
                            logger.debug(f"Property {property_id} skipped: {exc}")
                            result.skipped += 1
                            continue
                        result.created += 1

        logger.info(
            f"Property sync done (county={county}, municipality={municipality}): "
            f"created={result.created} skipped={result.skipped} in {timer.elapsed_ms / 1000:.1f}s"
        )
        return result
