"""
Record linkage between customers and public property records.

Matching runs in two passes:
1. Address pass: the parsed street ("123 MAIN ST") as a case-insensitive
   substring of ``address_full``. Confidence 0.8, 0.95 when the property's
   municipality contains the customer's city, at least 0.9 on an exact
   county match. Any hit skips the name pass.
2. Name pass: individual owners only, ``%LAST%FIRST%`` against the primary
   or secondary owner name of residential properties. Confidence 0.6 with
   small boosts for municipality and county agreement.

Candidates at or above ``definitive_threshold`` may be auto-linked; the rest
are suggestions only.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy import or_
from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker

from config.scoring import DEFAULT_SCORING, ScoringConfig
from config.settings import MIN_SEARCH_QUERY_LENGTH, PROPERTY_SEARCH_LIMIT, RESIDENTIAL_CLASS_PATTERN
from forsure.db.engine import session_scope
from forsure.db.models import utcnow
from forsure.db.network_models import NetworkIdentity
from forsure.db.network_models import PropertyCustomerLink
from forsure.db.property_models import PropertyRecord
from forsure.exceptions import InputValidationError, NotFoundError
from forsure.models.customer import CustomerFacts
from forsure.models.network import IdentitySource, MatchType, merge_sources
from forsure.models.property import PropertySearchHit, PropertyView, RankedCandidate
from forsure.utils.logging_utils import Timer, log_search
from forsure.utils.name_parser import looks_like_name, parse_name
from forsure.utils.normalization import looks_like_address, parse_address


def _contains(haystack: Optional[str], needle: Optional[str]) -> bool:
    if not haystack or not needle:
        return False
    return needle.strip().lower() in haystack.lower()


def _same(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


LIKE_ESCAPE = "\\"


def escape_like(value: str) -> str:
    """Make ``%`` and ``_`` typed by a user match literally in LIKE patterns."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def contains_pattern(*parts: str) -> str:
    """``%a%b%``: every part in order, each escaped."""
    return "%" + "%".join(escape_like(p) for p in parts) + "%"


def owner_name_pattern(last_name: str, first_name: Optional[str] = None) -> str:
    if first_name:
        return contains_pattern(last_name, first_name)
    return contains_pattern(last_name)


class RecordLinkageEngine:
    """Propose, search and persist links between identities and properties."""

    def __init__(self, session_factory: sessionmaker[Session], config: ScoringConfig = DEFAULT_SCORING):
        self._session_factory = session_factory
        self.config = config

    # ------------------------------------------------------------------
    # Candidate ranking
    # ------------------------------------------------------------------

    def address_confidence(self, prop: PropertyRecord, city: Optional[str], county: Optional[str]) -> float:
        confidence = self.config.address_base_confidence
        if _contains(prop.municipality, city):
            confidence = self.config.address_city_confidence
        if _same(prop.county, county):
            confidence = max(confidence, self.config.address_county_confidence)
        return round(confidence, 2)

    def name_confidence(self, prop: PropertyRecord, city: Optional[str], county: Optional[str]) -> float:
        confidence = self.config.name_base_confidence
        if _contains(prop.municipality, city):
            confidence += self.config.name_city_boost
        if _same(prop.county, county):
            confidence += self.config.name_county_boost
        return round(min(confidence, 1.0), 2)

    def find_property_matches(self, facts: CustomerFacts) -> list[RankedCandidate]:
        """Rank property records that plausibly belong to the customer."""
        with session_scope(self._session_factory) as session:
            return self.find_property_matches_in(session, facts)

    def find_property_matches_in(self, session: Session, facts: CustomerFacts) -> list[RankedCandidate]:
        candidates: list[RankedCandidate] = []

        with Timer() as timer:
            if facts.address:
                street = parse_address(facts.address).street
                if street:
                    rows = session.scalars(
                        select(PropertyRecord)
                        .where(PropertyRecord.address_full.ilike(contains_pattern(street), escape=LIKE_ESCAPE))
                        .order_by(PropertyRecord.id)
                        .limit(self.config.address_candidate_limit)
                    ).all()
                    for prop in rows:
                        candidates.append(self._candidate(
                            prop, MatchType.ADDRESS, self.address_confidence(prop, facts.city, facts.county)
                        ))

            if not candidates:
                candidates.extend(self._name_candidates(session, facts))

        # sorted() is stable so ties keep scan order
        ranked = sorted(candidates, key=lambda c: c.confidence, reverse=True)[: self.config.max_candidates]
        log_search(
            source="property_records",
            kind="linkage",
            results_raw=len(candidates),
            results_kept=len(ranked),
            duration_ms=timer.elapsed_ms,
        )
        return ranked

    def _name_candidates(self, session: Session, facts: CustomerFacts) -> list[RankedCandidate]:
        parsed = parse_name(facts.full_name)
        if parsed.is_business_entity or not parsed.last_name:
            return []

        pattern = owner_name_pattern(parsed.last_name, parsed.first_name)
        stmt = (
            select(PropertyRecord)
            .where(
                or_(
                    PropertyRecord.owner_name.ilike(pattern, escape=LIKE_ESCAPE),
                    PropertyRecord.owner_name_secondary.ilike(pattern, escape=LIKE_ESCAPE),
                ),
                PropertyRecord.property_class.ilike(RESIDENTIAL_CLASS_PATTERN),
            )
            .order_by(PropertyRecord.id)
            .limit(self.config.name_candidate_limit)
        )
        if facts.county:
            stmt = stmt.where(PropertyRecord.county.ilike(contains_pattern(facts.county), escape=LIKE_ESCAPE))

        return [
            self._candidate(prop, MatchType.NAME, self.name_confidence(prop, facts.city, facts.county))
            for prop in session.scalars(stmt).all()
        ]

    def _candidate(self, prop: PropertyRecord, match_type: MatchType, confidence: float) -> RankedCandidate:
        return RankedCandidate(
            property=PropertyView.model_validate(prop),
            match_type=match_type,
            confidence=confidence,
            definitive=confidence >= self.config.definitive_threshold,
        )

    def best_property_match(self, facts: CustomerFacts) -> RankedCandidate | None:
        """Top candidate if it is definitive, else None."""
        for candidate in self.find_property_matches(facts):
            if candidate.definitive:
                return candidate
        return None

    # ------------------------------------------------------------------
    # Free-text search
    # ------------------------------------------------------------------

    def search_properties(self, query: str) -> list[PropertySearchHit]:
        """Route a free-text query to address, name or mixed property search."""
        trimmed = (query or "").strip()
        if len(trimmed) < MIN_SEARCH_QUERY_LENGTH:
            raise InputValidationError(
                f"Search query must be at least {MIN_SEARCH_QUERY_LENGTH} characters", field="query"
            )

        limit = PROPERTY_SEARCH_LIMIT
        hits: list[PropertySearchHit] = []

        with session_scope(self._session_factory) as session, Timer() as timer:
            if looks_like_address(trimmed):
                kind = "address"
                street = parse_address(trimmed).street or trimmed.upper()
                for prop in self._by_address(session, contains_pattern(street), limit):
                    hits.append(self._hit(prop, MatchType.ADDRESS, self.config.search_address_score))

            elif looks_like_name(trimmed):
                kind = "name"
                parsed = parse_name(trimmed)
                if parsed.is_business_entity:
                    raise InputValidationError("Business entities are not searchable as customers", field="query")
                if parsed.last_name:
                    pattern = owner_name_pattern(parsed.last_name, parsed.first_name)
                else:
                    pattern = contains_pattern(trimmed.upper())
                for prop in self._by_owner(session, pattern, limit):
                    hits.append(self._hit(prop, MatchType.NAME, self.config.search_name_score))

            else:
                kind = "mixed"
                pattern = contains_pattern(trimmed.upper())
                seen: set[str] = set()
                for prop in self._by_address(session, pattern, limit // 2):
                    seen.add(prop.id)
                    hits.append(self._hit(prop, MatchType.ADDRESS, self.config.mixed_address_score))
                for prop in self._by_owner(session, pattern, limit // 2):
                    if prop.id not in seen:
                        hits.append(self._hit(prop, MatchType.NAME, self.config.mixed_name_score))

        hits.sort(key=lambda h: h.score, reverse=True)
        log_search(source="property_records", kind=kind, results_raw=len(hits), duration_ms=timer.elapsed_ms)
        return hits[:limit]

    def _by_address(self, session: Session, pattern: str, limit: int) -> list[PropertyRecord]:
        return list(session.scalars(
            select(PropertyRecord)
            .where(PropertyRecord.address_full.ilike(pattern, escape=LIKE_ESCAPE))
            .order_by(PropertyRecord.id)
            .limit(limit)
        ))

    def _by_owner(self, session: Session, pattern: str, limit: int) -> list[PropertyRecord]:
        return list(session.scalars(
            select(PropertyRecord)
            .where(
                or_(
                    PropertyRecord.owner_name.ilike(pattern, escape=LIKE_ESCAPE),
                    PropertyRecord.owner_name_secondary.ilike(pattern, escape=LIKE_ESCAPE),
                ),
                PropertyRecord.property_class.ilike(RESIDENTIAL_CLASS_PATTERN),
            )
            .order_by(PropertyRecord.id)
            .limit(limit)
        ))

    @staticmethod
    def _hit(prop: PropertyRecord, match_type: MatchType, score: float) -> PropertySearchHit:
        return PropertySearchHit(property=PropertyView.model_validate(prop), match_type=match_type, score=score)

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def link_customer_to_property(
        self,
        identity_id: str,
        property_id: str,
        match_type: MatchType = MatchType.ADDRESS,
    ) -> PropertyCustomerLink:
        """Create or refresh the link between a network identity and a property."""
        if match_type not in (MatchType.ADDRESS, MatchType.NAME):
            raise InputValidationError(f"Unsupported link match type: {match_type}", field="match_type")
        confidence = (
            self.config.link_address_confidence
            if match_type == MatchType.ADDRESS
            else self.config.link_name_confidence
        )

        with session_scope(self._session_factory) as session:
            if session.get(PropertyRecord, property_id) is None:
                raise NotFoundError(f"Property not found: {property_id}")
            identity = session.get(NetworkIdentity, identity_id)
            if identity is None:
                raise NotFoundError(f"Network identity not found: {identity_id}")

            link = session.scalars(
                select(PropertyCustomerLink).where(
                    PropertyCustomerLink.property_record_id == property_id,
                    PropertyCustomerLink.network_identity_id == identity_id,
                )
            ).first()
            if link is None:
                link = PropertyCustomerLink(
                    property_record_id=property_id,
                    network_identity_id=identity_id,
                    match_type=match_type.value,
                    match_confidence=confidence,
                )
                session.add(link)
            else:
                link.match_type = match_type.value
                link.match_confidence = confidence
                link.updated_at = utcnow()

            if identity.source == IdentitySource.PROPERTY_ENRICHMENT.value:
                identity.source = merge_sources(IdentitySource.PROPERTY_ENRICHMENT, IdentitySource.NETWORK).value

            session.flush()
            logger.info(f"Linked identity {identity_id} to property {property_id} ({match_type.value}, {confidence})")
            return link
