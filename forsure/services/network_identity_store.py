"""
Network Identity Store - the shared, cross-tenant reputation context.

This module is the only writer of ``network_identities`` and its satellite
tables. It accepts ``IdentityKeys`` (hashes + display fragments), never raw
phone numbers, emails or addresses.

Resolution order is phone hash, then email hash, then address hash; the
first hit wins. Each hash column is UNIQUE, so two concurrent creators of
the same identity cannot both succeed: the loser re-runs the lookup and
attaches to the winner's row.

Risk tiers are a pure function of ``weighted_score``:
    >= 50 critical, >= 30 high, >= 15 medium, > 0 low, else unknown
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from loguru import logger
from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker

from config.scoring import DEFAULT_SCORING, ScoringConfig
from forsure.db.engine import session_scope
from forsure.db.models import as_utc
from forsure.db.models import utcnow
from forsure.db.network_models import NetworkIdentity
from forsure.db.network_models import NetworkIncidentCount
from forsure.db.network_models import NetworkSighting
from forsure.db.network_models import PropertyCustomerLink
from forsure.exceptions import InputValidationError, NotFoundError, StoreError
from forsure.models.network import IdentitySource, NetworkProfile, RiskTier, merge_sources
from forsure.utils.hashing import IdentityKeys, business_key

HASH_COLUMNS = {
    "phone": ("phone_hash", "phone_last_four"),
    "email": ("email_hash", "email_domain"),
    "address": ("address_hash", "address_partial"),
}


def incident_weight(severity: int, config: ScoringConfig = DEFAULT_SCORING) -> int:
    """Convex weight: 4-5 -> x6, 3 -> x4, 1-2 -> linear."""
    if severity >= config.severe_severity_min:
        return severity * config.severe_multiplier
    if severity >= config.negative_severity_min:
        return severity * config.negative_multiplier
    return severity


def risk_tier_for(weighted_score: int, config: ScoringConfig = DEFAULT_SCORING) -> RiskTier:
    if weighted_score >= config.critical_tier_min:
        return RiskTier.CRITICAL
    if weighted_score >= config.high_tier_min:
        return RiskTier.HIGH
    if weighted_score >= config.medium_tier_min:
        return RiskTier.MEDIUM
    if weighted_score > 0:
        return RiskTier.LOW
    return RiskTier.UNKNOWN


def months_between(start: dt.datetime, end: dt.datetime) -> int:
    """Whole calendar months from ``start`` to ``end`` (never negative)."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(0, months)


def _later(a: Optional[dt.datetime], b: Optional[dt.datetime]) -> Optional[dt.datetime]:
    a, b = as_utc(a), as_utc(b)
    if a is None or b is None:
        return a or b
    return max(a, b)


def _earlier(a: Optional[dt.datetime], b: Optional[dt.datetime]) -> Optional[dt.datetime]:
    a, b = as_utc(a), as_utc(b)
    if a is None or b is None:
        return a or b
    return min(a, b)


class NetworkIdentityStore:
    """Resolve, update and read shared network identities."""

    def __init__(self, session_factory: sessionmaker[Session], config: ScoringConfig = DEFAULT_SCORING):
        self._session_factory = session_factory
        self.config = config

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_or_create(
        self,
        keys: IdentityKeys,
        business_id: str | None = None,
        source: IdentitySource = IdentitySource.NETWORK,
    ) -> str | None:
        """
        Return the id of the identity matching ``keys``, creating it if needed.

        Returns None when ``keys`` carries no usable hash.
        """
        if keys.is_empty:
            return None

        for attempt in range(2):
            try:
                with session_scope(self._session_factory) as session:
                    identity = self.resolve_or_create_in(session, keys, business_id, source)
                    return identity.id
            except StoreError as exc:
                if attempt == 0 and isinstance(exc.__cause__, IntegrityError):
                    logger.info("Concurrent network identity write detected; re-resolving")
                    continue
                raise
        return None

    def resolve_or_create_in(
        self,
        session: Session,
        keys: IdentityKeys,
        business_id: str | None = None,
        source: IdentitySource = IdentitySource.NETWORK,
    ) -> NetworkIdentity:
        """Same as ``resolve_or_create`` inside a caller-managed session."""
        identity = self.find_in(session, keys)
        now = utcnow()

        if identity is None:
            identity = NetworkIdentity(
                risk_tier=RiskTier.UNKNOWN.value,
                weighted_score=0,
                total_incidents=0,
                total_positive_events=0,
                clean_streak_months=0,
                seen_by_business_count=0,
                source=source.value,
                first_seen_at=now,
                last_seen_at=now,
            )
            for kind, (hash_col, fragment_col) in HASH_COLUMNS.items():
                setattr(identity, hash_col, getattr(keys, hash_col))
                setattr(identity, fragment_col, getattr(keys, fragment_col))
            session.add(identity)
            session.flush()
            logger.info(f"Created network identity {identity.id} (source={source.value})")
        else:
            identity.last_seen_at = now
            self._absorb_keys(session, identity, keys)
            if source != IdentitySource(identity.source):
                identity.source = merge_sources(IdentitySource(identity.source), source).value

        if business_id:
            self._record_sighting(session, identity, business_id)
        return identity

    def find_in(self, session: Session, keys: IdentityKeys) -> NetworkIdentity | None:
        for kind, value in keys.lookup_order():
            identity = self._by_hash(session, kind, value)
            if identity is not None:
                logger.debug(f"Network identity {identity.id} resolved by {kind} hash")
                return identity
        return None

    def _by_hash(self, session: Session, kind: str, value: str) -> NetworkIdentity | None:
        column = getattr(NetworkIdentity, HASH_COLUMNS[kind][0])
        return session.scalars(select(NetworkIdentity).where(column == value)).first()

    def _absorb_keys(self, session: Session, identity: NetworkIdentity, keys: IdentityKeys) -> None:
        """Copy newly supplied hashes onto ``identity``, merging any identity that already owns one."""
        for kind, value in keys.lookup_order():
            hash_col, fragment_col = HASH_COLUMNS[kind]
            if getattr(identity, hash_col) == value:
                continue
            other = self._by_hash(session, kind, value)
            if other is not None and other.id != identity.id:
                self._merge_in(session, identity, other)
            setattr(identity, hash_col, value)
            setattr(identity, fragment_col, getattr(keys, fragment_col))
        session.flush()

    def _record_sighting(self, session: Session, identity: NetworkIdentity, business_id: str) -> None:
        key = business_key(business_id)
        exists = session.scalars(
            select(NetworkSighting).where(
                NetworkSighting.identity_id == identity.id,
                NetworkSighting.business_key == key,
            )
        ).first()
        if exists is None:
            session.add(NetworkSighting(identity_id=identity.id, business_key=key))
            session.flush()
        identity.seen_by_business_count = self._count_sightings(session, identity.id)

    def _count_sightings(self, session: Session, identity_id: str) -> int:
        return session.scalar(
            select(func.count()).select_from(NetworkSighting).where(NetworkSighting.identity_id == identity_id)
        ) or 0

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    def merge_identities(self, keep_id: str, absorb_id: str) -> str:
        """Fold ``absorb_id`` into ``keep_id`` and delete it."""
        if keep_id == absorb_id:
            return keep_id
        with session_scope(self._session_factory) as session:
            keep = session.get(NetworkIdentity, keep_id)
            absorb = session.get(NetworkIdentity, absorb_id)
            if keep is None or absorb is None:
                raise NotFoundError(f"Network identity not found: {keep_id if keep is None else absorb_id}")
            self._merge_in(session, keep, absorb)
            return keep.id

    def _merge_in(self, session: Session, keep: NetworkIdentity, absorb: NetworkIdentity) -> None:
        logger.info(f"Merging network identity {absorb.id} into {keep.id}")

        carried = {
            col: getattr(absorb, col)
            for pair in HASH_COLUMNS.values()
            for col in pair
        }

        keep.weighted_score += absorb.weighted_score
        keep.total_incidents += absorb.total_incidents
        keep.total_positive_events += absorb.total_positive_events
        keep.clean_streak_months = min(keep.clean_streak_months, absorb.clean_streak_months)
        keep.first_seen_at = _earlier(keep.first_seen_at, absorb.first_seen_at)
        keep.last_seen_at = _later(keep.last_seen_at, absorb.last_seen_at)
        keep.last_incident_at = _later(keep.last_incident_at, absorb.last_incident_at)
        keep.source = merge_sources(IdentitySource(keep.source), IdentitySource(absorb.source)).value
        keep.risk_tier = risk_tier_for(keep.weighted_score, self.config).value

        keep_counts = {
            c.category: c
            for c in session.scalars(
                select(NetworkIncidentCount).where(NetworkIncidentCount.identity_id == keep.id)
            )
        }
        for count in session.scalars(
            select(NetworkIncidentCount).where(NetworkIncidentCount.identity_id == absorb.id)
        ).all():
            if count.category in keep_counts:
                keep_counts[count.category].active_count += count.active_count
                session.delete(count)
            else:
                count.identity_id = keep.id

        keep_keys = set(
            session.scalars(select(NetworkSighting.business_key).where(NetworkSighting.identity_id == keep.id))
        )
        for sighting in session.scalars(
            select(NetworkSighting).where(NetworkSighting.identity_id == absorb.id)
        ).all():
            if sighting.business_key in keep_keys:
                session.delete(sighting)
            else:
                sighting.identity_id = keep.id

        keep_properties = set(
            session.scalars(
                select(PropertyCustomerLink.property_record_id).where(
                    PropertyCustomerLink.network_identity_id == keep.id
                )
            )
        )
        for link in session.scalars(
            select(PropertyCustomerLink).where(PropertyCustomerLink.network_identity_id == absorb.id)
        ).all():
            if link.property_record_id in keep_properties:
                session.delete(link)
            else:
                link.network_identity_id = keep.id

        # Satellite rows must point at keep before the absorbed row (and its
        # ON DELETE CASCADE) goes away; the unique hashes are only free after that.
        session.flush()
        session.delete(absorb)
        session.flush()

        for hash_col, fragment_col in HASH_COLUMNS.values():
            if getattr(keep, hash_col) is None and carried[hash_col] is not None:
                setattr(keep, hash_col, carried[hash_col])
                setattr(keep, fragment_col, carried[fragment_col])
        keep.seen_by_business_count = max(
            self._count_sightings(session, keep.id),
            keep.seen_by_business_count,
        )
        session.flush()

    # ------------------------------------------------------------------
    # Incidents
    # ------------------------------------------------------------------

    def record_incident(self, identity_id: str, severity: int, category: str | None = None) -> NetworkProfile:
        """Apply one reported event to the identity's aggregate reputation."""
        if not 1 <= severity <= 5:
            raise InputValidationError("severity must be between 1 and 5", field="severity")

        with session_scope(self._session_factory) as session:
            identity = session.get(NetworkIdentity, identity_id, with_for_update=True)
            if identity is None:
                raise NotFoundError(f"Network identity not found: {identity_id}")
            self.record_incident_in(session, identity, severity, category)
            return self._to_profile(session, identity)

    def record_incident_in(
        self,
        session: Session,
        identity: NetworkIdentity,
        severity: int,
        category: str | None = None,
    ) -> None:
        is_negative = severity >= self.config.negative_severity_min
        weight = incident_weight(severity, self.config)

        if is_negative:
            identity.weighted_score += weight
            identity.total_incidents += 1
            identity.last_incident_at = utcnow()
            identity.clean_streak_months = 0
            if category:
                self._bump_category(session, identity.id, category)
        else:
            identity.weighted_score = max(0, identity.weighted_score - self.config.positive_decay)
            identity.total_positive_events += 1

        identity.risk_tier = risk_tier_for(identity.weighted_score, self.config).value
        session.flush()
        logger.info(
            f"Network identity {identity.id}: severity {severity} "
            f"({'incident' if is_negative else 'positive'}) -> score {identity.weighted_score}, "
            f"tier {identity.risk_tier}"
        )

    def _bump_category(self, session: Session, identity_id: str, category: str) -> None:
        row = session.scalars(
            select(NetworkIncidentCount).where(
                NetworkIncidentCount.identity_id == identity_id,
                NetworkIncidentCount.category == category,
            )
        ).first()
        if row is None:
            session.add(NetworkIncidentCount(identity_id=identity_id, category=category, active_count=1))
        else:
            row.active_count += 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def incident_breakdown(self, identity_id: str) -> dict[str, int]:
        with session_scope(self._session_factory) as session:
            return self._breakdown(session, identity_id)

    def _breakdown(self, session: Session, identity_id: str) -> dict[str, int]:
        rows = session.execute(
            select(NetworkIncidentCount.category, NetworkIncidentCount.active_count)
            .where(
                NetworkIncidentCount.identity_id == identity_id,
                NetworkIncidentCount.active_count > 0,
            )
            .order_by(NetworkIncidentCount.category)
        ).all()
        return {category: count for category, count in rows}

    def get_profile(self, identity_id: str) -> NetworkProfile:
        with session_scope(self._session_factory) as session:
            identity = session.get(NetworkIdentity, identity_id)
            if identity is None:
                raise NotFoundError(f"Network identity not found: {identity_id}")
            return self._to_profile(session, identity)

    def find_by_hash(self, kind: str, value: str) -> NetworkProfile | None:
        if kind not in HASH_COLUMNS:
            raise InputValidationError(f"Unsupported hash kind: {kind}", field="kind")
        with session_scope(self._session_factory) as session:
            identity = self._by_hash(session, kind, value)
            if identity is None:
                return None
            return self._to_profile(session, identity)

    def _to_profile(self, session: Session, identity: NetworkIdentity) -> NetworkProfile:
        return NetworkProfile(
            id=identity.id,
            risk_tier=RiskTier(identity.risk_tier),
            weighted_score=identity.weighted_score,
            total_incidents=identity.total_incidents,
            total_positive_events=identity.total_positive_events,
            clean_streak_months=identity.clean_streak_months,
            seen_by_business_count=identity.seen_by_business_count,
            source=IdentitySource(identity.source),
            phone_last_four=identity.phone_last_four,
            email_domain=identity.email_domain,
            address_partial=identity.address_partial,
            first_seen_at=as_utc(identity.first_seen_at),
            last_seen_at=as_utc(identity.last_seen_at),
            last_incident_at=as_utc(identity.last_incident_at),
            incident_breakdown=self._breakdown(session, identity.id),
            has_clean_badge=identity.clean_streak_months >= self.config.clean_badge_months,
        )

    # ------------------------------------------------------------------
    # Scheduled maintenance
    # ------------------------------------------------------------------

    def refresh_clean_streaks(self, now: dt.datetime | None = None) -> int:
        """
        Recompute ``clean_streak_months`` for every identity.

        The streak counts whole months since the last incident (or since the
        identity was first seen). Re-running within the same month is a no-op.
        Returns the number of rows changed.
        """
        now = as_utc(now) or utcnow()
        changed = 0
        with session_scope(self._session_factory) as session:
            for identity in session.scalars(select(NetworkIdentity)).all():
                start = as_utc(identity.last_incident_at) or as_utc(identity.first_seen_at)
                months = months_between(start, now) if start else 0
                if months != identity.clean_streak_months:
                    identity.clean_streak_months = months
                    changed += 1
        logger.info(f"Clean streak refresh updated {changed} identities")
        return changed
