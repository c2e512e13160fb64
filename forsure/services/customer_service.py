"""
Tenant-scoped customer book and event log.

Every query filters on ``business_id``. Writes that concern the shared
network (identity resolution and incident recording) go through
``NetworkIdentityStore`` with hashes only, in their own transaction after the
tenant write has committed. A network failure surfaces as ``StoreError``;
the tenant row is kept and ``sync_business_customers`` can replay it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger
from sqlalchemy import delete
from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker

from config.scoring import DEFAULT_SCORING, ScoringConfig
from forsure.db.engine import session_scope
from forsure.db.models import Business
from forsure.db.models import Customer
from forsure.db.models import CustomerEvent
from forsure.db.models import utcnow
from forsure.exceptions import DuplicateCustomerError, InputValidationError, NotFoundError
from forsure.models.customer import CustomerFacts, CustomerUpdate, CustomerView, EventView, ReliabilityProfile
from forsure.services.network_identity_store import NetworkIdentityStore
from forsure.services.record_linkage import RecordLinkageEngine
from forsure.services.reliability_scoring import (
    EventForScoring,
    calculate_full_analytics,
    calculate_percentile,
    calculate_score,
    score_label,
)
from forsure.utils.hashing import derive_identity_keys
from forsure.utils.normalization import normalize_address, normalize_email, normalize_phone

CONTACT_FIELDS = ("full_name", "phone", "email", "address", "city", "state", "county")


@dataclass
class DuplicateMatch:
    matched_on: str
    existing_customer_id: str
    existing_customer_name: Optional[str] = None

    def to_error(self) -> DuplicateCustomerError:
        return DuplicateCustomerError(self.matched_on, self.existing_customer_id, self.existing_customer_name)


def _as_facts(facts: CustomerFacts | dict) -> CustomerFacts:
    if isinstance(facts, CustomerFacts):
        return facts
    return CustomerFacts.build(**facts)


class CustomerService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        store: NetworkIdentityStore | None = None,
        linkage: RecordLinkageEngine | None = None,
        config: ScoringConfig = DEFAULT_SCORING,
        auto_link_properties: bool = True,
    ):
        self._session_factory = session_factory
        self.config = config
        self.store = store or NetworkIdentityStore(session_factory, config)
        self.linkage = linkage or RecordLinkageEngine(session_factory, config)
        self.auto_link_properties = auto_link_properties

    # ------------------------------------------------------------------
    # Businesses
    # ------------------------------------------------------------------

    def create_business(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise InputValidationError("business name is required", field="name")
        with session_scope(self._session_factory) as session:
            business = Business(name=name)
            session.add(business)
            session.flush()
            logger.info(f"Created business {business.id}")
            return business.id

    def _require_business(self, session: Session, business_id: str) -> Business:
        business = session.get(Business, business_id)
        if business is None:
            raise NotFoundError(f"Business not found: {business_id}")
        return business

    def _require_customer(self, session: Session, business_id: str, customer_id: str) -> Customer:
        customer = session.scalars(
            select(Customer).where(Customer.id == customer_id, Customer.business_id == business_id)
        ).first()
        if customer is None:
            raise NotFoundError(f"Customer not found: {customer_id}")
        return customer

    # ------------------------------------------------------------------
    # Duplicates
    # ------------------------------------------------------------------

    def check_for_duplicate(
        self,
        business_id: str,
        facts: CustomerFacts | dict,
        exclude_customer_id: str | None = None,
    ) -> DuplicateMatch | None:
        """First tenant-local match by phone, email, address, then exact name."""
        facts = _as_facts(facts)
        with session_scope(self._session_factory) as session:
            return self._find_duplicate(session, business_id, facts, exclude_customer_id)

    def _find_duplicate(
        self,
        session: Session,
        business_id: str,
        facts: CustomerFacts,
        exclude_customer_id: str | None = None,
    ) -> DuplicateMatch | None:
        base = select(Customer).where(Customer.business_id == business_id)
        if exclude_customer_id:
            base = base.where(Customer.id != exclude_customer_id)

        if facts.phone:
            phone = normalize_phone(facts.phone)
            for customer in session.scalars(base.where(Customer.phone.is_not(None))):
                if normalize_phone(customer.phone) == phone:
                    return DuplicateMatch("phone", customer.id, customer.full_name)

        if facts.email:
            email = normalize_email(facts.email)
            customer = session.scalars(base.where(func.lower(func.trim(Customer.email)) == email)).first()
            if customer is not None:
                return DuplicateMatch("email", customer.id, customer.full_name)

        if facts.address and len(facts.address) > 5:
            address = normalize_address(facts.address)
            for customer in session.scalars(base.where(Customer.address.is_not(None))):
                if normalize_address(customer.address) == address:
                    return DuplicateMatch("address", customer.id, customer.full_name)

        if len(facts.full_name) > 2:
            customer = session.scalars(
                base.where(func.lower(Customer.full_name) == facts.full_name.lower())
            ).first()
            if customer is not None:
                return DuplicateMatch("name", customer.id, customer.full_name)

        return None

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def add_customer(
        self,
        business_id: str,
        facts: CustomerFacts | dict,
        skip_duplicate_check: bool = False,
    ) -> CustomerView:
        """
        Store a customer for ``business_id`` and resolve its network identity.

        Raises ``DuplicateCustomerError`` unless ``skip_duplicate_check``.
        """
        facts = _as_facts(facts)

        with session_scope(self._session_factory) as session:
            self._require_business(session, business_id)
            if not skip_duplicate_check:
                match = self._find_duplicate(session, business_id, facts)
                if match is not None:
                    logger.info(f"Duplicate customer for business {business_id} matched on {match.matched_on}")
                    raise match.to_error()

            customer = Customer(business_id=business_id, **facts.model_dump())
            session.add(customer)
            session.flush()
            view = CustomerView.model_validate(customer)

        logger.info(f"Added customer {view.id} for business {business_id}")
        self._sync_identity(business_id, facts)
        return view

    def _sync_identity(self, business_id: str, facts: CustomerFacts) -> str | None:
        keys = derive_identity_keys(facts.phone, facts.email, facts.address)
        identity_id = self.store.resolve_or_create(keys, business_id=business_id)
        if identity_id is None:
            logger.debug("Customer has no usable identifying facts; network skipped")
            return None

        if self.auto_link_properties and facts.address:
            best = self.linkage.best_property_match(facts)
            if best is not None:
                self.linkage.link_customer_to_property(identity_id, best.property.id, best.match_type)
        return identity_id

    def update_customer(self, business_id: str, customer_id: str, changes: CustomerUpdate | dict) -> CustomerView:
        if isinstance(changes, dict):
            changes = CustomerUpdate(**changes)
        updates = changes.model_dump(exclude_unset=True)

        with session_scope(self._session_factory) as session:
            customer = self._require_customer(session, business_id, customer_id)
            merged = {field: getattr(customer, field) for field in CONTACT_FIELDS}
            merged.update(updates)
            facts = CustomerFacts.build(**merged)

            for field, value in facts.model_dump().items():
                setattr(customer, field, value)
            customer.updated_at = utcnow()
            session.flush()
            view = CustomerView.model_validate(customer)

        if {"phone", "email", "address"} & updates.keys():
            self._sync_identity(business_id, facts)
        return view

    def delete_customer(self, business_id: str, customer_id: str) -> None:
        """Delete a customer and every event the tenant logged for it."""
        with session_scope(self._session_factory) as session:
            customer = self._require_customer(session, business_id, customer_id)
            removed = session.execute(
                delete(CustomerEvent).where(
                    CustomerEvent.business_id == business_id,
                    CustomerEvent.customer_id == customer_id,
                )
            ).rowcount
            session.delete(customer)
        logger.info(f"Deleted customer {customer_id} and {removed} events for business {business_id}")

    def get_customer(self, business_id: str, customer_id: str) -> CustomerView:
        with session_scope(self._session_factory) as session:
            return CustomerView.model_validate(self._require_customer(session, business_id, customer_id))

    def list_customers(self, business_id: str) -> list[CustomerView]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(Customer)
                .where(Customer.business_id == business_id)
                .order_by(Customer.full_name, Customer.id)
            ).all()
            return [CustomerView.model_validate(c) for c in rows]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def log_event(
        self,
        business_id: str,
        customer_id: str,
        severity: int,
        category: str | None = None,
        note: str | None = None,
    ) -> EventView:
        """Append an event to the tenant log and report it to the network."""
        if isinstance(severity, bool) or not isinstance(severity, int) or not 1 <= severity <= 5:
            raise InputValidationError("severity must be an integer between 1 and 5", field="severity")
        category = (category or "").strip() or None

        with session_scope(self._session_factory) as session:
            customer = self._require_customer(session, business_id, customer_id)
            event = CustomerEvent(
                customer_id=customer.id,
                business_id=business_id,
                category=category,
                note=note,
                severity=severity,
            )
            session.add(event)
            session.flush()
            view = EventView.model_validate(event)
            keys = derive_identity_keys(customer.phone, customer.email, customer.address)

        logger.info(f"Logged severity {severity} event {view.id} for customer {customer_id}")

        identity_id = self.store.resolve_or_create(keys, business_id=business_id)
        if identity_id is not None:
            self.store.record_incident(identity_id, severity, category)
        return view

    def list_events(self, business_id: str, customer_id: str) -> list[EventView]:
        with session_scope(self._session_factory) as session:
            self._require_customer(session, business_id, customer_id)
            return [EventView.model_validate(e) for e in self._events(session, business_id, customer_id)]

    @staticmethod
    def _events(session: Session, business_id: str, customer_id: str) -> list[CustomerEvent]:
        return list(session.scalars(
            select(CustomerEvent)
            .where(CustomerEvent.business_id == business_id, CustomerEvent.customer_id == customer_id)
            .order_by(CustomerEvent.created_at, CustomerEvent.id)
        ))

    # ------------------------------------------------------------------
    # Reliability
    # ------------------------------------------------------------------

    def get_reliability_profile(self, business_id: str, customer_id: str) -> ReliabilityProfile:
        with session_scope(self._session_factory) as session:
            self._require_customer(session, business_id, customer_id)
            events = [
                EventForScoring(severity=e.severity, created_at=e.created_at, category=e.category)
                for e in self._events(session, business_id, customer_id)
            ]
            all_scores = self._tenant_scores(session, business_id)

        analytics = calculate_full_analytics(events, self.config)
        return ReliabilityProfile(
            customer_id=customer_id,
            score=analytics.score,
            risk_level=analytics.risk_level,
            trend=analytics.trend,
            percentile=calculate_percentile(analytics.score, all_scores),
            label=score_label(analytics.score),
            event_count=analytics.event_count,
            breakdown=analytics.breakdown,
        )

    def _tenant_scores(self, session: Session, business_id: str) -> list[int]:
        """Score of every customer of the tenant, including those with no events."""
        by_customer: dict[str, list[EventForScoring]] = {
            customer_id: []
            for customer_id in session.scalars(select(Customer.id).where(Customer.business_id == business_id))
        }
        rows = session.execute(
            select(CustomerEvent.customer_id, CustomerEvent.severity)
            .where(CustomerEvent.business_id == business_id)
            .order_by(CustomerEvent.created_at, CustomerEvent.id)
        ).all()
        for customer_id, severity in rows:
            by_customer.setdefault(customer_id, []).append(EventForScoring(severity=severity))
        return [calculate_score(events, self.config) for events in by_customer.values()]

    # ------------------------------------------------------------------
    # Backfill
    # ------------------------------------------------------------------

    def sync_business_customers(self, business_id: str) -> int:
        """
        One-time backfill of a tenant's existing customers into the network.

        No-op once ``network_synced`` is set. Returns the number of customers
        that resolved to an identity.
        """
        with session_scope(self._session_factory) as session:
            business = self._require_business(session, business_id)
            if business.network_synced:
                logger.info(f"Business {business_id} already synced to network")
                return 0
            contacts = session.execute(
                select(Customer.phone, Customer.email, Customer.address).where(Customer.business_id == business_id)
            ).all()

        synced = 0
        for phone, email, address in contacts:
            keys = derive_identity_keys(phone, email, address)
            if self.store.resolve_or_create(keys, business_id=business_id) is not None:
                synced += 1

        with session_scope(self._session_factory) as session:
            self._require_business(session, business_id).network_synced = True

        logger.info(f"Synced {synced}/{len(contacts)} customers of business {business_id} to network")
        return synced
