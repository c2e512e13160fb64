"""Service wiring shared by the HTTP routers."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker

from config.scoring import DEFAULT_SCORING, ScoringConfig
from forsure.services.customer_service import CustomerService
from forsure.services.network_identity_store import NetworkIdentityStore
from forsure.services.network_search import NetworkSearchService
from forsure.services.property_sync import PropertySyncService
from forsure.services.record_linkage import RecordLinkageEngine


@dataclass
class Services:
    session_factory: sessionmaker[Session]
    store: NetworkIdentityStore
    linkage: RecordLinkageEngine
    customers: CustomerService
    search: NetworkSearchService
    property_sync: PropertySyncService


def build_services(session_factory: sessionmaker[Session], config: ScoringConfig = DEFAULT_SCORING) -> Services:
    store = NetworkIdentityStore(session_factory, config)
    linkage = RecordLinkageEngine(session_factory, config)
    return Services(
        session_factory=session_factory,
        store=store,
        linkage=linkage,
        customers=CustomerService(session_factory, store=store, linkage=linkage, config=config),
        search=NetworkSearchService(session_factory, store=store),
        property_sync=PropertySyncService(session_factory, store=store, config=config),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
