from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from forsure.db.engine import get_session_factory, init_schema
from forsure.db.property_models import PropertyRecord
from forsure.services.customer_service import CustomerService
from forsure.services.network_identity_store import NetworkIdentityStore
from forsure.services.network_search import NetworkSearchService
from forsure.services.property_sync import PropertySyncService
from forsure.services.record_linkage import RecordLinkageEngine


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_schema(engine)
    yield get_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> NetworkIdentityStore:
    return NetworkIdentityStore(session_factory)


@pytest.fixture
def linkage(session_factory) -> RecordLinkageEngine:
    return RecordLinkageEngine(session_factory)


@pytest.fixture
def customers(session_factory, store, linkage) -> CustomerService:
    return CustomerService(session_factory, store=store, linkage=linkage)


@pytest.fixture
def property_sync(session_factory, store) -> PropertySyncService:
    return PropertySyncService(session_factory, store=store)


@pytest.fixture
def network_search(session_factory, store) -> NetworkSearchService:
    return NetworkSearchService(session_factory, store=store)


@pytest.fixture
def add_property(session_factory):
    """Insert a property record and return its id."""

    def _add(**fields: Any) -> str:
        defaults = {
            "county": "Bucks",
            "municipality": "Springfield",
            "property_class": "Residential",
        }
        defaults.update(fields)
        with session_factory() as session:
            prop = PropertyRecord(**defaults)
            session.add(prop)
            session.commit()
            return prop.id

    return _add
