from __future__ import annotations

import pytest
from sqlalchemy import func, select

from forsure.db.network_models import NetworkIdentity, PropertyCustomerLink
from forsure.exceptions import InputValidationError, NotFoundError
from forsure.models.network import IdentitySource
from forsure.models.property import SyncResult
from forsure.utils.hashing import derive_identity_keys


def _count(session_factory, model) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model))


def test_create_identity_from_property_is_idempotent(property_sync, store, add_property, session_factory):
    prop_id = add_property(address_full="12 Cedar Court, Springfield", owner_name="DOE JOHN")

    first = property_sync.create_identity_from_property(prop_id)
    second = property_sync.create_identity_from_property(prop_id)

    assert first == second
    profile = store.get_profile(first)
    assert profile.source == IdentitySource.PROPERTY_ENRICHMENT
    assert profile.seen_by_business_count == 0
    assert profile.address_partial == "Cedar Court, Springfield"
    assert _count(session_factory, NetworkIdentity) == 1
    assert _count(session_factory, PropertyCustomerLink) == 1


def test_property_identity_reuses_existing_address_identity(property_sync, store, add_property, session_factory):
    existing = store.resolve_or_create(derive_identity_keys(address="12 Cedar Ct, Springfield"), business_id="biz")
    prop_id = add_property(address_full="12 Cedar Court, Springfield", owner_name="DOE JOHN")

    assert property_sync.create_identity_from_property(prop_id) == existing

    with session_factory() as session:
        link = session.scalars(select(PropertyCustomerLink)).one()
    assert link.match_type == "address"
    assert link.match_confidence == 0.95


def test_create_identity_rejects_commercial_and_business_owned(property_sync, add_property):
    commercial = add_property(address_full="1 Mall Road", owner_name="DOE JOHN", property_class="Commercial")
    llc = add_property(address_full="2 Mall Road", owner_name="MALL HOLDINGS LLC")

    with pytest.raises(InputValidationError, match="residential"):
        property_sync.create_identity_from_property(commercial)
    with pytest.raises(InputValidationError, match="Business-owned"):
        property_sync.create_identity_from_property(llc)
    with pytest.raises(NotFoundError):
        property_sync.create_identity_from_property("missing")


def test_batch_sync_counts_created_and_skipped(property_sync, add_property, session_factory):
    add_property(address_full="1 Oak St, Springfield", owner_name="DOE JOHN")
    add_property(address_full="2 Oak St, Springfield", owner_name="ROE JANE")
    add_property(address_full="3 Oak St, Springfield", owner_name="OAK TRUST")
    add_property(address_full="4 Oak St, Springfield", owner_name="POE ED", property_class="Commercial")
    add_property(address_full=None, owner_name="NOAD DAN")

    result = property_sync.batch_sync_properties()

    assert result == SyncResult(created=2, skipped=2)
    assert _count(session_factory, NetworkIdentity) == 2

    rerun = property_sync.batch_sync_properties()
    assert rerun == SyncResult(created=0, skipped=2)
    assert _count(session_factory, NetworkIdentity) == 2


def test_batch_sync_filters_and_limits(property_sync, add_property):
    add_property(address_full="1 Oak St", owner_name="DOE JOHN", county="Bucks", municipality="Newtown")
    add_property(address_full="2 Oak St", owner_name="ROE JANE", county="Chester", municipality="Oxford")
    add_property(address_full="3 Oak St", owner_name="LOE JIM", county="Bucks", municipality="Yardley")

    assert property_sync.batch_sync_properties(county="Chester").created == 1
    assert property_sync.batch_sync_properties(municipality="Newtown").created == 1
    assert property_sync.batch_sync_properties(limit=1) == SyncResult(created=1, skipped=0)


def test_repeated_small_batches_reach_every_property(property_sync, add_property, session_factory):
    for i, owner in enumerate(["DOE JOHN", "ROE JANE", "LOE JIM", "POE ED"]):
        add_property(id=f"p{i}", address_full=f"{i + 1} Birch St, Springfield", owner_name=owner)

    assert property_sync.batch_sync_properties(limit=2) == SyncResult(created=2, skipped=0)
    assert property_sync.batch_sync_properties(limit=2) == SyncResult(created=2, skipped=0)
    assert property_sync.batch_sync_properties(limit=2) == SyncResult(created=0, skipped=0)

    with session_factory() as session:
        linked = set(session.scalars(select(PropertyCustomerLink.property_record_id)))
    assert linked == {"p0", "p1", "p2", "p3"}


def test_business_owned_rows_do_not_use_up_the_limit(property_sync, add_property):
    for i in range(3):
        add_property(id=f"a{i}", address_full=f"{i + 1} Mill Rd", owner_name=f"MILL {i} LLC")
    add_property(id="b0", address_full="9 Mill Rd", owner_name="DOE JOHN")

    result = property_sync.batch_sync_properties(limit=2)

    assert result == SyncResult(created=1, skipped=3)
