from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy import select

from forsure.db.network_models import NetworkIdentity, NetworkSighting
from forsure.exceptions import InputValidationError, NotFoundError, StoreError
from forsure.models.network import IdentitySource, RiskTier, merge_sources
from forsure.services.network_identity_store import incident_weight, months_between, risk_tier_for
from forsure.utils.hashing import derive_identity_keys


@pytest.mark.parametrize(
    "severity,weight",
    [(1, 1), (2, 2), (3, 12), (4, 24), (5, 30)],
)
def test_incident_weight_is_convex(severity, weight):
    assert incident_weight(severity) == weight


@pytest.mark.parametrize(
    "score,tier",
    [
        (0, RiskTier.UNKNOWN),
        (1, RiskTier.LOW),
        (14, RiskTier.LOW),
        (15, RiskTier.MEDIUM),
        (29, RiskTier.MEDIUM),
        (30, RiskTier.HIGH),
        (49, RiskTier.HIGH),
        (50, RiskTier.CRITICAL),
        (400, RiskTier.CRITICAL),
    ],
)
def test_risk_tier_thresholds(score, tier):
    assert risk_tier_for(score) == tier


def test_merge_sources_is_total():
    for a in IdentitySource:
        for b in IdentitySource:
            merged = merge_sources(a, b)
            assert merged == (a if a == b else IdentitySource.MERGED)


def test_months_between_counts_whole_calendar_months():
    start = dt.datetime(2024, 1, 31, tzinfo=dt.UTC)
    assert months_between(start, dt.datetime(2024, 2, 29, tzinfo=dt.UTC)) == 0
    assert months_between(start, dt.datetime(2024, 3, 31, tzinfo=dt.UTC)) == 2
    assert months_between(start, dt.datetime(2025, 1, 31, tzinfo=dt.UTC)) == 12
    assert months_between(start, dt.datetime(2023, 12, 1, tzinfo=dt.UTC)) == 0


def test_resolve_returns_none_for_empty_keys(store):
    assert store.resolve_or_create(derive_identity_keys(phone="123")) is None


def test_resolve_creates_then_reuses_identity(store):
    keys = derive_identity_keys(phone="555-123-4567")

    first = store.resolve_or_create(keys, business_id="biz-a")
    second = store.resolve_or_create(derive_identity_keys(phone="(555) 1234567"), business_id="biz-a")

    assert first == second
    profile = store.get_profile(first)
    assert profile.risk_tier == RiskTier.UNKNOWN
    assert profile.weighted_score == 0
    assert profile.seen_by_business_count == 1
    assert profile.phone_last_four == "4567"
    assert profile.source == IdentitySource.NETWORK


def test_resolution_prefers_phone_over_email(store):
    by_phone = store.resolve_or_create(derive_identity_keys(phone="5551234567"))
    by_email = store.resolve_or_create(derive_identity_keys(email="x@example.com"))

    resolved = store.resolve_or_create(derive_identity_keys(phone="5551234567", email="other@example.com"))

    assert resolved == by_phone
    assert resolved != by_email
    assert store.get_profile(resolved).email_domain == "example.com"


def test_new_hash_owned_by_another_identity_triggers_merge(store, session_factory):
    by_phone = store.resolve_or_create(derive_identity_keys(phone="5551234567"), business_id="biz-a")
    by_email = store.resolve_or_create(derive_identity_keys(email="x@example.com"), business_id="biz-b")
    store.record_incident(by_email, 4, "no_show")

    resolved = store.resolve_or_create(
        derive_identity_keys(phone="5551234567", email="x@example.com"), business_id="biz-a"
    )

    assert resolved == by_phone
    profile = store.get_profile(by_phone)
    assert profile.weighted_score == 24
    assert profile.total_incidents == 1
    assert profile.seen_by_business_count == 2
    assert profile.incident_breakdown == {"no_show": 1}
    with pytest.raises(NotFoundError):
        store.get_profile(by_email)

    with session_factory() as session:
        assert session.scalar(select(NetworkIdentity.id).where(NetworkIdentity.email_hash.is_not(None))) == by_phone


def test_record_incident_updates_score_and_tier(store):
    identity_id = store.resolve_or_create(derive_identity_keys(email="a@b.com"), business_id="biz-a")

    profile = store.record_incident(identity_id, 3, "late_payment")
    assert profile.weighted_score == 12
    assert profile.risk_tier == RiskTier.LOW
    assert profile.total_incidents == 1
    assert profile.last_incident_at is not None
    assert profile.clean_streak_months == 0

    profile = store.record_incident(identity_id, 1)
    assert profile.weighted_score == 11
    assert profile.total_positive_events == 1
    assert profile.total_incidents == 1


def test_positive_events_never_push_score_below_zero(store):
    identity_id = store.resolve_or_create(derive_identity_keys(email="a@b.com"))

    profile = store.record_incident(identity_id, 2)

    assert profile.weighted_score == 0
    assert profile.risk_tier == RiskTier.UNKNOWN


def test_record_incident_validates_severity(store):
    identity_id = store.resolve_or_create(derive_identity_keys(email="a@b.com"))

    with pytest.raises(InputValidationError, match="severity"):
        store.record_incident(identity_id, 6)
    with pytest.raises(NotFoundError):
        store.record_incident("missing", 3)


def test_incident_breakdown_omits_zero_counts(store, session_factory):
    identity_id = store.resolve_or_create(derive_identity_keys(email="a@b.com"))
    store.record_incident(identity_id, 4, "no_show")
    store.record_incident(identity_id, 5, "no_show")
    store.record_incident(identity_id, 3, "damage")
    store.record_incident(identity_id, 4)

    assert store.incident_breakdown(identity_id) == {"damage": 1, "no_show": 2}


def test_two_tenants_report_same_person(store):
    """Weighted 24 after the first report (medium), 54 after the second (critical)."""
    phone = "555-987-6543"

    a_id = store.resolve_or_create(derive_identity_keys(phone=phone), business_id="tenant-a")
    profile = store.record_incident(a_id, 4, "no_show")
    assert profile.weighted_score == 24
    assert profile.risk_tier == RiskTier.MEDIUM
    assert profile.seen_by_business_count == 1

    b_id = store.resolve_or_create(derive_identity_keys(phone="5559876543"), business_id="tenant-b")
    assert b_id == a_id
    profile = store.record_incident(b_id, 5, "damage")

    assert profile.weighted_score == 54
    assert profile.risk_tier == RiskTier.CRITICAL
    assert profile.seen_by_business_count == 2
    assert profile.total_incidents == 2


def test_sightings_store_hashed_tenant_keys(store, session_factory):
    identity_id = store.resolve_or_create(derive_identity_keys(phone="5551234567"), business_id="tenant-a")
    store.resolve_or_create(derive_identity_keys(phone="5551234567"), business_id="tenant-a")

    with session_factory() as session:
        keys = session.scalars(
            select(NetworkSighting.business_key).where(NetworkSighting.identity_id == identity_id)
        ).all()

    assert len(keys) == 1
    assert keys[0] != "tenant-a"


def test_merge_identities_combines_aggregates(store):
    keep = store.resolve_or_create(derive_identity_keys(phone="5551234567"), business_id="a")
    absorb = store.resolve_or_create(derive_identity_keys(email="z@example.com"), business_id="b")
    store.record_incident(keep, 3, "late_payment")
    store.record_incident(absorb, 3, "late_payment")
    store.record_incident(absorb, 1)

    assert store.merge_identities(keep, absorb) == keep

    profile = store.get_profile(keep)
    assert profile.weighted_score == 12 + 11
    assert profile.total_incidents == 2
    assert profile.total_positive_events == 1
    assert profile.seen_by_business_count == 2
    assert profile.incident_breakdown == {"late_payment": 2}
    assert profile.email_domain == "example.com"
    assert profile.risk_tier == RiskTier.MEDIUM
    assert store.find_by_hash("email", derive_identity_keys(email="z@example.com").email_hash).id == keep


def test_merge_identities_rejects_unknown_ids(store):
    keep = store.resolve_or_create(derive_identity_keys(phone="5551234567"))

    with pytest.raises(NotFoundError):
        store.merge_identities(keep, "missing")
    assert store.merge_identities(keep, keep) == keep


def test_find_by_hash(store):
    keys = derive_identity_keys(email="a@b.com")
    identity_id = store.resolve_or_create(keys)

    assert store.find_by_hash("email", keys.email_hash).id == identity_id
    assert store.find_by_hash("phone", keys.email_hash) is None
    with pytest.raises(InputValidationError):
        store.find_by_hash("ssn", "abc")


def test_refresh_clean_streaks_is_idempotent(store, session_factory):
    identity_id = store.resolve_or_create(derive_identity_keys(phone="5551234567"))
    store.record_incident(identity_id, 4)
    with session_factory() as session:
        identity = session.get(NetworkIdentity, identity_id)
        identity.last_incident_at = dt.datetime(2024, 1, 15, tzinfo=dt.UTC)
        session.commit()

    now = dt.datetime(2025, 2, 20, tzinfo=dt.UTC)
    assert store.refresh_clean_streaks(now) == 1
    assert store.refresh_clean_streaks(now) == 0

    profile = store.get_profile(identity_id)
    assert profile.clean_streak_months == 13
    assert profile.has_clean_badge


def test_retries_once_on_concurrent_insert(store, monkeypatch):
    from sqlalchemy.exc import IntegrityError

    calls = {"n": 0}
    original = store.resolve_or_create_in

    def flaky(session, keys, business_id=None, source=IdentitySource.NETWORK):
        calls["n"] += 1
        if calls["n"] == 1:
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))
        return original(session, keys, business_id, source)

    monkeypatch.setattr(store, "resolve_or_create_in", flaky)

    assert store.resolve_or_create(derive_identity_keys(phone="5551234567")) is not None
    assert calls["n"] == 2


def test_persistent_store_failure_propagates(store, monkeypatch):
    from sqlalchemy.exc import OperationalError

    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(store, "resolve_or_create_in", broken)

    with pytest.raises(StoreError):
        store.resolve_or_create(derive_identity_keys(phone="5551234567"))
