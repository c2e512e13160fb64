from __future__ import annotations

import pytest
from sqlalchemy import select

from forsure.db.network_models import NetworkIdentity, PropertyCustomerLink
from forsure.exceptions import InputValidationError, NotFoundError
from forsure.models.customer import CustomerFacts
from forsure.models.network import IdentitySource, MatchType
from forsure.services.record_linkage import contains_pattern, escape_like, owner_name_pattern
from forsure.utils.hashing import derive_identity_keys


def test_address_match_in_same_city_is_definitive(linkage, add_property):
    prop_id = add_property(address_full="123 Main Street, Springfield", owner_name="DOE JANE")
    facts = CustomerFacts(full_name="Jane Doe", address="123 Main St", city="Springfield")

    candidates = linkage.find_property_matches(facts)

    assert len(candidates) == 1
    assert candidates[0].property.id == prop_id
    assert candidates[0].match_type == MatchType.ADDRESS
    assert candidates[0].confidence >= 0.95
    assert candidates[0].definitive


def test_address_match_confidence_depends_on_locality(linkage, add_property):
    add_property(address_full="10 Elm Street, Newtown", municipality="Newtown", county="Bucks")
    add_property(address_full="10 Elm Street, Oxford", municipality="Oxford", county="Chester")

    candidates = linkage.find_property_matches(
        CustomerFacts(full_name="Sam Lee", address="10 Elm St", county="bucks")
    )

    assert [c.confidence for c in candidates] == [0.9, 0.8]
    assert [c.property.municipality for c in candidates] == ["Newtown", "Oxford"]


def test_name_only_match_is_not_definitive(linkage, add_property):
    add_property(address_full="9 Oak Lane, Elsewhere", municipality="Elsewhere", owner_name="SMITH JOHN")

    candidates = linkage.find_property_matches(CustomerFacts(full_name="Smith, John"))

    assert len(candidates) == 1
    assert candidates[0].match_type == MatchType.NAME
    assert candidates[0].confidence <= 0.6
    assert not candidates[0].definitive
    assert linkage.best_property_match(CustomerFacts(full_name="Smith, John")) is None


def test_name_pass_matches_secondary_owner_and_skips_commercial(linkage, add_property):
    add_property(owner_name="JONES MARY", owner_name_secondary="SMITH JOHN", address_full="1 A St")
    add_property(owner_name="SMITH JOHN", property_class="Commercial", address_full="2 B St")

    candidates = linkage.find_property_matches(CustomerFacts(full_name="Smith, John"))

    assert [c.property.owner_name for c in candidates] == ["JONES MARY"]


def test_address_hit_skips_name_pass(linkage, add_property):
    add_property(address_full="5 PINE RD, SPRINGFIELD", owner_name="OTHER PERSON")
    add_property(address_full="77 Far Away", owner_name="SMITH JOHN")

    candidates = linkage.find_property_matches(
        CustomerFacts(full_name="Smith, John", address="5 Pine Road")
    )

    assert [c.match_type for c in candidates] == [MatchType.ADDRESS]


def test_business_names_never_match_individuals(linkage, add_property):
    add_property(owner_name="ACME HOLDINGS LLC", address_full="1 Industrial Way")

    assert linkage.find_property_matches(CustomerFacts(full_name="Acme Holdings LLC")) == []


def test_candidates_capped_and_ties_keep_scan_order(linkage, add_property):
    for i in range(7):
        add_property(id=f"p{i}", owner_name=f"SMITH JOHN {i}", address_full=f"{i} X St")

    candidates = linkage.find_property_matches(CustomerFacts(full_name="Smith, John"))

    assert [c.property.id for c in candidates] == ["p0", "p1", "p2", "p3", "p4"]


def test_owner_name_pattern():
    assert owner_name_pattern("SMITH", "JOHN") == "%SMITH%JOHN%"
    assert owner_name_pattern("SMITH") == "%SMITH%"
    assert owner_name_pattern("O_NEIL", "100%") == r"%O\_NEIL%100\%%"


def test_escape_like_doubles_the_escape_character():
    assert escape_like(r"A\B") == r"A\\B"
    assert contains_pattern("50%", "OFF_") == r"%50\%%OFF\_%"


def test_address_pass_treats_wildcards_literally(linkage, add_property):
    add_property(address_full="12 MAINXST, SPRINGFIELD", owner_name="DOE JANE")

    assert linkage.find_property_matches(CustomerFacts(full_name="Acme LLC", address="12 Main_St")) == []


def test_search_properties_rejects_short_and_business_queries(linkage):
    with pytest.raises(InputValidationError, match="at least 3"):
        linkage.search_properties("ab")
    with pytest.raises(InputValidationError, match="Business"):
        linkage.search_properties("Acme Realty")


def test_search_properties_routes_address_and_name(linkage, add_property):
    add_property(id="addr", address_full="123 Main Street, Springfield", owner_name="DOE JANE")
    add_property(id="name", address_full="8 Hill Road", owner_name="SMITH JOHN")

    by_address = linkage.search_properties("123 Main St")
    assert [(h.property.id, h.score) for h in by_address] == [("addr", 0.9)]

    by_name = linkage.search_properties("Smith John")
    assert [(h.property.id, h.match_type, h.score) for h in by_name] == [("name", MatchType.NAME, 0.8)]


def test_link_customer_to_property_upserts_and_merges_source(linkage, store, property_sync, add_property,
                                                             session_factory):
    prop_id = add_property(address_full="42 Birch Street, Springfield", owner_name="DOE JANE")
    identity_id = property_sync.create_identity_from_property(prop_id)
    assert store.get_profile(identity_id).source == IdentitySource.PROPERTY_ENRICHMENT

    linkage.link_customer_to_property(identity_id, prop_id, MatchType.NAME)
    linkage.link_customer_to_property(identity_id, prop_id, MatchType.ADDRESS)

    with session_factory() as session:
        links = session.scalars(
            select(PropertyCustomerLink).where(PropertyCustomerLink.property_record_id == prop_id)
        ).all()
        source = session.get(NetworkIdentity, identity_id).source

    assert len(links) == 1
    assert links[0].match_type == "address"
    assert links[0].match_confidence == 0.9
    assert source == IdentitySource.MERGED.value


def test_link_requires_existing_rows(linkage, store, add_property):
    prop_id = add_property(address_full="1 Main St")
    identity_id = store.resolve_or_create(derive_identity_keys(phone="5551234567"))

    with pytest.raises(NotFoundError):
        linkage.link_customer_to_property(identity_id, "nope")
    with pytest.raises(NotFoundError):
        linkage.link_customer_to_property("nope", prop_id)
