import pytest

from forsure.exceptions import InputValidationError
from forsure.services.network_search import SearchKind
from forsure.utils.hashing import derive_identity_keys


def test_unsupported_kind_and_short_queries_are_rejected(network_search):
    with pytest.raises(InputValidationError, match="Unsupported"):
        network_search.search_network("ssn", "123-45-6789")
    with pytest.raises(InputValidationError, match="at least 3"):
        network_search.search_network(SearchKind.ADDRESS, " 1 ")


def test_phone_and_email_search_by_exact_key(network_search, store):
    store.resolve_or_create(derive_identity_keys(email="jane@example.com"), business_id="biz")

    profile = network_search.search_network("email", " JANE@Example.com")

    assert profile is not None
    assert profile.email_domain == "example.com"
    assert network_search.search_network("email", "someone@example.com") is None
    with pytest.raises(InputValidationError, match="phone"):
        network_search.search_network("phone", "12")


def test_address_search_falls_back_to_number_and_street(network_search, add_property):
    add_property(id="north", address_full="12 NORTH MAIN ST, SPRINGFIELD", address_street="12 NORTH MAIN ST")
    add_property(id="oak", address_full="400 OAK AVE, SPRINGFIELD", address_street="400 OAK AVE")

    assert [p.id for p in network_search.search_network("address", "12 main st")] == ["north"]
    assert [p.id for p in network_search.search_network("address", "7 oak ave")] == ["oak"]
    assert network_search.search_network("address", "99 nowhere blvd") == []


def test_owner_search_tries_surname_when_order_differs(network_search, add_property):
    add_property(id="smith", owner_name="SMITH JOHN", address_full="1 A St")

    hits = network_search.search_network("name", "John Smith")

    assert [p.id for p in hits] == ["smith"]
    assert hits[0].owner_display == "Smith John"


@pytest.mark.parametrize("query", ["smith_john", "DOE%"])
def test_wildcards_in_queries_match_literally(network_search, add_property, query):
    add_property(owner_name="SMITHXJOHN", address_full="1 A St")
    add_property(owner_name="DOE JANE", address_full="2 B St")

    assert network_search.search_network("name", query) == []
