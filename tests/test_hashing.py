import hashlib

import pytest

from forsure.utils.hashing import business_key, derive_identity_keys, hash_value, partial_address


def test_hash_value_is_sha256_hex():
    expected = hashlib.sha256(b"5551234567").hexdigest()
    assert hash_value("5551234567") == expected
    assert len(hash_value("x")) == 64


def test_equivalent_raw_values_share_keys():
    a = derive_identity_keys(phone="(555) 123-4567", email="John@Example.com", address="123 Main Street")
    b = derive_identity_keys(phone="555.123.4567", email=" john@example.com ", address="123 main st.")

    assert a.phone_hash == b.phone_hash
    assert a.email_hash == b.email_hash
    assert a.address_hash == b.address_hash


def test_fragments_are_lossy():
    keys = derive_identity_keys(
        phone="555-123-4567", email="jane@gmail.com", address="123 Main St, Springfield, PA"
    )

    assert keys.phone_last_four == "4567"
    assert keys.email_domain == "gmail.com"
    assert keys.address_partial == "Main St, Springfield, PA"
    assert "555" not in keys.phone_last_four
    assert "jane" not in keys.email_domain


def test_unusable_facts_are_omitted():
    keys = derive_identity_keys(phone="555-1234", email="not-an-email", address="1 A")

    assert keys.phone_hash is None
    assert keys.email_hash is None
    assert keys.address_hash is None
    assert keys.is_empty
    assert keys.lookup_order() == []


def test_lookup_order_is_phone_email_address():
    keys = derive_identity_keys(phone="5551234567", email="a@b.com", address="123 Main St")

    assert [kind for kind, _ in keys.lookup_order()] == ["phone", "email", "address"]

    address_only = derive_identity_keys(address="123 Main St")
    assert [kind for kind, _ in address_only.lookup_order()] == ["address"]


def test_partial_address_without_house_number():
    assert partial_address("Main St") == "Main St"
    assert partial_address("12B Main St") == "12B Main St"


def test_business_key_is_stable_and_opaque():
    assert business_key("biz-1") == business_key("biz-1")
    assert business_key("biz-1") != business_key("biz-2")
    assert "biz-1" not in business_key("biz-1")


@pytest.mark.parametrize(
    "a,b",
    [
        ("5551234567", "5551234568"),
        ("jane@example.com", "jane@example.co"),
        ("123 main st", "124 main st"),
    ],
)
def test_one_character_difference_changes_the_hash(a, b):
    assert hash_value(a) != hash_value(b)
