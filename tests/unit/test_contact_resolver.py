import pytest

from app.features.mail_sync.services.contact_resolver import ContactResolver, normalize_candidates


def test_normalize_candidates_drops_owner_blanks_and_duplicates():
    result = normalize_candidates(
        [" Bob@X.com ", None, "owner@example.com", "bob@x.com", "", "carol@y.com"],
        exclude="OWNER@example.com",
    )

    assert result == ["bob@x.com", "carol@y.com"]


@pytest.mark.asyncio
async def test_case_insensitive_exact_match(fake_contacts, contact_factory):
    fake_contacts.contacts = [
        contact_factory("c-1", "a@x.com"),
        contact_factory("c-2", "someone@else.com"),
    ]
    resolver = ContactResolver(contacts=fake_contacts, owner_address="owner@example.com")

    assert await resolver.resolve(["A@X.com"]) == "c-1"


@pytest.mark.asyncio
async def test_no_candidates_returns_none_without_querying(fake_contacts):
    resolver = ContactResolver(contacts=fake_contacts, owner_address="owner@example.com")

    assert await resolver.resolve([]) is None
    assert await resolver.resolve(["owner@example.com"]) is None


@pytest.mark.asyncio
async def test_substring_overlap_does_not_match(fake_contacts, contact_factory):
    fake_contacts.contacts = [contact_factory("c-1", "jimbob@x.com")]
    resolver = ContactResolver(contacts=fake_contacts, owner_address="owner@example.com")

    assert await resolver.resolve(["bob@x.com"]) is None


@pytest.mark.asyncio
async def test_multi_address_field_matches_by_token(fake_contacts, contact_factory):
    fake_contacts.contacts = [contact_factory("c-1", "Studio <info@studio.com>; bob@studio.com")]
    resolver = ContactResolver(contacts=fake_contacts, owner_address="owner@example.com")

    assert await resolver.resolve(["bob@studio.com"]) == "c-1"


@pytest.mark.asyncio
async def test_exact_tier_beats_token_tier(fake_contacts, contact_factory):
    fake_contacts.contacts = [
        contact_factory("older-shared", "team@x.com, bob@x.com"),
        contact_factory("newer-exact", "bob@x.com"),
    ]
    resolver = ContactResolver(contacts=fake_contacts, owner_address="owner@example.com")

    assert await resolver.resolve(["bob@x.com"]) == "newer-exact"


@pytest.mark.asyncio
async def test_candidate_order_then_oldest_contact(fake_contacts, contact_factory):
    fake_contacts.contacts = [
        contact_factory("first", "carol@y.com"),
        contact_factory("second", "bob@x.com"),
        contact_factory("third", "bob@x.com"),
    ]
    resolver = ContactResolver(contacts=fake_contacts, owner_address="owner@example.com")

    assert await resolver.resolve(["bob@x.com", "carol@y.com"]) == "second"
