import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.api.core.exceptions import PersistenceError
from app.api.modules.v1.waitlist.models.waitlist_entry import WaitlistEntry, user_key
from app.api.modules.v1.waitlist.service.duplicate_resolver import DuplicateResolver, parse_entry
from app.api.modules.v1.waitlist.utils.referral_code import generate_referral_code


@pytest.mark.asyncio
async def test_finds_entry_by_canonical_key(kv_store):
    await kv_store.set(user_key("a@x.com"), WaitlistEntry(email="a@x.com", position=4).to_record())

    entry = await DuplicateResolver(kv_store).find("  A@X.com ")

    assert entry is not None
    assert entry.position == 4


@pytest.mark.asyncio
async def test_miss_returns_none(kv_store):
    assert await DuplicateResolver(kv_store).find("nobody@x.com") is None


@pytest.mark.asyncio
async def test_fallback_scan_self_heals_legacy_key(kv_store, mock_redis):
    mock_redis.store["waitlist_user_A@X.com "] = json.dumps(
        {"email": "A@X.com ", "position": 9, "referralCode": "hs_legacy"}
    )

    entry = await DuplicateResolver(kv_store).find("a@x.com")

    assert entry is not None
    assert entry.position == 9
    healed = json.loads(mock_redis.store["waitlist_user_a@x.com"])
    assert healed["email"] == "a@x.com"
    assert healed["referralCode"] == "hs_legacy"


@pytest.mark.asyncio
async def test_fallback_skips_records_without_usable_email(kv_store, mock_redis):
    mock_redis.store["waitlist_user_number"] = json.dumps({"email": 42, "position": 3})
    mock_redis.store["waitlist_user_list"] = json.dumps([1, 2, 3])

    assert await DuplicateResolver(kv_store).find("42") is None


@pytest.mark.asyncio
async def test_fallback_resets_unreadable_fields(kv_store, mock_redis):
    mock_redis.store["waitlist_user_junk"] = json.dumps({"email": "junk@x.com", "position": "n/a"})

    entry = await DuplicateResolver(kv_store).find("junk@x.com")

    assert entry.position == 1
    assert json.loads(mock_redis.store["waitlist_user_junk@x.com"])["position"] == 1


@pytest.mark.asyncio
async def test_canonical_record_with_null_fields_is_found(kv_store, mock_redis):
    mock_redis.store["waitlist_user_old@x.com"] = json.dumps(
        {"email": "old@x.com", "position": 5, "referralCode": None, "confirmed": None}
    )

    entry = await DuplicateResolver(kv_store).find("old@x.com")

    assert entry.position == 5
    assert entry.referral_code == generate_referral_code("old@x.com")
    assert entry.confirmed is False


@pytest.mark.asyncio
async def test_canonical_record_with_broken_email_is_repaired(kv_store, mock_redis):
    mock_redis.store["waitlist_user_old@x.com"] = json.dumps({"email": None, "position": 8})

    entry = await DuplicateResolver(kv_store).find("old@x.com")

    assert entry.email == "old@x.com"
    assert entry.position == 8
    assert json.loads(mock_redis.store["waitlist_user_old@x.com"])["email"] == "old@x.com"


@pytest.mark.asyncio
async def test_self_heal_write_failure_surfaces(kv_store, mock_redis):
    mock_redis.store["waitlist_user_legacy"] = json.dumps({"email": "a@x.com", "position": 2})
    mock_redis.set.side_effect = RedisConnectionError("down")

    with pytest.raises(PersistenceError):
        await DuplicateResolver(kv_store).find("a@x.com")


@pytest.mark.asyncio
async def test_read_failures_degrade_to_not_found(kv_store, mock_redis):
    mock_redis.get.side_effect = RedisConnectionError("down")
    mock_redis.scan.side_effect = RedisConnectionError("down")

    assert await DuplicateResolver(kv_store).find("a@x.com") is None


def test_parse_entry_rejects_non_records():
    assert parse_entry(None) is None
    assert parse_entry("text") is None
    assert parse_entry({"name": "no email"}) is None
    assert parse_entry({"email": "a@x.com"}).email == "a@x.com"
