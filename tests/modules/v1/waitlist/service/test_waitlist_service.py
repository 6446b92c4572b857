import asyncio
import json
import random
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import BackgroundTasks
from redis.exceptions import ConnectionError as RedisConnectionError

from app.api.core.exceptions import (
    InvalidEmailError,
    NotFoundError,
    PersistenceError,
    RateLimitExceeded,
)
from app.api.modules.v1.waitlist.models.waitlist_entry import (
    COUNTER_KEY,
    WaitlistEntry,
    referral_index_key,
    user_key,
)
from app.api.modules.v1.waitlist.schemas.waitlist_schema import WaitlistSignupRequest
from app.api.modules.v1.waitlist.service.confirmation_token import ConfirmationTokenService
from app.api.modules.v1.waitlist.service.notifier import WaitlistNotifier
from app.api.modules.v1.waitlist.service.waitlist_service import WaitlistService
from app.api.modules.v1.waitlist.utils.referral_code import generate_referral_code

NOW = datetime(2025, 3, 1, 12, tzinfo=timezone.utc)
IP = "203.0.113.7"


@pytest.fixture
def service(kv_store, mailer):
    notifier = WaitlistNotifier(mailer=mailer, mail_enabled=True, webhook_urls=[])
    return WaitlistService(kv_store, notifier=notifier, rng=random.Random(7), clock=lambda: NOW)


async def _stored(kv_store, email):
    return WaitlistEntry.model_validate(await kv_store.get(user_key(email)))


@pytest.mark.asyncio
async def test_first_signup_on_empty_list(service, kv_store, mock_redis, mailer):
    result = await service.signup(WaitlistSignupRequest(email="ann@example.com"), IP)

    assert 1 <= result.position <= 16
    assert result.referral_code == generate_referral_code("ann@example.com")
    assert result.total_waitlist == 1
    assert result.already_exists is False
    assert result.email_sent is True
    assert result.needs_confirmation is True
    assert result.rate_limit_remaining == 4

    stored = await _stored(kv_store, "ann@example.com")
    assert stored.position == result.position
    assert stored.name == "ann"
    assert stored.source == "website"
    assert stored.signup_date == NOW
    assert stored.emails_sent == 1
    assert (await kv_store.get(COUNTER_KEY))["count"] == 1
    assert await kv_store.get(referral_index_key(result.referral_code)) == {
        "email": "ann@example.com"
    }

    audit_keys = [key for key in mock_redis.store if key.startswith("email_confirmation_")]
    assert len(audit_keys) == 1
    audit = json.loads(mock_redis.store[audit_keys[0]])
    assert audit["email"] == "ann@example.com"
    assert audit["confirmed"] is False

    token = audit_keys[0][len("email_confirmation_"):]
    assert ConfirmationTokenService().validate(token) == "ann@example.com"
    assert mailer.await_args.args[3]["confirmation_url"].endswith(token)


@pytest.mark.asyncio
async def test_repeat_signup_returns_existing_spot(service, kv_store, mailer):
    first = await service.signup(WaitlistSignupRequest(email="ann@example.com"), IP)
    mailer.reset_mock()

    again = await service.signup(WaitlistSignupRequest(email="  ANN@Example.com "), IP)

    assert again.already_exists is True
    assert again.position == first.position
    assert again.referral_code == first.referral_code
    assert again.email_sent is False
    assert again.needs_confirmation is True
    mailer.assert_not_awaited()

    stored = await _stored(kv_store, "ann@example.com")
    assert stored.activity_count == 2
    assert stored.signup_date == NOW
    assert (await kv_store.get(COUNTER_KEY))["count"] == 1


@pytest.mark.asyncio
async def test_positions_follow_queue_growth(service, kv_store):
    await kv_store.set(COUNTER_KEY, {"count": 1000})

    result = await service.signup(WaitlistSignupRequest(email="late@example.com"), IP)

    assert 1001 - 100 <= result.position <= 1001 + 200
    assert result.total_waitlist == 1001


@pytest.mark.asyncio
async def test_signup_keeps_optional_fields(service, kv_store):
    request = WaitlistSignupRequest(
        email="bob@example.com",
        name="Bob",
        source="twitter",
        utm_source="tw",
        utm_medium="social",
        utm_campaign="launch",
    )

    await service.signup(request, IP)

    stored = await _stored(kv_store, "bob@example.com")
    assert stored.name == "Bob"
    assert stored.source == "twitter"
    assert (stored.utm_source, stored.utm_medium, stored.utm_campaign) == ("tw", "social", "launch")


@pytest.mark.asyncio
async def test_referral_signup_boosts_referrer(service, kv_store):
    referrer = WaitlistEntry(email="ann@example.com", position=50)
    await kv_store.set(user_key(referrer.email), referrer.to_record())

    await service.signup(
        WaitlistSignupRequest(email="bob@example.com", referralCode=referrer.referral_code), IP
    )

    boosted = await _stored(kv_store, "ann@example.com")
    assert 40 <= boosted.position <= 47
    assert boosted.referrals == 1
    assert boosted.last_referral_date == NOW
    assert (await _stored(kv_store, "bob@example.com")).referred_by == referrer.referral_code


@pytest.mark.asyncio
async def test_dangling_referral_code_still_signs_up(service, kv_store):
    result = await service.signup(
        WaitlistSignupRequest(email="bob@example.com", referralCode="hs_nobody"), IP
    )

    assert result.already_exists is False
    assert (await _stored(kv_store, "bob@example.com")).referred_by == "hs_nobody"


@pytest.mark.asyncio
async def test_invalid_email_rejected_before_rate_limit(service, mock_redis):
    with pytest.raises(InvalidEmailError):
        await service.signup(WaitlistSignupRequest.model_construct(email="not-an-email"), IP)

    assert not any(key.startswith("ratelimit:") for key in mock_redis.store)


@pytest.mark.asyncio
async def test_sixth_signup_from_same_ip_is_limited(service):
    for i in range(5):
        await service.signup(WaitlistSignupRequest(email=f"user{i}@example.com"), IP)

    with pytest.raises(RateLimitExceeded) as exc_info:
        await service.signup(WaitlistSignupRequest(email="user5@example.com"), IP)

    assert exc_info.value.retry_after > 0


@pytest.mark.asyncio
async def test_write_failure_surfaces_as_persistence_error(service, mock_redis):
    mock_redis.set.side_effect = RedisConnectionError("down")

    with pytest.raises(PersistenceError):
        await service.signup(WaitlistSignupRequest(email="ann@example.com"), IP)


@pytest.mark.asyncio
async def test_mail_not_configured_is_reported_not_raised(kv_store, mock_redis):
    service = WaitlistService(
        kv_store, notifier=WaitlistNotifier(mail_enabled=False, webhook_urls=[]), clock=lambda: NOW
    )

    result = await service.signup(WaitlistSignupRequest(email="ann@example.com"), IP)

    assert result.email_sent is False
    assert result.email_error == "Email service not configured"
    assert result.needs_confirmation is False
    assert not any(key.startswith("email_confirmation_") for key in mock_redis.store)
    assert (await _stored(kv_store, "ann@example.com")).emails_sent == 0


@pytest.mark.asyncio
async def test_missing_token_secret_skips_confirmation_email(kv_store, mailer):
    service = WaitlistService(
        kv_store,
        notifier=WaitlistNotifier(mailer=mailer, mail_enabled=True, webhook_urls=[]),
        token_service=ConfirmationTokenService(secret=""),
    )

    result = await service.signup(WaitlistSignupRequest(email="ann@example.com"), IP)

    assert result.email_sent is False
    assert result.email_error == "Email confirmation service not available"
    mailer.assert_not_awaited()


@pytest.mark.asyncio
async def test_side_notifications_run_as_background_tasks(service):
    tasks = BackgroundTasks()
    await service.signup(WaitlistSignupRequest(email="ann@example.com"), IP, tasks)

    assert [task.func.__name__ for task in tasks.tasks] == ["send_admin_alert", "trigger_webhooks"]
    assert tasks.tasks[1].args[0] == "waitlist_joined"

    repeat_tasks = BackgroundTasks()
    await service.signup(WaitlistSignupRequest(email="ann@example.com"), IP, repeat_tasks)

    assert [task.args[0] for task in repeat_tasks.tasks] == ["waitlist_returning"]


@pytest.mark.asyncio
async def test_legacy_record_is_found_and_healed(service, kv_store, mock_redis):
    mock_redis.store["waitlist_user_Ann@Example.com"] = json.dumps(
        {"email": "Ann@Example.com", "position": "12", "legacyFlag": True}
    )

    result = await service.signup(WaitlistSignupRequest(email="ann@example.com"), IP)

    assert result.already_exists is True
    assert result.position == 12
    healed = await kv_store.get(user_key("ann@example.com"))
    assert healed["legacyFlag"] is True
    assert healed["activityCount"] == 2


@pytest.mark.asyncio
async def test_stats(service, kv_store):
    entries = [
        WaitlistEntry(email="a@x.com", confirmed=True, signupDate=NOW - timedelta(days=3)),
        WaitlistEntry(email="b@x.com", emailConfirmedAt=NOW, signupDate=NOW - timedelta(hours=2)),
        WaitlistEntry(email="c@x.com", signupDate=NOW - timedelta(hours=30)),
    ]
    for entry in entries:
        await kv_store.set(user_key(entry.email), entry.to_record())
    await kv_store.set(COUNTER_KEY, {"count": 2})

    stats = await service.stats()

    assert stats.totalUsers == 3
    assert stats.confirmedUsers == 2
    assert stats.recentSignups == 1
    assert stats.conversionRate == 67
    assert stats.lastUpdated == NOW


@pytest.mark.asyncio
async def test_stats_on_empty_list(service):
    stats = await service.stats()

    assert (stats.totalUsers, stats.confirmedUsers, stats.conversionRate) == (0, 0, 0)


@pytest.mark.asyncio
async def test_user_status(service):
    created = await service.signup(WaitlistSignupRequest(email="ann@example.com"), IP)

    status = await service.user_status(" Ann@Example.com ")

    assert status["user"]["email"] == "ann@example.com"
    assert status["user"]["referralCode"] == created.referral_code
    assert status["user"]["source"] == "website"
    assert status["waitlist"] == {"position": created.position, "total": 1, "confirmed": False}


@pytest.mark.asyncio
async def test_user_status_errors(service):
    with pytest.raises(InvalidEmailError):
        await service.user_status("")

    with pytest.raises(NotFoundError):
        await service.user_status("ghost@example.com")


@pytest.mark.asyncio
async def test_null_position_record_does_not_block_new_signups(service, mock_redis):
    mock_redis.store["waitlist_user_old@example.com"] = json.dumps(
        {"email": "old@example.com", "position": None}
    )

    result = await service.signup(WaitlistSignupRequest(email="new@example.com"), IP)
    stats = await service.stats()

    assert result.already_exists is False
    assert stats.totalUsers == 2


@pytest.mark.asyncio
async def test_repeat_signup_on_record_with_null_fields(service, kv_store, mock_redis):
    mock_redis.store["waitlist_user_old@example.com"] = json.dumps(
        {"email": "old@example.com", "position": 5, "referralCode": None, "confirmed": None}
    )

    result = await service.signup(WaitlistSignupRequest(email="old@example.com"), IP)

    assert result.already_exists is True
    assert result.position == 5
    assert result.referral_code == generate_referral_code("old@example.com")
    stored = await kv_store.get(user_key("old@example.com"))
    assert stored["referralCode"] == result.referral_code
    assert stored["confirmed"] is False
    assert (await service.user_status("old@example.com"))["user"]["position"] == 5


@pytest.mark.asyncio
async def test_unreadable_record_at_canonical_key_surfaces(service, mock_redis):
    mock_redis.store["waitlist_user_old@example.com"] = "{not json"

    with pytest.raises(PersistenceError):
        await service.signup(WaitlistSignupRequest(email="old@example.com"), IP)


@pytest.mark.asyncio
async def test_concurrent_same_email_signups_create_one_entry(service, mock_redis):
    results = await asyncio.gather(
        *(
            service.signup(WaitlistSignupRequest(email="ann@example.com"), f"10.0.0.{i}")
            for i in range(4)
        )
    )

    assert sorted(result.already_exists for result in results) == [False, True, True, True]
    assert len({result.position for result in results}) == 1
    assert len([key for key in mock_redis.store if key.startswith("waitlist_user_")]) == 1
    assert json.loads(mock_redis.store[COUNTER_KEY])["count"] == 1


@pytest.mark.asyncio
async def test_concurrent_referrals_all_credit_the_referrer(service, kv_store):
    referrer = WaitlistEntry(email="ann@example.com", position=500)
    await kv_store.set(user_key(referrer.email), referrer.to_record())

    await asyncio.gather(
        *(
            service.signup(
                WaitlistSignupRequest(
                    email=f"friend{i}@example.com", referralCode=referrer.referral_code
                ),
                f"10.0.1.{i}",
            )
            for i in range(5)
        )
    )

    boosted = await _stored(kv_store, "ann@example.com")
    assert boosted.referrals == 5
    assert 500 - 50 <= boosted.position <= 500 - 15
