import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from reattachd.exceptions import ExpiredCredential, InvalidCredential
from reattachd.services.device_trust import (
    NEVER_EXPIRES,
    DeviceTrustService,
    SetupTokenValidation,
    parse_duration,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("10m", timedelta(minutes=10)),
        ("1h", timedelta(hours=1)),
        ("7d", timedelta(days=7)),
        ("never", None),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "10", "10s", "xm", "m", "-5m", "9999999999d"])
def test_parse_duration_rejects(value):
    with pytest.raises(ValueError):
        parse_duration(value)


@pytest.mark.asyncio
async def test_new_setup_token_replaces_previous(trust):
    first = await trust.generate_setup_token(reusable=True, ttl=timedelta(hours=1))
    second = await trust.generate_setup_token(reusable=False, ttl=timedelta(minutes=5))

    assert first != second
    assert await trust.validate_setup_token(first) is SetupTokenValidation.INVALID
    assert await trust.validate_setup_token(second) is SetupTokenValidation.VALID

    current = await trust.current_setup_token()
    assert current.reusable is False
    assert current.expires_at - current.created_at == timedelta(minutes=5)


@pytest.mark.asyncio
async def test_never_expiring_token_is_finite(trust):
    await trust.generate_setup_token(ttl=None)
    current = await trust.current_setup_token()
    assert current.expires_at - current.created_at == NEVER_EXPIRES


@pytest.mark.asyncio
async def test_oversized_ttl_is_capped(trust):
    setup_token = await trust.issue_setup_token(ttl=timedelta(days=3_000_000))

    assert setup_token.expires_at - setup_token.created_at == NEVER_EXPIRES
    assert await trust.current_setup_token() == setup_token


@pytest.mark.asyncio
async def test_validate_without_setup_token(trust):
    assert await trust.validate_setup_token("anything") is SetupTokenValidation.INVALID


@pytest.mark.asyncio
async def test_single_use_token_is_consumed(trust):
    t1 = await trust.generate_setup_token(reusable=False, ttl=timedelta(minutes=10))

    device = await trust.register_device(t1, "phone-A")
    assert device.name == "phone-A"
    assert device.token != t1
    assert device.last_seen_at is None
    assert await trust.current_setup_token() is None

    with pytest.raises(InvalidCredential):
        await trust.register_device(t1, "phone-B")
    assert [d.name for d in await trust.list_devices()] == ["phone-A"]


@pytest.mark.asyncio
async def test_concurrent_exchanges_of_single_use_token(trust):
    token = await trust.generate_setup_token()

    results = await asyncio.gather(
        *(trust.register_device(token, f"phone-{i}") for i in range(5)),
        return_exceptions=True,
    )

    registered = [r for r in results if not isinstance(r, Exception)]
    assert len(registered) == 1
    assert all(isinstance(r, InvalidCredential) for r in results if isinstance(r, Exception))
    assert len(await trust.list_devices()) == 1


@pytest.mark.asyncio
async def test_registration_issues_fresh_credential(trust):
    token = await trust.generate_setup_token()
    before = {d.token for d in await trust.list_devices()}

    device = await trust.register_device(token, "phone")

    assert device.token not in before
    assert device.token in {d.token for d in await trust.list_devices()}
    assert len(device.token) >= 43


@pytest.mark.asyncio
async def test_expired_token_leaves_store_unchanged(trust):
    token = await trust.generate_setup_token(ttl=timedelta(0))

    assert await trust.validate_setup_token(token) is SetupTokenValidation.EXPIRED
    with pytest.raises(ExpiredCredential):
        await trust.register_device(token, "late phone")
    assert await trust.list_devices() == []
    assert await trust.current_setup_token() is not None


@pytest.mark.asyncio
async def test_reusable_token_survives_exchanges(trust):
    token = await trust.generate_setup_token(reusable=True, ttl=timedelta(minutes=10))

    first = await trust.register_device(token, "phone")
    second = await trust.register_device(token, "tablet")

    assert first.token != second.token
    assert first.id != second.id
    assert (await trust.current_setup_token()).token == token


@pytest.mark.asyncio
async def test_setup_token_from_other_process_is_seen(data_dir):
    daemon = DeviceTrustService.from_data_dir(data_dir)
    cli = DeviceTrustService.from_data_dir(data_dir)

    token = await cli.generate_setup_token()

    assert await daemon.validate_setup_token(token) is SetupTokenValidation.VALID
    device = await daemon.register_device(token, "phone")
    assert await daemon.validate_device_token(device.token) == device


@pytest.mark.asyncio
async def test_validate_device_token(trust):
    device = await trust.register_device(await trust.generate_setup_token(), "phone")

    assert await trust.validate_device_token(device.token) == device
    assert await trust.validate_device_token("bogus") is None
    assert (await trust.list_devices())[0].last_seen_at is None


@pytest.mark.asyncio
async def test_update_last_seen(trust):
    device = await trust.register_device(await trust.generate_setup_token(), "phone")

    await trust.update_last_seen(device.id)
    await trust.update_last_seen("unknown-id")

    seen = (await trust.list_devices())[0].last_seen_at
    assert seen is not None
    assert datetime.now(timezone.utc) - seen < timedelta(minutes=1)


@pytest.mark.asyncio
async def test_revoke_device(trust, data_dir):
    device = await trust.register_device(await trust.generate_setup_token(), "phone")
    assert await trust.has_devices()

    assert await trust.revoke_device("unknown-id") is False
    assert await trust.revoke_device(device.id) is True
    assert not await trust.has_devices()
    assert await trust.validate_device_token(device.token) is None

    reloaded = DeviceTrustService.from_data_dir(data_dir)
    assert not await reloaded.has_devices()


@pytest.mark.asyncio
async def test_state_survives_restart(trust, data_dir):
    device = await trust.register_device(await trust.generate_setup_token(reusable=True), "phone")
    await trust.update_last_seen(device.id)

    reloaded = DeviceTrustService.from_data_dir(data_dir)

    assert await reloaded.list_devices() == await trust.list_devices()
    assert await reloaded.current_setup_token() == await trust.current_setup_token()


@pytest.mark.asyncio
async def test_persist_failure_keeps_memory_state(trust, monkeypatch):
    def fail(value):
        raise OSError("disk full")

    monkeypatch.setattr(trust._store, "persist", fail)

    token = await trust.generate_setup_token()
    device = await trust.register_device(token, "phone")

    assert await trust.validate_device_token(device.token) == device


@pytest.mark.asyncio
async def test_corrupt_file_starts_empty(data_dir):
    data_dir.mkdir(parents=True)
    (data_dir / "auth.json").write_text("garbage")

    trust = DeviceTrustService.from_data_dir(data_dir)

    assert not await trust.has_devices()
    token = await trust.generate_setup_token()
    assert await trust.validate_setup_token(token) is SetupTokenValidation.VALID
