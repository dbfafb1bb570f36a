import asyncio

import pytest

from tutorguard.infrastructure.rate_limiting import InMemoryCounterStore

NOW = 1_700_000_000.0


@pytest.mark.asyncio
async def test_increment_creates_and_counts(memory_store):
    first = await memory_store.increment("api:1.2.3.4", 60, NOW, cap=6)
    second = await memory_store.increment("api:1.2.3.4", 60, NOW + 10, cap=6)

    assert first.count == 1
    assert second.count == 2
    assert second.window_start == NOW
    assert second.reset_at == NOW + 60


@pytest.mark.asyncio
async def test_increment_returns_a_snapshot(memory_store):
    record = await memory_store.increment("api:1.2.3.4", 60, NOW, cap=6)
    record.count = 100

    assert (await memory_store.get("api:1.2.3.4", NOW)).count == 1


@pytest.mark.asyncio
async def test_count_is_capped(memory_store):
    for _ in range(10):
        record = await memory_store.increment("contact:1.2.3.4", 900, NOW, cap=4)

    assert record.count == 4


@pytest.mark.asyncio
async def test_expired_window_starts_fresh(memory_store):
    await memory_store.increment("api:1.2.3.4", 60, NOW, cap=6)
    await memory_store.increment("api:1.2.3.4", 60, NOW, cap=6)

    record = await memory_store.increment("api:1.2.3.4", 60, NOW + 60, cap=6)

    assert record.count == 1
    assert record.window_start == NOW + 60


@pytest.mark.asyncio
async def test_get_ignores_missing_and_expired(memory_store):
    assert await memory_store.get("api:1.2.3.4", NOW) is None

    await memory_store.increment("api:1.2.3.4", 60, NOW, cap=6)

    assert (await memory_store.get("api:1.2.3.4", NOW + 59)).count == 1
    assert await memory_store.get("api:1.2.3.4", NOW + 60) is None


@pytest.mark.asyncio
async def test_reset(memory_store):
    await memory_store.increment("api:1.2.3.4", 60, NOW, cap=6)

    assert await memory_store.reset("api:1.2.3.4") is True
    assert await memory_store.reset("api:1.2.3.4") is False
    assert memory_store.size == 0


@pytest.mark.asyncio
async def test_cleanup_expired(memory_store):
    await memory_store.increment("api:a", 60, NOW, cap=6)
    await memory_store.increment("api:b", 60, NOW + 30, cap=6)
    await memory_store.increment("contact:a", 900, NOW, cap=4)

    assert memory_store.cleanup_expired(NOW + 60) == 1
    assert memory_store.size == 2
    assert memory_store.cleanup_expired(NOW + 900) == 2
    assert memory_store.size == 0


@pytest.mark.asyncio
async def test_health_check():
    store = InMemoryCounterStore()
    await store.increment("api:a", 60, NOW, cap=6)

    health = await store.health_check()

    assert health == {"status": "healthy", "backend": "memory", "durable": False, "size": 1}
    assert store.is_durable is False


@pytest.mark.asyncio
async def test_concurrent_increments_never_share_a_value(memory_store):
    records = await asyncio.gather(
        *(memory_store.increment("api:1.2.3.4", 60, NOW, cap=1000) for _ in range(100))
    )

    assert sorted(r.count for r in records) == list(range(1, 101))


def test_clear(memory_store):
    asyncio.run(memory_store.increment("api:a", 60, NOW, cap=6))

    memory_store.clear()

    assert memory_store.size == 0


@pytest.mark.asyncio
async def test_increment_sweeps_records_of_clients_that_never_return(memory_store):
    for n in range(5000):
        await memory_store.increment(f"api:10.0.{n // 256}.{n % 256}", 60, NOW, cap=6)
    assert memory_store.size == 5000

    await memory_store.increment("api:198.51.100.1", 60, NOW + 3600, cap=6)

    assert memory_store.size == 1


@pytest.mark.asyncio
async def test_sweep_waits_for_the_interval():
    store = InMemoryCounterStore(sweep_interval=300)
    await store.increment("api:a", 60, NOW, cap=6)
    await store.increment("api:b", 60, NOW + 120, cap=6)

    # "api:a" has expired, but no sweep is due yet.
    assert store.size == 2

    await store.increment("api:c", 60, NOW + 300, cap=6)

    assert store.size == 1
    assert await store.get("api:c", NOW + 300) is not None


@pytest.mark.asyncio
async def test_sweep_keeps_live_windows(memory_store):
    await memory_store.increment("contact:a", 900, NOW, cap=4)
    await memory_store.increment("api:b", 60, NOW, cap=6)

    record = await memory_store.increment("api:c", 60, NOW + 120, cap=6)

    assert record.count == 1
    assert memory_store.size == 2
    assert (await memory_store.get("contact:a", NOW + 120)).count == 1
