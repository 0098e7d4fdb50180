import pytest

from filedrop.config import SYNC_SETTINGS
from filedrop.errors import EndpointUnreachable
from filedrop.models.endpoint import EndpointConfig
from filedrop.sync.scheduler import SchedulerState, SyncScheduler, next_wait


def _endpoint(poll_ms: int) -> EndpointConfig:
    return EndpointConfig.model_validate({"url": "http://x", "pollInterval": poll_ms})


def test_next_wait_fast_repoll_after_activity():
    assert next_wait(3, [_endpoint(30000)]) == SYNC_SETTINGS["active_wait_seconds"]


def test_next_wait_uses_smallest_poll_interval():
    assert next_wait(0, [_endpoint(30000), _endpoint(10000), _endpoint(60000)]) == 10.0


def test_next_wait_without_endpoints():
    assert next_wait(0, []) == SYNC_SETTINGS["default_wait_seconds"]
    assert next_wait(5, []) == SYNC_SETTINGS["default_wait_seconds"]


@pytest.mark.asyncio
async def test_cycle_visits_endpoints_by_priority(fake_registry, sync_clock):
    registry = fake_registry(
        {"name": "p3", "url": "http://3", "priority": 3},
        {"name": "p1", "url": "http://1", "priority": 1},
        {"name": "p2", "url": "http://2", "priority": 2},
    )
    visits = []
    for entry in registry.endpoints:
        entry.client.visits = visits
    registry.endpoints[1].client.add_job("low.txt", b"1")

    scheduler = SyncScheduler(registry, clock=sync_clock, inter_endpoint_delay=1.0)
    found = await scheduler.run_cycle()

    assert visits == ["p3", "p2", "p1"]
    assert found == 1
    # One pause between each pair of endpoints, none after the last
    assert sync_clock.sleeps == [1.0, 1.0]
    assert registry.endpoints[1].client.completed


@pytest.mark.asyncio
async def test_poll_downloads_batch_sequentially(fake_registry, sync_clock):
    registry = fake_registry({"name": "only", "url": "http://o"})
    producer = registry.endpoints[0].client
    for i in range(7):
        producer.add_job(f"{i}.txt", b"data")

    scheduler = SyncScheduler(registry, clock=sync_clock, batch_size=5)
    result = await scheduler.poll_endpoint(registry.endpoints[0])

    assert result.success is True
    assert result.jobs_found == 5
    assert result.jobs_processed == 5
    assert len(producer.jobs) == 2
    assert registry.endpoints[0].state.last_sync_at == sync_clock.now()


@pytest.mark.asyncio
async def test_failed_poll_tracks_consecutive_errors(fake_registry, sync_clock):
    registry = fake_registry({"name": "down", "url": "http://d"})
    entry = registry.endpoints[0]
    entry.client.list_error = EndpointUnreachable("connection refused")
    scheduler = SyncScheduler(registry, clock=sync_clock)

    for _ in range(2):
        result = await scheduler.poll_endpoint(entry)
        assert result.success is False
        assert result.error == "ENDPOINT_UNREACHABLE"
    assert entry.state.consecutive_errors == 2
    # Tracked only; the endpoint stays active
    assert entry.active is True

    entry.client.list_error = None
    result = await scheduler.poll_endpoint(entry)
    assert result.success is True
    assert entry.state.consecutive_errors == 0


@pytest.mark.asyncio
async def test_unhealthy_endpoint_is_not_disabled(fake_registry, sync_clock):
    registry = fake_registry({"name": "sick", "url": "http://s"})
    registry.endpoints[0].client.healthy = False
    scheduler = SyncScheduler(registry, clock=sync_clock)

    assert await scheduler.probe_health() == {"sick": False}
    assert [e.name for e in registry.active_endpoints()] == ["sick"]


@pytest.mark.asyncio
async def test_run_loop_waits_then_stops(fake_registry, sync_clock):
    registry = fake_registry(
        {"name": "a", "url": "http://a", "pollInterval": 20000},
        {"name": "b", "url": "http://b", "pollInterval": 45000},
    )
    registry.endpoints[0].client.add_job("burst.txt", b"x")

    scheduler = None

    def stop_after_second_wait(count):
        # sleeps: 1s gap, 5s active wait, 1s gap, 20s idle wait
        if count >= 4:
            scheduler.stop()

    clock = sync_clock
    clock.on_sleep = stop_after_second_wait
    scheduler = SyncScheduler(registry, clock=clock, inter_endpoint_delay=1.0)
    await scheduler.run()

    assert clock.sleeps == [1.0, SYNC_SETTINGS["active_wait_seconds"], 1.0, 20.0]
    assert scheduler.cycles == 2
    assert scheduler.state == SchedulerState.IDLE
    assert all(entry.client.closed for entry in registry.endpoints)


@pytest.mark.asyncio
async def test_stop_is_checked_between_endpoints(fake_registry, sync_clock):
    registry = fake_registry(
        {"name": "first", "url": "http://1", "priority": 2},
        {"name": "second", "url": "http://2", "priority": 1},
    )
    visits = []
    for entry in registry.endpoints:
        entry.client.visits = visits
    scheduler = SyncScheduler(registry, clock=sync_clock)
    sync_clock.on_sleep = lambda count: scheduler.stop()

    await scheduler.run_cycle()
    assert visits == ["first"]


@pytest.mark.asyncio
async def test_loop_error_triggers_cooldown(fake_registry, sync_clock, monkeypatch):
    registry = fake_registry({"name": "a", "url": "http://a"})
    scheduler = None

    def stop_now(count):
        scheduler.stop()

    clock = sync_clock
    clock.on_sleep = stop_now
    scheduler = SyncScheduler(registry, clock=clock, error_cooldown=30.0)

    async def broken_cycle():
        raise RuntimeError("boom")

    monkeypatch.setattr(scheduler, "run_cycle", broken_cycle)
    await scheduler.run()
    assert clock.sleeps == [30.0]


def test_stats_aggregate_endpoints(fake_registry, sync_clock):
    registry = fake_registry({"name": "a", "url": "http://a"}, {"name": "b", "url": "http://b"})
    registry.endpoints[0].state.record_transfer(1024)
    registry.endpoints[0].state.record_job_failure()
    registry.endpoints[1].state.record_transfer(2048)
    registry.endpoints[1].state.record_transfer(1024)

    stats = SyncScheduler(registry, clock=sync_clock).stats()
    assert stats["total_bytes"] == 4096
    assert stats["total_files"] == 3
    assert stats["total_errors"] == 1
    assert stats["error_rate_pct"] == 25
    assert stats["endpoints"]["a"]["error_rate_pct"] == 50


@pytest.mark.asyncio
async def test_unexpected_poll_error_stays_with_its_endpoint(fake_registry, sync_clock):
    registry = fake_registry(
        {"name": "bad", "url": "http://bad", "priority": 5},
        {"name": "good", "url": "http://good", "priority": 1},
    )
    visits = []
    for entry in registry.endpoints:
        entry.client.visits = visits
    bad, good = registry.endpoints
    bad.client.list_error = TypeError("'NoneType' object is not iterable")
    good.client.add_job("ok.txt", b"ok")

    scheduler = SyncScheduler(registry, clock=sync_clock)
    found = await scheduler.run_cycle()

    assert visits == ["bad", "good"]
    assert found == 1
    assert bad.state.consecutive_errors == 1
    assert good.client.completed

    result = await scheduler.poll_endpoint(bad)
    assert result.success is False
    assert result.error == "other"


@pytest.mark.asyncio
async def test_crashed_transfer_does_not_skip_the_rest_of_the_batch(fake_registry, sync_clock, monkeypatch):
    registry = fake_registry({"name": "only", "url": "http://o"})
    entry = registry.endpoints[0]
    first = entry.client.add_job("first.txt", b"1")
    entry.client.add_job("second.txt", b"2")
    scheduler = SyncScheduler(registry, clock=sync_clock)

    real_download = scheduler.executor.download_job

    async def flaky_download(endpoint, job):
        if job.id == first.id:
            raise ValueError("unexpected reply")
        return await real_download(endpoint, job)

    monkeypatch.setattr(scheduler.executor, "download_job", flaky_download)
    result = await scheduler.poll_endpoint(entry)

    assert result.success is True
    assert result.jobs_found == 2
    assert result.jobs_processed == 1
    assert entry.state.error_count == 1
    assert [j.original_name for j in entry.client.jobs] == ["first.txt"]
