import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Ensure project root on sys.path so 'filedrop' resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from filedrop.main import app  # type: ignore
from filedrop.config import AUTH_SETTINGS  # type: ignore
from filedrop.jobs import JobQueue, MemoryListStore  # type: ignore
from filedrop.services import JobService  # type: ignore


@pytest.fixture()
def store():
    return MemoryListStore()


@pytest.fixture()
def job_queue(store):
    queue = JobQueue(store)
    yield queue
    queue.purge()


@pytest.fixture()
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture()
def job_service(job_queue, upload_dir):
    return JobService(job_queue, upload_dir, delete_after_download=False)


@pytest.fixture()
def make_job(job_service):
    """Place a file at its stored name and enqueue it, the way an upload does."""
    def _create(original_name: str = "a.txt", content: bytes = b"0123456789"):
        created_at, target = job_service.allocate_stored_path(original_name)
        target.write_bytes(content)
        return job_service.register_stored_file(original_name, target, created_at)
    return _create


@pytest.fixture()
def client(job_service):
    """TestClient with the service wired onto app.state.

    The production app builds the service in lifespan. Tests bypass lifespan
    (no context manager) so no watcher, sweeper or redis connection is started.
    """
    app.state.job_service = job_service  # type: ignore[attr-defined]
    app.state.started_at = 0.0  # type: ignore[attr-defined]
    app.state.intake_watcher = None  # type: ignore[attr-defined]
    yield TestClient(app)
    app.state.job_service = None  # type: ignore[attr-defined]


@pytest.fixture()
def api_key(monkeypatch):
    """Enable shared-key auth for one test and return the key."""
    key = "test-key-123456"
    monkeypatch.setitem(AUTH_SETTINGS, "enabled", True)
    monkeypatch.setitem(AUTH_SETTINGS, "api_key", key)
    return key


@pytest.fixture
def mock_redis():
    """Mock redis client backed by plain dicts and lists."""
    with patch('redis.from_url') as mock_redis_client:
        mock_client = MagicMock()
        mock_client.ping.return_value = True

        lists: dict[str, list[str]] = {}
        hashes: dict[str, dict[str, str]] = {}

        def mock_rpush(key, value):
            lists.setdefault(key, []).append(value)
            return len(lists[key])

        def mock_lrange(key, start, end):
            items = lists.get(key, [])
            n = len(items)
            if start < 0:
                start = max(n + start, 0)
            if end < 0:
                end = n + end
            return list(items[start:end + 1])

        def mock_llen(key):
            return len(lists.get(key, []))

        def mock_lrem(key, count, value):
            items = lists.get(key, [])
            if value in items:
                items.remove(value)
                return 1
            return 0

        def mock_hset(key, field, value):
            hashes.setdefault(key, {})[field] = value
            return 1

        def mock_hget(key, field):
            return hashes.get(key, {}).get(field)

        def mock_hdel(key, field):
            return 1 if hashes.get(key, {}).pop(field, None) is not None else 0

        def mock_delete(*keys):
            for key in keys:
                lists.pop(key, None)
                hashes.pop(key, None)
            return len(keys)

        def mock_register_script(script):
            # Mirrors the move script: LREM one, RPUSH only if removed
            def run(keys, args):
                removed = mock_lrem(keys[0], 1, args[0])
                if removed:
                    mock_rpush(keys[1], args[1])
                return removed
            return run

        mock_client.rpush.side_effect = mock_rpush
        mock_client.lrange.side_effect = mock_lrange
        mock_client.llen.side_effect = mock_llen
        mock_client.lrem.side_effect = mock_lrem
        mock_client.hset.side_effect = mock_hset
        mock_client.hget.side_effect = mock_hget
        mock_client.hdel.side_effect = mock_hdel
        mock_client.delete.side_effect = mock_delete
        mock_client.register_script.side_effect = mock_register_script
        mock_client.lists = lists
        mock_client.hashes = hashes

        mock_redis_client.return_value = mock_client
        yield mock_client


# ---------- Sync client fakes ----------

class FakeProducer:
    """In-process stand-in for ProducerClient.

    ``download_plan`` is consumed one entry per download attempt: an exception
    instance is raised, "short" writes a truncated body, anything else (or an
    empty plan) writes the full payload.
    """

    def __init__(self, base_address="http://producer.test", *, client_id="test-client", credential=None, name=None):
        self.base_address = base_address
        self.client_id = client_id
        self.credential = credential
        self.name = name or base_address
        self.jobs = []
        self.payloads = {}
        self.download_plan = []
        self.list_error = None
        self.complete_error = None
        self.healthy = True
        self.completed = []
        self.download_attempts = 0
        self.visits = None
        self.closed = False

    def add_job(self, original_name: str, content: bytes):
        from filedrop.models.job import JobRecord
        job = JobRecord.new(original_name, len(content))
        self.jobs.append(job)
        self.payloads[job.id] = content
        return job

    async def health(self):
        return self.healthy

    async def list_pending(self, limit):
        if self.visits is not None:
            self.visits.append(self.name)
        if self.list_error is not None:
            raise self.list_error
        return list(self.jobs[:limit]), len(self.jobs)

    async def download(self, job, dest):
        self.download_attempts += 1
        step = self.download_plan.pop(0) if self.download_plan else None
        if isinstance(step, Exception):
            raise step
        content = self.payloads[job.id]
        if step == "short":
            content = content[:-1]
        dest.write_bytes(content)
        return len(content)

    async def complete(self, job_id):
        if self.complete_error is not None:
            raise self.complete_error
        self.completed.append(job_id)
        self.jobs = [j for j in self.jobs if j.id != job_id]
        return {"success": True}

    async def close(self):
        self.closed = True


class FakeSyncClock:
    """Clock for the scheduler: records sleeps, never blocks."""

    def __init__(self, on_sleep=None):
        from filedrop.utils.time import utc_now
        self._now = utc_now()
        self.sleeps = []
        self.on_sleep = on_sleep

    def now(self):
        return self._now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))


@pytest.fixture
def client_config(tmp_path):
    """Build a ClientConfig rooted in tmp_path from server dicts."""
    from filedrop.models.endpoint import ClientConfig

    def _build(*servers):
        return ClientConfig.model_validate({
            "downloadPath": str(tmp_path / "downloads"),
            "servers": list(servers),
        })
    return _build


@pytest.fixture
def fake_registry(client_config):
    """EndpointRegistry whose endpoints talk to FakeProducer instances."""
    from filedrop.sync.registry import EndpointRegistry

    def _build(*servers):
        return EndpointRegistry(client_config(*servers), client_id="test-client", client_factory=FakeProducer)
    return _build


@pytest.fixture
def sync_clock():
    return FakeSyncClock()
