import os
import time

from filedrop.services import RetentionSweeper


DAY = 24 * 60 * 60


def _age(path, seconds):
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


def test_sweep_deletes_only_aged_files(upload_dir):
    old = upload_dir / "1___old.txt"
    fresh = upload_dir / "2___fresh.txt"
    old.write_text("old")
    fresh.write_text("fresh")
    _age(old, 8 * DAY)
    _age(fresh, 1 * DAY)

    result = RetentionSweeper(upload_dir, keep_days=7, interval_hours=0).sweep()

    assert result.deleted == 1
    assert result.failed == 0
    assert not old.exists()
    assert fresh.exists()


def test_sweep_ignores_queue_state(make_job, upload_dir, job_queue):
    job = make_job("pending.txt")
    _age(upload_dir / job.stored_name, 30 * DAY)

    RetentionSweeper(upload_dir, keep_days=7, interval_hours=0).sweep()

    assert not (upload_dir / job.stored_name).exists()
    # The job itself stays pending; a later download self-heals it
    assert job_queue.depth() == 1


def test_sweep_skips_directories(upload_dir):
    nested = upload_dir / "nested"
    nested.mkdir()
    _age(nested, 30 * DAY)

    result = RetentionSweeper(upload_dir, keep_days=1, interval_hours=0).sweep()
    assert result.scanned == 1
    assert result.deleted == 0
    assert nested.exists()


def test_sweep_of_missing_directory_is_harmless(tmp_path):
    result = RetentionSweeper(tmp_path / "missing", keep_days=1, interval_hours=0).sweep()
    assert result.scanned == 0


def test_zero_interval_disables_schedule(upload_dir):
    sweeper = RetentionSweeper(upload_dir, keep_days=1, interval_hours=0)
    sweeper.start()
    assert sweeper._thread is None
    sweeper.stop()


def test_positive_interval_sweeps_on_start(upload_dir):
    old = upload_dir / "stale.txt"
    old.write_text("x")
    _age(old, 3 * DAY)

    sweeper = RetentionSweeper(upload_dir, keep_days=1, interval_hours=24)
    sweeper.start()
    deadline = time.time() + 5
    while old.exists() and time.time() < deadline:
        time.sleep(0.05)
    sweeper.stop()
    assert not old.exists()
