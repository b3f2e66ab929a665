from datetime import datetime, timezone

from kb_bot import settings
from kb_bot.checkpoint import FiringCheckpoint
from kb_bot.scheduler import SyncScheduler
from kb_bot.sync_handler import SyncHandler


class CountingHandler:
    def __init__(self, error=None):
        self.calls = 0
        self.error = error

    def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_schedule_constants():
    assert settings.SYNC_RETRY_ATTEMPTS == 0
    assert settings.SYNC_SCHEDULE == {"minute": "0", "hour": "0", "day_of_week": "mon-fri"}


def test_fires_at_midnight_utc_on_weekdays():
    scheduler = SyncScheduler(CountingHandler())

    # 2024-01-01 is a Monday
    assert scheduler.next_fire_time(utc(2024, 1, 1, 23, 59)) == utc(2024, 1, 2)
    assert scheduler.next_fire_time(utc(2024, 1, 5, 12, 0)) == utc(2024, 1, 8)
    assert scheduler.next_fire_time(utc(2024, 1, 6, 0, 1)) == utc(2024, 1, 8)


def test_failing_handler_is_invoked_once_per_firing(tmp_path):
    handler = CountingHandler(error=RuntimeError("ingestion API down"))
    checkpoint = FiringCheckpoint(tmp_path)
    scheduler = SyncScheduler(handler, checkpoint=checkpoint)

    assert scheduler.fire() is False
    assert handler.calls == 1

    state = checkpoint.load()
    assert state["succeeded"] is False
    assert "ingestion API down" in state["error"]


def test_each_firing_invokes_handler_again(tmp_path):
    handler = CountingHandler()
    scheduler = SyncScheduler(handler, checkpoint=FiringCheckpoint(tmp_path))

    assert scheduler.fire() is True
    assert scheduler.fire() is True
    assert handler.calls == 2
    assert FiringCheckpoint(tmp_path).load()["succeeded"] is True


def test_retry_attempts_bound_invocations():
    handler = CountingHandler(error=RuntimeError("down"))
    scheduler = SyncScheduler(handler, retry_attempts=2)

    assert scheduler.fire() is False
    assert handler.calls == 3


def test_job_is_registered_without_overlap():
    scheduler = SyncScheduler(CountingHandler())
    scheduler.start()
    try:
        job = scheduler._scheduler.get_job("data-sync")
        assert job.max_instances == 1
        assert job.coalesce is True
    finally:
        scheduler.stop()


def test_sync_handler_starts_data_sync():
    class FakeKnowledgeBase:
        calls = 0

        def start_data_sync(self):
            self.calls += 1
            return ["DS1", "DS2"]

    kb = FakeKnowledgeBase()
    SyncHandler(kb)()
    assert kb.calls == 1


def test_checkpoint_without_firing_is_empty(tmp_path):
    assert FiringCheckpoint(tmp_path).load() is None
