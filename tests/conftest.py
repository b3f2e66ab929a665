import json

import pytest

from kb_bot.queue.spool_queue import SpoolQueue


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def spool(tmp_path, clock):
    return SpoolQueue(tmp_path / "spool", visibility_timeout=600, dedup_window=300, clock=clock)


def mention_body(channel="C123ABC456", event_id="Ev0001", text="<@U0LAN0Z89> how do I deploy?", **extra):
    payload = {
        "token": "verification-token",
        "api_app_id": "A0001",
        "type": "event_callback",
        "event_id": event_id,
        "event_time": 1515449522,
        "event": {
            "type": "app_mention",
            "user": "U061F7AUR",
            "text": text,
            "ts": "1515449522.000016",
            "channel": channel,
            "event_ts": "1515449522.000016",
        },
    }
    payload.update(extra)
    return json.dumps(payload).encode("utf-8")
