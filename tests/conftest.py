"""Shared fixtures and fakes for the monitor tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
import requests

from errors import ActuationFailure
from poller import HvacState, Reading
from store import RedisSampleStore, SqliteSampleStore

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_reading(
    ambient: float,
    state: HvacState = HvacState.COOLING,
    device_id: str = "dev-1",
    minutes: int = 0,
) -> Reading:
    """Build a deterministic reading `minutes` after BASE_TIME."""
    return Reading(
        device_id=device_id,
        ambient=ambient,
        heat_setpoint=18.0,
        cool_setpoint=24.0,
        hvac_state=state,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
    )


def window(ambients_oldest_first, state: HvacState = HvacState.COOLING) -> list[Reading]:
    """Newest-first window, as the store returns it."""
    readings = [make_reading(a, state, minutes=i * 5) for i, a in enumerate(ambients_oldest_first)]
    return list(reversed(readings))


class RecordingNotifier:
    """Stands in for NotificationManager and records every call."""

    def __init__(self):
        self.calls: list[tuple] = []

    def notify(self, device_id, message, severity=None):
        self.calls.append((device_id, message, severity))
        return True

    def notify_error(self, error):
        return self.notify("N/A", error)


class FakeActuator:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.disabled: list[str] = []

    def disable_heating_cooling(self, device_id):
        self.disabled.append(device_id)
        if self.fail:
            raise ActuationFailure(device_id, "turn-off request returned status 500", status_code=500)


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data=None):
        self.status_code = status_code
        self._json = json_data

    def json(self):
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Replays queued responses (or raises queued exceptions) per HTTP method."""

    def __init__(self, post=None, get=None):
        self._queues = {"post": list(post or []), "get": list(get or [])}
        self.requests: list[tuple] = []

    def _next(self, method, url, kwargs):
        self.requests.append((method, url, kwargs))
        item = self._queues[method].pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, **kwargs):
        return self._next("post", url, kwargs)

    def get(self, url, **kwargs):
        return self._next("get", url, kwargs)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def actuator() -> FakeActuator:
    return FakeActuator()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer())


@pytest.fixture
def redis_store(redis_client) -> RedisSampleStore:
    return RedisSampleStore(client=redis_client, namespace="nest")


@pytest.fixture
def sqlite_store(tmp_path) -> SqliteSampleStore:
    return SqliteSampleStore(db_path=tmp_path / "history.db")


@pytest.fixture(params=["redis", "sqlite"])
def store(request, redis_store, sqlite_store):
    return redis_store if request.param == "redis" else sqlite_store
