"""Tests for startup checks and the single-run entry point."""

from __future__ import annotations

from datetime import datetime, timezone

import fakeredis
import pytest

from conftest import FakeActuator, FakeResponse, FakeSession, make_reading
from detector import Trend, TrendClassifier
from dispatcher import ReactionDispatcher
from errors import UpstreamFatal
from main import MonitorContext, NestMonitor, test_configuration as check_configuration
from poller import DevicePoll, HvacState, NestPoller
from store import RedisSampleStore


class FakePoller(FakeActuator):
    def __init__(self, batches=None, token_error=None, poll_error=None, configured=True, rejected=None):
        super().__init__()
        self.batches = list(batches or [])
        self.token_error = token_error
        self.poll_error = poll_error
        self.is_configured = configured
        self.rejected = rejected or {}

    def get_access_token(self):
        if self.token_error:
            raise self.token_error
        return "tok"

    def poll(self):
        if self.poll_error:
            raise self.poll_error
        return DevicePoll(
            timestamp=datetime.now(timezone.utc),
            readings=self.batches.pop(0),
            rejected=self.rejected,
        )


def _context(poller, notifier, store=None) -> MonitorContext:
    return MonitorContext(
        poller=poller,
        store=store or RedisSampleStore(client=fakeredis.FakeRedis(server=fakeredis.FakeServer())),
        notifier=notifier,
        classifier=TrendClassifier(),
        dispatcher=ReactionDispatcher(notifier, poller),
    )


def test_three_runs_detect_heating_failure_and_disable(notifier) -> None:
    batches = [[make_reading(a, HvacState.HEATING, minutes=i)] for i, a in enumerate([70.0, 68.0, 65.0])]
    poller = FakePoller(batches=batches)
    monitor = NestMonitor(_context(poller, notifier))

    assert [monitor.run_once() for _ in range(3)] == [0, 0, 0]

    assert monitor.last_report.outcomes[0].verdict.trend is Trend.HEATING_FALLING
    assert poller.disabled == ["dev-1"]


def test_unreachable_store_notifies_and_exits_nonzero(notifier) -> None:
    server = fakeredis.FakeServer()
    server.connected = False
    store = RedisSampleStore(client=fakeredis.FakeRedis(server=server))
    poller = FakePoller(batches=[[make_reading(20.0)]])

    assert NestMonitor(_context(poller, notifier, store)).run_once() == 1
    assert notifier.calls[0][1] == "Failed to connect to store"


def test_token_failure_notifies_and_exits_nonzero(notifier) -> None:
    poller = FakePoller(token_error=UpstreamFatal("Token error after 3 attempts: 401"))

    assert NestMonitor(_context(poller, notifier)).run_once() == 1
    assert notifier.calls == [("N/A", "Token error after 3 attempts: 401", None)]


def test_no_devices_notifies_and_exits_nonzero(notifier) -> None:
    poller = FakePoller(poll_error=UpstreamFatal("No devices found"))

    assert NestMonitor(_context(poller, notifier)).run_once() == 1
    assert notifier.calls[0][1] == "No devices found"


def test_missing_credentials_is_fatal(notifier) -> None:
    poller = FakePoller(configured=False)

    assert NestMonitor(_context(poller, notifier)).run_once() == 1
    assert "credentials" in notifier.calls[0][1]


def test_rejected_devices_are_notified_but_run_succeeds(notifier) -> None:
    poller = FakePoller(batches=[[make_reading(20.0)]], rejected={"XYZ": "no ambient temperature reported"})

    assert NestMonitor(_context(poller, notifier)).run_once() == 0
    assert notifier.calls[0][0] == "XYZ"


def test_configuration_check_reports_success(notifier, capsys) -> None:
    poller = FakePoller(batches=[[make_reading(20.0)]])

    assert check_configuration(_context(poller, notifier))
    assert "Configuration test complete" in capsys.readouterr().out


def test_bad_device_payload_is_notified_and_healthy_device_processed(notifier) -> None:
    devices = [
        {
            "name": "enterprises/proj/devices/BAD",
            "traits": {
                "sdm.devices.traits.Temperature": {"ambientTemperatureCelsius": 20.0},
                "sdm.devices.traits.ThermostatHvac": "HEATING",
            },
        },
        {
            "name": "enterprises/proj/devices/OK",
            "traits": {
                "sdm.devices.traits.Temperature": {"ambientTemperatureCelsius": 21.0},
                "sdm.devices.traits.ThermostatHvac": {"status": 1},
            },
        },
    ]
    session = FakeSession(
        post=[FakeResponse(200, {"access_token": "tok"})],
        get=[FakeResponse(200, {"devices": devices})],
    )
    poller = NestPoller(client_id="c", client_secret="s", refresh_token="r", project_id="proj", session=session)
    store = RedisSampleStore(client=fakeredis.FakeRedis(server=fakeredis.FakeServer()))

    assert NestMonitor(_context(poller, notifier, store)).run_once() == 0

    assert [r.ambient for r in store.recent("OK")] == [21.0]
    assert store.recent("BAD") == []
    assert notifier.calls[0][0] == "BAD"


def test_unopenable_store_at_startup_notifies_and_exits_nonzero(tmp_path, monkeypatch, notifier) -> None:
    import config
    import main

    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    monkeypatch.setattr(config, "DATABASE_PATH", blocker / "history.db")
    monkeypatch.setattr(main, "NotificationManager", lambda: notifier)

    assert main.main(["--backend", "sqlite"]) == 1
    assert len(notifier.calls) == 1
    assert "Could not open history database" in notifier.calls[0][1]


def test_unknown_backend_is_a_config_failure(notifier) -> None:
    with pytest.raises(UpstreamFatal, match="Unknown store backend"):
        MonitorContext.build(backend="memcached", notifier=notifier)
