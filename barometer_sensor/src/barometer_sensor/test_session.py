import json
import logging
from typing import List

import pytest

from barometer_core.domain.models import DeviceInfo, PressureEvent, Reading
from barometer_sensor.sensor_config import BarometerConfig, ConfigHolder
from barometer_sensor.session import ACTION_AWARE_BAROMETER, BarometerSession
from barometer_sensor.utils.mocks import FAKE_DESCRIPTOR, ManualClock, RecordingSink


class ListObserver:
    def __init__(self, sink: RecordingSink):
        self.sink = sink
        self.readings: List[Reading] = []
        self.saved_before: List[int] = []

    def on_data_changed(self, data: Reading) -> None:
        self.readings.append(data)
        self.saved_before.append(len(self.sink.saved_to(Reading.TABLE_NAME)))


class ExplodingObserver:
    def on_data_changed(self, data: Reading) -> None:
        raise RuntimeError("observer bug")


def make_session(sink, clock, notifications, **config_kwargs):
    config_kwargs.setdefault("device_id", "test-device")
    holder = ConfigHolder(BarometerConfig(**config_kwargs))
    return BarometerSession(holder, sink, notifications.append, clock), holder


def feed(session, clock, count, step_ms, start_value=1000.0):
    for i in range(count):
        clock.advance(step_ms)
        session.handle_event(PressureEvent(start_value + i, 3, clock.now))


@pytest.fixture
def notifications() -> List[str]:
    return []


def test_open_persists_device_snapshot(recording_sink, clock, notifications):
    session, _ = make_session(recording_sink, clock, notifications)

    device = session.open(FAKE_DESCRIPTOR)

    saved = recording_sink.saved_to(DeviceInfo.TABLE_NAME)
    assert saved == [device]
    assert device.device_id == "test-device"
    assert device.timestamp == clock.now
    assert device.name == "Fake Barometer"
    assert json.loads(device.to_string())["vendor"] == "fake"


def test_open_survives_device_save_failure(clock, notifications, caplog):
    sink = RecordingSink(fail_saves_for=[DeviceInfo.TABLE_NAME])
    session, _ = make_session(sink, clock, notifications)

    with caplog.at_level(logging.ERROR):
        session.open(FAKE_DESCRIPTOR)

    assert "device info" in caplog.text


def test_five_hz_for_sixty_one_seconds_flushes_once(recording_sink, clock, notifications):
    session, _ = make_session(recording_sink, clock, notifications, interval=5, period=1.0)

    feed(session, clock, count=5 * 61, step_ms=200)

    batches = [records for table, records in recording_sink.saves if table == Reading.TABLE_NAME]
    assert len(batches) == 1
    assert len(batches[0]) == 300
    assert notifications == [ACTION_AWARE_BAROMETER]
    assert len(session.pipeline.buffer) == 5
    # ordered as received
    pressures = [r.pressure for r in batches[0]]
    assert pressures == sorted(pressures)


def test_zero_period_flushes_every_reading(recording_sink, clock, notifications):
    session, _ = make_session(recording_sink, clock, notifications, interval=0, period=0)

    feed(session, clock, count=4, step_ms=10)

    assert [len(records) for _, records in recording_sink.saves] == [1, 1, 1, 1]
    assert len(notifications) == 4


def test_flush_failure_drops_batch_and_keeps_processing(clock, notifications, caplog):
    sink = RecordingSink(fail_saves_for=[Reading.TABLE_NAME])
    session, _ = make_session(sink, clock, notifications, interval=0, period=0.001)

    with caplog.at_level(logging.WARNING):
        feed(session, clock, count=10, step_ms=100)

    assert notifications == []
    assert "dropping batch" in caplog.text
    assert any(r.exc_info for r in caplog.records if "dropping batch" in r.getMessage())
    # buffer was cleared anyway, only readings since the last attempt remain
    assert len(session.pipeline.buffer) == 0

    sink.fail_saves_for.clear()
    feed(session, clock, count=1, step_ms=100, start_value=2000.0)
    saved = sink.saved_to(Reading.TABLE_NAME)
    assert [r.pressure for r in saved] == [2000.0]
    assert notifications == [ACTION_AWARE_BAROMETER]


def test_observer_called_before_buffering(recording_sink, clock, notifications):
    session, holder = make_session(recording_sink, clock, notifications, interval=0, period=0)
    observer = ListObserver(recording_sink)
    holder.replace_with(
        BarometerConfig(sensor_observer=observer, interval=0, period=0, device_id="test-device")
    )

    feed(session, clock, count=3, step_ms=10)

    assert [r.pressure for r in observer.readings] == [1000.0, 1001.0, 1002.0]
    # each reading was observed before its own flush
    assert observer.saved_before == [0, 1, 2]


def test_observer_failure_does_not_stop_buffering(recording_sink, clock, notifications):
    session, _ = make_session(
        recording_sink, clock, notifications, sensor_observer=ExplodingObserver(), interval=0
    )

    feed(session, clock, count=3, step_ms=10)

    assert len(session.pipeline.buffer) == 3


def test_label_change_applies_to_future_readings(recording_sink, clock, notifications):
    session, holder = make_session(recording_sink, clock, notifications, interval=0, label="a")

    feed(session, clock, count=1, step_ms=10)
    holder.set_label("b")
    feed(session, clock, count=1, step_ms=10, start_value=1100.0)

    assert [r.label for r in session.pipeline.buffer] == ["a", "b"]


def test_sync_requests_both_tables(recording_sink, clock, notifications):
    session, _ = make_session(recording_sink, clock, notifications)

    session.sync()

    assert recording_sink.syncs == [
        (Reading.TABLE_NAME, True),
        (DeviceInfo.TABLE_NAME, False),
    ]


def test_close_discards_buffer_and_closes_sink(recording_sink, clock, notifications):
    session, _ = make_session(recording_sink, clock, notifications, interval=0)
    feed(session, clock, count=3, step_ms=10)

    session.close()

    assert session.pipeline.buffer == []
    assert recording_sink.saved_to(Reading.TABLE_NAME) == []
    assert recording_sink.closed


def test_manual_clock_starts_pipeline_windows():
    clock = ManualClock(start_ms=42)
    session, _ = make_session(RecordingSink(), clock, [])
    assert session.pipeline.flush_policy.last_flush_ts == 42
    assert session.pipeline.counter.window_start == 42
