import pytest

from barometer_sensor.utils.mocks import FakePressureSource, ManualClock, RecordingSink


@pytest.fixture()
def fake_source():
    source = FakePressureSource()
    yield source
    source.unregister()


@pytest.fixture()
def recording_sink():
    return RecordingSink()


@pytest.fixture()
def clock():
    return ManualClock()
