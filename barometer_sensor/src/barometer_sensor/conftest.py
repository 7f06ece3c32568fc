from barometer_sensor.utils import clock, fake_source, recording_sink  # noqa: F401
