import pytest

from barometer_core.domain.models import PressureEvent
from barometer_sensor.pipeline import (
    FlushPolicy,
    IntervalRateCounter,
    RateLimiter,
    SamplingPipeline,
    ThresholdFilter,
)
from barometer_sensor.sensor_config import BarometerConfig

START = 1_000_000


def make_config(**kwargs) -> BarometerConfig:
    kwargs.setdefault("device_id", "test-device")
    return BarometerConfig(**kwargs)


def event(value: float, ts: int = 0) -> PressureEvent:
    return PressureEvent(value=value, accuracy=3, hardware_timestamp=ts)


# RateLimiter


def test_rate_limiter_accepts_first_sample():
    limiter = RateLimiter()
    assert limiter.accept(START, 5)
    assert limiter.last_accepted_ts == START


def test_rate_limiter_uses_ten_percent_grace():
    limiter = RateLimiter()
    limiter.accept(START, 5)
    # nominal period 200ms, grace 180ms
    assert not limiter.accept(START + 179, 5)
    assert limiter.accept(START + 180, 5)


def test_rate_limiter_rejection_keeps_previous_timestamp():
    limiter = RateLimiter()
    limiter.accept(START, 5)
    limiter.accept(START + 100, 5)
    assert limiter.last_accepted_ts == START


@pytest.mark.parametrize("interval_hz", [0, -1])
def test_rate_limiter_unbounded_when_interval_not_positive(interval_hz):
    limiter = RateLimiter()
    assert all(limiter.accept(START, interval_hz) for _ in range(10))


@pytest.mark.parametrize("interval_hz", [1, 5, 20, 50])
@pytest.mark.parametrize("step_ms", [1, 7, 33, 150])
def test_accepted_readings_respect_minimum_gap(interval_hz, step_ms):
    pipeline = SamplingPipeline(START)
    config = make_config(interval=interval_hz)

    accepted = []
    for i in range(2000):
        now = START + i * step_ms
        reading = pipeline.process(event(1000.0 + i, ts=now), now, config)
        if reading is not None:
            accepted.append(reading)

    assert len(accepted) > 1
    for prev, cur in zip(accepted, accepted[1:]):
        assert cur.event_timestamp - prev.event_timestamp >= 0.9 * (1000 / interval_hz)


# ThresholdFilter


def test_threshold_zero_is_noop():
    f = ThresholdFilter()
    assert all(f.accept(1013.0, 0.0) for _ in range(5))


def test_threshold_drops_small_changes():
    f = ThresholdFilter()
    assert f.accept(1013.0, 0.5)
    assert not f.accept(1013.4, 0.5)
    assert f.last_value == 1013.0
    assert f.accept(1013.5, 0.5)
    assert f.last_value == 1013.5


def test_threshold_zero_accepts_every_rate_accepted_sample():
    pipeline = SamplingPipeline(START)
    config = make_config(interval=0, threshold=0.0)

    results = [pipeline.process(event(1013.0), START + i, config) for i in range(50)]
    assert all(r is not None for r in results)


def test_threshold_run_within_band_yields_only_first():
    pipeline = SamplingPipeline(START)
    config = make_config(interval=5, threshold=1.0)

    values = [1013.0, 1013.3, 1012.5, 1013.9, 1012.1, 1013.0]
    results = [
        pipeline.process(event(v), START + i * 200, config) for i, v in enumerate(values)
    ]

    accepted = [r for r in results if r is not None]
    assert len(accepted) == 1
    assert accepted[0].pressure == 1013.0


def test_rate_limited_sample_does_not_touch_threshold_state():
    pipeline = SamplingPipeline(START)
    config = make_config(interval=5, threshold=1.0)

    pipeline.process(event(1000.0), START, config)
    # arrives too early, never reaches the threshold filter
    assert pipeline.process(event(1005.0), START + 10, config) is None
    assert pipeline.threshold_filter.last_value == 1000.0


# IntervalRateCounter


def test_interval_counter_publishes_after_one_second():
    counter = IntervalRateCounter(START)
    for i in range(1, 6):
        counter.tick(START + i * 100)
    assert counter.current_interval == 0

    counter.tick(START + 1000)
    assert counter.current_interval == 5
    assert counter.window_count == 0
    assert counter.window_start == START + 1000


def test_interval_counter_counts_raw_callbacks():
    pipeline = SamplingPipeline(START)
    config = make_config(interval=1)

    # 20 callbacks in the first second, only one passes the rate limiter
    for i in range(20):
        pipeline.process(event(1013.0 + i), START + i * 50, config)
    pipeline.process(event(1020.0), START + 1000, config)

    assert pipeline.current_interval == 20


# FlushPolicy and buffer


def test_flush_policy_due_after_period():
    policy = FlushPolicy(START)
    assert not policy.due(START + 59_999, 1.0)
    assert policy.due(START + 60_000, 1.0)


def test_flush_policy_zero_period_always_due():
    policy = FlushPolicy(START)
    assert policy.due(START, 0.0)


def test_take_batch_swaps_buffer_and_resets_timestamp():
    pipeline = SamplingPipeline(START)
    config = make_config(interval=0)
    for i in range(3):
        pipeline.append(pipeline.process(event(1000.0 + i), START + i, config))

    assert pipeline.take_batch_if_due(START + 10, 1.0) is None

    batch = pipeline.take_batch_if_due(START + 60_000, 1.0)
    assert [r.pressure for r in batch] == [1000.0, 1001.0, 1002.0]
    assert pipeline.buffer == []
    assert pipeline.flush_policy.last_flush_ts == START + 60_000

    # next flush needs another full period
    pipeline.append(pipeline.process(event(1003.0), START + 60_001, config))
    assert pipeline.take_batch_if_due(START + 119_999, 1.0) is None
    assert len(pipeline.take_batch_if_due(START + 120_000, 1.0)) == 1


def test_reading_fields_come_from_event_and_config():
    pipeline = SamplingPipeline(START)
    config = make_config(label="walking", device_id="dev-1")

    reading = pipeline.process(PressureEvent(1009.5, 2, 123456789), START + 5, config)

    assert reading.timestamp == START + 5
    assert reading.event_timestamp == 123456789
    assert reading.device_id == "dev-1"
    assert reading.pressure == 1009.5
    assert reading.accuracy == 2
    assert reading.label == "walking"


def test_discard_empties_buffer():
    pipeline = SamplingPipeline(START)
    config = make_config(interval=0)
    pipeline.append(pipeline.process(event(1000.0), START, config))
    assert pipeline.discard() == 1
    assert pipeline.buffer == []
