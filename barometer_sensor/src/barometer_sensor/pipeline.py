"""
Sampling pipeline for raw pressure callbacks.

Every hardware callback goes through, in order:

1. IntervalRateCounter - counts raw callbacks per second (diagnostic only)
2. RateLimiter         - drops samples arriving faster than the configured rate
3. ThresholdFilter     - drops samples that barely changed
4. buffer + FlushPolicy - accumulates readings, hands them out once per period

All classes here are single-threaded and take the current time in
milliseconds, so they can be driven with synthetic clocks.
"""

import logging
from typing import List, Optional

from barometer_core.domain.models import PressureEvent, Reading
from barometer_sensor.sensor_config import BarometerConfig

logger = logging.getLogger(__name__)

# Accept samples down to 90% of the nominal period to tolerate driver jitter.
RATE_GRACE_MS = 900.0
WINDOW_MS = 1000
MINUTE_MS = 60000


class RateLimiter:
    def __init__(self) -> None:
        self.last_accepted_ts: Optional[int] = None

    def accept(self, now_ms: int, interval_hz: int) -> bool:
        if (
            interval_hz > 0
            and self.last_accepted_ts is not None
            and now_ms - self.last_accepted_ts < RATE_GRACE_MS / interval_hz
        ):
            return False
        self.last_accepted_ts = now_ms
        return True


class ThresholdFilter:
    def __init__(self) -> None:
        self.last_value: Optional[float] = None

    def accept(self, value: float, threshold: float) -> bool:
        if (
            threshold > 0
            and self.last_value is not None
            and abs(value - self.last_value) < threshold
        ):
            return False
        self.last_value = value
        return True


class IntervalRateCounter:
    """Raw callbacks seen per one-second window."""

    def __init__(self, start_ms: int) -> None:
        self.window_start = start_ms
        self.window_count = 0
        self.current_interval = 0

    def tick(self, now_ms: int) -> None:
        if now_ms - self.window_start >= WINDOW_MS:
            self.current_interval = self.window_count
            self.window_count = 0
            self.window_start = now_ms
        else:
            self.window_count += 1


class FlushPolicy:
    def __init__(self, start_ms: int) -> None:
        self.last_flush_ts = start_ms

    def due(self, now_ms: int, period_min: float) -> bool:
        return now_ms - self.last_flush_ts >= period_min * MINUTE_MS

    def mark_flushed(self, now_ms: int) -> None:
        self.last_flush_ts = now_ms


class SamplingPipeline:
    """Filter state and reading buffer for one session."""

    def __init__(self, start_ms: int) -> None:
        self.counter = IntervalRateCounter(start_ms)
        self.rate_limiter = RateLimiter()
        self.threshold_filter = ThresholdFilter()
        self.flush_policy = FlushPolicy(start_ms)
        self.buffer: List[Reading] = []

    @property
    def current_interval(self) -> int:
        return self.counter.current_interval

    def process(
        self, event: PressureEvent, now_ms: int, config: BarometerConfig
    ) -> Optional[Reading]:
        """Run one raw callback through the filters.

        Returns:
            The new Reading if the sample was accepted, None if it was dropped.
        """
        self.counter.tick(now_ms)

        if not self.rate_limiter.accept(now_ms, config.interval):
            return None

        if not self.threshold_filter.accept(event.value, config.threshold):
            return None

        return Reading(
            timestamp=now_ms,
            event_timestamp=event.hardware_timestamp,
            device_id=config.device_id,
            pressure=event.value,
            accuracy=event.accuracy,
            label=config.label,
        )

    def append(self, reading: Reading) -> None:
        self.buffer.append(reading)

    def take_batch_if_due(self, now_ms: int, period_min: float) -> Optional[List[Reading]]:
        """Swap out the buffer if the flush period has elapsed."""
        if not self.flush_policy.due(now_ms, period_min):
            return None
        self.flush_policy.mark_flushed(now_ms)

        batch, self.buffer = self.buffer, []
        return batch

    def discard(self) -> int:
        dropped = len(self.buffer)
        self.buffer = []
        return dropped
