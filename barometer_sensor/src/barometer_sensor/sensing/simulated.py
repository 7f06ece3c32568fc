import logging
import random
import threading
import time
from typing import Callable, Optional

from barometer_core.domain.models import PressureEvent, SensorDescriptor

logger = logging.getLogger(__name__)

# Android reports pressure sensors as type 6
TYPE_PRESSURE = "6"
FASTEST_HZ = 50


class SimulatedBarometer:
    """Pressure source producing a slow random walk around sea-level pressure.

    Used for test mode and for running the service on machines without a
    barometer. With ``present=False`` it behaves like a device that has no
    pressure sensor at all.
    """

    def __init__(
        self,
        *,
        present: bool = True,
        start_mbar: float = 1013.25,
        step_mbar: float = 0.05,
        seed: Optional[int] = None,
    ):
        self.present = present
        self.pressure = start_mbar
        self.step_mbar = step_mbar
        self._rng = random.Random(seed)
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def descriptor(self) -> Optional[SensorDescriptor]:
        if not self.present:
            return None
        return SensorDescriptor(
            max_range=1100.0,
            min_delay=1_000_000 / FASTEST_HZ,
            name="Simulated Barometer",
            power=0.004,
            resolution=0.01,
            type=TYPE_PRESSURE,
            vendor="barometer_sensor",
            version="1",
        )

    def next_event(self) -> PressureEvent:
        self.pressure += self._rng.uniform(-self.step_mbar, self.step_mbar)
        return PressureEvent(
            value=round(self.pressure, 2),
            accuracy=3,
            hardware_timestamp=time.monotonic_ns(),
        )

    def register(self, callback: Callable[[PressureEvent], None], interval_hz: int) -> None:
        self.unregister()
        period = 1.0 / (interval_hz if interval_hz > 0 else FASTEST_HZ)
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(callback, period, self._stop), name="simulated-barometer"
        )
        self._thread.daemon = True
        self._thread.start()
        logger.info("Simulated barometer emitting every %.3fs", period)

    def _run(
        self, callback: Callable[[PressureEvent], None], period: float, stop: threading.Event
    ) -> None:
        next_tick = time.time() + period
        while not stop.is_set():
            now = time.time()
            if now >= next_tick:
                callback(self.next_event())
                next_tick += period
            else:
                stop.wait(next_tick - now)

    def unregister(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
