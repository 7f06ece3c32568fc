import logging
import time
from typing import Callable, List, Optional

from barometer_core.domain.models import DeviceInfo, PressureEvent, Reading, SensorDescriptor
from barometer_core.domain.ports import PersistenceSink
from barometer_sensor.pipeline import SamplingPipeline
from barometer_sensor.sensor_config import BarometerConfig, ConfigHolder

logger = logging.getLogger(__name__)

ACTION_AWARE_BAROMETER = "ACTION_AWARE_BAROMETER"


def now_ms() -> int:
    return int(time.time() * 1000)


def logd(config: BarometerConfig, msg: str, *args) -> None:
    if config.debug:
        logger.debug(msg, *args)


class BarometerSession:
    """One start-to-stop run of the sampling pipeline.

    Owned by a single worker thread: events, syncs and close are never
    called concurrently, so none of the state here is locked.

    Persistence is at-most-once. A batch whose save fails is logged and
    dropped, and readings still buffered at close are discarded.
    """

    def __init__(
        self,
        config: ConfigHolder,
        sink: PersistenceSink,
        notify: Callable[[str], None],
        clock: Callable[[], int] = now_ms,
    ):
        self._config = config
        self._sink = sink
        self._notify = notify
        self._clock = clock
        self.pipeline = SamplingPipeline(clock())

    @property
    def current_interval(self) -> int:
        return self.pipeline.current_interval

    def open(self, descriptor: SensorDescriptor) -> DeviceInfo:
        """Persist the device snapshot for this session."""
        config = self._config.snapshot()
        device = DeviceInfo.from_descriptor(
            descriptor, device_id=config.device_id, timestamp=self._clock()
        )
        try:
            self._sink.save(device, DeviceInfo.TABLE_NAME)
        except Exception as e:
            logger.error("Failed to save barometer device info: %s", e)
        logd(config, "Barometer sensor info: %s", device.to_string())
        return device

    def handle_event(self, event: PressureEvent) -> Optional[Reading]:
        config = self._config.snapshot()
        now = self._clock()

        reading = self.pipeline.process(event, now, config)
        if reading is None:
            return None

        if config.sensor_observer is not None:
            try:
                config.sensor_observer.on_data_changed(reading)
            except Exception as e:
                logger.error("Sensor observer failed: %s", e)

        self.pipeline.append(reading)

        batch = self.pipeline.take_batch_if_due(now, config.period)
        if batch is not None:
            self._flush(batch, config)
        return reading

    def _flush(self, batch: List[Reading], config: BarometerConfig) -> bool:
        try:
            logd(config, "Saving buffer to database.")
            self._sink.save(batch, Reading.TABLE_NAME)
        except Exception as e:
            logger.warning(
                "Failed to save %d readings, dropping batch: %s", len(batch), e, exc_info=True
            )
            return False

        self._notify(ACTION_AWARE_BAROMETER)
        return True

    def sync(self) -> None:
        try:
            self._sink.start_sync(Reading.TABLE_NAME)
            self._sink.start_sync(DeviceInfo.TABLE_NAME, remove_after_sync=False)
        except Exception as e:
            logger.error("Sync failed: %s", e)

    def close(self) -> None:
        dropped = self.pipeline.discard()
        logd(self._config.snapshot(), "Discarded %d unsaved readings.", dropped)
        try:
            self._sink.close()
        except Exception as e:
            logger.error("Failed to close store: %s", e)
