import copy
import threading
import uuid
from dataclasses import dataclass, field, fields
from typing import Optional

from barometer_core.config.environments import Settings
from barometer_core.domain.ports import SensorObserver


@dataclass
class BarometerConfig:
    """Live configuration of the barometer sensor."""

    # For real-time observation of the sensor data collection.
    sensor_observer: Optional[SensorObserver] = None

    # Samples per second: 0 is fastest, 1, 5, 20...
    interval: int = 5

    # Period to save data, in minutes. 0 saves after every reading.
    period: float = 1.0

    # Do not record consecutive points if the change in value is less than this.
    threshold: float = 0.0

    label: str = ""
    device_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    debug: bool = False
    enabled: bool = False
    db_path: str = "aware_barometer.db"

    def validate(self) -> None:
        if self.interval < 0:
            raise ValueError(f"interval must be >= 0, got {self.interval}")
        if self.period < 0:
            raise ValueError(f"period must be >= 0, got {self.period}")
        if self.threshold < 0:
            raise ValueError(f"threshold must be >= 0, got {self.threshold}")

    def replace_with(self, config: "BarometerConfig") -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(config, f.name))


class ConfigHolder:
    """Guards the one live config shared by the service and its callers."""

    def __init__(self, config: Optional[BarometerConfig] = None):
        self._config = config or BarometerConfig()
        self._lock = threading.Lock()

    def replace_with(self, config: BarometerConfig) -> None:
        config.validate()
        with self._lock:
            self._config.replace_with(config)

    def set_label(self, label: str) -> None:
        with self._lock:
            self._config.label = label

    def snapshot(self) -> BarometerConfig:
        # shallow copy keeps the observer object shared
        with self._lock:
            return copy.copy(self._config)


def config_from_settings(settings: Settings) -> BarometerConfig:
    return BarometerConfig(
        interval=settings.SAMPLING_INTERVAL_HZ,
        period=settings.FLUSH_PERIOD_MIN,
        threshold=settings.CHANGE_THRESHOLD,
        label=settings.LABEL,
        device_id=settings.DEVICE_ID,
        debug=settings.DEBUG,
        enabled=settings.ENABLED,
        db_path=settings.DB_PATH,
    )
