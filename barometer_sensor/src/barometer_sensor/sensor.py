import logging
import signal
import sys
from typing import Callable, Optional

from barometer_core.config.environments import Settings, get_settings
from barometer_core.domain.ports import PressureSource, SyncTarget
from barometer_sensor.mqtt_publisher import MQTTPublisher
from barometer_sensor.sensing.serial_barometer import SerialBarometer
from barometer_sensor.sensor_config import BarometerConfig, config_from_settings
from barometer_sensor.service import BarometerService, ServiceState
from barometer_sensor.sqlite_store import SQLiteStore

log = logging.getLogger(__name__)


def make_store_factory(settings: Settings) -> Callable[[BarometerConfig], SQLiteStore]:
    """
    Build the factory the service uses to open its store.

    sqlite3 connections must be used in the thread that created them, so the
    store (and its sync publisher) is created on the sensor worker thread
    rather than here.
    """

    def make_store(config: BarometerConfig) -> SQLiteStore:
        sync_target: Optional[SyncTarget] = None
        if settings.SYNC_ENABLED:
            sync_target = MQTTPublisher(
                host=settings.MQTT_BROKER,
                port=settings.MQTT_PORT,
                topic=settings.MQTT_TOPIC,
                client_id=f"barometer-{config.device_id}",
            )
        return SQLiteStore.open(config.db_path, sync_target=sync_target, max_mb=settings.BUFFER_MB)

    return make_store


def make_source() -> PressureSource:
    """Create the serial barometer. This can be overridden for testing."""
    settings = get_settings()
    return SerialBarometer(settings.SERIAL_PORT, settings.SERIAL_BAUD)


def bootstrap(
    source_factory: Callable[[], PressureSource],
    config: Optional[BarometerConfig] = None,
) -> BarometerService:
    settings = get_settings()
    config = config or config_from_settings(settings)

    log.info("Starting barometer in %s environment", settings.ENVIRONMENT.value)
    log.info("Device ID: %s", config.device_id)
    log.info("Store: %s", config.db_path)
    log.info("Sampling: %s Hz, flush every %s min", config.interval, config.period)
    if settings.SYNC_ENABLED:
        log.info("Sync to MQTT %s:%s %s", settings.MQTT_BROKER, settings.MQTT_PORT, settings.MQTT_TOPIC)

    service = BarometerService(source_factory(), make_store_factory(settings), config)
    service.start_if_enabled()
    return service


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    service = bootstrap(make_source)
    if service.state is not ServiceState.RUNNING:
        log.error("Barometer sensor did not start")
        sys.exit(1)

    def sigterm_handler(signum, frame):
        log.info("Received shutdown signal, stopping sensor...")
        service.stop()
        sys.exit(0)

    def sighup_handler(signum, frame):
        log.info("Received SIGHUP, syncing stored data...")
        service.sync()

    signal.signal(signal.SIGTERM, sigterm_handler)
    signal.signal(signal.SIGINT, sigterm_handler)
    signal.signal(signal.SIGHUP, sighup_handler)
    while True:
        signal.pause()


if __name__ == "__main__":
    main()
