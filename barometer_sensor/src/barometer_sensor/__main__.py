"""
Canonical entry point for barometer_sensor package.

Usage:
    python -m barometer_sensor --environment development
    python -m barometer_sensor --environment testing --test-mode --test-duration 30
"""

import argparse
import logging
import os
import time

from barometer_core.config.environments import get_settings
from barometer_sensor.sensing.simulated import SimulatedBarometer
from barometer_sensor.sensor import bootstrap
from barometer_sensor.sensor import main as sensor_main
from barometer_sensor.sensor_config import config_from_settings


def setup_logging(config) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )


def run_test_sensor(settings, device_id: str, label: str, duration: float) -> None:
    """Run the sensor against a simulated barometer for a fixed time."""
    log = logging.getLogger(__name__)

    log.info("Running sensor in TEST mode for %ss", duration)

    config = config_from_settings(settings)
    config.device_id = device_id
    config.label = label
    config.enabled = True

    service = bootstrap(SimulatedBarometer, config)
    service.add_listener(lambda action: log.info("%s: readings saved", action))

    time.sleep(duration)
    log.info("Samples per second: %s", service.current_interval)
    service.sync()
    service.stop()

    log.info("Test sensor completed")


def main() -> None:
    """Main entry point for barometer_sensor."""
    parser = argparse.ArgumentParser(description="Barometer Sensor")
    parser.add_argument(
        "--environment",
        choices=["production", "development", "testing"],
        default="development",
        help="Environment to run in",
    )
    parser.add_argument("--device-id", help="Device ID (overrides config)")
    parser.add_argument("--label", help="Label attached to new readings (overrides config)")
    parser.add_argument(
        "--test-mode", action="store_true", help="Run against a simulated barometer"
    )
    parser.add_argument(
        "--test-duration", type=float, default=10.0, help="Seconds to run in test mode"
    )

    args = parser.parse_args()

    os.environ["BAROMETER_ENV"] = args.environment
    if args.device_id:
        os.environ["DEVICE_ID"] = args.device_id
    if args.label is not None:
        os.environ["LABEL"] = args.label

    settings = get_settings()
    setup_logging(settings)
    log = logging.getLogger(__name__)

    log.info("Starting barometer sensor...")
    log.info("Environment: %s", args.environment)

    if args.test_mode:
        device_id = args.device_id or settings.DEVICE_ID
        label = args.label if args.label is not None else settings.LABEL
        run_test_sensor(settings, device_id, label, args.test_duration)
    else:
        sensor_main()


if __name__ == "__main__":
    main()
