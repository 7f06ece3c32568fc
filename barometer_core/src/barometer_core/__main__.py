"""
Canonical entry point for barometer_core package.

This package contains domain models, ports, and configuration.
It does not include sampling or orchestration functionality.
"""

import sys

from barometer_core.config.environments import get_settings


def main() -> None:
    """Main entry point for barometer_core package."""
    print("barometer_core - Domain and configuration package")
    print("This package is not intended to be run directly.")
    print("Use the barometer_sensor package instead.")

    try:
        config = get_settings()
        print("\nCurrent configuration:")
        print(f"Environment: {config.ENVIRONMENT}")
        print(f"Store: {config.DB_PATH}")
        print(f"Sampling: {config.SAMPLING_INTERVAL_HZ} Hz, flush every {config.FLUSH_PERIOD_MIN} min")
        print(f"MQTT: {config.MQTT_BROKER}:{config.MQTT_PORT}")
    except Exception as e:
        print(f"Could not load configuration: {e}")

    sys.exit(0)


if __name__ == "__main__":
    main()
