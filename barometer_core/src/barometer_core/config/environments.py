from enum import Enum

from pydantic_settings import BaseSettings


class Environment(str, Enum):
    PRODUCTION = "production"
    DEVELOPMENT = "development"
    TESTING = "testing"


class Settings(BaseSettings):
    """Configuration settings for the barometer sensor."""

    # Environment
    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # Local store
    DB_PATH: str = "aware_barometer.db"
    BUFFER_MB: int = 32

    # Sampling
    DEVICE_ID: str = "barometer-01"
    SAMPLING_INTERVAL_HZ: int = 5
    FLUSH_PERIOD_MIN: float = 1.0
    CHANGE_THRESHOLD: float = 0.0
    LABEL: str = ""
    ENABLED: bool = True

    # Hardware
    SERIAL_PORT: str = "/dev/ttyUSB0"
    SERIAL_BAUD: int = 9600

    # Sync (MQTT)
    SYNC_ENABLED: bool = False
    MQTT_BROKER: str = "localhost"
    MQTT_PORT: int = 1883
    MQTT_TOPIC: str = "aware/barometer"

    # Logging
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    class Config:
        env_file = ".env"


def get_settings() -> Settings:
    """Get settings based on environment."""
    import os

    env = os.getenv("BAROMETER_ENV", "development").lower()

    if env == "production":
        return Settings(ENVIRONMENT=Environment.PRODUCTION, LOG_LEVEL="WARNING")
    elif env == "testing":
        return Settings(
            ENVIRONMENT=Environment.TESTING,
            DB_PATH=":memory:",
            DEVICE_ID="test-device",
            MQTT_TOPIC="test/aware/barometer",
            FLUSH_PERIOD_MIN=0.1,
            LOG_LEVEL="DEBUG",
            DEBUG=True,
        )
    else:
        return Settings(ENVIRONMENT=Environment.DEVELOPMENT, LOG_LEVEL="DEBUG", DEBUG=True)
