import json
from dataclasses import asdict, dataclass
from typing import ClassVar, Protocol

JSON_VERSION = 1


class Serializable(Protocol):
    def to_string(self) -> str: ...


@dataclass(frozen=True)
class Reading(Serializable):
    """One accepted ambient pressure sample, in mbar."""

    TABLE_NAME: ClassVar[str] = "barometerData"

    timestamp: int
    event_timestamp: int
    device_id: str
    pressure: float
    accuracy: int
    label: str = ""

    def to_string(self) -> str:
        d = asdict(self)
        d["json_version"] = JSON_VERSION
        return json.dumps(d)


@dataclass(frozen=True)
class SensorDescriptor:
    """Static characteristics reported by the pressure hardware."""

    max_range: float
    min_delay: float
    name: str
    power: float
    resolution: float
    type: str
    vendor: str
    version: str


@dataclass(frozen=True)
class DeviceInfo(Serializable):
    """Snapshot of the pressure sensor, taken once per session."""

    TABLE_NAME: ClassVar[str] = "barometerDevice"

    device_id: str
    timestamp: int
    max_range: float
    min_delay: float
    name: str
    power: float  # mA
    resolution: float
    type: str
    vendor: str
    version: str

    @classmethod
    def from_descriptor(
        cls, descriptor: SensorDescriptor, *, device_id: str, timestamp: int
    ) -> "DeviceInfo":
        return cls(device_id=device_id, timestamp=timestamp, **asdict(descriptor))

    def to_string(self) -> str:
        d = asdict(self)
        d["json_version"] = JSON_VERSION
        return json.dumps(d)


@dataclass(frozen=True)
class PressureEvent:
    """A raw hardware callback, before any filtering."""

    value: float
    accuracy: int
    hardware_timestamp: int
