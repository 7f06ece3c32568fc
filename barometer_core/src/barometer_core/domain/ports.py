from typing import Callable, Optional, Protocol, Sequence, Union, runtime_checkable

from barometer_core.domain.models import PressureEvent, Reading, SensorDescriptor, Serializable


class SensorObserver(Protocol):
    def on_data_changed(self, data: Reading) -> None: ...


@runtime_checkable
class SyncTarget(Protocol):
    """Remote end that persisted rows are replicated to."""

    def publish(self, payload: str, table_name: str) -> bool: ...
    def close(self) -> None: ...


class PersistenceSink(Protocol):
    def save(
        self, record_or_batch: Union[Serializable, Sequence[Serializable]], table_name: str
    ) -> None: ...

    def start_sync(self, table_name: str, *, remove_after_sync: bool = True) -> int: ...

    def close(self) -> None: ...


class PressureSource(Protocol):
    """Hardware pressure sensor: static descriptor plus a callback stream."""

    def descriptor(self) -> Optional[SensorDescriptor]: ...

    def register(self, callback: Callable[[PressureEvent], None], interval_hz: int) -> None: ...

    def unregister(self) -> None: ...
