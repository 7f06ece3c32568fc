import threading
from typing import Callable, List, Optional, Sequence, Tuple, Union

from barometer_core.domain.models import PressureEvent, SensorDescriptor, Serializable

FAKE_DESCRIPTOR = SensorDescriptor(
    max_range=1100.0,
    min_delay=20000.0,
    name="Fake Barometer",
    power=0.004,
    resolution=0.01,
    type="6",
    vendor="fake",
    version="1",
)


class ManualClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start_ms: int = 1_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakePressureSource:
    """Pressure source whose events are pushed by the test.

    ``emit`` delivers straight to the registered callback on the calling
    thread, the same way a driver thread would.
    """

    def __init__(self, *, present: bool = True, descriptor: SensorDescriptor = FAKE_DESCRIPTOR):
        self.present = present
        self._descriptor = descriptor
        self.callback: Optional[Callable[[PressureEvent], None]] = None
        self.registered_interval: Optional[int] = None
        self.register_calls = 0
        self.unregister_calls = 0

    def descriptor(self) -> Optional[SensorDescriptor]:
        return self._descriptor if self.present else None

    def register(self, callback: Callable[[PressureEvent], None], interval_hz: int) -> None:
        self.callback = callback
        self.registered_interval = interval_hz
        self.register_calls += 1

    def unregister(self) -> None:
        self.callback = None
        self.unregister_calls += 1

    def emit(self, value: float, accuracy: int = 3, hardware_timestamp: int = 0) -> None:
        if self.callback is not None:
            self.callback(PressureEvent(value, accuracy, hardware_timestamp))


class RecordingSink:
    """Persistence sink that keeps every call in memory."""

    def __init__(self, *, fail_saves_for: Sequence[str] = ()):
        self.fail_saves_for = set(fail_saves_for)
        self.saves: List[Tuple[str, List[Serializable]]] = []
        self.syncs: List[Tuple[str, bool]] = []
        self.closed = False
        self.saved = threading.Event()

    def save(
        self, record_or_batch: Union[Serializable, Sequence[Serializable]], table_name: str
    ) -> None:
        if table_name in self.fail_saves_for:
            raise IOError(f"disk full while writing {table_name}")
        if isinstance(record_or_batch, (list, tuple)):
            records = list(record_or_batch)
        else:
            records = [record_or_batch]
        self.saves.append((table_name, records))
        self.saved.set()

    def start_sync(self, table_name: str, *, remove_after_sync: bool = True) -> int:
        self.syncs.append((table_name, remove_after_sync))
        return 0

    def close(self) -> None:
        self.closed = True

    def saved_to(self, table_name: str) -> List[Serializable]:
        return [r for table, records in self.saves if table == table_name for r in records]


class StubSyncTarget:
    """Sync target that succeeds until ``fails_after`` publishes."""

    def __init__(self, fails_after: Optional[int] = None):
        self.calls: List[Tuple[str, str]] = []
        self._fails_after = fails_after
        self.closed = False

    def publish(self, payload: str, table_name: str) -> bool:
        if self._fails_after is not None and len(self.calls) >= self._fails_after:
            return False
        self.calls.append((table_name, payload))
        return True

    def close(self) -> None:
        self.closed = True


class FakeSerialPort:
    """Serial port replaying a fixed list of lines, then blocking like a timeout."""

    def __init__(self, lines: Sequence[bytes], timeout: float = 0.01):
        self._lines = list(lines)
        self._timeout = timeout
        self._idle = threading.Event()
        self.closed = False

    def readline(self) -> bytes:
        if self._lines:
            return self._lines.pop(0)
        self._idle.wait(self._timeout)
        return b""

    def close(self) -> None:
        self.closed = True
