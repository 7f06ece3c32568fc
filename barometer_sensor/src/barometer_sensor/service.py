import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Union

from barometer_core.domain.models import PressureEvent, SensorDescriptor
from barometer_core.domain.ports import PersistenceSink, PressureSource
from barometer_sensor.sensor_config import BarometerConfig, ConfigHolder
from barometer_sensor.session import BarometerSession, logd, now_ms

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class HardwareEvent:
    event: PressureEvent


@dataclass(frozen=True)
class SyncCommand:
    pass


@dataclass(frozen=True)
class StopCommand:
    pass


Command = Union[HardwareEvent, SyncCommand, StopCommand]


class SensorWorker(threading.Thread):
    """Runs one session: all events and commands go through its queue."""

    daemon = True

    def __init__(
        self,
        session_factory: Callable[[], BarometerSession],
        descriptor: SensorDescriptor,
        q: "queue.Queue[Command]",
    ):
        super().__init__(name="barometer-sensor")
        self._session_factory = session_factory
        self._descriptor = descriptor
        self._q = q
        self.session: Optional[BarometerSession] = None
        self.error: Optional[Exception] = None
        self.ready = threading.Event()

    def run(self) -> None:
        # the store is created here so its sqlite connection belongs to this thread
        try:
            self.session = self._session_factory()
            self.session.open(self._descriptor)
        except Exception as e:
            logger.error("Failed to open barometer session: %s", e)
            self.error = e
            self.ready.set()
            return
        self.ready.set()

        while True:
            cmd = self._q.get()
            if isinstance(cmd, StopCommand):
                break
            try:
                if isinstance(cmd, HardwareEvent):
                    self.session.handle_event(cmd.event)
                elif isinstance(cmd, SyncCommand):
                    self.session.sync()
            except Exception as e:
                logger.error("Error processing %s: %s", type(cmd).__name__, e)

        self.session.close()


class BarometerService:
    """Start/stop lifecycle around a pressure source and a persistence sink.

    States: STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED. A start
    on a device without a barometer goes straight back to STOPPED.
    """

    def __init__(
        self,
        source: PressureSource,
        store_factory: Callable[[BarometerConfig], PersistenceSink],
        config: Optional[BarometerConfig] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = ConfigHolder(config)
        self._source = source
        self._store_factory = store_factory
        self._clock = clock

        self._state = ServiceState.STOPPED
        self._state_lock = threading.Lock()
        self._listeners: List[Callable[[str], None]] = []
        self._worker: Optional[SensorWorker] = None
        self._queue: Optional["queue.Queue[Command]"] = None

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def current_interval(self) -> int:
        """Raw callbacks per second seen during the last full window."""
        worker = self._worker
        if worker is None or worker.session is None:
            return 0
        return worker.session.current_interval

    def add_listener(self, callback: Callable[[str], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[str], None]) -> None:
        self._listeners.remove(callback)

    def _notify(self, action: str) -> None:
        for callback in list(self._listeners):
            try:
                callback(action)
            except Exception as e:
                logger.error("Data-changed listener failed: %s", e)

    def _set_state(self, state: ServiceState) -> None:
        logger.debug("Barometer service %s -> %s", self._state.value, state.value)
        self._state = state

    def start(self, config: Optional[BarometerConfig] = None) -> bool:
        """Start sampling, optionally replacing the live config first.

        Returns:
            bool: True if the service reached RUNNING
        """
        if config is not None:
            self.config.replace_with(config)
        cfg = self.config.snapshot()
        cfg.validate()

        with self._state_lock:
            if self._state is not ServiceState.STOPPED:
                logger.debug("Barometer service already %s", self._state.value)
                return False
            self._set_state(ServiceState.STARTING)

        q: "queue.Queue[Command]" = queue.Queue()
        worker: Optional[SensorWorker] = None
        try:
            descriptor = self._source.descriptor()
            if descriptor is None:
                logger.warning("This device doesn't have a barometer!")
                self._set_state(ServiceState.STOPPED)
                return False

            def make_session() -> BarometerSession:
                return BarometerSession(
                    self.config, self._store_factory(cfg), self._notify, self._clock
                )

            worker = SensorWorker(make_session, descriptor, q)
            worker.start()
            worker.ready.wait()
            if worker.error is not None:
                worker.join()
                self._set_state(ServiceState.STOPPED)
                return False

            self._source.register(lambda event: q.put(HardwareEvent(event)), cfg.interval)
        except Exception as e:
            logger.error("Failed to start barometer service: %s", e, exc_info=True)
            if worker is not None and worker.is_alive():
                q.put(StopCommand())
                worker.join()
            self._set_state(ServiceState.STOPPED)
            return False

        self._worker = worker
        self._queue = q
        self._set_state(ServiceState.RUNNING)

        logd(cfg, "Barometer service active: %s samples per second.", cfg.interval)
        return True

    def start_if_enabled(self) -> bool:
        if not self.config.snapshot().enabled:
            logger.debug("Barometer sensor disabled, not starting")
            return False
        return self.start()

    def stop(self) -> bool:
        """Stop sampling. Readings not yet flushed are discarded."""
        with self._state_lock:
            if self._state is not ServiceState.RUNNING:
                return False
            self._set_state(ServiceState.STOPPING)

        self._source.unregister()

        q, worker = self._queue, self._worker
        if q is not None and worker is not None:
            try:
                while True:
                    q.get_nowait()
            except queue.Empty:
                pass
            q.put(StopCommand())
            worker.join()

        self._queue = None
        self._worker = None
        self._set_state(ServiceState.STOPPED)
        logd(self.config.snapshot(), "Barometer service terminated...")
        return True

    def set_label(self, label: str) -> None:
        self.config.set_label(label)

    def sync(self) -> bool:
        """Queue a sync of both tables. Ignored unless RUNNING."""
        with self._state_lock:
            if self._state is not ServiceState.RUNNING or self._queue is None:
                logger.debug("Ignoring sync request while %s", self._state.value)
                return False
            self._queue.put(SyncCommand())
        return True
