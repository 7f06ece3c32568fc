import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple

import serial

from barometer_core.domain.models import PressureEvent, SensorDescriptor

logger = logging.getLogger(__name__)


class LineSerial(Protocol):
    """Minimum of pyserial's Serial used by the barometer reader."""

    def readline(self) -> bytes: ...

    def close(self) -> None: ...


@dataclass
class SerialBarometerProtocol:
    """Text frames sent by a serial-attached barometer.

    One frame per line: ``P,<pressure_mbar>,<accuracy>``, for example
    ``P,1013.25,3``.

    Attributes:
        prefix: Leading field identifying a pressure frame.
        separator: Field separator.
        encoding: Text encoding of the line.
    """

    prefix: str = "P"
    separator: str = ","
    encoding: str = "ascii"


class SerialBarometer:
    """Pressure source reading frames from a serial port on a reader thread.

    The device decides the cadence; the requested interval is only logged
    since rate limiting happens in the sampling pipeline.

    Attributes:
        parse_errors: Counter for lines that were not valid pressure frames.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        *,
        timeout: float = 1.0,
        port_factory: Optional[Callable[[], LineSerial]] = None,
        protocol: Optional[SerialBarometerProtocol] = None,
    ):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.protocol = protocol or SerialBarometerProtocol()
        self._port_factory = port_factory or (
            lambda: serial.Serial(port, baudrate=baudrate, timeout=timeout)
        )
        self._serial: Optional[LineSerial] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self.parse_errors = 0

    def _open(self) -> Optional[LineSerial]:
        if self._serial is None:
            try:
                self._serial = self._port_factory()
            except (serial.SerialException, OSError) as e:
                logger.warning("Could not open barometer port %s: %s", self.port, e)
                return None
        return self._serial

    def descriptor(self) -> Optional[SensorDescriptor]:
        if self._open() is None:
            return None
        return SensorDescriptor(
            max_range=1100.0,
            min_delay=0.0,
            name=f"Serial Barometer ({self.port})",
            power=0.0,
            resolution=0.01,
            type="6",
            vendor="serial",
            version="1",
        )

    def parse_line(self, line: bytes) -> Optional[Tuple[float, int]]:
        """Parse one frame into ``(pressure, accuracy)``.

        Returns:
            The parsed values, or None if the line is not a pressure frame.
        """
        text = line.decode(self.protocol.encoding, errors="replace").strip()
        if not text:
            return None

        fields = text.split(self.protocol.separator)
        if len(fields) != 3 or fields[0] != self.protocol.prefix:
            self.parse_errors += 1
            logger.warning("Unexpected barometer frame: %r", text)
            return None
        try:
            return float(fields[1]), int(fields[2])
        except ValueError:
            self.parse_errors += 1
            logger.warning("Malformed barometer frame: %r", text)
            return None

    def register(self, callback: Callable[[PressureEvent], None], interval_hz: int) -> None:
        port = self._open()
        if port is None:
            return
        self.unregister()
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(port, callback, self._stop), name="serial-barometer"
        )
        self._thread.daemon = True
        self._thread.start()
        logger.info("Reading barometer on %s (requested %s Hz)", self.port, interval_hz)

    def _run(
        self,
        port: LineSerial,
        callback: Callable[[PressureEvent], None],
        stop: threading.Event,
    ) -> None:
        while not stop.is_set():
            try:
                line = port.readline()
            except (serial.SerialException, OSError) as e:
                logger.error("Barometer port read failed: %s", e)
                stop.wait(self.timeout)
                continue

            parsed = self.parse_line(line)
            if parsed is None:
                continue
            pressure, accuracy = parsed
            callback(
                PressureEvent(
                    value=pressure, accuracy=accuracy, hardware_timestamp=time.monotonic_ns()
                )
            )

    def unregister(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def close(self) -> None:
        self.unregister()
        if self._serial is not None:
            self._serial.close()
            self._serial = None
