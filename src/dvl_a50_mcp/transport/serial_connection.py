"""Serial connection to the DVL using pyserial.

The serial channel carries the same reports as the network channel, as
comma-separated ASCII lines with a CRC-8 suffix (see
:mod:`dvl_a50_mcp.protocol.framing`).
"""

from __future__ import annotations

import logging
import threading

import serial

from ..config import DEFAULT_BAUDRATE

logger = logging.getLogger(__name__)

READ_TIMEOUT_S = 1.0


class SerialConnection:
    """Manages the serial link to the DVL."""

    def __init__(self, port: str, baudrate: int = DEFAULT_BAUDRATE) -> None:
        self._port = port
        self._baudrate = baudrate
        self._serial: serial.Serial | None = None
        self._write_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    @property
    def address(self) -> str:
        return f"{self._port}@{self._baudrate}"

    def open(self) -> None:
        """Open the serial port.

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        logger.info("Opening DVL serial port %s", self.address)
        try:
            self._serial = serial.Serial(
                port=self._port,
                baudrate=self._baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=READ_TIMEOUT_S,
            )
        except serial.SerialException as e:
            raise ConnectionError(
                f"Could not open DVL serial port {self.address}: {e}"
            ) from e

    def close(self) -> None:
        if self._serial is None:
            return
        try:
            self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing serial port: %s", e)
        finally:
            self._serial = None
            logger.info("Disconnected")

    def write(self, data: bytes) -> int:
        if not self.connected:
            raise ConnectionError("Not connected to DVL")
        logger.debug("TX: %s", data.strip())
        with self._write_lock:
            return self._serial.write(data)

    def read_line(self) -> bytes | None:
        """Read one line, or ``None`` if the read timed out with no data.

        Raises:
            ConnectionError: If not connected or the port failed.
        """
        port = self._serial
        if port is None or not port.is_open:
            raise ConnectionError("Not connected to DVL")
        try:
            line = port.readline()
        except (serial.SerialException, OSError) as e:
            raise ConnectionError(f"Serial read failed: {e}") from e
        if not line:
            return None
        return line.rstrip(b"\r\n")
