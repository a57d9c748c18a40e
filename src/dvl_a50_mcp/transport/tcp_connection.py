"""TCP connection to the DVL's JSON report and command port.

The DVL streams one JSON object per line on TCP port 16171 and accepts
commands on the same socket.
"""

from __future__ import annotations

import logging
import socket
import threading

from ..config import DEFAULT_IP_ADDRESS, DEFAULT_TCP_PORT

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_S = 5.0
READ_TIMEOUT_S = 1.0
RECV_SIZE = 4096


class TCPConnection:
    """Manages the TCP link to the DVL.

    Usage::

        conn = TCPConnection("192.168.194.95")
        conn.open()
        conn.write(b'{"command": "get_config"}\\n')
        line = conn.read_line()
        conn.close()
    """

    def __init__(
        self,
        host: str = DEFAULT_IP_ADDRESS,
        port: int = DEFAULT_TCP_PORT,
    ) -> None:
        self._host = host
        self._port = port
        self._sock: socket.socket | None = None
        self._buf = b""
        self._write_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._sock is not None

    @property
    def address(self) -> str:
        return f"{self._host}:{self._port}"

    def open(self) -> None:
        """Connect to the DVL.

        Raises:
            ConnectionError: If the DVL cannot be reached.
        """
        logger.info("Connecting to DVL at %s", self.address)
        try:
            sock = socket.create_connection(
                (self._host, self._port), timeout=CONNECT_TIMEOUT_S
            )
        except OSError as e:
            raise ConnectionError(
                f"Could not connect to DVL at {self.address}: {e}"
            ) from e
        sock.settimeout(READ_TIMEOUT_S)
        self._sock = sock
        self._buf = b""
        logger.info("TCP connected")

    def close(self) -> None:
        if self._sock is None:
            return
        try:
            # wakes a reader blocked in recv()
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Socket shutdown: %s", e)
        try:
            self._sock.close()
        except OSError as e:
            logger.warning("Error closing socket: %s", e)
        finally:
            self._sock = None
            self._buf = b""
            logger.info("Disconnected")

    def write(self, data: bytes) -> int:
        """Send one encoded command line.

        Raises:
            ConnectionError: If not connected.
        """
        if self._sock is None:
            raise ConnectionError("Not connected to DVL")
        logger.debug("TX: %s", data.strip())
        with self._write_lock:
            self._sock.sendall(data)
        return len(data)

    def read_line(self) -> bytes | None:
        """Read one newline-terminated line.

        Returns:
            The line without its terminator, or ``None`` if nothing complete
            arrived within the read timeout.

        Raises:
            ConnectionError: If not connected or the DVL closed the socket.
        """
        sock = self._sock
        if sock is None:
            raise ConnectionError("Not connected to DVL")

        while b"\n" not in self._buf:
            try:
                chunk = sock.recv(RECV_SIZE)
            except socket.timeout:
                return None
            except OSError as e:
                # also raised when close() runs while a read is in progress
                raise ConnectionError(f"TCP read failed: {e}") from e
            if not chunk:
                raise ConnectionError("TCP connection closed by DVL")
            self._buf += chunk

        line, self._buf = self._buf.split(b"\n", 1)
        return line.rstrip(b"\r")
