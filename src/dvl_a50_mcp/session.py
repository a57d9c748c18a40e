"""A live DVL session: one decode path, many command issuers.

A background reader thread owns the inbound stream. It decodes each line
in arrival order, hands command responses to the
:class:`~dvl_a50_mcp.protocol.correlation.CommandCorrelator`, and turns
velocity and dead-reckoning reports into navigation outputs for the sink.
Callers on other threads issue commands and block only themselves while
waiting for the reader to deliver the matching response.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Any, Callable, Union

from .config import DvlConfig
from .errors import ChecksumMismatch, MalformedField
from .models.navigation import NavigationTranslator, PoseOutput, VelocityOutput
from .protocol.commands import (
    SET_PARAMETER_KEY,
    Command,
    build_command,
    build_configure,
    build_serial_command,
    build_serial_set_config,
    build_set_config,
)
from .protocol.correlation import CommandCorrelator
from .protocol.framing import SerialDecoder
from .protocol.parser import (
    CommandResponse,
    DeadReckoningReport,
    Report,
    Unrecognized,
    VelocityReport,
    decode_line,
    parse_report,
)

logger = logging.getLogger(__name__)

Output = Union[VelocityOutput, PoseOutput]
Sink = Callable[[Output], None]

JOIN_TIMEOUT_S = 2.0


def make_connection(config: DvlConfig):
    """Create the transport selected by ``config``."""
    if config.use_serial:
        from .transport.serial_connection import SerialConnection

        return SerialConnection(config.serial_port, config.baudrate)
    from .transport.tcp_connection import TCPConnection

    return TCPConnection(config.ip_address, config.tcp_port)


class DvlSession:
    """Connection, decode path and command interface for one DVL.

    Usage::

        session = DvlSession(DvlConfig(ip_address="192.168.194.95"), sink=print)
        session.open()
        session.configure()
        session.set_acoustic_enabled(True)
        config = session.get_config()
        session.close()
    """

    def __init__(
        self,
        config: DvlConfig | None = None,
        connection: Any = None,
        sink: Sink | None = None,
    ) -> None:
        self.config = config or DvlConfig()
        self._connection = connection or make_connection(self.config)
        self._serial = self.config.use_serial
        self._sink = sink

        self.correlator = CommandCorrelator(default_timeout=self.config.command_timeout)
        self.translator = NavigationTranslator(
            frame_id=self.config.frame_id,
            sound_speed=float(self.config.speed_of_sound),
        )
        self._serial_decoder = SerialDecoder()
        # acknowledgements on the serial channel do not name their command
        self._serial_command_lock = threading.Lock()

        self._running = threading.Event()
        self._reader: threading.Thread | None = None
        self.stats: Counter = Counter()

    @property
    def connected(self) -> bool:
        return bool(self._connection.connected) and self._running.is_set()

    # ─── LIFECYCLE ────────────────────────────────────────────────────

    def open(self) -> None:
        """Connect and start the reader thread. Session state starts fresh."""
        if self._running.is_set():
            return
        self._connection.open()
        self.correlator.cancel_all()
        self.translator.reset()
        self._serial_decoder.reset()
        self.stats.clear()

        self._running.set()
        self._reader = threading.Thread(
            target=self._read_loop, name="dvl-reader", daemon=True
        )
        self._reader.start()
        logger.info("Receiving DVL reports")

    def close(self) -> None:
        """Stop the reader, release any waiting callers and disconnect."""
        self._running.clear()
        self.correlator.cancel_all()
        self._connection.close()
        reader, self._reader = self._reader, None
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=JOIN_TIMEOUT_S)

    def _read_loop(self) -> None:
        try:
            while self._running.is_set():
                try:
                    line = self._connection.read_line()
                except ConnectionError as e:
                    if self._running.is_set():
                        logger.error("DVL read error: %s", e)
                    break
                if line:
                    self.handle_line(line)
        finally:
            self._running.clear()
            self.correlator.cancel_all()

    # ─── DECODE PATH ──────────────────────────────────────────────────

    def decode(self, line: bytes | str) -> Report | None:
        """Decode one inbound line into a report.

        Returns ``None`` for lines that are discarded (bad checksum,
        malformed fields) or that only update serial transducer state.
        """
        try:
            if self._serial:
                message = self._serial_decoder.feed(line)
                if message is None:
                    return None
                return parse_report(message)
            return decode_line(line)
        except ChecksumMismatch as e:
            self.stats["checksum_mismatch"] += 1
            logger.debug("Discarding frame: %s", e)
        except MalformedField as e:
            self.stats["malformed"] += 1
            logger.debug("Discarding record: %s", e)
        return None

    def handle_line(self, line: bytes | str) -> Report | None:
        """Decode one line and route the result. Runs on the reader thread."""
        report = self.decode(line)
        if report is not None:
            self._route(report)
        return report

    def _route(self, report: Report) -> None:
        if isinstance(report, CommandResponse):
            self.stats["responses"] += 1
            self._log_response(report)
            if not self.correlator.dispatch(report):
                self.stats["unmatched"] += 1
        elif isinstance(report, VelocityReport):
            self.stats["velocity"] += 1
            self._publish(self.translator.to_velocity_output(report))
        elif isinstance(report, DeadReckoningReport):
            self.stats["dead_reckoning"] += 1
            self._publish(self.translator.to_pose_output(report))
        elif isinstance(report, Unrecognized):
            self.stats["unrecognized"] += 1

    @staticmethod
    def _log_response(response: CommandResponse) -> None:
        if response.success:
            logger.info("%s: success", response.name)
        else:
            logger.warning("%s failed: %s", response.name, response.error_message)
        if response.name == Command.GET_CONFIG.value:
            logger.info("get_config: %s", response.result)

    def _publish(self, output: Output) -> None:
        if self._sink is None:
            return
        try:
            self._sink(output)
        except Exception:
            logger.exception("Report sink failed")

    # ─── COMMANDS ─────────────────────────────────────────────────────

    def _transmit(self, name: str, data: bytes) -> Callable[[], None]:
        def transmit() -> None:
            if self._serial:
                self._serial_decoder.last_command = name
            self._connection.write(data)

        return transmit

    def _request(self, name: str, data: bytes, timeout: float | None) -> CommandResponse:
        if not self.connected:
            raise ConnectionError("Not connected to DVL")
        if self._serial:
            with self._serial_command_lock:
                return self.correlator.request(name, self._transmit(name, data), timeout)
        return self.correlator.request(name, self._transmit(name, data), timeout)

    def send_command(
        self, name: str | Command, timeout: float | None = None
    ) -> CommandResponse:
        """Send a zero-argument command and wait for the device's answer.

        Raises:
            ValueError: If the command is unknown or is ``set_config``.
            DuplicateRequest: If the same command is already in flight.
            CommandTimeout: If the device does not answer in time.
        """
        command = Command(name)
        data = build_serial_command(command) if self._serial else build_command(command)
        return self._request(command.value, data, timeout)

    def set_parameters(
        self, timeout: float | None = None, **parameters: Any
    ) -> CommandResponse:
        """Write one or more device parameters in a single ``set_config``."""
        if self._serial:
            data = build_serial_set_config(**parameters)
        else:
            data = build_set_config(**parameters)
        return self._request(SET_PARAMETER_KEY, data, timeout)

    def set_parameter(
        self, name: str, value: Any, timeout: float | None = None
    ) -> CommandResponse:
        """Write a single device parameter, e.g. ``acoustic_enabled``."""
        return self.set_parameters(timeout=timeout, **{name: value})

    def set_acoustic_enabled(self, enabled: bool) -> CommandResponse:
        return self.set_parameter("acoustic_enabled", enabled)

    def configure(self, acoustic_enabled: bool = False) -> CommandResponse:
        """Push the configured device settings in one ``set_config``."""
        parameters = build_configure(
            speed_of_sound=self.config.speed_of_sound,
            acoustic_enabled=acoustic_enabled,
            led_enabled=self.config.led_enabled,
            mounting_rotation_offset=self.config.mounting_rotation_offset,
            range_mode=self.config.range_mode,
        )
        return self.set_parameters(**parameters)

    def get_config(self) -> Any:
        """Read the device configuration.

        Raises:
            RuntimeError: If the device reports failure.
        """
        response = self.send_command(Command.GET_CONFIG)
        if not response.success:
            raise RuntimeError(f"get_config failed: {response.error_message}")
        return response.result
