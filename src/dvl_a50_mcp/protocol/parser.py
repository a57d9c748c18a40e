"""Report classification and decoding for device messages.

The DVL does not tag its messages with an explicit kind that the driver
relies on. A message is classified by which fields it carries, checked
in this order:

1. ``response_to`` -> :class:`CommandResponse`
2. ``altitude``    -> :class:`VelocityReport`
3. ``pitch``       -> :class:`DeadReckoningReport`
4. anything else   -> :class:`Unrecognized`

Messages reach this module as key-tagged dicts, either straight from a
JSON line on the network channel or converted from a serial frame by
:class:`~dvl_a50_mcp.protocol.framing.SerialDecoder`.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Union

from ..errors import MalformedField

logger = logging.getLogger(__name__)

NUM_BEAMS = 4


@dataclass
class CommandResponse:
    """Reply to a command previously sent to the device."""

    response_to: str
    success: bool
    error_message: str = ""
    result: Any = None

    @property
    def name(self) -> str:
        """Command name this response correlates with."""
        return self.response_to


@dataclass
class Transducer:
    """Per-beam diagnostics from a velocity report."""

    id: int
    velocity: float
    distance: float
    rssi: float
    nsd: float
    beam_valid: bool


@dataclass
class VelocityReport:
    """Bottom-track velocity report."""

    time_of_validity: int  # microseconds, device clock
    vx: float
    vy: float
    vz: float
    covariance: tuple[tuple[float, float, float], ...]
    altitude: float
    velocity_valid: bool
    fom: float = 0.0
    time_of_transmission: int | None = None
    status: int = 0
    transducers: list[Transducer] = field(default_factory=list)

    @property
    def num_good_beams(self) -> int:
        return sum(1 for t in self.transducers if t.beam_valid)

    def __repr__(self) -> str:
        return (
            f"VelocityReport(v=({self.vx:.3f}, {self.vy:.3f}, {self.vz:.3f}), "
            f"altitude={self.altitude:.2f}, valid={self.velocity_valid}, "
            f"good_beams={self.num_good_beams})"
        )


@dataclass
class DeadReckoningReport:
    """Integrated position and orientation estimate."""

    ts: float  # seconds, device clock
    x: float
    y: float
    z: float
    std: float
    roll: float
    pitch: float
    yaw: float
    status: int = 0


@dataclass
class Unrecognized:
    """A message that matches none of the known report shapes."""

    message: dict


Report = Union[CommandResponse, VelocityReport, DeadReckoningReport, Unrecognized]


def _as_bool(value: Any) -> bool:
    # serial frames carry "y"/"n", JSON carries true/false
    if isinstance(value, str):
        return value.strip().lower() in ("y", "yes", "true", "1")
    return bool(value)


def _finite(value: Any) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{value!r} is not a finite number")
    return number


def _covariance(value: Any) -> tuple[tuple[float, float, float], ...]:
    rows = tuple(tuple(float(v) for v in row) for row in value)
    if len(rows) != 3 or any(len(row) != 3 for row in rows):
        raise ValueError("covariance must be a 3x3 matrix")
    return rows


def parse_transducer(data: dict) -> Transducer:
    """Decode one beam sub-record."""
    return Transducer(
        id=int(data["id"]),
        velocity=float(data["velocity"]),
        distance=float(data["distance"]),
        rssi=float(data["rssi"]),
        nsd=float(data["nsd"]),
        beam_valid=_as_bool(data["beam_valid"]),
    )


def parse_command_response(message: dict) -> CommandResponse:
    """Decode a command response.

    The name is kept exactly as the device reports it, including the
    reserved ``set_config`` name used to acknowledge parameter writes.
    """
    return CommandResponse(
        response_to=str(message["response_to"]),
        success=_as_bool(message.get("success", False)),
        error_message=message.get("error_message") or "",
        result=message.get("result"),
    )


def parse_velocity_report(message: dict) -> VelocityReport:
    """Decode a velocity report and its beam sub-records."""
    tot = message.get("time_of_transmission")
    return VelocityReport(
        time_of_validity=int(message["time_of_validity"]),
        vx=float(message["vx"]),
        vy=float(message["vy"]),
        vz=float(message["vz"]),
        covariance=_covariance(message["covariance"]),
        altitude=float(message["altitude"]),
        velocity_valid=_as_bool(message["velocity_valid"]),
        fom=float(message.get("fom", 0.0)),
        time_of_transmission=int(tot) if tot is not None else None,
        status=int(message.get("status", 0)),
        transducers=[
            parse_transducer(t) for t in message.get("transducers", [])[:NUM_BEAMS]
        ],
    )


def parse_dead_reckoning_report(message: dict) -> DeadReckoningReport:
    """Decode a dead-reckoning report."""
    return DeadReckoningReport(
        ts=_finite(message["ts"]),
        x=float(message["x"]),
        y=float(message["y"]),
        z=float(message["z"]),
        std=float(message["std"]),
        roll=float(message["roll"]),
        pitch=float(message["pitch"]),
        yaw=float(message["yaw"]),
        status=int(message.get("status", 0)),
    )


def parse_report(message: dict) -> Report:
    """Classify a message by the fields it carries and decode it.

    Returns:
        Exactly one of the report types. Unknown shapes come back as
        :class:`Unrecognized` rather than raising.

    Raises:
        MalformedField: If the message has the shape of a known report
            but a required field is missing or has the wrong type.
    """
    if "response_to" in message:
        decode = parse_command_response
    elif "altitude" in message:
        decode = parse_velocity_report
    elif "pitch" in message:
        decode = parse_dead_reckoning_report
    else:
        logger.warning("Received unexpected DVL message: %s", message)
        return Unrecognized(message=message)

    try:
        return decode(message)
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        raise MalformedField(f"{decode.__name__}: {e!r} in {message}") from e


def decode_line(line: str | bytes) -> Report:
    """Decode one line from the network channel.

    Raises:
        MalformedField: If the line is not a JSON object or a known
            report shape is missing fields.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    try:
        message = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedField(f"Invalid JSON: {line!r}") from e
    except RecursionError as e:
        raise MalformedField("JSON nested too deeply") from e
    if not isinstance(message, dict):
        raise MalformedField(f"Expected a JSON object, got {type(message).__name__}")
    return parse_report(message)
