"""Serial protocol frame builder and parser.

Frame layout (one ASCII line)::

    +-----+---+--------------------------+---+----------+--------+
    | Tag | , |  Fields (comma-separated) | * | Checksum | CR LF  |
    | 3 B |   |       variable length     |   | 2 hex    |        |
    +-----+---+--------------------------+---+----------+--------+

- Tag: ``wrz`` velocity, ``wru`` transducer, ``wrp`` dead reckoning,
  ``wra``/``wrn``/``wr?`` acknowledgements, ``wrc`` configuration.
- Checksum: CRC-8 of every byte before ``*``, as two hex digits.

Reports from the serial channel are converted into the same key-tagged
messages the network channel delivers, so a single report parser
handles both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import ChecksumMismatch, MalformedField
from ..utils.crc import crc8, validate_frame
from .fields import (
    DEAD_RECKONING_SCHEMA,
    TRANSDUCER_SCHEMA,
    VELOCITY_SCHEMA,
    ElementType,
    split,
    values,
)

logger = logging.getLogger(__name__)

CHECKSUM_SEPARATOR = "*"
LINE_ENDING = "\r\n"

TAG_VELOCITY = "wrz"
TAG_TRANSDUCER = "wru"
TAG_DEAD_RECKONING = "wrp"
TAG_ACK = "wra"
TAG_NAK = "wrn"
TAG_MALFORMED = "wr?"
TAG_CONFIG = "wrc"

COVARIANCE_SCHEMA = (ElementType.DBL,) * 9


@dataclass
class Frame:
    """A checksum-validated serial frame."""

    tag: str
    fields: str

    def __repr__(self) -> str:
        return f"Frame(tag={self.tag!r}, fields={self.fields or '(empty)'!r})"


def build_frame(payload: str) -> bytes:
    """Append the checksum and line ending to ``payload``.

    Returns:
        The encoded line, ready to write to the serial port.
    """
    data = payload.encode("ascii")
    return data + f"{CHECKSUM_SEPARATOR}{crc8(data):02x}{LINE_ENDING}".encode("ascii")


def decode_frame(line: bytes | str) -> Frame:
    """Validate one serial line and split off its tag.

    Raises:
        MalformedField: If the line has no checksum suffix.
        ChecksumMismatch: If the checksum does not match the payload.
    """
    if isinstance(line, str):
        line = line.encode("ascii", errors="replace")
    line = line.strip()

    payload, sep, checksum_hex = line.rpartition(CHECKSUM_SEPARATOR.encode())
    if not sep or not payload:
        raise MalformedField(f"Missing checksum: {line!r}")
    try:
        checksum = int(checksum_hex, 16)
    except ValueError as e:
        raise MalformedField(f"Bad checksum digits: {checksum_hex!r}") from e
    if not 0 <= checksum <= 0xFF:
        raise MalformedField(f"Checksum out of range: {checksum_hex!r}")

    if not validate_frame(payload + bytes([checksum])):
        raise ChecksumMismatch(expected=checksum, actual=crc8(payload))

    text = payload.decode("ascii", errors="replace")
    tag, _, fields = text.partition(",")
    return Frame(tag=tag, fields=fields)


def _velocity_message(fields: str) -> dict:
    (vx, vy, vz, valid, altitude, fom, covariance,
     time_of_validity, time_of_transmission, status) = values(
        split(fields, VELOCITY_SCHEMA)
    )
    flat = values(split(covariance, COVARIANCE_SCHEMA, delimiter=";"))
    return {
        "vx": vx,
        "vy": vy,
        "vz": vz,
        "velocity_valid": valid,
        "altitude": altitude,
        "fom": fom,
        "covariance": [flat[0:3], flat[3:6], flat[6:9]],
        "time_of_validity": time_of_validity,
        "time_of_transmission": time_of_transmission,
        "status": status,
    }


def _transducer_message(fields: str) -> dict:
    beam_id, velocity, distance, rssi, nsd = values(split(fields, TRANSDUCER_SCHEMA))
    return {
        "id": beam_id,
        "velocity": velocity,
        "distance": distance,
        "rssi": rssi,
        "nsd": nsd,
        # the serial transducer record has no validity flag of its own
        "beam_valid": distance > 0,
    }


def _dead_reckoning_message(fields: str) -> dict:
    ts, x, y, z, std, roll, pitch, yaw, status = values(
        split(fields, DEAD_RECKONING_SCHEMA)
    )
    return {
        "ts": ts,
        "x": x,
        "y": y,
        "z": z,
        "std": std,
        "roll": roll,
        "pitch": pitch,
        "yaw": yaw,
        "status": status,
    }


class SerialDecoder:
    """Turns a sequential stream of serial frames into key-tagged messages.

    Transducer frames only update per-beam state; the next velocity frame
    picks up the latest record for each beam. Acknowledgements carry no
    command name, so they are attributed to :attr:`last_command`, which
    the sender sets whenever it writes a command.
    """

    def __init__(self) -> None:
        self._transducers: dict[int, dict] = {}
        self.last_command: str | None = None

    def reset(self) -> None:
        self._transducers.clear()
        self.last_command = None

    def feed(self, line: bytes | str) -> dict | None:
        """Decode one line.

        Returns:
            A message dict, or ``None`` if the frame only updated
            transducer state.

        Raises:
            ChecksumMismatch: If the frame fails validation.
            MalformedField: If the frame does not match its schema.
        """
        frame = decode_frame(line)

        if frame.tag == TAG_TRANSDUCER:
            transducer = _transducer_message(frame.fields)
            self._transducers[transducer["id"]] = transducer
            return None

        if frame.tag == TAG_VELOCITY:
            message = _velocity_message(frame.fields)
            message["transducers"] = [
                self._transducers[key] for key in sorted(self._transducers)
            ]
            self._transducers.clear()
            return message

        if frame.tag == TAG_DEAD_RECKONING:
            return _dead_reckoning_message(frame.fields)

        if frame.tag in (TAG_ACK, TAG_NAK, TAG_MALFORMED):
            return self._response(frame)

        if frame.tag == TAG_CONFIG:
            return {
                "response_to": "get_config",
                "success": True,
                "error_message": "",
                "result": frame.fields.split(",") if frame.fields else [],
            }

        return {"tag": frame.tag, "fields": frame.fields}

    def _response(self, frame: Frame) -> dict:
        errors = {
            TAG_ACK: "",
            TAG_NAK: "Command not acknowledged",
            TAG_MALFORMED: "Malformed request",
        }
        if self.last_command is None:
            logger.debug("Acknowledgement %s with no command outstanding", frame.tag)
        return {
            "response_to": self.last_command or "",
            "success": frame.tag == TAG_ACK,
            "error_message": errors[frame.tag],
        }
