"""Command names and encoders for both DVL channels.

On the network channel each command is one JSON object per line. On the
serial channel each command is a ``wc?`` frame with a CRC-8 suffix.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from .framing import build_frame


class Command(str, Enum):
    """Commands understood by the DVL.

    The value doubles as the correlation key: the device answers with
    ``response_to`` set to the same name.
    """

    GET_CONFIG = "get_config"
    SET_CONFIG = "set_config"
    CALIBRATE_GYRO = "calibrate_gyro"
    RESET_DEAD_RECKONING = "reset_dead_reckoning"
    TRIGGER_PING = "trigger_ping"


# Parameter writes of every kind are acknowledged under this name
SET_PARAMETER_KEY = Command.SET_CONFIG.value

SERIAL_COMMAND_MAP: dict[Command, str] = {
    Command.GET_CONFIG: "wcc",
    Command.SET_CONFIG: "wcs",
    Command.CALIBRATE_GYRO: "wcg",
    Command.RESET_DEAD_RECKONING: "wcr",
    Command.TRIGGER_PING: "wcx",
}

# Positional order of the serial set-config frame
SERIAL_CONFIG_FIELDS = (
    "speed_of_sound",
    "mounting_rotation_offset",
    "acoustic_enabled",
    "dark_mode_enabled",
    "range_mode",
)


def _command(name: str | Command) -> Command:
    try:
        return Command(name)
    except ValueError:
        raise ValueError(
            f"Unknown command '{name}'. Valid: {[c.value for c in Command]}"
        ) from None


def build_command(name: str | Command) -> bytes:
    """Build a network command line, e.g. ``{"command": "get_config"}``."""
    command = _command(name)
    if command is Command.SET_CONFIG:
        raise ValueError("Use build_set_config for parameter writes")
    return (json.dumps({"command": command.value}) + "\n").encode("utf-8")


def build_set_config(**parameters: Any) -> bytes:
    """Build a network ``set_config`` line carrying one or more parameters."""
    if not parameters:
        raise ValueError("set_config needs at least one parameter")
    message = {"command": SET_PARAMETER_KEY, "parameters": parameters}
    return (json.dumps(message) + "\n").encode("utf-8")


def _serial_value(value: Any) -> str:
    if isinstance(value, bool):
        return "y" if value else "n"
    return str(value)


def build_serial_command(name: str | Command) -> bytes:
    """Build a serial command frame for a zero-argument command."""
    command = _command(name)
    if command is Command.SET_CONFIG:
        raise ValueError("Use build_serial_set_config for parameter writes")
    return build_frame(SERIAL_COMMAND_MAP[command])


def build_serial_set_config(**parameters: Any) -> bytes:
    """Build a serial ``wcs`` frame.

    Parameters are positional on the serial channel; any left out are
    sent empty, which the device treats as "unchanged".
    """
    unknown = set(parameters) - set(SERIAL_CONFIG_FIELDS)
    if unknown:
        raise ValueError(
            f"Unknown serial parameter(s) {sorted(unknown)}. "
            f"Valid: {list(SERIAL_CONFIG_FIELDS)}"
        )
    fields = [
        _serial_value(parameters[name]) if name in parameters else ""
        for name in SERIAL_CONFIG_FIELDS
    ]
    payload = ",".join([SERIAL_COMMAND_MAP[Command.SET_CONFIG], *fields])
    return build_frame(payload)


def build_configure(
    speed_of_sound: int,
    acoustic_enabled: bool,
    led_enabled: bool,
    mounting_rotation_offset: int,
    range_mode: str,
) -> dict[str, Any]:
    """Collect the parameters of a full device configuration.

    The device exposes "dark mode" rather than an LED switch, so the LED
    setting is inverted here.
    """
    if speed_of_sound <= 0:
        raise ValueError(f"Speed of sound must be positive, got {speed_of_sound}")
    if not 0 <= mounting_rotation_offset < 360:
        raise ValueError(
            f"Mounting rotation offset must be 0-359, got {mounting_rotation_offset}"
        )
    return {
        "speed_of_sound": speed_of_sound,
        "acoustic_enabled": acoustic_enabled,
        "dark_mode_enabled": not led_enabled,
        "mounting_rotation_offset": mounting_rotation_offset,
        "range_mode": range_mode,
    }
