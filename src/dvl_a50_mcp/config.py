"""Runtime settings for a DVL session."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from typing import Mapping

DEFAULT_IP_ADDRESS = "192.168.194.95"
DEFAULT_TCP_PORT = 16171
DEFAULT_BAUDRATE = 115200

ENV_PREFIX = "DVL_"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on", "y")


@dataclass
class DvlConfig:
    """Connection and device settings.

    ``serial_port`` selects the channel: when set, the session talks the
    serial protocol on that port; otherwise it connects over TCP.
    """

    ip_address: str = DEFAULT_IP_ADDRESS
    tcp_port: int = DEFAULT_TCP_PORT
    serial_port: str | None = None
    baudrate: int = DEFAULT_BAUDRATE
    frame_id: str = "dvl_a50_link"
    speed_of_sound: int = 1500
    enable_on_activate: bool = True
    led_enabled: bool = True
    mounting_rotation_offset: int = 0
    range_mode: str = "auto"
    command_timeout: float = 5.0

    @property
    def use_serial(self) -> bool:
        return bool(self.serial_port)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DvlConfig:
        """Build a config from ``DVL_*`` variables, e.g. ``DVL_IP_ADDRESS``."""
        environ = os.environ if environ is None else environ
        config = cls()
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            default = getattr(config, f.name)
            if isinstance(default, bool):
                value = _parse_bool(raw)
            elif isinstance(default, int):
                value = int(raw)
            elif isinstance(default, float):
                value = float(raw)
            else:
                value = (raw or None) if f.name == "serial_port" else raw
            setattr(config, f.name, value)
        return config
