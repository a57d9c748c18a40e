"""MCP server entry point for the Water Linked DVL A50.

Exposes tools and resources via the Model Context Protocol using the
official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import DvlConfig
from .errors import DvlError
from .models.navigation import BEAM_UNIT_VECTORS, PoseOutput, VelocityOutput
from .protocol.commands import Command
from .session import DvlSession

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "dvl-a50",
    instructions="MCP server for the Water Linked DVL A50 Doppler velocity log",
)

# Global session state
_session: DvlSession | None = None
_latest_lock = threading.Lock()
_latest: dict[str, VelocityOutput | PoseOutput | None] = {
    "velocity": None,
    "position": None,
}


def _get_session() -> DvlSession:
    """Get the active session, raising if not connected."""
    if _session is None or not _session.connected:
        raise RuntimeError("Not connected to DVL. Use the 'connect' tool first.")
    return _session


def _store_output(output: VelocityOutput | PoseOutput) -> None:
    """Report sink: keep the most recent output of each kind."""
    key = "velocity" if isinstance(output, VelocityOutput) else "position"
    with _latest_lock:
        _latest[key] = output


def _trigger(name: str | Command) -> dict[str, Any]:
    session = _get_session()
    try:
        response = session.send_command(name)
    except DvlError as e:
        return {"success": False, "error": str(e)}
    return {"success": response.success, "message": response.error_message}


def _set_acoustic(enabled: bool) -> dict[str, Any]:
    session = _get_session()
    try:
        response = session.set_acoustic_enabled(enabled)
    except DvlError as e:
        return {"success": False, "error": str(e)}
    return {"success": response.success, "message": response.error_message}


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(
    ip_address: str | None = None,
    serial_port: str | None = None,
) -> dict[str, Any]:
    """Connect to the DVL, push its configuration and start reading reports.

    Settings default to the ``DVL_*`` environment variables.

    Args:
        ip_address: Network address of the DVL (TCP port 16171).
        serial_port: Serial device to use instead of the network, e.g. /dev/ttyUSB0.
    """
    global _session
    if _session is not None and _session.connected:
        return {"connected": True, "message": "Already connected"}

    config = DvlConfig.from_env()
    if ip_address:
        config.ip_address = ip_address
    if serial_port:
        config.serial_port = serial_port

    with _latest_lock:
        _latest["velocity"] = None
        _latest["position"] = None

    session = DvlSession(config, sink=_store_output)
    session.open()
    _session = session

    result: dict[str, Any] = {
        "connected": True,
        "channel": "serial" if config.use_serial else "tcp",
    }
    try:
        configured = session.configure(acoustic_enabled=False)
        result["configured"] = configured.success
        if config.enable_on_activate:
            enabled = session.set_acoustic_enabled(True)
            result["acoustic_enabled"] = enabled.success
    except DvlError as e:
        logger.warning("Configuration failed: %s", e)
        result["error"] = str(e)
    return result


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Stop acoustic transmission and close the connection to the DVL."""
    global _session
    if _session is None:
        return {"disconnected": True}
    if _session.connected:
        try:
            _session.set_acoustic_enabled(False)
        except DvlError as e:
            logger.warning("Could not disable acoustics: %s", e)
    _session.close()
    _session = None
    return {"disconnected": True}


# ─── COMMAND TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def enable() -> dict[str, Any]:
    """Enable acoustic transmission (start measuring)."""
    return _set_acoustic(True)


@mcp.tool()
def disable() -> dict[str, Any]:
    """Disable acoustic transmission (stop measuring)."""
    return _set_acoustic(False)


@mcp.tool()
def get_config() -> dict[str, Any]:
    """Read the DVL's current configuration."""
    session = _get_session()
    try:
        response = session.send_command(Command.GET_CONFIG)
    except DvlError as e:
        return {"success": False, "error": str(e)}
    return {
        "success": response.success,
        "message": response.error_message,
        "config": response.result,
    }


@mcp.tool()
def calibrate_gyro() -> dict[str, Any]:
    """Calibrate the DVL's gyroscope. Keep the DVL still while this runs."""
    return _trigger(Command.CALIBRATE_GYRO)


@mcp.tool()
def reset_dead_reckoning() -> dict[str, Any]:
    """Reset the dead-reckoning position estimate to the origin."""
    return _trigger(Command.RESET_DEAD_RECKONING)


@mcp.tool()
def trigger_ping() -> dict[str, Any]:
    """Trigger a single ping (when the DVL is in triggered mode)."""
    return _trigger(Command.TRIGGER_PING)


# ─── REPORT TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
def get_velocity() -> dict[str, Any]:
    """Latest bottom-track velocity, altitude and per-beam data."""
    _get_session()
    with _latest_lock:
        output = _latest["velocity"]
    if output is None:
        return {"error": "No velocity report received yet"}
    return output.to_dict()


@mcp.tool()
def get_position() -> dict[str, Any]:
    """Latest dead-reckoned position and orientation."""
    _get_session()
    with _latest_lock:
        output = _latest["position"]
    if output is None:
        return {"error": "No dead-reckoning report received yet"}
    return output.to_dict()


@mcp.tool()
def get_status() -> dict[str, Any]:
    """Connection state, pending commands and report counters."""
    if _session is None:
        return {"connected": False}
    return {
        "connected": _session.connected,
        "pending_commands": _session.correlator.pending(),
        "counters": dict(_session.stats),
        "config": _session.config.to_dict(),
    }


# ─── RESOURCES ────────────────────────────────────────────────────────

@mcp.resource("dvl://device/status")
def resource_device_status() -> str:
    """Connection state."""
    connected = _session is not None and _session.connected
    return json.dumps({"connected": connected})


@mcp.resource("dvl://geometry/beams")
def resource_beam_geometry() -> str:
    """Unit vectors of the four transducer beams in the DVL body frame."""
    beams = [
        {"beam": i + 1, "unit_vector": list(vector)}
        for i, vector in enumerate(BEAM_UNIT_VECTORS)
    ]
    return json.dumps({"beams": beams})


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
