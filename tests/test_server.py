"""Tests for the MCP tool layer."""

from __future__ import annotations

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from dvl_a50_mcp.errors import CommandTimeout
from dvl_a50_mcp.models.navigation import NavigationTranslator
from dvl_a50_mcp.protocol.parser import CommandResponse, VelocityReport


def _get_server_module():
    """Import server module with FastMCP mocked to avoid init issues."""
    mock_fastmcp_cls = MagicMock()
    mock_fastmcp_instance = MagicMock()
    # Make the @mcp.tool() decorator a no-op that returns the function unchanged
    mock_fastmcp_instance.tool.return_value = lambda fn: fn
    mock_fastmcp_instance.resource.return_value = lambda fn: fn
    mock_fastmcp_cls.return_value = mock_fastmcp_instance

    with patch("mcp.server.fastmcp.FastMCP", mock_fastmcp_cls):
        # Remove cached server module so it re-imports with our mock
        sys.modules.pop("dvl_a50_mcp.server", None)
        import dvl_a50_mcp.server as server_mod

    return server_mod


@pytest.fixture
def server():
    server_mod = _get_server_module()
    yield server_mod
    server_mod._session = None


def _connected_session() -> MagicMock:
    session = MagicMock()
    session.connected = True
    return session


def test_tools_require_connection(server):
    with pytest.raises(RuntimeError):
        server.get_config()
    with pytest.raises(RuntimeError):
        server.trigger_ping()


def test_trigger_tools_report_device_answer(server):
    session = _connected_session()
    session.send_command.return_value = CommandResponse("calibrate_gyro", False, "moving")
    server._session = session

    assert server.calibrate_gyro() == {"success": False, "message": "moving"}
    session.send_command.assert_called_once_with("calibrate_gyro")


def test_timeouts_become_errors(server):
    session = _connected_session()
    session.send_command.side_effect = CommandTimeout("trigger_ping", 5.0)
    server._session = session

    result = server.trigger_ping()
    assert result["success"] is False
    assert "timeout" in result["error"].lower()


def test_get_config_returns_result(server):
    session = _connected_session()
    session.send_command.return_value = CommandResponse(
        "get_config", True, "", {"speed_of_sound": 1500}
    )
    server._session = session

    result = server.get_config()
    assert result["success"] is True
    assert result["config"] == {"speed_of_sound": 1500}


def test_enable_and_disable(server):
    session = _connected_session()
    session.set_acoustic_enabled.return_value = CommandResponse("set_config", True)
    server._session = session

    assert server.enable()["success"] is True
    assert server.disable()["success"] is True
    assert [c.args for c in session.set_acoustic_enabled.call_args_list] == [(True,), (False,)]


def test_latest_velocity_from_sink(server):
    server._session = _connected_session()
    assert "error" in server.get_velocity()

    report = VelocityReport(
        time_of_validity=5,
        vx=3.0,
        vy=4.0,
        vz=0.0,
        covariance=((0.0,) * 3,) * 3,
        altitude=1.5,
        velocity_valid=True,
    )
    server._store_output(NavigationTranslator().to_velocity_output(report))
    result = server.get_velocity()
    assert result["speed_gnd"] == pytest.approx(5.0)
    assert result["altitude"] == 1.5
    assert len(result["beams"]) == 4


def test_connect_configures_and_enables(server):
    session = _connected_session()
    session.configure.return_value = CommandResponse("set_config", True)
    session.set_acoustic_enabled.return_value = CommandResponse("set_config", True)

    with patch.object(server, "DvlSession", return_value=session) as session_cls:
        result = server.connect(ip_address="10.0.0.5")

    config = session_cls.call_args.args[0]
    assert config.ip_address == "10.0.0.5"
    session.open.assert_called_once()
    session.configure.assert_called_once_with(acoustic_enabled=False)
    assert result == {
        "connected": True,
        "channel": "tcp",
        "configured": True,
        "acoustic_enabled": True,
    }


def test_disconnect(server):
    session = _connected_session()
    server._session = session
    assert server.disconnect() == {"disconnected": True}
    session.set_acoustic_enabled.assert_called_once_with(False)
    session.close.assert_called_once()
    assert server._session is None


def test_status_and_beam_resource(server):
    assert server.get_status() == {"connected": False}
    beams = json.loads(server.resource_beam_geometry())["beams"]
    assert [b["beam"] for b in beams] == [1, 2, 3, 4]
