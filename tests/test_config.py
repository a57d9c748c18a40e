"""Tests for session settings."""

from dvl_a50_mcp.config import DEFAULT_IP_ADDRESS, DvlConfig


def test_defaults():
    config = DvlConfig()
    assert config.ip_address == DEFAULT_IP_ADDRESS
    assert config.tcp_port == 16171
    assert config.speed_of_sound == 1500
    assert config.use_serial is False


def test_from_env_overrides():
    config = DvlConfig.from_env({
        "DVL_IP_ADDRESS": "10.0.0.5",
        "DVL_SPEED_OF_SOUND": "1480",
        "DVL_LED_ENABLED": "false",
        "DVL_COMMAND_TIMEOUT": "2.5",
        "DVL_SERIAL_PORT": "/dev/ttyUSB0",
        "UNRELATED": "x",
    })
    assert config.ip_address == "10.0.0.5"
    assert config.speed_of_sound == 1480
    assert config.led_enabled is False
    assert config.command_timeout == 2.5
    assert config.use_serial is True


def test_from_env_empty_serial_port_means_tcp():
    assert DvlConfig.from_env({"DVL_SERIAL_PORT": ""}).use_serial is False


def test_to_dict():
    assert DvlConfig().to_dict()["range_mode"] == "auto"
