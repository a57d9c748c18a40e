"""Tests for command/response correlation."""

import threading

import pytest

from dvl_a50_mcp.errors import (
    CommandTimeout,
    DuplicateRequest,
    RequestCancelled,
    UnmatchedResponse,
)
from dvl_a50_mcp.protocol.correlation import CommandCorrelator
from dvl_a50_mcp.protocol.parser import CommandResponse


def _wait_in_thread(correlator, request, results, key, timeout=5.0):
    def run():
        try:
            results[key] = correlator.wait(request, timeout=timeout)
        except Exception as e:  # surfaced to the test through results
            results[key] = e

    thread = threading.Thread(target=run)
    thread.start()
    return thread


def test_send_then_dispatch_resolves_waiter():
    """The waiter receives exactly the dispatched response."""
    correlator = CommandCorrelator()
    request = correlator.send("get_config")
    assert correlator.pending() == ["get_config"]

    response = CommandResponse("get_config", True, "", {"speed_of_sound": 1500})
    assert correlator.dispatch(response) is True
    assert correlator.wait(request, timeout=1.0) is response
    assert correlator.pending() == []


def test_second_dispatch_is_unmatched():
    correlator = CommandCorrelator()
    request = correlator.send("get_config")
    correlator.dispatch(CommandResponse("get_config", True))
    correlator.wait(request, timeout=1.0)

    assert correlator.dispatch(CommandResponse("get_config", True)) is False
    with pytest.raises(UnmatchedResponse):
        correlator.dispatch_strict(CommandResponse("get_config", True))


def test_duplicate_request_is_rejected():
    """Only one request per command name may be in flight."""
    correlator = CommandCorrelator()
    first = correlator.send("trigger_ping")
    with pytest.raises(DuplicateRequest):
        correlator.send("trigger_ping")

    # the first request is untouched
    correlator.dispatch(CommandResponse("trigger_ping", True))
    assert correlator.wait(first, timeout=1.0).success


def test_transmit_called_after_registration():
    correlator = CommandCorrelator()
    seen = []
    correlator.send("calibrate_gyro", transmit=lambda: seen.append(correlator.pending()))
    assert seen == [["calibrate_gyro"]]


def test_transmit_failure_withdraws_registration():
    correlator = CommandCorrelator()

    def fail():
        raise ConnectionError("Not connected to DVL")

    with pytest.raises(ConnectionError):
        correlator.send("calibrate_gyro", transmit=fail)
    assert correlator.pending() == []
    correlator.send("calibrate_gyro")


def test_timeout_frees_the_slot():
    """A timed-out request is removed so it can be issued again."""
    correlator = CommandCorrelator()
    request = correlator.send("trigger_ping")
    with pytest.raises(CommandTimeout):
        correlator.wait(request, timeout=0.01)
    assert correlator.pending() == []
    assert correlator.send("trigger_ping") is not request


def test_timeout_is_a_timeout_error():
    correlator = CommandCorrelator(default_timeout=0.01)
    with pytest.raises(TimeoutError):
        correlator.request("trigger_ping")


def test_concurrent_requests_resolve_in_reverse_order():
    """Responses are routed by name, not by arrival order."""
    correlator = CommandCorrelator()
    results = {}
    config_request = correlator.send("get_config")
    gyro_request = correlator.send("calibrate_gyro")
    threads = [
        _wait_in_thread(correlator, config_request, results, "get_config"),
        _wait_in_thread(correlator, gyro_request, results, "calibrate_gyro"),
    ]

    gyro_response = CommandResponse("calibrate_gyro", False, "moving")
    config_response = CommandResponse("get_config", True, "", {"range_mode": "auto"})
    correlator.dispatch(gyro_response)
    correlator.dispatch(config_response)
    for thread in threads:
        thread.join(timeout=5.0)

    assert results["get_config"] is config_response
    assert results["calibrate_gyro"] is gyro_response
    assert correlator.pending() == []


def test_many_concurrent_senders():
    correlator = CommandCorrelator()
    names = [f"command_{i}" for i in range(20)]
    results = {}
    threads = [
        _wait_in_thread(correlator, correlator.send(name), results, name)
        for name in names
    ]
    for name in reversed(names):
        assert correlator.dispatch(CommandResponse(name, True))
    for thread in threads:
        thread.join(timeout=5.0)
    assert all(results[name].name == name for name in names)


def test_cancel_releases_waiter():
    """Abandoned requests are removed and their waiters released."""
    correlator = CommandCorrelator()
    results = {}
    request = correlator.send("get_config")
    thread = _wait_in_thread(correlator, request, results, "get_config")

    assert correlator.cancel("get_config") is True
    thread.join(timeout=5.0)
    assert isinstance(results["get_config"], RequestCancelled)
    assert correlator.pending() == []
    assert correlator.dispatch(CommandResponse("get_config", True)) is False


def test_cancel_all():
    correlator = CommandCorrelator()
    correlator.send("get_config")
    correlator.send("set_config")
    assert correlator.cancel_all() == 2
    assert correlator.pending() == []
    assert correlator.cancel("get_config") is False
