"""Exception types raised by the protocol layer."""

from __future__ import annotations


class DvlError(Exception):
    """Base class for all DVL protocol errors."""


class ChecksumMismatch(DvlError, ValueError):
    """A serial frame failed CRC-8 validation."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Checksum mismatch: frame says 0x{expected:02X}, "
            f"computed 0x{actual:02X}"
        )
        self.expected = expected
        self.actual = actual


class MalformedField(DvlError, ValueError):
    """A record does not match its schema."""


class DuplicateRequest(DvlError, RuntimeError):
    """A command was sent while another with the same name is pending."""

    def __init__(self, name: str) -> None:
        super().__init__(f"A '{name}' request is already waiting for a response")
        self.name = name


class UnmatchedResponse(DvlError, LookupError):
    """A command response arrived with no pending request to receive it."""


class CommandTimeout(DvlError, TimeoutError):
    """No response arrived for a command within the allowed time."""

    def __init__(self, name: str, timeout: float | None) -> None:
        super().__init__(f"Command timeout: {name} (after {timeout}s)")
        self.name = name
        self.timeout = timeout


class RequestCancelled(DvlError):
    """A pending request was withdrawn before its response arrived."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Request cancelled: {name}")
        self.name = name
