"""Matching asynchronous command responses to the callers waiting on them.

The device answers commands on the same stream that carries its reports,
and names the command each answer belongs to. Callers therefore register
under the command name before transmitting, then block on a one-shot
future while the reader thread (which owns the decode path) resolves it.

At most one request per command name may be in flight. The registry is
guarded by a single lock; futures are resolved outside it.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Callable

from ..errors import CommandTimeout, DuplicateRequest, RequestCancelled, UnmatchedResponse
from .parser import CommandResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


@dataclass(eq=False)
class PendingRequest:
    """A command waiting for its response. Resolved at most once."""

    name: str
    future: Future = field(default_factory=Future)

    @property
    def done(self) -> bool:
        return self.future.done()


class CommandCorrelator:
    """Registry of in-flight commands keyed by name.

    Usage::

        correlator = CommandCorrelator()
        request = correlator.send("get_config", transmit=lambda: conn.write(line))
        response = correlator.wait(request, timeout=5.0)

    and on the reader thread, for every decoded ``CommandResponse``::

        correlator.dispatch(response)
    """

    def __init__(self, default_timeout: float | None = DEFAULT_TIMEOUT) -> None:
        self._lock = threading.Lock()
        self._pending: dict[str, PendingRequest] = {}
        self.default_timeout = default_timeout

    def pending(self) -> list[str]:
        """Names of commands currently awaiting a response."""
        with self._lock:
            return sorted(self._pending)

    def is_pending(self, name: str) -> bool:
        with self._lock:
            return name in self._pending

    def send(
        self,
        name: str,
        transmit: Callable[[], object] | None = None,
    ) -> PendingRequest:
        """Register a request for ``name`` and then transmit it.

        The request is registered before transmission so a fast reply
        cannot arrive ahead of its waiter. If ``transmit`` raises, the
        registration is withdrawn and the error propagates.

        Raises:
            DuplicateRequest: If a request with this name is already pending.
        """
        request = PendingRequest(name=name)
        with self._lock:
            if name in self._pending:
                raise DuplicateRequest(name)
            self._pending[name] = request

        if transmit is not None:
            try:
                transmit()
            except BaseException:
                self._remove(request)
                raise
        logger.debug("Awaiting response to %s", name)
        return request

    def wait(
        self,
        request: PendingRequest,
        timeout: float | None = None,
    ) -> CommandResponse:
        """Block until the response for ``request`` arrives.

        Args:
            request: Handle returned by :meth:`send`.
            timeout: Seconds to wait; ``None`` uses :attr:`default_timeout`.

        Raises:
            CommandTimeout: If no response arrives in time. The request is
                removed so the same command can be issued again.
            RequestCancelled: If the request was cancelled while waiting.
        """
        if timeout is None:
            timeout = self.default_timeout
        try:
            return request.future.result(timeout=timeout)
        except FutureTimeout:
            raise CommandTimeout(request.name, timeout) from None
        except CancelledError:
            raise RequestCancelled(request.name) from None
        finally:
            if not request.done:
                # interrupted (e.g. KeyboardInterrupt); don't leak the slot
                self._remove(request)

    def request(
        self,
        name: str,
        transmit: Callable[[], object] | None = None,
        timeout: float | None = None,
    ) -> CommandResponse:
        """Send ``name`` and wait for its response."""
        return self.wait(self.send(name, transmit), timeout)

    def dispatch(self, response: CommandResponse) -> bool:
        """Hand a response to the request waiting for it.

        Returns:
            ``True`` if a waiter received the response, ``False`` if none
            was pending (the response is dropped).
        """
        with self._lock:
            request = self._pending.pop(response.name, None)

        if request is None or not request.future.set_running_or_notify_cancel():
            logger.warning("Unexpected response to %r, no request pending", response.name)
            return False

        request.future.set_result(response)
        return True

    def dispatch_strict(self, response: CommandResponse) -> None:
        """Like :meth:`dispatch` but raises when nobody is waiting.

        Raises:
            UnmatchedResponse: If no request for the name is pending.
        """
        if not self.dispatch(response):
            raise UnmatchedResponse(f"No pending request for {response.name!r}")

    def cancel(self, name: str) -> bool:
        """Withdraw the pending request for ``name``, releasing its waiter."""
        with self._lock:
            request = self._pending.pop(name, None)
        if request is None:
            return False
        request.future.cancel()
        return True

    def cancel_all(self) -> int:
        """Withdraw every pending request. Returns how many were cancelled."""
        with self._lock:
            requests = list(self._pending.values())
            self._pending.clear()
        for request in requests:
            request.future.cancel()
        if requests:
            logger.info("Cancelled %d pending command(s)", len(requests))
        return len(requests)

    def _remove(self, request: PendingRequest) -> None:
        # only remove the entry if it still belongs to this request
        with self._lock:
            if self._pending.get(request.name) is request:
                del self._pending[request.name]
