"""Publish/subscribe container for :class:`AuthState` snapshots.

Every published state reaches every current subscriber exactly once, in
publication order.  Two delivery styles are offered:

* ``subscribe(listener)`` – synchronous callback, invoked inside ``publish``.
* ``subscribe_queue()`` – an :class:`asyncio.Queue` fed with ``put_nowait``
  for consumers living in their own task.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from pkce_session.auth.models import AuthState

_LOG = logging.getLogger("pkce-session.auth.observable")

Listener = Callable[[AuthState], None]


class AuthStateObservable:
    """Holds the current :class:`AuthState` and broadcasts replacements."""

    def __init__(self, initial: AuthState | None = None) -> None:
        self._value = initial if initial is not None else AuthState()
        self._listeners: list[Listener] = []
        self._queues: list[asyncio.Queue[AuthState]] = []

    @property
    def value(self) -> AuthState:
        return self._value

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def subscribe_queue(self) -> asyncio.Queue[AuthState]:
        queue: asyncio.Queue[AuthState] = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def unsubscribe_queue(self, queue: asyncio.Queue[AuthState]) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, state: AuthState) -> None:
        self._value = state
        # Snapshot so (un)subscribing from a listener does not skip anyone.
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                _LOG.exception("Auth state listener %r failed", listener)
        for queue in list(self._queues):
            queue.put_nowait(state)
