"""
Tool: Notification Transport
Purpose: Boundary to the platform that actually shows notifications

Usage:
    from notify_engine.notifications.transport import InMemoryTransport

    transport = InMemoryTransport()
    await transport.add(descriptor)
    pending = await transport.pending_requests()

Any exception raised by `add` is treated as a delivery failure by the
scheduler.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Protocol

from notify_engine.notifications.models import TransportRequest

logger = logging.getLogger(__name__)


class NotificationTransport(Protocol):
    """Capabilities the scheduler needs from the platform transport."""

    async def add(self, request: TransportRequest) -> None: ...

    async def remove_all(self, identifiers: Iterable[str]) -> None:
        """Remove pending and delivered entries with these identifiers."""
        ...

    async def remove_all_pending(self) -> None: ...

    async def remove_all_delivered(self) -> None: ...

    async def pending_requests(self) -> list[TransportRequest]: ...


class TransportError(Exception):
    """Raised by InMemoryTransport when failure injection is on."""


class InMemoryTransport:
    """
    Transport that keeps requests in memory.

    Requests with a trigger time wait in `pending`; the rest are considered
    shown and land in `delivered`. Set `fail_with` to make `add` raise.
    """

    def __init__(self) -> None:
        self.pending: dict[str, TransportRequest] = {}
        self.delivered: dict[str, TransportRequest] = {}
        self.added: list[TransportRequest] = []
        self.fail_with: Exception | None = None
        self._lock = asyncio.Lock()

    async def add(self, request: TransportRequest) -> None:
        if self.fail_with is not None:
            raise self.fail_with

        async with self._lock:
            self.added.append(request)
            if request.fires_immediately:
                self.pending.pop(request.identifier, None)
                self.delivered[request.identifier] = request
            else:
                self.pending[request.identifier] = request

    async def remove_all(self, identifiers: Iterable[str]) -> None:
        async with self._lock:
            for identifier in identifiers:
                self.pending.pop(identifier, None)
                self.delivered.pop(identifier, None)

    async def remove_all_pending(self) -> None:
        async with self._lock:
            self.pending.clear()

    async def remove_all_delivered(self) -> None:
        async with self._lock:
            self.delivered.clear()

    async def pending_requests(self) -> list[TransportRequest]:
        async with self._lock:
            return list(self.pending.values())


__all__ = [
    "NotificationTransport",
    "TransportError",
    "InMemoryTransport",
]
