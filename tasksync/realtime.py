"""Process-wide live event fan-out.

Every connected session receives every event it is subscribed to. There is no
per-recipient filtering on the server: `notification:created` carries the
recipient's `userId` and clients discard events addressed to someone else.

Delivery is best-effort and at-most-once. Nothing is replayed for sessions
that connect later, and a session whose queue fills up is dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Protocol

logger = logging.getLogger("tasksync.realtime")

# ---- Event names (stable API) ------------------------------------------------------

EVENT_TASK_CREATED = "task:created"
EVENT_TASK_UPDATED = "task:updated"
EVENT_TASK_DELETED = "task:deleted"
EVENT_TASK_ASSIGNED = "task:assigned"
EVENT_NOTIFICATION_CREATED = "notification:created"

EVENT_NAMES = frozenset(
    {
        EVENT_TASK_CREATED,
        EVENT_TASK_UPDATED,
        EVENT_TASK_DELETED,
        EVENT_TASK_ASSIGNED,
        EVENT_NOTIFICATION_CREATED,
    }
)


class EventEmitter(Protocol):
    """The part of the channel that the services depend on."""

    def emit(self, name: str, data: Any) -> int: ...


@dataclass(frozen=True)
class LiveEvent:
    seq: int
    name: str
    data: Any


class LiveSession:
    """One connected client.

    When `loop` is given, events are handed to that loop with
    `call_soon_threadsafe`, since emits usually come from request handler
    threads. Without a loop the queue is filled directly.
    """

    def __init__(
        self,
        *,
        user_id: str | None,
        events: Iterable[str] | None = None,
        queue_size: int = 100,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self.events = frozenset(events) if events else None
        self.queue: asyncio.Queue[LiveEvent | None] = asyncio.Queue(maxsize=max(1, int(queue_size)))
        self.closed = False
        self._loop = loop
        self._on_overflow = None

    def wants(self, name: str) -> bool:
        return self.events is None or name in self.events

    def offer(self, event: LiveEvent | None) -> None:
        if self._loop is None:
            self._put(event)
            return
        self._loop.call_soon_threadsafe(self._put, event)

    def _put(self, event: LiveEvent | None) -> None:
        if self.closed and event is not None:
            return
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Live session %s is not keeping up; dropping it", self.id)
            if self._on_overflow is not None:
                self._on_overflow(self)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.offer(None)
        except RuntimeError:
            # Owning loop already closed.
            pass

    def drain(self) -> list[LiveEvent]:
        """Return queued events without waiting (used by tests and polling clients)."""
        out: list[LiveEvent] = []
        while True:
            try:
                ev = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                return out
            if ev is not None:
                out.append(ev)


class BroadcastChannel:
    def __init__(self, *, queue_size: int = 100, max_sessions: int = 500):
        self.queue_size = int(queue_size)
        self.max_sessions = int(max_sessions)
        self._sessions: dict[str, LiveSession] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def sessions(self) -> list[LiveSession]:
        with self._lock:
            return list(self._sessions.values())

    def connect(
        self,
        *,
        user_id: str | None,
        events: Iterable[str] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> LiveSession:
        wanted = set(events) if events else None
        if wanted:
            unknown = wanted - EVENT_NAMES
            if unknown:
                raise ValueError(f"Unknown event name(s): {', '.join(sorted(unknown))}")

        session = LiveSession(user_id=user_id, events=wanted, queue_size=self.queue_size, loop=loop)
        session._on_overflow = self.disconnect

        evicted: LiveSession | None = None
        with self._lock:
            if len(self._sessions) >= self.max_sessions:
                oldest_id = next(iter(self._sessions))
                evicted = self._sessions.pop(oldest_id)
            self._sessions[session.id] = session

        if evicted is not None:
            logger.warning("Live channel at capacity (%d); evicting session %s", self.max_sessions, evicted.id)
            evicted.close()
        logger.debug("Live session %s connected (user_id=%s)", session.id, user_id)
        return session

    def disconnect(self, session: LiveSession) -> None:
        with self._lock:
            removed = self._sessions.pop(session.id, None)
        if removed is not None:
            removed.close()
            logger.debug("Live session %s disconnected", session.id)

    def emit(self, name: str, data: Any) -> int:
        """Offer an event to every connected session subscribed to `name`.

        Returns the number of sessions it was handed to.
        """
        if name not in EVENT_NAMES:
            raise ValueError(f"Unknown event name: {name}")

        event = LiveEvent(seq=next(self._seq), name=name, data=data)
        sent = 0
        dead: list[LiveSession] = []
        for session in self.sessions():
            if not session.wants(name):
                continue
            try:
                session.offer(event)
                sent += 1
            except RuntimeError:
                # Session's loop has shut down.
                dead.append(session)

        for session in dead:
            self.disconnect(session)
        return sent

    def disconnect_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()


def format_sse(event: LiveEvent) -> str:
    data = json.dumps(event.data, default=str)
    return f"id: {event.seq}\nevent: {event.name}\ndata: {data}\n\n"


async def sse_stream(
    channel: BroadcastChannel,
    session: LiveSession,
    *,
    heartbeat_seconds: float = 15.0,
    is_disconnected=None,
) -> AsyncIterator[str]:
    """Yield SSE frames for `session` until it closes or the client goes away."""
    try:
        yield ": connected\n\n"
        while True:
            if session.closed and session.queue.empty():
                break
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                event = await asyncio.wait_for(session.queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            if event is None:
                break
            yield format_sse(event)
    finally:
        channel.disconnect(session)

