"""
Manages session transcripts: creation, appends, resets and eviction.

The store is the only owner of transcripts. Callers receive immutable tuple
snapshots and can only change a transcript through `append` and `reset`.
Requests on the same session are serialized through `exclusive()`, which the
dispatcher holds for a whole request so turns from two in-flight requests can
never interleave. `reset` waits for the same lock.

Sessions live in process memory only. The in-memory implementation bounds its
growth by evicting the least recently used sessions beyond `max_sessions` and
any session idle for longer than `max_idle_s`.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional, Tuple

from shared.models import Turn
from monitoring.metrics import ACTIVE_SESSIONS

logger = logging.getLogger(__name__)

Transcript = Tuple[Turn, ...]


class SessionStore(ABC):
    """Interface the dispatcher depends on; swap in a bounded or external store here."""

    @abstractmethod
    def get(self, session_id: str) -> Transcript:
        """Return the transcript for a session, creating an empty one if unknown."""

    @abstractmethod
    def append(self, session_id: str, turn: Turn) -> Transcript:
        """Append a turn and return the updated transcript."""

    @abstractmethod
    async def reset(self, session_id: str) -> bool:
        """Drop a session's transcript once no request holds it. Returns False if the session did not exist."""

    @abstractmethod
    def exclusive(self, session_id: str):
        """Async context manager serializing requests on one session."""

    @abstractmethod
    def __len__(self) -> int:
        ...

    @abstractmethod
    def __contains__(self, session_id: object) -> bool:
        ...


class _SessionEntry:
    __slots__ = ("turns", "lock", "last_access", "pending")

    def __init__(self, now: float):
        self.turns: List[Turn] = []
        self.lock = asyncio.Lock()
        self.last_access = now
        # Requests holding or waiting for the lock; such sessions are never evicted.
        self.pending = 0


class InMemorySessionStore(SessionStore):
    """
    Process-local session store with LRU and idle-time eviction.

    Args:
        max_sessions (Optional[int]): Upper bound on stored sessions; None disables the cap.
        max_idle_s (Optional[float]): Seconds after which an untouched session expires;
            None disables expiry.
        clock (Callable[[], float]): Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_sessions: Optional[int] = None,
        max_idle_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_sessions is not None and max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.max_sessions = max_sessions
        self.max_idle_s = max_idle_s
        self._clock = clock
        self._sessions: "OrderedDict[str, _SessionEntry]" = OrderedDict()

    def _touch(self, session_id: str) -> _SessionEntry:
        now = self._clock()
        entry = self._sessions.get(session_id)
        if entry is None:
            entry = _SessionEntry(now)
            self._sessions[session_id] = entry
            logger.debug("[_touch] Created session %s", session_id)
        else:
            entry.last_access = now
            self._sessions.move_to_end(session_id)
        self._evict(keep=session_id)
        ACTIVE_SESSIONS.set(len(self._sessions))
        return entry

    def _evict(self, keep: str) -> None:
        now = self._clock()
        if self.max_idle_s is not None:
            expired = [
                sid for sid, entry in self._sessions.items()
                if sid != keep and entry.pending == 0 and now - entry.last_access > self.max_idle_s
            ]
            for sid in expired:
                del self._sessions[sid]
            if expired:
                logger.info("[_evict] Expired %d idle sessions", len(expired))

        if self.max_sessions is not None and len(self._sessions) > self.max_sessions:
            # Oldest first; busy sessions and the one being touched are skipped.
            for sid in list(self._sessions):
                if len(self._sessions) <= self.max_sessions:
                    break
                if sid == keep or self._sessions[sid].pending:
                    continue
                del self._sessions[sid]
                logger.info("[_evict] Evicted least recently used session %s", sid)

    def get(self, session_id: str) -> Transcript:
        return tuple(self._touch(session_id).turns)

    def append(self, session_id: str, turn: Turn) -> Transcript:
        entry = self._touch(session_id)
        entry.turns.append(turn)
        return tuple(entry.turns)

    async def reset(self, session_id: str) -> bool:
        entry = self._sessions.get(session_id)
        if entry is None:
            return False
        entry.pending += 1
        try:
            async with entry.lock:
                entry.turns.clear()
        finally:
            entry.pending -= 1
        # Requests queued behind the reset keep the entry so they share its lock.
        if entry.pending == 0 and self._sessions.get(session_id) is entry:
            del self._sessions[session_id]
        ACTIVE_SESSIONS.set(len(self._sessions))
        logger.info("[reset] Cleared session %s", session_id)
        return True

    @asynccontextmanager
    async def exclusive(self, session_id: str) -> AsyncIterator[None]:
        entry = self._touch(session_id)
        entry.pending += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.pending -= 1
            entry.last_access = self._clock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
