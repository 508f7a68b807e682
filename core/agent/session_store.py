"""In-memory session store.

Ordered message log per session with a message-count ceiling (oldest
dropped) and an idle TTL (lazy cleanup on write). ``lock(session_id)``
hands out the per-session asyncio lock the orchestrator holds across a
whole turn so history order follows submission order.
"""
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from time import time
from typing import Callable, Deque, Dict, List

from core import metrics

MAX_MESSAGES = 200
SESSION_TTL_SECONDS = 24 * 60 * 60


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class ChatMessage:
    role: str  # user|assistant
    content: str
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }


class SessionStore:
    def __init__(
        self,
        max_messages: int = MAX_MESSAGES,
        ttl_s: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time,
    ) -> None:
        self._max_messages = max_messages
        self._ttl_s = ttl_s
        self._clock = clock
        self._sessions: Dict[str, Deque[ChatMessage]] = {}
        self._last_access: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._mutex = RLock()

    def append(self, session_id: str, message: ChatMessage) -> None:
        now = self._clock()
        with self._mutex:
            q = self._sessions.get(session_id)
            if q is None:
                q = deque(maxlen=self._max_messages)
                self._sessions[session_id] = q
            q.append(message)
            self._last_access[session_id] = now
            self._cleanup(now)
        metrics.inc("session_messages_total", {"role": message.role})

    def add(self, session_id: str, role: str, content: str) -> ChatMessage:
        msg = ChatMessage(role=role, content=content, timestamp=_utc_now_iso())
        self.append(session_id, msg)
        return msg

    def get(self, session_id: str) -> List[ChatMessage]:
        with self._mutex:
            return list(self._sessions.get(session_id, ()))

    def history(self, session_id: str) -> List[dict]:
        return [m.to_dict() for m in self.get(session_id)]

    def clear(self, session_id: str) -> bool:
        with self._mutex:
            self._last_access.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    def lock(self, session_id: str) -> asyncio.Lock:
        with self._mutex:
            lk = self._locks.get(session_id)
            if lk is None:
                lk = asyncio.Lock()
                self._locks[session_id] = lk
            return lk

    def _cleanup(self, now: float) -> None:
        expired = [
            sid
            for sid, ts in self._last_access.items()
            if now - ts > self._ttl_s
        ]
        for sid in expired:
            self._sessions.pop(sid, None)
            self._last_access.pop(sid, None)
            lk = self._locks.get(sid)
            if lk is not None and not lk.locked():
                self._locks.pop(sid, None)

    def stats(self) -> dict:
        with self._mutex:
            return {
                "sessions": len(self._sessions),
                "messages": sum(len(q) for q in self._sessions.values()),
            }


__all__ = ["SessionStore", "ChatMessage"]
