"""会话级互斥回合标记。

同一会话同时只允许一轮回答生成：开始前对 "turn in progress" 标记做
compare-and-set，失败即拒绝，结束后释放。仅在单进程内生效。
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Set

from report_core.domain.exceptions import TurnInProgressError


class SessionTurnGuard:
    def __init__(self):
        self._active: Set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, session_id: str) -> bool:
        with self._lock:
            if session_id in self._active:
                return False
            self._active.add(session_id)
            return True

    def release(self, session_id: str) -> None:
        with self._lock:
            self._active.discard(session_id)

    def is_active(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._active

    @contextmanager
    def turn(self, session_id: str) -> Iterator[None]:
        if not self.try_acquire(session_id):
            raise TurnInProgressError(
                code="TURN_IN_PROGRESS",
                message=f"session {session_id} already has a reply in progress",
                http_status=409,
                session_id=session_id,
            )
        try:
            yield
        finally:
            self.release(session_id)
