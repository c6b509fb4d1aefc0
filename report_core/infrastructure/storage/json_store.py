import hashlib
import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List
from uuid import uuid4

from report_core.config.settings import settings
from report_core.domain.session import SessionStore, Message
from report_core.domain.exceptions import BusinessError


class JsonSessionStore(SessionStore):
    """基于 JSON 文件的会话消息存储。

    目录结构：
        <root>/sessions/<session-hash>/<seq>-<message_id>.json

    每条消息单独一个文件，追加与改写都通过临时文件 + os.replace 完成，
    单次写入对并发读者是原子的。文件名前缀 seq 决定会话内顺序。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._sessions_root = self._root / "sessions"
        self._sessions_root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._paths: Dict[str, Path] = {}

    def append_message(self, session_id: str, is_from_user: bool, text: str) -> str:
        mid = f"m-{uuid4().hex}"
        sdir = self._session_dir(session_id)
        with self._lock:
            try:
                sdir.mkdir(parents=True, exist_ok=True)
                seq = sum(1 for _ in sdir.glob("*.json"))
                path = sdir / f"{seq:08d}-{mid}.json"
                payload = {
                    "id": mid,
                    "session_id": session_id,
                    "is_from_user": bool(is_from_user),
                    "text": text,
                    "created_at": _iso(datetime.now(timezone.utc)),
                }
                self._write_atomic(path, payload)
            except BusinessError:
                raise
            except Exception as e:
                raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
            self._paths[mid] = path
        return mid

    def patch_message_text(self, message_id: str, text: str) -> None:
        with self._lock:
            path = self._find(message_id)
            data = self._read(path)
            data["text"] = text
            self._write_atomic(path, data)

    def get_message(self, message_id: str) -> Message:
        with self._lock:
            path = self._find(message_id)
            return self._to_message(self._read(path))

    def list_messages_by_session(self, session_id: str) -> List[Message]:
        sdir = self._session_dir(session_id)
        items: List[Message] = []
        if not sdir.exists():
            return items
        for path in sorted(sdir.glob("*.json")):
            try:
                items.append(self._to_message(self._read(path)))
            except BusinessError:
                continue
        return items

    def _session_dir(self, session_id: str) -> Path:
        digest = hashlib.sha1(session_id.encode("utf-8")).hexdigest()[:24]
        return self._sessions_root / digest

    def _find(self, message_id: str) -> Path:
        path = self._paths.get(message_id)
        if path is not None and path.exists():
            return path
        for candidate in self._sessions_root.glob(f"*/*-{message_id}.json"):
            self._paths[message_id] = candidate
            return candidate
        raise BusinessError(code="MESSAGE_NOT_FOUND", message=message_id, http_status=404)

    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except Exception as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))

    @staticmethod
    def _write_atomic(path: Path, obj: Dict[str, Any]) -> None:
        tmp_path = path.parent / f"{path.stem}.{uuid4().hex}.tmp"
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except Exception as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _to_message(data: Dict[str, Any]) -> Message:
        return Message(
            id=data["id"],
            session_id=data["session_id"],
            is_from_user=bool(data.get("is_from_user")),
            text=data.get("text") or "",
            created_at=datetime.fromisoformat(str(data["created_at"]).replace("Z", "+00:00")),
        )


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
