from dataclasses import dataclass
from typing import List, Protocol
from datetime import datetime


@dataclass
class Message:
    id: str
    session_id: str
    is_from_user: bool
    text: str
    created_at: datetime

    @property
    def role(self) -> str:
        return "user" if self.is_from_user else "assistant"


class SessionStore(Protocol):
    """会话消息存储。单条追加与单条改写各自原子，不提供跨调用事务。"""

    def append_message(self, session_id: str, is_from_user: bool, text: str) -> str:
        ...

    def patch_message_text(self, message_id: str, text: str) -> None:
        ...

    def get_message(self, message_id: str) -> Message:
        ...

    def list_messages_by_session(self, session_id: str) -> List[Message]:
        ...
