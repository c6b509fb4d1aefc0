"""外部 Assistant 任务相关模型。

ExternalJob 只在一次轮询过程中存在，不做本地持久化。
"""

from dataclasses import dataclass
from typing import Optional


FAILED_STATUSES = frozenset({"failed", "expired", "cancelled"})


@dataclass(frozen=True)
class ExternalJob:
    thread_id: str
    run_id: str
    last_message_id: str


@dataclass
class ThreadMessage:
    """Assistant 线程上的一条消息（文本部分已拼接）。"""

    id: str
    role: str
    text: str
    created_at: Optional[int] = None
