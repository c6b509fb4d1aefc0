"""Prompt 上下文拼装与长文本截断。"""

from typing import List, Sequence

from report_core.domain.corpus import ReferenceChunk
from report_core.domain.models import ChatMessage
from report_core.domain.session import Message

MAX_TOKENS = 4000
CHARS_PER_TOKEN = 4
TRUNCATION_MARKER = "\n\n[...Content truncated for length...]\n\n"
DOCUMENT_PREFIX = "Relevant document:\n\n"


def truncate_text(text: str, max_tokens: int = MAX_TOKENS) -> str:
    """按 1 token ≈ 4 字符估算，超长时保留首尾各一半、丢弃中间。

    结果长度为 max_chars // 2 * 2 + len(TRUNCATION_MARKER)。
    """

    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    half = max_chars // 2
    return f"{text[:half]}{TRUNCATION_MARKER}{text[len(text) - half:]}"


class ContextAssembler:
    """拼装发给补全模型的消息列表。

    顺序固定：
    1. 一条 system 指令；
    2. 每个检索片段一条 system 消息（按检索名次）；
    3. 完整对话历史，按时间顺序映射为 user / assistant。
    """

    def __init__(self, system_prompt: str):
        self._system_prompt = system_prompt

    def build(self, chunks: Sequence[ReferenceChunk], history: Sequence[Message]) -> List[ChatMessage]:
        messages = [ChatMessage(role="system", content=self._system_prompt)]
        for chunk in chunks:
            messages.append(
                ChatMessage(role="system", content=DOCUMENT_PREFIX + chunk.text, meta={"chunk_id": chunk.id})
            )
        for msg in history:
            messages.append(
                ChatMessage(
                    role="user" if msg.is_from_user else "assistant",
                    content=msg.text,
                    meta={"message_id": msg.id},
                )
            )
        return messages
