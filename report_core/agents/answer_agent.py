"""检索增强的流式回答。

一轮对话的流程：取会话历史 → 向量化最后一条用户消息 → 检索参考片段 →
拼装上下文 → 创建空的占位消息 → 流式生成并逐段写回占位消息。

流式部分是一个显式状态机（StreamingTurn），每个状态迁移及其写库副作用
都是可单独调用、单独测试的一步：

    CREATE_PLACEHOLDER -> STREAMING -> COMPLETED
                                    \\-> FAILED
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4
import logging
import time

from report_core.domain.exceptions import BusinessError, ValidationError
from report_core.domain.models import ChatMessage, ChatRequest
from report_core.domain.session import Message, SessionStore
from report_core.infrastructure.logging.logger import log_event
from report_core.infrastructure.storage.turn_guard import SessionTurnGuard
from report_core.providers.base import ProviderClient
from report_core.rag.context import ContextAssembler
from report_core.rag.embedding import EmbeddingAdapter
from report_core.rag.retrieval import VectorRetriever

FALLBACK_TEXT = "I cannot reply at this time. Reach out to the team on Discord"


class TurnState(str, Enum):
    CREATE_PLACEHOLDER = "create_placeholder"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class StreamingTurn:
    """单轮流式回答的状态与写库动作。

    每个非空增量都立即把累计全文写回占位消息（一次增量一次写入，不合并），
    因此并发读者看到的文本只会变长。
    """

    def __init__(self, store: SessionStore, session_id: str, log_ctx: Optional[Dict[str, Any]] = None):
        self._store = store
        self.session_id = session_id
        self.state = TurnState.CREATE_PLACEHOLDER
        self.message_id: Optional[str] = None
        self.delta_count = 0
        self._text = ""
        self._log_ctx = log_ctx or {}

    @property
    def text(self) -> str:
        return self._text

    def create_placeholder(self) -> str:
        self._expect(TurnState.CREATE_PLACEHOLDER)
        self.message_id = self._store.append_message(self.session_id, is_from_user=False, text="")
        self.state = TurnState.STREAMING
        log_event(logging.INFO, "Created placeholder message", self._log_ctx, message_id=self.message_id)
        return self.message_id

    def apply_delta(self, delta: Optional[str]) -> bool:
        """追加一段增量并写库；空增量忽略，返回是否发生了写入。"""
        self._expect(TurnState.STREAMING)
        if not delta:
            return False
        self._text += delta
        self._store.patch_message_text(self.message_id, self._text)
        self.delta_count += 1
        return True

    def complete(self) -> str:
        self._expect(TurnState.STREAMING)
        self.state = TurnState.COMPLETED
        log_event(
            logging.INFO,
            "Streaming completed",
            self._log_ctx,
            message_id=self.message_id,
            delta_count=self.delta_count,
            length=len(self._text),
        )
        return self._text

    def fail(self, error: BaseException) -> None:
        """写入兜底文案。原始异常由调用方继续抛出。"""
        self._expect(TurnState.STREAMING)
        self.state = TurnState.FAILED
        log_event(
            logging.ERROR,
            "Streaming failed",
            self._log_ctx,
            message_id=self.message_id,
            delta_count=self.delta_count,
            error=str(error),
        )
        try:
            self._store.patch_message_text(self.message_id, FALLBACK_TEXT)
        except BusinessError as e:
            log_event(
                logging.ERROR,
                "Failed to write fallback text",
                self._log_ctx,
                message_id=self.message_id,
                error=str(e),
            )

    def _expect(self, state: TurnState) -> None:
        if self.state is not state:
            raise RuntimeError(f"turn is {self.state.value}, expected {state.value}")


class StreamingCompletionCoordinator:
    """驱动一次流式补全：建占位消息、顺序消费增量、成功收尾或失败兜底。

    失败时先写兜底文案，再把原始异常抛给调用方；不重试、无超时、不可取消。
    """

    def __init__(
        self,
        store: SessionStore,
        provider_client: ProviderClient,
        model: str = "report-chat",
        temperature: Optional[float] = None,
    ):
        self._store = store
        self._provider_client = provider_client
        self._model = model
        self._temperature = temperature

    def run(
        self,
        session_id: str,
        messages: List[ChatMessage],
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> Message:
        log_ctx = log_ctx or {}
        turn = StreamingTurn(self._store, session_id, log_ctx)
        turn.create_placeholder()

        req = ChatRequest(model=self._model, messages=messages, temperature=self._temperature)
        log_event(
            logging.INFO,
            "Calling provider (stream)",
            log_ctx,
            provider=getattr(self._provider_client, "name", None),
            model=self._model,
            message_count=len(messages),
        )
        try:
            for chunk in self._provider_client.chat_stream(req):
                turn.apply_delta(chunk.delta_text)
        except Exception as e:
            turn.fail(e)
            raise
        turn.complete()
        return self._store.get_message(turn.message_id)


@dataclass
class AnswerConfig:
    model: str = "report-chat"
    retrieval_k: int = 8
    temperature: Optional[float] = None


class AnswerEngine:
    """一轮 RAG 对话的编排：嵌入 → 检索 → 拼装 → 流式生成。

    同一会话的并发请求由 SessionTurnGuard 串行化，后到者直接收到
    TurnInProgressError，不会再创建第二条占位消息。
    """

    def __init__(
        self,
        store: SessionStore,
        provider_client: ProviderClient,
        embedder: EmbeddingAdapter,
        retriever: VectorRetriever,
        assembler: ContextAssembler,
        turn_guard: Optional[SessionTurnGuard] = None,
        config: Optional[AnswerConfig] = None,
    ):
        self._store = store
        self._embedder = embedder
        self._retriever = retriever
        self._assembler = assembler
        self._turn_guard = turn_guard or SessionTurnGuard()
        self._config = config or AnswerConfig()
        self._coordinator = StreamingCompletionCoordinator(
            store=store,
            provider_client=provider_client,
            model=self._config.model,
            temperature=self._config.temperature,
        )

    def send_message(self, session_id: str, text: str) -> Message:
        """追加一条用户消息并生成回答。

        用户消息的写入也在回合锁内完成，被拒绝的请求不会留下无回复的消息。
        """
        if not text or not text.strip():
            raise ValidationError(code="VALIDATION_ERROR", message="message text is empty")
        with self._turn_guard.turn(session_id):
            self._store.append_message(session_id, is_from_user=True, text=text)
            return self._answer_locked(session_id)

    def answer(self, session_id: str) -> Message:
        """针对会话最后一条消息生成回答，返回最终的机器人消息。"""
        with self._turn_guard.turn(session_id):
            return self._answer_locked(session_id)

    def _answer_locked(self, session_id: str) -> Message:
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "session_id": session_id}

        history = self._store.list_messages_by_session(session_id)
        if not history:
            raise ValidationError(code="EMPTY_SESSION", message=f"session {session_id} has no messages")

        query = history[-1].text
        vector = self._embedder.embed(query)
        chunks = self._retriever.retrieve(vector, self._config.retrieval_k)
        log_event(
            logging.INFO,
            "Retrieved reference chunks",
            log_ctx,
            chunk_ids=[c.id for c in chunks],
            history_size=len(history),
        )

        messages = self._assembler.build(chunks, history)
        reply = self._coordinator.run(session_id, messages, log_ctx)

        log_event(
            logging.INFO,
            "Completed answer turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            message_id=reply.id,
        )
        return reply
