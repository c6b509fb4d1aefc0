import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from report_core.agents.answer_agent import (
    FALLBACK_TEXT,
    AnswerEngine,
    StreamingCompletionCoordinator,
    StreamingTurn,
    TurnState,
)
from report_core.domain.exceptions import NetworkError, TurnInProgressError, ValidationError
from report_core.domain.models import ChatMessage, ChatStreamChoice, ChatStreamChunk
from report_core.domain.session import Message
from report_core.infrastructure.storage.json_store import JsonSessionStore
from report_core.infrastructure.storage.turn_guard import SessionTurnGuard
from report_core.infrastructure.storage.vector_store import NumpyReferenceCorpus
from report_core.rag.context import ContextAssembler
from report_core.rag.embedding import EmbeddingAdapter
from report_core.rag.retrieval import VectorRetriever


class RecordingStore:
    """内存版会话存储，记录每次 patch 的文本快照。"""

    def __init__(self):
        self.messages = {}
        self.order = []
        self.snapshots = []

    def append_message(self, session_id, is_from_user, text):
        mid = f"m{len(self.order) + 1}"
        self.messages[mid] = Message(
            id=mid,
            session_id=session_id,
            is_from_user=is_from_user,
            text=text,
            created_at=datetime.now(timezone.utc),
        )
        self.order.append(mid)
        return mid

    def patch_message_text(self, message_id, text):
        self.messages[message_id].text = text
        self.snapshots.append(text)

    def get_message(self, message_id):
        return self.messages[message_id]

    def list_messages_by_session(self, session_id):
        return [self.messages[m] for m in self.order if self.messages[m].session_id == session_id]


def _chunk(text):
    return ChatStreamChunk(
        provider="fake",
        model="fake-model",
        choices=[ChatStreamChoice(index=0, delta=ChatMessage(role="assistant", content=text))],
    )


class FakeProvider:
    name = "fake"

    def __init__(self, deltas=(), error_after=None, vector=None):
        self.deltas = list(deltas)
        self.error_after = error_after
        self.vector = vector or [1.0, 0.0]
        self.requests = []
        self.embedded = []

    def chat_stream(self, req):
        self.requests.append(req)
        for i, d in enumerate(self.deltas):
            if self.error_after is not None and i == self.error_after:
                raise NetworkError(code="NETWORK_ERROR", message="connection reset")
            yield _chunk(d)
        if self.error_after is not None and self.error_after >= len(self.deltas):
            raise NetworkError(code="NETWORK_ERROR", message="connection reset")

    def chat(self, req):
        raise AssertionError("chat should not be called")

    def embed(self, text, model):
        self.embedded.append(text)
        return list(self.vector)


def _engine(store, provider, corpus=None, guard=None):
    corpus = corpus or NumpyReferenceCorpus(dimension=2)
    return AnswerEngine(
        store=store,
        provider_client=provider,
        embedder=EmbeddingAdapter(provider, dimension=2),
        retriever=VectorRetriever(corpus),
        assembler=ContextAssembler("You are a report writing assistant."),
        turn_guard=guard,
    )


def test_streaming_writes_growing_prefixes():
    store = RecordingStore()
    provider = FakeProvider(deltas=["Hel", "", "lo", " world"])
    coordinator = StreamingCompletionCoordinator(store, provider)

    reply = coordinator.run("s1", [ChatMessage(role="user", content="hi")])

    assert store.snapshots == ["Hel", "Hello", "Hello world"]
    for prev, cur in zip(store.snapshots, store.snapshots[1:]):
        assert cur.startswith(prev)
    assert reply.text == "Hello world"
    assert reply.is_from_user is False


def test_stream_failure_writes_fallback_and_reraises():
    store = RecordingStore()
    provider = FakeProvider(deltas=["Under ", "PC 488"], error_after=1)
    coordinator = StreamingCompletionCoordinator(store, provider)

    with pytest.raises(NetworkError):
        coordinator.run("s1", [ChatMessage(role="user", content="q")])

    bot = store.list_messages_by_session("s1")[-1]
    assert bot.text == FALLBACK_TEXT
    assert store.snapshots == ["Under ", FALLBACK_TEXT]


def test_failure_before_any_delta_leaves_fallback():
    store = RecordingStore()
    provider = FakeProvider(deltas=[], error_after=0)
    with pytest.raises(NetworkError):
        StreamingCompletionCoordinator(store, provider).run("s1", [])
    assert store.snapshots == [FALLBACK_TEXT]


def test_turn_rejects_illegal_transitions():
    store = RecordingStore()
    turn = StreamingTurn(store, "s1")
    with pytest.raises(RuntimeError):
        turn.apply_delta("x")
    turn.create_placeholder()
    assert turn.state is TurnState.STREAMING
    assert turn.apply_delta("") is False
    assert turn.apply_delta("x") is True
    assert turn.complete() == "x"
    with pytest.raises(RuntimeError):
        turn.fail(RuntimeError("late"))


def test_answer_end_to_end_with_retrieval():
    store = RecordingStore()
    corpus = NumpyReferenceCorpus(dimension=2)
    corpus.insert_chunk("PC 488 covers petty theft, a misdemeanor.", [1.0, 0.0])
    corpus.insert_chunk("Unrelated traffic code text.", [0.0, 1.0])
    provider = FakeProvider(deltas=["Under ", "PC 488", ", this is", " a misdemeanor."])
    engine = _engine(store, provider, corpus=corpus)

    reply = engine.send_message("s1", "Is PC 488 a felony?")

    assert provider.embedded == ["Is PC 488 a felony?"]
    assert store.snapshots == [
        "Under ",
        "Under PC 488",
        "Under PC 488, this is",
        "Under PC 488, this is a misdemeanor.",
    ]
    assert reply.text == "Under PC 488, this is a misdemeanor."

    msgs = store.list_messages_by_session("s1")
    assert [m.is_from_user for m in msgs] == [True, False]

    sent = provider.requests[0].messages
    assert sent[0].role == "system"
    assert sent[1].content == "Relevant document:\n\nPC 488 covers petty theft, a misdemeanor."
    assert sent[-1].role == "user"
    assert sent[-1].content == "Is PC 488 a felony?"


def test_answer_rejects_empty_session_and_text():
    engine = _engine(RecordingStore(), FakeProvider())
    with pytest.raises(ValidationError):
        engine.answer("empty")
    with pytest.raises(ValidationError):
        engine.send_message("s1", "   ")


def test_concurrent_turn_is_rejected():
    store = RecordingStore()
    guard = SessionTurnGuard()
    started = threading.Event()
    release = threading.Event()

    class BlockingProvider(FakeProvider):
        def chat_stream(self, req):
            started.set()
            release.wait(5)
            yield _chunk("done")

    engine = _engine(store, BlockingProvider(), guard=guard)
    store.append_message("s1", is_from_user=True, text="first")

    errors = []

    def worker():
        try:
            engine.answer("s1")
        except Exception as e:
            errors.append(e)

    t = threading.Thread(target=worker)
    t.start()
    assert started.wait(5)
    with pytest.raises(TurnInProgressError):
        engine.answer("s1")
    release.set()
    t.join(5)

    assert errors == []
    assert not guard.is_active("s1")
    bots = [m for m in store.list_messages_by_session("s1") if not m.is_from_user]
    assert len(bots) == 1
    assert bots[0].text == "done"


def test_rejected_send_message_stores_nothing():
    store = RecordingStore()
    started = threading.Event()
    release = threading.Event()

    class BlockingProvider(FakeProvider):
        def chat_stream(self, req):
            started.set()
            release.wait(5)
            yield _chunk("done")

    engine = _engine(store, BlockingProvider())
    t = threading.Thread(target=engine.send_message, args=("s1", "first"))
    t.start()
    assert started.wait(5)
    with pytest.raises(TurnInProgressError):
        engine.send_message("s1", "second")
    release.set()
    t.join(5)

    msgs = store.list_messages_by_session("s1")
    assert [(m.is_from_user, m.text) for m in msgs] == [(True, "first"), (False, "done")]


def test_json_store_reader_sees_text_grow():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        seen = []

        class ReadingProvider(FakeProvider):
            def chat_stream(self, req):
                seen.append(store.list_messages_by_session("s1")[-1].text)
                for delta in ["Under ", "PC 488", ", this is", " a misdemeanor."]:
                    yield _chunk(delta)
                    # 生成器恢复时上一段增量已写库
                    seen.append(store.list_messages_by_session("s1")[-1].text)

        reply = StreamingCompletionCoordinator(store, ReadingProvider()).run("s1", [])

        assert seen == [
            "",
            "Under ",
            "Under PC 488",
            "Under PC 488, this is",
            "Under PC 488, this is a misdemeanor.",
        ]
        for prev, cur in zip(seen, seen[1:]):
            assert cur.startswith(prev)
        assert store.list_messages_by_session("s1")[-1].text == reply.text
        assert reply.text == "Under PC 488, this is a misdemeanor."
