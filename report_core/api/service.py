"""对外 API 服务模块。

提供简化的函数接口供上层 HTTP/UI 应用调用。组件在首次使用时按全局配置
组装一次；各组件本身只依赖构造时传入的配置与客户端。
"""

import threading
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Sequence

from report_core.config.settings import settings
from report_core.agents.answer_agent import AnswerConfig, AnswerEngine
from report_core.agents.correction import AsyncJobPoller, PollConfig
from report_core.agents.report_agent import ReportAgent
from report_core.domain.exceptions import ValidationError
from report_core.infrastructure.logging.logger import logger
from report_core.infrastructure.storage.json_store import JsonSessionStore
from report_core.infrastructure.storage.record_store import JsonRecordStore
from report_core.infrastructure.storage.turn_guard import SessionTurnGuard
from report_core.infrastructure.storage.vector_store import NumpyReferenceCorpus
from report_core.prompts import ANSWER, load_system_prompt
from report_core.providers import create_assistant_client, create_provider
from report_core.providers.base import AssistantClient
from report_core.rag import ContextAssembler, EmbeddingAdapter, VectorRetriever


@dataclass
class Services:
    sessions: JsonSessionStore
    corpus: NumpyReferenceCorpus
    records: JsonRecordStore
    embedder: EmbeddingAdapter
    answer_engine: AnswerEngine
    report_agent: ReportAgent
    assistant_client: AssistantClient
    poll_config: PollConfig
    correction_assistant_id: Optional[str] = None


_services: Optional[Services] = None
_services_lock = threading.Lock()


def build_services(cfg=None) -> Services:
    """按给定配置组装全部组件。"""
    cfg = cfg or settings
    provider = create_provider(cfg)
    sessions = JsonSessionStore(root=cfg.storage_root)
    embedder = EmbeddingAdapter(provider, model=cfg.embedding_model)
    corpus = NumpyReferenceCorpus(root=cfg.storage_root, dimension=embedder.dimension)
    records = JsonRecordStore(root=cfg.storage_root)
    retriever = VectorRetriever(corpus)
    answer_engine = AnswerEngine(
        store=sessions,
        provider_client=provider,
        embedder=embedder,
        retriever=retriever,
        assembler=ContextAssembler(load_system_prompt(ANSWER)),
        turn_guard=SessionTurnGuard(),
        config=AnswerConfig(model=cfg.default_model, retrieval_k=cfg.retrieval_k),
    )
    report_agent = ReportAgent(
        provider_client=provider,
        records=records,
        embedder=embedder,
        retriever=retriever,
        model=cfg.default_model,
        crime_element_k=cfg.crime_element_k,
    )
    return Services(
        sessions=sessions,
        corpus=corpus,
        records=records,
        embedder=embedder,
        answer_engine=answer_engine,
        report_agent=report_agent,
        assistant_client=create_assistant_client(cfg),
        poll_config=PollConfig.from_settings(cfg),
        correction_assistant_id=getattr(cfg, "correction_assistant_id", None),
    )


def get_services() -> Services:
    """获取默认组件集合（单例）。"""
    global _services
    with _services_lock:
        if _services is None:
            _services = build_services(settings)
        return _services


def _message_dict(m) -> Dict[str, Any]:
    return {
        "id": m.id,
        "session_id": m.session_id,
        "is_from_user": m.is_from_user,
        "text": m.text,
        "created_at": m.created_at.isoformat(),
    }


def send_message(session_id: str, text: str) -> Dict[str, Any]:
    """追加用户消息并流式生成回答，返回最终的机器人消息。

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    try:
        reply = get_services().answer_engine.send_message(session_id, text)
        return _message_dict(reply)
    except Exception as e:
        logger.error(f"Answer failed: {e}", extra={"extra": {
            "session_id": session_id,
            "error": str(e),
        }})
        raise


def answer(session_id: str) -> Dict[str, Any]:
    """针对会话中已有的最后一条消息生成回答。"""
    try:
        return _message_dict(get_services().answer_engine.answer(session_id))
    except Exception as e:
        logger.error(f"Answer failed: {e}", extra={"extra": {
            "session_id": session_id,
            "error": str(e),
        }})
        raise


def get_messages(session_id: str) -> List[Dict[str, Any]]:
    """获取会话的所有消息（插入顺序）。"""
    return [_message_dict(m) for m in get_services().sessions.list_messages_by_session(session_id)]


def correction(text: str, cancel: Optional[threading.Event] = None):
    """提交纠错任务并等待结果：成功时返回新消息列表，失败时返回兜底文案。"""
    try:
        svc = get_services()
        poller = AsyncJobPoller(
            client=svc.assistant_client,
            assistant_id=svc.correction_assistant_id,
            config=svc.poll_config,
        )
        result = poller.run(text, cancel=cancel)
    except Exception as e:
        logger.error(f"Correction failed: {e}", extra={"extra": {"error": str(e)}})
        raise
    if isinstance(result, str):
        return result
    return [{"id": m.id, "role": m.role, "text": m.text, "created_at": m.created_at} for m in result]


def validate_report(
    booking_id: Optional[str] = None,
    selected_codes: Optional[Sequence[Any]] = None,
    report_text: Optional[str] = None,
) -> Dict[str, Any]:
    try:
        analysis = get_services().report_agent.validate_report(booking_id, selected_codes, report_text)
    except Exception as e:
        logger.error(f"Report validation failed: {e}", extra={"extra": {"booking_id": booking_id, "error": str(e)}})
        raise
    return analysis.model_dump()


def suggest_improvements(
    selected_codes: Optional[Sequence[Any]] = None,
    report_text: Optional[str] = None,
) -> str:
    try:
        return get_services().report_agent.suggest_improvements(selected_codes, report_text)
    except Exception as e:
        logger.error(f"Suggestion failed: {e}", extra={"extra": {"error": str(e)}})
        raise


def generate_example(selected_codes: Optional[Sequence[Any]] = None, text: Optional[str] = None) -> str:
    try:
        return get_services().report_agent.generate_example(selected_codes, text)
    except Exception as e:
        logger.error(f"Example generation failed: {e}", extra={"extra": {"error": str(e)}})
        raise


def crime_element(pc_id: str) -> Dict[str, Any]:
    try:
        return get_services().report_agent.crime_element(pc_id).model_dump()
    except Exception as e:
        logger.error(f"Crime element failed: {e}", extra={"extra": {"pc_id": pc_id, "error": str(e)}})
        raise


def ingest_reference(text: str) -> str:
    """向量化一段参考文本并写入语料，返回片段 id。"""
    svc = get_services()
    vector = svc.embedder.embed(text)
    if not vector:
        raise ValidationError(code="VALIDATION_ERROR", message="reference text is empty")
    return svc.corpus.insert_chunk(text, vector)
