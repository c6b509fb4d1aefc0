"""非流式的报告生成流程：报告校验、改进建议、范例生成、罪名要件。

这些流程不做本地恢复：EmptyResponseError / ParseError / UpstreamServiceError
直接抛给调用方，由上层转换为用户可见的失败提示。
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from report_core.domain.exceptions import EmptyResponseError, NotFoundError, ParseError
from report_core.domain.models import ChatMessage, ChatRequest
from report_core.domain.records import CrimeElement, ReportAnalysis
from report_core.infrastructure.logging.logger import log_event
from report_core.infrastructure.storage.record_store import JsonRecordStore
from report_core.prompts import CRIME_ELEMENT, EXAMPLE, IMPROVE, VALIDATE, load_system_prompt
from report_core.providers.base import ProviderClient
from report_core.providers.registry import get_model_config
from report_core.rag.context import DOCUMENT_PREFIX, truncate_text
from report_core.rag.embedding import EmbeddingAdapter
from report_core.rag.retrieval import VectorRetriever


class ReportAgent:
    def __init__(
        self,
        provider_client: ProviderClient,
        records: JsonRecordStore,
        embedder: EmbeddingAdapter,
        retriever: VectorRetriever,
        model: str = "report-chat",
        crime_element_k: int = 5,
    ):
        self._provider_client = provider_client
        self._records = records
        self._embedder = embedder
        self._retriever = retriever
        self._model = model
        self._crime_element_k = crime_element_k
        self._context_tokens = get_model_config(model).context_tokens

    # ---- 报告校验 ----

    def validate_report(
        self,
        booking_id: Optional[str] = None,
        selected_codes: Optional[Sequence[Any]] = None,
        report_text: Optional[str] = None,
    ) -> ReportAnalysis:
        """按文档、法律要件、侦查质量、出庭准备四个维度给出结构化分析。"""

        form_data = self._records.get_form_data(booking_id) if booking_id else None
        text = truncate_text(report_text, self._context_tokens) if report_text else None

        parts = ["Analyze this case with the following context:"]
        if selected_codes:
            parts.append(f"PENAL CODES: {_pretty(selected_codes)}")
        if form_data:
            parts.append(f"PROBABLE CAUSE AND ADDITIONAL INFO: {_pretty(form_data)}")
        if text:
            parts.append(f"REPORT TEXT: {text}")

        content = self._complete(
            [
                ChatMessage(role="system", content=load_system_prompt(VALIDATE)),
                ChatMessage(role="user", content="\n".join(parts)),
            ],
            flow="validate_report",
            json_mode=True,
            temperature=0.7,
        )
        data = _loads(content)
        try:
            return ReportAnalysis.model_validate(data)
        except PydanticValidationError as e:
            raise ParseError(code="PARSE_ERROR", message=f"report analysis does not match schema: {e}")

    # ---- 改进建议 ----

    def suggest_improvements(
        self,
        selected_codes: Optional[Sequence[Any]] = None,
        report_text: Optional[str] = None,
    ) -> str:
        parts = ["Suggest improvements for this case:"]
        if selected_codes:
            parts.append(f"Penal Codes: {_pretty(selected_codes)}")
        if report_text:
            parts.append(f"Current Report: {truncate_text(report_text, self._context_tokens)}")
        return self._complete(
            [
                ChatMessage(role="system", content=load_system_prompt(IMPROVE)),
                ChatMessage(role="user", content="\n".join(parts)),
            ],
            flow="suggest_improvements",
        )

    # ---- 范例生成 ----

    def generate_example(
        self,
        selected_codes: Optional[Sequence[Any]] = None,
        text: Optional[str] = None,
    ) -> str:
        parts = ["Generate an example report based on these penal codes:", _pretty(selected_codes)]
        # 过短的底稿（如误输入的一两个字符）不作为参考
        if text and len(text) > 2:
            parts.append(f"And with the base report {json.dumps(text, ensure_ascii=False)}")
        return self._complete(
            [
                ChatMessage(role="system", content=load_system_prompt(EXAMPLE)),
                ChatMessage(role="user", content="\n".join(parts)),
            ],
            flow="generate_example",
        )

    # ---- 罪名要件 ----

    def crime_element(self, pc_id: str) -> CrimeElement:
        """返回罪名的构成要件；首次请求时结合检索结果生成并缓存。"""

        cached = self._records.get_crime_element_by_pc_id(pc_id)
        if cached is not None:
            return cached
        return self.generate_crime_element(pc_id)

    def generate_crime_element(self, pc_id: str) -> CrimeElement:
        pc = self._records.get_penal_code(pc_id)
        if pc is None:
            raise NotFoundError(code="NOT_FOUND", message=f"penal code {pc_id} not found", http_status=404)

        vector = self._embedder.embed(f"{pc.code_number} {pc.narrative}")
        chunks = self._retriever.retrieve(vector, self._crime_element_k)

        messages = [ChatMessage(role="system", content=load_system_prompt(CRIME_ELEMENT))]
        messages.extend(ChatMessage(role="system", content=DOCUMENT_PREFIX + c.text) for c in chunks)
        messages.append(
            ChatMessage(
                role="user",
                content=f"Create elements and CALCRIM example for: {pc.code_number} - {pc.narrative}",
            )
        )
        data = _loads(self._complete(messages, flow="crime_element", json_mode=True))
        elements = data.get("elements")
        example = data.get("calcrim_example")
        if not _is_str_list(elements) or not _is_str_list(example):
            raise ParseError(code="PARSE_ERROR", message="expected 'elements' and 'calcrim_example' string arrays")
        return self._records.create_crime_element(pc_id, elements, example)

    # ---- 辅助方法 ----

    def _complete(
        self,
        messages: List[ChatMessage],
        flow: str,
        json_mode: bool = False,
        temperature: Optional[float] = None,
    ) -> str:
        log_ctx = {"trace_id": f"tr-{uuid4().hex}", "flow": flow}
        req = ChatRequest(
            model=self._model,
            messages=messages,
            temperature=temperature,
            response_format="json_object" if json_mode else "text",
        )
        log_event(logging.INFO, "Calling provider", log_ctx, model=self._model, message_count=len(messages))
        result = self._provider_client.chat(req)
        content = result.content
        if not content:
            raise EmptyResponseError(code="EMPTY_RESPONSE", message=f"{flow}: model returned no content")
        if result.usage:
            log_event(logging.INFO, "Token usage", log_ctx, total_tokens=result.usage.total_tokens)
        return content


def _pretty(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def _loads(content: str) -> Dict[str, Any]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(code="PARSE_ERROR", message=f"invalid JSON from model: {e}")
    if not isinstance(data, dict):
        raise ParseError(code="PARSE_ERROR", message="expected a JSON object")
    return data


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)
