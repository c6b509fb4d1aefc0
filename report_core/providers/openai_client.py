"""OpenAI Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 OpenAI chat/completions、embeddings 的 HTTP 请求格式。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 将响应 JSON 解析为统一的 ChatResult / ChatStreamChunk 结构。

所有传输层失败统一包装为 UpstreamServiceError 的子类，本层不做重试。
"""

import httpx
import json
from typing import Any, Dict, Iterable, List

from report_core.domain.models import (
    ChatRequest,
    ChatResult,
    ChatMessage,
    ChatChoice,
    ChatUsage,
    ChatStreamChunk,
    ChatStreamChoice,
)
from report_core.domain.exceptions import (
    ApiError,
    NetworkError,
    RateLimitError,
    UpstreamServiceError,
    ValidationError,
)
from report_core.providers.registry import OPENAI_CONFIG, ModelConfig, get_embedding_config, get_model_config


class OpenAIClient:
    """OpenAI 提供方客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - chat / chat_stream: 对话调用入口。
    - embed: 文本向量化。
    """

    name = "openai"

    def __init__(self, settings):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = settings

    # ---- 非流式 ----

    def chat(self, req: ChatRequest) -> ChatResult:
        model_cfg = get_model_config(req.model)
        payload = self._build_payload(req, model_cfg, stream=False)
        data = self._post_json("/chat/completions", payload)
        return self._parse_response(data, req)

    # ---- 流式 ----

    def chat_stream(self, req: ChatRequest) -> Iterable[ChatStreamChunk]:
        """执行一次流式对话调用，逐步 yield ChatStreamChunk。"""

        headers = self._headers()
        model_cfg = get_model_config(req.model)
        payload = self._build_payload(req, model_cfg, stream=True)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=headers,
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="OpenAI rate limit", http_status=429)
                    if resp.status_code >= 400:
                        resp.read()
                        raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
                    for line in resp.iter_lines():
                        if not line:
                            continue
                        data_str = line
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        else:
                            data_str = data_str.strip()
                        if not data_str or data_str == "[DONE]":
                            continue
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        if payload_chunk.get("error"):
                            raise ApiError(code="API_ERROR", message=json.dumps(payload_chunk["error"]))
                        yield self._parse_stream_chunk(payload_chunk, req)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    # ---- 向量化 ----

    def embed(self, text: str, model: str) -> List[float]:
        emb_cfg = get_embedding_config(model)
        data = self._post_json("/embeddings", {"model": emb_cfg.provider_model, "input": text})
        items = data.get("data") or []
        if not items or not isinstance(items[0].get("embedding"), list):
            raise UpstreamServiceError(code="UPSTREAM_ERROR", message="embedding response has no vector")
        return [float(x) for x in items[0]["embedding"]]

    # ---- 辅助方法 ----

    def _base_url(self) -> str:
        return (getattr(self._settings, "openai_base_url", None) or OPENAI_CONFIG.base_url).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        if not getattr(self._settings, "openai_api_key", None):
            # 配置缺失走 ValidationError，方便上层统一处理
            raise ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        return {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "Content-Type": "application/json",
        }

    def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = self._headers()
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(f"{self._base_url()}{path}", json=payload, headers=headers)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            # 限流错误交给上层做重试/退避
            raise RateLimitError(code="RATE_LIMIT", message="OpenAI rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamServiceError(code="UPSTREAM_ERROR", message=f"invalid JSON from provider: {e}")

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig, stream: bool) -> dict:
        """将 ChatRequest 转成 OpenAI 所需的请求 JSON。"""

        payload: Dict[str, Any] = {
            "model": model_cfg.provider_model,
            "messages": [{"role": m.role, "content": m.content} for m in req.messages],
            "stream": stream,
        }
        temperature = req.temperature if req.temperature is not None else model_cfg.default_temperature
        if temperature is not None:
            payload["temperature"] = temperature
        if req.top_p is not None:
            payload["top_p"] = req.top_p
        max_tokens = req.max_tokens or model_cfg.max_tokens
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if req.response_format == "json_object":
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        """将原始响应 JSON 解析为统一的 ChatResult。"""

        choices: list[ChatChoice] = []
        for i, ch in enumerate(data.get("choices", [])):
            msg = ch.get("message") or {}
            cm = ChatMessage(role=msg.get("role") or "assistant", content=msg.get("content") or "")
            choices.append(ChatChoice(index=i, message=cm, finish_reason=ch.get("finish_reason")))
        return ChatResult(
            provider=self.name,
            model=req.model,
            choices=choices,
            usage=self._parse_usage(data.get("usage")),
            raw=data,
        )

    def _parse_stream_chunk(self, data: dict, req: ChatRequest) -> ChatStreamChunk:
        """解析流式响应中的单条增量。"""

        choices: list[ChatStreamChoice] = []
        for i, ch in enumerate(data.get("choices", [])):
            delta_payload = ch.get("delta") or {}
            delta_msg = ChatMessage(
                role=delta_payload.get("role") or "assistant",
                content=delta_payload.get("content") or "",
            )
            choices.append(
                ChatStreamChoice(
                    index=ch.get("index", i),
                    delta=delta_msg,
                    finish_reason=ch.get("finish_reason"),
                )
            )
        return ChatStreamChunk(
            provider=self.name,
            model=req.model,
            choices=choices,
            usage=self._parse_usage(data.get("usage")),
            raw=data,
        )

    @staticmethod
    def _parse_usage(usage_raw: Any) -> ChatUsage | None:
        if not usage_raw:
            return None
        return ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )
