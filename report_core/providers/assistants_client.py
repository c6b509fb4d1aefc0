"""OpenAI Assistants（threads/runs）接口适配器。

纠错任务依赖有状态的远端线程：建线程 → 发用户消息 → 启动运行 →
轮询运行状态 → 拉取新消息。这里只负责单次 HTTP 调用与 JSON 解析，
轮询逻辑在 agents.correction 中。
"""

from typing import Any, Dict, List, Optional

import httpx

from report_core.domain.exceptions import (
    ApiError,
    NetworkError,
    RateLimitError,
    UpstreamServiceError,
    ValidationError,
)
from report_core.domain.jobs import ThreadMessage
from report_core.providers.registry import OPENAI_CONFIG


class OpenAIAssistantClient:
    name = "openai-assistants"

    def __init__(self, settings):
        self._settings = settings

    def create_thread(self) -> str:
        data = self._request("POST", "/threads", json={})
        return self._require_id(data, "thread")

    def post_message(self, thread_id: str, content: str, role: str = "user") -> str:
        data = self._request("POST", f"/threads/{thread_id}/messages", json={"role": role, "content": content})
        return self._require_id(data, "message")

    def start_run(self, thread_id: str, assistant_id: str) -> str:
        data = self._request("POST", f"/threads/{thread_id}/runs", json={"assistant_id": assistant_id})
        return self._require_id(data, "run")

    def get_run_status(self, thread_id: str, run_id: str) -> str:
        data = self._request("GET", f"/threads/{thread_id}/runs/{run_id}")
        status = data.get("status")
        if not isinstance(status, str):
            raise UpstreamServiceError(code="UPSTREAM_ERROR", message="run has no status")
        return status

    def list_messages(
        self,
        thread_id: str,
        after: Optional[str] = None,
        order: str = "asc",
    ) -> List[ThreadMessage]:
        params: Dict[str, Any] = {"order": order}
        if after:
            params["after"] = after
        data = self._request("GET", f"/threads/{thread_id}/messages", params=params)
        return [self._to_thread_message(item) for item in data.get("data") or []]

    # ---- 辅助方法 ----

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not getattr(self._settings, "openai_api_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        base = (getattr(self._settings, "openai_base_url", None) or OPENAI_CONFIG.base_url).rstrip("/")
        headers = {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "assistants=v2",
        }
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.request(method, f"{base}{path}", headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="OpenAI rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamServiceError(code="UPSTREAM_ERROR", message=f"invalid JSON from provider: {e}")

    @staticmethod
    def _require_id(data: Dict[str, Any], kind: str) -> str:
        rid = data.get("id")
        if not rid:
            raise UpstreamServiceError(code="UPSTREAM_ERROR", message=f"{kind} response has no id")
        return str(rid)

    @staticmethod
    def _to_thread_message(payload: Dict[str, Any]) -> ThreadMessage:
        # content 是分段列表，这里只取 text 段拼接
        parts: List[str] = []
        for block in payload.get("content") or []:
            if block.get("type") == "text":
                text = block.get("text") or {}
                parts.append(text.get("value") if isinstance(text, dict) else str(text))
        return ThreadMessage(
            id=str(payload.get("id") or ""),
            role=payload.get("role") or "assistant",
            text="".join(p for p in parts if p),
            created_at=payload.get("created_at"),
        )
