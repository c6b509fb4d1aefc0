"""Provider 抽象接口。

上层不直接依赖具体厂商的 HTTP 调用，而是依赖这里的协议：

- ProviderClient: 对话（非流式/流式）与文本向量化。
- AssistantClient: 有状态的 Assistant 线程服务（建线程、发消息、启动运行、
  查询状态、拉取消息），供纠错任务轮询使用。

这样可以在不改业务代码的前提下替换厂商，测试里也可以直接注入假实现。
"""

from typing import Protocol, Iterable, List, Optional
from report_core.domain.jobs import ThreadMessage
from report_core.domain.models import ChatRequest, ChatResult, ChatStreamChunk


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。"""

    name: str

    def chat(self, req: ChatRequest) -> ChatResult:
        ...

    def chat_stream(self, req: ChatRequest) -> Iterable[ChatStreamChunk]:
        """执行一次流式对话调用，逐步产出增量。"""

        ...

    def embed(self, text: str, model: str) -> List[float]:
        ...


class AssistantClient(Protocol):
    """外部 Assistant 线程服务协议。"""

    def create_thread(self) -> str:
        ...

    def post_message(self, thread_id: str, content: str, role: str = "user") -> str:
        ...

    def start_run(self, thread_id: str, assistant_id: str) -> str:
        ...

    def get_run_status(self, thread_id: str, run_id: str) -> str:
        ...

    def list_messages(
        self,
        thread_id: str,
        after: Optional[str] = None,
        order: str = "asc",
    ) -> List[ThreadMessage]:
        ...
