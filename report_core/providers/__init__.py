"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (openai_client、assistants_client)。
"""

from report_core.config.settings import settings
from report_core.providers.base import AssistantClient, ProviderClient
from report_core.providers.openai_client import OpenAIClient
from report_core.providers.assistants_client import OpenAIAssistantClient


def create_provider(cfg=None) -> ProviderClient:
    """用传入的配置创建对话/向量化 Provider，默认取全局配置。"""

    return OpenAIClient(cfg or settings)


def create_assistant_client(cfg=None) -> AssistantClient:
    return OpenAIAssistantClient(cfg or settings)
