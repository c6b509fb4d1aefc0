"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "report-chat"。
- provider_model：厂商实际提供的模型 ID，例如 "gpt-3.5-turbo"。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置，便于后续升级或切换。"""

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class ModelConfig:
    """单个对话逻辑模型的配置。

    context_tokens 是拼 prompt 时给长文本留的 token 预算，
    截断策略按 1 token ≈ 4 字符换算为字符上限。
    """

    logical_name: str
    provider_model: str
    context_tokens: int
    default_temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class EmbeddingModelConfig:
    logical_name: str
    provider_model: str
    dimension: int


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]
    embedding_models: Dict[str, EmbeddingModelConfig]


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    models={
        "report-chat": ModelConfig(
            logical_name="report-chat",
            provider_model="gpt-3.5-turbo",
            context_tokens=4000,
        ),
    },
    embedding_models={
        "report-embed": EmbeddingModelConfig(
            logical_name="report-embed",
            provider_model="text-embedding-ada-002",
            dimension=1536,
        ),
    },
)


def get_model_config(logical_name: str) -> ModelConfig:
    try:
        return OPENAI_CONFIG.models[logical_name]
    except KeyError:
        raise KeyError(f"Unknown chat model: {logical_name!r}") from None


def get_embedding_config(logical_name: str) -> EmbeddingModelConfig:
    try:
        return OPENAI_CONFIG.embedding_models[logical_name]
    except KeyError:
        raise KeyError(f"Unknown embedding model: {logical_name!r}") from None
