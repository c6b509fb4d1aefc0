from typing import List, Optional

from report_core.domain.exceptions import BusinessError, UpstreamServiceError
from report_core.providers.base import ProviderClient
from report_core.providers.registry import get_embedding_config


class EmbeddingAdapter:
    """把文本转成固定维度向量。空文本直接返回 []，不发起请求；失败不重试。"""

    def __init__(self, provider: ProviderClient, model: str = "report-embed", dimension: Optional[int] = None):
        self._provider = provider
        self._model = model
        self.dimension = dimension or get_embedding_config(model).dimension

    def embed(self, text: str) -> List[float]:
        if not text:
            return []
        try:
            vector = self._provider.embed(text, self._model)
        except BusinessError:
            raise
        except Exception as e:
            raise UpstreamServiceError(code="UPSTREAM_ERROR", message=str(e)) from e
        if len(vector) != self.dimension:
            raise UpstreamServiceError(
                code="UPSTREAM_ERROR",
                message=f"embedding has {len(vector)} dims, expected {self.dimension}",
            )
        return vector
