"""检索增强（RAG）组件：向量化、向量检索与上下文拼装。"""

from report_core.rag.context import ContextAssembler, truncate_text
from report_core.rag.embedding import EmbeddingAdapter
from report_core.rag.retrieval import VectorRetriever

__all__ = ["ContextAssembler", "EmbeddingAdapter", "VectorRetriever", "truncate_text"]
