from dataclasses import dataclass
from typing import List, Protocol, Sequence


@dataclass(frozen=True)
class ReferenceChunk:
    """一条已索引的参考文本（如 CALCRIM 条目）及其预计算向量。"""

    id: str
    text: str
    embedding: Sequence[float]


@dataclass(frozen=True)
class SearchHit:
    chunk_id: str
    score: float


class ReferenceCorpus(Protocol):
    """参考语料存储：写入片段、按向量检索、按 id 批量取回。"""

    dimension: int

    def insert_chunk(self, text: str, embedding: Sequence[float]) -> str:
        ...

    def search(self, embedding: Sequence[float], k: int) -> List[SearchHit]:
        ...

    def get_chunks_by_ids(self, ids: Sequence[str]) -> List[ReferenceChunk]:
        ...
