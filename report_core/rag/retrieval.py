from typing import List, Sequence

from report_core.domain.corpus import ReferenceChunk, ReferenceCorpus, SearchHit


class VectorRetriever:
    """在参考语料上做 k 近邻检索。

    排序与并列分数的先后完全沿用底层索引的结果；语料为空时返回空列表。
    """

    def __init__(self, corpus: ReferenceCorpus):
        self._corpus = corpus

    def search(self, vector: Sequence[float], k: int) -> List[SearchHit]:
        if k <= 0 or len(vector) == 0:
            return []
        return self._corpus.search(vector, k)[:k]

    def retrieve(self, vector: Sequence[float], k: int) -> List[ReferenceChunk]:
        """检索并按名次取回片段正文，已不存在的 id 直接跳过。"""
        hits = self.search(vector, k)
        if not hits:
            return []
        by_id = {c.id: c for c in self._corpus.get_chunks_by_ids([h.chunk_id for h in hits])}
        return [by_id[h.chunk_id] for h in hits if h.chunk_id in by_id]
