"""参考语料向量存储（numpy 实现）。

片段以 JSONL 形式持久化到 <root>/corpus/chunks.jsonl，加载后在内存中维护
一个 float32 矩阵，检索时做余弦相似度并按分数降序返回。分数相同的片段
保持插入顺序（稳定排序）。
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

import numpy as np

from report_core.domain.corpus import ReferenceChunk, ReferenceCorpus, SearchHit
from report_core.domain.exceptions import BusinessError, ValidationError

DEFAULT_DIMENSION = 1536
CHUNKS_FILE = "chunks.jsonl"


class NumpyReferenceCorpus(ReferenceCorpus):
    def __init__(self, root: str | Path | None = None, dimension: int = DEFAULT_DIMENSION):
        self.dimension = int(dimension)
        self._lock = threading.Lock()
        self._ids: List[str] = []
        self._texts: Dict[str, str] = {}
        self._matrix = np.zeros((0, self.dimension), dtype=np.float32)
        self._path: Optional[Path] = None
        if root is not None:
            corpus_dir = Path(root).resolve() / "corpus"
            corpus_dir.mkdir(parents=True, exist_ok=True)
            self._path = corpus_dir / CHUNKS_FILE
            self._load()

    def __len__(self) -> int:
        return len(self._ids)

    # ---- writes --------------------------------------------------

    def insert_chunk(self, text: str, embedding: Sequence[float]) -> str:
        vec = self._as_vector(embedding)
        cid = f"c-{uuid4().hex}"
        with self._lock:
            if self._path is not None:
                line = json.dumps({"id": cid, "text": text, "embedding": vec.tolist()}, ensure_ascii=False)
                try:
                    with self._path.open("a", encoding="utf-8") as f:
                        f.write(line + "\n")
                except Exception as e:
                    raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
            self._append(cid, text, vec)
        return cid

    # ---- reads ---------------------------------------------------

    def search(self, embedding: Sequence[float], k: int) -> List[SearchHit]:
        if k <= 0:
            return []
        query = self._as_vector(embedding)
        with self._lock:
            if not self._ids:
                return []
            matrix = self._matrix
            ids = list(self._ids)
        q_norm = float(np.linalg.norm(query))
        norms = np.linalg.norm(matrix, axis=1)
        denom = norms * (q_norm if q_norm > 0 else 1.0)
        denom[denom == 0] = 1.0
        scores = (matrix @ query) / denom
        order = np.argsort(-scores, kind="stable")[:k]
        return [SearchHit(chunk_id=ids[i], score=float(scores[i])) for i in order]

    def get_chunks_by_ids(self, ids: Sequence[str]) -> List[ReferenceChunk]:
        chunks: List[ReferenceChunk] = []
        with self._lock:
            positions = {cid: i for i, cid in enumerate(self._ids)}
            for cid in ids:
                pos = positions.get(cid)
                if pos is None:
                    continue
                chunks.append(
                    ReferenceChunk(id=cid, text=self._texts[cid], embedding=self._matrix[pos].tolist())
                )
        return chunks

    # ---- helpers -------------------------------------------------

    def _as_vector(self, embedding: Sequence[float]) -> np.ndarray:
        vec = np.asarray(embedding, dtype=np.float32).reshape(-1)
        if vec.shape[0] != self.dimension:
            raise ValidationError(
                code="DIMENSION_MISMATCH",
                message=f"expected {self.dimension}-dim vector, got {vec.shape[0]}",
            )
        return vec

    def _append(self, cid: str, text: str, vec: np.ndarray) -> None:
        self._ids.append(cid)
        self._texts[cid] = text
        self._matrix = np.vstack([self._matrix, vec[None, :]])

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        rows: List[np.ndarray] = []
        for line in self._path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict) or "id" not in data or "embedding" not in data:
                raise BusinessError(code="STORE_READ_ERROR", message=f"malformed corpus line in {self._path}")
            vec = self._as_vector(data["embedding"])
            self._ids.append(data["id"])
            self._texts[data["id"]] = data.get("text") or ""
            rows.append(vec)
        if rows:
            self._matrix = np.vstack(rows).astype(np.float32)
