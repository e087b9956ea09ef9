from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import chromadb
from chromadb.config import Settings

from infra.vector.store import SearchResult, VectorStore


@dataclass
class ChromaStore(VectorStore):
    """
    Chroma-backed VectorStore.

    - Embeddings are computed by Chroma (its default function unless one is given).
    - Persistent client when `persist_dir` is set, in-memory otherwise.
    - The collection uses cosine space, so `score = 1 - distance`.
    """

    collection_name: str = "genii-content"
    persist_dir: Optional[str] = None
    embedding_function: Any = None
    client: Any = None

    _collection: Any = None

    def _get_client(self):
        if self.client is not None:
            return self.client
        if self.persist_dir:
            self.client = chromadb.PersistentClient(
                path=self.persist_dir,
                settings=Settings(anonymized_telemetry=False),
            )
        else:
            self.client = chromadb.EphemeralClient(settings=Settings(anonymized_telemetry=False))
        return self.client

    def _get_collection(self):
        if self._collection is not None:
            return self._collection

        kwargs: Dict[str, Any] = {"name": self.collection_name, "metadata": {"hnsw:space": "cosine"}}
        if self.embedding_function is not None:
            kwargs["embedding_function"] = self.embedding_function
        self._collection = self._get_client().get_or_create_collection(**kwargs)
        return self._collection

    def add_documents(self, documents: List[Dict[str, Any]]) -> None:
        if not documents:
            return
        ids: List[str] = []
        texts: List[str] = []
        metadatas: List[Dict[str, Any]] = []

        for doc in documents:
            _id = doc.get("id")
            if not _id or not isinstance(_id, str):
                raise ValueError("Each document must include a string 'id'")
            ids.append(_id)
            texts.append(str(doc.get("text") or ""))
            # Chroma metadata values must be scalars
            metadatas.append({k: v for k, v in (doc.get("metadata") or {}).items() if v is not None})

        self._get_collection().upsert(ids=ids, documents=texts, metadatas=metadatas)

    def query(self, text: str, k: int, where: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        kwargs: Dict[str, Any] = {"query_texts": [text], "n_results": k}
        if where:
            kwargs["where"] = where
        res = self._get_collection().query(**kwargs)

        ids = (res.get("ids") or [[]])[0]
        docs = (res.get("documents") or [[]])[0]
        metas = (res.get("metadatas") or [[]])[0]
        dists = (res.get("distances") or [[]])[0]

        out: List[SearchResult] = []
        for i, _id in enumerate(ids):
            meta = dict(metas[i]) if i < len(metas) and metas[i] is not None else {}
            distance = dists[i] if i < len(dists) and dists[i] is not None else 1.0
            content = docs[i] if i < len(docs) and docs[i] is not None else meta.get("content", "")
            out.append(SearchResult(id=_id, score=1.0 - float(distance), content=content, metadata=meta))
        out.sort(key=lambda r: r.score, reverse=True)
        return out

    def delete_documents(self, ids: List[str]) -> None:
        if ids:
            self._get_collection().delete(ids=ids)
