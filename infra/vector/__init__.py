"""
Vector search adapters (infra).

The contract and value types live in `infra.vector.store`; import the Chroma adapter from
`infra.vector.chroma_store` so chromadb is only loaded where it is used.
"""

from infra.vector.store import SearchResult, SearchScope, VectorStore

__all__ = ["SearchResult", "SearchScope", "VectorStore"]
