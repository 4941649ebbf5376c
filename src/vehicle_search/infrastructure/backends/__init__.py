"""
Search backend and embedding adapters.
"""

from .memory import HashingEmbeddingProvider, InMemorySearchBackend, cosine_similarity
from .protocols import EmbeddingProvider, SearchBackend
from .remote import HttpEmbeddingProvider, HttpSearchBackend

__all__ = [
    "SearchBackend",
    "EmbeddingProvider",
    "InMemorySearchBackend",
    "HashingEmbeddingProvider",
    "cosine_similarity",
    "HttpSearchBackend",
    "HttpEmbeddingProvider",
]
