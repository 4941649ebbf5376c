"""
Query Understanding Module

Provides:
- IntentClassifier: pattern-scored intent with an LRU cache
- EntityExtractor: numeric and vocabulary entity extraction
- QueryUnderstandingService: runs both concurrently and merges them
"""

from .extractor import EntityExtractor, levenshtein_distance, parse_amount
from .intent import IntentClassifier, QueryContext
from .service import QueryUnderstandingService, unmapped_terms
from .vocabulary import has_domain_term

__all__ = [
    "IntentClassifier",
    "QueryContext",
    "EntityExtractor",
    "QueryUnderstandingService",
    "has_domain_term",
    "levenshtein_distance",
    "parse_amount",
    "unmapped_terms",
]
