"""
Query Composition Module

Provides:
- QueryComposer: groups, conflict warnings, query type, filter expression
- ConflictResolver: contradiction widening and priority relaxation
- FilterTranslator: OData-style filter rendering
"""

from .composer import QueryComposer, classify
from .conflicts import ConflictResolver
from .filters import FilterTranslator, format_value

__all__ = [
    "QueryComposer",
    "classify",
    "ConflictResolver",
    "FilterTranslator",
    "format_value",
]
