"""
Reference Resolution Module

Provides:
- ReferenceResolver: pronoun, positional and comparative references
- ComparativeResolver: "cheaper" / "newer" relative to active filters
- QueryRefiner: newest-wins merge with the previous search's filters
"""

from .comparatives import COMPARATIVE_TERMS, ComparativeResolver, find_comparatives, shift_value
from .references import ReferenceResolver
from .refiner import REFERENCE_FIELD, QueryRefiner

__all__ = [
    "ReferenceResolver",
    "ComparativeResolver",
    "COMPARATIVE_TERMS",
    "find_comparatives",
    "shift_value",
    "QueryRefiner",
    "REFERENCE_FIELD",
]
