"""
Attribute Mapping Module

Provides:
- AttributeMapper: entities -> typed SearchConstraints
- OperatorInference: operators from the words before a value
- ConceptTable: qualitative concepts -> semantic constraints
- ConceptSimilarityScorer: how well a vehicle fits a concept
"""

from .concepts import (
    DEFAULT_CONCEPTS,
    DEFAULT_INDICATORS,
    ConceptConstraint,
    ConceptIndicators,
    ConceptTable,
)
from .mapper import AttributeMapper
from .operators import OPERATOR_PHRASES, OperatorInference, context_before
from .similarity import ConceptScore, ConceptSimilarityScorer

__all__ = [
    "AttributeMapper",
    "OperatorInference",
    "OPERATOR_PHRASES",
    "context_before",
    "ConceptTable",
    "ConceptConstraint",
    "ConceptIndicators",
    "DEFAULT_CONCEPTS",
    "DEFAULT_INDICATORS",
    "ConceptScore",
    "ConceptSimilarityScorer",
]
