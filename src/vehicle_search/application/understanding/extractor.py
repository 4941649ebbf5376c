"""
EntityExtractor - typed spans from free text.

Extraction runs in passes. Each pass claims the character spans it
matches, so later passes never reinterpret the same text:

    1. Numeric ranges   "between £15k and £20k", "£15k-£20k", "20-40k miles"
    2. Engine size      "2.0L", "1.6 litre"
    3. Mileage          "50k miles", "low mileage", "mileage under 60,000"
    4. Years            1900-2029, not preceded by a currency sign
    5. Prices           "£25k", "25,000", "20000 pounds" (>= 1000 only)
    6. Vocabulary       makes, models, fuel, transmission, body type,
                        colour, features, locations, qualitative terms
    7. Fuzzy makes      Levenshtein distance <= 2 and < len(make) / 2

Entity values are strings: numbers are plain integers ("25000"), ranges
are "low-high", engine sizes keep one decimal ("2.0").
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from vehicle_search.application.safety.patterns import VEHICLE_KEYWORDS
from vehicle_search.domain.entities.query import EntityType, ExtractedEntity

from .vocabulary import (
    BODY_TYPES,
    COLOURS,
    FEATURE_SYNONYMS,
    FEATURES,
    FUEL_TYPES,
    LOCATIONS,
    MAKE_SYNONYMS,
    MAKES,
    MODELS,
    QUALITATIVE_TERMS,
    STOP_WORDS,
    TRANSMISSIONS,
    phrase_pattern,
)

logger = logging.getLogger(__name__)

MIN_PRICE = 1000
LOW_MILEAGE_VALUE = 30000

_NUM = r"\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?"

# =============================================================================
# Numeric Patterns
# =============================================================================

RANGE_PATTERN = re.compile(
    rf"(?P<between>between\s+)?(?P<cur1>£\s*)?(?<![\w.,])(?P<lo>{_NUM})(?:\s*(?P<k1>k)(?![a-z]))?"
    rf"\s*(?:-|to|and)\s*(?P<cur2>£\s*)?(?P<hi>{_NUM})(?:\s*(?P<k2>k)(?![a-z]))?"
    r"(?P<miles>\s*(?:miles?|mi)\b)?",
    re.IGNORECASE,
)
ENGINE_PATTERN = re.compile(r"(?<![\w.])(?P<size>\d\.\d)\s*(?:l|litres?|liters?)\b", re.IGNORECASE)
MILEAGE_PATTERN = re.compile(
    rf"(?<![\w.,])(?P<num>{_NUM})(?:\s*(?P<k>k))?\s*(?:miles?|mi)\b",
    re.IGNORECASE,
)
LOW_MILEAGE_PATTERN = re.compile(r"\blow\s+mileage\b", re.IGNORECASE)
YEAR_PATTERN = re.compile(r"(?<!£)(?<!£ )\b(?P<year>19\d{2}|20[0-2]\d)\b(?!\s*k\b)(?!,\d)", re.IGNORECASE)
PRICE_PATTERN = re.compile(
    rf"(?P<cur>£\s*)?(?<![\w.,])(?P<num>{_NUM})(?:\s*(?P<k>k)(?![a-z]))?(?:\s*(?P<pounds>pounds?|quid)\b)?",
    re.IGNORECASE,
)
# "mileage under 60k": the number belongs to mileage even without "miles"
_MILEAGE_CONTEXT = re.compile(r"\bmileage\b(?:\s+\S+){0,2}\s*$", re.IGNORECASE)

_WORD_PATTERN = re.compile(r"[A-Za-z][A-Za-z-]{2,}")

# Words never treated as misspelled makes
_FUZZY_EXCLUDED: frozenset[str] = frozenset({
    "seats", "doors", "miles", "model", "models", "price", "cheap", "cheaper",
    "newer", "older", "under", "mine", "more", "less", "than", "some", "good",
    "best", "nice", "like", "near", "around", "exactly", "please", "ones",
    "those", "these", "them", "that", "this", "first", "second", "third",
    "fourth", "fifth", "last", "previous", "lower", "higher", "family",
    "hands", "minis", "hold", "ford", "fords", "bigger", "smaller", "larger",
    "tell", "tests", "lots", "lucky", "dodgy", "mind", "flat", "audio", "data",
    "sent", "feat",
})


def parse_amount(number: str, thousands: str | None = None) -> int:
    """``"25"`` + ``"k"`` -> 25000, ``"25,000"`` -> 25000, ``"15.5"`` + ``"k"`` -> 15500."""
    value = float(number.replace(",", ""))
    if thousands:
        value *= 1000
    return int(round(value))


def _looks_like_year(value: int) -> bool:
    return 1900 <= value <= 2029


def levenshtein_distance(a: str, b: str) -> int:
    """Compute Levenshtein edit distance between two strings."""
    if len(a) > len(b):
        a, b = b, a
    distances: list[int] = list(range(len(a) + 1))
    for j, ch_b in enumerate(b):
        new_distances = [j + 1]
        for i, ch_a in enumerate(a):
            if ch_a == ch_b:
                new_distances.append(distances[i])
            else:
                new_distances.append(1 + min(distances[i], distances[i + 1], new_distances[-1]))
        distances = new_distances
    return distances[-1]


class _SpanTracker:
    """Character spans already claimed by an earlier extraction pass."""

    def __init__(self) -> None:
        self._spans: list[tuple[int, int]] = []

    def is_free(self, start: int, end: int) -> bool:
        return all(end <= s or start >= e for s, e in self._spans)

    def claim(self, start: int, end: int) -> None:
        self._spans.append((start, end))


class EntityExtractor:
    """
    Deterministic, table-driven entity extraction.

    ``qualitative_terms`` extends the built-in qualitative vocabulary, so
    concepts added through configuration are recognized in text.

    Example:
        extractor = EntityExtractor()
        entities = await extractor.extract("BMW under £25k in Manchester")
        [(e.type, e.value) for e in entities]
        # [(MAKE, 'BMW'), (PRICE, '25000'), (LOCATION, 'Manchester')]
    """

    def __init__(self, qualitative_terms: Iterable[str] = ()) -> None:
        terms = {t.lower() for t in QUALITATIVE_TERMS} | {t.lower() for t in qualitative_terms}
        self._qualitative = {t: t for t in terms}
        self._make_re = phrase_pattern(MAKES)
        self._make_synonym_re = phrase_pattern(MAKE_SYNONYMS)
        self._model_re = phrase_pattern(MODELS)
        # features first: "android auto" is a feature, not a gearbox
        self._tables: tuple[tuple[EntityType, Mapping[str, str], re.Pattern[str], float], ...] = (
            (EntityType.FEATURE, FEATURES, phrase_pattern(FEATURES), 0.85),
            (EntityType.FEATURE, FEATURE_SYNONYMS, phrase_pattern(FEATURE_SYNONYMS), 0.8),
            (EntityType.FUEL_TYPE, FUEL_TYPES, phrase_pattern(FUEL_TYPES), 0.95),
            (EntityType.TRANSMISSION, TRANSMISSIONS, phrase_pattern(TRANSMISSIONS), 0.95),
            (EntityType.BODY_TYPE, BODY_TYPES, phrase_pattern(BODY_TYPES), 0.9),
            (EntityType.COLOUR, COLOURS, phrase_pattern(COLOURS), 0.9),
            (EntityType.LOCATION, LOCATIONS, phrase_pattern(LOCATIONS), 0.9),
            (EntityType.QUALITATIVE_TERM, self._qualitative, phrase_pattern(self._qualitative), 0.75),
        )
        self._known_words = (
            set(VEHICLE_KEYWORDS)
            | set(STOP_WORDS)
            | set(FUEL_TYPES)
            | set(TRANSMISSIONS)
            | set(BODY_TYPES)
            | set(COLOURS)
            | set(LOCATIONS)
            | set(self._qualitative)
            | _FUZZY_EXCLUDED
        )
        self._fuzzy_makes = {k: v for k, v in MAKES.items() if len(k) >= 4 and " " not in k}

    async def extract(self, query: str) -> list[ExtractedEntity]:
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        spans = _SpanTracker()
        entities: list[ExtractedEntity] = []
        entities += self._extract_ranges(query, spans)
        entities += self._extract_engine_sizes(query, spans)
        entities += self._extract_mileage(query, spans)
        entities += self._extract_years(query, spans)
        entities += self._extract_prices(query, spans)
        entities += self._extract_makes_and_models(query, spans)
        for entity_type, table, pattern, confidence in self._tables:
            entities += self._extract_table(query, spans, entity_type, table, pattern, confidence)
        entities += self._extract_fuzzy_makes(query, spans, entities)

        entities = self._deduplicate(entities)
        entities.sort(key=lambda e: e.start)
        logger.debug(f"Extracted {len(entities)} entities from query: {query[:50]}")
        return entities

    # =====================================================================
    # Numeric passes
    # =====================================================================

    def _extract_ranges(self, query: str, spans: _SpanTracker) -> list[ExtractedEntity]:
        found = []
        for m in RANGE_PATTERN.finditer(query):
            k1, k2 = m.group("k1"), m.group("k2")
            lo = parse_amount(m.group("lo"), k1)
            hi = parse_amount(m.group("hi"), k2)
            # "£15-20k": the suffix applies to both ends
            if k2 and not k1 and lo < 1000 <= hi:
                lo *= 1000
            is_mileage = bool(m.group("miles"))
            has_money_marker = bool(m.group("cur1") or m.group("cur2") or k1 or k2)
            if not is_mileage and not has_money_marker and _looks_like_year(lo) and _looks_like_year(hi):
                continue
            if not is_mileage and not (has_money_marker or m.group("between")) and hi < MIN_PRICE:
                continue
            if lo > hi:
                lo, hi = hi, lo
            if not is_mileage and lo < MIN_PRICE:
                continue

            start = m.start("lo") if not m.group("between") else m.start()
            if m.group("cur1"):
                start = min(start, m.start("cur1"))
            end = m.end()
            if not spans.is_free(start, end):
                continue
            spans.claim(start, end)
            entity_type = EntityType.MILEAGE if is_mileage else EntityType.PRICE_RANGE
            found.append(ExtractedEntity(entity_type, f"{lo}-{hi}", 1.0, start, end))
        return found

    def _extract_engine_sizes(self, query: str, spans: _SpanTracker) -> list[ExtractedEntity]:
        found = []
        for m in ENGINE_PATTERN.finditer(query):
            if spans.is_free(m.start(), m.end()):
                spans.claim(m.start(), m.end())
                found.append(ExtractedEntity(EntityType.ENGINE_SIZE, m.group("size"), 0.9, m.start(), m.end()))
        return found

    def _extract_mileage(self, query: str, spans: _SpanTracker) -> list[ExtractedEntity]:
        found = []
        for m in MILEAGE_PATTERN.finditer(query):
            if spans.is_free(m.start(), m.end()):
                spans.claim(m.start(), m.end())
                value = parse_amount(m.group("num"), m.group("k"))
                found.append(ExtractedEntity(EntityType.MILEAGE, str(value), 0.95, m.start(), m.end()))
        for m in LOW_MILEAGE_PATTERN.finditer(query):
            if spans.is_free(m.start(), m.end()):
                spans.claim(m.start(), m.end())
                found.append(
                    ExtractedEntity(EntityType.MILEAGE, str(LOW_MILEAGE_VALUE), 0.7, m.start(), m.end())
                )
        return found

    def _extract_years(self, query: str, spans: _SpanTracker) -> list[ExtractedEntity]:
        found = []
        for m in YEAR_PATTERN.finditer(query):
            if spans.is_free(m.start(), m.end()):
                spans.claim(m.start(), m.end())
                found.append(ExtractedEntity(EntityType.YEAR, m.group("year"), 0.95, m.start(), m.end()))
        return found

    def _extract_prices(self, query: str, spans: _SpanTracker) -> list[ExtractedEntity]:
        found = []
        for m in PRICE_PATTERN.finditer(query):
            value = parse_amount(m.group("num"), m.group("k"))
            if value < MIN_PRICE or not spans.is_free(m.start(), m.end()):
                continue
            spans.claim(m.start(), m.end())
            if _MILEAGE_CONTEXT.search(query[: m.start()]):
                found.append(ExtractedEntity(EntityType.MILEAGE, str(value), 0.85, m.start(), m.end()))
                continue
            marked = m.group("cur") or m.group("k") or m.group("pounds")
            found.append(ExtractedEntity(EntityType.PRICE, str(value), 0.95 if marked else 0.9, m.start(), m.end()))
        return found

    # =====================================================================
    # Vocabulary passes
    # =====================================================================

    def _extract_makes_and_models(self, query: str, spans: _SpanTracker) -> list[ExtractedEntity]:
        found = []
        for pattern, table, confidence in (
            (self._make_re, MAKES, 1.0),
            (self._make_synonym_re, MAKE_SYNONYMS, 0.9),
        ):
            for m in pattern.finditer(query):
                if spans.is_free(m.start(), m.end()):
                    spans.claim(m.start(), m.end())
                    found.append(ExtractedEntity(EntityType.MAKE, table[m.group(0).lower()], confidence, m.start(), m.end()))

        named_makes = {e.value for e in found}
        for m in self._model_re.finditer(query):
            if not spans.is_free(m.start(), m.end()):
                continue
            spans.claim(m.start(), m.end())
            model, make = MODELS[m.group(0).lower()]
            found.append(ExtractedEntity(EntityType.MODEL, model, 0.9, m.start(), m.end()))
            if not named_makes:
                found.append(ExtractedEntity(EntityType.MAKE, make, 0.85, m.start(), m.end()))
                named_makes.add(make)
        return found

    @staticmethod
    def _extract_table(
        query: str,
        spans: _SpanTracker,
        entity_type: EntityType,
        table: Mapping[str, str],
        pattern: re.Pattern[str],
        confidence: float,
    ) -> list[ExtractedEntity]:
        found = []
        for m in pattern.finditer(query):
            if spans.is_free(m.start(), m.end()):
                spans.claim(m.start(), m.end())
                found.append(ExtractedEntity(entity_type, table[m.group(0).lower()], confidence, m.start(), m.end()))
        return found

    def _extract_fuzzy_makes(
        self,
        query: str,
        spans: _SpanTracker,
        entities: list[ExtractedEntity],
    ) -> list[ExtractedEntity]:
        named = {e.value for e in entities if e.type is EntityType.MAKE}
        found = []
        for m in _WORD_PATTERN.finditer(query):
            word = m.group(0).lower()
            if word in self._known_words or not spans.is_free(m.start(), m.end()):
                continue
            best: tuple[int, str] | None = None
            for key, make in self._fuzzy_makes.items():
                if make in named or key[0] != word[0]:
                    continue
                distance = levenshtein_distance(word, key)
                if 0 < distance <= 2 and distance < len(key) / 2 and (best is None or distance < best[0]):
                    best = (distance, make)
            if best is not None:
                distance, make = best
                spans.claim(m.start(), m.end())
                named.add(make)
                found.append(ExtractedEntity(EntityType.MAKE, make, 0.8 - 0.1 * distance, m.start(), m.end()))
                logger.debug(f"Fuzzy make match: {word!r} -> {make} (distance {distance})")
        return found

    @staticmethod
    def _deduplicate(entities: list[ExtractedEntity]) -> list[ExtractedEntity]:
        """Keep the highest-confidence entity per (type, value)."""
        best: dict[tuple[EntityType, str], ExtractedEntity] = {}
        for entity in entities:
            key = (entity.type, entity.value.lower())
            if key not in best or entity.confidence > best[key].confidence:
                best[key] = entity
        return list(best.values())
