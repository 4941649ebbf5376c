"""
Domain vocabulary used by intent classification and entity extraction.

All tables map a lower-case surface form to the canonical value stored in
the inventory index. They are module-level constants built once at import.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from vehicle_search.application.safety.patterns import VEHICLE_KEYWORDS

# =============================================================================
# Makes and Models
# =============================================================================

MAKES: Mapping[str, str] = {
    name.lower(): name
    for name in (
        "Audi", "BMW", "Mercedes-Benz", "Ford", "Toyota", "Volkswagen", "Nissan",
        "Honda", "Mazda", "Hyundai", "Kia", "Peugeot", "Renault", "Citroen",
        "Vauxhall", "Volvo", "Jaguar", "Land Rover", "Porsche", "Ferrari",
        "Lamborghini", "Bentley", "Rolls-Royce", "Aston Martin", "McLaren", "Lotus",
        "Mini", "Fiat", "Alfa Romeo", "Seat", "Skoda", "Lexus", "Infiniti", "Acura",
        "Subaru", "Mitsubishi", "Suzuki", "Dacia", "MG", "Jeep", "Chrysler", "Dodge",
        "Tesla", "Rivian", "Lucid", "Polestar",
    )
} | {"mercedes": "Mercedes-Benz"}

MAKE_SYNONYMS: Mapping[str, str] = {
    "beamer": "BMW",
    "beemer": "BMW",
    "bimmer": "BMW",
    "merc": "Mercedes-Benz",
    "mercs": "Mercedes-Benz",
    "vw": "Volkswagen",
    "aston": "Aston Martin",
    "landie": "Land Rover",
}

MAKE_MODELS: Mapping[str, tuple[str, ...]] = {
    "BMW": ("1 Series", "2 Series", "3 Series", "5 Series", "X1", "X3", "X5", "M3", "i3"),
    "Audi": ("A1", "A3", "A4", "A6", "Q3", "Q5", "Q7", "TT", "e-tron"),
    "Mercedes-Benz": ("A-Class", "C-Class", "E-Class", "GLA", "GLC", "EQC"),
    "Ford": ("Fiesta", "Focus", "Kuga", "Puma", "Mondeo", "Mustang", "Ranger"),
    "Volkswagen": ("Polo", "Golf", "Passat", "Tiguan", "T-Roc", "ID.3", "ID.4"),
    "Toyota": ("Yaris", "Corolla", "RAV4", "Prius", "C-HR", "Aygo"),
    "Nissan": ("Qashqai", "Juke", "Leaf", "Micra", "X-Trail"),
    "Vauxhall": ("Corsa", "Astra", "Mokka", "Grandland"),
    "Honda": ("Civic", "Jazz", "CR-V", "HR-V"),
    "Kia": ("Sportage", "Ceed", "Niro", "Picanto", "EV6"),
    "Hyundai": ("Tucson", "i10", "i20", "i30", "Kona", "Ioniq"),
    "Land Rover": ("Defender", "Discovery", "Range Rover", "Evoque"),
    "Tesla": ("Model 3", "Model Y", "Model S", "Model X"),
    "Volvo": ("XC40", "XC60", "XC90", "V60"),
    "Skoda": ("Fabia", "Octavia", "Superb", "Kodiaq", "Karoq"),
    "Peugeot": ("208", "308", "2008", "3008", "5008"),
}

# model (lower) -> (canonical model, make)
MODELS: Mapping[str, tuple[str, str]] = {
    model.lower(): (model, make)
    for make, models in MAKE_MODELS.items()
    for model in models
    # bare numbers are prices or years far more often than models
    if not model.isdigit()
}

# =============================================================================
# Attribute Tables
# =============================================================================

FUEL_TYPES: Mapping[str, str] = {
    "petrol": "Petrol",
    "diesel": "Diesel",
    "electric": "Electric",
    "ev": "Electric",
    "hybrid": "Hybrid",
    "plug-in hybrid": "Plug-in Hybrid",
    "phev": "Plug-in Hybrid",
}

TRANSMISSIONS: Mapping[str, str] = {
    "manual": "Manual",
    "automatic": "Automatic",
    "auto": "Automatic",
    "semi-automatic": "Semi-Automatic",
    "cvt": "CVT",
    "dsg": "DSG",
}

BODY_TYPES: Mapping[str, str] = {
    "saloon": "Saloon",
    "sedan": "Saloon",
    "hatchback": "Hatchback",
    "hatch": "Hatchback",
    "suv": "SUV",
    "crossover": "SUV",
    "coupe": "Coupe",
    "convertible": "Convertible",
    "cabriolet": "Convertible",
    "estate": "Estate",
    "mpv": "MPV",
    "minivan": "MPV",
    "pickup": "Pickup",
    "truck": "Pickup",
    "van": "Van",
}

COLOURS: Mapping[str, str] = {
    "black": "Black",
    "white": "White",
    "silver": "Silver",
    "grey": "Grey",
    "gray": "Grey",
    "blue": "Blue",
    "red": "Red",
    "green": "Green",
    "yellow": "Yellow",
    "orange": "Orange",
    "brown": "Brown",
    "beige": "Beige",
    "gold": "Gold",
    "purple": "Purple",
}

FEATURES: Mapping[str, str] = {
    name.lower(): name
    for name in (
        "Leather Seats", "Navigation", "Parking Sensors", "Parking Camera",
        "Reverse Camera", "Heated Seats", "Sunroof", "Panoramic Roof",
        "Alloy Wheels", "Cruise Control", "Bluetooth", "Apple CarPlay",
        "Android Auto", "Climate Control", "Keyless Entry", "Start Stop",
        "Xenon Lights", "LED Lights",
    )
}

FEATURE_SYNONYMS: Mapping[str, str] = {
    "leather": "Leather Seats",
    "sat nav": "Navigation",
    "satnav": "Navigation",
    "nav": "Navigation",
    "gps": "Navigation",
    "reversing camera": "Reverse Camera",
    "parking sensor": "Parking Sensors",
    "carplay": "Apple CarPlay",
    "panoramic sunroof": "Panoramic Roof",
    "alloys": "Alloy Wheels",
}

LOCATIONS: Mapping[str, str] = {
    name.lower(): name
    for name in (
        "London", "Manchester", "Birmingham", "Leeds", "Liverpool", "Sheffield",
        "Bristol", "Newcastle", "Nottingham", "Leicester", "Edinburgh", "Glasgow",
        "Cardiff", "Belfast", "Southampton", "Reading", "Midlands",
    )
}

# Terms recognized as qualitative even when no concept maps them; they
# reach search as semantic hints.
QUALITATIVE_TERMS: tuple[str, ...] = (
    "reliable", "economical", "family car", "sporty", "luxury", "practical",
    "efficient", "safe", "comfortable", "spacious", "compact", "fast", "powerful",
    "quiet", "stylish", "rugged", "modern", "classic",
)

STOP_WORDS: frozenset[str] = frozenset({
    "a", "an", "the", "and", "or", "but", "is", "are", "was", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "will", "would", "should",
    "could", "may", "might", "can", "i", "you", "he", "she", "it", "we", "they",
    "show", "me", "find", "get", "want", "need", "looking", "for", "with", "in",
    "on", "at", "to", "from", "of", "by", "about", "under", "over", "between",
    "what", "which", "who", "when", "where", "why", "how",
})


# =============================================================================
# Matching Helpers
# =============================================================================


def phrase_pattern(phrases: Iterable[str]) -> re.Pattern[str]:
    """
    Whole-word, case-insensitive alternation of ``phrases``.

    Longer phrases are tried first so "plug-in hybrid" wins over "hybrid" at
    the same position. Word boundaries use look-arounds so phrases that end
    in punctuation ("ID.3") still match.
    """
    alternatives = "|".join(re.escape(p) for p in sorted(set(phrases), key=len, reverse=True))
    return re.compile(rf"(?<![\w-])(?:{alternatives})(?![\w-])", re.IGNORECASE)


_DOMAIN_TERMS = (
    set(VEHICLE_KEYWORDS)
    | set(MAKES)
    | set(MAKE_SYNONYMS)
    | set(MODELS)
    | set(FUEL_TYPES)
    | set(BODY_TYPES)
    | {"price", "mileage", "motor", "motors", "model", "models"}
)
_DOMAIN_RE = phrase_pattern(_DOMAIN_TERMS)


def has_domain_term(text: str) -> bool:
    """True if ``text`` names anything vehicle-related."""
    return _DOMAIN_RE.search(text) is not None
