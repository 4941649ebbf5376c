"""
Vehicle entity - one inventory record as returned by the search backend.

Field names on the search index are camelCase (``fuelType``,
``saleLocation``); ``Vehicle.field_value`` maps those names onto the
Python attributes so constraints can be evaluated in-process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

# Index field name -> Vehicle attribute
INDEX_FIELDS: dict[str, str] = {
    "id": "id",
    "make": "make",
    "model": "model",
    "derivative": "derivative",
    "bodyType": "body_type",
    "price": "price",
    "mileage": "mileage",
    "engineSize": "engine_size",
    "fuelType": "fuel_type",
    "transmissionType": "transmission_type",
    "colour": "colour",
    "numberOfDoors": "number_of_doors",
    "numberOfSeats": "number_of_seats",
    "registrationDate": "registration_date",
    "saleLocation": "sale_location",
    "channel": "channel",
    "features": "features",
    "serviceHistoryPresent": "service_history_present",
    "numberOfServices": "number_of_services",
    "motExpiryDate": "mot_expiry_date",
    "declarations": "declarations",
    "description": "description",
}


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    # Accept "2021-03-01", "2021-03-01T00:00:00Z" and similar ISO forms
    return datetime.fromisoformat(text.replace("Z", "+00:00")).date()


@dataclass
class Vehicle:
    """A vehicle listed for sale."""

    id: str
    make: str
    model: str
    price: float
    mileage: int = 0
    derivative: str = ""
    body_type: str = ""
    engine_size: float | None = None
    fuel_type: str = ""
    transmission_type: str = ""
    colour: str = ""
    number_of_doors: int | None = None
    number_of_seats: int | None = None
    registration_date: date | None = None
    sale_location: str = ""
    channel: str = ""
    features: list[str] = field(default_factory=list)
    service_history_present: bool | None = None
    number_of_services: int | None = None
    mot_expiry_date: date | None = None
    declarations: list[str] = field(default_factory=list)
    description: str = ""
    popularity: float = 0.0

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.make, self.model, self.derivative) if p)

    def age_years(self, today: date | None = None) -> float | None:
        """Age in years since first registration."""
        if self.registration_date is None:
            return None
        today = today or date.today()
        return max(0.0, (today - self.registration_date).days / 365.25)

    def field_value(self, field_name: str) -> Any:
        """Value of an index field (camelCase name), or None if unknown."""
        attr = INDEX_FIELDS.get(field_name)
        if attr is None:
            return None
        return getattr(self, attr)

    def searchable_text(self) -> str:
        """Text used for embedding and keyword matching."""
        parts = [
            self.make,
            self.model,
            self.derivative,
            self.body_type,
            self.fuel_type,
            self.transmission_type,
            self.colour,
            " ".join(self.features),
            self.description,
        ]
        return " ".join(p for p in parts if p)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Vehicle:
        """Build from an index document (camelCase) or snake_case dict."""
        values: dict[str, Any] = {}
        for index_name, attr in INDEX_FIELDS.items():
            if index_name in data:
                values[attr] = data[index_name]
            elif attr in data:
                values[attr] = data[attr]

        for date_attr in ("registration_date", "mot_expiry_date"):
            if date_attr in values:
                values[date_attr] = _parse_date(values[date_attr])
        if "features" in values and isinstance(values["features"], str):
            values["features"] = [f.strip() for f in values["features"].split(",") if f.strip()]
        if "declarations" in values and isinstance(values["declarations"], str):
            values["declarations"] = [d.strip() for d in values["declarations"].split(",") if d.strip()]
        if "popularity" in data:
            values["popularity"] = float(data["popularity"])

        values["id"] = str(values.get("id", ""))
        values.setdefault("make", "")
        values.setdefault("model", "")
        values["price"] = float(values.get("price") or 0.0)
        values["mileage"] = int(values.get("mileage") or 0)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using index field names."""
        result: dict[str, Any] = {}
        for index_name, attr in INDEX_FIELDS.items():
            value = getattr(self, attr)
            if isinstance(value, date):
                value = value.isoformat()
            result[index_name] = value
        return result
