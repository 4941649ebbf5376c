"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from datetime import date

import pytest

from vehicle_search.application.session import InMemorySessionStore, SessionManager
from vehicle_search.domain.entities import Vehicle
from vehicle_search.infrastructure.backends import HashingEmbeddingProvider, InMemorySearchBackend

# Fixed "today" for scoring that depends on vehicle age and MOT dates
TODAY = date(2026, 10, 18)


# ============================================================
# Clock
# ============================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def today():
    return lambda: TODAY


# ============================================================
# Inventory
# ============================================================


def make_vehicle(vehicle_id: str, make: str, model: str, price: float, **kwargs) -> Vehicle:
    """Build a Vehicle with sensible defaults for tests."""
    kwargs.setdefault("mileage", 30_000)
    return Vehicle(id=vehicle_id, make=make, model=model, price=price, **kwargs)


@pytest.fixture
def sample_vehicles() -> list[Vehicle]:
    """A small mixed inventory."""
    return [
        make_vehicle(
            "v1", "BMW", "3 Series", 18_500,
            mileage=32_000, body_type="Saloon", fuel_type="Petrol", transmission_type="Automatic",
            sale_location="Manchester", registration_date=date(2021, 3, 1), engine_size=2.0,
            service_history_present=True, number_of_services=4, mot_expiry_date=date(2027, 2, 1),
            colour="Black", features=["Sat Nav", "Heated Seats"],
            description="Sporty executive saloon with heated seats",
        ),
        make_vehicle(
            "v2", "BMW", "X5", 24_000,
            mileage=45_000, body_type="SUV", fuel_type="Diesel", transmission_type="Automatic",
            sale_location="Manchester", registration_date=date(2020, 6, 1), engine_size=3.0,
            number_of_seats=7, description="Spacious family SUV with seven seats",
        ),
        make_vehicle(
            "v3", "Audi", "A4", 16_000,
            mileage=60_000, body_type="Saloon", fuel_type="Diesel", transmission_type="Manual",
            sale_location="Leeds", registration_date=date(2019, 5, 1), engine_size=2.0,
            description="Comfortable diesel saloon for long motorway trips",
        ),
        make_vehicle(
            "v4", "Ford", "Focus", 9_000,
            mileage=72_000, body_type="Hatchback", fuel_type="Petrol", transmission_type="Manual",
            sale_location="London", registration_date=date(2017, 9, 1), engine_size=1.0,
            description="Economical first car, cheap to insure",
        ),
        make_vehicle(
            "v5", "Toyota", "Prius", 14_000,
            mileage=40_000, body_type="Hatchback", fuel_type="Hybrid", transmission_type="Automatic",
            sale_location="Manchester", registration_date=date(2020, 1, 1), engine_size=1.8,
            service_history_present=True, description="Reliable economical hybrid",
        ),
        make_vehicle(
            "v6", "Tesla", "Model 3", 27_000,
            mileage=20_000, body_type="Saloon", fuel_type="Electric", transmission_type="Automatic",
            sale_location="London", registration_date=date(2022, 4, 1),
            description="Quick electric saloon with autopilot",
        ),
        make_vehicle(
            "v7", "Volvo", "XC90", 22_000,
            mileage=110_000, body_type="SUV", fuel_type="Diesel", transmission_type="Automatic",
            sale_location="Leeds", registration_date=date(2016, 7, 1),
            declarations=["Cat N damage"], description="Safe seven seat family SUV",
        ),
        make_vehicle(
            "v8", "Honda", "Jazz", 7_000,
            mileage=55_000, body_type="Hatchback", fuel_type="Petrol", transmission_type="Manual",
            sale_location="Manchester", registration_date=date(2015, 2, 1),
            description="Small practical city car",
        ),
    ]


@pytest.fixture
def embeddings():
    return HashingEmbeddingProvider(dimensions=128)


@pytest.fixture
def backend(sample_vehicles, embeddings):
    return InMemorySearchBackend(sample_vehicles, embeddings)


# ============================================================
# Sessions
# ============================================================


@pytest.fixture
def session_manager(clock):
    """SessionManager driven by the fake clock."""
    return SessionManager(
        store=InMemorySessionStore(max_sessions=100, clock=clock),
        idle_ttl=3600.0,
        max_messages=10,
        clock=clock,
    )
