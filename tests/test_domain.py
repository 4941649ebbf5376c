"""
Tests for domain entities: vehicles, constraints and query containers.
"""

from __future__ import annotations

from datetime import date

import pytest
from conftest import TODAY, make_vehicle

from vehicle_search.domain.entities import (
    ComposedQuery,
    ConstraintGroup,
    ConstraintOperator,
    ConstraintType,
    ConversationMessage,
    ConversationSession,
    MappingMetadata,
    MessageRole,
    SearchConstraint,
    SessionCounters,
    Vehicle,
)

Op = ConstraintOperator


# ============================================================================
# Vehicle
# ============================================================================


class TestVehicle:
    def test_from_dict_camel_case(self):
        vehicle = Vehicle.from_dict(
            {
                "id": 42,
                "make": "Audi",
                "model": "A3",
                "price": "15995",
                "mileage": None,
                "fuelType": "Diesel",
                "registrationDate": "2019-05-01T00:00:00Z",
                "motExpiryDate": "2027-01-31",
                "declarations": "Cat S damage, Imported",
                "popularity": "0.7",
            }
        )
        assert vehicle.id == "42"
        assert vehicle.price == 15995.0
        assert vehicle.mileage == 0
        assert vehicle.fuel_type == "Diesel"
        assert vehicle.registration_date == date(2019, 5, 1)
        assert vehicle.mot_expiry_date == date(2027, 1, 31)
        assert vehicle.declarations == ["Cat S damage", "Imported"]
        assert vehicle.popularity == 0.7

    def test_from_dict_snake_case(self):
        vehicle = Vehicle.from_dict({"id": "a", "make": "Kia", "model": "Ceed", "price": 9000, "body_type": "Estate"})
        assert vehicle.body_type == "Estate"

    def test_to_dict_uses_index_names(self, sample_vehicles):
        data = sample_vehicles[0].to_dict()
        assert data["fuelType"] == "Petrol"
        assert data["registrationDate"] == "2021-03-01"
        assert data["saleLocation"] == "Manchester"

    def test_field_value(self, sample_vehicles):
        v1 = sample_vehicles[0]
        assert v1.field_value("transmissionType") == "Automatic"
        assert v1.field_value("horsepower") is None

    def test_age_and_display_name(self):
        vehicle = make_vehicle("x", "Ford", "Focus", 9000, derivative="ST-Line", registration_date=date(2024, 10, 18))
        assert vehicle.display_name == "Ford Focus ST-Line"
        assert vehicle.age_years(TODAY) == pytest.approx(2.0, abs=0.01)
        assert make_vehicle("y", "Ford", "Ka", 2000).age_years(TODAY) is None

    def test_searchable_text(self, sample_vehicles):
        text = sample_vehicles[0].searchable_text()
        assert "BMW" in text
        assert "Heated Seats" in text
        assert "executive saloon" in text


# ============================================================================
# SearchConstraint
# ============================================================================


class TestSearchConstraint:
    def test_list_values_become_tuples(self):
        constraint = SearchConstraint("make", Op.IN, ["BMW", "Audi"])
        assert constraint.value == ("BMW", "Audi")

    @pytest.mark.parametrize(
        ("operator", "value"),
        [(Op.BETWEEN, (1,)), (Op.BETWEEN, 5), (Op.IN, ()), (Op.IN, "BMW")],
    )
    def test_invalid_shapes(self, operator, value):
        with pytest.raises(ValueError):
            SearchConstraint("price", operator, value)

    def test_filterable(self):
        assert SearchConstraint("make", Op.EQUALS, "BMW").is_filterable
        assert not SearchConstraint("make", Op.EQUALS, "BMW", ConstraintType.SEMANTIC).is_filterable

    @pytest.mark.parametrize(
        ("constraint", "expected"),
        [
            (SearchConstraint("make", Op.EQUALS, "bmw"), True),
            (SearchConstraint("make", Op.NOT_EQUALS, "BMW"), False),
            (SearchConstraint("price", Op.LESS_THAN, 18500), False),
            (SearchConstraint("price", Op.LESS_THAN_OR_EQUAL, 18500), True),
            (SearchConstraint("mileage", Op.GREATER_THAN, 30000), True),
            (SearchConstraint("engineSize", Op.GREATER_THAN_OR_EQUAL, 2.0), True),
            (SearchConstraint("price", Op.BETWEEN, (15000, 20000)), True),
            (SearchConstraint("registrationDate", Op.BETWEEN, (date(2021, 1, 1), date(2021, 12, 31))), True),
            (SearchConstraint("registrationDate", Op.GREATER_THAN_OR_EQUAL, date(2022, 1, 1)), False),
            (SearchConstraint("features", Op.CONTAINS, "heated"), True),
            (SearchConstraint("description", Op.CONTAINS, "SPORTY"), True),
            (SearchConstraint("saleLocation", Op.IN, ("Leeds", "manchester")), True),
            (SearchConstraint("features", Op.IN, ("Sat Nav", "Sunroof")), True),
            (SearchConstraint("colour", Op.EQUALS, "Red"), False),
            (SearchConstraint("numberOfSeats", Op.EQUALS, 5), False),
            (SearchConstraint("horsepower", Op.EQUALS, 200), False),
        ],
    )
    def test_matches(self, sample_vehicles, constraint, expected):
        assert constraint.matches(sample_vehicles[0]) is expected

    def test_string_values_compared_numerically(self):
        vehicle = make_vehicle("x", "Ford", "Focus", 9000, colour="1999")
        assert SearchConstraint("colour", Op.GREATER_THAN, 1000).matches(vehicle)

    def test_incomparable_values_do_not_match(self, sample_vehicles):
        assert not SearchConstraint("make", Op.GREATER_THAN, 5).matches(sample_vehicles[0])

    def test_bounds(self):
        assert SearchConstraint("price", Op.GREATER_THAN, 5).bounds() == (5, None)
        assert SearchConstraint("price", Op.LESS_THAN_OR_EQUAL, 9).bounds() == (None, 9)
        assert SearchConstraint("price", Op.BETWEEN, (5, 9)).bounds() == (5, 9)
        assert SearchConstraint("features", Op.CONTAINS, "x").bounds() == (None, None)

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("ge", Op.GREATER_THAN_OR_EQUAL),
            ("LessThan", Op.LESS_THAN),
            ("greater_than_or_equal", Op.GREATER_THAN_OR_EQUAL),
            (" In ", Op.IN),
        ],
    )
    def test_operator_parse(self, text, expected):
        assert ConstraintOperator.parse(text) is expected

    def test_operator_parse_unknown(self):
        with pytest.raises(ValueError):
            ConstraintOperator.parse("near")


# ============================================================================
# Query containers
# ============================================================================


class TestQueryContainers:
    def test_mapping_metadata_counts(self):
        meta = MappingMetadata.from_constraints(
            [
                SearchConstraint("make", Op.EQUALS, "BMW"),
                SearchConstraint("price", Op.LESS_THAN, 1, ConstraintType.RANGE),
                SearchConstraint("fuelType", Op.EQUALS, "Electric", ConstraintType.SEMANTIC),
                SearchConstraint("make", Op.IN, ("A", "B"), ConstraintType.COMPOSITE),
            ]
        )
        assert (meta.total_constraints, meta.exact_matches, meta.range_filters) == (4, 1, 1)
        assert (meta.semantic_filters, meta.composite_filters) == (1, 1)

    def test_composed_query_views(self):
        make = SearchConstraint("make", Op.EQUALS, "BMW")
        concept = SearchConstraint("fuelType", Op.EQUALS, "Electric", ConstraintType.SEMANTIC)
        composed = ComposedQuery(
            groups=[ConstraintGroup("make", [make]), ConstraintGroup("fuelType", [concept])]
        )
        assert composed.constraints == [make, concept]
        assert composed.filterable_constraints == [make]
        assert composed.semantic_constraints == [concept]
        assert composed.constraint_for("fuelType") is concept
        assert composed.constraint_for("price") is None


class TestConversation:
    def test_last_user_query(self):
        session = ConversationSession()
        assert session.last_user_query() is None
        session.messages.append(ConversationMessage(MessageRole.USER, "BMW under 20k"))
        session.messages.append(ConversationMessage(MessageRole.ASSISTANT, "Found 2 vehicles"))
        assert session.last_user_query() == "BMW under 20k"
        assert session.message_count == 2

    def test_off_topic_ratio(self):
        counters = SessionCounters()
        assert counters.off_topic_ratio == 0.0
        counters.total_queries = 4
        counters.off_topic_count = 3
        assert counters.off_topic_ratio == 0.75

    def test_query_history_bounded(self):
        counters = SessionCounters()
        for i in range(30):
            counters.query_history.append(f"query {i}")
        assert len(counters.query_history) == 20
        assert counters.query_history[0] == "query 10"

    def test_session_ids_unique(self):
        assert ConversationSession().session_id != ConversationSession().session_id
