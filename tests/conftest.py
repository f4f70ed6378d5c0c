from typing import Any, Dict

import pytest

from biowaste.config import TerritoryParameters


def territory_payload(**overrides: Any) -> Dict[str, Any]:
    """Reference territory: 10,000 people, 1000 t food, 1500 t green."""
    payload: Dict[str, Any] = {
        "territory_id": 0,
        "population": 10000,
        "growth_rate": 0.0,
        "food_per_capita": 0.1,
        "green_per_capita": 0.15,
        "compost_food_initial": 0.3,
        "compost_green_initial": 0.2,
        "collection_food_initial": 0.0,
        "collection_green_initial": 0.0,
        "compost_capacity_initial": 1000,
        "collection_capacity_initial": 0,
        "household_size": 2.5,
        "compost_inflection": 10.0,
        "collection_inflection": 10.0,
        "compost_ramp_duration": 10.0,
        "collection_ramp_duration": 10.0,
        "avg_degree": 5.0,
    }
    payload.update(overrides)
    return payload


def make_params(**overrides: Any) -> TerritoryParameters:
    return TerritoryParameters.from_dict(territory_payload(**overrides))


@pytest.fixture
def reference_params() -> TerritoryParameters:
    return make_params()


