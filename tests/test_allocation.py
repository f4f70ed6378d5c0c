import itertools

import pytest

from biowaste.allocation import FlowPair, allocate


def test_food_has_priority_over_green() -> None:
    result = allocate(FlowPair(300.0, 300.0), 400.0)

    assert result.allocated.food == 300.0
    assert result.allocated.green == 100.0
    assert result.surplus.food == 0.0
    assert result.surplus.green == pytest.approx(200.0)
    assert result.green_overflow == pytest.approx(200.0)


def test_food_surplus_is_counted_in_total_spillover() -> None:
    result = allocate(FlowPair(500.0, 200.0), 300.0)

    assert result.allocated == FlowPair(300.0, 0.0)
    assert result.surplus.food == pytest.approx(200.0)
    assert result.surplus.green == pytest.approx(400.0)
    assert result.green_overflow == pytest.approx(200.0)


def test_zero_capacity_turns_everything_into_surplus() -> None:
    result = allocate(FlowPair(10.0, 5.0), 0.0)

    assert result.allocated == FlowPair(0.0, 0.0)
    assert result.surplus == FlowPair(10.0, 15.0)


def test_negative_demand_is_treated_as_zero() -> None:
    result = allocate(FlowPair(-3.0, 4.0), 10.0)

    assert result.demand == FlowPair(0.0, 4.0)
    assert result.allocated == FlowPair(0.0, 4.0)


@pytest.mark.parametrize(
    "food, green, capacity",
    list(itertools.product([0.0, 0.5, 120.0, 999.9], [0.0, 7.25, 640.0], [0.0, 1.0, 300.0, 5000.0])),
)
def test_allocation_respects_bounds(food: float, green: float, capacity: float) -> None:
    result = allocate(FlowPair(food, green), capacity)

    assert result.allocated.total <= capacity + 1e-12
    assert result.allocated.food <= food
    assert result.allocated.green <= green
    assert result.allocated.food >= 0.0 and result.allocated.green >= 0.0
    assert result.surplus.food >= 0.0 and result.surplus.green >= 0.0


@pytest.mark.parametrize("food, green", [(0.0, 0.0), (100.0, 0.0), (250.5, 749.5), (0.25, 0.5)])
def test_sufficient_capacity_allocates_demand_exactly(food: float, green: float) -> None:
    result = allocate(FlowPair(food, green), food + green)

    assert result.allocated == FlowPair(food, green)
    assert result.surplus == FlowPair(0.0, 0.0)
    assert result.green_overflow == 0.0
