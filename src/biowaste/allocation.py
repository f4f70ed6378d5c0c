"""
Capacity-constrained allocation of biowaste to a diversion pathway.

The same allocator serves home composting and dedicated collection. Food
waste always has strict priority over green waste for the available capacity;
whatever does not fit is reported as surplus and forwarded by the territory
to the next pathway (collection, then residual/valorisation).
"""

from typing import NamedTuple


class FlowPair(NamedTuple):
    """A (food, green) pair of masses in tonnes/year. Food is the priority type."""
    food: float = 0.0
    green: float = 0.0

    @property
    def total(self) -> float:
        return self.food + self.green


class Allocation(NamedTuple):
    """Result of one allocator call."""
    demand: FlowPair
    allocated: FlowPair
    surplus: FlowPair

    @property
    def green_overflow(self) -> float:
        """
        Green demand that did not fit, excluding the food spillover.

        `surplus.green` is the total overflow across both types; the food part
        of it is already carried by `surplus.food`.
        """
        return max(0.0, self.demand.green - self.allocated.green)


def allocate(demand: FlowPair, capacity: float) -> Allocation:
    """
    Allocate demand against a capacity ceiling, food first.

    Args:
        demand: Intended food and green quantities (tonnes/year). Negative
            entries are treated as 0.
        capacity: Infrastructure capacity (tonnes/year). Zero or negative
            capacity allocates nothing and turns all demand into surplus.

    Returns:
        Allocation with the allocated quantities and the surplus, where
        `surplus.green` is the total spillover across both types.
    """
    food = max(0.0, float(demand.food))
    green = max(0.0, float(demand.green))
    clean_demand = FlowPair(food, green)

    if capacity <= 0:
        return Allocation(
            demand=clean_demand,
            allocated=FlowPair(0.0, 0.0),
            surplus=FlowPair(food, food + green),
        )

    allocated_food = min(capacity, food)
    remaining = max(0.0, capacity - allocated_food)
    allocated_green = min(remaining, green)

    surplus_food = max(0.0, food - capacity)
    surplus_total = max(0.0, food + green - capacity)

    return Allocation(
        demand=clean_demand,
        allocated=FlowPair(allocated_food, allocated_green),
        surplus=FlowPair(surplus_food, surplus_total),
    )
