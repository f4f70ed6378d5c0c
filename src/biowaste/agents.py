"""
Household agents for the biowaste diffusion model.

This file defines:
1.  Behavior: the sorting behaviours tracked by the diffusion model
    (home composting and dedicated-collection sorting).
2.  AdopterCategory: early / mainstream / late adopter segments.
3.  HouseholdAgent: a MESA agent holding adoption thresholds, a monotone
    adoption state per behaviour and its share of the territory's waste
    flows for the current year.

Households do not compute flows themselves. The territory model decides
everything and hands each household its share; the household only records
its own adoption decision when the territory passes one in.
"""

from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

import mesa
import numpy as np

if TYPE_CHECKING:
    from .model import TerritoryModel


class Behavior(Enum):
    """Sorting behaviours spread through the peer network."""
    HOME_COMPOSTING = "home_composting"
    DEDICATED_COLLECTION = "dedicated_collection"


class AdopterCategory(Enum):
    """Diffusion-of-innovations segments."""
    EARLY = "early_adopter"
    MAINSTREAM = "mainstream"
    LATE = "late_adopter"


DEFAULT_THRESHOLD_RANGES: Dict[AdopterCategory, Tuple[float, float]] = {
    AdopterCategory.EARLY: (0.0, 0.3),
    AdopterCategory.MAINSTREAM: (0.3, 0.7),
    AdopterCategory.LATE: (0.7, 1.0),
}


def categorize_threshold(threshold: float) -> AdopterCategory:
    """Category implied by a threshold value (used for uniform draws)."""
    if threshold <= 0.3:
        return AdopterCategory.EARLY
    if threshold <= 0.7:
        return AdopterCategory.MAINSTREAM
    return AdopterCategory.LATE


def segment_counts(num_households: int, early_share: float, mainstream_share: float) -> Tuple[int, int, int]:
    """
    Split households into early / mainstream / late counts.

    Shares are percentages. Late adopters take the remainder so the counts
    always add up to num_households.
    """
    n_early = int(num_households * early_share / 100.0)
    n_mainstream = int(num_households * mainstream_share / 100.0)
    n_mainstream = min(n_mainstream, num_households - n_early)
    n_late = num_households - n_early - n_mainstream
    return n_early, n_mainstream, n_late


def sample_thresholds(rng: np.random.Generator, num_households: int, behaviors: Sequence[Behavior],
                      early_share: Optional[float] = None, mainstream_share: Optional[float] = None,
                      ranges: Optional[Dict[AdopterCategory, Tuple[float, float]]] = None
                      ) -> Tuple[Dict[Behavior, np.ndarray], List[AdopterCategory]]:
    """
    Draw one adoption threshold per household and per behaviour.

    Without adopter shares every threshold is Uniform(0, 1) and the category
    follows the first behaviour's threshold. With shares, households are
    assigned to segments in index order and each threshold is uniform over
    its segment's range.

    Returns:
        (thresholds by behaviour, category per household)
    """
    ranges = ranges or DEFAULT_THRESHOLD_RANGES
    thresholds: Dict[Behavior, np.ndarray] = {}

    if early_share is None or mainstream_share is None:
        for behavior in behaviors:
            thresholds[behavior] = rng.random(num_households)
        first = thresholds[behaviors[0]] if behaviors else np.empty(0)
        categories = [categorize_threshold(t) for t in first]
        return thresholds, categories

    n_early, n_mainstream, n_late = segment_counts(num_households, early_share, mainstream_share)
    categories = ([AdopterCategory.EARLY] * n_early
                  + [AdopterCategory.MAINSTREAM] * n_mainstream
                  + [AdopterCategory.LATE] * n_late)
    low = np.array([ranges[c][0] for c in categories], dtype=float)
    high = np.array([ranges[c][1] for c in categories], dtype=float)
    for behavior in behaviors:
        thresholds[behavior] = low + rng.random(num_households) * (high - low)
    return thresholds, categories


class HouseholdAgent(mesa.Agent):
    """
    A household of a sub-territory.

    Holds an adoption threshold and a binary adoption state for every tracked
    behaviour, plus the share of each territory flow assigned to it for the
    current year (tonnes/year).
    """

    def __init__(self, model: 'TerritoryModel', household_id: int, territory_id: int,
                 household_size: float, thresholds: Dict[Behavior, float],
                 adopter_category: AdopterCategory):
        super().__init__(model)

        # --- Identification ---
        self.household_id = household_id
        self.territory_id = territory_id  # lookup handle only, the territory owns the household
        self.household_size = household_size
        self.adopter_category = adopter_category

        # --- Social diffusion state ---
        self.thresholds: Dict[Behavior, float] = {b: float(t) for b, t in thresholds.items()}
        self.adopted: Dict[Behavior, bool] = {b: False for b in thresholds}

        # --- Assigned flows (overwritten every year by the territory) ---
        self.food_produced = 0.0
        self.green_produced = 0.0
        self.food_composted = 0.0
        self.food_collected = 0.0
        self.food_residual = 0.0
        self.green_composted = 0.0
        self.green_collected = 0.0
        self.green_valorised = 0.0

    # --- Adoption ---

    def threshold(self, behavior: Behavior) -> float:
        return self.thresholds[behavior]

    def has_adopted(self, behavior: Behavior) -> bool:
        return self.adopted.get(behavior, False)

    def update_adoption(self, behavior: Behavior, decision: bool) -> None:
        """Record the territory-evaluated decision. Adoption is never reverted."""
        if decision and not self.adopted[behavior]:
            self.adopted[behavior] = True

    @property
    def composting_adopted(self) -> bool:
        return self.has_adopted(Behavior.HOME_COMPOSTING)

    @property
    def collection_adopted(self) -> bool:
        return self.has_adopted(Behavior.DEDICATED_COLLECTION)

    # --- Flows ---

    def assign_flows(self, food_produced: float, green_produced: float,
                     food_composted: float, food_collected: float, food_residual: float,
                     green_composted: float, green_collected: float, green_valorised: float) -> None:
        """Overwrite this year's share of the territory flows."""
        self.food_produced = food_produced
        self.green_produced = green_produced
        self.food_composted = food_composted
        self.food_collected = food_collected
        self.food_residual = food_residual
        self.green_composted = green_composted
        self.green_collected = green_collected
        self.green_valorised = green_valorised

    @property
    def total_produced(self) -> float:
        return self.food_produced + self.green_produced

    @property
    def diverted(self) -> float:
        """Waste kept out of the residual bin (composted, collected or valorised)."""
        return (self.food_composted + self.food_collected
                + self.green_composted + self.green_collected + self.green_valorised)

    @property
    def diversion_rate(self) -> float:
        total = self.total_produced
        if total == 0.0:
            return 0.0
        return self.diverted / total

    def per_capita(self, quantity: float) -> float:
        if self.household_size <= 0:
            return 0.0
        return quantity / self.household_size

    @property
    def food_per_capita(self) -> float:
        return self.per_capita(self.food_produced)

    @property
    def green_per_capita(self) -> float:
        return self.per_capita(self.green_produced)

    @property
    def residual_per_capita(self) -> float:
        return self.per_capita(self.food_residual)

    def mass_balance_ok(self, tolerance: float = 1e-6) -> bool:
        """Both waste types fully accounted for (tolerance in tonnes, 1e-6 = 1 gram)."""
        food_gap = self.food_produced - (self.food_composted + self.food_collected + self.food_residual)
        green_gap = self.green_produced - (self.green_composted + self.green_collected + self.green_valorised)
        return abs(food_gap) <= tolerance and abs(green_gap) <= tolerance

    def __repr__(self) -> str:
        return (f"HouseholdAgent(id={self.household_id}, territory={self.territory_id}, "
                f"category={self.adopter_category.value}, size={self.household_size}, "
                f"total_waste={self.total_produced:.4f}t/y)")
