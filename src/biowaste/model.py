"""
Territory model for the household biowaste simulation.

One TerritoryModel simulates one sub-territory year by year. Each year runs
the same fixed sequence:

    production -> diffusion -> intentions -> composting allocation
    -> collection allocation -> residual/valorisation -> indicators
    -> household distribution

Composting and collection share one capacity allocator (food first). The
composting food surplus joins the collection demand; whatever collection
cannot take goes to the residual bin (food) or the valorisation centre
(green), which have no capacity limit. Territory flows are then split
equally between the households, so household records always add up to the
territory totals.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

import mesa
import numpy as np
import pandas as pd

from .agents import Behavior, HouseholdAgent, sample_thresholds
from .allocation import Allocation, FlowPair, allocate
from .config import ReductionBaseline, SimulationSettings, TerritoryContext, TerritoryParameters
from .curves import linear_series, sigmoid, time_before_init
from .diffusion import DiffusionEngine, SignalSource, adoption_rate, intention_from_adoption
from .network import SocialNetwork
from .series import SeriesStore

logger = logging.getLogger(__name__)

TRACKED_BEHAVIORS = (Behavior.HOME_COMPOSTING, Behavior.DEDICATED_COLLECTION)

SERIES_NAMES = [
    # production
    "population", "plan_intensity", "food_produced", "green_produced",
    # intentions and infrastructure
    "compost_food_intention", "compost_green_intention",
    "collection_food_intention", "collection_green_intention",
    "compost_capacity", "collection_capacity",
    # intended (pre-capacity) and allocated flows
    "compost_food_intended", "compost_green_intended",
    "collection_food_intended", "collection_green_intended",
    "food_composted", "green_composted", "food_collected", "green_collected",
    "food_residual", "green_valorised",
    # surpluses
    "compost_surplus_food", "compost_surplus_green",
    "collection_surplus_food", "collection_surplus_green",
    # indicators
    "residual_per_capita_kg", "collection_coverage", "collected_per_served_kg", "green_reduction_rate",
    # diffusion
    "compost_adoption_rate", "collection_adoption_rate",
]

HOUSEHOLD_FLOWS = (
    "food_produced", "green_produced",
    "food_composted", "food_collected", "food_residual",
    "green_composted", "green_collected", "green_valorised",
)

# flows that must never turn negative
FLOW_SERIES = HOUSEHOLD_FLOWS + (
    "compost_food_intended", "compost_green_intended",
    "collection_food_intended", "collection_green_intended",
    "compost_surplus_food", "compost_surplus_green",
    "collection_surplus_food", "collection_surplus_green",
)


class SimulationFinished(RuntimeError):
    """Raised when stepping a territory past its horizon."""


def household_count(population: float, household_size: float) -> int:
    """Number of households (and diffusion agents) for a population."""
    if household_size <= 0 or population <= 0:
        return 0
    return int(math.floor(population / household_size))


def _safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


class TerritoryModel(mesa.Model):
    """
    Coupled flow-allocation and social-diffusion model of one sub-territory.

    The model owns its households, its peer network and its random stream
    (seeded with base_seed + territory_id), so territories can be simulated
    independently and reproducibly.
    """

    def __init__(self, params: TerritoryParameters, context: TerritoryContext,
                 settings: Optional[SimulationSettings] = None, seed: Optional[int] = None):
        settings = settings or SimulationSettings()
        seed = settings.base_seed + params.territory_id if seed is None else seed
        super().__init__(seed=seed)

        # --- 1. Configuration ---
        self.params = params
        self.context = context
        self.settings = settings
        self.territory_id = params.territory_id
        self.horizon = settings.horizon
        context.validate_horizon(self.horizon)
        self.seed_value = seed
        self.generator = np.random.default_rng(seed)

        # --- 2. Time series (full horizon, written once per year) ---
        self.series = SeriesStore(SERIES_NAMES, self.horizon)
        self.year = -1
        self.running = True

        # --- 3. Households and peer network ---
        self.households: List[HouseholdAgent] = []
        self.create_households()
        self.network = SocialNetwork.build(len(self.households), params.avg_degree, self.generator)
        self.diffusion = DiffusionEngine(self.network, settings.signal_source)
        self._capacity_ramps = {
            "compost": (context.compost_capacity_ramp if context.compost_capacity_ramp is not None
                        else linear_series(self.horizon, params.compost_ramp_duration)),
            "collection": (context.collection_capacity_ramp if context.collection_capacity_ramp is not None
                           else linear_series(self.horizon, params.collection_ramp_duration)),
        }
        self._offsets = {
            Behavior.HOME_COMPOSTING: time_before_init(params.compost_food_initial, params.compost_inflection),
            Behavior.DEDICATED_COLLECTION: time_before_init(params.collection_food_initial,
                                                            params.collection_inflection),
        }

        # --- 4. Year 0 from the input parameters ---
        self.setup_data_collection()
        self._compute_year(0)
        self.datacollector.collect(self)

        logger.info("Territory %s initialised: %d households, %s",
                    self.territory_id, len(self.households), self.network)

    # --- INITIALISATION ---

    def create_households(self) -> None:
        """Create the household agents with their adoption thresholds."""
        params = self.params
        n = household_count(params.population, params.household_size)
        if n == 0:
            logger.warning("Territory %s has no households (population=%s, household_size=%s)",
                           self.territory_id, params.population, params.household_size)
            return

        thresholds, categories = sample_thresholds(
            self.generator, n, TRACKED_BEHAVIORS,
            early_share=params.early_adopter_share,
            mainstream_share=params.mainstream_share,
        )
        for i in range(n):
            household = HouseholdAgent(
                model=self,
                household_id=i,
                territory_id=self.territory_id,
                household_size=params.household_size,
                thresholds={b: thresholds[b][i] for b in TRACKED_BEHAVIORS},
                adopter_category=categories[i],
            )
            self.households.append(household)

        counts = {c.value: categories.count(c) for c in set(categories)}
        logger.info("Territory %s: created %d households %s", self.territory_id, n, counts)

    def setup_data_collection(self) -> None:
        """Setup Mesa's data collection for territory and household records."""
        model_reporters = {
            "year": lambda m: m.year,
            "calendar_year": lambda m: m.calendar_year,
            "territory_id": lambda m: m.territory_id,
        }
        for name in SERIES_NAMES:
            model_reporters[name] = lambda m, name=name: m.series[name][m.year]

        agent_reporters = {
            "territory_id": "territory_id",
            "household_id": "household_id",
            "household_size": "household_size",
            "adopter_category": lambda a: a.adopter_category.value,
            "compost_threshold": lambda a: a.threshold(Behavior.HOME_COMPOSTING),
            "collection_threshold": lambda a: a.threshold(Behavior.DEDICATED_COLLECTION),
            "compost_adopted": "composting_adopted",
            "collection_adopted": "collection_adopted",
            "diversion_rate": "diversion_rate",
        }
        agent_reporters.update({name: name for name in HOUSEHOLD_FLOWS})

        self.datacollector = mesa.DataCollector(
            model_reporters=model_reporters,
            agent_reporters=agent_reporters,
        )

    # --- PER-YEAR STEPS ---

    def compute_production(self, y: int) -> Dict[str, float]:
        """Population (closed-form growth) and food/green production."""
        p = self.params
        population = max(0.0, p.population * (1.0 + p.growth_rate) ** y)
        plan = self.context.plan(y)
        food = max(0.0, p.food_per_capita * population * (1.0 - p.plan_effect_food * plan))
        green = max(0.0, p.green_per_capita * population * (1.0 - p.plan_effect_green * plan))
        return {"population": population, "plan_intensity": plan,
                "food_produced": food, "green_produced": green}

    def compute_capacities(self, y: int) -> Tuple[float, float]:
        """Composting and collection capacity at year y (linear or supplied ramp)."""
        p = self.params
        compost_ramp = self._capacity_ramps["compost"][y]
        collection_ramp = self._capacity_ramps["collection"][y]
        compost = p.compost_capacity_initial + (p.compost_capacity_target - p.compost_capacity_initial) * compost_ramp
        collection = (p.collection_capacity_initial
                      + (p.collection_capacity_target - p.collection_capacity_initial) * collection_ramp)
        return max(0.0, compost), max(0.0, collection)

    def territory_signal(self, behavior: Behavior, y: int) -> float:
        """Mean-field signal: last year's intention ramp from the initial food intention towards 1."""
        if behavior is Behavior.HOME_COMPOSTING:
            initial, inflection = self.params.compost_food_initial, self.params.compost_inflection
        else:
            initial, inflection = self.params.collection_food_initial, self.params.collection_inflection
        if y <= 0:
            return initial
        return min(1.0, initial + (1.0 - initial) * sigmoid(y - 1 + self._offsets[behavior], inflection))

    def update_diffusion(self, y: int, collection_capacity: float) -> Tuple[float, float]:
        """
        One synchronous adoption update per behaviour.

        Collection adoption only moves while collection infrastructure exists.
        Returns the composting and collection adoption rates.
        """
        if y == 0 or not self.context.use_social_dynamics or not self.households:
            return (adoption_rate(self.households, Behavior.HOME_COMPOSTING),
                    adoption_rate(self.households, Behavior.DEDICATED_COLLECTION))

        use_rate = self.diffusion.signal_source is SignalSource.TERRITORY_RATE
        compost_rate = self.diffusion.step(
            self.households, Behavior.HOME_COMPOSTING,
            self.territory_signal(Behavior.HOME_COMPOSTING, y) if use_rate else None,
        )
        if collection_capacity > 0:
            collection_rate = self.diffusion.step(
                self.households, Behavior.DEDICATED_COLLECTION,
                self.territory_signal(Behavior.DEDICATED_COLLECTION, y) if use_rate else None,
            )
        else:
            collection_rate = adoption_rate(self.households, Behavior.DEDICATED_COLLECTION)
        return compost_rate, collection_rate

    def compute_intentions(self, y: int, compost_capacity: float, collection_capacity: float,
                           compost_rate: float, collection_rate: float) -> Dict[str, float]:
        """
        Behavioural intentions for year y.

        Without social dynamics intentions follow their sigmoid ramp from the
        initial value to the maximum. With social dynamics they follow the
        adoption rate through the configured intention policy. A pathway
        without capacity gets no intention, and collection is clipped so that
        composting + collection never exceeds 1 per waste type.
        """
        p = self.params
        if y == 0:
            cf, cg = p.compost_food_initial, p.compost_green_initial
            sf, sg = p.collection_food_initial, p.collection_green_initial
        elif self.context.use_social_dynamics:
            policy = self.settings.intention_policy
            cf = intention_from_adoption(p.compost_food_initial, compost_rate, policy)
            cg = intention_from_adoption(p.compost_green_initial, compost_rate, policy)
            sf = intention_from_adoption(p.collection_food_initial, collection_rate, policy)
            sg = intention_from_adoption(p.collection_green_initial, collection_rate, policy)
        else:
            compost_ramp = sigmoid(y, p.compost_inflection)
            collection_ramp = sigmoid(y, p.collection_inflection)
            cf = p.compost_food_initial + (p.compost_food_max - p.compost_food_initial) * compost_ramp
            cg = p.compost_green_initial + (p.compost_green_max - p.compost_green_initial) * compost_ramp
            sf = p.collection_food_initial + (p.collection_food_max - p.collection_food_initial) * collection_ramp
            sg = p.collection_green_initial + (p.collection_green_max - p.collection_green_initial) * collection_ramp

        if compost_capacity <= 0:
            cf = cg = 0.0
        if collection_capacity <= 0:
            sf = sg = 0.0

        cf, cg, sf, sg = (min(1.0, max(0.0, v)) for v in (cf, cg, sf, sg))
        # composting has priority
        sf = min(sf, 1.0 - cf)
        sg = min(sg, 1.0 - cg)
        return {"compost_food_intention": cf, "compost_green_intention": cg,
                "collection_food_intention": sf, "collection_green_intention": sg}

    def allocate_compost(self, intentions: Dict[str, float], food: float, green: float,
                         capacity: float) -> Allocation:
        demand = FlowPair(intentions["compost_food_intention"] * food,
                          intentions["compost_green_intention"] * green)
        return allocate(demand, capacity)

    def allocate_collection(self, intentions: Dict[str, float], food: float, green: float,
                            compost: Allocation, capacity: float) -> Tuple[Allocation, bool]:
        """
        Collection allocation; the composting food surplus joins the food demand.

        Skipped (nothing allocated, no surplus) when there is no collection
        capacity. Returns the allocation and whether it was skipped.
        """
        demand = FlowPair(intentions["collection_food_intention"] * food + compost.surplus.food,
                          intentions["collection_green_intention"] * green)
        if capacity <= 0:
            return Allocation(demand=demand, allocated=FlowPair(), surplus=FlowPair()), True
        return allocate(demand, capacity), False

    def compute_residual(self, intentions: Dict[str, float], food: float, green: float,
                         compost: Allocation, collection: Allocation, skipped: bool) -> Tuple[float, float]:
        """Food to the residual bin and green to the valorisation centre."""
        cf, cg = intentions["compost_food_intention"], intentions["compost_green_intention"]
        sf, sg = intentions["collection_food_intention"], intentions["collection_green_intention"]

        if skipped:
            # the whole collection demand (composting surplus included) stays with the household
            food_carry = collection.demand.food
            green_carry = collection.demand.green
        else:
            food_carry = collection.surplus.food
            green_carry = collection.green_overflow

        residual = (1.0 - cf - sf) * food + food_carry
        valorised = (1.0 - cg - sg) * green + compost.green_overflow + green_carry
        return max(0.0, residual), max(0.0, valorised)

    def compute_indicators(self, y: int, values: Dict[str, float]) -> Dict[str, float]:
        """Per-capita residual, collection coverage, kg per served person, green reduction."""
        population = values["population"]
        residual_pc = _safe_ratio(values["food_residual"] * 1000.0, population)

        intended_collection = values["collection_food_intended"] + values["collection_green_intended"]
        capacity = values["collection_capacity"]
        coverage = min(1.0, _safe_ratio(capacity, intended_collection)) if capacity > 0 else 0.0
        served = population * coverage
        collected = values["food_collected"] + values["green_collected"]
        collected_per_served = _safe_ratio(collected * 1000.0, served)

        green = values["green_produced"]
        reduction = 0.0
        if y > 0:
            if self.settings.reduction_baseline is ReductionBaseline.PREVIOUS:
                baseline = self.series["green_produced"][y - 1]
            else:
                baseline = self.series["green_produced"][0]
            reduction = _safe_ratio(baseline - green, baseline)

        return {"residual_per_capita_kg": residual_pc, "collection_coverage": coverage,
                "collected_per_served_kg": collected_per_served, "green_reduction_rate": reduction}

    def distribute_to_households(self, values: Dict[str, float]) -> None:
        """Phase-1 homogeneous distribution: every household gets flow / household count."""
        n = len(self.households)
        if n == 0:
            logger.debug("Territory %s has no households to distribute flows to", self.territory_id)
            return
        share = {name: values[name] / n for name in HOUSEHOLD_FLOWS}
        for household in self.households:
            household.assign_flows(**share)

    def check_invariants(self, y: int, values: Dict[str, float]) -> None:
        """Log (never raise) negative flows and mass-balance mismatches."""
        tolerance = self.settings.mass_balance_tolerance
        negatives = [name for name in FLOW_SERIES if values[name] < 0]
        if negatives:
            logger.warning("Territory %s year %d: negative values in %s", self.territory_id, y, negatives)

        food_gap = values["food_produced"] - (values["food_composted"] + values["food_collected"]
                                               + values["food_residual"])
        green_gap = values["green_produced"] - (values["green_composted"] + values["green_collected"]
                                                + values["green_valorised"])
        for waste, gap in (("food", food_gap), ("green", green_gap)):
            if abs(gap) > tolerance:
                logger.warning("Mass balance error at year %d in territory %s (%s): gap=%.6f t",
                               y, self.territory_id, waste, gap)

    def _compute_year(self, y: int) -> None:
        values = self.compute_production(y)
        compost_capacity, collection_capacity = self.compute_capacities(y)
        values["compost_capacity"] = compost_capacity
        values["collection_capacity"] = collection_capacity

        compost_rate, collection_rate = self.update_diffusion(y, collection_capacity)
        values["compost_adoption_rate"] = compost_rate
        values["collection_adoption_rate"] = collection_rate

        intentions = self.compute_intentions(y, compost_capacity, collection_capacity,
                                             compost_rate, collection_rate)
        values.update(intentions)

        food, green = values["food_produced"], values["green_produced"]
        compost = self.allocate_compost(intentions, food, green, compost_capacity)
        collection, skipped = self.allocate_collection(intentions, food, green, compost, collection_capacity)
        residual, valorised = self.compute_residual(intentions, food, green, compost, collection, skipped)

        values.update({
            "compost_food_intended": compost.demand.food,
            "compost_green_intended": compost.demand.green,
            "collection_food_intended": collection.demand.food,
            "collection_green_intended": collection.demand.green,
            "food_composted": compost.allocated.food,
            "green_composted": compost.allocated.green,
            "food_collected": collection.allocated.food,
            "green_collected": collection.allocated.green,
            "food_residual": residual,
            "green_valorised": valorised,
            "compost_surplus_food": compost.surplus.food,
            "compost_surplus_green": compost.surplus.green,
            "collection_surplus_food": collection.surplus.food,
            "collection_surplus_green": collection.surplus.green,
        })
        values.update(self.compute_indicators(y, values))

        self.check_invariants(y, values)
        self.series.record(y, **values)
        self.year = y
        self.distribute_to_households(values)

    # --- MAIN SIMULATION FUNCTIONS ---

    def step(self) -> None:
        """Advance the territory by one simulated year."""
        next_year = self.year + 1
        if next_year >= self.horizon:
            self.running = False
            raise SimulationFinished(f"Territory {self.territory_id} already simulated {self.horizon} years")

        self._compute_year(next_year)
        self.datacollector.collect(self)
        if next_year == self.horizon - 1:
            self.running = False

    def run_simulation(self, years: Optional[int] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Run the remaining years (or `years` more) and return the results.

        Returns:
            (territory record per year, household record per year)
        """
        remaining = self.horizon - 1 - self.year
        steps = remaining if years is None else min(years, remaining)
        logger.info("Territory %s: running %d years", self.territory_id, steps)
        for _ in range(steps):
            self.step()
        logger.info("Territory %s: finished at year %d, residual %.1f kg/person",
                    self.territory_id, self.year, self.series["residual_per_capita_kg"][self.year])
        return self.territory_frame(), self.household_frame()

    # --- RESULTS ---

    @property
    def calendar_year(self) -> int:
        return self.params.reference_year + self.year

    @property
    def num_households(self) -> int:
        return len(self.households)

    def adoption_rate(self, behavior: Behavior) -> float:
        return adoption_rate(self.households, behavior)

    def territory_frame(self) -> pd.DataFrame:
        """Every territory series for the years computed so far."""
        frame = self.series.to_frame(upto=self.year, year_offset=self.params.reference_year)
        frame.insert(1, "territory_id", self.territory_id)
        return frame

    def household_frame(self) -> pd.DataFrame:
        """Household records collected every year (index: Step = year, AgentID)."""
        if not self.households:
            return pd.DataFrame()
        return self.datacollector.get_agent_vars_dataframe()

    def validate_household_aggregation(self, year: Optional[int] = None,
                                       tolerance: Optional[float] = None) -> bool:
        """
        Check that household flows add up to the territory flows of a year.

        Uses the collected household records, so any year already simulated
        can be checked (defaults to the current year).
        """
        year = self.year if year is None else year
        if year < 0 or year > self.year:
            raise ValueError(f"Year {year} has not been simulated (current year {self.year})")
        if not self.households:
            logger.warning("Territory %s: no households to validate", self.territory_id)
            return False

        tolerance = self.settings.mass_balance_tolerance if tolerance is None else tolerance
        records = self.household_frame().xs(year, level="Step")
        valid = True
        for name in HOUSEHOLD_FLOWS:
            total = float(records[name].sum())
            expected = self.series[name][year]
            if abs(total - expected) > tolerance:
                logger.warning("Territory %s year %d: %s mismatch (households %.6f, territory %.6f)",
                               self.territory_id, year, name, total, expected)
                valid = False
        return valid

    def __repr__(self) -> str:
        return (f"TerritoryModel(id={self.territory_id}, year={self.year}/{self.horizon - 1}, "
                f"households={len(self.households)})")
