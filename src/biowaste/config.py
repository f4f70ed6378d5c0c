"""
Configuration loader and parameter models for the biowaste ABM.

Parameters come from a YAML file (model_parameters.yaml, shipped with the
package) or from the ordered numeric vectors used by the legacy input
files. Both routes end in validated pydantic models:
- TerritoryParameters: one per sub-territory.
- SimulationSettings: run-wide options (horizon, seed, model variants).
- TerritoryContext: exogenous series supplied by the experiment driver.

Missing required values fail fast with the field name. Out-of-range values are
clamped, not rejected (fractions to [0, 1], capacities and rates to >= 0).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from .curves import sigmoid_series
from .diffusion import IntentionPolicy, SignalSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "model_parameters.yaml"
LEGACY_AVG_DEGREE = 5.0


class ConfigurationError(ValueError):
    """Missing or malformed configuration."""


class ReductionBaseline(Enum):
    """Reference year for the green-waste reduction indicator."""
    INITIAL = "initial"    # relative to year 0
    PREVIOUS = "previous"  # relative to year y - 1


def _clamp(value: float, low: float, high: float = float("inf")) -> float:
    return min(high, max(low, value))


def _format_validation_error(model_name: str, error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        problems.append(f"{location}: {item['msg']}")
    return f"Invalid {model_name}: " + "; ".join(problems)


class TerritoryParameters(BaseModel):
    """Scalar inputs of one sub-territory. Masses in tonnes, rates per year."""
    model_config = ConfigDict(extra="forbid")

    territory_id: int = 0
    name: Optional[str] = None

    # --- Population and production ---
    population: float
    growth_rate: float
    food_per_capita: float
    green_per_capita: float
    plan_effect_food: float = 0.0
    plan_effect_green: float = 0.0

    # --- Behavioural intentions ---
    compost_food_initial: float
    compost_green_initial: float
    collection_food_initial: float
    collection_green_initial: float
    compost_food_max: Optional[float] = None
    compost_green_max: Optional[float] = None
    collection_food_max: Optional[float] = None
    collection_green_max: Optional[float] = None
    compost_inflection: float
    collection_inflection: float

    # --- Infrastructure ---
    compost_capacity_initial: float
    collection_capacity_initial: float
    compost_capacity_target: Optional[float] = None
    collection_capacity_target: Optional[float] = None
    compost_ramp_duration: float
    collection_ramp_duration: float

    # --- Households and peer network ---
    household_size: float
    avg_degree: float
    early_adopter_share: Optional[float] = None
    mainstream_share: Optional[float] = None
    reference_year: int = 2017

    @field_validator(
        "plan_effect_food", "plan_effect_green",
        "compost_food_initial", "compost_green_initial",
        "collection_food_initial", "collection_green_initial",
    )
    @classmethod
    def _clamp_fraction(cls, value: float) -> float:
        return _clamp(value, 0.0, 1.0)

    @field_validator("compost_food_max", "compost_green_max", "collection_food_max", "collection_green_max")
    @classmethod
    def _clamp_optional_fraction(cls, value: Optional[float]) -> Optional[float]:
        return None if value is None else _clamp(value, 0.0, 1.0)

    @field_validator(
        "population", "food_per_capita", "green_per_capita",
        "compost_capacity_initial", "collection_capacity_initial",
        "household_size", "avg_degree",
    )
    @classmethod
    def _clamp_non_negative(cls, value: float) -> float:
        return _clamp(value, 0.0)

    @field_validator("compost_capacity_target", "collection_capacity_target")
    @classmethod
    def _clamp_optional_non_negative(cls, value: Optional[float]) -> Optional[float]:
        return None if value is None else _clamp(value, 0.0)

    @field_validator("growth_rate")
    @classmethod
    def _clamp_growth(cls, value: float) -> float:
        # below -100 % the population would turn negative
        return _clamp(value, -1.0)

    @field_validator("early_adopter_share", "mainstream_share")
    @classmethod
    def _clamp_percentage(cls, value: Optional[float]) -> Optional[float]:
        return None if value is None else _clamp(value, 0.0, 100.0)

    @model_validator(mode="after")
    def _fill_targets(self) -> "TerritoryParameters":
        # a missing maximum / target means the quantity stays at its initial value
        for prefix in ("compost_food", "compost_green", "collection_food", "collection_green"):
            if getattr(self, f"{prefix}_max") is None:
                setattr(self, f"{prefix}_max", getattr(self, f"{prefix}_initial"))
        for prefix in ("compost", "collection"):
            if getattr(self, f"{prefix}_capacity_target") is None:
                setattr(self, f"{prefix}_capacity_target", getattr(self, f"{prefix}_capacity_initial"))
        if (self.early_adopter_share is None) != (self.mainstream_share is None):
            raise ValueError("early_adopter_share and mainstream_share must be given together")
        return self

    @property
    def segmented_thresholds(self) -> bool:
        return self.early_adopter_share is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TerritoryParameters":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(_format_validation_error("territory parameters", e)) from e

    @classmethod
    def from_vector(cls, values: Sequence[float], territory_id: Optional[int] = None,
                    avg_degree: float = LEGACY_AVG_DEGREE) -> "TerritoryParameters":
        """
        Build parameters from an ordered numeric vector (legacy input files).

        Slots 0-24 are required, 25-26 (adopter percentages) are optional.
        Slot 21 (green-reduction sigmoid inflection) is read but not used:
        the plan intensity curve is supplied by the territory context.
        The vector has no network slot; legacy runs use an average degree of 5.
        """
        data: Dict[str, Any] = {"avg_degree": avg_degree}
        for index, name in enumerate(PARAMETER_VECTOR_LAYOUT):
            if index >= len(values):
                if index in OPTIONAL_VECTOR_SLOTS:
                    break
                raise ConfigurationError(
                    f"Parameter vector has {len(values)} entries; slot {index} ({name or 'unused'}) is missing"
                )
            if name is not None:
                data[name] = values[index]
        data["territory_id"] = int(data["territory_id"]) if territory_id is None else territory_id
        return cls.from_dict(data)


PARAMETER_VECTOR_LAYOUT: List[Optional[str]] = [
    "territory_id",
    "compost_ramp_duration",
    "collection_ramp_duration",
    "compost_inflection",
    "collection_inflection",
    "food_per_capita",
    "green_per_capita",
    "compost_food_initial",
    "compost_green_initial",
    "collection_food_initial",
    "collection_food_max",
    "compost_food_max",
    "compost_green_max",
    "collection_green_initial",
    "collection_green_max",
    "compost_capacity_initial",
    "compost_capacity_target",
    "collection_capacity_initial",
    "collection_capacity_target",
    "population",
    "growth_rate",
    None,
    "plan_effect_green",
    "plan_effect_food",
    "household_size",
    "early_adopter_share",
    "mainstream_share",
]
OPTIONAL_VECTOR_SLOTS = {25, 26}


class SimulationSettings(BaseModel):
    """Run-wide settings shared by every territory."""
    model_config = ConfigDict(extra="forbid")

    horizon: int = 34
    base_seed: int = 42
    signal_source: SignalSource = SignalSource.PEER_FRACTION
    intention_policy: IntentionPolicy = IntentionPolicy.INTERPOLATE
    reduction_baseline: ReductionBaseline = ReductionBaseline.INITIAL
    mass_balance_tolerance: float = 1e-3

    @field_validator("horizon")
    @classmethod
    def _positive_horizon(cls, value: int) -> int:
        if value < 1:
            raise ValueError("horizon must be at least one year")
        return value

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SimulationSettings":
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            raise ConfigurationError(_format_validation_error("simulation settings", e)) from e


@dataclass
class TerritoryContext:
    """
    Exogenous inputs owned by the experiment driver, read-only for the model.

    plan_intensity[y] is the anti-biowaste plan intensity in [0, 1]. Optional
    capacity ramps (values in [0, 1]) replace the linear capacity roll-out.
    """
    plan_intensity: Sequence[float]
    use_social_dynamics: bool = False
    compost_capacity_ramp: Optional[Sequence[float]] = None
    collection_capacity_ramp: Optional[Sequence[float]] = None
    _clamped: List[float] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self):
        self._clamped = [_clamp(float(v), 0.0, 1.0) for v in self.plan_intensity]

    def plan(self, year: int) -> float:
        return self._clamped[year]

    def validate_horizon(self, horizon: int) -> None:
        series = {"plan_intensity": self.plan_intensity,
                  "compost_capacity_ramp": self.compost_capacity_ramp,
                  "collection_capacity_ramp": self.collection_capacity_ramp}
        for name, values in series.items():
            if values is not None and len(values) < horizon:
                raise ConfigurationError(f"{name} has {len(values)} values but the horizon is {horizon} years")

    @classmethod
    def constant(cls, horizon: int, intensity: float = 0.0, use_social_dynamics: bool = False) -> "TerritoryContext":
        return cls(plan_intensity=[intensity] * horizon, use_social_dynamics=use_social_dynamics)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], horizon: int) -> "TerritoryContext":
        """
        Build the context from the `context` config section.

        plan_intensity may be an explicit list of values or a mapping with an
        `inflection` key, in which case a sigmoid curve is generated.
        """
        data = data or {}
        plan = data.get("plan_intensity", 0.0)
        if isinstance(plan, dict):
            if "values" in plan:
                values = list(plan["values"])
            elif "inflection" in plan:
                values = sigmoid_series(horizon, float(plan["inflection"]))
            else:
                raise ConfigurationError("context.plan_intensity needs 'values' or 'inflection'")
        elif isinstance(plan, (int, float)):
            values = [float(plan)] * horizon
        else:
            values = list(plan)
        context = cls(
            plan_intensity=values,
            use_social_dynamics=bool(data.get("use_social_dynamics", False)),
            compost_capacity_ramp=data.get("compost_capacity_ramp"),
            collection_capacity_ramp=data.get("collection_capacity_ramp"),
        )
        context.validate_horizon(horizon)
        return context


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load configuration from a YAML file (defaults to the packaged file)."""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config_path = config_path.resolve()

    try:
        with open(config_path, 'r') as file:
            config = yaml.safe_load(file) or {}
    except FileNotFoundError:
        logger.error("Config file not found at %s", config_path)
        raise
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing YAML config {config_path}: {e}") from e

    if not isinstance(config, dict) or "territories" not in config:
        raise ConfigurationError(f"Config {config_path} has no 'territories' section")
    logger.info("Configuration loaded from %s", config_path)
    return config


def get_territory_config(config: Dict[str, Any], territory_id: int) -> TerritoryParameters:
    """Get validated parameters for a specific territory."""
    for index, entry in enumerate(config['territories']):
        entry_id = entry.get('territory_id', index)
        if entry_id == territory_id:
            return TerritoryParameters.from_dict({**entry, 'territory_id': entry_id})
    raise ConfigurationError(f"Territory {territory_id} not found in configuration")


def get_all_territories(config: Dict[str, Any]) -> List[TerritoryParameters]:
    return [
        TerritoryParameters.from_dict({**entry, 'territory_id': entry.get('territory_id', index)})
        for index, entry in enumerate(config['territories'])
    ]


def print_config_summary(config: Dict[str, Any]) -> None:
    """Print a summary of the loaded configuration"""
    settings = SimulationSettings.from_dict(config.get('simulation'))
    context = config.get('context') or {}
    print("\n" + "=" * 50)
    print("BIOWASTE ABM CONFIGURATION SUMMARY")
    print("=" * 50)
    print(f"Horizon: {settings.horizon} years, base seed: {settings.base_seed}")
    print(f"Social dynamics: {bool(context.get('use_social_dynamics', False))} "
          f"(signal: {settings.signal_source.value}, intention policy: {settings.intention_policy.value})")
    print(f"Territories: {[entry.get('name', index) for index, entry in enumerate(config['territories'])]}")
    print("=" * 50)


CONFIG = load_config()
