"""
Main script for the household biowaste simulation
"""

import argparse
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .config import (
    CONFIG,
    SimulationSettings,
    TerritoryContext,
    get_all_territories,
    load_config,
    print_config_summary,
)
from .model import TerritoryModel
from .utils import print_simulation_summary, save_simulation_results, setup_logger

logger = logging.getLogger(__name__)


def run_territories(config: Dict[str, Any], years: Optional[int] = None, seed: Optional[int] = None,
                    social: Optional[bool] = None) -> Tuple[List[TerritoryModel], pd.DataFrame, pd.DataFrame]:
    """
    Simulate every territory of a configuration independently.

    Returns:
        (models, territory records of all territories, household records of all territories)
    """
    simulation = dict(config.get('simulation') or {})
    if years is not None:
        simulation['horizon'] = years
    if seed is not None:
        simulation['base_seed'] = seed
    settings = SimulationSettings.from_dict(simulation)

    context_section = dict(config.get('context') or {})
    if social is not None:
        context_section['use_social_dynamics'] = social
    context = TerritoryContext.from_dict(context_section, settings.horizon)

    models: List[TerritoryModel] = []
    territory_frames = []
    household_frames = []
    for params in get_all_territories(config):
        print(f"🔄 Simulating {params.name or f'territory {params.territory_id}'}...")
        model = TerritoryModel(params, context, settings)
        territory_data, household_data = model.run_simulation()
        model.validate_household_aggregation()

        models.append(model)
        territory_frames.append(territory_data)
        household_frames.append(household_data.assign(territory_id=params.territory_id))

    territory_data = pd.concat(territory_frames) if territory_frames else pd.DataFrame()
    household_data = pd.concat(household_frames) if household_frames else pd.DataFrame()
    return models, territory_data, household_data


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Household biowaste flow and social diffusion simulation")
    parser.add_argument("--config", help="YAML configuration file (defaults to the packaged parameters)")
    parser.add_argument("--years", type=int, help="Simulation horizon in years (overrides the config)")
    parser.add_argument("--seed", type=int, help="Base random seed (territory seed = seed + territory id)")
    parser.add_argument("--social", action=argparse.BooleanOptionalAction, default=None,
                        help="Enable or disable social dynamics (overrides the config)")
    parser.add_argument("--output", help="Directory for CSV/JSON results; nothing is saved when omitted")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logger(level=args.log_level)
    config = load_config(args.config) if args.config else CONFIG

    print("🎯" + "=" * 60)
    print("HOUSEHOLD BIOWASTE SIMULATION")
    print("=" * 60)
    print_config_summary(config)

    models, territory_data, household_data = run_territories(
        config, years=args.years, seed=args.seed, social=args.social
    )

    print_simulation_summary(models, territory_data, household_data)
    if args.output:
        save_simulation_results(models, territory_data, household_data, args.output)

    print("\n✅ Simulation completed successfully!")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
