"""
Utility functions for logging setup and simulation results
"""

import json
import logging
import os
from typing import Any, Dict, Literal, Optional, Sequence

import numpy as np
import pandas as pd

from .config import CONFIG

# Logger level types
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def setup_logger(level: Optional[LogLevel] = None, log_file: Optional[str] = None,
                 log_format: Optional[str] = None, file_mode: Literal["w", "a"] = "w") -> logging.Logger:
    """
    Configure the root logger from arguments or the `logging` config section.

    Args:
        level: Logging level name (defaults to CONFIG or INFO)
        log_file: Log file path; None logs to the console
        log_format: Log message format
        file_mode: 'w' to overwrite the log file, 'a' to append

    Returns:
        The configured root logger
    """
    section = CONFIG.get("logging") or {}
    config_level = level or section.get("level", "INFO")
    config_file = log_file or section.get("file")
    config_format = log_format or section.get("format", "%(asctime)s - %(levelname)s - %(message)s")

    level_map: Dict[str, int] = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    numeric_level = level_map.get(str(config_level).upper(), logging.INFO)

    if config_file:
        logging.basicConfig(level=numeric_level, format=config_format,
                            filename=config_file, filemode=file_mode, force=True)
    else:
        logging.basicConfig(level=numeric_level, format=config_format, force=True)
    return logging.getLogger()


def save_simulation_results(models: Sequence, territory_data: pd.DataFrame, household_data: pd.DataFrame,
                            output_dir: str = "data/simulation_outputs/biowaste/") -> None:
    """Save territory and household records plus a JSON summary"""

    # Create directory if it doesn't exist
    os.makedirs(output_dir, exist_ok=True)

    territory_data.to_csv(os.path.join(output_dir, "territory_data.csv"))
    household_data.to_csv(os.path.join(output_dir, "household_data.csv"))

    summary: Dict[str, Any] = {
        "total_territories": len(models),
        "total_households": sum(model.num_households for model in models),
        "territory_summary": {},
    }
    for model in models:
        final = model.series.row(model.year)
        # numpy floats are not JSON serialisable
        summary["territory_summary"][str(model.params.name or model.territory_id)] = {
            "households": model.num_households,
            "final_year": model.calendar_year,
            **{k: float(v) for k, v in final.items()},
        }

    with open(os.path.join(output_dir, "simulation_summary.json"), 'w') as f:
        json.dump(summary, f, indent=2)

    print(f"💾 Results saved to {output_dir}")


def calculate_model_statistics(territory_data: pd.DataFrame, household_data: pd.DataFrame) -> Dict[str, float]:
    """Calculate summary statistics from simulation results"""

    stats: Dict[str, float] = {}
    if territory_data.empty:
        return stats

    last = territory_data.groupby("territory_id").tail(1)
    first = territory_data.groupby("territory_id").head(1)

    produced = last["food_produced"].sum() + last["green_produced"].sum()
    diverted = (last["food_composted"].sum() + last["green_composted"].sum()
                + last["food_collected"].sum() + last["green_collected"].sum()
                + last["green_valorised"].sum())
    population = last["population"].sum()

    stats['final_population'] = float(population)
    stats['final_diversion_rate'] = float(diverted / produced) if produced > 0 else 0.0
    stats['final_residual_per_capita_kg'] = (
        float(last["food_residual"].sum() * 1000.0 / population) if population > 0 else 0.0
    )
    initial_residual = first["food_residual"].sum()
    stats['residual_change'] = (
        float((last["food_residual"].sum() - initial_residual) / initial_residual)
        if initial_residual > 0 else 0.0
    )
    stats['final_compost_adoption'] = float(last["compost_adoption_rate"].mean())
    stats['final_collection_adoption'] = float(last["collection_adoption_rate"].mean())

    # Household-level statistics
    try:
        last_step = household_data.index.get_level_values('Step').max()
        last_households = household_data.xs(last_step, level='Step')
    except (IndexError, KeyError):
        print("Warning: Could not extract last step household data. Household stats will be empty.")
        last_households = pd.DataFrame()

    if not last_households.empty:
        stats['household_diversion_rate'] = float(last_households['diversion_rate'].mean())
        by_category = last_households.groupby('adopter_category')['compost_adopted'].mean()
        for category, rate in by_category.items():
            stats[f'{category}_compost_adoption'] = float(rate)
    else:
        stats['household_diversion_rate'] = np.nan

    return stats


def print_simulation_summary(models: Sequence, territory_data: pd.DataFrame, household_data: pd.DataFrame) -> None:
    """Print a summary of a multi-territory run"""

    print("\n" + "=" * 60)
    print("SIMULATION SUMMARY")
    print("=" * 60)

    stats = calculate_model_statistics(territory_data, household_data)
    print(f"Territories: {len(models)}, Households: {sum(m.num_households for m in models)}")
    if models:
        print(f"Simulated years: {models[0].params.reference_year} - {models[0].calendar_year}")

    print("\nTerritory Results (final year):")
    for model in models:
        row = model.series.row(model.year)
        label = model.params.name or f"Territory {model.territory_id}"
        print(f"  {label:17} : residual {row['residual_per_capita_kg']:6.1f} kg/person, "
              f"composted {row['food_composted'] + row['green_composted']:8.1f} t, "
              f"collected {row['food_collected'] + row['green_collected']:8.1f} t, "
              f"adoption {row['compost_adoption_rate']:.1%} / {row['collection_adoption_rate']:.1%}")

    print("\nAdditional Statistics:")
    print(f"  Diversion rate: {stats.get('final_diversion_rate', np.nan):.2%}")
    print(f"  Residual food per capita: {stats.get('final_residual_per_capita_kg', np.nan):.1f} kg")
    print(f"  Residual change since start: {stats.get('residual_change', np.nan):+.2%}")
