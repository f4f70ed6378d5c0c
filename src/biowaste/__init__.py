"""
Agent-based simulation of household biowaste flows under capacity limits
and social diffusion of sorting behaviour.
"""

from .agents import AdopterCategory, Behavior, HouseholdAgent
from .allocation import Allocation, FlowPair, allocate
from .config import (
    ConfigurationError,
    ReductionBaseline,
    SimulationSettings,
    TerritoryContext,
    TerritoryParameters,
    load_config,
)
from .diffusion import DiffusionEngine, IntentionPolicy, SignalSource
from .model import SimulationFinished, TerritoryModel
from .network import SocialNetwork
from .series import SeriesOrderError, SeriesStore, YearSeries

__version__ = "0.1.0"
