"""
Threshold diffusion of sorting behaviour.

Each year every household compares a social-norm signal with its personal
threshold for a behaviour and adopts when signal >= threshold. Adoption is
permanent. Updates are synchronous: all signals are computed from last
year's frozen adoption snapshot before any new state is committed, so the
result never depends on agent iteration order.
"""

import logging
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from .agents import Behavior, HouseholdAgent
from .network import SocialNetwork

logger = logging.getLogger(__name__)


class SignalSource(Enum):
    """Where the social-norm signal comes from."""
    PEER_FRACTION = "peer_fraction"    # share of adopted out-neighbours
    TERRITORY_RATE = "territory_rate"  # one territory-wide rate for everyone


class IntentionPolicy(Enum):
    """How a behaviour's adoption rate feeds the population-level intention."""
    INTERPOLATE = "interpolate"  # initial + (1 - initial) * rate
    DIRECT = "direct"            # intention == rate


def adoption_rate(agents: Sequence[HouseholdAgent], behavior: Behavior) -> float:
    """Share of agents that adopted the behaviour (0 for an empty territory)."""
    if not agents:
        return 0.0
    adopted = sum(1 for agent in agents if agent.has_adopted(behavior))
    return adopted / len(agents)


def intention_from_adoption(initial: float, rate: float, policy: IntentionPolicy) -> float:
    """Population intention implied by an adoption rate, in [0, 1]."""
    if policy is IntentionPolicy.DIRECT:
        value = rate
    else:
        value = initial + (1.0 - initial) * rate
    return min(1.0, max(0.0, value))


class DiffusionEngine:
    """Synchronous threshold-cascade update over a fixed social network."""

    def __init__(self, network: SocialNetwork, signal_source: SignalSource = SignalSource.PEER_FRACTION):
        self.network = network
        self.signal_source = signal_source

    def snapshot(self, agents: Sequence[HouseholdAgent], behavior: Behavior) -> np.ndarray:
        """Frozen copy of the current adoption states, indexed like `agents`."""
        return np.array([agent.has_adopted(behavior) for agent in agents], dtype=bool)

    def peer_signals(self, snapshot: np.ndarray) -> np.ndarray:
        """Fraction of adopted out-neighbours per agent; isolated agents get 0."""
        signals = np.zeros(len(snapshot), dtype=float)
        for i in range(len(snapshot)):
            neighbors = self.network.neighbor_array(i)
            if neighbors.size:
                signals[i] = snapshot[neighbors].mean()
        return signals

    def signals(self, snapshot: np.ndarray, territory_rate: Optional[float] = None) -> np.ndarray:
        if self.signal_source is SignalSource.TERRITORY_RATE:
            rate = 0.0 if territory_rate is None else float(territory_rate)
            return np.full(len(snapshot), rate, dtype=float)
        return self.peer_signals(snapshot)

    def step(self, agents: Sequence[HouseholdAgent], behavior: Behavior,
             territory_rate: Optional[float] = None) -> float:
        """
        Advance one year of diffusion for one behaviour.

        Args:
            agents: Households ordered by household_id (matches network indices).
            behavior: Behaviour to update.
            territory_rate: Shared signal when the engine uses TERRITORY_RATE.

        Returns:
            Adoption rate after the update.
        """
        if not agents:
            return 0.0

        previous = self.snapshot(agents, behavior)
        signals = self.signals(previous, territory_rate)
        thresholds = np.array([agent.threshold(behavior) for agent in agents], dtype=float)

        # double buffer: decisions are computed from `previous` only
        decisions = previous | (signals >= thresholds)

        for agent, decision in zip(agents, decisions):
            agent.update_adoption(behavior, bool(decision))

        new_adopters = int(decisions.sum() - previous.sum())
        if new_adopters:
            logger.debug("%s: %d new adopters", behavior.value, new_adopters)
        return float(decisions.mean())
