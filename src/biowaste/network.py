"""
Erdős–Rényi peer network between household agents.

The network is directed: agent i observes its out-neighbours when it
computes the social-norm signal. It is built once per territory and kept
for the whole run.
"""

from typing import Dict, List

import numpy as np


class SocialNetwork:
    """
    Directed G(n, p) random graph stored as an adjacency list.

    Every ordered pair (i, j), i != j, is an edge with probability
    p = avg_degree / num_agents, drawn independently. Construction evaluates
    all N * (N - 1) candidate pairs, which is fine for sub-territories of a
    few thousand households.
    """

    def __init__(self, adjacency: Dict[int, List[int]]):
        self._adjacency = adjacency
        self._neighbor_index: Dict[int, np.ndarray] = {
            i: np.asarray(nbrs, dtype=np.int64) for i, nbrs in adjacency.items()
        }

    @classmethod
    def build(cls, num_agents: int, avg_degree: float, seed=None) -> "SocialNetwork":
        """
        Generate the graph.

        Args:
            num_agents: Number of nodes. With 0 or 1 agent no edge is drawn.
            avg_degree: Expected out-degree of every node.
            seed: Integer seed or numpy Generator. The same seed always
                produces the same adjacency.
        """
        num_agents = max(0, int(num_agents))
        adjacency: Dict[int, List[int]] = {i: [] for i in range(num_agents)}
        if num_agents <= 1 or avg_degree <= 0:
            return cls(adjacency)

        rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)
        p = min(1.0, float(avg_degree) / num_agents)

        for i in range(num_agents):
            draws = rng.random(num_agents) < p
            draws[i] = False  # no self-loops
            adjacency[i] = np.flatnonzero(draws).tolist()

        return cls(adjacency)

    def __len__(self) -> int:
        return len(self._adjacency)

    def neighbors(self, agent_index: int) -> List[int]:
        """Out-neighbours of an agent (the peers it observes)."""
        return list(self._adjacency.get(agent_index, []))

    def neighbor_array(self, agent_index: int) -> np.ndarray:
        return self._neighbor_index.get(agent_index, np.empty(0, dtype=np.int64))

    def out_degree(self, agent_index: int) -> int:
        return len(self._adjacency.get(agent_index, []))

    @property
    def num_edges(self) -> int:
        return sum(len(nbrs) for nbrs in self._adjacency.values())

    def mean_out_degree(self) -> float:
        if not self._adjacency:
            return 0.0
        return self.num_edges / len(self._adjacency)

    def adjacency(self) -> Dict[int, List[int]]:
        """Copy of the adjacency mapping."""
        return {i: list(nbrs) for i, nbrs in self._adjacency.items()}

    def __repr__(self) -> str:
        return f"SocialNetwork(nodes={len(self)}, edges={self.num_edges}, mean_out_degree={self.mean_out_degree():.2f})"
