"""
Schulze method (beatpath).
"""

import logging
from typing import List, Tuple

import numpy as np

from analysis.ballots import Ballots
from analysis.ranking import RankingMethod, RankVoteCounter

logger = logging.getLogger(__name__)


class SchulzeCounter(RankVoteCounter):
    """
    Orders options by the strength of their beatpaths.

    d[i, j] counts voters preferring i over j (a ranked option beats every
    unranked one). Path strengths are the widest paths through winning
    pairwise margins.
    """

    method = RankingMethod.SCHULZE

    def pairwise_preferences(self, ballots: Ballots) -> np.ndarray:
        size = len(ballots.candidates)
        preferences = np.zeros((size, size), dtype=int)
        for ranks in ballots.rankings:
            for i in range(size):
                for j in range(size):
                    if i != j and ballots.prefers(ranks, i, j):
                        preferences[i, j] += 1
        return preferences

    @staticmethod
    def strongest_paths(preferences: np.ndarray) -> np.ndarray:
        """Widest-path closure (Floyd-Warshall variant)."""
        size = preferences.shape[0]
        strength = np.where(preferences > preferences.T, preferences, 0)

        for i in range(size):
            for j in range(size):
                if j == i:
                    continue
                for k in range(size):
                    if k == i or k == j:
                        continue
                    strength[j, k] = max(strength[j, k], min(strength[j, i], strength[i, k]))
        return strength

    def order(self, ballots: Ballots) -> List[Tuple[int, float]]:
        preferences = self.pairwise_preferences(ballots)
        strength = self.strongest_paths(preferences)

        beatpath_wins = (strength > strength.T).sum(axis=1)
        pairwise_wins = (preferences > preferences.T).sum(axis=1)

        indices = sorted(
            range(len(ballots.candidates)),
            key=lambda i: (-beatpath_wins[i], -pairwise_wins[i], ballots.candidates[i], i),
        )
        return [(i, beatpath_wins[i]) for i in indices]
