"""
Rated instant runoff.

Each round, every voter spreads one point across the options they ranked
that are still in the running, weighted towards their top choice. The
option with the smallest total is eliminated and its share flows to the
survivors on the next round.
"""

import logging
from typing import List, Set, Tuple

import numpy as np

from analysis.ballots import Ballots
from analysis.ranking import RankingMethod, RankVoteCounter

logger = logging.getLogger(__name__)


class RatedInstantRunoffCounter(RankVoteCounter):
    """Default method for ranked votes."""

    method = RankingMethod.RATED_INSTANT_RUNOFF

    def round_totals(self, ballots: Ballots, remaining: Set[int]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Rating totals and first-choice counts for one round.

        A voter ranking k remaining options gives their p-th choice
        (k - p) / (1 + 2 + ... + k), so each voter's ratings sum to 1.
        Voters with no remaining choices are exhausted.
        """
        totals = np.zeros(len(ballots.candidates))
        firsts = np.zeros(len(ballots.candidates), dtype=int)

        for ranks in ballots.rankings:
            choices = ballots.ordered_choices(ranks, remaining)
            if not choices:
                continue
            count = len(choices)
            weight = count * (count + 1) / 2
            for position, index in enumerate(choices):
                totals[index] += (count - position) / weight
            firsts[choices[0]] += 1

        return totals, firsts

    def winner(self, ballots: Ballots, remaining: Set[int]) -> Tuple[int, float]:
        remaining = set(remaining)
        totals, firsts = self.round_totals(ballots, remaining)

        while len(remaining) > 1:
            lowest = min((totals[i], firsts[i]) for i in remaining)
            tied = [i for i in remaining if (totals[i], firsts[i]) == lowest]
            loser = max(tied, key=lambda i: (ballots.candidates[i], i))
            remaining.discard(loser)
            logger.debug(f"Eliminated '{ballots.candidates[loser]}' with {totals[loser]:.3f}")
            totals, firsts = self.round_totals(ballots, remaining)

        index = remaining.pop()
        return index, float(totals[index])

    def order(self, ballots: Ballots) -> List[Tuple[int, float]]:
        remaining = set(range(len(ballots.candidates)))
        result = []
        while remaining:
            index, score = self.winner(ballots, remaining)
            result.append((index, score))
            remaining.discard(index)
        return result
