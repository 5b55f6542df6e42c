"""
Baldwin method: instant runoff on Borda scores.
"""

import logging
from typing import Dict, List, Set, Tuple

from analysis.ballots import Ballots
from analysis.ranking import RankingMethod, RankVoteCounter

logger = logging.getLogger(__name__)


class BaldwinCounter(RankVoteCounter):
    """
    Repeatedly drops the option with the lowest Borda score.

    Options tied for the lowest score are dropped together. The full order
    is built by finding the winner, removing it, and running again.
    """

    method = RankingMethod.BALDWIN

    def borda_scores(self, ballots: Ballots, remaining: Set[int]) -> Dict[int, int]:
        """
        Borda points over the remaining options.

        Each ballot gives an option one point per remaining option, minus
        the number of remaining options it ranks strictly higher. Unranked
        options get nothing.
        """
        size = len(remaining)
        scores = {index: 0 for index in remaining}
        for ranks in ballots.rankings:
            ranked = [index for index in remaining if index in ranks]
            for index in ranked:
                better = sum(1 for other in ranked if ranks[other] < ranks[index])
                scores[index] += size - better
        return scores

    def winner(self, ballots: Ballots, remaining: Set[int]) -> Tuple[int, int]:
        remaining = set(remaining)
        scores = self.borda_scores(ballots, remaining)

        while len(remaining) > 1:
            lowest = min(scores.values())
            losers = {index for index in remaining if scores[index] == lowest}
            if losers == remaining:
                break
            remaining -= losers
            scores = self.borda_scores(ballots, remaining)

        best = min(remaining, key=lambda i: (-scores[i], ballots.candidates[i], i))
        return best, scores[best]

    def order(self, ballots: Ballots) -> List[Tuple[int, float]]:
        remaining = set(range(len(ballots.candidates)))
        result = []
        while remaining:
            index, score = self.winner(ballots, remaining)
            result.append((index, score))
            remaining.discard(index)
        return result
