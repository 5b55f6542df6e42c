"""
Wilson score interval ranking.
"""

import math
from typing import List, Optional, Tuple

from analysis.ballots import Ballots
from analysis.ranking import RankingMethod, RankVoteCounter

Z_95 = 1.96


def positive_portion(rank: int, approval_depth: Optional[int] = None) -> float:
    """
    How much of a ranked vote counts as approval.

    With approval_depth, ranks up to that depth approve fully and deeper
    ranks disapprove. Otherwise approval falls by 1/8 per rank, reaching
    zero at rank 9.
    """
    if approval_depth is not None:
        return 1.0 if rank <= approval_depth else 0.0
    rank = min(max(rank, 1), 9)
    return 1.0 - 0.125 * (rank - 1)


def wilson_lower_bound(positive: float, negative: float, z: float = Z_95) -> float:
    total = positive + negative
    if total <= 0:
        return 0.0

    phat = positive / total
    z2 = z * z
    numerator = phat + z2 / (2 * total) - z * math.sqrt(
        (phat * (1 - phat) + z2 / (4 * total)) / total
    )
    return numerator / (1 + z2 / total)


class WilsonCounter(RankVoteCounter):
    """Orders options by the lower bound of their approval confidence interval."""

    method = RankingMethod.WILSON

    def __init__(self, approval_depth: Optional[int] = None):
        if approval_depth is not None and approval_depth < 1:
            raise ValueError("approval_depth must be at least 1")
        self.approval_depth = approval_depth

    def scores(self, ballots: Ballots) -> List[float]:
        result = []
        for index in range(len(ballots.candidates)):
            positive = negative = 0.0
            for ranks in ballots.rankings:
                if index in ranks:
                    portion = positive_portion(ranks[index], self.approval_depth)
                    positive += portion
                    negative += 1.0 - portion
            result.append(wilson_lower_bound(positive, negative))
        return result

    def order(self, ballots: Ballots) -> List[Tuple[int, float]]:
        scores = self.scores(ballots)
        support = ballots.support_counts()
        indices = sorted(
            range(len(ballots.candidates)),
            key=lambda i: (-scores[i], -support[i], ballots.candidates[i], i),
        )
        return [(i, scores[i]) for i in indices]
