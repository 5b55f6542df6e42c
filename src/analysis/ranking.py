"""
Shared result types for ranked vote counting.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from analysis.ballots import Ballots
from votes.blocks import VoteLineBlock
from votes.vote_line import MarkerType

logger = logging.getLogger(__name__)


class RankingMethod(Enum):
    SCHULZE = "schulze"
    BALDWIN = "baldwin"
    WILSON = "wilson"
    RATED_INSTANT_RUNOFF = "rated_instant_runoff"


@dataclass
class RankedOption:
    """One option's place in a task's final order."""

    rank: int
    content: str
    score: float
    supporters: int
    block: Optional[VoteLineBlock] = field(default=None, repr=False)


@dataclass
class TaskRanking:
    """Final order of the ranked options for one task."""

    task: str
    category: MarkerType
    method: RankingMethod
    options: List[RankedOption] = field(default_factory=list)

    @property
    def winner(self) -> Optional[RankedOption]:
        return self.options[0] if self.options else None

    @property
    def order(self) -> List[str]:
        return [option.content for option in self.options]

    def to_frame(self) -> pd.DataFrame:
        """Ranking as a DataFrame, one row per option."""
        rows = [
            {
                "task": self.task,
                "category": self.category.name,
                "method": self.method.value,
                "rank": option.rank,
                "content": option.content,
                "score": option.score,
                "supporters": option.supporters,
            }
            for option in self.options
        ]
        return pd.DataFrame(
            rows,
            columns=["task", "category", "method", "rank", "content", "score", "supporters"],
        )


class RankVoteCounter:
    """
    Base class for ranked counting methods.

    Subclasses implement order(), returning (candidate index, score) pairs
    from best to worst. Every candidate must appear exactly once.
    """

    method: RankingMethod

    def order(self, ballots: Ballots) -> Sequence[Tuple[int, float]]:
        raise NotImplementedError

    def rank(self, ballots: Ballots) -> TaskRanking:
        """
        Produce the final order for one task.

        Args:
            ballots: Ballots for the task

        Returns:
            TaskRanking; empty when nobody voted
        """
        ranking = TaskRanking(task=ballots.task, category=ballots.category, method=self.method)
        if ballots.is_empty:
            logger.debug(f"No ballots for task '{ballots.task}'")
            return ranking

        order = list(self.order(ballots))
        if sorted(index for index, _ in order) != list(range(len(ballots.candidates))):
            raise RuntimeError(f"{self.method.value} did not produce a total order")

        support = ballots.support_counts()
        for place, (index, score) in enumerate(order, start=1):
            ranking.options.append(
                RankedOption(
                    rank=place,
                    content=ballots.candidates[index],
                    score=float(score),
                    supporters=int(support[index]),
                    block=ballots.blocks[index],
                )
            )

        logger.debug(
            f"{self.method.value} ranking for '{ballots.task}': "
            f"{', '.join(ranking.order)}"
        )
        return ranking
