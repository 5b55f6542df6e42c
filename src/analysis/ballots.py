"""
Ballot construction from stored rank and score votes.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

import numpy as np

from votes.blocks import VoteLineBlock
from votes.vote_line import MarkerType


@dataclass
class Ballots:
    """
    Ranked ballots for one task.

    Candidates are sorted by their text so every method sees them in the
    same order no matter how storage was built. Each ballot maps candidate
    index to rank, 1 being the most preferred.
    """

    task: str
    category: MarkerType
    candidates: List[str] = field(default_factory=list)
    blocks: List[VoteLineBlock] = field(default_factory=list)
    voters: List[str] = field(default_factory=list)
    rankings: List[Dict[int, int]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.candidates or not any(self.rankings)

    def support_counts(self) -> np.ndarray:
        counts = np.zeros(len(self.candidates), dtype=int)
        for ranks in self.rankings:
            for index in ranks:
                counts[index] += 1
        return counts

    def prefers(self, ranks: Dict[int, int], first: int, second: int) -> bool:
        """True if the ballot ranks first strictly above second."""
        first_rank = ranks.get(first)
        if first_rank is None:
            return False
        second_rank = ranks.get(second)
        return second_rank is None or first_rank < second_rank

    def ordered_choices(self, ranks: Dict[int, int], remaining: Iterable[int]) -> List[int]:
        """The ballot's ranked candidates among remaining, best first."""
        return sorted(
            (index for index in remaining if index in ranks),
            key=lambda index: (ranks[index], self.candidates[index], index),
        )

    @classmethod
    def from_entries(cls, entries: Iterable, task: str, category: MarkerType) -> "Ballots":
        """
        Build ballots from storage entries.

        Args:
            entries: Objects with a canonical .block and a .supporters map of
                voter to that voter's own block
            task: Task the entries belong to
            category: MarkerType.RANK or MarkerType.SCORE

        Returns:
            Ballots with one ranking per voter
        """
        entries = sorted(
            entries, key=lambda entry: entry.block.to_text(include_marker=False)
        )
        ballots = cls(task=task, category=category)
        ballots.candidates = [entry.block.to_text(include_marker=False) for entry in entries]
        ballots.blocks = [entry.block for entry in entries]

        values: Dict[str, Dict[int, int]] = {}
        for index, entry in enumerate(entries):
            for origin, vote in entry.supporters.items():
                values.setdefault(origin.name, {})[index] = vote.first.numeric_value

        for voter in sorted(values):
            marks = values[voter]
            if category == MarkerType.SCORE:
                marks = _scores_to_ranks(marks)
            ballots.voters.append(voter)
            ballots.rankings.append(marks)

        return ballots


def _scores_to_ranks(scores: Dict[int, int]) -> Dict[int, int]:
    """Dense ranks from scores, highest score first."""
    distinct = sorted(set(scores.values()), reverse=True)
    place = {score: rank for rank, score in enumerate(distinct, start=1)}
    return {index: place[score] for index, score in scores.items()}
