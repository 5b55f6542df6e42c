"""
Ranked vote counting methods for rank and score votes.

This module provides:
- RatedInstantRunoffCounter: rated instant runoff (default)
- SchulzeCounter: beatpath method
- BaldwinCounter: Borda-score instant runoff
- WilsonCounter: Wilson score interval on approval signals

All counters return a strict total order, breaking final ties by option text.
"""

from typing import Optional, Union

from .ballots import Ballots
from .baldwin import BaldwinCounter
from .ranking import RankedOption, RankingMethod, RankVoteCounter, TaskRanking
from .rirv import RatedInstantRunoffCounter
from .schulze import SchulzeCounter
from .wilson import WilsonCounter

_COUNTERS = {
    RankingMethod.SCHULZE: SchulzeCounter,
    RankingMethod.BALDWIN: BaldwinCounter,
    RankingMethod.WILSON: WilsonCounter,
    RankingMethod.RATED_INSTANT_RUNOFF: RatedInstantRunoffCounter,
}


def get_counter(method: Optional[Union[RankingMethod, str]] = None) -> RankVoteCounter:
    """Counter instance for a ranking method (rated instant runoff by default)."""
    if method is None:
        method = RankingMethod.RATED_INSTANT_RUNOFF
    if not isinstance(method, RankingMethod):
        method = RankingMethod(str(method).lower())
    return _COUNTERS[method]()


__all__ = [
    "Ballots",
    "BaldwinCounter",
    "RankedOption",
    "RankingMethod",
    "RankVoteCounter",
    "RatedInstantRunoffCounter",
    "SchulzeCounter",
    "TaskRanking",
    "WilsonCounter",
    "get_counter",
]
