"""
Per-run state shared by every tally phase.
"""

from typing import Optional

from tally.options import QuestOptions
from tally.records import PlanRecords, VotingRecords
from votes.parser import VoteLineParser


class TallyContext:
    """
    Owns the registries and comparison rules for one quest run.

    Every phase receives the context explicitly; nothing is kept in module
    globals.
    """

    def __init__(self, options: Optional[QuestOptions] = None):
        self.options = options or QuestOptions()
        self.comparer = self.options.comparer()
        self.parser = VoteLineParser(self.options.parser_options())
        self.records = VotingRecords(self.comparer)
        self.plans = PlanRecords(self.comparer)

    def reset(self):
        """Clear the registries before a new run."""
        self.records.reset()
        self.plans.reset()
