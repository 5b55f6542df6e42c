"""
Per-quest tally configuration.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from analysis.ranking import RankingMethod
from votes.comparer import AgnosticComparer
from votes.parser import ParserOptions
from votes.vote_line import MarkerType

logger = logging.getLogger(__name__)


class PartitionMode(Enum):
    """How a multi-line vote is split into separately counted units."""

    NONE = "none"
    BY_LINE = "by_line"
    BY_LINE_TASK = "by_line_task"
    BY_BLOCK = "by_block"
    BY_BLOCK_ALL = "by_block_all"


def _coerce_enum(enum_type, value):
    if value is None or isinstance(value, enum_type):
        return value
    text = str(value).strip()
    for member in enum_type:
        if text.lower() in (str(member.value).lower(), member.name.lower()):
            return member
    raise ValueError(f"Invalid {enum_type.__name__}: {value!r}")


@dataclass
class QuestOptions:
    """
    Options controlling how one quest is tallied.

    Args:
        partition_mode: How multi-line votes are split
        ranking_method: Method used for rank and score votes
        whitespace_and_punctuation_significant: Strict comparison when True,
            loose comparison (letters and digits only) when False
        case_is_significant: Compare vote text case-sensitively
        forced_category: Read numeric markers as RANK or SCORE
        disable_proxy_votes: Never substitute votes by voter name
        force_pinned_proxy_votes: Treat every voter reference as pinned
        force_plan_references_to_be_labeled: Plans are only referenced as "Plan X"
        forbid_vote_label_plan_names: Bare [Label] lines never name plans
        allow_users_to_update_plans: Later posts by a plan's author replace it
        task_filter: If set, only votes with these tasks are counted
        custom_filters: Passed through to the caller unchanged
    """

    partition_mode: PartitionMode = PartitionMode.NONE
    ranking_method: RankingMethod = RankingMethod.RATED_INSTANT_RUNOFF
    whitespace_and_punctuation_significant: bool = False
    case_is_significant: bool = False
    forced_category: Optional[MarkerType] = None
    disable_proxy_votes: bool = False
    force_pinned_proxy_votes: bool = False
    force_plan_references_to_be_labeled: bool = False
    forbid_vote_label_plan_names: bool = False
    allow_users_to_update_plans: bool = False
    task_filter: Tuple[str, ...] = field(default_factory=tuple)
    custom_filters: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        self.partition_mode = _coerce_enum(PartitionMode, self.partition_mode)
        self.ranking_method = _coerce_enum(RankingMethod, self.ranking_method)
        if isinstance(self.forced_category, str):
            self.forced_category = MarkerType[self.forced_category.strip().upper()]
        self.task_filter = tuple(t.strip() for t in self.task_filter if t and t.strip())
        self.custom_filters = tuple(self.custom_filters)
        # Validates forced_category
        self.parser_options()

    def comparer(self) -> AgnosticComparer:
        return AgnosticComparer(
            symbols_significant=self.whitespace_and_punctuation_significant,
            case_significant=self.case_is_significant,
        )

    def parser_options(self) -> ParserOptions:
        return ParserOptions(forced_category=self.forced_category)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QuestOptions":
        """
        Build options from a plain mapping, e.g. a JSON request body.

        Raises:
            ValueError: On unknown keys or invalid enum values
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown quest options: {', '.join(unknown)}")

        for key in ("task_filter", "custom_filters"):
            if isinstance(data.get(key), str):
                data[key] = tuple(part for part in data[key].split(","))
            elif key in data:
                data[key] = tuple(data[key] or ())

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, Enum):
                result[key] = value.value if not isinstance(value, MarkerType) else value.name
            elif isinstance(value, tuple):
                result[key] = list(value)
        return result
