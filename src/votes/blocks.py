"""
Vote line blocks and plan detection.

A block is a top-level vote line together with the nested lines that follow
it. Plans are blocks whose first line names them: "Plan: Foo",
"Base Plan Foo", "Foo's plan", or a bare [Foo] label line.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from votes.vote_line import MarkerType, VoteLine

_PROPOSED_PLAN_RE = re.compile(
    r"^(?P<label>base|proposed)\s*plan(?::|\s)+(?P<name>.+?)\.?$", re.IGNORECASE
)
_PLAN_RE = re.compile(r"^plan(?::|\s)+◈?(?P<name>.+?)\.?$", re.IGNORECASE)
_OWNER_PLAN_RE = re.compile(r"^(?P<name>.+?)'s\s+plan$", re.IGNORECASE)

_CATEGORY_BY_MARKER = {
    MarkerType.RANK: MarkerType.RANK,
    MarkerType.SCORE: MarkerType.SCORE,
    MarkerType.APPROVAL: MarkerType.APPROVAL,
}


class VoteLineBlock:
    """
    An ordered, non-empty run of vote lines treated as one vote.

    The first line decides the block's task and category.
    """

    __slots__ = ("lines",)

    def __init__(self, lines: Iterable[VoteLine]):
        self.lines = tuple(lines)
        if not self.lines:
            raise ValueError("VoteLineBlock requires at least one line")

    @property
    def first(self) -> VoteLine:
        return self.lines[0]

    @property
    def task(self) -> str:
        return self.first.task

    @property
    def marker_type(self) -> MarkerType:
        return self.first.marker_type

    @property
    def marker_value(self) -> str:
        return self.first.marker_value

    @property
    def category(self) -> MarkerType:
        return _CATEGORY_BY_MARKER.get(self.first.marker_type, MarkerType.VOTE)

    @property
    def content(self) -> str:
        return self.first.content

    def with_marker(self, marker_type: MarkerType, marker_value: str) -> "VoteLineBlock":
        """Copy of the block with every line carrying the given marker."""
        return VoteLineBlock(
            line.with_marker(marker_type, marker_value) for line in self.lines
        )

    def with_task(self, task: str) -> "VoteLineBlock":
        return VoteLineBlock((self.first.with_task(task),) + self.lines[1:])

    def promoted(self) -> "VoteLineBlock":
        """Copy with nesting shifted so the shallowest line sits at depth 0."""
        lowest = min(line.prefix_depth for line in self.lines)
        return VoteLineBlock(
            line.with_depth(line.prefix_depth - lowest) for line in self.lines
        )

    def to_text(self, include_marker: bool = True) -> str:
        return "\n".join(line.to_text(include_marker) for line in self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self):
        return iter(self.lines)

    def __getitem__(self, index):
        return self.lines[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, VoteLineBlock):
            return NotImplemented
        return self.lines == other.lines

    def __hash__(self) -> int:
        return hash(self.lines)

    def __repr__(self) -> str:
        return f"VoteLineBlock({self.to_text()!r})"


@dataclass(frozen=True)
class PlanHeader:
    """Name found on a plan's first line."""

    name: str
    is_proposed: bool = False


def plan_header(line: VoteLine) -> Optional[PlanHeader]:
    """
    Check whether a vote line names a plan.

    Args:
        line: Vote line to inspect

    Returns:
        PlanHeader with the plan's name, or None
    """
    text = line.clean_content

    match = _PROPOSED_PLAN_RE.match(text)
    if match:
        return PlanHeader(match.group("name").strip(), is_proposed=True)

    match = _PLAN_RE.match(text)
    if match:
        return PlanHeader(match.group("name").strip())

    match = _OWNER_PLAN_RE.match(text)
    if match:
        return PlanHeader(match.group("name").strip())

    if line.marker_type == MarkerType.PLAN and text:
        return PlanHeader(text)

    return None


def get_blocks(lines: Sequence[VoteLine]) -> List[List[VoteLine]]:
    """
    Group lines into top-level blocks.

    A new block starts at every depth-0 line. Nested lines before the first
    depth-0 line form a block of their own.
    """
    blocks: List[List[VoteLine]] = []
    for line in lines:
        if line.prefix_depth == 0 or not blocks:
            blocks.append([line])
        else:
            blocks[-1].append(line)
    return blocks


def is_content_plan(lines: Sequence[VoteLine]) -> bool:
    """A plan header at depth 0 followed only by nested lines."""
    return (
        len(lines) > 1
        and lines[0].prefix_depth == 0
        and plan_header(lines[0]) is not None
        and all(line.prefix_depth > 0 for line in lines[1:])
    )


def is_label_plan(lines: Sequence[VoteLine]) -> bool:
    """A whole vote whose plan header is followed by more top-level lines."""
    return (
        len(lines) > 1
        and lines[0].prefix_depth == 0
        and plan_header(lines[0]) is not None
        and lines[1].prefix_depth == 0
    )


def is_single_line_plan(lines: Sequence[VoteLine]) -> bool:
    return len(lines) == 1 and plan_header(lines[0]) is not None
