"""
Splitting a post's working vote into separately counted blocks.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from tally.options import PartitionMode
from tally.records import PlanKind
from votes.blocks import VoteLineBlock, get_blocks
from votes.vote_line import VoteLine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteSegment:
    """
    A run of working-vote lines.

    Literal segments hold lines the voter wrote. Plan segments hold the
    lines a plan reference was replaced with; the first of those is the
    plan's own header or label line.
    """

    lines: Tuple[VoteLine, ...]
    plan_kind: Optional[PlanKind] = None
    plan_name: str = ""

    @property
    def is_plan(self) -> bool:
        return self.plan_kind is not None and len(self.lines) > 1

    @property
    def depth(self) -> int:
        return self.lines[0].prefix_depth

    def plan_body(self) -> List[VoteLine]:
        """Plan lines without the header, lifted to the header's depth."""
        body = self.lines[1:]
        shift = min(line.prefix_depth for line in body) - self.depth
        return [line.with_depth(line.prefix_depth - shift) for line in body]

    def offset(self, depth: int) -> "VoteSegment":
        lines = tuple(line.with_depth(line.prefix_depth + depth) for line in self.lines)
        return VoteSegment(lines, self.plan_kind, self.plan_name)


def literal_segment(*lines: VoteLine) -> VoteSegment:
    return VoteSegment(tuple(lines))


def flatten(segments: Sequence[VoteSegment]) -> List[VoteLine]:
    return [line for segment in segments for line in segment.lines]


class VotePartitioner:
    """Applies one partition mode to working votes."""

    def __init__(self, mode: PartitionMode = PartitionMode.NONE):
        self.mode = mode

    def partition(self, segments: Sequence[VoteSegment]) -> List[VoteLineBlock]:
        """
        Partition a working vote.

        Args:
            segments: The post's working vote

        Returns:
            Blocks in working-vote order
        """
        segments = [segment for segment in segments if segment.lines]
        if not segments:
            return []

        if self.mode == PartitionMode.NONE:
            return [VoteLineBlock(flatten(segments))]

        if self.mode in (PartitionMode.BY_LINE, PartitionMode.BY_LINE_TASK):
            return self._by_line(segments, cascade=self.mode == PartitionMode.BY_LINE_TASK)

        return self._by_block(segments, split_all=self.mode == PartitionMode.BY_BLOCK_ALL)

    def _by_line(self, segments: Sequence[VoteSegment], cascade: bool) -> List[VoteLineBlock]:
        lines: List[VoteLine] = []
        for segment in segments:
            lines.extend(segment.plan_body() if segment.is_plan else segment.lines)

        blocks = []
        ancestors: List[Tuple[int, str]] = []
        for line in lines:
            while ancestors and ancestors[-1][0] >= line.prefix_depth:
                ancestors.pop()

            own_task = line.task
            if not own_task and ancestors:
                if cascade:
                    inherited = next((task for _, task in reversed(ancestors) if task), "")
                else:
                    inherited = ancestors[-1][1]
                if inherited:
                    line = line.with_task(inherited)

            ancestors.append((line.prefix_depth, own_task))
            blocks.append(VoteLineBlock([line.with_depth(0)]))

        return blocks

    def _by_block(self, segments: Sequence[VoteSegment], split_all: bool) -> List[VoteLineBlock]:
        blocks: List[VoteLineBlock] = []
        current: List[VoteLine] = []

        def flush():
            if current:
                blocks.append(VoteLineBlock(current).promoted())
                current.clear()

        for segment in segments:
            if segment.is_plan and segment.depth == 0:
                flush()
                split = segment.plan_kind == PlanKind.LABEL or split_all
                if split:
                    body = VoteLineBlock(segment.plan_body()).promoted().lines
                    blocks.extend(VoteLineBlock(group).promoted() for group in get_blocks(body))
                else:
                    blocks.append(VoteLineBlock(segment.lines).promoted())
                continue

            for line in segment.lines:
                if line.prefix_depth == 0:
                    flush()
                current.append(line)

        flush()
        return blocks
