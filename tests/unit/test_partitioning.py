"""
Vote partitioning unit tests.
"""

import pytest

from tally.options import PartitionMode
from tally.partition import VotePartitioner, VoteSegment, literal_segment
from tally.records import PlanKind
from votes.parser import VoteLineParser


def parse(text):
    return VoteLineParser().parse_post(text)


def literal(text):
    return [literal_segment(line) for line in parse(text)]


def plan_segment(text, kind):
    return VoteSegment(tuple(parse(text)), kind, "Scout")


def rendered(blocks):
    return [block.to_text() for block in blocks]


@pytest.mark.unit
class TestNoPartition:
    def test_whole_vote_is_one_block(self):
        blocks = VotePartitioner(PartitionMode.NONE).partition(
            literal("[X] Attack\n-[X] Left flank\n[X] Retreat")
        )
        assert len(blocks) == 1
        assert len(blocks[0]) == 3

    def test_empty_vote(self):
        assert VotePartitioner(PartitionMode.NONE).partition([]) == []


@pytest.mark.unit
class TestPartitionByLine:
    def test_sub_line_inherits_parent_task(self):
        blocks = VotePartitioner(PartitionMode.BY_LINE).partition(
            literal("[X][Movie] Run Lola Run!\n-[X] National Geographic")
        )
        assert rendered(blocks) == [
            "[X][Movie] Run Lola Run!",
            "[X][Movie] National Geographic",
        ]

    def test_own_task_wins(self):
        blocks = VotePartitioner(PartitionMode.BY_LINE).partition(
            literal("[X][Movie] Run Lola Run!\n-[X][Food] Popcorn")
        )
        assert [block.task for block in blocks] == ["Movie", "Food"]

    def test_by_line_only_looks_at_direct_parent(self):
        blocks = VotePartitioner(PartitionMode.BY_LINE).partition(
            literal("[X][Movie] A\n-[X] B\n--[X] C")
        )
        assert [block.task for block in blocks] == ["Movie", "Movie", ""]

    def test_by_line_task_cascades(self):
        blocks = VotePartitioner(PartitionMode.BY_LINE_TASK).partition(
            literal("[X][Movie] A\n-[X] B\n--[X] C")
        )
        assert [block.task for block in blocks] == ["Movie", "Movie", "Movie"]

    def test_every_line_promoted_to_top_level(self):
        blocks = VotePartitioner(PartitionMode.BY_LINE).partition(
            literal("[X] A\n-[X] B\n--[X] C")
        )
        assert all(block.first.prefix_depth == 0 for block in blocks)

    def test_plan_header_dropped(self):
        segment = plan_segment("[X] Plan Scout\n-[X] Climb\n-[X] Signal", PlanKind.CONTENT)
        blocks = VotePartitioner(PartitionMode.BY_LINE).partition([segment])
        assert rendered(blocks) == ["[X] Climb", "[X] Signal"]


@pytest.mark.unit
class TestPartitionByBlock:
    def test_literal_blocks(self):
        blocks = VotePartitioner(PartitionMode.BY_BLOCK).partition(
            literal("[X] A\n-[X] A1\n[X] B")
        )
        assert [len(block) for block in blocks] == [2, 1]

    def test_content_plan_kept_whole(self):
        segment = plan_segment("[X] Plan Scout\n-[X] Climb\n-[X] Signal", PlanKind.CONTENT)
        blocks = VotePartitioner(PartitionMode.BY_BLOCK).partition(
            literal("[X] Attack") + [segment]
        )
        assert [len(block) for block in blocks] == [1, 3]
        assert blocks[1].content == "Plan Scout"

    def test_label_plan_split_without_label(self):
        segment = plan_segment(
            "[X] Plan Scout\n[X] Climb\n-[X] Bring rope\n[X] Signal", PlanKind.LABEL
        )
        blocks = VotePartitioner(PartitionMode.BY_BLOCK).partition([segment])
        assert rendered(blocks) == ["[X] Climb\n-[X] Bring rope", "[X] Signal"]

    def test_by_block_all_splits_content_plans(self):
        segment = plan_segment("[X] Plan Scout\n-[X] Climb\n-[X] Signal", PlanKind.CONTENT)
        blocks = VotePartitioner(PartitionMode.BY_BLOCK_ALL).partition([segment])
        assert rendered(blocks) == ["[X] Climb", "[X] Signal"]

    def test_nested_plan_stays_in_enclosing_block(self):
        segment = plan_segment(
            "[X] Plan Scout\n-[X] Climb\n-[X] Signal", PlanKind.CONTENT
        ).offset(1)
        blocks = VotePartitioner(PartitionMode.BY_BLOCK).partition(
            literal("[X] Outer") + [segment]
        )
        assert len(blocks) == 1
        assert len(blocks[0]) == 4

    def test_line_count_matches_unpartitioned_vote(self):
        segments = literal("[X] A\n-[X] A1\n-[X] A2\n[X] B\n-[X] B1")
        whole = VotePartitioner(PartitionMode.NONE).partition(segments)
        split = VotePartitioner(PartitionMode.BY_BLOCK).partition(segments)
        assert sum(len(block) for block in split) == len(whole[0])
