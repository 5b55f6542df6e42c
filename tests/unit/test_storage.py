"""
Vote storage unit tests: adding, merging, joining, deleting and undo.
"""

import pytest

from tally.merges import MergeRecords, StorageEdit
from tally.options import PartitionMode
from tally.storage import StorageEntry, UndoAction, UndoActionType, VoteStorage
from votes.blocks import VoteLineBlock
from votes.comparer import AgnosticComparer
from votes.origin import IdentityKind, Origin
from votes.parser import VoteLineParser
from votes.vote_line import MarkerType


def block(text):
    return VoteLineBlock(VoteLineParser().parse_post(text))


def voter(name, post_id="1"):
    return Origin(name, IdentityKind.VOTER, post_id=post_id)


@pytest.mark.unit
class TestVoteStorageAdd:
    def setup_method(self):
        self.storage = VoteStorage(AgnosticComparer.loose())

    def test_agnostic_votes_share_an_entry(self):
        self.storage.add(block("[X] Attack the base"), voter("Alpha"))
        self.storage.add(block("[x] attack the BASE!"), voter("Beta"))

        assert len(self.storage) == 1
        entry = self.storage.entries()[0]
        assert entry.block.content == "Attack the base"
        assert [origin.name for origin in entry.voters] == ["Alpha", "Beta"]

    def test_supporter_keeps_own_marker(self):
        self.storage.add(block("[1] Fight"), voter("Alpha"))
        self.storage.add(block("[3] fight"), voter("Beta"))

        entry = self.storage.find(block("[2] Fight"))
        assert entry.supporters[voter("Beta")].marker_value == "3"

    def test_plan_origin_cannot_support(self):
        plan = voter("Alpha").plan_origin("Scout")
        with pytest.raises(ValueError):
            self.storage.add(block("[X] Attack"), plan)
        with pytest.raises(ValueError):
            self.storage.add_votes([block("[X] Attack")], plan)

    def test_add_votes_replaces_prior_support_in_category(self):
        alpha = voter("Alpha")
        self.storage.add_votes([block("[X] Attack"), block("[1] Fight")], alpha)
        self.storage.add_votes([block("[X] Retreat")], voter("Alpha", "2"))

        assert block("[X] Attack") not in self.storage
        assert block("[X] Retreat") in self.storage
        assert block("[1] Fight") in self.storage
        assert self.storage.voter_post_ids()[alpha] == "2"

    def test_add_replaces_prior_support_in_category(self):
        self.storage.add(block("[X] Attack"), voter("Alpha", "1"))
        self.storage.add(block("[1] Fight"), voter("Alpha", "1"))
        self.storage.add(block("[X] Defend"), voter("Alpha", "2"))

        assert [entry.block.content for entry in self.storage.entries(MarkerType.VOTE)] == [
            "Defend"
        ]
        assert block("[1] Fight") in self.storage
        assert self.storage.voter_post_ids()[voter("Alpha")] == "2"

    def test_add_undo_restores_replaced_support(self):
        self.storage.add(block("[X] Attack"), voter("Alpha", "1"))
        before = self.storage.snapshot()

        self.storage.add(block("[X] Defend"), voter("Alpha", "2"))
        assert self.storage.undo()
        assert self.storage.snapshot() == before
        assert self.storage.voter_post_ids()[voter("Alpha")] == "1"

    def test_entries_by_category_and_task(self):
        self.storage.add_votes(
            [block("[X][Movie] Lola"), block("[X][Food] Popcorn")], voter("Alpha")
        )
        self.storage.add(block("[1] Fight"), voter("Alpha"))

        grouped = self.storage.entries_by_task(MarkerType.VOTE)
        assert sorted(grouped) == ["Food", "Movie"]
        assert len(self.storage.entries(MarkerType.RANK)) == 1

    def test_to_frame(self):
        self.storage.add(block("[X] Attack"), voter("Alpha"))
        self.storage.add(block("[X] attack"), voter("Beta"))

        frame = self.storage.to_frame()
        assert list(frame.columns) == ["category", "task", "content", "supporters", "voters"]
        assert frame.iloc[0]["supporters"] == 2
        assert frame.iloc[0]["voters"] == "Alpha, Beta"


@pytest.mark.unit
class TestVoteStorageEditing:
    def setup_method(self):
        self.storage = VoteStorage(AgnosticComparer.loose())
        self.storage.add_votes([block("[X] Attack")], voter("Alpha", "1"))
        self.storage.add_votes([block("[X] Assault")], voter("Beta", "2"))
        self.storage.add_votes([block("[X] Retreat")], voter("Gamma", "3"))

    def test_merge(self):
        assert self.storage.merge(block("[X] Attack"), block("[X] Assault"))

        assert len(self.storage) == 2
        assert [o.name for o in self.storage.supporters(block("[X] Attack"))] == [
            "Alpha",
            "Beta",
        ]
        assert block("[X] Assault") not in self.storage

    def test_merge_keep_second_text(self):
        assert self.storage.merge(
            block("[X] Attack"), block("[X] Assault"), keep=block("[X] Assault")
        )
        assert block("[X] Assault") in self.storage
        assert block("[X] Attack") not in self.storage

    def test_merge_missing_or_same(self):
        assert not self.storage.merge(block("[X] Attack"), block("[X] Nothing"))
        assert not self.storage.merge(block("[X] Attack"), block("[X] attack"))
        assert not self.storage.can_undo

    def test_merge_undo_round_trip(self):
        before = self.storage.snapshot()
        posts_before = self.storage.voter_post_ids()

        self.storage.merge(block("[X] Attack"), block("[X] Assault"))
        assert self.storage.undo()

        assert self.storage.snapshot() == before
        assert self.storage.voter_post_ids() == posts_before

    def test_join(self):
        assert self.storage.join(["Gamma"], block("[X] Attack"))

        assert block("[X] Retreat") not in self.storage
        assert [o.name for o in self.storage.supporters(block("[X] Attack"))] == [
            "Alpha",
            "Gamma",
        ]

    def test_join_without_support_elsewhere(self):
        assert not self.storage.join(["Alpha"], block("[X] Attack"))
        assert not self.storage.join(["Nobody"], block("[X] Attack"))

    def test_join_rank_keeps_best_rank(self):
        storage = VoteStorage()
        storage.add_votes([block("[1] Fight"), block("[3] Flee")], voter("Alpha"))
        storage.add_votes([block("[1] Hide")], voter("Beta"))

        assert storage.join(["Alpha"], block("[1] Hide"))
        assert storage.find(block("[1] Hide")).supporters[voter("Alpha")].marker_value == "1"

    def test_join_undo_round_trip(self):
        before = self.storage.snapshot()
        self.storage.join(["Gamma"], block("[X] Attack"))
        self.storage.undo()
        assert self.storage.snapshot() == before

    def test_delete_and_undo(self):
        before = self.storage.snapshot()

        assert self.storage.delete(block("[X] Assault"))
        assert len(self.storage) == 2
        assert not self.storage.delete(block("[X] Assault"))

        assert self.storage.undo()
        assert self.storage.snapshot() == before

    def test_undo_is_last_in_first_out(self):
        original = self.storage.snapshot()
        self.storage.merge(block("[X] Attack"), block("[X] Assault"))
        merged = self.storage.snapshot()
        self.storage.delete(block("[X] Retreat"))

        assert self.storage.undo_depth == 2
        self.storage.undo()
        assert self.storage.snapshot() == merged
        self.storage.undo()
        assert self.storage.snapshot() == original

    def test_undo_empty_stack(self):
        assert not self.storage.undo()


@pytest.mark.unit
class TestUndoActionValidation:
    def test_invalid_type(self):
        with pytest.raises(ValueError):
            UndoAction("merge", ("a",), {}, (), {})

    def test_requires_keys(self):
        with pytest.raises(ValueError):
            UndoAction(UndoActionType.DELETE, (), {}, (), {})

    def test_merge_requires_both_entries(self):
        entry = StorageEntry(block=block("[X] Attack"))
        with pytest.raises(ValueError):
            UndoAction(UndoActionType.MERGE, ("a", "b"), {"a": entry}, ("a", "b"), {})

    def test_entry_requires_supporter_map(self):
        entry = StorageEntry(block=block("[X] Attack"), supporters=None)
        with pytest.raises(ValueError):
            UndoAction(UndoActionType.DELETE, ("a",), {"a": entry}, ("a",), {})

    def test_valid_delete(self):
        entry = StorageEntry(block=block("[X] Attack"))
        action = UndoAction(UndoActionType.DELETE, ("a",), {"a": entry}, ("a",), {})
        assert action.action_type == UndoActionType.DELETE


@pytest.mark.unit
class TestMergeRecords:
    def setup_method(self):
        self.records = MergeRecords()
        self.storage = VoteStorage()
        self.storage.add_votes([block("[X] Attack")], voter("Alpha", "1"))
        self.storage.add_votes([block("[X] Assault")], voter("Beta", "2"))

    def test_edit_validation(self):
        with pytest.raises(ValueError):
            StorageEdit(UndoActionType.ADD, (block("[X] Attack"),))
        with pytest.raises(ValueError):
            StorageEdit(UndoActionType.MERGE, (block("[X] Attack"),))

    def test_records_are_per_mode(self):
        edit = StorageEdit(UndoActionType.DELETE, (block("[X] Attack"),))
        self.records.add(PartitionMode.NONE, edit)

        assert self.records.edits(PartitionMode.BY_LINE) == []
        assert self.records.replay(self.storage, PartitionMode.BY_LINE) == []
        assert self.records.replay(self.storage, PartitionMode.NONE) == [edit]
        assert block("[X] Attack") not in self.storage

    def test_remove_matches_the_exact_edit(self):
        first = StorageEdit(UndoActionType.DELETE, (block("[X] Attack"),))
        second = StorageEdit(UndoActionType.DELETE, (block("[X] Attack"),))
        self.records.add(PartitionMode.NONE, first)
        self.records.add(PartitionMode.NONE, second)

        assert self.records.remove(PartitionMode.NONE, first)
        assert self.records.edits(PartitionMode.NONE)[0] is second
        assert not self.records.remove(PartitionMode.BY_LINE, second)
        assert len(self.records) == 1

    def test_replay_skips_missing_votes(self):
        merge = StorageEdit(UndoActionType.MERGE, (block("[X] Attack"), block("[X] Retreat")))
        self.records.add(PartitionMode.NONE, merge)

        assert self.records.replay(self.storage, PartitionMode.NONE) == []
        assert len(self.storage) == 2
        assert len(self.records) == 1


@pytest.mark.unit
def test_origin_name_is_stripped():
    assert Origin(" Alpha ").name == "Alpha"
    assert Origin("Alpha ") == Origin("Alpha")
