"""
User edits to vote storage, kept per partition mode.

Merges, joins and deletes made after a tally are recorded here and
replayed whenever the storage is rebuilt, so re-tallying a thread with new
posts (or switching back to a partition mode) keeps the user's cleanup.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from tally.options import PartitionMode
from tally.storage import UndoActionType, VoteStorage
from votes.blocks import VoteLineBlock

logger = logging.getLogger(__name__)

REPLAYABLE = (UndoActionType.MERGE, UndoActionType.JOIN, UndoActionType.DELETE)


@dataclass(frozen=True)
class StorageEdit:
    """
    One user edit, stored by content so it can be applied to a rebuilt storage.

    Args:
        action_type: MERGE, JOIN or DELETE
        blocks: (first, second) for a merge, (target,) for join and delete
        voters: Voter names moved by a join
        keep: Surviving text of a merge, when not the first block
    """

    action_type: UndoActionType
    blocks: Tuple[VoteLineBlock, ...]
    voters: Tuple[str, ...] = ()
    keep: Optional[VoteLineBlock] = None

    def __post_init__(self):
        if self.action_type not in REPLAYABLE:
            raise ValueError(f"Cannot record {self.action_type} as a storage edit")
        expected = 2 if self.action_type == UndoActionType.MERGE else 1
        if len(self.blocks) != expected:
            raise ValueError(
                f"{self.action_type.value} edit needs {expected} blocks, got {len(self.blocks)}"
            )

    def apply(self, storage: VoteStorage) -> bool:
        if self.action_type == UndoActionType.MERGE:
            return storage.merge(self.blocks[0], self.blocks[1], keep=self.keep)
        if self.action_type == UndoActionType.JOIN:
            return storage.join(self.voters, self.blocks[0])
        return storage.delete(self.blocks[0])


class MergeRecords:
    """Ordered storage edits for each partition mode of one quest."""

    def __init__(self):
        self._edits: Dict[PartitionMode, List[StorageEdit]] = {}

    def __len__(self) -> int:
        return sum(len(edits) for edits in self._edits.values())

    def edits(self, mode: PartitionMode) -> List[StorageEdit]:
        return list(self._edits.get(mode, []))

    def add(self, mode: PartitionMode, edit: StorageEdit):
        self._edits.setdefault(mode, []).append(edit)

    def remove(self, mode: PartitionMode, edit: StorageEdit) -> bool:
        """Forget the most recent record of this exact edit."""
        edits = self._edits.get(mode, [])
        for index in range(len(edits) - 1, -1, -1):
            if edits[index] is edit:
                del edits[index]
                return True
        return False

    def reset(self):
        self._edits.clear()

    def replay(self, storage: VoteStorage, mode: PartitionMode) -> List[StorageEdit]:
        """
        Apply every recorded edit for a mode, in the order they were made.

        Edits whose votes are not in the storage are skipped but kept, since a
        later tally may bring those votes back.

        Returns:
            The edits that changed the storage, matching its undo stack
        """
        applied = []
        for edit in self._edits.get(mode, []):
            if edit.apply(storage):
                applied.append(edit)
            else:
                logger.debug(f"Skipped {edit.action_type.value} edit with no matching votes")
        if applied:
            logger.info(f"Replayed {len(applied)} storage edits for {mode.value}")
        return applied
