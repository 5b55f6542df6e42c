"""
Canonical vote storage with merge, join, delete and undo.

Each entry is one canonical vote block plus the voters supporting it. Each
supporter keeps their own copy of the block so their marker (rank, score,
approval) survives when entries are merged.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from votes.blocks import VoteLineBlock
from votes.comparer import AgnosticComparer
from votes.origin import Origin
from votes.vote_line import MarkerType

logger = logging.getLogger(__name__)

StorageKey = Hashable


@dataclass
class StorageEntry:
    """One canonical vote and its supporters, in the order they were added."""

    block: VoteLineBlock
    supporters: Dict[Origin, VoteLineBlock] = field(default_factory=dict)

    @property
    def category(self) -> MarkerType:
        return self.block.category

    @property
    def task(self) -> str:
        return self.block.task

    @property
    def voters(self) -> List[Origin]:
        return list(self.supporters)

    def copy(self) -> "StorageEntry":
        return StorageEntry(block=self.block, supporters=dict(self.supporters))


class UndoActionType(Enum):
    ADD = "add"
    MERGE = "merge"
    JOIN = "join"
    DELETE = "delete"


@dataclass
class UndoAction:
    """
    State needed to reverse one storage mutation.

    Args:
        action_type: Which operation was performed
        affected_keys: Every storage key the operation touched or created
        entries: Copies of the touched entries that existed beforehand
        key_order: Storage key order before the operation
        voter_posts: Voter to post-id map before the operation
    """

    action_type: UndoActionType
    affected_keys: Tuple[StorageKey, ...]
    entries: Dict[StorageKey, StorageEntry]
    key_order: Tuple[StorageKey, ...]
    voter_posts: Dict[Origin, str]

    def __post_init__(self):
        if not isinstance(self.action_type, UndoActionType):
            raise ValueError(f"Invalid undo action type: {self.action_type!r}")
        if not self.affected_keys:
            raise ValueError(f"{self.action_type.value} undo requires affected keys")

        for key, entry in self.entries.items():
            if not isinstance(entry, StorageEntry) or not isinstance(entry.supporters, dict):
                raise ValueError(f"Undo entry for {key!r} is missing its supporter map")

        existing = [key for key in self.affected_keys if key in self.entries]
        if self.action_type == UndoActionType.MERGE and len(existing) != 2:
            raise ValueError("Merge undo requires both original entries")
        if self.action_type == UndoActionType.DELETE and len(existing) != 1:
            raise ValueError("Delete undo requires the deleted entry")
        if self.action_type == UndoActionType.JOIN and not existing:
            raise ValueError("Join undo requires the target entry")


class VoteStorage:
    """
    Ordered canonical vote storage.

    Writes happen on the tally thread. Other threads read through
    snapshot(), which holds the storage lock.
    """

    def __init__(self, comparer: Optional[AgnosticComparer] = None):
        self.comparer = comparer or AgnosticComparer.loose()
        self._entries: Dict[StorageKey, StorageEntry] = {}
        self._voter_posts: Dict[Origin, str] = {}
        self._undo_stack: List[UndoAction] = []
        self.lock = threading.RLock()

    # Lookup

    def key_for(self, block: VoteLineBlock) -> StorageKey:
        return self.comparer.block_key(block)

    def find(self, block: VoteLineBlock) -> Optional[StorageEntry]:
        return self._entries.get(self.key_for(block))

    def __contains__(self, block: VoteLineBlock) -> bool:
        return self.key_for(block) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self, category: Optional[MarkerType] = None) -> List[StorageEntry]:
        with self.lock:
            return [
                entry
                for entry in self._entries.values()
                if category is None or entry.category == category
            ]

    def entries_by_task(self, category: MarkerType) -> Dict[str, List[StorageEntry]]:
        """Entries of one category grouped by task, in storage order."""
        grouped: Dict[str, List[StorageEntry]] = {}
        for entry in self.entries(category):
            grouped.setdefault(entry.task, []).append(entry)
        return grouped

    def supporters(self, block: VoteLineBlock) -> List[Origin]:
        entry = self.find(block)
        return entry.voters if entry else []

    def votes_by(self, origin: Origin) -> List[VoteLineBlock]:
        with self.lock:
            return [
                entry.supporters[origin]
                for entry in self._entries.values()
                if origin in entry.supporters
            ]

    def voter_post_ids(self) -> Dict[Origin, str]:
        with self.lock:
            return dict(self._voter_posts)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    def snapshot(self) -> List[Tuple[StorageKey, VoteLineBlock, Tuple]]:
        """
        Structural copy of the storage for readers on other threads.

        Returns:
            List of (key, canonical block, ((origin, supporter block), ...))
        """
        with self.lock:
            return [
                (key, entry.block, tuple(entry.supporters.items()))
                for key, entry in self._entries.items()
            ]

    # Mutation

    def reset(self):
        with self.lock:
            self._entries.clear()
            self._voter_posts.clear()
            self._undo_stack.clear()

    def clear_undo(self):
        with self.lock:
            self._undo_stack.clear()

    def _record(self, action_type: UndoActionType, keys: Iterable[StorageKey]):
        affected = tuple(dict.fromkeys(keys))
        action = UndoAction(
            action_type=action_type,
            affected_keys=affected,
            entries={k: self._entries[k].copy() for k in affected if k in self._entries},
            key_order=tuple(self._entries),
            voter_posts=dict(self._voter_posts),
        )
        self._undo_stack.append(action)

    def _attach(self, block: VoteLineBlock, origin: Origin):
        key = self.key_for(block)
        entry = self._entries.get(key)
        if entry is None:
            entry = StorageEntry(block=block)
            self._entries[key] = entry
        entry.supporters[origin] = block
        self._voter_posts[origin] = origin.post_id

    def _drop_unsupported(self):
        for key in [k for k, e in self._entries.items() if not e.supporters]:
            del self._entries[key]

    def add(self, block: VoteLineBlock, origin: Origin, record_undo: bool = True):
        """
        Add one voter's support for a block.

        The block joins the agnostically-equal entry if there is one,
        otherwise it becomes a new canonical entry. The voter's earlier
        support in the block's category is dropped.
        """
        self.add_votes([block], origin, record_undo=record_undo)

    def add_votes(
        self,
        blocks: Sequence[VoteLineBlock],
        origin: Origin,
        record_undo: bool = False,
    ):
        """
        Replace a voter's support with a new vote.

        The voter's earlier support in every category the new vote uses is
        removed first, so the latest vote wins per category.
        """
        if origin.is_plan:
            raise ValueError(f"Plan origin '{origin.name}' cannot support votes")
        if not blocks:
            return

        with self.lock:
            categories = {block.category for block in blocks}
            stale = [
                key
                for key, entry in self._entries.items()
                if entry.category in categories and origin in entry.supporters
            ]
            if record_undo:
                self._record(
                    UndoActionType.ADD, stale + [self.key_for(b) for b in blocks]
                )

            for key in stale:
                del self._entries[key].supporters[origin]
            self._drop_unsupported()

            for block in blocks:
                self._attach(block, origin)

    def merge(
        self,
        first: VoteLineBlock,
        second: VoteLineBlock,
        keep: Optional[VoteLineBlock] = None,
    ) -> bool:
        """
        Merge two entries into one.

        Args:
            first: Entry whose text is kept by default
            second: Entry folded into the other
            keep: Optionally pick second as the surviving text instead

        Returns:
            False if either entry is missing or they are the same entry
        """
        with self.lock:
            target_key, source_key = self.key_for(first), self.key_for(second)
            if (
                target_key == source_key
                or target_key not in self._entries
                or source_key not in self._entries
            ):
                return False

            if keep is not None and self.key_for(keep) == source_key:
                target_key, source_key = source_key, target_key

            self._record(UndoActionType.MERGE, [target_key, source_key])

            target = self._entries[target_key]
            source = self._entries.pop(source_key)
            for origin, vote in source.supporters.items():
                if origin not in target.supporters:
                    target.supporters[origin] = target.block.with_marker(
                        vote.marker_type, vote.marker_value
                    )

            logger.info(
                f"Merged '{source.block.content}' into '{target.block.content}' "
                f"({len(target.supporters)} supporters)"
            )
            return True

    def _resolve_voters(self, voters: Iterable[Union[Origin, str]]) -> List[Origin]:
        known = {}
        for entry in self._entries.values():
            for origin in entry.supporters:
                known.setdefault(self.comparer.name_key(origin.name), origin)

        resolved = []
        for voter in voters:
            name = voter.name if isinstance(voter, Origin) else str(voter)
            origin = known.get(self.comparer.name_key(name))
            if origin is not None and origin not in resolved:
                resolved.append(origin)
        return resolved

    def join(self, voters: Iterable[Union[Origin, str]], into: VoteLineBlock) -> bool:
        """
        Move voters' support in a category onto one entry.

        Each named voter loses their support for every other entry in the
        target's category and supports the target instead, keeping the
        marker of their best-ranked previous support.

        Returns:
            False if the target is missing or no named voter has support to move
        """
        with self.lock:
            target_key = self.key_for(into)
            target = self._entries.get(target_key)
            if target is None:
                return False

            origins = self._resolve_voters(voters)
            category = target.category
            sources = [
                key
                for key, entry in self._entries.items()
                if key != target_key
                and entry.category == category
                and any(origin in entry.supporters for origin in origins)
            ]
            movers = [
                origin
                for origin in origins
                if any(origin in self._entries[key].supporters for key in sources)
            ]
            if not movers:
                return False

            self._record(UndoActionType.JOIN, [target_key] + sources)

            for origin in movers:
                previous = [
                    self._entries[key].supporters.pop(origin)
                    for key in sources
                    if origin in self._entries[key].supporters
                ]
                if origin not in target.supporters:
                    if category == MarkerType.RANK:
                        best = min(previous, key=lambda b: b.first.numeric_value)
                    else:
                        best = previous[0]
                    target.supporters[origin] = target.block.with_marker(
                        best.marker_type, best.marker_value
                    )

            self._drop_unsupported()
            logger.info(f"Joined {len(movers)} voters into '{target.block.content}'")
            return True

    def delete(self, block: VoteLineBlock) -> bool:
        with self.lock:
            key = self.key_for(block)
            if key not in self._entries:
                return False
            self._record(UndoActionType.DELETE, [key])
            del self._entries[key]
            logger.info(f"Deleted vote '{block.content}'")
            return True

    def undo(self) -> bool:
        """
        Reverse the most recent recorded mutation.

        Returns:
            False if there is nothing to undo
        """
        with self.lock:
            if not self._undo_stack:
                logger.info("Nothing to undo")
                return False

            action = self._undo_stack.pop()
            for key in action.affected_keys:
                self._entries.pop(key, None)
            for key, entry in action.entries.items():
                self._entries[key] = entry.copy()

            order = [key for key in action.key_order if key in self._entries]
            placed = set(order)
            order.extend(key for key in self._entries if key not in placed)
            self._entries = {key: self._entries[key] for key in order}
            self._voter_posts = dict(action.voter_posts)

            logger.info(f"Undid {action.action_type.value}")
            return True

    # Export

    def to_frame(self) -> pd.DataFrame:
        """Storage contents as a DataFrame, one row per canonical entry."""
        with self.lock:
            rows = [
                {
                    "category": entry.category.name,
                    "task": entry.task,
                    "content": entry.block.to_text(include_marker=False),
                    "supporters": len(entry.supporters),
                    "voters": ", ".join(origin.name for origin in entry.supporters),
                }
                for entry in self._entries.values()
            ]
        return pd.DataFrame(
            rows, columns=["category", "task", "content", "supporters", "voters"]
        )
