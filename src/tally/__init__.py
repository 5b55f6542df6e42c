"""
Tally engine for quest threads.

This module provides:
- VoteTally: runs parsing, plan extraction, reference resolution,
  partitioning, storage and ranking over a batch of posts
- QuestOptions / PartitionMode: per-quest configuration
- VoteStorage: canonical votes with merge, join, delete and undo
- MergeRecords: user edits kept per partition mode and replayed on re-tally
"""

from .context import TallyContext
from .merges import MergeRecords, StorageEdit
from .options import PartitionMode, QuestOptions
from .partition import VotePartitioner, VoteSegment
from .storage import StorageEntry, UndoAction, UndoActionType, VoteStorage
from .tally import (
    CancellationToken,
    TallyCancelled,
    TallyEvent,
    TallyResult,
    VoteTally,
)

__all__ = [
    "CancellationToken",
    "MergeRecords",
    "PartitionMode",
    "QuestOptions",
    "StorageEdit",
    "StorageEntry",
    "TallyCancelled",
    "TallyContext",
    "TallyEvent",
    "TallyResult",
    "UndoAction",
    "UndoActionType",
    "VotePartitioner",
    "VoteSegment",
    "VoteStorage",
    "VoteTally",
]
