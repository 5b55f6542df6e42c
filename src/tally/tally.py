"""
Tally orchestration: runs every phase over a batch of posts.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from analysis import TaskRanking, get_counter
from analysis.ballots import Ballots
from analysis.ranking import RankingMethod
from tally.context import TallyContext
from tally.merges import MergeRecords, StorageEdit
from tally.options import PartitionMode, QuestOptions
from tally.partition import VotePartitioner
from tally.preprocess import PostPreprocessor
from tally.storage import UndoActionType, VoteStorage
from votes.blocks import VoteLineBlock
from votes.origin import Origin, Post
from votes.vote_line import MarkerType

logger = logging.getLogger(__name__)

RANKED_CATEGORIES = (MarkerType.RANK, MarkerType.SCORE)


class TallyCancelled(Exception):
    """Raised when a tally run is cancelled between phases."""

    def __init__(self, phase: str):
        super().__init__(f"Tally cancelled before {phase}")
        self.phase = phase


class CancellationToken:
    """Cooperative cancellation flag, safe to set from another thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, phase: str):
        if self._event.is_set():
            raise TallyCancelled(phase)


@dataclass
class TallyEvent:
    """Progress notification sent to subscribers."""

    phase: str
    status: str = "running"
    detail: str = ""


@dataclass
class TallyResult:
    """Summary of a completed run."""

    status: str
    posts_counted: int = 0
    voters: int = 0
    plans: int = 0
    passes: int = 0
    forced_posts: List[str] = field(default_factory=list)
    rankings: List[TaskRanking] = field(default_factory=list)

    def rankings_frame(self) -> pd.DataFrame:
        frames = [ranking.to_frame() for ranking in self.rankings]
        if not frames:
            return TaskRanking("", MarkerType.RANK, RankingMethod.RATED_INSTANT_RUNOFF).to_frame()
        return pd.concat(frames, ignore_index=True)


class VoteTally:
    """
    Runs the tally pipeline for one quest and holds its results.

    Typical use:

        tally = VoteTally(QuestOptions(partition_mode=PartitionMode.BY_BLOCK))
        result = tally.run(posts)
        tally.merge(block_a, block_b)
        tally.undo()
    """

    def __init__(self, options: Optional[QuestOptions] = None):
        self.options = options or QuestOptions()
        self.context = TallyContext(self.options)
        self.storage = VoteStorage(self.context.comparer)
        self.merge_records = MergeRecords()
        self._applied_edits: List[StorageEdit] = []
        self.posts: List[Post] = []
        self.counted_posts: List[Post] = []
        self.rankings: List[TaskRanking] = []
        self.status = "idle"
        self._listeners: List[Callable[[TallyEvent], None]] = []

    # Notifications

    def subscribe(self, callback: Callable[[TallyEvent], None]):
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[TallyEvent], None]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, phase: str, detail: str = "", status: str = "running"):
        event = TallyEvent(phase=phase, status=status, detail=detail)
        for listener in list(self._listeners):
            listener(event)

    # Running

    @staticmethod
    def _as_posts(posts: Iterable[Union[Post, dict]]) -> List[Post]:
        return [post if isinstance(post, Post) else Post.from_record(post) for post in posts]

    def run(
        self,
        posts: Iterable[Union[Post, dict]],
        cancel_token: Optional[CancellationToken] = None,
    ) -> TallyResult:
        """
        Tally a batch of posts from scratch.

        Args:
            posts: Posts in thread order, as Post objects or plain records
            cancel_token: Checked between phases

        Returns:
            TallyResult summarizing the run

        Raises:
            TallyCancelled: If cancel_token was set during the run
        """
        token = cancel_token or CancellationToken()
        self.posts = self._as_posts(posts)
        self.status = "running"
        preprocessor = PostPreprocessor(self.context)

        try:
            token.raise_if_cancelled("parse")
            self.context.reset()
            self.counted_posts = preprocessor.parse_posts(self.posts)
            preprocessor.register_voters(self.counted_posts)
            self._emit("parse", f"{len(self.counted_posts)} posts with votes")

            token.raise_if_cancelled("content plans")
            preprocessor.extract_content_plans(self.counted_posts)
            self._emit("content plans")

            token.raise_if_cancelled("labeled plans")
            preprocessor.extract_label_plans(self.counted_posts)
            self._emit("labeled plans")

            token.raise_if_cancelled("single-line plans")
            preprocessor.extract_single_line_plans(self.counted_posts)
            self._emit("single-line plans", f"{len(self.context.plans)} plans")

            token.raise_if_cancelled("resolve")
            passes = preprocessor.resolve(self.counted_posts, token)
            self._emit("resolve", f"{passes} passes")

            token.raise_if_cancelled("partition")
            self._install_storage(self.build_storage(), self.options.partition_mode)
            self._emit("partition", f"{len(self.storage)} canonical votes")

            self.rankings = self.rank(cancel_token=token)
            self._emit("rank", f"{len(self.rankings)} ranked tasks")
        except TallyCancelled as cancelled:
            self.status = "cancelled"
            logger.info(f"Tally cancelled before phase '{cancelled.phase}'")
            self._emit(cancelled.phase, status="cancelled")
            raise

        self.status = "complete"
        forced = [str(post) for post in self.counted_posts if post.force_process]
        self._emit("complete", status="complete")
        logger.info(
            f"Tally complete: {len(self.counted_posts)} posts, "
            f"{len(self.context.records)} voters, {len(self.storage)} canonical votes"
        )

        return TallyResult(
            status=self.status,
            posts_counted=len(self.counted_posts),
            voters=len(self.context.records),
            plans=len(self.context.plans),
            passes=passes,
            forced_posts=forced,
            rankings=self.rankings,
        )

    def clear_posts(self):
        """
        Forget the current posts, storage, undo history and rankings.

        Recorded storage edits are kept for the next run; use reset_merges
        to drop them as well.
        """
        self.posts = []
        self.counted_posts = []
        self.rankings = []
        self.context.reset()
        self.storage.reset()
        self._applied_edits = []
        self.status = "idle"
        logger.info("Cleared tally posts and results")

    def reset_merges(self):
        """Drop every recorded merge, join and delete for all partition modes."""
        self.merge_records.reset()
        self._applied_edits = []
        logger.info("Cleared recorded storage edits")

    def _passes_task_filter(self, block: VoteLineBlock) -> bool:
        task_filter = self.options.task_filter
        if not task_filter:
            return True
        comparer = self.context.comparer
        return any(comparer.equals(block.task, task) for task in task_filter)

    def build_storage(self, mode: Optional[PartitionMode] = None) -> VoteStorage:
        """
        Partition every finalized working vote into a fresh storage.

        Posts are added in thread order, so a voter's later post replaces
        their earlier support in the same category. Recorded edits are not
        applied here.
        """
        partitioner = VotePartitioner(mode or self.options.partition_mode)
        storage = VoteStorage(self.context.comparer)

        for post in sorted(self.counted_posts, key=lambda p: p.sort_key):
            if not post.processed:
                raise RuntimeError(f"{post} has no finalized working vote")
            blocks = [
                block
                for block in partitioner.partition(post.working_vote)
                if self._passes_task_filter(block)
            ]
            storage.add_votes(blocks, self._voter_origin(post))

        return storage

    def _voter_origin(self, post: Post) -> Origin:
        # Spelling variants of one voter share the first-seen name
        known = self.context.records.find_voter(post.author)
        if known is None or known.name == post.origin.name:
            return post.origin
        return replace(post.origin, name=known.name)

    def _install_storage(self, storage: VoteStorage, mode: PartitionMode):
        self._applied_edits = self.merge_records.replay(storage, mode)
        self.storage = storage

    def repartition(self, mode: PartitionMode) -> VoteStorage:
        """
        Switch partition mode without re-resolving references.

        The storage is rebuilt and the edits recorded for the new mode are
        replayed; undo then steps back through those edits.
        """
        if self.status != "complete":
            raise RuntimeError("Must run a tally before repartitioning")
        self.options.partition_mode = mode
        self._install_storage(self.build_storage(mode), mode)
        self.rankings = self.rank()
        logger.info(f"Repartitioned by {mode.value}: {len(self.storage)} canonical votes")
        return self.storage

    def rank(
        self,
        method: Optional[RankingMethod] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[TaskRanking]:
        """
        Rank every task that has rank or score votes.

        Returns:
            One TaskRanking per (category, task), ordered by category then task
        """
        counter = get_counter(method or self.options.ranking_method)
        rankings = []
        for category in RANKED_CATEGORIES:
            grouped = self.storage.entries_by_task(category)
            for task in sorted(grouped):
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled("rank")
                ballots = Ballots.from_entries(grouped[task], task, category)
                rankings.append(counter.rank(ballots))
        return rankings

    # Storage editing

    def _apply_edit(self, edit: StorageEdit) -> bool:
        if not edit.apply(self.storage):
            return False
        self.merge_records.add(self.options.partition_mode, edit)
        self._applied_edits.append(edit)
        return True

    def merge(self, first: VoteLineBlock, second: VoteLineBlock, keep=None) -> bool:
        return self._apply_edit(StorageEdit(UndoActionType.MERGE, (first, second), keep=keep))

    def join(self, voters: Sequence[Union[Origin, str]], into: VoteLineBlock) -> bool:
        names = tuple(v.name if isinstance(v, Origin) else str(v) for v in voters)
        return self._apply_edit(StorageEdit(UndoActionType.JOIN, (into,), voters=names))

    def delete(self, block: VoteLineBlock) -> bool:
        return self._apply_edit(StorageEdit(UndoActionType.DELETE, (block,)))

    def undo(self) -> bool:
        """Undo the last edit and stop replaying it on later runs."""
        if not self.storage.undo():
            return False
        if self._applied_edits:
            self.merge_records.remove(self.options.partition_mode, self._applied_edits.pop())
        return True

    def votes(self, category: Optional[MarkerType] = None):
        return self.storage.entries(category)

    def post_status(self) -> List[Dict[str, object]]:
        """Per-post processing state, for callers that surface broken references."""
        return [
            {
                "post_id": post.post_id,
                "post_number": post.post_number,
                "author": post.author,
                "processed": post.processed,
                "force_process": post.force_process,
                "unresolved_references": list(post.unresolved_references),
            }
            for post in self.counted_posts
        ]
