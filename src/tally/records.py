"""
Per-run registries of voters and plans.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from votes.blocks import VoteLineBlock
from votes.comparer import AgnosticComparer
from votes.origin import Origin, Post, post_id_key

logger = logging.getLogger(__name__)


class VotingRecords:
    """
    Registry of every voter seen in the current run.

    Tracks each voter's posts so proxy references can find the post they
    point at, and so later posts supersede earlier ones.
    """

    def __init__(self, comparer: AgnosticComparer):
        self.comparer = comparer
        self._posts: Dict[str, List[Post]] = {}
        self._origins: Dict[str, Origin] = {}

    def reset(self):
        self._posts.clear()
        self._origins.clear()

    def register(self, post: Post):
        key = self.comparer.name_key(post.author)
        self._origins.setdefault(key, post.origin)
        posts = self._posts.setdefault(key, [])
        posts.append(post)
        posts.sort(key=lambda p: p.sort_key)

    def has_voter(self, name: str) -> bool:
        return self.comparer.name_key(name) in self._origins

    def find_voter(self, name: str) -> Optional[Origin]:
        return self._origins.get(self.comparer.name_key(name))

    def latest_post_id(self, name: str) -> Optional[str]:
        posts = self._posts.get(self.comparer.name_key(name))
        return posts[-1].post_id if posts else None

    def posts_by(self, name: str) -> List[Post]:
        return list(self._posts.get(self.comparer.name_key(name), []))

    def last_post_by(self, name: str, before: Optional[Post] = None) -> Optional[Post]:
        """
        Find a voter's most recent post.

        Args:
            name: Voter name
            before: When given, only posts earlier than this one count

        Returns:
            The matching post, or None
        """
        candidates = [
            p for p in self.posts_by(name) if p.has_vote and not p.is_tally_post
        ]
        if before is not None:
            limit = before.sort_key
            candidates = [p for p in candidates if p.sort_key < limit]
        return candidates[-1] if candidates else None

    @property
    def voters(self) -> List[Origin]:
        return list(self._origins.values())

    def __len__(self) -> int:
        return len(self._origins)


class PlanKind(Enum):
    CONTENT = "content"
    LABEL = "label"
    SINGLE_LINE = "single_line"
    PROPOSED = "proposed"


@dataclass
class Plan:
    """A named plan and the lines it stands for."""

    name: str
    origin: Origin
    block: VoteLineBlock
    kind: PlanKind

    @property
    def lines(self):
        return self.block.lines

    @property
    def is_content_plan(self) -> bool:
        return self.kind in (PlanKind.CONTENT, PlanKind.PROPOSED)


class PlanRecords:
    """Registry of named plans for the current run."""

    def __init__(self, comparer: AgnosticComparer):
        self.comparer = comparer
        self._plans: Dict[str, Plan] = {}

    def reset(self):
        self._plans.clear()

    def get(self, name: str) -> Optional[Plan]:
        return self._plans.get(self.comparer.name_key(name))

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def add(self, plan: Plan, allow_update: bool = False) -> bool:
        """
        Register a plan under its name.

        The first registration of a name wins. With allow_update, the
        plan's own author may replace it from a later post if the content
        changed.

        Returns:
            True if the plan was stored
        """
        key = self.comparer.name_key(plan.name)
        existing = self._plans.get(key)

        if existing is None:
            self._plans[key] = plan
            logger.debug(f"Registered plan '{plan.name}' from {plan.origin.source}")
            return True

        if not allow_update or len(plan.block) < 2:
            return False

        same_author = (
            existing.origin.source is not None
            and plan.origin.source is not None
            and self.comparer.name_key(existing.origin.source.name)
            == self.comparer.name_key(plan.origin.source.name)
        )
        later = post_id_key(plan.origin.post_id) > post_id_key(existing.origin.post_id)
        changed = self.comparer.block_key(plan.block) != self.comparer.block_key(
            existing.block
        )

        if same_author and later and changed:
            self._plans[key] = plan
            logger.info(f"Plan '{plan.name}' updated by {plan.origin.source}")
            return True
        return False

    @property
    def plans(self) -> List[Plan]:
        return list(self._plans.values())

    def __len__(self) -> int:
        return len(self._plans)
