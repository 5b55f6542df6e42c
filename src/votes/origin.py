"""
Origins (who contributed a vote) and posts (what they wrote).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from votes.vote_line import VoteLine


class IdentityKind(Enum):
    VOTER = "voter"
    PLAN = "plan"


def post_id_key(post_id: str) -> Tuple[int, Union[int, str]]:
    """
    Sort key for forum post ids.

    Numeric ids compare numerically; anything else falls back to string
    order after all numeric ids.
    """
    text = str(post_id).strip()
    if text.isdigit():
        return (0, int(text))
    return (1, text)


@dataclass(frozen=True)
class Origin:
    """
    Source of a vote: a voter, or a named plan.

    Identity is the role plus the name. Post details ride along for
    ordering and display but are not part of equality.
    """

    name: str
    kind: IdentityKind = IdentityKind.VOTER
    post_id: str = field(default="", compare=False)
    post_number: int = field(default=0, compare=False)
    thread_uri: str = field(default="", compare=False)
    source: Optional["Origin"] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Origin requires a non-empty name")
        object.__setattr__(self, "name", self.name.strip())
        if not isinstance(self.kind, IdentityKind):
            raise ValueError(f"Invalid identity kind: {self.kind}")

    @property
    def is_plan(self) -> bool:
        return self.kind == IdentityKind.PLAN

    def plan_origin(self, plan_name: str) -> "Origin":
        """Origin for a plan defined in this voter's post."""
        return Origin(
            name=plan_name,
            kind=IdentityKind.PLAN,
            post_id=self.post_id,
            post_number=self.post_number,
            thread_uri=self.thread_uri,
            source=self,
        )

    def __str__(self) -> str:
        return self.name


@dataclass
class Post:
    """
    A forum post being tallied, plus its processing state.

    working_vote is filled in by the preprocessing pipeline; until then the
    post is pending.
    """

    origin: Origin
    text: str
    timestamp: Optional[str] = None
    vote_lines: List[VoteLine] = field(default_factory=list)
    working_vote: List = field(default_factory=list)
    processed: bool = False
    force_process: bool = False
    is_tally_post: bool = False
    pending_references: List[str] = field(default_factory=list)
    unresolved_references: List[str] = field(default_factory=list)

    @property
    def author(self) -> str:
        return self.origin.name

    @property
    def post_id(self) -> str:
        return self.origin.post_id

    @property
    def post_number(self) -> int:
        return self.origin.post_number

    @property
    def sort_key(self):
        return (post_id_key(self.post_id), self.post_number)

    @property
    def has_vote(self) -> bool:
        return bool(self.vote_lines)

    @classmethod
    def from_record(cls, record: dict) -> "Post":
        """
        Build a post from a plain record.

        Args:
            record: Mapping with author, post_id, post_number, text and
                optionally thread_uri and timestamp

        Returns:
            Unprocessed Post
        """
        missing = [key for key in ("author", "post_id", "text") if key not in record]
        if missing:
            raise ValueError(f"Post record missing fields: {', '.join(missing)}")

        origin = Origin(
            name=str(record["author"]).strip(),
            kind=IdentityKind.VOTER,
            post_id=str(record["post_id"]),
            post_number=int(record.get("post_number") or 0),
            thread_uri=str(record.get("thread_uri") or ""),
        )
        timestamp = record.get("timestamp")
        return cls(
            origin=origin,
            text=str(record["text"] or ""),
            timestamp=str(timestamp) if timestamp is not None else None,
        )

    def reset(self):
        self.working_vote = []
        self.processed = False
        self.force_process = False
        self.pending_references = []
        self.unresolved_references = []

    def __str__(self) -> str:
        return f"Post #{self.post_number} by {self.author}"
