"""
Post preprocessing: plan extraction and proxy reference resolution.

Phases run in order over all posts before the next phase starts:

1. parse posts and register voters
2. content plans (proposed/base plans first)
3. labeled plans spanning a whole multi-line vote
4. single-line labeled plans
5. working votes, resolved iteratively until every post is final
"""

import logging
import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from tally.context import TallyContext
from tally.partition import VoteSegment, flatten, literal_segment
from tally.records import Plan, PlanKind
from votes.blocks import (
    PlanHeader,
    VoteLineBlock,
    get_blocks,
    is_content_plan,
    is_label_plan,
    is_single_line_plan,
    plan_header,
)
from votes.origin import Post
from votes.vote_line import MarkerType, VoteLine

logger = logging.getLogger(__name__)

TALLY_POST_RE = re.compile(r"^#####", re.MULTILINE)
_PINNED_RE = re.compile(r"^(?:\^|↑)\s*:?\s*(?P<name>\S.*?)\.?$")
MAX_REFERENCE_LENGTH = 100


class ReferencePending(Exception):
    """A post references something that is not final yet."""

    def __init__(self, reference: str):
        super().__init__(reference)
        self.reference = reference


@dataclass
class Reference:
    plan: Optional[Plan] = None
    post: Optional[Post] = None


class PostPreprocessor:
    """Runs the preprocessing phases against one TallyContext."""

    def __init__(self, context: TallyContext):
        self.context = context
        self.options = context.options
        self.comparer = context.comparer
        self.records = context.records
        self.plans = context.plans

    # Phase 1

    def parse_posts(self, posts: Iterable[Post]) -> List[Post]:
        """
        Parse post text into vote lines.

        Returns:
            Posts that contain votes, excluding earlier tally result posts
        """
        counted = []
        for post in posts:
            post.reset()
            post.is_tally_post = bool(TALLY_POST_RE.search(post.text))
            if post.is_tally_post:
                logger.debug(f"Skipping tally post {post}")
                post.vote_lines = []
                continue

            post.vote_lines = self.context.parser.parse_post(post.text, post.post_number)
            if post.vote_lines:
                counted.append(post)

        logger.info(f"Parsed {len(counted)} posts containing votes")
        return counted

    def register_voters(self, posts: Sequence[Post]):
        for post in posts:
            self.records.register(post)
        logger.info(f"Registered {len(self.records)} voters")

    # Phases 2-4

    def _register_plan(
        self, post: Post, lines: Sequence[VoteLine], header: PlanHeader, kind: PlanKind
    ) -> bool:
        if self.options.forbid_vote_label_plan_names and lines[0].marker_type == MarkerType.PLAN:
            return False

        voter = self.records.find_voter(header.name)
        if voter is not None and self.comparer.name_key(voter.name) != self.comparer.name_key(
            post.author
        ):
            logger.warning(
                f"Ignoring plan '{header.name}' in {post}: name belongs to another voter"
            )
            return False

        plan = Plan(
            name=header.name,
            origin=post.origin.plan_origin(header.name),
            block=VoteLineBlock(lines),
            kind=kind,
        )
        return self.plans.add(plan, allow_update=self.options.allow_users_to_update_plans)

    def extract_content_plans(self, posts: Sequence[Post]) -> int:
        """Register plans written as a header line with nested content."""
        added = 0
        for proposed in (True, False):
            kind = PlanKind.PROPOSED if proposed else PlanKind.CONTENT
            for post in posts:
                for block in get_blocks(post.vote_lines):
                    if not is_content_plan(block):
                        continue
                    header = plan_header(block[0])
                    if header.is_proposed == proposed and self._register_plan(
                        post, block, header, kind
                    ):
                        added += 1
        logger.info(f"Found {added} content plans")
        return added

    def extract_label_plans(self, posts: Sequence[Post]) -> int:
        """Register whole votes headed by a plan label."""
        added = 0
        for post in posts:
            lines = post.vote_lines
            if is_label_plan(lines) and self._register_plan(
                post, lines, plan_header(lines[0]), PlanKind.LABEL
            ):
                added += 1
        logger.info(f"Found {added} labeled plans")
        return added

    def extract_single_line_plans(self, posts: Sequence[Post]) -> int:
        added = 0
        for post in posts:
            lines = post.vote_lines
            if is_single_line_plan(lines) and self._register_plan(
                post, lines, plan_header(lines[0]), PlanKind.SINGLE_LINE
            ):
                added += 1
        logger.info(f"Found {added} single-line plans")
        return added

    # Phase 5

    def resolve(self, posts: Sequence[Post], cancel_token=None) -> int:
        """
        Finalize the working vote of every post.

        Posts whose references point at posts that are not final yet wait
        for a later pass. If a pass finalizes nothing, the remaining posts
        are forced through with broken references kept as literal text.

        Returns:
            Number of passes made
        """
        pending = [post for post in posts if not post.processed]
        limit = len(pending) + 1
        passes = 0

        while pending:
            if passes >= limit:
                raise RuntimeError(f"Reference resolution did not finish in {limit} passes")
            if cancel_token is not None:
                cancel_token.raise_if_cancelled("resolve")
            passes += 1

            finalized = sum(1 for post in pending if self.process_post(post))
            pending = [post for post in pending if not post.processed]
            logger.debug(f"Pass {passes}: finalized {finalized}, {len(pending)} pending")

            if pending and finalized == 0:
                logger.warning(
                    f"No references resolved in pass {passes}; forcing {len(pending)} posts"
                )
                for post in pending:
                    post.force_process = True

        logger.info(f"Resolved working votes in {passes} passes")
        return passes

    def process_post(self, post: Post) -> bool:
        """
        Try to build a post's working vote.

        Returns:
            True if the post is now final
        """
        post.pending_references = []
        post.unresolved_references = []
        try:
            segments = self._working_vote(post)
        except ReferencePending as pending:
            post.pending_references = [pending.reference]
            return False

        post.working_vote = segments
        post.processed = True
        if post.unresolved_references:
            logger.warning(
                f"{post}: kept unresolved references as text: "
                f"{', '.join(post.unresolved_references)}"
            )
        return True

    def _own_proposed_plan_lines(self, lines: Sequence[VoteLine]) -> Set[int]:
        skipped: Set[int] = set()
        start = 0
        for block in get_blocks(lines):
            if is_content_plan(block) and plan_header(block[0]).is_proposed:
                skipped.update(range(start, start + len(block)))
            start += len(block)
        return skipped

    def _working_vote(self, post: Post) -> List[VoteSegment]:
        lines = post.vote_lines
        skipped = self._own_proposed_plan_lines(lines)
        segments: List[VoteSegment] = []

        index = 0
        while index < len(lines):
            if index in skipped:
                index += 1
                continue
            produced, consumed = self._expand(post, lines, index, frozenset())
            segments.extend(produced)
            index += consumed
        return segments

    def _expand(
        self, post: Post, lines: Sequence[VoteLine], index: int, visiting: FrozenSet[str]
    ) -> Tuple[List[VoteSegment], int]:
        line = lines[index]
        reference = self.find_reference(line, post)

        if reference is None:
            return [literal_segment(line)], 1
        if reference.plan is not None:
            return self._expand_plan(post, lines, index, reference.plan, visiting)
        return self._expand_user(post, line, reference.post), 1

    def _expand_plan(
        self,
        post: Post,
        lines: Sequence[VoteLine],
        index: int,
        plan: Plan,
        visiting: FrozenSet[str],
    ) -> Tuple[List[VoteSegment], int]:
        line = lines[index]
        size = len(plan.lines)

        consumed = 1
        if size > 1 and self._same_lines(lines[index : index + size], plan.lines):
            consumed = size
        elif index + 1 < len(lines) and lines[index + 1].prefix_depth > line.prefix_depth:
            # Nested lines that don't reproduce the plan make this plain text
            return [literal_segment(line)], 1

        key = self.comparer.name_key(plan.name)
        if key in visiting:
            return self._unresolved(post, line, f"Plan {plan.name}"), 1

        body = self._resolve_plan(post, plan, visiting | {key})
        segment = VoteSegment(tuple(self._apply_reference(line, body)), plan.kind, plan.name)
        return [segment], consumed

    def _resolve_plan(self, post: Post, plan: Plan, visiting: FrozenSet[str]) -> List[VoteLine]:
        lines = plan.lines
        resolved = [lines[0]]
        index = 1
        while index < len(lines):
            produced, consumed = self._expand(post, lines, index, visiting)
            resolved.extend(flatten(produced))
            index += consumed
        return resolved

    def _expand_user(self, post: Post, line: VoteLine, target: Post) -> List[VoteSegment]:
        if not target.processed:
            return self._unresolved(post, line, target.author)
        if not target.working_vote:
            return [literal_segment(line)]

        segments = []
        for position, segment in enumerate(target.working_vote):
            lines = self._apply_reference(line, segment.lines, set_task=position == 0)
            segments.append(VoteSegment(tuple(lines), segment.plan_kind, segment.plan_name))
        return segments

    def _unresolved(self, post: Post, line: VoteLine, reference: str) -> List[VoteSegment]:
        if not post.force_process:
            raise ReferencePending(reference)
        post.unresolved_references.append(reference)
        return [literal_segment(line)]

    @staticmethod
    def _apply_reference(
        reference: VoteLine, lines: Sequence[VoteLine], set_task: bool = True
    ) -> List[VoteLine]:
        """Give substituted lines the referencing line's marker and nesting."""
        result = []
        for position, line in enumerate(lines):
            if reference.marker_type != MarkerType.PLAN:
                line = line.with_marker(reference.marker_type, reference.marker_value)
            line = line.with_depth(line.prefix_depth + reference.prefix_depth)
            if set_task and position == 0 and reference.task and not line.task:
                line = line.with_task(reference.task)
            result.append(line)
        return result

    def _same_lines(self, first: Sequence[VoteLine], second: Sequence[VoteLine]) -> bool:
        if len(first) != len(second):
            return False
        base_first, base_second = first[0].prefix_depth, second[0].prefix_depth
        return all(
            a.prefix_depth - base_first == b.prefix_depth - base_second
            and self.comparer.line_key(a) == self.comparer.line_key(b)
            for a, b in zip(first, second)
        )

    # References

    def find_reference(self, line: VoteLine, post: Post) -> Optional[Reference]:
        """
        Work out whether a line is a proxy vote.

        "Plan X" lines look for a plan first, then a voter. "^X" is a pinned
        voter reference. Any other short line is checked against voter
        names, then plan names.
        """
        text = line.clean_content
        if not text or len(text) > MAX_REFERENCE_LENGTH:
            return None

        pinned = self.options.force_pinned_proxy_votes

        header = plan_header(line)
        if header is not None:
            plan = self.plans.get(header.name)
            if plan is not None:
                return Reference(plan=plan)
            return self._user_reference(header.name, post, pinned)

        match = _PINNED_RE.match(text)
        if match:
            return self._user_reference(match.group("name"), post, pinned=True)

        name = text.rstrip(".").strip()
        reference = self._user_reference(name, post, pinned)
        if reference is None and not self.options.force_plan_references_to_be_labeled:
            plan = self.plans.get(name)
            if plan is not None:
                reference = Reference(plan=plan)
        return reference

    def _user_reference(self, name: str, post: Post, pinned: bool) -> Optional[Reference]:
        if self.options.disable_proxy_votes or not self.records.has_voter(name):
            return None
        if self.comparer.name_key(name) == self.comparer.name_key(post.author):
            return None

        target = self.records.last_post_by(name, before=post if pinned else None)
        if target is None:
            return None
        return Reference(post=target)
