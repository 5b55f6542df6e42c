"""
Vote line value type and inline markup helpers.
"""

import re
from dataclasses import dataclass, replace
from enum import Enum

MARKUP_TAG_RE = re.compile(r"『(?P<close>/)?(?P<name>[a-zA-Z]+)(?:=[^』]*)?』")


class MarkerType(Enum):
    """Kind of marker a vote line was cast with."""

    NONE = 0
    PLAN = 1
    VOTE = 2
    RANK = 3
    SCORE = 4
    APPROVAL = 5


def strip_markup(text: str) -> str:
    """Remove all inline markup tags, leaving only the visible text."""
    return MARKUP_TAG_RE.sub("", text or "")


def balance_markup(text: str) -> str:
    """
    Drop closing tags that have no opener and close any tags left open.

    Args:
        text: Content that may contain 『tag』 markup

    Returns:
        Content whose markup tags nest properly
    """
    pieces = []
    open_tags = []
    position = 0

    for match in MARKUP_TAG_RE.finditer(text):
        pieces.append(text[position : match.start()])
        position = match.end()
        name = match.group("name").lower()

        if match.group("close"):
            if name in open_tags:
                # Close anything opened inside this tag first
                while open_tags:
                    inner = open_tags.pop()
                    pieces.append(f"『/{inner}』")
                    if inner == name:
                        break
            continue

        open_tags.append(name)
        pieces.append(match.group(0))

    pieces.append(text[position:])
    pieces.extend(f"『/{name}』" for name in reversed(open_tags))
    return "".join(pieces)


@dataclass(frozen=True)
class VoteLine:
    """
    One parsed statement line of a vote.

    Instances are immutable; the with_* helpers return modified copies.
    """

    prefix_depth: int
    marker_type: MarkerType
    marker_value: str
    content: str
    task: str = ""
    originating_post_number: int = 0

    @property
    def clean_content(self) -> str:
        """Content with markup removed, for comparison."""
        return strip_markup(self.content).strip()

    @property
    def numeric_value(self) -> int:
        """
        Marker value on a 0-100 scale.

        Ranks are clamped to 1..99 and scores to 0..100. Plain votes count
        as 100, approvals as 80 (+) or 20 (-).
        """
        digits = "".join(c for c in self.marker_value if c.isdigit())

        if self.marker_type == MarkerType.RANK:
            return min(max(int(digits or 1), 1), 99)
        if self.marker_type == MarkerType.SCORE:
            return min(max(int(digits or 0), 0), 100)
        if self.marker_type == MarkerType.APPROVAL:
            return 80 if self.marker_value.strip() == "+" else 20
        if self.marker_type in (MarkerType.VOTE, MarkerType.PLAN):
            return 100
        return 0

    def with_depth(self, depth: int) -> "VoteLine":
        return replace(self, prefix_depth=max(depth, 0))

    def with_task(self, task: str) -> "VoteLine":
        return replace(self, task=(task or "").strip())

    def with_marker(self, marker_type: MarkerType, marker_value: str) -> "VoteLine":
        return replace(self, marker_type=marker_type, marker_value=marker_value)

    def with_content(self, content: str) -> "VoteLine":
        return replace(self, content=content)

    def to_text(self, include_marker: bool = True) -> str:
        """Render the line back into forum vote syntax."""
        prefix = "-" * self.prefix_depth
        marker = f"[{self.marker_value}]" if include_marker else "[]"
        task = f"[{self.task}]" if self.task else ""
        return f"{prefix}{marker}{task} {self.content}"

    def __str__(self) -> str:
        return self.to_text()
