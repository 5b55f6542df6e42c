"""
Vote line parser.

Turns one line of post text into a VoteLine, or None when the line is not a
vote. Lines look like:

    -[x][Task] Content
    --[#2] Content
    ☒ Content
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from votes.vote_line import MarkerType, VoteLine, balance_markup, strip_markup

logger = logging.getLogger(__name__)

_LEADING_MARKUP = r"(?:\s|『[^』]*』)*"

_LINE_RE = re.compile(
    r"^" + _LEADING_MARKUP
    + r"(?P<prefix>(?:[-–—][ \t]*)*)"
    + _LEADING_MARKUP
    + r"(?:\[(?P<marker>[^\[\]]*)\]|(?P<box>[☒☑]))"
    + r"(?P<rest>.*)$",
    re.DOTALL,
)

_TASK_RE = re.compile(r"^" + _LEADING_MARKUP + r"\[(?P<task>[^\[\]]*)\](?P<rest>.*)$", re.DOTALL)

_VOTE_MARKERS = frozenset("xX✓✔✗✘Х☒☑")
_RANK_RE = re.compile(r"^#(?P<value>[0-9]{1,3})$")
_SCORE_RE = re.compile(r"^(?P<value>[0-9]{1,3})%$")
_NUMBER_RE = re.compile(r"^[0-9]{1,3}$")
_MIXED_RE = re.compile(r"^(?=.*[0-9])(?=.*[xX])[0-9xX]{2,4}$")

# Control characters other than CR/LF
_UNSAFE_RE = re.compile(r"[\x00-\x09\x0b\x0c\x0e-\x1f\x7f]")

_QUOTE_TRANSLATION = str.maketrans({"‘": "'", "’": "'", "“": '"', "”": '"', "〃": '"'})


@dataclass
class ParserOptions:
    """
    Category resolution rules for numeric markers.

    Args:
        forced_category: None for the default rules, MarkerType.RANK to read
            every numeric marker as a rank, MarkerType.SCORE to read bare
            numbers as scores.
    """

    forced_category: Optional[MarkerType] = None

    def __post_init__(self):
        allowed = (None, MarkerType.RANK, MarkerType.SCORE)
        if self.forced_category not in allowed:
            raise ValueError(f"Unsupported forced category: {self.forced_category}")


class VoteLineParser:
    """Parses vote lines according to configurable marker rules."""

    def __init__(self, options: Optional[ParserOptions] = None):
        self.options = options or ParserOptions()

    def classify_marker(self, marker: str) -> Optional[MarkerType]:
        """
        Determine the marker type for the text inside a marker bracket.

        Args:
            marker: Bracket contents with whitespace removed

        Returns:
            MarkerType, or None if the marker is not recognized
        """
        forced = self.options.forced_category

        if len(marker) == 1 and marker in _VOTE_MARKERS:
            return MarkerType.VOTE
        if marker in ("+", "-"):
            return MarkerType.APPROVAL
        if _RANK_RE.match(marker):
            return MarkerType.RANK
        if _SCORE_RE.match(marker):
            return MarkerType.SCORE
        if _NUMBER_RE.match(marker):
            return MarkerType.SCORE if forced == MarkerType.SCORE else MarkerType.RANK
        if _MIXED_RE.match(marker):
            # Letters and digits together: a vote unless ranks are forced
            return MarkerType.RANK if forced == MarkerType.RANK else MarkerType.VOTE
        return None

    def parse_line(self, text: str, post_number: int = 0) -> Optional[VoteLine]:
        """
        Parse a single line of post text.

        Args:
            text: One line of extracted post text
            post_number: Number of the post the line came from

        Returns:
            VoteLine, or None if the line is not a vote line
        """
        if not text:
            return None

        text = _UNSAFE_RE.sub("", text).replace("\r", "").replace("\n", "")

        match = _LINE_RE.match(text)
        if not match:
            return None

        prefix = match.group("prefix") or ""
        depth = sum(1 for c in prefix if c in "-–—")
        rest = match.group("rest")

        if match.group("box"):
            marker = match.group("box")
            marker_type = MarkerType.VOTE
        else:
            marker = re.sub(r"\s+", "", match.group("marker"))
            marker_type = self.classify_marker(marker)

        if marker_type is None:
            return self._parse_plan_label(match.group("marker"), rest, depth, post_number)

        task = ""
        task_match = _TASK_RE.match(rest)
        if task_match:
            task = strip_markup(task_match.group("task")).strip()
            rest = task_match.group("rest")
        elif re.match(_LEADING_MARKUP + r"\[", rest):
            # Opened a task bracket that never closes
            return None

        content = self._normalize_content(rest)
        if not content:
            return None

        return VoteLine(
            prefix_depth=depth,
            marker_type=marker_type,
            marker_value=marker,
            content=content,
            task=task,
            originating_post_number=post_number,
        )

    def _parse_plan_label(
        self, label: Optional[str], rest: str, depth: int, post_number: int
    ) -> Optional[VoteLine]:
        if label is None:
            return None
        label = strip_markup(label).strip()
        if not label or not label[0].isalpha():
            return None
        if strip_markup(rest).strip():
            return None

        return VoteLine(
            prefix_depth=depth,
            marker_type=MarkerType.PLAN,
            marker_value=label,
            content=label,
            originating_post_number=post_number,
        )

    @staticmethod
    def _normalize_content(text: str) -> str:
        text = text.translate(_QUOTE_TRANSLATION)
        text = balance_markup(text)
        # Only ordinary spaces and tabs are trimmed; other whitespace is content
        stripped = text.strip(" \t")
        if not strip_markup(stripped).strip(" \t"):
            return ""
        return stripped

    def parse_post(self, text: str, post_number: int = 0) -> List[VoteLine]:
        """Parse every vote line found in a post's text, in order."""
        lines = []
        for raw_line in (text or "").splitlines():
            line = self.parse_line(raw_line, post_number)
            if line is not None:
                lines.append(line)
        logger.debug(f"Parsed {len(lines)} vote lines from post #{post_number}")
        return lines
