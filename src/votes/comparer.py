"""
Agnostic text comparison for vote content and voter names.

Two votes written by different people rarely match byte-for-byte: one uses
an accented letter, another types in caps, a third pastes a non-breaking
space at the end. The comparer reduces text to a comparison key so those
variants land on the same canonical entry.
"""

import logging
import re
import unicodedata
from typing import Iterable, Tuple

logger = logging.getLogger(__name__)

_MARKUP_RE = re.compile(r"『[^』]*』")
_WHITESPACE_RE = re.compile(r"\s+")


class AgnosticComparer:
    """
    Builds comparison keys that ignore accents, width and (optionally) case.

    Strict mode keeps whitespace and punctuation significant. Loose mode
    discards every character that is not a letter or a digit.
    """

    def __init__(self, symbols_significant: bool = False, case_significant: bool = False):
        self.symbols_significant = symbols_significant
        self.case_significant = case_significant

    @classmethod
    def strict(cls, case_significant: bool = False) -> "AgnosticComparer":
        return cls(symbols_significant=True, case_significant=case_significant)

    @classmethod
    def loose(cls, case_significant: bool = False) -> "AgnosticComparer":
        return cls(symbols_significant=False, case_significant=case_significant)

    @property
    def mode(self) -> str:
        return "strict" if self.symbols_significant else "loose"

    def key(self, text: str) -> str:
        """
        Reduce text to its comparison key.

        Args:
            text: Any vote content, task or name

        Returns:
            Normalized key; equal keys mean agnostically-equal text
        """
        if not text:
            return ""

        text = _MARKUP_RE.sub("", text)
        # NFKD folds width variants and splits accents off their base letters
        decomposed = unicodedata.normalize("NFKD", text)
        stripped = "".join(c for c in decomposed if not unicodedata.combining(c))

        if not self.case_significant:
            stripped = stripped.casefold()

        if self.symbols_significant:
            return stripped

        return "".join(c for c in stripped if c.isalnum())

    def equals(self, first: str, second: str) -> bool:
        return self.key(first) == self.key(second)

    def name_key(self, name: str) -> str:
        """Key for voter and plan names; whitespace runs are collapsed."""
        return self.key(_WHITESPACE_RE.sub(" ", name or "").strip())

    def line_key(self, line) -> Tuple[str, str]:
        """Single-line dedup key: agnostic clean content plus the exact task."""
        return (self.key(line.clean_content), line.task)

    def block_key(self, block) -> Tuple:
        """
        Dedup key for a whole block.

        Nesting is compared relative to the block's first line, so the same
        one-line vote matches whether it was cast at depth 0 or depth 2.
        """
        base_depth = block.lines[0].prefix_depth
        structure: Iterable = tuple(
            (line.prefix_depth - base_depth,) + self.line_key(line)
            for line in block.lines
        )
        return (block.category.name, block.task, structure)

    def __repr__(self) -> str:
        return f"AgnosticComparer(mode={self.mode}, case_significant={self.case_significant})"
