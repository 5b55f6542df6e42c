"""
Vote text model for quest tallies.

This package turns raw post text into structured votes:
- VoteLineParser: parses individual vote lines
- VoteLine / VoteLineBlock: immutable vote values
- AgnosticComparer: accent, case and width insensitive comparison keys
- Origin / Post: who voted, and where
"""

from .blocks import VoteLineBlock, get_blocks, plan_header
from .comparer import AgnosticComparer
from .origin import IdentityKind, Origin, Post
from .parser import ParserOptions, VoteLineParser
from .vote_line import MarkerType, VoteLine

__all__ = [
    "AgnosticComparer",
    "IdentityKind",
    "MarkerType",
    "Origin",
    "ParserOptions",
    "Post",
    "VoteLine",
    "VoteLineBlock",
    "VoteLineParser",
    "get_blocks",
    "plan_header",
]
