"""
Shared pytest configuration and fixtures for quest-vote-tally.

This module provides common test fixtures and utilities used across
all test modules.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.database import TallyDatabase  # noqa: E402
from votes.origin import Post  # noqa: E402


def make_post(author, post_id, text, post_number=None):
    """Build an unprocessed post the way the loader would."""
    return Post.from_record(
        {
            "author": author,
            "post_id": str(post_id),
            "post_number": post_number if post_number is not None else int(post_id),
            "text": text,
            "thread_uri": "https://forum.example/threads/test-quest.1",
        }
    )


@pytest.fixture
def temp_db():
    """Provide a temporary in-memory database for testing."""
    db = TallyDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
def temp_db_file():
    """Provide a temporary database file path for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    os.unlink(db_path)  # Let DuckDB create the file

    try:
        yield db_path
    finally:
        if os.path.exists(db_path):
            os.unlink(db_path)


@pytest.fixture
def sample_posts():
    """A short thread with plain votes, a plan and a proxy vote."""
    return [
        make_post("Kinematics", 101, "[X] Go to the market\n-[X] Buy apples"),
        make_post(
            "Ratatosk",
            102,
            "[X] Plan Scout Ahead\n-[X] Climb the tower\n-[X] Signal the others",
        ),
        make_post("Xryuran", 103, "[X] Plan Scout Ahead"),
        make_post("Muramasa", 104, "[X] Kinematics"),
        make_post("Kinematics", 105, "Should we also consider the docks?"),
    ]


@pytest.fixture
def sample_records():
    """Plain post records as they arrive from an extracted post file."""
    return [
        {"author": "Alpha", "post_id": "11", "post_number": 1, "text": "[1] Fight\n[2] Flee"},
        {"author": "Beta", "post_id": "12", "post_number": 2, "text": "[1] Flee\n[2] Fight"},
        {"author": "Gamma", "post_id": "13", "post_number": 3, "text": "[1] Fight"},
    ]


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (full pipeline, database optional)",
    )
    config.addinivalue_line(
        "markers",
        "golden: marks tests as golden dataset validation (hand-computed outcomes)",
    )
    config.addinivalue_line(
        "markers", "invariant: marks tests as tally invariant validation"
    )
    config.addinivalue_line(
        "markers", "smoke: marks tests as smoke tests (basic functionality check)"
    )
