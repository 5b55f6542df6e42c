"""
Test basic imports and module structure.

These tests ensure all core modules can be imported without errors
and basic functionality is available.
"""

import pytest


@pytest.mark.unit
@pytest.mark.smoke
def test_database_import():
    """Test that database module imports successfully."""
    from data.database import TallyDatabase

    assert TallyDatabase is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_post_loader_import():
    from data.post_loader import PostLoader

    assert PostLoader is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_votes_package_exports():
    """Test that the vote model package exposes its public types."""
    import votes

    for name in votes.__all__:
        assert getattr(votes, name) is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_tally_package_exports():
    import tally

    for name in tally.__all__:
        assert getattr(tally, name) is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_analysis_counters_available():
    """Test that every ranking method has a counter."""
    from analysis import RankingMethod, get_counter

    for method in RankingMethod:
        assert get_counter(method).method == method


@pytest.mark.unit
@pytest.mark.smoke
def test_web_main_import():
    """Test that web application module imports successfully."""
    from web.main import app

    assert app is not None
