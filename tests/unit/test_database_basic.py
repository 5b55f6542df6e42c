"""
Basic database functionality unit tests.

These tests verify core database operations and post loading without
requiring external data files.
"""

import json

import pandas as pd
import pytest

from data.database import TallyDatabase
from data.post_loader import PostLoader


@pytest.mark.unit
def test_database_creation(temp_db):
    """Test that database can be created and closed."""
    assert temp_db is not None
    assert temp_db.conn is not None


@pytest.mark.unit
def test_basic_query(temp_db):
    """Test basic SQL query execution."""
    result = temp_db.query("SELECT 1 as test_value")
    assert isinstance(result, pd.DataFrame)
    assert len(result) == 1
    assert result.iloc[0]["test_value"] == 1


@pytest.mark.unit
def test_query_parameters(temp_db):
    result = temp_db.query("SELECT ? AS quest", ["Fallen Hero"])
    assert result.iloc[0]["quest"] == "Fallen Hero"


@pytest.mark.unit
def test_table_exists(temp_db):
    assert not temp_db.table_exists("tally_votes")
    temp_db.conn.execute("CREATE TABLE tally_votes (quest TEXT)")
    assert temp_db.table_exists("tally_votes")


@pytest.mark.unit
def test_save_and_load_results(temp_db):
    """Test that results are stored per quest and replaced on rewrite."""
    votes = pd.DataFrame(
        [
            {
                "category": "VOTE",
                "task": "",
                "content": "[] Attack",
                "supporters": 2,
                "voters": "A, B",
            }
        ]
    )
    rankings = pd.DataFrame(
        [
            {
                "task": "",
                "category": "RANK",
                "method": "schulze",
                "rank": 1,
                "content": "[] Fight",
                "score": 1.0,
                "supporters": 2,
            }
        ]
    )

    temp_db.save_results("Quest One", votes, rankings)
    temp_db.save_results("Quest Two", votes, rankings)
    temp_db.save_results("Quest One", votes.assign(supporters=3), rankings)

    loaded = temp_db.load_results("Quest One")
    assert len(loaded) == 1
    assert loaded.iloc[0]["supporters"] == 3
    assert len(temp_db.load_results("Quest One", "tally_rankings")) == 1
    assert temp_db.list_quests() == ["Quest One", "Quest Two"]


@pytest.mark.unit
def test_load_results_without_table(temp_db):
    assert temp_db.load_results("Nothing").empty
    assert temp_db.list_quests() == []


@pytest.mark.unit
def test_read_only_database_rejects_writes(temp_db_file):
    with TallyDatabase(temp_db_file) as db:
        db.conn.execute("CREATE TABLE tally_votes (quest TEXT)")

    with TallyDatabase(temp_db_file, read_only=True) as db:
        with pytest.raises(RuntimeError):
            db.write_frame("tally_votes", pd.DataFrame([{"content": "x"}]), "Quest")


@pytest.mark.unit
class TestPostLoader:
    def setup_method(self):
        self.db = TallyDatabase(":memory:")
        self.loader = PostLoader(self.db)

    def teardown_method(self):
        self.db.close()

    def test_load_records(self, sample_records):
        stats = self.loader.load_records(sample_records, "Skirmish")
        assert stats == {"posts": 3}

        posts = self.loader.get_posts("Skirmish")
        assert [post.author for post in posts] == ["Alpha", "Beta", "Gamma"]
        assert posts[0].post_id == "11"
        assert posts[0].post_number == 1
        assert posts[0].origin.thread_uri == ""
        assert posts[0].timestamp is None

    def test_reload_replaces_quest_posts(self, sample_records):
        self.loader.load_records(sample_records, "Skirmish")
        self.loader.load_records(sample_records[:1], "Skirmish")
        self.loader.load_records(sample_records, "Other")

        assert len(self.loader.get_posts("Skirmish")) == 1
        assert len(self.loader.get_posts("Other")) == 3

    def test_empty_records_clear_quest(self, sample_records):
        self.loader.load_records(sample_records, "Skirmish")
        assert self.loader.load_records([], "Skirmish") == {"posts": 0}
        assert self.loader.get_posts("Skirmish") == []

    def test_missing_columns(self):
        with pytest.raises(ValueError, match="text"):
            self.loader.load_records([{"author": "Alpha", "post_id": "1"}], "Skirmish")

    def test_load_csv(self, tmp_path):
        path = tmp_path / "posts.csv"
        path.write_text(
            "author,post_id,post_number,text\n"
            "Beta,12,2,[X] Flee\n"
            "Alpha,11,1,[X] Fight\n"
        )

        assert self.loader.load_file(str(path), "Skirmish") == {"posts": 2}
        posts = self.loader.get_posts("Skirmish")
        assert [post.author for post in posts] == ["Alpha", "Beta"]
        assert posts[0].text == "[X] Fight"
        assert posts[1].post_id == "12"

    def test_load_json(self, tmp_path, sample_records):
        path = tmp_path / "posts.json"
        path.write_text(json.dumps(sample_records))

        assert self.loader.load_file(str(path), "Skirmish") == {"posts": 3}
        assert self.loader.get_posts("Skirmish")[2].author == "Gamma"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            self.loader.load_file(str(tmp_path / "absent.csv"), "Skirmish")

    def test_unsupported_file_type(self, tmp_path):
        path = tmp_path / "posts.txt"
        path.write_text("author,post_id,text\n")
        with pytest.raises(ValueError, match="Unsupported"):
            self.loader.load_file(str(path), "Skirmish")
