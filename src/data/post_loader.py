import logging
from pathlib import Path
from typing import Dict, Iterable, List

import pandas as pd

from data.database import TallyDatabase
from votes.origin import Post

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["author", "post_id", "text"]


class PostLoader:
    """
    Loads extracted forum posts into DuckDB and hands them to the tally.

    Input files are CSV or JSON with one row per post: author, post_id,
    text, and optionally post_number, thread_uri and timestamp.
    """

    def __init__(self, db: TallyDatabase):
        self.db = db

    def _ensure_table(self):
        self.db.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS posts (
                quest VARCHAR,
                post_id VARCHAR,
                post_number INTEGER,
                author VARCHAR,
                thread_uri VARCHAR,
                timestamp VARCHAR,
                text VARCHAR
            )
            """
        )

    def _insert_from(self, relation: str, columns: Iterable[str], quest: str) -> int:
        columns = {column.lower(): column for column in columns}
        missing = [column for column in REQUIRED_COLUMNS if column not in columns]
        if missing:
            raise ValueError(f"Post data missing required columns: {', '.join(missing)}")

        def column_sql(name: str, default: str) -> str:
            if name in columns:
                return f'"{columns[name]}"'
            return default

        self._ensure_table()
        self.db.conn.execute("DELETE FROM posts WHERE quest = ?", [quest])
        self.db.conn.execute(
            f"""
            INSERT INTO posts
            SELECT
                ? AS quest,
                CAST("{columns['post_id']}" AS VARCHAR),
                COALESCE(TRY_CAST({column_sql('post_number', '0')} AS INTEGER), 0),
                CAST("{columns['author']}" AS VARCHAR),
                COALESCE(CAST({column_sql('thread_uri', "''")} AS VARCHAR), ''),
                CAST({column_sql('timestamp', 'NULL')} AS VARCHAR),
                COALESCE(CAST("{columns['text']}" AS VARCHAR), '')
            FROM {relation}
            """,
            [quest],
        )
        count = self.db.conn.execute(
            "SELECT COUNT(*) FROM posts WHERE quest = ?", [quest]
        ).fetchone()[0]
        return count

    def load_file(self, path: str, quest: str) -> Dict[str, int]:
        """
        Load posts from a CSV or JSON file.

        Args:
            path: Path to the post file
            quest: Quest name the posts are stored under

        Returns:
            Dictionary with loading statistics
        """
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Post file not found: {file_path}")

        quoted = str(file_path).replace("'", "''")
        suffix = file_path.suffix.lower()
        if suffix == ".csv":
            reader = f"read_csv_auto('{quoted}', header=true, all_varchar=true)"
        elif suffix in (".json", ".jsonl", ".ndjson"):
            reader = f"read_json_auto('{quoted}')"
        else:
            raise ValueError(f"Unsupported post file type: {file_path.suffix}")

        logger.info(f"Loading posts for '{quest}' from: {file_path}")
        self.db.conn.execute(f"CREATE OR REPLACE TEMP TABLE raw_posts AS SELECT * FROM {reader}")
        columns = self.db.query("SELECT * FROM raw_posts LIMIT 0").columns
        count = self._insert_from("raw_posts", columns, quest)

        logger.info(f"Loaded {count} posts")
        return {"posts": count}

    def load_records(self, records: List[dict], quest: str) -> Dict[str, int]:
        """Load posts given as plain records, e.g. from an API request."""
        if not records:
            self._ensure_table()
            self.db.conn.execute("DELETE FROM posts WHERE quest = ?", [quest])
            return {"posts": 0}

        frame = pd.DataFrame.from_records(records)
        self.db.conn.register("incoming_posts", frame)
        try:
            count = self._insert_from("incoming_posts", frame.columns, quest)
        finally:
            self.db.conn.unregister("incoming_posts")

        logger.info(f"Loaded {count} posts for '{quest}' from records")
        return {"posts": count}

    def get_posts(self, quest: str) -> List[Post]:
        """
        Read a quest's posts back in thread order.

        Returns:
            Unprocessed Post objects, ordered by post number then id
        """
        self._ensure_table()
        frame = self.db.query(
            """
            SELECT post_id, post_number, author, thread_uri, timestamp, text
            FROM posts
            WHERE quest = ?
            ORDER BY post_number, post_id
            """,
            [quest],
        )

        posts = []
        for record in frame.to_dict("records"):
            clean = {key: (None if pd.isna(value) else value) for key, value in record.items()}
            posts.append(Post.from_record(clean))
        return posts
