import logging
import random
import threading
import time
from pathlib import Path
from typing import Optional

import duckdb
import pandas as pd

logger = logging.getLogger(__name__)


class DatabaseConnectionManager:
    """
    Serializes DuckDB connects and backs off while another process holds the file lock.

    Existing files are opened read-only when asked, so the web service can
    read results while a CLI run writes them.
    """

    def __init__(self, max_retries: int = 3, base_delay: float = 1.0):
        self.lock = threading.Lock()
        self.max_retries = max_retries
        self.base_delay = base_delay

    def _connect(self, target: str, read_only: bool) -> duckdb.DuckDBPyConnection:
        if read_only and target != ":memory:" and Path(target).exists():
            logger.debug(f"Opening {target} read-only")
            return duckdb.connect(target, read_only=True)
        logger.debug(f"Opening {target} read-write")
        return duckdb.connect(target)

    def get_connection(
        self, db_path: Optional[str], read_only: bool = True
    ) -> duckdb.DuckDBPyConnection:
        """
        Args:
            db_path: Path to DuckDB file, or None / ":memory:" for in-memory
            read_only: Whether to open in read-only mode (only for existing files)

        Raises:
            duckdb.IOException: If the file stays locked after every retry
        """
        target = db_path or ":memory:"
        attempt = 0
        while True:
            attempt += 1
            try:
                with self.lock:
                    return self._connect(target, read_only)
            except duckdb.IOException as e:
                locked = "lock" in str(e).lower()
                if not locked or attempt >= self.max_retries:
                    logger.error(f"Could not open {target} (attempt {attempt}): {e}")
                    raise
                delay = self.base_delay * 2 ** (attempt - 1) + random.uniform(0, 1)  # nosec B311
                logger.warning(
                    f"{target} is locked, retry {attempt}/{self.max_retries - 1} in {delay:.2f}s"
                )
                time.sleep(delay)


_connection_manager = DatabaseConnectionManager()


class TallyDatabase:
    """
    DuckDB store for quest posts and tally results.

    Results are written as plain tables keyed by quest name so they can be
    inspected with SQL or read back as DataFrames.
    """

    def __init__(self, db_path: Optional[str] = None, read_only: bool = False):
        """
        Args:
            db_path: Path to DuckDB file. If None, uses an in-memory database.
            read_only: Open existing files read-only (for the web service)
        """
        self.db_path = db_path
        self.read_only = read_only
        self._conn = None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create the connection on demand."""
        if self._conn is None:
            self._conn = _connection_manager.get_connection(self.db_path, self.read_only)
        return self._conn

    def query(self, sql: str, params: Optional[list] = None) -> pd.DataFrame:
        """
        Execute a SQL query and return results as a DataFrame.

        Args:
            sql: SQL query to execute
            params: Optional positional parameters
        """
        try:
            return self.conn.execute(sql, params or []).fetchdf()
        except duckdb.Error as e:
            logger.error(f"Query failed: {e}")
            raise

    def table_exists(self, table_name: str) -> bool:
        sql = "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?"
        result = self.conn.execute(sql, [table_name]).fetchone()
        return result[0] > 0

    def write_frame(self, table_name: str, frame: pd.DataFrame, quest: str):
        """
        Replace one quest's rows in a results table.

        Args:
            table_name: Target table, created from the frame's columns if missing
            frame: Rows to store
            quest: Quest name the rows belong to
        """
        if self.read_only:
            raise RuntimeError("Database opened read-only")

        rows = frame.copy()
        rows.insert(0, "quest", quest)
        self.conn.register("incoming_rows", rows)
        try:
            if self.table_exists(table_name):
                self.conn.execute(f"DELETE FROM {table_name} WHERE quest = ?", [quest])
                self.conn.execute(f"INSERT INTO {table_name} SELECT * FROM incoming_rows")
            else:
                self.conn.execute(f"CREATE TABLE {table_name} AS SELECT * FROM incoming_rows")
        finally:
            self.conn.unregister("incoming_rows")

        logger.info(f"Stored {len(rows)} rows in {table_name} for quest '{quest}'")

    def save_results(self, quest: str, storage_frame: pd.DataFrame, rankings_frame: pd.DataFrame):
        """Persist a tally's canonical votes and rankings."""
        self.write_frame("tally_votes", storage_frame, quest)
        self.write_frame("tally_rankings", rankings_frame, quest)

    def load_results(self, quest: str, table_name: str = "tally_votes") -> pd.DataFrame:
        if not self.table_exists(table_name):
            return pd.DataFrame()
        return self.query(f"SELECT * FROM {table_name} WHERE quest = ?", [quest])

    def list_quests(self) -> list:
        if not self.table_exists("tally_votes"):
            return []
        frame = self.query("SELECT DISTINCT quest FROM tally_votes ORDER BY quest")
        return frame["quest"].tolist()

    def close(self):
        """Close database connection."""
        if self._conn:
            try:
                self._conn.close()
                logger.debug(f"Closed database connection to {self.db_path}")
            finally:
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
