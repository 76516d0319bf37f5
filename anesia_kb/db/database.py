"""Database connection and initialization for the sqlite-backed stores."""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from ..config import get_settings

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def _default_db_path() -> Path:
    return get_settings().remote_db_path


def init_database(db_path: Optional[Path] = None) -> Path:
    """Create the remote store tables if they do not exist yet."""
    db_path = Path(db_path or _default_db_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_connection(db_path) as conn:
        with open(SCHEMA_PATH, 'r', encoding='utf-8') as f:
            conn.executescript(f.read())
        conn.commit()
    logger.info(f"Database initialized at {db_path}")
    return db_path


@contextmanager
def get_connection(db_path: Optional[Path] = None):
    """Context manager for database connections."""
    conn = sqlite3.connect(str(db_path or _default_db_path()))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def execute_query(query: str, params: tuple = (), db_path: Optional[Path] = None) -> list[dict]:
    """Execute a query and return results as list of dicts."""
    with get_connection(db_path) as conn:
        cursor = conn.execute(query, params)
        columns = [description[0] for description in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]


def execute_many(query: str, params_list: list[tuple], db_path: Optional[Path] = None) -> None:
    """Execute many inserts."""
    with get_connection(db_path) as conn:
        conn.executemany(query, params_list)
        conn.commit()


if __name__ == "__main__":
    init_database()
