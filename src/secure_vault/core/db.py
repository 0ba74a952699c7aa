# Vault - SQLite access
#
# The local store opens a short-lived connection per call. Both helpers set
# WAL journaling and a lock-wait timeout so the CLI and a long-running
# process can share one database file. Rows come back as sqlite3.Row.

import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator, Union

BUSY_TIMEOUT_SECONDS = 5.0


def open_db(db_path: Union[str, Path]) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


@contextmanager
def reading(db_path: Union[str, Path]) -> Iterator[sqlite3.Connection]:
    """Connection for queries; closed on exit."""
    with closing(open_db(db_path)) as conn:
        yield conn


@contextmanager
def transaction(db_path: Union[str, Path]) -> Iterator[sqlite3.Connection]:
    """Connection for one atomic write.

    A clean exit commits. An exception rolls back, so the row that was
    there before a failed upsert is still there afterwards.
    """
    with closing(open_db(db_path)) as conn:
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()
