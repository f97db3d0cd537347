"""
Shared SQLite helpers for the ledger, goal, run and view repositories.

A repository wraps a ``sqlite3.Connection`` it does not own: the caller opens
it with ``get_connection()``, which also sets ``row_factory = sqlite3.Row``
and decides when to commit.  Repositories never commit themselves, so a whole
snapshot write or CSV import lands in one transaction.

SQL stays explicit in each repository method; these helpers only add debug
logging and the two result shapes the repositories keep needing (new rowid,
single value).
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

Params = Union[tuple[Any, ...], dict[str, Any]]


class BaseRepository:
    """Base class for repositories bound to one open connection.

    Attributes:
        conn: The caller-managed ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        """Run one statement with ``?`` or ``:name`` placeholders."""
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def executemany(self, sql: str, params_list: list[Params]) -> sqlite3.Cursor:
        """Run one statement per parameter set (bulk ledger and view inserts)."""
        logger.debug("SQL (many): %s | count: %d", sql.strip(), len(params_list))
        return self.conn.executemany(sql, params_list)

    def insert(self, sql: str, params: Params = ()) -> int:
        """Run an INSERT and return the new row's integer primary key.

        Raises:
            sqlite3.OperationalError: If ``sql`` did not insert a row.
        """
        rowid = self.execute(sql, params).lastrowid
        if rowid is None:
            raise sqlite3.OperationalError(f"Statement inserted no row: {sql.strip()}")
        return int(rowid)

    def fetchone(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def scalar(self, sql: str, params: Params = (), default: Any = None) -> Any:
        """First column of the first row, or ``default`` when no row comes back.

        A SQL ``NULL`` in that column (e.g. ``MAX`` over an empty table) is
        returned as ``None``, not ``default``.
        """
        row = self.execute(sql, params).fetchone()
        return default if row is None else row[0]
