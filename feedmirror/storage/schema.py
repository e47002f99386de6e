"""Idempotent DDL for the posts table.

Every backend must end up with the same columns, the same UNIQUE(guid)
constraint and the same server-side created_at default, so replicas stay
interchangeable. Only the identity column spelling differs per dialect.
"""

from __future__ import annotations

import logging
from typing import Dict

from feedmirror.storage.models import BackendDescriptor

logger = logging.getLogger(__name__)

TABLE = "posts"

_COLUMNS = """
      title TEXT,
      creator TEXT,
      description TEXT,
      link TEXT,
      pubDate TEXT,
      guid TEXT UNIQUE,
      guidIsPermaLink TEXT,
      source TEXT,
      sourceUrl TEXT,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"""

CREATE_TABLE_SQL: Dict[str, str] = {
    "postgres": f"CREATE TABLE IF NOT EXISTS {TABLE} (\n      id SERIAL PRIMARY KEY,{_COLUMNS}\n    )",
    "sqlite": f"CREATE TABLE IF NOT EXISTS {TABLE} (\n      id INTEGER PRIMARY KEY AUTOINCREMENT,{_COLUMNS}\n    )",
}

INSERT_POST_SQL = f"""
    INSERT INTO {TABLE} (title, creator, description, link, pubDate, guid, guidIsPermaLink, source, sourceUrl)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
    ON CONFLICT (guid) DO NOTHING
"""

GUID_EXISTS_SQL = f"SELECT 1 FROM {TABLE} WHERE guid = $1 LIMIT 1"
SELECT_POST_SQL = f"SELECT * FROM {TABLE} WHERE guid = $1 LIMIT 1"
COUNT_SQL = f"SELECT COUNT(*) AS count FROM {TABLE}"
LATEST_SQL = f"SELECT created_at FROM {TABLE} ORDER BY created_at DESC LIMIT 1"
PING_SQL = "SELECT 1"


def create_table_sql(dialect: str) -> str:
    """Return the CREATE TABLE statement for a pool dialect."""
    try:
        return CREATE_TABLE_SQL[dialect]
    except KeyError:
        raise ValueError(f"No schema for dialect '{dialect}'") from None


async def ensure_schema(backend: BackendDescriptor) -> None:
    """Create the posts table on one backend if it doesn't exist yet.

    Safe to repeat. Errors propagate to the caller, which treats them as a
    failure of this backend only.
    """
    await backend.pool.query(create_table_sql(backend.pool.dialect))
    logger.debug("Schema ensured on %s", backend.name)
