"""SQLite-backed cache for raw quote provider responses."""

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from signalcheck.core.logger import logger

_TS_FMT = "%Y-%m-%d %H:%M:%S"


class ResponseCache:
    """Key-value cache of JSON payloads with a per-entry age limit.

    Free-tier quote APIs allow a handful of calls per minute, and the before/after
    lookups of one validation usually hit the same payload. Only successful
    payloads are stored; rate-limit and error bodies never are.
    """

    def __init__(self, db_path: str = "output/.cache.db", ttl_hours: float = 6) -> None:
        """
        Args:
            db_path (str): Path to the SQLite database file.
            ttl_hours (float): Entries older than this are treated as misses.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.ttl = timedelta(hours=ttl_hours)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _init_db(self) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS provider_cache (
                    cache_key TEXT PRIMARY KEY,
                    response_data TEXT,
                    created_at TEXT
                )
                """
            )

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached payload for ``key`` if present and fresh.

        Args:
            key (str): The cache key.

        Returns:
            Optional[Any]: The decoded JSON payload, else None.
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT response_data, created_at FROM provider_cache WHERE cache_key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"ResponseCache: read failed for {key}: {e}")
            return None

        if not row:
            logger.debug(f"ResponseCache: miss for {key}")
            return None

        created_at = datetime.strptime(row[1], _TS_FMT).replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - created_at > self.ttl:
            logger.debug(f"ResponseCache: expired entry for {key}")
            return None

        try:
            payload = json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.error(f"ResponseCache: corrupt entry for {key}: {e}")
            return None
        logger.debug(f"ResponseCache: hit for {key}")
        return payload

    def set(self, key: str, value: Any) -> None:
        """
        Store ``value`` as JSON under ``key``, replacing any previous entry.

        Args:
            key (str): The cache key.
            value (Any): A JSON-serialisable payload.
        """
        try:
            value_str = json.dumps(value)
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO provider_cache (cache_key, response_data, created_at)
                    VALUES (?, ?, ?)
                    """,
                    (key, value_str, datetime.now(timezone.utc).strftime(_TS_FMT)),
                )
        except (sqlite3.Error, TypeError) as e:
            logger.error(f"ResponseCache: write failed for {key}: {e}")
