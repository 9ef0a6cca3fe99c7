"""
Nest Trend Monitor - Sample History Store

Keeps the last TREND_WINDOW readings of every thermostat, newest first,
in Redis (default) or a local SQLite file. The window is a best-effort
cache for trend detection, not a system of record.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import redis

import config
from detector import TREND_WINDOW
from errors import MalformedReading, StoreUnavailable
from poller import Reading

logger = logging.getLogger(__name__)


class SampleStore:
    """
    Fixed-depth, newest-first history per device.

    The depth is TREND_WINDOW, shared with the trend classifier; windows
    are trimmed to it on every push.
    """

    depth = TREND_WINDOW

    def push(self, device_id: str, reading: Reading):
        raise NotImplementedError

    def recent(self, device_id: str) -> list[Reading]:
        raise NotImplementedError

    def clear(self, device_id: str):
        raise NotImplementedError

    def device_ids(self) -> list[str]:
        raise NotImplementedError

    def ping(self):
        """Raise StoreUnavailable if the backing store cannot be reached."""
        raise NotImplementedError

    def _decode(self, device_id: str, raw) -> Reading:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise MalformedReading(f"{device_id}: stored sample is not valid JSON: {e}") from e
        return Reading.from_dict(device_id, data)


class RedisSampleStore(SampleStore):
    """History kept in one Redis list per device, head = newest."""

    def __init__(self, client: redis.Redis = None, url: str = None, namespace: str = None):
        self.namespace = namespace or config.HISTORY_NAMESPACE
        self._client = client or redis.Redis.from_url(url or config.REDIS_URL)

    def key(self, device_id: str) -> str:
        return f"{self.namespace}:{device_id}:temps"

    def push(self, device_id: str, reading: Reading):
        key = self.key(device_id)
        try:
            # MULTI/EXEC so a concurrent writer never sees an untrimmed list
            with self._client.pipeline(transaction=True) as pipe:
                pipe.lpush(key, json.dumps(reading.to_dict()))
                pipe.ltrim(key, 0, self.depth - 1)
                pipe.execute()
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f"Could not store sample for {device_id}: {e}") from e

    def recent(self, device_id: str) -> list[Reading]:
        try:
            raw_samples = self._client.lrange(self.key(device_id), 0, self.depth - 1)
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f"Could not read history for {device_id}: {e}") from e
        return [self._decode(device_id, raw) for raw in raw_samples]

    def clear(self, device_id: str):
        try:
            self._client.delete(self.key(device_id))
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f"Could not clear history for {device_id}: {e}") from e

    def device_ids(self) -> list[str]:
        prefix = f"{self.namespace}:"
        suffix = ":temps"
        try:
            keys = self._client.scan_iter(match=f"{prefix}*{suffix}")
            ids = []
            for key in keys:
                if isinstance(key, bytes):
                    key = key.decode()
                ids.append(key[len(prefix):-len(suffix)])
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f"Could not list devices: {e}") from e
        return sorted(ids)

    def ping(self):
        try:
            self._client.ping()
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f"Redis unreachable: {e}") from e


class SqliteSampleStore(SampleStore):
    """History kept in a local SQLite table, highest row id = newest."""

    def __init__(self, db_path: Path = None):
        self.db_path = Path(db_path or config.DATABASE_PATH)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_database()
        except (OSError, sqlite3.Error) as e:
            raise StoreUnavailable(f"Could not open history database {self.db_path}: {e}") from e

    def _init_database(self):
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sample_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_id TEXT NOT NULL,
                    sample_json TEXT NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sample_history_device
                ON sample_history(device_id, id)
            """)
            conn.commit()
            logger.debug(f"History database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get a database connection."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            yield conn
        finally:
            conn.close()

    def push(self, device_id: str, reading: Reading):
        try:
            with self._get_connection() as conn:
                # insert and trim in one transaction
                with conn:
                    conn.execute(
                        "INSERT INTO sample_history (device_id, sample_json) VALUES (?, ?)",
                        (device_id, json.dumps(reading.to_dict())),
                    )
                    conn.execute("""
                        DELETE FROM sample_history
                        WHERE device_id = ? AND id NOT IN (
                            SELECT id FROM sample_history
                            WHERE device_id = ?
                            ORDER BY id DESC LIMIT ?
                        )
                    """, (device_id, device_id, self.depth))
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Could not store sample for {device_id}: {e}") from e

    def recent(self, device_id: str) -> list[Reading]:
        try:
            with self._get_connection() as conn:
                rows = conn.execute("""
                    SELECT sample_json FROM sample_history
                    WHERE device_id = ?
                    ORDER BY id DESC LIMIT ?
                """, (device_id, self.depth)).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Could not read history for {device_id}: {e}") from e
        return [self._decode(device_id, row[0]) for row in rows]

    def clear(self, device_id: str):
        try:
            with self._get_connection() as conn:
                conn.execute("DELETE FROM sample_history WHERE device_id = ?", (device_id,))
                conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Could not clear history for {device_id}: {e}") from e

    def device_ids(self) -> list[str]:
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT DISTINCT device_id FROM sample_history ORDER BY device_id"
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Could not list devices: {e}") from e
        return [row[0] for row in rows]

    def ping(self):
        try:
            with self._get_connection() as conn:
                conn.execute("SELECT 1")
        except sqlite3.Error as e:
            raise StoreUnavailable(f"History database unreachable: {e}") from e


def create_store(backend: Optional[str] = None) -> SampleStore:
    """Build the store selected by STORE_BACKEND."""
    backend = (backend or config.STORE_BACKEND).lower()
    if backend == "redis":
        return RedisSampleStore()
    if backend == "sqlite":
        return SqliteSampleStore()
    raise ValueError(f"Unknown store backend: {backend!r}")
