import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import asyncpg

from strategy.errors import StorageError


logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Async get/set over JSON-serializable values keyed by string."""

    async def initialize(self) -> None:
        return None

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    async def close(self) -> None:
        return None


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)


class JsonFileStore(KeyValueStore):
    """Whole-document JSON file, rewritten atomically on every set."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open('r', encoding='utf-8') as fh:
            text = fh.read()
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def _write(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + '.tmp')
        with tmp.open('w', encoding='utf-8') as fh:
            json.dump(data, fh, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, self.path)

    async def get(self, key: str) -> Optional[Any]:
        try:
            data = await asyncio.to_thread(self._read)
        except (OSError, ValueError) as exc:
            raise StorageError(f"Failed to read {self.path}: {exc}") from exc
        return data.get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            try:
                await asyncio.to_thread(self._write, key, value)
            except (OSError, TypeError, ValueError) as exc:
                raise StorageError(f"Failed to write {key} to {self.path}: {exc}") from exc


class PostgresStore(KeyValueStore):
    def __init__(self, db_config: Dict[str, Any]):
        self.db_config = db_config
        self.pool = None

    async def initialize(self) -> None:
        db_config = self.db_config
        try:
            self.pool = await asyncpg.create_pool(
                host=db_config['host'],
                port=int(db_config['port']),
                database=db_config['database'],
                user=db_config['user'],
                password=db_config['password'],
                min_size=1,
                max_size=5,
            )
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value JSONB NOT NULL,
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    )
                    """
                )
        except (OSError, asyncpg.PostgresError) as exc:
            raise StorageError(f"Failed to initialize kv_store: {exc}") from exc
        logger.info("Postgres key/value store ready on %s", db_config.get('host'))

    async def close(self) -> None:
        if self.pool:
            await self.pool.close()
            self.pool = None

    async def get(self, key: str) -> Optional[Any]:
        if self.pool is None:
            raise StorageError("Postgres store used before initialize()")
        try:
            async with self.pool.acquire() as conn:
                raw = await conn.fetchval("SELECT value FROM kv_store WHERE key = $1", key)
        except (OSError, asyncpg.PostgresError) as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        if self.pool is None:
            raise StorageError("Postgres store used before initialize()")
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES ($1, $2::jsonb, now())
                    ON CONFLICT (key) DO UPDATE
                    SET value = EXCLUDED.value, updated_at = EXCLUDED.updated_at
                    """,
                    key,
                    json.dumps(value),
                )
        except (OSError, asyncpg.PostgresError) as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc


def create_store(
    storage_cfg: Dict[str, Any], database_cfg: Optional[Dict[str, Any]] = None
) -> KeyValueStore:
    backend = str(storage_cfg.get('backend', 'file')).lower()
    if backend == 'memory':
        return MemoryStore()
    if backend == 'file':
        return JsonFileStore(storage_cfg.get('path', 'data/store.json'))
    if backend == 'postgres':
        return PostgresStore(database_cfg or {})
    raise ValueError(f"Unknown storage backend: {backend}")
