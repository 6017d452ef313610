"""
Local Key-Value Store

A single-collection embedded database (SQLite through SQLAlchemy Core)
holding JSON values under string keys. It backs the guest storage mode
and stages attachments there.

Each save/get runs in its own transaction. There is no batching and no
cross-call atomicity: two concurrent saves to one key are ordered only
by SQLite's own locking, and the last commit wins.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from finvault.config import get_settings
from finvault.services.storage.interface import StorageError, StorageUnavailableError


class LocalKeyValueStore:
    """
    Embedded key-value collection.

    Blocking database calls run in a worker thread so callers on the
    event loop only suspend, never block.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        collection_name: Optional[str] = None,
    ):
        settings = get_settings().local
        self._database_url = database_url or settings.database_url
        self._metadata = MetaData()
        self._table = Table(
            collection_name or settings.collection_name,
            self._metadata,
            Column("key", String(255), primary_key=True),
            Column("value", Text, nullable=False),
        )
        self._engine: Optional[Engine] = None
        self._init_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    def _open(self) -> Engine:
        if self._database_url.startswith("sqlite:///"):
            path = Path(self._database_url.removeprefix("sqlite:///"))
            path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            self._database_url,
            connect_args={"check_same_thread": False},
        )
        self._metadata.create_all(engine)
        return engine

    async def initialize(self) -> None:
        """
        Open the database, creating it and the collection on first use.

        Raises:
            StorageUnavailableError: The database cannot be opened
        """
        async with self._init_lock:
            if self._engine is not None:
                return
            try:
                self._engine = await asyncio.to_thread(self._open)
            except (OSError, SQLAlchemyError) as e:
                raise StorageUnavailableError(
                    f"Embedded database unavailable at {self._database_url}: {e}"
                ) from e

    def _save(self, key: str, payload: str) -> None:
        stmt = sqlite_insert(self._table).values(key=key, value=payload)
        stmt = stmt.on_conflict_do_update(
            index_elements=[self._table.c.key],
            set_={"value": stmt.excluded.value},
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)

    def _get(self, key: str) -> Optional[str]:
        with self._engine.begin() as conn:
            return conn.execute(
                select(self._table.c.value).where(self._table.c.key == key)
            ).scalar_one_or_none()

    async def save(self, key: str, value: Any) -> None:
        """Upsert a JSON-serializable value. Returns once committed."""
        if self._engine is None:
            await self.initialize()
        payload = json.dumps(value)
        try:
            await asyncio.to_thread(self._save, key, payload)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save key {key}: {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        """Stored value for key, or None when the key was never saved."""
        if self._engine is None:
            await self.initialize()
        try:
            payload = await asyncio.to_thread(self._get, key)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read key {key}: {e}") from e
        if payload is None:
            return None
        return json.loads(payload)

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
