"""
flowfit/services/persistence.py

Async key-value store over the kv_store table.
Uses SQLAlchemy 2.0 async sessions; every failure surfaces as PersistenceError.
"""

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from db.models import AsyncSessionLocal, KeyValueEntry
from flowfit.errors import PersistenceError

logger = structlog.get_logger(__name__)


class KeyValueStore:
    """get / set / delete of string values keyed by string."""

    def __init__(self, session_factory=AsyncSessionLocal) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""
        try:
            async with self._session_factory() as session:
                entry = await session.get(KeyValueEntry, key)
                return entry.value if entry is not None else None
        except SQLAlchemyError as exc:
            logger.error("store_read_failed", key=key, error=str(exc))
            raise PersistenceError(f"failed to read {key!r}") from exc

    async def set(self, key: str, value: str) -> None:
        """Insert or overwrite the value stored under key."""
        try:
            async with self._session_factory() as session:
                entry = await session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("store_write_failed", key=key, error=str(exc))
            raise PersistenceError(f"failed to write {key!r}") from exc
        logger.debug("store_written", key=key)

    async def delete(self, key: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(KeyValueEntry).where(KeyValueEntry.key == key)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("store_delete_failed", key=key, error=str(exc))
            raise PersistenceError(f"failed to delete {key!r}") from exc
