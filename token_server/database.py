"""
Database engine and the key-value table adapter for the RBAC store.
The adapter exposes only key-value operations: get by key, batch put,
batch delete, and query by partition key + sort-key prefix.
"""
import asyncio
import logging
import threading
from collections.abc import Iterable

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from token_server.errors import ServiceUnavailableError
from token_server.models import Base, RBACItem

logger = logging.getLogger(__name__)

Key = tuple[str, str]


def create_db_engine(database_url: str) -> Engine:
    # SQLite: in-memory needs StaticPool so all connections share the same DB (for tests)
    # File-based SQLite needs check_same_thread=False since work runs in worker threads
    if database_url.startswith("sqlite:///:memory:") or database_url == "sqlite://":
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    """Create the RBAC table if missing."""
    Base.metadata.create_all(bind=engine)


class ItemTable:
    """
    Async facade over the RBAC table. Each call is one short unit of work run in a
    worker thread. SQLite connections are shared, so calls against SQLite are serialized.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
        self._lock = threading.Lock() if engine.dialect.name == "sqlite" else None

    async def get(self, entity_name: str, subject_name: str) -> dict[str, str] | None:
        return await self._run(self._get, entity_name, subject_name)

    async def put(self, items: Iterable[dict[str, str]]) -> None:
        """Upsert items in one batch. Re-putting an existing key overwrites it."""
        items = list(items)
        if items:
            await self._run(self._put, items)

    async def delete(self, keys: Iterable[Key]) -> None:
        """Delete keys in one batch. Missing keys are ignored."""
        keys = list(dict.fromkeys(keys))
        if keys:
            await self._run(self._delete, keys)

    async def query(self, entity_name: str, subject_prefix: str = "") -> list[dict[str, str]]:
        """All items in the partition whose sort key starts with subject_prefix, in sort-key order."""
        return await self._run(self._query, entity_name, subject_prefix)

    async def _run(self, fn, *args):
        return await asyncio.to_thread(self._call, fn, *args)

    def _call(self, fn, *args):
        if self._lock is None:
            return self._call_unlocked(fn, *args)
        with self._lock:
            return self._call_unlocked(fn, *args)

    def _call_unlocked(self, fn, *args):
        try:
            with self._session_factory() as session:
                result = fn(session, *args)
                session.commit()
                return result
        except SQLAlchemyError as e:
            logger.error("RBAC table operation %s failed: %s", fn.__name__, e)
            raise ServiceUnavailableError("RBAC store unavailable") from e

    @staticmethod
    def _get(session: Session, entity_name: str, subject_name: str) -> dict[str, str] | None:
        item = session.get(RBACItem, (entity_name, subject_name))
        return item.to_attributes() if item is not None else None

    @staticmethod
    def _put(session: Session, items: list[dict[str, str]]) -> None:
        for attributes in items:
            session.merge(RBACItem(**attributes))

    @staticmethod
    def _delete(session: Session, keys: list[Key]) -> None:
        for key in keys:
            row = session.get(RBACItem, key)
            if row is not None:
                session.delete(row)

    @staticmethod
    def _query(session: Session, entity_name: str, subject_prefix: str) -> list[dict[str, str]]:
        stmt = select(RBACItem).where(RBACItem.entity_name == entity_name)
        if subject_prefix:
            # substr rather than LIKE: exact, case-sensitive, no wildcard escaping
            stmt = stmt.where(
                func.substr(RBACItem.subject_name, 1, len(subject_prefix)) == subject_prefix
            )
        stmt = stmt.order_by(RBACItem.subject_name)
        return [row.to_attributes() for row in session.scalars(stmt)]
