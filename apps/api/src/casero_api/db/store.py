"""Generic async document-store client backed by the SQLAlchemy asyncio ORM.

Every collection is a mapped model whose primary key is a string ``id``. The
client deliberately exposes only document-store primitives (get, filtered
query, batched get, add, conditional update, delete) so the membership services
stay agnostic of SQL.
"""

from __future__ import annotations

import asyncio
import operator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Iterable, Mapping, Sequence, Type, TypeVar

from loguru import logger
from sqlalchemy import and_, delete as sa_delete, func, or_, select, update as sa_update
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from casero_api.core.settings import settings
from casero_api.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class StoreError(RuntimeError):
    """Base exception for document store failures."""


class ConflictError(StoreError):
    """Raised when a write violates a uniqueness or integrity constraint."""


class PermissionDeniedError(StoreError):
    """Raised when the store rejects the caller's privileges."""


class UnauthenticatedError(StoreError):
    """Raised when the store rejects the caller's credentials."""


class TransientStoreError(StoreError):
    """Raised for network, availability or contention failures that are safe to retry."""


_PERMISSION_SQLSTATES = {"42501"}
_AUTH_SQLSTATES = {"28000", "28P01"}

_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True, slots=True)
class FieldFilter:
    """One clause of a compound query filter."""

    field: str
    op: str
    value: Any


@dataclass(frozen=True, slots=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class Increment:
    """Atomic server-side counter adjustment for ``update``."""

    amount: int = 1


def where(field: str, op: str, value: Any) -> FieldFilter:
    if op != "in" and op not in _OPERATORS:
        raise ValueError(f"Unsupported filter operator {op!r}")
    return FieldFilter(field=field, op=op, value=value)


def asc(field: str) -> OrderBy:
    return OrderBy(field=field)


def desc(field: str) -> OrderBy:
    return OrderBy(field=field, descending=True)


def chunked(values: Sequence[Any], size: int) -> list[list[Any]]:
    """Split ``values`` into consecutive chunks of at most ``size`` items."""

    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [list(values[index : index + size]) for index in range(0, len(values), size)]


def _column(model: Type[Base], field: str) -> ColumnElement[Any]:
    try:
        return model.__table__.c[field]
    except KeyError as exc:
        raise ValueError(f"Unknown field {field!r} on collection {model.__tablename__}") from exc


def _translate(exc: SQLAlchemyError) -> StoreError:
    if isinstance(exc, IntegrityError):
        return ConflictError(str(exc.orig or exc))
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        if sqlstate in _PERMISSION_SQLSTATES:
            return PermissionDeniedError(str(exc.orig or exc))
        if sqlstate in _AUTH_SQLSTATES:
            return UnauthenticatedError(str(exc.orig or exc))
        if isinstance(exc, (OperationalError, InterfaceError)) or exc.connection_invalidated:
            return TransientStoreError(str(exc.orig or exc))
    if isinstance(exc, PoolTimeoutError):
        return TransientStoreError(str(exc))
    return StoreError(str(exc))


class StoreTransaction:
    """Store operations bound to one session; writes commit together."""

    def __init__(self, session: AsyncSession, *, in_filter_limit: int) -> None:
        self._session = session
        self._in_filter_limit = in_filter_limit

    def _condition(self, model: Type[Base], clause: FieldFilter) -> ColumnElement[bool]:
        column = _column(model, clause.field)
        if clause.op == "in":
            values = list(clause.value)
            if len(values) > self._in_filter_limit:
                raise ValueError(
                    f"'in' filter on {clause.field!r} accepts at most {self._in_filter_limit} values, got {len(values)}"
                )
            return column.in_(values)
        return _OPERATORS[clause.op](column, clause.value)

    async def get(self, model: Type[ModelT], doc_id: str) -> ModelT | None:
        return await self._session.get(model, doc_id, populate_existing=True)

    async def query(
        self,
        model: Type[ModelT],
        *filters: FieldFilter,
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
        start_after: ModelT | None = None,
    ) -> list[ModelT]:
        orders = list(order_by)
        if not any(order.field == "id" for order in orders):
            orders.append(OrderBy("id"))

        stmt = select(model)
        for clause in filters:
            stmt = stmt.where(self._condition(model, clause))
        if start_after is not None:
            stmt = stmt.where(_after(model, orders, start_after))
        stmt = stmt.order_by(
            *[
                _column(model, order.field).desc() if order.descending else _column(model, order.field).asc()
                for order in orders
            ]
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def count(self, model: Type[Base], *filters: FieldFilter) -> int:
        stmt = select(func.count()).select_from(model)
        for clause in filters:
            stmt = stmt.where(self._condition(model, clause))
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def add(self, model: Type[ModelT], **values: Any) -> ModelT:
        document = model(**values)
        self._session.add(document)
        await self._session.flush()
        return document

    async def update(
        self,
        model: Type[Base],
        doc_id: str,
        values: Mapping[str, Any],
        *,
        when: Iterable[FieldFilter] = (),
    ) -> bool:
        """Apply ``values`` to one document if every ``when`` clause matches."""

        if not values:
            raise ValueError("update() requires at least one field")
        assignments: dict[str, Any] = {}
        for field, value in values.items():
            column = _column(model, field)
            assignments[field] = column + value.amount if isinstance(value, Increment) else value

        stmt = sa_update(model).where(_column(model, "id") == doc_id)
        for clause in when:
            stmt = stmt.where(self._condition(model, clause))
        stmt = stmt.values(**assignments).execution_options(synchronize_session=False)
        result = await self._session.execute(stmt)
        return (result.rowcount or 0) > 0

    async def delete(self, model: Type[Base], doc_id: str) -> bool:
        stmt = (
            sa_delete(model)
            .where(_column(model, "id") == doc_id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return (result.rowcount or 0) > 0


def _after(model: Type[Base], orders: Sequence[OrderBy], anchor: Base) -> ColumnElement[bool]:
    """Keyset predicate selecting rows strictly after ``anchor`` in ``orders``."""

    branches = []
    for index, order in enumerate(orders):
        column = _column(model, order.field)
        value = getattr(anchor, order.field)
        ties = [_column(model, prior.field) == getattr(anchor, prior.field) for prior in orders[:index]]
        step = column < value if order.descending else column > value
        branches.append(and_(*ties, step))
    return or_(*branches)


class DocumentStore:
    """Async document-store client; each call is one round trip unless grouped in ``transaction()``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        in_filter_limit: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._in_filter_limit = in_filter_limit or settings.store_in_filter_limit

    @property
    def in_filter_limit(self) -> int:
        return self._in_filter_limit

    @classmethod
    def from_settings(cls) -> "DocumentStore":
        from casero_api.db.session import build_session_factory, get_engine  # noqa: WPS433

        return cls(build_session_factory(get_engine()))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield StoreTransaction(session, in_filter_limit=self._in_filter_limit)
        except SQLAlchemyError as exc:
            translated = _translate(exc)
            logger.warning(
                "Document store call failed",
                error_type=type(translated).__name__,
                error=str(exc.orig if isinstance(exc, DBAPIError) else exc),
            )
            raise translated from exc

    async def get(self, model: Type[ModelT], doc_id: str) -> ModelT | None:
        async with self.transaction() as tx:
            return await tx.get(model, doc_id)

    async def query(
        self,
        model: Type[ModelT],
        *filters: FieldFilter,
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
        start_after: ModelT | None = None,
    ) -> list[ModelT]:
        async with self.transaction() as tx:
            return await tx.query(model, *filters, order_by=order_by, limit=limit, start_after=start_after)

    async def first(self, model: Type[ModelT], *filters: FieldFilter) -> ModelT | None:
        rows = await self.query(model, *filters, limit=1)
        return rows[0] if rows else None

    async def count(self, model: Type[Base], *filters: FieldFilter) -> int:
        async with self.transaction() as tx:
            return await tx.count(model, *filters)

    async def batch_get(self, model: Type[ModelT], ids: Iterable[str]) -> dict[str, ModelT]:
        """Fetch documents by id, issuing one 'in' query per chunk of ids."""

        unique_ids = list(dict.fromkeys(doc_id for doc_id in ids if doc_id))
        if not unique_ids:
            return {}
        batches = await asyncio.gather(
            *[
                self.query(model, where("id", "in", chunk))
                for chunk in chunked(unique_ids, self._in_filter_limit)
            ]
        )
        return {row.id: row for batch in batches for row in batch}

    async def add(self, model: Type[ModelT], **values: Any) -> ModelT:
        async with self.transaction() as tx:
            return await tx.add(model, **values)

    async def update(
        self,
        model: Type[Base],
        doc_id: str,
        values: Mapping[str, Any],
        *,
        when: Iterable[FieldFilter] = (),
    ) -> bool:
        async with self.transaction() as tx:
            return await tx.update(model, doc_id, values, when=when)

    async def delete(self, model: Type[Base], doc_id: str) -> bool:
        async with self.transaction() as tx:
            return await tx.delete(model, doc_id)


__all__ = [
    "ConflictError",
    "DocumentStore",
    "FieldFilter",
    "Increment",
    "OrderBy",
    "PermissionDeniedError",
    "StoreError",
    "StoreTransaction",
    "TransientStoreError",
    "UnauthenticatedError",
    "asc",
    "chunked",
    "desc",
    "where",
]
