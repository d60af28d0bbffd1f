"""Adaptateur local: SQLite embarqué (mode démo / hors ligne).

Transactions natives: toutes les écritures d'une unité de travail passent
par la même connexion et sont validées ou annulées ensemble. Un verrou
asyncio sérialise les accès, ce qui isole les transactions concurrentes.
Les notifications de changement sont émises après validation uniquement.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, TypeVar

from sqlalchemy import MetaData, Table, delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection

from ministry_data.adapters.base import (
    DatabaseAdapter,
    matches_filters,
    matches_search,
    split_filters,
)
from ministry_data.canonical.entities import EntityKind, EntitySpec, get_spec, get_table_spec
from ministry_data.core.config import settings
from ministry_data.core.database import (
    DATA_COLUMN,
    build_engine,
    build_tables,
    column_value,
    create_tables,
)
from ministry_data.core.exceptions import ConstraintViolationError, RecordNotFoundError
from ministry_data.schemas.changes import ChangeHandler, TableChange, Unsubscribe

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _LocalTransaction:
    connection: AsyncConnection
    changes: list[TableChange] = field(default_factory=list)


class LocalAdapter(DatabaseAdapter):
    """
    Store local SQLite (SQLAlchemy async + aiosqlite).

    Example:
        ```python
        adapter = LocalAdapter("sqlite+aiosqlite:///:memory:")
        await adapter.open()
        child = await adapter.get(EntityKind.CHILD, "c1")
        await adapter.close()
        ```
    """

    def __init__(
        self,
        url: str | None = None,
        tables_without_updated_at: list[str] | None = None,
        echo: bool = False,
    ):
        super().__init__(tables_without_updated_at)
        self.url = url or settings.LOCAL_DATABASE_URL
        self.engine = build_engine(self.url, echo=echo)
        self.metadata = MetaData()
        self.tables: dict[EntityKind, Table] = build_tables(self.metadata)
        self.listeners: dict[str, list[ChangeHandler]] = {}
        self._lock = asyncio.Lock()
        self._current: ContextVar[_LocalTransaction | None] = ContextVar(
            f"local_tx_{id(self)}", default=None
        )

    async def open(self) -> None:
        await create_tables(self.engine, self.metadata)
        logger.info(f"Adaptateur local ouvert: {self.url}")

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Adaptateur local fermé")

    @asynccontextmanager
    async def _transaction_scope(self) -> AsyncIterator[_LocalTransaction]:
        """Rejoint la transaction courante ou en ouvre une nouvelle."""
        current = self._current.get()
        if current is not None:
            yield current
            return

        async with self._lock:
            async with self.engine.begin() as connection:
                tx = _LocalTransaction(connection)
                token = self._current.set(tx)
                try:
                    yield tx
                finally:
                    self._current.reset(token)

        # Validée: diffusion des changements hors verrou
        await self._deliver(tx.changes)

    async def transaction(self, work: Callable[[], Awaitable[T]]) -> T:
        async with self._transaction_scope():
            return await work()

    def _row_values(self, spec: EntitySpec, table: Table, record: dict[str, Any]) -> dict[str, Any]:
        values = {spec.id_field: record[spec.id_field], DATA_COLUMN: record}
        for column in table.columns:
            if column.name not in values:
                values[column.name] = column_value(column.name, record.get(column.name))
        return values

    async def _fetch(self, tx: _LocalTransaction, table: Table, spec: EntitySpec, record_id: str):
        result = await tx.connection.execute(
            select(table.c[DATA_COLUMN]).where(table.c[spec.id_field] == record_id)
        )
        row = result.first()
        return dict(row[0]) if row is not None else None

    async def get(self, kind: EntityKind | str, record_id: str) -> dict[str, Any] | None:
        spec = get_spec(kind)
        async with self._transaction_scope() as tx:
            return await self._fetch(tx, self.tables[spec.kind], spec, record_id)

    async def create(self, kind: EntityKind | str, data: Mapping[str, Any]) -> dict[str, Any]:
        spec = get_spec(kind)
        table = self.tables[spec.kind]
        record = self.prepare_create(spec, data)
        record_id = record[spec.id_field]

        async with self._transaction_scope() as tx:
            try:
                await tx.connection.execute(insert(table).values(**self._row_values(spec, table, record)))
            except IntegrityError as e:
                raise ConstraintViolationError(
                    spec.table, f"Constraint violated creating '{record_id}' in '{spec.table}'"
                ) from e
            tx.changes.append(
                TableChange(table=spec.table, event="INSERT", record_id=record_id, record=record)
            )
        logger.debug(f"Créé {spec.table}/{record_id}")
        return record

    async def update(
        self, kind: EntityKind | str, record_id: str, patch: Mapping[str, Any]
    ) -> dict[str, Any]:
        spec = get_spec(kind)
        table = self.tables[spec.kind]

        async with self._transaction_scope() as tx:
            existing = await self._fetch(tx, table, spec, record_id)
            if existing is None:
                raise RecordNotFoundError(spec.table, record_id)
            record = {**existing, **self.prepare_update(spec, patch)}
            try:
                await tx.connection.execute(
                    update(table)
                    .where(table.c[spec.id_field] == record_id)
                    .values(**self._row_values(spec, table, record))
                )
            except IntegrityError as e:
                raise ConstraintViolationError(
                    spec.table, f"Constraint violated updating '{record_id}' in '{spec.table}'"
                ) from e
            tx.changes.append(
                TableChange(
                    table=spec.table,
                    event="UPDATE",
                    record_id=record_id,
                    record=record,
                    old_record=existing,
                )
            )
        logger.debug(f"Mis à jour {spec.table}/{record_id}")
        return record

    async def delete(self, kind: EntityKind | str, record_id: str) -> None:
        spec = get_spec(kind)
        table = self.tables[spec.kind]

        async with self._transaction_scope() as tx:
            existing = await self._fetch(tx, table, spec, record_id)
            if existing is None:
                return
            await tx.connection.execute(delete(table).where(table.c[spec.id_field] == record_id))
            tx.changes.append(
                TableChange(table=spec.table, event="DELETE", record_id=record_id, old_record=existing)
            )
        logger.debug(f"Supprimé {spec.table}/{record_id}")

    async def subscribe_to_table(self, table: str, handler: ChangeHandler) -> Unsubscribe:
        get_table_spec(table)
        self.listeners.setdefault(table, []).append(handler)
        logger.info(f"Handler '{getattr(handler, '__name__', handler)}' abonné à '{table}'")
        active = True

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            handlers = self.listeners.get(table, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def _deliver(self, changes: list[TableChange]) -> None:
        for change in changes:
            for handler in list(self.listeners.get(change.table, [])):
                try:
                    await handler(change)
                except Exception as e:
                    logger.error(
                        f"Erreur handler '{getattr(handler, '__name__', handler)}' pour '{change.table}': {e}",
                        exc_info=True,
                    )

    async def list(
        self, kind: EntityKind | str, filters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        spec = get_spec(kind)
        table = self.tables[spec.kind]
        equality, limit, offset, search = split_filters(filters)

        # Filtres sur colonnes indexées en SQL, les autres par parcours
        stmt = select(table.c[DATA_COLUMN]).order_by(table.c[spec.id_field])
        scanned = {}
        for key, expected in equality.items():
            if key == DATA_COLUMN or key not in table.c:
                scanned[key] = expected
            elif isinstance(expected, list | tuple | set | frozenset):
                stmt = stmt.where(table.c[key].in_([column_value(key, v) for v in expected]))
            elif expected is None:
                stmt = stmt.where(table.c[key].is_(None))
            else:
                stmt = stmt.where(table.c[key] == column_value(key, expected))

        use_scan = bool(scanned) or (search is not None and bool(spec.search_fields))
        if not use_scan:
            if offset:
                stmt = stmt.offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)

        async with self._transaction_scope() as tx:
            result = await tx.connection.execute(stmt)
            records = [dict(row[0]) for row in result]

        if use_scan:
            records = [
                record
                for record in records
                if matches_filters(record, scanned)
                and (search is None or not spec.search_fields or matches_search(record, search, spec.search_fields))
            ]
            end = offset + limit if limit is not None else None
            records = records[offset:end]
        return records

