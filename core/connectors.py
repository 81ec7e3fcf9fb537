"""
A uniform way to count, fetch, insert and delete batches
of rows on a relational store, local or remote.

Tables are reflected with SQLAlchemy, so identifiers are quoted by the
dialect; the retention cutoff and batch size always travel as bound
parameters. Every mutating call runs on the connection of a UnitOfWork that
the connector has joined to a TransactionCoordinator.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import MetaData, Table, bindparam, delete, func, insert, select, tuple_
from sqlalchemy import types as sqltypes
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchTableError

from core.errors import JobConfigurationError
from core.identifiers import validate_identifier, validate_optional_identifier
from core.transaction import TransactionCoordinator, UnitOfWork

logger = logging.getLogger(__name__)

# Dialects whose SQLAlchemy driver implements begin_twophase()/prepare().
TWO_PHASE_DIALECTS = {"postgresql", "mysql", "mariadb"}


@dataclass(frozen=True)
class TableLocator:
    schema: Optional[str]
    table: str

    def __post_init__(self):
        validate_optional_identifier(self.schema, "schema name")
        validate_identifier(self.table, "table name")

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.table}" if self.schema else self.table

    def __str__(self):
        return self.qualified_name


class CutoffPredicate:
    """`<date column> < :cutoff` with the cutoff bound as a typed parameter."""

    def __init__(self, column: str, cutoff: datetime):
        self.column = validate_identifier(column, "date column")
        self.cutoff = cutoff

    def check(self, table: Table):
        if self.column not in table.c:
            raise JobConfigurationError(f"Column '{self.column}' not found in {table.fullname}")
        col_type = table.c[self.column].type
        if not isinstance(col_type, (sqltypes.Date, sqltypes.DateTime)):
            raise JobConfigurationError(
                f"Retention column {table.fullname}.{self.column} is {col_type}, not a date/time column"
            )

    def clause(self, table: Table):
        col = table.c[self.column]
        return col < bindparam("cutoff", value=self.cutoff, type_=col.type)


class StoreConnector:
    """Base connector over one SQLAlchemy engine."""

    kind = "local"

    def __init__(self, name: str, engine: Engine):
        self.name = name
        self.engine = engine

    @property
    def supports_two_phase(self) -> bool:
        return self.engine.dialect.name in TWO_PHASE_DIALECTS

    # -- units of work ------------------------------------------------------

    def join_transaction(self, coordinator: TransactionCoordinator) -> UnitOfWork:
        """Open a connection, begin this store's share of the batch and enlist it."""
        two_phase = coordinator.distributed and self.supports_two_phase
        connection = self.engine.connect()
        try:
            unit = UnitOfWork(self.name, connection, two_phase=two_phase)
            return coordinator.enlist(unit)
        except Exception:
            connection.close()
            raise

    def begin(self) -> Tuple[TransactionCoordinator, UnitOfWork]:
        """Single-store unit of work; commit/rollback through the returned coordinator."""
        coordinator = TransactionCoordinator(distributed=False)
        return coordinator, self.join_transaction(coordinator)

    # -- metadata -----------------------------------------------------------

    def reflect(self, locator: TableLocator, connection: Optional[Connection] = None) -> Table:
        metadata = MetaData()
        try:
            if connection is not None:
                return Table(locator.table, metadata, schema=locator.schema, autoload_with=connection)
            with self.engine.connect() as conn:
                return Table(locator.table, metadata, schema=locator.schema, autoload_with=conn)
        except NoSuchTableError:
            raise JobConfigurationError(f"Table {locator} not found on store '{self.name}'")

    @staticmethod
    def primary_key(table: Table) -> List[Any]:
        columns = list(table.primary_key.columns)
        if not columns:
            raise JobConfigurationError(
                f"Table {table.fullname} has no primary key; batch rows cannot be identified"
            )
        return columns

    # -- queries ------------------------------------------------------------

    def count(self, table: Table, predicate: CutoffPredicate, connection: Optional[Connection] = None) -> int:
        stmt = select(func.count()).select_from(table).where(predicate.clause(table))
        if connection is not None:
            return int(connection.execute(stmt).scalar() or 0)
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar() or 0)

    def fetch_batch(self, unit: UnitOfWork, table: Table, predicate: CutoffPredicate,
                    limit: int) -> List[Dict[str, Any]]:
        """Read up to `limit` qualifying rows, locking them where the dialect allows."""
        stmt = select(table).where(predicate.clause(table)).limit(limit).with_for_update()
        return [dict(row) for row in unit.connection.execute(stmt).mappings()]

    def fetch_keys(self, unit: UnitOfWork, table: Table, predicate: CutoffPredicate,
                   limit: int) -> List[Tuple]:
        pk = self.primary_key(table)
        stmt = select(*pk).where(predicate.clause(table)).limit(limit).with_for_update()
        return [tuple(row) for row in unit.connection.execute(stmt)]

    def insert_rows(self, unit: UnitOfWork, table: Table, rows: Sequence[Dict[str, Any]]) -> int:
        if not rows:
            return 0
        columns = set(table.c.keys())
        payload = [{k: v for k, v in row.items() if k in columns} for row in rows]
        unit.connection.execute(insert(table), payload)
        return len(payload)

    @staticmethod
    def _key_condition(columns: Sequence[Any], keys: Sequence[Tuple]):
        if len(columns) == 1:
            return columns[0].in_([k[0] for k in keys])
        return tuple_(*columns).in_([tuple(k) for k in keys])

    def fetch_by_keys(self, unit: UnitOfWork, table: Table, key_names: Sequence[str],
                      keys: Sequence[Tuple]) -> Dict[Tuple, Dict[str, Any]]:
        """Rows of `table` whose `key_names` columns match one of `keys`, by key tuple."""
        if not keys:
            return {}
        columns = [table.c[name] for name in key_names]
        stmt = select(table).where(self._key_condition(columns, keys))
        return {
            tuple(row[name] for name in key_names): dict(row)
            for row in unit.connection.execute(stmt).mappings()
        }

    def delete_keys(self, unit: UnitOfWork, table: Table, keys: Sequence[Tuple]) -> int:
        """Delete exactly the rows identified by `keys` (primary key tuples)."""
        if not keys:
            return 0
        condition = self._key_condition(self.primary_key(table), keys)
        result = unit.connection.execute(delete(table).where(condition))
        return result.rowcount

    def delete_batch(self, unit: UnitOfWork, table: Table, predicate: CutoffPredicate, limit: int) -> int:
        keys = self.fetch_keys(unit, table, predicate, limit)
        return self.delete_keys(unit, table, keys)

    @staticmethod
    def row_keys(table: Table, rows: Sequence[Dict[str, Any]]) -> List[Tuple]:
        pk = StoreConnector.primary_key(table)
        return [tuple(row[c.name] for c in pk) for row in rows]

    def dispose(self):
        """No-op: the local engine belongs to retention.database and outlives a run."""

    def __repr__(self):
        return f"<{type(self).__name__} {self.name} ({self.engine.dialect.name})>"


class LocalConnector(StoreConnector):
    """The operational store the catalog lives in. Source of every job."""

    kind = "local"


class RemoteConnector(StoreConnector):
    """A store reached through a named alias. Owns its engine."""

    kind = "remote"

    def dispose(self):
        self.engine.dispose()
        logger.info(f"[STORES] Disposed remote store '{self.name}'")
