"""
Units of work and the coordinator that commits them together.

A batch that touches two stores enlists one UnitOfWork per store. Commit runs
in two phases: every participant that can prepare (two-phase commit) does so
first, then one-phase participants commit in enlistment order, then the
prepared participants commit. Any failure before the last phase rolls every
participant back.
"""
import logging
import os
from typing import List

from sqlalchemy.engine import Connection

from core.errors import TransactionCoordinationError

logger = logging.getLogger(__name__)

REQUIRE_TWO_PHASE = os.environ.get("RETENTION_REQUIRE_TWO_PHASE", "false").lower() in {"1", "true", "yes", "on"}


class UnitOfWork:
    """One store's share of a batch: an open connection and its transaction."""

    def __init__(self, store_name: str, connection: Connection, two_phase: bool = False):
        self.store_name = store_name
        self.connection = connection
        self.two_phase = two_phase
        self.transaction = connection.begin_twophase() if two_phase else connection.begin()
        self.prepared = False
        self.committed = False
        self.closed = False

    @property
    def xid(self):
        return getattr(self.transaction, "xid", None)

    def prepare(self):
        if self.two_phase:
            self.transaction.prepare()
            self.prepared = True

    def commit(self):
        self.transaction.commit()
        self.committed = True
        self.close()

    def rollback(self):
        if self.closed:
            return
        try:
            if self.transaction.is_active:
                self.transaction.rollback()
        finally:
            self.close()

    def close(self):
        if not self.closed:
            self.closed = True
            self.connection.close()

    def abandon(self):
        """Drop the connection without touching a prepared transaction on the server."""
        if not self.closed:
            self.closed = True
            self.connection.invalidate()

    def __repr__(self):
        mode = "2pc" if self.two_phase else "1pc"
        return f"<UnitOfWork {self.store_name} ({mode})>"


class TransactionCoordinator:
    """Binds the units of work of one batch so they commit or roll back together."""

    def __init__(self, distributed: bool = False, require_two_phase: bool = REQUIRE_TWO_PHASE):
        self.distributed = distributed
        self.require_two_phase = require_two_phase
        self.participants: List[UnitOfWork] = []
        self._finished = False

    def enlist(self, unit: UnitOfWork) -> UnitOfWork:
        if self._finished:
            raise TransactionCoordinationError("Cannot enlist into a finished unit of work")
        self.participants.append(unit)
        if self.distributed and self.require_two_phase:
            one_phase = [p for p in self.participants if not p.two_phase]
            if len(one_phase) > 1:
                names = ", ".join(p.store_name for p in one_phase)
                raise TransactionCoordinationError(
                    f"Stores {names} cannot prepare; two-phase commit is required for cross-store batches"
                )
        return unit

    def commit(self):
        if self._finished:
            raise TransactionCoordinationError("Unit of work already finished")
        self._finished = True

        if len(self.participants) <= 1:
            try:
                for unit in self.participants:
                    unit.commit()
            except Exception:
                self._rollback_all()
                raise
            return

        prepared = [p for p in self.participants if p.two_phase]
        one_phase = [p for p in self.participants if not p.two_phase]
        if len(one_phase) > 1:
            logger.warning(
                "[TXN] Best-effort commit across %s (no two-phase support); committing in order",
                ", ".join(p.store_name for p in one_phase),
            )

        try:
            for unit in prepared:
                unit.prepare()
                logger.debug("[TXN] Prepared %s (xid=%s)", unit.store_name, unit.xid)
            for unit in one_phase:
                unit.commit()
        except Exception as e:
            self._rollback_all()
            raise TransactionCoordinationError(f"Cross-store commit failed: {e}") from e

        failures = []
        for unit in prepared:
            try:
                unit.commit()
            except Exception as e:
                logger.critical(
                    "[TXN] Commit of prepared transaction on %s failed (xid=%s); manual recovery required: %s",
                    unit.store_name, unit.xid, e,
                )
                failures.append(f"{unit.store_name}: {e}")
                unit.abandon()
        if failures:
            raise TransactionCoordinationError("Prepared commit failed on " + "; ".join(failures))

    def rollback(self):
        self._finished = True
        self._rollback_all()

    def _rollback_all(self):
        for unit in self.participants:
            if unit.committed:
                continue
            try:
                unit.rollback()
            except Exception as e:
                logger.error(f"[TXN] Rollback on {unit.store_name} failed: {e}")
