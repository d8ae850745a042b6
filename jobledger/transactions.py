"""
Transaction scopes for the record stores.

A scope is identified by an integer handle. The first scope opened in a unit
of work checks out a connection and begins a transaction; scopes opened while
another is active become SAVEPOINTs on the same connection.

The "current scope" pointer lives in a ContextVar, and every scope records the
thread and asyncio task that opened it. A task spawned inside a scope inherits
the ContextVar but not the scope: it resolves no active transaction and opens
its own connection on start(). Two units of work never see each other's
transactions, even when they share one TransactionManager.
"""

from __future__ import annotations

import asyncio
import contextvars
import itertools
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.engine import Connection, Engine, Transaction

from .errors import NoActiveTransaction
from .logger import get_logger


@dataclass
class _Scope:
    handle: int
    connection: Connection
    transaction: Transaction
    parent: Optional[int]
    root: int
    owner: Tuple[int, Any]


def _unit_of_work() -> Tuple[int, Any]:
    """Identity of the running unit of work: thread plus asyncio task, if any."""
    try:
        task = asyncio.current_task()
    except RuntimeError:  # no running event loop in this thread
        task = None
    return threading.get_ident(), task


class TransactionManager:
    """Hands out transaction handles and resolves the active scope."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._scopes: Dict[int, _Scope] = {}
        # root handle -> handles opened on that connection, outermost first
        self._chains: Dict[int, List[int]] = {}
        self._current: contextvars.ContextVar[Optional[int]] = contextvars.ContextVar(
            f"jobledger_scope_{id(self)}", default=None
        )

    def start(self) -> int:
        """Open a scope nested in the current one, if any, and return its handle."""
        parent = self._open_scope(self._current.get())
        handle = next(self._counter)

        if parent is None:
            connection = self.engine.connect()
            try:
                transaction = connection.begin()
            except Exception:
                connection.close()
                raise
            scope = _Scope(handle, connection, transaction, None, handle, _unit_of_work())
        else:
            transaction = parent.connection.begin_nested()
            scope = _Scope(
                handle, parent.connection, transaction, parent.handle, parent.root, _unit_of_work()
            )

        with self._lock:
            self._scopes[handle] = scope
            self._chains.setdefault(scope.root, []).append(handle)

        self._current.set(handle)
        get_logger().debug("Transaction started", handle=handle, parent=scope.parent)
        return handle

    def commit(self, handle: int) -> None:
        """Apply the writes of a scope. Inner scopes still open are committed first."""
        self._finish(handle, "commit")

    def rollback(self, handle: int) -> None:
        """Discard the writes of a scope. Inner scopes still open are rolled back first."""
        self._finish(handle, "rollback")

    def active_scope(self) -> Optional[Connection]:
        """Connection of the innermost open scope of this unit of work, or None."""
        scope = self._open_scope(self._current.get())
        return scope.connection if scope is not None else None

    def scope(self, handle: int) -> Connection:
        """Connection for an explicit handle."""
        with self._lock:
            scope = self._scopes.get(handle)
        if scope is None:
            raise NoActiveTransaction(handle)
        return scope.connection

    def is_open(self, handle: int) -> bool:
        with self._lock:
            return handle in self._scopes

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """
        Run a block in its own scope.

        Commits when the block exits normally, rolls back and re-raises
        otherwise.

        Example:
            with manager.transaction() as scope:
                ledger.save(event, scope=scope)
        """
        handle = self.start()
        try:
            yield self.scope(handle)
        except BaseException:
            if self.is_open(handle):
                self.rollback(handle)
            raise
        else:
            self.commit(handle)

    def _open_scope(self, handle: Optional[int]) -> Optional[_Scope]:
        # Handles inherited through a copied context belong to another unit.
        if handle is None:
            return None
        with self._lock:
            scope = self._scopes.get(handle)
        if scope is None or scope.owner != _unit_of_work():
            return None
        return scope

    def _finish(self, handle: int, action: str) -> None:
        with self._lock:
            scope = self._scopes.get(handle)
            if scope is None:
                raise NoActiveTransaction(handle)
            chain = self._chains[scope.root]
            index = chain.index(handle)
            closing = [self._scopes.pop(h) for h in chain[index:]]
            del chain[index:]
            if not chain:
                del self._chains[scope.root]

        logger = get_logger()
        try:
            for inner in reversed(closing[1:]):
                logger.warning(
                    "Closing inner transaction left open",
                    handle=inner.handle,
                    outer=handle,
                    action=action,
                )
                getattr(inner.transaction, action)()
            getattr(scope.transaction, action)()
        finally:
            if scope.parent is None:
                scope.connection.close()
            if self._current.get() in {s.handle for s in closing}:
                self._current.set(scope.parent)

        logger.debug(f"Transaction {action}", handle=handle)
