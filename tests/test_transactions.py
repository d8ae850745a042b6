"""
Tests for TransactionManager scopes.
"""

import asyncio
import threading

import pytest

from jobledger.errors import ConsistencyError, NoActiveTransaction


class TestTransactionBasics:
    """Test start, commit and rollback."""

    def test_no_active_scope_by_default(self, manager):
        assert manager.active_scope() is None

    def test_commit_persists_writes(self, manager, ledger, event_props):
        handle = ledger.start_transaction()
        event = ledger.save(event_props)
        ledger.commit_transaction(handle)

        assert manager.active_scope() is None
        assert ledger.load(event["id"]) is not None

    def test_rollback_discards_writes(self, manager, ledger, event_props):
        handle = manager.start()
        event = ledger.save(event_props)
        assert ledger.load(event["id"]) is not None  # visible inside the scope
        manager.rollback(handle)

        assert ledger.load(event["id"]) is None

    def test_handles_are_unique(self, manager):
        first = manager.start()
        manager.commit(first)
        second = manager.start()
        manager.commit(second)
        assert first != second

    def test_commit_unknown_handle(self, manager):
        with pytest.raises(NoActiveTransaction) as exc:
            manager.commit(12345)
        assert exc.value.handle == 12345

    def test_rollback_closed_handle(self, manager):
        handle = manager.start()
        manager.commit(handle)
        with pytest.raises(NoActiveTransaction):
            manager.rollback(handle)

    def test_scope_lookup(self, manager):
        handle = manager.start()
        assert manager.scope(handle) is manager.active_scope()
        manager.rollback(handle)
        with pytest.raises(NoActiveTransaction):
            manager.scope(handle)


class TestNestedScopes:
    """Test savepoint-backed nesting."""

    def test_inner_rollback_keeps_outer_writes(self, manager, ledger, event_props):
        outer = manager.start()
        kept = ledger.save({**event_props, "body": "outer"})

        inner = manager.start()
        dropped = ledger.save({**event_props, "body": "inner"})
        manager.rollback(inner)

        manager.commit(outer)

        assert ledger.load(kept["id"]) is not None
        assert ledger.load(dropped["id"]) is None

    def test_inner_commit_then_outer_rollback(self, manager, ledger, event_props):
        outer = manager.start()
        inner = manager.start()
        event = ledger.save(event_props)
        manager.commit(inner)
        manager.rollback(outer)

        assert ledger.load(event["id"]) is None

    def test_active_scope_returns_to_parent(self, manager):
        outer = manager.start()
        connection = manager.active_scope()
        inner = manager.start()
        assert manager.active_scope() is connection  # same connection, savepoint
        manager.commit(inner)
        assert manager.active_scope() is connection
        manager.commit(outer)
        assert manager.active_scope() is None

    def test_closing_outer_closes_inner(self, manager, ledger, event_props, quiet_logger):
        outer = manager.start()
        inner = manager.start()
        event = ledger.save(event_props)
        manager.commit(outer)

        assert manager.active_scope() is None
        assert not manager.is_open(inner)
        assert ledger.load(event["id"]) is not None


class TestContextManager:
    """Test the transaction() helper."""

    def test_commits_on_success(self, manager, ledger, event_props):
        with manager.transaction() as scope:
            event = ledger.save(event_props, scope=scope)
        assert ledger.load(event["id"]) is not None

    def test_rolls_back_on_error(self, manager, ledger, event_props):
        saved = {}
        with pytest.raises(ConsistencyError):
            with manager.transaction():
                saved.update(ledger.save(event_props))
                ledger.delete([saved["id"], "doesNotExist0000000000"])

        assert ledger.load(saved["id"]) is None
        assert manager.active_scope() is None

    def test_multi_store_atomicity(self, manager, ledger, job_states, event_props):
        with pytest.raises(RuntimeError):
            with manager.transaction():
                ledger.save(event_props)
                job_states.save({"job_id": "test"})
                raise RuntimeError("boom")

        assert ledger.all() == []
        assert job_states.all() == []


class TestUnitOfWorkIsolation:
    """Test that scopes do not leak across threads."""

    def test_other_thread_sees_no_active_scope(self, manager):
        handle = manager.start()
        seen = []

        thread = threading.Thread(target=lambda: seen.append(manager.active_scope()))
        thread.start()
        thread.join()

        manager.rollback(handle)
        assert seen == [None]

    def test_write_from_other_thread_is_not_captured(self, manager, ledger, event_props):
        """A write issued by another unit of work does not join this transaction."""
        handle = manager.start()

        def other():
            ledger.save({**event_props, "job_id": "other", "body": "theirs"})

        # Deferred BEGIN holds no lock yet, so the other unit can write first.
        thread = threading.Thread(target=other)
        thread.start()
        thread.join()

        ledger.save({**event_props, "body": "mine"})
        manager.rollback(handle)

        bodies = [e["body"] for e in ledger.all()]
        assert bodies == ["theirs"]

    def test_explicit_scope_overrides_ambient(self, manager, ledger, event_props):
        """An explicit scope is used even when the current unit has none."""
        results = {}

        def start_in_thread():
            results["handle"] = manager.start()

        thread = threading.Thread(target=start_in_thread)
        thread.start()
        thread.join()

        handle = results["handle"]
        event = ledger.save(event_props, scope=manager.scope(handle))
        manager.rollback(handle)
        assert ledger.load(event["id"]) is None

    def test_task_spawned_inside_scope_sees_no_active_scope(self, manager):
        """A child task inherits the context but not the parent's transaction."""
        async def child():
            return manager.active_scope()

        async def parent():
            handle = manager.start()
            try:
                mine = manager.active_scope()
                theirs = await asyncio.create_task(child())
            finally:
                manager.rollback(handle)
            return mine, theirs

        mine, theirs = asyncio.run(parent())
        assert mine is not None
        assert theirs is None

    def test_task_spawned_inside_scope_opens_its_own(self, manager, ledger, event_props):
        """start() in a child task begins a new transaction, not a savepoint of the parent."""
        async def child():
            handle = manager.start()
            connection = manager.active_scope()
            ledger.save({**event_props, "body": "child"})
            manager.commit(handle)
            return connection

        async def parent():
            handle = manager.start()
            try:
                mine = manager.active_scope()
                theirs = await asyncio.create_task(child())
                assert manager.active_scope() is mine
            finally:
                manager.rollback(handle)
            return mine, theirs

        mine, theirs = asyncio.run(parent())
        assert theirs is not mine
        assert [e["body"] for e in ledger.all()] == ["child"]

    def test_gathered_tasks_write_independently(self, manager, ledger, event_props):
        """Sibling tasks spawned under an open scope write outside it."""
        async def write(body):
            ledger.save({**event_props, "body": body})

        async def parent():
            handle = manager.start()
            try:
                await asyncio.gather(write("a"), write("b"))
            finally:
                manager.rollback(handle)

        asyncio.run(parent())
        assert sorted(e["body"] for e in ledger.all()) == ["a", "b"]
