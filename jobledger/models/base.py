"""
Generic record store.

Responsibilities:
- Insert-or-update with id assignment and timestamping.
- Point lookup, batch delete, unfiltered listing.
- Row-count checks on every update and delete.

Non-Responsibilities:
- No caching. Every read goes to the database.
- No schema management.

Invariant:
A write that touches a different number of rows than requested raises
ConsistencyError. It never returns as a partial success.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.engine import Connection

from ..errors import ConsistencyError, InvalidArgument, UnprocessableEntity
from ..ids import generate_id, now_ms
from ..logger import get_logger
from ..schema import validate_timestamps
from ..transactions import TransactionManager

Record = Dict[str, Any]


class RecordStore:
    """
    Stateless facade over one table.

    Subclasses set ``model`` to a declarative class; ``default_fields`` is
    computed from its columns when the subclass is defined.
    """

    model: ClassVar[Any] = None
    default_fields: ClassVar[Tuple[str, ...]] = ()
    has_date_properties: ClassVar[bool] = True

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.model is not None:
            cls.default_fields = tuple(c.name for c in cls.model.__table__.columns)

    def __init__(self, transactions: TransactionManager):
        if self.model is None:
            raise TypeError(f"{type(self).__name__} does not define a model")
        self.transactions = transactions

    @property
    def table(self) -> Table:
        return self.model.__table__

    @property
    def table_name(self) -> str:
        return self.table.name

    def _columns(self):
        return [self.table.c[name] for name in self.default_fields]

    @contextmanager
    def _connection(self, scope: Optional[Connection]) -> Iterator[Connection]:
        if scope is None:
            scope = self.transactions.active_scope()
        if scope is not None:
            yield scope
            return
        # No transaction: run as one auto-committed unit; errors roll it back.
        with self.transactions.engine.begin() as conn:
            yield conn

    # Transactions

    def start_transaction(self) -> int:
        return self.transactions.start()

    def commit_transaction(self, handle: int) -> None:
        self.transactions.commit(handle)

    def rollback_transaction(self, handle: int) -> None:
        self.transactions.rollback(handle)

    # Hooks

    def from_api_input(self, obj: Record) -> Record:
        return obj

    def to_api_output(self, obj: Record) -> Record:
        return dict(obj)

    def is_new(self, record: Record, is_new: Optional[bool] = None) -> bool:
        if is_new is not None:
            return is_new
        return not record.get("id")

    def validate(self, record: Record, *, is_new: bool = False, rules: Optional[Dict[str, Any]] = None) -> Record:
        """
        Raise UnprocessableEntity if the record cannot be written.

        Subclasses extend this with field checks and must call through.
        """
        if not is_new and not record.get("id"):
            raise UnprocessableEntity("id is missing")

        unknown = sorted(set(record) - set(self.default_fields))
        if unknown:
            raise UnprocessableEntity(
                f"Unknown field(s) for {self.table_name}: {', '.join(unknown)}"
            )

        if self.has_date_properties:
            errors = validate_timestamps(record)
            if errors:
                raise UnprocessableEntity(errors[0], errors)

        return record

    # Operations

    def save(
        self,
        record: Record,
        *,
        is_new: Optional[bool] = None,
        skip_validation: bool = False,
        auto_timestamp: bool = True,
        validation_rules: Optional[Dict[str, Any]] = None,
        scope: Optional[Connection] = None,
    ) -> Record:
        """
        Insert a new record or update an existing one.

        Args:
            record: Field values. No ``id`` means new unless ``is_new`` says otherwise.
            is_new: Force insert (True) or update (False)
            skip_validation: Do not call ``validate``
            auto_timestamp: Set created_time/updated_time; when False the
                caller's values are kept verbatim
            validation_rules: Passed to ``validate`` as ``rules``
            scope: Explicit transaction connection

        Returns:
            The persisted record, with any assigned id and timestamps

        Raises:
            InvalidArgument: Empty record
            UnprocessableEntity: Validation failed
            ConsistencyError: An update did not affect exactly one row
        """
        if not record:
            raise InvalidArgument("record cannot be empty")

        to_save = dict(record)
        new = self.is_new(record, is_new)

        if new and not to_save.get("id"):
            to_save["id"] = generate_id()

        if self.has_date_properties and auto_timestamp:
            timestamp = now_ms()
            if new:
                to_save["created_time"] = timestamp
            to_save["updated_time"] = timestamp

        if new:
            self._apply_column_defaults(to_save)

        if not skip_validation:
            self.validate(to_save, is_new=new, rules=validation_rules or {})

        logger = get_logger()

        if new:
            with self._connection(scope) as conn:
                conn.execute(insert(self.table).values(**to_save))
            logger.record_insert(self.table_name)
            logger.debug("Inserted record", table=self.table_name, id=to_save["id"])
            return to_save

        object_id = to_save.pop("id", None)
        if not object_id:
            raise InvalidArgument('Missing "id" property')

        # An update with nothing to change still has to prove the row exists.
        values = to_save or {"id": object_id}
        with self._connection(scope) as conn:
            result = conn.execute(
                update(self.table).where(self.table.c.id == object_id).values(**values)
            )
            updated = result.rowcount
            if updated != 1:
                self._consistency_error(
                    f"one row should have been updated, but {updated} row(s) were updated",
                    expected=1,
                    actual=updated,
                    id=object_id,
                )

        to_save["id"] = object_id
        logger.record_update(self.table_name)
        logger.debug("Updated record", table=self.table_name, id=object_id)
        return to_save

    def load(self, id: str, *, scope: Optional[Connection] = None) -> Optional[Record]:
        """Return the record with this id, or None."""
        if not id:
            raise InvalidArgument("id cannot be empty")

        with self._connection(scope) as conn:
            row = conn.execute(
                select(*self._columns()).where(self.table.c.id == id)
            ).first()
        return dict(row._mapping) if row is not None else None

    def delete(self, ids: Union[str, Sequence[str]], *, scope: Optional[Connection] = None) -> None:
        """
        Delete every listed id in one statement.

        Raises:
            InvalidArgument: No id given
            ConsistencyError: Some ids did not exist. Outside a caller
                transaction nothing is deleted.
        """
        if not ids:
            raise InvalidArgument("id cannot be empty")

        id_list = [ids] if isinstance(ids, str) else list(ids)
        if not all(id_list):
            raise InvalidArgument("id cannot be empty")

        with self._connection(scope) as conn:
            result = conn.execute(delete(self.table).where(self.table.c.id.in_(id_list)))
            deleted = result.rowcount
            if deleted != len(id_list):
                self._consistency_error(
                    f"{len(id_list)} row(s) should have been deleted but {deleted} row(s) were deleted",
                    expected=len(id_list),
                    actual=deleted,
                    ids=id_list,
                )

        logger = get_logger()
        logger.record_delete(self.table_name, deleted)
        logger.debug("Deleted records", table=self.table_name, count=deleted)

    def all(self, *, scope: Optional[Connection] = None) -> List[Record]:
        with self._connection(scope) as conn:
            rows = conn.execute(select(*self._columns())).all()
        return [dict(row._mapping) for row in rows]

    def _apply_column_defaults(self, record: Record) -> None:
        # Fill scalar column defaults so the returned record matches a later load.
        for name in self.default_fields:
            if name in record:
                continue
            default = self.table.c[name].default
            if default is not None and default.is_scalar:
                record[name] = default.arg

    def _consistency_error(self, message: str, expected: int, actual: int, **context) -> None:
        logger = get_logger()
        logger.record_error("ConsistencyError")
        logger.error(message, table=self.table_name, **context)
        raise ConsistencyError(message, expected=expected, actual=actual)
