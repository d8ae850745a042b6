"""
Event ledger.

Events are saved through the generic RecordStore contract and read back
incrementally with ``events_since``. Timestamps have millisecond resolution,
so several events can share one ``created_time``; a consumer therefore
resumes from a bookmark made of a timestamp plus the ids it has already seen
at that timestamp (see SyncBookmark).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.engine import Connection

from ..database import Event
from ..errors import InvalidArgument, UnprocessableEntity
from ..schema import validate_event
from .base import Record, RecordStore


class EventLedger(RecordStore):
    model = Event

    def validate(self, record: Record, *, is_new: bool = False, rules: Optional[Dict[str, Any]] = None) -> Record:
        super().validate(record, is_new=is_new, rules=rules)
        errors = validate_event(record, is_new=is_new)
        if errors:
            raise UnprocessableEntity(f"Invalid event: {errors[0]}", errors)
        return record

    def events_since(
        self,
        job_id: str,
        since_time: int,
        excluded_ids: Iterable[str] = (),
        *,
        scope: Optional[Connection] = None,
    ) -> List[Record]:
        """
        Events of a job created at or after ``since_time``, minus ``excluded_ids``.

        Ordered by created_time, then id, so repeated calls return the same
        order for events sharing a timestamp.
        """
        if not job_id:
            raise InvalidArgument("job_id cannot be empty")

        table = self.table
        query = (
            select(*self._columns())
            .where(table.c.job_id == job_id)
            .where(table.c.created_time >= since_time)
        )
        excluded = [excluded_ids] if isinstance(excluded_ids, str) else list(excluded_ids)
        if excluded:
            query = query.where(table.c.id.not_in(excluded))
        query = query.order_by(table.c.created_time.asc(), table.c.id.asc())

        with self._connection(scope) as conn:
            rows = conn.execute(query).all()
        return [dict(row._mapping) for row in rows]


@dataclass(frozen=True)
class SyncBookmark:
    """
    Consumer-held resume point for ``events_since``.

    Example:
        bookmark = SyncBookmark()
        while True:
            events = ledger.events_since(job_id, *bookmark.query_args())
            handle(events)
            bookmark = bookmark.advance(events)
    """

    since_time: int = 0
    seen_ids: FrozenSet[str] = field(default_factory=frozenset)

    def query_args(self) -> Tuple[int, List[str]]:
        return self.since_time, sorted(self.seen_ids)

    def advance(self, events: Iterable[Record]) -> "SyncBookmark":
        events = list(events)
        if not events:
            return self

        latest = max(e["created_time"] for e in events)
        at_latest = {e["id"] for e in events if e["created_time"] == latest}

        if latest == self.since_time:
            return SyncBookmark(latest, self.seen_ids | at_latest)
        return SyncBookmark(latest, frozenset(at_latest))
