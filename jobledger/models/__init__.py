from .base import Record, RecordStore
from .events import EventLedger, SyncBookmark
from .job_states import JobStateStore

__all__ = ["Record", "RecordStore", "EventLedger", "SyncBookmark", "JobStateStore"]
