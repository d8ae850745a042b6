from typing import Any, Dict, Optional

from ..database import JobState
from ..errors import UnprocessableEntity
from ..schema import validate_job_state
from .base import Record, RecordStore


class JobStateStore(RecordStore):
    """One mutable current-state row per job. Uniqueness of job_id is left to callers."""

    model = JobState

    def validate(self, record: Record, *, is_new: bool = False, rules: Optional[Dict[str, Any]] = None) -> Record:
        super().validate(record, is_new=is_new, rules=rules)
        errors = validate_job_state(record, is_new=is_new)
        if errors:
            raise UnprocessableEntity(f"Invalid job state: {errors[0]}", errors)
        return record
