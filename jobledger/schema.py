from typing import Any, Dict, List

EVENT_REQUIRED_STR_FIELDS = ["job_id", "name"]
EVENT_STR_FIELDS = ["hash", "body"]
JOB_STATE_TIME_FIELDS = ["last_started", "last_finished"]

DEFAULT_BODY_TYPE = 1


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def validate_event(data: Dict[str, Any], is_new: bool = True) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.

    On updates only the fields present are checked; required fields must be
    present on new events.
    """
    errors: List[str] = []

    for f in EVENT_REQUIRED_STR_FIELDS:
        if f not in data:
            if is_new:
                errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    if is_new and "hash" not in data:
        errors.append("Missing required field: hash")

    for f in EVENT_STR_FIELDS:
        if f in data and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string")

    if "body_type" in data and (not _is_int(data["body_type"]) or data["body_type"] < 0):
        errors.append("Field 'body_type' must be a non-negative integer")

    return errors


def validate_job_state(data: Dict[str, Any], is_new: bool = True) -> List[str]:
    """Returns a list of validation error messages for a job state row."""
    errors: List[str] = []

    if "job_id" not in data:
        if is_new:
            errors.append("Missing required field: job_id")
    elif not _is_non_empty_str(data["job_id"]):
        errors.append("Field 'job_id' must be a non-empty string")

    for f in JOB_STATE_TIME_FIELDS:
        if f in data and (not _is_int(data[f]) or data[f] < 0):
            errors.append(f"Field '{f}' must be a non-negative integer")

    if "context" in data and not isinstance(data["context"], str):
        errors.append("Field 'context' must be a string")

    return errors


def validate_timestamps(data: Dict[str, Any]) -> List[str]:
    """created_time and updated_time, when both present, must be ordered."""
    errors: List[str] = []
    for f in ("created_time", "updated_time"):
        if f in data and not _is_int(data[f]):
            errors.append(f"Field '{f}' must be an integer")
    if not errors and "created_time" in data and "updated_time" in data:
        if data["created_time"] > data["updated_time"]:
            errors.append("Field 'created_time' must not be after 'updated_time'")
    return errors
