import secrets
import string
import time

ID_LENGTH = 22
_ALPHABET = string.ascii_letters + string.digits


def generate_id(length: int = ID_LENGTH) -> str:
    """Random alphanumeric token, 22 chars (~131 bits) by default."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return time.time_ns() // 1_000_000
