"""ULID-based identifiers for requests, consumers and operations."""

from ulid import ULID


def generate_id(prefix: str = "") -> str:
    """Generate a new ULID string, optionally prefixed.

    Example:
        >>> len(generate_id())
        26
        >>> generate_id("req_").startswith("req_")
        True
    """
    return f"{prefix}{ULID()}"
