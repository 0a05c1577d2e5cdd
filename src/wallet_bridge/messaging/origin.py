"""Origin allow-list checks for inbound messages."""

from __future__ import annotations

import re
from collections.abc import Iterable


def _compile(pattern: str) -> re.Pattern[str]:
    # "*" stands for one or more characters other than "/"
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + "[^/]+".join(parts) + "$")


class OriginValidator:
    """Checks a sender origin against exact and wildcard allow-list entries.

    Only whole-origin matches are accepted, so ``https://site.xyz.evil.com``
    never passes an entry for ``https://site.xyz``.

    Example:
        >>> validator = OriginValidator(["https://*.example.com", "http://localhost:3000"])
        >>> validator.is_allowed("https://app.example.com")
        True
        >>> validator.is_allowed("https://example.com.evil.io")
        False
    """

    def __init__(self, allowed: Iterable[str]) -> None:
        self.allowed = tuple(allowed)
        self._exact = frozenset(entry for entry in self.allowed if "*" not in entry)
        self._patterns = tuple(_compile(entry) for entry in self.allowed if "*" in entry)

    def is_allowed(self, origin: str | None) -> bool:
        if not origin:
            return False
        if origin in self._exact:
            return True
        return any(pattern.match(origin) for pattern in self._patterns)

    def __call__(self, origin: str | None) -> bool:
        return self.is_allowed(origin)
