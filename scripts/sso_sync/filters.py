"""Include/ignore regex filtering of source entries."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern

from scripts.sso_sync.errors import ConfigError


def _compile(patterns: Optional[Iterable[str]], label: str) -> Optional[tuple[Pattern[str], ...]]:
    if patterns is None:
        return None
    compiled = []
    for p in patterns:
        try:
            compiled.append(re.compile(p))
        except re.error as exc:
            raise ConfigError(f"Unable to parse regex {p!r} from {label}: {exc}") from exc
    return tuple(compiled)


@dataclass(frozen=True)
class PatternFilter:
    """Matches keys (emails) against an include set and an ignore set.

    Patterns are unanchored searches. A key is kept when no ignore pattern
    matches it and, if an include set is configured, at least one include
    pattern matches. ``None`` means "not configured"; an empty include set
    therefore rejects everything.
    """

    include: Optional[tuple[Pattern[str], ...]] = None
    ignore: Optional[tuple[Pattern[str], ...]] = None

    @classmethod
    def from_patterns(
        cls,
        include: Optional[Iterable[str]] = None,
        ignore: Optional[Iterable[str]] = None,
        label: str = "filter",
    ) -> "PatternFilter":
        return cls(
            include=_compile(include, f"include_{label}_regexes"),
            ignore=_compile(ignore, f"ignore_{label}_regexes"),
        )

    def allows(self, key: str) -> bool:
        if self.ignore is not None and any(p.search(key) for p in self.ignore):
            return False
        if self.include is not None and not any(p.search(key) for p in self.include):
            return False
        return True

    @property
    def is_empty(self) -> bool:
        return self.include is None and self.ignore is None
