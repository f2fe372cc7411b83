"""Keyword patterns for the textual fallback search.

Why: The fallback only keeps the pipeline answering when the vector index is
     empty or misconfigured, so it matches a fixed set of domain keywords
     instead of ranking anything.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import cached_property
from itertools import permutations


@dataclass(frozen=True)
class KeywordPattern:
    """Keyword groups; a text matches when every word of some group appears, in any order.

    ("elders", "quorum") compiles to ``elders.*quorum|quorum.*elders`` and is
    matched case-insensitively.
    """

    groups: tuple[tuple[str, ...], ...]

    def __post_init__(self) -> None:
        if not self.groups or any(not g for g in self.groups):
            raise ValueError("keyword pattern needs at least one non-empty group")

    @cached_property
    def regex(self) -> re.Pattern[str]:
        alternatives: list[str] = []
        for group in self.groups:
            words = [re.escape(w) for w in group]
            # groups are small (two or three words), so permutations stay cheap
            for order in permutations(words):
                alt = ".*".join(order)
                if alt not in alternatives:
                    alternatives.append(alt)
        return re.compile("|".join(alternatives), re.IGNORECASE)

    @property
    def phrases(self) -> list[str]:
        """Each group as a space-joined phrase (for store-side full-text prefilters)."""
        return [" ".join(g) for g in self.groups]

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None


def parse_keyword_groups(raw: str) -> KeywordPattern:
    """Parse ``"elders quorum, relief society"`` into a KeywordPattern.

    Groups are comma separated; words inside a group are whitespace separated.
    """
    groups = tuple(
        tuple(word.lower() for word in part.split())
        for part in raw.split(",")
        if part.strip()
    )
    return KeywordPattern(groups=groups)
