"""Helpers for matching fighter and event names across naming authorities.

The results feed spells fighters and cards its own way ("Conor McGregor" vs
"McGregor", "UFC 300: Pereira vs. Hill" vs "UFC 300").  These helpers provide a
central place for the fuzzy comparison so the poller can align feed entries
with the internal catalog.  Matching is heuristic; the admin resolve path is
the correction mechanism for a wrong match.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Dict, Optional

MIN_SURNAME_LENGTH = 3


class NameMatcher:
    """Fuzzy name comparison with admin-supplied alias overrides."""

    def __init__(self, overrides: Dict[str, str] | None = None) -> None:
        self._overrides = {k.casefold().strip(): v for k, v in (overrides or {}).items()}

    def canonicalize(self, value: str) -> str:
        key = value.casefold().strip()
        return self._overrides.get(key, value)

    def matches(self, a: Optional[str], b: Optional[str]) -> bool:
        if not a or not b:
            return False
        return names_match(self.canonicalize(a), self.canonicalize(b))

    def update(self, mapping: Dict[str, str]) -> None:
        for raw, canonical in mapping.items():
            self._overrides[raw.casefold().strip()] = canonical


def names_match(a: Optional[str], b: Optional[str]) -> bool:
    na = normalize_name(a or "")
    nb = normalize_name(b or "")
    if not na or not nb:
        return False
    if na == nb:
        return True
    # Normalization removes whitespace, so the surname rule compares the
    # collapsed names; "J. Jones" does not match "Jon Jones".
    last_a = _last_token(na)
    last_b = _last_token(nb)
    if len(last_a) > MIN_SURNAME_LENGTH and last_a == last_b:
        return True
    return na in nb or nb in na


@lru_cache(maxsize=2048)
def normalize_name(value: str) -> str:
    return re.sub(r"[^a-z]", "", value.lower())


def _last_token(value: str) -> str:
    tokens = value.split()
    return tokens[-1] if tokens else value
