"""Result method normalization.

Maps the free-text method descriptions of the results feed ("KO (punch)",
"Submission (rear naked choke)", "Decision (split)") onto the closed method
vocabulary.  Rules are checked in priority order; the first hit wins.
"""

from __future__ import annotations

import re
from typing import Optional, Pattern, Tuple

from scoring.credibility import FinishType, Method, finish_type_for

METHOD_RULES: Tuple[Tuple[Method, Pattern[str]], ...] = (
    (Method.TKO_KO, re.compile(r"ko|tko|knockout")),
    (Method.SUBMISSION, re.compile(r"sub|choke|lock|triangle")),
    (Method.DRAW, re.compile(r"draw")),
    (Method.NC, re.compile(r"no contest|\bnc\b")),
)


def normalize_method(text: Optional[str]) -> Method:
    lowered = (text or "").lower()
    for method, pattern in METHOD_RULES:
        if pattern.search(lowered):
            return method
    return Method.DECISION


def normalize_result(text: Optional[str]) -> Tuple[Method, FinishType]:
    method = normalize_method(text)
    return method, finish_type_for(method)
