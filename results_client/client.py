"""Fight results feed client.

This module provides a thin wrapper around the public ESPN MMA scoreboard used
by the result poller.  The wrapper keeps the HTTP handling and payload parsing
in one place so the poller only deals with typed feed events.  The feed is
untrusted: anything that does not look like an event, competition or
competitor is dropped rather than raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

import requests


class ResultsFeedError(RuntimeError):
    """Raised when the results feed returns a non-success status code."""


@dataclass
class FeedCompetitor:
    display_name: str
    winner: bool = False


@dataclass
class FeedCompetition:
    id: str
    completed: bool
    status_description: Optional[str]
    competitors: List[FeedCompetitor] = field(default_factory=list)
    detail_text: Optional[str] = None

    @property
    def winner(self) -> Optional[FeedCompetitor]:
        for competitor in self.competitors:
            if competitor.winner:
                return competitor
        return None

    @property
    def method_text(self) -> str:
        return self.detail_text or self.status_description or "Decision"


@dataclass
class FeedEvent:
    id: str
    name: str
    date: Optional[datetime]
    competitions: List[FeedCompetition] = field(default_factory=list)


class EspnScoreboardClient:
    """Simple client that talks to the ESPN UFC scoreboard."""

    BASE_URL = "https://site.api.espn.com/apis/site/v2/sports/mma/ufc"

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 10) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    def get_scoreboard(self, limit: int = 20) -> List[FeedEvent]:
        payload = self._get("/scoreboard", {"limit": str(limit)})
        events = payload.get("events") if isinstance(payload, dict) else None
        if not isinstance(events, list):
            return []
        parsed = (parse_event(event) for event in events)
        return [event for event in parsed if event is not None]

    def _get(self, path: str, params: Mapping[str, str]) -> Any:
        url = f"{self.BASE_URL}{path}"
        response = self._session.get(url, params=params, timeout=self._timeout)
        if response.status_code != 200:
            raise ResultsFeedError(
                f"Results feed request failed with status {response.status_code}: {response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ResultsFeedError("Results feed returned a malformed payload") from exc


def parse_event(payload: object) -> Optional[FeedEvent]:
    if not isinstance(payload, dict):
        return None
    event_id = payload.get("id")
    name = payload.get("name")
    if not event_id or not isinstance(name, str):
        return None
    competitions = [
        competition
        for competition in (_parse_competition(entry) for entry in payload.get("competitions") or [])
        if competition is not None
    ]
    return FeedEvent(
        id=str(event_id),
        name=name,
        date=_parse_time(payload.get("date")),
        competitions=competitions,
    )


def _parse_competition(payload: object) -> Optional[FeedCompetition]:
    if not isinstance(payload, dict):
        return None
    status = payload.get("status")
    status_type = status.get("type") if isinstance(status, dict) else None
    if not isinstance(status_type, dict):
        status_type = {}
    competitors: List[FeedCompetitor] = []
    for entry in payload.get("competitors") or []:
        if not isinstance(entry, dict):
            continue
        athlete = entry.get("athlete") or {}
        display_name = athlete.get("displayName") if isinstance(athlete, dict) else None
        if not display_name:
            continue
        competitors.append(FeedCompetitor(display_name=display_name, winner=bool(entry.get("winner"))))
    if len(competitors) != 2:
        return None

    detail_text: Optional[str] = None
    details = payload.get("details")
    if isinstance(details, list) and details and isinstance(details[0], dict):
        detail_type = details[0].get("type") or {}
        if isinstance(detail_type, dict):
            detail_text = detail_type.get("text")

    return FeedCompetition(
        id=str(payload.get("id", "")),
        completed=bool(status_type.get("completed")),
        status_description=status_type.get("description"),
        competitors=competitors,
        detail_text=detail_text,
    )


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        if value.endswith("Z"):
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        else:
            parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)
