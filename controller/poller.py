"""Background result polling and automatic fight resolution."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterator, List, Optional, Protocol

from normalize.methods import normalize_result
from normalize.names import NameMatcher
from persistence.database import Database, Event, Fight
from resolution.engine import FightAlreadyResolvedError, ResolutionEngine
from results_client.client import FeedCompetition, FeedEvent
from results_client.notifier import NullNotifier
from scoring.credibility import FinishType, Method
from scoring.odds import format_odds


class ResultsFeed(Protocol):
    def get_scoreboard(self, limit: int = 20) -> List[FeedEvent]: ...


class Notifier(Protocol):
    def notify(self, title: str, content: str) -> None: ...


class PollerState(str, Enum):
    IDLE = "idle"
    FETCHING_FEED = "fetching_feed"
    MATCHING = "matching"
    RESOLVING = "resolving"


@dataclass
class PollerConfig:
    interval_seconds: int = 600
    event_date_window: timedelta = timedelta(days=2)
    feed_limit: int = 20
    join_timeout: float = 5


@dataclass
class PollSummary:
    checked: int = 0
    resolved: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class FeedMatch:
    winner: str
    method: Method
    finish_type: FinishType


class ResultPoller:
    def __init__(
        self,
        database: Database,
        engine: ResolutionEngine,
        client: ResultsFeed,
        notifier: Optional[Notifier] = None,
        config: Optional[PollerConfig] = None,
        name_matcher: Optional[NameMatcher] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._db = database
        self._engine = engine
        self._client = client
        self._notifier = notifier or NullNotifier()
        self._config = config or PollerConfig()
        self._names = name_matcher or NameMatcher()
        self._clock = clock or _utcnow
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._cycle_lock = threading.Lock()
        self._state = PollerState.IDLE

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:
            raise RuntimeError("Result poller already running")
        # each run owns its events so a straggling loop never sees a cleared stop
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(self._stop_event, self._wake_event),
            name="fightcred-poller",
            daemon=True,
        )
        self._thread.start()
        self._db.log(
            "info",
            "Result poller started",
            {"interval_seconds": self._config.interval_seconds},
        )

    def stop(self) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=self._config.join_timeout)
        if self._thread and self._thread.is_alive():
            self._db.log(
                "warning",
                "Result poller still finishing a cycle",
                {"join_timeout": self._config.join_timeout},
            )
            return
        self._thread = None
        self._db.log("info", "Result poller stopped")

    def trigger(self) -> None:
        """Ask the background loop for an immediate cycle."""

        self._wake_event.set()

    def poll_once(self) -> PollSummary:
        with self._cycle_lock:
            try:
                return self._run_cycle()
            finally:
                self._state = PollerState.IDLE

    def _run_loop(self, stop_event: threading.Event, wake_event: threading.Event) -> None:
        while not stop_event.is_set():
            start_time = time.monotonic()
            try:
                summary = self.poll_once()
            except Exception as exc:  # pragma: no cover - best effort logging
                self._db.log("error", "Poll cycle failed", {"error": str(exc)})
            else:
                if summary.resolved or summary.errors:
                    self._db.log(
                        "info",
                        "Poll cycle resolved fights",
                        {"resolved": summary.resolved, "errors": summary.errors},
                    )
            elapsed = time.monotonic() - start_time
            sleep_for = max(self._config.interval_seconds - elapsed, 0)
            if sleep_for and not stop_event.is_set():
                wake_event.wait(timeout=sleep_for)
            wake_event.clear()

    def _run_cycle(self) -> PollSummary:
        pending = self._db.pending_fights(self._clock())
        summary = PollSummary(checked=len(pending))
        if not pending:
            self._db.log("info", "No pending fights to check")
            return summary

        self._state = PollerState.FETCHING_FEED
        try:
            feed_events = self._client.get_scoreboard(limit=self._config.feed_limit)
        except Exception as exc:
            self._db.log(
                "warning",
                "Results feed fetch failed",
                {"pending_fights": len(pending), "error": str(exc)},
            )
            return summary

        for fight, event in pending:
            try:
                self._state = PollerState.MATCHING
                match = self._match_fight(fight, event, feed_events)
                if match is None:
                    continue
                self._state = PollerState.RESOLVING
                resolution = self._engine.resolve(
                    fight.id, match.winner, match.finish_type, match.method
                )
            except FightAlreadyResolvedError:
                self._db.log("info", "Fight already resolved elsewhere", {"fight_id": fight.id})
                continue
            except Exception as exc:
                message = f"Error resolving {fight.title}: {exc}"
                self._db.log("error", "Automatic resolution failed", {"fight_id": fight.id, "error": str(exc)})
                summary.errors.append(message)
                continue

            summary.resolved += 1
            self._db.log(
                "info",
                "Fight auto-resolved",
                {
                    "fight_id": fight.id,
                    "winner": match.winner,
                    "method": match.method,
                    "predictions_resolved": resolution.predictions_resolved,
                },
            )
            self._notify_resolution(fight, match.winner, match.method, resolution.predictions_resolved)

        self._db.log(
            "info",
            "Poll cycle completed",
            {"checked": summary.checked, "resolved": summary.resolved, "errors": len(summary.errors)},
        )
        return summary

    def _match_fight(self, fight: Fight, event: Event, feed_events: List[FeedEvent]) -> Optional[FeedMatch]:
        competition = None
        for feed_event in self._candidate_events(event, feed_events):
            competition = self._find_competition(fight, feed_event)
            if competition is not None:
                break
        if competition is None or not competition.completed:
            return None
        feed_winner = competition.winner
        if feed_winner is None:
            return None

        if self._names.matches(feed_winner.display_name, fight.fighter1_name):
            winner = fight.fighter1_name
        elif self._names.matches(feed_winner.display_name, fight.fighter2_name):
            winner = fight.fighter2_name
        else:
            return None
        method, finish_type = normalize_result(competition.method_text)
        return FeedMatch(winner=winner, method=method, finish_type=finish_type)

    def _candidate_events(self, event: Event, feed_events: List[FeedEvent]) -> Iterator[FeedEvent]:
        """Feed events that could be this card, by name or by date, in feed order."""

        window = self._config.event_date_window
        for feed_event in feed_events:
            if self._names.matches(feed_event.name, event.name):
                yield feed_event
            elif event.short_name and self._names.matches(feed_event.name, event.short_name):
                yield feed_event
            elif feed_event.date is not None and abs(feed_event.date - event.event_date) < window:
                yield feed_event

    def _find_competition(self, fight: Fight, feed_event: FeedEvent) -> Optional[FeedCompetition]:
        for competition in feed_event.competitions:
            names = [competitor.display_name for competitor in competition.competitors]
            if any(self._names.matches(name, fight.fighter1_name) for name in names) and any(
                self._names.matches(name, fight.fighter2_name) for name in names
            ):
                return competition
        return None

    def _notify_resolution(self, fight: Fight, winner: str, method: Method, scored: int) -> None:
        try:
            self._notifier.notify(
                "FightCred: Fight Auto-Resolved",
                f"{fight.title} -> Winner: {winner} by {method.value.upper()} "
                f"(odds {format_odds(fight.odds_for(winner))}). {scored} predictions scored.",
            )
        except Exception as exc:
            self._db.log(
                "warning",
                "Resolution notification failed",
                {"fight_id": fight.id, "error": str(exc)},
            )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
