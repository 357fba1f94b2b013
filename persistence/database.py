"""SQLite persistence layer for FightCred."""

from __future__ import annotations

import csv
import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from resolution.aggregates import PickOutcome, UserProfile, fold_profile
from scoring.credibility import (
    PICKABLE_METHODS,
    FightStatus,
    FinishType,
    Method,
    PredictionStatus,
    Tier,
)


SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    short_name TEXT,
    event_date TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS fights (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id INTEGER NOT NULL,
    fighter1_name TEXT NOT NULL,
    fighter2_name TEXT NOT NULL,
    odds1 INTEGER,
    odds2 INTEGER,
    odds_updated_at TEXT,
    status TEXT NOT NULL DEFAULT 'upcoming',
    scheduled_start_time TEXT,
    winner TEXT,
    finish_type TEXT,
    method TEXT,
    round INTEGER,
    fight_time TEXT,
    FOREIGN KEY (event_id) REFERENCES events(id)
);

CREATE TABLE IF NOT EXISTS predictions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    fight_id INTEGER NOT NULL,
    picked_winner TEXT NOT NULL,
    picked_finish_type TEXT,
    picked_method TEXT,
    odds_at_prediction INTEGER,
    is_locked INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    winner_points INTEGER NOT NULL DEFAULT 0,
    finish_type_points INTEGER NOT NULL DEFAULT 0,
    method_points INTEGER NOT NULL DEFAULT 0,
    bonus_points INTEGER NOT NULL DEFAULT 0,
    total_points INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, fight_id),
    FOREIGN KEY (fight_id) REFERENCES fights(id)
);

CREATE TABLE IF NOT EXISTS user_profiles (
    user_id INTEGER PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    credibility_score INTEGER NOT NULL DEFAULT 0,
    tier TEXT NOT NULL DEFAULT 'rookie',
    total_picks INTEGER NOT NULL DEFAULT 0,
    correct_picks INTEGER NOT NULL DEFAULT 0,
    correct_finish_picks INTEGER NOT NULL DEFAULT 0,
    total_finish_picks INTEGER NOT NULL DEFAULT 0,
    correct_method_picks INTEGER NOT NULL DEFAULT 0,
    total_method_picks INTEGER NOT NULL DEFAULT 0,
    correct_underdog_picks INTEGER NOT NULL DEFAULT 0,
    total_underdog_picks INTEGER NOT NULL DEFAULT 0,
    current_streak INTEGER NOT NULL DEFAULT 0,
    best_streak INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_fighter_stats (
    user_id INTEGER NOT NULL,
    fighter_name TEXT NOT NULL,
    total_picks INTEGER NOT NULL DEFAULT 0,
    correct_picks INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, fighter_name)
);

CREATE TABLE IF NOT EXISTS credibility_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT NOT NULL,
    user_id INTEGER NOT NULL,
    fight_id INTEGER NOT NULL,
    prediction_id INTEGER NOT NULL,
    winner_points INTEGER NOT NULL,
    finish_type_points INTEGER NOT NULL,
    method_points INTEGER NOT NULL,
    bonus_points INTEGER NOT NULL,
    total_points INTEGER NOT NULL,
    breakdown TEXT NOT NULL,
    UNIQUE (fight_id, prediction_id)
);

CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    context TEXT
);
"""

PROFILE_COUNTERS = (
    "credibility_score",
    "total_picks",
    "correct_picks",
    "correct_finish_picks",
    "total_finish_picks",
    "correct_method_picks",
    "total_method_picks",
    "correct_underdog_picks",
    "total_underdog_picks",
    "current_streak",
    "best_streak",
)


class PredictionLockedError(RuntimeError):
    """Raised when a prediction can no longer be changed by its user."""


class PredictionAlreadyScoredError(RuntimeError):
    """Raised when a scoring write targets a prediction that is not pending."""


@dataclass
class Event:
    id: int
    name: str
    short_name: Optional[str]
    event_date: datetime


@dataclass
class Fight:
    id: int
    event_id: int
    fighter1_name: str
    fighter2_name: str
    odds1: Optional[int]
    odds2: Optional[int]
    status: FightStatus
    scheduled_start_time: Optional[datetime] = None
    winner: Optional[str] = None
    finish_type: Optional[FinishType] = None
    method: Optional[Method] = None
    round: Optional[int] = None
    fight_time: Optional[str] = None

    @property
    def fighters(self) -> Tuple[str, str]:
        return self.fighter1_name, self.fighter2_name

    @property
    def title(self) -> str:
        return f"{self.fighter1_name} vs {self.fighter2_name}"

    def odds_for(self, fighter_name: str) -> Optional[int]:
        if fighter_name == self.fighter1_name:
            return self.odds1
        if fighter_name == self.fighter2_name:
            return self.odds2
        return None


@dataclass
class Prediction:
    id: int
    user_id: int
    fight_id: int
    picked_winner: str
    picked_finish_type: Optional[FinishType]
    picked_method: Optional[Method]
    odds_at_prediction: Optional[int]
    is_locked: bool
    status: PredictionStatus
    winner_points: int = 0
    finish_type_points: int = 0
    method_points: int = 0
    bonus_points: int = 0
    total_points: int = 0


@dataclass
class FighterStat:
    user_id: int
    fighter_name: str
    total_picks: int
    correct_picks: int


@dataclass
class CredibilityLogRecord:
    id: int
    created_at: datetime
    user_id: int
    fight_id: int
    prediction_id: int
    winner_points: int
    finish_type_points: int
    method_points: int
    bonus_points: int
    total_points: int
    breakdown: Dict[str, object] = field(default_factory=dict)


@dataclass
class LogRecord:
    id: int
    created_at: datetime
    level: str
    message: str
    context: Optional[dict]


class Database:
    def __init__(self, path: str | Path = "fightcred.db") -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction that holds the database write lock from the first read."""

        conn = sqlite3.connect(self._path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def create_event(
        self,
        name: str,
        event_date: datetime,
        short_name: Optional[str] = None,
    ) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO events (name, short_name, event_date) VALUES (?, ?, ?)",
                (name, short_name, _to_utc_naive(event_date).isoformat()),
            )
            return int(cur.lastrowid)

    def create_fight(
        self,
        event_id: int,
        fighter1_name: str,
        fighter2_name: str,
        odds1: Optional[int] = None,
        odds2: Optional[int] = None,
        scheduled_start_time: Optional[datetime] = None,
    ) -> int:
        start = _to_utc_naive(scheduled_start_time).isoformat() if scheduled_start_time else None
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO fights (event_id, fighter1_name, fighter2_name, odds1, odds2,"
                " scheduled_start_time) VALUES (?, ?, ?, ?, ?, ?)",
                (event_id, fighter1_name, fighter2_name, odds1, odds2, start),
            )
            return int(cur.lastrowid)

    def get_fight(self, fight_id: int) -> Optional[Fight]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM fights WHERE id = ?", (fight_id,)).fetchone()
        return _row_to_fight(row) if row else None

    def update_fight_odds(self, fight_id: int, odds1: Optional[int], odds2: Optional[int]) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE fights SET odds1 = ?, odds2 = ?, odds_updated_at = ? WHERE id = ?",
                (odds1, odds2, _utcnow().isoformat(), fight_id),
            )

    def lock_fight(self, fight_id: int) -> bool:
        """Move an upcoming fight to live and freeze its predictions."""

        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE fights SET status = ? WHERE id = ? AND status = ?",
                (FightStatus.LIVE.value, fight_id, FightStatus.UPCOMING.value),
            )
            conn.execute("UPDATE predictions SET is_locked = 1 WHERE fight_id = ?", (fight_id,))
            return cur.rowcount == 1

    def cancel_fight(self, fight_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE fights SET status = ? WHERE id = ? AND status IN (?, ?)",
                (
                    FightStatus.CANCELLED.value,
                    fight_id,
                    FightStatus.UPCOMING.value,
                    FightStatus.LIVE.value,
                ),
            )
            conn.execute("UPDATE predictions SET is_locked = 1 WHERE fight_id = ?", (fight_id,))
            return cur.rowcount == 1

    def complete_fight(
        self,
        fight_id: int,
        winner: str,
        finish_type: FinishType,
        method: Method,
        round: Optional[int] = None,
        fight_time: Optional[str] = None,
    ) -> bool:
        """Record the outcome; succeeds at most once per fight."""

        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE fights SET status = ?, winner = ?, finish_type = ?, method = ?,"
                " round = ?, fight_time = ? WHERE id = ? AND status IN (?, ?)",
                (
                    FightStatus.COMPLETED.value,
                    winner,
                    FinishType(finish_type).value,
                    Method(method).value,
                    round,
                    fight_time,
                    fight_id,
                    FightStatus.UPCOMING.value,
                    FightStatus.LIVE.value,
                ),
            )
            if cur.rowcount == 1:
                conn.execute("UPDATE predictions SET is_locked = 1 WHERE fight_id = ?", (fight_id,))
            return cur.rowcount == 1

    def pending_fights(self, now: datetime) -> List[Tuple[Fight, Event]]:
        """Fights that should have a result by ``now`` but are not resolved."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT f.*, e.name AS event_name, e.short_name AS event_short_name,"
                " e.event_date AS event_date FROM fights f JOIN events e ON e.id = f.event_id"
                " WHERE f.status = ? OR (f.status = ? AND f.scheduled_start_time IS NOT NULL"
                " AND f.scheduled_start_time <= ?) ORDER BY f.id",
                (
                    FightStatus.LIVE.value,
                    FightStatus.UPCOMING.value,
                    _to_utc_naive(now).isoformat(),
                ),
            ).fetchall()
        results: List[Tuple[Fight, Event]] = []
        for row in rows:
            event = Event(
                id=row["event_id"],
                name=row["event_name"],
                short_name=row["event_short_name"],
                event_date=datetime.fromisoformat(row["event_date"]),
            )
            results.append((_row_to_fight(row), event))
        return results

    def upsert_prediction(
        self,
        user_id: int,
        fight_id: int,
        picked_winner: str,
        picked_finish_type: Optional[FinishType] = None,
        picked_method: Optional[Method] = None,
    ) -> int:
        finish = FinishType(picked_finish_type) if picked_finish_type else None
        method = Method(picked_method) if picked_method else None
        if method is not None and (finish != FinishType.FINISH or method not in PICKABLE_METHODS):
            raise ValueError("A method pick requires a finish pick of tko_ko or submission")

        now = _utcnow().isoformat()
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM fights WHERE id = ?", (fight_id,)).fetchone()
            if not row:
                raise ValueError(f"Unknown fight {fight_id}")
            fight = _row_to_fight(row)
            if picked_winner not in fight.fighters:
                raise ValueError(f"{picked_winner!r} is not on the card for {fight.title}")
            if fight.status != FightStatus.UPCOMING:
                raise PredictionLockedError(f"Predictions are locked for {fight.title}")

            existing = conn.execute(
                "SELECT id, is_locked FROM predictions WHERE user_id = ? AND fight_id = ?",
                (user_id, fight_id),
            ).fetchone()
            values = (
                picked_winner,
                finish.value if finish else None,
                method.value if method else None,
                fight.odds_for(picked_winner),
            )
            if existing:
                if existing["is_locked"]:
                    raise PredictionLockedError(f"Prediction {existing['id']} is locked")
                conn.execute(
                    "UPDATE predictions SET picked_winner = ?, picked_finish_type = ?,"
                    " picked_method = ?, odds_at_prediction = ?, updated_at = ? WHERE id = ?",
                    (*values, now, existing["id"]),
                )
                return int(existing["id"])
            cur = conn.execute(
                "INSERT INTO predictions (user_id, fight_id, picked_winner, picked_finish_type,"
                " picked_method, odds_at_prediction, created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (user_id, fight_id, *values, now, now),
            )
            return int(cur.lastrowid)

    def get_prediction(self, prediction_id: int) -> Optional[Prediction]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM predictions WHERE id = ?", (prediction_id,)
            ).fetchone()
        return _row_to_prediction(row) if row else None

    def predictions_for_fight(self, fight_id: int) -> List[Prediction]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM predictions WHERE fight_id = ? ORDER BY id", (fight_id,)
            ).fetchall()
        return [_row_to_prediction(row) for row in rows]

    def apply_pick_outcome(self, outcome: PickOutcome) -> UserProfile:
        """Write one scored prediction, its log entry and the user aggregates atomically."""

        breakdown = outcome.breakdown
        now = _utcnow().isoformat()
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE predictions SET status = ?, winner_points = ?, finish_type_points = ?,"
                " method_points = ?, bonus_points = ?, total_points = ?, is_locked = 1,"
                " updated_at = ? WHERE id = ? AND status = ?",
                (
                    outcome.status.value,
                    breakdown.winner_points,
                    breakdown.finish_type_points,
                    breakdown.method_points,
                    breakdown.bonus_points,
                    breakdown.total_points,
                    now,
                    outcome.prediction_id,
                    PredictionStatus.PENDING.value,
                ),
            )
            if cur.rowcount != 1:
                raise PredictionAlreadyScoredError(
                    f"Prediction {outcome.prediction_id} is not pending"
                )

            conn.execute(
                "INSERT INTO credibility_log (created_at, user_id, fight_id, prediction_id,"
                " winner_points, finish_type_points, method_points, bonus_points, total_points,"
                " breakdown) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    now,
                    outcome.user_id,
                    outcome.fight_id,
                    outcome.prediction_id,
                    breakdown.winner_points,
                    breakdown.finish_type_points,
                    breakdown.method_points,
                    breakdown.bonus_points,
                    breakdown.total_points,
                    json.dumps(breakdown.to_dict()),
                ),
            )

            conn.execute(
                "INSERT OR IGNORE INTO user_profiles (user_id, username, updated_at) VALUES (?, ?, ?)",
                (outcome.user_id, f"user_{outcome.user_id}", now),
            )
            row = conn.execute(
                "SELECT * FROM user_profiles WHERE user_id = ?", (outcome.user_id,)
            ).fetchone()
            profile = fold_profile(_row_to_profile(row), outcome)
            assignments = ", ".join(f"{column} = ?" for column in PROFILE_COUNTERS)
            conn.execute(
                f"UPDATE user_profiles SET {assignments}, tier = ?, updated_at = ? WHERE user_id = ?",
                (
                    *(getattr(profile, column) for column in PROFILE_COUNTERS),
                    profile.tier.value,
                    now,
                    outcome.user_id,
                ),
            )

            conn.execute(
                "INSERT INTO user_fighter_stats (user_id, fighter_name, total_picks, correct_picks)"
                " VALUES (?, ?, 1, ?) ON CONFLICT (user_id, fighter_name) DO UPDATE SET"
                " total_picks = total_picks + 1, correct_picks = correct_picks + excluded.correct_picks",
                (outcome.user_id, outcome.picked_fighter, int(outcome.correct_winner)),
            )
        return profile

    def create_profile(self, user_id: int, username: str) -> UserProfile:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO user_profiles (user_id, username, updated_at) VALUES (?, ?, ?)",
                (user_id, username, _utcnow().isoformat()),
            )
        return UserProfile(user_id=user_id, username=username)

    def get_profile(self, user_id: int) -> Optional[UserProfile]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_profiles WHERE user_id = ?", (user_id,)
            ).fetchone()
        return _row_to_profile(row) if row else None

    def fighter_stats(self, user_id: int) -> List[FighterStat]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM user_fighter_stats WHERE user_id = ?"
                " ORDER BY total_picks DESC, fighter_name",
                (user_id,),
            ).fetchall()
        return [
            FighterStat(
                user_id=row["user_id"],
                fighter_name=row["fighter_name"],
                total_picks=row["total_picks"],
                correct_picks=row["correct_picks"],
            )
            for row in rows
        ]

    def credibility_log(self, user_id: Optional[int] = None, limit: int = 1000) -> List[CredibilityLogRecord]:
        query = "SELECT * FROM credibility_log"
        params: tuple
        if user_id is not None:
            query += " WHERE user_id = ? ORDER BY id DESC LIMIT ?"
            params = (user_id, limit)
        else:
            query += " ORDER BY id DESC LIMIT ?"
            params = (limit,)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            CredibilityLogRecord(
                id=row["id"],
                created_at=datetime.fromisoformat(row["created_at"]),
                user_id=row["user_id"],
                fight_id=row["fight_id"],
                prediction_id=row["prediction_id"],
                winner_points=row["winner_points"],
                finish_type_points=row["finish_type_points"],
                method_points=row["method_points"],
                bonus_points=row["bonus_points"],
                total_points=row["total_points"],
                breakdown=json.loads(row["breakdown"]),
            )
            for row in rows
        ]

    def credibility_total(self, user_id: int) -> int:
        """Score re-derived from the log; always equals the profile score."""

        with self._connect() as conn:
            (total,) = conn.execute(
                "SELECT COALESCE(SUM(total_points), 0) FROM credibility_log WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return int(total)

    def export_credibility_log_csv(self, output_path: str | Path) -> Path:
        output = Path(output_path)
        rows = self.credibility_log()
        with output.open("w", newline="", encoding="utf-8") as csvfile:
            writer = csv.writer(csvfile)
            writer.writerow(
                [
                    "timestamp",
                    "user_id",
                    "fight_id",
                    "prediction_id",
                    "winner_points",
                    "finish_type_points",
                    "method_points",
                    "bonus_points",
                    "total_points",
                ]
            )
            for row in rows:
                writer.writerow(
                    [
                        row.created_at.isoformat(),
                        row.user_id,
                        row.fight_id,
                        row.prediction_id,
                        row.winner_points,
                        row.finish_type_points,
                        row.method_points,
                        row.bonus_points,
                        row.total_points,
                    ]
                )
        return output

    def log(self, level: str, message: str, context: Optional[dict] = None) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO logs (created_at, level, message, context) VALUES (?, ?, ?, ?)",
                (
                    _utcnow().isoformat(),
                    level,
                    message,
                    json.dumps(context, default=_json_default) if context else None,
                ),
            )
            return int(cur.lastrowid)

    def fetch_logs(self, since_id: Optional[int] = None, limit: int = 200) -> List[LogRecord]:
        query = "SELECT id, created_at, level, message, context FROM logs"
        params: tuple
        if since_id is not None:
            query += " WHERE id > ? ORDER BY id ASC LIMIT ?"
            params = (since_id, limit)
        else:
            query += " ORDER BY id ASC LIMIT ?"
            params = (limit,)

        with self._connect() as conn:
            cur = conn.execute(query, params)
            records: List[LogRecord] = []
            for log_id, created_at, level, message, context in cur.fetchall():
                parsed_context = json.loads(context) if context else None
                records.append(
                    LogRecord(
                        id=int(log_id),
                        created_at=datetime.fromisoformat(created_at),
                        level=level,
                        message=message,
                        context=parsed_context,
                    )
                )
            return records


def _row_to_fight(row: sqlite3.Row) -> Fight:
    start = row["scheduled_start_time"]
    return Fight(
        id=row["id"],
        event_id=row["event_id"],
        fighter1_name=row["fighter1_name"],
        fighter2_name=row["fighter2_name"],
        odds1=row["odds1"],
        odds2=row["odds2"],
        status=FightStatus(row["status"]),
        scheduled_start_time=datetime.fromisoformat(start) if start else None,
        winner=row["winner"],
        finish_type=FinishType(row["finish_type"]) if row["finish_type"] else None,
        method=Method(row["method"]) if row["method"] else None,
        round=row["round"],
        fight_time=row["fight_time"],
    )


def _row_to_prediction(row: sqlite3.Row) -> Prediction:
    return Prediction(
        id=row["id"],
        user_id=row["user_id"],
        fight_id=row["fight_id"],
        picked_winner=row["picked_winner"],
        picked_finish_type=FinishType(row["picked_finish_type"]) if row["picked_finish_type"] else None,
        picked_method=Method(row["picked_method"]) if row["picked_method"] else None,
        odds_at_prediction=row["odds_at_prediction"],
        is_locked=bool(row["is_locked"]),
        status=PredictionStatus(row["status"]),
        winner_points=row["winner_points"],
        finish_type_points=row["finish_type_points"],
        method_points=row["method_points"],
        bonus_points=row["bonus_points"],
        total_points=row["total_points"],
    )


def _row_to_profile(row: sqlite3.Row) -> UserProfile:
    return UserProfile(
        user_id=row["user_id"],
        username=row["username"],
        tier=Tier(row["tier"]),
        **{column: row[column] for column in PROFILE_COUNTERS},
    )


def _json_default(value: object) -> object:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
