"""Fight resolution and credibility fan-out.

Both the admin resolve command and the result poller end up here.  The fight
status write is the idempotency gate: only the caller that moves a fight to
completed gets to score its predictions, so each prediction is scored at most
once no matter how many paths try to resolve the fight.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from persistence.database import Database, Fight, Prediction
from resolution.aggregates import PickOutcome
from scoring.credibility import (
    FightResult,
    FightStatus,
    FinishType,
    Method,
    Pick,
    calculate_credibility,
    finish_type_for,
    grade_pick,
)


class ResolutionError(RuntimeError):
    """Base class for rejected resolutions; nothing has been written."""


class FightNotFoundError(ResolutionError):
    pass


class FightAlreadyResolvedError(ResolutionError):
    pass


class InvalidResultError(ResolutionError):
    pass


@dataclass
class ResolutionSummary:
    fight_id: int
    winner: str
    finish_type: FinishType
    method: Method
    predictions_resolved: int
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """False only when predictions existed and none of them could be scored."""

        return not self.errors or self.predictions_resolved > 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "predictionsResolved": self.predictions_resolved,
            "errors": list(self.errors),
        }


class ResolutionEngine:
    def __init__(self, database: Database, max_workers: int = 4) -> None:
        self._db = database
        self._max_workers = max(1, max_workers)
        self._user_locks: Dict[int, threading.Lock] = {}
        self._user_locks_guard = threading.Lock()

    def resolve(
        self,
        fight_id: int,
        winner: str,
        finish_type: FinishType,
        method: Method,
        round: Optional[int] = None,
        fight_time: Optional[str] = None,
    ) -> ResolutionSummary:
        fight = self._db.get_fight(fight_id)
        if fight is None:
            raise FightNotFoundError(f"Fight {fight_id} not found")
        if fight.status in (FightStatus.COMPLETED, FightStatus.CANCELLED):
            raise FightAlreadyResolvedError(f"Fight {fight_id} is already {fight.status.value}")
        result = _validate_result(fight, winner, finish_type, method)

        if not self._db.complete_fight(
            fight_id, result.winner, result.finish_type, result.method, round, fight_time
        ):
            raise FightAlreadyResolvedError(f"Fight {fight_id} was resolved concurrently")

        predictions = self._db.predictions_for_fight(fight_id)
        errors: List[str] = []
        resolved = 0
        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="fightcred-fold"
        ) as pool:
            futures = [
                (prediction, pool.submit(self._score_prediction, fight, prediction, result))
                for prediction in predictions
            ]
            for prediction, future in futures:
                try:
                    future.result()
                except Exception as exc:
                    message = f"Prediction {prediction.id} (user {prediction.user_id}): {exc}"
                    errors.append(message)
                    self._db.log(
                        "error",
                        "Prediction scoring failed",
                        {
                            "fight_id": fight_id,
                            "prediction_id": prediction.id,
                            "user_id": prediction.user_id,
                            "error": str(exc),
                        },
                    )
                else:
                    resolved += 1

        self._db.log(
            "info",
            "Fight resolved",
            {
                "fight_id": fight_id,
                "winner": result.winner,
                "finish_type": result.finish_type,
                "method": result.method,
                "predictions": len(predictions),
                "predictions_resolved": resolved,
                "errors": len(errors),
            },
        )
        return ResolutionSummary(
            fight_id=fight_id,
            winner=result.winner,
            finish_type=result.finish_type,
            method=result.method,
            predictions_resolved=resolved,
            errors=errors,
        )

    def _score_prediction(self, fight: Fight, prediction: Prediction, result: FightResult) -> None:
        picked_odds = prediction.odds_at_prediction
        if picked_odds is None:
            picked_odds = fight.odds_for(prediction.picked_winner)
        if picked_odds == 0:
            # zero is not a moneyline; score as unknown odds
            picked_odds = None

        pick = Pick(
            picked_winner=prediction.picked_winner,
            picked_finish_type=prediction.picked_finish_type,
            picked_method=prediction.picked_method,
        )
        grade = grade_pick(pick, result)
        outcome = PickOutcome(
            prediction_id=prediction.id,
            user_id=prediction.user_id,
            fight_id=fight.id,
            picked_fighter=prediction.picked_winner,
            picked_odds=picked_odds,
            picked_finish_type=prediction.picked_finish_type,
            picked_method=prediction.picked_method,
            correct_winner=grade.correct_winner,
            correct_finish=grade.correct_finish,
            correct_method=grade.correct_method,
            status=grade.status,
            breakdown=calculate_credibility(pick, result, picked_odds),
        )
        with self._lock_for(prediction.user_id):
            self._db.apply_pick_outcome(outcome)

    def _lock_for(self, user_id: int) -> threading.Lock:
        with self._user_locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = self._user_locks[user_id] = threading.Lock()
            return lock


def _validate_result(fight: Fight, winner: str, finish_type: FinishType, method: Method) -> FightResult:
    try:
        finish = FinishType(finish_type)
        normalized_method = Method(method)
    except ValueError as exc:
        raise InvalidResultError(str(exc)) from exc
    if winner not in fight.fighters:
        raise InvalidResultError(f"{winner!r} did not fight in {fight.title}")
    if finish_type_for(normalized_method) != finish:
        raise InvalidResultError(
            f"Finish type {finish.value} is inconsistent with method {normalized_method.value}"
        )
    return FightResult(winner=winner, finish_type=finish, method=normalized_method)
