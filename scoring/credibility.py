"""Credibility scoring for resolved fight predictions.

A breakdown is a pure function of the pick, the authoritative result and the
moneyline odds of the picked side at prediction time.  Correct picks earn
odds-weighted points plus finish, method, underdog and perfect-pick bonuses;
wrong picks cost a penalty that grows with how heavy a favourite was picked.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from scoring.odds import implied_probability, multiplier, round_points


class FightStatus(str, Enum):
    UPCOMING = "upcoming"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FinishType(str, Enum):
    FINISH = "finish"
    DECISION = "decision"


class Method(str, Enum):
    TKO_KO = "tko_ko"
    SUBMISSION = "submission"
    DECISION = "decision"
    DRAW = "draw"
    NC = "nc"


# Methods a user may pick; a decision pick is expressed through the finish type.
PICKABLE_METHODS = frozenset({Method.TKO_KO, Method.SUBMISSION})


class PredictionStatus(str, Enum):
    PENDING = "pending"
    CORRECT = "correct"
    WRONG = "wrong"
    PARTIAL = "partial"


class Tier(str, Enum):
    ROOKIE = "rookie"
    CONTENDER = "contender"
    CHAMPION = "champion"
    GOAT = "goat"


TIER_THRESHOLDS: Tuple[Tuple[Tier, int], ...] = (
    (Tier.GOAT, 15000),
    (Tier.CHAMPION, 5000),
    (Tier.CONTENDER, 1000),
)

BASE_WINNER = 100
BASE_FINISH = 50
FINISH_RESULT_FACTOR = Decimal("1.5")
BASE_METHOD = 75
BASE_UNDERDOG = 25
UNDERDOG_MIN_ODDS = 150
PERFECT_PICK_BONUS = 50
UNKNOWN_ODDS_PROBABILITY = Decimal("0.5")
UNKNOWN_ODDS_PENALTY = -50

# (upper bound on picked odds, penalty); the last bracket catches everything above.
PENALTY_BRACKETS: Tuple[Tuple[int, int], ...] = (
    (-300, -100),
    (-150, -75),
    (-110, -50),
    (110, -35),
)
UNDERDOG_LOSS_PENALTY = -20


@dataclass(frozen=True)
class Pick:
    picked_winner: str
    picked_finish_type: Optional[FinishType] = None
    picked_method: Optional[Method] = None


@dataclass(frozen=True)
class FightResult:
    winner: str
    finish_type: FinishType
    method: Method


@dataclass(frozen=True)
class CredibilityBreakdown:
    winner_points: int
    finish_type_points: int
    method_points: int
    underdog_bonus: int
    perfect_pick_bonus: int
    penalty: int
    total_points: int
    multiplier: float
    implied_probability: int

    @property
    def bonus_points(self) -> int:
        return self.underdog_bonus + self.perfect_pick_bonus

    @property
    def is_perfect(self) -> bool:
        return self.perfect_pick_bonus > 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PickGrade:
    correct_winner: bool
    correct_finish: bool
    correct_method: bool
    status: PredictionStatus


def calculate_credibility(
    pick: Pick,
    result: FightResult,
    picked_odds: Optional[int],
) -> CredibilityBreakdown:
    correct_winner = pick.picked_winner == result.winner
    correct_finish = pick.picked_finish_type == result.finish_type

    probability = (
        implied_probability(picked_odds) if picked_odds is not None else UNKNOWN_ODDS_PROBABILITY
    )
    weight = multiplier(probability)

    winner_points = round_points(BASE_WINNER * weight) if correct_winner else 0

    finish_type_points = 0
    if correct_winner and correct_finish:
        if result.finish_type == FinishType.FINISH:
            finish_type_points = round_points(BASE_FINISH * FINISH_RESULT_FACTOR)
        else:
            finish_type_points = BASE_FINISH

    method_points = BASE_METHOD if correct_winner and _method_matches(pick, result) else 0

    underdog_bonus = 0
    if correct_winner and picked_odds is not None and picked_odds >= UNDERDOG_MIN_ODDS:
        underdog_bonus = round_points(BASE_UNDERDOG * Decimal(picked_odds) / Decimal(100))

    is_perfect = (
        correct_winner
        and correct_finish
        and (result.finish_type == FinishType.DECISION or method_points > 0)
    )
    perfect_pick_bonus = PERFECT_PICK_BONUS if is_perfect else 0

    penalty = 0 if correct_winner else wrong_pick_penalty(picked_odds)
    if correct_winner:
        total_points = (
            winner_points + finish_type_points + method_points + underdog_bonus + perfect_pick_bonus
        )
    else:
        total_points = penalty

    return CredibilityBreakdown(
        winner_points=winner_points,
        finish_type_points=finish_type_points,
        method_points=method_points,
        underdog_bonus=underdog_bonus,
        perfect_pick_bonus=perfect_pick_bonus,
        penalty=penalty,
        total_points=total_points,
        multiplier=float(weight.quantize(Decimal("0.01"))),
        implied_probability=round_points(probability * 100),
    )


def wrong_pick_penalty(picked_odds: Optional[int]) -> int:
    """Penalty for a wrong winner pick; heavier favourites cost more."""

    if picked_odds is None:
        return UNKNOWN_ODDS_PENALTY
    for upper_bound, penalty in PENALTY_BRACKETS:
        if picked_odds <= upper_bound:
            return penalty
    return UNDERDOG_LOSS_PENALTY


def grade_pick(pick: Pick, result: FightResult) -> PickGrade:
    correct_winner = pick.picked_winner == result.winner
    correct_finish = pick.picked_finish_type == result.finish_type
    correct_method = _method_matches(pick, result)

    if correct_winner and correct_finish and (
        result.finish_type == FinishType.DECISION or correct_method
    ):
        status = PredictionStatus.CORRECT
    elif correct_winner or correct_finish:
        status = PredictionStatus.PARTIAL
    else:
        status = PredictionStatus.WRONG
    return PickGrade(correct_winner, correct_finish, correct_method, status)


def tier_for_score(score: int) -> Tier:
    for tier, threshold in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return Tier.ROOKIE


def finish_type_for(method: Method) -> FinishType:
    if method in PICKABLE_METHODS:
        return FinishType.FINISH
    return FinishType.DECISION


def _method_matches(pick: Pick, result: FightResult) -> bool:
    # decision, draw and nc results never match a method pick
    return (
        pick.picked_finish_type == FinishType.FINISH
        and result.finish_type == FinishType.FINISH
        and pick.picked_method is not None
        and result.method in PICKABLE_METHODS
        and pick.picked_method == result.method
    )
