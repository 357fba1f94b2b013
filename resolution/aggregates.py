"""Per-user aggregate statistics and the fold of one scored pick into them."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from scoring.credibility import (
    UNDERDOG_MIN_ODDS,
    CredibilityBreakdown,
    FinishType,
    Method,
    PredictionStatus,
    Tier,
    tier_for_score,
)


@dataclass(frozen=True)
class UserProfile:
    user_id: int
    username: str
    credibility_score: int = 0
    tier: Tier = Tier.ROOKIE
    total_picks: int = 0
    correct_picks: int = 0
    correct_finish_picks: int = 0
    total_finish_picks: int = 0
    correct_method_picks: int = 0
    total_method_picks: int = 0
    correct_underdog_picks: int = 0
    total_underdog_picks: int = 0
    current_streak: int = 0
    best_streak: int = 0


@dataclass(frozen=True)
class PickOutcome:
    """Everything the store needs to record one scored prediction."""

    prediction_id: int
    user_id: int
    fight_id: int
    picked_fighter: str
    picked_odds: Optional[int]
    picked_finish_type: Optional[FinishType]
    picked_method: Optional[Method]
    correct_winner: bool
    correct_finish: bool
    correct_method: bool
    status: PredictionStatus
    breakdown: CredibilityBreakdown

    @property
    def is_underdog(self) -> bool:
        return self.picked_odds is not None and self.picked_odds >= UNDERDOG_MIN_ODDS


def fold_profile(profile: UserProfile, outcome: PickOutcome) -> UserProfile:
    score = profile.credibility_score + outcome.breakdown.total_points
    streak = profile.current_streak + 1 if outcome.correct_winner else 0
    return replace(
        profile,
        credibility_score=score,
        tier=tier_for_score(score),
        total_picks=profile.total_picks + 1,
        correct_picks=profile.correct_picks + int(outcome.correct_winner),
        correct_finish_picks=profile.correct_finish_picks + int(outcome.correct_finish),
        total_finish_picks=profile.total_finish_picks + int(outcome.picked_finish_type is not None),
        correct_method_picks=profile.correct_method_picks + int(outcome.correct_method),
        total_method_picks=profile.total_method_picks + int(outcome.picked_method is not None),
        correct_underdog_picks=profile.correct_underdog_picks
        + int(outcome.is_underdog and outcome.correct_winner),
        total_underdog_picks=profile.total_underdog_picks + int(outcome.is_underdog),
        current_streak=streak,
        best_streak=max(profile.best_streak, streak),
    )
