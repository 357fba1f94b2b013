import random
from decimal import Decimal

import pytest

from resolution.aggregates import PickOutcome, UserProfile, fold_profile
from scoring.credibility import (
    FightResult,
    FinishType,
    Method,
    Pick,
    PredictionStatus,
    Tier,
    calculate_credibility,
    grade_pick,
    tier_for_score,
    wrong_pick_penalty,
)
from scoring.odds import (
    OddsConversionError,
    format_odds,
    implied_probability,
    multiplier,
    odds_multiplier,
)


def _random_odds(rng):
    value = 0
    while value == 0:
        value = rng.choice([-1, 1]) * rng.randint(100, 5000)
    return value


def _random_pick(rng, fighters):
    finish = rng.choice([None, FinishType.FINISH, FinishType.DECISION])
    method = rng.choice([None, Method.TKO_KO, Method.SUBMISSION]) if finish == FinishType.FINISH else None
    return Pick(rng.choice(fighters), finish, method)


def _random_result(rng, fighters):
    method = rng.choice(list(Method))
    finish = FinishType.FINISH if method in (Method.TKO_KO, Method.SUBMISSION) else FinishType.DECISION
    return FightResult(rng.choice(fighters), finish, method)


def test_implied_probability_positive_and_negative():
    assert implied_probability(200) == Decimal(100) / Decimal(300)
    assert implied_probability(-300) == Decimal("0.75")
    assert implied_probability(100) == Decimal("0.5")


def test_implied_probability_rejects_zero():
    with pytest.raises(OddsConversionError):
        implied_probability(0)


def test_implied_probability_bounds_and_multiplier_identity():
    rng = random.Random(7)
    for _ in range(500):
        odds = _random_odds(rng)
        probability = implied_probability(odds)
        assert 0 < probability < 1
        assert odds_multiplier(odds) == Decimal(1) / probability
        assert multiplier(probability) == Decimal(1) / probability


def test_underdogs_pay_more_than_favourites():
    assert odds_multiplier(300) > odds_multiplier(110) > odds_multiplier(-200)


def test_format_odds():
    assert format_odds(200) == "+200"
    assert format_odds(-150) == "-150"
    assert format_odds(None) == "N/A"


def test_perfect_underdog_submission_pick():
    breakdown = calculate_credibility(
        Pick("Fighter A", FinishType.FINISH, Method.SUBMISSION),
        FightResult("Fighter A", FinishType.FINISH, Method.SUBMISSION),
        200,
    )
    assert breakdown.winner_points == 300
    assert breakdown.finish_type_points == 75
    assert breakdown.method_points == 75
    assert breakdown.underdog_bonus == 50
    assert breakdown.perfect_pick_bonus == 50
    assert breakdown.total_points == 550
    assert breakdown.bonus_points == 100
    assert breakdown.multiplier == 3.0
    assert breakdown.implied_probability == 33


def test_heavy_favourite_wrong_pick_penalty():
    breakdown = calculate_credibility(
        Pick("Fighter B", FinishType.DECISION),
        FightResult("Fighter A", FinishType.FINISH, Method.TKO_KO),
        -300,
    )
    assert breakdown.winner_points == 0
    assert breakdown.penalty == -100
    assert breakdown.total_points == -100


def test_correct_decision_pick_is_perfect_without_method():
    breakdown = calculate_credibility(
        Pick("Fighter A", FinishType.DECISION),
        FightResult("Fighter A", FinishType.DECISION, Method.DECISION),
        -200,
    )
    assert breakdown.winner_points == 150
    assert breakdown.finish_type_points == 50
    assert breakdown.method_points == 0
    assert breakdown.perfect_pick_bonus == 50
    assert breakdown.total_points == 250


def test_winner_only_pick_scores_favourite_weight():
    breakdown = calculate_credibility(
        Pick("Fighter A", FinishType.FINISH, Method.TKO_KO),
        FightResult("Fighter A", FinishType.DECISION, Method.DECISION),
        -150,
    )
    assert breakdown.winner_points == 167
    assert breakdown.finish_type_points == 0
    assert breakdown.total_points == 167


def test_unknown_odds_use_even_money():
    breakdown = calculate_credibility(
        Pick("Fighter A"),
        FightResult("Fighter A", FinishType.DECISION, Method.DECISION),
        None,
    )
    assert breakdown.winner_points == 200
    assert breakdown.implied_probability == 50


def test_underdog_bonus_rounds_half_up():
    breakdown = calculate_credibility(
        Pick("Fighter A"),
        FightResult("Fighter A", FinishType.DECISION, Method.DECISION),
        250,
    )
    assert breakdown.underdog_bonus == 63


def test_draw_result_never_matches_method_pick():
    breakdown = calculate_credibility(
        Pick("Fighter A", FinishType.FINISH, Method.TKO_KO),
        FightResult("Fighter A", FinishType.DECISION, Method.DRAW),
        -120,
    )
    assert breakdown.method_points == 0
    assert breakdown.perfect_pick_bonus == 0


@pytest.mark.parametrize(
    "odds, penalty",
    [
        (None, -50),
        (-1000, -100),
        (-300, -100),
        (-299, -75),
        (-150, -75),
        (-149, -50),
        (-110, -50),
        (-109, -35),
        (110, -35),
        (111, -20),
        (800, -20),
    ],
)
def test_wrong_pick_penalty_brackets(odds, penalty):
    assert wrong_pick_penalty(odds) == penalty


def test_breakdown_properties_hold_for_random_inputs():
    rng = random.Random(1234)
    fighters = ["Fighter A", "Fighter B"]
    for _ in range(2000):
        pick = _random_pick(rng, fighters)
        result = _random_result(rng, fighters)
        odds = rng.choice([None, _random_odds(rng)])

        breakdown = calculate_credibility(pick, result, odds)
        assert breakdown == calculate_credibility(pick, result, odds)

        grade = grade_pick(pick, result)
        if not grade.correct_winner:
            assert breakdown.method_points == 0
            assert breakdown.finish_type_points == 0
            assert breakdown.total_points <= 0
        else:
            assert breakdown.total_points > 0
        if breakdown.is_perfect:
            assert grade.correct_winner and grade.correct_finish
            assert grade.status == PredictionStatus.CORRECT


@pytest.mark.parametrize(
    "pick, result, status",
    [
        (
            Pick("A", FinishType.FINISH, Method.TKO_KO),
            FightResult("A", FinishType.FINISH, Method.TKO_KO),
            PredictionStatus.CORRECT,
        ),
        (
            Pick("A", FinishType.FINISH, Method.SUBMISSION),
            FightResult("A", FinishType.FINISH, Method.TKO_KO),
            PredictionStatus.PARTIAL,
        ),
        (
            Pick("A", FinishType.DECISION),
            FightResult("A", FinishType.DECISION, Method.DECISION),
            PredictionStatus.CORRECT,
        ),
        (
            Pick("B", FinishType.DECISION),
            FightResult("A", FinishType.DECISION, Method.DECISION),
            PredictionStatus.PARTIAL,
        ),
        (
            Pick("B", FinishType.DECISION),
            FightResult("A", FinishType.FINISH, Method.TKO_KO),
            PredictionStatus.WRONG,
        ),
        (
            Pick("A"),
            FightResult("A", FinishType.FINISH, Method.TKO_KO),
            PredictionStatus.PARTIAL,
        ),
    ],
)
def test_grade_pick_status(pick, result, status):
    assert grade_pick(pick, result).status == status


@pytest.mark.parametrize(
    "score, tier",
    [(-100, Tier.ROOKIE), (999, Tier.ROOKIE), (1000, Tier.CONTENDER), (5000, Tier.CHAMPION), (15000, Tier.GOAT)],
)
def test_tier_for_score(score, tier):
    assert tier_for_score(score) == tier


def _outcome(correct_winner, total_points, odds=None, finish=None, method=None, correct_finish=False):
    breakdown = calculate_credibility(
        Pick("A", finish, method),
        FightResult("A" if correct_winner else "B", FinishType.DECISION, Method.DECISION),
        odds,
    )
    assert breakdown.total_points == total_points
    return PickOutcome(
        prediction_id=1,
        user_id=7,
        fight_id=3,
        picked_fighter="A",
        picked_odds=odds,
        picked_finish_type=finish,
        picked_method=method,
        correct_winner=correct_winner,
        correct_finish=correct_finish,
        correct_method=False,
        status=PredictionStatus.CORRECT if correct_winner else PredictionStatus.WRONG,
        breakdown=breakdown,
    )


def test_fold_profile_tracks_streaks_and_underdogs():
    profile = UserProfile(user_id=7, username="picker", credibility_score=900, current_streak=2, best_streak=2)

    profile = fold_profile(profile, _outcome(True, 450, odds=200, finish=FinishType.DECISION, correct_finish=True))
    assert profile.credibility_score == 1350
    assert profile.tier == Tier.CONTENDER
    assert profile.current_streak == 3
    assert profile.best_streak == 3
    assert profile.total_underdog_picks == 1
    assert profile.correct_underdog_picks == 1
    assert profile.total_finish_picks == 1
    assert profile.correct_finish_picks == 1

    profile = fold_profile(profile, _outcome(False, -50))
    assert profile.credibility_score == 1300
    assert profile.current_streak == 0
    assert profile.best_streak == 3
    assert profile.total_picks == 2
    assert profile.correct_picks == 1
