# tests/test_rewards.py

from __future__ import annotations

import pytest

from kidscalendar.errors import InsufficientStarsError
from kidscalendar.family.rewards import credit_completion, redeem

from .fakes import make_child, make_reward, make_task


def test_redeem_spends_stars_and_prepends_one_record() -> None:
    child = make_child(stars=50)
    first = redeem(child, make_reward("rw_1_a", cost=20), at_ms=1_000, note="weekend")
    second = redeem(child, make_reward("rw_1_b", title="Movie", cost=30), at_ms=2_000)

    assert child.star_balance == 0
    assert child.redemption_history == [second, first]
    assert first.note == "weekend"
    assert first.cost == 20 and first.timestamp_ms == 1_000
    assert first.id != second.id


def test_redeem_with_too_few_stars_changes_nothing() -> None:
    child = make_child(stars=10)
    with pytest.raises(InsufficientStarsError):
        redeem(child, make_reward(cost=30))
    assert child.star_balance == 10
    assert child.redemption_history == []


def test_redeem_rejects_non_positive_cost() -> None:
    child = make_child(stars=10)
    with pytest.raises(ValueError):
        redeem(child, make_reward(cost=0))
    assert child.star_balance == 10


def test_exact_balance_can_be_spent() -> None:
    child = make_child(stars=30)
    redeem(child, make_reward(cost=30))
    assert child.star_balance == 0


def test_credit_completion_adds_points() -> None:
    child = make_child(stars=3)
    assert credit_completion(child, make_task(reward=7)) == 10
    assert credit_completion(child, make_task(reward=-4)) == 10
