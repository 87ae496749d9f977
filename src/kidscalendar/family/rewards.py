# src/kidscalendar/family/rewards.py

from __future__ import annotations

import logging

from ..errors import InsufficientStarsError
from ..tasks.task_models import Task, new_id, now_ms
from .models import Child, RedemptionRecord, Reward

logger = logging.getLogger(__name__)


def redeem(child: Child, reward: Reward, *, at_ms: int | None = None, note: str | None = None) -> RedemptionRecord:
    """
    Spend stars on a reward.

    Either nothing changes (InsufficientStarsError / ValueError) or the balance drops
    by the cost and exactly one record is prepended to the history.
    """
    if reward.cost <= 0:
        raise ValueError(f"reward {reward.id} has a non-positive cost ({reward.cost})")
    if child.star_balance < reward.cost:
        raise InsufficientStarsError(
            f"{child.name} has {child.star_balance} stars, {reward.title} costs {reward.cost}"
        )

    ts = now_ms() if at_ms is None else int(at_ms)
    record = RedemptionRecord(
        id=new_id("redemption", at_ms=ts),
        reward_id=reward.id,
        reward_title=reward.title,
        cost=reward.cost,
        timestamp_ms=ts,
        note=note or None,
    )
    child.star_balance -= reward.cost
    child.redemption_history.insert(0, record)
    logger.info("Redeemed %s for %s (-%d, balance=%d)", reward.title, child.name, reward.cost, child.star_balance)
    return record


def credit_completion(child: Child, task: Task) -> int:
    """Add a completed task's points to the balance. Returns the new balance."""
    points = max(0, int(task.reward_points or 0))
    child.star_balance += points
    return child.star_balance
