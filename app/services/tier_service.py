# app/services/tier_service.py
"""
Loyalty tiers.

Pure functions, no I/O:

    cumulative spend    tier     earn rate
    >= 15000            Gold     6%
    >= 5000             Silver   4%
    <  5000             Bronze   2%

Earning is "spend-then-tier": the order being rewarded is added to the
lifetime spend first, and the resulting tier's rate applies to it.
"""
import math
from typing import NamedTuple


class TierInfo(NamedTuple):
    tier: str
    earn_rate_percent: int


# Highest threshold first
TIER_THRESHOLDS: list[tuple[float, TierInfo]] = [
    (15000, TierInfo("Gold", 6)),
    (5000, TierInfo("Silver", 4)),
    (0, TierInfo("Bronze", 2)),
]


def compute_tier(cumulative_spend: float) -> TierInfo:
    for threshold, info in TIER_THRESHOLDS:
        if cumulative_spend >= threshold:
            return info
    return TIER_THRESHOLDS[-1][1]


def compute_earn(final_total: float, prior_spend: float) -> tuple[int, TierInfo]:
    """
    Coins earned for an order and the tier the account lands in.

    >>> compute_earn(999, 4600)
    (39, TierInfo(tier='Silver', earn_rate_percent=4))
    """
    info = compute_tier(prior_spend + final_total)
    coins = math.floor(final_total * info.earn_rate_percent / 100)
    return max(coins, 0), info


def next_tier(cumulative_spend: float) -> tuple[str | None, float]:
    """
    Next tier above the current one and the spend still needed to reach it.

    Returns (None, 0.0) for the top tier.
    """
    upcoming: tuple[str | None, float] = (None, 0.0)
    for threshold, info in TIER_THRESHOLDS:
        if cumulative_spend < threshold:
            upcoming = (info.tier, round(threshold - cumulative_spend, 2))
    return upcoming
