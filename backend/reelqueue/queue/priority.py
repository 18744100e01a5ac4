"""
Subscription tier to scheduling priority mapping.

Priority is resolved once, at enqueue time, from the tier the tenant holds
at that moment. Lower values are serviced first.
"""

from typing import Optional

# Unrecognized or missing tiers sort after every known tier
UNKNOWN_TIER_PRIORITY = 5

TIER_PRIORITY: dict[str, int] = {
    "enterprise": 1,
    "pro": 2,
    "basic": 3,
    "free": 4,
}


def resolve_priority(tier: Optional[str]) -> int:
    """
    Map a subscription tier to its integer priority rank.

    Args:
        tier: Subscription tier name (case-insensitive)

    Returns:
        1 (enterprise) through 4 (free), or 5 for anything unrecognized
    """
    if not tier:
        return UNKNOWN_TIER_PRIORITY
    return TIER_PRIORITY.get(tier.strip().lower(), UNKNOWN_TIER_PRIORITY)
