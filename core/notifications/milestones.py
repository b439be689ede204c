"""Streak milestone detection."""

# Exact values only. A bulk update that jumps over a milestone (6 -> 8)
# does not fire it.
MILESTONES = (7, 14, 21, 30, 60, 90, 100)


def crossed_milestone(before: int | None, after: int | None) -> int | None:
    """
    Check whether a streak transition just reached a milestone.

    Args:
        before: Streak value before the update
        after: Streak value after the update

    Returns:
        The milestone reached (equal to `after`), or None
    """
    if after is None or before == after:
        return None
    if after not in MILESTONES:
        return None
    return after


def milestone_emoji(streak: int) -> str:
    """Pick the emoji tier for a streak milestone message."""
    if streak >= 100:
        return "💯"
    if streak >= 30:
        return "🏆"
    if streak >= 7:
        return "⭐"
    return "🔥"
