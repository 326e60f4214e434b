"""
gamehunt.engine.badges — Badge Catalog & Eligibility Rules
===========================================================

Static badge catalog plus a registry mapping each badge key to a pure
predicate over a :class:`BadgeStats` snapshot.  Adding a badge means adding
a catalog entry and (optionally) a rule; the evaluation loop never changes.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BadgeSpec:
    """One entry of the static badge catalog."""

    key: str
    name: str
    description: str
    icon: str
    category: str


BADGE_CATALOG: dict[str, BadgeSpec] = {
    badge.key: badge
    for badge in (
        BadgeSpec("FIRST_POST", "First Post", "Created your first post", "\U0001f4dd", "milestone"),
        BadgeSpec("POST_MASTER", "Post Master", "Created 10 posts", "\U0001f4da", "milestone"),
        BadgeSpec(
            "COMMUNITY_CONTRIBUTOR", "Community Contributor",
            "Reached 1000 total XP", "\U0001f31f", "milestone",
        ),
        BadgeSpec("SOCIAL_BUTTERFLY", "Social Butterfly", "Given 100 likes", "\U0001f496", "social"),
        BadgeSpec("SHARING_IS_CARING", "Sharing is Caring", "Shared 10 posts", "\U0001f4e4", "social"),
        BadgeSpec("COMMENTATOR", "Commentator", "Created 50 comments", "\U0001f4ac", "social"),
        BadgeSpec("LEVEL_5_LEGEND", "Level 5 Legend", "Reached level 5", "\U0001f3c6", "milestone"),
        BadgeSpec("LEVEL_10_CHAMPION", "Level 10 Champion", "Reached level 10", "\U0001f451", "milestone"),
        BadgeSpec(
            "DAILY_LOGIN", "Daily Dedication",
            "Logged in for 7 consecutive days", "\U0001f4c5", "dedication",
        ),
    )
}


# ---------------------------------------------------------------------------
# Stats snapshot — passed to every rule
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BadgeStats:
    """Aggregated user state the rules are evaluated against.

    Parameters
    ----------
    total_xp : Current derived XP.
    level : Current derived level.
    post_count : Posts authored.
    likes_given : Likes the user has given.
    comment_count : Comments and replies authored.
    owned : Badge keys the user already holds.
    """

    total_xp: int = 0
    level: int = 1
    post_count: int = 0
    likes_given: int = 0
    comment_count: int = 0
    owned: frozenset[str] = field(default_factory=frozenset)


# ---------------------------------------------------------------------------
# Rules — pure functions stats → bool
# ---------------------------------------------------------------------------
def _at_least(attr: str, threshold: int) -> Callable[[BadgeStats], bool]:
    def rule(stats: BadgeStats) -> bool:
        return getattr(stats, attr) >= threshold

    rule.__name__ = f"{attr}_at_least_{threshold}"
    return rule


def _check_shares(stats: BadgeStats) -> bool:
    """Shared 10 posts.

    NOTE: Not yet wired — shares are not counted anywhere, so this badge
    is unreachable until share tracking exists.
    """
    return False


def _check_login_streak(stats: BadgeStats) -> bool:
    """Seven consecutive daily logins.

    NOTE: Not yet wired — requires login streak tracking.  Returns False
    until the infrastructure exists.
    """
    return False


BADGE_RULES: dict[str, Callable[[BadgeStats], bool]] = {
    "FIRST_POST": _at_least("post_count", 1),
    "POST_MASTER": _at_least("post_count", 10),
    "COMMUNITY_CONTRIBUTOR": _at_least("total_xp", 1000),
    "SOCIAL_BUTTERFLY": _at_least("likes_given", 100),
    "SHARING_IS_CARING": _check_shares,
    "COMMENTATOR": _at_least("comment_count", 50),
    "LEVEL_5_LEGEND": _at_least("level", 5),
    "LEVEL_10_CHAMPION": _at_least("level", 10),
    "DAILY_LOGIN": _check_login_streak,
}


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
def eligible_badges(stats: BadgeStats) -> list[str]:
    """Return catalog keys the user qualifies for but does not yet own.

    Keys come back in catalog order.  Catalog entries without a rule are
    skipped.
    """
    newly_earned: list[str] = []

    for key in BADGE_CATALOG:
        if key in stats.owned:
            continue

        rule = BADGE_RULES.get(key)
        if rule is None:
            continue

        if rule(stats):
            newly_earned.append(key)
            logger.debug("Badge rule matched: %s", key)

    return newly_earned
