"""
gamehunt.constants — Shared Constants & Leveling Formula
=========================================================

Single source of truth for the XP value table, the leveling curve and
notification presentation.  Import from here instead of duplicating in
services and routes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from gamehunt.database.models import NotificationType, XpAction

# ---------------------------------------------------------------------------
# XP value table — default delta per ledger action
# ---------------------------------------------------------------------------
XP_VALUES: dict[XpAction, int] = {
    XpAction.POST_CREATED: 20,
    XpAction.POST_LIKED: 5,
    XpAction.POST_UNLIKED: -5,
    XpAction.POST_SHARED: 10,
    XpAction.COMMENT_CREATED: 10,
    XpAction.COMMENT_DELETED: -10,
    XpAction.REPLY_CREATED: 5,
    XpAction.REPLY_DELETED: -5,
    XpAction.LOGIN_DAILY: 2,
    XpAction.BADGE_UNLOCKED: 0,  # badges carry no direct XP
    XpAction.MANUAL_AWARD: 0,  # varies, always passed as a custom amount
}

XP_DESCRIPTIONS: dict[XpAction, str] = {
    XpAction.POST_CREATED: "Created a post",
    XpAction.POST_LIKED: "Liked a post",
    XpAction.POST_UNLIKED: "Unliked a post",
    XpAction.POST_SHARED: "Shared a post",
    XpAction.COMMENT_CREATED: "Commented on a post",
    XpAction.COMMENT_DELETED: "Deleted a comment",
    XpAction.REPLY_CREATED: "Replied to a comment",
    XpAction.REPLY_DELETED: "Deleted a reply",
    XpAction.LOGIN_DAILY: "Daily login",
    XpAction.BADGE_UNLOCKED: "Unlocked a badge",
    XpAction.MANUAL_AWARD: "Awarded by a moderator",
}

# ---------------------------------------------------------------------------
# Notification presentation
# ---------------------------------------------------------------------------
NOTIFICATION_ICONS: dict[str, str] = {
    NotificationType.WELCOME: "\U0001f389",         # 🎉
    NotificationType.MILESTONE: "\U0001f579\ufe0f",  # 🕹️
    NotificationType.PROGRESS: "\u26a1\ufe0f",       # ⚡️
    NotificationType.ACHIEVEMENT: "\U0001f3c6",     # 🏆
    NotificationType.REMINDER: "\U0001f44b",        # 👋
    NotificationType.XP: "\u26a1\ufe0f",             # ⚡️
    NotificationType.LEVEL_UP: "\U0001f3c6",        # 🏆
    NotificationType.BADGE_UNLOCKED: "\U0001f396\ufe0f",  # 🎖️
    NotificationType.BADGE_CLAIMED: "\U0001f389",   # 🎉
}
DEFAULT_NOTIFICATION_ICON = "\U0001f514"  # 🔔


def notification_icon(notification_type: str) -> str:
    """Icon for *notification_type*, falling back to a bell."""
    return NOTIFICATION_ICONS.get(notification_type, DEFAULT_NOTIFICATION_ICON)


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
# Level L starts at 100 * (L - 1) ** 2 total XP.
LEVEL_XP_UNIT = 100


def calculate_level(xp: int) -> int:
    """Level for a total of *xp*: ``floor(sqrt(xp / 100)) + 1``.

    Negative input is treated as level 1.
    """
    if xp < 0:
        return 1
    return math.isqrt(xp // LEVEL_XP_UNIT) + 1


def level_threshold(level: int) -> int:
    """Total XP at which *level* begins."""
    return LEVEL_XP_UNIT * (level - 1) ** 2


def get_xp_for_next_level(level: int) -> int:
    """Width in XP of *level*, i.e. XP needed to go from *level* to the next."""
    return level_threshold(level + 1) - level_threshold(level)


@dataclass(frozen=True, slots=True)
class XpProgress:
    """Progress of a user through their current level."""

    current_level_xp: int
    next_level_xp: int
    progress: float
    xp_needed: int

    def to_dict(self) -> dict:
        return {
            "current_level_xp": self.current_level_xp,
            "next_level_xp": self.next_level_xp,
            "progress": self.progress,
            "xp_needed": self.xp_needed,
        }


def get_xp_progress(xp: int, level: int) -> XpProgress:
    """Progress-bar data for *xp* inside *level*.

    ``progress`` is a percentage clamped to [0, 100] and ``xp_needed`` is
    never negative, whatever combination of *xp* and *level* is passed.
    """
    current_level_xp = level_threshold(level)
    next_level_xp = level_threshold(level + 1)
    span = next_level_xp - current_level_xp
    progress = (xp - current_level_xp) / span * 100
    return XpProgress(
        current_level_xp=current_level_xp,
        next_level_xp=next_level_xp,
        progress=max(0.0, min(100.0, progress)),
        xp_needed=max(0, next_level_xp - xp),
    )
