"""
tests/test_xp_service.py — XP Ledger & Aggregator
==================================================
Integration tests against in-memory SQLite.  Covers idempotent awards,
soft reverts, the zero floor, level-up notifications and the read queries.
"""

from __future__ import annotations

from unittest import mock

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gamehunt.constants import calculate_level
from gamehunt.database.models import Notification, User, XpAction, XpLogEntry
from gamehunt.services import notification_service, xp_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _user(engine, user_id: int = 1, username: str = "hunter") -> int:
    xp_service.ensure_user(engine, user_id, username)
    return user_id


def _state(engine, user_id: int) -> tuple[int, int]:
    with Session(engine) as session:
        user = session.get(User, user_id)
        return user.xp, user.level


def _entries(engine, user_id: int, *, active_only: bool = False) -> list[XpLogEntry]:
    with Session(engine) as session:
        q = select(XpLogEntry).where(XpLogEntry.user_id == user_id)
        if active_only:
            q = q.where(XpLogEntry.reverted.is_(False))
        return list(session.scalars(q.order_by(XpLogEntry.id)).all())


def _ledger_sum(engine, user_id: int) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.coalesce(func.sum(XpLogEntry.delta), 0)).where(
                XpLogEntry.user_id == user_id, XpLogEntry.reverted.is_(False)
            )
        )


def _notifications(engine, user_id: int, type_: str | None = None) -> list[Notification]:
    with Session(engine) as session:
        q = select(Notification).where(Notification.user_id == user_id)
        if type_ is not None:
            q = q.where(Notification.type == type_)
        return list(session.scalars(q.order_by(Notification.id)).all())


def _assert_consistent(engine, user_id: int) -> None:
    xp, level = _state(engine, user_id)
    assert xp == max(0, _ledger_sum(engine, user_id))
    assert level == calculate_level(xp)


# ===========================================================================
# Users
# ===========================================================================
class TestEnsureUser:
    def test_creates_user_at_level_one(self, db_engine):
        assert xp_service.ensure_user(db_engine, 7, "neo") is True
        assert _state(db_engine, 7) == (0, 1)

    def test_second_call_is_noop(self, db_engine):
        xp_service.ensure_user(db_engine, 7, "neo")
        assert xp_service.ensure_user(db_engine, 7, "neo") is False

    def test_welcome_sent_once(self, db_engine):
        xp_service.ensure_user(db_engine, 7, "neo")
        xp_service.ensure_user(db_engine, 7, "neo")
        welcomes = _notifications(db_engine, 7, "welcome")
        assert len(welcomes) == 1
        assert "neo" in welcomes[0].message

    def test_username_refreshed(self, db_engine):
        xp_service.ensure_user(db_engine, 7, "neo")
        xp_service.ensure_user(db_engine, 7, "the-one")
        with Session(db_engine) as session:
            assert session.get(User, 7).username == "the-one"

    def test_concurrent_registration_settled_by_primary_key(self, db_engine):
        # Another request inserts the row after this one looked and found nothing.
        with Session(db_engine) as session:
            session.add(User(id=7, username="neo", xp=0, level=1))
            session.commit()

        misses = {"left": 2}

        class _StaleReadSession(Session):
            def get(self, entity, ident, **kw):
                if entity is User and misses["left"]:
                    misses["left"] -= 1
                    return None
                return super().get(entity, ident, **kw)

        with mock.patch("gamehunt.database.engine.Session", _StaleReadSession):
            assert xp_service.ensure_user(db_engine, 7, "the-one") is False

        assert misses["left"] == 0
        assert _notifications(db_engine, 7, "welcome") == []
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(User)) == 1
            assert session.get(User, 7).username == "the-one"


# ===========================================================================
# add_xp
# ===========================================================================
class TestAddXp:
    def test_post_creation_awards_twenty(self, db_engine):
        uid = _user(db_engine)
        result = xp_service.add_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        assert result.success is True
        assert result.xp_delta == 20
        assert _state(db_engine, uid) == (20, 1)

    def test_duplicate_award_is_soft_failure(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_LIKED, "p1")
        again = xp_service.add_xp(db_engine, uid, XpAction.POST_LIKED, "p1")

        assert again.success is False
        assert again.message == xp_service.MSG_ALREADY_AWARDED
        assert _state(db_engine, uid) == (5, 1)
        assert len(_entries(db_engine, uid)) == 1

    def test_different_reference_is_separate_award(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_LIKED, "p1")
        xp_service.add_xp(db_engine, uid, XpAction.POST_LIKED, "p2")
        assert _state(db_engine, uid) == (10, 1)

    def test_missing_reference_is_its_own_key(self, db_engine):
        uid = _user(db_engine)
        assert xp_service.add_xp(db_engine, uid, XpAction.LOGIN_DAILY).success is True
        assert xp_service.add_xp(db_engine, uid, XpAction.LOGIN_DAILY).success is False

    def test_empty_reference_treated_as_missing(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.LOGIN_DAILY, "")
        again = xp_service.add_xp(db_engine, uid, XpAction.LOGIN_DAILY)
        assert again.success is False
        assert _entries(db_engine, uid)[0].reference_id is None

    def test_action_accepts_plain_string(self, db_engine):
        uid = _user(db_engine)
        assert xp_service.add_xp(db_engine, uid, "POST_SHARED", "p1").xp_delta == 10

    def test_unknown_action_raises(self, db_engine):
        uid = _user(db_engine)
        with pytest.raises(ValueError):
            xp_service.add_xp(db_engine, uid, "POST_TELEPORTED", "p1")

    def test_unknown_user(self, db_engine):
        result = xp_service.add_xp(db_engine, 404, XpAction.POST_CREATED, "p1")
        assert result.success is False
        assert result.message == xp_service.MSG_USER_NOT_FOUND

    def test_zero_value_action_is_noop(self, db_engine):
        uid = _user(db_engine)
        result = xp_service.add_xp(db_engine, uid, XpAction.BADGE_UNLOCKED, "FIRST_POST")
        assert result.success is True
        assert result.xp_delta == 0
        assert _entries(db_engine, uid) == []

    def test_custom_amount_overrides_table(self, db_engine):
        uid = _user(db_engine)
        result = xp_service.add_xp(db_engine, uid, XpAction.MANUAL_AWARD, "gift", custom_amount=500)
        assert result.xp_delta == 500
        assert _state(db_engine, uid) == (500, 3)

    def test_negative_total_floors_at_zero(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.MANUAL_AWARD, "fine", custom_amount=-50)
        assert _state(db_engine, uid) == (0, 1)

        xp_service.add_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        # ledger sum is -30
        assert _state(db_engine, uid) == (0, 1)
        _assert_consistent(db_engine, uid)

    def test_unique_index_settles_race(self, db_engine):
        """With the pre-check blinded, the partial unique index still rejects
        the second active award."""
        uid = _user(db_engine)
        with mock.patch.object(xp_service, "_find_active_entry", return_value=None):
            first = xp_service.add_xp(db_engine, uid, XpAction.POST_SHARED, "p1")
            second = xp_service.add_xp(db_engine, uid, XpAction.POST_SHARED, "p1")

        assert first.success is True
        assert second.success is False
        assert second.message == xp_service.MSG_ALREADY_AWARDED
        assert len(_entries(db_engine, uid)) == 1
        assert _state(db_engine, uid) == (10, 1)


# ===========================================================================
# remove_xp
# ===========================================================================
class TestRemoveXp:
    def test_remove_without_award(self, db_engine):
        uid = _user(db_engine)
        result = xp_service.remove_xp(db_engine, uid, XpAction.POST_LIKED, "p1")
        assert result.success is False
        assert result.message == xp_service.MSG_NOTHING_TO_REMOVE
        assert _state(db_engine, uid) == (0, 1)

    def test_remove_returns_negated_delta(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        result = xp_service.remove_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        assert result.success is True
        assert result.xp_delta == -20
        assert _state(db_engine, uid) == (0, 1)

    def test_revert_is_soft(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        xp_service.remove_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        entries = _entries(db_engine, uid)
        assert len(entries) == 1
        assert entries[0].reverted is True

    def test_add_remove_add_leaves_one_active_entry(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_LIKED, "p1")
        xp_service.remove_xp(db_engine, uid, XpAction.POST_LIKED, "p1")
        assert xp_service.add_xp(db_engine, uid, XpAction.POST_LIKED, "p1").success is True

        assert len(_entries(db_engine, uid)) == 2
        assert len(_entries(db_engine, uid, active_only=True)) == 1
        assert _state(db_engine, uid) == (5, 1)

    def test_second_remove_fails(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_LIKED, "p1")
        xp_service.remove_xp(db_engine, uid, XpAction.POST_LIKED, "p1")
        assert xp_service.remove_xp(db_engine, uid, XpAction.POST_LIKED, "p1").success is False

    def test_aggregate_tracks_ledger_through_mixed_sequence(self, db_engine):
        uid = _user(db_engine)
        steps = [
            ("add", XpAction.POST_CREATED, "p1"),
            ("add", XpAction.POST_LIKED, "p9"),
            ("add", XpAction.COMMENT_CREATED, "c1"),
            ("remove", XpAction.POST_CREATED, "p1"),
            ("add", XpAction.POST_CREATED, "p2"),
            ("remove", XpAction.COMMENT_CREATED, "c1"),
            ("add", XpAction.POST_SHARED, "p2"),
        ]
        for op, action, ref in steps:
            if op == "add":
                xp_service.add_xp(db_engine, uid, action, ref)
            else:
                xp_service.remove_xp(db_engine, uid, action, ref)
            _assert_consistent(db_engine, uid)

        assert _state(db_engine, uid) == (35, 1)


# ===========================================================================
# Community helpers
# ===========================================================================
class TestActionHelpers:
    def test_like_then_unlike(self, db_engine):
        uid = _user(db_engine)
        assert xp_service.handle_like_action(db_engine, uid, 3, True).xp_delta == 5
        assert xp_service.handle_like_action(db_engine, uid, 3, False).xp_delta == -5
        assert _state(db_engine, uid) == (0, 1)

    def test_reply_uses_reply_action(self, db_engine):
        uid = _user(db_engine)
        result = xp_service.handle_comment_creation(db_engine, uid, 11, is_reply=True)
        assert result.xp_delta == 5
        assert _entries(db_engine, uid)[0].action == XpAction.REPLY_CREATED

    def test_comment_deletion_reverts_comment(self, db_engine):
        uid = _user(db_engine)
        xp_service.handle_comment_creation(db_engine, uid, 11)
        result = xp_service.handle_comment_deletion(db_engine, uid, 11)
        assert result.xp_delta == -10

    def test_post_deletion_reverts_post(self, db_engine):
        uid = _user(db_engine)
        xp_service.handle_post_creation(db_engine, uid, 5)
        assert xp_service.handle_post_deletion(db_engine, uid, 5).xp_delta == -20

    def test_share_once_per_post(self, db_engine):
        uid = _user(db_engine)
        assert xp_service.handle_share_action(db_engine, uid, 5).success is True
        assert xp_service.handle_share_action(db_engine, uid, 5).success is False


# ===========================================================================
# Notifications
# ===========================================================================
class TestXpNotifications:
    def test_positive_award_notifies(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        xp_rows = _notifications(db_engine, uid, "xp")
        assert len(xp_rows) == 1
        assert "+20 XP" in xp_rows[0].message

    def test_reverts_do_not_notify_xp(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        xp_service.remove_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        assert len(_notifications(db_engine, uid, "xp")) == 1

    def test_level_up_per_level_crossed(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.MANUAL_AWARD, "bulk", custom_amount=1000)

        level_ups = _notifications(db_engine, uid, "level_up")
        assert [n.message for n in level_ups] == [
            notification_service.level_reached(2),
            notification_service.level_reached(3),
            notification_service.level_reached(4),
        ]
        assert level_ups[0].message.startswith("\U0001f3c6 Level 2 reached")
        assert all(n.title == "Level Up!" for n in level_ups)

    def test_level_up_not_repeated_after_dropping_back(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.MANUAL_AWARD, "a", custom_amount=150)
        xp_service.remove_xp(db_engine, uid, XpAction.MANUAL_AWARD, "a")
        xp_service.add_xp(db_engine, uid, XpAction.MANUAL_AWARD, "a", custom_amount=150)
        assert len(_notifications(db_engine, uid, "level_up")) == 1

    def test_notification_failure_does_not_undo_xp(self, db_engine):
        uid = _user(db_engine)
        with mock.patch(
            "gamehunt.services.notification_service.notify",
            side_effect=RuntimeError("inbox down"),
        ):
            result = xp_service.add_xp(db_engine, uid, XpAction.POST_CREATED, "p1")

        assert result.success is True
        assert _state(db_engine, uid) == (20, 1)

    def test_badge_failure_does_not_undo_xp(self, db_engine):
        uid = _user(db_engine)
        with mock.patch(
            "gamehunt.services.badge_service.award_eligible_badges",
            side_effect=RuntimeError("rules exploded"),
        ):
            result = xp_service.add_xp(db_engine, uid, XpAction.MANUAL_AWARD, "x", custom_amount=1000)

        assert result.success is True
        assert _state(db_engine, uid) == (1000, 4)


# ===========================================================================
# Recalculation
# ===========================================================================
class TestRecalculate:
    def test_repairs_drifted_aggregate(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        with Session(db_engine) as session:
            session.get(User, uid).xp = 9999
            session.commit()

        recalc = xp_service.recalculate_user_xp(db_engine, uid)
        assert recalc.old_xp == 9999
        assert recalc.xp == 20
        assert _state(db_engine, uid) == (20, 1)

    def test_unknown_user(self, db_engine):
        assert xp_service.recalculate_user_xp(db_engine, 404) is None

    def test_levels_gained(self):
        recalc = xp_service.Recalculation(user_id=1, old_xp=0, xp=500, old_level=1, level=3)
        assert recalc.levels_gained == [2, 3]
        assert xp_service.Recalculation(1, 500, 0, 3, 1).levels_gained == []


# ===========================================================================
# Queries
# ===========================================================================
class TestQueries:
    def test_xp_info(self, db_engine):
        uid = _user(db_engine, username="trinity")
        xp_service.add_xp(db_engine, uid, XpAction.MANUAL_AWARD, "x", custom_amount=150)

        info = xp_service.get_user_xp_info(db_engine, uid)
        assert info["username"] == "trinity"
        assert info["xp"] == 150
        assert info["level"] == 2
        assert info["current_level_xp"] == 100
        assert info["next_level_xp"] == 400
        assert info["progress"] == pytest.approx(50 / 300 * 100)
        assert info["xp_needed"] == 250

    def test_xp_info_unknown_user(self, db_engine):
        assert xp_service.get_user_xp_info(db_engine, 404) is None

    def test_history_newest_first(self, db_engine):
        uid = _user(db_engine)
        xp_service.add_xp(db_engine, uid, XpAction.POST_CREATED, "p1")
        xp_service.add_xp(db_engine, uid, XpAction.POST_LIKED, "p2")
        xp_service.remove_xp(db_engine, uid, XpAction.POST_LIKED, "p2")

        history = xp_service.get_user_xp_history(db_engine, uid)
        assert [h["action"] for h in history] == ["POST_LIKED", "POST_CREATED"]
        assert history[0]["reverted"] is True
        assert history[1]["description"]

    def test_history_paging(self, db_engine):
        uid = _user(db_engine)
        for i in range(5):
            xp_service.add_xp(db_engine, uid, XpAction.POST_LIKED, f"p{i}")

        page = xp_service.get_user_xp_history(db_engine, uid, limit=2, offset=1)
        assert [h["reference_id"] for h in page] == ["p3", "p2"]

    def test_leaderboard_order_and_ties(self, db_engine):
        for uid in (1, 2, 3):
            _user(db_engine, uid, f"u{uid}")
        xp_service.add_xp(db_engine, 2, XpAction.POST_CREATED, "p1")
        xp_service.add_xp(db_engine, 3, XpAction.POST_CREATED, "p2")
        xp_service.add_xp(db_engine, 1, XpAction.POST_LIKED, "p1")

        board = xp_service.get_xp_leaderboard(db_engine, limit=10)
        assert [row["user_id"] for row in board] == [2, 3, 1]
        assert [row["rank"] for row in board] == [1, 2, 3]

    def test_leaderboard_limit(self, db_engine):
        for uid in range(1, 6):
            _user(db_engine, uid)
        assert len(xp_service.get_xp_leaderboard(db_engine, limit=3)) == 3
