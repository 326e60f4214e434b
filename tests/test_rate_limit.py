"""
tests/test_rate_limit.py — Mutation Rate Limiting Tests
========================================================
Community and admin write endpoints are limited per user (JWT ``sub``),
returning 429 with a consistent error payload and a Retry-After header.
"""

from __future__ import annotations

import pytest
from conftest import auth, make_token
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gamehunt.api.rate_limit import RateLimiter
from gamehunt.database.models import RateLimitEvent


def _recorded(engine, subject: str) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(RateLimitEvent)
            .where(RateLimitEvent.subject == subject)
        )


# ---------------------------------------------------------------------------
# Unit tests for the RateLimiter core (DB-backed)
# ---------------------------------------------------------------------------
class TestRateLimiter:
    @pytest.fixture
    def limiter(self, db_engine):
        return RateLimiter(max_requests=3, window_seconds=60, engine=db_engine)

    def test_hits_within_limit(self, limiter):
        decisions = [limiter.hit("1001") for _ in range(3)]
        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]
        assert {d.limit for d in decisions} == {3}

    def test_hit_over_limit_is_rejected_and_not_recorded(self, limiter, db_engine):
        for _ in range(3):
            limiter.hit("1001")

        decision = limiter.hit("1001")
        assert not decision.allowed
        assert decision.remaining == 0
        assert 1 <= decision.retry_after <= 60
        assert _recorded(db_engine, "1001") == 3

    def test_subjects_are_independent(self, limiter):
        for _ in range(3):
            limiter.hit("1001")
        assert not limiter.hit("1001").allowed
        assert limiter.hit("1002").remaining == 2

    def test_expired_hits_are_pruned(self, db_engine):
        limiter = RateLimiter(max_requests=2, window_seconds=0, engine=db_engine)
        limiter.hit("1001")
        limiter.hit("1001")

        # a zero-second window has already closed on both hits
        decision = limiter.hit("1001")
        assert decision.allowed
        assert decision.remaining == 1
        assert _recorded(db_engine, "1001") == 1


# ---------------------------------------------------------------------------
# Integration tests with FastAPI TestClient
# ---------------------------------------------------------------------------
class TestRateLimitDependency:
    @pytest.fixture
    def limited(self, client, db_engine):
        """The shared client, with a limiter of three mutations per minute."""
        import gamehunt.api.rate_limit as rl_mod

        rl_mod._limiter = RateLimiter(max_requests=3, window_seconds=60, engine=db_engine)
        return client, rl_mod._limiter

    def test_get_requests_not_rate_limited(self, limited, user_token, db_engine):
        test_client, limiter = limited
        for _ in range(3):
            limiter.hit("1001")

        for _ in range(5):
            resp = test_client.get("/api/xp/me", headers=auth(user_token))
            assert resp.status_code == 200
            assert "X-RateLimit-Remaining" not in resp.headers
        assert _recorded(db_engine, "1001") == 3

    def test_mutations_report_remaining_quota(self, limited, user_token):
        test_client, _ = limited

        remaining = []
        for i in range(3):
            resp = test_client.post("/api/posts", headers=auth(user_token), json={"title": f"p{i}"})
            assert resp.status_code == 201
            assert resp.headers["X-RateLimit-Limit"] == "3"
            remaining.append(resp.headers["X-RateLimit-Remaining"])
        assert remaining == ["2", "1", "0"]

    def test_fourth_post_is_rejected(self, limited, user_token):
        test_client, _ = limited

        for i in range(3):
            resp = test_client.post("/api/posts", headers=auth(user_token), json={"title": f"post {i}"})
            assert resp.status_code == 201

        resp = test_client.post("/api/posts", headers=auth(user_token), json={"title": "one too many"})
        assert resp.status_code == 429

        body = resp.json()
        assert body["detail"]["error"] == "rate_limit_exceeded"
        assert body["detail"]["retry_after"] >= 1
        assert resp.headers["Retry-After"] == str(body["detail"]["retry_after"])
        assert resp.headers["X-RateLimit-Remaining"] == "0"

    def test_admin_mutations_limited(self, limited, admin_token):
        test_client, limiter = limited
        for _ in range(3):
            limiter.hit("99999")

        resp = test_client.post("/api/admin/reconcile", headers=auth(admin_token))
        assert resp.status_code == 429

    def test_different_users_have_separate_limits(self, limited, user_token):
        test_client, limiter = limited
        for _ in range(3):
            limiter.hit("1001")

        blocked = test_client.post("/api/posts", headers=auth(user_token), json={"title": "x"})
        assert blocked.status_code == 429

        other = test_client.post(
            "/api/posts", headers=auth(make_token("2002", "Other")), json={"title": "fine"}
        )
        assert other.status_code == 201

    def test_unauthenticated_mutation_gets_401(self, limited, db_engine):
        test_client, _ = limited
        assert test_client.post("/api/posts", json={"title": "anon"}).status_code == 401
        assert _recorded(db_engine, "1001") == 0
