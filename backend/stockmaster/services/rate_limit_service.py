# Overview: Sliding-window rate limiting with process-local or database-backed storage.

"""
Rate limiting

WHY: Login is the brute-force surface. Attempts are counted per client key
(normally the remote IP) inside a sliding window; once the limit is reached
further attempts are refused until the oldest one ages out.

STORAGE:
- MemoryRateLimitStore: per-process dict, swept probabilistically so it does
  not grow without bound. Resets on restart and is not shared between workers.
- DatabaseRateLimitStore: rows in rate_limit_hits; shared by every worker and
  survives restarts.
Selected by RATE_LIMIT_STORAGE (memory | database).
"""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import RateLimitHit
from ..time_utils import utcnow


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: int | None = None


class MemoryRateLimitStore:
    SWEEP_PROBABILITY = 0.01

    def __init__(self):
        self._hits: dict[str, list[datetime]] = {}
        self._lock = threading.Lock()

    def _sweep(self, cutoff: datetime) -> None:
        for key in list(self._hits):
            live = [ts for ts in self._hits[key] if ts > cutoff]
            if live:
                self._hits[key] = live
            else:
                del self._hits[key]

    def hits_since(self, key: str, cutoff: datetime) -> list[datetime]:
        with self._lock:
            if random.random() < self.SWEEP_PROBABILITY:
                self._sweep(cutoff)
            live = [ts for ts in self._hits.get(key, []) if ts > cutoff]
            if live:
                self._hits[key] = live
            else:
                self._hits.pop(key, None)
            return list(live)

    def add_hit(self, key: str, at: datetime) -> None:
        with self._lock:
            self._hits.setdefault(key, []).append(at)

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._hits.clear()


class DatabaseRateLimitStore:
    def hits_since(self, key: str, cutoff: datetime) -> list[datetime]:
        db.session.query(RateLimitHit).filter(
            RateLimitHit.key == key,
            RateLimitHit.occurred_at <= cutoff,
        ).delete(synchronize_session=False)
        rows = (
            db.session.query(RateLimitHit.occurred_at)
            .filter(RateLimitHit.key == key, RateLimitHit.occurred_at > cutoff)
            .order_by(RateLimitHit.occurred_at.asc())
            .all()
        )
        db.session.commit()
        return [row[0] for row in rows]

    def add_hit(self, key: str, at: datetime) -> None:
        db.session.add(RateLimitHit(key=key, occurred_at=at))
        db.session.commit()

    def reset(self, key: str) -> None:
        db.session.query(RateLimitHit).filter(RateLimitHit.key == key).delete(synchronize_session=False)
        db.session.commit()

    def clear(self) -> None:
        db.session.query(RateLimitHit).delete(synchronize_session=False)
        db.session.commit()


class RateLimiter:
    """
    Sliding-window limiter: at most ``limit`` hits per ``window_seconds`` per key.

    hit() records the attempt when it is allowed; refused attempts are not
    recorded so a client hammering the endpoint is not locked out forever.
    """

    def __init__(self, store, *, limit: int, window_seconds: int):
        self.store = store
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)

    def check(self, key: str, now: datetime | None = None) -> RateLimitDecision:
        now = now or utcnow()
        hits = self.store.hits_since(key, now - self.window)
        if len(hits) >= self.limit:
            oldest = min(hits)
            retry_after = max(1, int((oldest + self.window - now).total_seconds()) + 1)
            return RateLimitDecision(allowed=False, remaining=0, retry_after_seconds=retry_after)
        return RateLimitDecision(allowed=True, remaining=self.limit - len(hits))

    def hit(self, key: str, now: datetime | None = None) -> RateLimitDecision:
        now = now or utcnow()
        decision = self.check(key, now)
        if not decision.allowed:
            return decision
        self.store.add_hit(key, now)
        return RateLimitDecision(allowed=True, remaining=decision.remaining - 1)

    def reset(self, key: str) -> None:
        self.store.reset(key)


def build_store(kind: str):
    if kind == "database":
        return DatabaseRateLimitStore()
    if kind != "memory":
        raise ValueError(f"Unknown RATE_LIMIT_STORAGE: {kind}")
    return MemoryRateLimitStore()


def get_login_limiter() -> RateLimiter:
    """One limiter per app, built lazily from config."""
    app = current_app._get_current_object()
    limiter = app.extensions.get("stockmaster_login_limiter")
    if limiter is None:
        limiter = RateLimiter(
            build_store(app.config.get("RATE_LIMIT_STORAGE", "memory")),
            limit=app.config.get("LOGIN_RATE_LIMIT", 5),
            window_seconds=app.config.get("LOGIN_RATE_WINDOW_SECONDS", 900),
        )
        app.extensions["stockmaster_login_limiter"] = limiter
    return limiter
