from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..services.server_store import ServerConfig
from .confidence import clamp
from .models import ProfileData

KEYWORD_WEIGHT = 0.5
RATE_WEIGHT = 0.5
NEW_ACCOUNT_WEIGHT = 0.2
NEW_MEMBER_WEIGHT = 0.1
JOIN_NEW_ACCOUNT_WEIGHT = 0.4
HISTORY_WEIGHT = 0.4


@dataclass(frozen=True)
class HeuristicVerdict:
    score: float
    reasons: tuple[str, ...]
    # A keyword or rate hit. Account age alone is never firm.
    firm: bool = False


class MessageRateTracker:
    """Sliding window of message timestamps per (server, user)."""

    def __init__(self, max_keys: int = 10_000) -> None:
        self._windows: dict[tuple[int, int], deque[float]] = {}
        self._max_keys = max(1, max_keys)

    def record(self, server_id: int, user_id: int, window_seconds: int, now: Optional[float] = None) -> int:
        now = time.monotonic() if now is None else now
        key = (server_id, user_id)
        window = self._windows.get(key)
        if window is None:
            if len(self._windows) >= self._max_keys:
                self._prune(now, window_seconds)
            while len(self._windows) >= self._max_keys:
                self._evict_oldest()
            window = self._windows[key] = deque()
        window.append(now)
        while window and (now - window[0]) > window_seconds:
            window.popleft()
        return len(window)

    def _evict_oldest(self) -> None:
        oldest = min(self._windows, key=lambda k: self._windows[k][-1] if self._windows[k] else float("-inf"))
        del self._windows[oldest]

    def __len__(self) -> int:
        return len(self._windows)

    def _prune(self, now: float, window_seconds: int) -> None:
        stale = [k for k, w in self._windows.items() if not w or (now - w[-1]) > window_seconds]
        for k in stale:
            self._windows.pop(k, None)


def _age_days(since: Optional[datetime], now: datetime) -> Optional[float]:
    if since is None:
        return None
    return (now - since) / timedelta(days=1)


def _age_reasons(cfg: ServerConfig, profile: ProfileData, now: datetime) -> tuple[float, list[str]]:
    score = 0.0
    reasons: list[str] = []
    account_age = _age_days(profile.account_created_at, now)
    if account_age is not None and account_age <= cfg.new_account_days:
        score += NEW_ACCOUNT_WEIGHT
        reasons.append(f"Account is {account_age:.1f} days old")
    member_age = _age_days(profile.joined_at, now)
    if member_age is not None and member_age <= cfg.new_member_days:
        score += NEW_MEMBER_WEIGHT
        reasons.append(f"Joined {member_age:.1f} days ago")
    return score, reasons


class HeuristicAnalyzer:
    """Keyword, message-rate and account-age checks driven by per-server config."""

    def __init__(self, rate_tracker: Optional[MessageRateTracker] = None) -> None:
        self.rates = rate_tracker or MessageRateTracker()

    def analyze_message(
        self,
        cfg: ServerConfig,
        profile: ProfileData,
        content: str,
        now: datetime,
        *,
        monotonic_now: Optional[float] = None,
    ) -> HeuristicVerdict:
        score = 0.0
        reasons: list[str] = []
        firm = False

        lowered = (content or "").lower()
        hits = [kw for kw in cfg.suspicious_keywords if kw and kw in lowered]
        if hits:
            score += KEYWORD_WEIGHT
            firm = True
            reasons.append("Suspicious keywords: " + ", ".join(f"'{kw}'" for kw in hits))

        count = self.rates.record(cfg.server_id, profile.user_id, cfg.message_timeframe_seconds, monotonic_now)
        if count > cfg.message_threshold:
            score += RATE_WEIGHT
            firm = True
            reasons.append(f"Sent {count} messages in {cfg.message_timeframe_seconds}s")

        age_score, age_reasons = _age_reasons(cfg, profile, now)
        score += age_score
        reasons.extend(age_reasons)
        return HeuristicVerdict(clamp(score), tuple(reasons), firm)

    def analyze_join(self, cfg: ServerConfig, profile: ProfileData, now: datetime) -> HeuristicVerdict:
        reasons: list[str] = []
        score = 0.0
        account_age = _age_days(profile.account_created_at, now)
        if account_age is not None and account_age <= cfg.new_account_days:
            score += JOIN_NEW_ACCOUNT_WEIGHT
            reasons.append(f"New account joined ({account_age:.1f} days old)")
        return HeuristicVerdict(clamp(score), tuple(reasons), False)
