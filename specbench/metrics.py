"""Running counters and rolling-window KPIs for a decoding run."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class RoundStats:
    drafted: int
    accepted: int  # verified prefix only; a fallback token is not counted here
    fell_back: bool
    draft_latency_ms: float
    verify_latency_ms: float
    round_time_ms: float


class StatsAccumulator:
    def __init__(self, window_size: int = 50):
        self._window: deque[RoundStats] = deque(maxlen=window_size)
        self.model_calls: int = 0
        self.drafted: int = 0
        self.accepted: int = 0
        self.rejected: int = 0
        self.model_calls_saved: int = 0
        self.fallbacks: int = 0
        self.rounds: int = 0

    # --- Recording ---

    def record_draft(self, drafted: int) -> None:
        self.model_calls += 1
        self.drafted += drafted

    def record_verify(self) -> None:
        self.model_calls += 1

    def record_acceptance(self, accepted: int, drafted: int, rejected: int) -> None:
        """One verify call stood in for ``drafted`` sequential target calls."""
        self.accepted += accepted
        self.rejected += rejected
        self.model_calls_saved += max(0, drafted - 1)

    def record_fallback(self, rejected: int) -> None:
        self.model_calls += 1
        self.fallbacks += 1
        self.accepted += 1
        self.rejected += rejected

    def record_sequential_token(self) -> None:
        self.model_calls += 1
        self.accepted += 1

    def record_round(self, stats: RoundStats) -> None:
        self._window.append(stats)
        self.rounds += 1

    # --- Derived metrics ---

    def efficiency_percent(self) -> int:
        if self.drafted == 0:
            return 0
        return round_half_up(self.accepted / self.drafted * 100)

    def tokens_per_second(self, elapsed_seconds: float) -> int:
        if elapsed_seconds <= 0:
            return 0
        return round_half_up(self.accepted / elapsed_seconds)

    def acceptance_rate(self) -> float:
        """Windowed share of drafted tokens that passed verification."""
        drafted = sum(r.drafted for r in self._window)
        accepted = sum(r.accepted for r in self._window)
        return accepted / drafted if drafted > 0 else 0.0

    def avg_draft_latency(self) -> float:
        if not self._window:
            return 0.0
        return sum(r.draft_latency_ms for r in self._window) / len(self._window)

    def avg_verify_latency(self) -> float:
        if not self._window:
            return 0.0
        return sum(r.verify_latency_ms for r in self._window) / len(self._window)
