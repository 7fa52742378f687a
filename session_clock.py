# -*- coding: utf-8 -*-
########################
# session_clock.py
########################
# Purpose:
# - Single source of truth for simulated session time.
# - Accumulates externally supplied frame deltas into MatchState.elapsed_ms.
#
# Design notes:
# - No Qt usage. Keep this module pure and deterministic.
# - A single delta is capped (anti-jump after the host view was suspended).
# - Negative deltas count as zero.
# - While paused, deltas are dropped, not queued.
#
########################
# Interfaces:
# Public dataclasses:
# - ClockSnapshot(elapsed_ms: float, last_delta_ms: float, is_paused: bool)
#
# Public classes:
# - class SessionClock
#   - __init__(*, max_delta_ms: float)
#   - max_delta_ms() -> float
#   - clamp_delta_ms(delta_ms: float) -> float
#   - advance(state: MatchState, delta_ms: float) -> float
#   - last_delta_ms() -> float
#   - snapshot(state: MatchState) -> ClockSnapshot
#
# Inputs:
# - delta_ms from the host loop (QTimer in the harness, fixed step in simulations and tests).
#
# Outputs:
# - The applied delta, consumed by every other component during the same tick.
#
########################

from __future__ import annotations

from dataclasses import dataclass

from gameplay_models import MatchState


@dataclass(frozen=True)
class ClockSnapshot:
    elapsed_ms: float
    last_delta_ms: float
    is_paused: bool


class SessionClock:
    def __init__(self, *, max_delta_ms: float) -> None:
        self._max_delta_ms = float(max_delta_ms)
        self._last_delta_ms = 0.0

    def max_delta_ms(self) -> float:
        return float(self._max_delta_ms)

    def last_delta_ms(self) -> float:
        return float(self._last_delta_ms)

    def clamp_delta_ms(self, delta_ms: float) -> float:
        value = float(delta_ms)
        if value < 0.0:
            value = 0.0
        if value > self._max_delta_ms:
            value = self._max_delta_ms
        return value

    def advance(self, state: MatchState, delta_ms: float) -> float:
        if state.is_paused or not state.is_running:
            self._last_delta_ms = 0.0
            return 0.0
        applied = self.clamp_delta_ms(delta_ms)
        state.elapsed_ms = float(state.elapsed_ms) + applied
        self._last_delta_ms = applied
        return applied

    def snapshot(self, state: MatchState) -> ClockSnapshot:
        return ClockSnapshot(
            elapsed_ms=float(state.elapsed_ms),
            last_delta_ms=self.last_delta_ms(),
            is_paused=bool(state.is_paused),
        )


def _run_unit_tests() -> None:
    clock = SessionClock(max_delta_ms=80.0)
    state = MatchState(is_running=True)

    assert clock.advance(state, 16.0) == 16.0
    assert clock.advance(state, 5000.0) == 80.0
    assert clock.advance(state, -3.0) == 0.0
    assert abs(state.elapsed_ms - 96.0) < 1e-9

    state.is_paused = True
    assert clock.advance(state, 16.0) == 0.0
    assert abs(state.elapsed_ms - 96.0) < 1e-9

    snap = clock.snapshot(state)
    assert snap.is_paused


if __name__ == "__main__":
    _run_unit_tests()
    print("session_clock.py: ok")
