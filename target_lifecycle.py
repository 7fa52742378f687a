# -*- coding: utf-8 -*-
########################
# target_lifecycle.py
########################
# Purpose:
# - Advance every active target through entering -> exposed -> (struck | exiting) -> removed.
# - Report exposed targets that time out unstruck, so the judge can count them as misses.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - The target list lives in MatchState.targets; this module is the only writer of phases,
#   except a successful strike, which goes through strike().
# - At most one phase change per target per tick. Leftover time in a finished phase is dropped.
# - A strike is accepted only while entering or exposed. Anything else is a no-op.
#
########################
# Interfaces:
# Public classes:
# - class TargetLifecycle
#   - add(state: MatchState, target: ActiveTarget) -> None
#   - advance(state: MatchState, delta_ms: float) -> list[ActiveTarget]
#   - strike(state: MatchState, target_id: int) -> Optional[ActiveTarget]
#   - target_on_cell(state: MatchState, cell_index: int) -> Optional[ActiveTarget]
#   - occupied_cells(state: MatchState) -> set[int]
#   - clear(state: MatchState) -> None
#
# Inputs:
# - Applied frame delta from SessionClock.
# - Resolved strikes from SessionEngine input handling.
#
# Outputs:
# - Timed-out targets (implicit misses) for JudgeEngine.on_miss.
#
########################

from __future__ import annotations

from typing import List, Optional, Set

from gameplay_models import ActiveTarget, MatchState, TargetPhase


class TargetLifecycle:
    def add(self, state: MatchState, target: ActiveTarget) -> None:
        state.targets.append(target)

    def clear(self, state: MatchState) -> None:
        state.targets.clear()

    def occupied_cells(self, state: MatchState) -> Set[int]:
        return {int(target.cell_index) for target in state.targets}

    def target_on_cell(self, state: MatchState, cell_index: int) -> Optional[ActiveTarget]:
        for target in state.targets:
            if target.cell_index == int(cell_index):
                return target
        return None

    def advance(self, state: MatchState, delta_ms: float) -> List[ActiveTarget]:
        timed_out: List[ActiveTarget] = []
        delta = float(delta_ms)

        for index in range(len(state.targets) - 1, -1, -1):
            target = state.targets[index]
            target.phase_elapsed_ms = float(target.phase_elapsed_ms) + delta

            if target.phase == TargetPhase.ENTERING and target.phase_elapsed_ms >= target.entry_ms:
                self._enter_phase(target, TargetPhase.EXPOSED)
                continue

            if target.phase == TargetPhase.EXPOSED and target.phase_elapsed_ms >= target.exposed_ms:
                if not target.was_struck:
                    timed_out.append(target)
                self._enter_phase(target, TargetPhase.EXITING)
                continue

            if target.phase == TargetPhase.STRUCK and target.phase_elapsed_ms >= target.struck_ms:
                self._enter_phase(target, TargetPhase.EXITING)
                continue

            if target.phase == TargetPhase.EXITING and target.phase_elapsed_ms >= target.exit_ms:
                del state.targets[index]

        # Reverse iteration collected newest first; report in spawn order.
        timed_out.reverse()
        return timed_out

    def strike(self, state: MatchState, target_id: int) -> Optional[ActiveTarget]:
        target = state.find_target(int(target_id))
        if target is None or not target.is_strikable():
            return None
        target.was_struck = True
        self._enter_phase(target, TargetPhase.STRUCK)
        return target

    @staticmethod
    def _enter_phase(target: ActiveTarget, phase: TargetPhase) -> None:
        target.phase = phase
        target.phase_elapsed_ms = 0.0


def _run_unit_tests() -> None:
    from gameplay_models import TargetCategory

    lifecycle = TargetLifecycle()
    state = MatchState(is_running=True)
    lifecycle.add(
        state,
        ActiveTarget(
            target_id=1,
            cell_index=4,
            category=TargetCategory.COMMON,
            created_at_ms=0.0,
            entry_ms=100.0,
            exposed_ms=200.0,
            struck_ms=50.0,
            exit_ms=50.0,
        ),
    )

    assert lifecycle.advance(state, 100.0) == []
    assert state.targets[0].phase == TargetPhase.EXPOSED
    timed_out = lifecycle.advance(state, 200.0)
    assert [target.target_id for target in timed_out] == [1]
    assert state.targets[0].phase == TargetPhase.EXITING
    assert lifecycle.strike(state, 1) is None
    lifecycle.advance(state, 50.0)
    assert state.targets == []


if __name__ == "__main__":
    _run_unit_tests()
    print("target_lifecycle.py: ok")
