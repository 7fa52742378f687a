# -*- coding: utf-8 -*-
########################
# gameplay_harness.py
########################
# Purpose:
# - Gameplay harness for local testing and iteration.
# - Integrates SessionEngine + GridOverlayWidget + ProfileStore in a Qt window, and runs the same
#   engine headless with a scripted bot for reproducible simulations.
#
# Design notes:
# - The engine is the single source of truth for game state; the window only forwards frame deltas
#   (measured with time.monotonic) and resolved inputs.
# - Inputs are applied the instant they occur, between ticks.
# - Qt classes are created lazily, so headless simulation and chunk tests never need a display.
# - The bot decides once per target: strike after its reaction delay, or let the target time out.
# - Without --config the window uses the cached config from get_config(). The Sound button
#   persists the preference through ProfileStore.
#
########################
# Interfaces:
# Public dataclasses:
# - HarnessState(seed: Optional[int], status_text: str)
# - SimulationReport(seed, duration_ms, score, best_combo, final_level, max_level, hits, misses,
#                    promotions, demotions, checkpoints, summary)
#
# Public functions:
# - resolve_cell_input(snapshot: SessionSnapshot, cell_index: int) -> PlayerInput
# - run_headless_simulation(config, *, seconds, seed, accuracy, reaction_ms, step_ms) -> SimulationReport
# - configure_logging(level: str) -> None
# - build_argument_parser() -> argparse.ArgumentParser
# - main(argv: Optional[list[str]] = None) -> int
#
# Inputs:
# - Mouse presses on the playfield (cellPressed), Space to pause, buttons for start / end / reward.
# - CLI flags: --simulate, --seed, --accuracy, --log-level, --config, --run-tests.
#
# Outputs:
# - Visible playfield and HUD, or a JSON simulation report on stdout.
#
########################

from __future__ import annotations

import argparse
from dataclasses import asdict, dataclass
import json
from pathlib import Path
import random
import sys
from typing import Dict, List, Optional, Set

from loguru import logger

import config as config_module
from gameplay_models import (
    EventKind,
    MatchSummary,
    MissInput,
    PlayerInput,
    SessionSnapshot,
    StrikeInput,
    TargetPhase,
)
from session_engine import SessionEngine


@dataclass
class HarnessState:
    seed: Optional[int] = None
    status_text: str = ""


@dataclass(frozen=True)
class SimulationReport:
    seed: Optional[int]
    duration_ms: float
    score: int
    best_combo: int
    final_level: int
    max_level: int
    hits: int
    misses: int
    promotions: int
    demotions: int
    checkpoints: int
    summary: Optional[Dict[str, int]]


def resolve_cell_input(snapshot: SessionSnapshot, cell_index: int) -> PlayerInput:
    """Turn a pressed cell into a strike on the strikable target there, or a miss."""
    for view in snapshot.targets:
        if view.cell_index != int(cell_index):
            continue
        if view.phase in (TargetPhase.ENTERING, TargetPhase.EXPOSED):
            return StrikeInput(target_id=view.target_id)
    return MissInput()


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(level).upper())


class _Bot:
    def __init__(self, *, rng: random.Random, accuracy: float, reaction_ms: float) -> None:
        self._rng = rng
        self._accuracy = float(accuracy)
        self._reaction_ms = float(reaction_ms)
        self._decided: Set[int] = set()

    def inputs_for(self, engine: SessionEngine) -> List[PlayerInput]:
        state = engine.state()
        inputs: List[PlayerInput] = []
        for target in state.targets:
            if target.target_id in self._decided or not target.is_strikable():
                continue
            if float(state.elapsed_ms) - float(target.created_at_ms) < self._reaction_ms:
                continue
            self._decided.add(target.target_id)
            if self._rng.random() < self._accuracy:
                inputs.append(StrikeInput(target_id=target.target_id))
        return inputs


def run_headless_simulation(
    engine_config: config_module.EngineConfig,
    *,
    seconds: float,
    seed: Optional[int] = None,
    accuracy: Optional[float] = None,
    reaction_ms: Optional[float] = None,
    step_ms: Optional[float] = None,
) -> SimulationReport:
    harness = engine_config.harness
    bot = _Bot(
        rng=random.Random(f"bot-{seed}"),
        accuracy=harness.bot_accuracy if accuracy is None else float(accuracy),
        reaction_ms=harness.bot_reaction_ms if reaction_ms is None else float(reaction_ms),
    )
    step = float(harness.step_ms if step_ms is None else step_ms)
    engine = SessionEngine(engine_config, rng=random.Random(seed))
    engine.start_match()

    counts: Dict[EventKind, int] = {kind: 0 for kind in EventKind}
    max_level = engine.state().level
    limit_ms = float(seconds) * 1000.0

    while engine.state().is_running and engine.state().elapsed_ms < limit_ms:
        result = engine.advance(step, bot.inputs_for(engine))
        for event in result.events:
            counts[event.kind] += 1
        max_level = max(max_level, result.snapshot.level)

    summary: Optional[MatchSummary] = engine.end_match()
    state = engine.state()
    return SimulationReport(
        seed=seed,
        duration_ms=float(state.elapsed_ms),
        score=int(state.score),
        best_combo=int(state.best_combo),
        final_level=int(state.level),
        max_level=int(max_level),
        hits=int(state.session_hits),
        misses=int(state.session_misses),
        promotions=counts[EventKind.STAGE_CLEAR],
        demotions=counts[EventKind.DEMOTION],
        checkpoints=counts[EventKind.CHECKPOINT],
        summary=asdict(summary) if summary is not None else None,
    )


def _create_window_class():
    import time

    from PyQt6.QtCore import Qt, QTimer
    from PyQt6.QtWidgets import QHBoxLayout, QLabel, QMainWindow, QPushButton, QVBoxLayout, QWidget

    import overlay_renderer
    from profile_store import ProfileStore

    class _GameplayHarnessWindow(QMainWindow):
        def __init__(self, *, engine_config: config_module.EngineConfig, seed: Optional[int]) -> None:
            super().__init__()
            self.setWindowTitle("Popgrid Gameplay Harness")

            self._state = HarnessState(seed=seed)
            self._profile_store = ProfileStore()
            self._engine = SessionEngine(
                engine_config,
                rng=random.Random(seed),
                profile_store=self._profile_store,
            )

            self._overlay = overlay_renderer.GridOverlayWidget(self._engine.snapshot, parent=self)
            self._overlay.set_judge_engine(self._engine.judge())
            self._overlay.cellPressed.connect(self._on_cell_pressed)

            root = QWidget(self)
            root_layout = QVBoxLayout(root)
            controls = QWidget(root)
            controls_layout = QHBoxLayout(controls)

            self._start_button = QPushButton("Start", controls)
            self._pause_button = QPushButton("Pause", controls)
            self._end_button = QPushButton("End", controls)
            self._reward_button = QPushButton("Claim reward", controls)
            self._sound_button = QPushButton("Sound", controls)
            self._sound_button.setCheckable(True)
            self._sound_button.setChecked(self._profile_store.profile().sound_enabled)
            self._status_label = QLabel("", root)
            self._profile_label = QLabel("", root)

            for button in (self._start_button, self._pause_button, self._end_button, self._reward_button, self._sound_button):
                button.setFocusPolicy(Qt.FocusPolicy.NoFocus)
                controls_layout.addWidget(button)

            self._start_button.clicked.connect(self._on_start_clicked)
            self._pause_button.clicked.connect(self._on_pause_clicked)
            self._end_button.clicked.connect(self._on_end_clicked)
            self._reward_button.clicked.connect(self._on_reward_clicked)
            self._sound_button.toggled.connect(self._on_sound_toggled)

            root_layout.addWidget(controls)
            root_layout.addWidget(self._overlay, stretch=1)
            root_layout.addWidget(self._status_label)
            root_layout.addWidget(self._profile_label)
            self.setCentralWidget(root)

            self._last_frame_time: Optional[float] = None
            self._frame_timer = QTimer(self)
            self._frame_timer.setInterval(16)
            self._frame_timer.timeout.connect(self._on_frame)
            self._frame_timer.start()

            self._refresh_profile_label()
            self._set_status("Press Start")

        # -----------------
        # UI helpers
        # -----------------

        def _set_status(self, text: str) -> None:
            self._state.status_text = str(text)
            self._status_label.setText(self._state.status_text)
            self._overlay.set_state_text(self._state.status_text)

        def _refresh_profile_label(self) -> None:
            profile = self._profile_store.profile()
            self._profile_label.setText(
                f"Best {profile.best_score}  Best combo {profile.best_combo}  Plays {profile.total_plays}  Coins {profile.coins}  "
                f"Sound {'on' if profile.sound_enabled else 'off'}"
            )

        # -----------------
        # Frame loop
        # -----------------

        def _on_frame(self) -> None:
            now = time.monotonic()
            delta_ms = 0.0 if self._last_frame_time is None else (now - self._last_frame_time) * 1000.0
            self._last_frame_time = now

            result = self._engine.advance(delta_ms)
            for event in result.events:
                self._on_event(event.kind, event.level)

        def _on_event(self, kind: EventKind, level: int) -> None:
            if kind == EventKind.PROMOTION_REQUESTED:
                self._set_status(f"Stage clear incoming: level {level}")
            elif kind == EventKind.PROMOTION_CANCELLED:
                self._set_status("Promotion on hold")
            elif kind == EventKind.STAGE_CLEAR:
                self._set_status(f"Stage {max(1, level - 1)} clear")
            elif kind == EventKind.GRACE_ENDED:
                self._set_status(f"Level {level}")
            elif kind == EventKind.DEMOTION:
                self._set_status(f"Easing down to level {level}")
            elif kind == EventKind.PAUSED:
                self._set_status("Paused")
            elif kind == EventKind.RESUMED:
                self._set_status("Playing")
            elif kind == EventKind.MATCH_ENDED:
                summary = self._engine.summary()
                if summary is not None:
                    self._set_status(f"Game over: score {summary.score}, coins +{summary.base_coins}")
                self._refresh_profile_label()

        # -----------------
        # Input path
        # -----------------

        def _on_cell_pressed(self, cell_index: int) -> None:
            player_input = resolve_cell_input(self._engine.snapshot(), int(cell_index))
            self._engine.apply_input(player_input)

        def keyPressEvent(self, event) -> None:  # type: ignore[override]
            if event.key() == Qt.Key.Key_Space and not event.isAutoRepeat():
                self._engine.toggle_pause()
                return
            super().keyPressEvent(event)

        def _on_start_clicked(self) -> None:
            self._engine.start_match()
            self._set_status("Playing")

        def _on_pause_clicked(self) -> None:
            self._engine.toggle_pause()

        def _on_end_clicked(self) -> None:
            self._engine.end_match()

        def _on_reward_clicked(self) -> None:
            if self._engine.claim_reward():
                self._set_status("Reward claimed")
                self._refresh_profile_label()

        def _on_sound_toggled(self, enabled: bool) -> None:
            self._profile_store.set_sound_enabled(enabled)
            self._refresh_profile_label()

    return _GameplayHarnessWindow


def _run_chunk_tests() -> None:
    import difficulty
    import gameplay_models
    import judge
    import level_tables
    import performance
    import session_clock
    import session_engine
    import spawn_scheduler
    import stage_transition
    import target_lifecycle

    for module in (
        gameplay_models,
        level_tables,
        session_clock,
        target_lifecycle,
        difficulty,
        spawn_scheduler,
        performance,
        stage_transition,
        judge,
        session_engine,
    ):
        module._run_unit_tests()

    engine_config = config_module.EngineConfig()

    # Determinism: the same seed replays the same match.
    first = run_headless_simulation(engine_config, seconds=20.0, seed=5)
    second = run_headless_simulation(engine_config, seconds=20.0, seed=5)
    assert first == second
    assert first.checkpoints >= 3
    assert first.score >= 0

    # Input resolution stops at the cell.
    engine = SessionEngine(engine_config, rng=random.Random(2))
    engine.start_match()
    while not engine.state().targets:
        engine.advance(16.0)
    snapshot = engine.snapshot()
    occupied = snapshot.targets[0].cell_index
    assert isinstance(resolve_cell_input(snapshot, occupied), StrikeInput)
    free_cell = next(cell.index for cell in engine.state().cells if cell.index != occupied)
    assert isinstance(resolve_cell_input(snapshot, free_cell), MissInput)


def _run_gui(engine_config: config_module.EngineConfig, seed: Optional[int]) -> int:
    from PyQt6.QtWidgets import QApplication

    app = QApplication(sys.argv)
    window_class = _create_window_class()
    window = window_class(engine_config=engine_config, seed=seed)
    window.resize(720, 820)
    window.show()
    return int(app.exec())


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="popgrid")
    parser.add_argument(
        "--run-tests",
        action="store_true",
        help="Run pure logic tests (no Qt).",
    )
    parser.add_argument(
        "--simulate",
        type=float,
        metavar="SECONDS",
        default=None,
        help="Run a headless bot match for SECONDS of simulated time and print a JSON report.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed (defaults to the configured seed).")
    parser.add_argument("--accuracy", type=float, default=None, help="Bot strike probability for --simulate.")
    parser.add_argument("--config", type=Path, default=None, help="Path to a popgrid_config.json file.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Log level for the stderr sink.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_argument_parser().parse_args(argv)
    configure_logging(args.log_level)

    if args.run_tests:
        _run_chunk_tests()
        print("Chunk tests passed.")
        return 0

    try:
        if args.config is None:
            engine_config, config_path = config_module.get_config()
        else:
            engine_config, config_path = config_module.load_config(args.config)
    except (OSError, ValueError) as exception:
        logger.error("Could not load config: {}", exception)
        return 2
    if config_path is not None:
        logger.info("Using config {}", config_path)

    seed = args.seed if args.seed is not None else engine_config.harness.seed

    if args.simulate is not None:
        report = run_headless_simulation(
            engine_config,
            seconds=float(args.simulate),
            seed=seed,
            accuracy=args.accuracy,
        )
        print(json.dumps(asdict(report), ensure_ascii=False, indent=2))
        return 0

    return _run_gui(engine_config, seed)


if __name__ == "__main__":
    raise SystemExit(main())
