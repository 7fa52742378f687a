# -*- coding: utf-8 -*-
########################
# overlay_renderer.py
########################
# Purpose:
# - Playfield Qt widget.
# - Paints the grid, active targets and the HUD line from a SessionSnapshot.
# - Resolves a mouse press to a grid cell and reports it through a signal.
#
########################
# Key Logic:
# - Layout:
#   - square board centered in the widget, below a HUD strip
#   - cell rect = board origin + (col, row) * cell size
# - Targets:
#   - coloured by category
#   - radius follows the phase: grows while entering, full while exposed,
#     flashes while struck, shrinks while exiting
# - Feedback:
#   - recent judgements (hits and misses) flash their cell for a short lifetime
# - Strict boundaries:
#   - The widget never touches MatchState. It reads snapshots through a provider callable.
#   - Hit-testing stops at the cell; the harness turns a cell into a StrikeInput or MissInput.
#
########################
# Interfaces:
# Public dataclasses:
# - OverlayConfig(hud_height_pixels: float, board_margin_pixels: float, cell_gap_ratio: float, ...)
#
# Public functions:
# - board_rect(width: float, height: float, config: OverlayConfig) -> QRectF
# - cell_at(x: float, y: float, board: QRectF, grid_size: int) -> Optional[int]
#
# Public classes:
# - class GridOverlayWidget(PyQt6.QtWidgets.QWidget)
#   - cellPressed = pyqtSignal(int)
#   - set_judge_engine(judge_engine_obj: Optional[JudgeEngine]) -> None
#   - set_state_text(state_text: str) -> None
#
# Inputs:
# - SessionSnapshot from SessionEngine.snapshot()
# - Optional JudgeEngine for recent judgement feedback
#
# Outputs:
# - Painted playfield on the widget surface; cellPressed(cell_index) on mouse press.
#
########################

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from PyQt6.QtCore import QPointF, QRectF, Qt, QTimer, pyqtSignal
from PyQt6.QtGui import QBrush, QColor, QFont, QPainter, QPen
from PyQt6.QtWidgets import QWidget

import gameplay_models
import judge

CATEGORY_COLORS: Dict[gameplay_models.TargetCategory, QColor] = {
    gameplay_models.TargetCategory.COMMON: QColor(120, 200, 120),
    gameplay_models.TargetCategory.BONUS: QColor(250, 205, 70),
    gameplay_models.TargetCategory.HAZARD: QColor(230, 70, 70),
    gameplay_models.TargetCategory.CHILL: QColor(110, 190, 250),
}


@dataclass(frozen=True)
class OverlayConfig:
    hud_height_pixels: float = 56.0
    board_margin_pixels: float = 18.0
    cell_gap_ratio: float = 0.08
    target_radius_ratio: float = 0.38
    feedback_lifetime_ms: float = 220.0


def board_rect(width: float, height: float, config: OverlayConfig) -> QRectF:
    margin = float(config.board_margin_pixels)
    top = float(config.hud_height_pixels)
    side = max(0.0, min(float(width) - 2.0 * margin, float(height) - top - 2.0 * margin))
    x = (float(width) - side) / 2.0
    y = top + (float(height) - top - side) / 2.0
    return QRectF(x, y, side, side)


def cell_at(x: float, y: float, board: QRectF, grid_size: int) -> Optional[int]:
    size = int(grid_size)
    if size <= 0 or board.width() <= 0.0:
        return None
    if not board.contains(QPointF(float(x), float(y))):
        return None
    cell_size = board.width() / float(size)
    col = min(size - 1, int((float(x) - board.x()) / cell_size))
    row = min(size - 1, int((float(y) - board.y()) / cell_size))
    return row * size + col


def _phase_scale(view: gameplay_models.TargetView) -> float:
    progress = float(view.phase_progress)
    if view.phase == gameplay_models.TargetPhase.ENTERING:
        return progress
    if view.phase == gameplay_models.TargetPhase.EXITING:
        return 1.0 - progress
    if view.phase == gameplay_models.TargetPhase.STRUCK:
        return 1.0 + 0.25 * (1.0 - progress)
    return 1.0


class GridOverlayWidget(QWidget):
    cellPressed = pyqtSignal(int)

    def __init__(
        self,
        snapshot_provider: Optional[Callable[[], Optional[gameplay_models.SessionSnapshot]]] = None,
        *,
        config: Optional[OverlayConfig] = None,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._snapshot_provider = snapshot_provider
        self._config = config or OverlayConfig()
        self._judge_engine: Optional[judge.JudgeEngine] = None
        self._state_text = ""
        self._feedback: Dict[int, gameplay_models.GameEvent] = {}

        self.setMinimumSize(360, 420)

        self._paint_timer = QTimer(self)
        self._paint_timer.setInterval(16)
        self._paint_timer.timeout.connect(self.update)
        self._paint_timer.start()

    def set_judge_engine(self, judge_engine_obj: Optional[judge.JudgeEngine]) -> None:
        self._judge_engine = judge_engine_obj
        self._feedback.clear()

    def set_state_text(self, state_text: str) -> None:
        self._state_text = str(state_text or "")

    def _current_snapshot(self) -> Optional[gameplay_models.SessionSnapshot]:
        if self._snapshot_provider is None:
            return None
        return self._snapshot_provider()

    def mousePressEvent(self, event) -> None:  # type: ignore[override]
        snapshot = self._current_snapshot()
        if snapshot is None or event.button() != Qt.MouseButton.LeftButton:
            super().mousePressEvent(event)
            return
        board = board_rect(float(self.width()), float(self.height()), self._config)
        position = event.position()
        cell_index = cell_at(position.x(), position.y(), board, snapshot.grid_size)
        if cell_index is not None:
            self.cellPressed.emit(int(cell_index))
        event.accept()

    def paintEvent(self, event) -> None:  # type: ignore[override]
        snapshot = self._current_snapshot()

        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        painter.fillRect(self.rect(), QBrush(QColor(16, 18, 24)))

        if snapshot is not None:
            board = board_rect(float(self.width()), float(self.height()), self._config)
            self._paint_board(painter, board, snapshot)
            self._paint_feedback(painter, board, snapshot)
            self._paint_targets(painter, board, snapshot)
            self._paint_hud(painter, snapshot)

        self._paint_state_text(painter)
        painter.end()

    def _cell_rect(self, board: QRectF, grid_size: int, row: int, col: int) -> QRectF:
        cell_size = board.width() / float(max(1, grid_size))
        gap = cell_size * float(self._config.cell_gap_ratio)
        return QRectF(
            board.x() + col * cell_size + gap / 2.0,
            board.y() + row * cell_size + gap / 2.0,
            cell_size - gap,
            cell_size - gap,
        )

    def _paint_board(self, painter: QPainter, board: QRectF, snapshot: gameplay_models.SessionSnapshot) -> None:
        size = int(snapshot.grid_size)
        painter.save()
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(QColor(44, 48, 60)))
        for row in range(size):
            for col in range(size):
                painter.drawRoundedRect(self._cell_rect(board, size, row, col), 8.0, 8.0)
        painter.restore()

    def _paint_feedback(self, painter: QPainter, board: QRectF, snapshot: gameplay_models.SessionSnapshot) -> None:
        if self._judge_engine is not None:
            for judged in self._judge_engine.recent_judgements():
                if judged.cell_index is not None:
                    self._feedback[int(judged.cell_index)] = judged
            # Consumer drains buffer every frame.
            self._judge_engine.clear_recent_judgements()

        lifetime = float(self._config.feedback_lifetime_ms)
        size = int(snapshot.grid_size)
        expired = []
        for cell_index, judged in self._feedback.items():
            age = float(snapshot.elapsed_ms) - float(judged.time_ms)
            if age < 0.0 or age > lifetime or cell_index >= size * size:
                expired.append(cell_index)
                continue
            color = QColor(255, 240, 200) if judged.kind == gameplay_models.EventKind.HIT else QColor(200, 60, 60)
            painter.save()
            painter.setOpacity(painter.opacity() * (1.0 - age / lifetime) * 0.6)
            painter.setPen(Qt.PenStyle.NoPen)
            painter.setBrush(QBrush(color))
            painter.drawRoundedRect(self._cell_rect(board, size, cell_index // size, cell_index % size), 8.0, 8.0)
            painter.restore()
        for cell_index in expired:
            del self._feedback[cell_index]

    def _paint_targets(self, painter: QPainter, board: QRectF, snapshot: gameplay_models.SessionSnapshot) -> None:
        size = int(snapshot.grid_size)
        for view in snapshot.targets:
            rect = self._cell_rect(board, size, view.row, view.col)
            radius = rect.width() * float(self._config.target_radius_ratio) * _phase_scale(view)
            if radius <= 0.5:
                continue
            painter.save()
            color = QColor(CATEGORY_COLORS.get(view.category, QColor(200, 200, 200)))
            if view.phase == gameplay_models.TargetPhase.STRUCK:
                color = color.lighter(150)
            painter.setPen(QPen(color.darker(160), 2.0))
            painter.setBrush(QBrush(color))
            painter.drawEllipse(rect.center(), radius, radius)
            painter.restore()

    def _paint_hud(self, painter: QPainter, snapshot: gameplay_models.SessionSnapshot) -> None:
        seconds_left = max(0.0, float(snapshot.time_remaining_ms)) / 1000.0
        level_text = f"L{snapshot.level}"
        if snapshot.transition_state == gameplay_models.TransitionState.PENDING and snapshot.transition_target_level:
            level_text = f"L{snapshot.level}->{snapshot.transition_target_level}"
        hud_text = (
            f"{level_text} {snapshot.grid_size}x{snapshot.grid_size}  Score {snapshot.score}  "
            f"Combo {snapshot.combo}  Time {seconds_left:.1f}s  Tier {snapshot.tier_progress:.0f}%"
        )
        if snapshot.slow_active:
            hud_text += "  SLOW"

        painter.save()
        painter.setPen(QPen(QColor(240, 240, 240)))
        painter.setFont(QFont("Arial", 12))
        painter.drawText(QRectF(10.0, 8.0, float(self.width()) - 20.0, 22.0), int(Qt.AlignmentFlag.AlignLeft), hud_text)

        cap_ms = max(1.0, float(snapshot.time_gauge_cap_ms))
        ratio = max(0.0, min(1.0, float(snapshot.time_remaining_ms) / cap_ms))
        gauge = QRectF(10.0, 34.0, (float(self.width()) - 20.0) * ratio, 8.0)
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(QColor(90, 200, 140) if ratio > 0.2 else QColor(230, 90, 70)))
        painter.drawRect(gauge)
        painter.restore()

        if snapshot.transition_lock_ms > 0.0:
            painter.save()
            painter.setPen(QPen(QColor(255, 230, 120)))
            painter.setFont(QFont("Arial", 22, weight=QFont.Weight.Bold))
            painter.drawText(
                QRectF(0.0, float(self.height()) / 2.0 - 20.0, float(self.width()), 40.0),
                int(Qt.AlignmentFlag.AlignHCenter),
                f"STAGE {max(1, snapshot.level - 1)} CLEAR",
            )
            painter.restore()

    def _paint_state_text(self, painter: QPainter) -> None:
        text = str(self._state_text or "").strip()
        if not text:
            return
        painter.save()
        painter.setPen(QPen(QColor(220, 220, 220)))
        painter.setFont(QFont("Arial", 12))
        painter.drawText(
            QRectF(0.0, float(self.height()) - 28.0, float(self.width()), 20.0),
            int(Qt.AlignmentFlag.AlignHCenter),
            text,
        )
        painter.restore()
