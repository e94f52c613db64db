"""
Playback engine

Runs one step of the presentation: every batch of the step is played
concurrently on the Qt event loop, frames inside a batch one after another.
Shape animations are played on a throwaway stand-in so the real objects never
move, and all engine writes stay out of the host's undo history.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, List, Optional, Set, Union

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from .frames import (
    CAMERA_ZOOM,
    HIDDEN_DURING_ANIMATION_KEY,
    SHAPE_ANIMATION,
    Frame,
    FrameBatch,
    Step,
)
from .host import CanvasHost, MissingShapeError, Shape
from .ordering import latest_batch_in_track

logger = logging.getLogger(__name__)

STAND_IN_ID_PREFIX = "standin-"


def is_stand_in(shape_id: str) -> bool:
    return shape_id.startswith(STAND_IN_ID_PREFIX)


@dataclass
class _BatchState:
    batch: FrameBatch
    predecessor: Optional[Shape]
    position: int = 0
    stand_in_id: Optional[str] = None
    settled: bool = False
    flagged: Set[str] = field(default_factory=set)


@dataclass
class _StepRun:
    index: int
    mark_id: str
    pending: int = 0
    cancelled: bool = False
    timers: List[QTimer] = field(default_factory=list)
    stand_ins: Set[str] = field(default_factory=set)
    flagged: Set[str] = field(default_factory=set)


class PlaybackEngine(QObject):
    """
    Step navigation and step execution

    Only one step runs at a time: starting a run cancels the previous one,
    removing its stand-ins and clearing its hidden flags.

    Frames are resolved to their shapes through ``get_shape_for_frame``,
    which defaults to looking the frame id up as a shape id.

    Signals:
        current_step_changed(int): current step index changed
        step_started(int): a step run began
        step_finished(int): every batch of a step run settled
    """

    current_step_changed = pyqtSignal(int)
    step_started = pyqtSignal(int)
    step_finished = pyqtSignal(int)

    def __init__(
        self,
        host: CanvasHost,
        get_steps: Callable[[], List[Step]],
        get_shape_for_frame: Optional[Callable[[str], Optional[Shape]]] = None,
        parent=None,
    ):
        super().__init__(parent)
        self.host = host
        self._get_steps = get_steps
        self._get_shape_for_frame = get_shape_for_frame or host.get_shape
        self._current_step_index = 0
        self._run: Optional[_StepRun] = None

    @property
    def current_step_index(self) -> int:
        return self._current_step_index

    @property
    def is_running(self) -> bool:
        return self._run is not None

    # ----- Navigation -----
    def move_to(self, index: Union[int, Callable[[int], int]]) -> bool:
        """
        Navigate to a step and run it

        Args:
            index: Target step index, or a function of the current index

        Returns:
            False when there is no step at all, True otherwise
        """
        steps = self._get_steps()
        if not steps:
            return False
        if callable(index):
            index = index(self._current_step_index)
        index = max(0, min(int(index), len(steps) - 1))
        if index == self._current_step_index:
            return True

        self._current_step_index = index
        self.current_step_changed.emit(index)
        self.run_step(steps, index)
        return True

    def next_step(self) -> bool:
        if self._current_step_index + 1 >= len(self._get_steps()):
            return False
        return self.move_to(self._current_step_index + 1)

    def prev_step(self) -> bool:
        if self._current_step_index <= 0:
            return False
        return self.move_to(self._current_step_index - 1)

    def rerun_step(self) -> bool:
        return self.run_step(self._get_steps(), self._current_step_index)

    # ----- Execution -----
    def run_step(self, steps: List[Step], index: int) -> bool:
        """
        Play ``steps[index]``

        Returns:
            False when the step does not exist
        """
        if index < 0 or index >= len(steps):
            logger.warning("No step found at index %d", index)
            return False

        self.cancel()
        step = steps[index]
        logger.info("Running step %d (%d batches)", index, len(step))

        run = _StepRun(index=index, mark_id=self.host.mark_history_stopping_point(f"step-{index}"))
        self._run = run
        self.step_started.emit(index)

        states = [self._start_batch(run, steps, index, batch) for batch in step]
        run.pending = len(states)
        for state in states:
            if run.cancelled:
                break
            self._advance(run, state)
        return True

    def cancel(self) -> None:
        """Stop the running step, if any, and undo its temporary effects."""
        run = self._run
        if run is None:
            return
        self._run = None
        run.cancelled = True
        for timer in run.timers:
            timer.stop()
            timer.deleteLater()
        for stand_in_id in list(run.stand_ins):
            self._remove_stand_in(run, stand_in_id)
        for shape_id in list(run.flagged):
            self._set_hidden(run, shape_id, False)
        self.host.bail_to_mark(run.mark_id)
        logger.debug("Cancelled step %d", run.index)

    def _start_batch(self, run: _StepRun, steps: List[Step], index: int, batch: FrameBatch) -> _BatchState:
        predecessor = None
        predecessor_batch = latest_batch_in_track(steps, batch.track_id, index - 1)
        if predecessor_batch is not None:
            predecessor = self._get_shape_for_frame(predecessor_batch.last_frame.id)

        state = _BatchState(batch=batch, predecessor=predecessor)
        for frame in batch.frames:
            shape = self._get_shape_for_frame(frame.id)
            if shape is not None and self._set_hidden(run, shape.id, True):
                state.flagged.add(shape.id)
        return state

    def _advance(self, run: _StepRun, state: _BatchState):
        frames = state.batch.frames
        while not run.cancelled and state.position < len(frames):
            frame = frames[state.position]
            try:
                wait = self._run_frame(run, state, frame)
            except MissingShapeError as e:
                logger.warning("Aborting batch %s at frame %s: %s", state.batch.id, frame.id, e)
                break
            if wait > 0:
                self._schedule(run, wait, partial(self._on_frame_elapsed, run, state, frame))
                return
            self._complete_frame(run, state, frame)

        if not run.cancelled:
            self._settle_batch(run, state)

    def _on_frame_elapsed(self, run: _StepRun, state: _BatchState, frame: Frame):
        if run.cancelled:
            return
        self._complete_frame(run, state, frame)
        self._advance(run, state)

    def _run_frame(self, run: _StepRun, state: _BatchState, frame: Frame) -> int:
        """Start one frame; returns how long to wait before the next one."""
        shape = self._require_frame_shape(frame.id)
        action = frame.action
        duration = action.duration_ms

        if action.type == CAMERA_ZOOM:
            self.host.stop_camera_animation()
            bounds = self.host.get_page_bounds(shape.id)
            if bounds is None:
                raise MissingShapeError(f"No bounds for shape {shape.id}")
            self.host.zoom_to_bounds(bounds, inset=action.inset_px, duration=duration, easing=action.easing_name)
            return duration

        if action.type != SHAPE_ANIMATION:
            logger.debug("Skipping unknown action type %r on frame %s", action.type, frame.id)
            return 0

        if state.predecessor is None:
            return 0

        predecessor = self.host.require_shape(state.predecessor.id)
        start_x, start_y, start_rotation = self.host.get_page_transform(predecessor.id)
        end_x, end_y, end_rotation = self.host.get_page_transform(shape.id)

        stand_in = Shape(
            id=f"{STAND_IN_ID_PREFIX}{uuid.uuid4().hex[:12]}",
            type=shape.type,
            x=start_x,
            y=start_y,
            rotation=start_rotation,
            props=copy.deepcopy(predecessor.props),
            opacity=predecessor.opacity,
        )
        with self.host.transient():
            self.host.create_shape(stand_in)
        run.stand_ins.add(stand_in.id)
        state.stand_in_id = stand_in.id

        self.host.animate_shape(
            stand_in.id, end_x, end_y, end_rotation,
            duration=duration,
            easing=action.easing_name,
            transient=True,
            props=shape.props,
        )
        return duration

    def _complete_frame(self, run: _StepRun, state: _BatchState, frame: Frame):
        if state.stand_in_id is not None:
            self._remove_stand_in(run, state.stand_in_id)
            state.stand_in_id = None
        shape = self._get_shape_for_frame(frame.id)
        if shape is not None:
            self._set_hidden(run, shape.id, False)
            state.predecessor = self.host.get_shape(shape.id)
        state.position += 1

    def _settle_batch(self, run: _StepRun, state: _BatchState):
        if state.settled:
            return
        state.settled = True
        if state.stand_in_id is not None:
            self._remove_stand_in(run, state.stand_in_id)
            state.stand_in_id = None
        for shape_id in state.flagged & run.flagged:
            self._set_hidden(run, shape_id, False)
        self.host.bail_to_mark(run.mark_id)

        run.pending -= 1
        if run.pending <= 0 and self._run is run:
            self._run = None
            for timer in run.timers:
                timer.deleteLater()
            logger.info("Step %d finished", run.index)
            self.step_finished.emit(run.index)

    # ----- Host helpers -----
    def _require_frame_shape(self, frame_id: str) -> Shape:
        shape = self._get_shape_for_frame(frame_id)
        if shape is None:
            raise MissingShapeError(f"No shape carries frame {frame_id}")
        return shape

    def _schedule(self, run: _StepRun, delay_ms: int, callback: Callable[[], None]):
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.timeout.connect(callback)
        run.timers.append(timer)
        timer.start(int(delay_ms))

    def _set_hidden(self, run: _StepRun, shape_id: str, hidden: bool) -> bool:
        if self.host.get_shape(shape_id) is None:
            run.flagged.discard(shape_id)
            return False
        with self.host.transient():
            self.host.update_meta(shape_id, **{HIDDEN_DURING_ANIMATION_KEY: True if hidden else None})
        if hidden:
            run.flagged.add(shape_id)
        else:
            run.flagged.discard(shape_id)
        return True

    def _remove_stand_in(self, run: _StepRun, stand_in_id: str):
        self.host.stop_shape_animation(stand_in_id)
        if self.host.get_shape(stand_in_id) is not None:
            with self.host.transient():
                self.host.delete_shape(stand_in_id)
        run.stand_ins.discard(stand_in_id)
