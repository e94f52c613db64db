"""
Presentation manager - ties a canvas host to ordering, playback and visibility

Frames live in shape metadata, so every editing operation here reads the
frames off the page, computes new frames with the pure ordering functions and
writes the changed annotations back.
"""

import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

from PyQt6.QtCore import QObject, pyqtSignal

from .frames import (
    CAMERA_ZOOM,
    DEFAULT_EASING,
    FRAME_META_KEY,
    HIDDEN_DURING_ANIMATION_KEY,
    SHAPE_ANIMATION,
    CueFrame,
    Frame,
    FrameAction,
    FrameBatch,
    Step,
    SubFrame,
    batch_id_for,
    frame_to_json,
    get_frame,
    get_frames,
    get_frames_from_batches,
    get_next_global_index,
    get_sub_frame,
    new_frame_id,
    new_track_id,
)
from .host import CanvasHost, Shape, new_shape_id
from .ordering import derive_steps, find_batch_containing, insert_after, move_batch, reconcile_deletion
from .playback import PlaybackEngine, is_stand_in
from .settings import PresentationSettings
from .visibility import get_shape_visibilities

logger = logging.getLogger(__name__)


class PresentationManager(QObject):
    """
    Editing and presentation entry point for one canvas host

    Installs two host hooks:
    - before create: gives duplicated frames a fresh identity and attaches a
      camera cue to new slides
    - after delete: repairs the ordering and chains around a deleted frame

    Signals:
        presentation_mode_changed(bool): Presentation mode entered or left
    """

    presentation_mode_changed = pyqtSignal(bool)

    def __init__(self, host: CanvasHost, settings: Optional[PresentationSettings] = None, parent=None):
        super().__init__(parent)
        self.host = host
        self.settings = settings or PresentationSettings()
        self.playback = PlaybackEngine(host, self.get_ordered_steps, self.get_shape_by_frame_id, parent=self)
        self._presentation_mode = False
        self._steps_cache: Optional[Tuple[int, List[Step]]] = None
        self._frame_shapes_cache: Optional[Tuple[int, Dict[str, Shape]]] = None
        self._unregister: List[Callable[[], None]] = [
            host.register_before_create_handler(self._before_create),
            host.register_after_delete_handler(self.reconcile_shape_deletion),
        ]

    def dispose(self):
        """Cancel playback and remove the host hooks."""
        self.playback.cancel()
        for unregister in self._unregister:
            unregister()
        self._unregister = []

    # ----- Derived state -----
    def get_all_frames(self) -> List[Frame]:
        return get_frames(self.host.get_current_page_shapes())

    def get_ordered_steps(self) -> List[Step]:
        """Ordered steps of the current page, recomputed when the host changes."""
        version = self.host.version
        if self._steps_cache is None or self._steps_cache[0] != version:
            self._steps_cache = (version, derive_steps(self.get_all_frames()))
        return self._steps_cache[1]

    def get_total_steps(self) -> int:
        return len(self.get_ordered_steps())

    def get_next_global_index(self) -> int:
        return get_next_global_index(self.get_all_frames())

    def get_shape_by_frame_id(self, frame_id: str) -> Optional[Shape]:
        version = self.host.version
        if self._frame_shapes_cache is None or self._frame_shapes_cache[0] != version:
            index = {}
            for shape in self.host.get_current_page_shapes():
                frame = get_frame(shape)
                if frame is not None:
                    index[frame.id] = shape
            self._frame_shapes_cache = (version, index)
        return self._frame_shapes_cache[1].get(frame_id)

    def get_leaf_shapes(self) -> List[Shape]:
        """Shapes that contain no other shape."""
        shapes = self.host.get_current_page_shapes()
        parent_ids = {s.parent_id for s in shapes if s.parent_id is not None}
        return [s for s in shapes if s.id not in parent_ids]

    # ----- Frame editing -----
    def _new_action(self, action_type: str, duration: Optional[int] = None) -> FrameAction:
        easing = self.settings.default_easing
        return FrameAction(
            type=action_type,
            duration=duration,
            easing=None if easing == DEFAULT_EASING else easing,
        )

    def _write_frame(self, frame: Frame) -> bool:
        shape = self.get_shape_by_frame_id(frame.id)
        if shape is None:
            logger.warning("No shape found for frame %s", frame.id)
            return False
        self.host.update_meta(shape.id, **{FRAME_META_KEY: frame_to_json(frame)})
        return True

    def attach_cue_frame(self, shape_id: str, action: Optional[FrameAction] = None) -> CueFrame:
        """
        Annotate a shape with a cue frame on a new track at the end of the timeline

        Raises:
            MissingShapeError: if the shape does not exist
        """
        self.host.require_shape(shape_id)
        cue_frame = CueFrame(
            id=shape_id,
            track_id=new_track_id(),
            global_index=self.get_next_global_index(),
            action=action or self._new_action(SHAPE_ANIMATION),
        )
        self.host.update_meta(shape_id, **{FRAME_META_KEY: frame_to_json(cue_frame)})
        logger.info("Attached cue frame to %s at step %d", shape_id, cue_frame.global_index)
        return cue_frame

    def update_frame(self, frame: Frame) -> bool:
        """Write an edited frame (duration, easing, ...) back to its shape."""
        return self._write_frame(frame)

    def apply_frame_batches(self, batches: List[FrameBatch]):
        """
        Persist a full set of batches

        Shapes whose frame is not part of ``batches`` lose their annotation.
        """
        new_frames = {f.id: f for f in get_frames_from_batches(batches)}
        for shape in self.host.get_current_page_shapes():
            frame = get_frame(shape)
            if frame is None:
                continue
            new_frame = new_frames.get(frame.id)
            if new_frame is None:
                self.host.update_meta(shape.id, **{FRAME_META_KEY: None})
            elif frame_to_json(new_frame) != shape.meta.get(FRAME_META_KEY):
                self.host.update_meta(shape.id, **{FRAME_META_KEY: frame_to_json(new_frame)})

    def move_batch(self, batch_id: str, target_global_index: int, mode: str = "at"):
        steps = move_batch(self.get_ordered_steps(), batch_id, target_global_index, mode)
        self.apply_frame_batches([batch for step in steps for batch in step])

    def add_cue_frame_after(self, prev_cue: CueFrame) -> Optional[Shape]:
        """
        Clone the shape of ``prev_cue`` into a new batch of the same track,
        played in a new step right after it

        Returns:
            The created shape, or None when ``prev_cue`` has no shape
        """
        prev_shape = self.get_shape_by_frame_id(prev_cue.id)
        if prev_shape is None:
            logger.warning("No shape found for frame %s", prev_cue.id)
            return None

        shape_id = new_shape_id()
        new_cue = CueFrame(
            id=shape_id,
            track_id=prev_cue.track_id,
            global_index=prev_cue.global_index + 1,
            action=self._new_action(prev_cue.action.type, self.settings.new_frame_duration),
        )
        new_batch = FrameBatch(
            id=batch_id_for(new_cue),
            track_id=new_cue.track_id,
            global_index=new_cue.global_index,
            frames=[new_cue],
        )
        steps = insert_after(self.get_ordered_steps(), new_batch, prev_cue.global_index)
        placed = find_batch_containing(steps, new_cue.id)

        new_shape = self._clone_shape(prev_shape, placed.cue_frame, shape_id)
        self.apply_frame_batches([batch for step in steps for batch in step])
        return new_shape

    def add_sub_frame_after(self, prev_frame: Frame) -> Optional[Shape]:
        """
        Clone the shape of ``prev_frame`` into a sub frame chained right after it

        A sub frame that followed ``prev_frame`` is relinked after the new one.
        """
        prev_shape = self.get_shape_by_frame_id(prev_frame.id)
        if prev_shape is None:
            logger.warning("No shape found for frame %s", prev_frame.id)
            return None

        successors = self._successors_of(prev_frame.id)
        shape_id = new_shape_id()
        new_sub = SubFrame(
            id=shape_id,
            prev_frame_id=prev_frame.id,
            action=self._new_action(prev_frame.action.type, self.settings.new_frame_duration),
        )
        new_shape = self._clone_shape(prev_shape, new_sub, shape_id)
        self._relink(successors, new_sub.id)
        return new_shape

    def _successors_of(self, frame_id: str) -> List[Tuple[Shape, SubFrame]]:
        result = []
        for shape in self.host.get_current_page_shapes():
            sub = get_sub_frame(shape)
            if sub is not None and sub.prev_frame_id == frame_id:
                result.append((shape, sub))
        return result

    def _relink(self, successors: List[Tuple[Shape, SubFrame]], prev_frame_id: str):
        for shape, sub in successors:
            relinked = replace(sub, prev_frame_id=prev_frame_id)
            self.host.update_meta(shape.id, **{FRAME_META_KEY: frame_to_json(relinked)})

    def _clone_shape(self, original: Shape, frame: Frame, shape_id: str) -> Shape:
        dx, dy = self.settings.copied_shape_offset
        root = original.copy()
        root.id = shape_id
        root.x += dx
        root.y += dy
        root.meta = {FRAME_META_KEY: frame_to_json(frame)}
        created = self.host.create_shape(root)
        for child in self.host.get_children(original.id):
            self._clone_subtree(child, created.id)
        return created

    def _clone_subtree(self, original: Shape, parent_id: str):
        copied = original.copy()
        copied.id = new_shape_id()
        copied.parent_id = parent_id
        copied.meta = {
            k: v for k, v in original.meta.items()
            if k not in (FRAME_META_KEY, HIDDEN_DURING_ANIMATION_KEY)
        }
        created = self.host.create_shape(copied)
        for child in self.host.get_children(original.id):
            self._clone_subtree(child, created.id)

    # ----- Host hooks -----
    def reconcile_shape_deletion(self, deleted_shape: Shape):
        """Repair ordering and chains after a framed shape was deleted."""
        deleted_frame = get_frame(deleted_shape)
        if deleted_frame is None:
            return
        for frame in reconcile_deletion(deleted_frame, self.get_all_frames()):
            self._write_frame(frame)

    def _before_create(self, shape: Shape) -> Shape:
        if is_stand_in(shape.id):
            return shape
        if HIDDEN_DURING_ANIMATION_KEY in shape.meta:
            shape.meta = {k: v for k, v in shape.meta.items() if k != HIDDEN_DURING_ANIMATION_KEY}
        if shape.type == self.settings.slide_shape_type and shape.meta.get(FRAME_META_KEY) is None:
            return self._attach_slide_cue(shape)
        return self._ensure_unique_frame(shape)

    def _attach_slide_cue(self, shape: Shape) -> Shape:
        steps = self.get_ordered_steps()
        last_camera_batch = next(
            (b for step in reversed(steps) for b in step if b.cue_frame.action.type == CAMERA_ZOOM),
            None,
        )
        cue_frame = CueFrame(
            id=shape.id,
            track_id=last_camera_batch.track_id if last_camera_batch else new_track_id(),
            global_index=len(steps),
            action=FrameAction(
                type=CAMERA_ZOOM,
                duration=self.settings.slide_camera_duration if last_camera_batch else 0,
            ),
        )
        shape.meta = {**shape.meta, FRAME_META_KEY: frame_to_json(cue_frame)}
        logger.info("Attached camera cue to slide %s at step %d", shape.id, cue_frame.global_index)
        return shape

    def _ensure_unique_frame(self, shape: Shape) -> Shape:
        frame = get_frame(shape)
        if frame is None or self.get_shape_by_frame_id(frame.id) is None:
            return shape

        new_id = shape.id if self.get_shape_by_frame_id(shape.id) is None else new_frame_id()
        if isinstance(frame, CueFrame):
            new_frame = CueFrame(
                id=new_id,
                track_id=new_track_id(),
                global_index=self.get_next_global_index(),
                action=frame.action,
            )
        else:
            self._relink(self._successors_of(frame.id), new_id)
            new_frame = SubFrame(id=new_id, prev_frame_id=frame.id, action=frame.action)

        logger.debug("Duplicated frame %s on %s became %s", frame.id, shape.id, new_id)
        shape.meta = {**shape.meta, FRAME_META_KEY: frame_to_json(new_frame)}
        return shape

    # ----- Presentation -----
    @property
    def presentation_mode(self) -> bool:
        return self._presentation_mode

    def enter_presentation_mode(self):
        """Enter presentation mode and replay the current step."""
        if self._presentation_mode:
            return
        self._presentation_mode = True
        self.presentation_mode_changed.emit(True)
        if not self.playback.rerun_step():
            self.playback.move_to(self.get_total_steps() - 1)

    def exit_presentation_mode(self):
        if not self._presentation_mode:
            return
        self.playback.cancel()
        self._presentation_mode = False
        self.presentation_mode_changed.emit(False)

    def move_to(self, index) -> bool:
        return self.playback.move_to(index)

    def next_step(self) -> bool:
        return self.playback.next_step()

    def prev_step(self) -> bool:
        return self.playback.prev_step()

    def rerun_step(self) -> bool:
        return self.playback.rerun_step()

    @property
    def current_step_index(self) -> int:
        return self.playback.current_step_index

    def get_shape_visibilities(self) -> Dict[str, str]:
        """Visibility of every shape at the current step."""
        return get_shape_visibilities(
            self.host,
            self.get_ordered_steps(),
            self.playback.current_step_index,
            slide_type=self.settings.slide_shape_type,
            group_type=self.settings.group_shape_type,
        )
