"""
In-memory canvas host

Keeps shapes, a camera and an undo history in memory and animates shapes and
the camera on the Qt event loop. Used headless (a QCoreApplication is enough)
for tests, snapshot tools and storyboard export.
"""

from __future__ import annotations

import logging
import math
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from PyQt6.QtCore import QEasingCurve, QObject, QVariantAnimation, pyqtSignal

from .host import Bounds, Camera, CanvasHost, CreateHandler, DeleteHandler, Shape

logger = logging.getLogger(__name__)

EASING_CURVES: Dict[str, QEasingCurve.Type] = {
    "linear": QEasingCurve.Type.Linear,
    "easeInQuad": QEasingCurve.Type.InQuad,
    "easeOutQuad": QEasingCurve.Type.OutQuad,
    "easeInOutQuad": QEasingCurve.Type.InOutQuad,
    "easeInCubic": QEasingCurve.Type.InCubic,
    "easeOutCubic": QEasingCurve.Type.OutCubic,
    "easeInOutCubic": QEasingCurve.Type.InOutCubic,
    "easeInQuart": QEasingCurve.Type.InQuart,
    "easeOutQuart": QEasingCurve.Type.OutQuart,
    "easeInOutQuart": QEasingCurve.Type.InOutQuart,
    "easeInQuint": QEasingCurve.Type.InQuint,
    "easeOutQuint": QEasingCurve.Type.OutQuint,
    "easeInOutQuint": QEasingCurve.Type.InOutQuint,
    "easeInSine": QEasingCurve.Type.InSine,
    "easeOutSine": QEasingCurve.Type.OutSine,
    "easeInOutSine": QEasingCurve.Type.InOutSine,
    "easeInExpo": QEasingCurve.Type.InExpo,
    "easeOutExpo": QEasingCurve.Type.OutExpo,
    "easeInOutExpo": QEasingCurve.Type.InOutExpo,
}


def easing_curve(name: str) -> QEasingCurve:
    curve_type = EASING_CURVES.get(name)
    if curve_type is None:
        logger.debug("Unknown easing %r, falling back to linear", name)
        curve_type = QEasingCurve.Type.Linear
    return QEasingCurve(curve_type)


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _interpolate_props(start: Dict[str, Any], target: Optional[Dict[str, Any]], t: float) -> Optional[Dict[str, Any]]:
    if target is None:
        return None
    if t >= 1.0:
        return dict(target)
    result = dict(start)
    for key, value in target.items():
        if _is_number(value) and _is_number(start.get(key)):
            result[key] = _lerp(start[key], value, t)
    return result


@dataclass
class _Change:
    shape_id: str
    before: Optional[Shape]
    after: Optional[Shape]


@dataclass
class _Mark:
    id: str
    name: str


class Canvas(QObject, CanvasHost):
    """
    Reference host implementation

    Every store mutation bumps ``version`` and emits ``changed``. Mutations are
    recorded in the undo history unless made inside ``transient()``.
    """

    changed = pyqtSignal(int)
    camera_changed = pyqtSignal()

    def __init__(self, viewport_size: Tuple[int, int] = (1600, 900), parent=None):
        super().__init__(parent)
        self.viewport_size = viewport_size
        self.camera = Camera()
        self._shapes: Dict[str, Shape] = {}
        self._history: List[Union[_Change, _Mark]] = []
        self._transient_depth = 0
        self._version = 0
        self._before_create_handlers: List[CreateHandler] = []
        self._after_delete_handlers: List[DeleteHandler] = []
        self._shape_animations: Dict[str, QVariantAnimation] = {}
        self._camera_animation: Optional[QVariantAnimation] = None

    # ----- Object store -----
    def get_current_page_shapes(self) -> List[Shape]:
        return [shape.copy() for shape in self._shapes.values()]

    def get_shape(self, shape_id: str) -> Optional[Shape]:
        shape = self._shapes.get(shape_id)
        return shape.copy() if shape is not None else None

    def get_children(self, shape_id: str) -> List[Shape]:
        return [s.copy() for s in self._shapes.values() if s.parent_id == shape_id]

    def create_shape(self, shape: Shape) -> Shape:
        shape = shape.copy()
        for handler in list(self._before_create_handlers):
            shape = handler(shape)
        if shape.id in self._shapes:
            raise ValueError(f"Shape already exists: {shape.id}")
        self._shapes[shape.id] = shape
        self._record(_Change(shape.id, None, shape.copy()))
        return shape.copy()

    def update_shape(self, shape_id: str, **changes) -> Shape:
        shape = self.require_shape(shape_id)
        before = shape.copy()
        for key, value in changes.items():
            if key == "id" or not hasattr(shape, key):
                raise ValueError(f"Cannot update shape attribute: {key}")
            setattr(shape, key, value)
        self._shapes[shape_id] = shape
        self._record(_Change(shape_id, before, shape.copy()))
        return shape.copy()

    def delete_shape(self, shape_id: str) -> None:
        shape = self.require_shape(shape_id)
        for child in self.get_children(shape_id):
            self.delete_shape(child.id)
        self.stop_shape_animation(shape_id)
        del self._shapes[shape_id]
        self._record(_Change(shape_id, shape.copy(), None))
        for handler in list(self._after_delete_handlers):
            handler(shape)

    @property
    def shape_count(self) -> int:
        return len(self._shapes)

    def __contains__(self, shape_id):
        return shape_id in self._shapes

    # ----- Geometry -----
    def get_page_transform(self, shape_id: str) -> Tuple[float, float, float]:
        shape = self.require_shape(shape_id)
        if shape.parent_id is None or shape.parent_id not in self._shapes:
            return (shape.x, shape.y, shape.rotation)
        px, py, pr = self.get_page_transform(shape.parent_id)
        cos_r, sin_r = math.cos(pr), math.sin(pr)
        return (
            px + shape.x * cos_r - shape.y * sin_r,
            py + shape.x * sin_r + shape.y * cos_r,
            pr + shape.rotation,
        )

    def get_page_bounds(self, shape_id: str) -> Optional[Bounds]:
        shape = self.get_shape(shape_id)
        if shape is None:
            return None
        children = self.get_children(shape_id)
        if children:
            return Bounds.union([b for b in (self.get_page_bounds(c.id) for c in children) if b is not None])

        x, y, rotation = self.get_page_transform(shape_id)
        cos_r, sin_r = math.cos(rotation), math.sin(rotation)
        corners = [(0.0, 0.0), (shape.width, 0.0), (shape.width, shape.height), (0.0, shape.height)]
        xs = [x + cx * cos_r - cy * sin_r for cx, cy in corners]
        ys = [y + cx * sin_r + cy * cos_r for cx, cy in corners]
        return Bounds(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def get_viewport_page_bounds(self) -> Bounds:
        """Page-space area currently visible through the camera."""
        vw, vh = self.viewport_size
        w, h = vw / self.camera.z, vh / self.camera.z
        return Bounds(self.camera.x - w / 2, self.camera.y - h / 2, w, h)

    # ----- Animation -----
    def animate_shape(self, shape_id: str, x: float, y: float, rotation: float,
                      duration: int = 0, easing: str = "linear", transient: bool = False,
                      props: Optional[Dict[str, Any]] = None) -> None:
        """
        Move a shape to a page-level pose over ``duration`` ms

        Numeric entries of ``props`` are interpolated, the others are set when
        the animation ends. Each animation tick is applied as its own update;
        with ``transient`` the ticks are kept out of the undo history.
        """
        self.stop_shape_animation(shape_id)
        start = self.require_shape(shape_id)
        target_props = dict(props) if props is not None else None

        if duration <= 0:
            self._apply_pose(shape_id, x, y, rotation, target_props, transient)
            return

        animation = QVariantAnimation(self)
        animation.setStartValue(0.0)
        animation.setEndValue(1.0)
        animation.setDuration(int(duration))
        animation.setEasingCurve(easing_curve(easing))

        def on_value_changed(value):
            if shape_id not in self._shapes:
                self.stop_shape_animation(shape_id)
                return
            t = float(value)
            self._apply_pose(
                shape_id,
                _lerp(start.x, x, t),
                _lerp(start.y, y, t),
                _lerp(start.rotation, rotation, t),
                _interpolate_props(start.props, target_props, t),
                transient,
            )

        def on_finished():
            if self._shape_animations.get(shape_id) is animation:
                del self._shape_animations[shape_id]

        animation.valueChanged.connect(on_value_changed)
        animation.finished.connect(on_finished)
        self._shape_animations[shape_id] = animation
        animation.start()

    def _apply_pose(self, shape_id: str, x: float, y: float, rotation: float,
                    props: Optional[Dict[str, Any]], transient: bool):
        changes: Dict[str, Any] = {"x": x, "y": y, "rotation": rotation}
        if props is not None:
            changes["props"] = props
        if transient:
            with self.transient():
                self.update_shape(shape_id, **changes)
        else:
            self.update_shape(shape_id, **changes)

    def stop_shape_animation(self, shape_id: str) -> None:
        animation = self._shape_animations.pop(shape_id, None)
        if animation is not None:
            animation.stop()

    def zoom_to_bounds(self, bounds: Bounds, inset: float = 0, duration: int = 0, easing: str = "linear") -> None:
        """Center the camera on ``bounds`` and zoom so it fits inside the viewport minus ``inset``."""
        self.stop_camera_animation()
        vw, vh = self.viewport_size
        avail_w = max(1.0, vw - 2 * inset)
        avail_h = max(1.0, vh - 2 * inset)
        if bounds.w > 0 and bounds.h > 0:
            zoom = min(avail_w / bounds.w, avail_h / bounds.h)
        else:
            zoom = self.camera.z
        cx, cy = bounds.center
        target = Camera(cx, cy, zoom)

        if duration <= 0:
            self._set_camera(target)
            return

        start = Camera(self.camera.x, self.camera.y, self.camera.z)
        animation = QVariantAnimation(self)
        animation.setStartValue(0.0)
        animation.setEndValue(1.0)
        animation.setDuration(int(duration))
        animation.setEasingCurve(easing_curve(easing))
        animation.valueChanged.connect(lambda value: self._set_camera(Camera(
            _lerp(start.x, target.x, float(value)),
            _lerp(start.y, target.y, float(value)),
            _lerp(start.z, target.z, float(value)),
        )))
        animation.finished.connect(self._on_camera_animation_finished)
        self._camera_animation = animation
        animation.start()

    def _set_camera(self, camera: Camera):
        self.camera = camera
        self.camera_changed.emit()

    def _on_camera_animation_finished(self):
        self._camera_animation = None

    def stop_camera_animation(self) -> None:
        if self._camera_animation is not None:
            self._camera_animation.stop()
            self._camera_animation = None

    @property
    def is_animating(self) -> bool:
        return bool(self._shape_animations) or self._camera_animation is not None

    # ----- History -----
    @contextmanager
    def transient(self) -> Iterator[None]:
        self._transient_depth += 1
        try:
            yield
        finally:
            self._transient_depth -= 1

    def mark_history_stopping_point(self, name: str = "") -> str:
        mark = _Mark(id=f"mark-{uuid.uuid4().hex[:12]}", name=name)
        self._history.append(mark)
        return mark.id

    def bail_to_mark(self, mark_id: str) -> None:
        if not any(isinstance(e, _Mark) and e.id == mark_id for e in self._history):
            logger.debug("History mark %s is gone, nothing to bail", mark_id)
            return
        while self._history:
            entry = self._history[-1]
            if isinstance(entry, _Mark) and entry.id == mark_id:
                break
            self._history.pop()
            if isinstance(entry, _Change):
                self._revert(entry)

    def undo(self) -> None:
        """Revert the changes recorded since the previous stopping point."""
        reverted = False
        while self._history:
            entry = self._history.pop()
            if isinstance(entry, _Mark):
                if reverted:
                    break
                continue
            self._revert(entry)
            reverted = True

    @property
    def history_length(self) -> int:
        """Number of recorded (undoable) changes."""
        return sum(1 for e in self._history if isinstance(e, _Change))

    def _record(self, change: _Change):
        if self._transient_depth == 0:
            self._history.append(change)
        self._bump()

    def _revert(self, change: _Change):
        if change.before is None:
            self.stop_shape_animation(change.shape_id)
            self._shapes.pop(change.shape_id, None)
        else:
            self._shapes[change.shape_id] = change.before.copy()
        self._bump()

    # ----- Change tracking -----
    @property
    def version(self) -> int:
        return self._version

    def _bump(self):
        self._version += 1
        self.changed.emit(self._version)

    def register_before_create_handler(self, handler: CreateHandler) -> Callable[[], None]:
        self._before_create_handlers.append(handler)
        return lambda: self._before_create_handlers.remove(handler)

    def register_after_delete_handler(self, handler: DeleteHandler) -> Callable[[], None]:
        self._after_delete_handlers.append(handler)
        return lambda: self._after_delete_handlers.remove(handler)

    def __repr__(self):
        return f"Canvas(shapes={len(self._shapes)}, history={self.history_length})"
