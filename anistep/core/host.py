"""
Canvas host interface

The presentation core never stores shapes itself. It drives a host that owns
the object store, the camera and the undo history. ``Canvas`` in
``canvas.py`` is the in-memory implementation; an editor integration
provides its own subclass.
"""

from __future__ import annotations

import copy
import uuid
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .frames import AnistepError


class MissingShapeError(AnistepError):
    """Raised when a frame or id refers to a shape that is not on the page."""


@dataclass
class Shape:
    """
    A canvas object

    Attributes:
        id: Unique shape id
        type: Shape kind ("geo", "slide", "group", ...)
        x, y: Position relative to the parent (page when parent_id is None)
        rotation: Rotation in radians relative to the parent
        parent_id: Containing group, or None for page-level shapes
        props: Kind-specific properties; "w" and "h" give the size
        meta: Free-form JSON metadata; holds the frame annotation
        opacity: Opacity (0.0-1.0)
    """
    id: str
    type: str = "geo"
    x: float = 0.0
    y: float = 0.0
    rotation: float = 0.0
    parent_id: Optional[str] = None
    props: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    opacity: float = 1.0

    @property
    def width(self) -> float:
        return float(self.props.get("w", 0))

    @property
    def height(self) -> float:
        return float(self.props.get("h", 0))

    def copy(self) -> 'Shape':
        """Create a deep copy of this shape"""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "x": self.x,
            "y": self.y,
            "rotation": self.rotation,
            "parent_id": self.parent_id,
            "props": copy.deepcopy(self.props),
            "meta": copy.deepcopy(self.meta),
            "opacity": self.opacity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Shape':
        return cls(
            id=data["id"],
            type=data.get("type", "geo"),
            x=data.get("x", 0.0),
            y=data.get("y", 0.0),
            rotation=data.get("rotation", 0.0),
            parent_id=data.get("parent_id"),
            props=dict(data.get("props") or {}),
            meta=dict(data.get("meta") or {}),
            opacity=data.get("opacity", 1.0),
        )


@dataclass
class Bounds:
    """Axis-aligned box in page space."""
    x: float
    y: float
    w: float
    h: float

    @property
    def max_x(self) -> float:
        return self.x + self.w

    @property
    def max_y(self) -> float:
        return self.y + self.h

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.w / 2, self.y + self.h / 2)

    @staticmethod
    def union(boxes: List['Bounds']) -> Optional['Bounds']:
        if not boxes:
            return None
        min_x = min(b.x for b in boxes)
        min_y = min(b.y for b in boxes)
        max_x = max(b.max_x for b in boxes)
        max_y = max(b.max_y for b in boxes)
        return Bounds(min_x, min_y, max_x - min_x, max_y - min_y)


@dataclass
class Camera:
    """Page point shown at the viewport center; ``z`` is the zoom factor."""
    x: float = 0.0
    y: float = 0.0
    z: float = 1.0


def new_shape_id() -> str:
    return f"shape:{uuid.uuid4().hex}"


CreateHandler = Callable[[Shape], Shape]
DeleteHandler = Callable[[Shape], None]


class CanvasHost:
    """
    Primitives the presentation core consumes from its host

    Subclasses override every primitive. Not an ABC: QObject subclasses
    cannot use ABCMeta.
    """

    # ----- Object store -----
    def get_current_page_shapes(self) -> List[Shape]:
        """All shapes on the active page, including group children."""
        raise NotImplementedError

    def get_shape(self, shape_id: str) -> Optional[Shape]:
        raise NotImplementedError

    def create_shape(self, shape: Shape) -> Shape:
        raise NotImplementedError

    def update_shape(self, shape_id: str, **changes) -> Shape:
        raise NotImplementedError

    def delete_shape(self, shape_id: str) -> None:
        raise NotImplementedError

    def get_children(self, shape_id: str) -> List[Shape]:
        raise NotImplementedError

    # ----- Geometry and animation -----
    def get_page_transform(self, shape_id: str) -> Tuple[float, float, float]:
        """(x, y, rotation) of the shape in page space."""
        raise NotImplementedError

    def get_page_bounds(self, shape_id: str) -> Optional[Bounds]:
        raise NotImplementedError

    def animate_shape(self, shape_id: str, x: float, y: float, rotation: float,
                      duration: int = 0, easing: str = "linear", transient: bool = False,
                      props: Optional[Dict[str, Any]] = None) -> None:
        """Interpolate pose and numeric props towards the given values."""
        raise NotImplementedError

    def stop_shape_animation(self, shape_id: str) -> None:
        raise NotImplementedError

    def zoom_to_bounds(self, bounds: Bounds, inset: float = 0, duration: int = 0, easing: str = "linear") -> None:
        raise NotImplementedError

    def stop_camera_animation(self) -> None:
        raise NotImplementedError

    # ----- History -----
    def mark_history_stopping_point(self, name: str = "") -> str:
        raise NotImplementedError

    def bail_to_mark(self, mark_id: str) -> None:
        """Revert and discard every recorded change made after ``mark_id``. The mark stays."""
        raise NotImplementedError

    def undo(self) -> None:
        raise NotImplementedError

    def transient(self) -> AbstractContextManager:
        """Scope whose mutations are never recorded in the undo history."""
        raise NotImplementedError

    # ----- Change tracking -----
    @property
    def version(self) -> int:
        """Counter bumped on every store mutation."""
        raise NotImplementedError

    def register_before_create_handler(self, handler: CreateHandler) -> Callable[[], None]:
        raise NotImplementedError

    def register_after_delete_handler(self, handler: DeleteHandler) -> Callable[[], None]:
        raise NotImplementedError

    # ----- Conveniences built on the primitives -----
    def require_shape(self, shape_id: str) -> Shape:
        shape = self.get_shape(shape_id)
        if shape is None:
            raise MissingShapeError(f"Shape not found: {shape_id}")
        return shape

    def get_parent(self, shape: Shape) -> Optional[Shape]:
        if shape.parent_id is None:
            return None
        return self.get_shape(shape.parent_id)

    def update_meta(self, shape_id: str, **entries) -> Shape:
        """Merge ``entries`` into the shape's meta; a None value removes the key."""
        meta = dict(self.require_shape(shape_id).meta)
        for key, value in entries.items():
            if value is None:
                meta.pop(key, None)
            else:
                meta[key] = value
        return self.update_shape(shape_id, meta=meta)
