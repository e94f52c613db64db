"""
Frame model - animation annotations attached to canvas shapes

A shape carries at most one frame in ``shape.meta["frame"]``:
- A cue frame starts a track and carries the track's global position
- A sub frame chains after another frame of the same track via ``prev_frame_id``

Frame batches (one cue frame plus its chained sub frames) are reconstructed
on demand and never persisted.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

SHAPE_ANIMATION = "shapeAnimation"
CAMERA_ZOOM = "cameraZoom"
ACTION_TYPES = (SHAPE_ANIMATION, CAMERA_ZOOM)

DEFAULT_EASING = "easeInCubic"

FRAME_META_KEY = "frame"
HIDDEN_DURING_ANIMATION_KEY = "hiddenDuringAnimation"


class AnistepError(Exception):
    """Base class for all errors raised by anistep."""


class FrameFormatError(AnistepError):
    """Raised when a stored annotation is not a valid frame."""


@dataclass
class FrameAction:
    """What happens to a shape when its frame is reached.

    ``duration`` is in milliseconds; ``inset`` only applies to camera zooms.
    """
    type: str = SHAPE_ANIMATION
    duration: Optional[int] = None
    easing: Optional[str] = None
    inset: Optional[float] = None

    @property
    def duration_ms(self) -> int:
        return int(self.duration or 0)

    @property
    def easing_name(self) -> str:
        return self.easing or DEFAULT_EASING

    @property
    def inset_px(self) -> float:
        return float(self.inset or 0)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type}
        if self.duration is not None:
            result["duration"] = self.duration
        if self.easing is not None:
            result["easing"] = self.easing
        if self.inset is not None:
            result["inset"] = self.inset
        return result

    @classmethod
    def from_dict(cls, data: Any) -> 'FrameAction':
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise FrameFormatError(f"Invalid frame action: {data!r}")
        duration = data.get("duration")
        if duration is not None and (isinstance(duration, bool) or not isinstance(duration, (int, float))):
            raise FrameFormatError(f"Invalid frame action duration: {duration!r}")
        inset = data.get("inset")
        if inset is not None and (isinstance(inset, bool) or not isinstance(inset, (int, float))):
            raise FrameFormatError(f"Invalid frame action inset: {inset!r}")
        easing = data.get("easing")
        return cls(
            type=data["type"],
            duration=int(duration) if duration is not None else None,
            easing=str(easing) if easing is not None else None,
            inset=inset,
        )


@dataclass
class CueFrame:
    """Head frame of a track."""
    id: str
    track_id: str
    global_index: int
    action: FrameAction = field(default_factory=FrameAction)
    type: str = field(default="cue", init=False)


@dataclass
class SubFrame:
    """Frame chained right after ``prev_frame_id``."""
    id: str
    prev_frame_id: str
    action: FrameAction = field(default_factory=FrameAction)
    type: str = field(default="sub", init=False)


Frame = Union[CueFrame, SubFrame]


@dataclass
class FrameBatch:
    """A cue frame and its chained sub frames; the unit of global ordering."""
    id: str
    track_id: str
    global_index: int
    frames: List[Frame] = field(default_factory=list)

    @property
    def cue_frame(self) -> CueFrame:
        return self.frames[0]

    @property
    def last_frame(self) -> Frame:
        return self.frames[-1]

    def frame_ids(self) -> List[str]:
        return [f.id for f in self.frames]

    def with_global_index(self, global_index: int) -> 'FrameBatch':
        """Return a copy moved to ``global_index``, cue frame included."""
        cue = replace(self.cue_frame, global_index=global_index)
        return FrameBatch(
            id=self.id,
            track_id=self.track_id,
            global_index=global_index,
            frames=[cue] + list(self.frames[1:]),
        )

    def __repr__(self):
        return f"FrameBatch(id={self.id}, track={self.track_id}, index={self.global_index}, frames={len(self.frames)})"


Step = List[FrameBatch]


# ----- JSON conversion -----
def cue_frame_to_json(cf: CueFrame) -> Dict[str, Any]:
    return {
        "id": cf.id,
        "type": "cue",
        "globalIndex": cf.global_index,
        "trackId": cf.track_id,
        "action": cf.action.to_dict(),
    }


def sub_frame_to_json(sf: SubFrame) -> Dict[str, Any]:
    return {
        "id": sf.id,
        "type": "sub",
        "prevFrameId": sf.prev_frame_id,
        "action": sf.action.to_dict(),
    }


def frame_to_json(frame: Frame) -> Dict[str, Any]:
    if isinstance(frame, CueFrame):
        return cue_frame_to_json(frame)
    if isinstance(frame, SubFrame):
        return sub_frame_to_json(frame)
    raise FrameFormatError(f"Invalid frame type: {type(frame).__name__}")


def frame_from_json(obj: Any) -> Frame:
    """
    Parse a stored frame record

    Raises:
        FrameFormatError: if ``obj`` is not a valid cue or sub frame
    """
    if not isinstance(obj, dict):
        raise FrameFormatError(f"Frame record must be an object: {obj!r}")
    frame_type = obj.get("type")
    frame_id = obj.get("id")
    if not isinstance(frame_id, str) or not frame_id:
        raise FrameFormatError(f"Frame record has no id: {obj!r}")
    action = FrameAction.from_dict(obj.get("action"))

    if frame_type == "cue":
        global_index = obj.get("globalIndex")
        track_id = obj.get("trackId")
        if isinstance(global_index, bool) or not isinstance(global_index, int):
            raise FrameFormatError(f"Cue frame has invalid globalIndex: {obj!r}")
        if not isinstance(track_id, str) or not track_id:
            raise FrameFormatError(f"Cue frame has invalid trackId: {obj!r}")
        return CueFrame(id=frame_id, track_id=track_id, global_index=global_index, action=action)

    if frame_type == "sub":
        prev_frame_id = obj.get("prevFrameId")
        if not isinstance(prev_frame_id, str) or not prev_frame_id:
            raise FrameFormatError(f"Sub frame has invalid prevFrameId: {obj!r}")
        return SubFrame(id=frame_id, prev_frame_id=prev_frame_id, action=action)

    raise FrameFormatError(f"Invalid frame type: {frame_type!r}")


# ----- Shape helpers -----
def get_frame(shape) -> Optional[Frame]:
    """Return the shape's frame, or None when absent or malformed."""
    meta = shape.meta or {}
    record = meta.get(FRAME_META_KEY)
    if record is None:
        return None
    try:
        return frame_from_json(record)
    except FrameFormatError as e:
        logger.debug("Ignoring malformed frame on shape %s: %s", shape.id, e)
        return None


def get_cue_frame(shape) -> Optional[CueFrame]:
    frame = get_frame(shape)
    return frame if isinstance(frame, CueFrame) else None


def get_sub_frame(shape) -> Optional[SubFrame]:
    frame = get_frame(shape)
    return frame if isinstance(frame, SubFrame) else None


def get_frames(shapes) -> List[Frame]:
    return [f for f in (get_frame(shape) for shape in shapes) if f is not None]


def is_hidden_during_animation(shape) -> bool:
    return bool((shape.meta or {}).get(HIDDEN_DURING_ANIMATION_KEY))


# ----- Ids and indices -----
def new_frame_id() -> str:
    return uuid.uuid4().hex


def new_track_id() -> str:
    # Timestamp prefix keeps tracks sorted by creation time
    return f"track-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def batch_id_for(cue_frame: CueFrame) -> str:
    return f"batch-{cue_frame.id}"


def get_next_global_index(frames: List[Frame]) -> int:
    indices = [f.global_index for f in frames if isinstance(f, CueFrame)]
    return max(indices) + 1 if indices else 0


def get_frames_from_batches(batches: List[FrameBatch]) -> List[Frame]:
    return [frame for batch in batches for frame in batch.frames]
