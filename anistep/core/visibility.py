"""
Visibility state machine

Decides, for a step index, which annotated shapes are shown. At any step each
track shows exactly one shape: the last frame of its most recently reached
batch.
"""

import logging
from typing import Dict, List, Optional

from .frames import CueFrame, SubFrame, Step, get_frame, is_hidden_during_animation
from .host import CanvasHost, Shape
from .ordering import find_batch_containing, latest_batch_in_track

logger = logging.getLogger(__name__)

VISIBLE = "visible"
HIDDEN = "hidden"
INHERIT = "inherit"

SLIDE_SHAPE_TYPE = "slide"
GROUP_SHAPE_TYPE = "group"


def _reached_head(frame_id: str, track_id: str, global_index: int, steps: List[Step], current_index: int) -> bool:
    if global_index > current_index:
        return False
    latest = latest_batch_in_track(steps, track_id, current_index)
    return latest is not None and bool(latest.frames) and latest.last_frame.id == frame_id


def shape_visibility(shape: Shape, steps: List[Step], current_index: int,
                     parent_type: Optional[str] = None,
                     slide_type: str = SLIDE_SHAPE_TYPE,
                     group_type: str = GROUP_SHAPE_TYPE) -> str:
    """
    Visibility verdict for one shape in presentation mode

    Args:
        shape: Shape to classify
        steps: Ordered steps
        current_index: Current step index
        parent_type: Type of the shape's parent, None for page-level shapes

    Returns:
        "visible", "hidden" or "inherit"
    """
    if parent_type == group_type:
        return INHERIT
    if shape.type == slide_type:
        return HIDDEN
    if is_hidden_during_animation(shape):
        return HIDDEN

    frame = get_frame(shape)
    if frame is None:
        return VISIBLE

    if isinstance(frame, CueFrame):
        if _reached_head(frame.id, frame.track_id, frame.global_index, steps, current_index):
            return VISIBLE
        return HIDDEN

    if isinstance(frame, SubFrame):
        batch = find_batch_containing(steps, frame.id)
        if batch is None:
            logger.debug("Sub frame %s is not reachable from any cue frame", frame.id)
            return HIDDEN
        if _reached_head(frame.id, batch.track_id, batch.global_index, steps, current_index):
            return VISIBLE

    return HIDDEN


def get_shape_visibilities(host: CanvasHost, steps: List[Step], current_index: int,
                           slide_type: str = SLIDE_SHAPE_TYPE,
                           group_type: str = GROUP_SHAPE_TYPE) -> Dict[str, str]:
    """Visibility verdict for every shape on the current page."""
    shapes = host.get_current_page_shapes()
    types_by_id = {s.id: s.type for s in shapes}
    return {
        shape.id: shape_visibility(
            shape, steps, current_index,
            parent_type=types_by_id.get(shape.parent_id),
            slide_type=slide_type,
            group_type=group_type,
        )
        for shape in shapes
    }
