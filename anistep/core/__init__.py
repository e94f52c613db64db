from .frames import (
    AnistepError,
    FrameFormatError,
    FrameAction,
    CueFrame,
    SubFrame,
    FrameBatch,
    get_frame,
    get_frames,
)
from .host import CanvasHost, MissingShapeError, Shape, Bounds, Camera
from .canvas import Canvas
from .ordering import (
    derive_steps,
    reindex_dense,
    insert_after,
    move_batch,
    attach_cue_frame,
    reconcile_deletion,
)
from .playback import PlaybackEngine
from .visibility import shape_visibility, get_shape_visibilities
from .settings import PresentationSettings
from .presentation import PresentationManager
from .snapshot import CanvasSnapshot, calculate_total_steps
from .storyboard import StoryboardBuilder

__all__ = [
    'AnistepError',
    'FrameFormatError',
    'MissingShapeError',
    'FrameAction',
    'CueFrame',
    'SubFrame',
    'FrameBatch',
    'get_frame',
    'get_frames',
    'CanvasHost',
    'Shape',
    'Bounds',
    'Camera',
    'Canvas',
    'derive_steps',
    'reindex_dense',
    'insert_after',
    'move_batch',
    'attach_cue_frame',
    'reconcile_deletion',
    'PlaybackEngine',
    'shape_visibility',
    'get_shape_visibilities',
    'PresentationSettings',
    'PresentationManager',
    'CanvasSnapshot',
    'calculate_total_steps',
    'StoryboardBuilder',
]
