import typing as t

import pytest
from PyQt6.QtCore import QCoreApplication

from anistep.core.canvas import Canvas
from anistep.core.frames import FRAME_META_KEY, CueFrame, FrameAction, SubFrame, frame_to_json
from anistep.core.host import Shape
from anistep.core.presentation import PresentationManager


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture()
def canvas(qapp) -> Canvas:
    return Canvas(viewport_size=(1600, 900))


@pytest.fixture()
def manager(canvas) -> t.Iterator[PresentationManager]:
    pm = PresentationManager(canvas)
    yield pm
    pm.dispose()


@pytest.fixture()
def make_shape():
    def _make(shape_id, frame=None, x=0.0, y=0.0, w=100, h=100, **kwargs) -> Shape:
        meta = {FRAME_META_KEY: frame_to_json(frame)} if frame is not None else {}
        return Shape(id=shape_id, x=x, y=y, props={"w": w, "h": h}, meta=meta, **kwargs)
    return _make


@pytest.fixture()
def cue():
    def _cue(frame_id, global_index, track_id="track-a", duration=None, action_type="shapeAnimation", easing=None):
        return CueFrame(
            id=frame_id,
            track_id=track_id,
            global_index=global_index,
            action=FrameAction(type=action_type, duration=duration, easing=easing),
        )
    return _cue


@pytest.fixture()
def sub():
    def _sub(frame_id, prev_frame_id, duration=None, action_type="shapeAnimation", easing=None):
        return SubFrame(
            id=frame_id,
            prev_frame_id=prev_frame_id,
            action=FrameAction(type=action_type, duration=duration, easing=easing),
        )
    return _sub
