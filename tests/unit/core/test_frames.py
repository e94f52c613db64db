import re

import pytest

from anistep.core.frames import (
    FRAME_META_KEY,
    CueFrame,
    FrameAction,
    FrameBatch,
    FrameFormatError,
    SubFrame,
    frame_from_json,
    frame_to_json,
    get_frame,
    get_frames,
    get_next_global_index,
    is_hidden_during_animation,
    new_track_id,
)
from anistep.core.host import Shape


def test_frame_action_defaults():
    action = FrameAction()
    assert action.type == "shapeAnimation"
    assert action.duration_ms == 0
    assert action.easing_name == "easeInCubic"
    assert action.inset_px == 0.0
    # Unset optional keys are not written
    assert action.to_dict() == {"type": "shapeAnimation"}


def test_cue_frame_json_shape():
    cf = CueFrame(id="f1", track_id="t1", global_index=3, action=FrameAction("cameraZoom", duration=500, inset=12))
    data = frame_to_json(cf)
    assert data == {
        "id": "f1",
        "type": "cue",
        "globalIndex": 3,
        "trackId": "t1",
        "action": {"type": "cameraZoom", "duration": 500, "inset": 12},
    }
    assert frame_from_json(data) == cf


def test_sub_frame_from_json():
    frame = frame_from_json({"id": "s1", "type": "sub", "prevFrameId": "f1", "action": {"type": "shapeAnimation", "easing": "linear"}})
    assert isinstance(frame, SubFrame)
    assert frame.prev_frame_id == "f1"
    assert frame.action.easing_name == "linear"
    assert frame.action.duration is None


@pytest.mark.parametrize("record", [
    "not-a-dict",
    {"type": "cue", "globalIndex": 0, "trackId": "t", "action": {"type": "shapeAnimation"}},
    {"id": "x", "type": "cue", "trackId": "t", "action": {"type": "shapeAnimation"}},
    {"id": "x", "type": "cue", "globalIndex": "1", "trackId": "t", "action": {"type": "shapeAnimation"}},
    {"id": "x", "type": "cue", "globalIndex": True, "trackId": "t", "action": {"type": "shapeAnimation"}},
    {"id": "x", "type": "cue", "globalIndex": 0, "action": {"type": "shapeAnimation"}},
    {"id": "x", "type": "sub", "action": {"type": "shapeAnimation"}},
    {"id": "x", "type": "sub", "prevFrameId": "p"},
    {"id": "x", "type": "sub", "prevFrameId": "p", "action": {"type": "shapeAnimation", "duration": "fast"}},
    {"id": "x", "type": "other", "action": {"type": "shapeAnimation"}},
])
def test_frame_from_json_rejects_malformed(record):
    with pytest.raises(FrameFormatError):
        frame_from_json(record)


def test_get_frame_treats_malformed_as_absent():
    broken = Shape(id="s", meta={FRAME_META_KEY: {"id": "s", "type": "cue"}})
    plain = Shape(id="p")
    good = Shape(id="g", meta={FRAME_META_KEY: frame_to_json(CueFrame("g", "t", 0))})
    assert get_frame(broken) is None
    assert get_frame(plain) is None
    assert [f.id for f in get_frames([broken, plain, good])] == ["g"]


def test_hidden_during_animation_flag():
    assert not is_hidden_during_animation(Shape(id="a"))
    assert is_hidden_during_animation(Shape(id="a", meta={"hiddenDuringAnimation": True}))


def test_next_global_index():
    assert get_next_global_index([]) == 0
    frames = [CueFrame("a", "t1", 0), CueFrame("b", "t2", 4), SubFrame("c", "a")]
    assert get_next_global_index(frames) == 5


def test_new_track_id_is_unique_and_prefixed():
    ids = {new_track_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(re.match(r"^track-\d+-[0-9a-f]{8}$", i) for i in ids)


def test_batch_with_global_index_copies():
    batch = FrameBatch(id="batch-a", track_id="t", global_index=2, frames=[CueFrame("a", "t", 2), SubFrame("b", "a")])
    moved = batch.with_global_index(0)
    assert moved.global_index == 0
    assert moved.cue_frame.global_index == 0
    assert moved.frame_ids() == ["a", "b"]
    # Original untouched
    assert batch.cue_frame.global_index == 2
