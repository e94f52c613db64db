import logging

import pytest

from anistep.core.frames import CAMERA_ZOOM, get_cue_frame, get_frame, get_sub_frame
from anistep.core.playback import is_stand_in
from anistep.core.presentation import PresentationManager
from anistep.core.settings import PresentationSettings


def _layout(manager):
    return [[b.frame_ids() for b in step] for step in manager.get_ordered_steps()]


@pytest.fixture()
def deck(canvas, manager, make_shape, cue, sub):
    """Three steps with instantaneous frames: a0 -> a1 on track A, b0 on track B."""
    canvas.create_shape(make_shape("a0", cue("a0", 0, "A"), x=0))
    canvas.create_shape(make_shape("b0", cue("b0", 1, "B"), x=500))
    canvas.create_shape(make_shape("a1", cue("a1", 2, "A"), x=200))
    return manager


def test_ordered_steps_are_memoized_by_version(canvas, deck):
    first = deck.get_ordered_steps()
    assert deck.get_ordered_steps() is first
    canvas.update_shape("b0", x=1)
    assert deck.get_ordered_steps() is not first
    assert deck.get_total_steps() == 3
    assert deck.get_next_global_index() == 3


def test_attach_cue_frame(canvas, deck, make_shape):
    canvas.create_shape(make_shape("new"))
    cf = deck.attach_cue_frame("new")
    assert cf.global_index == 3
    assert get_cue_frame(canvas.get_shape("new")) == cf
    assert deck.get_shape_by_frame_id("new").id == "new"


def test_duplicated_sub_frame_is_chained_after_original(canvas, manager, make_shape, cue, sub):
    canvas.create_shape(make_shape("c", cue("c", 0, "T")))
    canvas.create_shape(make_shape("s", sub("s", "c")))
    canvas.create_shape(make_shape("next", sub("next", "s")))

    canvas.create_shape(make_shape("copy", sub("s", "c")))
    copied = get_sub_frame(canvas.get_shape("copy"))
    assert copied.id != "s"
    assert copied.prev_frame_id == "s"
    assert get_sub_frame(canvas.get_shape("next")).prev_frame_id == copied.id
    assert _layout(manager) == [[["c", "s", copied.id, "next"]]]


def test_duplicated_cue_frame_gets_new_track(canvas, manager, make_shape, cue):
    canvas.create_shape(make_shape("c", cue("c", 0, "T")))
    canvas.create_shape(make_shape("copy", cue("c", 0, "T")))
    copied = get_cue_frame(canvas.get_shape("copy"))
    assert copied.id == "copy"
    assert copied.track_id != "T"
    assert copied.global_index == 1


def test_new_slides_get_camera_cues(canvas, manager, make_shape, cue):
    canvas.create_shape(make_shape("a", cue("a", 0, "A")))
    canvas.create_shape(make_shape("s1", type="slide"))
    canvas.create_shape(make_shape("s2", type="slide"))

    first = get_cue_frame(canvas.get_shape("s1"))
    second = get_cue_frame(canvas.get_shape("s2"))
    assert first.action.type == CAMERA_ZOOM
    assert first.global_index == 1
    assert first.action.duration == 0
    assert second.global_index == 2
    assert second.track_id == first.track_id
    assert second.action.duration == 1000


def test_deleting_cue_shape_reindexes(canvas, deck):
    canvas.delete_shape("b0")
    assert _layout(deck) == [[["a0"]], [["a1"]]]
    assert get_cue_frame(canvas.get_shape("a1")).global_index == 1


def test_deleting_sub_shape_relinks_chain(canvas, manager, make_shape, cue, sub):
    canvas.create_shape(make_shape("c", cue("c", 0, "T")))
    canvas.create_shape(make_shape("a", sub("a", "c")))
    canvas.create_shape(make_shape("b", sub("b", "a")))
    canvas.delete_shape("a")
    assert get_sub_frame(canvas.get_shape("b")).prev_frame_id == "c"
    assert _layout(manager) == [[["c", "b"]]]


def test_add_cue_frame_after(canvas, deck):
    a0 = get_cue_frame(canvas.get_shape("a0"))
    new_shape = deck.add_cue_frame_after(a0)

    assert (new_shape.x, new_shape.y) == (100, 100)
    new_cue = get_cue_frame(canvas.get_shape(new_shape.id))
    assert new_cue.track_id == "A"
    assert new_cue.global_index == 1
    assert new_cue.action.duration == 1000
    assert _layout(deck) == [[["a0"]], [[new_cue.id]], [["b0"]], [["a1"]]]


def test_add_sub_frame_after_relinks_successor(canvas, manager, make_shape, cue, sub):
    canvas.create_shape(make_shape("c", cue("c", 0, "T"), x=10))
    canvas.create_shape(make_shape("s", sub("s", "c")))
    c = get_frame(canvas.get_shape("c"))

    new_shape = manager.add_sub_frame_after(c)
    new_sub = get_sub_frame(canvas.get_shape(new_shape.id))
    assert new_shape.x == 110
    assert new_sub.prev_frame_id == "c"
    assert get_sub_frame(canvas.get_shape("s")).prev_frame_id == new_sub.id
    assert _layout(manager) == [[["c", new_sub.id, "s"]]]


def test_add_frame_after_clones_group_children(canvas, manager, make_shape, cue):
    group = make_shape("g", cue("g", 0, "G"), type="group")
    canvas.create_shape(group)
    canvas.create_shape(make_shape("child", parent_id="g", x=5))

    new_group = manager.add_cue_frame_after(get_cue_frame(canvas.get_shape("g")))
    children = canvas.get_children(new_group.id)
    assert len(children) == 1
    assert children[0].x == 5
    assert get_frame(children[0]) is None


def test_apply_frame_batches_strips_unlisted_frames(canvas, deck):
    steps = deck.get_ordered_steps()
    keep = [b for step in steps for b in step if b.id != "batch-b0"]
    deck.apply_frame_batches(keep)
    assert get_frame(canvas.get_shape("b0")) is None
    assert get_frame(canvas.get_shape("a0")) is not None


def test_move_batch_persists(canvas, deck):
    deck.move_batch("batch-b0", 2, "after")
    assert _layout(deck) == [[["a0"]], [["a1"]], [["b0"]]]
    assert get_cue_frame(canvas.get_shape("b0")).global_index == 2


def test_custom_settings(canvas, make_shape, cue):
    settings = PresentationSettings(new_frame_duration=250, copied_shape_offset=(10, 0), default_easing="linear")
    pm = PresentationManager(canvas, settings)
    try:
        canvas.create_shape(make_shape("a", cue("a", 0, "A")))
        new_shape = pm.add_cue_frame_after(get_cue_frame(canvas.get_shape("a")))
        new_cue = get_cue_frame(canvas.get_shape(new_shape.id))
        assert (new_shape.x, new_shape.y) == (10, 0)
        assert new_cue.action.duration == 250
        assert new_cue.action.easing == "linear"
    finally:
        pm.dispose()


def test_new_frames_take_their_shape_id(canvas, deck, make_shape):
    cue_shape = deck.add_cue_frame_after(get_cue_frame(canvas.get_shape("a0")))
    assert get_cue_frame(canvas.get_shape(cue_shape.id)).id == cue_shape.id

    sub_shape = deck.add_sub_frame_after(get_frame(canvas.get_shape("a1")))
    assert get_sub_frame(canvas.get_shape(sub_shape.id)).id == sub_shape.id

    canvas.create_shape(make_shape("s", type="slide"))
    assert get_cue_frame(canvas.get_shape("s")).id == "s"


def test_copied_shape_drops_hidden_flag(canvas, manager, make_shape, cue):
    canvas.create_shape(make_shape("c", cue("c", 0, "T")))
    copy = make_shape("copy", cue("c", 0, "T"))
    copy.meta["hiddenDuringAnimation"] = True
    canvas.create_shape(copy)

    assert "hiddenDuringAnimation" not in canvas.get_shape("copy").meta
    assert get_cue_frame(canvas.get_shape("copy")).id == "copy"


# ----- Navigation -----
def test_move_to_clamps_and_runs(deck):
    started = []
    deck.playback.step_started.connect(started.append)
    assert deck.move_to(5) is True
    assert deck.current_step_index == 2
    assert started == [2]


def test_move_to_same_index_runs_once(deck):
    started = []
    deck.playback.step_started.connect(started.append)
    deck.move_to(1)
    deck.move_to(1)
    assert started == [1]


def test_move_to_accepts_a_function(deck):
    deck.move_to(lambda current: current + 2)
    assert deck.current_step_index == 2


def test_move_to_without_steps(manager):
    assert manager.move_to(3) is False
    assert manager.current_step_index == 0


def test_next_and_prev_stop_at_the_ends(deck):
    assert deck.prev_step() is False
    assert deck.next_step() is True
    assert deck.next_step() is True
    assert deck.next_step() is False
    assert deck.current_step_index == 2
    assert deck.prev_step() is True
    assert deck.current_step_index == 1


def test_instant_step_leaves_no_trace(canvas, deck):
    history = canvas.history_length
    finished = []
    deck.playback.step_finished.connect(finished.append)

    deck.move_to(2)

    assert finished == [2]
    assert not deck.playback.is_running
    assert canvas.history_length == history
    shapes = canvas.get_current_page_shapes()
    assert not any(is_stand_in(s.id) for s in shapes)
    assert not any(s.meta.get("hiddenDuringAnimation") for s in shapes)
    assert canvas.get_shape("a1").x == 200


def test_run_step_out_of_range(deck):
    assert deck.playback.run_step(deck.get_ordered_steps(), 7) is False


def test_missing_shape_only_aborts_its_batch(canvas, manager, make_shape, cue, caplog):
    canvas.create_shape(make_shape("x0", cue("x0", 0, "X")))
    canvas.create_shape(make_shape("y0", cue("y0", 0, "Y")))
    canvas.create_shape(make_shape("x1", cue("x1", 1, "X")))
    canvas.create_shape(make_shape("y1", cue("y1", 1, "Y")))
    stale = manager.get_ordered_steps()
    canvas.delete_shape("x1")

    finished = []
    manager.playback.step_finished.connect(finished.append)
    with caplog.at_level(logging.WARNING, logger="anistep.core.playback"):
        assert manager.playback.run_step(stale, 1) is True
    assert "Aborting batch batch-x1" in caplog.text
    assert finished == [1]
    assert not canvas.get_shape("y1").meta.get("hiddenDuringAnimation")


def test_visibilities_follow_current_step(deck):
    deck.move_to(1)
    assert deck.get_shape_visibilities() == {"a0": "visible", "b0": "visible", "a1": "hidden"}
    deck.move_to(2)
    assert deck.get_shape_visibilities() == {"a0": "hidden", "b0": "visible", "a1": "visible"}


def test_presentation_mode_reruns_current_step(deck):
    modes, started = [], []
    deck.presentation_mode_changed.connect(modes.append)
    deck.playback.step_started.connect(started.append)

    deck.enter_presentation_mode()
    deck.enter_presentation_mode()
    assert deck.presentation_mode is True
    assert started == [0]
    deck.exit_presentation_mode()
    assert modes == [True, False]
