import pytest
from PIL import Image

from anistep.core.storyboard import StoryboardBuilder, step_duration


@pytest.fixture()
def storyboard_deck(canvas, manager, make_shape, cue):
    # a moves right at step 1; the slide marker is never drawn
    canvas.create_shape(make_shape("a", cue("a", 0, "A"), x=0, y=0))
    canvas.create_shape(make_shape("a2", cue("a2", 1, "A", duration=800), x=300, y=0))
    canvas.create_shape(make_shape("slide", type="slide", x=-5000, y=-5000, w=10, h=10))
    return manager


def test_step_duration_uses_longest_batch(storyboard_deck):
    steps = storyboard_deck.get_ordered_steps()
    assert [step_duration(step) for step in steps] == [0, 800, 0]


def test_build_storyboard(canvas, storyboard_deck):
    builder = StoryboardBuilder()
    steps = storyboard_deck.get_ordered_steps()
    images, durations = builder.build_storyboard(canvas, steps)

    assert len(images) == len(steps)
    assert all(img.size == (800, 450) for img in images)
    assert durations == [500, 800, 500]

    # Window spans a (0..100) and a2 (300..400): a's center lands at (115, 225)
    white = (255, 255, 255, 255)
    assert images[0].getpixel((115, 225)) != white
    assert images[1].getpixel((115, 225)) == white
    assert [s.id for s in builder.get_visible_shapes(canvas, steps, 1)] == ["a2"]


def test_export_gif(canvas, storyboard_deck, tmp_path):
    builder = StoryboardBuilder()
    builder.set_output_size(160, 90)
    builder.set_min_frame_ms(200)
    out = tmp_path / "nested" / "storyboard.gif"
    builder.export_gif(canvas, storyboard_deck.get_ordered_steps(), str(out))

    with Image.open(out) as gif:
        assert gif.size == (160, 90)
        assert gif.n_frames >= 2
        assert gif.info.get("duration") == 200


def test_builder_rejects_empty_input(tmp_path):
    builder = StoryboardBuilder()
    with pytest.raises(ValueError):
        builder.save_gif([], [], str(tmp_path / "x.gif"))
    with pytest.raises(ValueError):
        builder.set_output_size(0, 10)
