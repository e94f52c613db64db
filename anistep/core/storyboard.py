"""
Storyboard export - render what each step shows and save it as an animated GIF
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageDraw

from .frames import Step
from .host import Bounds, CanvasHost, Shape
from .visibility import GROUP_SHAPE_TYPE, INHERIT, SLIDE_SHAPE_TYPE, VISIBLE, get_shape_visibilities

logger = logging.getLogger(__name__)

# tldraw's named colors
SHAPE_COLORS: Dict[str, Tuple[int, int, int]] = {
    "black": (29, 29, 29),
    "grey": (173, 181, 189),
    "light-violet": (224, 133, 244),
    "violet": (174, 62, 201),
    "blue": (68, 101, 233),
    "light-blue": (75, 161, 241),
    "yellow": (241, 172, 75),
    "orange": (225, 105, 25),
    "green": (9, 146, 104),
    "light-green": (76, 176, 5),
    "light-red": (248, 119, 119),
    "red": (224, 49, 49),
    "white": (255, 255, 255),
}
DEFAULT_SHAPE_COLOR = SHAPE_COLORS["black"]


def batch_duration(batch) -> int:
    return sum(frame.action.duration_ms for frame in batch.frames)


def step_duration(step: Step) -> int:
    """Time the longest batch of a step takes to play."""
    return max((batch_duration(batch) for batch in step), default=0)


class StoryboardBuilder:
    """Renders one still image per step"""

    def __init__(self):
        self.output_size: Tuple[int, int] = (800, 450)
        self.background_color: Tuple[int, int, int, int] = (255, 255, 255, 255)
        self.margin: int = 20
        self.loop: int = 0
        self.optimize: bool = True
        self.disposal: int = 2
        self.min_frame_ms: int = 500
        self.slide_type: str = SLIDE_SHAPE_TYPE
        self.group_type: str = GROUP_SHAPE_TYPE

    def set_output_size(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid output size: {width}x{height}")
        self.output_size = (width, height)

    def set_background_color(self, r: int, g: int, b: int, a: int = 255):
        self.background_color = (r, g, b, a)

    def set_loop(self, loop: int):
        self.loop = loop

    def set_min_frame_ms(self, min_frame_ms: int):
        """Shortest time a step stays on screen, used for instantaneous steps"""
        self.min_frame_ms = max(0, min_frame_ms)

    def get_visible_shapes(self, host: CanvasHost, steps: List[Step], index: int) -> List[Shape]:
        """Leaf shapes shown at step ``index``; group children follow their group."""
        verdicts = get_shape_visibilities(host, steps, index, slide_type=self.slide_type, group_type=self.group_type)
        shapes = host.get_current_page_shapes()
        by_id = {s.id: s for s in shapes}
        parent_ids = {s.parent_id for s in shapes if s.parent_id is not None}

        def resolve(shape: Shape) -> str:
            verdict = verdicts.get(shape.id)
            while verdict == INHERIT and shape.parent_id in by_id:
                shape = by_id[shape.parent_id]
                verdict = verdicts.get(shape.id)
            return verdict

        return [s for s in shapes if s.id not in parent_ids and resolve(s) == VISIBLE]

    def _page_window(self, host: CanvasHost, shapes_per_step: List[List[Shape]]) -> Optional[Bounds]:
        boxes = []
        for shapes in shapes_per_step:
            for shape in shapes:
                bounds = host.get_page_bounds(shape.id)
                if bounds is not None:
                    boxes.append(bounds)
        return Bounds.union(boxes)

    def render_shapes(self, host: CanvasHost, shapes: List[Shape], window: Optional[Bounds]) -> Image.Image:
        """Draw shapes' page bounds, scaled so ``window`` fills the output."""
        width, height = self.output_size
        image = Image.new('RGBA', self.output_size, self.background_color)
        if window is None or window.w <= 0 or window.h <= 0:
            return image

        avail_w = max(1, width - 2 * self.margin)
        avail_h = max(1, height - 2 * self.margin)
        scale = min(avail_w / window.w, avail_h / window.h)
        offset_x = (width - window.w * scale) / 2
        offset_y = (height - window.h * scale) / 2

        draw = ImageDraw.Draw(image)
        for shape in shapes:
            bounds = host.get_page_bounds(shape.id)
            if bounds is None:
                continue
            box = [
                offset_x + (bounds.x - window.x) * scale,
                offset_y + (bounds.y - window.y) * scale,
                offset_x + (bounds.max_x - window.x) * scale,
                offset_y + (bounds.max_y - window.y) * scale,
            ]
            color = SHAPE_COLORS.get(shape.props.get("color"), DEFAULT_SHAPE_COLOR)
            fill = color + (int(255 * shape.opacity * 0.35),)
            outline = color + (int(255 * shape.opacity),)
            if shape.props.get("geo") == "ellipse":
                draw.ellipse(box, fill=fill, outline=outline, width=2)
            else:
                draw.rectangle(box, fill=fill, outline=outline, width=2)
        return image

    def build_storyboard(self, host: CanvasHost, steps: List[Step]) -> Tuple[List[Image.Image], List[int]]:
        """
        Render every step

        Returns:
            Tuple of (images, durations in ms)
        """
        shapes_per_step = [self.get_visible_shapes(host, steps, i) for i in range(len(steps))]
        window = self._page_window(host, shapes_per_step)

        images = [self.render_shapes(host, shapes, window) for shapes in shapes_per_step]
        durations = [max(self.min_frame_ms, step_duration(step)) for step in steps]
        logger.info("Rendered storyboard: %d steps", len(images))
        return images, durations

    def save_gif(self, frames: List[Image.Image], durations: List[int], output_path: str):
        if not frames:
            raise ValueError("Frame list is empty")

        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        save_kwargs = {
            'format': 'GIF',
            'save_all': True,
            'append_images': frames[1:],
            'duration': durations,
            'loop': self.loop,
            'optimize': self.optimize,
            'disposal': self.disposal
        }

        frames[0].save(output_path, **save_kwargs)
        logger.info("Saved storyboard GIF to %s", output_path)

    def export_gif(self, host: CanvasHost, steps: List[Step], output_path: str):
        """Render every step and save the result as an animated GIF."""
        frames, durations = self.build_storyboard(host, steps)
        self.save_gif(frames, durations, output_path)
