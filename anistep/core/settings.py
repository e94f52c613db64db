"""
Presentation settings - editor defaults saved as JSON
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from .frames import DEFAULT_EASING

logger = logging.getLogger(__name__)


@dataclass
class PresentationSettings:
    """
    Defaults used when frames are created by editing actions

    Attributes:
        default_easing: Easing applied when a frame action has none
        new_frame_duration: Duration (ms) of frames added after an existing one
        copied_shape_offset: Offset of the shape cloned for a new frame
        slide_shape_type: Shape type treated as a slide marker
        group_shape_type: Shape type treated as a group container
        slide_camera_duration: Camera zoom duration (ms) of slide cues after the first
    """
    default_easing: str = DEFAULT_EASING
    new_frame_duration: int = 1000
    copied_shape_offset: Tuple[float, float] = (100, 100)
    slide_shape_type: str = "slide"
    group_shape_type: str = "group"
    slide_camera_duration: int = 1000

    VERSION = "1.0"

    def __post_init__(self):
        if self.new_frame_duration < 0:
            raise ValueError("new_frame_duration must be >= 0")
        if self.slide_camera_duration < 0:
            raise ValueError("slide_camera_duration must be >= 0")
        self.copied_shape_offset = tuple(self.copied_shape_offset)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["copied_shape_offset"] = list(self.copied_shape_offset)
        return {"version": self.VERSION, "settings": data}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PresentationSettings':
        if "version" not in data:
            raise ValueError("Invalid settings: missing version")
        values = data.get("settings", {})
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            logger.debug("Ignoring unknown settings: %s", sorted(unknown))
        return cls(**{k: v for k, v in values.items() if k in known})

    def save(self, file_path: Union[str, Path]):
        """Save settings to a JSON file"""
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info("Saved presentation settings to %s", file_path)

    @classmethod
    def load(cls, file_path: Union[str, Path]) -> 'PresentationSettings':
        """
        Load settings from a JSON file

        A missing file gives the defaults.
        """
        path = Path(file_path)
        if not path.exists():
            logger.info("No settings file at %s, using defaults", path)
            return cls()
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        logger.info("Loaded presentation settings from %s", path)
        return cls.from_dict(data)
