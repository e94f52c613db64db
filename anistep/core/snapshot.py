"""
Canvas snapshots - save and restore annotated shapes as JSON

A snapshot stores every shape on the page together with its frame annotation,
so a presentation can be reloaded or its steps counted without an editor.
"""

import json
import logging
from typing import Any, Dict, List

from .frames import get_frames
from .host import CanvasHost, Shape
from .ordering import derive_steps

logger = logging.getLogger(__name__)


class CanvasSnapshot:
    """Export/import of the shapes of one page"""

    VERSION = "1.0"

    @staticmethod
    def export_snapshot(host: CanvasHost) -> Dict[str, Any]:
        """
        Export every shape on the current page

        Args:
            host: Canvas host to read from

        Returns:
            Snapshot dictionary
        """
        return {
            "version": CanvasSnapshot.VERSION,
            "shapes": [shape.to_dict() for shape in host.get_current_page_shapes()],
        }

    @staticmethod
    def save_snapshot_to_file(snapshot: Dict[str, Any], file_path: str):
        """
        Save snapshot to JSON file

        Args:
            snapshot: Snapshot dictionary
            file_path: Output file path
        """
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(snapshot, f, indent=2, ensure_ascii=False)
        logger.info("Saved snapshot with %d shapes to %s", len(snapshot.get("shapes", [])), file_path)

    @staticmethod
    def load_snapshot_from_file(file_path: str) -> Dict[str, Any]:
        """
        Load snapshot from JSON file

        Raises:
            ValueError: if the file is not a snapshot
        """
        with open(file_path, 'r', encoding='utf-8') as f:
            snapshot = json.load(f)

        if not isinstance(snapshot, dict) or "version" not in snapshot:
            raise ValueError("Invalid snapshot: missing version")
        if not isinstance(snapshot.get("shapes"), list):
            raise ValueError("Invalid snapshot: missing shapes")

        logger.info("Loaded snapshot with %d shapes from %s", len(snapshot["shapes"]), file_path)
        return snapshot

    @staticmethod
    def get_shapes(snapshot: Dict[str, Any]) -> List[Shape]:
        return [Shape.from_dict(data) for data in snapshot.get("shapes", [])]

    @staticmethod
    def apply_snapshot(snapshot: Dict[str, Any], host: CanvasHost) -> List[Shape]:
        """
        Create the snapshot's shapes on ``host``

        Shapes are created in snapshot order, so parents must come first (as
        ``export_snapshot`` writes them).

        Returns:
            The created shapes
        """
        created = [host.create_shape(shape) for shape in CanvasSnapshot.get_shapes(snapshot)]
        logger.info("Applied snapshot: %d shapes", len(created))
        return created


def calculate_total_steps(snapshot: Dict[str, Any]) -> int:
    """Number of presentation steps stored in a snapshot."""
    return len(derive_steps(get_frames(CanvasSnapshot.get_shapes(snapshot))))
