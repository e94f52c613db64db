"""
Track & ordering engine

Frames are grouped into batches (one cue frame + its sub frame chain) and the
batches are grouped into steps by global index. All functions here are pure:
they never mutate their inputs and never raise on malformed frame data.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from itertools import groupby
from typing import Dict, List, Optional, Tuple

from .frames import (
    CueFrame,
    Frame,
    FrameAction,
    FrameBatch,
    Step,
    SubFrame,
    batch_id_for,
    get_next_global_index,
    new_track_id,
)

logger = logging.getLogger(__name__)

MOVE_MODES = ("at", "after")


def get_frame_batches(frames: List[Frame]) -> List[FrameBatch]:
    """Walk every cue frame's sub frame chain and build one batch per cue frame.

    Sub frames whose ``prev_frame_id`` does not lead back to a cue frame are
    left out.
    """
    cue_frames: List[CueFrame] = []
    next_by_prev: Dict[str, SubFrame] = {}
    for frame in frames:
        if isinstance(frame, CueFrame):
            cue_frames.append(frame)
        elif isinstance(frame, SubFrame):
            # Two sub frames claiming the same predecessor: keep one deterministically
            existing = next_by_prev.get(frame.prev_frame_id)
            if existing is None or frame.id < existing.id:
                next_by_prev[frame.prev_frame_id] = frame

    batches: List[FrameBatch] = []
    for cue_frame in cue_frames:
        chain: List[Frame] = [cue_frame]
        visited = {cue_frame.id}
        sub_frame = next_by_prev.get(cue_frame.id)
        while sub_frame is not None and sub_frame.id not in visited:
            chain.append(sub_frame)
            visited.add(sub_frame.id)
            sub_frame = next_by_prev.get(sub_frame.id)

        batches.append(FrameBatch(
            id=batch_id_for(cue_frame),
            track_id=cue_frame.track_id,
            global_index=cue_frame.global_index,
            frames=chain,
        ))
    return batches


def _step_sort_key(batch: FrameBatch) -> Tuple[str, str]:
    return (batch.track_id, batch.id)


def get_global_order(batches: List[FrameBatch]) -> List[Step]:
    """Group batches sharing a global index into steps, ascending."""
    ordered = sorted(batches, key=lambda b: (b.global_index, b.track_id, b.id))
    return [list(group) for _, group in groupby(ordered, key=lambda b: b.global_index)]


def derive_steps(frames: List[Frame]) -> List[Step]:
    return get_global_order(get_frame_batches(frames))


def reindex_dense(steps: List[Step]) -> List[Step]:
    """
    Renumber batches to 0..N-1 following the current step order

    Empty steps are dropped. Cue frames are updated along with their batches.
    """
    result: List[Step] = []
    for step in steps:
        if not step:
            continue
        index = len(result)
        result.append(sorted((b.with_global_index(index) for b in step), key=_step_sort_key))
    return result


def _position_after(steps: List[Step], global_index: int) -> int:
    """Insertion position for a new step following ``global_index``."""
    position = 0
    for i, step in enumerate(steps):
        if step and step[0].global_index <= global_index:
            position = i + 1
    return position


def _locate(steps: List[Step], batch_id: str) -> Optional[Tuple[int, FrameBatch]]:
    for position, step in enumerate(steps):
        for batch in step:
            if batch.id == batch_id:
                return position, batch
    return None


def _take(steps: List[Step], batch_id: str) -> Tuple[int, FrameBatch]:
    position, batch = _locate(steps, batch_id)
    steps[position] = [b for b in steps[position] if b.id != batch_id]
    return position, batch


def insert_after(steps: List[Step], new_batch: FrameBatch, after_global_index: int) -> List[Step]:
    """
    Insert ``new_batch`` as a new step right after the step at ``after_global_index``

    Use -1 to insert at the front. Every later batch shifts up by one slot.
    """
    work = [list(step) for step in steps]
    work.insert(_position_after(work, after_global_index), [new_batch])
    return reindex_dense(work)


def move_batch(steps: List[Step], batch_id: str, target_global_index: int, mode: str = "at") -> List[Step]:
    """
    Move one batch to a new position in the timeline

    Args:
        steps: Ordered steps
        batch_id: Batch to move
        target_global_index: Destination step index
        mode: "at" joins the step at the index (or takes its slot when that step
              already holds a batch of the same track); "after" always opens a
              new slot following the index (-1 for the front)

    Returns:
        New dense steps. Batches of the moved batch's track that it would jump
        past are pushed along into intermediate steps, so a track's order never
        inverts.
    """
    if mode not in MOVE_MODES:
        raise ValueError(f"Invalid move mode: {mode}")

    work = [list(step) for step in steps]
    located = _locate(work, batch_id)
    if located is None:
        logger.warning("Batch not found for move: %s", batch_id)
        return reindex_dense(work)

    track_id = located[1].track_id
    track_order = [b.id for step in steps for b in step if b.track_id == track_id]
    _, moving = _take(work, batch_id)

    positions = {step[0].global_index: i for i, step in enumerate(steps) if step}
    if mode == "at" and target_global_index in positions:
        dst = positions[target_global_index]
        if any(b.track_id == moving.track_id for b in work[dst]):
            work.insert(dst, [moving])
        else:
            work[dst].append(moving)
    else:
        dst = _position_after(steps, target_global_index)
        work.insert(dst, [moving])

    own_index = track_order.index(batch_id)

    # Push later batches of the track so they stay after the moved one
    prev_pos = dst
    for sibling_id in track_order[own_index + 1:]:
        pos, _ = _locate(work, sibling_id)
        if pos > prev_pos:
            break
        _, sibling = _take(work, sibling_id)
        prev_pos += 1
        work.insert(prev_pos, [sibling])

    # Push earlier batches of the track so they stay before it
    next_pos, _ = _locate(work, batch_id)
    for sibling_id in reversed(track_order[:own_index]):
        pos, _ = _locate(work, sibling_id)
        if pos < next_pos:
            break
        _, sibling = _take(work, sibling_id)
        work.insert(next_pos, [sibling])

    return reindex_dense(work)


def attach_cue_frame(object_id: str, action: FrameAction, frames: List[Frame]) -> CueFrame:
    """Create a cue frame on a new track, appended at the end of the timeline."""
    return CueFrame(
        id=object_id,
        track_id=new_track_id(),
        global_index=get_next_global_index(frames),
        action=action,
    )


def reconcile_deletion(deleted_frame: Frame, frames: List[Frame]) -> List[Frame]:
    """
    Repair the remaining frames after ``deleted_frame``'s shape is gone

    Returns:
        Frames whose stored annotation must be rewritten
    """
    remaining = [f for f in frames if f.id != deleted_frame.id]

    if isinstance(deleted_frame, CueFrame):
        old_indices = {f.id: f.global_index for f in remaining if isinstance(f, CueFrame)}
        changed: List[Frame] = []
        for step in reindex_dense(derive_steps(remaining)):
            for batch in step:
                cue = batch.cue_frame
                if old_indices.get(cue.id) != cue.global_index:
                    changed.append(cue)
        return changed

    if isinstance(deleted_frame, SubFrame):
        return [
            replace(f, prev_frame_id=deleted_frame.prev_frame_id)
            for f in remaining
            if isinstance(f, SubFrame) and f.prev_frame_id == deleted_frame.id
        ]

    return []


# ----- Lookups shared by playback and visibility -----
def find_batch_containing(steps: List[Step], frame_id: str) -> Optional[FrameBatch]:
    for step in steps:
        for batch in step:
            if any(f.id == frame_id for f in batch.frames):
                return batch
    return None


def latest_batch_in_track(steps: List[Step], track_id: str, up_to_index: int) -> Optional[FrameBatch]:
    """Most recent batch of ``track_id`` among steps[0..up_to_index]."""
    if up_to_index < 0:
        return None
    for step in reversed(steps[:up_to_index + 1]):
        for batch in step:
            if batch.track_id == track_id:
                return batch
    return None


def get_track_ids(steps: List[Step]) -> List[str]:
    return sorted({b.track_id for step in steps for b in step})
