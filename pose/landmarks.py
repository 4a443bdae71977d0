from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0


LandmarkFrame = Tuple[Landmark, ...]

NUM_LANDMARKS = 33

# MediaPipe BlazePose landmark names, in detector index order
LANDMARK_NAMES: Tuple[str, ...] = (
    "nose",
    "left_eye_inner", "left_eye", "left_eye_outer",
    "right_eye_inner", "right_eye", "right_eye_outer",
    "left_ear", "right_ear",
    "mouth_left", "mouth_right",
    "left_shoulder", "right_shoulder",
    "left_elbow", "right_elbow",
    "left_wrist", "right_wrist",
    "left_pinky", "right_pinky",
    "left_index", "right_index",
    "left_thumb", "right_thumb",
    "left_hip", "right_hip",
    "left_knee", "right_knee",
    "left_ankle", "right_ankle",
    "left_heel", "right_heel",
    "left_foot_index", "right_foot_index",
)

LANDMARK_INDEX: Dict[str, int] = {name: idx for idx, name in enumerate(LANDMARK_NAMES)}


def landmark_index(name: Optional[str]) -> Optional[int]:
    """Resolve a landmark name (case-insensitive) to its detector index, or None."""
    if not isinstance(name, str):
        return None
    return LANDMARK_INDEX.get(name.strip().lower())


def _coerce(raw: Any) -> Optional[Landmark]:
    if raw is None:
        return None
    if isinstance(raw, Landmark):
        return raw
    if isinstance(raw, Mapping):
        x, y = raw.get("x"), raw.get("y")
        z = raw.get("z") or 0.0
        vis = raw.get("visibility")
    elif isinstance(raw, (list, tuple, np.ndarray)):
        if len(raw) < 2:
            return None
        x, y = raw[0], raw[1]
        z = raw[2] if len(raw) > 2 else 0.0
        vis = raw[3] if len(raw) > 3 else None
    else:
        x, y = getattr(raw, "x", None), getattr(raw, "y", None)
        z = getattr(raw, "z", 0.0) or 0.0
        vis = getattr(raw, "visibility", None)
    try:
        return Landmark(
            x=float(x),
            y=float(y),
            z=float(z),
            visibility=1.0 if vis is None else float(vis),
        )
    except (TypeError, ValueError):
        return None


def to_landmark_frame(raw_landmarks: Optional[Iterable[Any]]) -> LandmarkFrame:
    """
    Normalize one detector result into an ordered LandmarkFrame.

    Accepts Landmark instances, objects exposing .x/.y/.z (MediaPipe results),
    mappings with x/y/z keys (socket payloads) or [x, y, z] sequences.
    Index order is the detector's contract, so the first malformed entry
    truncates the frame there rather than shifting later indices down.
    At most NUM_LANDMARKS entries are kept.
    """
    if raw_landmarks is None:
        return ()
    frame = []
    for raw in raw_landmarks:
        if len(frame) >= NUM_LANDMARKS:
            break
        lm = _coerce(raw)
        if lm is None:
            break
        frame.append(lm)
    return tuple(frame)


def get_landmark(frame: Sequence[Landmark], index: Optional[int]) -> Optional[Landmark]:
    if index is None or index < 0 or index >= len(frame):
        return None
    return frame[index]


def select_landmarks(
    frame: Sequence[Landmark], names: Sequence[str]
) -> Optional[Tuple[Landmark, Landmark, Landmark]]:
    """
    Pick the joint triple named by `names` out of the frame.

    Returns None unless all three names resolve to indices present in the frame.
    """
    if names is None or len(names) < 3:
        return None
    points = [get_landmark(frame, landmark_index(name)) for name in names[:3]]
    if any(p is None for p in points):
        return None
    return points[0], points[1], points[2]
