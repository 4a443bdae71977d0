from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .landmarks import Landmark


class CameraFacing(str, Enum):
    FRONT = "front"
    BACK = "back"


# Bump when the canonical connection table changes.
TOPOLOGY_VERSION = 1

# Canonical BlazePose connections drawn over the live camera feed.
SKELETON_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    # Face
    (8, 6), (6, 5), (5, 4), (4, 0), (0, 1), (1, 2), (2, 3), (3, 7), (10, 9),
    # Torso
    (11, 12), (11, 23), (12, 24), (23, 24),
    # Left arm
    (11, 13), (13, 15),
    # Right arm
    (12, 14), (14, 16),
    # Left leg
    (23, 25), (25, 27),
    # Right leg
    (24, 26), (26, 28),
)

# Denser table (hands, heels, feet) for hosts that want the whole body.
# Pass as `connections=` to overlay_segments; it is not the default.
FULL_BODY_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    (0, 1), (1, 2), (2, 3), (3, 7),
    (0, 4), (4, 5), (5, 6), (6, 8),
    (9, 10),
    (11, 12), (11, 13), (13, 15), (15, 17), (15, 19), (15, 21),
    (12, 14), (14, 16), (16, 18), (16, 20), (16, 22),
    (11, 23), (12, 24),
    (23, 24),
    (23, 25), (25, 27), (27, 29), (29, 31),
    (24, 26), (26, 28), (28, 30), (30, 32),
)


@dataclass(frozen=True)
class Segment:
    p1: Tuple[float, float]
    p2: Tuple[float, float]
    connection: Tuple[int, int]

    def as_dict(self) -> dict:
        return {
            "p1": {"x": self.p1[0], "y": self.p1[1]},
            "p2": {"x": self.p2[0], "y": self.p2[1]},
            "connection": list(self.connection),
        }


def _facing(facing) -> CameraFacing:
    return facing if isinstance(facing, CameraFacing) else CameraFacing(str(facing).lower())


def to_screen(
    lm: Landmark, width: float, height: float, facing: CameraFacing = CameraFacing.FRONT
) -> Tuple[float, float]:
    """
    Map a normalized landmark into display pixels.

    The sensor image is rotated 90 degrees relative to the display, so x and y swap.
    Front-camera frames are mirrored horizontally; all frames are flipped vertically.
    """
    sx = lm.y * width
    sy = lm.x * height
    if _facing(facing) is CameraFacing.FRONT:
        sx = width - sx
    sy = height - sy
    return float(sx), float(sy)


def screen_to_normalized(
    sx: float, sy: float, width: float, height: float, facing: CameraFacing = CameraFacing.FRONT
) -> Tuple[float, float]:
    """Inverse of to_screen; returns normalized (x, y)."""
    if width == 0 or height == 0:
        raise ValueError("viewport must have non-zero width and height")
    if _facing(facing) is CameraFacing.FRONT:
        sx = width - sx
    sy = height - sy
    return float(sy / height), float(sx / width)


def overlay_segments(
    frame: Sequence[Optional[Landmark]],
    width: float,
    height: float,
    *,
    facing: CameraFacing = CameraFacing.FRONT,
    connections: Iterable[Tuple[int, int]] = SKELETON_CONNECTIONS,
) -> List[Segment]:
    """Screen-space line segments for every connection whose two endpoints were delivered."""
    facing = _facing(facing)
    segments: List[Segment] = []
    for a, b in connections:
        if a >= len(frame) or b >= len(frame):
            continue
        lma, lmb = frame[a], frame[b]
        if lma is None or lmb is None:
            continue
        segments.append(
            Segment(
                p1=to_screen(lma, width, height, facing),
                p2=to_screen(lmb, width, height, facing),
                connection=(a, b),
            )
        )
    return segments


def draw_segments(
    frame_bgr: np.ndarray,
    segments: Iterable[Segment],
    *,
    line_color: Tuple[int, int, int] = (0, 0, 255),
    thickness: Optional[int] = None,
) -> np.ndarray:
    """Draw overlay segments on the frame (in place) and return it.

    Does not require OpenCV at import; uses it lazily to avoid hard dependency during tests.
    """
    if not isinstance(frame_bgr, np.ndarray) or frame_bgr.ndim != 3:
        return frame_bgr

    try:
        import cv2  # type: ignore
    except ImportError:
        return frame_bgr

    height, width = frame_bgr.shape[:2]
    if thickness is None:
        thickness = max(1, int(round(0.004 * max(width, height))))

    for seg in segments:
        pa = (int(round(seg.p1[0])), int(round(seg.p1[1])))
        pb = (int(round(seg.p2[0])), int(round(seg.p2[1])))
        cv2.line(frame_bgr, pa, pb, line_color, thickness)
    return frame_bgr
