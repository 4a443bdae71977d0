from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from analysis.utils import (
    ANIMATION_CYCLE_SECONDS,
    CAMERA_ORBIT_RAD_PER_SEC,
    DEFAULT_PREVIEW_SIZE,
    PERSPECTIVE_FOV,
    PROJECTION_CENTER_Y_OFFSET,
    VIEWPORT_MARGIN,
)
from .rig import AnimationRig, AnimationType, Axis, Keyframe, RelativeTranslate, RotateAroundJoint, Transformation


# Preview skeleton drawn between rig joints (named, unlike the detector topology).
PREVIEW_CONNECTIONS: Tuple[Tuple[str, str], ...] = (
    ("neck", "mid_hip"),
    ("neck", "left_shoulder"), ("left_shoulder", "left_elbow"), ("left_elbow", "left_wrist"),
    ("neck", "right_shoulder"), ("right_shoulder", "right_elbow"), ("right_elbow", "right_wrist"),
    ("mid_hip", "left_hip"), ("left_hip", "left_knee"), ("left_knee", "left_ankle"),
    ("mid_hip", "right_hip"), ("right_hip", "right_knee"), ("right_knee", "right_ankle"),
)


def cycle_progress(
    elapsed: float,
    animation_type: AnimationType = AnimationType.LOOP,
    cycle: float = ANIMATION_CYCLE_SECONDS,
) -> float:
    """
    Map elapsed seconds to keyframe progress.

    loop:        linear sawtooth 0 -> 1 per cycle
    oscillating: (1 - cos(pi * s)) / 2 with s the seconds into the cycle,
                 which eases 0 -> 1 -> 0 over a 2 s cycle
    """
    linear_t = math.fmod(elapsed, cycle)
    if linear_t < 0:
        linear_t += cycle
    if AnimationType(animation_type) is AnimationType.OSCILLATING:
        return (1.0 - math.cos(linear_t * math.pi)) / 2.0
    return linear_t / cycle


def bracket_keyframes(keyframes: Sequence[Keyframe], progress: float) -> Tuple[int, int, float]:
    """Return (start_idx, end_idx, t) for the keyframe span containing `progress`."""
    if not keyframes:
        return 0, 0, 0.0
    start_idx = 0
    for i in range(len(keyframes) - 1, -1, -1):
        if keyframes[i].progress <= progress:
            start_idx = i
            break
    end_idx = min(start_idx + 1, len(keyframes) - 1)
    span = keyframes[end_idx].progress - keyframes[start_idx].progress
    t = (progress - keyframes[start_idx].progress) / span if span > 0 else 0.0
    return start_idx, end_idx, float(t)


def rotate_offset(axis: Axis, angle_degrees: float, distance: float) -> np.ndarray:
    """Rotate the base vector (0, distance, 0) about `axis`."""
    rad = math.radians(angle_degrees)
    cos, sin = math.cos(rad), math.sin(rad)
    x, y, z = 0.0, float(distance), 0.0
    axis = Axis(axis)
    if axis is Axis.X:
        return np.array([x, y * cos - z * sin, y * sin + z * cos])
    if axis is Axis.Y:
        return np.array([x * cos + z * sin, y, -x * sin + z * cos])
    return np.array([x * cos - y * sin, x * sin + y * cos, z])


def _lerp(a, b, t: float):
    return a + (b - a) * t


def _rotate_about(points: Mapping[str, np.ndarray], rot: RotateAroundJoint, angle: float) -> Optional[np.ndarray]:
    pivot = points.get(rot.pivot_joint)
    if pivot is None:
        return None
    return pivot + rotate_offset(rot.axis, angle, rot.distance)


def blend_transform(
    points: Mapping[str, np.ndarray],
    start: Optional[Transformation],
    end: Optional[Transformation],
    t: float,
) -> Optional[np.ndarray]:
    """
    Position of one joint between two keyframes, or None to leave it where it is.

    A rotation facing a translation, or nothing, on the other side is blended
    against a zero-degree rotation about the same pivot. A lone translation is
    blended against the joint's current point (its base position, or where an
    earlier joint in the evaluation order left it).
    """
    if start is None and end is None:
        return None

    if isinstance(start, RelativeTranslate) and isinstance(end, RelativeTranslate):
        ref = points.get(start.relative_to)
        if ref is None:
            return None
        offset = _lerp(np.asarray(start.offset, dtype=float), np.asarray(end.offset, dtype=float), t)
        return ref + offset

    if isinstance(start, RotateAroundJoint) and isinstance(end, RotateAroundJoint):
        return _rotate_about(points, start, _lerp(start.angle_degrees, end.angle_degrees, t))

    if isinstance(end, RotateAroundJoint):
        # start is a translation or absent
        return _rotate_about(points, end, _lerp(0.0, end.angle_degrees, t))

    if isinstance(start, RotateAroundJoint):
        return _rotate_about(points, start, _lerp(start.angle_degrees, 0.0, t))

    trans = start if start is not None else end
    if isinstance(trans, RelativeTranslate):
        ref = points.get(trans.relative_to)
        if ref is None:
            return None
        target = ref + np.asarray(trans.offset, dtype=float)
        current = points.get(trans.joint)
        if current is None:
            return target
        if start is None:
            return _lerp(current, target, t)
        return _lerp(target, current, t)

    raise TypeError(f"unknown transformation kind: {type(trans).__name__}")


class RigPoser:
    """Resolves a rig's 3D joint positions at a given keyframe progress."""

    def __init__(self, rig: AnimationRig) -> None:
        self.rig = rig
        self._base = {name: np.asarray(p, dtype=float) for name, p in rig.base_points.items()}
        self._tracks: Dict[str, List[Optional[Transformation]]] = {
            joint: rig.transforms_for(joint) for joint in rig.evaluation_order
        }

    def pose_at(self, progress: float) -> Dict[str, np.ndarray]:
        points = {name: p.copy() for name, p in self._base.items()}
        if not self.rig.keyframes:
            return points
        start_idx, end_idx, t = bracket_keyframes(self.rig.keyframes, progress)
        for joint in self.rig.evaluation_order:
            track = self._tracks[joint]
            new_point = blend_transform(points, track[start_idx], track[end_idx], t)
            if new_point is not None:
                points[joint] = new_point
        return points


def project_point(
    point: np.ndarray, rotation_y: float, center: Tuple[float, float], fov: float = PERSPECTIVE_FOV
) -> Tuple[float, float, float]:
    """Orbit the camera about Y and apply the perspective divide. Returns (x, y, depth)."""
    cos_y, sin_y = math.cos(rotation_y), math.sin(rotation_y)
    x, y, z = float(point[0]), float(point[1]), float(point[2])
    rotated_x = x * cos_y - z * sin_y
    rotated_z = x * sin_y + z * cos_y
    denom = fov - rotated_z
    perspective = fov / denom if denom != 0 else 1.0
    return (
        rotated_x * perspective + center[0],
        y * perspective + center[1],
        rotated_z,
    )


def fit_to_viewport(
    points: Mapping[str, Tuple[float, float, float]],
    width: float,
    height: float,
    margin: float = VIEWPORT_MARGIN,
) -> Dict[str, Tuple[float, float, float]]:
    """Uniformly scale and center the 2D bounding box of `points` inside the viewport."""
    if not points:
        return {}
    xs = np.array([p[0] for p in points.values()], dtype=float)
    ys = np.array([p[1] for p in points.values()], dtype=float)
    min_x, max_x = float(np.nanmin(xs)), float(np.nanmax(xs))
    min_y, max_y = float(np.nanmin(ys)), float(np.nanmax(ys))
    box_w = (max_x - min_x) or 1.0
    box_h = (max_y - min_y) or 1.0
    scale = min(width / box_w, height / box_h) * margin
    offset_x = (width - box_w * scale) / 2.0 - min_x * scale
    offset_y = (height - box_h * scale) / 2.0 - min_y * scale
    return {
        name: (p[0] * scale + offset_x, p[1] * scale + offset_y, p[2])
        for name, p in points.items()
    }


@dataclass(frozen=True)
class PreviewSegment:
    start: str
    end: str
    p1: Tuple[float, float]
    p2: Tuple[float, float]
    highlighted: bool


@dataclass(frozen=True)
class AnimationFrame:
    elapsed: float
    progress: float
    points: Dict[str, Tuple[float, float, float]]
    radii: Dict[str, float]
    segments: Tuple[PreviewSegment, ...]
    moving_joints: frozenset

    def as_dict(self) -> dict:
        return {
            "elapsed": self.elapsed,
            "progress": self.progress,
            "points": {
                name: {"x": p[0], "y": p[1], "depth": p[2], "radius": self.radii[name],
                       "moving": name in self.moving_joints}
                for name, p in self.points.items()
            },
            "segments": [
                {"start": s.start, "end": s.end,
                 "p1": {"x": s.p1[0], "y": s.p1[1]}, "p2": {"x": s.p2[0], "y": s.p2[1]},
                 "highlighted": s.highlighted}
                for s in self.segments
            ],
        }


def _marker_radius(depth: float, moving: bool, fov: float = PERSPECTIVE_FOV) -> float:
    denom = fov - depth
    perspective = fov / denom if denom != 0 else 1.0
    return max(3.0, 5.0 * perspective) if moving else max(2.0, 4.0 * perspective)


class KeyframeAnimator:
    """
    Produces preview frames for a rig: interpolate, project with an orbiting
    perspective camera, fit to the viewport, and mark the moving body segments.
    """

    def __init__(
        self,
        rig: AnimationRig,
        width: float = DEFAULT_PREVIEW_SIZE[0],
        height: float = DEFAULT_PREVIEW_SIZE[1],
        *,
        connections: Sequence[Tuple[str, str]] = PREVIEW_CONNECTIONS,
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("preview viewport must have positive width and height")
        self.rig = rig
        self.width = float(width)
        self.height = float(height)
        self.connections = tuple(connections)
        self.poser = RigPoser(rig)

    @property
    def moving_joints(self) -> frozenset:
        return self.rig.moving_joints

    def frame_at(self, elapsed: float) -> AnimationFrame:
        progress = cycle_progress(elapsed, self.rig.animation_type)
        return self.frame_at_progress(progress, elapsed=elapsed)

    def frame_at_progress(self, progress: float, *, elapsed: float = 0.0) -> AnimationFrame:
        pose = self.poser.pose_at(progress)
        rotation_y = elapsed * CAMERA_ORBIT_RAD_PER_SEC
        center = (self.width / 2.0, self.height / 2.0 + PROJECTION_CENTER_Y_OFFSET)
        projected = {name: project_point(p, rotation_y, center) for name, p in pose.items()}
        fitted = fit_to_viewport(projected, self.width, self.height)

        moving = self.rig.moving_joints
        radii = {name: _marker_radius(p[2], name in moving) for name, p in fitted.items()}

        segments = []
        for start, end in self.connections:
            p1, p2 = fitted.get(start), fitted.get(end)
            if p1 is None or p2 is None:
                continue
            if not all(math.isfinite(v) for v in (p1[0], p1[1], p2[0], p2[1])):
                continue
            segments.append(
                PreviewSegment(
                    start=start,
                    end=end,
                    p1=(p1[0], p1[1]),
                    p2=(p2[0], p2[1]),
                    highlighted=start in moving and end in moving,
                )
            )

        return AnimationFrame(
            elapsed=float(elapsed),
            progress=float(progress),
            points=fitted,
            radii=radii,
            segments=tuple(segments),
            moving_joints=moving,
        )
