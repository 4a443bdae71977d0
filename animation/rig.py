from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union


logger = logging.getLogger(__name__)

Vec3 = Tuple[float, float, float]


class RigConfigurationError(ValueError):
    """Raised at load time for rigs that cannot be animated."""


class AnimationType(str, Enum):
    OSCILLATING = "oscillating"
    LOOP = "loop"


class Axis(str, Enum):
    X = "x"
    Y = "y"
    Z = "z"


@dataclass(frozen=True)
class RelativeTranslate:
    joint: str
    offset: Vec3
    relative_to: str

    @property
    def reference(self) -> str:
        return self.relative_to


@dataclass(frozen=True)
class RotateAroundJoint:
    joint: str
    pivot_joint: str
    axis: Axis
    angle_degrees: float
    distance: float

    @property
    def reference(self) -> str:
        return self.pivot_joint


Transformation = Union[RelativeTranslate, RotateAroundJoint]


@dataclass(frozen=True)
class Keyframe:
    progress: float
    transformations: Tuple[Transformation, ...] = ()

    def by_joint(self) -> Dict[str, Transformation]:
        # a later entry for the same joint wins
        return {trans.joint: trans for trans in self.transformations}


def _finite(values: Iterable[float]) -> bool:
    return all(isinstance(v, (int, float)) and math.isfinite(v) for v in values)


@dataclass(frozen=True)
class AnimationRig:
    """
    Declarative target-motion preview: a base pose plus keyframed joint transformations.

    Construction normalizes joint names to lowercase, sorts keyframes by progress
    and validates the joint dependency graph; invalid rigs raise RigConfigurationError.
    The evaluation order and moving-joint set are computed once here.
    """

    base_points: Mapping[str, Vec3]
    keyframes: Tuple[Keyframe, ...] = ()
    animation_type: AnimationType = AnimationType.OSCILLATING
    evaluation_order: Tuple[str, ...] = field(init=False, default=())
    moving_joints: FrozenSet[str] = field(init=False, default=frozenset())

    def __post_init__(self) -> None:
        try:
            animation_type = AnimationType(self.animation_type)
        except ValueError as exc:
            raise RigConfigurationError(f"unknown animation type {self.animation_type!r}") from exc

        base: Dict[str, Vec3] = {}
        for name, value in self.base_points.items():
            point = tuple(value)
            if len(point) != 3 or not _finite(point):
                raise RigConfigurationError(f"base point {name!r} must be three finite numbers, got {value!r}")
            base[str(name).lower()] = (float(point[0]), float(point[1]), float(point[2]))

        keyframes = tuple(
            sorted((_normalize_keyframe(kf) for kf in self.keyframes), key=lambda kf: kf.progress)
        )

        object.__setattr__(self, "animation_type", animation_type)
        object.__setattr__(self, "base_points", base)
        object.__setattr__(self, "keyframes", keyframes)
        object.__setattr__(self, "evaluation_order", _dependency_order(base, keyframes))
        object.__setattr__(self, "moving_joints", _moving_joints(keyframes))
        logger.debug(
            "rig loaded: %d base points, %d keyframes, order=%s",
            len(base), len(keyframes), ",".join(self.evaluation_order),
        )

    def transforms_for(self, joint: str) -> List[Optional[Transformation]]:
        """Per-keyframe transformation of `joint` (None where a keyframe leaves it alone)."""
        return [kf.by_joint().get(joint) for kf in self.keyframes]


def _normalize_transformation(trans: Transformation) -> Transformation:
    if isinstance(trans, RelativeTranslate):
        offset = tuple(trans.offset)
        if len(offset) != 3 or not _finite(offset):
            raise RigConfigurationError(f"offset for {trans.joint!r} must be three finite numbers")
        return RelativeTranslate(
            joint=trans.joint.lower(),
            offset=(float(offset[0]), float(offset[1]), float(offset[2])),
            relative_to=trans.relative_to.lower(),
        )
    if isinstance(trans, RotateAroundJoint):
        try:
            axis = Axis(str(getattr(trans.axis, "value", trans.axis)).lower())
        except ValueError as exc:
            raise RigConfigurationError(f"rotation axis for {trans.joint!r} must be x, y or z") from exc
        if not _finite((trans.angle_degrees, trans.distance)):
            raise RigConfigurationError(f"angle and distance for {trans.joint!r} must be finite")
        return RotateAroundJoint(
            joint=trans.joint.lower(),
            pivot_joint=trans.pivot_joint.lower(),
            axis=axis,
            angle_degrees=float(trans.angle_degrees),
            distance=float(trans.distance),
        )
    raise TypeError(f"unknown transformation kind: {type(trans).__name__}")


def _normalize_keyframe(kf: Keyframe) -> Keyframe:
    if not _finite((kf.progress,)) or not 0.0 <= kf.progress <= 1.0:
        raise RigConfigurationError(f"keyframe progress must lie in [0, 1], got {kf.progress!r}")
    return Keyframe(
        progress=float(kf.progress),
        transformations=tuple(_normalize_transformation(t) for t in kf.transformations),
    )


def _dependency_order(base: Mapping[str, Vec3], keyframes: Sequence[Keyframe]) -> Tuple[str, ...]:
    """
    Topological order over transformed joints: every joint comes after the joints
    it is positioned from. Ties follow first appearance in the keyframe lists.
    """
    deps: Dict[str, List[str]] = {}
    for kf in keyframes:
        for trans in kf.transformations:
            refs = deps.setdefault(trans.joint, [])
            if trans.reference not in refs:
                refs.append(trans.reference)

    for joint, refs in deps.items():
        for ref in refs:
            if ref not in base and ref not in deps:
                raise RigConfigurationError(
                    f"joint {joint!r} references {ref!r}, which is neither a base point nor animated"
                )

    order: List[str] = []
    state: Dict[str, int] = {}  # 1 = visiting, 2 = done

    def visit(joint: str, path: List[str]) -> None:
        mark = state.get(joint)
        if mark == 2:
            return
        if mark == 1:
            cycle = path[path.index(joint):] + [joint]
            raise RigConfigurationError("joint dependency cycle: " + " -> ".join(cycle))
        state[joint] = 1
        for ref in deps.get(joint, ()):
            if ref in deps:
                visit(ref, path + [joint])
        state[joint] = 2
        order.append(joint)

    for joint in deps:
        visit(joint, [])
    return tuple(order)


def _moving_joints(keyframes: Sequence[Keyframe]) -> FrozenSet[str]:
    moving = set()
    for kf in keyframes:
        for trans in kf.transformations:
            moving.add(trans.joint)
            moving.add(trans.reference)
    return frozenset(moving)
