from __future__ import annotations

import json
from pathlib import Path

import pytest

from animation.rig import (
    AnimationRig,
    AnimationType,
    Axis,
    Keyframe,
    RelativeTranslate,
    RigConfigurationError,
    RotateAroundJoint,
)


BASE = {
    "left_shoulder": (0.0, -40.0, 0.0),
    "left_elbow": (0.0, 0.0, 0.0),
    "left_wrist": (0.0, 40.0, 0.0),
}


def _translate(joint, rel, offset=(0.0, 10.0, 0.0)):
    return RelativeTranslate(joint=joint, offset=offset, relative_to=rel)


def test_moving_joints_include_reference():
    rig = AnimationRig(
        base_points=BASE,
        keyframes=(Keyframe(0.0, (_translate("left_wrist", "left_elbow"),)),),
    )
    assert rig.moving_joints == frozenset({"left_wrist", "left_elbow"})


def test_evaluation_order_follows_dependencies():
    # wrist hangs off the elbow, which hangs off the shoulder; listed wrist first
    kf = Keyframe(
        0.0,
        (
            _translate("left_wrist", "left_elbow"),
            _translate("left_elbow", "left_shoulder"),
        ),
    )
    rig = AnimationRig(base_points=BASE, keyframes=(kf,))
    assert rig.evaluation_order == ("left_elbow", "left_wrist")


def test_dependencies_from_later_keyframes_count():
    first = Keyframe(0.0, (_translate("left_wrist", "left_elbow"),))
    last = Keyframe(1.0, (_translate("left_elbow", "left_shoulder"),))
    rig = AnimationRig(base_points=BASE, keyframes=(first, last))
    assert rig.evaluation_order.index("left_elbow") < rig.evaluation_order.index("left_wrist")


def test_cycle_rejected():
    kf = Keyframe(
        0.0,
        (
            _translate("left_wrist", "left_elbow"),
            _translate("left_elbow", "left_wrist"),
        ),
    )
    with pytest.raises(RigConfigurationError, match="cycle"):
        AnimationRig(base_points=BASE, keyframes=(kf,))


def test_undefined_reference_rejected():
    kf = Keyframe(0.0, (_translate("left_wrist", "left_thumb"),))
    with pytest.raises(RigConfigurationError, match="left_thumb"):
        AnimationRig(base_points=BASE, keyframes=(kf,))


def test_names_lowercased_and_keyframes_sorted():
    rig = AnimationRig(
        base_points={"Hip": (0, 0, 0), "KNEE": (0, 1, 0)},
        keyframes=(
            Keyframe(1.0, (RotateAroundJoint("Knee", "HIP", "X", 90, 1),)),
            Keyframe(0.0),
        ),
        animation_type="loop",
    )
    assert set(rig.base_points) == {"hip", "knee"}
    assert [kf.progress for kf in rig.keyframes] == [0.0, 1.0]
    rot = rig.keyframes[1].transformations[0]
    assert rot.joint == "knee" and rot.pivot_joint == "hip" and rot.axis is Axis.X
    assert rig.animation_type is AnimationType.LOOP
    assert rig.transforms_for("knee") == [None, rot]


def test_invalid_values_rejected():
    with pytest.raises(RigConfigurationError):
        AnimationRig(base_points={"hip": (0, 0)})
    with pytest.raises(RigConfigurationError):
        AnimationRig(base_points=BASE, keyframes=(Keyframe(1.5),))
    with pytest.raises(RigConfigurationError):
        AnimationRig(base_points=BASE, animation_type="bounce")
    with pytest.raises(RigConfigurationError):
        AnimationRig(
            base_points=BASE,
            keyframes=(Keyframe(0.0, (RotateAroundJoint("left_wrist", "left_elbow", "w", 10, 1),)),),
        )


def test_last_transform_for_joint_wins():
    kf = Keyframe(
        0.0,
        (
            _translate("left_wrist", "left_elbow", (1.0, 0.0, 0.0)),
            _translate("left_wrist", "left_elbow", (2.0, 0.0, 0.0)),
        ),
    )
    assert kf.by_joint()["left_wrist"].offset == (2.0, 0.0, 0.0)


def test_sample_exercise_rig_loads():
    from api.schemas import ExerciseDefinition

    path = Path(__file__).resolve().parents[1] / "data" / "exercises" / "bicep_curl.json"
    definition = ExerciseDefinition.model_validate(json.loads(path.read_text(encoding="utf-8")))
    rig = definition.animation_data.to_rig()

    assert rig.moving_joints == frozenset({"left_wrist", "left_elbow", "left_shoulder"})
    assert rig.evaluation_order == ("left_elbow", "left_wrist")
    spec = definition.classification_data.to_spec()
    assert spec.landmarks == ("left_shoulder", "left_elbow", "left_wrist")
