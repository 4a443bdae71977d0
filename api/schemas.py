from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from analysis.utils import ClassificationSpec, EvaluationType, Thresholds
from animation.rig import AnimationRig, AnimationType, Axis, Keyframe, RelativeTranslate, RotateAroundJoint


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Exercise catalog wire format (classificationData / animationData) ---


class ThresholdsIn(_CamelModel):
    up: float
    down: float


class ClassificationData(_CamelModel):
    # fewer than three names is accepted; such an exercise never evaluates a frame
    landmarks: List[str]
    thresholds: ThresholdsIn
    evaluation_type: EvaluationType = Field(alias="evaluationType")

    def to_spec(self) -> ClassificationSpec:
        return ClassificationSpec(
            landmarks=tuple(self.landmarks),
            thresholds=Thresholds(up=self.thresholds.up, down=self.thresholds.down),
            evaluation_type=self.evaluation_type,
        )


class RelativeTranslateIn(_CamelModel):
    type: Literal["relative_translate"]
    joint: str
    offset: Tuple[float, float, float]
    relative_to: str = Field(alias="relativeTo")

    def to_transformation(self) -> RelativeTranslate:
        return RelativeTranslate(joint=self.joint, offset=self.offset, relative_to=self.relative_to)


class RotateAroundJointIn(_CamelModel):
    type: Literal["rotate_around_joint"]
    joint: str
    pivot_joint: str = Field(alias="pivotJoint")
    axis: Axis
    angle: float
    distance: float

    def to_transformation(self) -> RotateAroundJoint:
        return RotateAroundJoint(
            joint=self.joint,
            pivot_joint=self.pivot_joint,
            axis=self.axis,
            angle_degrees=self.angle,
            distance=self.distance,
        )


TransformationIn = Annotated[Union[RelativeTranslateIn, RotateAroundJointIn], Field(discriminator="type")]


class KeyframeIn(_CamelModel):
    progress: float = Field(ge=0.0, le=1.0)
    transformations: List[TransformationIn] = Field(default_factory=list)


class AnimationData(_CamelModel):
    base_points: Dict[str, Tuple[float, float, float]] = Field(alias="basePoints")
    keyframes: List[KeyframeIn] = Field(default_factory=list)
    animation_type: AnimationType = Field(AnimationType.OSCILLATING, alias="animationType")

    def to_rig(self) -> AnimationRig:
        """Raises RigConfigurationError for rigs that cannot be animated."""
        return AnimationRig(
            base_points=self.base_points,
            keyframes=tuple(
                Keyframe(
                    progress=kf.progress,
                    transformations=tuple(t.to_transformation() for t in kf.transformations),
                )
                for kf in self.keyframes
            ),
            animation_type=self.animation_type,
        )


class ExerciseDefinition(_CamelModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    classification_data: ClassificationData = Field(alias="classificationData")
    animation_data: Optional[AnimationData] = Field(None, alias="animationData")


# --- Live session ---


class LandmarkIn(BaseModel):
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0


class Viewport(BaseModel):
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class SessionCreateRequest(_CamelModel):
    classification_data: ClassificationData = Field(alias="classificationData")
    target_reps: Optional[int] = Field(None, ge=0)
    facing: Literal["front", "back"] = "front"
    viewport: Optional[Viewport] = None


class SessionResponse(BaseModel):
    session_id: str
    status: str = Field(description="active | completed | ended")
    stage: Optional[str] = None
    reps: int = Field(0, ge=0)
    target_reps: int = Field(0, ge=0)
    completed: bool = False


class PoseMessage(BaseModel):
    pose_landmarks: List[LandmarkIn]
    timestamp: Optional[float] = None


class SegmentOut(BaseModel):
    p1: Dict[str, float]
    p2: Dict[str, float]
    connection: List[int]


class PoseFeedback(BaseModel):
    rep_counts: int
    stage: Optional[str] = None
    accepted: bool
    skipped: Optional[str] = None
    completed: bool = False
    feedback_message: Optional[str] = None
    segments: List[SegmentOut] = Field(default_factory=list)


# --- Stateless rendering ---


class OverlayRequest(BaseModel):
    pose_landmarks: List[LandmarkIn]
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    facing: Literal["front", "back"] = "front"
    full_body: bool = False


class OverlayResponse(BaseModel):
    topology_version: int
    segments: List[SegmentOut]


class AnimationFrameRequest(_CamelModel):
    animation_data: AnimationData = Field(alias="animationData")
    elapsed: float = Field(0.0, ge=0.0)
    progress: Optional[float] = Field(None, ge=0.0, le=1.0)
    width: float = Field(200.0, gt=0)
    height: float = Field(200.0, gt=0)
