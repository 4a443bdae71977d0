from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence, Tuple


class EvaluationType(str, Enum):
    HIGH_TO_LOW = "high_to_low"
    LOW_TO_HIGH = "low_to_high"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Thresholds:
    """Angle thresholds in degrees. Their role depends on the evaluation type."""
    up: float
    down: float


@dataclass(frozen=True)
class ClassificationSpec:
    """Per-exercise repetition policy: which joint triple to measure and how to count."""
    landmarks: Tuple[str, ...]
    thresholds: Thresholds
    evaluation_type: EvaluationType

    def __post_init__(self) -> None:
        object.__setattr__(self, "landmarks", tuple(str(n).lower() for n in self.landmarks))
        if self.evaluation_type is None:
            raise ValueError("evaluation type is required")
        object.__setattr__(self, "evaluation_type", EvaluationType(self.evaluation_type))
        for name in ("up", "down"):
            value = getattr(self.thresholds, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValueError(f"threshold '{name}' must be a finite number, got {value!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClassificationSpec":
        """Build from the catalog's `classificationData` object (camelCase keys)."""
        thresholds = data.get("thresholds") or {}
        landmarks: Sequence[str] = data.get("landmarks") or ()
        return cls(
            landmarks=tuple(landmarks),
            thresholds=Thresholds(up=thresholds.get("up"), down=thresholds.get("down")),
            evaluation_type=data.get("evaluationType"),
        )


# Repetition evaluation cadence: ticks closer together than this are dropped.
EVALUATION_THROTTLE_MS = 500.0

# Reps after which a recording session is considered complete.
DEFAULT_TARGET_REPS = 10

# Target-motion preview
ANIMATION_CYCLE_SECONDS = 2.0
CAMERA_ORBIT_RAD_PER_SEC = 0.4
PERSPECTIVE_FOV = 400.0
VIEWPORT_MARGIN = 0.9
# Projection center sits below the middle so the figure stands on the floor.
PROJECTION_CENTER_Y_OFFSET = 50.0
DEFAULT_PREVIEW_SIZE = (200.0, 200.0)
DEFAULT_PREVIEW_FPS = 30.0
