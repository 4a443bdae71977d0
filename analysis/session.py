from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from pose.backend import PoseDetector
from pose.landmarks import LandmarkFrame, to_landmark_frame
from pose.overlay import SKELETON_CONNECTIONS, CameraFacing, Segment, overlay_segments
from .evaluator import ExerciseEvaluator
from .rep_counter import Clock
from .utils import DEFAULT_TARGET_REPS, EVALUATION_THROTTLE_MS, ClassificationSpec


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionUpdate:
    event: Dict[str, object]
    segments: Tuple[Segment, ...]
    snapshot: Dict[str, object]
    landmarks: LandmarkFrame = field(default=(), repr=False)


class ExerciseSession:
    """
    One patient exercise session. Owns its detector handle and repetition
    state machine; nothing here is shared between sessions.

    Every frame is rendered (when a viewport is set) even if it is not counted.
    Close with end() or use as a context manager; a detector passed in is closed
    with the session.
    """

    def __init__(
        self,
        spec: ClassificationSpec,
        *,
        detector: Optional[PoseDetector] = None,
        target_reps: int = DEFAULT_TARGET_REPS,
        facing: CameraFacing = CameraFacing.FRONT,
        viewport: Optional[Tuple[float, float]] = None,
        connections=SKELETON_CONNECTIONS,
        throttle_ms: float = EVALUATION_THROTTLE_MS,
        clock: Optional[Clock] = None,
        session_id: Optional[str] = None,
    ) -> None:
        if target_reps < 0:
            raise ValueError("target_reps must be non-negative")
        self.session_id = session_id or str(uuid.uuid4())
        self.spec = spec
        self.detector = detector
        self.target_reps = int(target_reps)
        self.facing = CameraFacing(facing)
        self.viewport = viewport
        self.connections = tuple(connections)
        self.evaluator = ExerciseEvaluator(spec, throttle_ms=throttle_ms, clock=clock)
        self.active = True
        self.frames = 0
        self.last_active_at = time.monotonic()
        logger.info(
            "session %s started (%s on %s, target=%d)",
            self.session_id, spec.evaluation_type.value, "/".join(spec.landmarks), self.target_reps,
        )

    def __enter__(self) -> "ExerciseSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end()

    @property
    def reps(self) -> int:
        return self.evaluator.counter.state.reps

    @property
    def completed(self) -> bool:
        return self.target_reps > 0 and self.reps >= self.target_reps

    def snapshot(self) -> Dict[str, object]:
        snap = self.evaluator.counter.snapshot()
        snap["completed"] = self.completed
        snap["target_reps"] = self.target_reps
        return snap

    def set_viewport(self, width: float, height: float, facing: Optional[CameraFacing] = None) -> None:
        self.viewport = (float(width), float(height))
        if facing is not None:
            self.facing = CameraFacing(facing)

    def segments(self, frame: LandmarkFrame) -> List[Segment]:
        if self.viewport is None or not frame:
            return []
        width, height = self.viewport
        return overlay_segments(frame, width, height, facing=self.facing, connections=self.connections)

    def process_landmarks(self, raw_landmarks: Any, timestamp_ms: Optional[float] = None) -> SessionUpdate:
        if not self.active:
            raise RuntimeError(f"session {self.session_id} has ended")
        frame = to_landmark_frame(raw_landmarks)
        self.frames += 1
        self.last_active_at = time.monotonic()
        event = self.evaluator.process_frame(frame, timestamp_ms)
        if event.get("rep_event") == "rep_complete":
            logger.info("session %s: rep %d", self.session_id, event["reps"])
        return SessionUpdate(
            event=event,
            segments=tuple(self.segments(frame)),
            snapshot=self.snapshot(),
            landmarks=frame,
        )

    def process_image(self, frame_bgr: np.ndarray, timestamp_ms: Optional[float] = None) -> SessionUpdate:
        if self.detector is None:
            raise RuntimeError("session has no detector; feed landmarks with process_landmarks()")
        if not self.active:
            raise RuntimeError(f"session {self.session_id} has ended")
        return self.process_landmarks(self.detector.infer(frame_bgr), timestamp_ms)

    def end(self) -> Dict[str, object]:
        """Stop accepting frames, release the detector and return the final snapshot."""
        if self.active:
            self.active = False
            if self.detector is not None:
                self.detector.close()
            logger.info("session %s ended after %d frames with %d reps", self.session_id, self.frames, self.reps)
        return self.snapshot()
