from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .landmarks import NUM_LANDMARKS, Landmark, LandmarkFrame


logger = logging.getLogger(__name__)


class PoseDetector:
    """
    Single-person landmark detector using MediaPipe BlazePose.

    One instance is owned by one exercise session and closed when the session
    ends; nothing holds it at module level.

    - Accepts BGR frames (as from OpenCV)
    - Returns a LandmarkFrame of normalized (x, y) plus relative depth z
    - Returns an empty frame when no pose is detected, and a short frame when
      the model delivers fewer than 33 landmarks
    """

    def __init__(
        self,
        model_complexity: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        pose_model: Optional[object] = None,
        smooth_landmarks: bool = True,
    ) -> None:
        """
        If pose_model is provided, it must expose a .process(np.ndarray[R,G,B]) -> result
        where result.pose_landmarks is either None or an object with a .landmark list,
        each item having attributes .x, .y, .z and .visibility.
        """
        self._external_model = pose_model is not None
        self._closed = False
        if pose_model is not None:
            self._pose = pose_model
        else:
            try:
                import mediapipe as mp  # type: ignore
            except Exception as exc:  # pragma: no cover - exercised only when mediapipe missing
                raise ImportError(
                    "mediapipe is required for PoseDetector. Install with `pip install kore-motion[vision]`"
                ) from exc

            self._pose = mp.solutions.pose.Pose(
                model_complexity=model_complexity,
                smooth_landmarks=smooth_landmarks,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )
            logger.info("MediaPipe pose model loaded (complexity=%d)", model_complexity)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the underlying model. Injected models are left to their owner."""
        if self._closed:
            return
        self._closed = True
        if not self._external_model:
            close_fn = getattr(self._pose, "close", None)
            if callable(close_fn):
                close_fn()
            logger.info("MediaPipe pose model released")

    def __enter__(self) -> "PoseDetector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def infer(self, frame_bgr: np.ndarray) -> LandmarkFrame:
        """Run single-person pose detection on a BGR image frame."""
        if self._closed:
            raise RuntimeError("PoseDetector is closed")

        if not isinstance(frame_bgr, np.ndarray) or frame_bgr.ndim < 2:
            raise ValueError("frame_bgr must be an HxWxC numpy array")

        # Convert BGR (OpenCV) -> RGB without requiring cv2
        if frame_bgr.ndim == 3 and frame_bgr.shape[2] >= 3:
            frame_rgb = np.ascontiguousarray(frame_bgr[..., 2::-1])
        else:
            frame_rgb = frame_bgr

        result = self._pose.process(frame_rgb)

        if result is None or getattr(result, "pose_landmarks", None) is None:
            return ()

        landmarks = getattr(result.pose_landmarks, "landmark", None)
        if not landmarks:
            return ()

        frame = []
        for lm in list(landmarks)[:NUM_LANDMARKS]:
            x = float(getattr(lm, "x", np.nan))
            y = float(getattr(lm, "y", np.nan))
            z = float(getattr(lm, "z", 0.0))
            vis = float(getattr(lm, "visibility", 1.0))
            if not (np.isfinite(x) and np.isfinite(y)):
                # Index order is the contract; stop at the first unusable point
                break
            frame.append(
                Landmark(
                    x=x,
                    y=y,
                    z=z if np.isfinite(z) else 0.0,
                    visibility=max(0.0, min(1.0, vis)) if np.isfinite(vis) else 0.0,
                )
            )
        return tuple(frame)
