from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pose.landmarks import LandmarkFrame, select_landmarks, to_landmark_frame
from .features import angle
from .rep_counter import Clock, RepetitionCounter
from .utils import EVALUATION_THROTTLE_MS, ClassificationSpec


logger = logging.getLogger(__name__)

SKIP_EMPTY_FRAME = "empty_frame"
SKIP_THROTTLED = "throttled"
SKIP_MISSING_LANDMARKS = "missing_landmarks"


class ExerciseEvaluator:
    """
    Turns landmark frames into repetition events for one exercise.

    Order per frame: empty frames are ignored outright, then the throttle runs,
    then the joint triple is resolved. A frame missing one of the joints still
    uses up its throttle slot.
    """

    def __init__(
        self,
        spec: ClassificationSpec,
        *,
        throttle_ms: float = EVALUATION_THROTTLE_MS,
        clock: Optional[Clock] = None,
    ) -> None:
        self.spec = spec
        self.counter = RepetitionCounter(spec, throttle_ms=throttle_ms, clock=clock)

    def reset(self) -> None:
        self.counter.reset()

    def process_frame(self, frame: LandmarkFrame, timestamp_ms: Optional[float] = None) -> Dict[str, object]:
        """
        Evaluate one frame. Never raises on bad landmark data.
        Returns the counter's event dict plus a 'skipped' reason (None when evaluated).
        """
        if not frame:
            event = self.counter.rejected(float("nan"), timestamp_ms)
            event["skipped"] = SKIP_EMPTY_FRAME
            return event

        now = self.counter.admit(timestamp_ms)
        if now is None:
            event = self.counter.rejected(float("nan"), timestamp_ms)
            event["skipped"] = SKIP_THROTTLED
            return event

        triple = select_landmarks(frame, self.spec.landmarks)
        if triple is None:
            logger.debug("joint triple %s not in frame of %d landmarks", self.spec.landmarks, len(frame))
            event = self.counter.rejected(float("nan"), now)
            event["skipped"] = SKIP_MISSING_LANDMARKS
            return event

        a, b, c = triple
        event = self.counter.apply(angle(a, b, c), now)
        event["skipped"] = None
        return event


def analyze_stream(
    frames_iter: Iterable[Tuple[float, Any]],
    spec: ClassificationSpec,
    *,
    throttle_ms: float = EVALUATION_THROTTLE_MS,
) -> Dict[str, object]:
    """
    Analyze a recorded stream of (timestamp_ms, landmarks) pairs and return a JSON-serializable dict.

    Landmarks may be anything to_landmark_frame accepts. Timestamps drive the
    throttle, so replaying a recording reproduces the live count.

    Output structure (example):
    {
      "session_id": "<uuid4>",
      "summary": {"total_reps": 3, "final_stage": "end", "frames": 90,
                  "evaluated": 14, "throttled": 70, "skipped": 6},
      "rep_events": [{"frame_index": 21, "timestamp_ms": 2100.0, "rep_id": 1, "angle": 28.4}, ...]
    }
    """
    evaluator = ExerciseEvaluator(spec, throttle_ms=throttle_ms)

    rep_events: List[Dict[str, object]] = []
    frames = evaluated = throttled = skipped = 0

    for frame_idx, (timestamp_ms, raw) in enumerate(frames_iter):
        frames += 1
        event = evaluator.process_frame(to_landmark_frame(raw), float(timestamp_ms))
        reason = event.get("skipped")
        if reason == SKIP_THROTTLED:
            throttled += 1
        elif reason is not None:
            skipped += 1
        else:
            evaluated += 1

        if event.get("rep_event") == "rep_complete":
            rep_events.append(
                {
                    "frame_index": frame_idx,
                    "timestamp_ms": event["timestamp_ms"],
                    "rep_id": event["reps"],
                    "angle": event["angle"],
                }
            )

    snapshot = evaluator.counter.snapshot()
    summary: Dict[str, object] = {
        "total_reps": int(snapshot["reps"]),
        "final_stage": snapshot["stage"],
        "frames": frames,
        "evaluated": evaluated,
        "throttled": throttled,
        "skipped": skipped,
    }
    logger.info("stream analyzed: %d frames, %d reps", frames, summary["total_reps"])

    return {
        "session_id": str(uuid.uuid4()),
        "summary": summary,
        "rep_events": rep_events,
    }
