from __future__ import annotations

import math
from typing import Dict, List

from analysis.evaluator import (
    SKIP_EMPTY_FRAME,
    SKIP_MISSING_LANDMARKS,
    SKIP_THROTTLED,
    ExerciseEvaluator,
    analyze_stream,
)
from analysis.utils import ClassificationSpec, EvaluationType, Thresholds
from pose.landmarks import NUM_LANDMARKS, Landmark


L_SHOULDER, L_ELBOW, L_WRIST = 11, 13, 15

SPEC = ClassificationSpec(
    landmarks=("left_shoulder", "left_elbow", "left_wrist"),
    thresholds=Thresholds(up=160.0, down=30.0),
    evaluation_type=EvaluationType.HIGH_TO_LOW,
)


def _arm_frame(elbow_deg: float) -> List[Dict[str, float]]:
    """33 landmarks with the left elbow bent to `elbow_deg`."""
    frame = [{"x": 0.5, "y": 0.5} for _ in range(NUM_LANDMARKS)]
    frame[L_ELBOW] = {"x": 0.5, "y": 0.5}
    frame[L_SHOULDER] = {"x": 0.5, "y": 0.3}
    rad = math.radians(elbow_deg)
    # shoulder direction is -y from the elbow; rotate it by elbow_deg for the wrist
    frame[L_WRIST] = {"x": 0.5 + 0.2 * math.sin(rad), "y": 0.5 - 0.2 * math.cos(rad)}
    return frame


def _to_frame(raw):
    return tuple(Landmark(x=p["x"], y=p["y"]) for p in raw)


def test_arm_frame_geometry():
    from analysis.features import angle

    f = _to_frame(_arm_frame(170.0))
    assert abs(angle(f[L_SHOULDER], f[L_ELBOW], f[L_WRIST]) - 170.0) < 1e-6


def test_process_frame_counts_rep():
    ev = ExerciseEvaluator(SPEC)
    first = ev.process_frame(_to_frame(_arm_frame(170.0)), 0.0)
    second = ev.process_frame(_to_frame(_arm_frame(20.0)), 600.0)

    assert first["skipped"] is None and first["stage"] == "start"
    assert second["rep_event"] == "rep_complete"
    assert ev.counter.snapshot() == {"stage": "end", "reps": 1}


def test_empty_frame_does_not_touch_throttle():
    ev = ExerciseEvaluator(SPEC)
    skipped = ev.process_frame((), 0.0)
    assert skipped["skipped"] == SKIP_EMPTY_FRAME
    assert skipped["accepted"] is False
    assert ev.process_frame(_to_frame(_arm_frame(170.0)), 100.0)["accepted"] is True


def test_missing_landmarks_consume_throttle_slot():
    ev = ExerciseEvaluator(SPEC)
    short = _to_frame(_arm_frame(170.0))[:12]
    missing = ev.process_frame(short, 0.0)
    assert missing["skipped"] == SKIP_MISSING_LANDMARKS

    throttled = ev.process_frame(_to_frame(_arm_frame(170.0)), 200.0)
    assert throttled["skipped"] == SKIP_THROTTLED
    assert throttled["stage"] is None


def test_analyze_stream_summary():
    frames = []
    t = 0.0
    for _ in range(3):
        for deg in (170.0, 170.0, 90.0, 20.0, 20.0):
            frames.append((t, _arm_frame(deg)))
            t += 300.0
    frames.append((t, []))

    out = analyze_stream(iter(frames), SPEC, throttle_ms=500.0)
    summary = out["summary"]

    assert set(out) == {"session_id", "summary", "rep_events"}
    assert summary["frames"] == len(frames)
    assert summary["frames"] == (
        summary["evaluated"] + summary["throttled"] + summary["skipped"]
    )
    assert summary["skipped"] == 1
    assert summary["total_reps"] == len(out["rep_events"])
    for i, rep in enumerate(out["rep_events"], 1):
        assert rep["rep_id"] == i
        assert rep["angle"] < 30.0


def test_analyze_stream_without_throttle_counts_each_cycle():
    frames = []
    for i, deg in enumerate([170.0, 20.0, 170.0, 20.0, 170.0, 20.0]):
        frames.append((i * 10.0, _arm_frame(deg)))
    out = analyze_stream(frames, SPEC, throttle_ms=0.0)
    assert out["summary"]["total_reps"] == 3
    assert out["summary"]["final_stage"] == "end"
    assert [r["frame_index"] for r in out["rep_events"]] == [1, 3, 5]


def test_fewer_than_three_names_skips_every_frame():
    spec = ClassificationSpec(
        landmarks=("left_shoulder", "left_elbow"),
        thresholds=Thresholds(up=160.0, down=30.0),
        evaluation_type=EvaluationType.HIGH_TO_LOW,
    )
    out = analyze_stream([(0.0, _arm_frame(170.0)), (600.0, _arm_frame(20.0))], spec)
    assert out["summary"]["total_reps"] == 0
    assert out["summary"]["skipped"] == 2
