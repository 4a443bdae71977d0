from __future__ import annotations

import math

import pytest

from analysis.rep_counter import RepetitionCounter, RepetitionState, Stage, Throttle, next_state
from analysis.utils import ClassificationSpec, EvaluationType, Thresholds


ARM = ("left_shoulder", "left_elbow", "left_wrist")


def _spec(kind: EvaluationType, up: float = 160.0, down: float = 30.0) -> ClassificationSpec:
    return ClassificationSpec(landmarks=ARM, thresholds=Thresholds(up=up, down=down), evaluation_type=kind)


class _FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _feed(counter: RepetitionCounter, angles, step_ms: float = 600.0):
    return [counter.process_angle(a, now_ms=i * step_ms) for i, a in enumerate(angles)]


def test_high_to_low_counts_one_rep():
    counter = RepetitionCounter(_spec(EvaluationType.HIGH_TO_LOW))
    events = _feed(counter, [170.0, 20.0])

    assert events[0]["stage"] == "start"
    assert events[0]["rep_event"] is None
    assert events[1]["rep_event"] == "rep_complete"
    assert counter.snapshot() == {"stage": "end", "reps": 1}


def test_completing_pose_held_does_not_double_count():
    counter = RepetitionCounter(_spec(EvaluationType.HIGH_TO_LOW))
    _feed(counter, [170.0, 20.0, 20.0, 25.0])
    assert counter.state.reps == 1
    assert counter.state.stage is Stage.END


def test_low_to_high_counts_one_rep():
    counter = RepetitionCounter(_spec(EvaluationType.LOW_TO_HIGH))
    _feed(counter, [20.0, 90.0, 170.0])
    assert counter.snapshot() == {"stage": "end", "reps": 1}


def test_complete_without_arm_is_ignored():
    counter = RepetitionCounter(_spec(EvaluationType.LOW_TO_HIGH))
    _feed(counter, [170.0, 175.0])
    assert counter.snapshot() == {"stage": None, "reps": 0}


def test_custom_uses_inverted_threshold_roles():
    spec = _spec(EvaluationType.CUSTOM, up=60.0, down=120.0)
    state = next_state(RepetitionState(), 50.0, spec)  # below up arms
    assert state.stage is Stage.START
    state = next_state(state, 130.0, spec)  # above down completes
    assert state.stage is Stage.END and state.reps == 1


def test_arm_takes_precedence_over_complete():
    # Overlapping thresholds: 100 is both above up and below down for high_to_low
    spec = _spec(EvaluationType.HIGH_TO_LOW, up=90.0, down=110.0)
    state = next_state(RepetitionState(stage=Stage.START, reps=2), 100.0, spec)
    assert state.stage is Stage.START
    assert state.reps == 2


def test_between_thresholds_keeps_state():
    spec = _spec(EvaluationType.HIGH_TO_LOW)
    before = RepetitionState(stage=Stage.START, reps=3)
    assert next_state(before, 90.0, spec) is before


def test_throttle_drops_close_ticks():
    counter = RepetitionCounter(_spec(EvaluationType.HIGH_TO_LOW))
    first = counter.process_angle(170.0, now_ms=0.0)
    dropped = counter.process_angle(20.0, now_ms=300.0)
    later = counter.process_angle(20.0, now_ms=600.0)

    assert first["accepted"] is True
    assert dropped["accepted"] is False
    assert dropped["reps"] == 0
    assert later["accepted"] is True
    assert later["rep_event"] == "rep_complete"


def test_throttle_admits_exact_interval():
    throttle = Throttle(500.0)
    assert throttle.admit(1000.0)
    assert not throttle.admit(1499.0)
    assert throttle.admit(1500.0)
    throttle.reset()
    assert throttle.admit(1501.0)


def test_throttle_rejects_negative_interval():
    with pytest.raises(ValueError):
        Throttle(-1.0)


def test_nan_angle_consumes_tick_without_change():
    counter = RepetitionCounter(_spec(EvaluationType.HIGH_TO_LOW))
    counter.process_angle(170.0, now_ms=0.0)
    ev = counter.process_angle(float("nan"), now_ms=600.0)
    assert ev["accepted"] is True
    assert math.isnan(ev["angle"])
    assert ev["stage"] == "start"
    assert counter.state.last_evaluated_at_ms == 600.0
    # the NaN tick used the slot
    assert counter.process_angle(20.0, now_ms=900.0)["accepted"] is False


def test_injected_clock_drives_throttle():
    clock = _FakeClock(10_000.0)
    counter = RepetitionCounter(_spec(EvaluationType.HIGH_TO_LOW), clock=clock)

    assert counter.process_angle(170.0)["accepted"] is True
    clock.now += 100.0
    assert counter.process_angle(20.0)["accepted"] is False
    clock.now += 500.0
    ev = counter.process_angle(20.0)
    assert ev["accepted"] is True
    assert ev["timestamp_ms"] == 10_600.0
    assert counter.state.reps == 1


def test_reset_clears_state_and_throttle():
    counter = RepetitionCounter(_spec(EvaluationType.HIGH_TO_LOW))
    _feed(counter, [170.0, 20.0])
    counter.reset()
    assert counter.state == RepetitionState()
    assert counter.process_angle(170.0, now_ms=0.0)["accepted"] is True


def test_spec_validation():
    with pytest.raises(ValueError):
        ClassificationSpec(
            landmarks=ARM,
            thresholds=Thresholds(up=float("nan"), down=30.0),
            evaluation_type=EvaluationType.HIGH_TO_LOW,
        )
    spec = ClassificationSpec.from_dict(
        {
            "landmarks": ["LEFT_SHOULDER", "left_elbow", "left_wrist"],
            "thresholds": {"up": 160, "down": 30},
            "evaluationType": "high_to_low",
        }
    )
    assert spec.landmarks == ARM
    assert spec.evaluation_type is EvaluationType.HIGH_TO_LOW


def test_spec_requires_evaluation_type():
    with pytest.raises(ValueError):
        ClassificationSpec.from_dict(
            {"landmarks": list(ARM), "thresholds": {"up": 160, "down": 30}}
        )
