from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Optional

import numpy as np

from .utils import EVALUATION_THROTTLE_MS, ClassificationSpec, EvaluationType


logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class Stage(str, Enum):
    START = "start"
    END = "end"


@dataclass(frozen=True)
class RepetitionState:
    stage: Optional[Stage] = None
    reps: int = 0
    last_evaluated_at_ms: Optional[float] = None


class Throttle:
    """Admits at most one tick per `interval_ms`; rejected ticks are dropped, not queued."""

    def __init__(self, interval_ms: float = EVALUATION_THROTTLE_MS, clock: Optional[Clock] = None) -> None:
        if interval_ms < 0:
            raise ValueError("interval_ms must be non-negative")
        self.interval_ms = float(interval_ms)
        self.clock = clock or monotonic_ms
        self.last_admitted_ms: Optional[float] = None

    def reset(self) -> None:
        self.last_admitted_ms = None

    def admit(self, now_ms: Optional[float] = None) -> bool:
        """Check and record in one step so two ticks in the same turn cannot both pass."""
        now = self.clock() if now_ms is None else float(now_ms)
        last = self.last_admitted_ms
        if last is not None and now - last < self.interval_ms:
            return False
        self.last_admitted_ms = now
        return True


def next_state(state: RepetitionState, angle: float, spec: ClassificationSpec) -> RepetitionState:
    """
    Pure transition for one accepted angle sample (degrees).

    high_to_low: above `up` arms the rep, below `down` completes it.
    low_to_high: below `down` arms the rep, above `up` completes it.
    custom:      below `up` arms the rep, above `down` completes it
                 (up/down roles are inverted relative to low_to_high).
    """
    up = spec.thresholds.up
    down = spec.thresholds.down
    kind = spec.evaluation_type

    if kind is EvaluationType.HIGH_TO_LOW:
        arm, complete = angle > up, angle < down
    elif kind is EvaluationType.LOW_TO_HIGH:
        arm, complete = angle < down, angle > up
    elif kind is EvaluationType.CUSTOM:
        arm, complete = angle < up, angle > down
    else:  # pragma: no cover - EvaluationType is closed
        raise TypeError(f"unhandled evaluation type {kind!r}")

    if arm:
        return replace(state, stage=Stage.START)
    if complete and state.stage is Stage.START:
        return replace(state, stage=Stage.END, reps=state.reps + 1)
    return state


class RepetitionCounter:
    """
    Joint-angle repetition FSM with a wall-clock throttle.

    - One angle per tick; ticks closer than the throttle interval are dropped
    - NaN angles pass the throttle but yield no state change
    - Stage and rep count are committed together as one immutable state value
    """

    def __init__(
        self,
        spec: ClassificationSpec,
        *,
        throttle_ms: float = EVALUATION_THROTTLE_MS,
        clock: Optional[Clock] = None,
    ) -> None:
        self.spec = spec
        self.throttle = Throttle(throttle_ms, clock)
        self.state = RepetitionState()

    @property
    def clock(self) -> Clock:
        return self.throttle.clock

    def reset(self) -> None:
        self.state = RepetitionState()
        self.throttle.reset()

    def snapshot(self) -> Dict[str, object]:
        state = self.state
        return {"stage": state.stage.value if state.stage else None, "reps": state.reps}

    def admit(self, now_ms: Optional[float] = None) -> Optional[float]:
        """Run the throttle; returns the tick timestamp if admitted, else None."""
        now = self.clock() if now_ms is None else float(now_ms)
        return now if self.throttle.admit(now) else None

    def apply(self, angle: float, now_ms: float) -> Dict[str, object]:
        """Apply an already-admitted angle sample and return the tick event."""
        prev = self.state
        if np.isfinite(angle):
            new = next_state(prev, float(angle), self.spec)
        else:
            new = prev
        self.state = replace(new, last_evaluated_at_ms=now_ms)

        rep_event = "rep_complete" if self.state.reps > prev.reps else None
        if self.state.stage is not prev.stage:
            logger.debug(
                "stage %s -> %s at %.1f deg (reps=%d)",
                prev.stage.value if prev.stage else None,
                self.state.stage.value if self.state.stage else None,
                angle,
                self.state.reps,
            )
        return self._event(now_ms, True, angle, rep_event)

    def process_angle(self, angle: float, *, now_ms: Optional[float] = None) -> Dict[str, object]:
        """
        Feed one angle sample (degrees).
        Returns an event dict: {timestamp_ms, accepted, rep_event, angle, stage, reps}
        """
        admitted = self.admit(now_ms)
        if admitted is None:
            return self.rejected(angle, now_ms)
        return self.apply(angle, admitted)

    def rejected(self, angle: float, now_ms: Optional[float]) -> Dict[str, object]:
        ts = self.clock() if now_ms is None else float(now_ms)
        return self._event(ts, False, angle, None)

    def _event(self, ts: float, accepted: bool, angle: float, rep_event: Optional[str]) -> Dict[str, object]:
        event: Dict[str, object] = {
            "timestamp_ms": ts,
            "accepted": accepted,
            "rep_event": rep_event,
            "angle": float(angle),
        }
        event.update(self.snapshot())
        return event
