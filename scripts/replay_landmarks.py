#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterator, Tuple

from analysis.evaluator import analyze_stream
from api.schemas import ExerciseDefinition


def iter_recording(path: str) -> Iterator[Tuple[float, list]]:
    """
    Yield (timestamp_ms, landmarks) from a JSON-lines recording where each line
    is a pose message: {"timestamp": ms, "pose_landmarks": [...]}.
    Blank lines are skipped.
    """
    with open(path, "r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                msg = json.loads(line)
            except json.JSONDecodeError as exc:
                raise SystemExit(f"{path}:{lineno}: invalid JSON ({exc})") from exc
            yield float(msg["timestamp"]), msg.get("pose_landmarks") or []


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay a recorded landmark stream through the rep counter.")
    parser.add_argument("exercise", help="Exercise definition JSON.")
    parser.add_argument("recording", help="JSON-lines file of pose messages.")
    parser.add_argument("--throttle-ms", type=float, default=500.0)
    parser.add_argument("--output", help="Write the result JSON here instead of stdout.")
    args = parser.parse_args()

    exercise = ExerciseDefinition.model_validate_json(Path(args.exercise).read_text(encoding="utf-8"))
    result = analyze_stream(
        iter_recording(args.recording),
        exercise.classification_data.to_spec(),
        throttle_ms=args.throttle_ms,
    )

    text = json.dumps(result, indent=2)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Wrote {args.output} ({result['summary']['total_reps']} reps)")
    else:
        print(text)


if __name__ == "__main__":
    main()
