#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import time
from pathlib import Path

from analysis.session import ExerciseSession
from animation.interpolator import AnimationFrame, KeyframeAnimator
from api.schemas import ExerciseDefinition
from pose.backend import PoseDetector
from pose.overlay import CameraFacing, draw_segments


PREVIEW_SIZE = 150
HIGHLIGHT_BGR = (0, 170, 255)
PLAIN_BGR = (204, 204, 204)


def load_exercise(path: str) -> ExerciseDefinition:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return ExerciseDefinition.model_validate(data)


def draw_preview(cv2, canvas, frame: AnimationFrame, origin: tuple[int, int]) -> None:
    ox, oy = origin
    cv2.rectangle(canvas, (ox, oy), (ox + PREVIEW_SIZE, oy + PREVIEW_SIZE), (55, 41, 31), -1)
    # plain segments first so highlighted ones render on top
    for seg in sorted(frame.segments, key=lambda s: s.highlighted):
        color = HIGHLIGHT_BGR if seg.highlighted else PLAIN_BGR
        width = 3 if seg.highlighted else 2
        p1 = (ox + int(seg.p1[0]), oy + int(seg.p1[1]))
        p2 = (ox + int(seg.p2[0]), oy + int(seg.p2[1]))
        cv2.line(canvas, p1, p2, color, width)
    for name, (x, y, _depth) in frame.points.items():
        color = HIGHLIGHT_BGR if name in frame.moving_joints else PLAIN_BGR
        cv2.circle(canvas, (ox + int(x), oy + int(y)), int(frame.radii[name]), color, -1)


def main() -> None:
    parser = argparse.ArgumentParser(description="Count repetitions live from a webcam.")
    parser.add_argument("exercise", help="Exercise definition JSON (classificationData/animationData).")
    parser.add_argument("--camera", type=int, default=0, help="OpenCV camera index.")
    parser.add_argument("--facing", choices=["front", "back"], default="front")
    parser.add_argument("--target", type=int, default=10, help="Stop after this many repetitions.")
    parser.add_argument("--model-complexity", type=int, default=1, choices=[0, 1, 2])
    args = parser.parse_args()

    try:
        import cv2  # type: ignore
    except ImportError as exc:
        raise SystemExit("OpenCV (cv2) is required. Install with `pip install kore-motion[vision]`") from exc

    exercise = load_exercise(args.exercise)
    animator = None
    if exercise.animation_data is not None:
        animator = KeyframeAnimator(exercise.animation_data.to_rig(), PREVIEW_SIZE, PREVIEW_SIZE)

    cap = cv2.VideoCapture(args.camera)
    if not cap.isOpened():
        raise SystemExit(f"Failed to open camera {args.camera}")

    started = time.monotonic()
    session = ExerciseSession(
        exercise.classification_data.to_spec(),
        detector=PoseDetector(model_complexity=args.model_complexity),
        target_reps=args.target,
        facing=CameraFacing(args.facing),
    )
    try:
        with session:
            while not session.completed:
                ok, frame = cap.read()
                if not ok:
                    break
                height, width = frame.shape[:2]
                session.set_viewport(width, height)
                update = session.process_image(frame, time.monotonic() * 1000.0)
                draw_segments(frame, update.segments)

                if animator is not None:
                    preview = animator.frame_at(time.monotonic() - started)
                    draw_preview(cv2, frame, preview, (width - PREVIEW_SIZE - 10, 10))

                snap = update.snapshot
                cv2.putText(frame, f"Reps: {snap['reps']}", (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.9, (255, 255, 255), 2)
                cv2.putText(frame, f"Stage: {snap['stage'] or '-'}", (10, 60), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2)
                cv2.imshow(exercise.name, frame)
                if cv2.waitKey(1) & 0xFF == ord("q"):
                    break
    finally:
        cap.release()
        cv2.destroyAllWindows()

    print(json.dumps(session.snapshot(), indent=2))


if __name__ == "__main__":
    main()
