from __future__ import annotations

import numpy as np

from pose.landmarks import (
    LANDMARK_NAMES,
    NUM_LANDMARKS,
    Landmark,
    get_landmark,
    landmark_index,
    select_landmarks,
    to_landmark_frame,
)


class _Obj:
    def __init__(self, x, y, z=0.0, visibility=0.9):
        self.x = x
        self.y = y
        self.z = z
        self.visibility = visibility


def _full_frame():
    return tuple(Landmark(x=i / 40.0, y=i / 40.0) for i in range(NUM_LANDMARKS))


def test_names_cover_detector_indices():
    assert len(LANDMARK_NAMES) == NUM_LANDMARKS == 33
    assert landmark_index("left_shoulder") == 11
    assert landmark_index("Right_Ankle") == 28
    assert landmark_index("tail") is None
    assert landmark_index(None) is None


def test_to_landmark_frame_accepts_mixed_inputs():
    frame = to_landmark_frame(
        [
            {"x": 0.1, "y": 0.2, "z": -0.1, "visibility": 0.5},
            _Obj(0.3, 0.4),
            [0.5, 0.6, 0.1],
            np.array([0.7, 0.8]),
            Landmark(0.9, 1.0),
        ]
    )
    assert len(frame) == 5
    assert frame[0] == Landmark(0.1, 0.2, -0.1, 0.5)
    assert frame[1].visibility == 0.9
    assert frame[2].z == 0.1
    assert frame[3].visibility == 1.0


def test_to_landmark_frame_truncates_at_malformed_entry():
    frame = to_landmark_frame([{"x": 0.1, "y": 0.1}, {"x": "bad"}, {"x": 0.3, "y": 0.3}])
    assert len(frame) == 1


def test_to_landmark_frame_caps_length():
    frame = to_landmark_frame([{"x": 0.0, "y": 0.0}] * 40)
    assert len(frame) == NUM_LANDMARKS
    assert to_landmark_frame(None) == ()


def test_get_landmark_bounds():
    frame = _full_frame()
    assert get_landmark(frame, 0) is frame[0]
    assert get_landmark(frame, 33) is None
    assert get_landmark(frame, -1) is None
    assert get_landmark(frame, None) is None


def test_select_landmarks_resolves_triple():
    frame = _full_frame()
    triple = select_landmarks(frame, ("left_shoulder", "left_elbow", "left_wrist"))
    assert triple == (frame[11], frame[13], frame[15])


def test_select_landmarks_none_when_unresolvable():
    frame = _full_frame()
    assert select_landmarks(frame, ("left_shoulder", "left_elbow")) is None
    assert select_landmarks(frame, ("left_shoulder", "left_elbow", "tail")) is None
    # short frame that stops before the wrist
    assert select_landmarks(frame[:14], ("left_shoulder", "left_elbow", "left_wrist")) is None
