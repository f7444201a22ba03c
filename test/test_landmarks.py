from types import SimpleNamespace

import pytest

from conftest import OPEN_HAND
from gesture_trainer.landmarks import (
    LEFT,
    RIGHT,
    UNKNOWN,
    detection_from_mediapipe,
    hand_from_points,
    normalize_handedness,
)


def _points():
    return [SimpleNamespace(x=x, y=y, z=0.0) for x, y in OPEN_HAND]


def _solutions_result(labels):
    return SimpleNamespace(
        multi_hand_landmarks=[SimpleNamespace(landmark=_points()) for _ in labels],
        multi_handedness=[
            SimpleNamespace(classification=[SimpleNamespace(label=label)]) for label in labels
        ],
    )


def _tasks_result(labels):
    return SimpleNamespace(
        hand_landmarks=[_points() for _ in labels],
        handedness=[[SimpleNamespace(category_name=label)] for label in labels],
    )


def test_solutions_result_is_converted():
    det = detection_from_mediapipe(_solutions_result(["Left", "Right"]), timestamp_ms=42.0)

    assert det.timestamp_ms == 42.0
    assert [h.handedness for h in det.hands] == [LEFT, RIGHT]
    assert det.hands[0].landmarks[8].y == pytest.approx(0.40)


def test_tasks_result_is_converted():
    det = detection_from_mediapipe(_tasks_result(["Right"]))

    assert len(det.hands) == 1
    assert det.hands[0].handedness == RIGHT


def test_mirror_swaps_handedness():
    det = detection_from_mediapipe(_solutions_result(["Left", "Right"]), mirror=True)

    assert [h.handedness for h in det.hands] == [RIGHT, LEFT]


def test_no_hands():
    det = detection_from_mediapipe(SimpleNamespace(multi_hand_landmarks=None, multi_handedness=None))

    assert not det.has_hands
    assert not detection_from_mediapipe(None).has_hands


def test_at_most_two_hands():
    det = detection_from_mediapipe(_tasks_result(["Left", "Right", "Left"]))

    assert len(det.hands) == 2


def test_normalize_handedness():
    assert normalize_handedness("left") == LEFT
    assert normalize_handedness(" Right ") == RIGHT
    assert normalize_handedness("both") == UNKNOWN
    assert normalize_handedness(None) == UNKNOWN


def test_hand_requires_21_landmarks():
    with pytest.raises(ValueError):
        hand_from_points(OPEN_HAND[:20])
