import numpy as np

from conftest import FIST, OPEN_HAND, frame, hand_with_area, make_hand
from gesture_trainer.featurize import (
    FEATURE_DIM,
    HAND_FEATURES,
    assign_slots,
    featurize,
    hand_features,
    palm_width,
    slot_presence,
)
from gesture_trainer.landmarks import FrameDetection, hand_from_points


def test_featurize_no_hands_returns_none():
    assert featurize(FrameDetection()) is None
    assert featurize(None) is None


def test_featurize_shape_and_dtype():
    vec = featurize(frame(make_hand(handedness="Left")))

    assert vec.shape == (FEATURE_DIM,)
    assert vec.dtype == np.float32


def test_featurize_is_deterministic():
    det = frame(make_hand(handedness="Left"), make_hand(FIST, handedness="Right"))

    first = featurize(det)
    second = featurize(det)

    assert first.tobytes() == second.tobytes()


def test_feature_block_translation_invariant():
    base = hand_features(make_hand())
    moved = hand_features(make_hand(offset=(0.2, -0.15)))

    np.testing.assert_allclose(base, moved, atol=1e-5)


def test_feature_block_scale_invariant():
    base = hand_features(make_hand())
    small = hand_features(make_hand(scale=0.5))
    large = hand_features(make_hand(scale=1.7))

    np.testing.assert_allclose(base, small, atol=1e-5)
    np.testing.assert_allclose(base, large, atol=1e-5)


def test_feature_block_distinguishes_poses():
    assert not np.allclose(hand_features(make_hand()), hand_features(make_hand(FIST)))


def test_feature_block_layout():
    feats = hand_features(make_hand())
    pts = np.array(OPEN_HAND)
    palm = np.linalg.norm(pts[5] - pts[17])

    # thumb tip-to-base, thumb tip-to-wrist
    assert np.isclose(feats[0], np.linalg.norm(pts[4] - pts[1]) / palm, atol=1e-6)
    assert np.isclose(feats[1], np.linalg.norm(pts[4] - pts[0]) / palm, atol=1e-6)
    # index tip direction from the wrist
    np.testing.assert_allclose(feats[10:12], (pts[8] - pts[0]) / palm, atol=1e-6)
    # thumb tip direction comes last
    np.testing.assert_allclose(feats[14:16], (pts[4] - pts[0]) / palm, atol=1e-6)


def test_palm_width_is_floor_clamped():
    points = [(0.5, 0.5)] * 21
    hand = hand_from_points(points)

    feats = hand_features(hand)

    assert palm_width(np.array(points)) > 0
    assert np.all(np.isfinite(feats))


def test_left_hand_fills_left_slot_only():
    vec = featurize(frame(make_hand(handedness="Left")))

    assert np.any(vec[:HAND_FEATURES])
    assert not np.any(vec[HAND_FEATURES:])
    assert slot_presence(vec) == (True, False)


def test_right_hand_fills_right_slot_only():
    vec = featurize(frame(make_hand(handedness="Right")))

    assert not np.any(vec[:HAND_FEATURES])
    assert slot_presence(vec) == (False, True)


def test_slots_follow_handedness_not_order():
    left = make_hand(handedness="Left")
    right = make_hand(FIST, handedness="Right")

    assert featurize(frame(left, right)).tobytes() == featurize(frame(right, left)).tobytes()


def test_unknown_hands_larger_area_takes_left_slot():
    big = hand_with_area(0.10)
    small = hand_with_area(0.05, FIST, offset=(0.2, 0.0))

    for hands in ([big, small], [small, big]):
        left, right = assign_slots(hands)
        assert left is big
        assert right is small


def test_unknown_hands_equal_area_keep_detection_order():
    first = make_hand()
    second = make_hand()

    left, right = assign_slots([first, second])

    assert left is first
    assert right is second


def test_two_same_tagged_hands_fall_back_to_free_slot():
    a = make_hand(handedness="Left")
    b = make_hand(FIST, handedness="Left")

    left, right = assign_slots([a, b])

    assert left is a
    assert right is b


def test_unknown_hand_takes_remaining_slot():
    tagged = make_hand(handedness="Left")
    unknown = make_hand(FIST)

    left, right = assign_slots([unknown, tagged])

    assert left is tagged
    assert right is unknown


def test_slot_presence_of_none():
    assert slot_presence(None) == (False, False)
