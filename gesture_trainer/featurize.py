"""
Featurizer - Converts one frame's hands into a fixed-length vector.

Each hand contributes a 16-value block of finger-curl distances and
fingertip directions, normalized by palm width so the block does not change
when the hand moves or changes size in the frame. The vector is the left
block followed by the right block; an empty slot is all zeros.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from .landmarks import (
    FrameDetection,
    Hand,
    LEFT,
    RIGHT,
    WRIST,
    THUMB_CMC,
    THUMB_TIP,
    INDEX_MCP,
    INDEX_TIP,
    MIDDLE_MCP,
    MIDDLE_TIP,
    RING_MCP,
    RING_TIP,
    PINKY_MCP,
    PINKY_TIP,
)

logger = logging.getLogger(__name__)

HAND_FEATURES = 16
FEATURE_DIM = 2 * HAND_FEATURES
FEATURE_DTYPE = np.float32

PALM_WIDTH_FLOOR = 1e-6

# (base, tip) per finger: thumb, index, middle, ring, pinky
FINGERS = (
    (THUMB_CMC, THUMB_TIP),
    (INDEX_MCP, INDEX_TIP),
    (MIDDLE_MCP, MIDDLE_TIP),
    (RING_MCP, RING_TIP),
    (PINKY_MCP, PINKY_TIP),
)

# Fingertips whose direction from the wrist is appended
DIRECTION_TIPS = (INDEX_TIP, MIDDLE_TIP, THUMB_TIP)


# ============================================================================
# Per-hand Features
# ============================================================================

def _xy(hand: Hand) -> np.ndarray:
    """Landmark (x, y) coordinates as a (21, 2) array."""
    return np.array([[p.x, p.y] for p in hand.landmarks], dtype=np.float64)


def palm_width(pts: np.ndarray) -> float:
    """Index-base to pinky-base distance, floor-clamped."""
    return max(float(np.linalg.norm(pts[INDEX_MCP] - pts[PINKY_MCP])), PALM_WIDTH_FLOOR)


def hand_features(hand: Hand) -> np.ndarray:
    """
    Compute the 16-value feature block for one hand.

    Layout: for thumb, index, middle, ring, pinky the pair
    (tip-to-base, tip-to-wrist) distance, then the (x, y) vector from the
    wrist to the index, middle and thumb tips. Everything is divided by
    the palm width.

    Args:
        hand: Hand with 21 landmarks

    Returns:
        Array of shape (HAND_FEATURES,)
    """
    pts = _xy(hand)
    palm = palm_width(pts)
    wrist = pts[WRIST]

    feats: List[float] = []
    for base, tip in FINGERS:
        feats.append(float(np.linalg.norm(pts[tip] - pts[base])) / palm)
        feats.append(float(np.linalg.norm(pts[tip] - wrist)) / palm)

    for tip in DIRECTION_TIPS:
        d = (pts[tip] - wrist) / palm
        feats.extend((float(d[0]), float(d[1])))

    return np.asarray(feats, dtype=FEATURE_DTYPE)


# ============================================================================
# Slot Assignment
# ============================================================================

def assign_slots(hands: Sequence[Hand]) -> List[Optional[Hand]]:
    """
    Assign up to two hands to the [left, right] slots.

    Hands with a Left/Right tag claim that slot if it is still free. The
    remaining hands (unknown tag, or a second hand with the same tag) fill
    the free slots in order of decreasing bounding-box area, ties keeping
    detection order.

    Returns:
        [left_hand_or_None, right_hand_or_None]
    """
    slots: List[Optional[Hand]] = [None, None]
    leftovers: List[Hand] = []

    for hand in hands:
        if hand.handedness == LEFT and slots[0] is None:
            slots[0] = hand
        elif hand.handedness == RIGHT and slots[1] is None:
            slots[1] = hand
        else:
            leftovers.append(hand)

    # sorted() is stable, so equal areas keep detection order
    leftovers = sorted(leftovers, key=lambda h: -h.bbox_area())
    for hand in leftovers:
        if slots[0] is None:
            slots[0] = hand
        elif slots[1] is None:
            slots[1] = hand
        else:
            logger.debug("Both slots taken, ignoring extra hand")
            break

    return slots


# ============================================================================
# Frame Features
# ============================================================================

def featurize(detection: FrameDetection) -> Optional[np.ndarray]:
    """
    Convert one frame detection into a feature vector.

    Args:
        detection: Hands observed in the frame

    Returns:
        Array of shape (FEATURE_DIM,), or None when no hand is present
    """
    if detection is None or not detection.hands:
        return None

    left, right = assign_slots(detection.hands)
    vec = np.zeros(FEATURE_DIM, dtype=FEATURE_DTYPE)
    if left is not None:
        vec[:HAND_FEATURES] = hand_features(left)
    if right is not None:
        vec[HAND_FEATURES:] = hand_features(right)
    return vec


def slot_presence(vec: Optional[np.ndarray]) -> tuple:
    """Return (left_present, right_present) for a feature vector."""
    if vec is None or len(vec) != FEATURE_DIM:
        return False, False
    return bool(np.any(vec[:HAND_FEATURES])), bool(np.any(vec[HAND_FEATURES:]))
