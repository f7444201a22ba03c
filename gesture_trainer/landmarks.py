"""
Hand landmark data model and MediaPipe adapter.

A frame detection holds zero to two hands, each made of 21 landmarks in
MediaPipe Hands order plus a handedness tag. The adapter converts MediaPipe
results (legacy ``solutions.hands`` or the Tasks ``HandLandmarker``) into
this model so the rest of the pipeline never touches MediaPipe types.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# ============================================================================
# MediaPipe Landmark Indices
# ============================================================================

NUM_LANDMARKS = 21

WRIST = 0
THUMB_CMC, THUMB_MCP, THUMB_IP, THUMB_TIP = 1, 2, 3, 4
INDEX_MCP, INDEX_PIP, INDEX_DIP, INDEX_TIP = 5, 6, 7, 8
MIDDLE_MCP, MIDDLE_PIP, MIDDLE_DIP, MIDDLE_TIP = 9, 10, 11, 12
RING_MCP, RING_PIP, RING_DIP, RING_TIP = 13, 14, 15, 16
PINKY_MCP, PINKY_PIP, PINKY_DIP, PINKY_TIP = 17, 18, 19, 20

# Handedness tags
LEFT = "Left"
RIGHT = "Right"
UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Landmark:
    """A 3D point in normalized frame coordinates."""
    x: float
    y: float
    z: float = 0.0


@dataclass(frozen=True)
class Hand:
    """
    One detected hand.

    Attributes:
        landmarks: Exactly 21 landmarks in MediaPipe Hands order
        handedness: "Left", "Right" or "Unknown"
    """
    landmarks: Tuple[Landmark, ...]
    handedness: str = UNKNOWN

    def __post_init__(self):
        if len(self.landmarks) != NUM_LANDMARKS:
            raise ValueError(
                f"Hand needs {NUM_LANDMARKS} landmarks, got {len(self.landmarks)}"
            )

    def bbox_area(self) -> float:
        """Area of the 2D bounding box around the landmarks."""
        xs = [p.x for p in self.landmarks]
        ys = [p.y for p in self.landmarks]
        return (max(xs) - min(xs)) * (max(ys) - min(ys))


@dataclass
class FrameDetection:
    """Hands observed at a single timestamp."""
    hands: List[Hand] = field(default_factory=list)
    timestamp_ms: float = 0.0

    @property
    def has_hands(self) -> bool:
        return len(self.hands) > 0


def normalize_handedness(label: Optional[str]) -> str:
    """Map a raw handedness label onto LEFT / RIGHT / UNKNOWN."""
    if label is None:
        return UNKNOWN
    label = str(label).strip().capitalize()
    if label == LEFT:
        return LEFT
    if label == RIGHT:
        return RIGHT
    return UNKNOWN


def swap_handedness(label: str) -> str:
    """Swap Left/Right, used when the preview is mirrored."""
    if label == LEFT:
        return RIGHT
    if label == RIGHT:
        return LEFT
    return label


def hand_from_points(
    points: Iterable[Sequence[float]],
    handedness: Optional[str] = None,
) -> Hand:
    """Build a Hand from (x, y[, z]) tuples."""
    landmarks = []
    for p in points:
        z = float(p[2]) if len(p) > 2 else 0.0
        landmarks.append(Landmark(float(p[0]), float(p[1]), z))
    return Hand(tuple(landmarks), normalize_handedness(handedness))


# ============================================================================
# MediaPipe Adapter
# ============================================================================

def _to_hand(points, label: Optional[str], mirror: bool) -> Hand:
    handed = normalize_handedness(label)
    if mirror:
        handed = swap_handedness(handed)
    return Hand(
        tuple(Landmark(float(p.x), float(p.y), float(getattr(p, "z", 0.0))) for p in points),
        handed,
    )


def detection_from_mediapipe(
    results,
    timestamp_ms: float = 0.0,
    mirror: bool = False,
) -> FrameDetection:
    """
    Convert MediaPipe hand results into a FrameDetection.

    Accepts both the legacy ``mp.solutions.hands`` result
    (``multi_hand_landmarks`` / ``multi_handedness``) and the Tasks
    ``HandLandmarkerResult`` (``hand_landmarks`` / ``handedness``).

    Args:
        results: MediaPipe hands processing results
        timestamp_ms: Frame timestamp in milliseconds
        mirror: Swap Left/Right tags (for a mirrored preview)

    Returns:
        FrameDetection with at most two hands
    """
    hands: List[Hand] = []

    if results is None:
        return FrameDetection(hands, timestamp_ms)

    if hasattr(results, "multi_hand_landmarks"):
        lms = results.multi_hand_landmarks or []
        handedness = getattr(results, "multi_handedness", None) or []
        for i, lm in enumerate(lms):
            label = None
            if i < len(handedness) and handedness[i].classification:
                label = handedness[i].classification[0].label
            hands.append(_to_hand(lm.landmark, label, mirror))
    else:
        lms = getattr(results, "hand_landmarks", None) or []
        handedness = getattr(results, "handedness", None) or []
        for i, lm in enumerate(lms):
            label = None
            if i < len(handedness) and handedness[i]:
                label = handedness[i][0].category_name
            hands.append(_to_hand(lm, label, mirror))

    if len(hands) > 2:
        logger.debug(f"Dropping {len(hands) - 2} extra hands")
        hands = hands[:2]

    return FrameDetection(hands, timestamp_ms)
