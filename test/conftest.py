import math

import numpy as np
import pytest

from gesture_trainer.featurize import FEATURE_DIM
from gesture_trainer.landmarks import FrameDetection, hand_from_points

# Open hand, palm facing the camera, fingers up
OPEN_HAND = [
    (0.50, 0.80),                                              # wrist
    (0.42, 0.75), (0.38, 0.70), (0.35, 0.65), (0.32, 0.60),    # thumb
    (0.45, 0.60), (0.45, 0.50), (0.45, 0.45), (0.45, 0.40),    # index
    (0.50, 0.58), (0.50, 0.48), (0.50, 0.42), (0.50, 0.37),    # middle
    (0.55, 0.60), (0.55, 0.50), (0.55, 0.45), (0.55, 0.41),    # ring
    (0.60, 0.63), (0.60, 0.56), (0.60, 0.52), (0.60, 0.48),    # pinky
]

# Fist: fingertips folded back toward the palm
FIST = [
    (0.50, 0.80),
    (0.42, 0.75), (0.40, 0.70), (0.42, 0.66), (0.46, 0.64),
    (0.45, 0.60), (0.45, 0.55), (0.46, 0.60), (0.46, 0.64),
    (0.50, 0.58), (0.50, 0.53), (0.50, 0.59), (0.50, 0.63),
    (0.55, 0.60), (0.55, 0.55), (0.55, 0.60), (0.55, 0.64),
    (0.60, 0.63), (0.60, 0.59), (0.59, 0.63), (0.59, 0.66),
]


def bbox_area(points):
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return (max(xs) - min(xs)) * (max(ys) - min(ys))


def make_hand(points=None, handedness=None, offset=(0.0, 0.0), scale=1.0):
    """Hand from a template, scaled about its wrist and then shifted."""
    points = OPEN_HAND if points is None else points
    wx, wy = points[0]
    moved = [
        (wx + (x - wx) * scale + offset[0], wy + (y - wy) * scale + offset[1])
        for x, y in points
    ]
    return hand_from_points(moved, handedness)


def hand_with_area(area, points=None, handedness=None, offset=(0.0, 0.0)):
    points = OPEN_HAND if points is None else points
    scale = math.sqrt(area / bbox_area(points))
    return make_hand(points, handedness, offset, scale)


def frame(*hands, ts=0.0):
    return FrameDetection(list(hands), ts)


def cluster(center, count, noise=0.05, seed=0):
    """``count`` vectors scattered around ``center``."""
    rng = np.random.default_rng(seed)
    center = np.asarray(center, dtype=np.float64)
    return center + rng.normal(0.0, noise, size=(count, FEATURE_DIM))


@pytest.fixture
def two_clusters():
    """Well separated two-class data: (X, labels, one-hot Y)."""
    a = cluster(np.full(FEATURE_DIM, 1.0), 10, seed=1)
    b = cluster(np.full(FEATURE_DIM, -1.0), 10, seed=2)
    X = np.vstack([a, b])
    labels = np.array([0] * 10 + [1] * 10)
    Y = np.eye(2)[labels]
    return X, labels, Y
