"""
Exemplar Model - Distance-weighted k-nearest neighbors.

"Training" stores the labeled feature vectors. Prediction weights each of
the k nearest samples by 1 / (distance + EPSILON) and normalizes the
per-class sums into probabilities.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .errors import EmptyTrainingSet
from .featurize import FEATURE_DIM
from .model import EXEMPLAR, Prediction, normalize_scores

logger = logging.getLogger(__name__)

DEFAULT_K = 3
EPSILON = 1e-6
SMOOTHING_ALPHA = 0.7


@dataclass
class ExemplarModel:
    """
    Stored reference samples.

    Attributes:
        class_names: Class names in index order
        samples: Reference vectors, shape (N, FEATURE_DIM)
        labels: Class index per reference vector, shape (N,)
        k: Number of neighbors, clamped to [1, N]
        dropped: Samples rejected during fit
    """
    class_names: List[str]
    samples: np.ndarray
    labels: np.ndarray
    k: int
    dropped: int = 0
    kind: str = field(default=EXEMPLAR, init=False)

    @property
    def num_classes(self) -> int:
        return len(self.class_names)

    def release(self) -> None:
        """Nothing to release; kept so both variants share the lifecycle."""


def fit_exemplar(
    class_names: Sequence[str],
    samples: Sequence[Sequence[float]],
    labels: Sequence[int],
    k: int = DEFAULT_K,
) -> ExemplarModel:
    """
    Build an exemplar model from labeled vectors.

    Samples with the wrong length or an out-of-range label are dropped and
    counted, not fatal.

    Args:
        class_names: Class names in index order
        samples: Feature vectors
        labels: Class index for each vector
        k: Requested number of neighbors

    Returns:
        ExemplarModel

    Raises:
        ValueError: samples and labels differ in length
        EmptyTrainingSet: no valid sample remains
    """
    if len(samples) != len(labels):
        raise ValueError(
            f"samples and labels must have the same length ({len(samples)} != {len(labels)})"
        )

    kept_x = []
    kept_y = []
    dropped = 0
    num_classes = len(class_names)

    for x, label in zip(samples, labels):
        if len(x) != FEATURE_DIM:
            dropped += 1
            continue
        if label < 0 or label >= num_classes:
            dropped += 1
            continue
        kept_x.append(np.asarray(x, dtype=np.float64))
        kept_y.append(int(label))

    if dropped:
        logger.warning(f"Dropped {dropped} invalid samples while fitting exemplar model")

    if not kept_x:
        raise EmptyTrainingSet("No valid samples to fit the exemplar model")

    effective_k = max(1, min(int(k), len(kept_x)))

    return ExemplarModel(
        class_names=list(class_names),
        samples=np.vstack(kept_x),
        labels=np.asarray(kept_y, dtype=np.int64),
        k=effective_k,
        dropped=dropped,
    )


def predict_exemplar(
    model: ExemplarModel,
    x: Sequence[float],
    prev_probs: Optional[Sequence[float]] = None,
    smoothing: bool = False,
    alpha: float = SMOOTHING_ALPHA,
) -> Prediction:
    """
    Classify one feature vector.

    Args:
        model: Fitted exemplar model
        x: Feature vector of length FEATURE_DIM
        prev_probs: Previous probabilities, used only when ``smoothing`` is on
        smoothing: Blend with ``prev_probs`` (off by default, the online
            predictor already smooths)
        alpha: Weight of ``prev_probs`` when smoothing

    Returns:
        Prediction; empty when the vector length is wrong or the model has
        no classes or samples
    """
    n = model.num_classes
    if n == 0:
        return Prediction.empty(0)

    x = np.asarray(x, dtype=np.float64).ravel()
    if x.shape[0] != FEATURE_DIM:
        logger.debug(f"Ignoring feature vector of length {x.shape[0]}")
        return Prediction.empty(n)

    if len(model.samples) == 0:
        return Prediction.empty(n)

    distances = np.linalg.norm(model.samples - x, axis=1)
    k = max(1, min(model.k, len(distances)))
    # stable sort keeps insertion order among equal distances
    nearest = np.argsort(distances, kind="stable")[:k]

    scores = np.zeros(n, dtype=np.float64)
    for i in nearest:
        label = model.labels[i]
        if 0 <= label < n:
            scores[label] += 1.0 / (distances[i] + EPSILON)

    probs = normalize_scores(scores)

    if smoothing and prev_probs is not None and len(prev_probs) == n:
        probs = alpha * np.asarray(prev_probs, dtype=np.float64) + (1.0 - alpha) * probs

    return Prediction.from_probabilities(probs, model.class_names)


def exemplar_accuracy(model: ExemplarModel, X: np.ndarray, y: np.ndarray) -> float:
    """Fraction of vectors in X classified as their label in y."""
    if len(X) == 0:
        return 0.0
    correct = 0
    for xi, yi in zip(X, y):
        pred = predict_exemplar(model, xi)
        if pred.probabilities.size and int(np.argmax(pred.probabilities)) == int(yi):
            correct += 1
    return correct / len(X)
