"""
Classifier model types.

Defines the Prediction result shared by both model variants, and the
Trained Model: a small feed-forward network (scikit-learn ``MLPClassifier``)
with two ReLU hidden layers, L2 weight regularization and a softmax output
over the classes. Training itself lives in ``training.py``; this module only
owns the architecture, the loss/accuracy used to score it, and inference.

Models are tagged with a ``kind`` discriminant ("exemplar" / "trained") and
dispatched on it rather than through a class hierarchy.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics import accuracy_score
from sklearn.neural_network import MLPClassifier

from .featurize import FEATURE_DIM

logger = logging.getLogger(__name__)

EXEMPLAR = "exemplar"
TRAINED = "trained"

HIDDEN_LAYERS: Tuple[int, ...] = (32, 16)
L2_WEIGHT = 1e-3
LEARNING_RATE = 1e-3
LOSS_EPSILON = 1e-7


# ============================================================================
# Prediction
# ============================================================================

@dataclass
class Prediction:
    """
    Classifier output for one feature vector.

    Attributes:
        label: Predicted class name ("" when there is no prediction)
        confidence: Probability of the predicted class in [0, 1]
        probabilities: Per-class probabilities, aligned with class names
    """
    label: str
    confidence: float
    probabilities: np.ndarray = field(default_factory=lambda: np.zeros(0))

    @classmethod
    def empty(cls, num_classes: int = 0) -> "Prediction":
        """Prediction with no label and all-zero probabilities."""
        return cls(label="", confidence=0.0, probabilities=np.zeros(num_classes))

    @classmethod
    def from_probabilities(
        cls,
        probabilities: Sequence[float],
        class_names: Sequence[str],
    ) -> "Prediction":
        """Pick the argmax class; ties resolve to the lowest index."""
        probs = np.asarray(probabilities, dtype=np.float64)
        if probs.size == 0:
            return cls.empty(0)
        idx = int(np.argmax(probs))
        label = class_names[idx] if idx < len(class_names) else ""
        return cls(label=label, confidence=float(probs[idx]), probabilities=probs)

    @property
    def is_empty(self) -> bool:
        return self.label == ""


def normalize_scores(scores: np.ndarray) -> np.ndarray:
    """Divide scores by their sum; all zeros when the sum is zero."""
    scores = np.asarray(scores, dtype=np.float64)
    total = float(scores.sum())
    if total > 0:
        return scores / total
    return np.zeros_like(scores)


# ============================================================================
# Loss / Metric
# ============================================================================

def categorical_crossentropy(y_onehot: np.ndarray, probs: np.ndarray) -> float:
    """Mean cross-entropy of predicted probabilities against one-hot labels."""
    p = np.clip(np.asarray(probs, dtype=np.float64), LOSS_EPSILON, 1.0)
    return float(-np.mean(np.sum(np.asarray(y_onehot) * np.log(p), axis=1)))


def categorical_accuracy(y_onehot: np.ndarray, probs: np.ndarray) -> float:
    """Fraction of rows whose argmax matches the one-hot label."""
    if len(y_onehot) == 0:
        return 0.0
    return float(accuracy_score(np.argmax(y_onehot, axis=1), np.argmax(probs, axis=1)))


# ============================================================================
# Trained Model
# ============================================================================

@dataclass
class TrainedModel:
    """
    Feed-forward classifier fit by gradient descent.

    Attributes:
        class_names: Class names in output order
        network: The scikit-learn network (None once released)
        classes: Class indices the network was declared with
        fitted: True after at least one training epoch
    """
    class_names: List[str]
    network: Optional[MLPClassifier]
    classes: np.ndarray
    fitted: bool = False
    kind: str = field(default=TRAINED, init=False)

    @property
    def num_classes(self) -> int:
        return len(self.class_names)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """
        Class probabilities for a batch of feature vectors.

        The network always has at least two outputs; for a single-class
        model the unused column is dropped and rows renormalized.
        """
        if self.network is None:
            raise RuntimeError("Trained model has been released")
        raw = self.network.predict_proba(np.asarray(X, dtype=np.float64))
        probs = raw[:, : self.num_classes]
        totals = probs.sum(axis=1, keepdims=True)
        totals[totals == 0] = 1.0
        return probs / totals

    def release(self) -> None:
        """Drop the fitted network and its weight arrays."""
        if self.network is not None:
            logger.debug(f"Releasing trained model ({self.num_classes} classes)")
        self.network = None
        self.fitted = False

    @property
    def released(self) -> bool:
        return self.network is None


def build_trained_model(
    class_names: Sequence[str],
    hidden_layers: Tuple[int, ...] = HIDDEN_LAYERS,
    l2: float = L2_WEIGHT,
    learning_rate: float = LEARNING_RATE,
    batch_size: int = 32,
    seed: Optional[int] = None,
) -> TrainedModel:
    """
    Build an untrained network for the given classes.

    Input width is FEATURE_DIM, hidden layers use ReLU, the output layer is
    a softmax over the classes, and ``l2`` penalizes large weights so the
    network does not memorize a handful of samples.

    Args:
        class_names: Class names in output order
        hidden_layers: Hidden layer widths
        l2: L2 regularization strength
        learning_rate: Adam learning rate
        batch_size: Mini-batch size used per epoch
        seed: Random seed for weight init and shuffling

    Returns:
        Unfitted TrainedModel
    """
    if not class_names:
        raise ValueError("At least one class is required")

    network = MLPClassifier(
        hidden_layer_sizes=tuple(hidden_layers),
        activation="relu",
        solver="adam",
        alpha=l2,
        learning_rate_init=learning_rate,
        batch_size=batch_size,
        shuffle=True,
        random_state=seed,
    )
    classes = np.arange(max(2, len(class_names)))
    return TrainedModel(class_names=list(class_names), network=network, classes=classes)


def predict_trained(model: TrainedModel, x: Sequence[float]) -> Prediction:
    """
    Run the trained network on one feature vector.

    Returns an empty prediction (instead of raising) when the vector has the
    wrong length or the model is not usable.
    """
    n = model.num_classes
    if n == 0:
        return Prediction.empty(0)

    x = np.asarray(x, dtype=np.float64).ravel()
    if x.shape[0] != FEATURE_DIM:
        logger.debug(f"Ignoring feature vector of length {x.shape[0]}")
        return Prediction.empty(n)

    if model.network is None or not model.fitted:
        return Prediction.empty(n)

    probs = model.predict_proba(x.reshape(1, -1))[0]
    return Prediction.from_probabilities(probs, model.class_names)
