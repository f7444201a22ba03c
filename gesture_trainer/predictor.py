"""
Online Predictor - Runs the active model against live feature vectors.

Dispatches on the model ``kind``, smooths probabilities across frames with an
exponential moving average, and throttles predictions to a minimum interval
so the cost does not scale with the frame rate. The predictor owns the
single active model; replacing it releases the previous one.
"""

import logging
import threading
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .knn import ExemplarModel, predict_exemplar
from .model import EXEMPLAR, TRAINED, Prediction, TrainedModel, predict_trained

logger = logging.getLogger(__name__)

Model = Union[ExemplarModel, TrainedModel]

SMOOTHING_ALPHA = 0.7
PREDICT_INTERVAL_MS = 200.0


def smooth_probabilities(
    raw: np.ndarray,
    prev: Optional[Sequence[float]],
    alpha: float = SMOOTHING_ALPHA,
) -> np.ndarray:
    """smoothed = alpha * prev + (1 - alpha) * raw; raw when prev does not fit."""
    raw = np.asarray(raw, dtype=np.float64)
    if prev is None or len(prev) != len(raw):
        return raw
    return alpha * np.asarray(prev, dtype=np.float64) + (1.0 - alpha) * raw


def predict_frame(
    model: Optional[Model],
    features: Optional[Sequence[float]],
    prev_probs: Optional[Sequence[float]] = None,
    alpha: float = SMOOTHING_ALPHA,
    exemplar_smoothing: bool = False,
) -> Prediction:
    """
    Predict one frame and smooth against the previous smoothed output.

    Args:
        model: Active model, or None
        features: Feature vector for the frame
        prev_probs: Previous frame's smoothed probabilities
        alpha: Smoothing weight of ``prev_probs``
        exemplar_smoothing: Also enable the exemplar model's own smoothing

    Returns:
        Prediction (empty when there is no model or no features)
    """
    if model is None:
        return Prediction.empty(0)
    if features is None:
        return Prediction.empty(model.num_classes)

    if model.kind == EXEMPLAR:
        raw = predict_exemplar(
            model, features, prev_probs=prev_probs, smoothing=exemplar_smoothing, alpha=alpha
        )
    elif model.kind == TRAINED:
        raw = predict_trained(model, features)
    else:
        raise ValueError(f"Unknown model kind: {model.kind!r}")

    if raw.is_empty:
        return raw

    smoothed = smooth_probabilities(raw.probabilities, prev_probs, alpha)
    return Prediction.from_probabilities(smoothed, model.class_names)


class OnlinePredictor:
    """
    Throttled, smoothed predictor over a single owned model slot.

    ``step`` is called every frame; it predicts at most once per
    ``min_interval_ms`` and otherwise returns the last prediction.
    """

    def __init__(
        self,
        min_interval_ms: float = PREDICT_INTERVAL_MS,
        alpha: float = SMOOTHING_ALPHA,
        exemplar_smoothing: bool = False,
    ):
        """
        Args:
            min_interval_ms: Minimum time between two predictions
            alpha: Exponential smoothing weight of the previous output
            exemplar_smoothing: Forwarded to the exemplar model
        """
        self.min_interval_ms = min_interval_ms
        self.alpha = alpha
        self.exemplar_smoothing = exemplar_smoothing

        self._model: Optional[Model] = None
        self._lock = threading.Lock()

        self.prev_probs: Optional[np.ndarray] = None
        self.last_prediction: Optional[Prediction] = None
        self._last_predict_ms: Optional[float] = None

    @property
    def model(self) -> Optional[Model]:
        return self._model

    @property
    def class_names(self) -> list:
        model = self._model
        return list(model.class_names) if model is not None else []

    def replace_model(self, model: Optional[Model]) -> None:
        """
        Install a new model and release the previous one.

        The swap and the release happen under the lock, so no step sees a
        half-swapped state or a released model.
        """
        with self._lock:
            old = self._model
            self._model = model
            self._reset_locked()
            if old is not None and old is not model:
                old.release()
        if model is not None:
            logger.info(f"Active model: {model.kind} ({model.num_classes} classes)")
        else:
            logger.info("Active model cleared")

    def reset(self) -> None:
        """Forget smoothing state and the last prediction."""
        with self._lock:
            self._reset_locked()

    def _reset_locked(self) -> None:
        self.prev_probs = None
        self.last_prediction = None
        self._last_predict_ms = None

    def due(self, now_ms: float) -> bool:
        """True when enough time has passed for a new prediction."""
        if self._last_predict_ms is None:
            return True
        return now_ms - self._last_predict_ms >= self.min_interval_ms

    def step(
        self,
        features: Optional[Sequence[float]],
        now_ms: float,
    ) -> Tuple[Optional[Prediction], bool]:
        """
        Advance the predictor by one frame.

        Args:
            features: Current feature vector, None when no hand is visible
            now_ms: Monotonic time in milliseconds

        Returns:
            Tuple of (prediction or None, fresh) where ``fresh`` is True
            only when a new prediction was computed this frame
        """
        with self._lock:
            if features is None:
                self._reset_locked()
                return None, False

            if self._model is None:
                return None, False

            if not self.due(now_ms):
                return self.last_prediction, False

            pred = predict_frame(
                self._model,
                features,
                prev_probs=self.prev_probs,
                alpha=self.alpha,
                exemplar_smoothing=self.exemplar_smoothing,
            )
            self._last_predict_ms = now_ms
            self.prev_probs = pred.probabilities if not pred.is_empty else None
            self.last_prediction = pred
            return pred, True
