"""
Gesture Session - Wires the pipeline together behind a per-frame tick.

The caller drives ``tick(detection, now_ms)`` at its own cadence (one call
per camera frame). Each tick featurizes the frame, runs the throttled
predictor, updates the stability filter and hands changed stable labels to
the broadcaster. Capturing samples and training go through the same object,
so the dataset and the active model are only touched from one place.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional, Union

import numpy as np

from .config import TrainerConfig
from .dataset import Dataset, Sample
from .errors import GestureTrainerError
from .featurize import featurize, slot_presence
from .landmarks import FrameDetection
from .message import GestureBroadcaster, GestureMessage
from .model import EXEMPLAR, TRAINED, Prediction, build_trained_model
from .predictor import OnlinePredictor
from .stability import StabilityFilter, StabilityState
from .training import (
    ExemplarTrainResult,
    ProgressCallback,
    TrainOptions,
    TrainResult,
    prepare,
    train_exemplar,
    train_gradient,
)

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """What happened during one tick."""
    features: Optional[np.ndarray]
    prediction: Optional[Prediction]
    fresh: bool
    stability: StabilityState
    message: Optional[GestureMessage] = None

    @property
    def hands_present(self) -> bool:
        return self.features is not None


class GestureSession:
    """
    One trainer session: dataset, active model, live prediction state.

    Training runs are serialized: a second ``train`` call waits until the
    first one has finished before it starts.
    """

    def __init__(
        self,
        config: Optional[TrainerConfig] = None,
        sink: Optional[Callable[[GestureMessage], object]] = None,
    ):
        """
        Args:
            config: Pipeline configuration (defaults if None)
            sink: Receives every broadcast gesture message
        """
        self.config = config or TrainerConfig()
        cfg = self.config

        self.dataset = Dataset()
        self.predictor = OnlinePredictor(
            min_interval_ms=cfg.predict_interval_ms,
            alpha=cfg.smoothing_alpha,
            exemplar_smoothing=cfg.exemplar_smoothing,
        )
        self.stability = StabilityFilter(
            accept_threshold=cfg.accept_threshold,
            promote_hits=cfg.promote_hits,
            promote_timeout_ms=cfg.promote_timeout_ms,
            no_hands_label=cfg.no_hands_label,
        )
        self.broadcaster = GestureBroadcaster(
            sink=sink,
            min_interval_ms=cfg.resend_interval_ms,
            keepalive_ms=cfg.keepalive_ms,
            no_hands_label=cfg.no_hands_label,
        )

        self.latest_features: Optional[np.ndarray] = None
        self.last_train_result: Optional[Union[TrainResult, ExemplarTrainResult]] = None
        self._train_lock = asyncio.Lock()
        self._training = False

    @property
    def training(self) -> bool:
        return self._training

    @property
    def has_model(self) -> bool:
        return self.predictor.model is not None

    # ------------------------------------------------------------------
    # Frame loop
    # ------------------------------------------------------------------

    def tick(self, detection: Optional[FrameDetection], now_ms: float) -> TickResult:
        """
        Process one frame.

        Args:
            detection: Hands for this frame (None or empty when none)
            now_ms: Monotonic time in milliseconds

        Returns:
            TickResult
        """
        features = featurize(detection) if detection is not None else None
        self.latest_features = features

        if not self.has_model:
            return TickResult(features, None, False, replace(self.stability.state))

        prediction, fresh = self.predictor.step(features, now_ms)

        if features is None:
            state = self.stability.update(None, now_ms, hands_present=False)
        elif fresh:
            state = self.stability.update(prediction, now_ms)
        else:
            state = replace(self.stability.state)

        message = self.broadcaster.update(state, now_ms)
        return TickResult(features, prediction, fresh, state, message)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def capture(
        self,
        class_id: Optional[str] = None,
        captured_at_ms: Optional[int] = None,
    ) -> Optional[Sample]:
        """
        Store the latest feature vector as a sample.

        Args:
            class_id: Target class (defaults to the active class)
            captured_at_ms: Capture timestamp (defaults to now)

        Returns:
            The new sample, or None when no hand is currently visible
        """
        class_id = class_id or self.dataset.active_class_id
        if class_id is None:
            logger.debug("Capture ignored: no active class")
            return None

        left, right = slot_presence(self.latest_features)
        if not (left or right):
            logger.debug("Capture ignored: no hand in the current frame")
            return None

        return self.dataset.add_sample(class_id, self.latest_features, captured_at_ms)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    async def train(
        self,
        kind: str = TRAINED,
        on_progress: Optional[ProgressCallback] = None,
        options: Optional[TrainOptions] = None,
    ) -> Union[TrainResult, ExemplarTrainResult]:
        """
        Train a new model on the current dataset and make it active.

        On failure the error is logged and re-raised, and the previously
        active model stays in place.

        Args:
            kind: "trained" or "exemplar"
            on_progress: Per-epoch / per-curve-step progress callback
            options: Gradient training options (trained models only)

        Returns:
            TrainResult or ExemplarTrainResult
        """
        if kind not in (TRAINED, EXEMPLAR):
            raise ValueError(f"Unknown model kind: {kind!r}")

        cfg = self.config
        async with self._train_lock:
            self._training = True
            try:
                if kind == EXEMPLAR:
                    result = train_exemplar(
                        self.dataset.classes,
                        self.dataset.samples,
                        k=cfg.knn_k,
                        max_steps=cfg.curve_max_steps,
                        seed=cfg.seed,
                        on_step=on_progress,
                    )
                else:
                    data = prepare(self.dataset.classes, self.dataset.samples)
                    model = build_trained_model(data.class_names, seed=cfg.seed)
                    if options is None:
                        options = TrainOptions(
                            patience=cfg.patience,
                            min_validation_samples=cfg.min_validation_samples,
                            seed=cfg.seed,
                        )
                    if options.on_epoch is None:
                        options = replace(options, on_epoch=on_progress)
                    result = await train_gradient(model, data.X, data.Y, options)
            except GestureTrainerError as e:
                logger.error(f"Training failed: {e}")
                raise
            finally:
                self._training = False

            self.predictor.replace_model(result.model)
            self.stability.reset()
            self.broadcaster.reset()
            self.last_train_result = result
            return result

    def clear_model(self) -> None:
        """Release the active model and reset live state."""
        self.predictor.replace_model(None)
        self.stability.reset()
        self.broadcaster.reset()
