"""
Configuration for the gesture trainer.

Environment Variables:
    GESTURE_WS_URL: WebSocket URL of the broadcast sink (default: unset)
    GESTURE_TOKEN: Bearer token for the broadcast sink (default: unset)
    GESTURE_PREDICT_INTERVAL_MS: Minimum time between predictions (default: 200)
    GESTURE_SMOOTHING_ALPHA: Weight of the previous probabilities (default: 0.7)
    GESTURE_ACCEPT_THRESHOLD: Confidence needed to accept a label (default: 0.7)
    GESTURE_PROMOTE_HITS: Consecutive hits to promote a label (default: 2)
    GESTURE_PROMOTE_TIMEOUT_MS: Pending time that promotes a label (default: 300)
    GESTURE_KNN_K: Neighbors for the exemplar model (default: 3)
    GESTURE_EXEMPLAR_SMOOTHING: Exemplar model's own smoothing, 0/1 (default: 0)
    GESTURE_PATIENCE: Early-stopping patience in epochs (default: 15)
    GESTURE_RESEND_MS: Minimum resend interval for an unchanged label (default: 150)
    GESTURE_KEEPALIVE_MS: Resend an unchanged label this often (default: unset)
    GESTURE_MIRROR: Mirror the camera preview like a selfie view, 0/1 (default: 1)
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .knn import DEFAULT_K
from .message import MIN_RESEND_INTERVAL_MS
from .predictor import PREDICT_INTERVAL_MS, SMOOTHING_ALPHA
from .stability import ACCEPT_THRESHOLD, NO_HANDS_LABEL, PROMOTE_HITS, PROMOTE_TIMEOUT_MS
from .training import CURVE_MAX_STEPS, MIN_VALIDATION_SAMPLES, PATIENCE

logger = logging.getLogger(__name__)

ENV_PREFIX = "GESTURE_"


@dataclass
class TrainerConfig:
    """All tunables of the pipeline, with their defaults."""
    # Prediction
    predict_interval_ms: float = PREDICT_INTERVAL_MS
    smoothing_alpha: float = SMOOTHING_ALPHA
    exemplar_smoothing: bool = False

    # Stability
    accept_threshold: float = ACCEPT_THRESHOLD
    promote_hits: int = PROMOTE_HITS
    promote_timeout_ms: float = PROMOTE_TIMEOUT_MS
    no_hands_label: str = NO_HANDS_LABEL

    # Training
    knn_k: int = DEFAULT_K
    curve_max_steps: int = CURVE_MAX_STEPS
    patience: int = PATIENCE
    min_validation_samples: int = MIN_VALIDATION_SAMPLES
    seed: Optional[int] = None

    # Broadcast
    ws_url: Optional[str] = None
    token: Optional[str] = None
    resend_interval_ms: float = MIN_RESEND_INTERVAL_MS
    keepalive_ms: Optional[float] = None

    # Landmark source
    mirror: bool = True

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "TrainerConfig":
        """Build a config from GESTURE_* environment variables."""
        env = os.environ if environ is None else environ
        cfg = cls()

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            if value is None or not value.strip():
                return None
            return value.strip()

        def as_bool(value: str) -> bool:
            return value.lower() in ("1", "true", "yes", "on")

        casts = {
            "WS_URL": ("ws_url", str),
            "TOKEN": ("token", str),
            "PREDICT_INTERVAL_MS": ("predict_interval_ms", float),
            "SMOOTHING_ALPHA": ("smoothing_alpha", float),
            "ACCEPT_THRESHOLD": ("accept_threshold", float),
            "PROMOTE_HITS": ("promote_hits", int),
            "PROMOTE_TIMEOUT_MS": ("promote_timeout_ms", float),
            "KNN_K": ("knn_k", int),
            "EXEMPLAR_SMOOTHING": ("exemplar_smoothing", as_bool),
            "PATIENCE": ("patience", int),
            "RESEND_MS": ("resend_interval_ms", float),
            "KEEPALIVE_MS": ("keepalive_ms", float),
            "MIRROR": ("mirror", as_bool),
        }

        for name, (attr, cast) in casts.items():
            raw = get(name)
            if raw is None:
                continue
            try:
                setattr(cfg, attr, cast(raw))
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_PREFIX}{name}={raw!r}")

        return cfg
