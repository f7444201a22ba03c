"""
Stability Filter - Debounces the raw prediction stream.

A confidence threshold plus a hit-count / timeout promotion rule: a single
stray frame cannot flip the stable label, and a sustained new gesture is
accepted within a bounded delay.

States:
    Unknown  - no stable label yet ("")
    Pending  - a different confident label has been seen, not yet accepted
    Stable   - the accepted label and its latest confidence
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from .model import Prediction

logger = logging.getLogger(__name__)

ACCEPT_THRESHOLD = 0.70
PROMOTE_HITS = 2
PROMOTE_TIMEOUT_MS = 300.0
NO_HANDS_LABEL = "No hands"


@dataclass
class StabilityState:
    """Snapshot of the filter after a tick."""
    stable_label: str = ""
    stable_confidence: float = 0.0
    pending_label: Optional[str] = None
    pending_hits: int = 0
    pending_start_ms: float = 0.0


class StabilityFilter:
    """
    Hysteresis / debounce filter over raw predictions.

    Call ``update`` once per prediction tick.
    """

    def __init__(
        self,
        accept_threshold: float = ACCEPT_THRESHOLD,
        promote_hits: int = PROMOTE_HITS,
        promote_timeout_ms: float = PROMOTE_TIMEOUT_MS,
        no_hands_label: str = NO_HANDS_LABEL,
    ):
        """
        Args:
            accept_threshold: Minimum raw confidence to consider a label
            promote_hits: Consecutive hits that promote a pending label
            promote_timeout_ms: Time after which a pending label is promoted
            no_hands_label: Stable label forced when no hand is visible
        """
        self.accept_threshold = accept_threshold
        self.promote_hits = promote_hits
        self.promote_timeout_ms = promote_timeout_ms
        self.no_hands_label = no_hands_label
        self.state = StabilityState()

    def reset(self) -> None:
        """Back to Unknown."""
        self.state = StabilityState()

    def _clear_pending(self) -> None:
        self.state.pending_label = None
        self.state.pending_hits = 0
        self.state.pending_start_ms = 0.0

    def update(
        self,
        prediction: Optional[Prediction],
        now_ms: float,
        hands_present: bool = True,
    ) -> StabilityState:
        """
        Feed one raw prediction.

        Args:
            prediction: Raw (smoothed) prediction for this tick
            now_ms: Monotonic time in milliseconds
            hands_present: False forces the no-hands label immediately

        Returns:
            Copy of the state after this tick
        """
        s = self.state

        if not hands_present:
            s.stable_label = self.no_hands_label
            s.stable_confidence = 0.0
            self._clear_pending()
            return replace(s)

        if prediction is None or prediction.is_empty or prediction.confidence < self.accept_threshold:
            self._clear_pending()
            return replace(s)

        label = prediction.label
        confidence = prediction.confidence

        if label == s.stable_label:
            # pending label and its hit count survive the interleaved frame
            s.stable_confidence = confidence
            return replace(s)

        if s.pending_label == label:
            s.pending_hits += 1
        else:
            s.pending_label = label
            s.pending_hits = 1
            s.pending_start_ms = now_ms

        elapsed = now_ms - s.pending_start_ms
        if s.pending_hits >= self.promote_hits or elapsed >= self.promote_timeout_ms:
            logger.debug(
                f"Stable label {s.stable_label!r} -> {label!r} "
                f"(hits={s.pending_hits}, elapsed={elapsed:.0f}ms)"
            )
            s.stable_label = label
            s.stable_confidence = confidence
            self._clear_pending()

        return replace(s)
