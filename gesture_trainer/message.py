"""
Gesture message schema, validation and rate-limited broadcasting.

Defines the JSON message sent to the broadcast sink and validates every
outgoing message before it leaves the process.
"""

import json
import logging
import math
from dataclasses import asdict, dataclass
from typing import Callable, Optional, Tuple

from .stability import NO_HANDS_LABEL, StabilityState

logger = logging.getLogger(__name__)

NONE_LABEL = "none"
MIN_RESEND_INTERVAL_MS = 150.0
CONFIDENCE_CHANGE_EPS = 1e-3


@dataclass
class GestureMessage:
    """
    Stable gesture update sent to subscribers.

    Attributes:
        label: Stable gesture label, "none" when there is none
        confidence: Confidence of the stable label in [0, 1]
        seq: Monotonically increasing sequence number
        ts: Timestamp in milliseconds
        type: Message type tag
    """
    label: str
    confidence: float
    seq: int
    ts: int
    type: str = "gesture"

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, data: str) -> "GestureMessage":
        """Deserialize from JSON string."""
        d = json.loads(data)
        return cls(
            label=str(d["label"]),
            confidence=float(d["confidence"]),
            seq=int(d["seq"]),
            ts=int(d["ts"]),
            type=str(d.get("type", "gesture")),
        )


class MessageValidator:
    """
    Validates outgoing gesture messages before transmission.

    Ensures:
    - label is a non-empty string
    - confidence is finite and within [0, 1]
    - sequence numbers strictly increase
    - timestamps never go backwards
    """

    def __init__(self):
        self._last_seq: Optional[int] = None
        self._last_ts: int = 0
        self._dropped_count: int = 0
        self._validated_count: int = 0

    def _reject(self, reason: str, detail: str) -> Tuple[bool, str]:
        self._dropped_count += 1
        logger.warning(f"Invalid message: {detail}")
        return False, reason

    def validate(self, msg: GestureMessage) -> Tuple[bool, str]:
        """
        Validate a gesture message.

        Returns:
            Tuple of (is_valid, reason_string)
        """
        if not isinstance(msg.label, str) or not msg.label:
            return self._reject("label_empty", f"label={msg.label!r}")

        if not math.isfinite(msg.confidence):
            return self._reject("confidence_not_finite", f"confidence={msg.confidence}")

        if not 0.0 <= msg.confidence <= 1.0:
            return self._reject("confidence_out_of_bounds", f"confidence={msg.confidence}")

        if self._last_seq is not None and msg.seq <= self._last_seq:
            return self._reject("seq_not_increasing", f"seq {msg.seq} <= previous {self._last_seq}")

        if msg.ts < self._last_ts:
            return self._reject("timestamp_regression", f"timestamp {msg.ts} < previous {self._last_ts}")

        self._last_seq = msg.seq
        self._last_ts = msg.ts
        self._validated_count += 1
        return True, "ok"

    def get_stats(self) -> dict:
        """Get validation statistics."""
        total = self._validated_count + self._dropped_count
        return {
            "total_messages": total,
            "validated": self._validated_count,
            "dropped": self._dropped_count,
            "drop_rate": self._dropped_count / total if total > 0 else 0.0,
        }


def broadcast_label(stable_label: str, no_hands_label: str = NO_HANDS_LABEL) -> str:
    """Map a stable label onto the wire label ("none" for no gesture)."""
    if not stable_label or stable_label == no_hands_label:
        return NONE_LABEL
    return stable_label


class GestureBroadcaster:
    """
    Turns stability states into gesture messages for a sink.

    A message goes out when the stable label changes, when its confidence
    changes (at most once per ``min_interval_ms``), or every
    ``keepalive_ms`` while nothing changes, if a keepalive is configured.
    """

    def __init__(
        self,
        sink: Optional[Callable[[GestureMessage], object]] = None,
        min_interval_ms: float = MIN_RESEND_INTERVAL_MS,
        keepalive_ms: Optional[float] = None,
        no_hands_label: str = NO_HANDS_LABEL,
    ):
        """
        Args:
            sink: Called with every message that passes validation
            min_interval_ms: Minimum gap between messages for the same label
            keepalive_ms: Resend interval for an unchanged label (None disables)
            no_hands_label: Stable label that maps to "none"
        """
        self.sink = sink
        self.min_interval_ms = min_interval_ms
        self.keepalive_ms = keepalive_ms
        self.no_hands_label = no_hands_label
        self.validator = MessageValidator()

        self._seq = 0
        self._last_label: Optional[str] = None
        self._last_confidence: Optional[float] = None
        self._last_sent_ms: Optional[float] = None

    def _should_send(self, label: str, confidence: float, now_ms: float) -> bool:
        if self._last_label is None or label != self._last_label:
            return True
        elapsed = now_ms - self._last_sent_ms
        if elapsed < self.min_interval_ms:
            return False
        if abs(confidence - self._last_confidence) > CONFIDENCE_CHANGE_EPS:
            return True
        return self.keepalive_ms is not None and elapsed >= self.keepalive_ms

    def update(self, state: StabilityState, now_ms: float) -> Optional[GestureMessage]:
        """
        Offer the current stability state.

        Returns:
            The message that was sent, or None
        """
        label = broadcast_label(state.stable_label, self.no_hands_label)
        confidence = float(state.stable_confidence) if label != NONE_LABEL else 0.0

        if not self._should_send(label, confidence, now_ms):
            return None

        self._seq += 1
        msg = GestureMessage(
            label=label,
            confidence=confidence,
            seq=self._seq,
            ts=int(now_ms),
        )
        valid, reason = self.validator.validate(msg)
        if not valid:
            logger.warning(f"Gesture message dropped: {reason}")
            return None

        self._last_label = label
        self._last_confidence = confidence
        self._last_sent_ms = now_ms

        if self.sink is not None:
            self.sink(msg)
        return msg

    def reset(self) -> None:
        """Forget the last sent label so the next update is sent."""
        self._last_label = None
        self._last_confidence = None
        self._last_sent_ms = None
