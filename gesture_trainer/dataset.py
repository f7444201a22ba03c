"""
Sample Store - Gesture classes and captured samples.

The dataset keeps classes in insertion order and an append-only list of
samples. Deleting a class does not purge its samples; they simply stop
being usable for training because their class id no longer resolves.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from .errors import InvalidSampleLabel, InvalidVectorLength
from .featurize import FEATURE_DIM, FEATURE_DTYPE

logger = logging.getLogger(__name__)


@dataclass
class GestureClass:
    """A gesture class. The id is stable, the name may change."""
    id: str
    name: str


@dataclass(frozen=True)
class Sample:
    """
    One captured, labeled feature vector.

    Attributes:
        class_id: Id of the class this sample belongs to
        features: Read-only vector of length FEATURE_DIM
        captured_at_ms: Capture time in milliseconds since the epoch
    """
    class_id: str
    features: np.ndarray
    captured_at_ms: int


def _now_ms() -> int:
    return int(time.time() * 1000)


class Dataset:
    """
    In-memory dataset of gesture classes and samples.

    Class ids are generated from a counter that is never rewound, so an id
    is not reused within a session even after ``reset``.
    """

    def __init__(self, first_class_name: Optional[str] = None):
        self.classes: List[GestureClass] = []
        self.samples: List[Sample] = []
        self.active_class_id: Optional[str] = None
        self._id_counter = 0
        self.add_class(first_class_name)

    def _next_id(self) -> str:
        self._id_counter += 1
        return f"c{self._id_counter}"

    # ------------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------------

    def add_class(self, name: Optional[str] = None) -> GestureClass:
        """Add a class and make it active. Blank names become "Class N"."""
        name = (name or "").strip() or f"Class {len(self.classes) + 1}"
        cls = GestureClass(id=self._next_id(), name=name)
        self.classes.append(cls)
        self.active_class_id = cls.id
        logger.info(f"Added class {cls.name!r} ({cls.id})")
        return cls

    def rename_class(self, class_id: str, name: str) -> GestureClass:
        cls = self.get_class(class_id)
        cls.name = name
        return cls

    def delete_class(self, class_id: str) -> None:
        """
        Remove a class. Its samples stay in the store but are no longer
        usable. If it was active, the first remaining class becomes active.
        """
        self.get_class(class_id)
        self.classes = [c for c in self.classes if c.id != class_id]
        if self.active_class_id == class_id:
            self.active_class_id = self.classes[0].id if self.classes else None
        logger.info(f"Deleted class {class_id}")

    def set_active_class(self, class_id: Optional[str]) -> None:
        if class_id is not None:
            self.get_class(class_id)
        self.active_class_id = class_id

    def get_class(self, class_id: str) -> GestureClass:
        for cls in self.classes:
            if cls.id == class_id:
                return cls
        raise InvalidSampleLabel(class_id)

    def has_class(self, class_id: str) -> bool:
        return any(c.id == class_id for c in self.classes)

    @property
    def active_class(self) -> Optional[GestureClass]:
        if self.active_class_id is None:
            return None
        for cls in self.classes:
            if cls.id == self.active_class_id:
                return cls
        return None

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    def add_sample(
        self,
        class_id: str,
        features: Sequence[float],
        captured_at_ms: Optional[int] = None,
    ) -> Sample:
        """
        Append a sample for an existing class.

        Raises:
            InvalidSampleLabel: the class does not exist
            InvalidVectorLength: the vector is not FEATURE_DIM long
        """
        if not self.has_class(class_id):
            raise InvalidSampleLabel(class_id)

        vec = np.array(features, dtype=FEATURE_DTYPE).ravel()
        if vec.shape[0] != FEATURE_DIM:
            raise InvalidVectorLength(FEATURE_DIM, vec.shape[0])
        vec.setflags(write=False)

        sample = Sample(
            class_id=class_id,
            features=vec,
            captured_at_ms=int(captured_at_ms) if captured_at_ms is not None else _now_ms(),
        )
        self.samples.append(sample)
        return sample

    def usable_samples(self) -> List[Sample]:
        """Samples whose class still exists."""
        ids = {c.id for c in self.classes}
        return [s for s in self.samples if s.class_id in ids]

    def count_samples_by_class(self) -> Dict[str, int]:
        """Sample count per current class id (stale samples excluded)."""
        counts = {c.id: 0 for c in self.classes}
        for s in self.samples:
            if s.class_id in counts:
                counts[s.class_id] += 1
        return counts

    def reset(self) -> None:
        """Drop everything and start again with one fresh class."""
        self.classes = []
        self.samples = []
        self.active_class_id = None
        self.add_class()

    def __len__(self) -> int:
        return len(self.samples)
