"""
Error taxonomy for the gesture trainer.

Per-frame code (featurize, predict, stabilize) degrades gracefully instead of
raising. Training and dataset mutation raise these errors because they are
discrete, user-initiated actions.
"""


class GestureTrainerError(Exception):
    """Base class for all gesture trainer errors."""


class InvalidVectorLength(GestureTrainerError):
    """A feature vector does not have the expected length."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected feature vector of length {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class EmptyTrainingSet(GestureTrainerError):
    """No valid samples remain after filtering."""


class InsufficientSamples(GestureTrainerError):
    """Too few samples to fit a trained model."""

    def __init__(self, count: int, required: int = 2):
        super().__init__(f"At least {required} samples are needed to train, got {count}")
        self.count = count
        self.required = required


class InvalidSampleLabel(GestureTrainerError):
    """A sample references a class that does not exist."""

    def __init__(self, class_id: str):
        super().__init__(f"Unknown class id: {class_id!r}")
        self.class_id = class_id
