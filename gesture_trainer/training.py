"""
Trainer - Fits exemplar and trained models from the dataset.

Handles:
- Turning dataset classes/samples into X / one-hot Y matrices
- Exemplar fitting plus a sample-efficiency learning curve
- Epoch-by-epoch gradient training with an adaptive schedule, an optional
  validation split, early stopping and per-epoch progress events

Gradient training is a coroutine that yields to the event loop after every
epoch so a frame loop running on the same loop keeps ticking.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.model_selection import train_test_split

from .dataset import GestureClass, Sample
from .errors import EmptyTrainingSet, InsufficientSamples
from .featurize import FEATURE_DIM, FEATURE_DTYPE
from .knn import DEFAULT_K, ExemplarModel, exemplar_accuracy, fit_exemplar
from .model import TrainedModel, categorical_accuracy, categorical_crossentropy

logger = logging.getLogger(__name__)

PATIENCE = 15
MIN_DELTA = 1e-6
MIN_VALIDATION_SAMPLES = 30
VALIDATION_SPLIT = 0.2
MAX_BATCH_SIZE = 32
CURVE_MAX_STEPS = 20


@dataclass
class ProgressEvent:
    """
    One training progress update.

    ``step`` is the 1-based epoch for gradient training, or the training
    prefix size for the exemplar learning curve.
    """
    step: int
    train_accuracy: float
    validation_accuracy: Optional[float] = None
    train_loss: Optional[float] = None
    validation_loss: Optional[float] = None


ProgressCallback = Callable[[ProgressEvent], None]


# ============================================================================
# Dataset Preparation
# ============================================================================

@dataclass
class PreparedData:
    """Training matrices built from the dataset."""
    X: np.ndarray
    Y: np.ndarray
    labels: np.ndarray
    class_names: List[str]
    class_id_to_index: Dict[str, int]
    dropped: int = 0

    @property
    def num_samples(self) -> int:
        return int(self.X.shape[0])

    @property
    def num_classes(self) -> int:
        return len(self.class_names)


def prepare(classes: Sequence[GestureClass], samples: Sequence[Sample]) -> PreparedData:
    """
    Build X [N, FEATURE_DIM] and one-hot Y [N, num_classes].

    Samples whose class no longer exists or whose vector has the wrong
    length are dropped and counted.

    Raises:
        EmptyTrainingSet: nothing is left after filtering
    """
    class_id_to_index = {c.id: i for i, c in enumerate(classes)}
    class_names = [c.name for c in classes]

    rows = []
    labels = []
    unknown_class = 0
    bad_length = 0

    for s in samples:
        idx = class_id_to_index.get(s.class_id)
        if idx is None:
            unknown_class += 1
            continue
        if len(s.features) != FEATURE_DIM:
            bad_length += 1
            continue
        rows.append(np.asarray(s.features, dtype=FEATURE_DTYPE))
        labels.append(idx)

    dropped = unknown_class + bad_length
    if dropped:
        logger.warning(
            f"Dropped {dropped} samples ({unknown_class} unknown class, "
            f"{bad_length} wrong length)"
        )

    if not rows:
        raise EmptyTrainingSet("No valid samples to train on (N=0)")

    X = np.vstack(rows).astype(FEATURE_DTYPE)
    y = np.asarray(labels, dtype=np.int64)
    Y = np.zeros((len(y), len(class_names)), dtype=FEATURE_DTYPE)
    Y[np.arange(len(y)), y] = 1.0

    return PreparedData(
        X=X,
        Y=Y,
        labels=y,
        class_names=class_names,
        class_id_to_index=class_id_to_index,
        dropped=dropped,
    )


# ============================================================================
# Exemplar Path
# ============================================================================

@dataclass
class LearningCurve:
    """Accuracy against number of training samples."""
    steps: List[int] = field(default_factory=list)
    acc: List[float] = field(default_factory=list)
    val_acc: List[float] = field(default_factory=list)


@dataclass
class ExemplarTrainResult:
    model: ExemplarModel
    curve: LearningCurve
    dropped: int = 0


def build_curve_steps(train_count: int, max_steps: int = CURVE_MAX_STEPS) -> List[int]:
    """
    Prefix sizes for the learning curve.

    Every size from min(2, n) to n when n <= max_steps, otherwise
    max_steps evenly spaced sizes in [2, n]. Always ends at n.
    """
    if train_count <= 0:
        return []
    if train_count <= max_steps:
        start = min(2, train_count)
        return list(range(start, train_count + 1))

    steps = set()
    for i in range(1, max_steps + 1):
        step = int(round(i / max_steps * train_count))
        steps.add(max(2, min(train_count, step)))
    steps.add(train_count)
    return sorted(steps)


def learning_curve(
    X: np.ndarray,
    y: np.ndarray,
    num_classes: int,
    k: int = DEFAULT_K,
    max_steps: int = CURVE_MAX_STEPS,
    seed: Optional[int] = None,
    on_step: Optional[ProgressCallback] = None,
) -> LearningCurve:
    """
    Retrain the exemplar model on growing prefixes of a shuffled train split.

    The split is 80/20, or 70/30 when there are fewer than 12 samples.
    Train accuracy is measured on the prefix itself, validation accuracy on
    the held-out part (0 when it is empty).

    Args:
        X: Feature matrix [N, FEATURE_DIM]
        y: Class index per row
        num_classes: Number of classes
        k: Neighbors for each fitted model
        max_steps: Upper bound on curve points
        seed: Shuffle seed
        on_step: Called after every curve point

    Returns:
        LearningCurve
    """
    X = np.asarray(X)
    y = np.asarray(y)
    if len(X) != len(y):
        raise ValueError(f"X and y must have the same length ({len(X)} != {len(y)})")

    n = len(X)
    if n == 0 or num_classes <= 0:
        return LearningCurve()

    order = np.random.default_rng(seed).permutation(n)
    X = X[order]
    y = y[order]

    split = 0.8 if n >= 12 else 0.7
    train_count = max(1, int(np.floor(n * split)))
    train_x, train_y = X[:train_count], y[:train_count]
    val_x, val_y = X[train_count:], y[train_count:]

    class_names = [f"Class {i + 1}" for i in range(num_classes)]
    curve = LearningCurve()

    for step in build_curve_steps(train_count, max_steps):
        subset_x = train_x[:step]
        subset_y = train_y[:step]
        knn = fit_exemplar(class_names, subset_x, subset_y, k)
        acc = exemplar_accuracy(knn, subset_x, subset_y)
        val_acc = exemplar_accuracy(knn, val_x, val_y) if len(val_x) else 0.0

        curve.steps.append(step)
        curve.acc.append(acc)
        curve.val_acc.append(val_acc)

        if on_step:
            on_step(ProgressEvent(
                step=step,
                train_accuracy=acc,
                validation_accuracy=val_acc if len(val_x) else None,
            ))

    return curve


def train_exemplar(
    classes: Sequence[GestureClass],
    samples: Sequence[Sample],
    k: int = DEFAULT_K,
    max_steps: int = CURVE_MAX_STEPS,
    seed: Optional[int] = None,
    on_step: Optional[ProgressCallback] = None,
) -> ExemplarTrainResult:
    """
    Fit an exemplar model on all usable samples and compute its learning
    curve.

    Raises:
        EmptyTrainingSet: no usable samples
    """
    data = prepare(classes, samples)
    model = fit_exemplar(data.class_names, data.X, data.labels, k)
    curve = learning_curve(
        data.X, data.labels, data.num_classes,
        k=k, max_steps=max_steps, seed=seed, on_step=on_step,
    )
    logger.info(
        f"Exemplar model ready: {data.num_samples} samples, "
        f"{data.num_classes} classes, k={model.k}"
    )
    return ExemplarTrainResult(model=model, curve=curve, dropped=data.dropped)


# ============================================================================
# Gradient Path
# ============================================================================

class EarlyStopping:
    """
    Stop when the monitored loss has not improved by more than
    ``min_delta`` for ``patience`` consecutive epochs.
    """

    def __init__(self, patience: int = PATIENCE, min_delta: float = MIN_DELTA):
        self.patience = patience
        self.min_delta = min_delta
        self.best = float("inf")
        self.wait = 0
        self.stopped = False

    def update(self, loss: float) -> bool:
        """Record one epoch's loss. Returns True when training should stop."""
        if loss < self.best - self.min_delta:
            self.best = loss
            self.wait = 0
        else:
            self.wait += 1
            if self.wait >= self.patience:
                self.stopped = True
        return self.stopped


def adaptive_schedule(num_samples: int) -> Tuple[int, int]:
    """
    Default (epochs, batch_size) for a sample count.

    Few samples get more epochs and full-batch updates; larger sets cap
    the batch at MAX_BATCH_SIZE.
    """
    if num_samples <= 20:
        return 120, max(1, num_samples)
    if num_samples <= 60:
        return 80, min(16, num_samples)
    return 50, MAX_BATCH_SIZE


@dataclass
class TrainOptions:
    """
    Gradient training options. None means "use the adaptive default".

    Attributes:
        epochs: Epoch budget
        batch_size: Mini-batch size
        patience: Early-stopping patience in epochs
        min_delta: Minimum validation-loss improvement
        validation_split: Held-out fraction when validation is used
        min_validation_samples: Sample count needed to hold out validation
        learning_rate: Overrides the network's learning rate
        seed: Split seed
        on_epoch: Called synchronously after every epoch
    """
    epochs: Optional[int] = None
    batch_size: Optional[int] = None
    patience: int = PATIENCE
    min_delta: float = MIN_DELTA
    validation_split: float = VALIDATION_SPLIT
    min_validation_samples: int = MIN_VALIDATION_SAMPLES
    learning_rate: Optional[float] = None
    seed: Optional[int] = None
    on_epoch: Optional[ProgressCallback] = None


@dataclass
class TrainHistory:
    acc: List[float] = field(default_factory=list)
    val_acc: List[float] = field(default_factory=list)
    loss: List[float] = field(default_factory=list)
    val_loss: List[float] = field(default_factory=list)


@dataclass
class TrainFinal:
    train_acc: Optional[float] = None
    val_acc: Optional[float] = None
    train_loss: Optional[float] = None
    val_loss: Optional[float] = None


@dataclass
class TrainMeta:
    stopped_early: bool
    patience: int
    used_validation: bool
    epochs: int
    epochs_run: int


@dataclass
class TrainResult:
    model: TrainedModel
    history: TrainHistory
    final: TrainFinal
    meta: TrainMeta


def _last(values: List[float]) -> Optional[float]:
    return values[-1] if values else None


async def train_gradient(
    model: TrainedModel,
    X: np.ndarray,
    Y: np.ndarray,
    options: Optional[TrainOptions] = None,
) -> TrainResult:
    """
    Fit a trained model one epoch at a time.

    A validation split is held out only when there are at least
    ``min_validation_samples`` samples; early stopping watches the
    validation loss and is inactive without it.

    Args:
        model: Untrained model from ``build_trained_model``
        X: Feature matrix [N, FEATURE_DIM]
        Y: One-hot labels [N, num_classes]
        options: Training options

    Returns:
        TrainResult with the fitted model, history, final metrics and meta

    Raises:
        InsufficientSamples: fewer than 2 samples
        ValueError: Y does not match the model's classes
    """
    options = options or TrainOptions()
    X = np.asarray(X, dtype=np.float64)
    Y = np.asarray(Y, dtype=np.float64)

    num_samples = X.shape[0]
    if num_samples < 2:
        raise InsufficientSamples(num_samples)
    if Y.shape != (num_samples, model.num_classes):
        raise ValueError(
            f"Y has shape {Y.shape}, expected ({num_samples}, {model.num_classes})"
        )
    if model.network is None:
        raise RuntimeError("Cannot train a released model")

    default_epochs, default_batch = adaptive_schedule(num_samples)
    epochs = options.epochs if options.epochs is not None else default_epochs
    batch_size = options.batch_size if options.batch_size is not None else default_batch

    use_validation = num_samples >= options.min_validation_samples
    if use_validation:
        train_idx, val_idx = train_test_split(
            np.arange(num_samples),
            test_size=options.validation_split,
            random_state=options.seed,
            shuffle=True,
        )
    else:
        train_idx, val_idx = np.arange(num_samples), np.arange(0)

    x_train, y_train = X[train_idx], Y[train_idx]
    x_val, y_val = X[val_idx], Y[val_idx]
    labels_train = np.argmax(y_train, axis=1)

    params = {"batch_size": max(1, min(batch_size, len(x_train)))}
    if options.learning_rate is not None:
        params["learning_rate_init"] = options.learning_rate
    model.network.set_params(**params)

    history = TrainHistory()
    stopper = EarlyStopping(options.patience, options.min_delta)
    epochs_run = 0

    logger.info(
        f"Training on {len(x_train)} samples "
        f"({'validating on ' + str(len(x_val)) if use_validation else 'no validation'}), "
        f"{epochs} epochs, batch {params['batch_size']}"
    )

    for epoch in range(epochs):
        model.network.partial_fit(x_train, labels_train, classes=model.classes)
        model.fitted = True
        epochs_run = epoch + 1

        train_probs = model.predict_proba(x_train)
        acc = categorical_accuracy(y_train, train_probs)
        loss = categorical_crossentropy(y_train, train_probs)
        history.acc.append(acc)
        history.loss.append(loss)

        val_acc = None
        val_loss = None
        if use_validation:
            val_probs = model.predict_proba(x_val)
            val_acc = categorical_accuracy(y_val, val_probs)
            val_loss = categorical_crossentropy(y_val, val_probs)
            history.val_acc.append(val_acc)
            history.val_loss.append(val_loss)

        if options.on_epoch:
            options.on_epoch(ProgressEvent(
                step=epochs_run,
                train_accuracy=acc,
                validation_accuracy=val_acc,
                train_loss=loss,
                validation_loss=val_loss,
            ))

        if use_validation and stopper.update(val_loss):
            logger.info(
                f"Early stop after {epochs_run} epochs "
                f"(no val_loss improvement for {options.patience} epochs)"
            )
            break

        # Let other tasks (the frame loop) run before the next epoch
        await asyncio.sleep(0)

    return TrainResult(
        model=model,
        history=history,
        final=TrainFinal(
            train_acc=_last(history.acc),
            val_acc=_last(history.val_acc),
            train_loss=_last(history.loss),
            val_loss=_last(history.val_loss),
        ),
        meta=TrainMeta(
            stopped_early=stopper.stopped,
            patience=options.patience,
            used_validation=use_validation,
            epochs=epochs,
            epochs_run=epochs_run,
        ),
    )
