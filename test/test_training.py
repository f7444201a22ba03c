import asyncio

import numpy as np
import pytest

from conftest import cluster
from gesture_trainer.dataset import Dataset, Sample
from gesture_trainer.errors import EmptyTrainingSet, InsufficientSamples
from gesture_trainer.featurize import FEATURE_DIM
from gesture_trainer.model import build_trained_model, predict_trained
from gesture_trainer.training import (
    EarlyStopping,
    TrainOptions,
    adaptive_schedule,
    build_curve_steps,
    learning_curve,
    prepare,
    train_exemplar,
    train_gradient,
)


def _dataset(per_class=5):
    ds = Dataset("A")
    a = ds.classes[0].id
    b = ds.add_class("B").id
    for i, v in enumerate(cluster(np.full(FEATURE_DIM, 1.0), per_class, seed=3)):
        ds.add_sample(a, v, captured_at_ms=i)
    for i, v in enumerate(cluster(np.full(FEATURE_DIM, -1.0), per_class, seed=4)):
        ds.add_sample(b, v, captured_at_ms=i)
    return ds


# ============================================================================
# prepare
# ============================================================================

def test_prepare_builds_one_hot_matrices():
    ds = _dataset(per_class=3)

    data = prepare(ds.classes, ds.samples)

    assert data.X.shape == (6, FEATURE_DIM)
    assert data.Y.shape == (6, 2)
    assert data.class_names == ["A", "B"]
    assert list(data.Y.sum(axis=1)) == [1.0] * 6
    assert data.class_id_to_index == {ds.classes[0].id: 0, ds.classes[1].id: 1}


def test_prepare_skips_samples_of_deleted_classes():
    ds = _dataset(per_class=3)
    ds.delete_class(ds.classes[1].id)

    data = prepare(ds.classes, ds.samples)

    assert data.num_samples == 3
    assert data.dropped == 3


def test_prepare_all_samples_orphaned_raises():
    ds = Dataset("A")
    orphan = Sample(class_id="gone", features=np.zeros(FEATURE_DIM), captured_at_ms=0)

    with pytest.raises(EmptyTrainingSet):
        prepare(ds.classes, [orphan])


# ============================================================================
# Exemplar path
# ============================================================================

def test_build_curve_steps_small():
    assert build_curve_steps(5) == [2, 3, 4, 5]
    assert build_curve_steps(1) == [1]
    assert build_curve_steps(0) == []


def test_build_curve_steps_capped():
    steps = build_curve_steps(100, max_steps=20)

    assert len(steps) == 20
    assert steps[-1] == 100
    assert steps == sorted(steps)


def test_learning_curve_reports_every_step():
    X = np.vstack([cluster(np.ones(FEATURE_DIM), 5, seed=1), cluster(-np.ones(FEATURE_DIM), 5, seed=2)])
    y = np.array([0] * 5 + [1] * 5)
    events = []

    curve = learning_curve(X, y, num_classes=2, k=1, seed=0, on_step=events.append)

    # 10 samples: 70/30 split, 7 training samples
    assert curve.steps == [2, 3, 4, 5, 6, 7]
    assert [e.step for e in events] == curve.steps
    assert all(acc == 1.0 for acc in curve.acc)
    assert len(curve.val_acc) == len(curve.steps)


def test_learning_curve_is_reproducible_with_seed():
    X = np.random.default_rng(0).normal(size=(20, FEATURE_DIM))
    y = np.array([0, 1] * 10)

    first = learning_curve(X, y, 2, seed=7)
    second = learning_curve(X, y, 2, seed=7)

    assert first.val_acc == second.val_acc


def test_train_exemplar():
    ds = _dataset()

    result = train_exemplar(ds.classes, ds.samples, k=3, seed=0)

    assert result.model.kind == "exemplar"
    assert result.model.class_names == ["A", "B"]
    assert len(result.curve.steps) > 0


def test_train_exemplar_without_samples_raises():
    ds = Dataset()

    with pytest.raises(EmptyTrainingSet):
        train_exemplar(ds.classes, ds.samples)


# ============================================================================
# Gradient path
# ============================================================================

def test_early_stopping_on_plateau():
    stopper = EarlyStopping(patience=3, min_delta=1e-6)
    losses = [1.0, 0.8, 0.8, 0.8, 0.8]

    stops = [stopper.update(loss) for loss in losses]

    assert stops == [False, False, False, False, True]
    assert stopper.stopped


def test_early_stopping_resets_on_improvement():
    stopper = EarlyStopping(patience=2)

    for loss in [1.0, 1.0, 0.5, 0.5]:
        assert not stopper.update(loss)


def test_adaptive_schedule():
    assert adaptive_schedule(10) == (120, 10)
    assert adaptive_schedule(40) == (80, 16)
    assert adaptive_schedule(200) == (50, 32)


def test_train_gradient_needs_two_samples():
    model = build_trained_model(["a"], seed=0)

    with pytest.raises(InsufficientSamples):
        asyncio.run(train_gradient(model, np.zeros((1, FEATURE_DIM)), np.ones((1, 1))))


def test_train_gradient_rejects_mismatched_labels():
    model = build_trained_model(["a", "b"], seed=0)

    with pytest.raises(ValueError):
        asyncio.run(train_gradient(model, np.zeros((4, FEATURE_DIM)), np.ones((4, 3))))


def test_train_gradient_fits_separable_data(two_clusters):
    X, labels, Y = two_clusters
    model = build_trained_model(["a", "b"], seed=0)
    events = []
    options = TrainOptions(learning_rate=1e-2, seed=0, on_epoch=events.append)

    result = asyncio.run(train_gradient(model, X, Y, options))

    # 20 samples: no validation split, full-batch, 120 epochs
    assert not result.meta.used_validation
    assert result.meta.epochs == 120
    assert result.meta.epochs_run == 120
    assert not result.meta.stopped_early
    assert result.final.val_acc is None
    assert result.final.train_acc >= 0.9
    assert len(events) == 120
    assert [e.step for e in events[:3]] == [1, 2, 3]

    pred = predict_trained(result.model, X[0])
    assert pred.label == "a"
    assert pred.probabilities.sum() == pytest.approx(1.0, abs=1e-6)


def test_train_gradient_stops_early_on_flat_validation_loss():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(40, FEATURE_DIM))
    labels = np.array([0, 1] * 20)
    Y = np.eye(2)[labels]
    model = build_trained_model(["a", "b"], seed=0)
    # a vanishing learning rate keeps the validation loss flat
    options = TrainOptions(learning_rate=1e-12, patience=15, seed=0)

    result = asyncio.run(train_gradient(model, X, Y, options))

    assert result.meta.used_validation
    assert result.meta.stopped_early
    assert result.meta.epochs == 80
    assert result.meta.epochs_run < result.meta.epochs
    assert len(result.history.val_loss) == result.meta.epochs_run


def test_train_gradient_yields_between_epochs(two_clusters):
    X, labels, Y = two_clusters
    model = build_trained_model(["a", "b"], seed=0)
    ticks = []

    async def frame_loop(stop):
        while not stop.is_set():
            ticks.append(1)
            await asyncio.sleep(0)

    async def run():
        stop = asyncio.Event()
        loop_task = asyncio.create_task(frame_loop(stop))
        await train_gradient(model, X, Y, TrainOptions(epochs=10))
        stop.set()
        await loop_task

    asyncio.run(run())

    assert len(ticks) >= 5
