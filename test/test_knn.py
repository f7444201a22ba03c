import numpy as np
import pytest

from gesture_trainer.errors import EmptyTrainingSet
from gesture_trainer.featurize import FEATURE_DIM
from gesture_trainer.knn import exemplar_accuracy, fit_exemplar, predict_exemplar


def _vec(value):
    return np.full(FEATURE_DIM, value, dtype=np.float64)


def test_k1_exact_match_gives_full_confidence():
    model = fit_exemplar(["A", "B"], [_vec(0.0), _vec(1.0)], [0, 1], k=1)

    pred = predict_exemplar(model, _vec(0.0))

    assert pred.label == "A"
    assert pred.confidence == pytest.approx(1.0)


def test_probabilities_sum_to_one():
    X = [_vec(0.0), _vec(0.2), _vec(1.0), _vec(1.1), _vec(2.0)]
    model = fit_exemplar(["A", "B", "C"], X, [0, 0, 1, 1, 2], k=3)

    pred = predict_exemplar(model, _vec(0.6))

    assert len(pred.probabilities) == 3
    assert pred.probabilities.sum() == pytest.approx(1.0, abs=1e-6)


def test_closer_neighbors_weigh_more():
    model = fit_exemplar(["A", "B"], [_vec(0.0), _vec(1.0)], [0, 1], k=2)

    pred = predict_exemplar(model, _vec(0.1))

    assert pred.label == "A"
    assert pred.probabilities[0] > pred.probabilities[1]


def test_tie_resolves_to_lowest_index():
    model = fit_exemplar(["A", "B"], [_vec(0.0), _vec(1.0)], [0, 1], k=2)

    pred = predict_exemplar(model, _vec(0.5))

    assert pred.label == "A"
    assert pred.confidence == pytest.approx(0.5)


def test_invalid_samples_are_dropped_and_counted():
    X = [_vec(0.0), np.zeros(5), _vec(1.0), _vec(2.0)]
    model = fit_exemplar(["A", "B"], X, [0, 0, 1, 7], k=3)

    assert model.dropped == 2
    assert len(model.samples) == 2
    assert model.k == 2


def test_no_valid_samples_raises():
    with pytest.raises(EmptyTrainingSet):
        fit_exemplar(["A"], [np.zeros(3)], [0])


def test_k_is_clamped_to_sample_count():
    model = fit_exemplar(["A", "B"], [_vec(0.0), _vec(1.0)], [0, 1], k=10)

    assert model.k == 2


def test_wrong_length_input_gives_empty_prediction():
    model = fit_exemplar(["A", "B"], [_vec(0.0), _vec(1.0)], [0, 1], k=1)

    pred = predict_exemplar(model, np.zeros(3))

    assert pred.label == ""
    assert pred.confidence == 0.0
    assert list(pred.probabilities) == [0.0, 0.0]


def test_smoothing_blends_previous_probabilities():
    model = fit_exemplar(["A", "B"], [_vec(0.0), _vec(1.0)], [0, 1], k=1)

    off = predict_exemplar(model, _vec(0.0), prev_probs=[0.0, 1.0])
    on = predict_exemplar(model, _vec(0.0), prev_probs=[0.0, 1.0], smoothing=True, alpha=0.7)

    assert off.confidence == pytest.approx(1.0)
    assert on.label == "B"
    np.testing.assert_allclose(on.probabilities, [0.3, 0.7])


def test_exemplar_accuracy():
    X = np.vstack([_vec(0.0), _vec(1.0)])
    model = fit_exemplar(["A", "B"], X, [0, 1], k=1)

    assert exemplar_accuracy(model, X, np.array([0, 1])) == 1.0
    assert exemplar_accuracy(model, X, np.array([1, 0])) == 0.0
