"""
Tests for module holdout.metrics
"""
import logging

import numpy as np
import pandas as pd
import pytest
from pandas.testing import assert_frame_equal

from holdout.errors import ConfigError
from holdout.metrics import Accuracy, MeanSquaredError, get_metric

log = logging.getLogger(__name__)


def test_mean_squared_error() -> None:
    mse = MeanSquaredError()

    assert mse.name == "mse"
    assert not mse.greater_is_better
    assert not mse.is_classification

    y_true = pd.Series([1.0, 2.0, 3.0, 4.0])
    y_pred = pd.Series([1.0, 2.5, 2.0, 4.0])

    # mean, not sum, of squared residuals
    assert mse.score(y_true, y_pred) == pytest.approx((0.25 + 1.0) / 4)
    assert mse.score(y_true, y_true) == 0.0

    assert mse.is_better(0.1, 0.2)
    assert not mse.is_better(0.2, 0.1)
    # strictly better only
    assert not mse.is_better(0.1, 0.1)


def test_accuracy() -> None:
    accuracy = Accuracy()

    assert accuracy.name == "accuracy"
    assert accuracy.greater_is_better
    assert accuracy.is_classification

    assert accuracy.is_better(0.9, 0.8)
    assert not accuracy.is_better(0.8, 0.9)
    assert not accuracy.is_better(0.8, 0.8)


def test_confusion_scenario() -> None:
    y_pred = pd.Series(["T", "T", "F", "F"])
    y_true = pd.Series(["T", "F", "F", "F"])

    assert Accuracy().score(y_true, y_pred) == pytest.approx(0.75)

    counts = Accuracy.confusion_counts(y_true, y_pred)

    # keyed by (observed, predicted)
    assert counts == {("T", "T"): 1, ("F", "T"): 1, ("F", "F"): 2}

    # the same counts, keyed by (predicted, observed)
    assert {(predicted, true): n for (true, predicted), n in counts.items()} == {
        ("T", "T"): 1,
        ("T", "F"): 1,
        ("F", "F"): 2,
    }

    assert sum(counts.values()) == len(y_true)


def test_confusion_matrix() -> None:
    y_true = pd.Series([0, 1, 2, 2, 1])
    y_pred = pd.Series([0, 2, 2, 2, 3])

    matrix = Accuracy.confusion_matrix(y_true, y_pred)

    # labels occurring in either argument make up rows and columns
    expected = pd.DataFrame(
        np.array(
            [
                [1, 0, 0, 0],
                [0, 0, 1, 1],
                [0, 0, 2, 0],
                [0, 0, 0, 0],
            ]
        ),
        index=pd.Index([0, 1, 2, 3], name=Accuracy.IDX_TRUE),
        columns=pd.Index([0, 1, 2, 3], name=Accuracy.IDX_PREDICTED),
    )

    assert_frame_equal(matrix, expected, check_dtype=False)


def test_get_metric() -> None:
    assert isinstance(get_metric("mse"), MeanSquaredError)
    assert isinstance(get_metric("accuracy"), Accuracy)
    assert get_metric("mse") == MeanSquaredError()
    assert get_metric("mse") != Accuracy()

    with pytest.raises(ConfigError, match="unknown metric 'r2'"):
        get_metric("r2")
