"""
Core implementation of :mod:`holdout.metrics`
"""

import logging
from abc import ABCMeta, abstractmethod
from typing import Any, Dict, Tuple, Type

import numpy as np
import pandas as pd
from sklearn import metrics as sk_metrics

from pytools.api import AllTracker, inheritdoc

from ..errors import ConfigError

log = logging.getLogger(__name__)

__all__ = [
    "Metric",
    "MeanSquaredError",
    "Accuracy",
    "get_metric",
]

#
# Ensure all symbols introduced below are included in __all__
#

__tracker = AllTracker(globals())


#
# Class definitions
#


class Metric(metaclass=ABCMeta):
    """
    A metric comparing predictions with observed target values.

    Scores of a metric are only comparable with other scores of the same metric, and
    all model candidates of a run are scored with the same metric.
    """

    #: Name of the metric, as used in configurations and reports.
    name: str

    #: ``True`` if higher scores are better; ``False`` if lower scores are better.
    greater_is_better: bool

    #: ``True`` if the metric applies to classifiers; ``False`` for regressors.
    is_classification: bool

    @abstractmethod
    def score(self, y_true: pd.Series, y_pred: pd.Series) -> float:
        """
        Score the given predictions against the observed target values.

        :param y_true: the observed target values
        :param y_pred: the predicted values, aligned with ``y_true``
        :return: the score
        """
        pass

    def is_better(self, score: float, other: float) -> bool:
        """
        Check whether a score is strictly better than another score.

        :param score: the score to check
        :param other: the score to compare against
        :return: ``True`` if ``score`` is strictly better than ``other``
        """
        if self.greater_is_better:
            return score > other
        else:
            return score < other

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def __eq__(self, other: Any) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))


@inheritdoc(match="""[see superclass]""")
class MeanSquaredError(Metric):
    """
    The mean of squared differences between observed and predicted values.

    Lower is better.
    """

    name = "mse"
    greater_is_better = False
    is_classification = False

    def score(self, y_true: pd.Series, y_pred: pd.Series) -> float:
        """[see superclass]"""
        return float(sk_metrics.mean_squared_error(y_true, y_pred))


@inheritdoc(match="""[see superclass]""")
class Accuracy(Metric):
    """
    The fraction of predicted labels that match the observed labels exactly.

    Higher is better.
    """

    name = "accuracy"
    greater_is_better = True
    is_classification = True

    #: name of the row index of confusion matrices
    IDX_TRUE = "true"

    #: name of the column index of confusion matrices
    IDX_PREDICTED = "predicted"

    def score(self, y_true: pd.Series, y_pred: pd.Series) -> float:
        """[see superclass]"""
        return float(sk_metrics.accuracy_score(y_true, y_pred))

    @staticmethod
    def confusion_matrix(y_true: pd.Series, y_pred: pd.Series) -> pd.DataFrame:
        """
        Count observations for each combination of observed and predicted label.

        :param y_true: the observed labels
        :param y_pred: the predicted labels, aligned with ``y_true``
        :return: a data frame with one row per observed label and one column per
            predicted label, covering all labels that occur in either argument
        """
        labels = np.unique(np.concatenate([np.asarray(y_true), np.asarray(y_pred)]))
        matrix = sk_metrics.confusion_matrix(y_true, y_pred, labels=labels)
        return pd.DataFrame(
            matrix,
            index=pd.Index(labels, name=Accuracy.IDX_TRUE),
            columns=pd.Index(labels, name=Accuracy.IDX_PREDICTED),
        )

    @staticmethod
    def confusion_counts(
        y_true: pd.Series, y_pred: pd.Series
    ) -> Dict[Tuple[Any, Any], int]:
        """
        Count observations for each combination of observed and predicted label
        that occurs at least once.

        :param y_true: the observed labels
        :param y_pred: the predicted labels, aligned with ``y_true``
        :return: a mapping of ``(observed, predicted)`` label pairs to counts
        """
        matrix = Accuracy.confusion_matrix(y_true, y_pred)
        return {
            (true_label, predicted_label): int(count)
            for (true_label, predicted_label), count in matrix.stack().items()
            if count > 0
        }


_METRICS: Dict[str, Type[Metric]] = {
    metric_type.name: metric_type for metric_type in (MeanSquaredError, Accuracy)
}


def get_metric(name: str) -> Metric:
    """
    Get a metric by name.

    :param name: the name of the metric: ``"mse"`` or ``"accuracy"``
    :return: the metric
    :raise ConfigError: if no metric with the given name exists
    """
    try:
        return _METRICS[name]()
    except KeyError:
        raise ConfigError(
            f"unknown metric {name!r}; expected one of: {', '.join(_METRICS)}"
        ) from None


__tracker.validate()
