"""
Metrics for scoring fitted model candidates.

:class:`.MeanSquaredError` scores regressors by the mean of squared residuals;
:class:`.Accuracy` scores classifiers by the fraction of exactly matching labels and
also provides confusion matrices.
"""
from ._metrics import *
