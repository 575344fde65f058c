"""
Model candidates, their fitted counterparts, and evaluation results.
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
    cast,
)

import numpy as np
import pandas as pd
from sklearn.base import clone

from pytools.api import AllTracker, to_list
from pytools.expression import Expression, HasExpressionRepr
from pytools.expression.atomic import Id
from sklearndf import ClassifierDF, SupervisedLearnerDF

from ..data import Sample
from ..data.partition import SamplePartition
from ..errors import EvaluationError, FitError, SelectionError
from ..metrics import Accuracy, Metric

log = logging.getLogger(__name__)

__all__ = [
    "Predictor",
    "ModelCandidate",
    "FittedCandidate",
    "EvaluationResult",
    "CandidateFailure",
    "evaluate",
]

#
# Constants
#

PARAM_RANDOM_STATE = "random_state"

#
# Ensure all symbols introduced below are included in __all__
#

__tracker = AllTracker(globals())


#
# Class definitions
#


class Predictor(HasExpressionRepr):
    """
    A predictor column, optionally expanded into polynomial terms.

    A predictor ``x`` with degree ``d`` contributes the features
    ``x``, ``x^2``, ..., ``x^d`` to a model candidate.
    """

    __slots__ = ["_name", "_degree"]

    def __init__(self, name: str, degree: int = 1) -> None:
        """
        :param name: the name of the predictor column
        :param degree: the degree of the polynomial expansion (default: 1, i.e.,
            no expansion)
        """
        if not isinstance(name, str) or not name:
            raise TypeError(f"arg name must be a non-empty string, but got {name!r}")
        if isinstance(degree, bool) or not isinstance(degree, int) or degree < 1:
            raise ValueError(
                f"arg degree must be a positive integer, but got {degree!r}"
            )

        self._name = name
        self._degree = degree

    @property
    def name(self) -> str:
        """
        The name of the predictor column.
        """
        return self._name

    @property
    def degree(self) -> int:
        """
        The degree of the polynomial expansion.
        """
        return self._degree

    @property
    def feature_names(self) -> List[str]:
        """
        The names of the features this predictor expands into.
        """
        return [self._name] + [
            f"{self._name}^{power}" for power in range(2, self._degree + 1)
        ]

    def expand(self, values: pd.Series) -> pd.DataFrame:
        """
        Expand the given values of this predictor into features.

        :param values: the values of the predictor column
        :return: a data frame with one column per feature
        """
        if self._degree == 1:
            return values.to_frame(name=self._name)
        return pd.DataFrame(
            {
                feature_name: values**power
                for power, feature_name in enumerate(self.feature_names, start=1)
            },
            index=values.index,
        )

    def to_expression(self) -> Expression:
        """[see superclass]"""
        if self._degree == 1:
            return Id(type(self))(self._name)
        else:
            return Id(type(self))(self._name, degree=self._degree)

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, Predictor)
            and self._name == other._name
            and self._degree == other._degree
        )

    def __hash__(self) -> int:
        return hash((self._name, self._degree))


class ModelCandidate(HasExpressionRepr):
    """
    A fully specified model configuration that has not been fitted yet.

    A candidate comprises a name, the target column, an ordered list of predictors,
    and a learner with its hyperparameters. All of these are resolved when the
    candidate is created and do not change afterwards.

    Fitting a candidate produces a new :class:`.FittedCandidate` and leaves the
    candidate itself unchanged.

    .. note::

        Candidates must only ever be fitted to the training subset of a
        :class:`.SamplePartition`. Fitting to validation or test observations
        invalidates the whole model selection. :class:`.ModelSelector` ensures this
        by fitting candidates to the training subset only.
    """

    __slots__ = ["_name", "_learner", "_target", "_predictors", "_random_state"]

    def __init__(
        self,
        name: str,
        learner: SupervisedLearnerDF,
        *,
        target: str,
        predictors: Sequence[Union[str, Predictor]],
        params: Optional[Mapping[str, Any]] = None,
        random_state: Optional[int] = None,
    ) -> None:
        """
        :param name: a unique name for this candidate, used in reports
        :param learner: the learner to fit; it is cloned, so the instance passed
            here is never fitted
        :param target: the name of the target column
        :param predictors: the predictor columns, as names or as :class:`.Predictor`
            objects for polynomial expansions
        :param params: hyperparameters to set on the learner, using `scikit-learn`'s
            ``__`` convention for parameters of nested estimators
        :param random_state: an optional seed for learners with internal randomness;
            if omitted, a seed is provided when fitting the candidate
        """
        if not isinstance(name, str) or not name:
            raise TypeError(f"arg name must be a non-empty string, but got {name!r}")

        if not isinstance(learner, SupervisedLearnerDF):
            raise TypeError(
                "arg learner must be a SupervisedLearnerDF, "
                f"but is a {type(learner).__name__}"
            )

        if not isinstance(target, str):
            raise TypeError(f"arg target must be a string, but got {target!r}")

        predictors_list: List[Predictor] = [
            predictor if isinstance(predictor, Predictor) else Predictor(predictor)
            for predictor in to_list(
                predictors, element_type=(str, Predictor), arg_name="predictors"
            )
        ]

        if not predictors_list:
            raise ValueError("arg predictors must include at least one predictor")

        predictor_names = [predictor.name for predictor in predictors_list]
        if len(set(predictor_names)) < len(predictor_names):
            raise ValueError(f"arg predictors has duplicate names: {predictor_names}")

        if target in predictor_names:
            raise ValueError(f"target {target!r} is also included in the predictors")

        if random_state is not None and (
            isinstance(random_state, bool) or not isinstance(random_state, int)
        ):
            raise TypeError(
                f"arg random_state must be an integer or None, but got {random_state!r}"
            )

        learner = clone(learner)
        if params:
            known_params = learner.get_params(deep=True)
            unknown = [param for param in params if param not in known_params]
            if unknown:
                raise AttributeError(
                    f"unknown parameter name(s) for {type(learner).__name__}: "
                    + ", ".join(unknown)
                )
            learner.set_params(**params)

        self._name = name
        self._learner = learner
        self._target = target
        self._predictors = tuple(predictors_list)
        self._random_state = random_state

    @property
    def name(self) -> str:
        """
        The name of this candidate.
        """
        return self._name

    @property
    def learner(self) -> SupervisedLearnerDF:
        """
        An unfitted copy of the learner of this candidate.
        """
        return clone(self._learner)

    @property
    def target(self) -> str:
        """
        The name of the target column.
        """
        return self._target

    @property
    def predictors(self) -> List[Predictor]:
        """
        The predictors of this candidate, in declaration order.
        """
        return list(self._predictors)

    @property
    def predictor_names(self) -> List[str]:
        """
        The names of the predictor columns of this candidate.
        """
        return [predictor.name for predictor in self._predictors]

    @property
    def feature_names(self) -> List[str]:
        """
        The names of all features passed to the learner, after polynomial expansion.
        """
        return [
            feature_name
            for predictor in self._predictors
            for feature_name in predictor.feature_names
        ]

    @property
    def params(self) -> Dict[str, Any]:
        """
        The shallow hyperparameters of this candidate's learner.
        """
        return self._learner.get_params(deep=False)

    @property
    def random_state(self) -> Optional[int]:
        """
        The seed set for this candidate, if any.
        """
        return self._random_state

    @property
    def is_classifier(self) -> bool:
        """
        ``True`` if the learner of this candidate is a classifier.
        """
        return isinstance(self._learner, ClassifierDF)

    @property
    def uses_randomness(self) -> bool:
        """
        ``True`` if the learner of this candidate accepts a random seed.
        """
        return bool(_random_state_params(self._learner))

    def fit(
        self, sample: Sample, *, random_state: Optional[int] = None
    ) -> FittedCandidate:
        """
        Fit this candidate to the given sample.

        Only observations with values for all predictors and a finite target value
        are used for fitting.

        :param sample: the training sample; never pass validation or test
            observations
        :param random_state: the seed to use if neither this candidate nor its
            learner define a seed of their own; ignored for learners without
            internal randomness
        :return: the fitted candidate
        :raise FitError: if the sample has no observations, if a predictor or the
            target is missing entirely, or if the features cannot be derived from
            the predictors or the learner fails to fit
        """
        name = self._name

        if len(sample) == 0:
            raise FitError(name, "training sample has no observations")

        columns = [*self.predictor_names, self._target]
        missing = [column for column in columns if column not in sample.columns]
        if missing:
            raise FitError(
                name, f"training sample is missing columns: {', '.join(missing)}"
            )

        data = sample.get_columns(columns)

        empty = [
            predictor
            for predictor in self.predictor_names
            if data[predictor].isna().all()
        ]
        if empty:
            raise FitError(
                name, f"predictor columns have no values: {', '.join(empty)}"
            )

        target_valid = _valid_target_mask(data[self._target])
        if not target_valid.any():
            raise FitError(name, f"target column {self._target!r} has no finite values")

        valid = data[self.predictor_names].notna().all(axis=1) & target_valid
        if not valid.any():
            raise FitError(
                name, "training sample has no observation with complete values"
            )

        y = data.loc[valid, self._target]

        learner = clone(self._learner)

        seed: Optional[int] = None
        seed_params = _random_state_params(learner)
        if seed_params:
            # precedence: candidate seed, then learner seed, then the given seed
            seed = self._random_state
            if seed is None:
                seed = _learner_seed(learner, seed_params)
            if seed is None:
                seed = random_state
            if seed is not None:
                learner.set_params(**{param: seed for param in seed_params})

        try:
            x = self._make_features(data.loc[valid])
            learner.fit(x, y)
        except Exception as e:
            raise FitError(name, f"{type(e).__name__}: {e}") from e

        log.debug(
            f"fitted candidate {name!r} to {len(x)} observations "
            f"(random_state={seed})"
        )

        return FittedCandidate(
            self, learner, random_state=seed, n_observations=len(x)
        )

    def _make_features(self, data: pd.DataFrame) -> pd.DataFrame:
        frames = [
            predictor.expand(data[predictor.name]) for predictor in self._predictors
        ]
        return pd.concat(frames, axis=1) if len(frames) > 1 else frames[0]

    def to_expression(self) -> Expression:
        """[see superclass]"""
        kwargs: Dict[str, Any] = dict(
            target=self._target,
            predictors=[
                predictor.name if predictor.degree == 1 else predictor
                for predictor in self._predictors
            ],
        )
        if self._random_state is not None:
            kwargs["random_state"] = self._random_state
        return Id(type(self))(self._name, self._learner, **kwargs)


class FittedCandidate:
    """
    A model candidate bound to a learner fitted to one training sample.
    """

    __slots__ = ["_candidate", "_learner", "_random_state", "_n_observations"]

    def __init__(
        self,
        candidate: ModelCandidate,
        learner: SupervisedLearnerDF,
        *,
        random_state: Optional[int],
        n_observations: int,
    ) -> None:
        """
        :param candidate: the candidate that was fitted
        :param learner: the fitted learner
        :param random_state: the seed used to fit the learner, if the learner uses
            randomness
        :param n_observations: the number of observations the learner was fitted to
        """
        if not learner.is_fitted:
            raise ValueError("arg learner must be fitted")

        self._candidate = candidate
        self._learner = learner
        self._random_state = random_state
        self._n_observations = n_observations

    @property
    def candidate(self) -> ModelCandidate:
        """
        The candidate that was fitted.
        """
        return self._candidate

    @property
    def name(self) -> str:
        """
        The name of the fitted candidate.
        """
        return self._candidate.name

    @property
    def learner(self) -> SupervisedLearnerDF:
        """
        The fitted learner.
        """
        return self._learner

    @property
    def random_state(self) -> Optional[int]:
        """
        The seed used to fit the learner; ``None`` for learners without randomness.
        """
        return self._random_state

    @property
    def n_observations(self) -> int:
        """
        The number of observations the learner was fitted to.
        """
        return self._n_observations

    def predict(self, sample: Sample) -> pd.Series:
        """
        Predict the target for all observations of the given sample.

        Predictions for observations with missing predictor values are ``NaN``.

        :param sample: the sample to predict
        :return: a series of predictions, with the same index as the sample
        :raise EvaluationError: if a predictor column is missing from the sample, if
            the features cannot be derived from the predictors, or if the learner
            does not return one prediction per observation
        """
        candidate = self._candidate
        predictor_names = candidate.predictor_names

        missing = [name for name in predictor_names if name not in sample.columns]
        if missing:
            raise EvaluationError(
                candidate.name, f"sample is missing columns: {', '.join(missing)}"
            )

        data = sample.get_columns(predictor_names)
        complete = data.notna().all(axis=1)

        predictions = pd.Series(np.nan, index=sample.index, dtype=object)
        if complete.any():
            try:
                # noinspection PyProtectedMember
                x = candidate._make_features(data.loc[complete])
                y_pred = self._learner.predict(x)
            except Exception as e:
                raise EvaluationError(
                    candidate.name, f"{type(e).__name__}: {e}"
                ) from e

            y_pred_arr = np.asarray(y_pred)
            if y_pred_arr.ndim != 1 or len(y_pred_arr) != len(x):
                raise EvaluationError(
                    candidate.name,
                    f"expected {len(x)} predictions but got an array of shape "
                    f"{y_pred_arr.shape}",
                )
            predictions = pd.Series(y_pred_arr, index=x.index).reindex(sample.index)

        return predictions.rename(candidate.target)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.name!r}, random_state={self._random_state}, "
            f"n_observations={self._n_observations})"
        )


class EvaluationResult:
    """
    The score of a fitted candidate on one subset of a partition.
    """

    __slots__ = [
        "_candidate_name",
        "_metric_name",
        "_score",
        "_role",
        "_n_observations",
        "_confusion_matrix",
    ]

    def __init__(
        self,
        *,
        candidate_name: str,
        metric_name: str,
        score: float,
        role: str,
        n_observations: int,
        confusion_matrix: Optional[pd.DataFrame] = None,
    ) -> None:
        """
        :param candidate_name: the name of the evaluated candidate
        :param metric_name: the name of the metric
        :param score: the score
        :param role: the role of the subset the score was computed on
        :param n_observations: the number of observations scored
        :param confusion_matrix: optional confusion matrix for classifiers
        """
        self._candidate_name = candidate_name
        self._metric_name = metric_name
        self._score = score
        self._role = role
        self._n_observations = n_observations
        self._confusion_matrix = confusion_matrix

    @property
    def candidate_name(self) -> str:
        """
        The name of the evaluated candidate.
        """
        return self._candidate_name

    @property
    def metric_name(self) -> str:
        """
        The name of the metric.
        """
        return self._metric_name

    @property
    def score(self) -> float:
        """
        The score.
        """
        return self._score

    @property
    def role(self) -> str:
        """
        The role of the subset the score was computed on.
        """
        return self._role

    @property
    def n_observations(self) -> int:
        """
        The number of observations scored.
        """
        return self._n_observations

    @property
    def confusion_matrix(self) -> Optional[pd.DataFrame]:
        """
        Observation counts per observed label (rows) and predicted label (columns);
        ``None`` for regressors.
        """
        if self._confusion_matrix is None:
            return None
        return self._confusion_matrix.copy()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this result to a dictionary of plain values.

        :return: the dictionary
        """
        result: Dict[str, Any] = dict(
            candidate=self._candidate_name,
            metric=self._metric_name,
            score=self._score,
            role=self._role,
            n_observations=self._n_observations,
        )
        if self._confusion_matrix is not None:
            result["confusion_matrix"] = {
                str(true_label): {
                    str(predicted_label): int(count)
                    for predicted_label, count in row.items()
                }
                for true_label, row in self._confusion_matrix.iterrows()
            }
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self._candidate_name!r}, "
            f"{self._metric_name}={self._score:.6g}, role={self._role!r}, "
            f"n_observations={self._n_observations})"
        )


class CandidateFailure:
    """
    A candidate that was excluded from the selection because of an error.
    """

    #: the candidate failed to fit
    STAGE_FIT = "fit"

    #: the fitted candidate failed to be evaluated
    STAGE_EVALUATE = "evaluate"

    #: the candidate was not fitted because the time limit was exceeded
    STAGE_CANCELLED = "cancelled"

    __slots__ = ["_candidate_name", "_stage", "_message"]

    def __init__(self, candidate_name: str, *, stage: str, message: str) -> None:
        """
        :param candidate_name: the name of the failed candidate
        :param stage: the stage at which the candidate failed
        :param message: a description of the failure
        """
        if stage not in (
            CandidateFailure.STAGE_FIT,
            CandidateFailure.STAGE_EVALUATE,
            CandidateFailure.STAGE_CANCELLED,
        ):
            raise ValueError(f"unknown stage: {stage!r}")

        self._candidate_name = candidate_name
        self._stage = stage
        self._message = message

    @property
    def candidate_name(self) -> str:
        """
        The name of the failed candidate.
        """
        return self._candidate_name

    @property
    def stage(self) -> str:
        """
        The stage at which the candidate failed: ``"fit"``, ``"evaluate"``, or
        ``"cancelled"``.
        """
        return self._stage

    @property
    def message(self) -> str:
        """
        A description of the failure.
        """
        return self._message

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this failure to a dictionary of plain values.

        :return: the dictionary
        """
        return dict(
            candidate=self._candidate_name, stage=self._stage, message=self._message
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self._candidate_name!r}, stage={self._stage!r}, "
            f"message={self._message!r})"
        )


def evaluate(
    fitted: FittedCandidate, sample: Sample, *, metric: Metric, role: str
) -> EvaluationResult:
    """
    Score a fitted candidate against the given sample.

    Observations without a prediction or without a valid target value are not
    scored.

    :param fitted: the fitted candidate
    :param sample: the sample to score against
    :param metric: the metric to calculate
    :param role: the role of the sample within its partition
    :return: the evaluation result
    :raise EvaluationError: if no observation can be scored, or if the score is not
        a finite number
    :raise SelectionError: if the role is the test role; the test subset can only
        be evaluated for a selected candidate, using
        :meth:`.Selection.evaluate_test`
    """
    if role == SamplePartition.ROLE_TEST:
        raise SelectionError(
            "the test subset can only be evaluated for the selected candidate, "
            "using Selection.evaluate_test()"
        )
    return _evaluate(fitted, sample, metric=metric, role=role)


__tracker.validate()


#
# auxiliary functions
#


def _evaluate(
    fitted: FittedCandidate, sample: Sample, *, metric: Metric, role: str
) -> EvaluationResult:
    name = fitted.name
    target = fitted.candidate.target

    if target not in sample.columns:
        raise EvaluationError(name, f"sample is missing target column {target!r}")

    y_pred = fitted.predict(sample)
    y_true = sample.get_columns(target).loc[:, target]

    scored = y_pred.notna() & _valid_target_mask(y_true)
    n_scored = int(scored.sum())
    if n_scored == 0:
        raise EvaluationError(name, f"no observations to score in {role} subset")

    y_true = y_true.loc[scored]
    y_pred = y_pred.loc[scored].infer_objects()

    try:
        score = metric.score(y_true, y_pred)
    except Exception as e:
        raise EvaluationError(name, f"{type(e).__name__}: {e}") from e

    if not np.isfinite(score):
        raise EvaluationError(name, f"{metric.name} is not finite: {score}")

    confusion_matrix: Optional[pd.DataFrame] = (
        Accuracy.confusion_matrix(y_true, y_pred) if metric.is_classification else None
    )

    log.debug(f"candidate {name!r} scored {metric.name}={score:.6g} on {role} subset")

    return EvaluationResult(
        candidate_name=name,
        metric_name=metric.name,
        score=score,
        role=role,
        n_observations=n_scored,
        confusion_matrix=confusion_matrix,
    )


def _valid_target_mask(values: pd.Series) -> pd.Series:
    # valid target values are non-missing, and finite if numeric
    valid = values.notna()
    if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(
        values
    ):
        valid &= np.isfinite(values.astype(float))
    return cast(pd.Series, valid)


def _random_state_params(learner: SupervisedLearnerDF) -> List[str]:
    # names of all (possibly nested) random_state parameters of the learner
    return [
        name
        for name in learner.get_params(deep=True)
        if name == PARAM_RANDOM_STATE or name.endswith("__" + PARAM_RANDOM_STATE)
    ]


def _learner_seed(
    learner: SupervisedLearnerDF, seed_params: List[str]
) -> Optional[int]:
    # the first integer seed the learner was configured with, if any
    params = learner.get_params(deep=True)
    for param in seed_params:
        value = params[param]
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            return int(value)
    return None
