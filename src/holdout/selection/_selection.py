"""
Core implementation of :mod:`holdout.selection`
"""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    TypeVar,
    Union,
    cast,
)

import numpy as np
import pandas as pd

from pytools.api import AllTracker, inheritdoc
from pytools.fit import FittableMixin, fitted_only
from pytools.parallelization import Job, JobRunner, ParallelizableMixin

from ..data import Sample
from ..data.partition import SamplePartition
from ..errors import (
    ConfigError,
    EvaluationError,
    FinalEvaluationError,
    FitError,
    SelectionError,
)
from ..metrics import Metric, get_metric
from ._candidate import (
    CandidateFailure,
    EvaluationResult,
    FittedCandidate,
    ModelCandidate,
    _evaluate,
)
from ._parameters import CandidateSpace

log = logging.getLogger(__name__)

__all__ = [
    "CandidateOutcome",
    "ModelSelector",
    "Selection",
    "select_best",
]

#
# Type variables
#

T_ModelSelector = TypeVar("T_ModelSelector", bound="ModelSelector")

#
# Ensure all symbols introduced below are included in __all__
#

__tracker = AllTracker(globals())


#
# Class definitions
#


class CandidateOutcome:
    """
    The outcome of fitting a candidate to the training subset and scoring it on the
    validation subset: either a fitted candidate with its validation result, or a
    failure.
    """

    __slots__ = ["candidate", "fitted", "result", "failure"]

    #: the candidate
    candidate: ModelCandidate

    #: the fitted candidate; ``None`` if fitting failed
    fitted: Optional[FittedCandidate]

    #: the validation result; ``None`` if fitting or evaluation failed
    result: Optional[EvaluationResult]

    #: the failure; ``None`` if the candidate was fitted and evaluated
    failure: Optional[CandidateFailure]

    def __init__(
        self,
        candidate: ModelCandidate,
        *,
        fitted: Optional[FittedCandidate] = None,
        result: Optional[EvaluationResult] = None,
        failure: Optional[CandidateFailure] = None,
    ) -> None:
        """
        :param candidate: the candidate
        :param fitted: the fitted candidate, if fitting succeeded
        :param result: the validation result, if evaluation succeeded
        :param failure: the failure, if fitting or evaluation failed
        """
        if (result is None) == (failure is None):
            raise ValueError(
                "exactly one of args result and failure must be specified"
            )
        self.candidate = candidate
        self.fitted = fitted
        self.result = result
        self.failure = failure

    @property
    def is_success(self) -> bool:
        """
        ``True`` if the candidate was fitted and evaluated.
        """
        return self.result is not None


@inheritdoc(match="""[see superclass]""")
class ModelSelector(FittableMixin[SamplePartition], ParallelizableMixin):
    """
    Select the best of multiple competing model candidates.

    Fitting the selector to a :class:`.SamplePartition` fits each candidate to the
    training subset, and scores it on the validation subset. Candidates that fail to
    fit or to be evaluated are recorded as failures and excluded from the selection.

    Calling :meth:`.select` then finalizes the selection of the candidate with the
    best validation score, and returns a :class:`.Selection`. Only the selection
    can evaluate the selected candidate on the test subset, and only once.

    Candidates are fitted in parallel if ``n_jobs`` is set. An optional ``timeout``
    stops candidates from being fitted once the time limit is exceeded; these
    candidates are recorded as cancelled, and all results obtained so far remain
    valid.

    Candidates with internal randomness whose candidate or learner does not define
    a seed of its own are fitted with a seed derived from arg ``random_state`` (or,
    if omitted, from the seed of the partition) and their position in the candidate
    list.
    """

    # defined in superclass, repeated here for Sphinx
    n_jobs: Optional[int]

    # defined in superclass, repeated here for Sphinx
    shared_memory: Optional[bool]

    # defined in superclass, repeated here for Sphinx
    pre_dispatch: Optional[Union[str, int]]

    # defined in superclass, repeated here for Sphinx
    verbose: Optional[int]

    #: The candidates to select from, in declaration order.
    candidates: List[ModelCandidate]

    #: The metric used to score candidates.
    metric: Metric

    #: The seed used to derive seeds for candidates with internal randomness.
    random_state: Optional[int]

    #: The time limit in seconds for fitting all candidates.
    timeout: Optional[float]

    #: Name of the score column in the summary report.
    COL_SCORE = "score"

    #: Name of the rank column in the summary report.
    COL_RANK = "rank"

    #: Name of the status column in the summary report.
    COL_STATUS = "status"

    #: Name of the random state column in the summary report.
    COL_RANDOM_STATE = "random_state"

    #: Name of the observations count column in the summary report.
    COL_N_OBSERVATIONS = "n_observations"

    #: Name of the message column in the summary report.
    COL_MESSAGE = "message"

    #: Name of the row index of the summary report.
    IDX_CANDIDATE = "candidate"

    #: Status of candidates that were fitted and evaluated.
    STATUS_OK = "ok"

    def __init__(
        self,
        candidates: Iterable[Union[ModelCandidate, CandidateSpace]],
        *,
        metric: Union[str, Metric],
        random_state: Optional[int] = None,
        timeout: Optional[float] = None,
        n_jobs: Optional[int] = None,
        shared_memory: Optional[bool] = None,
        pre_dispatch: Optional[Union[str, int]] = None,
        verbose: Optional[int] = None,
    ) -> None:
        """
        :param candidates: the candidates to select from, in declaration order;
            candidate spaces are expanded into their candidates
        :param metric: the metric to score candidates with, or its name
            (``"mse"`` or ``"accuracy"``)
        :param random_state: optional seed for deriving the seeds of candidates with
            internal randomness
        :param timeout: optional time limit in seconds for fitting all candidates
        """
        super().__init__(
            n_jobs=n_jobs,
            shared_memory=shared_memory,
            pre_dispatch=pre_dispatch,
            verbose=verbose,
        )

        if isinstance(metric, str):
            metric = get_metric(metric)
        elif not isinstance(metric, Metric):
            raise ConfigError(
                f"arg metric must be a Metric or a metric name, but got {metric!r}"
            )

        candidates_list: List[ModelCandidate] = []
        for candidate in candidates:
            if isinstance(candidate, CandidateSpace):
                candidates_list.extend(candidate.iter_candidates())
            elif isinstance(candidate, ModelCandidate):
                candidates_list.append(candidate)
            else:
                raise ConfigError(
                    "arg candidates must contain ModelCandidate or CandidateSpace "
                    f"objects, but got a {type(candidate).__name__}"
                )

        if not candidates_list:
            raise ConfigError("arg candidates must include at least one candidate")

        names = [candidate.name for candidate in candidates_list]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigError(f"duplicate candidate names: {', '.join(duplicates)}")

        mismatched = [
            candidate.name
            for candidate in candidates_list
            if candidate.is_classifier != metric.is_classification
        ]
        if mismatched:
            raise ConfigError(
                f"metric {metric.name!r} requires "
                f"{'classifiers' if metric.is_classification else 'regressors'}, "
                f"but got candidates: {', '.join(mismatched)}"
            )

        if timeout is not None and not timeout > 0:
            raise ConfigError(f"arg timeout must be positive, but got {timeout}")

        self.candidates = candidates_list
        self.metric = metric
        self.random_state = random_state
        self.timeout = timeout

        self._partition: Optional[SamplePartition] = None
        self._outcomes: Optional[List[CandidateOutcome]] = None
        self._selection: Optional[Selection] = None

    __init__.__doc__ = cast(str, __init__.__doc__) + cast(
        str, ParallelizableMixin.__init__.__doc__
    )

    def fit(
        self: T_ModelSelector, __partition: SamplePartition, **fit_params: Any
    ) -> T_ModelSelector:
        """
        Fit all candidates to the training subset of the given partition, and score
        them on its validation subset.

        The test subset of the partition is not used.

        :param __partition: the partition to use
        :param fit_params: optional fit parameters (ignored)
        :return: ``self``
        :raise SelectionError: if no candidate could be fitted and evaluated, or if
            the selection of this selector has already been finalized
        """
        partition = __partition

        if self._selection is not None:
            raise SelectionError(
                "the selection of this model selector has been finalized; "
                "use a new model selector for a new selection"
            )

        self._reset_fit()

        if not isinstance(partition, SamplePartition):
            raise TypeError(
                "arg partition must be a SamplePartition, "
                f"but is a {type(partition).__name__}"
            )

        seeds = self._candidate_seeds(partition)
        deadline: Optional[float] = (
            None if self.timeout is None else time.time() + self.timeout
        )

        train = partition.train
        validation = partition.validation
        metric = self.metric

        log.debug(
            f"fitting {len(self.candidates)} candidates to {len(train)} training "
            f"observations, scoring on {len(validation)} validation observations"
        )

        outcomes: List[CandidateOutcome] = JobRunner.from_parallelizable(
            self
        ).run_jobs(
            Job.delayed(_fit_and_evaluate)(
                candidate, train, validation, metric, seed, deadline
            )
            for candidate, seed in zip(self.candidates, seeds)
        )

        for outcome in outcomes:
            failure = outcome.failure
            if failure is not None:
                log.warning(
                    f"excluding candidate {failure.candidate_name!r} from the "
                    f"selection ({failure.stage}): {failure.message}"
                )

        if not any(outcome.is_success for outcome in outcomes):
            raise SelectionError(
                f"none of the {len(outcomes)} candidates could be fitted and "
                "evaluated; no candidate to select"
            )

        self._partition = partition
        self._outcomes = outcomes

        return self

    @property
    def is_fitted(self) -> bool:
        """[see superclass]"""
        return self._outcomes is not None

    @property
    @fitted_only
    def outcomes_(self) -> List[CandidateOutcome]:
        """
        The outcome for each candidate, in declaration order.
        """
        assert self._outcomes is not None, "selector is fitted"
        return list(self._outcomes)

    @property
    @fitted_only
    def validation_results_(self) -> List[EvaluationResult]:
        """
        The validation results of all candidates that were fitted and evaluated,
        in declaration order.
        """
        return [
            outcome.result for outcome in self.outcomes_ if outcome.result is not None
        ]

    @property
    @fitted_only
    def failures_(self) -> List[CandidateFailure]:
        """
        The failures of all candidates excluded from the selection, in declaration
        order.
        """
        return [
            outcome.failure
            for outcome in self.outcomes_
            if outcome.failure is not None
        ]

    @property
    @fitted_only
    def fitted_candidates_(self) -> Dict[str, FittedCandidate]:
        """
        The fitted candidates, by name.
        """
        return {
            outcome.candidate.name: outcome.fitted
            for outcome in self.outcomes_
            if outcome.fitted is not None
        }

    @fitted_only
    def summary_report(self) -> pd.DataFrame:
        """
        Create a summary table of all candidates in declaration order, with their
        validation scores and ranks.

        Rank 1 is the candidate that is selected; tied scores are ranked in
        declaration order. Failed candidates have no score and no rank, and their
        status is the stage at which they failed.

        :return: the summary report as a data frame indexed by candidate name
        """
        metric = self.metric
        outcomes = self.outcomes_

        report = pd.DataFrame(
            {
                ModelSelector.COL_SCORE: [
                    np.nan if outcome.result is None else outcome.result.score
                    for outcome in outcomes
                ],
                ModelSelector.COL_STATUS: [
                    ModelSelector.STATUS_OK
                    if outcome.failure is None
                    else outcome.failure.stage
                    for outcome in outcomes
                ],
                ModelSelector.COL_RANDOM_STATE: pd.array(
                    [
                        None if outcome.fitted is None else outcome.fitted.random_state
                        for outcome in outcomes
                    ],
                    dtype="Int64",
                ),
                ModelSelector.COL_N_OBSERVATIONS: [
                    0 if outcome.result is None else outcome.result.n_observations
                    for outcome in outcomes
                ],
                ModelSelector.COL_MESSAGE: [
                    "" if outcome.failure is None else outcome.failure.message
                    for outcome in outcomes
                ],
            },
            index=pd.Index(
                [outcome.candidate.name for outcome in outcomes],
                name=ModelSelector.IDX_CANDIDATE,
            ),
        )

        report.insert(
            1,
            ModelSelector.COL_RANK,
            report[ModelSelector.COL_SCORE]
            .rank(method="first", ascending=not metric.greater_is_better)
            .astype("Int64"),
        )

        return report.rename(columns={ModelSelector.COL_SCORE: metric.name})

    @fitted_only
    def select(self) -> Selection:
        """
        Finalize the selection of the candidate with the best validation score.

        The selection is final: calling this method again returns the same
        selection, and this selector can no longer be fitted.

        :return: the selection
        """
        if self._selection is None:
            best = select_best(self.validation_results_, metric=self.metric)
            fitted = self.fitted_candidates_[best.candidate_name]
            assert self._partition is not None, "selector is fitted"
            log.info(
                f"selected candidate {best.candidate_name!r} with validation "
                f"{best.metric_name}={best.score:.6g}"
            )
            self._selection = Selection(
                fitted=fitted,
                validation_result=best,
                partition=self._partition,
                metric=self.metric,
            )
        return self._selection

    @property
    def is_finalized(self) -> bool:
        """
        ``True`` if the selection of this selector has been finalized.
        """
        return self._selection is not None

    def _reset_fit(self) -> None:
        self._partition = None
        self._outcomes = None

    def _candidate_seeds(self, partition: SamplePartition) -> List[int]:
        # derive one seed per candidate, based on its position in the candidate list
        seed = self.random_state if self.random_state is not None else partition.seed
        return [
            int(state)
            for state in np.random.SeedSequence(seed).generate_state(
                len(self.candidates)
            )
        ]


class Selection:
    """
    The finalized selection of the best candidate of a :class:`.ModelSelector`.

    This is the only way to evaluate a candidate on the test subset of a partition,
    and it can be done exactly once. The test result is reported as is, and never
    influences the selection.
    """

    __slots__ = [
        "_fitted",
        "_validation_result",
        "_partition",
        "_metric",
        "_test_result",
        "_test_evaluated",
    ]

    def __init__(
        self,
        *,
        fitted: FittedCandidate,
        validation_result: EvaluationResult,
        partition: SamplePartition,
        metric: Metric,
    ) -> None:
        """
        :param fitted: the selected candidate, fitted to the training subset
        :param validation_result: the validation result of the selected candidate
        :param partition: the partition used for fitting and validation
        :param metric: the metric used to score candidates
        """
        self._fitted = fitted
        self._validation_result = validation_result
        self._partition = partition
        self._metric = metric
        self._test_result: Optional[EvaluationResult] = None
        self._test_evaluated = False

    @property
    def candidate(self) -> ModelCandidate:
        """
        The selected candidate.
        """
        return self._fitted.candidate

    @property
    def fitted_candidate(self) -> FittedCandidate:
        """
        The selected candidate, fitted to the training subset.
        """
        return self._fitted

    @property
    def validation_result(self) -> EvaluationResult:
        """
        The validation result of the selected candidate.
        """
        return self._validation_result

    @property
    def test_result(self) -> Optional[EvaluationResult]:
        """
        The test result of the selected candidate; ``None`` until
        :meth:`.evaluate_test` has been called.
        """
        return self._test_result

    def evaluate_test(self) -> EvaluationResult:
        """
        Evaluate the selected candidate on the test subset of the partition.

        This method can be called only once.

        :return: the test result
        :raise SelectionError: if the test subset has already been evaluated
        :raise FinalEvaluationError: if the evaluation fails
        """
        if self._test_evaluated:
            raise SelectionError(
                "the test subset has already been evaluated for this selection"
            )
        self._test_evaluated = True

        try:
            result = _evaluate(
                self._fitted,
                self._partition.test,
                metric=self._metric,
                role=SamplePartition.ROLE_TEST,
            )
        except EvaluationError as e:
            raise FinalEvaluationError(f"final evaluation failed: {e}") from e

        log.info(
            f"candidate {result.candidate_name!r} scored "
            f"{result.metric_name}={result.score:.6g} on the test subset"
        )

        self._test_result = result
        return result

    def __repr__(self) -> str:
        test_result = self._test_result
        test = "n/a" if test_result is None else f"{test_result.score:.6g}"
        return (
            f"{type(self).__name__}({self.candidate.name!r}, "
            f"validation={self._validation_result.score:.6g}, test={test})"
        )


def select_best(
    results: Sequence[EvaluationResult], *, metric: Metric
) -> EvaluationResult:
    """
    Select the validation result with the best score.

    Ties are resolved in favour of the result listed first, i.e., the candidate
    declared first.

    :param results: the validation results to select from, in declaration order
    :param metric: the metric the results were scored with
    :return: the best result
    :raise SelectionError: if there are no results, or if any result was not
        scored on the validation subset with the given metric
    """
    if not results:
        raise SelectionError("no validation results to select from")

    for result in results:
        if result.role != SamplePartition.ROLE_VALIDATION:
            raise SelectionError(
                f"cannot select based on a result for the {result.role} subset: "
                f"{result.candidate_name!r}"
            )
        if result.metric_name != metric.name:
            raise SelectionError(
                f"result for candidate {result.candidate_name!r} was scored with "
                f"{result.metric_name!r}, expected {metric.name!r}"
            )

    best = results[0]
    for result in results[1:]:
        if metric.is_better(result.score, best.score):
            best = result

    return best


__tracker.validate()


#
# auxiliary functions
#


def _fit_and_evaluate(
    candidate: ModelCandidate,
    train: Sample,
    validation: Sample,
    metric: Metric,
    seed: int,
    deadline: Optional[float],
) -> CandidateOutcome:
    # fit a candidate to the training subset and score it on the validation subset;
    # failures are returned rather than raised so that other candidates proceed

    if deadline is not None and time.time() > deadline:
        return CandidateOutcome(
            candidate,
            failure=CandidateFailure(
                candidate.name,
                stage=CandidateFailure.STAGE_CANCELLED,
                message="time limit exceeded before the candidate was fitted",
            ),
        )

    try:
        fitted = candidate.fit(train, random_state=seed)
    except FitError as e:
        return CandidateOutcome(
            candidate,
            failure=CandidateFailure(
                candidate.name, stage=CandidateFailure.STAGE_FIT, message=str(e)
            ),
        )

    try:
        result = _evaluate(
            fitted, validation, metric=metric, role=SamplePartition.ROLE_VALIDATION
        )
    except EvaluationError as e:
        return CandidateOutcome(
            candidate,
            fitted=fitted,
            failure=CandidateFailure(
                candidate.name, stage=CandidateFailure.STAGE_EVALUATE, message=str(e)
            ),
        )

    return CandidateOutcome(candidate, fitted=fitted, result=result)
