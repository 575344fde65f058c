"""
Core implementation of :mod:`holdout.pipeline`
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union, cast

import numpy as np
import pandas as pd
import yaml

from pytools.api import AllTracker
from pytools.parallelization import ParallelizableMixin

from ..config import HoldoutConfig
from ..data import Sample
from ..data.partition import EntityPartitioner, SamplePartition
from ..metrics import Metric
from ..selection import (
    CandidateFailure,
    CandidateSpace,
    EvaluationResult,
    ModelCandidate,
    ModelSelector,
)

log = logging.getLogger(__name__)

__all__ = [
    "HoldoutPipeline",
    "PipelineReport",
]

#
# Ensure all symbols introduced below are included in __all__
#

__tracker = AllTracker(globals())


#
# Class definitions
#


class PipelineReport:
    """
    The outcome of a holdout run: the partition, the validation scores of all
    candidates, the selected candidate, and its score on the test subset.
    """

    #: Name of the column flagging the selected candidate in :meth:`.to_frame`.
    COL_SELECTED = "selected"

    #: File name of the candidate summary written by :meth:`.save`.
    FILE_SUMMARY = "summary.csv"

    #: File name of the full report written by :meth:`.save`.
    FILE_REPORT = "report.yaml"

    __slots__ = [
        "_partition",
        "_metric_name",
        "_summary",
        "_failures",
        "_validation_result",
        "_test_result",
    ]

    def __init__(
        self,
        *,
        partition: SamplePartition,
        metric_name: str,
        summary: pd.DataFrame,
        failures: Sequence[CandidateFailure],
        validation_result: EvaluationResult,
        test_result: EvaluationResult,
    ) -> None:
        """
        :param partition: the partition used for the run
        :param metric_name: the name of the metric candidates were scored with
        :param summary: the summary report of the model selector
        :param failures: the candidates excluded from the selection
        :param validation_result: the validation result of the selected candidate
        :param test_result: the test result of the selected candidate
        """
        self._partition = partition
        self._metric_name = metric_name
        self._summary = summary
        self._failures = list(failures)
        self._validation_result = validation_result
        self._test_result = test_result

    @property
    def partition(self) -> SamplePartition:
        """
        The partition used for the run.
        """
        return self._partition

    @property
    def seed(self) -> Optional[int]:
        """
        The seed the partition was drawn with; reusing it reproduces the run.
        """
        return self._partition.seed

    @property
    def metric_name(self) -> str:
        """
        The name of the metric candidates were scored with.
        """
        return self._metric_name

    @property
    def summary(self) -> pd.DataFrame:
        """
        Validation scores, ranks and status of all candidates in declaration order.
        """
        return self._summary.copy()

    @property
    def failures(self) -> List[CandidateFailure]:
        """
        The candidates excluded from the selection.
        """
        return list(self._failures)

    @property
    def selected_candidate(self) -> str:
        """
        The name of the selected candidate.
        """
        return self._validation_result.candidate_name

    @property
    def validation_result(self) -> EvaluationResult:
        """
        The validation result of the selected candidate.
        """
        return self._validation_result

    @property
    def test_result(self) -> EvaluationResult:
        """
        The test result of the selected candidate.
        """
        return self._test_result

    @property
    def confusion_matrix(self) -> Optional[pd.DataFrame]:
        """
        The confusion matrix of the selected candidate on the test subset;
        ``None`` for regressors.
        """
        return self._test_result.confusion_matrix

    def to_frame(self) -> pd.DataFrame:
        """
        Get the candidate summary, with an additional column flagging the selected
        candidate.

        :return: the summary as a data frame indexed by candidate name
        """
        frame = self.summary
        frame[PipelineReport.COL_SELECTED] = frame.index == self.selected_candidate
        return frame

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this report to a dictionary of plain values.

        :return: the dictionary
        """
        partition = self._partition.to_frame()
        return dict(
            seed=self.seed,
            metric=self._metric_name,
            partition={
                str(role): {str(k): int(v) for k, v in counts.items()}
                for role, counts in partition.iterrows()
            },
            candidates=[
                dict(candidate=str(name), **_plain_values(row))
                for name, row in self._summary.iterrows()
            ],
            failures=[failure.to_dict() for failure in self._failures],
            selected=self.selected_candidate,
            validation=self._validation_result.to_dict(),
            test=self._test_result.to_dict(),
        )

    def save(self, directory: Union[str, "os.PathLike[str]"]) -> Dict[str, Path]:
        """
        Write the candidate summary as CSV and the full report as YAML.

        :param directory: the directory to write to; created if it does not exist
        :return: the paths of the files written, keyed by file name
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        summary_path = directory / PipelineReport.FILE_SUMMARY
        self.to_frame().to_csv(summary_path)

        report_path = directory / PipelineReport.FILE_REPORT
        with open(report_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)

        log.debug(f"wrote report to {directory}")

        return {
            PipelineReport.FILE_SUMMARY: summary_path,
            PipelineReport.FILE_REPORT: report_path,
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(selected={self.selected_candidate!r}, "
            f"validation={self._validation_result.score:.6g}, "
            f"test={self._test_result.score:.6g})"
        )


class HoldoutPipeline(ParallelizableMixin):
    """
    Run a complete holdout model selection on a sample.

    Each run partitions the sample by entity, fits all candidates to the training
    subset, selects the candidate with the best validation score, and evaluates the
    selected candidate once on the test subset.

    All settings are validated when the pipeline is created; a pipeline can be run
    multiple times, with a new model selection for every run.
    """

    # defined in superclass, repeated here for Sphinx
    n_jobs: Optional[int]

    # defined in superclass, repeated here for Sphinx
    shared_memory: Optional[bool]

    # defined in superclass, repeated here for Sphinx
    pre_dispatch: Optional[Union[str, int]]

    # defined in superclass, repeated here for Sphinx
    verbose: Optional[int]

    #: The partitioner used to split samples.
    partitioner: EntityPartitioner

    #: The candidates to select from, in declaration order.
    candidates: List[Union[ModelCandidate, CandidateSpace]]

    #: The metric used to score candidates, or its name.
    metric: Union[str, Metric]

    #: Time limit in seconds for fitting all candidates of a run.
    timeout: Optional[float]

    def __init__(
        self,
        candidates: Iterable[Union[ModelCandidate, CandidateSpace]],
        *,
        metric: Union[str, Metric],
        train_fraction: float,
        validation_fraction: float,
        random_state: Optional[int] = None,
        timeout: Optional[float] = None,
        n_jobs: Optional[int] = None,
        shared_memory: Optional[bool] = None,
        pre_dispatch: Optional[Union[str, int]] = None,
        verbose: Optional[int] = None,
    ) -> None:
        """
        :param candidates: the candidates to select from, in declaration order
        :param metric: the metric to score candidates with, or its name
        :param train_fraction: the fraction of entities eligible for training
        :param validation_fraction: the fraction of entities eligible for training
            to use for validation
        :param random_state: optional seed for the partition and for candidates with
            internal randomness; a fresh seed is drawn for each run if omitted
        :param timeout: optional time limit in seconds for fitting all candidates
        """
        super().__init__(
            n_jobs=n_jobs,
            shared_memory=shared_memory,
            pre_dispatch=pre_dispatch,
            verbose=verbose,
        )

        self.partitioner = EntityPartitioner(
            train_fraction=train_fraction,
            validation_fraction=validation_fraction,
            random_state=random_state,
        )
        self.candidates = list(candidates)
        self.metric = metric
        self.timeout = timeout

        # validate candidates and metric before any sample is touched
        self._make_selector()

    __init__.__doc__ = cast(str, __init__.__doc__) + cast(
        str, ParallelizableMixin.__init__.__doc__
    )

    @classmethod
    def from_config(cls, config: HoldoutConfig) -> "HoldoutPipeline":
        """
        Create a pipeline from a validated configuration.

        :param config: the configuration
        :return: the new pipeline
        :raise ConfigError: if a candidate cannot be created from the configuration
        """
        return cls(
            config.to_candidate_spaces(),
            metric=config.metric,
            train_fraction=config.train_fraction,
            validation_fraction=config.validation_fraction,
            random_state=config.random_seed,
            timeout=config.timeout,
            n_jobs=config.n_jobs,
        )

    @property
    def random_state(self) -> Optional[int]:
        """
        The seed for the partition and for candidates with internal randomness.
        """
        return self.partitioner.random_state

    def split(self, sample: Sample) -> SamplePartition:
        """
        Partition the given sample by entity.

        :param sample: the sample to partition
        :return: the partition
        """
        return self.partitioner.fit(sample).partition_

    def run(
        self,
        sample: Sample,
        *,
        output_dir: Optional[Union[str, "os.PathLike[str]"]] = None,
    ) -> PipelineReport:
        """
        Run a complete model selection on the given sample.

        :param sample: the sample to partition and select a model on
        :param output_dir: optional directory to write the three subsets and the
            report to
        :return: the report of the run
        :raise PartitionError: if the sample cannot be partitioned
        :raise SelectionError: if no candidate can be fitted and evaluated
        :raise FinalEvaluationError: if the selected candidate cannot be evaluated
            on the test subset
        """
        partition = self.split(sample)
        log.info(f"partitioned {len(sample)} observations: {partition!r}")

        if output_dir is not None:
            partition.to_csv(output_dir)

        selector = self._make_selector().fit(partition)
        selection = selector.select()
        test_result = selection.evaluate_test()

        report = PipelineReport(
            partition=partition,
            metric_name=selector.metric.name,
            summary=selector.summary_report(),
            failures=selector.failures_,
            validation_result=selection.validation_result,
            test_result=test_result,
        )

        if output_dir is not None:
            report.save(output_dir)

        return report

    def _make_selector(self) -> ModelSelector:
        # a new selector for every run, as selections are final
        return ModelSelector(
            self.candidates,
            metric=self.metric,
            random_state=self.random_state,
            timeout=self.timeout,
            n_jobs=self.n_jobs,
            shared_memory=self.shared_memory,
            pre_dispatch=self.pre_dispatch,
            verbose=self.verbose,
        )


__tracker.validate()


#
# auxiliary functions
#


def _plain_values(row: pd.Series) -> Dict[str, Any]:
    # convert a report row to plain Python values, with missing values as None
    values: Dict[str, Any] = {}
    for key, value in row.items():
        if pd.isna(value):
            value = None
        elif isinstance(value, np.generic):
            value = value.item()
        values[str(key)] = value
    return values
