"""
Core implementation of :mod:`holdout.data.partition`
"""

from __future__ import annotations

import logging
import math
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, TypeVar, Union

import numpy as np
import pandas as pd

from pytools.api import AllTracker, inheritdoc
from pytools.fit import FittableMixin, fitted_only

from ...errors import ConfigError, PartitionError
from .._sample import Sample

log = logging.getLogger(__name__)

__all__ = [
    "EntityPartitioner",
    "SamplePartition",
]

#
# Type variables
#

T_EntityPartitioner = TypeVar("T_EntityPartitioner", bound="EntityPartitioner")

#
# Ensure all symbols introduced below are included in __all__
#

__tracker = AllTracker(globals())


#
# Class definitions
#


class SamplePartition:
    """
    The partition of a sample into disjoint training, validation and test subsets.

    Each distinct entity of the original sample is assigned to exactly one role; every
    observation inherits the role of its entity. Hence all observations of an entity
    are part of the same subset, and the three subsets together contain every
    observation of the original sample exactly once.

    Instances are created by an :class:`.EntityPartitioner` and are not modified
    afterwards; all downstream stages of a run share the same partition.
    """

    #: role of the subset used to fit model candidates
    ROLE_TRAIN = "train"

    #: role of the subset used to score and select model candidates
    ROLE_VALIDATION = "validation"

    #: role of the subset used once for the final assessment of the selected candidate
    ROLE_TEST = "test"

    #: all roles, in canonical order
    ROLES: Tuple[str, str, str] = (ROLE_TRAIN, ROLE_VALIDATION, ROLE_TEST)

    #: name of the column index of the role assignment table
    IDX_ROLE = "role"

    __slots__ = ["_assignment", "_seed", "_subsets", "_sample"]

    def __init__(
        self, sample: Sample, *, assignment: pd.Series, seed: Optional[int]
    ) -> None:
        """
        :param sample: the sample that was partitioned
        :param assignment: series mapping each distinct entity identifier to its role
        :param seed: the seed of the random generator used to draw the partition
        """
        unknown_roles = set(assignment.unique()).difference(SamplePartition.ROLES)
        if unknown_roles:
            raise ValueError(f"arg assignment includes unknown roles: {unknown_roles}")

        if not assignment.index.is_unique:
            raise ValueError("arg assignment must map each entity to exactly one role")

        entity_ids = sample.entity_ids
        if len(entity_ids) != len(assignment) or not entity_ids.isin(
            assignment.index
        ).all():
            raise ValueError(
                "arg assignment must assign a role to every entity of arg sample"
            )

        roles = sample.entity.map(assignment)

        self._sample = sample
        self._assignment = assignment.rename_axis(index=sample.entity_name).rename(
            SamplePartition.IDX_ROLE
        )
        self._seed = seed
        self._subsets: Dict[str, Sample] = {
            role: sample.subsample(iloc=np.flatnonzero((roles == role).to_numpy()))
            for role in SamplePartition.ROLES
        }

    @property
    def sample(self) -> Sample:
        """
        The original sample from which the subsets are drawn.
        """
        return self._sample

    @property
    def seed(self) -> Optional[int]:
        """
        The seed of the random generator used to draw this partition.
        """
        return self._seed

    @property
    def assignment(self) -> pd.Series:
        """
        Series mapping each distinct entity identifier to its role.
        """
        return self._assignment.copy()

    @property
    def train(self) -> Sample:
        """
        The training subset.
        """
        return self._subsets[SamplePartition.ROLE_TRAIN]

    @property
    def validation(self) -> Sample:
        """
        The validation subset.
        """
        return self._subsets[SamplePartition.ROLE_VALIDATION]

    @property
    def test(self) -> Sample:
        """
        The test subset.

        Use this subset only to persist it, or through
        :meth:`.Selection.evaluate_test` once a model candidate has been selected.
        """
        return self._subsets[SamplePartition.ROLE_TEST]

    def get_subset(self, role: str) -> Sample:
        """
        Get the subset for the given role.

        :param role: one of ``"train"``, ``"validation"``, or ``"test"``
        :return: the subset for the role
        """
        try:
            return self._subsets[role]
        except KeyError:
            raise KeyError(f"unknown role: {role!r}") from None

    def entity_ids(self, role: str) -> pd.Index:
        """
        Get the identifiers of all entities assigned to the given role.

        :param role: one of ``"train"``, ``"validation"``, or ``"test"``
        :return: the entity identifiers, in order of first appearance in the sample
        """
        if role not in SamplePartition.ROLES:
            raise KeyError(f"unknown role: {role!r}")
        assignment = self._assignment
        return assignment.index[(assignment == role).to_numpy()]

    def to_frame(self) -> pd.DataFrame:
        """
        Summarize this partition as a table with the number of entities and
        observations per role.

        :return: a data frame indexed by role
        """
        return pd.DataFrame(
            {
                "entities": [len(self.entity_ids(role)) for role in self.ROLES],
                "observations": [len(self._subsets[role]) for role in self.ROLES],
            },
            index=pd.Index(self.ROLES, name=SamplePartition.IDX_ROLE),
        )

    def to_csv(self, directory: Union[str, "os.PathLike[str]"]) -> Dict[str, Path]:
        """
        Write each subset to a comma-separated file named after its role.

        :param directory: the directory to write to; created if it does not exist
        :return: a mapping of roles to the paths of the files written
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        paths: Dict[str, Path] = {}
        for role in self.ROLES:
            path = directory / f"{role}.csv"
            self._subsets[role].to_csv(path)
            paths[role] = path
            log.debug(f"wrote {role} subset to {path}")

        return paths

    def __repr__(self) -> str:
        counts = ", ".join(
            f"{role}={len(self.entity_ids(role))}" for role in SamplePartition.ROLES
        )
        return f"{type(self).__name__}({counts}, seed={self._seed})"


@inheritdoc(match="""[see superclass]""")
class EntityPartitioner(FittableMixin[Sample]):
    """
    Partition a sample by entity into disjoint training, validation and test subsets.

    Partitioning draws two nested random subsets of the distinct entity identifiers:

    1. a pool of ``round(train_fraction * n)`` entities eligible for training, with
       all remaining entities assigned to the test subset
    2. ``round(validation_fraction * n_pool)`` entities of that pool assigned to the
       validation subset, with the rest of the pool assigned to the training subset

    Rounding is half-up. Both draws are uniform without replacement and use the
    same seeded random generator, so the same seed and sample always produce the
    same partition. Partitioning is not stratified by target.

    Example:

    .. code-block:: python

        partition = EntityPartitioner(
            train_fraction=0.75, validation_fraction=0.33, random_state=42
        ).fit(sample).partition_
    """

    #: The fraction of entities eligible for training (training + validation).
    train_fraction: float

    #: The fraction of the entities eligible for training to use for validation.
    validation_fraction: float

    #: Seed for the random generator; a fresh seed is drawn on each fit if ``None``.
    random_state: Optional[int]

    def __init__(
        self,
        *,
        train_fraction: float,
        validation_fraction: float,
        random_state: Optional[int] = None,
    ) -> None:
        """
        :param train_fraction: the fraction of entities eligible for training, with
            ``0 < train_fraction < 1``; all other entities are used for testing
        :param validation_fraction: the fraction of entities eligible for training
            that is used for validation, with ``0 < validation_fraction < 1``
        :param random_state: optional seed for the random generator
        """
        for name, value in (
            ("train_fraction", train_fraction),
            ("validation_fraction", validation_fraction),
        ):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"arg {name} must be a number, but got {value!r}")
            if not 0.0 < value < 1.0:
                raise ConfigError(
                    f"arg {name}={value} must range between 0.0 and 1.0 (exclusive)"
                )

        if random_state is not None and (
            isinstance(random_state, bool) or not isinstance(random_state, int)
        ):
            raise ConfigError(
                f"arg random_state must be an integer or None, but got {random_state!r}"
            )

        self.train_fraction = train_fraction
        self.validation_fraction = validation_fraction
        self.random_state = random_state

        self._partition: Optional[SamplePartition] = None

    def fit(
        self: T_EntityPartitioner, __sample: Sample, **fit_params: Any
    ) -> T_EntityPartitioner:
        """
        Partition the given sample.

        :param __sample: the sample to partition
        :param fit_params: optional fit parameters (ignored)
        :return: ``self``
        :raise PartitionError: if the sample has no entities, or if any of the three
            subsets would be empty
        """
        self._partition = None

        sample = __sample
        entity_ids = sample.entity_ids
        n_entities = len(entity_ids)

        if n_entities == 0:
            raise PartitionError("cannot partition a sample without entities")

        n_pool = _round_half_up(self.train_fraction * n_entities)
        n_validation = _round_half_up(self.validation_fraction * n_pool)
        n_train = n_pool - n_validation
        n_test = n_entities - n_pool

        empty_roles = [
            role
            for role, n in (
                (SamplePartition.ROLE_TRAIN, n_train),
                (SamplePartition.ROLE_VALIDATION, n_validation),
                (SamplePartition.ROLE_TEST, n_test),
            )
            if n == 0
        ]
        if empty_roles:
            raise PartitionError(
                f"partitioning {n_entities} entities with "
                f"train_fraction={self.train_fraction} and "
                f"validation_fraction={self.validation_fraction} "
                f"results in empty subset(s): {', '.join(empty_roles)}"
            )

        seed = self.random_state
        if seed is None:
            seed = int(np.random.SeedSequence().generate_state(1)[0])
        rng = np.random.default_rng(seed)

        # draw the training pool, then the validation entities within that pool
        pool = rng.choice(n_entities, size=n_pool, replace=False)
        validation = rng.choice(pool, size=n_validation, replace=False)

        roles = np.full(n_entities, SamplePartition.ROLE_TEST, dtype=object)
        roles[pool] = SamplePartition.ROLE_TRAIN
        roles[validation] = SamplePartition.ROLE_VALIDATION

        assignment = pd.Series(roles, index=entity_ids)

        log.debug(
            f"partitioned {n_entities} entities with seed {seed}: "
            f"train={n_train}, validation={n_validation}, test={n_test}"
        )

        self._partition = SamplePartition(sample, assignment=assignment, seed=seed)

        return self

    @property
    def is_fitted(self) -> bool:
        """[see superclass]"""
        return self._partition is not None

    @property
    @fitted_only
    def partition_(self) -> SamplePartition:
        """
        The partition of the sample this partitioner was fitted to.
        """
        assert self._partition is not None, "partitioner is fitted"
        return self._partition

    def partition(self, sample: Sample) -> SamplePartition:
        """
        Fit this partitioner to the given sample and return the resulting partition.

        :param sample: the sample to partition
        :return: the partition
        """
        return self.fit(sample).partition_


__tracker.validate()


#
# auxiliary functions
#


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))
