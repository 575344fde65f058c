"""
Core implementation of :mod:`holdout.data`
"""

from __future__ import annotations

import logging
import os
from copy import copy
from typing import Any, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from pytools.api import AllTracker, to_list

log = logging.getLogger(__name__)

__all__ = ["Sample"]

#
# Ensure all symbols introduced below are included in __all__
#

__tracker = AllTracker(globals())


#
# Class definitions
#


class Sample:
    """
    A collection of observations, each of which is attributed to an entity
    (e.g., a subject or a respondent).

    An entity may contribute multiple observations, e.g., one per point in time.
    Partitioning a sample for model selection is keyed on the entity identifier
    rather than on individual rows, so that all observations of an entity end up in
    the same partition.

    Features and targets are not fixed by the sample: each model candidate selects
    its own predictors and target from the columns of the sample.

    The underlying data structure is a pandas :class:`.DataFrame`.

    Supports :func:`.len`, returning the number of observations in this sample.
    """

    __slots__ = ["_observations", "_entity_name"]

    _observations: pd.DataFrame
    _entity_name: str

    #: default name for the observations index (= row index)
    #: of the underlying data frame
    IDX_OBSERVATION = "observation"

    def __init__(self, observations: pd.DataFrame, *, entity_name: str) -> None:
        """
        :param observations: a table of observational data; \
            each row represents one observation
        :param entity_name: the name of the column identifying the entity each
            observation belongs to
        """

        if observations is None or not isinstance(observations, pd.DataFrame):
            raise ValueError("arg observations is not a DataFrame")

        observations_index = observations.index

        if observations_index.nlevels != 1:
            raise ValueError(
                f"index of arg observations has {observations_index.nlevels} levels, "
                "but is required to have 1 level"
            )

        if not observations_index.is_unique:
            raise ValueError("index of arg observations must be unique")

        if not isinstance(entity_name, str):
            raise TypeError(
                "arg entity_name must be a string but is a "
                f"{type(entity_name).__name__}"
            )

        observations = _tidy_up_observations(observations)

        if entity_name not in observations.columns:
            raise KeyError(
                f'arg entity_name="{entity_name}" '
                "is not a column in the observations table"
            )

        n_missing = int(observations.loc[:, entity_name].isna().sum())
        if n_missing:
            raise ValueError(
                f"{n_missing} observation(s) have no value for entity column "
                f"{entity_name!r}"
            )

        self._observations = observations
        self._entity_name = entity_name

    @classmethod
    def from_csv(
        cls,
        path: Union[str, "os.PathLike[str]"],
        *,
        entity_name: str,
        **read_csv_args: Any,
    ) -> Sample:
        """
        Create a sample from a delimited text file with a header row.

        :param path: path to the file
        :param entity_name: the name of the column identifying entities
        :param read_csv_args: additional arguments passed on to
            :func:`pandas.read_csv`
        :return: the new sample
        """
        observations = pd.read_csv(path, **read_csv_args)
        log.debug(f"read {len(observations)} observations from {path}")
        return cls(observations=observations, entity_name=entity_name)

    @property
    def index(self) -> pd.Index:
        """
        Row index of all observations in this sample.
        """
        return self._observations.index

    @property
    def entity_name(self) -> str:
        """
        The name of the column identifying the entity of each observation.
        """
        return self._entity_name

    @property
    def entity(self) -> pd.Series:
        """
        The entity identifier of each observation.
        """
        return self._observations.loc[:, self._entity_name]

    @property
    def entity_ids(self) -> pd.Index:
        """
        The distinct entity identifiers in this sample, in order of first appearance.
        """
        return pd.Index(pd.unique(self.entity), name=self._entity_name)

    @property
    def columns(self) -> List[str]:
        """
        The names of all columns in this sample, including the entity column.
        """
        return self._observations.columns.to_list()

    @property
    def observations(self) -> pd.DataFrame:
        """
        A copy of the table of all observations.
        """
        return self._observations.copy()

    def get_columns(self, names: Union[str, Sequence[str]]) -> pd.DataFrame:
        """
        Get the values of the given columns for all observations.

        :param names: the name(s) of the columns to get
        :return: a data frame with the requested columns
        :raise KeyError: if any of the columns is not present in this sample
        """
        names_list: List[str] = to_list(names, element_type=str, arg_name="names")
        missing = [name for name in names_list if name not in self._observations]
        if missing:
            raise KeyError(f"sample is missing columns {', '.join(missing)}")
        return self._observations.loc[:, names_list]

    def subsample(
        self,
        *,
        loc: Optional[Union[slice, Sequence[Any], pd.Index, np.ndarray]] = None,
        iloc: Optional[Union[slice, Sequence[int], np.ndarray]] = None,
    ) -> Sample:
        """
        Return a new sample with a subset of this sample's observations.

        Select observations either by indices (``loc``), or integer indices
        (``iloc``). Exactly one of both arguments must be provided when
        calling this method, not both or none.

        :param loc: indices of observations to select
        :param iloc: integer indices of observations to select
        :return: copy of this sample, comprising only the observations in the given
            rows
        """
        subsample = copy(self)
        if iloc is None:
            if loc is None:
                raise ValueError("either arg loc or arg iloc must be specified")
            else:
                subsample._observations = self._observations.loc[loc, :]
        elif loc is None:
            subsample._observations = self._observations.iloc[iloc, :]
        else:
            raise ValueError(
                "arg loc and arg iloc must not both be specified at the same time"
            )
        return subsample

    def select_entities(self, entity_ids: Iterable[Any]) -> Sample:
        """
        Return a new sample with all observations of the given entities.

        The original order of observations is preserved.

        :param entity_ids: the identifiers of the entities to select
        :return: copy of this sample, comprising only observations of the given
            entities
        """
        mask: pd.Series = self.entity.isin(list(entity_ids))
        return self.subsample(iloc=np.flatnonzero(mask.to_numpy()))

    def to_csv(self, path: Union[str, "os.PathLike[str]"]) -> None:
        """
        Write all observations of this sample to a comma-separated file with a header
        row.

        :param path: path of the file to write
        """
        self._observations.to_csv(path, index=False)

    def __len__(self) -> int:
        return len(self._observations)


__tracker.validate()


#
# auxiliary functions
#


def _tidy_up_observations(observations: pd.DataFrame) -> pd.DataFrame:
    # ensure all column names are native Python strings
    name_types = {type(name) for name in observations.columns}
    name_types.discard(str)
    invalid_name_types = [
        name_type
        for name_type in name_types
        if not np.issubdtype(name_type, np.character)
    ]
    if invalid_name_types:
        # not all names are strings
        raise TypeError(
            "all column names in arg observations must be strings, but included: "
            + ", ".join(t.__qualname__ for t in invalid_name_types)
        )

    # convert numpy string types to native Python strings
    if name_types:
        observations = observations.set_axis(observations.columns.astype(str), axis=1)

    # ensure the index has a name
    if observations.index.name is None:
        observations = observations.rename_axis(index=Sample.IDX_OBSERVATION)

    return observations
