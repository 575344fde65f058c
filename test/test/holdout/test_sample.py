"""
Tests for module holdout.data
"""
import logging
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from pandas.testing import assert_frame_equal

from holdout.data import Sample

log = logging.getLogger(__name__)


def test_sample_init(observations: pd.DataFrame) -> None:
    # check handling of various invalid inputs

    # 1. observations parameter
    # 1.1 None
    with pytest.raises(ValueError):
        # noinspection PyTypeChecker
        Sample(observations=None, entity_name="subject")

    # 1.2 not a DF
    with pytest.raises(ValueError):
        # noinspection PyTypeChecker
        Sample(observations=[], entity_name="subject")

    # 1.3 duplicate index
    with pytest.raises(ValueError, match="must be unique"):
        Sample(
            observations=pd.concat([observations, observations.iloc[:1]]),
            entity_name="subject",
        )

    # 2. invalid entity name
    with pytest.raises(TypeError):
        # noinspection PyTypeChecker
        Sample(observations=observations, entity_name=None)  # type: ignore

    with pytest.raises(KeyError):
        Sample(observations=observations, entity_name="doesnt_exist")

    # 3. missing entity ids
    observations_missing = observations.copy()
    observations_missing.loc[3, "subject"] = None
    with pytest.raises(ValueError, match="no value for entity column"):
        Sample(observations=observations_missing, entity_name="subject")

    # 4. non-string column names
    with pytest.raises(TypeError, match="must be strings"):
        Sample(
            observations=observations.set_axis(
                range(len(observations.columns)), axis=1
            ),
            entity_name="subject",
        )


def test_sample(sample: Sample, observations: pd.DataFrame) -> None:
    assert len(sample) == len(observations) == 120
    assert sample.entity_name == "subject"
    assert sample.columns == ["subject", "x1", "x2", "y", "label"]
    assert sample.index.name == Sample.IDX_OBSERVATION

    # entity ids are distinct, in order of first appearance
    entity_ids = sample.entity_ids
    assert len(entity_ids) == 40
    assert entity_ids.is_unique
    assert entity_ids[0] == observations.loc[0, "subject"]
    assert entity_ids.name == "subject"

    # observations are a copy
    sample.observations.loc[0, "x1"] = np.nan
    assert not sample.observations.loc[:, "x1"].isna().any()

    assert sample.get_columns("x1").columns.to_list() == ["x1"]
    with pytest.raises(KeyError, match="doesnt_exist"):
        sample.get_columns(["x1", "doesnt_exist"])


def test_subsample(sample: Sample) -> None:
    with pytest.raises(ValueError):
        sample.subsample()

    with pytest.raises(ValueError):
        sample.subsample(loc=[0], iloc=[0])

    subsample = sample.subsample(iloc=[2, 4, 6])
    assert len(subsample) == 3
    assert subsample.entity_name == sample.entity_name
    assert subsample.index.to_list() == [2, 4, 6]

    assert len(sample.subsample(loc=[1, 3])) == 2
    assert len(sample) == 120


def test_select_entities(sample: Sample) -> None:
    entity_ids = sample.entity_ids[:5]
    selected = sample.select_entities(entity_ids)

    assert len(selected) == 15
    assert set(selected.entity) == set(entity_ids)

    # original order of observations is preserved
    assert selected.index.is_monotonic_increasing


def test_sample_csv(sample: Sample, tmp_path: Path) -> None:
    path = tmp_path / "sample.csv"
    sample.to_csv(path)

    sample_read = Sample.from_csv(path, entity_name="subject")

    assert_frame_equal(
        sample_read.observations,
        sample.observations,
        check_exact=False,
    )
