import logging

import numpy as np
import pandas as pd
import pytest

from sklearndf.classification import LogisticRegressionDF
from sklearndf.regression import LinearRegressionDF

from holdout.data import Sample
from holdout.data.partition import EntityPartitioner, SamplePartition
from holdout.selection import ModelCandidate

logging.basicConfig(level=logging.DEBUG)
log = logging.getLogger(__name__)

# get display width from terminal
pd.set_option("display.width", None)
# 3 digits precision for easier readability
pd.set_option("display.precision", 3)

N_ENTITIES = 40
N_OBSERVATIONS_PER_ENTITY = 3

ENTITY = "subject"
TARGET_REGRESSION = "y"
TARGET_CLASSIFICATION = "label"


def make_observations(
    *, n_entities: int, n_per_entity: int, random_state: int
) -> pd.DataFrame:
    # multiple observations per entity, in shuffled order so that the observations of
    # an entity are not adjacent
    rng = np.random.default_rng(random_state)
    n = n_entities * n_per_entity
    subject = np.repeat([f"s{i:03d}" for i in range(n_entities)], n_per_entity)
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    y = 3.0 * x1 - 2.0 * x2 + 0.5 * x1**2 + rng.normal(scale=0.1, size=n)
    label = np.where(x1 + 0.5 * x2 > 0, "T", "F")
    order = rng.permutation(n)
    return pd.DataFrame(
        {
            ENTITY: subject[order],
            "x1": x1[order],
            "x2": x2[order],
            TARGET_REGRESSION: y[order],
            TARGET_CLASSIFICATION: label[order],
        }
    )


@pytest.fixture  # type: ignore
def observations() -> pd.DataFrame:
    return make_observations(
        n_entities=N_ENTITIES,
        n_per_entity=N_OBSERVATIONS_PER_ENTITY,
        random_state=0,
    )


@pytest.fixture  # type: ignore
def sample(observations: pd.DataFrame) -> Sample:
    return Sample(observations=observations, entity_name=ENTITY)


@pytest.fixture  # type: ignore
def partition(sample: Sample) -> SamplePartition:
    return EntityPartitioner(
        train_fraction=0.75, validation_fraction=0.33, random_state=42
    ).partition(sample)


@pytest.fixture  # type: ignore
def linear_candidate() -> ModelCandidate:
    return ModelCandidate(
        "linear",
        LinearRegressionDF(),
        target=TARGET_REGRESSION,
        predictors=["x1", "x2"],
    )


@pytest.fixture  # type: ignore
def logistic_candidate() -> ModelCandidate:
    return ModelCandidate(
        "logistic",
        LogisticRegressionDF(),
        target=TARGET_CLASSIFICATION,
        predictors=["x1", "x2"],
    )


@pytest.fixture  # type: ignore
def n_jobs() -> int:
    return -1
