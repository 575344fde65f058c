"""
Tests for hyperparameter sweeps in module holdout.selection
"""
import logging

import pytest

from pytools.expression import freeze
from pytools.expression.atomic import Id
from sklearndf.pipeline import RegressorPipelineDF
from sklearndf.regression import LinearRegressionDF, RandomForestRegressorDF

from holdout.selection import CandidateSpace, ParameterSpace, Predictor

log = logging.getLogger(__name__)


def test_parameter_space() -> None:
    ps = ParameterSpace(RegressorPipelineDF(regressor=RandomForestRegressorDF()))
    ps.regressor.max_depth = [3, 5]
    ps.regressor.n_estimators = [10, 20, 50]

    assert ps.regressor.max_depth == [3, 5]
    assert ps.get_parameters() == {
        "regressor__max_depth": [3, 5],
        "regressor__n_estimators": [10, 20, 50],
    }
    assert list(ps) == [
        (["regressor", "max_depth"], [3, 5]),
        (["regressor", "n_estimators"], [10, 20, 50]),
    ]

    with pytest.raises(AttributeError, match="unknown parameter name"):
        ps.regressor.xyz = [1, 2]

    with pytest.raises(TypeError, match="expected list"):
        ps.regressor.max_depth = 3

    with pytest.raises(ValueError, match="at least one choice"):
        ps.regressor.max_depth = []

    with pytest.raises(AttributeError, match="unknown nested estimator"):
        ps.grid(preprocessor__max_depth=[1])

    assert freeze(ps.to_expression()) == freeze(
        Id.ParameterSpace(
            RegressorPipelineDF(regressor=RandomForestRegressorDF()),
            **{
                "regressor.max_depth": [3, 5],
                "regressor.n_estimators": [10, 20, 50],
            },
        )
    )


def test_candidate_space() -> None:
    space = CandidateSpace(
        "forest",
        RandomForestRegressorDF(),
        target="y",
        predictors=["x1", Predictor("x2", degree=2)],
        random_state=5,
    )

    assert space.name == "forest"

    # without parameter choices, the space spans a single candidate
    (candidate,) = space.candidates
    assert candidate.name == "forest"
    assert len(space) == 1

    space.max_depth = [2, 4]
    space.n_estimators = [5, 10]

    candidates = list(space)
    assert len(space) == len(candidates) == 4

    # parameters vary in declaration order, last parameter fastest
    assert [candidate.name for candidate in candidates] == [
        "forest[max_depth=2,n_estimators=5]",
        "forest[max_depth=2,n_estimators=10]",
        "forest[max_depth=4,n_estimators=5]",
        "forest[max_depth=4,n_estimators=10]",
    ]
    assert [
        (candidate.params["max_depth"], candidate.params["n_estimators"])
        for candidate in candidates
    ] == [(2, 5), (2, 10), (4, 5), (4, 10)]

    # all candidates share target, predictors and seed
    for candidate in candidates:
        assert candidate.target == "y"
        assert candidate.predictors == [Predictor("x1"), Predictor("x2", degree=2)]
        assert candidate.random_state == 5

    # iteration is deterministic
    assert [c.name for c in space.iter_candidates()] == [c.name for c in candidates]


def test_candidate_space_nested() -> None:
    space = CandidateSpace(
        "pipeline",
        RegressorPipelineDF(regressor=RandomForestRegressorDF()),
        target="y",
        predictors=["x1"],
    ).grid(regressor__max_depth=[1, 2, 3])

    candidates = list(space)

    assert [candidate.name for candidate in candidates] == [
        "pipeline[regressor.max_depth=1]",
        "pipeline[regressor.max_depth=2]",
        "pipeline[regressor.max_depth=3]",
    ]
    assert [
        candidate.learner.regressor.get_params()["max_depth"]
        for candidate in candidates
    ] == [1, 2, 3]


def test_candidate_space_invalid() -> None:
    space = CandidateSpace(
        "linear", LinearRegressionDF(), target="y", predictors=["x1"]
    )

    with pytest.raises(AttributeError):
        space.max_depth = [3]

    with pytest.raises(TypeError):
        space.fit_intercept = True

    with pytest.raises(ValueError, match="at least one predictor"):
        CandidateSpace("linear", LinearRegressionDF(), target="y", predictors=[])
