"""
Tests for module holdout.config
"""
import logging
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from sklearndf.classification import LogisticRegressionDF
from sklearndf.regression import RandomForestRegressorDF

from holdout.config import (
    CandidateConfig,
    HoldoutConfig,
    PredictorConfig,
    learner_names,
    make_learner,
)
from holdout.data.partition import SamplePartition
from holdout.errors import ConfigError
from holdout.selection import ModelSelector, Predictor

log = logging.getLogger(__name__)


@pytest.fixture  # type: ignore
def raw_config() -> Dict[str, Any]:
    return {
        "data": {"path": "subjects.csv", "entity": "subject"},
        "trainFraction": 0.75,
        "validationFraction": 0.33,
        "randomSeed": 42,
        "metric": "mse",
        "candidates": [
            {
                "name": "linear",
                "learner": "linear_regression",
                "target": "y",
                "predictors": ["x1", {"name": "x2", "degree": 2}],
            },
            {
                "name": "forest",
                "learner": "random_forest_regressor",
                "target": "y",
                "predictors": ["x1", "x2"],
                "params": {"n_estimators": 10},
                "grid": {"max_depth": [2, 4]},
                "randomState": 7,
            },
        ],
        "nJobs": 2,
        "logLevel": "debug",
    }


def _write_config(path: Path, raw: Dict[str, Any]) -> Path:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(raw, f)
    return path


def test_config(raw_config: Dict[str, Any]) -> None:
    config = HoldoutConfig.from_dict(raw_config)

    assert config.data.entity == "subject"
    assert config.data.path == Path("subjects.csv")
    assert config.train_fraction == 0.75
    assert config.validation_fraction == 0.33
    assert config.random_seed == 42
    assert config.metric == "mse"
    assert config.n_jobs == 2
    assert config.timeout is None
    assert config.output_dir is None
    assert config.log_level == "DEBUG"

    linear, forest = config.candidates
    assert linear.predictors == ["x1", PredictorConfig(name="x2", degree=2)]
    assert forest.params == {"n_estimators": 10}
    assert forest.grid == {"max_depth": [2, 4]}
    assert forest.random_state == 7


def test_config_snake_case(raw_config: Dict[str, Any]) -> None:
    raw_snake_case = dict(raw_config)
    raw_snake_case["train_fraction"] = raw_snake_case.pop("trainFraction")
    raw_snake_case["validation_fraction"] = raw_snake_case.pop("validationFraction")

    config = HoldoutConfig.from_dict(raw_snake_case)
    assert config.train_fraction == 0.75
    assert config.validation_fraction == 0.33


@pytest.mark.parametrize(  # type: ignore
    argnames=("key", "value", "message"),
    argvalues=[
        ("trainFraction", 1.0, "trainFraction"),
        ("trainFraction", 0, "trainFraction"),
        ("validationFraction", 1.5, "validationFraction"),
        ("metric", "r2", "metric"),
        ("candidates", [], "candidates"),
        ("timeout", -1, "timeout"),
        ("logLevel", "chatty", "unknown log level"),
        ("unknownKey", 1, "unknownKey"),
    ],
)
def test_config_invalid(
    raw_config: Dict[str, Any], key: str, value: Any, message: str
) -> None:
    raw_config[key] = value
    with pytest.raises(ConfigError, match=message):
        HoldoutConfig.from_dict(raw_config)


def test_config_invalid_candidates(raw_config: Dict[str, Any]) -> None:
    raw_config["candidates"][1]["name"] = "linear"
    with pytest.raises(ConfigError, match="duplicate candidate names: linear"):
        HoldoutConfig.from_dict(raw_config)

    raw_config["candidates"][1]["name"] = "forest"
    raw_config["candidates"][1]["learner"] = "neural_network"
    with pytest.raises(ConfigError, match="unknown learner 'neural_network'"):
        HoldoutConfig.from_dict(raw_config)

    raw_config["candidates"][1]["learner"] = "random_forest_regressor"
    raw_config["candidates"][1]["grid"] = {"n_estimators": [5, 10]}
    with pytest.raises(ConfigError, match="both in params and grid: n_estimators"):
        HoldoutConfig.from_dict(raw_config)

    raw_config["candidates"][1]["grid"] = {"max_depth": []}
    with pytest.raises(ConfigError, match="no choices: max_depth"):
        HoldoutConfig.from_dict(raw_config)

    raw_config["candidates"][1]["grid"] = {}
    raw_config["candidates"][1]["predictors"] = [{"name": "x1", "degree": 0}]
    with pytest.raises(ConfigError):
        HoldoutConfig.from_dict(raw_config)

    with pytest.raises(ConfigError, match="must be a mapping"):
        # noinspection PyTypeChecker
        HoldoutConfig.from_dict(["not", "a", "mapping"])  # type: ignore


def test_config_load(raw_config: Dict[str, Any], tmp_path: Path) -> None:
    config = HoldoutConfig.load(_write_config(tmp_path / "config.yml", raw_config))

    # relative data paths are resolved against the directory of the config file
    assert config.data.path == tmp_path / "subjects.csv"

    config_overridden = config.with_overrides(
        data_path=Path("other.csv"), output_dir=tmp_path / "out"
    )
    assert config_overridden.data.path == Path("other.csv")
    assert config_overridden.output_dir == tmp_path / "out"
    assert config.output_dir is None

    assert config.with_overrides() is config


def test_config_load_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        HoldoutConfig.load(tmp_path / "doesnt_exist.yml")

    path_invalid = tmp_path / "invalid.yml"
    path_invalid.write_text("data: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="not valid YAML"):
        HoldoutConfig.load(path_invalid)


def test_candidate_spaces(raw_config: Dict[str, Any]) -> None:
    linear, forest = HoldoutConfig.from_dict(raw_config).to_candidate_spaces()

    (linear_candidate,) = linear.candidates
    assert linear_candidate.name == "linear"
    assert linear_candidate.predictors == [Predictor("x1"), Predictor("x2", degree=2)]

    forest_candidates = forest.candidates
    assert [candidate.name for candidate in forest_candidates] == [
        "forest[max_depth=2]",
        "forest[max_depth=4]",
    ]
    for candidate in forest_candidates:
        assert candidate.params["n_estimators"] == 10
        assert candidate.random_state == 7


def test_candidate_config_invalid_params() -> None:
    candidate_config = CandidateConfig(
        name="linear",
        learner="linear_regression",
        target="y",
        predictors=["x1"],
        params={"max_depth": 3},
    )

    with pytest.raises(ConfigError, match="invalid candidate 'linear'"):
        candidate_config.to_candidate_space()


def test_learner_registry() -> None:
    assert learner_names() == [
        "linear_regression",
        "logistic_regression",
        "random_forest_regressor",
        "random_forest_classifier",
        "gradient_boosting_regressor",
        "gradient_boosting_classifier",
        "decision_tree_regressor",
        "decision_tree_classifier",
    ]

    assert isinstance(make_learner("logistic_regression"), LogisticRegressionDF)
    assert isinstance(make_learner("random_forest_regressor"), RandomForestRegressorDF)

    with pytest.raises(ConfigError, match="unknown learner"):
        make_learner("neural_network")


def test_candidate_config_learner_seed(partition: SamplePartition) -> None:
    candidate_config = CandidateConfig(
        name="forest",
        learner="random_forest_regressor",
        target="y",
        predictors=["x1", "x2"],
        params={"n_estimators": 5, "random_state": 7},
    )

    selector = ModelSelector(
        candidate_config.to_candidate_space().candidates,
        metric="mse",
        random_state=3,
    ).fit(partition)

    # the seed configured for the learner is kept
    assert selector.summary_report().loc["forest", "random_state"] == 7
    fitted = selector.fitted_candidates_["forest"]
    assert fitted.learner.get_params()["random_state"] == 7
