"""
Core implementation of :mod:`holdout.config`
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Type, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from pytools.api import AllTracker
from sklearndf import SupervisedLearnerDF
from sklearndf.classification import (
    DecisionTreeClassifierDF,
    GradientBoostingClassifierDF,
    LogisticRegressionDF,
    RandomForestClassifierDF,
)
from sklearndf.regression import (
    DecisionTreeRegressorDF,
    GradientBoostingRegressorDF,
    LinearRegressionDF,
    RandomForestRegressorDF,
)

from ..errors import ConfigError
from ..selection import CandidateSpace, Predictor

log = logging.getLogger(__name__)

__all__ = [
    "PredictorConfig",
    "CandidateConfig",
    "DataConfig",
    "HoldoutConfig",
    "learner_names",
    "make_learner",
]

#
# Ensure all symbols introduced below are included in __all__
#

__tracker = AllTracker(globals())


#
# Learner registry
#

_LEARNERS: Dict[str, Type[SupervisedLearnerDF]] = {
    "linear_regression": LinearRegressionDF,
    "logistic_regression": LogisticRegressionDF,
    "random_forest_regressor": RandomForestRegressorDF,
    "random_forest_classifier": RandomForestClassifierDF,
    "gradient_boosting_regressor": GradientBoostingRegressorDF,
    "gradient_boosting_classifier": GradientBoostingClassifierDF,
    "decision_tree_regressor": DecisionTreeRegressorDF,
    "decision_tree_classifier": DecisionTreeClassifierDF,
}


def learner_names() -> List[str]:
    """
    Get the names of all learners that can be used in a configuration.

    :return: the learner names
    """
    return list(_LEARNERS)


def make_learner(name: str) -> SupervisedLearnerDF:
    """
    Create a new learner with default parameters from its registry name.

    :param name: the registry name of the learner, e.g. ``"linear_regression"``
    :return: the new learner
    :raise ConfigError: if no learner is registered under the given name
    """
    try:
        learner_type = _LEARNERS[name]
    except KeyError:
        raise ConfigError(
            f"unknown learner {name!r}; expected one of: {', '.join(_LEARNERS)}"
        ) from None
    return learner_type()


#
# Class definitions
#


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class PredictorConfig(_ConfigModel):
    """
    A predictor column with an optional polynomial degree.
    """

    name: str
    degree: int = Field(default=1, ge=1)

    def to_predictor(self) -> Predictor:
        """
        Create the predictor described by this configuration.

        :return: the predictor
        """
        return Predictor(self.name, degree=self.degree)


class CandidateConfig(_ConfigModel):
    """
    A model candidate, or a sweep of model candidates if a ``grid`` of
    hyperparameter choices is given.
    """

    name: str = Field(min_length=1)
    learner: str
    target: str
    predictors: List[Union[str, PredictorConfig]] = Field(min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    grid: Dict[str, List[Any]] = Field(default_factory=dict)
    random_state: Optional[int] = None

    @field_validator("learner")
    @classmethod
    def check_learner(cls, value: str) -> str:
        if value not in _LEARNERS:
            raise ValueError(
                f"unknown learner {value!r}; expected one of: {', '.join(_LEARNERS)}"
            )
        return value

    @field_validator("grid")
    @classmethod
    def check_grid(cls, value: Dict[str, List[Any]]) -> Dict[str, List[Any]]:
        empty = [name for name, choices in value.items() if not choices]
        if empty:
            raise ValueError(f"grid parameters have no choices: {', '.join(empty)}")
        return value

    @model_validator(mode="after")
    def check_params(self) -> "CandidateConfig":
        overlap = sorted(self.params.keys() & self.grid.keys())
        if overlap:
            raise ValueError(
                f"parameters are set both in params and grid: {', '.join(overlap)}"
            )
        return self

    def to_candidate_space(self) -> CandidateSpace:
        """
        Create the candidate space described by this configuration.

        Fixed ``params`` are applied to the learner; ``grid`` parameters span the
        sweep. Without a grid, the space generates a single candidate.

        :return: the candidate space
        :raise ConfigError: if a parameter is not known to the learner
        """
        learner = make_learner(self.learner)
        try:
            if self.params:
                learner.set_params(**self.params)
            space = CandidateSpace(
                self.name,
                learner,
                target=self.target,
                predictors=[
                    predictor
                    if isinstance(predictor, str)
                    else predictor.to_predictor()
                    for predictor in self.predictors
                ],
                random_state=self.random_state,
            )
            if self.grid:
                space.grid(**self.grid)
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid candidate {self.name!r}: {e}") from e
        return space


class DataConfig(_ConfigModel):
    """
    The input dataset.
    """

    #: path to a comma-separated file with a header row; may be left out if the
    #: data is passed on directly
    path: Optional[Path] = None

    #: the name of the column identifying the entity of each observation
    entity: str


class HoldoutConfig(_ConfigModel):
    """
    The configuration of a complete holdout run.
    """

    data: DataConfig
    train_fraction: float = Field(gt=0, lt=1)
    validation_fraction: float = Field(gt=0, lt=1)
    random_seed: Optional[int] = None
    metric: Literal["mse", "accuracy"]
    candidates: List[CandidateConfig] = Field(min_length=1)
    n_jobs: Optional[int] = None
    timeout: Optional[float] = Field(default=None, gt=0)
    output_dir: Optional[Path] = None
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @model_validator(mode="after")
    def check_candidate_names(self) -> "HoldoutConfig":
        names = [candidate.name for candidate in self.candidates]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate candidate names: {', '.join(duplicates)}")
        return self

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "HoldoutConfig":
        """
        Validate a configuration given as a dictionary.

        :param raw: the configuration values, using snake case or camel case keys
        :return: the validated configuration
        :raise ConfigError: if the configuration is invalid
        """
        if not isinstance(raw, dict):
            raise ConfigError(
                f"configuration must be a mapping, but got a {type(raw).__name__}"
            )
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"invalid configuration: {e}") from e

    @classmethod
    def load(cls, path: Union[str, "os.PathLike[str]"]) -> "HoldoutConfig":
        """
        Load and validate a configuration from a YAML file.

        A relative data path is resolved against the directory of the configuration
        file.

        :param path: path to the YAML file
        :return: the validated configuration
        :raise ConfigError: if the file cannot be read or the configuration is
            invalid
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            try:
                raw = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"config file {path} is not valid YAML: {e}") from e

        config = cls.from_dict(raw)
        log.debug(f"loaded configuration from {path}")

        data_path = config.data.path
        if data_path is not None and not data_path.is_absolute():
            config = config.model_copy(
                update=dict(
                    data=config.data.model_copy(
                        update=dict(path=path.parent / data_path)
                    )
                )
            )

        return config

    def with_overrides(
        self,
        *,
        data_path: Optional[Path] = None,
        output_dir: Optional[Path] = None,
    ) -> "HoldoutConfig":
        """
        Create a copy of this configuration with the given settings replaced.

        :param data_path: the path of the input dataset
        :param output_dir: the directory for output files
        :return: the updated configuration
        """
        update: Dict[str, Any] = {}
        if data_path is not None:
            update["data"] = self.data.model_copy(update=dict(path=data_path))
        if output_dir is not None:
            update["output_dir"] = output_dir
        return self.model_copy(update=update) if update else self

    def to_candidate_spaces(self) -> List[CandidateSpace]:
        """
        Create the candidate spaces of all configured candidates, in declaration
        order.

        :return: the candidate spaces
        """
        return [candidate.to_candidate_space() for candidate in self.candidates]


__tracker.validate()
