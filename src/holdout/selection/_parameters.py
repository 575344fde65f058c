"""
Hyperparameter sweeps generating model candidates.
"""

from __future__ import annotations

import itertools
import logging
import warnings
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from sklearn.base import BaseEstimator
from typing_extensions import TypeAlias

from pytools.api import AllTracker, inheritdoc
from pytools.expression import Expression, HasExpressionRepr, make_expression
from pytools.expression.atomic import Id
from sklearndf import SupervisedLearnerDF

from ._candidate import ModelCandidate, Predictor

log = logging.getLogger(__name__)

__all__ = [
    "ParameterSpace",
    "CandidateSpace",
]

#
# Type aliases
#

ParameterList: TypeAlias = List[Any]

#
# Ensure all symbols introduced below are included in __all__
#

__tracker = AllTracker(globals())


#
# Class definitions
#


@inheritdoc(match="""[see superclass]""")
class ParameterSpace(HasExpressionRepr):
    """
    A grid of hyperparameter choices for an estimator and its nested estimators.

    Parameter choices are set as lists using attribute access, and are validated for
    correct names and values. Parameters of nested estimators, e.g., the regressor
    of a pipeline, are set on the child space of the same name.

    Example:

    .. code-block:: python

        ps = ParameterSpace(
            RegressorPipelineDF(regressor=RandomForestRegressorDF())
        )
        ps.regressor.max_depth = [3, 5, 10]
        ps.regressor.n_estimators = [50, 100]

        # The following will raise an AttributeError for the unknown attribute xyz:
        ps.regressor.xyz = [3, 4, 5, 7, 10]

        # the following will raise a TypeError because we do not assign a list:
        ps.regressor.max_depth = 3
    """

    def __init__(self, estimator: BaseEstimator) -> None:
        """
        :param estimator: the estimator to which to apply the parameters
        """
        self._estimator = estimator

        params: Dict[str, Any] = {
            name: param
            for name, param in estimator.get_params(deep=True).items()
            if "__" not in name
        }

        self._children: Dict[str, ParameterSpace] = {
            name: ParameterSpace(estimator=value)
            for name, value in params.items()
            if isinstance(value, BaseEstimator)
        }

        self._values: Dict[str, ParameterList] = {}
        self._params: Set[str] = set(params.keys())

    @property
    def estimator(self) -> BaseEstimator:
        """
        The estimator associated with this parameter space.
        """
        return self._estimator

    def get_parameters(self) -> Dict[str, ParameterList]:
        """
        Get all parameter choices of this space, keyed by their `scikit-learn`
        parameter names (using ``__`` to separate nested estimators).

        :return: a dictionary mapping parameter names to lists of choices,
            in declaration order
        """
        return {"__".join(path): values for path, values in self._iter_parameters([])}

    def grid(self, **parameters: Sequence[Any]) -> ParameterSpace:
        """
        Set multiple parameter choices at once.

        Parameters of nested estimators are addressed using `scikit-learn`'s ``__``
        convention, e.g., ``regressor__max_depth=[3, 5]``.

        :param parameters: lists of choices, by parameter name
        :return: ``self``
        """
        for name, values in parameters.items():
            *path, param = name.split("__")
            space = self
            for step in path:
                child = space._children.get(step, None)
                if child is None:
                    raise AttributeError(
                        f"unknown nested estimator for "
                        f"{type(space._estimator).__name__}: {step}"
                    )
                space = child
            setattr(space, param, values)
        return self

    def _validate_parameter(self, name: str, value: Any) -> None:
        if name not in self._params:
            raise AttributeError(
                f"unknown parameter name for "
                f"{type(self._estimator).__name__}: {name}"
            )

        if not isinstance(value, (list, tuple)):
            raise TypeError(
                f"expected list for parameter {name} but got: {value!r}"
            )

        if len(value) == 0:
            raise ValueError(f"expected at least one choice for parameter {name}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            super().__setattr__(name, value)
        else:
            self._validate_parameter(name, value)
            if hasattr(type(self), name):
                warnings.warn(
                    f"parameter {name!r} overrides {type(self).__name__} "
                    f"attribute of same name",
                    stacklevel=2,
                )
            self._values[name] = list(value)

    def __dir__(self) -> Iterable[str]:
        return {*super().__dir__(), *self._params}

    def __getattr__(self, key: str) -> Any:
        if not key.startswith("_"):
            result: Union[ParameterSpace, ParameterList, None]

            result = self._children.get(key, None)
            if result is not None:
                return result

            result = self._values.get(key, None)
            if result is not None:
                return result

        return super().__getattribute__(key)

    def __iter__(self) -> Iterator[Tuple[List[str], ParameterList]]:
        return self._iter_parameters([])

    def _iter_parameters(
        self, path_prefix: List[str]
    ) -> Iterator[Tuple[List[str], ParameterList]]:
        yield from (
            ([*path_prefix, name], value) for name, value in self._values.items()
        )

        for name, child in self._children.items():
            yield from child._iter_parameters([*path_prefix, name])

    def to_expression(self) -> Expression:
        """[see superclass]"""
        parameters = {
            ".".join(path): make_expression(values)
            for path, values in self._iter_parameters([])
        }
        return Id(type(self))(self._estimator, **parameters)


@inheritdoc(match="""[see superclass]""")
class CandidateSpace(ParameterSpace):
    """
    A hyperparameter sweep over a learner, generating one :class:`.ModelCandidate`
    per combination of parameter choices.

    Candidates are generated from the Cartesian product of all parameter choices:
    parameters are combined in the order they were declared, with the last declared
    parameter varying fastest, and choices in the order they were listed.
    Candidate names append the parameter values to the name of the space,
    e.g., ``"forest[regressor.max_depth=3,regressor.n_estimators=50]"``.

    A space without parameter choices generates a single candidate named like the
    space.

    Example:

    .. code-block:: python

        space = CandidateSpace(
            "forest",
            RandomForestRegressorDF(),
            target="y",
            predictors=["x1", "x2"],
        )
        space.max_depth = [3, 5]
        space.n_estimators = [50, 100]

        candidates = list(space)  # 4 candidates
    """

    def __init__(
        self,
        name: str,
        learner: SupervisedLearnerDF,
        *,
        target: str,
        predictors: Sequence[Union[str, Predictor]],
        random_state: Optional[int] = None,
    ) -> None:
        """
        :param name: the base name of the generated candidates
        :param learner: the learner shared by all generated candidates
        :param target: the name of the target column
        :param predictors: the predictor columns, as names or as :class:`.Predictor`
            objects for polynomial expansions
        :param random_state: an optional seed shared by all generated candidates
        """
        super().__init__(estimator=learner)

        # validates the arguments shared by all candidates
        self._template = ModelCandidate(
            name,
            learner,
            target=target,
            predictors=predictors,
            random_state=random_state,
        )

    @property
    def name(self) -> str:
        """
        The base name of the generated candidates.
        """
        return self._template.name

    @property
    def candidates(self) -> List[ModelCandidate]:
        """
        All candidates spanned by this space, in generation order.
        """
        return list(self.iter_candidates())

    def iter_candidates(self) -> Iterator[ModelCandidate]:
        """
        Generate all candidates spanned by this space.

        :return: an iterator of candidates, in generation order
        """
        template = self._template
        parameters = list(self._iter_parameters([]))

        if not parameters:
            yield template
            return

        paths = [path for path, _ in parameters]
        for values in itertools.product(*(choices for _, choices in parameters)):
            suffix = ",".join(
                f"{'.'.join(path)}={value}" for path, value in zip(paths, values)
            )
            yield ModelCandidate(
                f"{template.name}[{suffix}]",
                self._estimator,
                target=template.target,
                predictors=template.predictors,
                params={"__".join(path): value for path, value in zip(paths, values)},
                random_state=template.random_state,
            )

    def __iter__(self) -> Iterator[ModelCandidate]:  # type: ignore[override]
        return self.iter_candidates()

    def __len__(self) -> int:
        n = 1
        for _, choices in self._iter_parameters([]):
            n *= len(choices)
        return n

    def to_expression(self) -> Expression:
        """[see superclass]"""
        template = self._template
        parameters = {
            ".".join(path): make_expression(values)
            for path, values in self._iter_parameters([])
        }
        return Id(type(self))(
            template.name,
            self._estimator,
            target=template.target,
            predictors=template.predictor_names,
            **parameters,
        )


__tracker.validate()
