"""
Core implementation of :mod:`holdout.errors`
"""

from pytools.api import AllTracker

__all__ = [
    "HoldoutError",
    "ConfigError",
    "PartitionError",
    "FitError",
    "EvaluationError",
    "SelectionError",
    "FinalEvaluationError",
]

#
# Ensure all symbols introduced below are included in __all__
#

__tracker = AllTracker(globals())


#
# Class definitions
#


class HoldoutError(Exception):
    """
    Base class of all errors raised deliberately by the :mod:`holdout` package.
    """


class ConfigError(HoldoutError, ValueError):
    """
    Raised for invalid settings, before any computation is started.
    """


class PartitionError(HoldoutError, ValueError):
    """
    Raised if a sample cannot be partitioned, e.g., because one of the resulting
    subsets would be empty.
    """


class FitError(HoldoutError, RuntimeError):
    """
    Raised if a model candidate cannot be fitted to a training sample.
    """

    #: the name of the candidate that failed to fit
    candidate_name: str

    def __init__(self, candidate_name: str, message: str) -> None:
        """
        :param candidate_name: the name of the candidate that failed to fit
        :param message: a description of the failure
        """
        super().__init__(f"candidate {candidate_name!r}: {message}")
        self.candidate_name = candidate_name


class EvaluationError(HoldoutError, RuntimeError):
    """
    Raised if a fitted candidate cannot be scored against a sample.
    """

    #: the name of the candidate that failed to be evaluated
    candidate_name: str

    def __init__(self, candidate_name: str, message: str) -> None:
        """
        :param candidate_name: the name of the candidate that failed to be evaluated
        :param message: a description of the failure
        """
        super().__init__(f"candidate {candidate_name!r}: {message}")
        self.candidate_name = candidate_name


class SelectionError(HoldoutError, RuntimeError):
    """
    Raised if no candidate can be selected, or if the selection protocol is violated.
    """


class FinalEvaluationError(HoldoutError, RuntimeError):
    """
    Raised if the final evaluation of the selected candidate on the test subset fails.

    The final evaluation never falls back to another candidate or to the validation
    score.
    """


__tracker.validate()
