"""
Exceptions raised by the :mod:`holdout` package.

Configuration, partitioning and final test evaluation errors are fatal for a run.
Fit and evaluation errors of individual candidates are recovered by the
:class:`.ModelSelector`, which records them and excludes the failing candidate from
the selection.
"""
from ._errors import *
