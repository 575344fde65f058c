"""
Samples of observations attributed to entities, and their partitioning into disjoint
training, validation and test subsets.

:class:`.Sample` wraps a data frame together with the name of its entity column.

The :mod:`holdout.data.partition` package partitions a sample by entity.
"""
from ._sample import *
