"""
Model candidates, hyperparameter sweeps, and the selection of the best candidate
based on its validation score.

:class:`.ModelCandidate` combines a target, an ordered list of predictors and a
learner with its hyperparameters. :class:`.CandidateSpace` generates multiple
candidates from a grid of hyperparameter choices.

:class:`.ModelSelector` fits all candidates to the training subset of a
:class:`.SamplePartition`, scores them on the validation subset, and finalizes
the selection of the best candidate as a :class:`.Selection`. Only the selection can
evaluate the selected candidate on the test subset, and only once.
"""
from ._candidate import *
from ._parameters import *
from ._selection import *
