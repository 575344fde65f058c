"""
Partitioning of samples by entity.

:class:`.EntityPartitioner` assigns each distinct entity of a :class:`.Sample` to
exactly one of the roles ``train``, ``validation`` and ``test``, and materializes the
resulting subsets as an immutable :class:`.SamplePartition`.
"""
from ._partition import *
