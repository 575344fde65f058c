"""
End-to-end holdout runs.

:class:`.HoldoutPipeline` partitions a sample, selects the best candidate on the
validation subset, evaluates it once on the test subset, and summarizes the run as a
:class:`.PipelineReport`.
"""
from ._pipeline import *
