"""
Leakage-free model selection.

Partition a sample by entity into disjoint training, validation and test subsets,
fit competing model candidates on the training subset, select the best candidate on
the validation subset, and assess the selected candidate exactly once on the test
subset.
"""


__version__ = "1.0.0"
