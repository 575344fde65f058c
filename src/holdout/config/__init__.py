"""
Configuration of holdout runs.

A run is configured by a YAML document, validated by the pydantic models in this
package. Keys may be given in snake case (``train_fraction``) or camel case
(``trainFraction``).

Example:

.. code-block:: yaml

    data:
      path: subjects.csv
      entity: subject
    trainFraction: 0.75
    validationFraction: 0.33
    randomSeed: 42
    metric: mse
    candidates:
      - name: linear
        learner: linear_regression
        target: y
        predictors: [x1, {name: x2, degree: 2}]
      - name: forest
        learner: random_forest_regressor
        target: y
        predictors: [x1, x2]
        grid:
          max_depth: [3, 5]

Use :meth:`.HoldoutConfig.load` to read and validate a configuration file.
"""
from ._config import *
