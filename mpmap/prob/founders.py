"""
Threshold-based discrete founder calls
"""

from collections import OrderedDict
from typing import Mapping, Union

import numpy as np
import pandas as pd

from ..utils.data_types import ProbabilityMatrix, FounderCallMatrix
from ..utils.errors import ConfigurationError


def check_threshold(threshold: float) -> float:
    threshold = float(threshold)
    if not 0.0 < threshold <= 1.0:
        raise ConfigurationError(f"Threshold must be in (0, 1], got {threshold}")
    return threshold


def MPMAP_CallFounders(prob: Union[ProbabilityMatrix, Mapping[str, ProbabilityMatrix]],
                       threshold: float = 0.7):
    """Call the most probable founder at every position

    A call is made only when the largest probability in a position's
    founder block is defined and strictly exceeds ``threshold``. Blocks
    containing NaN are never called.

    Args:
        prob: ProbabilityMatrix, or a mapping of chromosome -> ProbabilityMatrix
        threshold: Calling threshold in (0, 1]

    Returns:
        FounderCallMatrix with 1-based founder indices and <NA> for no call
        (an OrderedDict of them when given a mapping)
    """
    threshold = check_threshold(threshold)
    if isinstance(prob, Mapping):
        return OrderedDict((chrom, MPMAP_CallFounders(p, threshold)) for chrom, p in prob.items())

    values = prob.to_array()
    undefined = np.isnan(values).any(axis=2)
    filled = np.where(np.isnan(values), -np.inf, values)
    best = filled.argmax(axis=2)
    called = ~undefined & (filled.max(axis=2) > threshold)

    calls = pd.DataFrame(best + 1, index=prob.data.index, columns=prob.position_names).astype("Int64")
    calls = calls.where(called)
    return FounderCallMatrix(calls, threshold)
