"""
Reshape raw backend output into labelled per-chromosome probability matrices
"""

from collections import OrderedDict
from typing import Dict, Iterable, List

import numpy as np
import pandas as pd

from .backends.base import RawProbabilities
from .grid import classify_positions, check_grid_alignment
from ..utils.data_types import ProbabilityMatrix
from ..utils.errors import InternalInvariantError


def founder_column_labels(position_names: Iterable[str], n_founders: int) -> List[str]:
    """'<position>, Founder <k>' labels, founder index varying fastest"""
    return [f"{name}, Founder {k}"
            for name in position_names
            for k in range(1, n_founders + 1)]


def normalize_chromosome(raw: RawProbabilities, marker_map: pd.Series,
                         final_ids: List[str], n_founders: int,
                         mrkpos: bool = True) -> ProbabilityMatrix:
    """Canonical probability matrix for one chromosome

    Args:
        raw: Backend output (individuals x positions x founders)
        marker_map: Marker positions of the chromosome
        final_ids: Row labels, in final genotype order
        n_founders: Founder count
        mrkpos: Keep marker positions; when False they are stripped after
            the layout has been checked

    Returns:
        ProbabilityMatrix with rows = final IDs and one founder block per position
    """
    probs = np.asarray(raw.probs, dtype=np.float64)
    if probs.ndim != 3 or probs.shape[0] != len(final_ids) or probs.shape[2] != n_founders:
        raise InternalInvariantError(
            f"Chromosome {raw.chromosome}: backend returned shape {probs.shape}, "
            f"expected ({len(final_ids)}, positions, {n_founders})"
        )
    if probs.shape[1] != len(raw.grid):
        raise InternalInvariantError(
            f"Chromosome {raw.chromosome}: backend returned {probs.shape[1]} positions "
            f"for a grid of {len(raw.grid)}"
        )

    n_ind, n_pos, _ = probs.shape
    flat = probs.reshape(n_ind, n_pos * n_founders)

    grid = classify_positions(raw.chromosome, raw.grid.names, raw.grid.positions,
                              marker_map, raw.step)
    check_grid_alignment(grid, flat.shape[1], n_founders, context="backend output")

    data = pd.DataFrame(flat, index=list(final_ids),
                        columns=founder_column_labels(grid.names, n_founders))
    matrix = ProbabilityMatrix(data, grid, n_founders)

    if not mrkpos and grid.n_markers > 0:
        matrix = strip_markers(matrix)
    return matrix


def strip_markers(matrix: ProbabilityMatrix) -> ProbabilityMatrix:
    """Drop the founder blocks of marker positions"""
    keep = matrix.grid.step_indices
    columns = matrix.index.columns_for(keep)
    data = matrix.data.iloc[:, columns].copy()
    grid = matrix.grid.take(keep)
    check_grid_alignment(grid, data.shape[1], matrix.n_founders, context="marker columns removed")
    return ProbabilityMatrix(data, grid, matrix.n_founders)


def assemble(matrices: Dict[str, ProbabilityMatrix], requested: List[str],
             single_marker: Iterable[str] = ()) -> "OrderedDict[str, ProbabilityMatrix]":
    """Order chromosomes: multi-marker ones as requested, then single-marker ones"""
    single = set(single_marker)
    ordered = [c for c in requested if c not in single] + [c for c in requested if c in single]
    missing = [c for c in ordered if c not in matrices]
    if missing:
        raise InternalInvariantError(f"No probabilities computed for chromosomes {missing}")
    return OrderedDict((c, matrices[c]) for c in ordered)
