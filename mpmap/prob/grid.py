"""
Position grid construction for founder probability computation

``step == 0`` computes at markers only, ``step < 0`` at interval midpoints
only and ``step > 0`` at markers plus every multiple of ``step`` cM from the
first to the last marker. Step points that fall on a marker (within
``STEP_TOLERANCE``) are counted as markers.
"""

from typing import List, Optional

import numpy as np
import pandas as pd

from ..utils.data_types import PositionGrid, MARKER, STEP
from ..utils.errors import InternalInvariantError

STEP_TOLERANCE = 1e-6


def _format_position(pos: float) -> str:
    text = f"{pos:.6f}".rstrip('0').rstrip('.')
    return text if text not in ('', '-0') else '0'


def step_name(chrom: str, pos: float) -> str:
    return f"c{chrom}.loc{_format_position(pos)}"


def midpoint_name(chrom: str, k: int) -> str:
    return f"C{chrom}P{k}"


def step_sequence(marker_positions: np.ndarray, step: float) -> np.ndarray:
    """Multiples of ``step`` from the first to the last marker position"""
    lo = float(np.min(marker_positions))
    hi = float(np.max(marker_positions))
    n_steps = int(np.floor((hi - lo) / step + STEP_TOLERANCE))
    return lo + step * np.arange(n_steps + 1)


def marker_grid(chrom: str, marker_map: pd.Series) -> PositionGrid:
    return PositionGrid(
        chromosome=str(chrom),
        names=[str(m) for m in marker_map.index],
        positions=marker_map.to_numpy(dtype=np.float64),
        kinds=[MARKER] * len(marker_map),
    )


def midpoint_grid(chrom: str, marker_map: pd.Series) -> PositionGrid:
    """Midpoints of consecutive marker intervals"""
    pos = marker_map.to_numpy(dtype=np.float64)
    mids = pos[:-1] + np.diff(pos) / 2.0
    return PositionGrid(
        chromosome=str(chrom),
        names=[midpoint_name(chrom, k) for k in range(1, len(mids) + 1)],
        positions=mids,
        kinds=[STEP] * len(mids),
    )


def build_position_grid(chrom: str, marker_map: pd.Series, step: float) -> PositionGrid:
    """Positions at which a backend computes probabilities for one chromosome

    Markers are always part of a positive-step grid; dropping them when the
    caller does not want them happens after computation.
    """
    chrom = str(chrom)
    if len(marker_map) == 1 or step == 0:
        return marker_grid(chrom, marker_map)
    if step < 0:
        return midpoint_grid(chrom, marker_map)

    marker_pos = marker_map.to_numpy(dtype=np.float64)
    steps = step_sequence(marker_pos, step)
    keep = [p for p in steps if np.min(np.abs(marker_pos - p)) >= STEP_TOLERANCE]

    names = [str(m) for m in marker_map.index] + [step_name(chrom, p) for p in keep]
    positions = np.concatenate([marker_pos, np.asarray(keep, dtype=np.float64)])
    kinds = [MARKER] * len(marker_pos) + [STEP] * len(keep)
    order = np.argsort(positions, kind='stable')
    return PositionGrid(
        chromosome=chrom,
        names=[names[i] for i in order],
        positions=positions[order],
        kinds=[kinds[i] for i in order],
    )


def classify_positions(chrom: str, names: List[str], positions: np.ndarray,
                       marker_map: pd.Series, step: float) -> PositionGrid:
    """Tag backend-reported positions as marker or step locations

    A reported position is a marker when its name is a map marker; with a
    positive step it is a step location when it lies within STEP_TOLERANCE
    of the step sequence, otherwise every non-marker position is a step
    location. A position that is both counts as a marker. Anything that is
    neither is an internal error, as is a count mismatch.
    """
    positions = np.asarray(positions, dtype=np.float64)
    marker_names = set(str(m) for m in marker_map.index)
    is_marker = np.array([str(n) in marker_names for n in names], dtype=bool)

    if step > 0:
        seq = step_sequence(marker_map.to_numpy(dtype=np.float64), step)
        is_step = np.array([np.min(np.abs(p - seq)) < STEP_TOLERANCE for p in positions], dtype=bool)
    else:
        is_step = np.ones(len(positions), dtype=bool)
    is_step &= ~is_marker

    n_classified = int(is_marker.sum() + is_step.sum())
    if n_classified != len(positions):
        raise InternalInvariantError(
            f"Chromosome {chrom}: {n_classified} marker/step positions classified "
            f"for {len(positions)} computed positions"
        )
    kinds = [MARKER if m else STEP for m in is_marker]
    return PositionGrid(chromosome=str(chrom), names=[str(n) for n in names],
                        positions=positions, kinds=kinds)


def check_grid_alignment(grid: PositionGrid, n_columns: int, n_founders: int,
                         context: Optional[str] = None) -> None:
    """Grid positions must account for every founder block of a matrix"""
    if n_columns % n_founders != 0 or grid.n_markers + grid.n_steps != n_columns // n_founders:
        where = f" ({context})" if context else ""
        raise InternalInvariantError(
            f"Chromosome {grid.chromosome}{where}: grid has {grid.n_markers} marker and "
            f"{grid.n_steps} step positions but matrix has {n_columns} columns "
            f"for {n_founders} founders"
        )
