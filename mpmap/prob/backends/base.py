"""
Common interface for founder probability backends
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union, List

import numpy as np
import pandas as pd

from ..grid import build_position_grid
from ..hmm import allele_identity_probabilities
from ...pedigree.design import CrossDesign
from ...utils.data_types import PositionGrid, MARKER
from ...utils.errors import ConfigurationError
from ...utils.map_functions import MapFunction


class Program(Enum):
    """Probability computation strategies"""

    MPMAP = "mpMap"
    QTL = "qtl"
    HAPPY = "happy"

    @classmethod
    def parse(cls, value: Union[str, "Program"]) -> "Program":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == key or member.name.lower() == key:
                return member
        choices = ", ".join(m.value for m in cls)
        raise ConfigurationError(f"Unknown program '{value}' (expected one of: {choices})")

    @property
    def needs_design(self) -> bool:
        return self is not Program.HAPPY


@dataclass
class ChromosomeData:
    """Read-only inputs for one chromosome

    Allele arrays are copies sliced to this chromosome's markers, so a
    worker can own them without touching the caller's matrices.
    """

    chromosome: str
    marker_map: pd.Series
    founder_alleles: np.ndarray
    founder_missing: np.ndarray
    final_alleles: np.ndarray
    final_missing: np.ndarray
    final_ids: List[str]
    founder_ids: List[str]

    @property
    def n_founders(self) -> int:
        return self.founder_alleles.shape[0]

    @property
    def n_finals(self) -> int:
        return self.final_alleles.shape[0]

    @property
    def n_markers(self) -> int:
        return len(self.marker_map)

    @property
    def marker_positions(self) -> np.ndarray:
        return self.marker_map.to_numpy(dtype=np.float64)

    def fully_missing(self) -> np.ndarray:
        """Final lines with no observed call on this chromosome"""
        return self.final_missing.all(axis=1)


@dataclass
class RawProbabilities:
    """Backend output for one chromosome

    ``probs`` is individuals x positions x founders, aligned with ``grid``.
    ``step`` is the step size the grid was actually built with.
    """

    chromosome: str
    probs: np.ndarray
    grid: PositionGrid
    step: float


class ProbabilityBackend(ABC):
    """One strategy for computing founder-origin probabilities"""

    program: Program

    def __init__(self, mapfx: Union[str, MapFunction] = MapFunction.HALDANE,
                 geprob: float = 1e-4, design: Optional[CrossDesign] = None):
        if not 0.0 <= geprob < 1.0:
            raise ConfigurationError(f"Genotyping error probability must be in [0, 1), got {geprob}")
        if self.program.needs_design and design is None:
            raise ConfigurationError(f"Program {self.program.value} requires a resolved design")
        self.mapfx = MapFunction.parse(mapfx)
        self.geprob = geprob
        self.design = design

    def check_available(self) -> None:
        """Raise ConfigurationError when a required capability is missing"""

    def effective_step(self, step: float) -> float:
        return step

    def compute(self, data: ChromosomeData, step: float) -> RawProbabilities:
        """Probabilities for one chromosome

        Single-marker chromosomes bypass the model and use allele identity.
        """
        if data.n_markers == 1:
            return single_marker_probabilities(data)
        step = self.effective_step(step)
        grid = build_position_grid(data.chromosome, data.marker_map, step)
        probs = np.array(self.compute_probabilities(data, grid), dtype=np.float64)
        probs[data.fully_missing()] = np.nan
        return RawProbabilities(chromosome=data.chromosome, probs=probs, grid=grid, step=step)

    @abstractmethod
    def compute_probabilities(self, data: ChromosomeData, grid: PositionGrid) -> np.ndarray:
        """individuals x len(grid) x founders probabilities"""


def single_marker_probabilities(data: ChromosomeData) -> RawProbabilities:
    probs = allele_identity_probabilities(
        data.founder_alleles, data.founder_missing,
        data.final_alleles, data.final_missing,
    )
    grid = PositionGrid(
        chromosome=data.chromosome,
        names=[str(m) for m in data.marker_map.index],
        positions=data.marker_positions,
        kinds=[MARKER] * data.n_markers,
    )
    return RawProbabilities(chromosome=data.chromosome, probs=probs, grid=grid, step=0)


def grid_loci(data: ChromosomeData, grid: PositionGrid):
    """Marker index of each grid position (-1 for positions between markers)"""
    lookup = {str(m): i for i, m in enumerate(data.marker_map.index)}
    return np.array([lookup.get(name, -1) if kind == MARKER else -1
                     for name, kind in zip(grid.names, grid.kinds)], dtype=int)


def multipoint_chain(data: ChromosomeData, grid: PositionGrid):
    """Merge markers and grid positions into one ordered chain of loci

    Returns:
        positions: chain positions in cM
        marker_of: marker index of each chain locus (-1 for non-marker loci)
        grid_rows: chain row of each grid position
    """
    loci = grid_loci(data, grid)
    extra = np.flatnonzero(loci < 0)
    positions = np.concatenate([data.marker_positions, grid.positions[extra]])
    marker_of = np.concatenate([np.arange(data.n_markers), np.full(len(extra), -1)])

    order = np.argsort(positions, kind='stable')
    rank = np.empty(len(order), dtype=int)
    rank[order] = np.arange(len(order))

    grid_rows = np.empty(len(grid), dtype=int)
    is_marker = loci >= 0
    grid_rows[is_marker] = rank[loci[is_marker]]
    grid_rows[extra] = rank[data.n_markers + np.arange(len(extra))]
    return positions[order], marker_of[order], grid_rows


def chain_emissions(marker_emission: np.ndarray, marker_of: np.ndarray) -> np.ndarray:
    """Expand marker emissions onto a chain; non-marker loci are uninformative"""
    n_ind, _, n_states = marker_emission.shape
    emissions = np.ones((n_ind, len(marker_of), n_states))
    has_marker = marker_of >= 0
    emissions[:, has_marker, :] = marker_emission[:, marker_of[has_marker], :]
    return np.ascontiguousarray(emissions)
