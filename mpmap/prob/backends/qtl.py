"""
Multipoint founder probabilities along whole chromosomes

The cross is treated as a multi-way RIL of the design's cross type
(``ri4self``, ``ri8self``, ``ri8selfIRIP<k>``): founder origin is a Markov
chain along the map whose transitions come from the design's two-locus
haplotype model, and probabilities at every grid position are computed by
a forward/backward pass over all markers of the chromosome.
"""

import numpy as np

from .base import (ProbabilityBackend, Program, ChromosomeData,
                   multipoint_chain, chain_emissions)
from ..hmm import forward_backward, marker_emissions
from ...pedigree.haplotypes import transition_matrices, founder_prior
from ...utils.data_types import PositionGrid
from ...utils.map_functions import distance_to_rf


class QTLBackend(ProbabilityBackend):
    """Forward/backward multipoint probabilities under the design's cross type"""

    program = Program.QTL

    @property
    def cross_type(self) -> str:
        return self.design.cross_type

    def compute_probabilities(self, data: ChromosomeData, grid: PositionGrid) -> np.ndarray:
        positions, marker_of, grid_rows = multipoint_chain(data, grid)
        emissions = chain_emissions(
            marker_emissions(data.founder_alleles, data.founder_missing,
                             data.final_alleles, data.final_missing, self.geprob),
            marker_of,
        )
        rf = distance_to_rf(np.diff(positions), self.mapfx)
        transitions = np.ascontiguousarray(transition_matrices(self.design, rf))
        posterior = forward_backward(emissions, transitions, founder_prior(self.design))
        return posterior[:, grid_rows, :]
