"""
Three-point founder probabilities from flanking markers

Each grid position is inferred from its nearest flanking markers only:
between markers, the marker on either side; at a marker, the marker itself
and its two neighbours. Transitions between the points come from the
design's two-locus haplotype model.
"""

import numpy as np

from .base import ProbabilityBackend, Program, ChromosomeData, grid_loci
from ..hmm import forward_backward, marker_emissions
from ...pedigree.haplotypes import transition_matrices, founder_prior
from ...utils.data_types import PositionGrid
from ...utils.map_functions import distance_to_rf


def flanking_markers(marker_positions: np.ndarray, position: float, marker_index: int = -1):
    """Indices of the markers used as evidence for one position"""
    n = len(marker_positions)
    if marker_index >= 0:
        return [i for i in (marker_index - 1, marker_index, marker_index + 1) if 0 <= i < n]
    left = np.searchsorted(marker_positions, position, side='right') - 1
    right = np.searchsorted(marker_positions, position, side='left')
    idx = []
    if left >= 0:
        idx.append(int(left))
    if right < n and right not in idx:
        idx.append(int(right))
    return idx


class MPMapBackend(ProbabilityBackend):
    """Flanking-marker (three-point haplotype) probabilities"""

    program = Program.MPMAP

    def compute_probabilities(self, data: ChromosomeData, grid: PositionGrid) -> np.ndarray:
        marker_pos = data.marker_positions
        emissions = marker_emissions(data.founder_alleles, data.founder_missing,
                                     data.final_alleles, data.final_missing, self.geprob)
        prior = founder_prior(self.design)
        loci = grid_loci(data, grid)
        out = np.empty((data.n_finals, len(grid), data.n_founders))

        for k, (pos, marker_index) in enumerate(zip(grid.positions, loci)):
            evidence = flanking_markers(marker_pos, pos, marker_index)
            if marker_index >= 0:
                chain_pos = marker_pos[evidence]
                chain_em = emissions[:, evidence, :]
                query = evidence.index(marker_index)
            else:
                left = [i for i in evidence if marker_pos[i] <= pos]
                right = [i for i in evidence if marker_pos[i] > pos]
                chain_pos = np.concatenate([marker_pos[left], [pos], marker_pos[right]])
                blank = np.ones((data.n_finals, 1, data.n_founders))
                chain_em = np.concatenate([emissions[:, left, :], blank, emissions[:, right, :]], axis=1)
                query = len(left)

            rf = distance_to_rf(np.diff(chain_pos), self.mapfx)
            transitions = np.ascontiguousarray(transition_matrices(self.design, rf).reshape(
                len(rf), data.n_founders, data.n_founders))
            posterior = forward_backward(np.ascontiguousarray(chain_em), transitions, prior)
            out[:, k, :] = posterior[:, query, :]

            no_evidence = data.final_missing[:, evidence].all(axis=1)
            out[no_evidence, k, :] = np.nan
        return out
