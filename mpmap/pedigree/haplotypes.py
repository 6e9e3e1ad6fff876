"""
Two-locus founder haplotype model for multi-parent RIL designs

Haplotype distributions are tracked as n x n joint probability matrices
P[i, j] = P(founder i at locus 1, founder j at locus 2) and pushed through
the breeding steps of a design: the founder funnel, generations of random
intercrossing, and selfing to fixation. The row-normalised result is the
Markov transition matrix used by the multipoint and three-point strategies.
"""

from typing import Union

import numpy as np

from .design import CrossDesign


def _marginals(P: np.ndarray):
    """Locus-1 and locus-2 founder marginals of a (..., n, n) haplotype matrix"""
    return P.sum(axis=-1), P.sum(axis=-2)


def _recombinant(P: np.ndarray, Q: np.ndarray) -> np.ndarray:
    """Haplotypes taking locus 1 from one chromosome and locus 2 from the other"""
    p1, p2 = _marginals(P)
    q1, q2 = _marginals(Q)
    return 0.5 * (p1[..., :, None] * q2[..., None, :] + q1[..., :, None] * p2[..., None, :])


def gamete(P: np.ndarray, Q: np.ndarray, r: np.ndarray) -> np.ndarray:
    """Gamete produced by an individual carrying independent chromosomes P and Q"""
    r = np.asarray(r, dtype=np.float64)[..., None, None]
    return (1.0 - r) * 0.5 * (P + Q) + r * _recombinant(P, Q)


def fixed_by_selfing(P: np.ndarray, Q: np.ndarray, r: np.ndarray) -> np.ndarray:
    """Inbred haplotype after selfing an individual with chromosomes P and Q to fixation

    Loci stay on the same ancestral chromosome with probability 1 / (1 + 2r).
    """
    r = np.asarray(r, dtype=np.float64)[..., None, None]
    same = 1.0 / (1.0 + 2.0 * r)
    return same * 0.5 * (P + Q) + (1.0 - same) * _recombinant(P, Q)


def haplotype_probabilities(design: CrossDesign, r: Union[float, np.ndarray]) -> np.ndarray:
    """Joint two-locus founder probabilities for final lines of a design

    Args:
        design: Resolved cross design
        r: Recombination fraction(s) between the two loci

    Returns:
        Array of shape r.shape + (n, n) summing to 1 over the last two axes
    """
    r = np.asarray(r, dtype=np.float64)
    n = design.n_founders
    eye = np.eye(n)
    chromosomes = [np.broadcast_to(np.outer(eye[f], eye[f]), r.shape + (n, n)) for f in range(n)]

    # funnel: pair chromosomes until the final cross carries two
    while len(chromosomes) > 2:
        chromosomes = [
            gamete(chromosomes[i], chromosomes[i + 1], r)
            for i in range(0, len(chromosomes), 2)
        ]
    left, right = chromosomes

    # random intercrossing: both chromosomes become gametes of the previous generation
    for _ in range(design.aic_generations):
        g = gamete(left, right, r)
        left, right = g, g

    return fixed_by_selfing(left, right, r)


def transition_matrices(design: CrossDesign, r: Union[float, np.ndarray]) -> np.ndarray:
    """P(founder j at locus 2 | founder i at locus 1) for each recombination fraction"""
    joint = haplotype_probabilities(design, r)
    rows = joint.sum(axis=-1, keepdims=True)
    return joint / rows


def founder_prior(design: CrossDesign) -> np.ndarray:
    """Single-locus founder distribution of final lines (uniform for balanced funnels)"""
    return np.full(design.n_founders, 1.0 / design.n_founders)


def happy_transition_matrices(n_founders: int, distances_cm: np.ndarray, generations: int) -> np.ndarray:
    """Pedigree-free founder mosaic transitions

    The founder is kept with probability exp(-generations * d) (d in Morgans);
    otherwise a founder is drawn uniformly, as in ancestral haplotype
    reconstruction without pedigree information.
    """
    d = np.abs(np.asarray(distances_cm, dtype=np.float64)) / 100.0
    stay = np.exp(-generations * d)[:, None, None]
    eye = np.eye(n_founders)[None, :, :]
    return stay * eye + (1.0 - stay) / n_founders
