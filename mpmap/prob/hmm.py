"""
Hidden Markov recursions over founder states along a chromosome

Kernels are compiled with Numba and operate on dense arrays:
emissions (n_individuals x n_loci x n_founders), per-interval transition
matrices ((n_loci - 1) x n_founders x n_founders) and a prior over founders.
Scaled forward/backward passes keep the recursion stable on long maps.
"""

import numba
import numpy as np


@numba.jit(nopython=True, cache=True)
def forward_backward(emissions, transitions, prior):
    """Posterior founder probabilities at every locus for every individual"""
    n_ind, n_loci, n_states = emissions.shape
    posterior = np.empty((n_ind, n_loci, n_states))
    alpha = np.empty((n_loci, n_states))
    beta = np.empty((n_loci, n_states))

    for i in range(n_ind):
        # forward
        total = 0.0
        for s in range(n_states):
            alpha[0, s] = prior[s] * emissions[i, 0, s]
            total += alpha[0, s]
        if total <= 0.0:
            total = 1.0
        for s in range(n_states):
            alpha[0, s] /= total

        for t in range(1, n_loci):
            total = 0.0
            for s in range(n_states):
                acc = 0.0
                for u in range(n_states):
                    acc += alpha[t - 1, u] * transitions[t - 1, u, s]
                alpha[t, s] = acc * emissions[i, t, s]
                total += alpha[t, s]
            if total <= 0.0:
                total = 1.0
            for s in range(n_states):
                alpha[t, s] /= total

        # backward
        for s in range(n_states):
            beta[n_loci - 1, s] = 1.0
        for t in range(n_loci - 2, -1, -1):
            total = 0.0
            for u in range(n_states):
                acc = 0.0
                for s in range(n_states):
                    acc += transitions[t, u, s] * emissions[i, t + 1, s] * beta[t + 1, s]
                beta[t, u] = acc
                total += acc
            if total <= 0.0:
                total = 1.0
            for u in range(n_states):
                beta[t, u] /= total

        for t in range(n_loci):
            total = 0.0
            for s in range(n_states):
                posterior[i, t, s] = alpha[t, s] * beta[t, s]
                total += posterior[i, t, s]
            for s in range(n_states):
                if total > 0.0:
                    posterior[i, t, s] /= total
                else:
                    posterior[i, t, s] = np.nan

    return posterior


def marker_emissions(founder_alleles: np.ndarray, founder_missing: np.ndarray,
                     final_alleles: np.ndarray, final_missing: np.ndarray,
                     geprob: float) -> np.ndarray:
    """P(observed final allele | founder) at each marker

    Args:
        founder_alleles: n_founders x n_markers allele codes
        founder_missing: n_founders x n_markers missing mask
        final_alleles: n_individuals x n_markers allele codes
        final_missing: n_individuals x n_markers missing mask
        geprob: Genotyping error probability

    Returns:
        n_individuals x n_markers x n_founders emission probabilities; a
        missing final call is uninformative (all ones) and an unknown
        founder allele is treated as compatible.
    """
    match = _match_alleles(founder_alleles, final_alleles)
    compatible = match | founder_missing.T[None, :, :]
    emissions = np.where(compatible, 1.0 - geprob, geprob)
    emissions[final_missing] = 1.0
    return emissions


def allele_identity_probabilities(founder_alleles: np.ndarray, founder_missing: np.ndarray,
                                  final_alleles: np.ndarray, final_missing: np.ndarray) -> np.ndarray:
    """Direct allele lookup used where no recombination model applies

    Each founder carrying the final line's allele gets 1 / (number of such
    founders), all others 0. Missing calls, or alleles no founder carries,
    give NaN.
    """
    match = _match_alleles(founder_alleles, final_alleles).astype(np.float64)
    match[np.broadcast_to(founder_missing.T[None, :, :], match.shape)] = 0.0
    counts = match.sum(axis=2, keepdims=True)
    with np.errstate(invalid='ignore', divide='ignore'):
        probs = match / counts
    probs[np.broadcast_to(final_missing[:, :, None], probs.shape)] = np.nan
    return probs


def _match_alleles(founder_alleles: np.ndarray, final_alleles: np.ndarray) -> np.ndarray:
    """n_individuals x n_markers x n_founders equality of allele codes"""
    founders = np.asarray(founder_alleles, dtype=object)
    finals = np.asarray(final_alleles, dtype=object)
    match = finals[:, :, None] == founders.T[None, :, :]
    return np.asarray(match, dtype=bool)
