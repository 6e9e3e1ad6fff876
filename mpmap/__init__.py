"""
mpMap: founder-origin probabilities for multi-parent recombinant inbred lines

Infers, for every final line and genome position, the probability of
descent from each founder of a 4- or 8-way cross, and calls the most
probable founder where the evidence is strong enough.
"""

__version__ = "0.1.0"

from .prob.mpprob import MPMAP_Prob
from .prob.founders import MPMAP_CallFounders
from .pedigree.design import MPMAP_IdentifyDesign
from .utils.data_types import MPCross, GeneticMap, GenotypeMatrix, Pedigree, MPProbResult
from .data.loaders import load_cross

__all__ = [
    'MPMAP_Prob',
    'MPMAP_CallFounders',
    'MPMAP_IdentifyDesign',
    'MPCross',
    'GeneticMap',
    'GenotypeMatrix',
    'Pedigree',
    'MPProbResult',
    'load_cross',
]
