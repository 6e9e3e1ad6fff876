"""
Founder probability computation: grids, backends, normalization and calling
"""

from .mpprob import MPMAP_Prob
from .founders import MPMAP_CallFounders

__all__ = ['MPMAP_Prob', 'MPMAP_CallFounders']
