"""
Pedigree design classification and two-locus haplotype models
"""

from .design import CrossDesign, MPMAP_IdentifyDesign, resolve_design

__all__ = ['CrossDesign', 'MPMAP_IdentifyDesign', 'resolve_design']
