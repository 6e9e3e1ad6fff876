"""
Founder probability backends
"""

from typing import Union

from .base import (ProbabilityBackend, Program, ChromosomeData, RawProbabilities,
                   single_marker_probabilities)
from .happy import HappyBackend
from .mpmap import MPMapBackend
from .qtl import QTLBackend

BACKENDS = {
    Program.MPMAP: MPMapBackend,
    Program.QTL: QTLBackend,
    Program.HAPPY: HappyBackend,
}


def get_backend(program: Union[str, Program], **kwargs) -> ProbabilityBackend:
    """Instantiate the backend for a program name"""
    program = Program.parse(program)
    return BACKENDS[program](**kwargs)


__all__ = [
    'ProbabilityBackend',
    'Program',
    'ChromosomeData',
    'RawProbabilities',
    'single_marker_probabilities',
    'HappyBackend',
    'MPMapBackend',
    'QTLBackend',
    'BACKENDS',
    'get_backend',
]
