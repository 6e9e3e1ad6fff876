"""
Exception types raised by the founder probability engine
"""


class MPMapError(Exception):
    """Base class for all mpmap errors"""


class ConfigurationError(MPMapError, RuntimeError):
    """Missing capability or an unsupported combination of options"""


class InputConsistencyError(MPMapError, ValueError):
    """Inputs that do not agree with each other (markers, map, pedigree)"""


class UnsupportedDesignError(InputConsistencyError):
    """Mixed designs among observed lines, or a design with no known cross type"""


class InternalInvariantError(MPMapError, AssertionError):
    """A computed layout failed its self-consistency check"""


class BackendTimeoutError(MPMapError, TimeoutError):
    """A probability backend exceeded its deadline"""
