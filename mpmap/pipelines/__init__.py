"""
File-to-file analysis pipelines
"""

from .mpprob import MPProbPipeline, MPProbConfig

__all__ = ['MPProbPipeline', 'MPProbConfig']
