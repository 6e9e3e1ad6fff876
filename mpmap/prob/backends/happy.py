"""
Ancestral haplotype reconstruction without pedigree information

Founder origin is modelled as a mosaic whose switch rate is set by an
assumed number of breeding generations. Probabilities are reported at the
midpoints of marker intervals only. The reconstruction runs in process by
default; an external reconstruction program can be configured instead, in
which case flat design files are written to a scoped scratch directory.
"""

import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from .base import (ProbabilityBackend, Program, ChromosomeData,
                   multipoint_chain, chain_emissions)
from ..hmm import forward_backward, marker_emissions
from ...data.io_utils import write_happy_tables
from ...pedigree.haplotypes import happy_transition_matrices
from ...utils.data_types import PositionGrid
from ...utils.errors import ConfigurationError, BackendTimeoutError


class HappyBackend(ProbabilityBackend):
    """Interval-midpoint probabilities from a founder mosaic HMM

    Args:
        generations: Assumed number of generations of recombination
        command: Optional external reconstruction executable. It is called as
            ``command --data F.data --alleles F.alleles --generations G --output OUT``
            and must write a CSV with one row per final line and
            ``n_intervals * n_founders`` probability columns.
        tempfiledirectory: Parent directory for scratch files
        timeout: Seconds allowed for the external command
    """

    program = Program.HAPPY

    def __init__(self, generations: int = 5, command: Optional[str] = None,
                 tempfiledirectory: Optional[Union[str, Path]] = None,
                 timeout: Optional[float] = None, **kwargs):
        super().__init__(**kwargs)
        if int(generations) < 1:
            raise ConfigurationError(f"generations must be at least 1, got {generations}")
        self.generations = int(generations)
        self.command = command
        self.tempfiledirectory = tempfiledirectory
        self.timeout = timeout

    def check_available(self) -> None:
        if self.command is not None and shutil.which(self.command) is None:
            raise ConfigurationError(
                f"Haplotype reconstruction program '{self.command}' is not installed or not in the system PATH"
            )

    def effective_step(self, step: float) -> float:
        # only interval midpoints are available
        return -1

    def compute_probabilities(self, data: ChromosomeData, grid: PositionGrid) -> np.ndarray:
        if self.command is not None:
            return self._run_external(data, grid)

        positions, marker_of, grid_rows = multipoint_chain(data, grid)
        emissions = chain_emissions(
            marker_emissions(data.founder_alleles, data.founder_missing,
                             data.final_alleles, data.final_missing, self.geprob),
            marker_of,
        )
        transitions = np.ascontiguousarray(
            happy_transition_matrices(data.n_founders, np.diff(positions), self.generations)
        )
        prior = np.full(data.n_founders, 1.0 / data.n_founders)
        posterior = forward_backward(emissions, transitions, prior)
        return posterior[:, grid_rows, :]

    def _run_external(self, data: ChromosomeData, grid: PositionGrid) -> np.ndarray:
        self.check_available()
        with tempfile.TemporaryDirectory(prefix="mpmap_happy_", dir=self.tempfiledirectory) as tmp:
            filestem = Path(tmp) / "tmp"
            data_file, alleles_file = write_happy_tables(
                filestem,
                founder_ids=data.founder_ids,
                final_ids=data.final_ids,
                marker_map=data.marker_map,
                chromosome=data.chromosome,
                founder_alleles=data.founder_alleles,
                founder_missing=data.founder_missing,
                final_alleles=data.final_alleles,
                final_missing=data.final_missing,
            )
            out_file = Path(tmp) / "tmp.prob.csv"
            cmd = [self.command, "--data", str(data_file), "--alleles", str(alleles_file),
                   "--generations", str(self.generations), "--output", str(out_file)]
            try:
                subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                               check=True, timeout=self.timeout)
            except subprocess.TimeoutExpired:
                raise BackendTimeoutError(
                    f"{self.command} exceeded {self.timeout}s on chromosome {data.chromosome}"
                ) from None
            except subprocess.CalledProcessError as e:
                stderr = e.stderr.decode(errors='replace').strip() if e.stderr else ""
                raise RuntimeError(
                    f"{self.command} failed on chromosome {data.chromosome}: {stderr}"
                ) from e
            values = np.array(pd.read_csv(out_file, index_col=0), dtype=np.float64)

        expected = (data.n_finals, len(grid) * data.n_founders)
        if values.shape != expected:
            raise RuntimeError(
                f"{self.command} returned a {values.shape} table for chromosome "
                f"{data.chromosome}, expected {expected}"
            )
        return values.reshape(data.n_finals, len(grid), data.n_founders)
