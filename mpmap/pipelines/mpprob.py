"""
Founder Probability Pipeline Module

File-to-file workflow around MPMAP_Prob: load the cross, resolve the
breeding design, compute founder probabilities and calls, and write the
per-chromosome tables.
"""

import time
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from ..data.io_utils import save_mpprob_results, save_mpprob_hdf5
from ..data.loaders import load_cross
from ..pedigree.design import MPMAP_IdentifyDesign, remove_selfing
from ..prob.backends import Program
from ..prob.founders import check_threshold
from ..prob.mpprob import MPMAP_Prob
from ..utils.data_types import MPCross, MPProbResult
from ..utils.errors import ConfigurationError
from ..utils.map_functions import MapFunction


@dataclass
class MPProbConfig:
    """Options for one MPMAP_Prob run"""

    chr: Optional[List[Union[str, int]]] = None
    step: float = 0
    mrkpos: bool = True
    mapfx: str = "haldane"
    ibd: bool = False
    threshold: float = 0.7
    program: str = "qtl"
    tempfiledirectory: Optional[str] = None
    generations: int = 5
    est: bool = True
    geprob: float = 1e-4
    cpu: int = 1
    timeout: Optional[float] = None
    verbose: bool = True
    happy_command: Optional[str] = None

    def validate(self) -> "MPProbConfig":
        """Check option values; raises ConfigurationError on the first bad one"""
        Program.parse(self.program)
        MapFunction.parse(self.mapfx)
        if self.est:
            check_threshold(self.threshold)
        if not 0.0 <= self.geprob < 1.0:
            raise ConfigurationError(f"geprob must be in [0, 1), got {self.geprob}")
        if int(self.generations) < 1:
            raise ConfigurationError(f"generations must be at least 1, got {self.generations}")
        if self.cpu < 0:
            raise ConfigurationError(f"cpu must be >= 0, got {self.cpu}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        if self.ibd and Program.parse(self.program) is Program.HAPPY:
            raise ConfigurationError("IBD probabilities are not supported with program 'happy'")
        return self

    def to_kwargs(self) -> Dict[str, Any]:
        return asdict(self)


class MPProbPipeline:
    """
    Founder probability pipeline for multi-parent RIL populations.

    Example:
        >>> pipeline = MPProbPipeline(output_dir='./mpprob_results')
        >>> pipeline.load_data('founders.csv', 'finals.csv', 'map.csv', 'pedigree.csv')
        >>> pipeline.run_analysis(MPProbConfig(step=5, program='qtl'))
        >>> pipeline.save_results()
    """

    def __init__(self, output_dir: str = "./MPProb_results"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.cross: Optional[MPCross] = None
        self.config: Optional[MPProbConfig] = None
        self.result: Optional[MPProbResult] = None

    def log(self, message: str):
        """Internal logger"""
        print(message)

    def log_step(self, step_name: str, start_time: Optional[float] = None):
        """Log a pipeline step with optional timing"""
        if start_time is not None:
            elapsed = time.time() - start_time
            self.log(f"{step_name} completed in {elapsed:.2f} seconds")
        else:
            self.log(f"{step_name}...")

    def load_data(self,
                  founder_file: str,
                  final_file: str,
                  map_file: str,
                  pedigree_file: str,
                  ibd_file: Optional[str] = None,
                  missing_value: Any = -9):
        """Load founder and final genotypes, genetic map and pedigree

        Raises:
            ValueError: If the files cannot be loaded or do not agree
        """
        step_start = time.time()
        self.log_step("Step 1: Loading and validating input data")
        try:
            self.cross = load_cross(founder_file, final_file, map_file, pedigree_file,
                                    ibd=ibd_file, missing_value=missing_value, verbose=False)
        except (OSError, ValueError) as e:
            raise ValueError(f"Error loading cross files: {e}") from e

        self.log(f"   Founders: {self.cross.n_founders} ({', '.join(self.cross.founders.ids)})")
        self.log(f"   Final lines: {self.cross.n_finals}")
        self.log(f"   Map: {self.cross.map.n_markers} markers on {len(self.cross.map)} chromosomes")
        self.log_step("Data loading", step_start)

    def identify_design(self) -> pd.Series:
        """Design label counts among observed lines"""
        if self.cross is None:
            raise ValueError("Data must be loaded before identifying the design")
        step_start = time.time()
        self.log_step("Step 2: Identifying breeding design")

        pedigree = self.cross.pedigree
        if pedigree.has_design:
            labels = pedigree.data['Design']
            self.log("   Using Design column from pedigree")
        else:
            labels = pd.Series(MPMAP_IdentifyDesign(pedigree), index=pedigree.data.index)
        counts = labels[pedigree.observed].map(remove_selfing).value_counts()
        for label, n in counts.items():
            self.log(f"   {label}: {n} observed lines")
        self.log_step("Design identification", step_start)
        return counts

    def run_analysis(self, config: Optional[MPProbConfig] = None) -> MPProbResult:
        """Compute founder probabilities (and calls) for the loaded cross"""
        if self.cross is None:
            raise ValueError("Data must be loaded before running the analysis")
        self.config = (config or MPProbConfig()).validate()

        step_start = time.time()
        self.log_step(f"Step 3: Computing founder probabilities ({self.config.program})")
        self.result = MPMAP_Prob(self.cross, **self.config.to_kwargs())

        for chrom, matrix in self.result.prob.items():
            n_undefined = int(matrix.undefined_mask().to_numpy().sum())
            msg = f"   Chr {chrom}: {len(matrix.grid)} positions"
            if n_undefined:
                msg += f", {n_undefined} undefined individual-positions"
            if chrom in self.result.estfnd:
                msg += f", call rate {self.result.estfnd[chrom].call_rate():.3f}"
            self.log(msg)
        self.log_step("Founder probabilities", step_start)
        return self.result

    def save_results(self, hdf5: bool = False, prefix: str = "") -> Dict[str, Any]:
        """Write probability/call tables, metadata and the founder summary"""
        if self.result is None:
            raise ValueError("No results to save; run the analysis first")
        step_start = time.time()
        self.log_step("Step 4: Saving results")

        written = save_mpprob_results(self.result, self.output_dir, prefix=prefix)
        if self.result.estfnd:
            summary_path = self.output_dir / f"{prefix}founder_summary.csv"
            self.result.founder_summary().to_csv(summary_path, index=False)
            written['summary'] = summary_path
            self.log(f"   Saved founder summary to {summary_path}")
        if hdf5:
            written['hdf5'] = save_mpprob_hdf5(self.result, self.output_dir / f"{prefix}mpprob.h5")
            self.log(f"   Saved HDF5 results to {written['hdf5']}")

        self.log(f"   Results written to {self.output_dir}")
        self.log_step("Saving results", step_start)
        return written

    def run(self, founder_file: str, final_file: str, map_file: str, pedigree_file: str,
            config: Optional[MPProbConfig] = None, ibd_file: Optional[str] = None,
            hdf5: bool = False) -> MPProbResult:
        """Load, identify design, compute and save in one call"""
        total_start = time.time()
        self.load_data(founder_file, final_file, map_file, pedigree_file, ibd_file=ibd_file)
        config = config or MPProbConfig()
        if Program.parse(config.program).needs_design:
            self.identify_design()
        self.run_analysis(config)
        self.save_results(hdf5=hdf5)
        self.log_step("Founder probability pipeline", total_start)
        return self.result
