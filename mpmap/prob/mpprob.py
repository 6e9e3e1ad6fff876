"""
Founder-origin probabilities for multi-parent crosses

MPMAP_Prob runs the full chain for each requested chromosome:
position grid -> backend probabilities -> normalized matrix -> founder calls.
Chromosomes are independent and can be distributed over worker processes.
"""

import concurrent.futures
import multiprocessing
import time
import warnings
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
from joblib import Parallel, delayed
from joblib.externals.loky import get_reusable_executor
from tqdm import tqdm

from .backends import Program, ChromosomeData, RawProbabilities, get_backend
from .backends.base import ProbabilityBackend, single_marker_probabilities
from .founders import check_threshold
from .normalize import normalize_chromosome, assemble
from ..pedigree.design import resolve_design
from ..utils.data_types import MPCross, MPProbResult, GeneticMap
from ..utils.errors import ConfigurationError, BackendTimeoutError
from ..utils.map_functions import MapFunction

_TIMEOUT_ERRORS = (TimeoutError, concurrent.futures.TimeoutError, multiprocessing.TimeoutError)


def select_chromosomes(genetic_map: GeneticMap,
                       chr: Optional[Union[str, int, Sequence[Union[str, int]]]] = None,
                       verbose: bool = False) -> List[str]:
    """Resolve chromosome names or 1-based indices against the map"""
    available = genetic_map.chromosomes
    if chr is None:
        if verbose:
            print("No chromosomes specified, will default to all")
        return list(available)

    if isinstance(chr, (str, int, np.integer)):
        chr = [chr]

    selected: List[str] = []
    for c in chr:
        if isinstance(c, (int, np.integer)) and not isinstance(c, bool):
            if not 1 <= int(c) <= len(available):
                raise ConfigurationError(
                    f"Chromosome index {c} out of range (map has {len(available)} chromosomes)"
                )
            name = available[int(c) - 1]
        else:
            name = str(c)
            if name not in genetic_map:
                raise ConfigurationError(f"Chromosome {name} not found in map")
        if name not in selected:
            selected.append(name)

    skipped = [c for c in available if c not in selected]
    if skipped and verbose:
        print(f"Skipping {len(skipped)} chromosome(s) not requested: {', '.join(skipped)}")
    return selected


def chromosome_data(cross: MPCross, chrom: str, ibd: bool = False) -> ChromosomeData:
    """Slice the cross down to one chromosome's markers

    In IBD mode the founder-index matrix replaces observed genotypes and
    founder k is coded as carrying allele k at every marker.
    """
    marker_map = cross.map[chrom]
    markers = list(marker_map.index)

    if ibd:
        n_founders = cross.n_founders
        founder_alleles = np.repeat(np.arange(1, n_founders + 1)[:, None], len(markers), axis=1)
        founder_missing = np.zeros(founder_alleles.shape, dtype=bool)
        final_alleles = cross.ibd.to_numpy(markers)
        final_missing = cross.ibd.missing_mask(markers)
    else:
        founder_alleles = cross.founders.to_numpy(markers)
        founder_missing = cross.founders.missing_mask(markers)
        final_alleles = cross.finals.to_numpy(markers)
        final_missing = cross.finals.missing_mask(markers)

    return ChromosomeData(
        chromosome=chrom,
        marker_map=marker_map,
        founder_alleles=founder_alleles,
        founder_missing=founder_missing,
        final_alleles=final_alleles,
        final_missing=final_missing,
        final_ids=cross.finals.ids,
        founder_ids=cross.founders.ids,
    )


def _compute_chromosome(backend: ProbabilityBackend, data: ChromosomeData, step: float,
                        identity: bool = False) -> RawProbabilities:
    """Worker entry point for one chromosome"""
    if identity:
        return single_marker_probabilities(data)
    return backend.compute(data, step)


def _compute_all(backend: ProbabilityBackend, tasks: List[ChromosomeData], step: float,
                 identity: bool, cpu: int, timeout: Optional[float],
                 verbose: bool) -> List[RawProbabilities]:
    n_chroms = len(tasks)
    if cpu == 0:
        cpu = multiprocessing.cpu_count()
    use_parallel = cpu > 1 and n_chroms > 1

    if use_parallel:
        if verbose:
            print(f"Using parallel processing with {min(cpu, n_chroms)} workers")
        try:
            return Parallel(n_jobs=min(cpu, n_chroms), backend='loky', timeout=timeout)(
                delayed(_compute_chromosome)(backend, data, step, identity) for data in tasks
            )
        except _TIMEOUT_ERRORS:
            raise BackendTimeoutError(
                f"Probability computation exceeded {timeout}s for a chromosome"
            ) from None

    # a deadline needs a worker process that can be killed
    executor = get_reusable_executor(max_workers=1) if timeout is not None else None

    results = []
    iterator = tqdm(tasks, desc="Chromosomes", unit="chr") if verbose and n_chroms > 1 else tasks
    for data in iterator:
        if verbose:
            print(f"Processing chromosome {data.chromosome} ({data.n_markers} markers)")
        if executor is None:
            results.append(_compute_chromosome(backend, data, step, identity))
            continue
        future = executor.submit(_compute_chromosome, backend, data, step, identity)
        try:
            results.append(future.result(timeout=timeout))
        except BackendTimeoutError:
            raise
        except _TIMEOUT_ERRORS:
            executor.shutdown(wait=False, kill_workers=True)
            raise BackendTimeoutError(
                f"Chromosome {data.chromosome} exceeded timeout of {timeout}s"
            ) from None
    return results


def MPMAP_Prob(cross: MPCross,
               chr: Optional[Union[str, int, Sequence[Union[str, int]]]] = None,
               step: float = 0,
               mrkpos: bool = True,
               mapfx: Union[str, MapFunction] = "haldane",
               ibd: bool = False,
               threshold: float = 0.7,
               program: Union[str, Program] = "qtl",
               tempfiledirectory: Optional[Union[str, Path]] = None,
               generations: int = 5,
               est: bool = True,
               geprob: float = 1e-4,
               cpu: int = 1,
               timeout: Optional[float] = None,
               verbose: bool = True,
               happy_command: Optional[str] = None) -> MPProbResult:
    """Compute founder-origin probabilities and founder calls

    Args:
        cross: Multi-parent cross (founders, finals, pedigree, map)
        chr: Chromosome names or 1-based indices (default: all)
        step: 0 for markers only, > 0 for a grid every ``step`` cM,
            < 0 for interval midpoints only
        mrkpos: Include marker positions in the output when step > 0
        mapfx: Map function ('haldane' or 'kosambi')
        ibd: Use the cross's IBD founder-index matrix instead of genotypes
        threshold: Founder calling threshold in (0, 1]
        program: 'mpMap' (flanking markers), 'qtl' (multipoint) or
            'happy' (pedigree-free haplotype reconstruction)
        tempfiledirectory: Parent directory for scratch files
        generations: Breeding generations assumed by 'happy'
        est: Call founders from the probabilities
        geprob: Genotyping error probability
        cpu: Number of worker processes over chromosomes (0 = all cores)
        timeout: Seconds allowed per chromosome
        verbose: Print progress information
        happy_command: External executable for 'happy' (computed in process when None)

    Returns:
        MPProbResult with per-chromosome probability matrices and founder calls
    """
    start_time = time.time()

    program = Program.parse(program)
    mapfx = MapFunction.parse(mapfx)
    if est:
        threshold = check_threshold(threshold)
    if cpu < 0:
        raise ConfigurationError(f"cpu must be >= 0, got {cpu}")
    if timeout is not None and timeout <= 0:
        raise ConfigurationError(f"timeout must be positive, got {timeout}")
    if ibd:
        if program is Program.HAPPY:
            raise ConfigurationError("IBD probabilities are not supported with program 'happy'")
        if cross.ibd is None:
            raise ConfigurationError("ibd=True requires an IBD founder-index matrix on the cross")

    chroms = select_chromosomes(cross.map, chr, verbose=verbose)
    single = [c for c in chroms if len(cross.map[c]) == 1]
    multi = [c for c in chroms if c not in single]

    if program is Program.HAPPY and step != -1:
        if verbose:
            print("Program happy computes at interval midpoints only; using step = -1")
        step = -1
    if step < 0:
        mrkpos = False
    elif step == 0:
        mrkpos = True
    if single and not mrkpos:
        if verbose:
            print(f"Single-marker chromosomes requested ({', '.join(single)}); including marker positions")
        mrkpos = True

    design = None
    if program.needs_design:
        cross, design = resolve_design(cross, verbose=verbose)
        if verbose:
            print(f"Design: {design.label} ({design.n_founders} founders, cross type {design.cross_type})")

    backend_kwargs = dict(mapfx=mapfx, geprob=0.0 if ibd else geprob, design=design)
    if program is Program.HAPPY:
        backend_kwargs.update(generations=generations, command=happy_command,
                              tempfiledirectory=tempfiledirectory, timeout=timeout)
    backend = get_backend(program, **backend_kwargs)
    backend.check_available()

    if verbose:
        print(f"Computing founder probabilities with program '{program.value}' "
              f"(step={step}, mapfx={mapfx.value}, {len(chroms)} chromosome(s))")

    tasks = [chromosome_data(cross, c, ibd=ibd) for c in multi + single]
    # exact founder indices need no model at markers
    identity = ibd and step == 0
    raws = _compute_all(backend, tasks, step, identity, cpu, timeout, verbose)

    matrices = {}
    for raw in raws:
        matrices[raw.chromosome] = normalize_chromosome(
            raw, cross.map[raw.chromosome], cross.finals.ids, cross.n_founders, mrkpos=mrkpos
        )
    prob = assemble(matrices, chroms, single_marker=single)

    for data in tasks:
        n_missing = int(data.fully_missing().sum())
        if n_missing:
            warnings.warn(
                f"{n_missing} line(s) have no genotype calls on chromosome {data.chromosome}; "
                f"their probabilities are undefined"
            )

    result = MPProbResult(
        cross=cross,
        prob=prob,
        step=step,
        program=program.value,
        mapfx=mapfx.value,
        mrkpos=mrkpos,
    )
    if est:
        result = result.call_founders(threshold)

    if verbose:
        print(f"Founder probabilities computed in {time.time() - start_time:.2f} seconds")
    return result
