"""
File I/O utilities: intermediate cross files and result serialisation
"""

import json
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import h5py
import numpy as np
import pandas as pd

from ..utils.data_types import MPCross, MPProbResult

MISSING_TOKEN = "NA"


def _format_allele(value: Any) -> str:
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def _allele_tokens(alleles: np.ndarray, missing: np.ndarray) -> np.ndarray:
    tokens = np.empty(alleles.shape, dtype=object)
    for idx in np.ndindex(alleles.shape):
        tokens[idx] = MISSING_TOKEN if missing[idx] else _format_allele(alleles[idx])
    return tokens


def _chromosome_markers(cross: MPCross, chromosomes: Optional[Iterable[str]] = None
                        ) -> Tuple[List[str], List[str], np.ndarray]:
    chroms = cross.map.chromosomes if chromosomes is None else [str(c) for c in chromosomes]
    markers: List[str] = []
    chrom_of: List[str] = []
    positions: List[float] = []
    for chrom in chroms:
        series = cross.map[chrom]
        markers.extend(series.index)
        chrom_of.extend([chrom] * len(series))
        positions.extend(series.to_numpy(dtype=np.float64))
    return markers, chrom_of, np.asarray(positions, dtype=np.float64)


def write_cross_files(cross: MPCross, filestem: Union[str, Path],
                      chromosomes: Optional[Iterable[str]] = None) -> Tuple[Path, Path]:
    """Write founder and RIL tables in the multi-way RIL CSV layout

    ``<filestem>_founder.csv`` has one row per marker (marker, chromosome,
    position, then one column per founder). ``<filestem>_ril.csv`` has a
    marker header row followed by chromosome and position rows, then one
    row per final line. Missing calls are written as NA.

    Returns:
        Paths to the founder and RIL files
    """
    filestem = Path(filestem)
    markers, chrom_of, positions = _chromosome_markers(cross, chromosomes)

    founder_tokens = _allele_tokens(cross.founders.to_numpy(markers), cross.founders.missing_mask(markers))
    founder_df = pd.DataFrame(founder_tokens.T, columns=cross.founders.ids)
    founder_df.insert(0, 'pos', positions)
    founder_df.insert(0, 'chr', chrom_of)
    founder_df.insert(0, 'marker', markers)
    founder_file = Path(f"{filestem}_founder.csv")
    founder_df.to_csv(founder_file, index=False)

    final_tokens = _allele_tokens(cross.finals.to_numpy(markers), cross.finals.missing_mask(markers))
    header_rows = pd.DataFrame(
        [chrom_of, [_format_allele(p) for p in positions]],
        index=['', ''],
        columns=markers,
    )
    body = pd.DataFrame(final_tokens, index=cross.finals.ids, columns=markers)
    ril_df = pd.concat([header_rows, body])
    ril_df.index.name = 'id'
    ril_file = Path(f"{filestem}_ril.csv")
    ril_df.to_csv(ril_file)
    return founder_file, ril_file


def write_happy_tables(filestem: Union[str, Path],
                       founder_ids: Sequence[str],
                       final_ids: Sequence[str],
                       marker_map: pd.Series,
                       chromosome: Union[str, Sequence[str]],
                       founder_alleles: np.ndarray,
                       founder_missing: np.ndarray,
                       final_alleles: np.ndarray,
                       final_missing: np.ndarray) -> Tuple[Path, Path]:
    """Write haplotype reconstruction input files from allele arrays

    ``<filestem>.data``: one line per final line with the ID, a phenotype
    placeholder and one (haploid) allele per marker.

    ``<filestem>.alleles``: a ``markers M strains N`` header, the founder
    names, then for each marker a ``marker`` line followed by one ``allele``
    line per allele giving the probability that each founder carries it.
    Founders with a missing call spread evenly over all alleles; the NA
    allele line is uniform.

    Args:
        chromosome: One chromosome name, or one per marker

    Returns:
        Paths to the data and alleles files
    """
    filestem = Path(filestem)
    markers = [str(m) for m in marker_map.index]
    positions = marker_map.to_numpy(dtype=np.float64)
    if isinstance(chromosome, str):
        chromosome = [chromosome] * len(markers)
    n_founders = len(founder_ids)

    final_tokens = _allele_tokens(final_alleles, final_missing)
    data_file = Path(f"{filestem}.data")
    with open(data_file, 'w') as f:
        for ind, row in zip(final_ids, final_tokens):
            f.write(" ".join([str(ind), MISSING_TOKEN] + list(row)) + "\n")

    founder_tokens = _allele_tokens(founder_alleles, founder_missing)
    alleles_file = Path(f"{filestem}.alleles")
    with open(alleles_file, 'w') as f:
        f.write(f"markers {len(markers)} strains {n_founders}\n")
        f.write("strain_names " + " ".join(str(x) for x in founder_ids) + "\n")
        for j, marker in enumerate(markers):
            column = founder_tokens[:, j]
            alleles = sorted({a for a in column if a != MISSING_TOKEN})
            f.write(f"marker {marker} {len(alleles) + 1} {chromosome[j]} {_format_allele(positions[j])}\n")
            f.write("allele NA " + " ".join([f"{1.0 / n_founders:.6g}"] * n_founders) + "\n")
            for allele in alleles:
                probs = []
                for token in column:
                    if token == MISSING_TOKEN:
                        probs.append(1.0 / len(alleles))
                    else:
                        probs.append(1.0 if token == allele else 0.0)
                f.write(f"allele {allele} " + " ".join(f"{p:.6g}" for p in probs) + "\n")
    return data_file, alleles_file


def write_happy_files(cross: MPCross, filestem: Union[str, Path],
                      chromosomes: Optional[Iterable[str]] = None) -> Tuple[Path, Path]:
    """Write ``.data`` and ``.alleles`` files for a whole cross"""
    markers, chrom_of, positions = _chromosome_markers(cross, chromosomes)
    marker_map = pd.Series(positions, index=markers)
    return write_happy_tables(
        filestem,
        founder_ids=cross.founders.ids,
        final_ids=cross.finals.ids,
        marker_map=marker_map,
        chromosome=chrom_of,
        founder_alleles=cross.founders.to_numpy(markers),
        founder_missing=cross.founders.missing_mask(markers),
        final_alleles=cross.finals.to_numpy(markers),
        final_missing=cross.finals.missing_mask(markers),
    )


def result_metadata(result: MPProbResult) -> Dict[str, Any]:
    return {
        'program': result.program,
        'step': result.step,
        'mapfx': result.mapfx,
        'mrkpos': result.mrkpos,
        'threshold': result.threshold,
        'founders': list(result.cross.founders.ids),
        'n_finals': result.cross.n_finals,
        'chromosomes': result.chromosomes,
    }


def save_mpprob_results(result: MPProbResult, output_dir: Union[str, Path],
                        prefix: str = "") -> Dict[str, Any]:
    """Write per-chromosome probability and founder call CSVs plus metadata

    Files: ``<prefix><chr>.prob.csv``, ``<prefix><chr>.founders.csv`` (when
    founders were called), ``<prefix><chr>.positions.csv`` and
    ``<prefix>mpprob_metadata.json``.

    Returns:
        Dict mapping 'prob', 'founders', 'positions' to {chr: path} and
        'metadata' to the metadata path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    written: Dict[str, Any] = {'prob': OrderedDict(), 'founders': OrderedDict(), 'positions': OrderedDict()}
    for chrom, matrix in result.prob.items():
        prob_file = output_dir / f"{prefix}{chrom}.prob.csv"
        matrix.to_dataframe().to_csv(prob_file, index_label='ID')
        written['prob'][chrom] = prob_file

        pos_file = output_dir / f"{prefix}{chrom}.positions.csv"
        pd.DataFrame({
            'position': matrix.grid.names,
            'cM': matrix.grid.positions,
            'type': matrix.grid.kinds,
        }).to_csv(pos_file, index=False)
        written['positions'][chrom] = pos_file

        if chrom in result.estfnd:
            calls_file = output_dir / f"{prefix}{chrom}.founders.csv"
            result.estfnd[chrom].to_dataframe().to_csv(calls_file, index_label='ID', na_rep=MISSING_TOKEN)
            written['founders'][chrom] = calls_file

    meta_file = output_dir / f"{prefix}mpprob_metadata.json"
    with open(meta_file, 'w') as f:
        json.dump(result_metadata(result), f, indent=2)
    written['metadata'] = meta_file
    return written


def _create_dataset(group, name: str, data: np.ndarray):
    if data.size:
        return group.create_dataset(name, data=data, compression='gzip', chunks=True)
    return group.create_dataset(name, data=data)


def save_mpprob_hdf5(result: MPProbResult, path: Union[str, Path]) -> Path:
    """Write probabilities and founder calls to HDF5, one group per chromosome

    Founder calls are stored as int16 with 0 for no call.
    """
    path = Path(path)
    str_dtype = h5py.string_dtype()
    with h5py.File(path, 'w') as f:
        for key, value in result_metadata(result).items():
            if value is None:
                continue
            if isinstance(value, list):
                f.attrs.create(key, data=[str(v) for v in value], dtype=str_dtype)
            else:
                f.attrs[key] = value
        for chrom, matrix in result.prob.items():
            grp = f.create_group(chrom)
            _create_dataset(grp, 'prob', matrix.to_array())
            grp.create_dataset('ids', data=np.array(list(matrix.data.index), dtype=object), dtype=str_dtype)
            grp.create_dataset('positions', data=matrix.grid.positions)
            grp.create_dataset('position_names', data=np.array(matrix.grid.names, dtype=object), dtype=str_dtype)
            grp.create_dataset('position_types', data=np.array(matrix.grid.kinds, dtype=object), dtype=str_dtype)
            if chrom in result.estfnd:
                calls = result.estfnd[chrom].data.fillna(0).to_numpy(dtype=np.int16)
                _create_dataset(grp, 'calls', calls)
    return path


def load_mpprob_hdf5(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """Read back arrays written by save_mpprob_hdf5"""
    out: Dict[str, Dict[str, Any]] = OrderedDict()
    with h5py.File(path, 'r') as f:
        for chrom in f.attrs['chromosomes']:
            chrom = chrom.decode() if isinstance(chrom, bytes) else str(chrom)
            grp = f[chrom]
            entry = {
                'prob': grp['prob'][()],
                'ids': [s.decode() if isinstance(s, bytes) else str(s) for s in grp['ids'][()]],
                'positions': grp['positions'][()],
                'position_names': [s.decode() if isinstance(s, bytes) else str(s)
                                   for s in grp['position_names'][()]],
            }
            if 'calls' in grp:
                entry['calls'] = grp['calls'][()]
            out[chrom] = entry
    return out
