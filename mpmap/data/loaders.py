"""
Data loading utilities for multi-parent cross files
"""

import warnings
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd

from ..utils.data_types import GenotypeMatrix, GeneticMap, Pedigree, MPCross, MISSING_ALLELE

NA_VALUES = [
    '', 'NA', 'NaN', 'nan', 'NAN', 'na', 'N/A', 'n/a', 'Null', 'NULL', '.', '-', '--'
]


def detect_file_format(filepath: Union[str, Path]) -> str:
    """Detect delimited file format from the extension ('csv', 'tsv' or 'unknown')"""
    filepath = Path(filepath)
    suffix = filepath.suffix.lower()
    if suffix == '.gz':
        suffix = Path(filepath.stem).suffix.lower()
    if suffix in ['.tsv', '.txt']:
        return 'tsv'
    if suffix == '.csv':
        return 'csv'
    return 'unknown'


def _read_table(filepath: Union[str, Path], **kwargs) -> pd.DataFrame:
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")
    file_format = detect_file_format(filepath)
    read_kwargs = dict(na_values=NA_VALUES, keep_default_na=True)
    read_kwargs.update(kwargs)
    if file_format == 'csv':
        return pd.read_csv(filepath, **read_kwargs)
    if file_format == 'tsv':
        return pd.read_csv(filepath, sep='\t', **read_kwargs)
    # sniff the delimiter
    return pd.read_csv(filepath, sep=None, engine='python', **read_kwargs)


def load_genotype_table(filepath: Union[str, Path],
                        id_column: Optional[str] = None,
                        missing_value: Any = MISSING_ALLELE) -> GenotypeMatrix:
    """Load a founder or final genotype table

    Rows are individuals, columns are markers. The ID column is ``id_column``
    when given, otherwise 'ID' if present, otherwise the first column.

    Args:
        filepath: Path to CSV/TSV file
        id_column: Name of ID column
        missing_value: Allele code used for missing calls (NaN is always missing)

    Returns:
        GenotypeMatrix
    """
    df = _read_table(filepath)
    if id_column is None:
        id_column = 'ID' if 'ID' in df.columns else df.columns[0]
    elif id_column not in df.columns:
        raise ValueError(f"ID column '{id_column}' not found in {filepath}")

    ids = df[id_column].astype(str)
    genotypes = df.drop(columns=[id_column])
    genotypes.index = ids.to_numpy()
    if genotypes.shape[1] == 0:
        raise ValueError(f"No marker columns found in {filepath}")
    return GenotypeMatrix(genotypes, missing_value=missing_value)


def load_map_file(filepath: Union[str, Path]) -> GeneticMap:
    """Load a genetic map file with marker, chromosome and cM position columns

    Args:
        filepath: Path to map file

    Returns:
        GeneticMap object
    """
    df = _read_table(filepath)

    # Standardize column names
    col_mapping = {
        'Chr': 'CHROM', 'chr': 'CHROM', 'chromosome': 'CHROM', 'Chromosome': 'CHROM',
        'Pos': 'POS', 'pos': 'POS', 'position': 'POS', 'cM': 'POS', 'cm': 'POS',
        'snp': 'SNP', 'marker': 'SNP', 'Marker': 'SNP'
    }
    for old_name, new_name in col_mapping.items():
        if old_name in df.columns and new_name not in df.columns:
            df = df.rename(columns={old_name: new_name})

    if 'CHROM' in df.columns:
        df['CHROM'] = df['CHROM'].astype(str)
    return GeneticMap(df)


def load_pedigree_file(filepath: Union[str, Path], observed_ids=None) -> Pedigree:
    """Load a pedigree with ID, Mother and Father columns (Design/Observed optional)"""
    df = _read_table(filepath, dtype=str)
    if 'Observed' in df.columns:
        df['Observed'] = pd.to_numeric(df['Observed'], errors='coerce').fillna(0).astype(int)
    return Pedigree(df, observed_ids=observed_ids)


def load_cross(founders: Union[str, Path],
               finals: Union[str, Path],
               map_file: Union[str, Path],
               pedigree: Union[str, Path],
               ibd: Optional[Union[str, Path]] = None,
               missing_value: Any = MISSING_ALLELE,
               verbose: bool = True) -> MPCross:
    """Load all cross components and build an MPCross

    Markers present in the genotype tables but absent from the map are
    dropped with a warning.
    """
    founder_geno = load_genotype_table(founders, missing_value=missing_value)
    final_geno = load_genotype_table(finals, missing_value=missing_value)
    genetic_map = load_map_file(map_file)
    ped = load_pedigree_file(pedigree, observed_ids=final_geno.ids)

    mapped = set(genetic_map.all_markers())
    unmapped = [m for m in founder_geno.markers if m not in mapped]
    if unmapped:
        warnings.warn(f"Dropping {len(unmapped)} genotyped markers that are not on the map")
        keep = [m for m in founder_geno.markers if m in mapped]
        founder_geno = founder_geno.subset_markers(keep)
        final_geno = final_geno.subset_markers([m for m in keep if m in set(final_geno.markers)])

    ibd_geno = None
    if ibd is not None:
        ibd_geno = load_genotype_table(ibd, missing_value=missing_value)
        if unmapped:
            ibd_geno = ibd_geno.subset_markers([m for m in final_geno.markers if m in set(ibd_geno.markers)])

    if verbose:
        print(f"Loaded {founder_geno.n_individuals} founders, {final_geno.n_individuals} final lines, "
              f"{genetic_map.n_markers} markers on {len(genetic_map)} chromosomes")
    return MPCross(founder_geno, final_geno, ped, genetic_map, ibd=ibd_geno)
