"""Shared synthetic multi-parent crosses for the test suite."""

from typing import List, Optional

import numpy as np
import pandas as pd
import pytest

from mpmap.utils.data_types import MPCross, GenotypeMatrix, GeneticMap, Pedigree, MISSING_ALLELE


def funnel_pedigree(n_founders: int, n_finals: int, selfing: int = 2, aic: int = 0) -> pd.DataFrame:
    """Founder funnel, optional intercrossing generations, then selfing per line"""
    founders = [f"P{k}" for k in range(1, n_founders + 1)]
    rows = [(f, "0", "0") for f in founders]

    level = founders
    while len(level) > 2:
        nxt = []
        for i in range(0, len(level), 2):
            child = f"{level[i]}x{level[i + 1]}"
            rows.append((child, level[i], level[i + 1]))
            nxt.append(child)
        level = nxt

    pool = []
    for line in range(1, n_finals + 1):
        ind = f"L{line}"
        rows.append((ind, level[0], level[1]))
        pool.append(ind)

    for g in range(1, aic + 1):
        nxt = []
        for i in range(n_finals):
            ind = f"L{i + 1}A{g}"
            rows.append((ind, pool[i], pool[(i + 1) % n_finals]))
            nxt.append(ind)
        pool = nxt

    finals = []
    for base in pool:
        current = base
        for s in range(1, selfing + 1):
            child = f"{base}S{s}"
            rows.append((child, current, current))
            current = child
        finals.append(current)

    ped = pd.DataFrame(rows, columns=["ID", "Mother", "Father"])
    ped["Observed"] = ped["ID"].isin(finals).astype(int)
    return ped


def simulate_cross(n_founders: int = 4,
                   n_finals: int = 12,
                   chromosomes: Optional[List[str]] = None,
                   n_markers: int = 11,
                   length: float = 100.0,
                   informative: bool = False,
                   missing_rate: float = 0.0,
                   selfing: int = 2,
                   aic: int = 0,
                   seed: int = 1,
                   with_ibd: bool = False) -> MPCross:
    """Random founder mosaics along an evenly spaced map

    With ``informative`` every founder carries its own allele (founder k has
    allele k); otherwise founder alleles are random 0/1 codes.
    """
    rng = np.random.default_rng(seed)
    chromosomes = chromosomes or ["1", "2"]
    ped = funnel_pedigree(n_founders, n_finals, selfing=selfing, aic=aic)
    final_ids = list(ped.loc[ped["Observed"] == 1, "ID"])
    founder_ids = [f"P{k}" for k in range(1, n_founders + 1)]

    map_rows = []
    for chrom in chromosomes:
        for j, pos in enumerate(np.linspace(0.0, length, n_markers)):
            map_rows.append((f"c{chrom}m{j + 1}", chrom, float(pos)))
    map_df = pd.DataFrame(map_rows, columns=["SNP", "CHROM", "POS"])
    markers = list(map_df["SNP"])

    if informative:
        founder_alleles = np.repeat(np.arange(1, n_founders + 1)[:, None], len(markers), axis=1)
    else:
        founder_alleles = rng.integers(0, 2, size=(n_founders, len(markers)))

    origins = np.empty((n_finals, len(markers)), dtype=int)
    for chrom in chromosomes:
        idx = np.flatnonzero(map_df["CHROM"].to_numpy() == chrom)
        pos = map_df["POS"].to_numpy()[idx]
        for i in range(n_finals):
            current = rng.integers(0, n_founders)
            origins[i, idx[0]] = current
            for k in range(1, len(idx)):
                r = 0.5 * (1.0 - np.exp(-2.0 * (pos[k] - pos[k - 1]) / 100.0))
                if rng.random() < 2.0 * r:
                    current = rng.integers(0, n_founders)
                origins[i, idx[k]] = current

    final_alleles = founder_alleles[origins, np.arange(len(markers))[None, :]]
    if missing_rate > 0:
        final_alleles = np.where(rng.random(final_alleles.shape) < missing_rate, MISSING_ALLELE, final_alleles)

    founders = GenotypeMatrix(founder_alleles, ids=founder_ids, markers=markers)
    finals = GenotypeMatrix(final_alleles, ids=final_ids, markers=markers)
    ibd = GenotypeMatrix(origins + 1, ids=final_ids, markers=markers) if with_ibd else None
    return MPCross(founders, finals, Pedigree(ped), GeneticMap(map_df), ibd=ibd)


@pytest.fixture
def cross4() -> MPCross:
    return simulate_cross(n_founders=4, seed=11)


@pytest.fixture
def informative_cross4() -> MPCross:
    return simulate_cross(n_founders=4, informative=True, with_ibd=True, seed=5)


@pytest.fixture
def cross8() -> MPCross:
    return simulate_cross(n_founders=8, n_finals=10, seed=7)


def assert_blocks_sum_to_one(values: np.ndarray, atol: float = 1e-8) -> None:
    """Every founder block (last axis) sums to 1 or is entirely NaN"""
    nan_any = np.isnan(values).any(axis=-1)
    nan_all = np.isnan(values).all(axis=-1)
    assert np.array_equal(nan_any, nan_all)
    sums = np.nansum(values, axis=-1)
    np.testing.assert_allclose(sums[~nan_all], 1.0, atol=atol)


def write_cross_csvs(cross: MPCross, directory, with_ibd: bool = False) -> dict:
    """Write founder, final, map and pedigree CSVs for file-based tests"""
    paths = {
        'founder_file': directory / "founders.csv",
        'final_file': directory / "finals.csv",
        'map_file': directory / "map.csv",
        'pedigree_file': directory / "pedigree.csv",
    }
    cross.founders.to_dataframe().to_csv(paths['founder_file'], index_label='ID')
    cross.finals.to_dataframe().to_csv(paths['final_file'], index_label='ID')
    cross.map.to_dataframe().to_csv(paths['map_file'], index=False)
    cross.pedigree.to_dataframe().to_csv(paths['pedigree_file'], index=False)
    if with_ibd:
        paths['ibd_file'] = directory / "ibd.csv"
        cross.ibd.to_dataframe().to_csv(paths['ibd_file'], index_label='ID')
    return paths


@pytest.fixture
def cross_files(tmp_path, informative_cross4) -> dict:
    return write_cross_csvs(informative_cross4, tmp_path, with_ibd=True)
