import numpy as np
import pandas as pd
import pytest

from mpmap.utils.data_types import (
    FounderBlockIndex,
    GeneticMap,
    GenotypeMatrix,
    MPCross,
    Pedigree,
)
from mpmap.utils.errors import InputConsistencyError

from conftest import simulate_cross


def test_genetic_map_from_dataframe_and_mapping() -> None:
    df = pd.DataFrame({'SNP': ['a', 'b', 'c'], 'CHROM': [1, 1, 2], 'POS': [0.0, 5.0, 1.0]})
    gmap = GeneticMap(df)
    assert gmap.chromosomes == ['1', '2']
    assert gmap.markers('1') == ['a', 'b']
    assert gmap.n_markers == 3
    assert '2' in gmap and 2 in gmap

    same = GeneticMap({'1': {'a': 0.0, 'b': 5.0}, '2': {'c': 1.0}})
    pd.testing.assert_frame_equal(same.to_dataframe(), gmap.to_dataframe(), check_dtype=False)
    assert gmap.subset(['2']).chromosomes == ['2']


@pytest.mark.parametrize("df", [
    pd.DataFrame({'SNP': ['a', 'b'], 'CHROM': [1, 1], 'POS': [5.0, 0.0]}),
    pd.DataFrame({'SNP': ['a', 'a'], 'CHROM': [1, 1], 'POS': [0.0, 1.0]}),
    pd.DataFrame({'SNP': ['a', 'b'], 'CHROM': [1, 1], 'POS': [0.0, np.nan]}),
    pd.DataFrame({'SNP': ['a'], 'CHROM': [1]}),
])
def test_genetic_map_validation(df) -> None:
    with pytest.raises(InputConsistencyError):
        GeneticMap(df)


def test_genetic_map_unknown_chromosome() -> None:
    gmap = GeneticMap({'1': {'a': 0.0}})
    with pytest.raises(InputConsistencyError):
        gmap['9']


def test_genotype_matrix_missing_mask() -> None:
    geno = GenotypeMatrix(np.array([[1.0, -9.0], [np.nan, 2.0]]), ids=[1, 2], markers=['m1', 'm2'])
    assert geno.ids == ['1', '2']
    np.testing.assert_array_equal(geno.missing_mask(), [[False, True], [True, False]])
    mask = geno.missing_mask(['m2'])
    mask[0, 0] = False
    # returned mask is a private copy
    assert geno.missing_mask(['m2'])[0, 0]

    with pytest.raises(InputConsistencyError):
        GenotypeMatrix(np.zeros((2, 2)), ids=['a', 'a'])


def test_pedigree_defaults_and_validation() -> None:
    ped = Pedigree(pd.DataFrame({
        'ID': ['A', 'B', 'C'],
        'Female': ['0', '0', 'A'],
        'Male': [np.nan, '0', 'B'],
    }))
    assert ped.founder_ids == ['A', 'B']
    assert list(ped.observed) == [False, False, True]
    assert ped.parents()['C'] == ('A', 'B')

    with pytest.raises(InputConsistencyError, match="not listed"):
        Pedigree(pd.DataFrame({'ID': ['C'], 'Mother': ['A'], 'Father': ['B']}))
    with pytest.raises(InputConsistencyError):
        Pedigree(pd.DataFrame({'ID': ['A'], 'Mother': ['0']}))


def test_cross_validation() -> None:
    cross = simulate_cross(seed=1)
    with pytest.raises(InputConsistencyError, match="4 or 8 founders"):
        MPCross(cross.founders.to_dataframe().iloc[:3], cross.finals, cross.pedigree, cross.map)

    finals = cross.finals.to_dataframe().drop(columns=['c1m1'])
    with pytest.raises(InputConsistencyError, match="different marker columns"):
        MPCross(cross.founders, finals, cross.pedigree, cross.map)

    extra = cross.map.to_dataframe()
    extra.loc[len(extra)] = ['ghost', '2', 200.0]
    with pytest.raises(InputConsistencyError, match="absent"):
        MPCross(cross.founders, cross.finals, cross.pedigree, GeneticMap(extra))

    with pytest.raises(InputConsistencyError, match="IBD"):
        MPCross(cross.founders, cross.finals, cross.pedigree, cross.map,
                ibd=cross.finals.to_dataframe().iloc[:2])


def test_founder_block_index() -> None:
    index = FounderBlockIndex(n_positions=3, n_founders=4)
    assert index.n_columns == 12
    assert index.column(2, 1) == 9
    assert index.position_of(9) == (2, 1)
    assert index.block(1) == slice(4, 8)
    np.testing.assert_array_equal(index.columns_for([0, 2]), [0, 1, 2, 3, 8, 9, 10, 11])
    with pytest.raises(IndexError):
        index.column(3, 0)


def test_cross_requires_finals_and_founders_in_pedigree() -> None:
    cross = simulate_cross(seed=1)
    renamed = cross.finals.to_dataframe()
    renamed.index = [f"X{i}" for i in range(len(renamed))]
    with pytest.raises(InputConsistencyError, match="not in the pedigree"):
        MPCross(cross.founders, renamed, cross.pedigree, cross.map)

    founders = cross.founders.to_dataframe()
    founders.index = ['P1', 'P2', 'P3', 'L1']
    with pytest.raises(InputConsistencyError, match="pedigree founders"):
        MPCross(founders, cross.finals, cross.pedigree, cross.map)


def test_cross_aligns_ibd_rows_and_columns_to_finals() -> None:
    cross = simulate_cross(seed=5, with_ibd=True)
    shuffled = cross.ibd.to_dataframe().iloc[::-1, ::-1]
    aligned = MPCross(cross.founders, cross.finals, cross.pedigree, cross.map, ibd=shuffled)

    assert aligned.ibd.ids == cross.finals.ids
    assert aligned.ibd.markers == cross.finals.markers
    np.testing.assert_array_equal(aligned.ibd.to_numpy(), cross.ibd.to_numpy())

    renamed = cross.ibd.to_dataframe()
    renamed.index = [f"X{i}" for i in range(len(renamed))]
    with pytest.raises(InputConsistencyError, match="same lines"):
        MPCross(cross.founders, cross.finals, cross.pedigree, cross.map, ibd=renamed)

    with pytest.raises(InputConsistencyError, match="absent from the IBD"):
        MPCross(cross.founders, cross.finals, cross.pedigree, cross.map,
                ibd=cross.ibd.to_dataframe().drop(columns=['c2m4']))
