import json

import numpy as np
import pandas as pd
import pytest

from mpmap import MPMAP_Prob
from mpmap.data.io_utils import (
    load_mpprob_hdf5,
    save_mpprob_hdf5,
    save_mpprob_results,
    write_cross_files,
    write_happy_files,
)
from mpmap.data.loaders import (
    detect_file_format,
    load_cross,
    load_genotype_table,
    load_map_file,
    load_pedigree_file,
)

from conftest import simulate_cross, write_cross_csvs


def test_detect_file_format() -> None:
    assert detect_file_format("geno.csv") == 'csv'
    assert detect_file_format("geno.tsv.gz") == 'tsv'
    assert detect_file_format("geno.txt") == 'tsv'
    assert detect_file_format("geno.dat") == 'unknown'


def test_load_cross_round_trips_csv_files(cross_files, informative_cross4) -> None:
    cross = load_cross(cross_files['founder_file'], cross_files['final_file'],
                       cross_files['map_file'], cross_files['pedigree_file'],
                       ibd=cross_files['ibd_file'], verbose=False)

    assert cross.founders.ids == informative_cross4.founders.ids
    assert cross.finals.ids == informative_cross4.finals.ids
    assert cross.map.chromosomes == ['1', '2']
    np.testing.assert_array_equal(cross.ibd.to_numpy(), informative_cross4.ibd.to_numpy())
    assert cross.pedigree.founder_ids == ['P1', 'P2', 'P3', 'P4']
    assert int(cross.pedigree.observed.sum()) == 12


def test_load_cross_drops_unmapped_markers(tmp_path) -> None:
    cross = simulate_cross(seed=4)
    paths = write_cross_csvs(cross, tmp_path)
    map_df = cross.map.to_dataframe()
    map_df[map_df['SNP'] != 'c1m3'].to_csv(paths['map_file'], index=False)

    with pytest.warns(UserWarning, match="Dropping 1"):
        loaded = load_cross(paths['founder_file'], paths['final_file'],
                            paths['map_file'], paths['pedigree_file'], verbose=False)
    assert 'c1m3' not in loaded.founders.markers
    assert loaded.finals.markers == loaded.founders.markers


def test_loaders_accept_tsv_and_alternate_column_names(tmp_path) -> None:
    geno = tmp_path / "geno.txt"
    pd.DataFrame({'line': ['a', 'b'], 'm1': [1, 'NA'], 'm2': [0, 1]}).to_csv(geno, sep='\t', index=False)
    matrix = load_genotype_table(geno)
    assert matrix.ids == ['a', 'b']
    np.testing.assert_array_equal(matrix.missing_mask(), [[False, False], [True, False]])

    map_file = tmp_path / "map.csv"
    pd.DataFrame({'marker': ['m1', 'm2'], 'Chr': [5, 5], 'cM': [0.0, 3.5]}).to_csv(map_file, index=False)
    gmap = load_map_file(map_file)
    assert gmap.chromosomes == ['5']
    assert gmap.positions('5').tolist() == [0.0, 3.5]

    with pytest.raises(FileNotFoundError):
        load_genotype_table(tmp_path / "absent.csv")
    with pytest.raises(ValueError):
        load_genotype_table(geno, id_column='nope')


def test_load_pedigree_file_observed_from_ids(tmp_path) -> None:
    ped_file = tmp_path / "ped.csv"
    pd.DataFrame({'ID': ['A', 'B', 'C', 'D'], 'Mother': [0, 0, 'A', 'C'],
                  'Father': [0, 0, 'B', 'C']}).to_csv(ped_file, index=False)
    ped = load_pedigree_file(ped_file, observed_ids=['D'])
    assert list(ped.data['Observed']) == [0, 0, 0, 1]
    assert ped.founder_ids == ['A', 'B']


def test_write_cross_files_layout(tmp_path, cross4) -> None:
    founder_file, ril_file = write_cross_files(cross4, tmp_path / "cross", chromosomes=['2'])

    founders = pd.read_csv(founder_file)
    assert list(founders.columns) == ['marker', 'chr', 'pos', 'P1', 'P2', 'P3', 'P4']
    assert len(founders) == 11
    assert founders['marker'].iloc[0] == 'c2m1'

    with open(ril_file) as f:
        lines = f.read().splitlines()
    assert lines[0].split(',')[0] == 'id'
    assert lines[1].split(',')[1] == '2'
    assert lines[2].split(',')[1:3] == ['0', '10']
    assert len(lines) == 3 + cross4.n_finals


def test_write_happy_files(tmp_path) -> None:
    cross = simulate_cross(seed=3, missing_rate=0.2, chromosomes=['1'], n_markers=4)
    data_file, alleles_file = write_happy_files(cross, tmp_path / "cross")

    rows = data_file.read_text().splitlines()
    assert len(rows) == cross.n_finals
    assert rows[0].split()[:2] == [cross.finals.ids[0], 'NA']
    assert len(rows[0].split()) == 2 + 4

    lines = alleles_file.read_text().splitlines()
    assert lines[0] == "markers 4 strains 4"
    assert lines[1] == "strain_names P1 P2 P3 P4"
    marker_line = lines[2].split()
    assert marker_line[:2] == ['marker', 'c1m1']
    assert lines[3].startswith("allele NA")
    n_alleles = int(marker_line[2]) - 1
    for line in lines[4:4 + n_alleles]:
        assert line.startswith("allele ")
    # each founder's allele probabilities sum to one
    probs = np.array([[float(x) for x in line.split()[2:]] for line in lines[4:4 + n_alleles]])
    np.testing.assert_allclose(probs.sum(axis=0), 1.0)


def test_save_mpprob_results(tmp_path, cross4) -> None:
    result = MPMAP_Prob(cross4, step=5, verbose=False)
    written = save_mpprob_results(result, tmp_path / "out", prefix="run_")

    prob = pd.read_csv(written['prob']['1'], index_col='ID')
    assert prob.shape == (12, 21 * 4)
    assert list(prob.index) == cross4.finals.ids
    np.testing.assert_allclose(prob.to_numpy(), result.prob['1'].data.to_numpy())

    positions = pd.read_csv(written['positions']['2'])
    assert list(positions.columns) == ['position', 'cM', 'type']
    assert set(positions['type']) == {'marker', 'step'}

    calls = pd.read_csv(written['founders']['1'], index_col='ID')
    assert calls.shape == (12, 21)

    meta = json.loads(written['metadata'].read_text())
    assert meta['program'] == 'qtl'
    assert meta['chromosomes'] == ['1', '2']
    assert written['metadata'].name == "run_mpprob_metadata.json"


def test_hdf5_round_trip(tmp_path, cross4) -> None:
    result = MPMAP_Prob(cross4, step=-1, verbose=False)
    path = save_mpprob_hdf5(result, tmp_path / "probs.h5")
    loaded = load_mpprob_hdf5(path)

    assert list(loaded) == ['1', '2']
    np.testing.assert_allclose(loaded['1']['prob'], result.prob['1'].to_array())
    assert loaded['1']['ids'] == cross4.finals.ids
    assert loaded['2']['position_names'] == result.prob['2'].position_names
    expected_calls = result.estfnd['1'].data.fillna(0).to_numpy(dtype=np.int16)
    np.testing.assert_array_equal(loaded['1']['calls'], expected_calls)
