"""
Core data structures for the mpmap package
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union, Dict, List, Iterable, Mapping, Any, Tuple

import numpy as np
import pandas as pd

from .errors import InputConsistencyError, InternalInvariantError

MISSING_ALLELE = -9

MARKER = "marker"
STEP = "step"


class GeneticMap:
    """Per-chromosome genetic map (marker name -> position in cM)

    Accepts either a long DataFrame with columns [SNP, CHROM, POS] (the
    same convention as GWAS map files) or a mapping of chromosome name to a
    pandas Series indexed by marker name. Chromosome order is preserved.
    """

    def __init__(self, data: Union[pd.DataFrame, Mapping[str, Any], str, Path]):
        if isinstance(data, (str, Path)):
            data = pd.read_csv(data)

        chroms: "OrderedDict[str, pd.Series]" = OrderedDict()
        if isinstance(data, pd.DataFrame):
            required_cols = ['SNP', 'CHROM', 'POS']
            for col in required_cols:
                if col not in data.columns:
                    raise InputConsistencyError(f"Map is missing required column: {col}")
            for chrom, block in data.groupby('CHROM', sort=False):
                chroms[str(chrom)] = pd.Series(
                    block['POS'].to_numpy(dtype=np.float64),
                    index=block['SNP'].astype(str).to_numpy(),
                    name=str(chrom),
                )
        elif isinstance(data, Mapping):
            for chrom, positions in data.items():
                series = pd.Series(positions, dtype=np.float64)
                series.index = series.index.astype(str)
                series.name = str(chrom)
                chroms[str(chrom)] = series
        else:
            raise ValueError("Map data must be a DataFrame, a mapping or a file path")

        for chrom, series in chroms.items():
            if len(series) == 0:
                raise InputConsistencyError(f"Chromosome {chrom} has no markers")
            values = series.to_numpy()
            if np.any(np.isnan(values)):
                raise InputConsistencyError(f"Chromosome {chrom} has missing map positions")
            if np.any(np.diff(values) < 0):
                raise InputConsistencyError(f"Map positions on chromosome {chrom} are not sorted ascending")
            if series.index.duplicated().any():
                raise InputConsistencyError(f"Duplicated marker names on chromosome {chrom}")

        self._chroms = chroms

    @property
    def chromosomes(self) -> List[str]:
        """Chromosome names in map order"""
        return list(self._chroms.keys())

    @property
    def n_markers(self) -> int:
        return int(sum(len(s) for s in self._chroms.values()))

    def __len__(self) -> int:
        return len(self._chroms)

    def __contains__(self, chrom) -> bool:
        return str(chrom) in self._chroms

    def __iter__(self):
        return iter(self._chroms)

    def __getitem__(self, chrom) -> pd.Series:
        key = str(chrom)
        if key not in self._chroms:
            raise InputConsistencyError(f"Chromosome {chrom} not found in map")
        return self._chroms[key].copy()

    def items(self):
        for chrom in self._chroms:
            yield chrom, self[chrom]

    def markers(self, chrom) -> List[str]:
        return list(self[chrom].index)

    def positions(self, chrom) -> np.ndarray:
        return self[chrom].to_numpy(dtype=np.float64)

    def all_markers(self) -> List[str]:
        out: List[str] = []
        for series in self._chroms.values():
            out.extend(series.index)
        return out

    def subset(self, chroms: Iterable[str]) -> "GeneticMap":
        return GeneticMap(OrderedDict((str(c), self[c]) for c in chroms))

    def to_dataframe(self) -> pd.DataFrame:
        """Long format [SNP, CHROM, POS]"""
        frames = [
            pd.DataFrame({'SNP': s.index, 'CHROM': chrom, 'POS': s.to_numpy()})
            for chrom, s in self._chroms.items()
        ]
        return pd.concat(frames, ignore_index=True)


class GenotypeMatrix:
    """Labelled allele matrix for founders or final lines

    Rows are individuals (string IDs), columns are markers. Entries are
    allele codes; ``missing_value`` and NaN both count as missing.
    """

    def __init__(self, data: Union[pd.DataFrame, np.ndarray],
                 ids: Optional[Iterable] = None,
                 markers: Optional[Iterable] = None,
                 missing_value: Any = MISSING_ALLELE):
        if isinstance(data, pd.DataFrame):
            df = data.copy()
        elif isinstance(data, np.ndarray):
            if data.ndim != 2:
                raise ValueError("Genotype matrix must be 2D")
            df = pd.DataFrame(data)
        else:
            raise ValueError("Data must be DataFrame or array")

        if ids is not None:
            df.index = list(ids)
        if markers is not None:
            df.columns = list(markers)
        df.index = df.index.astype(str)
        df.columns = df.columns.astype(str)
        if df.index.duplicated().any():
            raise InputConsistencyError("Duplicated individual IDs in genotype matrix")
        if df.columns.duplicated().any():
            raise InputConsistencyError("Duplicated marker names in genotype matrix")

        self._data = df
        self.missing_value = missing_value

    @property
    def shape(self) -> Tuple[int, int]:
        return self._data.shape

    @property
    def ids(self) -> List[str]:
        return list(self._data.index)

    @property
    def markers(self) -> List[str]:
        return list(self._data.columns)

    @property
    def n_individuals(self) -> int:
        return self._data.shape[0]

    @property
    def n_markers(self) -> int:
        return self._data.shape[1]

    def __getitem__(self, key):
        return self._data[key]

    def missing_mask(self, markers: Optional[List[str]] = None) -> np.ndarray:
        """Boolean mask of missing calls (sentinel or NaN)"""
        values = self._data if markers is None else self._data.loc[:, markers]
        return np.array((values.isna() | (values == self.missing_value)).to_numpy(), dtype=bool)

    def subset_markers(self, markers: List[str]) -> "GenotypeMatrix":
        return GenotypeMatrix(self._data.loc[:, list(markers)], missing_value=self.missing_value)

    def to_numpy(self, markers: Optional[List[str]] = None) -> np.ndarray:
        values = self._data if markers is None else self._data.loc[:, markers]
        return values.to_numpy(copy=True)

    def to_dataframe(self) -> pd.DataFrame:
        return self._data.copy()


class Pedigree:
    """Breeding pedigree of a multi-parent cross

    Expected columns: [ID, Mother, Father] with optional [Design, Observed].
    ``Female``/``Male`` are accepted in place of ``Mother``/``Father``.
    Founders have both parents coded 0.
    """

    FOUNDER_PARENT = "0"

    def __init__(self, data: Union[pd.DataFrame, np.ndarray, str, Path],
                 observed_ids: Optional[Iterable] = None):
        if isinstance(data, (str, Path)):
            df = pd.read_csv(data)
        elif isinstance(data, pd.DataFrame):
            df = data.copy()
        elif isinstance(data, np.ndarray):
            if data.ndim != 2 or data.shape[1] < 3:
                raise ValueError("Pedigree array must have at least 3 columns")
            df = pd.DataFrame(data[:, :3], columns=['ID', 'Mother', 'Father'])
        else:
            raise ValueError("Pedigree must be DataFrame, array or file path")

        df = df.rename(columns={'id': 'ID', 'Female': 'Mother', 'Male': 'Father',
                                'mother': 'Mother', 'father': 'Father'})
        for col in ('ID', 'Mother', 'Father'):
            if col not in df.columns:
                raise InputConsistencyError(f"Pedigree is missing required column: {col}")

        for col in ('ID', 'Mother', 'Father'):
            df[col] = df[col].map(_id_to_str)
        if df['ID'].duplicated().any():
            raise InputConsistencyError("Duplicated IDs in pedigree")

        if 'Observed' not in df.columns:
            if observed_ids is not None:
                observed = {str(i) for i in observed_ids}
                df['Observed'] = df['ID'].isin(observed).astype(int)
            else:
                parents = set(df['Mother']) | set(df['Father'])
                df['Observed'] = (~df['ID'].isin(parents)).astype(int)
        else:
            df['Observed'] = df['Observed'].astype(int)

        known = set(df['ID']) | {self.FOUNDER_PARENT}
        unknown = (set(df['Mother']) | set(df['Father'])) - known
        if unknown:
            raise InputConsistencyError(
                f"Pedigree references parents that are not listed: {sorted(unknown)[:5]}"
            )

        self.data = df.reset_index(drop=True)

    @property
    def ids(self) -> List[str]:
        return list(self.data['ID'])

    @property
    def has_design(self) -> bool:
        return 'Design' in self.data.columns

    @property
    def founder_ids(self) -> List[str]:
        mask = (self.data['Mother'] == self.FOUNDER_PARENT) & (self.data['Father'] == self.FOUNDER_PARENT)
        return list(self.data.loc[mask, 'ID'])

    @property
    def observed(self) -> pd.Series:
        return self.data['Observed'] == 1

    def parents(self) -> Dict[str, Tuple[str, str]]:
        return {row.ID: (row.Mother, row.Father) for row in self.data.itertuples(index=False)}

    def with_design(self, designs: Iterable[str]) -> "Pedigree":
        """Return a new pedigree with the Design column attached"""
        df = self.data.copy()
        df['Design'] = list(designs)
        return Pedigree(df)

    def to_dataframe(self) -> pd.DataFrame:
        return self.data.copy()


def _id_to_str(value) -> str:
    if pd.isna(value):
        return Pedigree.FOUNDER_PARENT
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


class MPCross:
    """Multi-parent cross: founders, final lines, pedigree and genetic map

    Inputs are validated on construction and never mutated afterwards.
    """

    def __init__(self, founders: GenotypeMatrix, finals: GenotypeMatrix,
                 pedigree: Pedigree, genetic_map: GeneticMap,
                 ibd: Optional[GenotypeMatrix] = None):
        if not isinstance(founders, GenotypeMatrix):
            founders = GenotypeMatrix(founders)
        if not isinstance(finals, GenotypeMatrix):
            finals = GenotypeMatrix(finals)
        if not isinstance(pedigree, Pedigree):
            pedigree = Pedigree(pedigree, observed_ids=finals.ids)
        if not isinstance(genetic_map, GeneticMap):
            genetic_map = GeneticMap(genetic_map)

        if founders.n_individuals not in (4, 8):
            raise InputConsistencyError(
                f"Expected 4 or 8 founders, got {founders.n_individuals}"
            )
        if founders.markers != finals.markers:
            raise InputConsistencyError("Founder and final genotype matrices have different marker columns")
        missing = [m for m in genetic_map.all_markers() if m not in set(founders.markers)]
        if missing:
            raise InputConsistencyError(
                f"{len(missing)} map markers are absent from the genotype matrices (e.g. {missing[:3]})"
            )
        pedigree_ids = set(pedigree.ids)
        unlisted = [i for i in finals.ids if i not in pedigree_ids]
        if unlisted:
            raise InputConsistencyError(
                f"{len(unlisted)} final lines are not in the pedigree (e.g. {unlisted[:3]})"
            )
        pedigree_founders = set(pedigree.founder_ids)
        not_founders = [i for i in founders.ids if i not in pedigree_founders]
        if not_founders:
            raise InputConsistencyError(
                f"Founder genotypes for {not_founders[:3]} do not match pedigree founders"
            )

        if ibd is not None:
            if not isinstance(ibd, GenotypeMatrix):
                ibd = GenotypeMatrix(ibd)
            if set(ibd.ids) != set(finals.ids) or ibd.n_individuals != finals.n_individuals:
                raise InputConsistencyError("IBD matrix must list the same lines as the final genotypes")
            absent = [m for m in finals.markers if m not in set(ibd.markers)]
            if absent:
                raise InputConsistencyError(
                    f"{len(absent)} markers are absent from the IBD matrix (e.g. {absent[:3]})"
                )
            # rows and columns follow the final genotypes
            ibd = GenotypeMatrix(ibd.to_dataframe().loc[finals.ids, finals.markers],
                                 missing_value=ibd.missing_value)

        self.founders = founders
        self.finals = finals
        self.pedigree = pedigree
        self.map = genetic_map
        self.ibd = ibd

    @property
    def n_founders(self) -> int:
        return self.founders.n_individuals

    @property
    def n_finals(self) -> int:
        return self.finals.n_individuals

    def with_pedigree(self, pedigree: Pedigree) -> "MPCross":
        return MPCross(self.founders, self.finals, pedigree, self.map, ibd=self.ibd)


@dataclass
class PositionGrid:
    """Ordered query positions on one chromosome, each tagged marker or step"""

    chromosome: str
    names: List[str]
    positions: np.ndarray
    kinds: List[str]

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float64)
        if not (len(self.names) == len(self.positions) == len(self.kinds)):
            raise InternalInvariantError(
                f"Grid for chromosome {self.chromosome} has inconsistent lengths"
            )

    def __len__(self) -> int:
        return len(self.names)

    @property
    def marker_indices(self) -> np.ndarray:
        return np.array([i for i, k in enumerate(self.kinds) if k == MARKER], dtype=int)

    @property
    def step_indices(self) -> np.ndarray:
        return np.array([i for i, k in enumerate(self.kinds) if k == STEP], dtype=int)

    @property
    def n_markers(self) -> int:
        return len(self.marker_indices)

    @property
    def n_steps(self) -> int:
        return len(self.step_indices)

    def take(self, indices) -> "PositionGrid":
        indices = list(indices)
        return PositionGrid(
            chromosome=self.chromosome,
            names=[self.names[i] for i in indices],
            positions=self.positions[indices],
            kinds=[self.kinds[i] for i in indices],
        )

    def to_series(self) -> pd.Series:
        return pd.Series(self.positions, index=self.names, name=self.chromosome)


@dataclass(frozen=True)
class FounderBlockIndex:
    """(position, founder) <-> column addressing for founder-blocked matrices"""

    n_positions: int
    n_founders: int

    @property
    def n_columns(self) -> int:
        return self.n_positions * self.n_founders

    def column(self, position: int, founder: int) -> int:
        """Column of a 0-based position and 0-based founder"""
        if not (0 <= position < self.n_positions and 0 <= founder < self.n_founders):
            raise IndexError(f"({position}, {founder}) outside {self.n_positions}x{self.n_founders} blocks")
        return position * self.n_founders + founder

    def block(self, position: int) -> slice:
        start = self.column(position, 0)
        return slice(start, start + self.n_founders)

    def columns_for(self, positions) -> np.ndarray:
        positions = np.asarray(positions, dtype=int)
        return (positions[:, None] * self.n_founders + np.arange(self.n_founders)[None, :]).ravel()

    def position_of(self, column: int) -> Tuple[int, int]:
        return divmod(int(column), self.n_founders)


class ProbabilityMatrix:
    """Founder probabilities for one chromosome

    Rows are final lines; columns are founder blocks, one block per grid
    position, labelled "<position>, Founder <k>".
    """

    def __init__(self, data: pd.DataFrame, grid: PositionGrid, n_founders: int):
        index = FounderBlockIndex(len(grid), n_founders)
        if data.shape[1] != index.n_columns:
            raise InternalInvariantError(
                f"Chromosome {grid.chromosome}: {data.shape[1]} columns for "
                f"{len(grid)} positions x {n_founders} founders"
            )
        self.data = data
        self.grid = grid
        self.n_founders = n_founders
        self.index = index

    @property
    def chromosome(self) -> str:
        return self.grid.chromosome

    @property
    def position_names(self) -> List[str]:
        return list(self.grid.names)

    @property
    def positions(self) -> pd.Series:
        return self.grid.to_series()

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    def block(self, position: Union[int, str]) -> pd.DataFrame:
        """Founder probabilities at one position (by index or name)"""
        if isinstance(position, str):
            position = self.grid.names.index(position)
        return self.data.iloc[:, self.index.block(int(position))]

    def to_array(self) -> np.ndarray:
        """individuals x positions x founders"""
        values = self.data.to_numpy(dtype=np.float64)
        return values.reshape(values.shape[0], len(self.grid), self.n_founders)

    def undefined_mask(self) -> pd.DataFrame:
        """True where a position block carries no usable data (NaN)"""
        mask = np.isnan(self.to_array()).all(axis=2)
        return pd.DataFrame(mask, index=self.data.index, columns=self.grid.names)

    def to_dataframe(self) -> pd.DataFrame:
        return self.data.copy()


class FounderCallMatrix:
    """Discrete founder calls (1-based founder index, <NA> for no call)"""

    def __init__(self, data: pd.DataFrame, threshold: float):
        self.data = data
        self.threshold = threshold

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    def call_rate(self) -> float:
        if self.data.size == 0:
            return float('nan')
        return float(self.data.notna().to_numpy().mean())

    def to_dataframe(self) -> pd.DataFrame:
        return self.data.copy()


@dataclass
class MPProbResult:
    """Founder probabilities and calls for a multi-parent cross

    ``prob`` and ``estfnd`` are ordered by chromosome; metadata records how
    the probabilities were computed.
    """

    cross: MPCross
    prob: "OrderedDict[str, ProbabilityMatrix]"
    step: float
    program: str
    mapfx: str
    mrkpos: bool
    threshold: Optional[float] = None
    estfnd: "OrderedDict[str, FounderCallMatrix]" = field(default_factory=OrderedDict)

    @property
    def chromosomes(self) -> List[str]:
        return list(self.prob.keys())

    @property
    def map(self) -> "OrderedDict[str, pd.Series]":
        """Computed positions per chromosome"""
        return OrderedDict((chrom, p.positions) for chrom, p in self.prob.items())

    @property
    def n_founders(self) -> int:
        return self.cross.n_founders

    def call_founders(self, threshold: float) -> "MPProbResult":
        """Re-call founders at a new threshold without recomputing probabilities"""
        from ..prob.founders import MPMAP_CallFounders

        calls = OrderedDict(
            (chrom, MPMAP_CallFounders(p, threshold)) for chrom, p in self.prob.items()
        )
        return MPProbResult(
            cross=self.cross, prob=self.prob, step=self.step, program=self.program,
            mapfx=self.mapfx, mrkpos=self.mrkpos, threshold=threshold, estfnd=calls,
        )

    def founder_summary(self) -> pd.DataFrame:
        """Proportion of positions called to each founder, per chromosome"""
        if not self.estfnd:
            raise ValueError("No founder calls available; run call_founders() first")
        founder_names = list(self.cross.founders.ids)
        rows = []
        for chrom, calls in self.estfnd.items():
            values = calls.data.to_numpy(dtype=np.float64, na_value=np.nan)
            total = values.size
            row: Dict[str, Any] = {'Chr': chrom, 'n_positions': calls.shape[1]}
            for k, name in enumerate(founder_names, start=1):
                row[name] = float(np.sum(values == k)) / total if total else np.nan
            row['NoCall'] = float(np.isnan(values).sum()) / total if total else np.nan
            rows.append(row)
        return pd.DataFrame(rows)

    def to_frames(self) -> Dict[str, Dict[str, pd.DataFrame]]:
        out = {'prob': OrderedDict((c, p.to_dataframe()) for c, p in self.prob.items())}
        out['estfnd'] = OrderedDict((c, f.to_dataframe()) for c, f in self.estfnd.items())
        return out
