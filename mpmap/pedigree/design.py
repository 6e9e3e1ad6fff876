"""
Breeding design classification for multi-parent pedigrees

Each individual is labelled from the structure of its ancestry:
``<n>wayG<g>`` for an n-founder funnel completed in g generations of
crossing, followed by ``aic<k>`` when k generations of advanced
intercrossing come after the funnel, and ``self<s>`` for s generations of
selfing. Founders are labelled ``founder``.
"""

import math
import re
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd

from ..utils.data_types import MPCross, Pedigree
from ..utils.errors import UnsupportedDesignError

FOUNDER_LABEL = "founder"

_LABEL_RE = re.compile(r"^(\d+)wayG(\d+)(?:aic(\d+))?(?:self(\d+))?$")


class CrossDesign(Enum):
    """Designs with a known two-locus model and multipoint cross type"""

    FOUR_WAY = ("4wayG2", 4, 0, "ri4self")
    EIGHT_WAY = ("8wayG3", 8, 0, "ri8self")
    EIGHT_WAY_AIC1 = ("8wayG3aic1", 8, 1, "ri8selfIRIP1")
    EIGHT_WAY_AIC2 = ("8wayG3aic2", 8, 2, "ri8selfIRIP2")
    EIGHT_WAY_AIC3 = ("8wayG3aic3", 8, 3, "ri8selfIRIP3")
    EIGHT_WAY_AIC10 = ("8wayG3aic10", 8, 10, "ri8selfIRIP10")

    def __init__(self, label: str, n_founders: int, aic_generations: int, cross_type: str):
        self.label = label
        self.n_founders = n_founders
        self.aic_generations = aic_generations
        self.cross_type = cross_type

    @property
    def funnel_generations(self) -> int:
        return int(math.log2(self.n_founders))

    @classmethod
    def from_label(cls, label: str) -> "CrossDesign":
        """Map a design label (selfing suffix ignored) onto a known design"""
        base = remove_selfing(label)
        for design in cls:
            if design.label == base:
                return design
        raise UnsupportedDesignError(f"Unable to convert design '{label}' to a known cross type")


def remove_selfing(label: str) -> str:
    """Strip the selfing-generation suffix from a design label"""
    idx = str(label).find("self")
    if idx != -1:
        return str(label)[:idx]
    return str(label)


def parse_design_label(label: str) -> Dict[str, Optional[int]]:
    """Split a label into founders, funnel generations, aic and selfing counts"""
    match = _LABEL_RE.match(str(label))
    if match is None:
        raise UnsupportedDesignError(f"Malformed design label '{label}'")
    n, g, aic, selfing = match.groups()
    return {
        'n_founders': int(n),
        'funnel_generations': int(g),
        'aic': int(aic) if aic else 0,
        'selfing': int(selfing) if selfing else 0,
    }


def _ancestry(pedigree: Pedigree) -> Tuple[Dict[str, frozenset], Dict[str, int]]:
    """Founder ancestor sets and crossing generation for every individual

    Iterative so that deep selfing chains do not hit the recursion limit.
    Selfing (mother == father) does not advance the crossing generation.
    """
    parents = pedigree.parents()
    root = Pedigree.FOUNDER_PARENT
    founders: Dict[str, frozenset] = {}
    generation: Dict[str, int] = {}

    for start in parents:
        if start in founders:
            continue
        stack = [(start, False)]
        on_path = set()
        while stack:
            ind, expanded = stack.pop()
            if ind in founders:
                continue
            mother, father = parents[ind]
            if mother == root and father == root:
                founders[ind] = frozenset([ind])
                generation[ind] = 0
                continue
            if not expanded:
                if ind in on_path:
                    raise UnsupportedDesignError(f"Pedigree contains a cycle through {ind}")
                on_path.add(ind)
                stack.append((ind, True))
                for p in (mother, father):
                    if p != root and p not in founders:
                        stack.append((p, False))
                continue
            on_path.discard(ind)
            anc = frozenset()
            gens = []
            for p in (mother, father):
                if p != root:
                    anc = anc | founders[p]
                    gens.append(generation[p])
            founders[ind] = anc
            if mother == father:
                generation[ind] = gens[0]
            else:
                generation[ind] = max(gens) + 1
    return founders, generation


def _selfing_depth(ind: str, parents: Dict[str, Tuple[str, str]]) -> Tuple[int, str]:
    """Number of trailing selfing generations and the individual they start from"""
    depth = 0
    root = Pedigree.FOUNDER_PARENT
    current = ind
    while True:
        mother, father = parents[current]
        if mother == father and mother != root:
            depth += 1
            current = mother
        else:
            return depth, current


def MPMAP_IdentifyDesign(pedigree: Union[Pedigree, pd.DataFrame]) -> List[str]:
    """Derive a design label for every individual in the pedigree

    Args:
        pedigree: Pedigree (or DataFrame with ID/Mother/Father columns)

    Returns:
        List of labels in pedigree row order
    """
    if not isinstance(pedigree, Pedigree):
        pedigree = Pedigree(pedigree)

    parents = pedigree.parents()
    founders, generation = _ancestry(pedigree)

    labels = []
    for ind in pedigree.ids:
        mother, father = parents[ind]
        if mother == Pedigree.FOUNDER_PARENT and father == Pedigree.FOUNDER_PARENT:
            labels.append(FOUNDER_LABEL)
            continue
        n = len(founders[ind])
        selfing, base = _selfing_depth(ind, parents)
        funnel = max(int(math.ceil(math.log2(n))), 1) if n > 1 else 0
        aic = generation[base] - funnel
        label = f"{n}wayG{funnel}"
        if aic > 0:
            label += f"aic{aic}"
        if selfing > 0:
            label += f"self{selfing}"
        labels.append(label)
    return labels


def observed_designs(pedigree: Pedigree) -> List[str]:
    """Distinct design labels among observed lines, selfing suffix removed"""
    if not pedigree.has_design:
        raise ValueError("Pedigree has no Design column")
    designs = pedigree.data.loc[pedigree.observed, 'Design']
    seen: List[str] = []
    for label in designs:
        base = remove_selfing(label)
        if base not in seen:
            seen.append(base)
    return seen


def resolve_design(cross: MPCross, verbose: bool = False) -> Tuple[MPCross, CrossDesign]:
    """Attach a design column if needed and return the single observed design

    An existing Design column is trusted as-is. Mixed designs among observed
    lines are rejected because the recombination model is derived per design.
    """
    if not cross.pedigree.has_design:
        if verbose:
            print("Pedigree has no Design column; identifying design from pedigree")
        labels = MPMAP_IdentifyDesign(cross.pedigree)
        cross = cross.with_pedigree(cross.pedigree.with_design(labels))

    designs = observed_designs(cross.pedigree)
    if len(designs) != 1:
        raise UnsupportedDesignError(
            f"Only one type of design can currently be used; observed designs: {designs}"
        )
    design = CrossDesign.from_label(designs[0])
    if design.n_founders != cross.n_founders:
        raise UnsupportedDesignError(
            f"Design {design.label} expects {design.n_founders} founders, "
            f"founder matrix has {cross.n_founders}"
        )
    return cross, design
