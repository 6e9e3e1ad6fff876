"""
Map functions converting genetic distance (cM) to recombination fractions
"""

from enum import Enum
from typing import Union

import numpy as np

from .errors import ConfigurationError


class MapFunction(Enum):
    HALDANE = "haldane"
    KOSAMBI = "kosambi"

    @classmethod
    def parse(cls, value: Union[str, "MapFunction"]) -> "MapFunction":
        """Accept an enum member or a case-insensitive name"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise ConfigurationError(f"Unknown map function '{value}' (expected one of: {choices})") from None


def haldane(d_cm: Union[float, np.ndarray]) -> np.ndarray:
    """Haldane map function: r = (1 - exp(-2d)) / 2 with d in Morgans"""
    d = np.abs(np.asarray(d_cm, dtype=np.float64)) / 100.0
    return 0.5 * (1.0 - np.exp(-2.0 * d))


def kosambi(d_cm: Union[float, np.ndarray]) -> np.ndarray:
    """Kosambi map function: r = tanh(2d) / 2 with d in Morgans"""
    d = np.abs(np.asarray(d_cm, dtype=np.float64)) / 100.0
    return 0.5 * np.tanh(2.0 * d)


def haldane_inv(r: Union[float, np.ndarray]) -> np.ndarray:
    r = np.clip(np.asarray(r, dtype=np.float64), 0.0, 0.5 - 1e-12)
    return -50.0 * np.log(1.0 - 2.0 * r)


def kosambi_inv(r: Union[float, np.ndarray]) -> np.ndarray:
    r = np.clip(np.asarray(r, dtype=np.float64), 0.0, 0.5 - 1e-12)
    return 25.0 * np.log((1.0 + 2.0 * r) / (1.0 - 2.0 * r))


def distance_to_rf(d_cm: Union[float, np.ndarray],
                   mapfx: Union[str, MapFunction] = MapFunction.HALDANE) -> np.ndarray:
    """Convert distances in cM to recombination fractions with the chosen map function"""
    mapfx = MapFunction.parse(mapfx)
    if mapfx is MapFunction.KOSAMBI:
        return kosambi(d_cm)
    return haldane(d_cm)


def rf_to_distance(r: Union[float, np.ndarray],
                   mapfx: Union[str, MapFunction] = MapFunction.HALDANE) -> np.ndarray:
    """Inverse of distance_to_rf"""
    mapfx = MapFunction.parse(mapfx)
    if mapfx is MapFunction.KOSAMBI:
        return kosambi_inv(r)
    return haldane_inv(r)
