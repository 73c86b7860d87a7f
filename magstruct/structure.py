"""
Magnetic structure record.

A magnetic structure is stored as complex Fourier components on the atoms of
a magnetic supercell together with the propagation vectors they belong to:

    M(L, j) = Re sum_k F[:, j, k] * exp(-i 2 pi k.L)

where L is the translation of the supercell in crystallographic cell units
and j the index of the atom in the supercell. Reality is obtained by
implicitly pairing every stored k with -k through complex conjugation.
"""
import logging
from dataclasses import dataclass, field
from itertools import product
from typing import Any, Dict, Tuple

import numpy as np

from .field import sympify_text

logger = logging.getLogger(__name__)


def _complex_to_dict(values: np.ndarray) -> Dict[str, Any]:
    if values.dtype == object:
        return {"symbolic": [[[str(v) for v in row] for row in page] for page in values.tolist()]}
    arr = np.asarray(values, dtype=complex)
    return {"real": arr.real.tolist(), "imag": arr.imag.tolist()}


def _complex_from_dict(data: Dict[str, Any]) -> np.ndarray:
    if "symbolic" in data:
        return np.vectorize(sympify_text, otypes=[object])(np.array(data["symbolic"], dtype=object))
    return np.asarray(data["real"], dtype=float) + 1j * np.asarray(data["imag"], dtype=float)


@dataclass
class MagneticStructure:
    """
    Fourier representation of a magnetic structure on a supercell.

    Attributes:
        n_ext (Tuple[int, int, int]): Supercell multiplicity along a, b, c.
        k (np.ndarray): Propagation vectors in r.l.u., shape (nK, 3).
        F (np.ndarray): Fourier components, shape (3, nMagExt, nK).
    """

    n_ext: Tuple[int, int, int] = (1, 1, 1)
    k: np.ndarray = field(default_factory=lambda: np.zeros((1, 3)))
    F: np.ndarray = field(default_factory=lambda: np.zeros((3, 0, 1), dtype=complex))

    def __post_init__(self):
        self.n_ext = tuple(int(n) for n in np.asarray(self.n_ext).reshape(-1))
        self.k = np.asarray(self.k)
        if self.k.ndim == 1:
            self.k = self.k.reshape(1, -1)
        self.F = np.asarray(self.F)
        if self.F.ndim == 2:
            self.F = self.F[:, :, np.newaxis]

    @classmethod
    def empty(cls) -> "MagneticStructure":
        """Structure stored on a crystal before any generation call."""
        return cls()

    @property
    def n_k(self) -> int:
        return self.k.shape[0]

    @property
    def n_magnetic_atoms(self) -> int:
        """Number of magnetic atoms in the supercell."""
        return self.F.shape[1]

    @property
    def n_cells(self) -> int:
        return int(np.prod(self.n_ext))

    @property
    def is_symbolic(self) -> bool:
        return self.F.dtype == object or self.k.dtype == object

    def is_commensurate(self, epsilon: float = 1e-5) -> bool:
        """True if every k scaled by the supercell size is integral."""
        k_num = np.real(np.asarray(self.k, dtype=complex))
        scaled = k_num * np.asarray(self.n_ext)[np.newaxis, :]
        return bool(np.all(np.abs(scaled - np.round(scaled)) <= epsilon))

    def moments(self, n_cells: Tuple[int, int, int] = (1, 1, 1)) -> np.ndarray:
        """
        Real-space moments on a block of supercells.

        Args:
            n_cells (Tuple[int, int, int]): Number of supercells along a, b, c.
        Returns:
            np.ndarray: Moments with shape (3, nMagExt * prod(n_cells)),
            atom index fastest, then supercell along a, b and c.
        """
        if self.is_symbolic:
            raise TypeError("moments() needs a numerical structure.")

        F = np.asarray(self.F, dtype=complex)
        k = np.asarray(self.k, dtype=float)
        blocks = []
        for cz, cy, cx in product(*(range(int(n)) for n in reversed(n_cells))):
            translation = np.array([cx, cy, cz]) * np.asarray(self.n_ext)
            phase = np.exp(-2j * np.pi * (k @ translation))
            blocks.append(np.real(F @ phase))
        return np.hstack(blocks)

    def to_dict(self) -> Dict[str, Any]:
        """Plain python representation (complex values split into parts)."""
        if self.k.dtype == object:
            k_repr = [[str(v) for v in row] for row in self.k.tolist()]
        else:
            k_repr = np.asarray(self.k, dtype=float).tolist()
        return {
            "nExt": list(self.n_ext),
            "k": k_repr,
            "F": _complex_to_dict(self.F),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MagneticStructure":
        k = np.array(data["k"], dtype=object)
        if any(isinstance(v, str) for v in k.flat):
            k = np.vectorize(sympify_text, otypes=[object])(k)
        else:
            k = k.astype(float)
        return cls(
            n_ext=tuple(data["nExt"]),
            k=k,
            F=_complex_from_dict(data["F"]),
        )

    def __repr__(self) -> str:
        return (
            f"MagneticStructure(nExt={self.n_ext}, nK={self.n_k}, "
            f"nMagExt={self.n_magnetic_atoms})"
        )
