"""
Crystal model owning the stored magnetic structure.

The crystal knows its lattice (basis vectors), its atoms with their spin
quantum numbers, whether it works in symbolic mode, and the magnetic
structure generated for it last.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt
import sympy as sp

from .exceptions import InvalidParameterError, MomentSizeError, NoMagneticAtomError
from .field import sympify_text
from .structure import MagneticStructure

logger = logging.getLogger(__name__)


def lattice_vectors_from_parameters(
    a: float,
    b: float,
    c: float,
    alpha: float = 90.0,
    beta: float = 90.0,
    gamma: float = 90.0,
) -> np.ndarray:
    """
    Convert lattice parameters to Cartesian lattice vectors (a || x, b in xy).

    Args:
        a, b, c (float): Lattice constants.
        alpha, beta, gamma (float): Lattice angles in degrees.
    Returns:
        np.ndarray: 3x3 matrix, each row a lattice vector.
    """
    alpha_r, beta_r, gamma_r = np.radians([alpha, beta, gamma])

    va = np.array([a, 0.0, 0.0])
    vb = np.array([b * np.cos(gamma_r), b * np.sin(gamma_r), 0.0])

    cx = c * np.cos(beta_r)
    cy = (c * b * np.cos(alpha_r) - vb[0] * cx) / vb[1]
    cz_sq = c**2 - cx**2 - cy**2
    if cz_sq <= 0:
        raise InvalidParameterError(
            f"Lattice angles ({alpha}, {beta}, {gamma}) do not describe a valid cell."
        )
    vc = np.array([cx, cy, np.sqrt(cz_sq)])
    return np.array([va, vb, vc])


@dataclass
class Atom:
    label: str
    pos: np.ndarray
    spin_S: Any = 0.0


@dataclass
class MagneticAtoms:
    """
    Magnetic atoms (S > 0) of the crystallographic unit cell.

    Attributes:
        labels (List[str]): Atom labels.
        r (np.ndarray): Fractional positions, shape (3, nMagAtom).
        S (np.ndarray): Spin quantum numbers, shape (nMagAtom,).
    """

    labels: List[str]
    r: np.ndarray
    S: np.ndarray

    @property
    def count(self) -> int:
        return self.r.shape[1]


@dataclass
class ExtendedAtoms:
    """
    Magnetic atoms replicated over a supercell.

    Attributes:
        n_ext (Tuple[int, int, int]): Supercell size.
        RRext (np.ndarray): Positions in supercell fractional units,
            shape (3, nMagExt), atom index fastest then cell along a, b, c.
        Sext (np.ndarray): Spin quantum number of every atom, shape (nMagExt,).
    """

    n_ext: Tuple[int, int, int]
    RRext: np.ndarray
    Sext: np.ndarray

    @property
    def count(self) -> int:
        return self.RRext.shape[1]


def extend_lattice(n_ext: Sequence[int], matom: MagneticAtoms) -> ExtendedAtoms:
    """
    Replicate the magnetic atoms of the unit cell over an n_ext supercell.

    Args:
        n_ext (Sequence[int]): Supercell size along a, b, c.
        matom (MagneticAtoms): Magnetic atoms of the unit cell.
    Returns:
        ExtendedAtoms: Positions and spins of all atoms in the supercell.
    """
    n_ext_arr = np.asarray(n_ext, dtype=int).reshape(3)
    n_cell = int(np.prod(n_ext_arr))
    # cell offsets with the a index varying fastest
    dz, dy, dx = np.meshgrid(
        np.arange(n_ext_arr[2]), np.arange(n_ext_arr[1]), np.arange(n_ext_arr[0]),
        indexing="ij",
    )
    offsets = np.vstack((dx.ravel(), dy.ravel(), dz.ravel())).astype(float)

    n_mag = matom.count
    RRext = np.tile(matom.r, (1, n_cell)) + np.repeat(offsets, n_mag, axis=1)
    RRext = RRext / n_ext_arr[:, np.newaxis]
    Sext = np.tile(matom.S, n_cell)
    return ExtendedAtoms(n_ext=tuple(int(n) for n in n_ext_arr), RRext=RRext, Sext=Sext)


class SpinCrystal:
    """
    Crystal with magnetic atoms and a stored magnetic structure.

    Args:
        lattice_vectors (Optional[npt.ArrayLike]): 3x3, rows are the lattice
            vectors in Cartesian coordinates.
        lattice_parameters (Optional[Dict[str, float]]): Alternative to
            `lattice_vectors`, keys a, b, c, alpha, beta, gamma.
        symbolic (bool): Generate structures with SymPy expressions.
    """

    def __init__(
        self,
        lattice_vectors: Optional[npt.ArrayLike] = None,
        lattice_parameters: Optional[Dict[str, float]] = None,
        symbolic: bool = False,
    ):
        if lattice_vectors is not None:
            vectors = np.asarray(lattice_vectors, dtype=float)
            if vectors.shape != (3, 3):
                raise InvalidParameterError(
                    f"lattice_vectors must have shape (3, 3), got {vectors.shape}"
                )
        elif lattice_parameters is not None:
            vectors = lattice_vectors_from_parameters(**lattice_parameters)
        else:
            vectors = np.eye(3)

        if abs(np.linalg.det(vectors)) < 1e-12:
            raise InvalidParameterError("Lattice vectors are linearly dependent.")

        self.lattice_vectors = vectors
        self.symbolic = symbolic
        self.atoms: List[Atom] = []
        self._mag_str = MagneticStructure.empty()

    @classmethod
    def from_config(cls, crystal_config) -> "SpinCrystal":
        """Build a crystal from a validated `CrystalStructureConfig`."""
        lattice_parameters = None
        if crystal_config.lattice_parameters is not None:
            lattice_parameters = crystal_config.lattice_parameters.model_dump()
        crystal = cls(
            lattice_vectors=crystal_config.lattice_vectors,
            lattice_parameters=lattice_parameters,
            symbolic=crystal_config.symbolic,
        )
        for atom in crystal_config.atoms_uc:
            crystal.add_atom(atom.label, atom.pos, atom.spin_S)
        logger.info(
            f"Built crystal with {len(crystal.atoms)} atoms, "
            f"{crystal.matom().count} magnetic."
        )
        return crystal

    def add_atom(self, label: str, pos: npt.ArrayLike, spin_S: Any = 0.0) -> None:
        pos_arr = np.asarray(pos, dtype=float).reshape(-1)
        if pos_arr.size != 3:
            raise InvalidParameterError(f"Atom position must have 3 elements, got {pos_arr.size}")
        if isinstance(spin_S, str):
            spin_S = sympify_text(spin_S)
        self.atoms.append(Atom(label=label, pos=pos_arr, spin_S=spin_S))

    def basis_vectors(self, normalize: bool = False) -> np.ndarray:
        """
        Basis vector matrix, each column a lattice vector in Cartesian
        coordinates. With `normalize` every column has unit length.
        """
        bv = self.lattice_vectors.T.copy()
        if normalize:
            bv = bv / np.linalg.norm(bv, axis=0)[np.newaxis, :]
        return bv

    def matom(self) -> MagneticAtoms:
        """Magnetic atoms of the unit cell (spin quantum number > 0)."""
        magnetic = [atom for atom in self.atoms if _is_magnetic(atom.spin_S)]
        if magnetic:
            r = np.column_stack([atom.pos for atom in magnetic])
        else:
            r = np.zeros((3, 0))
        spins = [atom.spin_S for atom in magnetic]
        symbolic_spin = any(isinstance(s, sp.Basic) and not s.is_number for s in spins)
        S = np.array(spins, dtype=object if (self.symbolic or symbolic_spin) else float)
        return MagneticAtoms(labels=[atom.label for atom in magnetic], r=r, S=S)

    @property
    def mag_str(self) -> MagneticStructure:
        return self._mag_str

    def validate(self, structure: Optional[MagneticStructure] = None) -> None:
        """
        Check that a magnetic structure is consistent with this crystal.

        Validates `structure`, or the stored one if None.

        Raises:
            MomentSizeError: If the shapes of nExt, k and F do not fit
                together or with the number of magnetic atoms.
        """
        mag_str = structure if structure is not None else self._mag_str
        if len(mag_str.n_ext) != 3 or min(mag_str.n_ext) < 1:
            raise MomentSizeError(f"nExt must be three integers >= 1, got {mag_str.n_ext}")
        if mag_str.k.ndim != 2 or mag_str.k.shape[1] != 3:
            raise MomentSizeError(f"k must have shape (nK, 3), got {mag_str.k.shape}")
        if mag_str.F.ndim != 3 or mag_str.F.shape[0] != 3:
            raise MomentSizeError(f"F must have shape (3, nMagExt, nK), got {mag_str.F.shape}")
        if mag_str.F.shape[1] == 0:
            # uninitialized structure
            return
        if mag_str.F.shape[2] != mag_str.n_k:
            raise MomentSizeError(
                f"F has {mag_str.F.shape[2]} Fourier components but {mag_str.n_k} k-vectors are stored."
            )
        n_mag_ext = self.matom().count * mag_str.n_cells
        if mag_str.F.shape[1] != n_mag_ext:
            raise MomentSizeError(
                f"F describes {mag_str.F.shape[1]} moments, the {mag_str.n_ext} supercell "
                f"has {n_mag_ext} magnetic atoms."
            )

    def genmagstr(self, rng: Optional[np.random.Generator] = None, **options) -> MagneticStructure:
        """
        Generate a magnetic structure and store it on the crystal.

        Options are the generation parameters (mode, nExt, k, n, S, unitS,
        epsilon, norm, r0, phi, phid, func, x0, Fk). The stored structure is
        only replaced when generation and validation both succeed.

        Returns:
            MagneticStructure: The newly stored structure.
        """
        from .generator import generate_magnetic_structure
        from .schema import parse_generation_parameters

        if self.matom().count == 0:
            raise NoMagneticAtomError("There are no magnetic atoms (S>0) in the unit cell!")

        params = parse_generation_parameters(options)
        structure = generate_magnetic_structure(self, params, rng=rng)
        self.validate(structure)
        self._mag_str = structure
        logger.info(f"Stored new magnetic structure: {structure}")
        return structure

    def __repr__(self) -> str:
        return (
            f"SpinCrystal(atoms={len(self.atoms)}, magnetic={self.matom().count}, "
            f"symbolic={self.symbolic})"
        )


def _is_magnetic(spin_S: Any) -> bool:
    try:
        return float(spin_S) > 0
    except (TypeError, ValueError):
        # symbolic spin length
        return True
