# test_crystal.py
import numpy as np
import pytest
import sympy as sp
from numpy.testing import assert_allclose

from magstruct.crystal import (
    MagneticAtoms,
    SpinCrystal,
    extend_lattice,
    lattice_vectors_from_parameters,
)
from magstruct.exceptions import InvalidParameterError, MomentSizeError
from magstruct.schema import CrystalStructureConfig
from magstruct.structure import MagneticStructure


# --- lattice ---
def test_lattice_vectors_cubic():
    vectors = lattice_vectors_from_parameters(2.0, 3.0, 4.0)
    assert_allclose(vectors, np.diag([2.0, 3.0, 4.0]), atol=1e-12)


def test_lattice_vectors_hexagonal():
    vectors = lattice_vectors_from_parameters(3.0, 3.0, 5.0, 90, 90, 120)
    assert_allclose(vectors[1], [-1.5, 3.0 * np.sqrt(3) / 2, 0.0], atol=1e-12)
    assert_allclose(np.linalg.norm(vectors, axis=1), [3.0, 3.0, 5.0])


def test_lattice_vectors_invalid_angles():
    with pytest.raises(InvalidParameterError, match="valid cell"):
        lattice_vectors_from_parameters(1.0, 1.0, 1.0, 10, 10, 120)


def test_crystal_rejects_degenerate_lattice():
    with pytest.raises(InvalidParameterError, match="linearly dependent"):
        SpinCrystal(lattice_vectors=[[1, 0, 0], [2, 0, 0], [0, 0, 1]])


def test_basis_vectors_normalized():
    crystal = SpinCrystal(lattice_vectors=np.diag([2.0, 3.0, 4.0]))
    assert_allclose(crystal.basis_vectors(), np.diag([2.0, 3.0, 4.0]))
    assert_allclose(crystal.basis_vectors(normalize=True), np.eye(3))


# --- atoms ---
def test_matom_skips_non_magnetic(cubic_crystal):
    matom = cubic_crystal.matom()
    assert matom.labels == ["Fe1"]
    assert matom.r.shape == (3, 1)
    assert_allclose(matom.S, [1.0])


def test_matom_symbolic_spin():
    crystal = SpinCrystal()
    crystal.add_atom("Mn1", [0, 0, 0], "S")
    matom = crystal.matom()
    assert matom.count == 1
    assert matom.S.dtype == object
    assert matom.S[0] == sp.Symbol("S")


def test_add_atom_bad_position():
    crystal = SpinCrystal()
    with pytest.raises(InvalidParameterError):
        crystal.add_atom("Fe1", [0, 0], 1.0)


def test_extend_lattice_ordering():
    matom = MagneticAtoms(
        labels=["A", "B"], r=np.array([[0.0, 0.5], [0.0, 0.0], [0.0, 0.0]]), S=np.array([0.5, 1.5])
    )
    ext = extend_lattice([2, 1, 1], matom)
    assert ext.n_ext == (2, 1, 1)
    assert ext.count == 4
    assert_allclose(ext.RRext[0], [0.0, 0.25, 0.5, 0.75])
    assert_allclose(ext.Sext, [0.5, 1.5, 0.5, 1.5])


def test_extend_lattice_a_fastest():
    matom = MagneticAtoms(labels=["A"], r=np.zeros((3, 1)), S=np.array([1.0]))
    ext = extend_lattice([2, 2, 1], matom)
    assert_allclose(ext.RRext[:2], [[0.0, 0.5, 0.0, 0.5], [0.0, 0.0, 0.5, 0.5]])


# --- validation ---
def test_validate_accepts_initial_structure(cubic_crystal):
    cubic_crystal.validate()


def test_validate_rejects_wrong_atom_count(two_atom_crystal):
    structure = MagneticStructure(n_ext=(2, 1, 1), k=[0, 0, 0], F=np.zeros((3, 2), dtype=complex))
    with pytest.raises(MomentSizeError, match="magnetic atoms"):
        two_atom_crystal.validate(structure)


def test_validate_rejects_page_mismatch(cubic_crystal):
    structure = MagneticStructure(k=[[0, 0, 0], [0.5, 0, 0]], F=np.zeros((3, 1, 1), dtype=complex))
    with pytest.raises(MomentSizeError, match="Fourier components"):
        cubic_crystal.validate(structure)


# --- configuration ---
def test_from_config():
    config = CrystalStructureConfig.model_validate(
        {
            "lattice_parameters": {"a": 5.0, "b": 5.0, "c": 8.0, "gamma": 120.0},
            "atoms_uc": [
                {"label": "Fe1", "pos": [0, 0, 0], "spin_S": 2.5},
                {"label": "O1", "pos": [0.5, 0, 0]},
            ],
        }
    )
    crystal = SpinCrystal.from_config(config)
    assert len(crystal.atoms) == 2
    assert crystal.matom().labels == ["Fe1"]
    assert_allclose(np.linalg.norm(crystal.lattice_vectors[1]), 5.0)
    assert not crystal.symbolic


# --- structure record ---
def test_structure_moments_over_cells():
    structure = MagneticStructure(k=[0.5, 0, 0], F=np.array([[1.0], [0.0], [0.0]], dtype=complex))
    assert structure.F.shape == (3, 1, 1)
    moments = structure.moments(n_cells=(2, 1, 1))
    assert_allclose(moments, [[1.0, -1.0], [0.0, 0.0], [0.0, 0.0]], atol=1e-12)


def test_structure_commensurate():
    assert MagneticStructure(n_ext=(2, 1, 1), k=[0.5, 0, 0]).is_commensurate()
    assert not MagneticStructure(n_ext=(1, 1, 1), k=[0.5, 0, 0]).is_commensurate()


def test_structure_dict_round_trip():
    F = np.array([[1.0 + 0.5j], [0.0], [-1j]])
    structure = MagneticStructure(n_ext=(1, 2, 1), k=[[0.0, 0.5, 0.0]], F=F)
    data = structure.to_dict()
    assert data["nExt"] == [1, 2, 1]
    restored = MagneticStructure.from_dict(data)
    assert restored.n_ext == (1, 2, 1)
    assert_allclose(restored.k, structure.k)
    assert_allclose(restored.F, structure.F)


def test_symbolic_structure_moments_rejected():
    x = sp.Symbol("x")
    structure = MagneticStructure(F=np.array([[x], [0], [0]], dtype=object))
    with pytest.raises(TypeError):
        structure.moments()
