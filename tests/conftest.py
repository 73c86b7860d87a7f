import numpy as np
import pytest

from magstruct.crystal import SpinCrystal


@pytest.fixture
def cubic_crystal():
    """Cubic cell with one magnetic atom (S=1) and one non-magnetic atom."""
    crystal = SpinCrystal(lattice_parameters={"a": 3.0, "b": 3.0, "c": 3.0})
    crystal.add_atom("Fe1", [0.0, 0.0, 0.0], 1.0)
    crystal.add_atom("O1", [0.5, 0.5, 0.5], 0.0)
    return crystal


@pytest.fixture
def two_atom_crystal():
    """Orthorhombic cell with two magnetic atoms of different spin."""
    crystal = SpinCrystal(lattice_vectors=np.diag([4.0, 5.0, 6.0]))
    crystal.add_atom("Cu1", [0.0, 0.0, 0.0], 0.5)
    crystal.add_atom("Cu2", [0.5, 0.0, 0.0], 1.5)
    return crystal


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
