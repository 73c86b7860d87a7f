# test_linalg.py
import logging

import numpy as np
import pytest
import sympy as sp
from numpy.testing import assert_allclose

from magstruct.exceptions import InvalidParameterError
from magstruct.field import SymbolicField
from magstruct.linalg import (
    auto_supercell,
    cross3,
    is_integral,
    normal_vector,
    normalize_rows,
    rational_approximation,
    rotate_vectors,
    rotation_matrix,
)


# --- Tests for rational_approximation ---
def test_rational_approximation_simple():
    assert rational_approximation(0.5, 1e-5) == (1, 2)
    assert rational_approximation(0.3333333, 1e-4) == (1, 3)
    assert rational_approximation(0.0, 1e-5) == (0, 1)


def test_rational_approximation_respects_tolerance():
    # 0.3 is 1/3 within 0.05, the expansion stops there
    assert rational_approximation(0.3, 0.05) == (1, 3)
    assert rational_approximation(0.3, 1e-5) == (3, 10)


def test_rational_approximation_invalid():
    with pytest.raises(InvalidParameterError):
        rational_approximation(np.nan, 1e-5)
    with pytest.raises(InvalidParameterError):
        rational_approximation(0.5, 0.0)


# --- Tests for auto_supercell ---
def test_auto_supercell_single_k(caplog):
    with caplog.at_level(logging.INFO):
        assert auto_supercell([[0.5, 1 / 3, 0.0]], 1e-4) == (2, 3, 1)
    assert "Automatic supercell size" in caplog.text


def test_auto_supercell_lcm_over_k_vectors():
    assert auto_supercell([[0.5, 0, 0], [0.25, 0, 0]], 1e-5) == (4, 1, 1)
    assert auto_supercell([[1 / 3, 0, 0], [0.5, 0, 0]], 1e-5) == (6, 1, 1)


def test_auto_supercell_symbolic_k_rejected():
    k = np.array([[sp.Symbol("kx"), 0, 0]], dtype=object)
    with pytest.raises(InvalidParameterError):
        auto_supercell(k, 1e-5)


def test_is_integral():
    assert is_integral([1.0, 2.0 + 1e-7, 0.0], 1e-5)
    assert not is_integral([0.5, 1.0, 0.0], 1e-5)


# --- Tests for cross3 ---
def test_cross3_broadcast():
    a = np.array([0.0, 0.0, 1.0])[:, np.newaxis]
    b = np.array([[1.0, 0.0], [0.0, 1.0], [0.0, 0.0]])
    assert_allclose(cross3(a, b), [[0.0, -1.0], [1.0, 0.0], [0.0, 0.0]])


def test_cross3_moment_pages():
    # normals (3, 1, nK) against moments (3, nSpin, nK)
    normals = np.array([[0.0, 1.0], [0.0, 0.0], [1.0, 0.0]])[:, np.newaxis, :]
    moments = np.zeros((3, 2, 2))
    moments[0, :, 0] = 1.0
    moments[1, :, 1] = 1.0
    result = cross3(normals, moments)
    assert result.shape == (3, 2, 2)
    assert_allclose(result[:, :, 0], [[0.0, 0.0], [1.0, 1.0], [0.0, 0.0]])
    assert_allclose(result[:, :, 1], [[0.0, 0.0], [0.0, 0.0], [1.0, 1.0]])


def test_cross3_symbolic():
    x = sp.Symbol("x")
    a = np.array([x, 0, 0], dtype=object)
    b = np.array([0, 1, 0], dtype=object)
    result = cross3(a, b)
    assert result[2] == x
    assert result[0] == 0 and result[1] == 0


# --- Tests for rotations ---
def test_rotation_matrix_right_handed():
    rot = rotation_matrix([0, 0, 2], np.pi / 2)
    assert_allclose(rot @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], atol=1e-12)


def test_rotation_matrix_zero_axis_identity():
    assert_allclose(rotation_matrix([0, 0, 0], 1.0), np.eye(3))


def test_rotation_matrix_symbolic_matches_numeric():
    rot_sym = rotation_matrix([0, 0, 1], sp.pi / 2, SymbolicField())
    assert rot_sym.dtype == object
    assert_allclose(rot_sym.astype(float), [[0, -1, 0], [1, 0, 0], [0, 0, 1]], atol=1e-12)


def test_rotate_vectors_complex():
    S = np.array([1.0, 1j, 0.0]).reshape(3, 1, 1)
    rotated = rotate_vectors([0, 0, 1], np.pi, S)
    assert_allclose(rotated[:, 0, 0], [-1.0, -1j, 0.0], atol=1e-12)


# --- Tests for normal_vector ---
def test_normal_vector_planar_real():
    S = np.array([[1.0, 0.0], [0.0, 1.0], [0.0, 0.0]])
    assert_allclose(normal_vector(S), [0.0, 0.0, 1.0], atol=1e-12)


def test_normal_vector_follows_rotation_sense():
    S = np.array([1.0, -1j, 0.0]).reshape(3, 1)
    assert_allclose(normal_vector(S), [0.0, 0.0, -1.0], atol=1e-12)


def test_normal_vector_collinear():
    S = np.array([[0.0, 0.0], [0.0, 0.0], [-2.0, 1.0]])
    assert_allclose(normal_vector(S), [0.0, 0.0, -1.0], atol=1e-12)


def test_normal_vector_zero_moments(caplog):
    with caplog.at_level(logging.WARNING):
        result = normal_vector(np.zeros((3, 2)))
    assert_allclose(result, [0.0, 0.0, 1.0])
    assert "All moments are zero" in caplog.text


# --- Tests for normalize_rows ---
def test_normalize_rows():
    assert_allclose(normalize_rows([[0, 0, 2], [3, 4, 0]]), [[0, 0, 1], [0.6, 0.8, 0]])


def test_normalize_rows_zero():
    with pytest.raises(InvalidParameterError, match="non-zero length"):
        normalize_rows([[0, 0, 0]])
