"""
Parametrization functions for the functional generation mode.

Every function has the signature ``func(M0, x) -> (S, k, n)`` where `M0` holds
the spin length of every atom in the supercell, `x` is the parameter vector,
`S` the moments with shape (3, nMagExt), `k` the propagation vector and `n`
the normal of the spin rotation plane.
"""
import logging
from typing import Callable, Dict, Tuple

import numpy as np
import sympy as sp

from .exceptions import InvalidParameterError
from .linalg import cross3

logger = logging.getLogger(__name__)


def _is_symbolic(*arrays) -> bool:
    return any(np.asarray(a).dtype == object for a in arrays)


def _trig(symbolic: bool):
    if symbolic:
        return (
            np.vectorize(sp.sin, otypes=[object]),
            np.vectorize(sp.cos, otypes=[object]),
        )
    return np.sin, np.cos


def _unit_vector(theta, phi, sin, cos) -> np.ndarray:
    theta = np.asarray(theta)
    phi = np.asarray(phi)
    return np.array(
        [sin(theta) * cos(phi), sin(theta) * sin(phi), cos(theta)]
    )


def gm_spherical3d(M0, x) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Moment directions given by spherical angles.

    Args:
        M0: Spin length of every atom in the supercell, nMagExt elements.
        x: [theta_1, phi_1, ..., theta_N, phi_N, kx, ky, kz, nTheta, nPhi],
            angles in radians.
    Returns:
        Tuple of moments (3, nMagExt), propagation vector (3,) and normal (3,).
    """
    M0 = np.asarray(M0).reshape(-1)
    x = np.asarray(x).reshape(-1)
    n_mag = M0.size
    if x.size != 2 * n_mag + 5:
        raise InvalidParameterError(
            f"gm_spherical3d needs {2 * n_mag + 5} parameters for {n_mag} moments, got {x.size}"
        )
    sin, cos = _trig(_is_symbolic(M0, x))

    theta = x[0 : 2 * n_mag : 2]
    phi = x[1 : 2 * n_mag : 2]
    S = _unit_vector(theta, phi, sin, cos) * M0[np.newaxis, :]
    k = x[2 * n_mag : 2 * n_mag + 3]
    n = _unit_vector(x[2 * n_mag + 3], x[2 * n_mag + 4], sin, cos)
    return S, k, n


def gm_planar(M0, x) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Planar moments rotating in the plane perpendicular to n.

    Args:
        M0: Spin length of every atom in the supercell, nMagExt elements.
        x: [phi_1, ..., phi_N, kx, ky, kz, nTheta, nPhi], angles in radians.
            phi is measured from the in-plane axis closest to x.
    Returns:
        Tuple of moments (3, nMagExt), propagation vector (3,) and normal (3,).
    """
    M0 = np.asarray(M0).reshape(-1)
    x = np.asarray(x).reshape(-1)
    n_mag = M0.size
    if x.size != n_mag + 5:
        raise InvalidParameterError(
            f"gm_planar needs {n_mag + 5} parameters for {n_mag} moments, got {x.size}"
        )
    symbolic = _is_symbolic(M0, x)
    sin, cos = _trig(symbolic)

    phi = x[:n_mag]
    k = x[n_mag : n_mag + 3]
    n = _unit_vector(x[n_mag + 3], x[n_mag + 4], sin, cos)

    n_num = np.real(np.asarray(n, dtype=complex)) if not symbolic else np.array(
        [complex(sp.N(v)).real if sp.sympify(v).is_number else 0.0 for v in n]
    )
    ref = np.array([1.0, 0.0, 0.0]) if abs(n_num[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    u = ref - n * (n @ ref)
    u = u / (np.sqrt(np.sum(u * u)) if not symbolic else sp.sqrt(np.sum(u * u)))
    v = cross3(n, u)

    S = (
        u[:, np.newaxis] * cos(phi)[np.newaxis, :]
        + v[:, np.newaxis] * sin(phi)[np.newaxis, :]
    ) * M0[np.newaxis, :]
    return S, k, n


FUNCTION_REGISTRY: Dict[str, Callable] = {
    "gm_spherical3d": gm_spherical3d,
    "gm_planar": gm_planar,
}


def resolve_function(func) -> Callable:
    """Return a callable for a registered function name or a callable."""
    if callable(func):
        return func
    if isinstance(func, str) and func in FUNCTION_REGISTRY:
        return FUNCTION_REGISTRY[func]
    raise InvalidParameterError(
        f"Unknown parametrization function {func!r}, "
        f"available: {sorted(FUNCTION_REGISTRY)}"
    )
