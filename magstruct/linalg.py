
import logging
from typing import Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
import sympy as sp
from scipy import linalg as la
from scipy.spatial.transform import Rotation

from .exceptions import InvalidParameterError
from .field import NumericField, SymbolicField

logger = logging.getLogger(__name__)

# --- Numerical Constants ---
ROTATION_AXIS_ZERO_THRESHOLD: float = 1e-12
NVECT_EPSILON: float = 0.1
CONTINUED_FRACTION_MAX_STEPS: int = 64

Field = Union[NumericField, SymbolicField]


def cross3(a: npt.ArrayLike, b: npt.ArrayLike) -> np.ndarray:
    """
    Cross product along the first axis.

    Works for float, complex and object (SymPy) arrays; the inputs are
    broadcast against each other first.

    Args:
        a (npt.ArrayLike): Array with shape (3, ...).
        b (npt.ArrayLike): Array with shape (3, ...).
    Returns:
        np.ndarray: a x b with the broadcast shape.
    """
    return np.cross(np.asarray(a), np.asarray(b), axis=0)


def rotation_matrix(
    axis: npt.ArrayLike, angle, field: Field = None
) -> np.ndarray:
    """
    Right-handed rotation matrix about `axis` by `angle` (radians).

    A zero-length axis gives the identity matrix. For the numerical field the
    matrix is built with scipy's Rotation, for the symbolic field with the
    Rodrigues formula on SymPy expressions.

    Args:
        axis (npt.ArrayLike): Rotation axis, 3 elements, any length.
        angle: Rotation angle in radians (float or SymPy expression).
        field: Scalar field back end, numerical if None.
    Returns:
        np.ndarray: 3x3 rotation matrix (float or object dtype).
    """
    field = field if field is not None else NumericField()
    axis_num = np.real(np.asarray(field.evaluate(axis), dtype=complex)).reshape(3)
    axis_norm = np.linalg.norm(axis_num)
    if axis_norm < ROTATION_AXIS_ZERO_THRESHOLD:
        logger.debug("Zero rotation axis, returning the identity matrix.")
        if field.symbolic:
            return np.array(sp.eye(3).tolist(), dtype=object)
        return np.eye(3)

    if not field.symbolic:
        unit = axis_num / axis_norm
        return Rotation.from_rotvec(unit * float(np.real(angle))).as_matrix()

    unit = sp.Matrix(np.asarray(field.lift(axis), dtype=object).reshape(3))
    unit = unit / sp.sqrt(unit.dot(unit))
    angle = sp.sympify(angle)
    cross_mat = sp.Matrix(
        [
            [0, -unit[2], unit[1]],
            [unit[2], 0, -unit[0]],
            [-unit[1], unit[0], 0],
        ]
    )
    rot = (
        sp.cos(angle) * sp.eye(3)
        + sp.sin(angle) * cross_mat
        + (1 - sp.cos(angle)) * unit * unit.T
    )
    return np.array(rot.tolist(), dtype=object)


def rotate_vectors(
    axis: npt.ArrayLike, angle, vectors: np.ndarray, field: Field = None
) -> np.ndarray:
    """Rotate every column of `vectors` (shape (3, ...)) about `axis`."""
    rot = rotation_matrix(axis, angle, field)
    return np.tensordot(rot, vectors, axes=([1], [0]))


def normal_vector(
    vectors: npt.ArrayLike,
    epsilon: float = NVECT_EPSILON,
    field: Field = None,
) -> np.ndarray:
    """
    Best normal vector of a set of moments.

    Real and imaginary parts of complex moments are both treated as vectors
    of the set. For a collinear set the common direction is returned, for a
    planar or three dimensional set the normal of the best fitting plane.

    Args:
        vectors (npt.ArrayLike): Moments with shape (3, ...).
        epsilon (float): Relative eigenvalue below which a direction is
            considered empty.
        field: Scalar field back end used to evaluate symbolic input.
    Returns:
        np.ndarray: Unit vector with 3 float elements.
    """
    field = field if field is not None else NumericField()
    values = np.asarray(field.evaluate(vectors), dtype=complex).reshape(3, -1)
    stack = np.hstack((values.real, values.imag))

    eigvals, eigvecs = la.eigh(stack @ stack.T)
    if eigvals[-1] <= 0:
        logger.warning("All moments are zero, using [0, 0, 1] as normal vector.")
        return np.array([0.0, 0.0, 1.0])

    if eigvals[1] / eigvals[-1] < epsilon:
        # collinear: point along the first non-zero moment
        direction = eigvecs[:, -1]
        projections = direction @ stack
        first = projections[np.abs(projections) > 0]
        if first.size and first[0] < 0:
            direction = -direction
        return direction

    normal = eigvecs[:, 0]
    handedness = cross3(values.real, values.imag).sum(axis=1)
    if np.linalg.norm(handedness) > 0:
        if normal @ handedness < 0:
            normal = -normal
    elif normal[np.argmax(np.abs(normal))] < 0:
        normal = -normal
    return normal


def rational_approximation(x: float, tol: float) -> Tuple[int, int]:
    """
    Continued fraction approximation of `x` within absolute tolerance `tol`.

    The expansion stops at the first convergent within `tol` of `x` or
    before the denominator exceeds 1/tol.

    Args:
        x (float): Number to approximate.
        tol (float): Absolute tolerance, positive.
    Returns:
        Tuple[int, int]: Numerator and (positive) denominator.
    """
    if not np.isfinite(x):
        raise InvalidParameterError(f"Cannot approximate non-finite value {x}.")
    if tol <= 0:
        raise InvalidParameterError("The supercell tolerance has to be positive.")

    max_den = max(1, int(np.floor(1.0 / tol)))
    a0 = int(np.floor(x))
    h_prev, h = 1, a0
    k_prev, k = 0, 1
    remainder = x - a0
    for _ in range(CONTINUED_FRACTION_MAX_STEPS):
        if abs(x - h / k) <= tol or remainder == 0:
            break
        inverse = 1.0 / remainder
        a = int(np.floor(inverse))
        remainder = inverse - a
        h_new, k_new = a * h + h_prev, a * k + k_prev
        if k_new > max_den:
            break
        h_prev, h = h, h_new
        k_prev, k = k, k_new
    return h, k


def auto_supercell(k_vectors: npt.ArrayLike, tol: float) -> Tuple[int, int, int]:
    """
    Smallest supercell in which all propagation vectors become integral.

    Every component of every k-vector is approximated by a rational number
    within `tol`; the supercell size along each axis is the least common
    multiple of the denominators found along that axis.

    Args:
        k_vectors (npt.ArrayLike): Propagation vectors with shape (nK, 3).
        tol (float): Absolute tolerance in r.l.u.
    Returns:
        Tuple[int, int, int]: Supercell multiplicity along a, b, c.
    """
    try:
        k_arr = np.asarray(k_vectors, dtype=float).reshape(-1, 3)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(
            "Automatic supercell sizing needs numerical propagation vectors."
        ) from e

    denominators = np.array(
        [[rational_approximation(c, tol)[1] for c in row] for row in k_arr],
        dtype=np.int64,
    )
    n_ext = np.lcm.reduce(denominators, axis=0)
    logger.info(f"Automatic supercell size for tolerance {tol}: {n_ext.tolist()}")
    return tuple(int(n) for n in n_ext)


def is_integral(values: npt.ArrayLike, epsilon: float) -> bool:
    """True if every element is within `epsilon` of an integer."""
    arr = np.real(np.asarray(values, dtype=complex))
    return bool(np.all(np.abs(arr - np.round(arr)) <= epsilon))


def normalize_rows(vectors: Sequence, field: Field = None) -> np.ndarray:
    """Scale every row of an (N, 3) array to unit length."""
    field = field if field is not None else NumericField()
    arr = np.asarray(vectors)
    norms = field.sqrt((arr * arr).sum(axis=1))
    if np.any(field.is_zero(norms)):
        raise InvalidParameterError("Normal vectors must have non-zero length.")
    return arr / norms[:, None]
