# -*- coding: utf-8 -*-
"""
Reciprocal space sampling: rectilinear grids and linear scans.
"""
import logging
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import numpy.typing as npt

from .exceptions import InvalidParameterError

logger = logging.getLogger(__name__)

# slack when counting the points of a start:step:stop range
RANGE_ROUNDING_TOLERANCE: float = 1e-10


def _arange_inclusive(start: float, step: float, stop: float) -> np.ndarray:
    """start:step:stop with the end point included when it is hit."""
    if step == 0:
        raise InvalidParameterError("Bin step has to be non-zero.")
    count = int(np.floor((stop - start) / step + RANGE_ROUNDING_TOLERANCE)) + 1
    if count <= 0:
        return np.zeros(0)
    return start + step * np.arange(count)


def _bin_coordinates(bin_spec: Sequence[float], n_ext: float, explicit_allowed: bool) -> np.ndarray:
    values = np.asarray(bin_spec, dtype=float).reshape(-1)
    if values.size == 1:
        return values
    if values.size == 2:
        return _arange_inclusive(values[0], 1.0 / n_ext, values[1])
    if values.size == 3:
        return _arange_inclusive(values[0], values[1], values[2])
    if not explicit_allowed:
        raise InvalidParameterError("Each bin has to be a 1, 2 or 3 element vector!")
    return values


def build_q_grid(
    u: npt.ArrayLike = (1.0, 0.0, 0.0),
    v: npt.ArrayLike = (0.0, 1.0, 0.0),
    w: npt.ArrayLike = (0.0, 0.0, 1.0),
    uoffset: npt.ArrayLike = (0.0, 0.0, 0.0),
    ubin: Optional[Sequence[float]] = None,
    vbin: Optional[Sequence[float]] = None,
    wbin: Optional[Sequence[float]] = None,
    n_ext: npt.ArrayLike = (1, 1, 1),
    mat: Optional[npt.ArrayLike] = None,
    bins: Optional[List[Sequence[float]]] = None,
) -> np.ndarray:
    """
    Rectilinear grid of Q points spanned by up to three axis vectors.

    Every bin is a single fixed coordinate [c], a range [start, stop] stepped
    by 1/n_ext along that axis, or a range [start, step, stop]. When `bins`
    is given it replaces ubin, vbin and wbin, and a bin with more than three
    numbers is taken as an explicit list of coordinates.

    Args:
        u, v, w (npt.ArrayLike): Axis vectors, 3 elements each.
        uoffset (npt.ArrayLike): Offset added to every grid point, a fourth
            (energy) element is ignored.
        ubin, vbin, wbin (Optional[Sequence[float]]): Bins along u, v, w.
            Only a contiguous prefix (u; u, v; u, v, w) may be given.
        n_ext (npt.ArrayLike): Step divisors of two-element bins per axis.
        mat (Optional[npt.ArrayLike]): Axis matrix, one axis vector per
            column, overrides u, v and w.
        bins (Optional[List[Sequence[float]]]): Bins of all axes at once.

    Returns:
        np.ndarray: Q points with shape (3, n1[, n2[, n3]]).

    Raises:
        InvalidParameterError: For a non-contiguous set of bins, a bin of
            the wrong length or an axis matrix with too few columns.
    """
    n_ext_arr = np.asarray(n_ext, dtype=float).reshape(-1)

    if bins is None:
        given = [b is not None and np.size(b) > 0 for b in (ubin, vbin, wbin)]
        if given not in ([True, False, False], [True, True, False], [True, True, True]):
            raise InvalidParameterError(
                "Bins must be given for u, for u and v, or for u, v and w."
            )
        bin_list = [b for b, g in zip((ubin, vbin, wbin), given) if g]
        explicit_allowed = False
    else:
        bin_list = list(bins)
        explicit_allowed = True
    n_dim = len(bin_list)
    if not 1 <= n_dim <= 3:
        raise InvalidParameterError(f"Between 1 and 3 bins are needed, got {n_dim}.")
    if n_ext_arr.size < n_dim:
        raise InvalidParameterError(f"n_ext needs at least {n_dim} elements.")

    axes_coords = [
        _bin_coordinates(b, n_ext_arr[i], explicit_allowed) for i, b in enumerate(bin_list)
    ]
    mesh = np.meshgrid(*axes_coords, indexing="ij")

    if mat is None:
        ax_mat = np.column_stack(
            [np.asarray(vec, dtype=float).reshape(3) for vec in (u, v, w)]
        )
    else:
        ax_mat = np.asarray(mat, dtype=float)
        if ax_mat.ndim != 2 or ax_mat.shape[1] < n_dim:
            raise InvalidParameterError(
                f"The axis matrix needs at least {n_dim} columns, got shape {ax_mat.shape}."
            )
    ax_mat = ax_mat[:, :n_dim]

    offset = np.asarray(uoffset, dtype=float).reshape(-1)[:3]
    if offset.size < 3:
        offset = np.pad(offset, (0, 3 - offset.size))

    grid = np.tensordot(ax_mat, np.stack(mesh), axes=([1], [0]))
    grid = grid + offset.reshape((3,) + (1,) * n_dim)
    logger.debug(f"Built Q grid with shape {grid.shape}")
    return grid


def build_q_path(
    points: Sequence[Union[str, npt.ArrayLike]],
    points_per_segment: int,
    high_symmetry_points: Optional[Dict[str, npt.ArrayLike]] = None,
) -> np.ndarray:
    """
    Linear scan through a list of Q points.

    Args:
        points: Corner points of the scan, coordinates or names looked up in
            `high_symmetry_points`.
        points_per_segment (int): Number of Q points per segment.
        high_symmetry_points (Optional[Dict[str, npt.ArrayLike]]): Named points.

    Returns:
        np.ndarray: Q points with shape (N_total, 3), the end point of every
        segment but the last one is not repeated.
    """
    if len(points) < 2:
        raise InvalidParameterError("A Q path needs at least two points.")
    if points_per_segment <= 0:
        raise InvalidParameterError("points_per_segment must be positive.")

    coords = []
    for point in points:
        if isinstance(point, str):
            if not high_symmetry_points or point not in high_symmetry_points:
                raise InvalidParameterError(f"Point name '{point}' not found in high_symmetry_points.")
            point = high_symmetry_points[point]
        coord = np.asarray(point, dtype=float).reshape(-1)
        if coord.size != 3:
            raise InvalidParameterError(f"Q points need 3 coordinates, got {coord.size}")
        coords.append(coord)

    segments = []
    n_segments = len(coords) - 1
    for i in range(n_segments):
        # endpoint only for the last segment
        segments.append(
            np.linspace(coords[i], coords[i + 1], points_per_segment, endpoint=(i == n_segments - 1))
        )
    return np.vstack(segments)
