"""
Magnetic structure generator.

`generate_magnetic_structure` turns generation parameters into a new
`MagneticStructure` for a crystal without touching the crystal itself.
`SpinCrystal.genmagstr` wraps it and stores the result.
"""
import logging
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

from .crystal import ExtendedAtoms, MagneticAtoms, SpinCrystal, extend_lattice
from .exceptions import (
    CountMismatchError,
    InvalidParameterError,
    MomentSizeError,
    MultiKApproximationWarning,
    NoMagneticAtomError,
    SupercellTooSmallWarning,
)
from .field import get_field, is_complex_array
from .linalg import (
    ROTATION_AXIS_ZERO_THRESHOLD,
    auto_supercell,
    cross3,
    is_integral,
    normal_vector,
    normalize_rows,
    rotate_vectors,
)
from .schema import GenerationBase, parse_generation_parameters
from .structure import MagneticStructure

logger = logging.getLogger(__name__)

# modes that replace the moments entirely, a page count that does not fit
# the k-vectors is not an error for them
_S_INDEPENDENT_MODES = ("tile", "random", "func", "fourier")


def _warn(message: str, category) -> None:
    logger.warning(message)
    warnings.warn(message, category, stacklevel=3)


@dataclass
class _Context:
    """Working state shared by the mode handlers."""

    crystal: SpinCrystal
    mode: str
    params: GenerationBase
    field: Any
    stored: MagneticStructure
    matom: MagneticAtoms
    ext: ExtendedAtoms
    n_ext: Tuple[int, int, int]
    k: np.ndarray
    n: np.ndarray
    S: np.ndarray
    rng: np.random.Generator

    @property
    def n_mag(self) -> int:
        return self.matom.count

    @property
    def n_cells(self) -> int:
        return int(np.prod(self.n_ext))

    @property
    def n_mag_ext(self) -> int:
        return self.n_mag * self.n_cells

    def zero_k(self) -> np.ndarray:
        return self.field.lift(np.zeros((1, 3)))


# --- Input handling ---
def _as_rows(values, name: str) -> np.ndarray:
    """Reshape propagation or normal vectors to (N, 3)."""
    arr = np.asarray(values)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InvalidParameterError(f"'{name}' must have shape (N, 3), got {np.shape(values)}")
    return arr


def _as_moments(values) -> np.ndarray:
    """Moments with shape (3, nSpin, nPage)."""
    arr = np.asarray(values)
    if arr.ndim == 1 and arr.size == 3:
        arr = arr.reshape(3, 1)
    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    if arr.ndim != 3 or arr.shape[0] != 3:
        raise MomentSizeError(f"Moments must have shape (3, nSpin[, nK]), got {arr.shape}")
    return arr


def _lu_to_xyz(crystal: SpinCrystal, values: np.ndarray) -> np.ndarray:
    bv = crystal.basis_vectors(normalize=True)
    if np.asarray(values).dtype == object:
        bv = bv.astype(object)
    return np.tensordot(bv, values, axes=([1], [0]))


def _resolve_n_ext(value, k_vectors: np.ndarray, field) -> Tuple[int, int, int]:
    """Three integers used as given, a single number is a supercell tolerance."""
    arr = np.asarray(value).reshape(-1)
    if arr.size == 1:
        tol = float(np.real(complex(arr[0])))
        k_num = np.real(field.evaluate(k_vectors)) if field.symbolic else k_vectors
        return auto_supercell(k_num, tol)
    if arr.size != 3:
        raise InvalidParameterError(f"'nExt' must have 1 or 3 elements, got {arr.size}")
    try:
        values = np.asarray(arr, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"'nExt' must be numerical, got {arr.tolist()}") from e
    if np.any(values < 1) or np.any(values != np.round(values)):
        raise InvalidParameterError(f"'nExt' must hold integers >= 1, got {arr.tolist()}")
    return tuple(int(v) for v in values)


def _embed_real_moments(ctx: _Context) -> np.ndarray:
    """S + i (n x S) for every k-vector page."""
    S = ctx.S
    n_k = ctx.k.shape[0]
    if S.shape[2] != n_k:
        if ctx.mode in _S_INDEPENDENT_MODES:
            logger.debug(f"Skipping complex embedding of {S.shape[2]} moment pages for {n_k} k-vectors.")
            return S
        raise CountMismatchError(
            f"Real moments have {S.shape[2]} pages but {n_k} k-vectors are given."
        )
    normals = ctx.n.T[:, np.newaxis, :]
    return S + cross3(normals, S) * ctx.field.I


# --- Mode handlers ---
def _tile(ctx: _Context):
    S = ctx.S
    if tuple(ctx.stored.n_ext) != tuple(ctx.n_ext) or S.shape[1] != ctx.n_mag_ext:
        logger.debug(f"Tiling {ctx.n_mag} unit cell moments over {ctx.n_cells} cells.")
        S = np.tile(S[:, : ctx.n_mag, :], (1, ctx.n_cells, 1))
    S = ctx.field.real(S.sum(axis=2))[:, :, np.newaxis]
    return S, ctx.zero_k(), ctx.n_ext


def _random(ctx: _Context):
    vectors = ctx.rng.standard_normal((ctx.n_mag_ext, 3))
    vectors = vectors / np.linalg.norm(vectors, axis=1)[:, np.newaxis]
    S = (vectors * ctx.ext.Sext[:, np.newaxis]).T
    if ctx.field.symbolic:
        S = ctx.field.lift(S)
    return S[:, :, np.newaxis], ctx.zero_k(), ctx.n_ext


def _helical(ctx: _Context):
    field = ctx.field
    S0 = ctx.S
    n_ext_arr = np.asarray(ctx.n_ext)
    k_ext = ctx.k * n_ext_arr[np.newaxis, :]

    k_ext_num = np.real(field.evaluate(k_ext, ctx.rng))
    if not is_integral(k_ext_num, ctx.params.epsilon) and ctx.n_cells > 1:
        _warn(
            f"In the extended unit cell k is still larger than epsilon: {k_ext_num.tolist()}",
            SupercellTooSmallWarning,
        )

    n_spin = S0.shape[1]
    if n_spin != ctx.n_mag and n_spin == 1:
        r = ctx.ext.RRext
        if not ctx.params.r0:
            r = r - r[:, :1]
    elif n_spin == ctx.n_mag:
        r = np.floor(ctx.ext.RRext * n_ext_arr[:, np.newaxis]) / n_ext_arr[:, np.newaxis]
    else:
        raise MomentSizeError(
            f"Wrong number of input spins: {n_spin}, expected 1 or {ctx.n_mag}."
        )

    if S0.shape[2] not in (1, ctx.k.shape[0]):
        raise CountMismatchError(
            f"Moments have {S0.shape[2]} pages but {ctx.k.shape[0]} k-vectors are given."
        )

    if field.symbolic:
        r = field.lift(r)
    # phase of every supercell atom for every k, shape (nMagExt, nK)
    phi = (r.T @ k_ext.T) * (2 * field.pi)
    index = np.arange(ctx.n_mag_ext) % n_spin
    S = S0[:, index, :] * field.exp(phi * (-field.I))[np.newaxis, :, :]
    return S, ctx.k, ctx.n_ext


def _direct(ctx: _Context):
    S = ctx.S
    n_ext = ctx.n_ext
    n_mag_ext = ctx.n_mag_ext
    if S.shape[1] == ctx.n_mag:
        n_ext = (1, 1, 1)
        n_mag_ext = ctx.n_mag
    if S.shape[1] != n_mag_ext:
        raise MomentSizeError(
            f"Wrong size of S: {S.shape[1]} moments for {n_mag_ext} magnetic atoms in the supercell."
        )
    return S, ctx.k, n_ext


def _is_zero_angle(phi, field) -> bool:
    if isinstance(phi, (complex, np.complexfloating)):
        return False
    if field.symbolic:
        return bool(field.is_zero(np.asarray([phi], dtype=object))[0])
    return float(phi) == 0


def _align_first_moment(S: np.ndarray, n0: np.ndarray, field):
    """Angle about n0 that rotates the first moment onto [1, 0, 0]."""
    S1 = field.real(S[:, 0, 0])
    S1 = S1 - n0 * (n0 @ S1)
    S1 = S1 / field.sqrt(np.asarray([S1 @ S1]))[0]
    x_axis = np.array([1, 0, 0])
    return -field.atan2(cross3(n0, x_axis) @ S1, x_axis @ S1)


def _rotate(ctx: _Context):
    field = ctx.field
    params = ctx.params
    S = ctx.S
    n0 = ctx.n[0]

    phi = params.phi
    if _is_zero_angle(phi, field):
        phi = field.lift(np.asarray([params.phid]))[0] * field.pi / 180
    if isinstance(phi, (complex, np.complexfloating)):
        phi = _align_first_moment(S, n0, field)
        logger.debug(f"Rotation angle aligning the first moment with x: {phi}")

    if _is_zero_angle(phi, field):
        k_ext = np.real(field.evaluate(ctx.k * np.asarray(ctx.n_ext)[np.newaxis, :], ctx.rng))
        commensurate = is_integral(k_ext, params.epsilon)
        moments = S if commensurate else field.real(S)
        structure_normal = normal_vector(moments, field=field)
        n_num = np.real(field.evaluate(n0, ctx.rng))
        n_rot = cross3(n_num, structure_normal)
        angle = -np.arctan2(np.linalg.norm(cross3(structure_normal, n_num)), structure_normal @ n_num)
        if np.linalg.norm(n_rot) < ROTATION_AXIS_ZERO_THRESHOLD and structure_normal @ n_num < 0:
            # antiparallel normals, any perpendicular axis works
            trial = np.eye(3)[np.argmin(np.abs(n_num))]
            n_rot = cross3(n_num, trial)
        logger.debug(f"Aligning structure normal {structure_normal} with {n_num}, angle {angle:.4f}")
    else:
        n_rot = n0
        angle = phi

    S = rotate_vectors(n_rot, angle, S, field)
    return S, field.lift(ctx.stored.k), ctx.n_ext


def _func(ctx: _Context):
    field = ctx.field
    params = ctx.params
    template = np.tile(ctx.matom.S, ctx.n_cells)
    x0 = params.x0
    if field.symbolic:
        template = field.lift(template)
        x0 = field.lift(x0)

    S, k, _ = params.func(template, x0)
    S = np.asarray(S)
    if S.ndim == 2:
        S = S[:, :, np.newaxis]
    if S.ndim != 3 or S.shape[0] != 3 or S.shape[1] != ctx.n_mag_ext:
        raise MomentSizeError(
            f"Function returned moments with shape {S.shape}, expected (3, {ctx.n_mag_ext})."
        )
    return S, _as_rows(k, "k"), ctx.n_ext


def _fourier(ctx: _Context):
    field = ctx.field
    pairs = _fourier_pairs(ctx)
    n_fourier = pairs[0][0].shape[1]
    n_ext_arr = np.asarray(ctx.n_ext)

    if n_fourier != ctx.n_mag and n_fourier == 1:
        RR = ctx.ext.RRext * n_ext_arr[:, np.newaxis]
    elif n_fourier == ctx.n_mag:
        RR = np.floor(ctx.ext.RRext * n_ext_arr[:, np.newaxis])
    else:
        raise MomentSizeError(
            f"Wrong number of input Fourier components: {n_fourier}, expected 1 or {ctx.n_mag}."
        )
    if field.symbolic:
        RR = field.lift(RR)

    index = np.arange(ctx.n_mag_ext) % n_fourier
    S = None
    for F, k_vec in pairs:
        theta = (k_vec @ RR) * (2 * field.pi)
        F_ext = F[:, index]
        term = (
            F_ext * field.exp(theta * field.I)[np.newaxis, :]
            + field.conj(F_ext) * field.exp(theta * (-field.I))[np.newaxis, :]
        ) / 2
        S = term if S is None else S + term

    _warn(
        f"The {len(pairs)}-k structure is only approximated on the {ctx.n_ext} supercell.",
        MultiKApproximationWarning,
    )
    return field.real(S)[:, :, np.newaxis], ctx.zero_k(), ctx.n_ext


def _fourier_pairs(ctx: _Context):
    pairs = []
    n_fourier = None
    for F, k_vec in ctx.params.fk:
        F = np.asarray(F)
        if F.ndim == 1 and F.size == 3:
            F = F.reshape(3, 1)
        if F.ndim != 2 or F.shape[0] != 3:
            raise MomentSizeError(f"Fourier components must have shape (3, nF), got {F.shape}")
        if n_fourier is not None and F.shape[1] != n_fourier:
            raise MomentSizeError("All Fourier component matrices must have the same number of columns.")
        n_fourier = F.shape[1]
        k_vec = _as_rows(k_vec, "Fk")
        if k_vec.shape[0] != 1:
            raise InvalidParameterError("Every Fourier component needs exactly one k-vector.")
        if ctx.params.unit_s == "lu":
            F = _lu_to_xyz(ctx.crystal, F)
        pairs.append((ctx.field.lift(F), ctx.field.lift(k_vec[0])))
    return pairs


MODE_HANDLERS: Dict[str, Callable] = {
    "tile": _tile,
    "random": _random,
    "helical": _helical,
    "direct": _direct,
    "rotate": _rotate,
    "func": _func,
    "fourier": _fourier,
}


def generate_magnetic_structure(
    crystal: SpinCrystal,
    params,
    rng: Optional[np.random.Generator] = None,
) -> MagneticStructure:
    """
    Generate a magnetic structure for a crystal.

    The crystal is only read: its basis vectors, magnetic atoms and the
    currently stored structure (used as default for nExt, k and the moments).

    Args:
        crystal (SpinCrystal): Crystal with at least one magnetic atom.
        params: Generation parameter model or a dict of options.
        rng (Optional[np.random.Generator]): Random source of the random mode.
    Returns:
        MagneticStructure: The new structure.
    Raises:
        NoMagneticAtomError: If the crystal has no atom with S > 0.
        InvalidParameterError, CountMismatchError, MomentSizeError: For
            inconsistent inputs.
    """
    matom = crystal.matom()
    if matom.count == 0:
        raise NoMagneticAtomError("There are no magnetic atoms (S>0) in the unit cell!")

    params = parse_generation_parameters(params)
    rng = rng if rng is not None else np.random.default_rng()
    stored = crystal.mag_str
    symbolic = crystal.symbolic or matom.S.dtype == object
    field = get_field(symbolic)
    mode = "tile" if params.mode == "extend" else params.mode
    logger.info(f"Generating magnetic structure, mode '{mode}'.")

    # moments, the stored Fourier components if none are given
    if params.S is None:
        S = _as_moments(stored.F)
        complex_moments = True
    else:
        S = _as_moments(params.S)
        complex_moments = is_complex_array(S)
        if params.unit_s == "lu":
            S = _lu_to_xyz(crystal, S)

    k = _as_rows(params.k if params.k is not None else stored.k, "k")

    sizing_k = k
    if mode == "fourier":
        sizing_k = np.vstack([_as_rows(k_vec, "Fk") for _, k_vec in params.fk])
    n_ext = _resolve_n_ext(params.n_ext if params.n_ext is not None else stored.n_ext, sizing_k, field)
    ext = extend_lattice(n_ext, matom)
    logger.debug(f"Supercell {n_ext} with {ext.count} magnetic atoms.")

    n = _as_rows(params.n if params.n is not None else np.tile([0.0, 0.0, 1.0], (k.shape[0], 1)), "n")
    if n.shape[0] != k.shape[0]:
        raise CountMismatchError(
            f"The number of normal vectors ({n.shape[0]}) has to be equal to the number of k-vectors ({k.shape[0]})."
        )
    if field.symbolic:
        n = field.lift(n)
    n = normalize_rows(n, field)

    if mode == "tile" and matom.count > S.shape[1]:
        logger.info(f"Only {S.shape[1]} moments for {matom.count} magnetic atoms, generating a random structure.")
        mode = "random"

    if field.symbolic:
        k = field.lift(k)
        S = field.lift(S)
        n = field.lift(n)

    ctx = _Context(
        crystal=crystal,
        mode=mode,
        params=params,
        field=field,
        stored=stored,
        matom=matom,
        ext=ext,
        n_ext=n_ext,
        k=k,
        n=n,
        S=S,
        rng=rng,
    )
    if not complex_moments:
        ctx.S = _embed_real_moments(ctx)

    F, k_out, n_ext_out = MODE_HANDLERS[mode](ctx)

    n_cells = int(np.prod(n_ext_out))
    if params.norm:
        F = _normalize(F, np.tile(matom.S, n_cells), field)

    if field.symbolic:
        F = field.simplify(F)
        k_out = field.simplify(k_out)
    else:
        F = np.asarray(F, dtype=complex)
        k_out = np.real(np.asarray(k_out, dtype=complex))

    structure = MagneticStructure(n_ext=n_ext_out, k=k_out, F=F)
    logger.info(f"Generated {structure}")
    return structure


def _normalize(F: np.ndarray, spins: np.ndarray, field) -> np.ndarray:
    """Scale every moment to the spin quantum number of its atom."""
    summed = field.real(F.sum(axis=2))
    norm_s = field.sqrt((summed * summed).sum(axis=0)) / field.lift(spins)
    norm_s = np.where(field.is_zero(norm_s), 1, norm_s)
    return F / norm_s[np.newaxis, :, np.newaxis]
