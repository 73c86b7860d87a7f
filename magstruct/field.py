"""
Scalar-field back ends for the structure generator.

The generator is written once against the small interface below. The
numerical back end works on float/complex NumPy arrays, the symbolic one on
NumPy object arrays holding SymPy expressions.
"""
import logging
from typing import Any, Optional, Union

import numpy as np
import numpy.typing as npt
import sympy as sp

logger = logging.getLogger(__name__)

ArrayLike = Union[npt.ArrayLike, sp.Basic]

# single letters SymPy would otherwise read as singletons or functions
_PLAIN_SYMBOLS = {name: sp.Symbol(name) for name in ("S", "N", "O", "Q")}


def sympify_text(text: str) -> sp.Basic:
    """Parse an expression string, S, N, O and Q are plain symbols."""
    return sp.sympify(text, locals=_PLAIN_SYMBOLS)


def _to_sym(value: Any) -> sp.Basic:
    """Convert a single number or string to an exact SymPy expression."""
    if isinstance(value, sp.Basic):
        return value
    if isinstance(value, str):
        return sympify_text(value)
    if isinstance(value, (complex, np.complexfloating)):
        re_part = sp.nsimplify(float(np.real(value)), rational=True)
        im_part = sp.nsimplify(float(np.imag(value)), rational=True)
        return re_part + sp.I * im_part
    if isinstance(value, (bool, np.bool_)):
        return sp.Integer(int(value))
    if isinstance(value, (int, np.integer)):
        return sp.Integer(int(value))
    return sp.nsimplify(float(value), rational=True)


def _elementwise(func, otype=object):
    return np.vectorize(func, otypes=[otype])


def is_complex_array(values: Any) -> bool:
    """
    Check whether moments are given in complex (Fourier) form.

    Numerical arrays are complex when their dtype is complex. Object arrays
    are complex when any element carries an imaginary unit.
    """
    arr = np.asarray(values)
    if arr.dtype != object:
        return bool(np.iscomplexobj(arr))
    for item in arr.flat:
        if isinstance(item, (complex, np.complexfloating)):
            return True
        if isinstance(item, sp.Basic) and item.has(sp.I):
            return True
    return False


class NumericField:
    """Double precision arithmetic on NumPy arrays."""

    symbolic = False
    pi = np.pi
    I = 1j

    def lift(self, values: ArrayLike) -> np.ndarray:
        arr = np.asarray(values)
        if arr.dtype == object:
            arr = arr.astype(complex)
        if np.iscomplexobj(arr) or np.issubdtype(arr.dtype, np.floating):
            return arr
        return arr.astype(float)

    def exp(self, x):
        return np.exp(x)

    def conj(self, x):
        return np.conj(x)

    def real(self, x):
        return np.real(x)

    def sqrt(self, x):
        return np.sqrt(x)

    def atan2(self, y, x) -> float:
        return float(np.arctan2(np.real(y), np.real(x)))

    def simplify(self, x):
        return x

    def is_zero(self, x) -> np.ndarray:
        return np.asarray(x) == 0

    def evaluate(self, x, rng: Optional[np.random.Generator] = None) -> np.ndarray:
        return np.asarray(x, dtype=complex)


class SymbolicField:
    """
    Exact arithmetic using SymPy expressions stored in NumPy object arrays.

    Floating point inputs are converted to rationals on lifting so that
    commensurate propagation vectors stay exact.
    """

    symbolic = True
    pi = sp.pi
    I = sp.I

    _lift = staticmethod(_elementwise(_to_sym))
    _exp = staticmethod(_elementwise(sp.exp))
    _conj = staticmethod(_elementwise(sp.conjugate))
    _re = staticmethod(_elementwise(sp.re))
    _sqrt = staticmethod(_elementwise(sp.sqrt))
    _simplify = staticmethod(_elementwise(sp.simplify))

    def lift(self, values: ArrayLike) -> np.ndarray:
        arr = np.asarray(values, dtype=object)
        if arr.size == 0:
            return arr
        return self._lift(arr)

    def exp(self, x):
        return self._exp(np.asarray(x, dtype=object))

    def conj(self, x):
        return self._conj(np.asarray(x, dtype=object))

    def real(self, x):
        return self._re(np.asarray(x, dtype=object))

    def sqrt(self, x):
        return self._sqrt(np.asarray(x, dtype=object))

    def atan2(self, y, x) -> sp.Expr:
        return sp.atan2(sp.re(_to_sym(y)), sp.re(_to_sym(x)))

    def simplify(self, x):
        arr = np.asarray(x, dtype=object)
        if arr.size == 0:
            return arr
        return self._simplify(arr)

    def is_zero(self, x) -> np.ndarray:
        check = _elementwise(lambda e: sp.simplify(e).is_zero is True, bool)
        arr = np.asarray(x, dtype=object)
        if arr.size == 0:
            return np.zeros(arr.shape, dtype=bool)
        return check(arr)

    def evaluate(self, x, rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """
        Numerical value of an expression array.

        Free symbols are replaced by random numbers in [0, 1), so branch
        decisions taken on the result hold for generic parameter values.
        """
        rng = rng if rng is not None else np.random.default_rng()
        arr = np.asarray(x, dtype=object)
        free = set()
        for item in arr.flat:
            if isinstance(item, sp.Basic):
                free |= item.free_symbols
        values = {sym: sp.Float(rng.random()) for sym in sorted(free, key=str)}
        if values:
            logger.debug(f"Substituting random values for symbols {sorted(map(str, values))}")
        out = np.empty(arr.shape, dtype=complex)
        for idx, item in np.ndenumerate(arr):
            expr = sp.sympify(item).subs(values)
            out[idx] = complex(sp.N(expr))
        return out


def get_field(symbolic: bool = False) -> Union[NumericField, SymbolicField]:
    """Return the scalar-field back end for numeric or symbolic mode."""
    return SymbolicField() if symbolic else NumericField()
