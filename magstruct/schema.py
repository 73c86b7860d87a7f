import logging
from typing import Any, Dict, List, Optional, Tuple, Union, Literal

import numpy as np
import sympy as sp
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from typing_extensions import Annotated

from .exceptions import InvalidParameterError, UnknownModeError
from .field import sympify_text
from .functions import gm_spherical3d, resolve_function

logger = logging.getLogger(__name__)


# --- Primitive Types ---
Vector3 = Union[List[float], Tuple[float, float, float]]
# spin length can be a number or a symbol name (symbolic crystals)
SpinValue = Union[float, str]


def _parse_scalar(value: Any) -> Any:
    """Number, complex number, or SymPy expression from a config value."""
    if isinstance(value, (int, float, complex, np.number, sp.Basic)):
        return value
    if isinstance(value, str):
        text = value.replace(" ", "")
        # complex() alone would read a bare "j" or "J" as the imaginary unit
        if any(ch.isdigit() for ch in text):
            for convert in (float, complex):
                try:
                    return convert(text)
                except ValueError:
                    pass
        expr = sympify_text(value)
        if not expr.is_number:
            return expr
        return complex(expr) if expr.has(sp.I) else float(expr)
    raise ValueError(f"Cannot interpret {value!r} as a number.")


def to_array(value: Any) -> Optional[np.ndarray]:
    """
    Convert nested lists (numbers, complex strings or SymPy expressions)
    to a NumPy array: float, complex, or object for symbolic entries.
    """
    if value is None or isinstance(value, np.ndarray):
        return value
    if isinstance(value, (int, float, complex, str, sp.Basic)):
        value = [value]
    try:
        raw = np.array(value, dtype=object)
    except ValueError as e:
        raise ValueError(f"Ragged array input: {e}") from e
    parsed = np.empty(raw.shape, dtype=object)
    for idx, item in np.ndenumerate(raw):
        parsed[idx] = _parse_scalar(item)

    items = list(parsed.flat)
    if any(isinstance(v, sp.Basic) and not v.is_number for v in items):
        return parsed
    if any(isinstance(v, (complex, np.complexfloating)) or (isinstance(v, sp.Basic) and v.has(sp.I)) for v in items):
        return parsed.astype(complex)
    return parsed.astype(float)


# --- Crystal Structure ---
class LatticeParameters(BaseModel):
    a: float
    b: float
    c: float
    alpha: float = 90.0
    beta: float = 90.0
    gamma: float = 90.0


class AtomConfig(BaseModel):
    label: str
    pos: Vector3
    spin_S: SpinValue = 0.0


class CrystalStructureConfig(BaseModel):
    lattice_parameters: Optional[LatticeParameters] = None
    # raw vectors [[ax, ay, az], [bx, by, bz], [cx, cy, cz]]
    lattice_vectors: Optional[List[Vector3]] = None
    atoms_uc: List[AtomConfig] = Field(default_factory=list)
    symbolic: bool = False

    @model_validator(mode='after')
    def check_structure_source(self):
        if not (self.lattice_parameters or self.lattice_vectors):
            raise ValueError("Must provide either 'lattice_parameters' or 'lattice_vectors'.")
        if not self.atoms_uc:
            raise ValueError("Must provide at least one atom in 'atoms_uc'.")
        return self


# --- Generation Parameters ---
class GenerationBase(BaseModel):
    """Fields shared by every generation mode."""
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    mode: str
    n_ext: Optional[Any] = Field(default=None, alias='nExt')
    k: Optional[Any] = None
    n: Optional[Any] = None
    S: Optional[Any] = None
    unit_s: Literal['xyz', 'lu'] = Field(default='xyz', alias='unitS')
    epsilon: float = 1e-5
    norm: bool = True

    @field_validator('n_ext', 'k', 'n', 'S', mode='before')
    @classmethod
    def convert_arrays(cls, value):
        return to_array(value)

    @field_validator('unit_s', mode='before')
    @classmethod
    def lower_unit(cls, value):
        return value.lower() if isinstance(value, str) else value


class TileParameters(GenerationBase):
    mode: Literal['tile', 'extend'] = 'tile'


class RandomParameters(GenerationBase):
    mode: Literal['random']


class DirectParameters(GenerationBase):
    mode: Literal['direct']


class HelicalParameters(GenerationBase):
    mode: Literal['helical']
    r0: bool = True


class RotateParameters(GenerationBase):
    mode: Literal['rotate']
    # a complex phi asks for aligning the first moment with [1, 0, 0]
    phi: Any = 0.0
    phid: float = 0.0

    @field_validator('phi', mode='before')
    @classmethod
    def convert_phi(cls, value):
        value = _parse_scalar(value)
        if isinstance(value, (complex, np.complexfloating)) and value.imag == 0:
            return float(value.real)
        return value


class FuncParameters(GenerationBase):
    mode: Literal['func']
    func: Any = gm_spherical3d
    x0: Any

    @field_validator('func', mode='before')
    @classmethod
    def convert_func(cls, value):
        try:
            return resolve_function(value)
        except InvalidParameterError as e:
            raise ValueError(str(e)) from e

    @field_validator('x0', mode='before')
    @classmethod
    def convert_x0(cls, value):
        if value is None:
            raise ValueError("The 'func' mode needs the parameter vector 'x0'.")
        return to_array(value).reshape(-1)


class FourierParameters(GenerationBase):
    mode: Literal['fourier']
    fk: List[Any] = Field(alias='Fk')

    @field_validator('fk', mode='before')
    @classmethod
    def convert_fk(cls, value):
        """Accept [(F1, k1), (F2, k2), ...] or the flat form [F1, k1, F2, k2, ...]."""
        if not isinstance(value, (list, tuple)) or len(value) == 0:
            raise ValueError("'Fk' must be a non-empty list of (F, k) pairs.")
        if all(isinstance(item, (list, tuple)) and len(item) == 2 and not np.isscalar(item[0]) for item in value) \
                and not _looks_flat(value):
            pairs = [tuple(item) for item in value]
        else:
            if len(value) % 2:
                raise ValueError("Flat 'Fk' input needs an even number of elements.")
            pairs = list(zip(value[0::2], value[1::2]))
        return [(to_array(F), to_array(k)) for F, k in pairs]


def _looks_flat(value) -> bool:
    # flat form: second element is a plain 3-vector of numbers
    second = np.asarray(value[1], dtype=object) if len(value) > 1 else None
    return second is not None and second.ndim == 1 and second.size == 3 and \
        np.asarray(value[0], dtype=object).ndim == 2


GenerationParameters = Annotated[
    Union[
        TileParameters,
        RandomParameters,
        DirectParameters,
        HelicalParameters,
        RotateParameters,
        FuncParameters,
        FourierParameters,
    ],
    Field(discriminator='mode'),
]

_GENERATION_ADAPTER = TypeAdapter(GenerationParameters)

MODE_MODELS = {
    'tile': TileParameters,
    'extend': TileParameters,
    'random': RandomParameters,
    'direct': DirectParameters,
    'helical': HelicalParameters,
    'rotate': RotateParameters,
    'func': FuncParameters,
    'fourier': FourierParameters,
}


def _accepted_keys(model) -> set:
    keys = set()
    for name, info in model.model_fields.items():
        keys.add(name)
        if info.alias:
            keys.add(info.alias)
    return keys


def parse_generation_parameters(options: Union[Dict[str, Any], GenerationBase]) -> GenerationBase:
    """
    Validate generation options and return the model of the selected mode.

    Args:
        options: Keyword options (mode, nExt, k, n, S, ...) or an already
            validated parameter model.
    Returns:
        GenerationBase: One of the mode-specific parameter models.
    Raises:
        UnknownModeError: If the mode keyword is not recognized.
        InvalidParameterError: For any other invalid option.
    """
    if isinstance(options, GenerationBase):
        return options

    options = dict(options)
    mode = options.get('mode', 'tile')
    if not isinstance(mode, str) or mode.lower() not in MODE_MODELS:
        raise UnknownModeError(
            f"Wrong mode value {mode!r}, expected one of {sorted(MODE_MODELS)}."
        )
    options['mode'] = mode.lower()

    model = MODE_MODELS[options['mode']]
    ignored = set(options) - _accepted_keys(model)
    if ignored:
        logger.warning(f"Ignoring options {sorted(ignored)} not used by mode '{options['mode']}'.")
        for key in ignored:
            options.pop(key)

    try:
        params = _GENERATION_ADAPTER.validate_python(options)
    except ValidationError as e:
        raise InvalidParameterError(f"Invalid generation parameters: {e}") from e
    logger.debug(f"Parsed generation parameters for mode '{params.mode}'.")
    return params


# --- Main Configuration ---
class MagStructConfig(BaseModel):
    crystal_structure: CrystalStructureConfig
    magnetic_structure: Dict[str, Any] = Field(default_factory=lambda: {'mode': 'random'})
    seed: Optional[int] = None

    @model_validator(mode='after')
    def check_generation_parameters(self):
        # raises ValueError subclasses, reported as validation errors
        parse_generation_parameters(self.magnetic_structure)
        return self
