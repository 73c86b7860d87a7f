"""
pyMagStruct: magnetic structure generation on crystal supercells.
"""
from .crystal import SpinCrystal, extend_lattice
from .exceptions import (
    CountMismatchError,
    InvalidParameterError,
    MagneticStructureError,
    MomentSizeError,
    MultiKApproximationWarning,
    NoMagneticAtomError,
    SupercellTooSmallWarning,
    UnknownModeError,
)
from .generator import generate_magnetic_structure
from .grid import build_q_grid, build_q_path
from .schema import MagStructConfig, parse_generation_parameters
from .structure import MagneticStructure

__version__ = "0.1.0"
