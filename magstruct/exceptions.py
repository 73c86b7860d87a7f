"""
Error and warning classes raised while generating magnetic structures.

All errors derive from ValueError so callers that only expect invalid-input
failures keep working.
"""


class MagneticStructureError(ValueError):
    """Base class for all magnetic structure generation failures."""


class NoMagneticAtomError(MagneticStructureError):
    """The crystal has no atom with a spin quantum number S > 0."""


class InvalidParameterError(MagneticStructureError):
    """A generation parameter has the wrong shape, type or value."""


class UnknownModeError(MagneticStructureError):
    """The requested generation mode keyword is not recognized."""


class CountMismatchError(MagneticStructureError):
    """Moments, normals and propagation vectors disagree in number."""


class MomentSizeError(MagneticStructureError):
    """The moment matrix does not match the number of magnetic atoms."""


class SupercellTooSmallWarning(UserWarning):
    """The propagation vector is not commensurate with the chosen supercell."""


class MultiKApproximationWarning(UserWarning):
    """A multi-k structure was approximated on a finite supercell."""
