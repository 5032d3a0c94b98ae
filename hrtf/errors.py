"""Fatal errors raised by the HRIR import pipeline"""


class HrirError(Exception):
    """Base class, every pipeline stage aborts with one of these."""


class FormatError(HrirError):
    """Unsupported SOFA content: dimensions, units, emitter/receiver counts, sample rate."""


class LayoutError(HrirError):
    """The measurement positions do not fit a compatible grid."""


class DuplicateMeasurementError(HrirError):
    """Two measurements map onto the same grid cell."""


class CoverageError(HrirError):
    """A grid cell that must hold a measurement was never populated."""
