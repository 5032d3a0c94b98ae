"""Read a SOFA file (Spatially Oriented Format for Acoustics) into a raw measurement set"""

import logging

import numpy as np
import sofar as sof

from hrtf.errors import FormatError
from hrtf.hrir_data import MIN_RATE, MAX_RATE

logger = logging.getLogger(__name__)

#
# DEFINES / CONSTANT / GLOBALS
#

# Data.Delay layout
DELAY_NONE = 0
DELAY_I_R = 1  # [1][receivers]
DELAY_M_R = 2  # [measurements][receivers]


class MeasurementSet:
    """Raw measurements as found in the file, positions always Cartesian."""

    def __init__(self, positions=None, irs=None, sample_rate=0.0, delays=None, delay_type=DELAY_NONE, emitter_count=1):
        self.positions = positions
        self.irs = irs
        self.sample_rate = sample_rate
        self.delays = delays
        self.delay_type = delay_type
        self.emitter_count = emitter_count

    @property
    def measurement_count(self):
        return self.irs.shape[0]

    @property
    def receiver_count(self):
        return self.irs.shape[1]

    @property
    def sample_points(self):
        return self.irs.shape[2]


#
# TOOLS
#
def sph_to_cart(aers=None):
    """(azimuth, elevation, distance) in degrees/metres to Cartesian."""
    aers = np.asarray(aers, dtype=np.float64).reshape(-1, 3)
    az = np.radians(aers[:, 0])
    ev = np.radians(aers[:, 1])
    r = aers[:, 2]

    return np.stack([r * np.cos(ev) * np.cos(az), r * np.cos(ev) * np.sin(az), r * np.sin(ev)], axis=1)


def get_sample_rate(sofa=None):
    units = str(getattr(sofa, "Data_SamplingRate_Units", "") or "")
    if not units:
        raise FormatError("Missing sample rate unit type")
    if units.lower() != "hertz":
        raise FormatError("Unsupported sample rate unit type: {}".format(units))

    values = np.atleast_1d(np.asarray(sofa.Data_SamplingRate, dtype=np.float64))
    if values.size != 1:
        raise FormatError("Unsupported sample rate dimensions: {}".format(values.shape))

    rate = float(values[0])
    if rate < MIN_RATE or rate > MAX_RATE:
        raise FormatError("Sample rate out of range: {:f} (expected {} to {})".format(rate, MIN_RATE, MAX_RATE))

    return rate


def prepare_delay(sofa=None, measurements=0, receivers=0):
    """Return (delay_type, delays), delays in samples."""
    delays = getattr(sofa, "Data_Delay", None)
    if delays is None:
        logger.warning("sofa reader: missing delay dimensions")
        return DELAY_NONE, None

    delays = np.asarray(delays, dtype=np.float64)
    if delays.size == 0:
        return DELAY_NONE, None

    if delays.ndim == 1 and delays.size == receivers:
        delays = delays.reshape(1, receivers)

    if delays.ndim == 2 and delays.shape == (1, receivers):
        return DELAY_I_R, delays
    if delays.ndim == 2 and delays.shape == (measurements, receivers):
        return DELAY_M_R, delays

    raise FormatError("Unsupported delay dimensions: {}".format(delays.shape))


def check_ir_data(irs=None, measurements=0):
    if irs.ndim != 3 or irs.shape[0] != measurements:
        raise FormatError("Unsupported IR dimensions: {} (expected M,R,N with M={})".format(irs.shape, measurements))


#
# READ FUNCTIONS
#
def measurement_set_from_sofa(sofa=None):
    """Validate a sofar.Sofa object and extract the raw measurement arrays."""
    positions = np.asarray(sofa.SourcePosition, dtype=np.float64).reshape(-1, 3)

    position_type = str(getattr(sofa, "SourcePosition_Type", "cartesian")).lower()
    if position_type == "spherical":
        positions = sph_to_cart(positions)
    elif position_type != "cartesian":
        raise FormatError("Unsupported source position type: {}".format(position_type))

    emitter_count = np.atleast_2d(np.asarray(sofa.EmitterPosition)).shape[0]
    if emitter_count != 1:
        raise FormatError("{} emitters not supported".format(emitter_count))

    irs = np.asarray(sofa.Data_IR, dtype=np.float64)
    check_ir_data(irs, positions.shape[0])

    receivers = irs.shape[1]
    if receivers > 2 or receivers < 1:
        raise FormatError("{} receivers not supported".format(receivers))

    sample_rate = get_sample_rate(sofa)
    (delay_type, delays) = prepare_delay(sofa, irs.shape[0], receivers)

    logger.info(
        "sofa reader: {} measurements, {} receivers, {} samples @ {} Hz".format(
            irs.shape[0], receivers, irs.shape[2], sample_rate
        )
    )

    return MeasurementSet(
        positions=positions,
        irs=irs,
        sample_rate=sample_rate,
        delays=delays,
        delay_type=delay_type,
        emitter_count=emitter_count,
    )


def read_measurement_set(filename=None):
    try:
        sofa = sof.read_sofa(filename, verify=False)
    except (OSError, ValueError) as e:
        raise FormatError("Could not load {}: {}".format(filename, e)) from e

    # convention violations are only reported
    try:
        sofa.verify()
    except ValueError as e:
        logger.warning("Supposedly malformed source file '{}': {}".format(filename, e))

    return measurement_set_from_sofa(sofa)
