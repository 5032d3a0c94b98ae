"""HRIR data set: fields, elevations, azimuth slots and the shared IR buffer"""

import logging

import numpy as np

logger = logging.getLogger(__name__)

#
# DEFINES / CONSTANT / GLOBALS
#
MAX_FD_COUNT = 16  # distance fields supported by the engine
MAX_EV_COUNT = 181
MAX_AZ_COUNT = 255

MIN_RATE = 32000
MAX_RATE = 96000

CT_MONO = 0
CT_STEREO = 1

_DEFAULT_HEAD_RADIUS = 0.09  # m


class HrirAzimuth:
    """One grid cell.

    irs[ti] is a view into HrirDataSet.hrirs (None until the cell is populated), delays holds one
    value per channel in seconds. Mirrored cells share both with their source cell.
    """

    def __init__(self, azimuth=0.0, index=0, channels=1):
        self.azimuth = azimuth
        self.index = index
        self.irs = [None] * channels
        self.delays = np.zeros(channels)

    def populated(self):
        return self.irs[0] is not None


class HrirElevation:
    def __init__(self, elevation=0.0):
        self.elevation = elevation
        self.azs = []


class HrirField:
    def __init__(self, distance=0.0, ev_limit=90.0):
        self.distance = distance
        self.ev_limit = ev_limit
        self.ev_start = 0
        self.evs = []

    @property
    def ev_step(self):
        return (2.0 * self.ev_limit) / (len(self.evs) - 1)


class HrirDataSet:
    def __init__(self):
        self.channel_type = CT_MONO
        self.ir_rate = 0
        self.ir_points = 0
        self.ir_size = 0
        self.fft_size = 0
        self.radius = _DEFAULT_HEAD_RADIUS
        self.ir_count = 0
        self.fds = []
        self.hrirs = None

    @property
    def channels(self):
        return 2 if self.channel_type == CT_STEREO else 1

    def slot_view(self, ti, index):
        return self.hrirs[ti, index]


def prepare_hrir_data(hdata=None, fds=None):
    """Build the field/elevation/azimuth skeleton and reserve the IR buffer.

    The channel count comes from hdata.channel_type, which must be set beforehand.

    Storage indices are assigned by walking fields, then elevations, then azimuths in order, so
    they stay stable for the lifetime of the data set.
    """
    channels = hdata.channels
    hdata.fds = []
    ir_count = 0

    for layout in fds:
        field = HrirField(distance=layout.distance, ev_limit=layout.ev_limit)
        ev_count = len(layout.az_counts)

        for ei, az_count in enumerate(layout.az_counts):
            elev = HrirElevation(elevation=-layout.ev_limit + ei * (2.0 * layout.ev_limit) / (ev_count - 1))
            for ai in range(az_count):
                elev.azs.append(HrirAzimuth(azimuth=ai * 360.0 / az_count, index=ir_count, channels=channels))
                ir_count += 1
            field.evs.append(elev)

        field.ev_start = layout.ev_start
        hdata.fds.append(field)

    hdata.ir_count = ir_count
    hdata.hrirs = np.zeros((channels, ir_count, hdata.ir_size))

    logger.info(
        "prepare hrir data: {} fields, {} IRs, {} channels, {} samples each".format(
            len(hdata.fds), ir_count, channels, hdata.ir_size
        )
    )
    return hdata
