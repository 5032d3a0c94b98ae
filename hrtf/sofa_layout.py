"""Detect a compatible field/elevation/azimuth layout from scattered source positions"""

import math
import logging

import numpy as np

from hrtf.errors import LayoutError
from hrtf.hrir_data import MAX_FD_COUNT, MAX_EV_COUNT, MAX_AZ_COUNT, prepare_hrir_data

logger = logging.getLogger(__name__)

#
# DEFINES / CONSTANT / GLOBALS
#
_EPSILON_ANGLE = 0.1  # degrees
_EPSILON_DISTANCE = 0.001  # m
_EPSILONS = (_EPSILON_ANGLE, _EPSILON_ANGLE, _EPSILON_DISTANCE)

_POLE_ELEVATION = 89.999

_MIN_AZ_COUNT = 2  # rows with fewer azimuths are treated as stray measurements
_MIN_EV_COUNT = 3

# axis index in an (azimuth, elevation, distance) triplet
_AXIS_AZ = 0
_AXIS_EV = 1
_AXIS_R = 2


class SofaField:
    """Skeleton of one distance field, as detected from the source positions.

    az_counts has one entry per grid elevation (index 0 is the lowest row), rows below ev_start
    were not measured and carry the count of their mirror row.
    """

    def __init__(self, distance=0.0, ev_limit=90.0, ev_start=0, az_counts=None):
        self.distance = distance
        self.ev_limit = ev_limit
        self.ev_start = ev_start
        self.az_counts = az_counts if az_counts is not None else []

    @property
    def ev_count(self):
        return len(self.az_counts)

    def __repr__(self):
        return "SofaField(distance={:.3f}, ev_limit={:.2f}, ev_start={}, az_counts={})".format(
            self.distance, self.ev_limit, self.ev_start, self.az_counts
        )


#
# TOOLS
#
def cart_to_sph(xyzs=None):
    """Cartesian positions to (azimuth, elevation, distance), azimuth counter-clockwise in [0, 360)."""
    xyzs = np.asarray(xyzs, dtype=np.float64).reshape(-1, 3)
    x = xyzs[:, 0]
    y = xyzs[:, 1]
    z = xyzs[:, 2]

    r = np.sqrt(x * x + y * y + z * z)
    ev = np.degrees(np.arctan2(z, np.hypot(x, y)))
    az = np.mod(np.degrees(np.arctan2(y, x)) + 360.0, 360.0)

    return np.stack([az, ev, r], axis=1)


def get_uniquely_sorted_elems(aers=None, axis=0, filters=(None, None, None), epsilons=_EPSILONS):
    """Sorted distinct values along one axis, for the points matching the other axes' filters.

    Values closer than the axis epsilon to the previous distinct value are merged into it.
    """
    mask = np.ones(len(aers), dtype=bool)
    for j in range(3):
        if filters[j] is not None:
            mask &= np.abs(aers[:, j] - filters[j]) <= epsilons[j]

    elems = []
    for val in np.sort(aers[mask, axis]):
        if elems and (val - elems[-1]) <= epsilons[axis]:
            continue
        elems.append(float(val))

    return elems


def get_uniform_azim_count(epsilon=_EPSILON_ANGLE, elems=None):
    """Azimuth count of a uniform row starting at 0 degrees, 0 if the row is not uniform.

    The densest spacing found in the row sets the step, it must divide 360 cleanly and every
    azimuth must sit on one of its multiples. Missing azimuths are allowed, coverage is checked
    once the measurements are mapped.
    """
    if len(elems) < _MIN_AZ_COUNT:
        return 0

    gaps = np.diff(np.append(elems, elems[0] + 360.0))
    min_gap = float(np.min(gaps))

    count = int(round(360.0 / min_gap))
    if count < _MIN_AZ_COUNT or count > MAX_AZ_COUNT:
        return 0

    step = 360.0 / count
    if abs(min_gap - step) > epsilon:
        return 0

    for az in elems:
        if abs(az - round(az / step) * step) > epsilon:
            return 0

    return count


def get_uniform_elev_step(epsilon=_EPSILON_ANGLE, elems=None):
    """Step of a grid symmetric about the equator that holds elems as contiguous rows from the top.

    The step must split [-top, top] into a whole number of rows. The largest such count that
    still matches every measured row wins, 0.0 means no uniform step exists.
    """
    if len(elems) < 2:
        return 0.0

    elems = sorted(elems, reverse=True)
    top = elems[0]
    if top <= 0.0:
        return 0.0

    count = int(math.ceil(2.0 * top / (elems[0] - elems[1])))
    count = min(count, MAX_EV_COUNT - 1)

    for count in range(count, 0, -1):
        if len(elems) > count + 1:
            break

        step = 2.0 * top / count
        good = True
        for k, ev in enumerate(elems):
            if abs(ev - (top - k * step)) > epsilon:
                good = False
                break
        if good:
            return step

    return 0.0


def _check_az_counts(az_counts=None, ev_limit=90.0, step=0.0, dist=0.0):
    """Azimuth density must not grow moving from the equator to either pole."""
    for ei in range(len(az_counts) - 1):
        ev_lo = -ev_limit + ei * step
        ev_hi = ev_lo + step

        if ev_hi <= _EPSILON_ANGLE and az_counts[ei] > az_counts[ei + 1]:
            bad = True
        elif ev_lo >= -_EPSILON_ANGLE and az_counts[ei] < az_counts[ei + 1]:
            bad = True
        else:
            bad = False

        if bad:
            raise LayoutError(
                "Azimuth count grows toward the pole between elevations {:+.2f} ({}) and {:+.2f} ({}) "
                "on field distance {:.3f}.".format(ev_lo, az_counts[ei], ev_hi, az_counts[ei + 1], dist)
            )


#
# LAYOUT DETECTION
#
def get_compatible_layout(xyzs=None):
    """Produce a maximally dense, uniform layout for the given Cartesian source positions.

    Stray rows and stray distance shells are dropped, anything else that does not fit the
    uniform model raises LayoutError.
    """
    aers = cart_to_sph(xyzs)

    # fold azimuths just below 360 onto 0 so they cluster with the first column
    aers[:, _AXIS_AZ] = np.where(
        aers[:, _AXIS_AZ] > (360.0 - _EPSILON_ANGLE), aers[:, _AXIS_AZ] - 360.0, aers[:, _AXIS_AZ]
    )

    radii = get_uniquely_sorted_elems(aers, _AXIS_R)
    if len(radii) > MAX_FD_COUNT:
        raise LayoutError("Incompatible layout (inumerable radii): {} > {} distances.".format(len(radii), MAX_FD_COUNT))

    fds = []
    for dist in radii:
        elevs = get_uniquely_sorted_elems(aers, _AXIS_EV, (None, None, dist))

        usable = []
        for ev in elevs:
            azims = get_uniquely_sorted_elems(aers, _AXIS_AZ, (None, ev, dist))

            if abs(ev) > _POLE_ELEVATION:
                if len(azims) != 1:
                    raise LayoutError("Non-singular pole {:+.2f} on field distance {:.3f}.".format(ev, dist))
                usable.append((ev, 1))
                continue

            if len(azims) < _MIN_AZ_COUNT:
                logger.warning(
                    "layout: dropping stray elevation {:+.2f} ({} azimuths) on field distance {:.3f}".format(
                        ev, len(azims), dist
                    )
                )
                continue

            az_count = get_uniform_azim_count(_EPSILON_ANGLE, azims)
            if az_count == 0:
                raise LayoutError("Non-uniform azimuths on elevation {:+.2f}, field distance {:.3f}.".format(ev, dist))
            usable.append((ev, az_count))

        if not usable:
            logger.warning("layout: no usable elevations on field distance {:.3f}".format(dist))
            continue

        evs = [ev for ev, _ in usable]
        if evs[-1] <= 0.0:
            raise LayoutError("Too many missing elevations on field distance {:.3f}.".format(dist))
        if len(evs) < 2:
            raise LayoutError("Too few elevations on field distance {:.3f}.".format(dist))

        step = get_uniform_elev_step(_EPSILON_ANGLE, evs)
        if step <= 0.0:
            raise LayoutError(
                "Non-uniform elevations on field distance {:.3f}. Found: {}".format(
                    dist, ", ".join("{:+.2f}".format(ev) for ev in evs)
                )
            )

        ev_limit = 90.0 if evs[-1] > _POLE_ELEVATION else evs[-1]
        ev_count = int(round(2.0 * ev_limit / step)) + 1
        if ev_count < _MIN_EV_COUNT:
            raise LayoutError("Too few uniform elevations on field distance {:.3f}.".format(dist))
        if ev_count > MAX_EV_COUNT:
            raise LayoutError("Too many elevations ({}) on field distance {:.3f}.".format(ev_count, dist))

        # mirrored rows are taken from above the equator, so coverage must reach it
        if evs[0] > _EPSILON_ANGLE:
            raise LayoutError("Too many missing elevations on field distance {:.3f}.".format(dist))

        az_counts = [0] * ev_count
        for ev, az_count in usable:
            az_counts[int(round((ev + ev_limit) / step))] = az_count

        ev_start = int(round((evs[0] + ev_limit) / step))
        for ei in range(ev_start):
            az_counts[ei] = az_counts[ev_count - ei - 1]

        _check_az_counts(az_counts, ev_limit, step, dist)

        field = SofaField(distance=dist, ev_limit=ev_limit, ev_start=ev_start, az_counts=az_counts)
        logger.info("layout: {}".format(field))
        fds.append(field)

    if not fds:
        raise LayoutError("Incompatible layout (no usable fields).")

    return fds


def prepare_layout(xyzs=None, hdata=None):
    """Run the layout detection and allocate the matching HRIR grid."""
    logger.info("Detecting compatible layout...")

    fds = get_compatible_layout(xyzs)

    ir_total = 0
    for field in fds:
        ir_total += sum(field.az_counts[field.ev_start :])
    logger.info("Using {} of {} IRs.".format(ir_total, len(np.asarray(xyzs).reshape(-1, 3))))

    return prepare_hrir_data(hdata, fds)
