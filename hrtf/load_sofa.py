"""Load a SOFA measurement set into a structured HRIR data set and analyse its responses"""

import sys
import math
import time
import logging
import threading
import multiprocessing.pool

import numpy as np

from hrtf.errors import FormatError, DuplicateMeasurementError, CoverageError
from hrtf.hrir_data import HrirDataSet, CT_MONO, CT_STEREO
from hrtf.polyphase import PolyphaseResampler, forward_fft, magnitude_response
from hrtf.sofa_layout import cart_to_sph, prepare_layout
from hrtf.sofa_reader import DELAY_I_R, DELAY_M_R, read_measurement_set

logger = logging.getLogger(__name__)

#
# DEFINES / CONSTANT / GLOBALS
#
_POLL_INTERVAL_s = 0.05  # progress refresh for background stages

_ONSET_RATE_MULTIPLE = 10

_POLE_ELEVATION = 89.999
_DISTANCE_TOLERANCE = 0.001  # m
_SLOT_TOLERANCE = 0.1  # fraction of a grid step

CM_ALLOW_STEREO = "stereo"
CM_FORCE_MONO = "mono"


#
# TOOLS
#
class AtomicCounter:
    """Integer shared between threads.

    Every access goes through one lock, which stands in for a hardware atomic. load, fetch_add
    and compare_exchange keep the semantics of their lock-free counterparts.
    """

    def __init__(self, value=0):
        self._value = value
        self._lock = threading.Lock()

    def load(self):
        with self._lock:
            return self._value

    def fetch_add(self, n=1):
        with self._lock:
            old = self._value
            self._value += n
            return old

    def compare_exchange(self, expected, desired):
        """Store desired if the value equals expected, returns (swapped, current value)."""
        with self._lock:
            if self._value == expected:
                self._value = desired
                return True, expected
            return False, self._value


def run_with_progress(proc=None, counter=None, total=0, label="", stream=None):
    """Run proc as one background task, printing counter progress until it completes.

    The counter is only read for display, the result (or the exception) comes from the task.
    """
    if stream is None:
        stream = sys.stdout

    pool = multiprocessing.pool.ThreadPool(processes=1)
    try:
        result = pool.apply_async(proc)
        while True:
            result.wait(_POLL_INTERVAL_s)
            print("\r{}... {} of {}".format(label, counter.load(), total), end="", file=stream, flush=True)
            if result.ready():
                break
        print("", file=stream)
        return result.get()
    finally:
        pool.close()
        pool.join()


#
# MEASUREMENT MAPPER
#
def _find_field(hdata=None, distance=0.0):
    for field in hdata.fds:
        if abs(distance - field.distance) < _DISTANCE_TOLERANCE:
            return field
    return None


def _find_azimuth(field=None, az=0.0, ev=0.0):
    """Grid cell for the (clockwise) angles, None when they do not coincide with one."""
    ef = (ev + field.ev_limit) / field.ev_step
    ei = int(round(ef))
    if ei < 0 or ei >= len(field.evs):
        return None
    if abs(ef - ei) >= _SLOT_TOLERANCE:
        return None

    azs = field.evs[ei].azs
    af = az / (360.0 / len(azs))
    ai = int(round(af))
    if abs(af - ai) >= _SLOT_TOLERANCE:
        return None

    return azs[ai % len(azs)]


def load_responses(mset=None, hdata=None, out_rate=0, counter=None):
    """Map every raw measurement onto the grid, copying or resampling its IRs and delays."""
    channels = hdata.channels
    resampler = None
    restmp = None
    if out_rate and out_rate != hdata.ir_rate:
        resampler = PolyphaseResampler().init(hdata.ir_rate, out_rate)
        restmp = np.zeros(mset.sample_points)

    aers = cart_to_sph(mset.positions)

    for si in range(mset.measurement_count):
        if counter is not None:
            counter.fetch_add(1)

        (az, ev, r) = aers[si]
        if abs(ev) >= _POLE_ELEVATION:
            az = 0.0
        else:
            az = math.fmod(360.0 - az, 360.0)

        field = _find_field(hdata, r)
        if field is None:
            continue

        azd = _find_azimuth(field, az, ev)
        if azd is None:
            continue

        if azd.populated():
            raise DuplicateMeasurementError(
                "Multiple measurements near [ a={:f}, e={:f}, r={:f} ].".format(az, ev, r)
            )

        for ti in range(channels):
            azd.irs[ti] = hdata.slot_view(ti, azd.index)
            if resampler is None:
                azd.irs[ti][: mset.sample_points] = mset.irs[si, ti]
            else:
                restmp[:] = mset.irs[si, ti]
                resampler.process(restmp, azd.irs[ti])

        # per-channel or per-measurement delays, stored in seconds
        if mset.delay_type == DELAY_I_R:
            for ti in range(channels):
                azd.delays[ti] = mset.delays[0, ti] / hdata.ir_rate
        elif mset.delay_type == DELAY_M_R:
            for ti in range(channels):
                azd.delays[ti] = mset.delays[si, ti] / hdata.ir_rate

    if out_rate and out_rate != hdata.ir_rate:
        scale = out_rate / hdata.ir_rate
        hdata.ir_rate = out_rate
        hdata.ir_points = min(int(math.ceil(hdata.ir_points * scale)), hdata.ir_size)

    return hdata


#
# COVERAGE VALIDATOR
#
def check_coverage(hdata=None):
    """Set each field's ev_start and alias the unmeasured rows below it from their mirror rows."""
    for fi, field in enumerate(hdata.fds):
        ev_start = None
        for ei, elev in enumerate(field.evs):
            if any(azd.populated() for azd in elev.azs):
                ev_start = ei
                break

        if ev_start is None:
            raise CoverageError("Missing source references [ {}, *, * ].".format(fi))

        field.ev_start = ev_start
        for ei in range(ev_start, len(field.evs)):
            for ai, azd in enumerate(field.evs[ei].azs):
                if not azd.populated():
                    raise CoverageError("Missing source reference [ {}, {}, {} ].".format(fi, ei, ai))

        for ei in range(ev_start):
            mirror_ei = len(field.evs) - 1 - ei
            azs = field.evs[ei].azs
            mirror_azs = field.evs[mirror_ei].azs
            if mirror_ei < ev_start or len(mirror_azs) != len(azs):
                raise CoverageError(
                    "No mirror source for [ {}, {}, * ] (mirror elevation {}).".format(fi, ei, mirror_ei)
                )

            # alias the mirror slot, views and delays included
            for ai, azd in enumerate(azs):
                src = mirror_azs[len(mirror_azs) - 1 - ai]
                azd.irs = src.irs
                azd.delays = src.delays

        logger.info("coverage: field {} (distance {:.3f}) ev_start {}".format(fi, field.distance, ev_start))

    return hdata


def measured_azimuths(hdata=None):
    """Every slot holding its own measurement, mirrored rows excluded."""
    for field in hdata.fds:
        for elev in field.evs[field.ev_start :]:
            for azd in elev.azs:
                yield azd


#
# ONSET CALCULATOR
#
def calc_hrir_onset(resampler=None, rate=0, upsampled=None, hrir=None):
    """Onset time of one HRIR, from the peak of its upsampled magnitude."""
    resampler.process(hrir, upsampled)
    idx = int(np.argmax(np.abs(upsampled)))
    return idx / (_ONSET_RATE_MULTIPLE * rate)


def calc_onsets(hdata=None, counter=None):
    upsampled = np.zeros(_ONSET_RATE_MULTIPLE * hdata.ir_points)
    resampler = PolyphaseResampler().init(hdata.ir_rate, _ONSET_RATE_MULTIPLE * hdata.ir_rate)

    for azd in measured_azimuths(hdata):
        for ti in range(hdata.channels):
            if counter is not None:
                counter.fetch_add(1)
            azd.delays[ti] += calc_hrir_onset(
                resampler, hdata.ir_rate, upsampled, azd.irs[ti][: hdata.ir_points]
            )

    return hdata


#
# MAGNITUDE CALCULATOR
#
def calc_hrir_magnitude(points=0, h=None, hrir=None):
    """Replace the head of hrir with the magnitude response of its first points samples."""
    h[:points] = hrir[:points]
    h[points:] = 0.0

    forward_fft(h)
    magnitude_response(h, hrir)


class MagCalculator:
    """Magnitude work list shared by a pool of workers.

    Workers claim the next IR with a compare-exchange on the cursor, the done counter is only
    for progress.
    """

    def __init__(self, fft_size=0, ir_points=0):
        self.fft_size = fft_size
        self.ir_points = ir_points
        self.irs = []
        self.current = AtomicCounter(0)
        self.done = AtomicCounter(0)

    def worker(self):
        htemp = np.zeros(self.fft_size, dtype=np.complex128)

        while True:
            idx = self.current.load()
            while True:
                if idx >= len(self.irs):
                    return
                (swapped, idx) = self.current.compare_exchange(idx, idx + 1)
                if swapped:
                    break

            calc_hrir_magnitude(self.ir_points, htemp, self.irs[idx])

            self.done.fetch_add(1)


def calc_magnitudes(hdata=None, num_threads=1, stream=None):
    if stream is None:
        stream = sys.stdout

    calculator = MagCalculator(hdata.fft_size, hdata.ir_points)
    for azd in measured_azimuths(hdata):
        for ti in range(hdata.channels):
            calculator.irs.append(azd.irs[ti])

    total = len(calculator.irs)
    cpu_pool = multiprocessing.pool.ThreadPool(processes=num_threads)
    try:
        workers = [cpu_pool.apply_async(calculator.worker) for _ in range(num_threads)]
        while True:
            time.sleep(_POLL_INTERVAL_s)
            count = calculator.done.load()
            print("\rCalculating HRIR magnitudes... {} of {}".format(count, total), end="", file=stream, flush=True)
            if all(w.ready() for w in workers):
                break
        print("", file=stream)

        # re-raise the first worker failure, if any
        for w in workers:
            w.get()
    finally:
        cpu_pool.close()
        cpu_pool.join()

    return hdata


#
# PIPELINE
#
def load_measurement_set(
    mset=None, num_threads=1, fft_size=0, trunc_size=0, out_rate=0, chan_mode=CM_ALLOW_STEREO, stream=None
):
    """Build and analyse an HRIR data set from an already read measurement set."""
    hdata = HrirDataSet()

    # R=2 is a stereo measurement, R=1 is mono left-ear-only
    if mset.receiver_count == 2 and chan_mode == CM_ALLOW_STEREO:
        hdata.channel_type = CT_STEREO
    else:
        hdata.channel_type = CT_MONO

    n = mset.sample_points
    if n > fft_size:
        raise FormatError("Sample points exceeds the FFT size ({} > {}).".format(n, fft_size))
    if n < trunc_size:
        raise FormatError("Sample points is below the truncation size ({} < {}).".format(n, trunc_size))

    hdata.ir_points = n
    hdata.fft_size = fft_size
    hdata.ir_size = max(1 + (fft_size // 2), n)
    hdata.ir_rate = int(round(mset.sample_rate))

    prepare_layout(mset.positions, hdata)

    loaded = AtomicCounter(0)
    run_with_progress(
        lambda: load_responses(mset, hdata, out_rate, loaded),
        loaded,
        mset.measurement_count,
        "Loading HRIRs",
        stream,
    )

    check_coverage(hdata)

    hrir_total = sum(1 for _ in measured_azimuths(hdata)) * hdata.channels
    onsets = AtomicCounter(0)
    run_with_progress(lambda: calc_onsets(hdata, onsets), onsets, hrir_total, "Calculating HRIR onsets", stream)

    calc_magnitudes(hdata, num_threads, stream)

    return hdata


def load_sofa_file(
    filename=None, num_threads=1, fft_size=0, trunc_size=0, out_rate=0, chan_mode=CM_ALLOW_STEREO, stream=None
):
    logger.info("load sofa: {}".format(filename))

    mset = read_measurement_set(filename)
    return load_measurement_set(mset, num_threads, fft_size, trunc_size, out_rate, chan_mode, stream)
