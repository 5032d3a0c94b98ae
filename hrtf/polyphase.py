"""Numeric primitives: polyphase resampler and forward FFT"""

import math
import logging

import numpy as np
import scipy.signal as sig

logger = logging.getLogger(__name__)

#
# DEFINES / CONSTANT / GLOBALS
#
_MAGNITUDE_EPSILON = 1e-9  # floor for magnitude bins


class PolyphaseResampler:
    """Rational rate converter with the init/process interface of the loader.

    The up/down factors are reduced by their common divisor once in init(), every
    process() call then runs scipy's polyphase FIR over a single IR.
    """

    def __init__(self):
        self.src_rate = 0
        self.dst_rate = 0
        self.up = 1
        self.down = 1

    def init(self, src_rate, dst_rate):
        src_rate = int(src_rate)
        dst_rate = int(dst_rate)
        if src_rate <= 0 or dst_rate <= 0:
            raise ValueError("resampler: invalid rates {} -> {}".format(src_rate, dst_rate))

        gcd = math.gcd(src_rate, dst_rate)
        self.src_rate = src_rate
        self.dst_rate = dst_rate
        self.up = dst_rate // gcd
        self.down = src_rate // gcd

        logger.debug("resampler: {} -> {} (up {}, down {})".format(src_rate, dst_rate, self.up, self.down))
        return self

    def process(self, data, out):
        """Resample data into out, the whole of out is written (zero past the resampled length)."""
        data = np.asarray(data, dtype=np.float64)

        if self.up == self.down:
            res = data
        else:
            res = sig.resample_poly(data, self.up, self.down)

        n = min(len(res), len(out))
        out[:n] = res[:n]
        out[n:] = 0.0
        return out


def forward_fft(buffer):
    """In-place forward transform of a complex buffer."""
    buffer[:] = np.fft.fft(buffer)
    return buffer


def magnitude_response(h, out):
    """Write |H| for the first len(h)/2 + 1 bins into out."""
    m = 1 + (len(h) // 2)
    out[:m] = np.maximum(np.abs(h[:m]), _MAGNITUDE_EPSILON)
    return out
