import os
import tempfile
import unittest

import numpy as np
import sofar as sof

from hrtf.errors import FormatError
from hrtf.sofa_reader import (
    DELAY_NONE,
    DELAY_I_R,
    DELAY_M_R,
    measurement_set_from_sofa,
    read_measurement_set,
    sph_to_cart,
)

from tests.synth import ROWS_4_8_4, make_aers, make_irs


def make_sofa(receivers=2, points=32, rate=48000.0):
    aers = make_aers(ROWS_4_8_4)

    sofa = sof.Sofa("SimpleFreeFieldHRIR")
    sofa.SourcePosition = aers
    sofa.Data_IR = make_irs(len(aers), receivers, points)
    sofa.Data_SamplingRate = rate
    sofa.Data_Delay = np.zeros((1, receivers))
    if receivers != 2:
        sofa.ReceiverPosition = np.zeros((receivers, 3, 1))
    return sofa


class TestSphToCart(unittest.TestCase):
    def test_axes(self):
        xyzs = sph_to_cart([[0.0, 0.0, 1.0], [90.0, 0.0, 2.0], [0.0, 90.0, 1.0]])
        self.assertTrue(np.allclose(xyzs, [[1.0, 0.0, 0.0], [0.0, 2.0, 0.0], [0.0, 0.0, 1.0]]))


class TestMeasurementSet(unittest.TestCase):
    def test_stereo_set(self):
        mset = measurement_set_from_sofa(make_sofa())

        self.assertEqual(mset.measurement_count, 16)
        self.assertEqual(mset.receiver_count, 2)
        self.assertEqual(mset.sample_points, 32)
        self.assertEqual(mset.sample_rate, 48000.0)
        self.assertEqual(mset.emitter_count, 1)
        self.assertEqual(mset.delay_type, DELAY_I_R)
        self.assertTrue(np.allclose(mset.positions[4], [1.0, 0.0, 0.0]))

    def test_cartesian_positions_kept(self):
        sofa = make_sofa()
        xyzs = sph_to_cart(make_aers(ROWS_4_8_4))
        sofa.SourcePosition = xyzs
        sofa.SourcePosition_Type = "cartesian"
        sofa.SourcePosition_Units = "metre"

        mset = measurement_set_from_sofa(sofa)
        self.assertTrue(np.allclose(mset.positions, xyzs))

    def test_delay_layouts(self):
        sofa = make_sofa()

        sofa.Data_Delay = np.arange(32, dtype=np.float64).reshape(16, 2)
        mset = measurement_set_from_sofa(sofa)
        self.assertEqual(mset.delay_type, DELAY_M_R)
        self.assertEqual(mset.delays[3, 1], 7.0)

        sofa.Data_Delay = np.zeros((3, 2))
        with self.assertRaises(FormatError):
            measurement_set_from_sofa(sofa)

        sofa.Data_Delay = np.zeros((0,))
        self.assertEqual(measurement_set_from_sofa(sofa).delay_type, DELAY_NONE)

    def test_sample_rate_checks(self):
        sofa = make_sofa()
        sofa.Data_SamplingRate_Units = "kilohertz"
        with self.assertRaises(FormatError):
            measurement_set_from_sofa(sofa)

        sofa = make_sofa(rate=22050.0)
        with self.assertRaises(FormatError):
            measurement_set_from_sofa(sofa)

        sofa = make_sofa()
        sofa.Data_SamplingRate = np.array([48000.0, 44100.0])
        with self.assertRaises(FormatError):
            measurement_set_from_sofa(sofa)

    def test_emitters_and_receivers(self):
        sofa = make_sofa()
        sofa.EmitterPosition = np.zeros((2, 3, 1))
        with self.assertRaises(FormatError):
            measurement_set_from_sofa(sofa)

        sofa = make_sofa(receivers=3)
        with self.assertRaises(FormatError):
            measurement_set_from_sofa(sofa)

        mset = measurement_set_from_sofa(make_sofa(receivers=1))
        self.assertEqual(mset.receiver_count, 1)

    def test_ir_dimensions(self):
        sofa = make_sofa()
        sofa.Data_IR = np.zeros((15, 2, 32))
        with self.assertRaises(FormatError):
            measurement_set_from_sofa(sofa)

        sofa.Data_IR = np.zeros((16, 64))
        with self.assertRaises(FormatError):
            measurement_set_from_sofa(sofa)


class TestReadFile(unittest.TestCase):
    def test_missing_file(self):
        with self.assertRaises(FormatError):
            read_measurement_set("/nonexistent/path/hrir.sofa")

    def test_written_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            filename = os.path.join(tmp, "grid.sofa")
            sof.write_sofa(filename, make_sofa())

            mset = read_measurement_set(filename)

        self.assertEqual(mset.measurement_count, 16)
        self.assertEqual(mset.receiver_count, 2)
        self.assertTrue(np.allclose(mset.irs, make_irs(16, 2, 32)))


if __name__ == "__main__":
    unittest.main()
