from pathlib import Path
import tempfile
import unittest

import numpy as np

from dcsolar.errors import SamplingInconsistency
from dcsolar.optical_info import (
    IRViewFactorSet,
    OpticalInfo,
    load_optical_info,
    save_optical_info,
)


def view_factors(sky=0.4, ground=0.3):
    return IRViewFactorSet(
        ground=ground,
        sky=sky,
        air=0.1,
        surfaces=[0.1, 0.05],
        fenestrations=[0.05],
    )


class TestIRViewFactorSet(unittest.TestCase):
    def test_total(self):
        self.assertAlmostEqual(view_factors().total(), 1.0)
        view_factors().check_closure(0.01)

    def test_closure_violation(self):
        with self.assertRaises(SamplingInconsistency):
            view_factors(sky=0.5).check_closure(0.05)
        # within tolerance
        view_factors(sky=0.42).check_closure(0.05)

    def test_negative(self):
        with self.assertRaises(SamplingInconsistency):
            view_factors(sky=0.8, ground=-0.1).check_closure(0.5)

    def test_frozen(self):
        vf = view_factors()
        with self.assertRaises(AttributeError):
            vf.sky = 1.0
        with self.assertRaises(ValueError):
            vf.surfaces[0] = 1.0

    def test_dict(self):
        obj = view_factors().to_dict()
        self.assertEqual(obj["surfaces"], [0.1, 0.05])
        vf = IRViewFactorSet.from_dict(obj)
        self.assertEqual(vf.sky, 0.4)
        np.testing.assert_array_equal(vf.fenestrations, [0.05])


class TestOpticalInfo(unittest.TestCase):
    def setUp(self):
        self.dc = np.arange(12, dtype=float).reshape(3, 4)
        self.info = OpticalInfo.new(view_factors(), self.dc, np.array((0, 1, 0.5)))

    def test_shape(self):
        self.assertEqual(self.info.n_points, 3)
        self.assertEqual(self.info.n_bins, 4)
        np.testing.assert_allclose(self.info.average_dc, (4, 5, 6, 7))

    def test_delegates_view_factors(self):
        self.assertEqual(self.info.sky, 0.4)
        self.assertEqual(self.info.ground, 0.3)
        self.assertEqual(self.info.air, 0.1)
        self.assertEqual(len(self.info.surfaces), 2)
        self.assertEqual(len(self.info.fenestrations), 1)

    def test_independent_of_input(self):
        self.dc[0, 0] = 100
        self.assertEqual(self.info.dc_matrix[0, 0], 0)
        with self.assertRaises(ValueError):
            self.info.dc_matrix[0, 0] = 1

    def test_not_a_matrix(self):
        with self.assertRaises(ValueError):
            OpticalInfo.new(view_factors(), np.zeros(4), np.zeros(3))

    def test_sun_bounce(self):
        np.testing.assert_array_equal(self.info.sun_bounce, (0, 0, 0))
        info = OpticalInfo.new(
            view_factors(), self.dc, np.array((0, 1, 0.5)), np.array((0, 0.1, 0.2))
        )
        np.testing.assert_array_equal(info.sun_bounce, (0, 0.1, 0.2))
        with self.assertRaises(ValueError):
            OpticalInfo.new(view_factors(), self.dc, np.zeros(3), np.zeros(4))

    def groups(self, info):
        return {
            "front_surfaces": [info, info],
            "back_surfaces": [info, info],
            "front_fenestrations": [],
            "back_fenestrations": [],
        }

    def test_save_load(self):
        info = OpticalInfo.new(
            view_factors(), self.dc, np.array((0, 1, 0.5)), np.array((0, 0.1, 0.2))
        )
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "optics.npz"
            save_optical_info(path, self.groups(info), 1, 4, config_hash="abc123")
            self.assertTrue(path.exists())
            loaded, header = load_optical_info(path)
        self.assertEqual((header["solar_mf"], header["sun_mf"]), (1, 4))
        self.assertEqual(header["config_hash"], "abc123")
        self.assertEqual(len(loaded["back_surfaces"]), 2)
        self.assertEqual(loaded["front_fenestrations"], [])
        info = loaded["front_surfaces"][1]
        np.testing.assert_array_equal(info.dc_matrix, self.dc)
        np.testing.assert_array_equal(info.sun_coefficients, (0, 1, 0.5))
        np.testing.assert_array_equal(info.sun_bounce, (0, 0.1, 0.2))
        self.assertEqual(info.view_factors.to_dict(), view_factors().to_dict())

    def test_load_foreign_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "other.npz"
            with open(path, "wb") as f:
                np.savez(f, x=np.zeros(2))
            with self.assertRaises(SamplingInconsistency):
                load_optical_info(path)

    def test_load_checks_closure(self):
        info = OpticalInfo.new(view_factors(sky=0.5), self.dc, np.zeros(3))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "optics.npz"
            save_optical_info(path, self.groups(info), 1, 4)
            loaded, _ = load_optical_info(path)
            self.assertEqual(len(loaded["front_surfaces"]), 2)
            with self.assertRaises(SamplingInconsistency):
                load_optical_info(path, tolerance=0.01)


if __name__ == "__main__":
    unittest.main()
