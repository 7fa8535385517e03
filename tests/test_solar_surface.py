import unittest

import numpy as np

from dcsolar.errors import InvalidGeometry
from dcsolar.geom import Polygon
from dcsolar.scene import BACK, FRONT, Element, HitKind, Scene
from dcsolar.solar_surface import SolarSurface, make_fenestrations, make_surfaces
from dcsolar.state import SimulationStateHeader


class TestSolarSurface(unittest.TestCase):
    polygon = Polygon([(0, 0, 0), (2, 0, 0), (2, 1, 0), (0, 1, 0)])

    def test_points_on_polygon(self):
        surface = SolarSurface(self.polygon, 20, seed=3)
        self.assertEqual(surface.n_points, 20)
        np.testing.assert_allclose(surface.points[:, 2], 0)
        self.assertTrue(np.all((surface.points[:, 0] >= 0) & (surface.points[:, 0] <= 2)))
        self.assertTrue(np.all((surface.points[:, 1] >= 0) & (surface.points[:, 1] <= 1)))

    def test_seeded(self):
        first = SolarSurface(self.polygon, 10, seed=1)
        second = SolarSurface(self.polygon, 10, seed=1)
        other = SolarSurface(self.polygon, 10, seed=2)
        np.testing.assert_array_equal(first.points, second.points)
        self.assertFalse(np.array_equal(first.points, other.points))

    def test_centroid_policy(self):
        surface = SolarSurface(self.polygon, 10, policy="centroid")
        self.assertEqual(surface.n_points, 1)
        np.testing.assert_allclose(surface.points[0], (1, 0.5, 0))

    def test_rays(self):
        surface = SolarSurface(self.polygon, 4, delta=0.01)
        origins, directions = surface.front_rays()
        np.testing.assert_allclose(origins[:, 2], 0.01)
        np.testing.assert_allclose(directions, np.tile((0, 0, 1), (4, 1)))
        origins, directions = surface.back_rays()
        np.testing.assert_allclose(origins[:, 2], -0.01)
        np.testing.assert_allclose(directions, np.tile((0, 0, -1), (4, 1)))
        # every call returns new arrays
        again, _ = surface.back_rays()
        again[0, 0] = 100
        self.assertNotEqual(surface.back_rays()[0][0, 0], 100)

    def test_no_points(self):
        with self.assertRaises(InvalidGeometry):
            SolarSurface(self.polygon, 0)

    def test_unknown_policy(self):
        with self.assertRaises(ValueError):
            SolarSurface(self.polygon, 3, policy="grid")


class TestMakeSurfaces(unittest.TestCase):
    def setUp(self):
        self.scene = Scene(
            surfaces=[
                Element(
                    "slab",
                    Polygon([(0, 0, 0), (0, 1, 0), (1, 1, 0), (1, 0, 0)]),
                    front_boundary="ground",
                    back_boundary="space",
                ),
                Element(
                    "partition",
                    Polygon([(0, 0, 0), (1, 0, 0), (1, 0, 1), (0, 0, 1)]),
                    front_boundary="space",
                    back_boundary="ambient_temperature",
                ),
            ],
            fenestrations=[Element("window", Polygon([(0, 1, 0), (1, 1, 0), (1, 1, 1)]))],
        )

    def test_receives_sun(self):
        header = SimulationStateHeader()
        slab, partition = make_surfaces(self.scene, header, 3)
        self.assertFalse(slab.receives_sun(FRONT))
        self.assertTrue(slab.receives_sun(BACK))
        self.assertTrue(partition.receives_sun(FRONT))
        self.assertFalse(partition.receives_sun(BACK))
        (window,) = make_fenestrations(self.scene, header, 3)
        self.assertTrue(window.receives_sun_front and window.receives_sun_back)
        self.assertEqual(window.kind, HitKind.FENESTRATION)
        self.assertEqual(partition.index, 1)

    def test_state_slots(self):
        header = SimulationStateHeader()
        make_surfaces(self.scene, header, 3)
        make_fenestrations(self.scene, header, 3)
        self.assertEqual(len(header), 12)
        self.assertIn(("surface", 1, "back_ir"), header)
        self.assertIn(("fenestration", 0, "front_solar"), header)
        # registering again keeps the slots
        make_surfaces(self.scene, header, 3)
        self.assertEqual(len(header), 12)

    def test_elements_seeded_apart(self):
        twin = Scene(
            surfaces=[
                Element("a", Polygon([(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)])),
                Element("b", Polygon([(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)])),
            ]
        )
        first, second = make_surfaces(twin, None, 5)
        self.assertFalse(np.array_equal(first.points, second.points))


if __name__ == "__main__":
    unittest.main()
