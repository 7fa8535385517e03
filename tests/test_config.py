import datetime
import unittest

from dcsolar.config import MetaOptions, SolarOptions
from dcsolar.errors import InvalidDiscretization, InvalidGeometry, MarchFailure
from dcsolar.state import SimulationStateHeader, SyntheticWeather, WeatherSeries
from dcsolar.sky import WeaData


class TestSolarOptions(unittest.TestCase):
    def test_defaults(self):
        options = SolarOptions()
        self.assertEqual(options.solar_sky_discretization, 1)
        self.assertEqual(options.max_depth, 0)
        self.assertEqual(options.point_policy, "random")

    def test_from_dict(self):
        options = SolarOptions.from_dict(
            {"solar_sky_discretization": 2, "n_solar_irradiance_points": 3}
        )
        self.assertEqual(options.solar_sky_discretization, 2)
        with self.assertRaises(ValueError):
            SolarOptions.from_dict({"n_bounces": 2})

    def test_invalid(self):
        with self.assertRaises(InvalidDiscretization):
            SolarOptions(solar_sky_discretization=0)
        with self.assertRaises(InvalidDiscretization):
            SolarOptions(sun_sky_discretization=2.5)
        with self.assertRaises(InvalidGeometry):
            SolarOptions(n_solar_irradiance_points=0)
        with self.assertRaises(ValueError):
            SolarOptions(point_policy="grid")
        with self.assertRaises(ValueError):
            SolarOptions(albedo=1.5)
        with self.assertRaises(ValueError):
            SolarOptions(save_optical_info=True)


class TestMetaOptions(unittest.TestCase):
    def test_range(self):
        with self.assertRaises(ValueError):
            MetaOptions(latitude=95)
        meta = MetaOptions.from_dict({"latitude": 40, "longitude": 116, "standard_meridian": 120})
        self.assertEqual(meta.standard_meridian, 120)


class TestState(unittest.TestCase):
    def test_register(self):
        header = SimulationStateHeader()
        self.assertEqual(header.register(("surface", 0, "front_solar")), 0)
        self.assertEqual(header.register(("surface", 0, "back_solar"), 5.0), 1)
        self.assertEqual(header.register(("surface", 0, "front_solar")), 0)
        state = header.take_values()
        self.assertEqual(state[("surface", 0, "back_solar")], 5.0)
        state[("surface", 0, "front_solar")] = 3.0
        self.assertEqual(state.values[0], 3.0)
        with self.assertRaises(KeyError):
            state[("surface", 9, "front_solar")]

    def test_copy_and_update(self):
        header = SimulationStateHeader()
        header.register(("surface", 0, "front_solar"))
        staged = header.copy()
        staged.register(("surface", 1, "front_solar"))
        self.assertEqual(len(header), 1)
        header.update(staged)
        self.assertEqual(len(header), 2)
        self.assertEqual(header.index_of(("surface", 1, "front_solar")), 1)


class TestWeather(unittest.TestCase):
    def test_series(self):
        time = datetime.datetime(2023, 1, 1, 12)
        series = WeatherSeries([WeaData(time, 500, 100, dry_bulb=5)])
        self.assertEqual(series.get_weather_data(time).dni, 500)
        with self.assertRaises(MarchFailure):
            series.get_weather_data(datetime.datetime(2023, 1, 1, 13))

    def test_synthetic(self):
        time = datetime.datetime(2023, 1, 1, 12)
        row = SyntheticWeather(dni=200, dhi=50, horizontal_ir=300).get_weather_data(time)
        self.assertEqual(row.time, time)
        self.assertEqual((row.dni, row.dhi, row.horizontal_ir), (200, 50, 300))


if __name__ == "__main__":
    unittest.main()
