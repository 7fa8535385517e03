import datetime
import math

import numpy as np
import pytest

from dcsolar.config import MetaOptions, SolarOptions
from dcsolar.geom import Polygon
from dcsolar.scene import Element, Scene
from dcsolar.sky import WeaData, solar_position
from dcsolar.state import WeatherSeries


@pytest.fixture(scope="session")
def meta():
    # solar noon close to 12:00 local standard time
    yield MetaOptions(latitude=37.8, longitude=-120.0, standard_meridian=-120.0)


@pytest.fixture
def options():
    yield SolarOptions(
        n_solar_irradiance_points=5,
        solar_ambient_divitions=2000,
        sun_sky_discretization=2,
        n_workers=2,
    )


@pytest.fixture
def wall_skylight_scene():
    """South facing wall and a horizontal skylight, nothing else."""
    wall = Element(
        "south_wall",
        Polygon([(0, 0, 0), (4, 0, 0), (4, 0, 3), (0, 0, 3)]),
        reflectance=0.3,
        back_boundary="space",
    )
    skylight = Element(
        "skylight",
        Polygon([(10, 10, 3), (11, 10, 3), (11, 11, 3), (10, 11, 3)]),
        transmittance=0.6,
        back_boundary="space",
    )
    yield Scene(surfaces=[wall], fenestrations=[skylight])


@pytest.fixture
def box_scene():
    """Closed 3 x 4 x 2.5 room, every face pointing outwards."""
    floor = Polygon([(0, 0, 0), (3, 0, 0), (3, 4, 0), (0, 4, 0)])
    faces = floor.extrude(np.array((0, 0, 2.5)))
    surfaces = [
        Element(f"face_{i}", face, reflectance=0.5, back_boundary="space")
        for i, face in enumerate(faces)
    ]
    surfaces[0] = Element("floor", faces[0], front_boundary="ground", back_boundary="space")
    yield Scene(surfaces=surfaces)


@pytest.fixture
def glazed_box_scene():
    """The same room with a glazed roof and a light floor."""
    floor = Polygon([(0, 0, 0), (3, 0, 0), (3, 4, 0), (0, 4, 0)])
    base, roof, *walls = floor.extrude(np.array((0, 0, 2.5)))
    surfaces = [
        Element(
            "floor", base, reflectance=0.5, front_boundary="ground", back_boundary="space"
        )
    ]
    surfaces += [
        Element(f"wall_{i}", wall, reflectance=0.5, back_boundary="space")
        for i, wall in enumerate(walls)
    ]
    glazing = Element("roof", roof, transmittance=0.8, back_boundary="space")
    yield Scene(surfaces=surfaces, fenestrations=[glazing])


@pytest.fixture
def clear_day_weather(meta):
    """Hourly clear sky on the summer solstice, zero at night."""
    rows = []
    altitudes = []
    for hour in range(24):
        time = datetime.datetime(2023, 6, 21, hour)
        altitude = solar_position(meta, time).altitude
        sine = max(math.sin(altitude), 0.0)
        rows.append(
            WeaData(
                time,
                dni=850.0 * sine,
                dhi=100.0 * sine,
                dry_bulb=15 + 10 * sine,
                dew_point=8.0,
            )
        )
        altitudes.append(altitude)
    yield WeatherSeries(rows), altitudes
