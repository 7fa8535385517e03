"""
dcsolar computes the solar and long-wave radiation reaching the
surfaces and fenestrations of a building, for use by building
energy and daylighting simulators.

## Two phases

1. A one-time geometric precomputation: for each side of each
element, rays are cast from sample points over the hemisphere
and their terminations become view factors, daylight coefficients
on a Reinhart sky, and direct sun coefficients.

2. A cheap timestep (`SolarModel.march`): the frozen daylight
coefficients are multiplied by a Perez sky vector built from the
weather of the moment, and the direct sun is added from the sun
coefficients. Infrared irradiance comes from the sky view factor.

## Example

    header = SimulationStateHeader()
    model = SolarModel.new(scene, MetaOptions(), SolarOptions(), header)
    state = header.take_values()
    model.march(date, weather, state)
"""

import logging

from .config import MetaOptions, SolarOptions
from .errors import (
    InvalidDiscretization,
    InvalidGeometry,
    MarchFailure,
    SamplingInconsistency,
    SolarModelError,
)
from .geom import Polygon, Ray3D
from .matrix import (
    DCFactory,
    RayAccumulator,
    calc_solar_dc_matrix,
    calc_sun_coefficients,
    calc_view_factors,
    get_sampler,
    sampling_tolerance,
)
from .model import SolarModel
from .optical_info import IRViewFactorSet, OpticalInfo, load_optical_info, save_optical_info
from .scene import BACK, FRONT, Element, HitKind, Scene
from .sky import ReinhartSky, WeaData, gen_perez_sky_vector, solar_position
from .solar_surface import SolarSurface, make_fenestrations, make_surfaces
from .state import (
    SimulationState,
    SimulationStateHeader,
    StateElement,
    SyntheticWeather,
    WeatherSeries,
)

__version__ = "0.1.0"

logger: logging.Logger = logging.getLogger(__name__)


__all__ = [
    "BACK",
    "DCFactory",
    "Element",
    "FRONT",
    "HitKind",
    "IRViewFactorSet",
    "InvalidDiscretization",
    "InvalidGeometry",
    "MarchFailure",
    "MetaOptions",
    "OpticalInfo",
    "Polygon",
    "Ray3D",
    "RayAccumulator",
    "ReinhartSky",
    "SamplingInconsistency",
    "Scene",
    "SimulationState",
    "SimulationStateHeader",
    "SolarModel",
    "SolarModelError",
    "SolarOptions",
    "SolarSurface",
    "StateElement",
    "SyntheticWeather",
    "WeaData",
    "WeatherSeries",
    "calc_solar_dc_matrix",
    "calc_sun_coefficients",
    "calc_view_factors",
    "gen_perez_sky_vector",
    "get_sampler",
    "load_optical_info",
    "make_fenestrations",
    "make_surfaces",
    "sampling_tolerance",
    "save_optical_info",
    "solar_position",
]
