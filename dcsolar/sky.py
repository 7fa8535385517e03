"""
Sky discretization, solar position and sky radiance vectors.
"""

import datetime
import logging
import math
from typing import NamedTuple, Optional, Sequence

import numpy as np

from dcsolar.errors import InvalidDiscretization

logger: logging.Logger = logging.getLogger("dcsolar.sky")


# Tregenza patches per band of altitude rows, horizon first
TREGENZA_ROW_COUNTS = (30, 30, 24, 24, 18, 12, 6)

SOLAR_CONSTANT = 1367.0

GROUND_BIN = 0

# Perez all-weather coefficients, 8 clearness bins x 5 parameters x 4 terms
PEREZ_COEFF = np.array(
    [
        1.3525, -0.2576, -0.2690, -1.4366, -0.7670, 0.0007, 1.2734, -0.1233, 2.8000, 0.6004,
        1.2375, 1.000, 1.8734, 0.6297, 0.9738, 0.2809, 0.0356, -0.1246, -0.5718, 0.9938,
        -1.2219, -0.7730, 1.4148, 1.1016, -0.2054, 0.0367, -3.9128, 0.9156, 6.9750, 0.1774,
        6.4477, -0.1239, -1.5798, -0.5081, -1.7812, 0.1080, 0.2624, 0.0672, -0.2190, -0.4285,
        -1.1000, -0.2515, 0.8952, 0.0156, 0.2782, -0.1812, -4.5000, 1.1766, 24.7219, -13.0812,
        -37.7000, 34.8438, -5.0000, 1.5218, 3.9229, -2.6204, -0.0156, 0.1597, 0.4199, -0.5562,
        -0.5484, -0.6654, -0.2672, 0.7117, 0.7234, -0.6219, -5.6812, 2.6297, 33.3389, -18.3000,
        -62.2500, 52.0781, -3.5000, 0.0016, 1.1477, 0.1062, 0.4659, -0.3296, -0.0876, -0.0329,
        -0.6000, -0.3566, -2.5000, 2.3250, 0.2937, 0.0496, -5.6812, 1.8415, 21.0000, -4.7656,
        -21.5906, 7.2492, -3.5000, -0.1554, 1.4062, 0.3988, 0.0032, 0.0766, -0.0656, -0.1294,
        -1.0156, -0.3670, 1.0078, 1.4051, 0.2875, -0.5328, -3.8500, 3.3750, 14.0000, -0.9999,
        -7.1406, 7.5469, -3.4000, -0.1078, -1.0750, 1.5702, -0.0672, 0.4016, 0.3017, -0.4844,
        -1.0000, 0.0211, 0.5025, -0.5119, -0.3000, 0.1922, 0.7023, -1.6317, 19.0000, -5.0000,
        1.2438, -1.9094, -4.0000, 0.0250, 0.3844, 0.2656, 1.0468, -0.3788, -2.4517, 1.4656,
        -1.0500, 0.0289, 0.4260, 0.3590, -0.3250, 0.1156, 0.7781, 0.0025, 31.0625, -14.5000,
        -46.1148, 55.3750, -7.2312, 0.4050, 13.3500, 0.6234, 1.5000, -0.6426, 1.8564, 0.5636,
    ]
).reshape(8, 5, 4)

CLEARNESS_BOUNDS = (1.065, 1.230, 1.500, 1.950, 2.800, 4.500, 6.200)


class WeaData(NamedTuple):
    """Weather related data object.

    Attributes:
        time: local standard time.
        dni: Direct normal irradiance (W/m2).
        dhi: Diffuse horizontal irradiance (W/m2).
        cc: Opaque sky cover in tenths (default = 0).
        dry_bulb: Dry bulb temperature (C).
        dew_point: Dew point temperature (C).
        horizontal_ir: Horizontal infrared radiation from the sky (W/m2).
    """

    time: datetime.datetime
    dni: Optional[float]
    dhi: Optional[float]
    cc: float = 0
    dry_bulb: Optional[float] = None
    dew_point: Optional[float] = None
    horizontal_ir: Optional[float] = None


class SunPosition(NamedTuple):
    """Sun position.

    Attributes:
        altitude: radians above the horizon.
        azimuth: radians from north, clockwise.
        direction: unit vector towards the sun (x east, y north, z up).
    """

    altitude: float
    azimuth: float
    direction: np.ndarray

    @property
    def above_horizon(self) -> bool:
        return self.altitude > 0


class ReinhartSky:
    """Reinhart subdivision of the sky hemisphere.

    Bin 0 is the ground, bins 1 .. n_patches are the sky patches
    numbered like Radiance reinhart.cal: row by row from the horizon,
    azimuth 0 at north (+Y) turning clockwise towards east (+X),
    with a single cap patch at the zenith.

    Attributes:
        mf: multiplication factor.
        n_rows: number of altitude rows below the cap.
        row_height: altitude width of a row (radians).
        row_counts: number of patches per row.
        n_patches: number of sky patches, 144 * mf**2 + 1.
        n_bins: n_patches + 1, the ground included.
        directions: (n_bins, 3) patch centre directions.
        solid_angles: (n_bins,) patch solid angles.
    """

    def __init__(self, mf: int = 1):
        if isinstance(mf, bool) or not isinstance(mf, (int, np.integer)) or mf < 1:
            raise InvalidDiscretization(
                f"Sky multiplication factor must be a positive integer, got {mf!r}"
            )
        self.mf = int(mf)
        self.n_rows = 7 * self.mf
        self.row_height = (math.pi / 2) / (self.n_rows + 0.5)
        self.row_counts = np.array(
            [self.mf * TREGENZA_ROW_COUNTS[r // self.mf] for r in range(self.n_rows)]
        )
        # first bin of every row, the cap last
        self.row_starts = np.concatenate(([1], 1 + np.cumsum(self.row_counts)))
        self.n_patches = int(self.row_counts.sum()) + 1
        self.n_bins = self.n_patches + 1
        self.cap_bin = int(self.row_starts[-1])
        self.directions, self.solid_angles = self._build_table()
        self.directions.setflags(write=False)
        self.solid_angles.setflags(write=False)
        logger.debug("Reinhart sky MF:%d with %d patches", self.mf, self.n_patches)

    def __repr__(self):
        return f"ReinhartSky(mf={self.mf})"

    def _build_table(self) -> tuple[np.ndarray, np.ndarray]:
        directions = np.zeros((self.n_bins, 3))
        solid_angles = np.zeros(self.n_bins)
        directions[GROUND_BIN] = (0.0, 0.0, -1.0)
        solid_angles[GROUND_BIN] = 2 * math.pi
        for row, count in enumerate(self.row_counts):
            alt = (row + 0.5) * self.row_height
            width = 2 * math.pi / count
            azi = np.arange(count) * width
            start = self.row_starts[row]
            directions[start : start + count, 0] = np.sin(azi) * math.cos(alt)
            directions[start : start + count, 1] = np.cos(azi) * math.cos(alt)
            directions[start : start + count, 2] = math.sin(alt)
            solid_angles[start : start + count] = width * (
                math.sin((row + 1) * self.row_height) - math.sin(row * self.row_height)
            )
        directions[self.cap_bin] = (0.0, 0.0, 1.0)
        solid_angles[self.cap_bin] = 2 * math.pi * (
            1 - math.sin(self.n_rows * self.row_height)
        )
        return directions, solid_angles

    def dir_to_bin(self, directions: np.ndarray) -> np.ndarray:
        """Map unit directions to bin indices.

        Args:
            directions: (n, 3) or (3,) unit vectors
        Returns:
            Bin index per direction; 0 for every downward direction.
        """
        directions = np.asarray(directions, dtype=float)
        single = directions.ndim == 1
        directions = np.atleast_2d(directions)
        bins = np.zeros(len(directions), dtype=np.int64)
        up = directions[:, 2] >= 0
        dirs = directions[up]
        alt = np.arcsin(np.clip(dirs[:, 2], -1.0, 1.0))
        row = np.floor(alt / self.row_height).astype(np.int64)
        cap = row >= self.n_rows
        row = np.minimum(row, self.n_rows - 1)
        count = self.row_counts[row]
        azi = np.mod(np.arctan2(dirs[:, 0], dirs[:, 1]), 2 * math.pi)
        col = np.mod(np.floor(azi * count / (2 * math.pi) + 0.5).astype(np.int64), count)
        bins[up] = np.where(cap, self.cap_bin, self.row_starts[row] + col)
        if single:
            return bins[0]
        return bins


def solar_position(meta, dt: datetime.datetime) -> SunPosition:
    """Calculate the sun position for a site and time.

    This is a translation of the Radiance sun.c formulas.

    Args:
        meta: object with latitude, longitude and standard_meridian
            attributes in degrees, north and east positive.
        dt: local standard time.

    Returns:
        SunPosition
    """
    latitude_r = math.radians(meta.latitude)
    jday = dt.timetuple().tm_yday
    hour = dt.hour + dt.minute / 60 + dt.second / 3600
    solar_decline = 0.4093 * math.sin((2 * math.pi / 368) * (jday - 81))
    solar_time = hour + (
        0.170 * math.sin((4 * math.pi / 373) * (jday - 80))
        - 0.129 * math.sin((2 * math.pi / 355) * (jday - 8))
        + (meta.longitude - meta.standard_meridian) / 15
    )
    hour_angle = solar_time * (math.pi / 12)
    altitude = math.asin(
        math.sin(latitude_r) * math.sin(solar_decline)
        - math.cos(latitude_r) * math.cos(solar_decline) * math.cos(hour_angle)
    )
    # from south, positive towards west
    azimuth_south = -math.atan2(
        math.cos(solar_decline) * math.sin(hour_angle),
        -math.cos(latitude_r) * math.sin(solar_decline)
        - math.sin(latitude_r) * math.cos(solar_decline) * math.cos(hour_angle),
    )
    azimuth = math.fmod(azimuth_south + 3 * math.pi, 2 * math.pi)
    direction = np.array(
        (
            math.sin(azimuth) * math.cos(altitude),
            math.cos(azimuth) * math.cos(altitude),
            math.sin(altitude),
        )
    )
    return SunPosition(altitude, azimuth, direction)


def eccentricity(day_of_year: int) -> float:
    """Earth orbit eccentricity correction factor."""
    day_angle = 2 * math.pi * (day_of_year - 1) / 365
    return (
        1.00011
        + 0.034221 * math.cos(day_angle)
        + 0.00128 * math.sin(day_angle)
        + 0.000719 * math.cos(2 * day_angle)
        + 0.000077 * math.sin(2 * day_angle)
    )


def perez_coefficients(zenith: float, epsilon: float, delta: float) -> np.ndarray:
    """Perez a-e coefficients for a sky clearness and brightness."""
    if 1.065 < epsilon < 2.8 and delta < 0.2:
        delta = 0.2
    category = int(np.searchsorted(CLEARNESS_BOUNDS, epsilon, side="right"))
    x = PEREZ_COEFF[category]
    if category:
        return x[:, 0] + x[:, 1] * zenith + delta * (x[:, 2] + x[:, 3] * zenith)
    return np.array(
        (
            x[0, 0] + x[0, 1] * zenith + delta * (x[0, 2] + x[0, 3] * zenith),
            x[1, 0] + x[1, 1] * zenith + delta * (x[1, 2] + x[1, 3] * zenith),
            math.exp((delta * (x[2, 0] + x[2, 1] * zenith)) ** x[2, 2]) - x[2, 3],
            -math.exp(delta * (x[3, 0] + x[3, 1] * zenith)) + x[3, 2] + delta * x[3, 3],
            x[4, 0] + x[4, 1] * zenith + delta * (x[4, 2] + x[4, 3] * zenith),
        )
    )


def gen_perez_sky_vector(
    sky: ReinhartSky,
    sun_dir: Sequence[float],
    dni: float,
    dhi: float,
    day_of_year: int,
    albedo: float = 0.2,
    add_sky: bool = True,
    add_sun: bool = False,
) -> np.ndarray:
    """Generate a Perez all-weather sky radiance vector.

    The sky part is normalized so that it integrates to the diffuse
    horizontal irradiance. The ground bin holds the radiance of a
    Lambertian ground lit by the global horizontal irradiance.

    Args:
        sky: sky discretization
        sun_dir: unit vector towards the sun
        dni: direct normal irradiance (W/m2)
        dhi: diffuse horizontal irradiance (W/m2)
        day_of_year: day number, 1 on January 1st
        albedo: ground reflectance
        add_sky: include the diffuse sky
        add_sun: spread the direct normal irradiance over the sun patch

    Returns:
        Radiance per bin (W/m2/sr), bin 0 the ground.
    """
    vec = np.zeros(sky.n_bins)
    if dni + dhi < 1e-4:
        return vec
    sun_dir = np.asarray(sun_dir, dtype=float)
    cos_zenith = float(np.clip(sun_dir[2], -1.0, 1.0))
    ghi = dhi + dni * max(cos_zenith, 0.0)
    if add_sky and dhi > 0:
        # keep the model defined for a sun at or below the horizon
        zenith = min(math.acos(cos_zenith), math.radians(89.5))
        zenith3 = 1.041 * zenith**3
        epsilon = ((dhi + dni) / dhi + zenith3) / (1 + zenith3)
        airmass = 1 / (
            math.cos(zenith) + 0.50572 * (96.07995 - math.degrees(zenith)) ** -1.6364
        )
        delta = airmass * dhi / (SOLAR_CONSTANT * eccentricity(day_of_year))
        epsilon = min(max(epsilon, 1.0), 12.0)
        delta = min(max(delta, 0.01), 0.6)
        coeff = perez_coefficients(zenith, epsilon, delta)
        logger.debug("Perez epsilon %.3f delta %.3f coefficients %s", epsilon, delta, coeff)
        patch_dirs = sky.directions[1:]
        cos_zeta = np.clip(patch_dirs[:, 2], 1e-3, 1.0)
        sun_unit = np.array(
            (sun_dir[0], sun_dir[1], math.cos(zenith))
        )
        horizontal = math.hypot(sun_dir[0], sun_dir[1])
        if horizontal > 0:
            scale = math.sin(zenith) / horizontal
            sun_unit[:2] *= scale
        cos_gamma = np.clip(patch_dirs @ sun_unit, -1.0, 1.0)
        gamma = np.arccos(cos_gamma)
        lv = (1 + coeff[0] * np.exp(coeff[1] / cos_zeta)) * (
            1 + coeff[2] * np.exp(coeff[3] * gamma) + coeff[4] * cos_gamma**2
        )
        lv = np.maximum(lv, 0.0)
        norm = float(np.sum(lv * patch_dirs[:, 2] * sky.solid_angles[1:]))
        if norm > 0:
            vec[1:] = lv * dhi / norm
    vec[GROUND_BIN] = albedo * ghi / math.pi
    if add_sun and dni > 0 and cos_zenith > 0:
        sun_bin = sky.dir_to_bin(sun_dir)
        vec[sun_bin] += dni / sky.solid_angles[sun_bin]
    return vec


STEFAN_BOLTZMANN = 5.670374419e-8


def estimate_horizontal_ir(dry_bulb: float, dew_point: float, opaque_sky_cover: float = 0.0) -> float:
    """Horizontal infrared radiation from the sky (W/m2).

    Clark and Allen sky emissivity, as EnergyPlus estimates it when
    the weather file lacks the field.

    Args:
        dry_bulb: dry bulb temperature (C)
        dew_point: dew point temperature (C)
        opaque_sky_cover: opaque sky cover in tenths
    """
    cover = opaque_sky_cover
    emissivity = (0.787 + 0.764 * math.log((dew_point + 273.15) / 273.0)) * (
        1 + 0.0224 * cover - 0.0035 * cover**2 + 0.00028 * cover**3
    )
    return emissivity * STEFAN_BOLTZMANN * (dry_bulb + 273.15) ** 4
