"""
Options for the solar model.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict

from dcsolar.errors import InvalidDiscretization, InvalidGeometry


POINT_POLICIES = ("random", "centroid")


@dataclass
class MetaOptions:
    """Site description.

    Attributes:
        latitude: degrees, north positive.
        longitude: degrees, east positive.
        standard_meridian: time zone meridian, degrees, east positive.
    """

    latitude: float = 37.0
    longitude: float = -122.0
    standard_meridian: float = -120.0

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180 <= self.longitude <= 180:
            raise ValueError(f"Longitude out of range: {self.longitude}")

    @staticmethod
    def from_dict(obj: Dict[str, Any]) -> "MetaOptions":
        return MetaOptions(**obj)


@dataclass
class SolarOptions:
    """Solar model options.

    Attributes:
        solar_sky_discretization: Reinhart multiplication factor of the
            diffuse sky.
        sun_sky_discretization: Reinhart multiplication factor used for
            the direct sun positions.
        n_solar_irradiance_points: sample points per element.
        solar_ambient_divitions: rays per sample point.
        delta: offset of the sample points off the element plane (m).
        max_depth: number of diffuse bounces added to the direct
            daylight coefficients; 0 keeps them direct only.
        albedo: ground reflectance.
        seed: base seed of every random draw.
        point_policy: "random" area sampling or "centroid".
        n_workers: precomputation threads.
        optical_info_file: .npz file holding precomputed optical info.
        save_optical_info: write the optical info file after computing it.
    """

    solar_sky_discretization: int = 1
    sun_sky_discretization: int = 4
    n_solar_irradiance_points: int = 10
    solar_ambient_divitions: int = 3000
    delta: float = field(default=0.001)
    max_depth: int = 0
    albedo: float = 0.2
    seed: int = 0
    point_policy: str = field(default="random")
    n_workers: int = 4
    optical_info_file: str = field(default="")
    save_optical_info: bool = False

    def __post_init__(self):
        for name in ("solar_sky_discretization", "sun_sky_discretization"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidDiscretization(f"{name} must be a positive integer, got {value!r}")
        if self.n_solar_irradiance_points < 1:
            raise InvalidGeometry(
                f"At least one sample point per element is needed, got {self.n_solar_irradiance_points}"
            )
        if self.solar_ambient_divitions < 1:
            raise ValueError("solar_ambient_divitions must be positive")
        if self.delta <= 0:
            raise ValueError("delta must be positive")
        if self.max_depth < 0:
            raise ValueError("max_depth cannot be negative")
        if not 0 <= self.albedo <= 1:
            raise ValueError(f"Albedo out of range: {self.albedo}")
        if self.point_policy not in POINT_POLICIES:
            raise ValueError(f"Unknown point policy {self.point_policy}, expected one of {POINT_POLICIES}")
        if self.n_workers < 1:
            raise ValueError("n_workers must be positive")
        if self.save_optical_info and self.optical_info_file == "":
            raise ValueError("save_optical_info requires optical_info_file")

    @staticmethod
    def from_dict(obj: Dict[str, Any]) -> "SolarOptions":
        """Generate a SolarOptions object from a dictionary.
        Unknown keys are rejected.
        Args:
            obj: A dictionary of solar options.
        Returns:
            A SolarOptions object.
        """
        known = {f.name for f in fields(SolarOptions)}
        unknown = set(obj) - known
        if unknown:
            raise ValueError(f"Unknown solar options: {sorted(unknown)}")
        return SolarOptions(**obj)
