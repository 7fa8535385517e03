"""
Sampling points and rays on building elements.
"""

import logging
from typing import Optional

import numpy as np

from dcsolar.errors import InvalidGeometry
from dcsolar.geom import Polygon, sample_triangles, triangle_areas
from dcsolar.scene import BACK, FRONT, HitKind, Scene
from dcsolar.state import IR_FIELDS, SOLAR_FIELDS, SimulationStateHeader

logger: logging.Logger = logging.getLogger("dcsolar.solar_surface")


DELTA = 0.001

# boundaries whose side cannot be reached by the sun
SHADED_BOUNDARIES = ("ground", "ambient_temperature")

STATE_KINDS = {HitKind.SURFACE: "surface", HitKind.FENESTRATION: "fenestration"}


class SolarSurface:
    """Sample points of one building element.

    Attributes:
        polygon: source polygon.
        points: (n_points, 3) sample points on the polygon.
        normal: unit normal of the front side.
        delta: offset of the ray origins off the plane.
        receives_sun_front: whether sun and sky reach the front side.
        receives_sun_back: whether sun and sky reach the back side.
        kind: HitKind of the element in its scene.
        index: element index within its kind.
    """

    def __init__(
        self,
        polygon: Polygon,
        n_points: int,
        delta: float = DELTA,
        receives_sun_front: bool = True,
        receives_sun_back: bool = True,
        seed: int = 0,
        policy: str = "random",
        kind: HitKind = HitKind.SURFACE,
        index: int = 0,
        name: str = "",
    ):
        if n_points < 1:
            raise InvalidGeometry(f"{name}: at least one sample point is needed, got {n_points}")
        self.polygon = polygon
        self.name = name
        self.kind = HitKind(kind)
        self.index = index
        self.delta = delta
        self.normal = polygon.normal
        self.receives_sun_front = receives_sun_front
        self.receives_sun_back = receives_sun_back
        triangles = polygon.triangulate()
        areas = triangle_areas(triangles)
        if areas.sum() <= np.finfo(float).eps:
            raise InvalidGeometry(f"{name}: polygon has no area")
        if policy == "centroid":
            centroids = triangles.mean(axis=1)
            self.points = (areas @ centroids / areas.sum())[None, :]
        elif policy == "random":
            rng = np.random.default_rng([seed, int(self.kind), index])
            self.points = sample_triangles(triangles, n_points, rng)
        else:
            raise ValueError(f"Unknown point policy {policy}")
        self.points.setflags(write=False)
        logger.debug("%s: %d sample points", name or f"{self.kind.name} {index}", len(self.points))

    def __repr__(self):
        return f"SolarSurface({self.kind.name}, {self.index}, n_points={self.n_points})"

    @property
    def n_points(self) -> int:
        return len(self.points)

    @property
    def area(self) -> float:
        return self.polygon.area

    def receives_sun(self, side: int) -> bool:
        return self.receives_sun_front if side == FRONT else self.receives_sun_back

    def side_normal(self, side: int) -> np.ndarray:
        return self.normal if side == FRONT else -self.normal

    def rays(self, side: int) -> tuple[np.ndarray, np.ndarray]:
        """Origins and directions of the rays leaving one side.

        A fresh pair of arrays is returned on every call.
        """
        normal = self.side_normal(side)
        origins = self.points + self.delta * normal
        directions = np.tile(normal, (self.n_points, 1))
        return origins, directions

    def front_rays(self) -> tuple[np.ndarray, np.ndarray]:
        return self.rays(FRONT)

    def back_rays(self) -> tuple[np.ndarray, np.ndarray]:
        return self.rays(BACK)


def receives_sun(boundary: str) -> bool:
    """Whether a side with this boundary can see the sun and the sky."""
    return boundary not in SHADED_BOUNDARIES


def _make(
    scene: Scene,
    kind: HitKind,
    state_header: Optional[SimulationStateHeader],
    n_points: int,
    delta: float,
    seed: int,
    policy: str,
) -> list[SolarSurface]:
    surfaces = []
    for index, element in enumerate(scene.elements(kind)):
        surfaces.append(
            SolarSurface(
                element.polygon,
                n_points,
                delta=delta,
                receives_sun_front=receives_sun(element.front_boundary),
                receives_sun_back=receives_sun(element.back_boundary),
                seed=seed,
                policy=policy,
                kind=kind,
                index=index,
                name=element.name,
            )
        )
    if state_header is not None:
        for index in range(len(surfaces)):
            for field in SOLAR_FIELDS + IR_FIELDS:
                state_header.register((STATE_KINDS[kind], index, field))
    return surfaces


def make_surfaces(
    scene: Scene,
    state_header: Optional[SimulationStateHeader],
    n_points: int,
    delta: float = DELTA,
    seed: int = 0,
    policy: str = "random",
) -> list[SolarSurface]:
    """One SolarSurface per opaque surface of the scene.

    The front/back solar and infrared slots of every surface are
    registered in the state header.
    """
    return _make(scene, HitKind.SURFACE, state_header, n_points, delta, seed, policy)


def make_fenestrations(
    scene: Scene,
    state_header: Optional[SimulationStateHeader],
    n_points: int,
    delta: float = DELTA,
    seed: int = 0,
    policy: str = "random",
) -> list[SolarSurface]:
    """One SolarSurface per fenestration of the scene."""
    return _make(scene, HitKind.FENESTRATION, state_header, n_points, delta, seed, policy)
