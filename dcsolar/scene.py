"""
Scene geometry and ray intersection.

A scene holds the simulated opaque surfaces and fenestrations,
plus obstructions: context geometry that shades and blocks rays
but is not simulated itself.
"""

from dataclasses import dataclass
from enum import IntEnum
import logging
from typing import NamedTuple, Optional, Sequence

import numpy as np

from dcsolar.errors import InvalidGeometry
from dcsolar.geom import Polygon, Ray3D


logger: logging.Logger = logging.getLogger("dcsolar.scene")

FRONT = 0
BACK = 1

BOUNDARIES = ("outdoor", "space", "ground", "ambient_temperature")

# Ray-triangle pairs handled per intersection batch
MAX_BATCH_PAIRS = 2_000_000


class HitKind(IntEnum):
    """What a ray terminated on."""

    NONE = 0
    SURFACE = 1
    FENESTRATION = 2
    OBSTRUCTION = 3


@dataclass(frozen=True)
class Element:
    """A building element.

    Attributes:
        name: element name.
        polygon: element geometry; the front side is the one
            the normal points to.
        reflectance: diffuse solar reflectance.
        transmittance: diffuse solar transmittance.
        front_boundary: what the front side faces, one of
            outdoor, space, ground or ambient_temperature.
        back_boundary: what the back side faces.
    """

    name: str
    polygon: Polygon
    reflectance: float = 0.0
    transmittance: float = 0.0
    front_boundary: str = "outdoor"
    back_boundary: str = "outdoor"

    def __post_init__(self):
        if not isinstance(self.polygon, Polygon):
            object.__setattr__(self, "polygon", Polygon(self.polygon))
        for boundary in (self.front_boundary, self.back_boundary):
            if boundary not in BOUNDARIES:
                raise ValueError(f"Unknown boundary {boundary}, expected one of {BOUNDARIES}")
        if not 0 <= self.reflectance <= 1 or not 0 <= self.transmittance <= 1:
            raise ValueError(f"{self.name}: reflectance and transmittance must be in [0, 1]")
        if self.reflectance + self.transmittance > 1:
            raise ValueError(f"{self.name}: reflectance + transmittance exceeds 1")

    def boundary(self, side: int) -> str:
        return self.front_boundary if side == FRONT else self.back_boundary


class RayHits(NamedTuple):
    """Nearest hit per ray.

    Attributes:
        kind: HitKind per ray.
        index: element index within its kind, -1 when nothing was hit.
        side: FRONT or BACK side of the element hit, -1 when nothing was hit.
        distance: distance to the hit, inf when nothing was hit.
    """

    kind: np.ndarray
    index: np.ndarray
    side: np.ndarray
    distance: np.ndarray


class Scene:
    """Immutable collection of surfaces, fenestrations and obstructions."""

    def __init__(
        self,
        surfaces: Optional[Sequence[Element]] = None,
        fenestrations: Optional[Sequence[Element]] = None,
        obstructions: Optional[Sequence[Polygon]] = None,
    ):
        self.surfaces: tuple[Element, ...] = tuple(surfaces or ())
        self.fenestrations: tuple[Element, ...] = tuple(fenestrations or ())
        self.obstructions: tuple[Polygon, ...] = tuple(
            p if isinstance(p, Polygon) else Polygon(p) for p in (obstructions or ())
        )
        triangles = []
        kinds = []
        indices = []
        normals = []
        groups = (
            (HitKind.SURFACE, [e.polygon for e in self.surfaces]),
            (HitKind.FENESTRATION, [e.polygon for e in self.fenestrations]),
            (HitKind.OBSTRUCTION, list(self.obstructions)),
        )
        for kind, polygons in groups:
            for idx, polygon in enumerate(polygons):
                tris = polygon.triangulate()
                triangles.append(tris)
                kinds.extend([kind] * len(tris))
                indices.extend([idx] * len(tris))
                normals.extend([polygon.normal] * len(tris))
        if triangles:
            tris = np.concatenate(triangles)
        else:
            tris = np.zeros((0, 3, 3))
        self._v0 = tris[:, 0]
        self._e1 = tris[:, 1] - tris[:, 0]
        self._e2 = tris[:, 2] - tris[:, 0]
        self._kind = np.array(kinds, dtype=np.int8)
        self._index = np.array(indices, dtype=np.int64)
        self._normal = np.array(normals, dtype=float).reshape(-1, 3)
        logger.debug(
            "Scene with %d surfaces, %d fenestrations, %d obstructions (%d triangles)",
            len(self.surfaces),
            len(self.fenestrations),
            len(self.obstructions),
            len(tris),
        )

    @property
    def n_surfaces(self) -> int:
        return len(self.surfaces)

    @property
    def n_fenestrations(self) -> int:
        return len(self.fenestrations)

    @property
    def n_triangles(self) -> int:
        return len(self._v0)

    def elements(self, kind: HitKind) -> tuple[Element, ...]:
        if kind == HitKind.SURFACE:
            return self.surfaces
        if kind == HitKind.FENESTRATION:
            return self.fenestrations
        raise ValueError(f"No simulated elements of kind {kind!r}")

    def cast_rays(
        self, origins: np.ndarray, directions: np.ndarray, t_min: float = 1e-9
    ) -> RayHits:
        """Find the nearest hit of every ray.

        Both triangle sides are hit (Moller-Trumbore without culling).

        Args:
            origins: (n, 3) ray origins
            directions: (n, 3) unit directions
            t_min: hits closer than this are ignored
        Returns:
            RayHits
        """
        origins = np.atleast_2d(np.asarray(origins, dtype=float))
        directions = np.atleast_2d(np.asarray(directions, dtype=float))
        if origins.shape != directions.shape:
            raise InvalidGeometry("Ray origins and directions do not match")
        nrays = len(origins)
        kind = np.zeros(nrays, dtype=np.int8)
        index = np.full(nrays, -1, dtype=np.int64)
        side = np.full(nrays, -1, dtype=np.int8)
        distance = np.full(nrays, np.inf)
        if self.n_triangles == 0 or nrays == 0:
            return RayHits(kind, index, side, distance)
        batch = max(1, MAX_BATCH_PAIRS // self.n_triangles)
        for start in range(0, nrays, batch):
            stop = min(start + batch, nrays)
            tri, dist = self._intersect(origins[start:stop], directions[start:stop], t_min)
            hit = np.isfinite(dist)
            rows = np.arange(start, stop)[hit]
            tri = tri[hit]
            kind[rows] = self._kind[tri]
            index[rows] = self._index[tri]
            facing = np.einsum("ij,ij->i", directions[rows], self._normal[tri])
            side[rows] = np.where(facing < 0, FRONT, BACK)
            distance[rows] = dist[hit]
        return RayHits(kind, index, side, distance)

    def _intersect(self, origins, directions, t_min):
        eps = 1e-12
        pvec = np.cross(directions[:, None, :], self._e2[None, :, :])
        det = np.einsum("tk,rtk->rt", self._e1, pvec)
        valid = np.abs(det) > eps
        inv_det = 1.0 / np.where(valid, det, 1.0)
        tvec = origins[:, None, :] - self._v0[None, :, :]
        u = np.einsum("rtk,rtk->rt", tvec, pvec) * inv_det
        qvec = np.cross(tvec, self._e1[None, :, :])
        v = np.einsum("rk,rtk->rt", directions, qvec) * inv_det
        t = np.einsum("tk,rtk->rt", self._e2, qvec) * inv_det
        hit = valid & (u >= 0) & (v >= 0) & (u + v <= 1) & (t > t_min)
        t = np.where(hit, t, np.inf)
        nearest = np.argmin(t, axis=1)
        return nearest, t[np.arange(len(t)), nearest]

    def cast_ray(self, ray: Ray3D) -> tuple[HitKind, int, int, float]:
        """Nearest hit of a single ray as (kind, index, side, distance)."""
        hits = self.cast_rays(ray.origin[None, :], ray.direction[None, :])
        return (
            HitKind(int(hits.kind[0])),
            int(hits.index[0]),
            int(hits.side[0]),
            float(hits.distance[0]),
        )
