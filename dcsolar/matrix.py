"""Daylight coefficient and view factor generation.

This module casts rays from the sample points of building elements
against the scene and turns their terminations into the matrices
used at every timestep.

Key Components:
    Sampling:
        - get_sampler: cosine-weighted hemisphere ray caster
        - RayAccumulator: per element side hit counts

    Matrices:
        - calc_solar_dc_matrix: daylight coefficients, one row per sample
          point and one column per sky bin (column 0 the ground)
        - calc_view_factors: infrared view factors
        - calc_sun_coefficients: direct sun visibility per sun patch
        - add_interreflections: diffuse bounces over frozen matrices
        - calc_sun_interreflections: the same bounces for the direct sun

A daylight coefficient is the irradiance at a point per unit radiance
of a sky bin. With cosine-weighted directions its estimator is
pi * count(bin) / n_rays.
"""

from dataclasses import dataclass, field
import logging
import math
from typing import Callable, Dict, Iterable, Optional, Tuple

import numpy as np

from dcsolar.errors import SamplingInconsistency
from dcsolar.geom import orthonormal_basis
from dcsolar.optical_info import IRViewFactorSet
from dcsolar.scene import BACK, FRONT, HitKind, Scene
from dcsolar.sky import GROUND_BIN, ReinhartSky
from dcsolar.solar_surface import SolarSurface


logger: logging.Logger = logging.getLogger("dcsolar.matrix")


# fenestrations a direct sun ray may cross before it is discarded
MAX_CROSSINGS = 4

# (kind, index, side)
SideKey = Tuple[int, int, int]


def sampling_tolerance(n_rays: int) -> float:
    """Accepted error of the fractions estimated from n_rays rays."""
    return 1.0 / math.sqrt(n_rays)


def cosine_directions(
    normal: np.ndarray, n: int, rng: np.random.Generator
) -> np.ndarray:
    """Cosine-weighted directions over the hemisphere around normal."""
    u1 = rng.random(n)
    u2 = rng.random(n)
    radius = np.sqrt(u1)
    phi = 2 * math.pi * u2
    e1, e2 = orthonormal_basis(normal)
    x = radius * np.cos(phi)
    y = radius * np.sin(phi)
    z = np.sqrt(np.maximum(0.0, 1 - u1))
    return x[:, None] * e1 + y[:, None] * e2 + z[:, None] * np.asarray(normal)


@dataclass
class RayAccumulator:
    """Hit counts of the rays leaving one element side.

    Attributes:
        n_rays: rays per sample point.
        bins: (n_points, n_bins) rays escaping to each sky bin.
        air: (n_points,) rays terminating on obstructions or grazing.
        surfaces: (n_points, n_surfaces, 2) rays hitting the front/back
            of each surface.
        fenestrations: (n_points, n_fenestrations, 2) same for fenestrations.
    """

    n_rays: int
    bins: np.ndarray
    air: np.ndarray
    surfaces: np.ndarray
    fenestrations: np.ndarray

    @classmethod
    def empty(
        cls, n_points: int, n_bins: int, n_surfaces: int, n_fenestrations: int, n_rays: int
    ) -> "RayAccumulator":
        return cls(
            n_rays=n_rays,
            bins=np.zeros((n_points, n_bins)),
            air=np.zeros(n_points),
            surfaces=np.zeros((n_points, n_surfaces, 2)),
            fenestrations=np.zeros((n_points, n_fenestrations, 2)),
        )

    @property
    def n_points(self) -> int:
        return self.bins.shape[0]

    @property
    def n_total(self) -> int:
        return self.n_points * self.n_rays

    def record(
        self, rows: np.ndarray, directions: np.ndarray, hits, sky: ReinhartSky
    ) -> None:
        """Classify and count ray terminations.

        Args:
            rows: sample point of every ray
            directions: (n, 3) ray directions
            hits: RayHits of the rays
            sky: sky discretization
        """
        escaped = hits.kind == HitKind.NONE
        grazing = escaped & (directions[:, 2] == 0)
        to_sky = escaped & ~grazing
        np.add.at(self.bins, (rows[to_sky], sky.dir_to_bin(directions[to_sky])), 1)
        air = grazing | (hits.kind == HitKind.OBSTRUCTION)
        self.air += np.bincount(rows[air], minlength=self.n_points)
        for kind, counts in (
            (HitKind.SURFACE, self.surfaces),
            (HitKind.FENESTRATION, self.fenestrations),
        ):
            mask = hits.kind == kind
            np.add.at(counts, (rows[mask], hits.index[mask], hits.side[mask]), 1)

    def dc_matrix(self) -> np.ndarray:
        return math.pi * self.bins / self.n_rays

    def view_factors(self) -> IRViewFactorSet:
        total = self.n_total
        return IRViewFactorSet(
            ground=self.bins[:, GROUND_BIN].sum() / total,
            sky=self.bins[:, GROUND_BIN + 1 :].sum() / total,
            air=self.air.sum() / total,
            surfaces=self.surfaces.sum(axis=(0, 2)) / total,
            fenestrations=self.fenestrations.sum(axis=(0, 2)) / total,
        )


Sampler = Callable[[np.ndarray, np.ndarray, Iterable[int]], RayAccumulator]


def get_sampler(scene: Scene, sky: ReinhartSky, n_rays: int, seed: int = 0) -> Sampler:
    """Get the ray caster shared by daylight coefficients and view factors.

    The returned function takes the sample points, the outward normal
    and a key identifying the element side. The key and the seed
    fully determine the rays, so identical calls return identical
    counts.

    Args:
        scene: geometry to cast against
        sky: sky discretization
        n_rays: rays per sample point
        seed: base seed
    Returns:
        sampler(origins, normal, key) -> RayAccumulator
    """

    def sampler(origins: np.ndarray, normal: np.ndarray, key: Iterable[int] = ()) -> RayAccumulator:
        rng = np.random.default_rng([seed, *key])
        n_points = len(origins)
        directions = cosine_directions(normal, n_points * n_rays, rng)
        ray_origins = np.repeat(origins, n_rays, axis=0)
        hits = scene.cast_rays(ray_origins, directions)
        accumulator = RayAccumulator.empty(
            n_points, sky.n_bins, scene.n_surfaces, scene.n_fenestrations, n_rays
        )
        accumulator.record(np.repeat(np.arange(n_points), n_rays), directions, hits, sky)
        return accumulator

    return sampler


@dataclass
class DCFactory:
    """Settings shared by every matrix of a model.

    Attributes:
        sky: diffuse sky discretization.
        sun_sky: discretization of the sun positions.
        n_rays: rays per sample point.
        max_depth: diffuse bounces added by add_interreflections.
        seed: base seed.
    """

    sky: ReinhartSky
    sun_sky: ReinhartSky
    n_rays: int
    max_depth: int = 0
    seed: int = 0
    tolerance: float = field(init=False)

    def __post_init__(self):
        self.tolerance = sampling_tolerance(self.n_rays)

    def accumulate(self, scene: Scene, surface: SolarSurface, side: int) -> RayAccumulator:
        """Cast and count the rays of one element side."""
        origins, directions = surface.rays(side)
        sampler = get_sampler(scene, self.sky, self.n_rays, self.seed)
        return sampler(origins, directions[0], (int(surface.kind), surface.index, side))


def calc_solar_dc_matrix(
    scene: Scene,
    surface: SolarSurface,
    side: int,
    factory: DCFactory,
    accumulator: Optional[RayAccumulator] = None,
) -> np.ndarray:
    """Direct daylight coefficients of one element side.

    Returns:
        (n_points, n_bins) matrix, zero when the side cannot see the sun.
    """
    if not surface.receives_sun(side):
        return np.zeros((surface.n_points, factory.sky.n_bins))
    if accumulator is None:
        accumulator = factory.accumulate(scene, surface, side)
    return accumulator.dc_matrix()


def calc_view_factors(
    scene: Scene,
    surface: SolarSurface,
    side: int,
    factory: DCFactory,
    accumulator: Optional[RayAccumulator] = None,
) -> IRViewFactorSet:
    """Infrared view factors of one element side.

    Raises:
        SamplingInconsistency: the fractions do not sum to one.
    """
    if accumulator is None:
        accumulator = factory.accumulate(scene, surface, side)
    view_factors = accumulator.view_factors()
    view_factors.check_closure(factory.tolerance)
    return view_factors


def beam_transmittance(
    scene: Scene, origins: np.ndarray, directions: np.ndarray
) -> np.ndarray:
    """Fraction of a beam reaching the sky along each ray.

    Rays go through fenestrations, attenuated by their transmittance,
    and are stopped by anything else.
    """
    tau = np.array([e.transmittance for e in scene.fenestrations])
    weight = np.ones(len(origins))
    origins = origins.copy()
    active = np.arange(len(origins))
    for _ in range(MAX_CROSSINGS + 1):
        if len(active) == 0:
            break
        hits = scene.cast_rays(origins[active], directions[active])
        through = hits.kind == HitKind.FENESTRATION
        crossing_tau = np.zeros(len(active))
        crossing_tau[through] = tau[hits.index[through]]
        passing = through & (crossing_tau > 0)
        blocked = (hits.kind != HitKind.NONE) & ~passing
        weight[active[blocked]] = 0
        weight[active[passing]] *= crossing_tau[passing]
        moved = active[passing]
        origins[moved] += directions[moved] * (hits.distance[passing] + 1e-6)[:, None]
        active = moved
    weight[active] = 0
    return weight


def calc_sun_coefficients(
    scene: Scene, surface: SolarSurface, side: int, factory: DCFactory
) -> np.ndarray:
    """Direct sun visibility of one element side.

    For the centre of every sun patch in front of the side, the mean
    over the sample points of the beam transmittance towards it.

    Returns:
        (n_sun_bins,) array, zero for the ground bin, for patches behind
        the side, and for sides that cannot see the sun.
    """
    coefficients = np.zeros(factory.sun_sky.n_bins)
    if not surface.receives_sun(side):
        return coefficients
    origins, directions = surface.rays(side)
    patch_dirs = factory.sun_sky.directions
    facing = patch_dirs @ directions[0] > 0
    facing[GROUND_BIN] = False
    idx = np.flatnonzero(facing)
    if len(idx) == 0:
        return coefficients
    ray_dirs = np.tile(patch_dirs[idx], (surface.n_points, 1))
    ray_origins = np.repeat(origins, len(idx), axis=0)
    weights = beam_transmittance(scene, ray_origins, ray_dirs)
    coefficients[idx] = weights.reshape(surface.n_points, len(idx)).mean(axis=0)
    return coefficients


def check_dc_consistency(
    dc_matrix: np.ndarray, view_factors: IRViewFactorSet, tolerance: float
) -> None:
    """Compare the sky columns of direct daylight coefficients with the sky view factor.

    Raises:
        SamplingInconsistency: the two disagree.
    """
    sky = dc_matrix[:, GROUND_BIN + 1 :].sum(axis=1).mean() / math.pi
    if abs(sky - view_factors.sky) > tolerance:
        raise SamplingInconsistency(
            f"Daylight coefficients see {sky:.6f} of sky, view factors {view_factors.sky:.6f}"
        )


def _bounce_passes(
    direct: Dict[SideKey, np.ndarray],
    accumulators: Dict[SideKey, RayAccumulator],
    scene: Scene,
    max_depth: int,
    shaded: Iterable[SideKey],
    specular: Optional[Dict[SideKey, np.ndarray]] = None,
) -> Dict[SideKey, np.ndarray]:
    """Run max_depth bounce passes over per side irradiance rows.

    Every pass adds, for each element j and side s hit by the rays of
    a point, F(j, s) * (rho_j * avg_j(s) + tau_j * avg_j(other side)),
    using the averages of the previous pass. The part of avg_j(other side)
    listed in specular already went through element j unscattered and
    is not transmitted again.
    """
    shaded = set(shaded)
    specular = specular or {}
    n_cols = next(iter(direct.values())).shape[1]
    zeros = np.zeros(n_cols)
    optics = {}
    for kind in (HitKind.SURFACE, HitKind.FENESTRATION):
        elements = scene.elements(kind)
        optics[kind] = (
            np.array([e.reflectance for e in elements]),
            np.array([e.transmittance for e in elements]),
        )
    current = dict(direct)
    for depth in range(max_depth):
        averages = {key: rows.mean(axis=0) for key, rows in current.items()}
        leaving = {}
        for kind, (rho, tau) in optics.items():
            n = len(rho)
            for side in (FRONT, BACK):
                same = np.array(
                    [averages.get((int(kind), j, side), zeros) for j in range(n)]
                ).reshape(n, n_cols)
                other = np.array(
                    [
                        averages.get((int(kind), j, 1 - side), zeros)
                        - specular.get((int(kind), j, 1 - side), zeros)
                        for j in range(n)
                    ]
                ).reshape(n, n_cols)
                leaving[kind, side] = rho[:, None] * same + tau[:, None] * other
        updated = {}
        for key, rows in direct.items():
            if key in shaded:
                updated[key] = rows
                continue
            acc = accumulators[key]
            extra = np.zeros((acc.n_points, n_cols))
            for kind, counts in (
                (HitKind.SURFACE, acc.surfaces),
                (HitKind.FENESTRATION, acc.fenestrations),
            ):
                for side in (FRONT, BACK):
                    extra += (counts[:, :, side] / acc.n_rays) @ leaving[kind, side]
            updated[key] = rows + extra
        current = updated
        logger.debug("Interreflection pass %d done", depth + 1)
    return current


def add_interreflections(
    dc_matrices: Dict[SideKey, np.ndarray],
    accumulators: Dict[SideKey, RayAccumulator],
    scene: Scene,
    max_depth: int,
    shaded: Iterable[SideKey] = (),
) -> Dict[SideKey, np.ndarray]:
    """Add diffuse bounces to direct daylight coefficients.

    Args:
        dc_matrices: direct daylight coefficients per element side
        accumulators: ray counts per element side
        scene: scene the matrices were computed on
        max_depth: number of passes
        shaded: element sides left without sun or sky
    Returns:
        New daylight coefficients per element side.
    """
    if max_depth == 0 or not dc_matrices:
        return dict(dc_matrices)
    return _bounce_passes(dc_matrices, accumulators, scene, max_depth, shaded)


def calc_sun_interreflections(
    sun_coefficients: Dict[SideKey, np.ndarray],
    normals: Dict[SideKey, np.ndarray],
    sun_sky: ReinhartSky,
    accumulators: Dict[SideKey, RayAccumulator],
    scene: Scene,
    max_depth: int,
    shaded: Iterable[SideKey] = (),
) -> Dict[SideKey, np.ndarray]:
    """Direct sun reaching each element side after diffuse bounces.

    The beam on a side for a sun in patch p, per unit direct normal
    irradiance, is cos(n, p) * sun_coefficients(p). It goes through the
    same passes as the daylight coefficients. Fenestrations do not
    transmit their beam a second time: the sun coefficients of the
    sides behind them already carry it.

    Returns:
        (n_sun_bins,) bounced irradiance per unit direct normal
        irradiance for every element side, the beam itself excluded.
    """
    bounced = {key: np.zeros(sun_sky.n_bins) for key in sun_coefficients}
    if max_depth == 0 or not sun_coefficients:
        return bounced
    beams = {
        key: (coefficients * np.maximum(sun_sky.directions @ normals[key], 0.0))[None, :]
        for key, coefficients in sun_coefficients.items()
    }
    specular = {
        key: beam[0] for key, beam in beams.items() if key[0] == int(HitKind.FENESTRATION)
    }
    total = _bounce_passes(beams, accumulators, scene, max_depth, shaded, specular)
    for key, beam in beams.items():
        bounced[key] = (total[key] - beam).mean(axis=0)
    return bounced
