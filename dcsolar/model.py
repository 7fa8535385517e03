"""
Solar and infrared radiation model.

The model is built once: every element side gets its view factors,
daylight coefficients and direct sun coefficients. Each timestep
then only combines these frozen matrices with the sky of the moment.
"""

from concurrent.futures import ThreadPoolExecutor
import dataclasses
import datetime
import hashlib
import logging
import math
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence, Union

import numpy as np
from scipy.sparse import csr_matrix

from dcsolar.config import MetaOptions, SolarOptions
from dcsolar.errors import MarchFailure, SamplingInconsistency
from dcsolar.matrix import (
    DCFactory,
    add_interreflections,
    calc_solar_dc_matrix,
    calc_sun_coefficients,
    calc_sun_interreflections,
    calc_view_factors,
    check_dc_consistency,
    sampling_tolerance,
)
from dcsolar.optical_info import GROUPS, OpticalInfo, load_optical_info, save_optical_info
from dcsolar.scene import BACK, FRONT, HitKind, Scene
from dcsolar.sky import (
    STEFAN_BOLTZMANN,
    ReinhartSky,
    WeaData,
    estimate_horizontal_ir,
    gen_perez_sky_vector,
    solar_position,
)
from dcsolar.solar_surface import STATE_KINDS, SolarSurface, make_fenestrations, make_surfaces
from dcsolar.state import SimulationState, SimulationStateHeader

logger: logging.Logger = logging.getLogger("dcsolar.model")


# dni + dhi below this is night
NIGHT_THRESHOLD = 1e-4

# options that do not change the optical info
RUNTIME_OPTIONS = ("albedo", "n_workers", "optical_info_file", "save_optical_info")

SIDE_NAMES = {FRONT: "front", BACK: "back"}
KIND_GROUPS = {HitKind.SURFACE: "surfaces", HitKind.FENESTRATION: "fenestrations"}


def group_name(kind: HitKind, side: int) -> str:
    return f"{SIDE_NAMES[side]}_{KIND_GROUPS[kind]}"


class _GroupOperator(NamedTuple):
    """Stacked matrices of one group of element sides."""

    dc: csr_matrix
    sun: np.ndarray
    sun_bounce: np.ndarray
    normals: np.ndarray
    sky: np.ndarray
    solar_slots: np.ndarray
    ir_slots: np.ndarray


def _compute_side(scene: Scene, surface: SolarSurface, side: int, factory: DCFactory):
    accumulator = factory.accumulate(scene, surface, side)
    dc_matrix = calc_solar_dc_matrix(scene, surface, side, factory, accumulator)
    view_factors = calc_view_factors(scene, surface, side, factory, accumulator)
    sun_coefficients = calc_sun_coefficients(scene, surface, side, factory)
    return accumulator, dc_matrix, view_factors, sun_coefficients


def compute_optical_info(
    scene: Scene,
    surfaces: Sequence[SolarSurface],
    fenestrations: Sequence[SolarSurface],
    factory: DCFactory,
    n_workers: int = 1,
) -> Dict[str, List[OpticalInfo]]:
    """Compute the optical info of every element side.

    Element sides are computed by a pool of n_workers threads, each
    task owning its accumulator. The results are reduced in one step.

    Returns:
        Optical info lists keyed by group name.
    """
    tasks = [(s, side) for s in list(surfaces) + list(fenestrations) for side in (FRONT, BACK)]
    logger.info("Computing optical info of %d element sides...", len(tasks))
    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        results = list(
            executor.map(lambda task: _compute_side(scene, task[0], task[1], factory), tasks)
        )
    accumulators = {}
    dc_matrices = {}
    view_factors = {}
    sun_coefficients = {}
    normals = {}
    shaded = set()
    for (surface, side), (acc, dc_matrix, vf, sun) in zip(tasks, results):
        key = (int(surface.kind), surface.index, side)
        accumulators[key] = acc
        dc_matrices[key] = dc_matrix
        view_factors[key] = vf
        sun_coefficients[key] = sun
        normals[key] = surface.side_normal(side)
        if not surface.receives_sun(side):
            shaded.add(key)
    if factory.max_depth == 0:
        for key, dc_matrix in dc_matrices.items():
            if key not in shaded:
                check_dc_consistency(dc_matrix, view_factors[key], factory.tolerance)
    else:
        dc_matrices = add_interreflections(
            dc_matrices, accumulators, scene, factory.max_depth, shaded
        )
    sun_bounce = calc_sun_interreflections(
        sun_coefficients,
        normals,
        factory.sun_sky,
        accumulators,
        scene,
        factory.max_depth,
        shaded,
    )
    infos: Dict[str, List[OpticalInfo]] = {group: [] for group in GROUPS}
    for surface, side in tasks:
        key = (int(surface.kind), surface.index, side)
        infos[group_name(surface.kind, side)].append(
            OpticalInfo.new(
                view_factors[key], dc_matrices[key], sun_coefficients[key], sun_bounce[key]
            )
        )
    return infos


def optical_info_hash(scene: Scene, solar_options: SolarOptions) -> str:
    """Digest of the scene and of the options the optical info depends on."""
    options = {
        k: v for k, v in dataclasses.asdict(solar_options).items() if k not in RUNTIME_OPTIONS
    }
    elements = [
        (
            e.name,
            e.polygon.vertices.tolist(),
            e.reflectance,
            e.transmittance,
            e.front_boundary,
            e.back_boundary,
        )
        for e in scene.surfaces + scene.fenestrations
    ]
    obstructions = [p.vertices.tolist() for p in scene.obstructions]
    return hashlib.md5(str((options, elements, obstructions)).encode()).hexdigest()[:16]


class SolarModel:
    """Solar and infrared irradiance on every side of every element.

    Use SolarModel.new to build one.
    """

    def __init__(
        self,
        meta_options: MetaOptions,
        solar_options: SolarOptions,
        sky: ReinhartSky,
        sun_sky: ReinhartSky,
        surfaces: Sequence[SolarSurface],
        fenestrations: Sequence[SolarSurface],
        infos: Dict[str, List[OpticalInfo]],
        state_header: SimulationStateHeader,
    ):
        self.meta_options = meta_options
        self.solar_options = solar_options
        self.sky = sky
        self.sun_sky = sun_sky
        self._surfaces = tuple(surfaces)
        self._fenestrations = tuple(fenestrations)
        self._infos = {group: tuple(infos[group]) for group in GROUPS}
        self._operators: Dict[str, _GroupOperator] = {}
        for kind, elements in (
            (HitKind.SURFACE, self._surfaces),
            (HitKind.FENESTRATION, self._fenestrations),
        ):
            for side in (FRONT, BACK):
                group = group_name(kind, side)
                self._operators[group] = self._stack(
                    kind, side, elements, self._infos[group], state_header
                )

    def _stack(self, kind, side, elements, infos, state_header) -> _GroupOperator:
        n = len(elements)
        prefix = SIDE_NAMES[side]
        state_kind = STATE_KINDS[kind]
        return _GroupOperator(
            dc=csr_matrix(
                np.array([info.average_dc for info in infos]).reshape(n, self.sky.n_bins)
            ),
            sun=np.array([info.sun_coefficients for info in infos]).reshape(
                n, self.sun_sky.n_bins
            ),
            sun_bounce=np.array([info.sun_bounce for info in infos]).reshape(
                n, self.sun_sky.n_bins
            ),
            normals=np.array([e.side_normal(side) for e in elements]).reshape(n, 3),
            sky=np.array([info.sky for info in infos]),
            solar_slots=np.array(
                [state_header.index_of((state_kind, i, f"{prefix}_solar")) for i in range(n)],
                dtype=np.int64,
            ),
            ir_slots=np.array(
                [state_header.index_of((state_kind, i, f"{prefix}_ir")) for i in range(n)],
                dtype=np.int64,
            ),
        )

    @classmethod
    def new(
        cls,
        scene: Scene,
        meta_options: MetaOptions,
        solar_options: SolarOptions,
        state_header: SimulationStateHeader,
    ) -> "SolarModel":
        """Build a model and register its state slots.

        The state header is only modified when the model is built.

        Args:
            scene: building geometry
            meta_options: site
            solar_options: solar model options
            state_header: header receiving the irradiance slots

        Raises:
            InvalidGeometry: degenerate element.
            InvalidDiscretization: unsupported sky subdivision.
            SamplingInconsistency: view factors that do not add up.
        """
        logger.info("Building solar model...")
        sky = ReinhartSky(solar_options.solar_sky_discretization)
        sun_sky = ReinhartSky(solar_options.sun_sky_discretization)
        header = state_header.copy()
        point_args = dict(
            n_points=solar_options.n_solar_irradiance_points,
            delta=solar_options.delta,
            seed=solar_options.seed,
            policy=solar_options.point_policy,
        )
        surfaces = make_surfaces(scene, header, **point_args)
        fenestrations = make_fenestrations(scene, header, **point_args)
        infos = None
        config_hash = optical_info_hash(scene, solar_options)
        cache = Path(solar_options.optical_info_file) if solar_options.optical_info_file else None
        if cache is not None and cache.exists():
            infos = _load_matching(
                cache,
                config_hash,
                sampling_tolerance(solar_options.solar_ambient_divitions),
                surfaces,
                fenestrations,
            )
        if infos is None:
            factory = DCFactory(
                sky,
                sun_sky,
                solar_options.solar_ambient_divitions,
                max_depth=solar_options.max_depth,
                seed=solar_options.seed,
            )
            infos = compute_optical_info(
                scene, surfaces, fenestrations, factory, solar_options.n_workers
            )
            if cache is not None and solar_options.save_optical_info:
                save_optical_info(cache, infos, sky.mf, sun_sky.mf, config_hash)
        state_header.update(header)
        logger.info(
            "Solar model ready: %d surfaces, %d fenestrations, MF:%d",
            len(surfaces),
            len(fenestrations),
            sky.mf,
        )
        return cls(
            meta_options,
            solar_options,
            sky,
            sun_sky,
            surfaces,
            fenestrations,
            infos,
            state_header,
        )

    @property
    def surfaces(self) -> tuple[SolarSurface, ...]:
        return self._surfaces

    @property
    def fenestrations(self) -> tuple[SolarSurface, ...]:
        return self._fenestrations

    @property
    def front_surfaces_optical_info(self) -> tuple[OpticalInfo, ...]:
        return self._infos["front_surfaces"]

    @property
    def back_surfaces_optical_info(self) -> tuple[OpticalInfo, ...]:
        return self._infos["back_surfaces"]

    @property
    def front_fenestrations_optical_info(self) -> tuple[OpticalInfo, ...]:
        return self._infos["front_fenestrations"]

    @property
    def back_fenestrations_optical_info(self) -> tuple[OpticalInfo, ...]:
        return self._infos["back_fenestrations"]

    def optical_info(self, kind: Union[str, HitKind], index: int, side: int) -> OpticalInfo:
        """Optical info of one element side.

        Args:
            kind: "surface", "fenestration" or the matching HitKind
            index: element index
            side: FRONT or BACK
        """
        if isinstance(kind, str):
            lookup = {v: k for k, v in STATE_KINDS.items()}
            if kind not in lookup:
                raise ValueError(f"Unknown element kind {kind}")
            kind = lookup[kind]
        return self._infos[group_name(HitKind(kind), side)][index]

    def solar_sky_discretization(self) -> int:
        return self.sky.mf

    def march(self, date: datetime.datetime, weather, state: SimulationState) -> None:
        """Write the solar and infrared irradiance of one timestep.

        Args:
            date: local standard time
            weather: object with a get_weather_data(date) method
            state: simulation state receiving the irradiances

        The whole weather row is checked before the state is written,
        so a failed timestep leaves the state untouched.

        Raises:
            MarchFailure: missing or incomplete weather data.
        """
        weather_data = weather.get_weather_data(date)
        if weather_data is None:
            raise MarchFailure(f"No weather data for {date}")
        weather_data = _checked_weather(weather_data, date)
        self.update_solar_radiation(date, weather_data, state)
        self.update_ir_radiation(weather_data, state)

    def update_solar_radiation(
        self, date: datetime.datetime, weather_data: WeaData, state: SimulationState
    ) -> None:
        """Solar irradiance (W/m2) on both sides of every element."""
        dni = _required(weather_data.dni, "direct normal irradiance", date)
        dhi = _required(weather_data.dhi, "diffuse horizontal irradiance", date)
        if dni < 0 or dhi < 0:
            raise MarchFailure(f"Negative irradiance at {date}: dni={dni}, dhi={dhi}")
        if dni + dhi < NIGHT_THRESHOLD:
            for operator in self._operators.values():
                state.values[operator.solar_slots] = 0.0
            return
        sun = solar_position(self.meta_options, date)
        sky_vec = gen_perez_sky_vector(
            self.sky,
            sun.direction,
            dni,
            dhi,
            date.timetuple().tm_yday,
            albedo=self.solar_options.albedo,
            add_sky=True,
            add_sun=False,
        )
        sun_bin = None
        if sun.above_horizon and dni > 0:
            sun_bin = self.sun_sky.dir_to_bin(sun.direction)
        for operator in self._operators.values():
            values = operator.dc @ sky_vec
            if sun_bin is not None:
                cosines = np.maximum(operator.normals @ sun.direction, 0.0)
                values = values + dni * (
                    cosines * operator.sun[:, sun_bin] + operator.sun_bounce[:, sun_bin]
                )
            state.values[operator.solar_slots] = values

    def update_ir_radiation(self, weather_data: WeaData, state: SimulationState) -> None:
        """Incident infrared irradiance (W/m2) on both sides of every element.

        The sky part comes from the horizontal infrared radiation, the
        rest of the hemisphere radiates as a black body at dry bulb
        temperature. Surface to surface exchange is not resolved.
        """
        date = weather_data.time
        dry_bulb = _required(weather_data.dry_bulb, "dry bulb temperature", date)
        horizontal_ir = weather_data.horizontal_ir
        if horizontal_ir is None or math.isnan(horizontal_ir):
            dew_point = _required(weather_data.dew_point, "dew point temperature", date)
            horizontal_ir = estimate_horizontal_ir(dry_bulb, dew_point, weather_data.cc)
        ambient = STEFAN_BOLTZMANN * (dry_bulb + 273.15) ** 4
        for operator in self._operators.values():
            state.values[operator.ir_slots] = (
                operator.sky * horizontal_ir + (1 - operator.sky) * ambient
            )


def _required(value: Optional[float], name: str, date) -> float:
    if value is None or math.isnan(value):
        raise MarchFailure(f"Missing {name} at {date}")
    return float(value)


def _checked_weather(weather_data: WeaData, date) -> WeaData:
    """Weather row with every field a timestep needs, or MarchFailure."""
    dni = _required(weather_data.dni, "direct normal irradiance", date)
    dhi = _required(weather_data.dhi, "diffuse horizontal irradiance", date)
    if dni < 0 or dhi < 0:
        raise MarchFailure(f"Negative irradiance at {date}: dni={dni}, dhi={dhi}")
    dry_bulb = _required(weather_data.dry_bulb, "dry bulb temperature", date)
    horizontal_ir = weather_data.horizontal_ir
    if horizontal_ir is None or math.isnan(horizontal_ir):
        dew_point = _required(weather_data.dew_point, "dew point temperature", date)
        horizontal_ir = estimate_horizontal_ir(dry_bulb, dew_point, weather_data.cc)
    return weather_data._replace(
        dni=dni, dhi=dhi, dry_bulb=dry_bulb, horizontal_ir=float(horizontal_ir)
    )


def _load_matching(
    path: Path,
    config_hash: str,
    tolerance: float,
    surfaces: Sequence[SolarSurface],
    fenestrations: Sequence[SolarSurface],
) -> Optional[Dict[str, List[OpticalInfo]]]:
    """Load cached optical info, None when it does not fit the model."""
    try:
        infos, header = load_optical_info(path, tolerance)
    except SamplingInconsistency as err:
        logger.warning("Ignoring %s: %s", path, err)
        return None
    if header["config_hash"] != config_hash:
        logger.warning("Ignoring %s: computed for another scene or other options", path)
        return None
    for kind, elements in (
        (HitKind.SURFACE, surfaces),
        (HitKind.FENESTRATION, fenestrations),
    ):
        for side in (FRONT, BACK):
            group = infos[group_name(kind, side)]
            if len(group) != len(elements) or any(
                info.n_points != e.n_points for info, e in zip(group, elements)
            ):
                logger.warning("Ignoring %s: computed for another scene", path)
                return None
    return infos
