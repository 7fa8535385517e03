"""
View factors and daylight coefficients of one element side.
"""

from dataclasses import dataclass
import logging
import os
from typing import Any, Dict, List, Optional

import numpy as np

from dcsolar.errors import SamplingInconsistency

logger: logging.Logger = logging.getLogger("dcsolar.optical_info")


GROUPS = (
    "front_surfaces",
    "back_surfaces",
    "front_fenestrations",
    "back_fenestrations",
)


def _frozen_array(values) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class IRViewFactorSet:
    """Fractions of the hemisphere seen by one element side.

    Attributes:
        ground: fraction seen of the ground.
        sky: fraction seen of the sky.
        air: fraction terminating on obstructions.
        surfaces: one fraction per surface of the scene.
        fenestrations: one fraction per fenestration of the scene.
    """

    ground: float
    sky: float
    air: float
    surfaces: np.ndarray
    fenestrations: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "surfaces", _frozen_array(self.surfaces))
        object.__setattr__(self, "fenestrations", _frozen_array(self.fenestrations))
        for name in ("ground", "sky", "air"):
            object.__setattr__(self, name, float(getattr(self, name)))

    def total(self) -> float:
        return (
            self.ground
            + self.sky
            + self.air
            + float(self.surfaces.sum())
            + float(self.fenestrations.sum())
        )

    def check_closure(self, tolerance: float) -> None:
        """Raise SamplingInconsistency when the fractions do not sum to one."""
        negative = min(
            self.ground,
            self.sky,
            self.air,
            self.surfaces.min(initial=0.0),
            self.fenestrations.min(initial=0.0),
        )
        if negative < 0:
            raise SamplingInconsistency(f"Negative view factor: {negative}")
        total = self.total()
        if abs(total - 1) > tolerance:
            raise SamplingInconsistency(
                f"View factors sum to {total:.6f}, outside 1 +/- {tolerance:.6f}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ground": self.ground,
            "sky": self.sky,
            "air": self.air,
            "surfaces": self.surfaces.tolist(),
            "fenestrations": self.fenestrations.tolist(),
        }

    @staticmethod
    def from_dict(obj: Dict[str, Any]) -> "IRViewFactorSet":
        return IRViewFactorSet(
            ground=obj["ground"],
            sky=obj["sky"],
            air=obj["air"],
            surfaces=obj["surfaces"],
            fenestrations=obj["fenestrations"],
        )


@dataclass(frozen=True, eq=False)
class OpticalInfo:
    """Frozen optical information of one element side.

    Attributes:
        view_factors: infrared view factors.
        dc_matrix: (n_points, n_bins) daylight coefficients, column 0 the ground.
        sun_coefficients: (n_sun_bins,) direct sun visibility per
            sun patch, including the beam transmittance of the
            fenestrations crossed on the way.
        sun_bounce: (n_sun_bins,) direct sun reaching the side after
            diffuse bounces, per unit direct normal irradiance.
    """

    view_factors: IRViewFactorSet
    dc_matrix: np.ndarray
    sun_coefficients: np.ndarray
    sun_bounce: np.ndarray

    @classmethod
    def new(
        cls,
        view_factors: IRViewFactorSet,
        dc_matrix: np.ndarray,
        sun_coefficients: np.ndarray,
        sun_bounce: Optional[np.ndarray] = None,
    ) -> "OpticalInfo":
        dc_matrix = _frozen_array(dc_matrix)
        if dc_matrix.ndim != 2:
            raise ValueError(f"Daylight coefficient matrix must be 2D, got {dc_matrix.shape}")
        sun_coefficients = _frozen_array(sun_coefficients)
        if sun_bounce is None:
            sun_bounce = np.zeros_like(sun_coefficients)
        sun_bounce = _frozen_array(sun_bounce)
        if sun_bounce.shape != sun_coefficients.shape:
            raise ValueError(
                f"Sun bounce shape {sun_bounce.shape} does not match {sun_coefficients.shape}"
            )
        return cls(view_factors, dc_matrix, sun_coefficients, sun_bounce)

    @property
    def n_points(self) -> int:
        return self.dc_matrix.shape[0]

    @property
    def n_bins(self) -> int:
        return self.dc_matrix.shape[1]

    @property
    def average_dc(self) -> np.ndarray:
        return self.dc_matrix.mean(axis=0)

    @property
    def ground(self) -> float:
        return self.view_factors.ground

    @property
    def sky(self) -> float:
        return self.view_factors.sky

    @property
    def air(self) -> float:
        return self.view_factors.air

    @property
    def surfaces(self) -> np.ndarray:
        return self.view_factors.surfaces

    @property
    def fenestrations(self) -> np.ndarray:
        return self.view_factors.fenestrations


def save_optical_info(
    path: os.PathLike,
    infos: Dict[str, List[OpticalInfo]],
    solar_mf: int,
    sun_mf: int,
    config_hash: str = "",
) -> None:
    """Save the optical info of a model to a .npz file.

    Args:
        path: output file
        infos: optical info lists keyed by group name
        solar_mf: diffuse sky multiplication factor
        sun_mf: sun sky multiplication factor
        config_hash: digest of the scene and options the info was computed for
    """
    arrays: Dict[str, np.ndarray] = {
        "solar_mf": np.array(solar_mf),
        "sun_mf": np.array(sun_mf),
        "config_hash": np.array(config_hash),
    }
    for group in GROUPS:
        group_infos = infos.get(group, [])
        arrays[f"{group}_count"] = np.array(len(group_infos))
        for i, info in enumerate(group_infos):
            vf = info.view_factors
            arrays[f"{group}_{i}_dc"] = info.dc_matrix
            arrays[f"{group}_{i}_sun"] = info.sun_coefficients
            arrays[f"{group}_{i}_sun_bounce"] = info.sun_bounce
            arrays[f"{group}_{i}_vf"] = np.array((vf.ground, vf.sky, vf.air))
            arrays[f"{group}_{i}_vf_surfaces"] = vf.surfaces
            arrays[f"{group}_{i}_vf_fenestrations"] = vf.fenestrations
    with open(path, "wb") as f:
        np.savez(f, **arrays)
    logger.info("Optical info saved to %s", path)


def load_optical_info(
    path: os.PathLike, tolerance: Optional[float] = None
) -> tuple[Dict[str, List[OpticalInfo]], Dict[str, Any]]:
    """Load optical info saved by save_optical_info.

    Args:
        path: .npz file
        tolerance: when given, the view factors of every record
            must close within it.
    Returns:
        Optical info lists keyed by group name, and a header with
        solar_mf, sun_mf and config_hash.
    Raises:
        SamplingInconsistency: not an optical info file, or view
            factors that do not close.
    """
    logger.info("Loading optical info from %s", path)
    infos: Dict[str, List[OpticalInfo]] = {}
    try:
        with np.load(path) as mdata:
            header = {
                "solar_mf": int(mdata["solar_mf"]),
                "sun_mf": int(mdata["sun_mf"]),
                "config_hash": str(mdata["config_hash"]),
            }
            for group in GROUPS:
                infos[group] = []
                for i in range(int(mdata[f"{group}_count"])):
                    ground, sky, air = mdata[f"{group}_{i}_vf"]
                    view_factors = IRViewFactorSet(
                        ground=ground,
                        sky=sky,
                        air=air,
                        surfaces=mdata[f"{group}_{i}_vf_surfaces"],
                        fenestrations=mdata[f"{group}_{i}_vf_fenestrations"],
                    )
                    infos[group].append(
                        OpticalInfo.new(
                            view_factors,
                            mdata[f"{group}_{i}_dc"],
                            mdata[f"{group}_{i}_sun"],
                            mdata[f"{group}_{i}_sun_bounce"],
                        )
                    )
    except (KeyError, ValueError) as err:
        raise SamplingInconsistency(f"{path} is not a valid optical info file: {err}") from err
    if tolerance is not None:
        for group_infos in infos.values():
            for info in group_infos:
                info.view_factors.check_closure(tolerance)
    return infos, header
