"""
Vertical moisture redistribution between the near-surface and root-zone
layers of a roof substrate.

Two laws are available:
1. Simple diffusion: a fixed fraction of the moisture difference moves per
   second, faster downward than upward.
2. Van Genuchten-Mualem: a Darcy flux between layer centres driven by the
   capillary potential difference plus gravity, and gravity drainage out of
   the bottom of the root zone.

Both laws conserve water between the layers; only bottom drainage leaves the
substrate. Bounds are enforced by the water balance after redistribution.

References:
- Darcy, H. (1856). Les fontaines publiques de la ville de Dijon. Dalmont, Paris.
- Richards, L.A. (1931). Capillary conduction of liquids through porous mediums.
  Physics 1:318-333.
- Sailor, D.J. (2008). A green roof model for building energy simulation
  programs. Energy and Buildings 40:1466-1478.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Protocol

from ecoroof.core.constants import MIN_DRAINAGE_M_PER_HOUR, MIN_RELATIVE_SATURATION
from ecoroof.core.types import LayerDepths
from ecoroof.physics.soil_hydraulics import (
    VanGenuchtenParameters,
    effective_saturation,
    van_genuchten_mualem_K_from_saturation,
    van_genuchten_psi_from_saturation,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedistributionResult:
    """Layer moisture after redistribution and the water moved (m)"""
    near_surface: float
    root_zone: float
    interlayer_transfer_m: float  # positive downward
    drainage_m: float  # out of the bottom of the root zone


class RedistributionLaw(Protocol):
    """Moves moisture between the two layers over one timestep"""

    def redistribute(
        self,
        near_surface: float,
        root_zone: float,
        depths: LayerDepths,
        dt_seconds: float,
    ) -> RedistributionResult:
        ...


class SimpleDiffusionLaw:
    """
    Diffusion of the moisture difference between layers.

    The transfer is limited by the smaller of the water available in the
    wetter layer and the room left in the drier one, then scaled by a rate
    constant (1/s) times the timestep.
    """

    def __init__(
        self,
        max_moisture: float,
        downward_rate: float = 0.00005,
        upward_rate: float = 0.00001,
    ):
        self.max_moisture = max_moisture
        self.downward_rate = downward_rate
        self.upward_rate = upward_rate

    def redistribute(
        self,
        near_surface: float,
        root_zone: float,
        depths: LayerDepths,
        dt_seconds: float,
    ) -> RedistributionResult:
        transfer = 0.0  # m of water, positive downward

        if near_surface > root_zone:
            available = min(
                (self.max_moisture - root_zone) * depths.root,
                (near_surface - root_zone) * depths.top,
            )
            transfer = max(0.0, available) * self.downward_rate * dt_seconds
        elif root_zone > near_surface:
            available = min(
                (self.max_moisture - near_surface) * depths.top,
                (root_zone - near_surface) * depths.root,
            )
            transfer = -max(0.0, available) * self.upward_rate * dt_seconds

        return RedistributionResult(
            near_surface=near_surface - transfer / depths.top,
            root_zone=root_zone + transfer / depths.root,
            interlayer_transfer_m=transfer,
            drainage_m=0.0,
        )


class VanGenuchtenMualemLaw:
    """
    Darcy redistribution with Van Genuchten-Mualem hydraulic functions.

        q = K̄ ((ψ_top - ψ_root) / Δz + 1)      downward positive
        K̄ = (K_top + K_root) / 2,  Δz = distance between layer centres

    Drainage out of the root zone is K_root, suppressed when it falls below
    one drop per hour. Relative saturation is floored to keep ψ finite; the
    first time the floor binds a warning is logged, later occurrences are
    counted and summarized.
    """

    def __init__(
        self,
        params: VanGenuchtenParameters,
        min_relative_saturation: float = MIN_RELATIVE_SATURATION,
        min_drainage_m_per_hour: float = MIN_DRAINAGE_M_PER_HOUR,
    ):
        self.params = params
        self.min_relative_saturation = min_relative_saturation
        self.min_drainage_m_per_hour = min_drainage_m_per_hour
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self.low_saturation_count = 0
        self.lowest_saturation = 1.0

    def _relative_saturation(self, theta: float, layer: str) -> float:
        Se = effective_saturation(theta, self.params)
        if Se < self.min_relative_saturation:
            if self.low_saturation_count == 0:
                self.logger.warning(
                    "Relative saturation of the %s layer %.5f below %.4g; "
                    "floored and simulation continues. More timesteps per hour "
                    "may alleviate this.",
                    layer, Se, self.min_relative_saturation,
                )
            self.low_saturation_count += 1
            self.lowest_saturation = min(self.lowest_saturation, Se)
            Se = self.min_relative_saturation
        return min(Se, 1.0)

    def redistribute(
        self,
        near_surface: float,
        root_zone: float,
        depths: LayerDepths,
        dt_seconds: float,
    ) -> RedistributionResult:
        se_top = self._relative_saturation(near_surface, "near-surface")
        se_root = self._relative_saturation(root_zone, "root-zone")

        k_top = van_genuchten_mualem_K_from_saturation(se_top, self.params)
        k_root = van_genuchten_mualem_K_from_saturation(se_root, self.params)
        psi_top = van_genuchten_psi_from_saturation(se_top, self.params)
        psi_root = van_genuchten_psi_from_saturation(se_root, self.params)

        k_ave = 0.5 * (k_top + k_root)
        dz = 0.5 * (depths.top + depths.root)
        flux = k_ave * ((psi_top - psi_root) / dz + 1.0)  # m/s

        drainage_rate = k_root
        if drainage_rate * 3600.0 <= self.min_drainage_m_per_hour:
            drainage_rate = 0.0

        transfer = flux * dt_seconds
        drainage = drainage_rate * dt_seconds

        return RedistributionResult(
            near_surface=near_surface - transfer / depths.top,
            root_zone=root_zone + (transfer - drainage) / depths.root,
            interlayer_transfer_m=transfer,
            drainage_m=drainage,
        )

    def summary(self) -> Dict[str, float]:
        """Low-saturation occurrences since the last reset"""
        return {
            'low_saturation_count': self.low_saturation_count,
            'lowest_saturation': self.lowest_saturation,
        }

    def reset(self):
        if self.low_saturation_count > 0:
            self.logger.warning(
                "Relative saturation floored %d times (lowest %.5f)",
                self.low_saturation_count, self.lowest_saturation,
            )
        self.low_saturation_count = 0
        self.lowest_saturation = 1.0
