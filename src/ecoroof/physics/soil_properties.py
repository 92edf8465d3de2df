"""
Moisture-dependent thermal properties of the roof substrate.

Albedo, conductivity, density and specific heat move toward targets set by
the current soil moisture. Each property may change by at most a fixed
fraction per reference interval, which keeps the host conduction solver
stable while the substrate wets and dries.

References:
- Sailor, D.J. and Hagos, M. (2011). An updated and expanded set of thermal
  property data for green roof growing media. Energy and Buildings
  43:2298-2303.
- Johansen, O. (1975). Thermal conductivity of soils. PhD thesis, Trondheim.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from ecoroof.core.constants import (
    MAX_SOIL_ABSORPTANCE,
    MIN_SOIL_ABSORPTANCE,
    PROPERTY_REFERENCE_MINUTES,
    SATURATED_CONDUCTIVITY_SCALE,
    WATER_DENSITY,
    WATER_SPECIFIC_HEAT_CONTRIBUTION,
)
from ecoroof.core.types import LayerDepths, MaterialRecord, VegetationProperties
from ecoroof.physics.flux_correlations import soil_albedo

logger = logging.getLogger(__name__)


@dataclass
class SoilThermalProperties:
    """Thermal properties of the soil layer after an update"""
    albedo: float
    conductivity: float  # W/m/K
    density: float  # kg/m³
    specific_heat: float  # J/kg/K
    mean_moisture: float  # m³/m³


class SoilThermalPropertyUpdater:
    """
    Rate-limited update of the shared soil material record.

    Every property follows

        new = current × clip(target / current, 1 - f·Δt/15, 1 + f·Δt/15)

    with f the rate limit fraction and Δt the timestep in minutes.
    """

    def __init__(
        self,
        vegetation: VegetationProperties,
        material_record: MaterialRecord,
        timestep_minutes: float,
        rate_limit_fraction: float = 0.2,
        reference_minutes: float = PROPERTY_REFERENCE_MINUTES,
    ):
        self.vegetation = vegetation
        self.material = material_record
        self.timestep_minutes = timestep_minutes
        self.rate_limit_fraction = rate_limit_fraction
        self.reference_minutes = reference_minutes
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def ratio_limits(self) -> Tuple[float, float]:
        """Smallest and largest allowed ratio of new to current value"""
        band = self.rate_limit_fraction * self.timestep_minutes / self.reference_minutes
        return 1.0 - band, 1.0 + band

    def target_properties(
        self,
        near_surface: float,
        root_zone: float,
        depths: LayerDepths,
    ) -> SoilThermalProperties:
        """
        Equilibrium properties for the given layer moistures.

        Args:
            near_surface: Near-surface moisture (m³/m³)
            root_zone: Root-zone moisture (m³/m³)
            depths: Layer split

        Returns:
            Unlimited target properties
        """
        veg = self.vegetation
        mean_moisture = (depths.root * root_zone + depths.top * near_surface) / depths.total

        absorptance = 1.0 - soil_albedo(near_surface / veg.max_moisture)
        absorptance = float(np.clip(absorptance, MIN_SOIL_ABSORPTANCE, MAX_SOIL_ABSORPTANCE))

        saturation = (mean_moisture - veg.residual_moisture) / (veg.max_moisture - veg.residual_moisture)
        growth = float(np.exp(4.411 * saturation))
        conductivity = (veg.dry_conductivity / SATURATED_CONDUCTIVITY_SCALE) * 1.45 * growth / (1.0 + 0.45 * growth)

        return SoilThermalProperties(
            albedo=1.0 - absorptance,
            conductivity=conductivity,
            density=veg.dry_density + (mean_moisture - veg.residual_moisture) * WATER_DENSITY,
            specific_heat=veg.dry_specific_heat + WATER_SPECIFIC_HEAT_CONTRIBUTION * mean_moisture,
            mean_moisture=mean_moisture,
        )

    def _limited(self, current: float, target: float) -> float:
        r_min, r_max = self.ratio_limits
        if current <= 0.0:
            return target
        return current * float(np.clip(target / current, r_min, r_max))

    def update(
        self,
        near_surface: float,
        root_zone: float,
        depths: LayerDepths,
    ) -> SoilThermalProperties:
        """
        Move the material record toward the moisture targets and write it back.

        Returns:
            The properties now held by the material record
        """
        target = self.target_properties(near_surface, root_zone, depths)
        record = self.material

        albedo = self._limited(record.albedo, target.albedo)
        record.solar_absorptance = 1.0 - albedo
        record.conductivity = self._limited(record.conductivity, target.conductivity)
        record.density = self._limited(record.density, target.density)
        record.specific_heat = self._limited(record.specific_heat, target.specific_heat)

        self.logger.debug(
            f"Soil properties: albedo={albedo:.3f}, k={record.conductivity:.3f}, "
            f"rho={record.density:.1f}, cp={record.specific_heat:.1f}"
        )

        return SoilThermalProperties(
            albedo=albedo,
            conductivity=record.conductivity,
            density=record.density,
            specific_heat=record.specific_heat,
            mean_moisture=target.mean_moisture,
        )

    def reset(self):
        """Return the material record to the dry soil values"""
        dry = self.vegetation.to_material_record()
        self.material.conductivity = dry.conductivity
        self.material.density = dry.density
        self.material.specific_heat = dry.specific_heat
        self.material.solar_absorptance = dry.solar_absorptance
        self.material.thickness = dry.thickness

    def get_properties(self) -> Dict[str, float]:
        return {
            'albedo': self.material.albedo,
            'conductivity': self.material.conductivity,
            'density': self.material.density,
            'specific_heat': self.material.specific_heat,
        }
