"""
Surface energy balance of the vegetated roof.

Two formulations share one interface:
- FASST: lumped foliage and ground temperatures from a linearized 2x2
  system, damped over a fixed number of iterations.
- Plant coverage: plant, covered-soil and bare-soil temperatures from three
  scalar Newton problems, blended by the plant coverage fraction.

The formulation is fixed for a run and chosen with create_energy_balance.
All fluxes in EnergyBalanceResult are W/m² leaving the surface unless noted.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from ecoroof.core.config import EcoRoofConfig
from ecoroof.core.types import (
    CalculationMethod,
    ConductionFeedTerms,
    EnvironmentForcing,
    MaterialRecord,
    SurfaceGeometry,
    SurfaceThermalState,
    VegetationProperties,
)
from ecoroof.physics.numerical_solver import RootFindResult
from ecoroof.physics.water_balance import SoilMoistureState

logger = logging.getLogger(__name__)


@dataclass
class EnergyBalanceResult:
    """Temperatures and fluxes of one surface balance solve"""
    surface_temperature_c: float  # handed to the host conduction solver
    plant_temperature_c: float
    soil_temperature_c: float
    bare_soil_temperature_c: float

    sensible_heat_plant: float = 0.0
    latent_heat_plant: float = 0.0
    sensible_heat_soil: float = 0.0
    latent_heat_soil: float = 0.0
    net_shortwave_soil: float = 0.0  # absorbed
    net_longwave_soil: float = 0.0  # absorbed
    conduction: float = 0.0  # into the construction

    vapor_flux_plant: float = 0.0  # m/s of water
    vapor_flux_soil: float = 0.0  # m/s of water

    root_finds: Dict[str, RootFindResult] = field(default_factory=dict)

    @property
    def converged(self) -> bool:
        return all(r.converged for r in self.root_finds.values())

    def to_dict(self) -> Dict[str, float]:
        return {
            'surface_temperature_c': self.surface_temperature_c,
            'plant_temperature_c': self.plant_temperature_c,
            'soil_temperature_c': self.soil_temperature_c,
            'bare_soil_temperature_c': self.bare_soil_temperature_c,
            'sensible_heat_plant': self.sensible_heat_plant,
            'latent_heat_plant': self.latent_heat_plant,
            'sensible_heat_soil': self.sensible_heat_soil,
            'latent_heat_soil': self.latent_heat_soil,
            'net_shortwave_soil': self.net_shortwave_soil,
            'net_longwave_soil': self.net_longwave_soil,
            'conduction': self.conduction,
            'vapor_flux_plant': self.vapor_flux_plant,
            'vapor_flux_soil': self.vapor_flux_soil,
        }


class EnergyBalanceModel(Protocol):
    """Common interface of both energy balance formulations"""

    def solve(
        self,
        forcing: EnvironmentForcing,
        moisture: SoilMoistureState,
        conduction: ConductionFeedTerms,
        state: SurfaceThermalState,
    ) -> EnergyBalanceResult:
        """Solve the balance and update state in place"""
        ...

    def get_statistics(self) -> Dict:
        ...

    def reset(self) -> None:
        ...


def create_energy_balance(
    config: EcoRoofConfig,
    vegetation: VegetationProperties,
    geometry: SurfaceGeometry,
    material_record: Optional[MaterialRecord] = None,
) -> EnergyBalanceModel:
    """
    Factory function to create the configured energy balance.

    Args:
        config: Configuration; solver.calculation_method selects the formulation
        vegetation: Static vegetated-layer properties
        geometry: Reference surface geometry
        material_record: Shared soil record; FASST reads its albedo

    Returns:
        Energy balance model
    """
    from ecoroof.physics.fasst import FasstEnergyBalance
    from ecoroof.physics.plant_coverage import PlantCoverageEnergyBalance

    method = config.solver.calculation_method
    if method == CalculationMethod.FASST:
        if material_record is None:
            material_record = vegetation.to_material_record()
        return FasstEnergyBalance(vegetation, geometry, material_record, config.solver)
    return PlantCoverageEnergyBalance(vegetation, geometry, config.solver)
