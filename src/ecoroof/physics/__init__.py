"""Physics modules for the vegetated roof energy and moisture balance."""
from ecoroof.physics.energy_balance import (
    EnergyBalanceModel,
    EnergyBalanceResult,
    create_energy_balance,
)
from ecoroof.physics.fasst import FasstEnergyBalance
from ecoroof.physics.numerical_solver import (
    NewtonBisectionSolver,
    RootFinderConfig,
    RootFindResult,
    RootFindStatus,
    check_timestep_stability,
)
from ecoroof.physics.plant_coverage import PlantCoverageEnergyBalance
from ecoroof.physics.soil_properties import SoilThermalProperties, SoilThermalPropertyUpdater
from ecoroof.physics.vertical_flux import SimpleDiffusionLaw, VanGenuchtenMualemLaw
from ecoroof.physics.water_balance import (
    CumulativeAccumulators,
    EcoRoofWaterBalance,
    MassBalanceState,
    MoistureFluxes,
    MoistureStepResult,
    SoilMoistureState,
    create_water_balance,
)

__all__ = [
    "EnergyBalanceModel",
    "EnergyBalanceResult",
    "create_energy_balance",
    "FasstEnergyBalance",
    "PlantCoverageEnergyBalance",
    "NewtonBisectionSolver",
    "RootFinderConfig",
    "RootFindResult",
    "RootFindStatus",
    "check_timestep_stability",
    "SoilThermalProperties",
    "SoilThermalPropertyUpdater",
    "SimpleDiffusionLaw",
    "VanGenuchtenMualemLaw",
    "CumulativeAccumulators",
    "EcoRoofWaterBalance",
    "MassBalanceState",
    "MoistureFluxes",
    "MoistureStepResult",
    "SoilMoistureState",
    "create_water_balance",
]
