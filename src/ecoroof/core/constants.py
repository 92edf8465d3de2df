"""
Physical constants, empirical coefficients and numeric floors used by the
vegetated-roof energy and moisture balance.
"""
from typing import Dict, Final

# Physical constants
KELVIN_OFFSET: Final[float] = 273.15
STEFAN_BOLTZMANN: Final[float] = 5.6697e-8  # W/m²/K⁴
GRAVITY: Final[float] = 9.81  # m/s²
GAS_CONSTANT_AIR: Final[float] = 286.0  # J/kg/K
WATER_DENSITY: Final[float] = 990.0  # kg/m³ used for vapor flux -> water depth
SECONDS_PER_MINUTE: Final[float] = 60.0

# Air properties (Variant B correlations)
CP_AIR: Final[float] = 1005.0  # J/kg/K
THERMAL_CONDUCTIVITY_AIR: Final[float] = 0.0267  # W/m/K
KINEMATIC_VISCOSITY_AIR: Final[float] = 15.66e-6  # m²/s
PRANDTL_AIR: Final[float] = 0.71
LEWIS_NUMBER: Final[float] = 1.0

# Canopy porous medium
CANOPY_POROSITY: Final[float] = 0.85
THERMAL_CONDUCTIVITY_PLANTS: Final[float] = 0.5  # W/m/K

# Latent heat
LATENT_HEAT_SUBLIMATION: Final[float] = 2.838e6  # J/kg, used below freezing
LATENT_HEAT_INTERCEPT: Final[float] = 2501.1  # kJ/kg at 0 °C
LATENT_HEAT_SLOPE: Final[float] = -2.3793  # kJ/kg/K

# Convective correlation leading constants
CANOPY_CONVECTION_FACTOR: Final[float] = 3.0
BARE_SOIL_CONVECTION_FACTOR: Final[float] = 2.1
MIN_CONVECTIVE_COEFFICIENT: Final[float] = 1e-3  # W/m²/K

# FASST (Variant A) constants
FASST_VON_KARMAN: Final[float] = 0.4
FASST_RCH: Final[float] = 0.63  # turbulent Schmidt number
FASST_RCHE: Final[float] = 0.71  # turbulent Prandtl number
FASST_CP_AIR: Final[float] = 1005.6  # J/kg/K
FASST_WINDLESS_EXCHANGE: Final[float] = 2.0  # W/m²/K
FASST_REFERENCE_HEIGHT: Final[float] = 2.0  # m
FASST_MIN_ROUGHNESS_LENGTH: Final[float] = 0.02  # m
FASST_RICHARDSON_CAP: Final[float] = 0.19

# Surface roughness length of bare ground by roughness class (m)
GROUND_ROUGHNESS_LENGTH: Final[Dict[str, float]] = {
    "very_smooth": 0.0008,
    "smooth": 0.0010,
    "medium_smooth": 0.0015,
    "medium_rough": 0.0020,
    "rough": 0.0030,
    "very_rough": 0.005,
}

# Soil moisture
SUBSTRATE_RESISTANCE_COEFFICIENT: Final[float] = 34.52  # s/m
SUBSTRATE_RESISTANCE_EXPONENT: Final[float] = -3.2678
TOP_LAYER_DEPTH: Final[float] = 0.06  # m
THIN_SOIL_THRESHOLD: Final[float] = 0.12  # m
MOISTURE_LOWER_BOUND_FACTOR: Final[float] = 1.01  # × residual
MOISTURE_UPPER_BOUND_FACTOR: Final[float] = 0.9999  # × max
ROOT_RESIDUAL_FACTOR: Final[float] = 1.00001
MAX_INPUT_RATE_M_PER_HOUR: Final[float] = 0.5 * 0.0254  # 0.5 in/h
MIN_DRAINAGE_M_PER_HOUR: Final[float] = 2.33e-7  # one drop per hour
MIN_RELATIVE_SATURATION: Final[float] = 1e-4

# Stability criterion for the Van Genuchten redistribution law (minutes)
STABILITY_DEPTH_FACTOR: Final[float] = 161240.0 * 2.0 ** -2.3 / 60.0
STABILITY_DEPTH_EXPONENT: Final[float] = 2.07
STABILITY_MAX_DIVISIONS: Final[int] = 20

# Soil thermal properties
WATER_SPECIFIC_HEAT_CONTRIBUTION: Final[float] = 1900.0  # J/kg/K per unit moisture
SATURATED_CONDUCTIVITY_SCALE: Final[float] = 1.15
MIN_SOIL_ABSORPTANCE: Final[float] = 0.05
MAX_SOIL_ABSORPTANCE: Final[float] = 0.95
PROPERTY_REFERENCE_MINUTES: Final[float] = 15.0

# Numerical stability
EPSILON: Final[float] = 1e-10
