"""
Empirical flux correlations for vegetated roofs.

Pure functions shared by both energy balance formulations. Every function is
total over physical ranges: inputs that would produce a singularity are
floored or clamped internally instead of raising.

Two saturation vapor pressure formulas are kept side by side. The kPa form
(Tetens) feeds the plant-coverage balance, the Pa form (Garratt eqn. A21)
feeds FASST. They are calibrated with different latent-heat and resistance
terms and are not interchangeable.

References:
- Tabares-Velasco, P.C. and Srebric, J. (2012). A heat transfer model for
  assessment of plant based roofing systems in summer conditions.
  Building and Environment 49:310-323.
- Yaghoobian, N. and Srebric, J. (2014). Influence of plant coverage on the
  total green roof energy balance and building energy consumption.
  Energy and Buildings 103:1-13.
- Garratt, J.R. (1992). The Atmospheric Boundary Layer. Cambridge.
- Henderson-Sellers, B. (1984). A new formula for latent heat of
  vaporization of water as a function of temperature. QJRMS 110:1186-1190.
"""
import logging

import numpy as np

from ecoroof.core.constants import (
    BARE_SOIL_CONVECTION_FACTOR,
    CANOPY_CONVECTION_FACTOR,
    CANOPY_POROSITY,
    CP_AIR,
    EPSILON,
    GAS_CONSTANT_AIR,
    GRAVITY,
    KELVIN_OFFSET,
    KINEMATIC_VISCOSITY_AIR,
    LATENT_HEAT_INTERCEPT,
    LATENT_HEAT_SLOPE,
    LATENT_HEAT_SUBLIMATION,
    MIN_CONVECTIVE_COEFFICIENT,
    PRANDTL_AIR,
    SUBSTRATE_RESISTANCE_COEFFICIENT,
    SUBSTRATE_RESISTANCE_EXPONENT,
    THERMAL_CONDUCTIVITY_AIR,
    THERMAL_CONDUCTIVITY_PLANTS,
)

logger = logging.getLogger(__name__)

# Temperatures beyond this range (°C) are clamped before exponentials
_TEMPERATURE_CLAMP_C = (-100.0, 100.0)

# Smallest |1 - 0.0016 (35 - Tc)²| allowed in the temperature factor
_TEMPERATURE_FACTOR_FLOOR = 1e-6

# Ceiling of the stomatal moisture factor when the substrate is at wilting
MAX_MOISTURE_FACTOR = 1000.0

# Smallest relative moisture used by the substrate resistance fit
_MIN_RELATIVE_MOISTURE = 1e-3


def _clamp_celsius(t_c: float) -> float:
    return float(np.clip(t_c, *_TEMPERATURE_CLAMP_C))


# =============================================================================
# VAPOR PRESSURE AND LATENT HEAT
# =============================================================================

def saturation_vapor_pressure_kpa(t_k: float) -> float:
    """
    Saturation vapor pressure over water (Tetens form).

    e_s = 0.6108 exp(17.27 Tc / (Tc + 237.3))

    Args:
        t_k: Temperature (K)

    Returns:
        Saturation vapor pressure (kPa)
    """
    t_c = _clamp_celsius(t_k - KELVIN_OFFSET)
    return float(0.6108 * np.exp(17.27 * t_c / (t_c + 237.3)))


def saturation_vapor_pressure_slope_kpa(t_k: float) -> float:
    """Derivative of saturation_vapor_pressure_kpa with respect to T (kPa/K)"""
    t_c = _clamp_celsius(t_k - KELVIN_OFFSET)
    return saturation_vapor_pressure_kpa(t_k) * 17.27 * 237.3 / (t_c + 237.3) ** 2


def saturation_vapor_pressure_pa(t_c: float) -> float:
    """
    Saturation vapor pressure (Garratt eqn. A21).

    e_s = 611.2 exp(17.67 Tc / (Tc + 273.15 - 29.65))

    Args:
        t_c: Temperature (°C)

    Returns:
        Saturation vapor pressure (Pa)
    """
    t_c = _clamp_celsius(t_c)
    return float(611.2 * np.exp(17.67 * t_c / (t_c + KELVIN_OFFSET - 29.65)))


def saturation_vapor_pressure_slope_pa(t_c: float) -> float:
    """Derivative of saturation_vapor_pressure_pa with respect to T (Pa/K)"""
    t_c = _clamp_celsius(t_c)
    denominator = t_c + KELVIN_OFFSET - 29.65
    return saturation_vapor_pressure_pa(t_c) * 17.67 * (KELVIN_OFFSET - 29.65) / denominator ** 2


def actual_vapor_pressure_kpa(t_k: float, relative_humidity: float) -> float:
    """Vapor pressure of air at temperature t_k and relative humidity in %"""
    return (relative_humidity / 100.0) * saturation_vapor_pressure_kpa(t_k)


def relative_humidity_from_vapor_pressure(t_k: float, vapor_pressure_kpa: float) -> float:
    """Relative humidity (%) of air holding vapor_pressure_kpa at t_k"""
    return 100.0 * vapor_pressure_kpa / saturation_vapor_pressure_kpa(t_k)


def mixing_ratio(vapor_pressure: float, pressure: float) -> float:
    """Saturation/actual mixing ratio, both pressures in the same unit"""
    return 0.622 * vapor_pressure / max(pressure - vapor_pressure, EPSILON)


def latent_heat_of_vaporization(t_k: float) -> float:
    """
    Latent heat of vaporization, linear in temperature.

    Below freezing the latent heat of sublimation is used instead.

    Args:
        t_k: Temperature (K)

    Returns:
        Latent heat (J/kg)
    """
    t_c = t_k - KELVIN_OFFSET
    if t_c < 0.0:
        return LATENT_HEAT_SUBLIMATION
    return (LATENT_HEAT_SLOPE * t_c + LATENT_HEAT_INTERCEPT) * 1000.0


def latent_heat_slope(t_k: float) -> float:
    """Derivative of latent_heat_of_vaporization (J/kg/K)"""
    if t_k - KELVIN_OFFSET < 0.0:
        return 0.0
    return LATENT_HEAT_SLOPE * 1000.0


def henderson_sellers_latent_heat(t_c: float, frozen: bool = False) -> float:
    """
    Latent heat of vaporization after Henderson-Sellers (1984).

    Args:
        t_c: Surface temperature (°C)
        frozen: Surface was below freezing, sublimation applies

    Returns:
        Latent heat (J/kg)
    """
    if frozen:
        return LATENT_HEAT_SUBLIMATION
    t_k = max(t_c + KELVIN_OFFSET, 40.0)
    return 1.91846e6 * (t_k / (t_k - 33.91)) ** 2


def psychrometric_constant(t_k: float, pressure_pa: float, cp_air: float = CP_AIR) -> float:
    """
    Psychrometric constant gamma = cp P / (0.622 L).

    Args:
        t_k: Temperature at which the latent heat is evaluated (K)
        pressure_pa: Atmospheric pressure (Pa)
        cp_air: Specific heat of air (J/kg/K)

    Returns:
        gamma (kPa/K)
    """
    return cp_air * (pressure_pa / 1000.0) / (0.622 * latent_heat_of_vaporization(t_k))


def air_density(pressure_pa: float, t_k: float) -> float:
    """Ideal-gas air density (kg/m³)"""
    return pressure_pa / (GAS_CONSTANT_AIR * max(t_k, EPSILON))


# =============================================================================
# STOMATAL RESISTANCE FACTORS (plant-coverage formulation)
# =============================================================================

def solar_factor(incident_shortwave: float) -> float:
    """Radiation factor f_solar = 1 + exp(-0.034 (RS - 3.5))"""
    exponent = min(-0.034 * (incident_shortwave - 3.5), 700.0)
    return float(1.0 + np.exp(exponent))


def humidity_factor(t_k: float, eair_kpa: float) -> float:
    """
    Vapor pressure deficit factor f_Hum = 1 / f_VPD.

    f_VPD = 1 - 0.41 ln(VPD) for a positive deficit, else 1; capped at 1 and
    set to 0.05 when the deficit is so large that it turns non-positive.

    Args:
        t_k: Leaf temperature (K)
        eair_kpa: Vapor pressure of the air (kPa)

    Returns:
        f_Hum (>= 1)
    """
    vpd = saturation_vapor_pressure_kpa(t_k) - eair_kpa
    if vpd > 0.0:
        f_vpd = 1.0 - 0.41 * float(np.log(vpd))
    else:
        f_vpd = 1.0

    if f_vpd > 1.0:
        f_vpd = 1.0
    if f_vpd <= 0.0:
        f_vpd = 0.05
    return 1.0 / f_vpd


def _temperature_factor_denominator(t_k: float) -> float:
    t_c = _clamp_celsius(t_k - KELVIN_OFFSET)
    g = 1.0 - 0.0016 * (35.0 - t_c) ** 2
    if abs(g) < _TEMPERATURE_FACTOR_FLOOR:
        g = _TEMPERATURE_FACTOR_FLOOR if g >= 0.0 else -_TEMPERATURE_FACTOR_FLOOR
    return g


def temperature_factor(t_k: float) -> float:
    """Leaf temperature factor f_temp = |1 / (1 - 0.0016 (35 - Tc)²)|"""
    return abs(1.0 / _temperature_factor_denominator(t_k))


def temperature_factor_slope(t_k: float) -> float:
    """Derivative of temperature_factor with respect to T (1/K)"""
    t_c = _clamp_celsius(t_k - KELVIN_OFFSET)
    g = _temperature_factor_denominator(t_k)
    dg_dt = 0.0032 * (35.0 - t_c)
    return -float(np.sign(g)) * dg_dt / g ** 2


def moisture_factor(moisture: float, field_capacity: float, wilting_point: float) -> float:
    """
    Substrate moisture factor f_VWC of the stomatal resistance.

    1 above 70% of field capacity, 1 / ((θ - θwp) / (0.7 θfc - θwp)) between
    wilting point and 70% of field capacity, and a large constant at or
    below the wilting point.
    """
    if moisture > 0.7 * field_capacity:
        return 1.0
    if moisture <= wilting_point:
        return MAX_MOISTURE_FACTOR

    span = 0.7 * field_capacity - wilting_point
    if span <= 0.0:
        return 1.0
    factor = max(0.0, 1.0 / ((moisture - wilting_point) / span))
    return min(factor, MAX_MOISTURE_FACTOR)


# =============================================================================
# STOMATAL RESISTANCE FACTORS (FASST)
# =============================================================================

def fasst_radiation_factor(incident_shortwave: float) -> float:
    """f1 = 1 / min(1, (0.004 RS + 0.005) / (0.81 (0.004 RS + 1)))"""
    rs = max(incident_shortwave, 0.0)
    f1_inv = min(1.0, (0.004 * rs + 0.005) / (0.81 * (0.004 * rs + 1.0)))
    return 1.0 / f1_inv


def fasst_moisture_factor(root_moisture: float, residual: float, maximum: float) -> float:
    """f2 = 1 / ((θroot - θr) / (θmax - θr)); dry roots give a very large f2"""
    if maximum == residual:
        f2_inv = 1.0e10
    else:
        f2_inv = (root_moisture - residual) / (maximum - residual)
    return 1.0 / max(f2_inv, EPSILON)


# =============================================================================
# CONVECTIVE TRANSFER
# =============================================================================

def convective_coefficient(
    area: float,
    wind_speed: float,
    t_air_k: float,
    t_surface_k: float,
    plant_canopy: bool = True,
) -> float:
    """
    Convective heat transfer coefficient of the canopy or bare soil.

    Regime is selected from Grashof and Reynolds numbers of a square roof
    of the given area:
        forced   Gr < 0.068 Re^2.2
        mixed    Gr < 55.3 Re^(5/3)
        natural  otherwise

    Args:
        area: Roof area (m²)
        wind_speed: Wind speed at roof height (m/s)
        t_air_k: Outdoor air temperature (K)
        t_surface_k: Plant or soil surface temperature (K)
        plant_canopy: True for the canopy (C = 3.0), False for bare soil (C = 2.1)

    Returns:
        h (W/m²/K)
    """
    factor = CANOPY_CONVECTION_FACTOR if plant_canopy else BARE_SOIL_CONVECTION_FACTOR
    length = float(np.sqrt(max(area, EPSILON)))
    width = length
    l_cha = length * width / (2.0 * length + 2.0 * width)

    t_avg = max(0.5 * (t_air_k + t_surface_k), EPSILON)
    beta = 1.0 / t_avg
    grashof = abs(GRAVITY * beta * (t_surface_k - t_air_k) * l_cha ** 3 / KINEMATIC_VISCOSITY_AIR ** 2)
    reynolds = max(wind_speed, 0.0) * length / KINEMATIC_VISCOSITY_AIR

    forced_limit = 0.068 * reynolds ** 2.2
    natural_limit = 55.3 * reynolds ** (5.0 / 3.0)

    if grashof < forced_limit:
        nusselt = 3.0 + 1.25 * 0.0253 * reynolds ** 0.8
        h = factor * nusselt * THERMAL_CONDUCTIVITY_AIR / length
    elif grashof < natural_limit:
        nusselt = 2.7 * (grashof / reynolds ** 2.2) ** (1.0 / 3.0) * (
            3.0 * 15.0 / 4.0 + 0.0253 * 15.0 / 16.0 * reynolds ** 0.8
        )
        norm = (grashof / reynolds ** (5.0 / 3.0)) / 60.0
        l_mixed = l_cha * norm + length * (1.0 - norm)
        h = factor * nusselt * THERMAL_CONDUCTIVITY_AIR / l_mixed
    else:
        nusselt = 0.15 * (grashof * PRANDTL_AIR) ** (1.0 / 3.0)
        h = factor * nusselt * THERMAL_CONDUCTIVITY_AIR / l_cha

    return max(float(h), MIN_CONVECTIVE_COEFFICIENT)


def porous_media_coefficient(area: float, wind_speed: float, air_density_kg_m3: float) -> float:
    """
    Heat transfer coefficient of the canopy treated as a porous medium.

    k_por = φ k_air + (1 - φ) k_plants, Pe = 0.3 WS L / α_por,
    Nu = 1.128 sqrt(Pe), h_por = Nu k_por / L

    Returns:
        h_por (W/m²/K)
    """
    length = float(np.sqrt(max(area, EPSILON)))
    k_por = CANOPY_POROSITY * THERMAL_CONDUCTIVITY_AIR + (1.0 - CANOPY_POROSITY) * THERMAL_CONDUCTIVITY_PLANTS
    alpha_por = k_por / (air_density_kg_m3 * CP_AIR)
    peclet = 0.3 * max(wind_speed, 0.0) * length / alpha_por
    nusselt = 1.128 * float(np.sqrt(peclet))
    return max(nusselt * k_por / length, MIN_CONVECTIVE_COEFFICIENT)


# =============================================================================
# SUBSTRATE
# =============================================================================

def substrate_surface_resistance(relative_moisture: float) -> float:
    """Soil surface resistance to evaporation r_s = 34.52 Mg^-3.2678 (s/m)"""
    mg = max(relative_moisture, _MIN_RELATIVE_MOISTURE)
    return SUBSTRATE_RESISTANCE_COEFFICIENT * mg ** SUBSTRATE_RESISTANCE_EXPONENT


def soil_albedo(relative_moisture: float) -> float:
    """Soil albedo as a quadratic fit of relative moisture Mg = θ / θmax"""
    mg = float(np.clip(relative_moisture, 0.0, 1.0))
    return 0.2171 * mg ** 2 - 0.4336 * mg + 0.3143
