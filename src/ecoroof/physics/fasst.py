"""
FASST vegetated-surface energy balance.

Foliage and ground temperatures solve a pair of energy balances linearized
about the current estimate. The 2x2 system is re-linearized a fixed number
of times and each new estimate is averaged with the previous one; there is
no convergence test.

References:
- Frankenstein, S. and Koenig, G. (2004). FASST vegetation models.
  ERDC/CRREL TR-04-25.
- Deardorff, J.W. (1978). Efficient prediction of ground surface
  temperature and moisture, with inclusion of a layer of vegetation.
  J. Geophys. Res. 83:1889-1903.
- Sailor, D.J. (2008). A green roof model for building energy simulation
  programs. Energy and Buildings 40:1466-1478.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from ecoroof.core.config import SolverConfig
from ecoroof.core.constants import (
    FASST_CP_AIR,
    FASST_MIN_ROUGHNESS_LENGTH,
    FASST_RCH,
    FASST_RCHE,
    FASST_REFERENCE_HEIGHT,
    FASST_RICHARDSON_CAP,
    FASST_VON_KARMAN,
    FASST_WINDLESS_EXCHANGE,
    GAS_CONSTANT_AIR,
    GRAVITY,
    KELVIN_OFFSET,
    STEFAN_BOLTZMANN,
    WATER_DENSITY,
)
from ecoroof.core.types import (
    ConductionFeedTerms,
    EnvironmentForcing,
    MaterialRecord,
    SurfaceGeometry,
    SurfaceThermalState,
    VegetationProperties,
)
from ecoroof.physics import flux_correlations as fc
from ecoroof.physics.energy_balance import EnergyBalanceResult
from ecoroof.physics.water_balance import SoilMoistureState

logger = logging.getLogger(__name__)

SIGMA = STEFAN_BOLTZMANN


@dataclass
class CanopyAerodynamics:
    """Canopy cover and exchange terms that depend only on the plants and wind"""
    cover: float  # σf
    displacement_height: float  # m
    roughness_length: float  # m
    neutral_transfer: float  # Cfhn
    canopy_wind: float  # m/s
    bulk_transfer: float  # Cf


def canopy_aerodynamics(height: float, leaf_area_index: float, wind_speed: float) -> CanopyAerodynamics:
    """
    Foliage cover, roughness and transfer coefficients.

    Args:
        height: Plant height (m)
        leaf_area_index: Leaf area index
        wind_speed: Wind speed at roof height, already floored (m/s)

    Returns:
        CanopyAerodynamics
    """
    cover = 0.9 - 0.7 * float(np.exp(-0.75 * leaf_area_index))
    zd = 0.701 * height ** 0.979
    zo = max(FASST_MIN_ROUGHNESS_LENGTH, 0.131 * height ** 0.997)
    cfhn = (FASST_VON_KARMAN / float(np.log((FASST_REFERENCE_HEIGHT - zd) / zo))) ** 2
    waf = 0.83 * float(np.sqrt(cfhn)) * cover * wind_speed + (1.0 - cover) * wind_speed
    cf = 0.01 * (1.0 + 0.3 / waf)
    return CanopyAerodynamics(
        cover=cover,
        displacement_height=zd,
        roughness_length=zo,
        neutral_transfer=cfhn,
        canopy_wind=waf,
        bulk_transfer=cf,
    )


def stability_factor(richardson: float) -> float:
    """Stability correction Γh from the bulk Richardson number"""
    if richardson < 0.0:
        return (1.0 - 16.0 * richardson) ** -0.5
    return (1.0 - 5.0 * min(richardson, FASST_RICHARDSON_CAP)) ** -0.5


class FasstEnergyBalance:
    """
    Lumped foliage/ground energy balance.

    The ground albedo is read from the shared material record, so it follows
    the rate-limited value written by the soil property updater.
    """

    def __init__(
        self,
        vegetation: VegetationProperties,
        geometry: SurfaceGeometry,
        material_record: MaterialRecord,
        solver_config: Optional[SolverConfig] = None,
    ):
        self.vegetation = vegetation
        self.geometry = geometry
        self.material = material_record
        self.config = solver_config or SolverConfig()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        ef = vegetation.leaf_emissivity
        eg = vegetation.soil_thermal_absorptance
        self.epsilon_one = ef + eg - eg * ef
        self.ground_roughness = vegetation.roughness.ground_roughness_length
        self.n_solves = 0

    def solve(
        self,
        forcing: EnvironmentForcing,
        moisture: SoilMoistureState,
        conduction: ConductionFeedTerms,
        state: SurfaceThermalState,
    ) -> EnergyBalanceResult:
        """
        Solve foliage and ground temperature for one timestep.

        Args:
            forcing: Outdoor conditions
            moisture: Current substrate moisture
            conduction: Linearized conduction terms from the host
            state: Previous temperatures (plant_k = foliage, soil_k = ground),
                updated in place

        Returns:
            EnergyBalanceResult
        """
        veg = self.vegetation
        lai = veg.leaf_area_index
        ef = veg.leaf_emissivity
        eg = veg.soil_thermal_absorptance
        alpha_f = veg.leaf_reflectivity
        alpha_g = self.material.albedo
        e1 = self.epsilon_one
        k0 = KELVIN_OFFSET

        ta = forcing.outdoor_dry_bulb_c
        tak = ta + k0
        pa = forcing.pressure_pa
        rs = max(forcing.incident_shortwave, 0.0)
        ws = max(forcing.wind_speed, self.config.min_wind_speed)

        tf_old = state.plant_k - k0
        tg_old = state.soil_k - k0
        tf = tf_old
        tg = tg_old
        tgk = tg + k0

        part1 = conduction.constant_part
        part2 = conduction.temperature_coefficient

        latm = (
            SIGMA * self.geometry.view_factor_ground * forcing.ground_temperature_k ** 4
            + SIGMA * self.geometry.view_factor_sky * forcing.sky_temperature_k ** 4
        )

        # Air and canopy air
        canopy = canopy_aerodynamics(veg.height, lai, ws)
        sf = canopy.cover
        eair = forcing.relative_humidity / 100.0 * fc.saturation_vapor_pressure_pa(ta)
        qa = fc.mixing_ratio(eair, pa)
        rhoa = pa / (GAS_CONSTANT_AIR * tak)
        tafk = (1.0 - sf) * tak + sf * (0.3 * tak + 0.6 * (tf + k0) + 0.1 * tgk)
        taf = tafk - k0
        rhof = pa / (GAS_CONSTANT_AIR * tafk)
        rhoaf = 0.5 * (rhoa + rhof)

        waf = canopy.canopy_wind
        cf = canopy.bulk_transfer
        sheatf = FASST_WINDLESS_EXCHANGE + 1.1 * lai * rhoaf * FASST_CP_AIR * cf * waf
        sensiblef = sheatf * (taf - tf)

        # Foliage humidity and stomatal control
        esf = fc.saturation_vapor_pressure_pa(tf)
        qsf = fc.mixing_ratio(esf, pa)
        ra = 1.0 / (cf * waf)
        f1 = fc.fasst_radiation_factor(rs)
        f2 = fc.fasst_moisture_factor(moisture.root_zone, veg.residual_moisture, veg.max_moisture)
        r_s = veg.min_stomatal_resistance * f1 * f2 / lai
        rn = ra / (ra + r_s)

        mg = moisture.near_surface / veg.max_moisture
        d_one = 1.0 - sf * (0.6 * (1.0 - rn) + 0.1 * (1.0 - mg))

        lef = fc.henderson_sellers_latent_heat(tf, frozen=tf_old < 0.0)
        dqf = 0.622 * pa / (pa - esf) ** 2 * fc.saturation_vapor_pressure_slope_pa(tf)

        # Ground humidity
        esg = fc.saturation_vapor_pressure_pa(tg)
        qsg = fc.mixing_ratio(esg, pa)
        leg = fc.henderson_sellers_latent_heat(tg, frozen=tg_old < 0.0)
        dqg = 0.622 * pa / (pa - esg) ** 2 * fc.saturation_vapor_pressure_slope_pa(tg)

        # Ground exchange with stability correction
        rhog = pa / (GAS_CONSTANT_AIR * tgk)
        rhoag = 0.5 * (rhoa + rhog)
        za = FASST_REFERENCE_HEIGHT
        richardson = 2.0 * GRAVITY * za * (taf - tg) / ((tafk + tgk) * waf ** 2)
        gammah = stability_factor(richardson)

        log_ground = float(np.log(za / self.ground_roughness))
        chng = (FASST_VON_KARMAN / log_ground) ** 2 / FASST_RCH
        chg = gammah * ((1.0 - sf) * chng + sf * canopy.neutral_transfer)
        sheatg = FASST_WINDLESS_EXCHANGE + rhoag * FASST_CP_AIR * chg * waf
        sensibleg = sheatg * (taf - tg)

        chne = (FASST_VON_KARMAN / log_ground) ** 2 / FASST_RCHE
        ce = gammah * ((1.0 - sf) * chne + sf * canopy.neutral_transfer)

        # Latent fluxes
        qaf = ((1.0 - sf) * qa + sf * (0.3 * qa + 0.6 * qsf * rn + 0.1 * qsg * mg)) / d_one
        qg = mg * qsg + (1.0 - mg) * qaf
        lf = lef * lai * rhoaf * cf * waf * rn * (qaf - qsf)
        lg = ce * leg * waf * rhoag * (qaf - qg) * mg
        vapor_flux_plant = max(0.0, -lf / lef / WATER_DENSITY)
        vapor_flux_soil = max(0.0, -lg / leg / WATER_DENSITY)

        # Linearized foliage/ground system
        a_f = lai * rhoaf * cf * lef * waf * rn
        a_g = rhoag * ce * leg * waf * mg
        leaf_tk = tf + k0
        soil_tk = tg + k0

        for _ in range(self.config.fasst_iterations):
            p1 = (
                sf * (rs * (1.0 - alpha_f) + ef * latm)
                - 3.0 * sf * ef * eg * SIGMA * soil_tk ** 4 / e1
                - 3.0 * (-sf * ef * SIGMA - sf * ef * eg * SIGMA / e1) * leaf_tk ** 4
                + sheatf * (1.0 - 0.7 * sf) * (ta + k0)
                + a_f * ((1.0 - 0.7 * sf) / d_one) * qa
                + a_f * ((0.6 * sf * rn / d_one) - 1.0) * (qsf - leaf_tk * dqf)
                + a_f * (0.1 * sf * mg / d_one) * (qsg - soil_tk * dqg)
            )
            p2 = (
                4.0 * sf * ef * eg * SIGMA * soil_tk ** 3 / e1
                + 0.1 * sf * sheatf
                + a_f * (0.1 * sf * mg) / d_one * dqg
            )
            p3 = (
                4.0 * (-sf * ef * SIGMA - sf * ef * SIGMA * eg / e1) * leaf_tk ** 3
                + (0.6 * sf - 1.0) * sheatf
                + a_f * ((0.6 * sf * rn / d_one) - 1.0) * dqf
            )

            t1g = (
                (1.0 - sf) * (rs * (1.0 - alpha_g) + eg * latm)
                - 3.0 * (sf * ef * eg * SIGMA / e1) * leaf_tk ** 4
                - 3.0 * (-(1.0 - sf) * eg * SIGMA - sf * ef * eg * SIGMA / e1) * soil_tk ** 4
                + sheatg * (1.0 - 0.7 * sf) * (ta + k0)
                + a_g * ((1.0 - 0.7 * sf) / d_one) * qa
                + a_g * (0.1 * sf * mg / d_one - mg) * (qsg - soil_tk * dqg)
                + a_g * (0.6 * sf * rn / d_one) * (qsf - leaf_tk * dqf)
                + part1
                + part2 * k0
            )
            t2g = (
                4.0 * (-(1.0 - sf) * eg * SIGMA - sf * ef * eg * SIGMA / e1) * soil_tk ** 3
                + (0.1 * sf - 1.0) * sheatg
                + a_g * (0.1 * sf * mg / d_one - mg) * dqg
                - part2
            )
            t3g = (
                4.0 * (sf * eg * ef * SIGMA / e1) * leaf_tk ** 3
                + 0.6 * sf * sheatg
                + a_g * (0.6 * sf * rn / d_one) * dqf
            )

            leaf_new = (p1 * t2g - p2 * t1g) / (-p3 * t2g + t3g * p2)
            soil_new = (p1 * t3g - p3 * t1g) / (-p2 * t3g + p3 * t2g)
            leaf_tk = 0.5 * (leaf_tk + leaf_new)
            soil_tk = 0.5 * (soil_tk + soil_new)

        if np.isfinite(leaf_tk) and np.isfinite(soil_tk):
            state.plant_k = leaf_tk
            state.soil_k = soil_tk
            state.bare_soil_k = soil_tk
        else:
            self.logger.warning(
                "FASST solve produced non-finite temperatures; keeping previous "
                "foliage %.2fC and ground %.2fC", tf_old, tg_old,
            )
        self.n_solves += 1

        ground_c = state.soil_k - k0
        result = EnergyBalanceResult(
            surface_temperature_c=ground_c,
            plant_temperature_c=state.plant_k - k0,
            soil_temperature_c=ground_c,
            bare_soil_temperature_c=ground_c,
            sensible_heat_plant=-sensiblef,
            latent_heat_plant=-lf,
            sensible_heat_soil=-sensibleg,
            latent_heat_soil=-lg,
            net_shortwave_soil=(1.0 - sf) * rs * (1.0 - alpha_g),
            net_longwave_soil=(1.0 - sf) * eg * (latm - SIGMA * state.soil_k ** 4),
            conduction=conduction.flux(ground_c),
            vapor_flux_plant=vapor_flux_plant,
            vapor_flux_soil=vapor_flux_soil,
        )

        self.logger.debug(
            f"FASST balance: Tf={result.plant_temperature_c:.2f}C, "
            f"Tg={result.surface_temperature_c:.2f}C, Rib={richardson:.3f}"
        )
        return result

    def get_statistics(self) -> Dict:
        return {'n_solves': self.n_solves, 'iterations_per_solve': self.config.fasst_iterations}

    def reset(self):
        self.n_solves = 0
