"""
Plant-coverage energy balance.

The roof is split into a plant canopy covering a fraction σ of the soil, the
soil beneath it and the exposed bare soil. Each surface temperature is the
root of its own energy balance, solved in sequence with Newton's method:

    plant         uses the latest covered-soil temperature
    covered soil  uses the plant and bare-soil temperatures
    bare soil     uses the covered-soil temperature

Conduction into the construction couples the two soil surfaces. The host
receives the σ-weighted soil temperature.

References:
- Tabares-Velasco, P.C. and Srebric, J. (2012). A heat transfer model for
  assessment of plant based roofing systems in summer conditions.
  Building and Environment 49:310-323.
- Yaghoobian, N. and Srebric, J. (2015). Influence of plant coverage on the
  total green roof energy balance and building energy consumption.
  Energy and Buildings 103:1-13.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from ecoroof.core.config import SolverConfig
from ecoroof.core.constants import (
    CP_AIR,
    KELVIN_OFFSET,
    LEWIS_NUMBER,
    STEFAN_BOLTZMANN,
    WATER_DENSITY,
)
from ecoroof.core.types import (
    ConductionFeedTerms,
    EnvironmentForcing,
    SurfaceGeometry,
    SurfaceThermalState,
    VegetationProperties,
)
from ecoroof.physics import flux_correlations as fc
from ecoroof.physics.energy_balance import EnergyBalanceResult
from ecoroof.physics.numerical_solver import (
    NewtonBisectionSolver,
    RootFinderConfig,
    RootFindResult,
)
from ecoroof.physics.water_balance import SoilMoistureState

logger = logging.getLogger(__name__)

SIGMA = STEFAN_BOLTZMANN


@dataclass
class _AirConditions:
    """Outdoor air terms shared by the three balances"""
    t_air_k: float
    wind_speed: float
    pressure_pa: float
    density: float
    vapor_pressure_kpa: float
    sky_emission: float  # σ VF_sky T_sky⁴ (W/m²)
    incident_shortwave: float


class PlantCoverageEnergyBalance:
    """
    Three-surface energy balance weighted by plant coverage.

    Coverage 0 skips the plant and covered-soil solves and reports zero plant
    quantities; coverage 1 skips the bare-soil solve and reports zero
    bare-soil quantities.
    """

    def __init__(
        self,
        vegetation: VegetationProperties,
        geometry: SurfaceGeometry,
        solver_config: Optional[SolverConfig] = None,
    ):
        self.vegetation = vegetation
        self.geometry = geometry
        self.config = solver_config or SolverConfig()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        root_config = RootFinderConfig(
            tolerance=self.config.newton_tolerance,
            max_iterations=self.config.max_newton_iterations,
            max_bisection_iterations=self.config.max_bisection_iterations,
        )
        self.plant_solver = NewtonBisectionSolver(root_config, name="plant")
        self.soil_solver = NewtonBisectionSolver(root_config, name="soil")
        self.bare_soil_solver = NewtonBisectionSolver(root_config, name="bare_soil")

        lai = vegetation.leaf_area_index
        self.coverage = vegetation.plant_coverage
        self.tau_sw = float(np.exp(-vegetation.shortwave_extinction * lai))
        self.tau_lw = float(np.exp(-vegetation.longwave_extinction * lai))
        ep = vegetation.leaf_emissivity
        eg = vegetation.soil_thermal_absorptance
        self.epsilon_one = ep + eg - eg * ep
        self.lewis_factor = LEWIS_NUMBER ** (2.0 / 3.0)

    # =========================================================================
    # Shared terms
    # =========================================================================

    def _air(self, forcing: EnvironmentForcing) -> _AirConditions:
        t_air_k = forcing.outdoor_dry_bulb_k
        return _AirConditions(
            t_air_k=t_air_k,
            wind_speed=max(forcing.wind_speed, self.config.min_wind_speed),
            pressure_pa=forcing.pressure_pa,
            density=fc.air_density(forcing.pressure_pa, t_air_k),
            vapor_pressure_kpa=fc.actual_vapor_pressure_kpa(t_air_k, forcing.relative_humidity),
            sky_emission=SIGMA * self.geometry.view_factor_sky * forcing.sky_temperature_k ** 4,
            incident_shortwave=max(forcing.incident_shortwave, 0.0),
        )

    def _h_canopy(self, air: _AirConditions, t_k: float) -> float:
        return fc.convective_coefficient(self.geometry.area, air.wind_speed, air.t_air_k, t_k, plant_canopy=True)

    def _h_bare(self, air: _AirConditions, t_k: float) -> float:
        return fc.convective_coefficient(self.geometry.area, air.wind_speed, air.t_air_k, t_k, plant_canopy=False)

    def _soil_latent(self, air: _AirConditions, t_k: float, resistance: float) -> float:
        """Evaporation from a soil surface, Rhoa cp / γ(T) (e_s - e_a) / r"""
        gamma = fc.psychrometric_constant(t_k, air.pressure_pa)
        return air.density * CP_AIR / gamma * (fc.saturation_vapor_pressure_kpa(t_k) - air.vapor_pressure_kpa) / resistance

    def _soil_latent_slope(self, air: _AirConditions, t_k: float, resistance: float) -> float:
        """d/dT of _soil_latent; the latent heat enters through γ"""
        scale = air.density * 0.622 * 1000.0 / (air.pressure_pa * resistance)
        deficit = fc.saturation_vapor_pressure_kpa(t_k) - air.vapor_pressure_kpa
        return scale * (
            fc.latent_heat_slope(t_k) * deficit
            + fc.latent_heat_of_vaporization(t_k) * fc.saturation_vapor_pressure_slope_kpa(t_k)
        )

    @staticmethod
    def _accept(result: RootFindResult, previous: float) -> float:
        return result.root if np.isfinite(result.root) else previous

    # =========================================================================
    # Solve
    # =========================================================================

    def solve(
        self,
        forcing: EnvironmentForcing,
        moisture: SoilMoistureState,
        conduction: ConductionFeedTerms,
        state: SurfaceThermalState,
    ) -> EnergyBalanceResult:
        """
        Solve plant, covered-soil and bare-soil temperatures for one timestep.

        Args:
            forcing: Outdoor conditions
            moisture: Current substrate moisture
            conduction: Linearized conduction terms from the host
            state: Previous temperatures, updated in place

        Returns:
            EnergyBalanceResult
        """
        veg = self.vegetation
        sf = self.coverage
        air = self._air(forcing)
        rs = air.incident_shortwave

        relative_moisture = moisture.near_surface / veg.max_moisture
        albedo_g = fc.soil_albedo(relative_moisture)
        r_s_sub = fc.substrate_surface_resistance(relative_moisture)

        q_sol_plant = max(0.0, (1.0 - veg.leaf_reflectivity - self.tau_sw) * (1.0 + self.tau_sw * albedo_g) * rs)
        q_sol_soil = self.tau_sw * (1.0 - albedo_g) * rs
        q_sol_bare = (1.0 - albedo_g) * rs

        f_solar = fc.solar_factor(rs)
        f_vwc = fc.moisture_factor(moisture.near_surface, veg.field_capacity, veg.residual_moisture)
        h_por = fc.porous_media_coefficient(self.geometry.area, air.wind_speed, air.density)

        part1 = conduction.constant_part
        part2 = conduction.temperature_coefficient

        root_finds: Dict[str, RootFindResult] = {}
        q_et_plant = 0.0
        q_conv_plant = 0.0
        q_e_soil = q_conv_soil = q_ir_soil = 0.0
        q_e_bare = q_conv_bare = q_ir_bare = 0.0

        if sf > 0.0:
            result = self._solve_plant(air, state, q_sol_plant, f_solar, f_vwc)
            root_finds['plant'] = result
            state.plant_k = self._accept(result, state.plant_k)
            q_et_plant = self._plant_latent(air, state.plant_k, state.soil_k, f_solar, f_vwc)
            q_conv_plant = veg.leaf_area_index * self._h_canopy(air, state.plant_k) * (state.plant_k - air.t_air_k)

            result = self._solve_covered_soil(air, state, q_sol_soil, r_s_sub, h_por, part1, part2)
            root_finds['soil'] = result
            state.soil_k = self._accept(result, state.soil_k)

            h_plant = self._h_canopy(air, state.plant_k)
            h_eff = h_por * h_plant / (h_por + h_plant)
            r_a_sub = air.density * CP_AIR * self.lewis_factor * (1.0 / h_por + 1.0 / h_plant)
            q_e_soil = max(0.0, self._soil_latent(air, state.soil_k, r_s_sub + r_a_sub))
            q_conv_soil = h_eff * (state.soil_k - air.t_air_k)
            q_ir_soil = self._covered_soil_longwave(air, state.soil_k, state.plant_k)

        if sf < 1.0:
            result = self._solve_bare_soil(air, state, q_sol_bare, r_s_sub, part1, part2)
            root_finds['bare_soil'] = result
            state.bare_soil_k = self._accept(result, state.bare_soil_k)

            h_bare = self._h_bare(air, state.bare_soil_k)
            r_a_bare = air.density * CP_AIR * self.lewis_factor / h_bare
            q_e_bare = self._soil_latent(air, state.bare_soil_k, r_s_sub + r_a_bare)
            q_conv_bare = h_bare * (state.bare_soil_k - air.t_air_k)
            q_ir_bare = self._bare_soil_longwave(air, state.bare_soil_k)

        soil_avg_k = sf * state.soil_k + (1.0 - sf) * state.bare_soil_k

        if sf > 0.0:
            vapor_flux_plant = q_et_plant / fc.latent_heat_of_vaporization(state.plant_k) / WATER_DENSITY
        else:
            vapor_flux_plant = 0.0
        q_e_avg = sf * q_e_soil + (1.0 - sf) * q_e_bare
        vapor_flux_soil = q_e_avg / fc.latent_heat_of_vaporization(soil_avg_k) / WATER_DENSITY

        conduction_flux = -part1 + part2 * (
            sf * (state.soil_k - KELVIN_OFFSET) + (1.0 - sf) * (state.bare_soil_k - KELVIN_OFFSET)
        )

        result = EnergyBalanceResult(
            surface_temperature_c=soil_avg_k - KELVIN_OFFSET,
            plant_temperature_c=state.plant_k - KELVIN_OFFSET if sf > 0.0 else 0.0,
            soil_temperature_c=state.soil_k - KELVIN_OFFSET if sf > 0.0 else 0.0,
            bare_soil_temperature_c=state.bare_soil_k - KELVIN_OFFSET if sf < 1.0 else 0.0,
            sensible_heat_plant=q_conv_plant,
            latent_heat_plant=q_et_plant,
            sensible_heat_soil=sf * q_conv_soil + (1.0 - sf) * q_conv_bare,
            latent_heat_soil=q_e_avg,
            net_shortwave_soil=sf * q_sol_soil + (1.0 - sf) * q_sol_bare,
            net_longwave_soil=sf * q_ir_soil + (1.0 - sf) * q_ir_bare,
            conduction=conduction_flux,
            vapor_flux_plant=max(vapor_flux_plant, 0.0),
            vapor_flux_soil=max(vapor_flux_soil, 0.0),
            root_finds=root_finds,
        )

        self.logger.debug(
            f"Plant coverage balance: Tp={result.plant_temperature_c:.2f}C, "
            f"Ts={result.soil_temperature_c:.2f}C, Tb={result.bare_soil_temperature_c:.2f}C, "
            f"Tsurf={result.surface_temperature_c:.2f}C"
        )
        return result

    # =========================================================================
    # Plant
    # =========================================================================

    def _stomatal_resistance(self, air: _AirConditions, t_k: float, f_solar: float, f_vwc: float) -> float:
        veg = self.vegetation
        return (
            (veg.min_stomatal_resistance / veg.leaf_area_index)
            * f_solar
            * fc.humidity_factor(t_k, air.vapor_pressure_kpa)
            * f_vwc
            * fc.temperature_factor(t_k)
        )

    def _plant_latent(self, air: _AirConditions, t_k: float, soil_k: float, f_solar: float, f_vwc: float) -> float:
        """Transpiration LAI ρ cp / γ (e_s - e_a) / (r_s + r_a); γ at the soil temperature"""
        veg = self.vegetation
        r_a = air.density * CP_AIR * self.lewis_factor / self._h_canopy(air, t_k)
        r_s = self._stomatal_resistance(air, t_k, f_solar, f_vwc)
        var_a = veg.leaf_area_index * air.density * CP_AIR / fc.psychrometric_constant(soil_k, air.pressure_pa)
        return var_a * (fc.saturation_vapor_pressure_kpa(t_k) - air.vapor_pressure_kpa) / (r_s + r_a)

    def _solve_plant(
        self,
        air: _AirConditions,
        state: SurfaceThermalState,
        q_sol_plant: float,
        f_solar: float,
        f_vwc: float,
    ) -> RootFindResult:
        veg = self.vegetation
        ep = veg.leaf_emissivity
        eg = veg.soil_thermal_absorptance
        lai = veg.leaf_area_index
        open_lw = 1.0 - self.tau_lw
        soil_k = state.soil_k
        var_a = lai * air.density * CP_AIR / fc.psychrometric_constant(soil_k, air.pressure_pa)

        def balance(t: float) -> float:
            q_ir_sky = open_lw * ep * (ep * air.sky_emission - SIGMA * t ** 4)
            q_ir_exch = open_lw * SIGMA * ep * eg * (soil_k ** 4 - t ** 4) / self.epsilon_one
            q_conv = lai * self._h_canopy(air, t) * (t - air.t_air_k)
            q_et = self._plant_latent(air, t, soil_k, f_solar, f_vwc)
            return q_sol_plant + q_ir_sky + q_ir_exch - q_conv - q_et

        def slope(t: float) -> float:
            h = self._h_canopy(air, t)
            r_a = air.density * CP_AIR * self.lewis_factor / h
            r_s = self._stomatal_resistance(air, t, f_solar, f_vwc)
            dr_s = (
                (veg.min_stomatal_resistance / lai)
                * f_solar
                * fc.humidity_factor(t, air.vapor_pressure_kpa)
                * f_vwc
                * fc.temperature_factor_slope(t)
            )
            r_total = r_s + r_a
            deficit = fc.saturation_vapor_pressure_kpa(t) - air.vapor_pressure_kpa
            d_q_et = var_a * (fc.saturation_vapor_pressure_slope_kpa(t) * r_total - deficit * dr_s) / r_total ** 2
            return (
                -4.0 * open_lw * ep * SIGMA * t ** 3
                - 4.0 * open_lw * SIGMA * ep * eg * t ** 3 / self.epsilon_one
                - lai * h
                - d_q_et
            )

        return self.plant_solver.solve(balance, slope, state.plant_k)

    # =========================================================================
    # Soil
    # =========================================================================

    def _covered_soil_longwave(self, air: _AirConditions, t_k: float, plant_k: float) -> float:
        veg = self.vegetation
        ep = veg.leaf_emissivity
        eg = veg.soil_thermal_absorptance
        sky = self.tau_lw * eg * (eg * air.sky_emission - SIGMA * t_k ** 4)
        exchange = (1.0 - self.tau_lw) * SIGMA * ep * eg * (plant_k ** 4 - t_k ** 4) / self.epsilon_one
        return sky + exchange

    def _bare_soil_longwave(self, air: _AirConditions, t_k: float) -> float:
        eg = self.vegetation.soil_thermal_absorptance
        return eg * (eg * air.sky_emission - SIGMA * t_k ** 4)

    def _solve_covered_soil(
        self,
        air: _AirConditions,
        state: SurfaceThermalState,
        q_sol_soil: float,
        r_s_sub: float,
        h_por: float,
        part1: float,
        part2: float,
    ) -> RootFindResult:
        veg = self.vegetation
        ep = veg.leaf_emissivity
        eg = veg.soil_thermal_absorptance
        sf = self.coverage
        plant_k = state.plant_k
        bare_c = state.bare_soil_k - KELVIN_OFFSET

        h_plant = self._h_canopy(air, plant_k)
        h_eff = h_por * h_plant / (h_por + h_plant)
        resistance = r_s_sub + air.density * CP_AIR * self.lewis_factor * (1.0 / h_por + 1.0 / h_plant)

        def balance(t: float) -> float:
            q_e = max(0.0, self._soil_latent(air, t, resistance))
            q_cond = -part1 + part2 * (sf * (t - KELVIN_OFFSET) + (1.0 - sf) * bare_c)
            return (
                q_sol_soil
                + self._covered_soil_longwave(air, t, plant_k)
                - h_eff * (t - air.t_air_k)
                - q_e
                - q_cond
            )

        def slope(t: float) -> float:
            if self._soil_latent(air, t, resistance) <= 0.0:
                d_q_e = 0.0
            else:
                d_q_e = self._soil_latent_slope(air, t, resistance)
            return (
                -4.0 * SIGMA * t ** 3 * eg * self.tau_lw
                - 4.0 * SIGMA * t ** 3 * eg * ep * (1.0 - self.tau_lw) / self.epsilon_one
                - h_eff
                - d_q_e
                - part2 * sf
            )

        return self.soil_solver.solve(balance, slope, state.soil_k)

    def _solve_bare_soil(
        self,
        air: _AirConditions,
        state: SurfaceThermalState,
        q_sol_bare: float,
        r_s_sub: float,
        part1: float,
        part2: float,
    ) -> RootFindResult:
        eg = self.vegetation.soil_thermal_absorptance
        sf = self.coverage
        covered_c = state.soil_k - KELVIN_OFFSET

        def resistance(t: float) -> float:
            return r_s_sub + air.density * CP_AIR * self.lewis_factor / self._h_bare(air, t)

        def balance(t: float) -> float:
            q_e = self._soil_latent(air, t, resistance(t))
            q_cond = -part1 + part2 * (sf * covered_c + (1.0 - sf) * (t - KELVIN_OFFSET))
            return (
                q_sol_bare
                + self._bare_soil_longwave(air, t)
                - self._h_bare(air, t) * (t - air.t_air_k)
                - q_e
                - q_cond
            )

        def slope(t: float) -> float:
            return (
                -4.0 * SIGMA * t ** 3 * eg
                - self._h_bare(air, t)
                - self._soil_latent_slope(air, t, resistance(t))
                - part2 * (1.0 - sf)
            )

        return self.bare_soil_solver.solve(balance, slope, state.bare_soil_k)

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def get_statistics(self) -> Dict:
        """Root finder statistics per surface"""
        return {
            'plant': self.plant_solver.get_statistics(),
            'soil': self.soil_solver.get_statistics(),
            'bare_soil': self.bare_soil_solver.get_statistics(),
        }

    def reset(self):
        self.plant_solver.reset()
        self.soil_solver.reset()
        self.bare_soil_solver.reset()
