"""
Roof surface controller.

Owns the state of one vegetated construction and answers the host's request
for the outside surface temperature of every roof surface that uses it.
The first registered surface is the reference: the energy balance, moisture
step and property update run once per timestep key for it, and every other
surface receives the cached temperature.
"""
import logging
from typing import Dict, List, Optional

import pandas as pd

from ecoroof.core.config import EcoRoofConfig, get_config
from ecoroof.core.constants import KELVIN_OFFSET
from ecoroof.core.exceptions import ErrorContext, StabilityError, SurfaceRegistrationError
from ecoroof.core.types import (
    ConductionFeedTerms,
    EnvironmentForcing,
    IrrigationMode,
    MoistureLaw,
    SurfaceGeometry,
    SurfaceID,
    SurfaceThermalState,
    TimestepKey,
    VegetationProperties,
    WaterInput,
)
from ecoroof.physics.energy_balance import (
    EnergyBalanceModel,
    EnergyBalanceResult,
    create_energy_balance,
)
from ecoroof.physics.numerical_solver import StabilityCheck, check_timestep_stability
from ecoroof.physics.soil_properties import SoilThermalProperties, SoilThermalPropertyUpdater
from ecoroof.physics.water_balance import EcoRoofWaterBalance, MoistureStepResult
from ecoroof.pipeline.reporting import ReportCollector, ReportObserver, TimestepReport

logger = logging.getLogger(__name__)

# Forcing table columns read by run_period
REQUIRED_FORCING_COLUMNS = ("outdoor_dry_bulb_c", "wind_speed", "relative_humidity")


class EcoRoofController:
    """
    Drives the vegetated roof model for the host simulation.

    Per timestep, in this order:
    1. Energy balance (surface temperatures, vapor fluxes)
    2. Moisture step (consumes the vapor fluxes)
    3. Soil thermal property update (consumes the moisture)
    """

    def __init__(
        self,
        vegetation: VegetationProperties,
        config: Optional[EcoRoofConfig] = None,
    ):
        """
        Initialize the controller.

        Args:
            vegetation: Static vegetated-layer properties
            config: Configuration (defaults to the global config)
        """
        self.vegetation = vegetation
        self.config = config or get_config()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self.material_record = vegetation.to_material_record()
        self.water_balance = EcoRoofWaterBalance(vegetation, self.config)
        self.property_updater = SoilThermalPropertyUpdater(
            vegetation,
            self.material_record,
            timestep_minutes=self.config.timestep_minutes,
            rate_limit_fraction=self.config.properties.rate_limit_fraction,
            reference_minutes=self.config.properties.rate_limit_reference_minutes,
        )

        self.surfaces: Dict[SurfaceID, SurfaceGeometry] = {}
        self.energy_balance: Optional[EnergyBalanceModel] = None
        self.thermal_state: Optional[SurfaceThermalState] = None
        self.stability: Optional[StabilityCheck] = None

        self.observers: List[ReportObserver] = []
        self.last_result: Optional[EnergyBalanceResult] = None
        self.last_moisture: Optional[MoistureStepResult] = None
        self.last_properties: Optional[SoilThermalProperties] = None
        self._solved_key: Optional[TimestepKey] = None
        self._surface_temperature_c: float = 0.0
        self.n_solves = 0

    # =========================================================================
    # Setup
    # =========================================================================

    @property
    def reference_surface(self) -> Optional[SurfaceGeometry]:
        return next(iter(self.surfaces.values()), None)

    def register_surface(self, geometry: SurfaceGeometry) -> None:
        """
        Register a roof surface that uses the vegetated construction.

        The first surface becomes the reference surface; the energy balance is
        built for its geometry and the moisture timestep is checked.

        Raises:
            SurfaceRegistrationError: Surface already registered
            StabilityError: Timestep fails the stability criterion and
                fail_on_unstable_timestep is set
        """
        if geometry.surface_id in self.surfaces:
            raise SurfaceRegistrationError(
                f"Surface {geometry.surface_id!r} is already registered",
                ErrorContext(surface_id=geometry.surface_id, component="EcoRoofController",
                             operation="register_surface"),
            )

        first = not self.surfaces
        self.surfaces[geometry.surface_id] = geometry
        if not first:
            return

        self.energy_balance = create_energy_balance(
            self.config, self.vegetation, geometry, self.material_record
        )
        self._check_stability(geometry.surface_id)
        self.logger.info(
            f"Registered reference surface {geometry.surface_id} "
            f"({self.config.solver.calculation_method.value}, {self.config.moisture_law.value})"
        )

    def _check_stability(self, surface_id: SurfaceID) -> None:
        moisture_config = self.config.moisture
        if self.config.moisture_law != MoistureLaw.VAN_GENUCHTEN_MUALEM:
            return
        if not moisture_config.check_timestep_stability:
            return

        self.stability = check_timestep_stability(self.config.timestep_minutes, self.vegetation.thickness)
        if self.stability.stable:
            return

        message = (
            f"Too few timesteps per hour for moisture stability with "
            f"{self.vegetation.thickness:.3f} m of soil; use more than "
            f"{self.stability.recommended_timesteps_per_hour} timesteps per hour"
        )
        if moisture_config.fail_on_unstable_timestep:
            raise StabilityError(
                message,
                ErrorContext(
                    surface_id=surface_id,
                    component="EcoRoofController",
                    operation="check_stability",
                    details={'max_stable_minutes': self.stability.max_stable_minutes},
                ),
            )
        self.logger.warning(message)

    def add_observer(self, observer: ReportObserver) -> None:
        self.observers.append(observer)

    # =========================================================================
    # Environment lifecycle
    # =========================================================================

    def begin_environment(self, outdoor_dry_bulb_c: float) -> None:
        """Reset all state at the start of a simulation environment"""
        self.water_balance.reset(reset_accumulators=True)
        self.property_updater.reset()
        self.thermal_state = SurfaceThermalState.at_outdoor(outdoor_dry_bulb_c)
        if self.energy_balance is not None:
            self.energy_balance.reset()
        self._solved_key = None
        self.last_result = None
        self.last_moisture = None
        self.logger.info(f"Begin environment at {outdoor_dry_bulb_c:.1f}C")

    def begin_warmup_day(self, outdoor_dry_bulb_c: float) -> None:
        """Reset moisture, albedo and temperatures; run totals are kept"""
        self.water_balance.reset(reset_accumulators=False)
        self.material_record.solar_absorptance = self.vegetation.soil_solar_absorptance
        if self.thermal_state is None:
            self.thermal_state = SurfaceThermalState.at_outdoor(outdoor_dry_bulb_c)
        else:
            self.thermal_state.reset(outdoor_dry_bulb_c)
        self._solved_key = None
        self.logger.debug(f"Begin warm-up day at {outdoor_dry_bulb_c:.1f}C")

    # =========================================================================
    # Timestep
    # =========================================================================

    def calculate_surface_temperature(
        self,
        surface_id: SurfaceID,
        timestep: TimestepKey,
        forcing: EnvironmentForcing,
        conduction: Optional[ConductionFeedTerms] = None,
        water_input: Optional[WaterInput] = None,
        warmup: bool = False,
    ) -> float:
        """
        Outside surface temperature of a registered surface (°C).

        The model runs once per timestep key; later calls with the same key
        return the cached temperature for any registered surface.

        Args:
            surface_id: Registered surface
            timestep: Key identifying the host timestep
            forcing: Outdoor conditions
            conduction: Linearized conduction terms from the host
            water_input: Precipitation and irrigation
            warmup: Warm-up timestep; run totals are not accumulated

        Returns:
            Surface temperature (°C)

        Raises:
            SurfaceRegistrationError: Unknown surface
        """
        if surface_id not in self.surfaces:
            raise SurfaceRegistrationError(
                f"Surface {surface_id!r} is not registered with the vegetated roof",
                ErrorContext(surface_id=surface_id, timestep=timestep,
                             component="EcoRoofController", operation="calculate_surface_temperature"),
            )

        if timestep == self._solved_key:
            return self._surface_temperature_c

        if self.thermal_state is None:
            self.begin_environment(forcing.outdoor_dry_bulb_c)

        conduction = conduction or ConductionFeedTerms()
        result = self.energy_balance.solve(
            forcing, self.water_balance.state, conduction, self.thermal_state
        )
        moisture = self.water_balance.step(
            result.vapor_flux_plant, result.vapor_flux_soil, water_input, warmup=warmup
        )
        if self.config.properties.update_properties:
            self.last_properties = self.property_updater.update(
                moisture.near_surface, moisture.root_zone, self.water_balance.depths
            )

        self.last_result = result
        self.last_moisture = moisture
        self._solved_key = timestep
        self._surface_temperature_c = result.surface_temperature_c
        self.n_solves += 1

        if self.observers:
            report = self._build_report(timestep, warmup, result, moisture)
            for observer in self.observers:
                observer.on_timestep(report)

        return self._surface_temperature_c

    def _build_report(
        self,
        timestep: TimestepKey,
        warmup: bool,
        result: EnergyBalanceResult,
        moisture: MoistureStepResult,
    ) -> TimestepReport:
        totals = self.water_balance.accumulators
        record = self.material_record
        return TimestepReport(
            timestep=timestep,
            warmup=warmup,
            surface_temperature_c=result.surface_temperature_c,
            plant_temperature_c=result.plant_temperature_c,
            soil_temperature_c=result.soil_temperature_c,
            bare_soil_temperature_c=result.bare_soil_temperature_c,
            sensible_heat_plant=result.sensible_heat_plant,
            latent_heat_plant=result.latent_heat_plant,
            sensible_heat_soil=result.sensible_heat_soil,
            latent_heat_soil=result.latent_heat_soil,
            net_shortwave_soil=result.net_shortwave_soil,
            net_longwave_soil=result.net_longwave_soil,
            conduction=result.conduction,
            vapor_flux_plant=result.vapor_flux_plant,
            vapor_flux_soil=result.vapor_flux_soil,
            near_surface_moisture=moisture.near_surface,
            root_zone_moisture=moisture.root_zone,
            current_precipitation_m=moisture.fluxes.precipitation,
            current_irrigation_m=moisture.fluxes.irrigation,
            current_evapotranspiration_m=moisture.fluxes.evapotranspiration,
            current_runoff_m=moisture.fluxes.runoff,
            cumulative_precipitation_m=totals.precipitation,
            cumulative_irrigation_m=totals.irrigation,
            cumulative_evapotranspiration_m=totals.evapotranspiration,
            cumulative_runoff_m=totals.runoff,
            soil_albedo=record.albedo,
            soil_conductivity=record.conductivity,
            soil_density=record.density,
            soil_specific_heat=record.specific_heat,
            converged=result.converged,
        )

    # =========================================================================
    # Batch driver
    # =========================================================================

    def run_period(
        self,
        forcings: pd.DataFrame,
        conduction: Optional[ConductionFeedTerms] = None,
        warmup_steps: int = 0,
        irrigation_mode: IrrigationMode = IrrigationMode.SCHEDULED,
    ) -> pd.DataFrame:
        """
        Run the model over a forcing table.

        Required columns: outdoor_dry_bulb_c, wind_speed, relative_humidity.
        Optional columns: beam_solar, diffuse_solar, anisotropic_sky_multiplier,
        pressure_pa, sky_temperature_k and ground_temperature_k (default to the
        air temperature), precipitation_m, irrigation_m, and per-row conduction
        terms conduction_constant / conduction_coefficient.

        The first warmup_steps rows are run first as warm-up, then the whole
        table is run from the same starting state with run totals active.

        Args:
            forcings: One row per timestep
            conduction: Conduction terms used where the table has none
            warmup_steps: Number of leading rows used as warm-up
            irrigation_mode: How irrigation_m is applied

        Returns:
            DataFrame of TimestepReport fields, indexed like forcings
        """
        missing = [c for c in REQUIRED_FORCING_COLUMNS if c not in forcings.columns]
        if missing:
            raise ValueError(f"Forcing table missing columns: {missing}")
        if forcings.empty:
            return pd.DataFrame()
        if self.reference_surface is None:
            raise SurfaceRegistrationError(
                "Register a surface before running a period",
                ErrorContext(component="EcoRoofController", operation="run_period"),
            )

        surface_id = self.reference_surface.surface_id
        collector = ReportCollector(include_warmup=False)
        self.add_observer(collector)

        try:
            first_temperature = float(forcings["outdoor_dry_bulb_c"].iloc[0])
            self.begin_environment(first_temperature)

            key = 0
            if warmup_steps > 0:
                self.begin_warmup_day(first_temperature)
                for _, row in forcings.iloc[:warmup_steps].iterrows():
                    key += 1
                    self._run_row(surface_id, key, row, conduction, irrigation_mode, warmup=True)
                self.begin_warmup_day(first_temperature)

            for _, row in forcings.iterrows():
                key += 1
                self._run_row(surface_id, key, row, conduction, irrigation_mode, warmup=False)
        finally:
            self.observers.remove(collector)

        report = collector.to_dataframe().reset_index()
        report.index = forcings.index
        self.logger.info(
            f"Ran {len(forcings)} timesteps ({warmup_steps} warm-up); "
            f"mean surface temperature {report['surface_temperature_c'].mean():.2f}C"
        )
        return report

    def _run_row(
        self,
        surface_id: SurfaceID,
        key: TimestepKey,
        row: pd.Series,
        conduction: Optional[ConductionFeedTerms],
        irrigation_mode: IrrigationMode,
        warmup: bool,
    ) -> float:
        air_k = float(row["outdoor_dry_bulb_c"]) + KELVIN_OFFSET
        forcing = EnvironmentForcing(
            outdoor_dry_bulb_c=float(row["outdoor_dry_bulb_c"]),
            wind_speed=float(row["wind_speed"]),
            relative_humidity=float(row["relative_humidity"]),
            sky_temperature_k=_value(row, "sky_temperature_k", air_k),
            ground_temperature_k=_value(row, "ground_temperature_k", air_k),
            beam_solar=_value(row, "beam_solar", 0.0),
            diffuse_solar=_value(row, "diffuse_solar", 0.0),
            anisotropic_sky_multiplier=_value(row, "anisotropic_sky_multiplier", 1.0),
            pressure_pa=_value(row, "pressure_pa", 101325.0),
        )
        if "conduction_constant" in row.index and "conduction_coefficient" in row.index:
            row_conduction = ConductionFeedTerms(
                constant_part=_value(row, "conduction_constant", 0.0),
                temperature_coefficient=_value(row, "conduction_coefficient", 0.0),
            )
        else:
            row_conduction = conduction
        water_input = WaterInput(
            precipitation_m=_value(row, "precipitation_m", 0.0),
            scheduled_irrigation_m=_value(row, "irrigation_m", 0.0),
            irrigation_mode=irrigation_mode,
        )
        return self.calculate_surface_temperature(
            surface_id, key, forcing, row_conduction, water_input, warmup=warmup
        )

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def get_diagnostic_info(self) -> Dict:
        """Get diagnostic information about the controller and its models"""
        info = {
            'surfaces': list(self.surfaces),
            'calculation_method': self.config.solver.calculation_method.value,
            'moisture_law': self.config.moisture_law.value,
            'n_solves': self.n_solves,
            'surface_temperature_c': self._surface_temperature_c,
            'moisture': self.water_balance.get_diagnostic_info(),
            'soil_properties': self.property_updater.get_properties(),
        }
        if self.energy_balance is not None:
            info['solver'] = self.energy_balance.get_statistics()
        if self.stability is not None:
            info['stability'] = {
                'stable': self.stability.stable,
                'max_stable_minutes': self.stability.max_stable_minutes,
                'recommended_timesteps_per_hour': self.stability.recommended_timesteps_per_hour,
            }
        return info


def _value(row: pd.Series, column: str, default: float) -> float:
    """Float value of an optional column, default when absent or NaN"""
    if column not in row.index:
        return default
    value = row[column]
    if pd.isna(value):
        return default
    return float(value)
