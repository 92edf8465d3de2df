"""
Two-reservoir soil moisture model for the vegetated roof substrate.

The substrate is split into a near-surface layer and a root zone. Each
timestep removes evapotranspiration, adds precipitation and irrigation,
sheds input beyond the infiltration cap as runoff, redistributes moisture
between the layers and finally clamps both layers into the admissible band.
Every millimetre that crosses the substrate boundary is booked to a flux so
that the step closes its water balance.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from ecoroof.core.config import EcoRoofConfig, get_config
from ecoroof.core.constants import (
    MOISTURE_LOWER_BOUND_FACTOR,
    MOISTURE_UPPER_BOUND_FACTOR,
)
from ecoroof.core.types import (
    IrrigationMode,
    LayerDepths,
    MoistureLaw,
    MoistureVWC,
    VegetationProperties,
    WaterDepthM,
    WaterInput,
)
from ecoroof.physics.soil_hydraulics import VanGenuchtenParameters
from ecoroof.physics.vertical_flux import (
    RedistributionLaw,
    SimpleDiffusionLaw,
    VanGenuchtenMualemLaw,
)

logger = logging.getLogger(__name__)


@dataclass
class SoilMoistureState:
    """Moisture of the two substrate layers (m³/m³)"""
    near_surface: MoistureVWC
    root_zone: MoistureVWC
    depths: LayerDepths

    @property
    def storage_m(self) -> WaterDepthM:
        """Water held in the substrate (m)"""
        return self.near_surface * self.depths.top + self.root_zone * self.depths.root

    @property
    def mean_moisture(self) -> MoistureVWC:
        """Depth-weighted mean moisture"""
        return self.storage_m / self.depths.total


@dataclass
class MoistureFluxes:
    """Water crossing the substrate boundary over one timestep (m)"""
    precipitation: WaterDepthM = 0.0
    irrigation: WaterDepthM = 0.0
    soil_evaporation: WaterDepthM = 0.0
    plant_extraction: WaterDepthM = 0.0
    runoff: WaterDepthM = 0.0  # includes bottom drainage
    drainage: WaterDepthM = 0.0
    interlayer_transfer: WaterDepthM = 0.0  # internal, positive downward
    clamp_gain: WaterDepthM = 0.0  # added to lift a layer to its lower bound

    @property
    def evapotranspiration(self) -> WaterDepthM:
        return self.soil_evaporation + self.plant_extraction

    @property
    def total_input(self) -> WaterDepthM:
        return self.precipitation + self.irrigation + self.clamp_gain

    @property
    def total_output(self) -> WaterDepthM:
        return self.evapotranspiration + self.runoff


@dataclass
class MassBalanceState:
    """
    Closure of the substrate water budget across moisture steps (m).

    A step closes when the storage change equals precipitation, irrigation
    and clamp_gain in, minus evapotranspiration and runoff out. Water added
    by the lower-bound clamp keeps a step closed but is not physical, so it
    is tracked on its own.
    """
    tolerance_m: float = 1e-9
    cumulative_error_m: float = 0.0
    max_single_error_m: float = 0.0
    cumulative_clamp_gain_m: float = 0.0
    n_clamped: int = 0
    n_violations: int = 0
    n_timesteps: int = 0

    def record(self, initial_storage: WaterDepthM, final_storage: WaterDepthM, fluxes: MoistureFluxes) -> float:
        """
        Book one moisture step.

        Args:
            initial_storage: Substrate storage before the step (m)
            final_storage: Substrate storage after the step (m)
            fluxes: Boundary fluxes of the step

        Returns:
            Closure error (m), positive when storage grew more than booked
        """
        error = (final_storage - initial_storage) - (fluxes.total_input - fluxes.total_output)

        self.n_timesteps += 1
        self.cumulative_error_m += error
        self.max_single_error_m = max(self.max_single_error_m, abs(error))
        if abs(error) > self.tolerance_m:
            self.n_violations += 1
        if fluxes.clamp_gain > 0.0:
            self.n_clamped += 1
            self.cumulative_clamp_gain_m += fluxes.clamp_gain
        return error

    def is_closed(self, error: float) -> bool:
        return abs(error) <= self.tolerance_m

    def reset(self):
        """Reset error tracking"""
        self.cumulative_error_m = 0.0
        self.max_single_error_m = 0.0
        self.cumulative_clamp_gain_m = 0.0
        self.n_clamped = 0
        self.n_violations = 0
        self.n_timesteps = 0

    def report(self) -> Dict[str, float]:
        """Report mass balance statistics"""
        return {
            'cumulative_error_m': self.cumulative_error_m,
            'max_single_error_m': self.max_single_error_m,
            'cumulative_clamp_gain_m': self.cumulative_clamp_gain_m,
            'n_clamped': self.n_clamped,
            'n_violations': self.n_violations,
            'n_timesteps': self.n_timesteps,
        }


@dataclass
class MoistureStepResult:
    """Outcome of one moisture step"""
    near_surface: MoistureVWC
    root_zone: MoistureVWC
    fluxes: MoistureFluxes
    mass_balance_error: float


@dataclass
class CumulativeAccumulators:
    """Run totals of the water budget (m), frozen during warm-up"""
    precipitation: WaterDepthM = 0.0
    irrigation: WaterDepthM = 0.0
    evapotranspiration: WaterDepthM = 0.0
    runoff: WaterDepthM = 0.0

    def add(self, fluxes: MoistureFluxes) -> None:
        self.precipitation += fluxes.precipitation
        self.irrigation += fluxes.irrigation
        self.evapotranspiration += fluxes.evapotranspiration
        self.runoff += fluxes.runoff

    def reset(self) -> None:
        self.precipitation = 0.0
        self.irrigation = 0.0
        self.evapotranspiration = 0.0
        self.runoff = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            'cumulative_precipitation_m': self.precipitation,
            'cumulative_irrigation_m': self.irrigation,
            'cumulative_evapotranspiration_m': self.evapotranspiration,
            'cumulative_runoff_m': self.runoff,
        }


class EcoRoofWaterBalance:
    """
    Two-layer water balance of the roof substrate.

    Step order:
    1. Soil evaporation from the near-surface layer, plant extraction from
       the root zone
    2. Precipitation and irrigation into the near-surface layer
    3. Input above the infiltration cap and near-surface excess run off
    4. Inter-layer redistribution (and drainage) by the configured law
    5. Both layers clamped into [residual × 1.01, max × 0.9999]; a deficit in
       one layer is first borrowed from the other
    6. Run totals accumulated unless warming up
    """

    def __init__(
        self,
        vegetation: VegetationProperties,
        config: Optional[EcoRoofConfig] = None,
        law: Optional[RedistributionLaw] = None,
    ):
        """
        Initialize the water balance.

        Args:
            vegetation: Static vegetated-layer properties
            config: Configuration (defaults to the global config)
            law: Redistribution law; built from the configuration when omitted
        """
        self.vegetation = vegetation
        self.config = config or get_config()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        moisture_config = self.config.moisture
        self.depths = LayerDepths.from_thickness(
            vegetation.thickness,
            top_depth=moisture_config.top_layer_depth_m,
            thin_soil_threshold=moisture_config.thin_soil_threshold_m,
        )
        self.law = law or create_redistribution_law(vegetation, self.config)

        self.lower_bound = vegetation.residual_moisture * MOISTURE_LOWER_BOUND_FACTOR
        self.upper_bound = vegetation.max_moisture * MOISTURE_UPPER_BOUND_FACTOR

        self.state = self._initial_state()
        self.accumulators = CumulativeAccumulators()
        self.mass_balance = MassBalanceState()
        self.last_fluxes = MoistureFluxes()

    def _initial_state(self) -> SoilMoistureState:
        """Both layers start at the initial moisture"""
        return SoilMoistureState(
            near_surface=self.vegetation.initial_moisture,
            root_zone=self.vegetation.initial_moisture,
            depths=self.depths,
        )

    @property
    def dt_seconds(self) -> float:
        return self.config.timestep_seconds

    def step(
        self,
        vapor_flux_plant: float,
        vapor_flux_soil: float,
        water_input: Optional[WaterInput] = None,
        warmup: bool = False,
    ) -> MoistureStepResult:
        """
        Advance the moisture state by one timestep.

        Args:
            vapor_flux_plant: Plant transpiration rate (m/s of water, >= 0)
            vapor_flux_soil: Soil evaporation rate (m/s of water, >= 0)
            water_input: Precipitation and irrigation for the step
            warmup: Warm-up step; run totals are left untouched

        Returns:
            MoistureStepResult with the updated layers and step fluxes
        """
        water_input = water_input or WaterInput()
        dt = self.dt_seconds
        top, root = self.depths.top, self.depths.root
        max_moisture = self.vegetation.max_moisture

        initial_storage = self.state.storage_m
        near = self.state.near_surface
        root_zone = self.state.root_zone
        fluxes = MoistureFluxes()

        # 1. Evapotranspiration
        fluxes.soil_evaporation = max(vapor_flux_soil, 0.0) * dt
        fluxes.plant_extraction = max(vapor_flux_plant, 0.0) * dt
        near -= fluxes.soil_evaporation / top
        root_zone -= fluxes.plant_extraction / root

        # 2. Precipitation and irrigation
        fluxes.precipitation = max(water_input.precipitation_m, 0.0)
        near += fluxes.precipitation / top

        fluxes.irrigation = self._irrigation_depth(water_input, near)
        near += fluxes.irrigation / top

        # 3. Input cap and near-surface saturation
        input_cap = self.config.moisture.max_input_rate_m_per_hour * self.config.timestep_minutes / 60.0
        total_input = fluxes.precipitation + fluxes.irrigation
        if total_input > input_cap:
            excess = total_input - input_cap
            fluxes.runoff += excess
            near -= excess / top

        if near > max_moisture:
            fluxes.runoff += (near - max_moisture) * top
            near = max_moisture

        # 4. Redistribution
        redistributed = self.law.redistribute(near, root_zone, self.depths, dt)
        near = redistributed.near_surface
        root_zone = redistributed.root_zone
        fluxes.interlayer_transfer = redistributed.interlayer_transfer_m
        fluxes.drainage = redistributed.drainage_m
        fluxes.runoff += redistributed.drainage_m

        # 5. Bounds
        near, root_zone = self._enforce_bounds(near, root_zone, fluxes)

        self.state.near_surface = near
        self.state.root_zone = root_zone
        self.last_fluxes = fluxes

        error = self.mass_balance.record(initial_storage, self.state.storage_m, fluxes)
        if not self.mass_balance.is_closed(error):
            self.logger.warning(
                f"Mass balance error {error:.3e} m: in={fluxes.total_input:.6f} m "
                f"(clamp_gain={fluxes.clamp_gain:.3e}), out={fluxes.total_output:.6f} m"
            )

        # 6. Run totals
        if not warmup:
            self.accumulators.add(fluxes)

        self.logger.debug(
            f"Moisture step: top={near:.4f}, root={root_zone:.4f}, "
            f"ET={fluxes.evapotranspiration:.3e}m, runoff={fluxes.runoff:.3e}m"
        )

        return MoistureStepResult(
            near_surface=near,
            root_zone=root_zone,
            fluxes=fluxes,
            mass_balance_error=error,
        )

    def _irrigation_depth(self, water_input: WaterInput, near_surface: float) -> WaterDepthM:
        """Irrigation applied this step; smart mode only waters a dry top layer"""
        depth = max(water_input.scheduled_irrigation_m, 0.0)
        if water_input.irrigation_mode == IrrigationMode.SCHEDULED:
            return depth
        if water_input.irrigation_mode == IrrigationMode.SMART:
            threshold = water_input.irrigation_threshold * self.vegetation.max_moisture
            return depth if near_surface < threshold else 0.0
        return 0.0

    def _enforce_bounds(self, near: float, root_zone: float, fluxes: MoistureFluxes):
        """
        Clamp both layers into the admissible band.

        Excess above the upper bound runs off. A layer below the lower bound
        borrows from the other layer down to that layer's lower bound; what
        cannot be borrowed is booked as clamp_gain.
        """
        top, root = self.depths.top, self.depths.root
        lo, hi = self.lower_bound, self.upper_bound

        if near > hi:
            fluxes.runoff += (near - hi) * top
            near = hi
        if root_zone > hi:
            fluxes.runoff += (root_zone - hi) * root
            root_zone = hi

        if root_zone < lo:
            needed = (lo - root_zone) * root
            taken = min(needed, max(0.0, (near - lo) * top))
            near -= taken / top
            root_zone = lo
            fluxes.clamp_gain += needed - taken

        if near < lo:
            needed = (lo - near) * top
            taken = min(needed, max(0.0, (root_zone - lo) * root))
            root_zone -= taken / root
            near = lo
            fluxes.clamp_gain += needed - taken

        return near, root_zone

    def reset(self, reset_accumulators: bool = True):
        """Return both layers to the initial moisture"""
        self.state = self._initial_state()
        self.last_fluxes = MoistureFluxes()
        if reset_accumulators:
            self.accumulators.reset()
            self.mass_balance.reset()
        if isinstance(self.law, VanGenuchtenMualemLaw):
            self.law.reset()

    def get_diagnostic_info(self) -> Dict:
        """Get diagnostic information about the moisture model"""
        info = {
            'near_surface': self.state.near_surface,
            'root_zone': self.state.root_zone,
            'top_depth_m': self.depths.top,
            'root_depth_m': self.depths.root,
            'storage_m': self.state.storage_m,
            'law': type(self.law).__name__,
            'mass_balance': self.mass_balance.report(),
        }
        info.update(self.accumulators.to_dict())
        if isinstance(self.law, VanGenuchtenMualemLaw):
            info.update(self.law.summary())
        return info


def create_redistribution_law(
    vegetation: VegetationProperties,
    config: EcoRoofConfig,
) -> RedistributionLaw:
    """Build the redistribution law selected by the configuration"""
    moisture_config = config.moisture
    if config.moisture_law == MoistureLaw.SIMPLE_DIFFUSION:
        return SimpleDiffusionLaw(
            max_moisture=vegetation.max_moisture,
            downward_rate=moisture_config.downward_diffusion_rate,
            upward_rate=moisture_config.upward_diffusion_rate,
        )

    params = VanGenuchtenParameters(
        alpha=moisture_config.vg_alpha,
        n=moisture_config.vg_n,
        theta_r=vegetation.residual_moisture,
        theta_s=vegetation.max_moisture,
        K_sat=moisture_config.saturated_conductivity,
        L=moisture_config.vg_pore_connectivity,
    )
    return VanGenuchtenMualemLaw(
        params,
        min_relative_saturation=moisture_config.min_relative_saturation,
        min_drainage_m_per_hour=moisture_config.min_drainage_m_per_hour,
    )


def create_water_balance(
    vegetation: VegetationProperties,
    config: Optional[EcoRoofConfig] = None,
) -> EcoRoofWaterBalance:
    """Factory function to create a configured water balance"""
    return EcoRoofWaterBalance(vegetation, config)
