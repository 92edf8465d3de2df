"""
Type definitions and data records for the ecoroof system.
Provides strong typing throughout the codebase.
"""
import math
from dataclasses import dataclass
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import TypeAlias

from ecoroof.core.constants import (
    GROUND_ROUGHNESS_LENGTH, KELVIN_OFFSET, THIN_SOIL_THRESHOLD, TOP_LAYER_DEPTH
)
from ecoroof.core.exceptions import ErrorContext, ParameterError


# Type aliases for clarity
SurfaceID: TypeAlias = str
TimestepKey: TypeAlias = int
TemperatureK: TypeAlias = float
TemperatureC: TypeAlias = float
MoistureVWC: TypeAlias = float  # m³/m³
WaterDepthM: TypeAlias = float  # m of water
FluxWm2: TypeAlias = float  # W/m²


class CalculationMethod(str, Enum):
    """Energy balance formulation, fixed for a run"""
    FASST = "fasst"  # lumped foliage/ground, damped fixed-iteration solve
    PLANT_COVERAGE = "plant_coverage"  # plant, covered soil and bare soil solves


class MoistureLaw(str, Enum):
    """Inter-layer moisture redistribution law"""
    SIMPLE_DIFFUSION = "simple_diffusion"
    VAN_GENUCHTEN_MUALEM = "van_genuchten_mualem"


class IrrigationMode(str, Enum):
    """How scheduled irrigation is applied"""
    NONE = "none"
    SCHEDULED = "scheduled"  # apply scheduled depth unconditionally
    SMART = "smart"  # apply only when the near-surface layer is dry


class Roughness(str, Enum):
    """Exterior surface roughness class"""
    VERY_ROUGH = "very_rough"
    ROUGH = "rough"
    MEDIUM_ROUGH = "medium_rough"
    MEDIUM_SMOOTH = "medium_smooth"
    SMOOTH = "smooth"
    VERY_SMOOTH = "very_smooth"

    @property
    def ground_roughness_length(self) -> float:
        """Bare-ground roughness length (m)"""
        return GROUND_ROUGHNESS_LENGTH[self.value]


@dataclass(frozen=True)
class EnvironmentForcing:
    """Outdoor conditions at roof height for one timestep"""
    outdoor_dry_bulb_c: TemperatureC
    wind_speed: float  # m/s
    relative_humidity: float  # %
    sky_temperature_k: TemperatureK
    ground_temperature_k: TemperatureK
    beam_solar: FluxWm2 = 0.0
    diffuse_solar: FluxWm2 = 0.0
    anisotropic_sky_multiplier: float = 1.0
    pressure_pa: float = 101325.0

    @property
    def outdoor_dry_bulb_k(self) -> TemperatureK:
        return self.outdoor_dry_bulb_c + KELVIN_OFFSET

    @property
    def incident_shortwave(self) -> FluxWm2:
        """Total shortwave incident on the roof (W/m²)"""
        return self.beam_solar + self.anisotropic_sky_multiplier * self.diffuse_solar


@dataclass(frozen=True)
class SurfaceGeometry:
    """Geometry of a roof surface sharing the vegetated construction"""
    surface_id: SurfaceID
    area: float  # m²
    view_factor_sky: float = 1.0
    view_factor_ground: float = 0.0

    @property
    def length(self) -> float:
        """Characteristic length, side of an equivalent square (m)"""
        return math.sqrt(max(self.area, 0.0))


@dataclass(frozen=True)
class ConductionFeedTerms:
    """
    Linearized conduction into the construction supplied by the host solver.

    Net conduction away from the soil surface is
        Q_cond = -constant_part + temperature_coefficient * T_surface_c
    """
    constant_part: float = 0.0  # W/m²
    temperature_coefficient: float = 0.0  # W/m²/K

    def flux(self, surface_temperature_c: TemperatureC) -> FluxWm2:
        """Conduction flux for a surface temperature in Celsius"""
        return -self.constant_part + self.temperature_coefficient * surface_temperature_c

    @classmethod
    def from_response_factors(
        cls,
        ctf_cross: float,
        ctf_inside: float,
        ctf_outside: float,
        inside_convection_coefficient: float,
        outside_history_term: float,
        inside_history_term: float,
        inside_absorbed_flux: float,
        zone_air_temperature_c: TemperatureC,
        inside_surface_temperature_c: TemperatureC,
    ) -> "ConductionFeedTerms":
        """
        Derive the feed terms from conduction transfer function coefficients.

        Args:
            ctf_cross: Current cross CTF coefficient
            ctf_inside: Current inside CTF coefficient
            ctf_outside: Current outside CTF coefficient
            inside_convection_coefficient: Inside convective coefficient (W/m²/K)
            outside_history_term: Constant outside part from CTF history (W/m²)
            inside_history_term: Constant inside part from CTF history (W/m²)
            inside_absorbed_flux: Radiant and source gains absorbed at the
                inside face (W/m²)
            zone_air_temperature_c: Mean zone air temperature
            inside_surface_temperature_c: Inside face temperature of the
                previous iteration

        Returns:
            ConductionFeedTerms
        """
        if ctf_cross > 0.01:
            f1 = ctf_cross / (ctf_inside + inside_convection_coefficient)
            constant_part = -outside_history_term + f1 * (
                inside_history_term
                + inside_absorbed_flux
                + inside_convection_coefficient * zone_air_temperature_c
            )
        else:
            f1 = 0.0
            constant_part = -outside_history_term + ctf_cross * inside_surface_temperature_c

        temperature_coefficient = ctf_outside - f1 * ctf_cross
        return cls(constant_part=constant_part, temperature_coefficient=temperature_coefficient)


@dataclass(frozen=True)
class WaterInput:
    """Precipitation and irrigation depths over one timestep (m)"""
    precipitation_m: WaterDepthM = 0.0
    scheduled_irrigation_m: WaterDepthM = 0.0
    irrigation_mode: IrrigationMode = IrrigationMode.NONE
    irrigation_threshold: float = 0.4  # fraction of max moisture (smart mode)


@dataclass
class SurfaceThermalState:
    """Temperatures carried between timesteps as Newton initial guesses (K)"""
    plant_k: TemperatureK
    soil_k: TemperatureK
    bare_soil_k: TemperatureK

    @classmethod
    def at_outdoor(cls, outdoor_dry_bulb_c: TemperatureC) -> "SurfaceThermalState":
        t = outdoor_dry_bulb_c + KELVIN_OFFSET
        return cls(plant_k=t, soil_k=t, bare_soil_k=t)

    def reset(self, outdoor_dry_bulb_c: TemperatureC) -> None:
        t = outdoor_dry_bulb_c + KELVIN_OFFSET
        self.plant_k = t
        self.soil_k = t
        self.bare_soil_k = t

    def is_finite(self) -> bool:
        return all(math.isfinite(t) for t in (self.plant_k, self.soil_k, self.bare_soil_k))


@dataclass
class MaterialRecord:
    """
    Mutable soil-layer record shared with the host conduction solver.

    Written back after every thermal property update.
    """
    conductivity: float  # W/m/K
    density: float  # kg/m³
    specific_heat: float  # J/kg/K
    solar_absorptance: float
    thickness: float  # m

    @property
    def albedo(self) -> float:
        return 1.0 - self.solar_absorptance


class VegetationProperties(BaseModel):
    """
    Static properties of the vegetated roof layer, read once at setup.

    Moisture contents must satisfy residual <= initial <= field capacity <= max.
    The residual moisture doubles as the wilting point of the stomatal
    moisture factor.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field("EcoRoofSoil", description="Material name")

    # Plants
    height: float = Field(0.2, gt=0, description="Plant height (m)")
    leaf_area_index: float = Field(1.0, gt=0, description="Leaf area index")
    leaf_reflectivity: float = Field(0.22, ge=0, le=1.0, description="Plant albedo")
    leaf_emissivity: float = Field(0.95, gt=0, le=1.0)
    min_stomatal_resistance: float = Field(180.0, gt=0, description="s/m")
    plant_coverage: float = Field(1.0, ge=0.0, le=1.0, description="Fraction of soil covered by plants")
    shortwave_extinction: float = Field(0.5, gt=0, description="Canopy SW extinction coefficient")
    longwave_extinction: float = Field(0.5, gt=0, description="Canopy LW extinction coefficient")

    # Soil radiative properties
    soil_thermal_absorptance: float = Field(0.9, gt=0, le=1.0, description="Soil emissivity")
    soil_solar_absorptance: float = Field(0.7, gt=0, lt=1.0, description="Dry soil solar absorptance")
    roughness: Roughness = Roughness.MEDIUM_ROUGH

    # Soil moisture
    max_moisture: float = Field(0.3, gt=0, lt=1.0, description="Saturation moisture (m³/m³)")
    residual_moisture: float = Field(0.01, ge=0, lt=1.0, description="Residual moisture (m³/m³)")
    initial_moisture: float = Field(0.1, gt=0, lt=1.0, description="Initial moisture (m³/m³)")
    field_capacity: float = Field(0.2, gt=0, lt=1.0, description="Field capacity (m³/m³)")

    # Soil thermal properties (dry)
    thickness: float = Field(0.1, gt=0, description="Soil layer thickness (m)")
    dry_conductivity: float = Field(0.35, gt=0, description="W/m/K")
    dry_density: float = Field(1100.0, gt=0, description="kg/m³")
    dry_specific_heat: float = Field(1200.0, gt=0, description="J/kg/K")

    @model_validator(mode="after")
    def validate_moisture_ordering(self):
        """Moisture contents must be ordered residual <= initial <= fc <= max"""
        ordered = (
            self.residual_moisture
            <= self.initial_moisture
            <= self.field_capacity
            <= self.max_moisture
        )
        if not ordered:
            raise ParameterError(
                "Moisture contents must satisfy residual <= initial <= "
                "field_capacity <= max "
                f"(got {self.residual_moisture}, {self.initial_moisture}, "
                f"{self.field_capacity}, {self.max_moisture})",
                ErrorContext(component="VegetationProperties", operation="validate"),
            )
        if self.residual_moisture >= self.max_moisture:
            raise ParameterError(
                "Residual moisture must be below max moisture",
                ErrorContext(component="VegetationProperties", operation="validate"),
            )
        return self

    @property
    def dry_albedo(self) -> float:
        return 1.0 - self.soil_solar_absorptance

    def to_material_record(self) -> MaterialRecord:
        """Material record initialized to the dry soil values"""
        return MaterialRecord(
            conductivity=self.dry_conductivity,
            density=self.dry_density,
            specific_heat=self.dry_specific_heat,
            solar_absorptance=self.soil_solar_absorptance,
            thickness=self.thickness,
        )


@dataclass(frozen=True)
class LayerDepths:
    """Near-surface / root-zone split of the soil layer (m)"""
    top: float
    root: float

    @property
    def total(self) -> float:
        return self.top + self.root

    @classmethod
    def from_thickness(
        cls,
        thickness: float,
        top_depth: float = TOP_LAYER_DEPTH,
        thin_soil_threshold: float = THIN_SOIL_THRESHOLD,
    ) -> "LayerDepths":
        """Top layer is fixed unless the soil is thin, then half the soil"""
        top = top_depth if thickness > thin_soil_threshold else 0.5 * thickness
        return cls(top=top, root=thickness - top)


def kelvin_to_celsius(t_k: TemperatureK) -> TemperatureC:
    return t_k - KELVIN_OFFSET


def celsius_to_kelvin(t_c: TemperatureC) -> TemperatureK:
    return t_c + KELVIN_OFFSET
