"""
Configuration system with validation and environment awareness.
Based on Pydantic Settings for robust configuration management.
"""
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings

from ecoroof.core import constants
from ecoroof.core.types import CalculationMethod, MoistureLaw


class SolverConfig(BaseSettings):
    """Configuration for the surface temperature solver"""

    calculation_method: CalculationMethod = Field(
        CalculationMethod.PLANT_COVERAGE,
        description="Energy balance formulation, fixed for the run",
    )

    # Newton / bisection root finding (plant-coverage formulation)
    newton_tolerance: float = Field(1e-4, gt=0, description="Temperature tolerance (K)")
    max_newton_iterations: int = Field(100, gt=1, description="Iterations before fallback")
    max_bisection_iterations: int = Field(200, gt=0)

    # FASST damped iteration
    fasst_iterations: int = Field(3, ge=1, description="Damped linearized iterations")

    min_wind_speed: float = Field(2.0, ge=0, description="Wind speed floor (m/s)")

    model_config = ConfigDict(env_prefix="ECOROOF_SOLVER_", case_sensitive=False)


class MoistureConfig(BaseSettings):
    """Configuration for the two-layer soil moisture model"""

    moisture_law: Optional[MoistureLaw] = Field(
        None,
        description="Redistribution law; None follows the calculation method",
    )

    # Layer split
    top_layer_depth_m: float = Field(constants.TOP_LAYER_DEPTH, gt=0)
    thin_soil_threshold_m: float = Field(constants.THIN_SOIL_THRESHOLD, gt=0)

    # Simple diffusion rates (1/s)
    downward_diffusion_rate: float = Field(0.00005, ge=0)
    upward_diffusion_rate: float = Field(0.00001, ge=0)

    # Schaap / Van Genuchten-Mualem
    vg_alpha: float = Field(23.0, gt=0, description="Inverse air-entry head (1/m)")
    vg_n: float = Field(1.27, gt=1, description="Pore size distribution index")
    vg_pore_connectivity: float = Field(0.5, description="Mualem pore connectivity")
    saturated_conductivity: float = Field(5.157e-7, gt=0, description="Ksat (m/s)")
    min_drainage_m_per_hour: float = Field(constants.MIN_DRAINAGE_M_PER_HOUR, ge=0)
    min_relative_saturation: float = Field(constants.MIN_RELATIVE_SATURATION, gt=0, lt=1)

    # Input handling
    max_input_rate_m_per_hour: float = Field(constants.MAX_INPUT_RATE_M_PER_HOUR, gt=0)

    # Stability criterion
    check_timestep_stability: bool = Field(True)
    fail_on_unstable_timestep: bool = Field(False)

    model_config = ConfigDict(env_prefix="ECOROOF_MOISTURE_", case_sensitive=False)

    def resolve_law(self, method: CalculationMethod) -> MoistureLaw:
        """Moisture law in effect for a calculation method"""
        if self.moisture_law is not None:
            return self.moisture_law
        if method == CalculationMethod.FASST:
            return MoistureLaw.SIMPLE_DIFFUSION
        return MoistureLaw.VAN_GENUCHTEN_MUALEM


class PropertyUpdateConfig(BaseSettings):
    """Configuration for the soil thermal property updater"""

    update_properties: bool = Field(True, description="Write properties back every step")
    rate_limit_fraction: float = Field(0.20, gt=0, lt=1, description="Max change per reference interval")
    rate_limit_reference_minutes: float = Field(constants.PROPERTY_REFERENCE_MINUTES, gt=0)

    model_config = ConfigDict(env_prefix="ECOROOF_PROPERTIES_", case_sensitive=False)


class LoggingConfig(BaseSettings):
    """Configuration for logging"""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    model_config = ConfigDict(env_prefix="ECOROOF_LOGGING_", case_sensitive=False)


class EcoRoofConfig(BaseSettings):
    """Main configuration for the ecoroof system"""

    project_name: str = "ecoroof"
    timestep_minutes: float = Field(15.0, gt=0, le=60, description="Host timestep length (min)")

    # Component configurations
    solver: SolverConfig = Field(default_factory=SolverConfig)
    moisture: MoistureConfig = Field(default_factory=MoistureConfig)
    properties: PropertyUpdateConfig = Field(default_factory=PropertyUpdateConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        env_prefix="ECOROOF_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_config(self):
        """Cross-field validation"""
        if self.properties.rate_limit_fraction * self.timestep_minutes / self.properties.rate_limit_reference_minutes >= 1.0:
            raise ValueError(
                "Property rate limit band must stay below 100% per timestep; "
                "reduce rate_limit_fraction or timestep_minutes"
            )
        return self

    @property
    def timestep_seconds(self) -> float:
        return self.timestep_minutes * constants.SECONDS_PER_MINUTE

    @property
    def moisture_law(self) -> MoistureLaw:
        return self.moisture.resolve_law(self.solver.calculation_method)

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "EcoRoofConfig":
        """Load configuration from YAML file"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def to_yaml(self, yaml_path: Union[str, Path]):
        """Save configuration to YAML file"""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)

        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)


# USAGE: Environment variables override defaults
# export ECOROOF_SOLVER__CALCULATION_METHOD=fasst
# export ECOROOF_TIMESTEP_MINUTES=10

# Global configuration instance
_config: Optional[EcoRoofConfig] = None


def get_config(config_path: Optional[Path] = None) -> EcoRoofConfig:
    """Get or create configuration instance (singleton pattern)"""
    global _config

    if _config is None:
        if config_path and Path(config_path).exists():
            _config = EcoRoofConfig.from_yaml(config_path)
        else:
            # Try to load from environment
            _config = EcoRoofConfig()

    return _config


def set_config(config: Optional[EcoRoofConfig]):
    """Set configuration (useful for testing)"""
    global _config
    _config = config
