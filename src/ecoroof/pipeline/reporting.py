"""
Per-timestep report records for the vegetated roof.

Observers registered with the controller receive one TimestepReport per
solved timestep. ReportCollector keeps them in memory and turns them into a
DataFrame.
"""
import logging
from dataclasses import asdict, dataclass
from typing import List, Protocol

import pandas as pd

from ecoroof.core.types import TimestepKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimestepReport:
    """Everything reported for one solved timestep"""
    timestep: TimestepKey
    warmup: bool

    # Temperatures (°C)
    surface_temperature_c: float
    plant_temperature_c: float
    soil_temperature_c: float
    bare_soil_temperature_c: float

    # Energy fluxes (W/m², leaving the surface unless noted)
    sensible_heat_plant: float
    latent_heat_plant: float
    sensible_heat_soil: float
    latent_heat_soil: float
    net_shortwave_soil: float
    net_longwave_soil: float
    conduction: float

    # Moisture
    vapor_flux_plant: float  # m/s
    vapor_flux_soil: float  # m/s
    near_surface_moisture: float
    root_zone_moisture: float
    current_precipitation_m: float
    current_irrigation_m: float
    current_evapotranspiration_m: float
    current_runoff_m: float
    cumulative_precipitation_m: float
    cumulative_irrigation_m: float
    cumulative_evapotranspiration_m: float
    cumulative_runoff_m: float

    # Soil thermal properties
    soil_albedo: float
    soil_conductivity: float
    soil_density: float
    soil_specific_heat: float

    converged: bool = True


class ReportObserver(Protocol):
    """Receives a report for every solved timestep"""

    def on_timestep(self, report: TimestepReport) -> None:
        ...


class ReportCollector:
    """Keeps every report in memory"""

    def __init__(self, include_warmup: bool = False):
        self.include_warmup = include_warmup
        self.reports: List[TimestepReport] = []

    def on_timestep(self, report: TimestepReport) -> None:
        if report.warmup and not self.include_warmup:
            return
        self.reports.append(report)

    def to_dataframe(self) -> pd.DataFrame:
        """Reports as a DataFrame indexed by timestep"""
        if not self.reports:
            return pd.DataFrame()
        df = pd.DataFrame([asdict(r) for r in self.reports])
        return df.set_index('timestep')

    def clear(self):
        self.reports = []
