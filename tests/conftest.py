"""Shared fixtures for the ecoroof test suite."""
import pytest

from ecoroof.core.config import EcoRoofConfig, set_config
from ecoroof.core.types import (
    CalculationMethod,
    EnvironmentForcing,
    SurfaceGeometry,
    VegetationProperties,
)


@pytest.fixture(autouse=True)
def reset_global_config():
    """Each test starts without a cached global configuration"""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def vegetation():
    """Default vegetated layer, initial moisture at field capacity"""
    return VegetationProperties(initial_moisture=0.2)


@pytest.fixture
def geometry():
    return SurfaceGeometry(surface_id="roof", area=100.0)


@pytest.fixture
def plant_coverage_config():
    return EcoRoofConfig(solver={'calculation_method': CalculationMethod.PLANT_COVERAGE})


@pytest.fixture
def fasst_config():
    return EcoRoofConfig(solver={'calculation_method': CalculationMethod.FASST})


@pytest.fixture
def summer_forcing():
    """Sunny, mild afternoon with sky at air temperature"""
    return EnvironmentForcing(
        outdoor_dry_bulb_c=20.0,
        wind_speed=2.0,
        relative_humidity=50.0,
        sky_temperature_k=293.15,
        ground_temperature_k=293.15,
        beam_solar=500.0,
    )


@pytest.fixture
def night_forcing():
    """Calm, clear summer night"""
    return EnvironmentForcing(
        outdoor_dry_bulb_c=20.0,
        wind_speed=0.5,
        relative_humidity=80.0,
        sky_temperature_k=278.15,
        ground_temperature_k=293.15,
    )
