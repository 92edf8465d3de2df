"""
Tests for the roof surface controller and its batch driver.
"""
import numpy as np
import pandas as pd
import pytest

from ecoroof.core.config import EcoRoofConfig
from ecoroof.core.exceptions import StabilityError, SurfaceRegistrationError
from ecoroof.core.types import (
    CalculationMethod,
    ConductionFeedTerms,
    SurfaceGeometry,
    WaterInput,
)
from ecoroof.pipeline import EcoRoofController, ReportCollector


@pytest.fixture
def forcings():
    """A day of hourly weather with an afternoon shower"""
    hours = np.arange(24)
    solar = np.clip(800.0 * np.sin(np.pi * (hours - 6) / 12.0), 0.0, None)
    air = 20.0 + 5.0 * np.sin(np.pi * (hours - 9) / 12.0)
    precipitation = np.where(hours == 15, 0.002, 0.0)
    return pd.DataFrame(
        {
            'outdoor_dry_bulb_c': air,
            'wind_speed': 3.0,
            'relative_humidity': 55.0,
            'sky_temperature_k': air + 273.15 - 10.0,
            'beam_solar': solar,
            'precipitation_m': precipitation,
        },
        index=pd.RangeIndex(100, 124),
    )


@pytest.fixture
def controller(vegetation, plant_coverage_config, geometry):
    controller = EcoRoofController(vegetation, plant_coverage_config)
    controller.register_surface(geometry)
    return controller


class TestSurfaceRegistration:

    def test_first_surface_is_reference(self, controller, geometry):
        controller.register_surface(SurfaceGeometry("roof_east", area=50.0))

        assert controller.reference_surface == geometry
        assert list(controller.surfaces) == ["roof", "roof_east"]
        assert controller.energy_balance is not None

    def test_duplicate_surface_rejected(self, controller, geometry):
        with pytest.raises(SurfaceRegistrationError):
            controller.register_surface(geometry)

    def test_unknown_surface_rejected(self, controller, summer_forcing):
        with pytest.raises(SurfaceRegistrationError) as excinfo:
            controller.calculate_surface_temperature("garage", 1, summer_forcing)
        assert excinfo.value.context.surface_id == "garage"

    def test_unstable_timestep_warns(self, controller):
        # 15 minute steps on 0.1 m of soil exceed the stable limit
        assert controller.stability is not None
        assert not controller.stability.stable

    def test_unstable_timestep_can_fail(self, vegetation, geometry):
        config = EcoRoofConfig(
            solver={'calculation_method': CalculationMethod.PLANT_COVERAGE},
            moisture={'fail_on_unstable_timestep': True},
        )
        controller = EcoRoofController(vegetation, config)
        with pytest.raises(StabilityError):
            controller.register_surface(geometry)

    def test_simple_diffusion_skips_stability_check(self, vegetation, fasst_config, geometry):
        controller = EcoRoofController(vegetation, fasst_config)
        controller.register_surface(geometry)
        assert controller.stability is None


class TestTimestep:

    def test_solved_once_per_timestep(self, controller, summer_forcing):
        controller.register_surface(SurfaceGeometry("roof_east", area=50.0))

        t1 = controller.calculate_surface_temperature("roof", 1, summer_forcing)
        t2 = controller.calculate_surface_temperature("roof_east", 1, summer_forcing)
        t3 = controller.calculate_surface_temperature("roof", 1, summer_forcing)

        assert t1 == t2 == t3
        assert controller.n_solves == 1
        assert controller.water_balance.mass_balance.n_timesteps == 1

        controller.calculate_surface_temperature("roof_east", 2, summer_forcing)
        assert controller.n_solves == 2

    def test_moisture_consumes_vapor_fluxes(self, controller, summer_forcing):
        controller.calculate_surface_temperature("roof", 1, summer_forcing)

        result = controller.last_result
        fluxes = controller.last_moisture.fluxes
        dt = controller.config.timestep_seconds
        assert fluxes.soil_evaporation == pytest.approx(result.vapor_flux_soil * dt)
        assert fluxes.plant_extraction == pytest.approx(result.vapor_flux_plant * dt)

    def test_properties_written_back(self, controller, summer_forcing, vegetation):
        controller.calculate_surface_temperature("roof", 1, summer_forcing)

        assert controller.last_properties is not None
        assert controller.material_record.density != vegetation.dry_density
        assert controller.material_record.density == controller.last_properties.density

    def test_water_input_reaches_moisture_step(self, controller, summer_forcing):
        controller.calculate_surface_temperature(
            "roof", 1, summer_forcing, water_input=WaterInput(precipitation_m=0.001)
        )
        assert controller.water_balance.accumulators.precipitation == pytest.approx(0.001)

    def test_warmup_step_leaves_totals(self, controller, summer_forcing):
        controller.calculate_surface_temperature(
            "roof", 1, summer_forcing, water_input=WaterInput(precipitation_m=0.001), warmup=True
        )
        assert controller.water_balance.accumulators.precipitation == 0.0

    def test_begin_environment_resets(self, controller, summer_forcing, vegetation):
        controller.calculate_surface_temperature("roof", 1, summer_forcing, water_input=WaterInput(0.001))
        controller.begin_environment(15.0)

        assert controller.thermal_state.soil_k == pytest.approx(288.15)
        assert controller.water_balance.state.near_surface == vegetation.initial_moisture
        assert controller.water_balance.accumulators.precipitation == 0.0
        assert controller.material_record.density == vegetation.dry_density

        # The same key is solved again after a reset
        controller.calculate_surface_temperature("roof", 1, summer_forcing)
        assert controller.n_solves == 2

    def test_begin_warmup_day_keeps_totals(self, controller, summer_forcing, vegetation):
        controller.calculate_surface_temperature("roof", 1, summer_forcing, water_input=WaterInput(0.001))
        controller.begin_warmup_day(20.0)

        assert controller.water_balance.state.near_surface == vegetation.initial_moisture
        assert controller.material_record.albedo == pytest.approx(vegetation.dry_albedo)
        assert controller.water_balance.accumulators.precipitation == pytest.approx(0.001)

    def test_observers_receive_reports(self, controller, summer_forcing):
        collector = ReportCollector(include_warmup=True)
        controller.add_observer(collector)

        controller.calculate_surface_temperature("roof", 1, summer_forcing, warmup=True)
        controller.calculate_surface_temperature("roof", 1, summer_forcing)
        controller.calculate_surface_temperature("roof", 2, summer_forcing)

        assert len(collector.reports) == 2
        assert collector.reports[0].warmup
        df = collector.to_dataframe()
        assert list(df.index) == [1, 2]
        assert 'cumulative_runoff_m' in df.columns


class TestRunPeriod:

    def test_report_frame(self, controller, forcings):
        report = controller.run_period(forcings)

        assert len(report) == len(forcings)
        assert report.index.equals(forcings.index)
        assert np.isfinite(report['surface_temperature_c']).all()
        assert report['cumulative_precipitation_m'].iloc[-1] == pytest.approx(0.002)
        assert report['cumulative_evapotranspiration_m'].is_monotonic_increasing
        assert not report['warmup'].any()

    def test_warmup_does_not_change_results(self, vegetation, plant_coverage_config, geometry, forcings):
        cold = EcoRoofController(vegetation, plant_coverage_config)
        cold.register_surface(geometry)
        warm = EcoRoofController(vegetation, plant_coverage_config)
        warm.register_surface(geometry)

        plain = cold.run_period(forcings)
        warmed = warm.run_period(forcings, warmup_steps=6)

        # Warm-up restarts from the initial moisture and outdoor temperature
        np.testing.assert_allclose(warmed['surface_temperature_c'], plain['surface_temperature_c'])
        assert warmed['cumulative_precipitation_m'].iloc[-1] == pytest.approx(0.002)

    def test_per_row_conduction(self, controller, forcings):
        coupled = forcings.assign(conduction_constant=400.0 * 20.0, conduction_coefficient=400.0)
        report = controller.run_period(coupled)

        # A stiff construction at 20 °C pins the surface
        assert (report['surface_temperature_c'] - 20.0).abs().max() < 5.0

    def test_fixed_conduction(self, vegetation, plant_coverage_config, geometry, forcings):
        free = EcoRoofController(vegetation, plant_coverage_config)
        free.register_surface(geometry)
        pinned = EcoRoofController(vegetation, plant_coverage_config)
        pinned.register_surface(geometry)

        free_report = free.run_period(forcings)
        pinned_report = pinned.run_period(
            forcings, conduction=ConductionFeedTerms(constant_part=400.0 * 20.0, temperature_coefficient=400.0)
        )

        free_spread = (free_report['surface_temperature_c'] - 20.0).abs().max()
        pinned_spread = (pinned_report['surface_temperature_c'] - 20.0).abs().max()
        assert pinned_spread < free_spread

    def test_fasst_period(self, vegetation, fasst_config, geometry, forcings):
        controller = EcoRoofController(vegetation, fasst_config)
        controller.register_surface(geometry)

        report = controller.run_period(forcings)

        assert np.isfinite(report['surface_temperature_c']).all()
        assert controller.get_diagnostic_info()['moisture']['law'] == 'SimpleDiffusionLaw'

    def test_missing_columns(self, controller, forcings):
        with pytest.raises(ValueError, match="wind_speed"):
            controller.run_period(forcings.drop(columns=['wind_speed']))

    def test_requires_registered_surface(self, vegetation, plant_coverage_config, forcings):
        controller = EcoRoofController(vegetation, plant_coverage_config)
        with pytest.raises(SurfaceRegistrationError):
            controller.run_period(forcings)

    def test_collector_removed_afterwards(self, controller, forcings):
        controller.run_period(forcings)
        assert controller.observers == []

    def test_diagnostic_info(self, controller, forcings):
        controller.run_period(forcings.iloc[:4])
        info = controller.get_diagnostic_info()

        assert info['n_solves'] == 4
        assert info['calculation_method'] == 'plant_coverage'
        assert info['moisture_law'] == 'van_genuchten_mualem'
        assert info['surfaces'] == ['roof']
        assert info['stability']['recommended_timesteps_per_hour'] == 16
        assert set(info['solver']) == {'plant', 'soil', 'bare_soil'}
