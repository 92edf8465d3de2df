"""
Tests for the plant-coverage and FASST surface energy balances.
"""
import math

import pytest

from ecoroof.core.config import EcoRoofConfig
from ecoroof.core.types import (
    CalculationMethod,
    ConductionFeedTerms,
    EnvironmentForcing,
    LayerDepths,
    SurfaceGeometry,
    SurfaceThermalState,
    VegetationProperties,
)
from ecoroof.physics.energy_balance import create_energy_balance
from ecoroof.physics.fasst import (
    FasstEnergyBalance,
    canopy_aerodynamics,
    stability_factor,
)
from ecoroof.physics.plant_coverage import PlantCoverageEnergyBalance
from ecoroof.physics.water_balance import EcoRoofWaterBalance, SoilMoistureState


def _moisture(value=0.2):
    return SoilMoistureState(near_surface=value, root_zone=value, depths=LayerDepths(top=0.05, root=0.05))


def _finite(result):
    return all(math.isfinite(v) for v in result.to_dict().values())


class TestPlantCoverageEnergyBalance:
    """Three-surface balance weighted by plant coverage"""

    @pytest.fixture
    def sparse_canopy(self):
        """Half-covered roof, LAI 0.2, substrate at field capacity"""
        return VegetationProperties(leaf_area_index=0.2, plant_coverage=0.5, initial_moisture=0.2)

    def _step(self, vegetation, forcing, conduction):
        model = PlantCoverageEnergyBalance(vegetation, SurfaceGeometry("roof", area=1.0))
        water_balance = EcoRoofWaterBalance(vegetation, EcoRoofConfig())
        state = SurfaceThermalState.at_outdoor(20.0)

        result = model.solve(forcing, water_balance.state, conduction, state)
        moisture = water_balance.step(result.vapor_flux_plant, result.vapor_flux_soil)
        return result, state, moisture

    def _assert_moisture_in_range(self, vegetation, moisture):
        for value in (moisture.near_surface, moisture.root_zone):
            assert vegetation.residual_moisture <= value <= vegetation.max_moisture

    def test_sparse_canopy_single_step(self, sparse_canopy, summer_forcing):
        result, state, moisture = self._step(sparse_canopy, summer_forcing, ConductionFeedTerms())

        assert _finite(result)
        assert state.is_finite()
        assert set(result.root_finds) == {'plant', 'soil', 'bare_soil'}
        assert abs(result.plant_temperature_c - 20.0) < 2.0
        # Without a construction to conduct into, sunlit soil runs warm
        assert result.bare_soil_temperature_c > 20.0
        self._assert_moisture_in_range(sparse_canopy, moisture)

    def test_sparse_canopy_over_construction_at_air_temperature(self, sparse_canopy, summer_forcing):
        conduction = ConductionFeedTerms(constant_part=400.0 * 20.0, temperature_coefficient=400.0)

        result, state, moisture = self._step(sparse_canopy, summer_forcing, conduction)

        assert _finite(result)
        assert result.converged
        assert abs(result.plant_temperature_c - 20.0) < 2.0
        assert abs(result.surface_temperature_c - 20.0) < 2.0
        assert result.surface_temperature_c == pytest.approx(
            0.5 * result.soil_temperature_c + 0.5 * result.bare_soil_temperature_c
        )
        self._assert_moisture_in_range(sparse_canopy, moisture)

    def test_bare_roof_reports_no_plant(self, summer_forcing):
        vegetation = VegetationProperties(plant_coverage=0.0, initial_moisture=0.2)
        model = PlantCoverageEnergyBalance(vegetation, SurfaceGeometry("roof", area=100.0))
        state = SurfaceThermalState.at_outdoor(20.0)

        result = model.solve(summer_forcing, _moisture(), ConductionFeedTerms(), state)

        assert set(result.root_finds) == {'bare_soil'}
        assert result.plant_temperature_c == 0.0
        assert result.soil_temperature_c == 0.0
        assert result.vapor_flux_plant == 0.0
        assert result.latent_heat_plant == 0.0
        assert result.surface_temperature_c == pytest.approx(result.bare_soil_temperature_c)
        # Sunlit bare soil without conduction heats above the air
        assert result.surface_temperature_c > 20.0

    def test_full_cover_reports_no_bare_soil(self, vegetation, geometry, summer_forcing):
        model = PlantCoverageEnergyBalance(vegetation, geometry)
        state = SurfaceThermalState.at_outdoor(20.0)

        result = model.solve(summer_forcing, _moisture(), ConductionFeedTerms(), state)

        assert set(result.root_finds) == {'plant', 'soil'}
        assert result.bare_soil_temperature_c == 0.0
        assert result.surface_temperature_c == pytest.approx(result.soil_temperature_c)
        assert result.vapor_flux_plant > 0.0
        assert _finite(result)

    def test_clear_night_cools_below_air(self, vegetation, geometry, night_forcing):
        model = PlantCoverageEnergyBalance(vegetation, geometry)
        state = SurfaceThermalState.at_outdoor(20.0)

        result = model.solve(night_forcing, _moisture(), ConductionFeedTerms(), state)

        assert result.plant_temperature_c < 20.0
        assert result.surface_temperature_c < 20.0

    def test_more_sun_warms_bare_soil(self):
        vegetation = VegetationProperties(plant_coverage=0.0, initial_moisture=0.2)
        model = PlantCoverageEnergyBalance(vegetation, SurfaceGeometry("roof", area=100.0))
        temps = []
        for solar in (0.0, 300.0, 800.0):
            forcing = EnvironmentForcing(20.0, 2.0, 50.0, 293.15, 293.15, beam_solar=solar)
            result = model.solve(forcing, _moisture(), ConductionFeedTerms(), SurfaceThermalState.at_outdoor(20.0))
            temps.append(result.surface_temperature_c)

        assert temps[0] < temps[1] < temps[2]

    def test_state_updated_in_place(self, vegetation, geometry, summer_forcing):
        model = PlantCoverageEnergyBalance(vegetation, geometry)
        state = SurfaceThermalState.at_outdoor(20.0)

        result = model.solve(summer_forcing, _moisture(), ConductionFeedTerms(), state)

        assert state.plant_k == pytest.approx(result.plant_temperature_c + 273.15)
        assert state.soil_k == pytest.approx(result.soil_temperature_c + 273.15)

    def test_statistics_and_reset(self, vegetation, geometry, summer_forcing):
        model = PlantCoverageEnergyBalance(vegetation, geometry)
        model.solve(summer_forcing, _moisture(), ConductionFeedTerms(), SurfaceThermalState.at_outdoor(20.0))

        stats = model.get_statistics()
        assert stats['plant']['n_solves'] == 1
        assert stats['soil']['n_solves'] == 1
        assert stats['bare_soil'] == {}

        model.reset()
        assert model.get_statistics()['plant'] == {}


class TestFasstEnergyBalance:
    """Lumped foliage/ground balance"""

    @pytest.fixture
    def model(self, vegetation, geometry):
        return FasstEnergyBalance(vegetation, geometry, vegetation.to_material_record())

    def test_canopy_aerodynamics(self):
        canopy = canopy_aerodynamics(0.2, 1.0, 2.0)

        assert canopy.cover == pytest.approx(0.9 - 0.7 * math.exp(-0.75))
        assert canopy.roughness_length == pytest.approx(0.131 * 0.2 ** 0.997)
        assert canopy.bulk_transfer > 0.01

    def test_short_plants_use_minimum_roughness(self):
        assert canopy_aerodynamics(0.05, 1.0, 2.0).roughness_length == 0.02

    def test_stability_factor(self):
        assert stability_factor(0.0) == pytest.approx(1.0)
        assert stability_factor(-0.5) < 1.0
        # Stable side capped at Rib = 0.19
        assert stability_factor(5.0) == pytest.approx(stability_factor(0.19))

    def test_summer_solve(self, model, summer_forcing):
        state = SurfaceThermalState.at_outdoor(20.0)
        result = model.solve(summer_forcing, _moisture(), ConductionFeedTerms(), state)

        assert _finite(result)
        assert result.converged
        assert -10.0 < result.surface_temperature_c < 70.0
        assert -10.0 < result.plant_temperature_c < 70.0
        assert state.bare_soil_k == state.soil_k
        assert result.vapor_flux_plant >= 0.0
        assert result.vapor_flux_soil >= 0.0

    def test_repeated_solves_stay_bounded(self, model, summer_forcing):
        state = SurfaceThermalState.at_outdoor(20.0)
        for _ in range(50):
            result = model.solve(summer_forcing, _moisture(), ConductionFeedTerms(), state)

        assert state.is_finite()
        assert -10.0 < result.surface_temperature_c < 70.0
        assert model.get_statistics()['n_solves'] == 50

        model.reset()
        assert model.get_statistics()['n_solves'] == 0

    def test_ground_albedo_read_from_record(self, vegetation, geometry):
        forcing = EnvironmentForcing(20.0, 2.0, 50.0, 293.15, 293.15, beam_solar=800.0)
        dark = vegetation.to_material_record()
        dark.solar_absorptance = 0.95
        bright = vegetation.to_material_record()
        bright.solar_absorptance = 0.3

        t_dark = FasstEnergyBalance(vegetation, geometry, dark).solve(
            forcing, _moisture(), ConductionFeedTerms(), SurfaceThermalState.at_outdoor(20.0)
        ).surface_temperature_c
        t_bright = FasstEnergyBalance(vegetation, geometry, bright).solve(
            forcing, _moisture(), ConductionFeedTerms(), SurfaceThermalState.at_outdoor(20.0)
        ).surface_temperature_c

        assert t_dark > t_bright


class TestCreateEnergyBalance:

    def test_factory_selects_formulation(self, vegetation, geometry):
        fasst = create_energy_balance(
            EcoRoofConfig(solver={'calculation_method': CalculationMethod.FASST}), vegetation, geometry
        )
        plant = create_energy_balance(
            EcoRoofConfig(solver={'calculation_method': CalculationMethod.PLANT_COVERAGE}), vegetation, geometry
        )

        assert isinstance(fasst, FasstEnergyBalance)
        assert isinstance(plant, PlantCoverageEnergyBalance)

    def test_fasst_shares_material_record(self, vegetation, geometry):
        record = vegetation.to_material_record()
        model = create_energy_balance(
            EcoRoofConfig(solver={'calculation_method': CalculationMethod.FASST}), vegetation, geometry, record
        )
        assert model.material is record
