"""
Tests for configuration loading, validation and the core data records.
"""
import pytest
from pydantic import ValidationError

from ecoroof.core.config import EcoRoofConfig, get_config, set_config
from ecoroof.core.exceptions import ErrorContext, ParameterError, StabilityError
from ecoroof.core.types import (
    CalculationMethod,
    ConductionFeedTerms,
    EnvironmentForcing,
    LayerDepths,
    MoistureLaw,
    Roughness,
    SurfaceGeometry,
    SurfaceThermalState,
    VegetationProperties,
)


class TestEcoRoofConfig:

    def test_defaults(self):
        config = EcoRoofConfig()

        assert config.timestep_minutes == 15.0
        assert config.timestep_seconds == 900.0
        assert config.solver.calculation_method == CalculationMethod.PLANT_COVERAGE
        assert config.moisture_law == MoistureLaw.VAN_GENUCHTEN_MUALEM
        assert config.solver.min_wind_speed == 2.0

    def test_law_follows_method(self):
        config = EcoRoofConfig(solver={'calculation_method': 'fasst'})
        assert config.moisture_law == MoistureLaw.SIMPLE_DIFFUSION

    def test_yaml_round_trip(self, tmp_path):
        config = EcoRoofConfig(
            timestep_minutes=10.0,
            solver={'calculation_method': CalculationMethod.FASST, 'fasst_iterations': 5},
            moisture={'moisture_law': MoistureLaw.VAN_GENUCHTEN_MUALEM},
        )
        path = tmp_path / "nested" / "ecoroof.yaml"
        config.to_yaml(path)

        loaded = EcoRoofConfig.from_yaml(path)
        assert loaded.timestep_minutes == 10.0
        assert loaded.solver.calculation_method == CalculationMethod.FASST
        assert loaded.solver.fasst_iterations == 5
        assert loaded.moisture_law == MoistureLaw.VAN_GENUCHTEN_MUALEM

    def test_missing_yaml(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            EcoRoofConfig.from_yaml(tmp_path / "missing.yaml")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ECOROOF_TIMESTEP_MINUTES", "6")
        assert EcoRoofConfig().timestep_minutes == 6.0

    def test_rate_limit_band_validated(self):
        with pytest.raises(ValidationError):
            EcoRoofConfig(timestep_minutes=60.0, properties={'rate_limit_fraction': 0.5})

    def test_timestep_range(self):
        with pytest.raises(ValidationError):
            EcoRoofConfig(timestep_minutes=90.0)

    def test_global_config(self):
        first = get_config()
        assert get_config() is first

        custom = EcoRoofConfig(timestep_minutes=5.0)
        set_config(custom)
        assert get_config() is custom


class TestVegetationProperties:

    def test_defaults(self):
        veg = VegetationProperties()
        assert veg.dry_albedo == pytest.approx(0.3)
        assert veg.roughness == Roughness.MEDIUM_ROUGH

    def test_moisture_ordering_enforced(self):
        with pytest.raises(ParameterError):
            VegetationProperties(initial_moisture=0.25, field_capacity=0.2)

    @pytest.mark.parametrize("field, value", [
        ('leaf_area_index', 0.0),
        ('min_stomatal_resistance', 0.0),
        ('max_moisture', 1.0),
        ('plant_coverage', 1.5),
        ('leaf_emissivity', 1.2),
    ])
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ValidationError):
            VegetationProperties(**{field: value})

    def test_accepts_wide_physical_range(self):
        veg = VegetationProperties(
            height=1.5,
            leaf_area_index=6.0,
            leaf_reflectivity=0.03,
            min_stomatal_resistance=400.0,
            max_moisture=0.6,
            residual_moisture=0.15,
            initial_moisture=0.3,
            field_capacity=0.5,
            thickness=0.9,
        )
        assert veg.max_moisture == 0.6
        assert veg.min_stomatal_resistance == 400.0

    def test_frozen(self):
        veg = VegetationProperties()
        with pytest.raises(ValidationError):
            veg.leaf_area_index = 2.0

    def test_material_record(self):
        record = VegetationProperties().to_material_record()
        assert record.albedo == pytest.approx(0.3)
        assert record.thickness == 0.1


class TestRecords:

    def test_layer_split(self):
        assert LayerDepths.from_thickness(0.1) == LayerDepths(top=0.05, root=0.05)
        deep = LayerDepths.from_thickness(0.5)
        assert deep.top == 0.06
        assert deep.total == pytest.approx(0.5)

    def test_conduction_flux(self):
        terms = ConductionFeedTerms(constant_part=100.0, temperature_coefficient=5.0)
        assert terms.flux(20.0) == pytest.approx(0.0)

    def test_conduction_from_response_factors(self):
        terms = ConductionFeedTerms.from_response_factors(
            ctf_cross=2.0,
            ctf_inside=3.0,
            ctf_outside=4.0,
            inside_convection_coefficient=1.0,
            outside_history_term=10.0,
            inside_history_term=20.0,
            inside_absorbed_flux=0.0,
            zone_air_temperature_c=20.0,
            inside_surface_temperature_c=21.0,
        )
        # f1 = 2 / (3 + 1)
        assert terms.constant_part == pytest.approx(-10.0 + 0.5 * (20.0 + 20.0))
        assert terms.temperature_coefficient == pytest.approx(4.0 - 0.5 * 2.0)

    def test_conduction_without_cross_coupling(self):
        terms = ConductionFeedTerms.from_response_factors(
            0.0, 3.0, 4.0, 1.0, 10.0, 20.0, 0.0, 20.0, 21.0
        )
        assert terms.constant_part == pytest.approx(-10.0)
        assert terms.temperature_coefficient == pytest.approx(4.0)

    def test_forcing_shortwave(self):
        forcing = EnvironmentForcing(
            20.0, 2.0, 50.0, 293.15, 293.15,
            beam_solar=300.0, diffuse_solar=100.0, anisotropic_sky_multiplier=0.5,
        )
        assert forcing.incident_shortwave == pytest.approx(350.0)
        assert forcing.outdoor_dry_bulb_k == pytest.approx(293.15)

    def test_geometry_length(self):
        assert SurfaceGeometry("roof", area=64.0).length == pytest.approx(8.0)

    def test_thermal_state(self):
        state = SurfaceThermalState.at_outdoor(10.0)
        assert state.plant_k == state.soil_k == state.bare_soil_k == pytest.approx(283.15)

        state.soil_k = float("nan")
        assert not state.is_finite()
        state.reset(0.0)
        assert state.is_finite()
        assert state.soil_k == pytest.approx(273.15)


class TestExceptions:

    def test_context_in_message(self):
        error = StabilityError("timestep too long", ErrorContext(surface_id="roof", timestep=3))
        text = str(error)
        assert "StabilityError" in text
        assert "[Surface: roof]" in text
        assert "[Timestep: 3]" in text
