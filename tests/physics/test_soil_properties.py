"""
Tests for the rate-limited soil thermal property updater.
"""
import pytest

from ecoroof.core.types import LayerDepths
from ecoroof.physics.soil_properties import SoilThermalPropertyUpdater


class TestSoilThermalPropertyUpdater:

    @pytest.fixture
    def depths(self):
        return LayerDepths(top=0.05, root=0.05)

    @pytest.fixture
    def record(self, vegetation):
        return vegetation.to_material_record()

    @pytest.fixture
    def updater(self, vegetation, record):
        return SoilThermalPropertyUpdater(vegetation, record, timestep_minutes=15.0)

    def test_ratio_limits(self, vegetation, record):
        assert SoilThermalPropertyUpdater(vegetation, record, 15.0).ratio_limits == pytest.approx((0.8, 1.2))
        assert SoilThermalPropertyUpdater(vegetation, record, 5.0).ratio_limits == pytest.approx((14 / 15, 16 / 15))

    def test_saturated_targets(self, updater, depths):
        target = updater.target_properties(0.3, 0.3, depths)

        assert target.mean_moisture == pytest.approx(0.3)
        assert target.albedo == pytest.approx(0.0978)
        assert target.conductivity == pytest.approx(0.955, rel=1e-3)
        assert target.density == pytest.approx(1100.0 + 0.29 * 990.0)
        assert target.specific_heat == pytest.approx(1770.0)

    def test_residual_targets_are_dry_values(self, updater, depths, vegetation):
        target = updater.target_properties(0.01, 0.01, depths)

        assert target.conductivity == pytest.approx(vegetation.dry_conductivity / 1.15)
        assert target.density == pytest.approx(vegetation.dry_density)
        assert target.albedo == pytest.approx(0.3143 - 0.4336 / 30 + 0.2171 / 900, rel=1e-6)

    def test_update_is_rate_limited_and_written_back(self, updater, record, depths):
        props = updater.update(0.3, 0.3, depths)

        assert props.albedo == pytest.approx(0.3 * 0.8)
        assert props.conductivity == pytest.approx(0.35 * 1.2)
        assert props.density == pytest.approx(1100.0 * 1.2)
        assert props.specific_heat == pytest.approx(1200.0 * 1.2)

        assert record.solar_absorptance == pytest.approx(1.0 - 0.24)
        assert record.conductivity == props.conductivity

    def test_converges_to_target(self, updater, depths):
        target = updater.target_properties(0.3, 0.3, depths)
        for _ in range(30):
            props = updater.update(0.3, 0.3, depths)

        assert props.albedo == pytest.approx(target.albedo)
        assert props.conductivity == pytest.approx(target.conductivity)
        assert props.density == pytest.approx(target.density)
        assert props.specific_heat == pytest.approx(target.specific_heat)

    def test_absorptance_clamped(self, updater, depths):
        # Relative moisture is clipped to 1, albedo never below the fit minimum
        target = updater.target_properties(0.5, 0.5, depths)
        assert 0.05 <= target.albedo <= 0.95

    def test_reset_restores_dry_record(self, updater, record, depths, vegetation):
        updater.update(0.3, 0.3, depths)
        updater.reset()

        assert record.conductivity == vegetation.dry_conductivity
        assert record.density == vegetation.dry_density
        assert record.specific_heat == vegetation.dry_specific_heat
        assert record.solar_absorptance == vegetation.soil_solar_absorptance
        assert updater.get_properties()['albedo'] == pytest.approx(vegetation.dry_albedo)
