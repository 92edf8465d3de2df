"""
Tests for root finding and the timestep stability criterion.
"""
import math

import pytest

from ecoroof.physics.numerical_solver import (
    NewtonBisectionSolver,
    RootFinderConfig,
    RootFindStatus,
    check_timestep_stability,
)


def _signed_sqrt(x):
    d = x - 0.3
    return math.copysign(math.sqrt(abs(d)), d)


def _signed_sqrt_slope(x):
    return 0.5 / math.sqrt(abs(x - 0.3))


class TestNewtonBisectionSolver:
    """Test suite for the Newton solver with bisection fallback"""

    @pytest.fixture
    def solver(self):
        return NewtonBisectionSolver(RootFinderConfig(tolerance=1e-4, max_iterations=100), name="test")

    def test_newton_converges(self, solver):
        result = solver.solve(lambda x: x * x - 2.0, lambda x: 2.0 * x, 1.0)

        assert result.status == RootFindStatus.NEWTON
        assert result.converged
        assert result.root == pytest.approx(math.sqrt(2.0), abs=1e-6)
        assert result.iterations < 10

    def test_exact_root_at_initial_guess(self, solver):
        result = solver.solve(lambda x: x - 2.0, lambda x: 1.0, 2.0)

        assert result.status == RootFindStatus.NEWTON
        assert result.root == 2.0
        assert result.iterations == 1
        assert result.residual == 0.0

    def test_oscillation_falls_back_to_bisection(self, solver):
        """Newton on a signed square root jumps across the root forever"""
        result = solver.solve(_signed_sqrt, _signed_sqrt_slope, 1.3)

        assert result.status == RootFindStatus.BISECTION
        assert result.converged
        assert result.root == pytest.approx(0.3, abs=1e-3)
        assert result.iterations > 100

    def test_no_root_is_exhausted(self, solver, caplog):
        result = solver.solve(lambda x: x * x + 1.0, lambda x: 2.0 * x, 0.5)

        assert result.status == RootFindStatus.EXHAUSTED
        assert not result.converged
        assert math.isfinite(result.root)
        assert "did not converge" in caplog.text

    def test_zero_derivative_keeps_estimate(self, solver):
        result = solver.solve(lambda x: x * x - 2.0, lambda x: 2.0 * x, 0.0)

        assert result.status == RootFindStatus.EXHAUSTED
        assert result.root == 0.0
        assert result.residual == pytest.approx(-2.0)

    def test_statistics_and_reset(self, solver):
        assert solver.get_statistics() == {}

        solver.solve(lambda x: x * x - 2.0, lambda x: 2.0 * x, 1.0)
        solver.solve(lambda x: x * x + 1.0, lambda x: 2.0 * x, 0.5)
        stats = solver.get_statistics()

        assert stats['n_solves'] == 2
        assert stats['newton_rate'] == pytest.approx(0.5)
        assert stats['n_exhausted'] == 1

        solver.reset()
        assert solver.get_statistics() == {}


class TestTimestepStability:
    """Stability criterion of the Van Genuchten moisture law"""

    def test_thin_soil_quarter_hour_unstable(self):
        check = check_timestep_stability(15.0, 0.1)

        assert not check.stable
        assert check.max_stable_minutes == pytest.approx(4.64, abs=0.02)
        assert check.divisions == 4
        assert check.recommended_timesteps_per_hour == 16

    def test_short_timestep_stable(self):
        check = check_timestep_stability(3.0, 0.1)

        assert check.stable
        assert check.divisions == 1
        assert check.recommended_timesteps_per_hour == 20

    def test_deep_soil_stable(self):
        check = check_timestep_stability(15.0, 0.3)

        assert check.stable
        assert check.max_stable_minutes > 15.0

    def test_divisions_capped(self):
        check = check_timestep_stability(60.0, 0.01)

        assert not check.stable
        assert check.divisions == 20
