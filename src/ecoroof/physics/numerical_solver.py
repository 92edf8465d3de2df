"""
Numerical building blocks for the surface balance.

1. Scalar root finding: Newton's method with a bisection fallback when the
   Newton sequence fails to settle but its last two iterates bracket a root.
2. Timestep stability criterion for the Van Genuchten moisture law.

Non-convergence is never an error here. Every root find returns a tagged
result and callers carry on with the best estimate.

References:
- Press, W.H. et al. (2007). Numerical Recipes, 3rd ed., ch. 9.
- Schaap, M.G. and Van Genuchten, M.Th. (2006). A modified Mualem-van
  Genuchten formulation for improved description of the hydraulic
  conductivity near saturation. Vadose Zone J. 5:27-34.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from ecoroof.core.constants import (
    STABILITY_DEPTH_EXPONENT,
    STABILITY_DEPTH_FACTOR,
    STABILITY_MAX_DIVISIONS,
)

logger = logging.getLogger(__name__)


# =============================================================================
# ROOT FINDING
# =============================================================================

class RootFindStatus(str, Enum):
    """How a root find terminated"""
    NEWTON = "newton"  # Newton step below tolerance
    BISECTION = "bisection"  # Newton stalled, bracket refined by bisection
    EXHAUSTED = "exhausted"  # no convergence, no bracket; last estimate kept


@dataclass(frozen=True)
class RootFindResult:
    """Outcome of a scalar root find"""
    root: float
    status: RootFindStatus
    iterations: int
    residual: float

    @property
    def converged(self) -> bool:
        return self.status != RootFindStatus.EXHAUSTED


@dataclass
class RootFinderConfig:
    """Configuration for NewtonBisectionSolver"""
    tolerance: float = 1e-4
    max_iterations: int = 100
    max_bisection_iterations: int = 200


class NewtonBisectionSolver:
    """
    Newton's method with a bisection fallback.

    Newton iterates until successive estimates differ by less than the
    tolerance. After max_iterations, if the function values at the last two
    iterates have opposite signs, the bracket is bisected to the same
    tolerance; otherwise the last Newton estimate is returned as exhausted.
    A zero or non-finite derivative ends the Newton phase early.
    """

    def __init__(self, config: Optional[RootFinderConfig] = None, name: str = "root"):
        self.config = config or RootFinderConfig()
        self.name = name
        self.iteration_counts: List[int] = []
        self.status_counts: Dict[RootFindStatus, int] = {s: 0 for s in RootFindStatus}

    def solve(
        self,
        func: Callable[[float], float],
        derivative: Callable[[float], float],
        x0: float,
    ) -> RootFindResult:
        """
        Find a root of func starting from x0.

        Args:
            func: Residual function
            derivative: Derivative of func
            x0: Initial estimate

        Returns:
            RootFindResult
        """
        tol = self.config.tolerance
        history: List[Tuple[float, float]] = []  # (x, f(x))

        x_new = float(x0)
        iteration = 0
        for iteration in range(1, self.config.max_iterations + 1):
            x_old = x_new
            f_old = func(x_old)
            if not np.isfinite(f_old):
                break
            history.append((x_old, f_old))

            if f_old == 0.0:
                return self._finish(RootFindResult(x_old, RootFindStatus.NEWTON, iteration, 0.0))

            slope = derivative(x_old)
            if slope == 0.0 or not np.isfinite(slope):
                break

            x_new = x_old - f_old / slope
            if not np.isfinite(x_new):
                x_new = x_old
                break

            if abs(x_new - x_old) < tol:
                return self._finish(
                    RootFindResult(x_new, RootFindStatus.NEWTON, iteration, f_old)
                )

        return self._finish(self._fallback(func, history, x_new, iteration))

    def _fallback(
        self,
        func: Callable[[float], float],
        history: List[Tuple[float, float]],
        last_estimate: float,
        iterations: int,
    ) -> RootFindResult:
        """Bisect the last two Newton iterates if they bracket a root"""
        if len(history) >= 2:
            (x1, f1), (x2, f2) = history[-1], history[-2]
            if (f1 < 0.0 < f2) or (f2 < 0.0 < f1):
                return self._bisect(func, x1, f1, x2, iterations)

        if not np.isfinite(last_estimate):
            last_estimate = history[-1][0] if history else float("nan")
        residual = history[-1][1] if history else float("nan")
        logger.warning(
            "%s: Newton did not converge after %d iterations and no sign change "
            "bracketed a root; keeping last estimate %.4f",
            self.name, iterations, last_estimate,
        )
        return RootFindResult(last_estimate, RootFindStatus.EXHAUSTED, iterations, residual)

    def _bisect(
        self,
        func: Callable[[float], float],
        a: float,
        fa: float,
        b: float,
        newton_iterations: int,
    ) -> RootFindResult:
        tol = self.config.tolerance
        mid, f_mid = a, fa
        k = 0
        for k in range(1, self.config.max_bisection_iterations + 1):
            mid = 0.5 * (a + b)
            f_mid = func(mid)
            if f_mid == 0.0 or 0.5 * abs(b - a) < tol:
                break
            if (f_mid < 0.0) == (fa < 0.0):
                a, fa = mid, f_mid
            else:
                b = mid

        logger.debug(
            "%s: bisection fallback after %d Newton iterations, root %.4f",
            self.name, newton_iterations, mid,
        )
        return RootFindResult(mid, RootFindStatus.BISECTION, newton_iterations + k, f_mid)

    def _finish(self, result: RootFindResult) -> RootFindResult:
        self.iteration_counts.append(result.iterations)
        self.status_counts[result.status] += 1
        return result

    def get_statistics(self) -> Dict[str, float]:
        """Get solver statistics"""
        if not self.iteration_counts:
            return {}

        counts = np.array(self.iteration_counts)
        total = len(counts)
        return {
            'n_solves': total,
            'mean_iterations': float(np.mean(counts)),
            'max_iterations': int(np.max(counts)),
            'newton_rate': self.status_counts[RootFindStatus.NEWTON] / total,
            'n_bisection': self.status_counts[RootFindStatus.BISECTION],
            'n_exhausted': self.status_counts[RootFindStatus.EXHAUSTED],
        }

    def reset(self):
        """Reset solver statistics"""
        self.iteration_counts = []
        self.status_counts = {s: 0 for s in RootFindStatus}


# =============================================================================
# TIMESTEP STABILITY
# =============================================================================

@dataclass(frozen=True)
class StabilityCheck:
    """Result of the moisture-law timestep stability criterion"""
    stable: bool
    timestep_minutes: float
    max_stable_minutes: float
    recommended_timesteps_per_hour: int
    divisions: int


def check_timestep_stability(timestep_minutes: float, soil_thickness: float) -> StabilityCheck:
    """
    Empirical stability criterion for the Van Genuchten moisture law.

    The longest stable timestep grows with soil depth as
        161240 * 2^-2.3 / 60 * depth^2.07  (minutes)
    The timestep is divided by 1, 2, ... 20 until it fits the limit.

    Args:
        timestep_minutes: Host timestep (minutes)
        soil_thickness: Total soil thickness (m)

    Returns:
        StabilityCheck
    """
    depth_limit = STABILITY_DEPTH_FACTOR * soil_thickness ** STABILITY_DEPTH_EXPONENT

    divisions = 1
    for divisions in range(1, STABILITY_MAX_DIVISIONS + 1):
        if timestep_minutes / divisions <= depth_limit:
            break

    stable = divisions == 1 and timestep_minutes <= depth_limit
    recommended = int(np.ceil(60.0 * divisions / timestep_minutes))
    return StabilityCheck(
        stable=stable,
        timestep_minutes=timestep_minutes,
        max_stable_minutes=depth_limit,
        recommended_timesteps_per_hour=recommended,
        divisions=divisions,
    )

