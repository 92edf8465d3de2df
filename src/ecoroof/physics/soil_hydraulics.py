"""
Van Genuchten-Mualem hydraulic relationships for the roof substrate.

Closed-form capillary potential and unsaturated conductivity as functions of
relative saturation, with the Schaap parameter set used for engineered
green-roof media.

    Se = (θ - θr) / (θs - θr)
    ψ(Se) = -(1/α) [Se^(-1/m) - 1]^(1/n)
    K(Se) = Ksat Se^L [1 - (1 - Se^(1/m))^m]²        m = 1 - 1/n

References:
- Van Genuchten, M.Th. (1980). A closed-form equation for predicting the
  hydraulic conductivity of unsaturated soils. Soil Sci. Soc. Am. J. 44:892-898.
- Mualem, Y. (1976). A new model for predicting the hydraulic conductivity
  of unsaturated porous media. Water Resources Research, 12(3):513-522.
- Schaap, M.G. and Leij, F.J. (2000). Improved prediction of unsaturated
  hydraulic conductivity with the Mualem-van Genuchten model.
  Soil Sci. Soc. Am. J. 64:843-851.
"""

import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


# =============================================================================
# Numerical safety / sanity bounds
# =============================================================================

VG_ALPHA_HARD_RANGE_M_INV = (1e-6, 1e4)
VG_N_HARD_RANGE = (1.01, 10.0)

# Avoid exp/log overflow in float64
_LOG_MAX_FLOAT64 = 709.0


@dataclass
class VanGenuchtenParameters:
    """
    Van Genuchten model parameters for the substrate.

    Units:
        - alpha: 1/m
        - n: dimensionless
        - theta_r, theta_s: m³/m³
        - K_sat: m/s
    """
    alpha: float  # 1/m - inverse air entry pressure
    n: float  # Pore size distribution parameter
    theta_r: float  # Residual water content (m³/m³)
    theta_s: float  # Saturated water content (m³/m³)
    K_sat: float  # Saturated hydraulic conductivity (m/s)
    L: float = 0.5  # Pore connectivity parameter (Mualem default)

    def __post_init__(self) -> None:
        for name in ("alpha", "n", "theta_r", "theta_s", "K_sat", "L"):
            value = getattr(self, name)
            if value is None or not np.isfinite(value):
                raise ValueError(
                    f"VanGenuchtenParameters.{name} must be finite")

        self.alpha = float(np.clip(self.alpha, *VG_ALPHA_HARD_RANGE_M_INV))
        self.n = float(np.clip(self.n, *VG_N_HARD_RANGE))
        self.K_sat = float(max(self.K_sat, 1e-15))

        if self.theta_s - self.theta_r < 1e-6:
            raise ValueError(
                f"Invalid VG parameters: theta_s ({self.theta_s}) must exceed theta_r ({self.theta_r})"
            )

    @property
    def m(self) -> float:
        """Mualem constraint m = 1 - 1/n"""
        return 1.0 - 1.0 / self.n


def effective_saturation(theta: float, params: VanGenuchtenParameters) -> float:
    """
    Effective saturation Se = (θ - θr) / (θs - θr), not clipped.

    Callers apply their own floor so that they can report when it binds.
    """
    return (theta - params.theta_r) / (params.theta_s - params.theta_r)


def van_genuchten_psi_from_saturation(Se: float, params: VanGenuchtenParameters) -> float:
    """
    Capillary potential from effective saturation.

    ψ = -(1/α) [Se^(-1/m) - 1]^(1/n)

    Args:
        Se: Effective saturation in (0, 1]
        params: Van Genuchten parameters

    Returns:
        Pressure head (m, negative for suction)
    """
    Se = float(np.clip(Se, 1e-12, 1.0))

    # log-safe computation of Se^(-1/m)
    log_Se_pow = (-1.0 / params.m) * float(np.log(Se))
    if log_Se_pow >= _LOG_MAX_FLOAT64:
        Se_pow = float("inf")
    else:
        Se_pow = float(np.exp(log_Se_pow))

    term = Se_pow - 1.0
    if term <= 0:
        return 0.0  # At saturation

    return -(1.0 / params.alpha) * term ** (1.0 / params.n)


def van_genuchten_mualem_K_from_saturation(Se: float, params: VanGenuchtenParameters) -> float:
    """
    Unsaturated hydraulic conductivity from effective saturation.

    K = Ksat Se^L [1 - (1 - Se^(1/m))^m]²

    Args:
        Se: Effective saturation in (0, 1]
        params: Van Genuchten parameters

    Returns:
        Hydraulic conductivity (m/s)
    """
    Se = float(np.clip(Se, 1e-12, 1.0))
    if Se >= 1.0:
        return params.K_sat

    inner_term = 1.0 - Se ** (1.0 / params.m)
    if inner_term <= 0:
        return params.K_sat

    outer_term = 1.0 - inner_term ** params.m
    K_rel = (Se ** params.L) * outer_term ** 2
    return float(params.K_sat * np.clip(K_rel, 0.0, 1.0))
