"""
Custom exception hierarchy for the ecoroof system.
Provides clear error categories and rich error information.

Errors are raised at setup time or on API misuse only. Inside a timestep the
physics absorbs non-convergence and out-of-range values by clamping.
"""
from typing import Optional, Any, Dict
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Context information for errors"""
    surface_id: Optional[str] = None
    timestep: Optional[int] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class EcoRoofError(Exception):
    """Base exception for all ecoroof errors"""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        context_str = ""
        if self.context.surface_id:
            context_str += f" [Surface: {self.context.surface_id}]"
        if self.context.timestep is not None:
            context_str += f" [Timestep: {self.context.timestep}]"
        if self.context.component:
            context_str += f" [Component: {self.context.component}]"

        return f"{self.__class__.__name__}: {self.message}{context_str}"


# Physics model errors
class PhysicsModelError(EcoRoofError):
    """Base class for physics model errors"""
    pass


class ParameterError(PhysicsModelError):
    """Invalid model parameters"""
    pass


# Configuration errors
class ConfigurationError(EcoRoofError):
    """Configuration error"""
    pass


class StabilityError(ConfigurationError):
    """Timestep too long for the configured moisture redistribution law"""
    pass


class SurfaceRegistrationError(ConfigurationError):
    """Surface not registered with the controller"""
    pass
