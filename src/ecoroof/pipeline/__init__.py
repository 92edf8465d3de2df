"""
Ecoroof pipeline module.

Roof surface controller and per-timestep reporting.
"""
from ecoroof.pipeline.controller import EcoRoofController
from ecoroof.pipeline.reporting import ReportCollector, ReportObserver, TimestepReport

__all__ = [
    "EcoRoofController",
    "ReportCollector",
    "ReportObserver",
    "TimestepReport",
]
