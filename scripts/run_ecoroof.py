#!/usr/bin/env python
"""
Run the vegetated roof model over a forcing table.

The forcing CSV needs outdoor_dry_bulb_c, wind_speed and relative_humidity
columns, one row per timestep; see EcoRoofController.run_period for the
optional columns.

Run from the project root with:
    python scripts/run_ecoroof.py --forcing forcing.csv --out report.csv
"""

from __future__ import annotations

import argparse
import logging
import sys

import pandas as pd
import yaml

from ecoroof.core.config import EcoRoofConfig
from ecoroof.core.types import (
    ConductionFeedTerms,
    IrrigationMode,
    SurfaceGeometry,
    VegetationProperties,
)
from ecoroof.pipeline import EcoRoofController

logger = logging.getLogger(__name__)


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(
        description="Compute vegetated roof surface temperatures and moisture fluxes")
    parser.add_argument("--forcing", required=True,
                        help="CSV with one row of outdoor conditions per timestep")
    parser.add_argument("--out", required=True,
                        help="Output CSV path for the timestep report")
    parser.add_argument("--config", default=None,
                        help="YAML configuration file")
    parser.add_argument("--vegetation", default=None,
                        help="YAML file with vegetated layer properties")
    parser.add_argument("--index-col", default=None,
                        help="Forcing column carried to the report as its index")
    parser.add_argument("--area", type=float, default=100.0,
                        help="Roof area (m²)")
    parser.add_argument("--warmup-steps", type=int, default=0)
    parser.add_argument("--conduction-constant", type=float, default=0.0)
    parser.add_argument("--conduction-coefficient", type=float, default=0.0)
    parser.add_argument("--irrigation-mode", default="scheduled",
                        choices=[m.value for m in IrrigationMode])

    args = parser.parse_args(argv)

    config = EcoRoofConfig.from_yaml(args.config) if args.config else EcoRoofConfig()
    logging.basicConfig(level=config.logging.log_level, format=config.logging.log_format)

    if args.vegetation:
        with open(args.vegetation, encoding="utf-8") as f:
            vegetation = VegetationProperties(**(yaml.safe_load(f) or {}))
    else:
        vegetation = VegetationProperties()

    forcings = pd.read_csv(args.forcing, index_col=args.index_col)
    logger.info(f"Loaded {len(forcings)} forcing rows from {args.forcing}")

    controller = EcoRoofController(vegetation, config)
    controller.register_surface(SurfaceGeometry(surface_id="roof", area=args.area))

    report = controller.run_period(
        forcings,
        conduction=ConductionFeedTerms(
            constant_part=args.conduction_constant,
            temperature_coefficient=args.conduction_coefficient,
        ),
        warmup_steps=args.warmup_steps,
        irrigation_mode=IrrigationMode(args.irrigation_mode),
    )
    report.to_csv(args.out, index_label=report.index.name or "forcing_row")

    diagnostics = controller.get_diagnostic_info()
    moisture = diagnostics["moisture"]
    print(f"Timesteps: {len(report)}")
    print(f"Mean surface temperature: {report['surface_temperature_c'].mean():.2f} C")
    print(f"Cumulative ET:     {moisture['cumulative_evapotranspiration_m'] * 1000:.2f} mm")
    print(f"Cumulative runoff: {moisture['cumulative_runoff_m'] * 1000:.2f} mm")
    print(f"Report saved to: {args.out}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
