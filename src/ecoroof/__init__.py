"""Vegetated roof surface energy and moisture balance."""

__version__ = "0.1.0"
