"""Evolved virtual creatures: body-plan graphs, expression controllers and a
generational training loop."""

__version__ = "0.1.0"
