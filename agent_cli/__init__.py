"""Uniform execution layer over third-party AI agent CLIs."""

__version__ = "0.1.0"
