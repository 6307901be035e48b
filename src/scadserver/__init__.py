"""scad-server - HTTP API for headless OpenSCAD export and summary generation."""

__version__ = "1.0.0"
