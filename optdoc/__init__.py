"""Collect documentation metadata from build producers and render option references."""

__version__ = "0.1.0"
