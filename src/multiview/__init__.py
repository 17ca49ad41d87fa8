"""Multiview: health supervision for a grid of live video feeds."""

__version__ = "0.1.0"
