#!/usr/bin/env python3
"""
CLI entry point for multiview.cli module.

This allows running: python -m multiview.cli
"""

from .main import cli

if __name__ == "__main__":
    cli()
