"""Command-line interface for Multiview."""
