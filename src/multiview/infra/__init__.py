"""
Infrastructure layer - logging, settings, and technical concerns.

This layer contains the process-wide configuration and logging setup and
the exception hierarchy shared by the runtime, web and CLI layers.
"""
