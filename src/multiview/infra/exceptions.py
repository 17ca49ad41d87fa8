"""
Custom exceptions for Multiview operations.

This module provides custom exception classes for the different kinds of
errors that can occur while supervising a grid of live feeds.
"""


class MultiviewError(Exception):
    """Base exception for all Multiview errors."""

    pass


class ValidationError(MultiviewError):
    """Raised when validation fails."""

    pass


class NotFoundError(MultiviewError):
    """Raised when a referenced stream or tile does not exist."""

    pass


class ResourceError(MultiviewError):
    """Raised when a resource is not available or already released."""

    pass


class TransportError(MultiviewError):
    """Raised when a transport session operation fails."""

    pass


class PlaybackError(MultiviewError):
    """Raised when a media target refuses to start or stop playback."""

    pass
