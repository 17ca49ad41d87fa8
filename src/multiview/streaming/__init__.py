"""
Streaming module for Multiview.

Provides the headless transport used when feeds are monitored without a
display: an FFmpeg decoder session and the render target it feeds.
"""

from .ffmpeg_cmd import build_cmd
from .ffmpeg_session import FfmpegTransportSession
from .media_target import HeadlessMediaTarget

__all__ = ["FfmpegTransportSession", "HeadlessMediaTarget", "build_cmd"]
