"""
FFmpeg command builder and stderr classifier for headless feed monitoring.

The monitoring decoder only needs the audio of a feed: it is decoded to
interleaved signed 16-bit PCM on stdout at a low sample rate, which is enough
for loudness analysis and doubles as the liveness signal for the feed.
"""

from __future__ import annotations

from multiview.runtime.transport import ErrorKind

DEFAULT_SAMPLE_RATE = 8000
DEFAULT_CHANNELS = 2
DEFAULT_RW_TIMEOUT = 10.0

# stderr fragments (lower-case) mapped to the transport error taxonomy
_NETWORK_MARKERS = (
    "connection refused",
    "connection reset",
    "connection timed out",
    "timed out",
    "server returned",
    "http error",
    "failed to resolve",
    "network is unreachable",
    "i/o error",
    "unable to open resource",
)
_MEDIA_MARKERS = (
    "invalid data found",
    "error while decoding",
    "decode_slice",
    "corrupt",
    "non-monotonous",
    "concealing",
    "missing reference",
)


def build_cmd(
    url: str,
    *,
    ffmpeg_path: str = "ffmpeg",
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    channels: int = DEFAULT_CHANNELS,
    realtime: bool = True,
    rw_timeout: float | None = DEFAULT_RW_TIMEOUT,
) -> list[str]:
    """
    Build the FFmpeg command decoding ``url``'s audio to PCM on stdout.

    Args:
        url: Feed URL (HLS playlist or any input FFmpeg understands)
        ffmpeg_path: FFmpeg binary
        sample_rate: Output sample rate in Hz
        channels: Output channel count
        realtime: Read input at its native rate (``-re``); required for
            non-live inputs so silence timing follows wall clock
        rw_timeout: Seconds a blocked read or write on the input may take
            before FFmpeg gives up (``-rw_timeout``); ``None`` disables it

    Returns:
        Command as a list of strings
    """
    if sample_rate <= 0:
        raise ValueError("sample_rate must be greater than zero")
    if channels <= 0:
        raise ValueError("channels must be greater than zero")
    if rw_timeout is not None and rw_timeout <= 0:
        raise ValueError("rw_timeout must be greater than zero")

    cmd = [ffmpeg_path, "-hide_banner", "-nostdin", "-loglevel", "warning"]
    if realtime:
        cmd.append("-re")
    if rw_timeout is not None:
        # microseconds
        cmd += ["-rw_timeout", str(int(rw_timeout * 1_000_000))]
    cmd += [
        "-i",
        url,
        "-vn",
        "-ac",
        str(channels),
        "-ar",
        str(sample_rate),
        "-f",
        "s16le",
        "pipe:1",
    ]
    return cmd


def classify_stderr_line(line: str) -> ErrorKind | None:
    """Map an FFmpeg stderr line to an error kind, or ``None`` when benign."""
    lowered = line.lower()
    if any(marker in lowered for marker in _NETWORK_MARKERS):
        return ErrorKind.NETWORK
    if any(marker in lowered for marker in _MEDIA_MARKERS):
        return ErrorKind.MEDIA
    if "error" in lowered:
        return ErrorKind.UNKNOWN
    return None
