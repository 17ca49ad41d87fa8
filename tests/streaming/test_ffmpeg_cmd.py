from __future__ import annotations

import pytest

from multiview.runtime.transport import ErrorKind
from multiview.streaming.ffmpeg_cmd import build_cmd, classify_stderr_line


def test_build_cmd_decodes_audio_to_pcm_pipe():
    cmd = build_cmd("https://example.test/live.m3u8", ffmpeg_path="/usr/bin/ffmpeg", sample_rate=16000)

    assert cmd[0] == "/usr/bin/ffmpeg"
    assert "-re" in cmd
    assert cmd[cmd.index("-i") + 1] == "https://example.test/live.m3u8"
    assert cmd[cmd.index("-ar") + 1] == "16000"
    assert cmd[cmd.index("-ac") + 1] == "2"
    assert "-vn" in cmd
    assert cmd[-3:] == ["-f", "s16le", "pipe:1"]


def test_build_cmd_without_realtime():
    assert "-re" not in build_cmd("in.ts", realtime=False)


@pytest.mark.parametrize("kwargs", [{"sample_rate": 0}, {"channels": -1}])
def test_build_cmd_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        build_cmd("in.ts", **kwargs)


@pytest.mark.parametrize(
    "line,kind",
    [
        ("[https @ 0x1] HTTP error 404 Not Found", ErrorKind.NETWORK),
        ("Connection refused", ErrorKind.NETWORK),
        ("[h264 @ 0x2] error while decoding MB 3 4", ErrorKind.MEDIA),
        ("Invalid data found when processing input", ErrorKind.MEDIA),
        ("Some other error", ErrorKind.UNKNOWN),
        ("Stream #0:1: Audio: aac", None),
    ],
)
def test_classify_stderr_line(line, kind):
    assert classify_stderr_line(line) is kind


def test_build_cmd_bounds_blocked_input_reads():
    cmd = build_cmd("https://example.test/live.m3u8", rw_timeout=2.5)
    assert cmd[cmd.index("-rw_timeout") + 1] == "2500000"
    assert cmd.index("-rw_timeout") < cmd.index("-i")
    assert "-rw_timeout" not in build_cmd("in.ts", rw_timeout=None)
    with pytest.raises(ValueError):
        build_cmd("in.ts", rw_timeout=0)
