"""Parsing of the player's slave-mode output into events and media information."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from .mediainfo import MediaInfo
from .state import MpState

log = logging.getLogger(__name__)

_NOISE_PATTERN = (
    r"Fontconfig warning"
    r"|"
    r"\[matroska,webm \@ 0x[\d\w]+\]Unknown entry 0x[\d\w]+"
    r"|"
    r"\[matroska,webm \@ 0x[\d\w]+\]first_dts 0 "
    r"|"
    r"VFILTER: Suspicious mp_image usage count"
    r"|"
    r"BUG in FFmpeg, draw_slice called with NULL pointer"
    r"|"
    r"VFILTER: scale: query\(Planar"
    r"|"
    r"VIDEOOUT: VID_CREATE: \d+"
    r"|"
    r"VIDEOOUT: VID CREATE: \d+"
    r"|"
    r"VIDEOOUT: DRAW_OSD"
    r"|"
    r"FLIP_PAGE VID:\d+"
    r"|"
    r"VIDEOOUT: $"
    r"|"
    r"DECAUDIO: \[.+\]DTS-ExSS: unknown marker = "
    r"|"
    r"ASS: \[ass\] shifting from \d+ to \d"
    r"|"
    r"ASS: \[ass\] forced line break at \d+"
)
_STATUSLINE_PATTERN = r"A:|V:"

_NOISE_RE = re.compile(f"({_NOISE_PATTERN})")
_STATUSLINE_RE = re.compile(f"({_STATUSLINE_PATTERN})")

_ALANG_RE = re.compile(r"ID_AID_(\d+)_LANG")
_SLANG_RE = re.compile(r"ID_SID_(\d+)_LANG")
_LINE_BREAK_RE = re.compile(rb"[\r\n]")

_IGNORED_IDS = frozenset(
    {
        "ID_START_TIME",
        "ID_DEMUXER",
        "ID_VIDEO_ID",
        "ID_VIDEO_CODEC",
        "ID_AUDIO_CODEC",
        "ID_AUDIO_TRACK",
        "ID_AUDIO_ID",
        "ID_SUBTITLE_ID",
        "ID_CLIP_INFO_N",
        "ID_FILENAME",
    }
)


def _to_int(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise ValueError(f'could not convert "{text}" to int') from None


def _to_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        raise ValueError(f'could not convert "{text}" to double') from None


def _decode(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        log.warning("invalid characters in player output %r", raw)
        return raw.decode("utf-8", errors="replace")


class LineSplitter:
    """Collects raw output and hands back complete, non-empty lines."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes received after the last line break."""
        return bytes(self._buffer)

    def _lines(self, chunks: Iterable[bytes]) -> list[str]:
        lines = (_decode(chunk).replace("\r", "") for chunk in chunks)
        return [line for line in lines if line]

    def feed(self, data: bytes) -> list[str]:
        """Add data; return the lines completed by a CR or LF."""
        self._buffer.extend(data)
        *complete, rest = _LINE_BREAK_RE.split(bytes(self._buffer))
        self._buffer = bytearray(rest)
        return self._lines(complete)

    def flush(self) -> list[str]:
        """Return whatever is left as a final line and empty the buffer."""
        rest = bytes(self._buffer)
        self._buffer.clear()
        return self._lines([rest])


def is_noise(line: str) -> bool:
    """Whether the line is known chatter that carries no information."""
    return _NOISE_RE.search(line) is not None


def is_statusline(line: str) -> bool:
    """Whether the line looks like a playback status line."""
    return _STATUSLINE_RE.search(line) is not None


def default_ignore_pattern() -> str:
    """Pattern matching status lines and noise, for the output accumulator."""
    return f"({_STATUSLINE_PATTERN}|{_NOISE_PATTERN})"


@dataclass
class ParseEvents:
    """What a batch of output lines asks the player to do."""

    position_lines: list[str] = field(default_factory=list)
    new_states: list[MpState] = field(default_factory=list)
    error_reasons: list[str] = field(default_factory=list)
    speeds: list[float] = field(default_factory=list)
    muted: bool | None = None
    audio_id: int | None = None
    ask_for_metadata: bool = False
    load_done: bool = False


class OutputParser:
    """Interprets player output lines, filling in a MediaInfo as it goes."""

    def __init__(self, media_info: MediaInfo, enabled: bool = True) -> None:
        self.media_info = media_info
        self.enabled = enabled
        self.current_tag = ""

    def parse_lines(self, lines: Iterable[str], state: MpState) -> ParseEvents:
        """Parse several lines and collect their events."""
        events = ParseEvents()
        for line in lines:
            self.parse_line(line, state, events)
        return events

    def parse_line(self, line: str, state: MpState, events: ParseEvents) -> None:
        """Parse one output line, recording what it means in `events`."""
        tline = line.strip()
        if not self.enabled:
            log.debug('ignoring "%s" from player', line)
            return

        if tline.startswith("Playing "):
            pass
        elif tline == "GLOBAL: ANS_pause=no":
            if state is MpState.PAUSED:
                log.debug("got ANS_pause=no, guessing on PlayingState")
                events.new_states.append(MpState.PLAYING)
        elif tline == "GLOBAL: ANS_pause=yes":
            if state is MpState.PLAYING:
                log.debug("got ANS_pause=yes, guessing on PausedState")
                events.new_states.append(MpState.PAUSED)
        elif tline == "GLOBAL: ANS_mute=no":
            events.muted = False
        elif tline == "GLOBAL: ANS_mute=yes":
            events.muted = True
        elif tline.startswith("GLOBAL: ANS_switch_audio="):
            events.audio_id = _to_int(tline[len("GLOBAL: ANS_switch_audio="):])
        elif tline.startswith("GLOBAL: ANS_speed="):
            events.speeds.append(_to_float(tline[len("GLOBAL: ANS_speed="):]))
        elif tline.startswith(("GLOBAL: ANS_time_pos=", "GLOBAL: ANS_TIME_POSITION=")):
            events.position_lines.append(tline)
        elif tline.startswith("Cache fill:"):
            pass
        elif tline.startswith("CPLAYER: Starting playback..."):
            # identification output still follows; do not change state yet
            events.ask_for_metadata = True
        elif tline.startswith("File not found: "):
            events.error_reasons.append(tline)
        elif tline.endswith("IDENTIFY: ID_PAUSED"):
            events.new_states.append(MpState.PAUSED)
        elif tline.startswith("IDENTIFY: ID_SIGNAL"):
            events.error_reasons.append(tline)
        elif tline.startswith(
            "FATAL: Could not initialize video filters (-vf) or video output (-vo)"
        ):
            events.error_reasons.append(tline)
        elif tline.startswith("IDENTIFY: ID_EXIT"):
            events.new_states.append(MpState.STOPPED)
        elif tline.startswith("IDENTIFY: ID_"):
            self.parse_media_info(tline)
        elif "No stream found" in tline:
            events.error_reasons.append(tline)
        elif tline.startswith(("STATUSLINE: A:", "STATUSLINE: V:")):
            events.position_lines.append(tline)
        elif tline.startswith("Exiting..."):
            events.new_states.append(MpState.STOPPED)
        elif tline.startswith("GLOBAL: EOF code:"):
            events.new_states.append(MpState.STOPPED)
        elif tline.startswith("DEMUXER: ds_fill_buffer: EOF reached (stream: video)"):
            # also happens when the cache runs empty
            pass
        elif tline.startswith("GLOBAL: ANS_metadata="):
            if not self.media_info.finalized:
                self.media_info.finalize()
                log.debug("got ANS_metadata=, loading is done")
                events.new_states.append(MpState.PLAYING)
                events.load_done = True

    def parse_media_info(self, line: str) -> None:
        """Parse one IDENTIFY line into the media information."""
        text = line.strip().replace("IDENTIFY:", "").strip()
        info = text.split("=")
        if len(info) < 2:
            return
        key, value = info[0], info[1]
        media = self.media_info

        if key == "ID_VIDEO_FORMAT":
            media.video_format = value
        elif key == "ID_VIDEO_BITRATE":
            media.video_bitrate = _to_int(value)
        elif key == "ID_VIDEO_WIDTH":
            media.width = _to_int(value)
        elif key == "ID_VIDEO_HEIGHT":
            media.height = _to_int(value)
        elif key == "ID_VIDEO_FPS":
            media.frames_per_second = _to_float(value)
        elif key in ("ID_AUDIO_FORMAT", "ID_AUDIO_BITRATE", "ID_AUDIO_RATE", "ID_AUDIO_NCH"):
            # repeated when switching tracks; only the first set counts
            if not media.finalized:
                if key == "ID_AUDIO_FORMAT":
                    media.audio_format = value
                elif key == "ID_AUDIO_BITRATE":
                    media.audio_bitrate = _to_int(value)
                elif key == "ID_AUDIO_RATE":
                    media.sample_rate = _to_int(value)
                else:
                    media.num_channels = _to_int(value)
        elif key == "ID_LENGTH":
            media.length = _to_float(value)
        elif key == "ID_SEEKABLE":
            media.seekable = bool(_to_int(value))
        elif key.startswith("ID_CLIP_INFO_NAME"):
            self.current_tag = value
        elif key.startswith("ID_CLIP_INFO_VALUE") and self.current_tag:
            media.add_tag(self.current_tag, value)
        elif key.startswith("ID_CHAPTER"):
            media.add_tag(self.current_tag, value)
        elif (match := _ALANG_RE.fullmatch(key)) is not None:
            media.add_alang(_to_int(match.group(1)), value)
        elif (match := _SLANG_RE.fullmatch(key)) is not None:
            media.add_slang(_to_int(match.group(1)), value)
        elif key == "ID_VIDEO_ASPECT":
            dar = _to_float(value)
            if dar < 0.001 or dar > 100:
                log.debug('ignoring bad DAR in "%s"', line)
            else:
                media.set_dar(dar)
        elif key in _IGNORED_IDS:
            pass
        else:
            log.debug("unknown mediainfo %s=%s", key, value)