"""Commands queued for the player and the policy deciding when to write them."""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

OSD_DEFAULT_DURATION_MS = 2000

# do not allow write commands more often than this
MIN_TIME_BETWEEN_WRITES_MS = 150
# allow writes even if we have not seen a read since that many ms
ALLOW_WRITES_EVEN_IF_NO_READ_MS = 300
# if the output queue is larger, try to flush it
OUTPUT_QUEUE_MAX_SIZE = 16
# if the output queue is larger, reduce min times
OUTPUT_QUEUE_LARGE_SIZE = 8

SEEK_IMPOSSIBLE = -1.0
SEEK_PAST_END = -2.0


class SeekMode(Enum):
    """How a seek target is to be interpreted."""

    RELATIVE = "relative"
    PERCENTAGE = "percentage"
    ABSOLUTE = "absolute"


class CommandType(Enum):
    """Kind of a queued command."""

    STRING = "string"
    SEEK = "seek"
    OSD_SHOW_LOCATION = "osd_show_location"
    DELAY = "delay"


@dataclass(frozen=True)
class Command:
    """One entry of the output queue; `created` is a timestamp in seconds."""

    kind: CommandType
    created: float
    text: str = ""
    seek_mode: SeekMode | None = None
    seek_target: float = 0.0
    delay_ms: float | None = None

    @classmethod
    def string(cls, text: str, created: float) -> "Command":
        return cls(CommandType.STRING, created, text=text)

    @classmethod
    def seek(cls, mode: SeekMode, target: float, created: float) -> "Command":
        return cls(CommandType.SEEK, created, seek_mode=mode, seek_target=target)

    @classmethod
    def osd_location(cls, created: float) -> "Command":
        return cls(CommandType.OSD_SHOW_LOCATION, created)

    @classmethod
    def delay_for(cls, delay_ms: float, created: float) -> "Command":
        return cls(CommandType.DELAY, created, delay_ms=delay_ms)

    @property
    def delay(self) -> float:
        """Delay in milliseconds; only meaningful for delay commands."""
        if self.kind is not CommandType.DELAY or self.delay_ms is None:
            raise ValueError(f"{self.kind.value} command has no delay")
        return self.delay_ms


def format_duration(seconds: float) -> str:
    """Format a duration as H:MM:SS; negative durations count as zero."""
    total = int(max(seconds, 0))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


def osd_location_command(length: float | None) -> str:
    """Command that shows the current position and the total length on screen."""
    if length is None or length <= 0:
        length = 0
    text = "${time_pos} " + " / " + format_duration(length)
    return f'pausing_keep osd_show_property_text "{text}" {OSD_DEFAULT_DURATION_MS} 0'


def _round_half_away(value: float) -> float:
    if value >= 0:
        return float(math.floor(value + 0.5))
    return float(-math.floor(-value + 0.5))


def compute_seek_target(
    target: float, mode: SeekMode, current: float, length: float | None
) -> float:
    """Absolute whole-second seek position.

    Returns SEEK_IMPOSSIBLE (-1) when it cannot be computed, SEEK_PAST_END (-2)
    when it lies beyond the end, and 0 for anything at or before the start.
    """
    if length is None:
        length = -1.0
    if mode is SeekMode.RELATIVE:
        newpos = current + target
    elif mode is SeekMode.PERCENTAGE:
        if length <= 0:
            return SEEK_IMPOSSIBLE
        newpos = target * 100.0 / length
    elif mode is SeekMode.ABSOLUTE:
        newpos = target
    else:
        return SEEK_IMPOSSIBLE

    newpos = _round_half_away(newpos)
    if newpos <= 0.0:
        return 0.0
    if length > 0 and newpos > length:
        return SEEK_PAST_END
    return newpos


class WriteScheduler:
    """Output queue that paces writes to the player against its reads."""

    def __init__(self) -> None:
        self._queue: deque[Command] = deque()
        self.last_read: float | None = None
        self.last_write: float | None = None

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)

    def __iter__(self) -> Iterator[Command]:
        return iter(self._queue)

    def enqueue(self, command: Command) -> None:
        self._queue.append(command)

    def prepend(self, command: Command) -> None:
        self._queue.appendleft(command)

    def pop(self) -> Command:
        """Remove and return the first queued command."""
        if not self._queue:
            raise IndexError("output queue is empty")
        return self._queue.popleft()

    def clear(self) -> None:
        self._queue.clear()

    def mark_read(self, when: float) -> None:
        self.last_read = when

    def mark_written(self, when: float) -> None:
        self.last_write = when

    def allowed_to_write(self, now: float) -> tuple[bool, str]:
        """Whether the next command may be written at `now`, and why."""
        if self.last_write is None:
            return True, "first command"
        if self.last_read is None:
            return True, "never read before"

        ms_since_last_write = (now - self.last_write) * 1000.0
        size = len(self._queue)

        if self._queue and self._queue[0].kind is CommandType.DELAY:
            if self._queue[0].delay > ms_since_last_write:
                return False, "queued delay not gone yet"
            return True, "queued delay gone"

        if size >= OUTPUT_QUEUE_LARGE_SIZE and ms_since_last_write > ALLOW_WRITES_EVEN_IF_NO_READ_MS / 2:
            return True, "large queue and last write more than allow_writes_even_if_no_read_ms/2 ago"
        if ms_since_last_write > ALLOW_WRITES_EVEN_IF_NO_READ_MS:
            return True, "last write more than allow_writes_even_if_no_read_ms ago"
        if self.last_read < self.last_write:
            return False, "no read since last write"
        if size >= OUTPUT_QUEUE_LARGE_SIZE and ms_since_last_write > MIN_TIME_BETWEEN_WRITES_MS / 2:
            return True, "large queue and last write more than min_time_between_writes_ms/2 ago"
        if ms_since_last_write > MIN_TIME_BETWEEN_WRITES_MS:
            return True, "last write more than min_time_between_writes_ms ago"
        if size > OUTPUT_QUEUE_MAX_SIZE:
            return True, "queue too large"
        return False, "too soon"