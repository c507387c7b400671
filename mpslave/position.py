"""Reading playback positions from player output and tracking the expected position."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from .state import MpState

log = logging.getLogger(__name__)

# after a seek, status lines keep showing the old position for a while
IGNORE_STATUSLINE_AFTER_SEEK_SEC = 0.4
# after a load, status lines may still show the old position for a while
IGNORE_STATUSLINE_AFTER_LOAD_SEC = 0.3
# while distrusting, a parsed position this close to the expected one is believed
TRUST_PARSED_POSITION_IF_CLOSER_THAN_SEC = 4.0
# fail if a position is that much beyond the media length
MAX_OVERFLOW_POSITION_TO_LENGTH_SEC = 1.0
# report a position change if it moved by more than this
EMIT_POSITION_CHANGE_IF_LARGER_THAN_SEC = 0.5
# resynchronize if the status line A-V exceeds this; 0 or less disables it
MAX_AV_MISSYNC_NORMAL_SPEED_SEC = -1.0
MAX_AV_MISSYNC_UNNORMAL_SPEED_SEC = 2.0
# positions below this are discarded, those between it and 0 count as 0
MINIMUM_ALLOWED_NEGATIVE_POSITION = -1.0
# positions this close to the end are considered the end
FORCE_STOP_SEC_BEFORE_END = 1.0
# anything beyond ten days is nonsense
MAX_SANE_POSITION_SEC = 60 * 60 * 24 * 10

ACCEPT = "accept"
IGNORE = "ignore"
RESYNC = "resync"

_TIME_POS_PREFIX = "GLOBAL: ANS_time_pos="
_TIME_POSITION_PREFIX = "GLOBAL: ANS_TIME_POSITION="
_SPLIT_RE = re.compile(r"[ :]")

_BAD_STATES = frozenset(
    {MpState.ERROR, MpState.IDLE, MpState.NOT_STARTED, MpState.STOPPED}
)


def _to_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        raise ValueError(f'could not convert "{text}" to double') from None


@dataclass(frozen=True)
class PositionReading:
    """A position parsed from one output line.

    `trusted` marks answers that are believed even right after a seek;
    `seek_target` is set when the audio and video drifted apart and a
    seek to that position would bring them back together.
    """

    position: float
    trusted: bool = False
    seek_target: float | None = None


def _statusline_values(line: str, speed: float) -> tuple[list[float], float | None]:
    tokens = [token for token in _SPLIT_RE.split(line) if token]
    contenders: list[float] = []
    seek_target: float | None = None
    for i, token in enumerate(tokens):
        if token not in ("A", "V", "A-V"):
            continue
        if i + 1 >= len(tokens):
            raise ValueError(f'no value after "{token}" in "{line}"')
        value = _to_float(tokens[i + 1])
        if token != "A-V":
            contenders.append(value)
            continue
        normal_speed = abs(speed - 1.0) < 0.01
        max_missync = (
            MAX_AV_MISSYNC_NORMAL_SPEED_SEC
            if normal_speed
            else MAX_AV_MISSYNC_UNNORMAL_SPEED_SEC
        )
        if max_missync > 0.0 and abs(value) > max_missync:
            if not contenders:
                raise ValueError(f'A-V before any position in "{line}"')
            low = high = contenders[0]
            for v in contenders:
                if v < low:
                    low = v
                if v > low:
                    high = v
            seek_target = float(int(low)) if normal_speed else float(math.ceil(high))
    return contenders, seek_target


def parse_position_line(line: str, speed: float) -> PositionReading | None:
    """Parse a time answer or a status line; None when it yields no usable position."""
    trusted = False
    seek_target: float | None = None
    if line.startswith(_TIME_POS_PREFIX):
        contenders = [_to_float(line[len(_TIME_POS_PREFIX):])]
    elif line.startswith(_TIME_POSITION_PREFIX):
        contenders = [_to_float(line[len(_TIME_POSITION_PREFIX):])]
        trusted = True
    else:
        # STATUSLINE: A: 913.6 V: 897.9 A-V: 15.733 ct:  3.697   0/  0 28%  3%  1.2% 465 0 50%
        contenders, seek_target = _statusline_values(line, speed)

    if not contenders:
        log.warning('could not get position from "%s"', line)
        return None

    position = sum(contenders) / len(contenders)
    if position < 0:
        if position < MINIMUM_ALLOWED_NEGATIVE_POSITION:
            log.debug('parsed negative position %f from "%s"? ignoring', position, line)
            return None
        log.debug('parsed negative position %f from "%s"? assuming 0', position, line)
        position = 0.0
    return PositionReading(position, trusted, seek_target)


class PositionTracker:
    """Last position read from the player and the position expected from it.

    Times are timestamps in seconds.
    """

    def __init__(self, length: float | None = None) -> None:
        self.length = length
        self.distrusted_until: float | None = None
        self.previous_seek_forward = True
        self.reset()

    def reset(self) -> None:
        """Forget the position and return to normal speed."""
        self.last_read = -1.0
        self.read_time: float | None = None
        self.last_emitted = -1.0
        self.speed = 1.0
        self.previous_seek_forward = True

    def _known_length(self) -> float | None:
        if self.length is not None and self.length > 0:
            return self.length
        return None

    def expected_at(self, now: float | None, state: MpState, mask_bad_states: bool) -> float:
        """Position expected at `now`; negative when unknown."""
        if mask_bad_states and state in _BAD_STATES:
            return -1.0

        position = self.last_read
        if position < 0:
            return position

        if state is MpState.PLAYING and now is not None and self.read_time is not None:
            offset = now - self.read_time
            if offset != 0:
                if offset < 0:
                    raise RuntimeError(
                        f"asked for the position at {now}, before it was read at {self.read_time}"
                    )
                if self.speed < 0.00001 or self.speed > 100:
                    raise RuntimeError(f"implausible playback speed {self.speed}")
                if offset > 1.0:
                    log.warning(
                        "adjusting position from %f: no position read in %f seconds? thats a lot...",
                        position,
                        offset,
                    )
                position += self.speed * offset

        length = self._known_length()
        if length is not None and length < position:
            if position - length < MAX_OVERFLOW_POSITION_TO_LENGTH_SEC:
                return length
            raise RuntimeError(
                f"current stream position {position} much larger than media {length}"
            )
        return position

    def read_at(self, position: float, now: float, expected: float) -> bool:
        """Record a position read at `now`; True when the change is worth reporting."""
        if position < 0:
            raise ValueError(f"negative stream position {position}")
        if position > MAX_SANE_POSITION_SEC:
            raise ValueError(f"stream position {position} is implausibly large")

        diff_to_expected = abs(expected - position)
        diff_to_last = abs(self.last_emitted - position)

        self.last_read = position
        self.read_time = now

        if (
            diff_to_expected > EMIT_POSITION_CHANGE_IF_LARGER_THAN_SEC
            or self.last_emitted == -1
            or diff_to_last > EMIT_POSITION_CHANGE_IF_LARGER_THAN_SEC
        ):
            self.last_emitted = position
            return True
        return False

    def distrust_until(self, when: float | None, forward: bool) -> None:
        """Distrust status lines until `when`, expecting movement in the given direction."""
        self.distrusted_until = when
        self.previous_seek_forward = forward

    def accept(self, reading: PositionReading, old_position: float, readtime: float) -> str:
        """Decide what to do with a reading: ACCEPT, IGNORE or RESYNC.

        RESYNC means a seek to `reading.seek_target` should be issued instead.
        """
        parsed = reading.position
        length = self._known_length()
        if length is not None and parsed > 0:
            near_end = (
                length - FORCE_STOP_SEC_BEFORE_END
                < parsed
                < length + MAX_OVERFLOW_POSITION_TO_LENGTH_SEC
            )
            if not near_end and length < parsed:
                raise RuntimeError(
                    f"parsed stream position {parsed} much larger than media {length}"
                )

        distrusting = self.distrusted_until is not None and self.distrusted_until > readtime

        if reading.seek_target is not None and reading.seek_target > 0:
            if reading.trusted or not distrusting:
                return RESYNC

        if self.distrusted_until is None:
            return ACCEPT
        if not distrusting:
            self.distrusted_until = None
            return ACCEPT

        if reading.trusted:
            log.debug("not ignoring read position %f - trusted input", parsed)
            return ACCEPT
        if self.previous_seek_forward and 0 <= old_position < parsed:
            self.distrusted_until = None
            return ACCEPT
        if not self.previous_seek_forward and old_position >= 0 and old_position > parsed:
            self.distrusted_until = None
            return ACCEPT
        if old_position >= 0 and abs(parsed - old_position) < TRUST_PARSED_POSITION_IF_CLOSER_THAN_SEC:
            self.distrusted_until = None
            return ACCEPT
        log.debug("ignoring read position %f - assuming %f is more true", parsed, old_position)
        return IGNORE