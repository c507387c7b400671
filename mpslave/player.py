"""Driving the slave-mode media player: commands out, output in, state and position."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Flag

from .commands import (
    OUTPUT_QUEUE_MAX_SIZE,
    Command,
    CommandType,
    SeekMode,
    WriteScheduler,
    compute_seek_target,
    osd_location_command,
)
from .mediainfo import MediaInfo
from .parser import LineSplitter, OutputParser
from .position import (
    IGNORE,
    IGNORE_STATUSLINE_AFTER_LOAD_SEC,
    IGNORE_STATUSLINE_AFTER_SEEK_SEC,
    RESYNC,
    PositionTracker,
    parse_position_line,
)
from .state import MpState

log = logging.getLogger(__name__)

# fail if we are not playing that many seconds after loading a file
MAX_TIME_FOR_LOADING_FILE_SEC = 5.0
# we expect to read something that many ms after a write
EXPECT_READ_AFTER_WRITE_MS = 400
# ignore slider seeks closer than this to the current position
IGNORE_SEEKS_FROM_SLIDER_CLOSER_THAN_SEC = 5.0
# factor for speeding up and slowing down
SPEED_MULTIPLIER = 2.0
# in these states a read is expected every so many ms
EXPECT_READ_EVERY_MS: dict[MpState, int] = {
    MpState.LOADING: 400,
    MpState.PLAYING: 400,
    MpState.BUFFERING: 400,
}

_ACTIVE_STATES = frozenset({MpState.PLAYING, MpState.LOADING, MpState.BUFFERING})
_NO_POSITION_STATES = frozenset(
    {MpState.ERROR, MpState.IDLE, MpState.LOADING, MpState.NOT_STARTED, MpState.STOPPED}
)
_GET_TIME_POS = "pausing_keep_force get_time_pos"


class IOChannel(Flag):
    """Direction of a logged line."""

    INPUT = 1
    OUTPUT = 2
    ERROR = 4


@dataclass(frozen=True)
class IoLogEntry:
    """One line written to or read from the player."""

    line: str
    channel: IOChannel
    time: float


class PlayerError(Exception):
    """Raised when the player is used in a way that cannot work."""


def _number(value: float) -> str:
    return f"{value:g}"


def _cycle_alang(highest: int, current: int) -> int:
    if current < 0:
        return 0
    if current >= highest:
        return -2
    return current + 1


class Player:
    """State machine for one player process speaking the slave protocol.

    Bytes for the process go to `write`; its output is handed to `feed`.
    Without a `write` callable the bytes are collected in `outbox`.
    """

    def __init__(
        self,
        media_info: MediaInfo | None = None,
        write: Callable[[bytes], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.media_info = media_info if media_info is not None else MediaInfo()
        self.outbox: list[bytes] = []
        self._write = write if write is not None else self.outbox.append
        self._clock = clock
        self.mplayer_path = "mplayer"
        self.video_output = "gl"
        self.arguments: list[str] = []
        self.state = MpState.NOT_STARTED
        self.running = False

        self.on_state_changed: Callable[[MpState, MpState], None] | None = None
        self.on_position_changed: Callable[[float], None] | None = None
        self.on_error: Callable[[str, float], None] | None = None
        self.on_seeked: Callable[[float], None] | None = None
        self.on_load_done: Callable[[], None] | None = None

        self.accumulator_mode = IOChannel.INPUT | IOChannel.OUTPUT
        self._acc_maxlines = 0
        self._acc_ignore: re.Pattern[str] | None = None
        self._acc: list[IoLogEntry] = []

        self._queue = WriteScheduler()
        self._parser = OutputParser(self.media_info, enabled=False)
        self._positions = PositionTracker()
        self._splitters = {IOChannel.OUTPUT: LineSplitter(), IOChannel.ERROR: LineSplitter()}
        self._loading_started: float | None = None
        self.max_read_latency_ms: dict[MpState, float] = {}
        self.max_write_latency_ms = -1.0
        self.max_queue_latency_ms = -1.0
        self._reset()

    # bookkeeping

    def _reset(self) -> None:
        self._acc.clear()
        self._positions.reset()
        self.muted = False
        self.stopped_because_of_long_seek = False
        self.max_read_latency_ms.clear()
        self.max_write_latency_ms = -1.0
        self.max_queue_latency_ms = -1.0
        self._parser.enabled = False
        self.current_aid = 0

    def _length(self) -> float | None:
        return self.media_info.length if self.media_info.has_length() else None

    @property
    def speed(self) -> float:
        return self._positions.speed

    @property
    def accumulated_output(self) -> list[IoLogEntry]:
        return list(self._acc)

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def heartbeat_active(self) -> bool:
        """Whether the heartbeat should currently be called regularly."""
        return self.state in _ACTIVE_STATES or bool(self._queue)

    def _accumulate(self, entry: IoLogEntry) -> None:
        self._acc.append(entry)
        self._trim_acc()

    def _trim_acc(self) -> None:
        excess = len(self._acc) - self._acc_maxlines
        if excess > 0:
            del self._acc[:excess]

    def set_accumulated_output_maxlines(self, maxlines: int) -> None:
        self._acc_maxlines = maxlines
        self._trim_acc()

    def set_output_accumulator_ignore(self, pattern: str | re.Pattern[str] | None) -> None:
        """Lines matching `pattern` are not accumulated; None or "" ignores nothing."""
        if pattern is None or pattern == "":
            self._acc_ignore = None
        elif isinstance(pattern, re.Pattern):
            self._acc_ignore = pattern
        else:
            self._acc_ignore = re.compile(pattern)

    # process lifecycle

    def build_arguments(self, window_id: int, extra_args: Iterable[str] = ()) -> list[str]:
        """Command line arguments for starting the player in idle slave mode."""
        args = [
            "-slave", "-idle", "-noquiet", "-v", "-identify", "-nomouseinput",
            "-nokeepaspect", "-nostop-xscreensaver", "-msgmodule", "-msglevel",
            "all=9:demux=5:decvideo=5:header=5:spudec=5",
            "-wid", str(window_id),
        ]
        if self.video_output:
            args += ["-vo", self.video_output]
            if "vdpau" in self.video_output:
                args += ["-vc", "ffmpeg12vdpau,ffwmv3vdpau,ffvc1vdpau,ffh264vdpau,ffodivxvdpau,"]
        args += list(extra_args)
        self.arguments = args
        return args

    def started(self) -> None:
        """The process has been started; it now idles."""
        self._reset()
        self.running = True
        self._change_state(MpState.IDLE, self._clock())

    def process_finished(self, exit_code: int, crashed: bool) -> None:
        """The process has ended."""
        now = self._clock()
        self.running = False
        if crashed:
            self._change_to_error("mplayer crashed", now)
        elif exit_code != 0:
            self._change_to_error(f"mplayer failed with code {exit_code}", now)
        else:
            self._change_state(MpState.NOT_STARTED, now)

    def quit(self) -> None:
        """Ask the player to quit and forget everything about it."""
        if self.running:
            self._force("quit")
            self._queue.clear()
            self.running = False
        self._flush_output()
        self._queue.clear()
        self._reset()

    # state changes

    def _emit_state(self, old: MpState, new: MpState) -> None:
        if self.on_state_changed is not None:
            self.on_state_changed(old, new)

    def _change_state(self, new: MpState, now: float) -> None:
        if new is MpState.ERROR:
            raise PlayerError("use the error path to enter the error state")
        old = self.state
        if old is new:
            return
        log.debug("state changed from %s to %s", old.description, new.description)
        self._queue.mark_read(now)
        self.state = new
        if new is MpState.NOT_STARTED:
            self._reset()
        if MpState.PLAYING in (old, new):
            self._positions.read_time = None
        self._emit_state(old, new)

    def _change_to_error(self, comment: str, now: float) -> None:
        old = self.state
        if old is MpState.ERROR:
            return
        log.debug("state changed from %s to ErrorState: %s", old.description, comment)
        self._queue.mark_read(now)
        self.state = MpState.ERROR
        self._emit_state(old, MpState.ERROR)
        if self.on_error is not None:
            self.on_error(comment, self._positions.last_read)
        self._reset()

    # writing

    def _command_text(self, command: Command) -> str:
        if command.kind is CommandType.STRING:
            return command.text
        if command.kind is CommandType.SEEK:
            old = self.current_expected_position(False)
            newpos = compute_seek_target(command.seek_target, command.seek_mode, old, self._length())
            if newpos < -1.5:
                log.debug("seeking past end, will stop now")
                self.stopped_because_of_long_seek = True
                self._stop_pending = True
                return ""
            if newpos < -0.5:
                return ""
            now = self._clock()
            self._read_position(newpos, now)
            self._positions.distrust_until(now + IGNORE_STATUSLINE_AFTER_SEEK_SEC, newpos > old)
            return f"seek {_number(newpos)} 2"
        if command.kind is CommandType.OSD_SHOW_LOCATION:
            return osd_location_command(self._length())
        return ""

    def _write_one(self, now: float, reason: str) -> None:
        if not self._queue:
            return
        command = self._queue.pop()
        self._stop_pending = False
        text = self._command_text(command)
        if self._stop_pending:
            self._stop_pending = False
            self.stop()
            return
        if not text:
            return
        queue_ms = (now - command.created) * 1000.0
        self.max_queue_latency_ms = max(self.max_queue_latency_ms, queue_ms)
        log.debug('in: "%s" [%s] (%d msec in queue)', text, reason, queue_ms)
        self._queue.mark_written(now)
        self._write(text.encode() + b"\n")
        if IOChannel.INPUT in self.accumulator_mode and self._acc_maxlines > 0:
            self._accumulate(IoLogEntry(text, IOChannel.INPUT, now))
        if command.kind is CommandType.SEEK and self.on_seeked is not None:
            target = compute_seek_target(
                command.seek_target, command.seek_mode,
                self.current_expected_position(False), self._length(),
            )
            self.on_seeked(target)

    def _force(self, text: str) -> None:
        now = self._clock()
        self._queue.prepend(Command.string(text, now))
        self._write_one(now, "forcing")

    def try_to_write(self) -> None:
        """Write queued commands as long as the pacing allows it."""
        while self._queue:
            now = self._clock()
            allowed, reason = self._queue.allowed_to_write(now)
            if not allowed:
                log.debug("try_to_write: %s", reason)
                return
            self._write_one(now, reason)

    def submit(self, command: Command | str) -> None:
        """Queue a command (or plain command text) and write what may be written."""
        if isinstance(command, str):
            command = Command.string(command, self._clock())
        self._queue.enqueue(command)
        self.try_to_write()
        if len(self._queue) <= OUTPUT_QUEUE_MAX_SIZE:
            return
        log.warning("output queue size is %d! Will try to empty it", len(self._queue))
        while self._queue:
            self._write_one(self._clock(), "too large output queue")

    # playback control

    def load(self, url: str) -> None:
        """Load a file and start playing it."""
        if not self.running:
            raise PlayerError("player process not started yet")
        self._queue.clear()
        if self.state in (MpState.PAUSED, MpState.PLAYING):
            self.submit("pausing_keep_force pt_step 1")
        elif self.state is MpState.STOPPED:
            self.submit("get_property pause")
        sep = '"'
        if sep in url:
            sep = "'"
            if sep in url:
                raise PlayerError(f"bad url {url}: contains both single and double quote")
        self._reset()
        self._change_state(MpState.LOADING, self._clock())
        self._reset()
        self._parser.enabled = True
        self.submit(f"loadfile {sep}{url}{sep}")
        now = self._clock()
        self._loading_started = now
        self._positions.distrust_until(now + IGNORE_STATUSLINE_AFTER_LOAD_SEC, True)

    def check_loading_timeout(self) -> bool:
        """Enter the error state if loading takes too long; True if it did."""
        if self.state is not MpState.LOADING or self._loading_started is None:
            return False
        now = self._clock()
        elapsed = now - self._loading_started
        if elapsed < MAX_TIME_FOR_LOADING_FILE_SEC:
            return False
        self._change_to_error(f"playback did not start, waited {int(elapsed * 1000)} msecs", now)
        return True

    def pause(self) -> None:
        if self.state is MpState.PLAYING:
            self.submit("pause")
            self._change_state(MpState.PAUSED, self._clock())
        self.submit("pausing_keep_force get_property pause")
        self.submit(_GET_TIME_POS)

    def play(self) -> None:
        if self.state is MpState.PAUSED:
            self.submit("pause")
            self._change_state(MpState.PLAYING, self._clock())
        self.submit("pausing_keep_force get_property pause")
        self.submit(_GET_TIME_POS)

    def stop(self) -> None:
        self._queue.clear()
        self._force("stop")
        self._parser.enabled = False
        self._flush_output()
        self._change_state(MpState.STOPPED, self._clock())

    def _core_seek(self, offset: float, mode: SeekMode) -> None:
        self.submit(Command.seek(mode, offset, self._clock()))
        self.submit(_GET_TIME_POS)

    def seek_from_slider(self, position: int) -> None:
        current = self._expected_at(self._clock(), False)
        if abs(current - position) < IGNORE_SEEKS_FROM_SLIDER_CLOSER_THAN_SEC:
            log.debug("seek(%d) from the slider but already at %f", position, current)
            return
        self._core_seek(float(position), SeekMode.ABSOLUTE)

    def seek_relative(self, offset: float) -> None:
        self._core_seek(offset, SeekMode.RELATIVE)

    def seek_absolute(self, position: float) -> None:
        self._core_seek(position, SeekMode.ABSOLUTE)

    def show_location(self) -> None:
        self.submit(Command.osd_location(self._clock()))

    def mute(self) -> None:
        self.submit("mute 1")
        self.muted = True
        self.submit("get_property mute")

    def unmute(self) -> None:
        self.submit("mute 0")
        self.muted = False
        self.submit("get_property mute")

    def _change_speed(self, factor: float, back_to_normal: bool) -> None:
        if back_to_normal:
            self.submit("speed_set 1.0")
            if self.muted:
                self.unmute()
        else:
            if not self.muted:
                self.mute()
            self.submit(f"speed_mult {_number(factor)}")
        self.submit("get_property speed")

    def speed_up(self) -> None:
        speed = self.speed
        if self.state is not MpState.PLAYING or speed > 100:
            return
        self._change_speed(SPEED_MULTIPLIER, 1.0 / SPEED_MULTIPLIER < speed < 1.0)

    def slow_down(self) -> None:
        speed = self.speed
        if self.state is not MpState.PLAYING or speed <= 0.01:
            return
        self._change_speed(1.0 / SPEED_MULTIPLIER, 1.0 < speed < SPEED_MULTIPLIER)

    def _found_read_speed(self, speed: float) -> None:
        if abs(self.speed - speed) > 0.01:
            if abs(speed - 1.0) < 0.01:
                if self.muted:
                    self.unmute()
            elif not self.muted:
                self.mute()
        self._positions.speed = speed

    # reading

    def _flush_output(self) -> None:
        for channel, splitter in self._splitters.items():
            lines = splitter.flush()
            if lines:
                self._process_lines(lines, channel, self._clock())

    def feed(self, data: bytes, channel: IOChannel = IOChannel.OUTPUT) -> None:
        """Hand output read from the player's stdout or stderr."""
        if channel not in self._splitters:
            raise PlayerError(f"cannot read from channel {channel}")
        if not data:
            return
        lines = self._splitters[channel].feed(data)
        self._process_lines(lines, channel, self._clock())

    def _update_last_read(self, readtime: float) -> None:
        last_read, last_write = self._queue.last_read, self._queue.last_write
        if last_read is not None:
            msecs = (readtime - last_read) * 1000.0
            if msecs < 0:
                raise PlayerError("read time lies before the previous read")
            previous = self.max_read_latency_ms.get(self.state, -1.0)
            self.max_read_latency_ms[self.state] = max(previous, msecs)
            if last_write is not None and last_write > last_read:
                self.max_write_latency_ms = max(
                    self.max_write_latency_ms, (readtime - last_write) * 1000.0
                )
        self._queue.mark_read(readtime)

    def _process_lines(self, lines: list[str], channel: IOChannel, readtime: float) -> None:
        found_valid = False
        for line in lines:
            log.debug("%s: \"%s\"", "out" if channel is IOChannel.OUTPUT else "err", line)
            if (
                self._acc_maxlines > 0
                and channel in self.accumulator_mode
                and (self._acc_ignore is None or self._acc_ignore.search(line) is None)
            ):
                self._accumulate(IoLogEntry(line, channel, readtime))
            if ": [" not in line:
                found_valid = True
        if found_valid:
            self._update_last_read(readtime)

        events = self._parser.parse_lines(lines, self.state)
        if events.muted is not None:
            self.muted = events.muted
        if events.audio_id is not None:
            self.current_aid = events.audio_id
        if events.load_done and self.on_load_done is not None:
            self.on_load_done()
        if events.new_states:
            self._change_state(events.new_states[-1], readtime)
        if events.position_lines:
            self._parse_position(events.position_lines[-1], readtime)
        if events.error_reasons:
            self._change_to_error(", ".join(events.error_reasons), readtime)
        if events.speeds:
            self._found_read_speed(events.speeds[-1])
        if events.ask_for_metadata and self.state in (MpState.LOADING, MpState.BUFFERING):
            self.submit("get_property metadata")
        if found_valid and self._queue:
            self.try_to_write()

    def _parse_position(self, line: str, readtime: float) -> None:
        if self.state in _NO_POSITION_STATES:
            return
        old = self.current_expected_position(False)
        reading = parse_position_line(line, self.speed)
        if reading is None:
            return
        self._positions.length = self._length()
        decision = self._positions.accept(reading, old, readtime)
        if decision == RESYNC:
            text = self._command_text(
                Command.seek(SeekMode.ABSOLUTE, reading.seek_target, readtime)
            )
            if text:
                self._force(text)
            self._force(_GET_TIME_POS)
            return
        if decision == IGNORE:
            return
        self._read_position(reading.position, readtime)

    def _read_position(self, position: float, now: float) -> None:
        expected = self.current_expected_position(False)
        if self._positions.read_at(position, now, expected) and self.on_position_changed:
            self.on_position_changed(position)

    # heartbeat

    def heartbeat(self) -> None:
        """Write what may be written and check that the player still answers."""
        self.try_to_write()
        now = self._clock()
        last_read, last_write = self._queue.last_read, self._queue.last_write
        if last_read is None or last_write is None:
            return
        read_ms = (now - last_read) * 1000.0
        if read_ms < 0:
            raise PlayerError("last read lies in the future")
        max_latency = EXPECT_READ_EVERY_MS.get(self.state, -1)
        if max_latency > 0:
            if max_latency * 10 < read_ms:
                self._change_to_error(
                    f"{self.state.description}: found read latency of {int(read_ms)} ms", now
                )
            elif max_latency < read_ms:
                log.warning("%s: found read latency of %d ms", self.state.description, read_ms)
        if last_write > last_read:
            write_ms = (now - last_write) * 1000.0
            if EXPECT_READ_AFTER_WRITE_MS * 10 < write_ms:
                self._change_to_error(
                    f"{self.state.description}: found write latency of {int(write_ms)} ms", now
                )
            elif EXPECT_READ_AFTER_WRITE_MS < write_ms:
                log.warning("%s: found write latency of %d ms", self.state.description, write_ms)

    # positions

    def _expected_at(self, now: float | None, mask_bad_states: bool) -> float:
        self._positions.length = self._length()
        return self._positions.expected_at(now, self.state, mask_bad_states)

    def current_expected_position(self, mask_bad_states: bool = False) -> float:
        """Position expected now; negative when unknown."""
        now = self._clock() if self.state is MpState.PLAYING else None
        return self._expected_at(now, mask_bad_states)

    def last_position_read(self) -> float:
        if self.stopped_because_of_long_seek:
            length = self._length()
            if length is not None and length > 0:
                return length
        return self._positions.last_read

    # audio tracks

    def assume_aid(self, aid: int) -> None:
        log.debug("assuming AID will be %d (%s)", aid, self.media_info.aid_to_alang(aid))
        self.current_aid = aid

    def assume_next_aid(self) -> int:
        nxt = _cycle_alang(self.media_info.highest_aid(), self.current_aid)
        self.current_aid = nxt
        return nxt

    def find_next_alang_not_in(self, forbidden: Iterable[str]) -> int:
        """Next audio track whose language is not forbidden; -11 if there is none."""
        forbidden = set(forbidden)
        highest = self.media_info.highest_aid()
        nxt = _cycle_alang(highest, self.current_aid)
        if not forbidden:
            return nxt
        while nxt != self.current_aid:
            if self.media_info.aid_to_alang(nxt) not in forbidden:
                return nxt
            nxt = _cycle_alang(highest, nxt)
        current_lang = self.media_info.aid_to_alang(self.current_aid)
        if current_lang not in forbidden and self.current_aid != -2:
            return -11
        return _cycle_alang(highest, self.current_aid)

    def screensaver_should_be_active(self) -> bool:
        return self.state not in _ACTIVE_STATES