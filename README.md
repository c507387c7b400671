# mpslave

`mpslave` holds the control logic for a media player that is driven
through a line-based slave interface. It builds the commands that go to
the player, paces how quickly they are written, parses what the player
prints back, tracks the playback position and keeps the player's state.

You own the player process, a pipe or a test double. `mpslave` gives you
the bytes to write to it and interprets what it prints.

## Installation

```
pip install mpslave
```

The package needs nothing outside the standard library.

## Modules

- `mpslave.state` has the `MpState` enumeration: `NOT_STARTED`, `IDLE`,
  `LOADING`, `STOPPED`, `PLAYING`, `BUFFERING`, `PAUSED` and `ERROR`.
  Each member has a `description` such as `"PlayingState"`.
  `describe()` and `state_from_index()` work from a state or its numeric
  index.
- `mpslave.mediainfo` has `MediaInfo`, which describes the loaded medium:
  - size (`set_size`, `size`, `has_size`);
  - length (`length`, `has_length`);
  - aspect ratios (`set_dar`, `set_par`, the `dar` and `par` properties,
    `display_size`);
  - the crop rectangle (`set_crop`, and `set_crop_string` with
    `"w:h:x:y"`, plus `crop_left`, `crop_right` and the other crop
    properties);
  - tags;
  - audio and subtitle tracks (`add_alang`, `add_slang`,
    `alang_to_aid`, `aid_to_alang`, `highest_aid`, `slang_to_sid`).

  Values are held in `CheckedValue` slots. Reading a slot before it is
  set raises `MediaInfoError`, and so does changing one after
  `finalize()`. `unfinalize()` allows changes again.
- `mpslave.commands` has:
  - the `Command` entries (`Command.string`, `Command.seek`,
    `Command.osd_location`, `Command.delay_for`);
  - `SeekMode`;
  - `compute_seek_target()`, which returns a whole second, `0` at or
    before the start, `-1` when the target cannot be computed and `-2`
    past the end;
  - `format_duration()` and `osd_location_command()`;
  - the `WriteScheduler` queue, whose `allowed_to_write(now)` returns
    whether the next command may be written and why.
- `mpslave.parser` has:
  - `LineSplitter`, which turns raw output bytes into lines split at CR
    or LF;
  - `is_noise()`, `is_statusline()` and `default_ignore_pattern()`;
  - `OutputParser`, which turns output lines into `ParseEvents` (new
    states, position lines, error reasons, speeds, mute and audio-track
    answers) and fills in the `MediaInfo` from `IDENTIFY: ID_...` lines.
- `mpslave.position` has `parse_position_line()` for time answers and
  status lines. It also has `PositionTracker`, which extrapolates the
  position between reports and ignores stale status lines for a short
  while after a seek or load.
- `mpslave.fstypes` has the filesystem magic numbers with `fs_name()`,
  `is_remote_magic()` and `is_local_magic()`.
- `mpslave.player` has `Player`, which ties the other modules together.
  It also has `IOChannel`, `IoLogEntry` and `PlayerError`.

## Example

```python
from mpslave.mediainfo import MediaInfo
from mpslave.player import IOChannel, Player
from mpslave.state import MpState

info = MediaInfo("movie")
player = Player(info)              # pass write=... to send bytes somewhere

args = player.build_arguments(0, ["-volume", "100"])
# start the player program yourself with `args` and connect its pipes

player.started()
player.load("/videos/movie.mkv")
print(player.outbox)               # [b'loadfile "/videos/movie.mkv"\n']

player.feed(b"IDENTIFY: ID_LENGTH=5400.0\n", IOChannel.OUTPUT)
player.feed(b"GLOBAL: ANS_metadata=\n", IOChannel.OUTPUT)
assert player.state is MpState.PLAYING

player.seek_relative(30)
player.pause()
player.quit()
```

When no `write` callable is given, written commands collect in
`player.outbox`. Callbacks can be attached:

- `on_state_changed(old, new)`;
- `on_position_changed(position)`;
- `on_error(reason, last_position)`;
- `on_seeked(target)`;
- `on_load_done()`.

Call `player.heartbeat()` about every 200 ms while `player.heartbeat_active`
is true. It writes queued commands and turns long silences from the
player into the `ERROR` state. `player.check_loading_timeout()` does the
same when loading has taken more than five seconds.
`player.process_finished(exit_code, crashed)` reports that the process
has ended.

## What the package does not do

- It does not start, watch or kill the player program. You run the
  process and pass its output to `Player.feed`.
- It has no video window or other user interface.
- It does not detect crop borders.
- It does not switch a screensaver on or off. It only reports
  `screensaver_should_be_active()`.
- It does not call `statfs`. `fstypes` only names the magic numbers you
  give it.

## Running the tests

```
pip install -e ".[test]"
pytest
```