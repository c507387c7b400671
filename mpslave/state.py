"""Player states of the slave-mode media player."""

from __future__ import annotations

from enum import IntEnum


class MpState(IntEnum):
    """State of the player process, in the order of its numeric index."""

    NOT_STARTED = 0
    IDLE = 1
    LOADING = 2
    STOPPED = 3
    PLAYING = 4
    BUFFERING = 5
    PAUSED = 6
    ERROR = 7

    @property
    def description(self) -> str:
        """Short ASCII name used in log messages."""
        return _DESCRIPTIONS[self]


_DESCRIPTIONS: dict[MpState, str] = {
    MpState.NOT_STARTED: "NotStartedState",
    MpState.IDLE: "IdleState",
    MpState.LOADING: "LoadingState",
    MpState.STOPPED: "StoppedState",
    MpState.PLAYING: "PlayingState",
    MpState.BUFFERING: "BufferingState",
    MpState.PAUSED: "PausedState",
    MpState.ERROR: "ErrorState",
}


def state_from_index(index: int) -> MpState:
    """Return the state with the given numeric index."""
    try:
        return MpState(index)
    except ValueError:
        raise ValueError(f"no player state with index {index!r}") from None


def describe(state: MpState | int) -> str:
    """Return the ASCII description of a state or of a state index."""
    return _DESCRIPTIONS[state_from_index(state)]