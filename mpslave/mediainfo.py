"""Media information gathered from the player's identification output."""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

_UNSET: Any = object()

_CROP_RE = re.compile(r"(\d+):(\d+):(\d+):(\d+)")


class MediaInfoError(Exception):
    """Raised when media information is used inconsistently."""


class Interlaced(Enum):
    """Whether the video is interlaced."""

    UNKNOWN = "unknown"
    PROGRESSIVE = "progressive"
    INTERLACED = "interlaced"


class CheckedValue(Generic[T]):
    """A value that must be set before it is read and can be sealed against change."""

    def __init__(self, name: str = "value", default: Any = _UNSET) -> None:
        self.name = name
        self._default = default
        self._value = default
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def set(self, value: T) -> None:
        if self._sealed:
            raise MediaInfoError(f"{self.name} is sealed and cannot be changed")
        self._value = value

    def force_set(self, value: T) -> None:
        self._value = value

    def get(self) -> T:
        if self._value is _UNSET:
            raise MediaInfoError(f"{self.name} is not set")
        return self._value

    def isset(self) -> bool:
        return self._value is not _UNSET

    def clear(self) -> None:
        self._value = self._default
        self._sealed = False

    def seal(self) -> None:
        self._sealed = True

    def unseal(self) -> None:
        self._sealed = False


@dataclass(frozen=True)
class CropRect:
    """Crop rectangle; a zero width or height means no cropping."""

    left: int
    top: int
    width: int
    height: int


_EMPTY_CROP = CropRect(0, 0, 0, 0)

_FIELD_DEFAULTS: dict[str, Any] = {
    "video_format": _UNSET,
    "video_bitrate": _UNSET,
    "width": _UNSET,
    "height": _UNSET,
    "dar": _UNSET,
    "par": _UNSET,
    "frames_per_second": _UNSET,
    "audio_format": _UNSET,
    "audio_bitrate": _UNSET,
    "sample_rate": _UNSET,
    "num_channels": _UNSET,
    "length": _UNSET,
    "seekable": _UNSET,
    "crop": _UNSET,
    "interlaced": Interlaced.UNKNOWN,
}


class _Field:
    """Attribute backed by a CheckedValue of the owning MediaInfo."""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: "MediaInfo | None", objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return obj._values[self.name].get()

    def __set__(self, obj: "MediaInfo", value: Any) -> None:
        obj._values[self.name].set(value)


class MediaInfo:
    """Properties of one media file as reported by the player."""

    video_format = _Field()
    video_bitrate = _Field()
    width = _Field()
    height = _Field()
    frames_per_second = _Field()
    audio_format = _Field()
    audio_bitrate = _Field()
    sample_rate = _Field()
    num_channels = _Field()
    length = _Field()
    seekable = _Field()
    interlaced = _Field()

    def __init__(self, description: str | None = None) -> None:
        if description is not None and not description:
            raise MediaInfoError("media info with empty description")
        self.description = description or ""
        self.tags: dict[str, str] = {}
        self._values: dict[str, CheckedValue[Any]] = {
            name: CheckedValue(name, default) for name, default in _FIELD_DEFAULTS.items()
        }
        self._aid_to_lang: dict[int, str] = {}
        self._sid_to_lang: dict[int, str] = {}
        self._lang_to_aid: dict[str, int] = {}
        self._lang_to_sid: dict[str, int] = {}
        self._finalized = False

    def __repr__(self) -> str:
        known = {n: v.get() for n, v in self._values.items() if v.isset()}
        return f"MediaInfo({self.description!r}, {known!r})"

    # lifecycle

    def clear(self) -> None:
        """Forget everything except the description."""
        self.tags.clear()
        self._aid_to_lang.clear()
        self._sid_to_lang.clear()
        self._lang_to_aid.clear()
        self._lang_to_sid.clear()
        for value in self._values.values():
            value.clear()
        self._finalized = False

    def copy(self) -> "MediaInfo":
        """Return an independent copy."""
        return copy.deepcopy(self)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def _require_finalized(self) -> None:
        if not self._finalized:
            raise MediaInfoError("trying to access media info that is not finalized")

    def _require_not_finalized(self) -> None:
        if self._finalized:
            raise MediaInfoError("trying to modify finalized media info")

    def finalize(self) -> None:
        """Seal all values; no more information is expected."""
        self._require_not_finalized()
        for value in self._values.values():
            value.seal()
        self._finalized = True

    def unfinalize(self) -> None:
        """Allow the values to change again."""
        for value in self._values.values():
            value.unseal()
        self._finalized = False

    # simple values

    def add_tag(self, key: str, value: str) -> None:
        self._require_not_finalized()
        self.tags[key] = value

    def set_size(self, width: int, height: int) -> None:
        self.width = width
        self.height = height

    def has_size(self) -> bool:
        return self._values["width"].isset() and self._values["height"].isset()

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def has_length(self) -> bool:
        return self._values["length"].isset()

    # cropping

    @property
    def crop(self) -> CropRect | None:
        value = self._values["crop"]
        return value.get() if value.isset() else None

    def set_crop(self, width: int, height: int, left: int, top: int) -> None:
        """Set the crop rectangle, checking it against the known frame size."""
        if width < 1:
            raise MediaInfoError(f"cropped width {width} too small")
        if height < 1:
            raise MediaInfoError(f"cropped height {height} too small")
        if left < 0:
            raise MediaInfoError(f"cropped left {left} too small")
        if top < 0:
            raise MediaInfoError(f"cropped top {top} too small")
        if self.has_size():
            mw, mh = self.size
            if mw < width:
                raise MediaInfoError(f"cropped width {width} > media width {mw}")
            if mh < height:
                raise MediaInfoError(f"cropped height {height} > media height {mh}")
            if left + width > mw:
                raise MediaInfoError(
                    f"cropped width {width} + left {left} > media width {mw}"
                )
            if top + height > mh:
                raise MediaInfoError(
                    f"cropped height {height} + top {top} > media height {mh}"
                )
        self._values["crop"].force_set(CropRect(left, top, width, height))

    def set_crop_string(self, text: str) -> None:
        """Set the crop from a "width:height:left:top" string; empty means none."""
        if not text:
            self._values["crop"].force_set(_EMPTY_CROP)
            return
        match = _CROP_RE.fullmatch(text)
        if match is None:
            log.warning("bad cropstring %s", text)
            self._values["crop"].force_set(_EMPTY_CROP)
            return
        width, height, left, top = (int(group) for group in match.groups())
        self.set_crop(width, height, left, top)

    @property
    def crop_left(self) -> int:
        crop = self.crop
        return 0 if crop is None else crop.left

    @property
    def crop_top(self) -> int:
        crop = self.crop
        return 0 if crop is None else crop.top

    @property
    def cropped_width(self) -> int:
        crop = self.crop
        if crop is None or crop.width == 0:
            return self.width
        return crop.width

    @property
    def cropped_height(self) -> int:
        crop = self.crop
        if crop is None or crop.height == 0:
            return self.height
        return crop.height

    @property
    def crop_right(self) -> int:
        if not self._values["width"].isset() or self.crop is None:
            return 0
        width = self.width
        if width == 0:
            return 0
        return width - self.crop_left - self.cropped_width

    @property
    def crop_bottom(self) -> int:
        if not self._values["height"].isset() or self.crop is None:
            return 0
        height = self.height
        if height == 0:
            return 0
        return height - self.crop_top - self.cropped_height

    # aspect ratio: DAR = w / h * PAR, PAR = DAR * h / w

    def set_dar(self, dar: float) -> None:
        if not 0.001 <= dar <= 100:
            raise MediaInfoError(f"{self.description}: display aspect ratio {dar} out of range")
        log.debug("%s: set_dar(%f)", self.description, dar)
        self._values["dar"].set(dar)

    def set_par(self, par: float) -> None:
        if not 0.001 <= par <= 100:
            raise MediaInfoError(f"{self.description}: pixel aspect ratio {par} out of range")
        log.debug("%s: set_par(%f)", self.description, par)
        self._values["par"].set(par)

    def has_aspect_ratio(self) -> bool:
        return self._values["par"].isset() or self._values["dar"].isset()

    def _check_aspect_consistency(self) -> None:
        dar_value, par_value = self._values["dar"], self._values["par"]
        if dar_value.isset() and par_value.isset():
            d, p = dar_value.get(), par_value.get()
            w, h = self.width, self.height
            if abs(p * w - d * h) > 5:
                raise MediaInfoError(
                    f"pixel aspect ratio {p} does not match display aspect ratio {d} at {w}x{h}"
                )

    @property
    def par(self) -> float:
        """Pixel aspect ratio, derived from the display ratio if needed."""
        self._check_aspect_consistency()
        if self._values["par"].isset():
            return self._values["par"].get()
        if self._values["dar"].isset():
            return self._values["dar"].get() * self.height / self.width
        return 1.0

    @property
    def dar(self) -> float:
        """Display aspect ratio, derived from the pixel ratio or frame size."""
        self._check_aspect_consistency()
        if self._values["dar"].isset():
            return self._values["dar"].get()
        if self._values["par"].isset():
            return self._values["par"].get() * self.width / self.height
        return float(self.width // self.height)

    def display_size(self) -> tuple[int, int]:
        """Frame size with the width scaled by the pixel aspect ratio."""
        width, height = self.size
        return (int(width * self.par), height)

    # audio and subtitle tracks

    def add_alang(self, aid: int, lang: str) -> None:
        self._require_not_finalized()
        self._aid_to_lang[aid] = lang
        self._lang_to_aid.setdefault(lang, aid)

    def add_slang(self, sid: int, lang: str) -> None:
        self._require_not_finalized()
        self._sid_to_lang[sid] = lang
        self._lang_to_sid.setdefault(lang, sid)

    def alang_to_aid(self, lang: str) -> int:
        """First audio track id with this language, or -1."""
        self._require_finalized()
        return self._lang_to_aid.get(lang, -1)

    def aid_to_alang(self, aid: int) -> str:
        if aid < 0:
            return "MUTE"
        return self._aid_to_lang.get(aid, "UNKNOWN")

    def highest_aid(self) -> int:
        if not self._aid_to_lang:
            raise MediaInfoError("no audio tracks known")
        return max(self._aid_to_lang)

    def slang_to_sid(self, lang: str) -> int:
        """First subtitle track id with this language, or -1."""
        self._require_finalized()
        return self._lang_to_sid.get(lang, -1)