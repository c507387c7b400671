import logging

import pytest

from mpslave.mediainfo import (
    CheckedValue,
    CropRect,
    Interlaced,
    MediaInfo,
    MediaInfoError,
)


# CheckedValue


def test_checked_value_unset_get_raises():
    value = CheckedValue("width")
    assert value.isset() is False
    with pytest.raises(MediaInfoError):
        value.get()


def test_checked_value_set_get():
    value = CheckedValue("width")
    value.set(640)
    assert value.isset() is True
    assert value.get() == 640


def test_checked_value_seal_blocks_set_but_not_force_set():
    value = CheckedValue("width")
    value.set(1)
    value.seal()
    with pytest.raises(MediaInfoError):
        value.set(2)
    value.force_set(3)
    assert value.get() == 3
    value.unseal()
    value.set(4)
    assert value.get() == 4


def test_checked_value_clear_restores_default():
    value = CheckedValue("interlaced", Interlaced.UNKNOWN)
    value.set(Interlaced.PROGRESSIVE)
    value.seal()
    value.clear()
    assert value.get() is Interlaced.UNKNOWN
    assert value.sealed is False


# construction and lifecycle


def test_empty_description_rejected():
    with pytest.raises(MediaInfoError):
        MediaInfo("")


def test_unset_values_raise():
    info = MediaInfo("movie")
    assert info.description == "movie"
    with pytest.raises(MediaInfoError):
        _ = info.width
    assert info.has_size() is False
    assert info.has_length() is False


def test_size_round_trip():
    info = MediaInfo()
    info.set_size(640, 480)
    assert info.has_size() is True
    assert info.size == (640, 480)
    assert info.width == 640
    assert info.height == 480


def test_interlaced_default_survives_clear():
    info = MediaInfo()
    assert info.interlaced is Interlaced.UNKNOWN
    info.interlaced = Interlaced.INTERLACED
    assert info.interlaced is Interlaced.INTERLACED
    info.clear()
    assert info.interlaced is Interlaced.UNKNOWN


def test_finalize_seals_values():
    info = MediaInfo()
    info.width = 320
    info.finalize()
    assert info.finalized is True
    with pytest.raises(MediaInfoError):
        info.width = 640
    with pytest.raises(MediaInfoError):
        info.add_tag("title", "x")
    with pytest.raises(MediaInfoError):
        info.finalize()
    info.unfinalize()
    info.width = 640
    assert info.width == 640
    assert info.finalized is False


def test_clear_resets_everything_but_description():
    info = MediaInfo("movie")
    info.add_tag("title", "Example")
    info.length = 12.5
    info.finalize()
    info.clear()
    assert info.tags == {}
    assert info.has_length() is False
    assert info.finalized is False
    assert info.description == "movie"


def test_copy_is_independent():
    info = MediaInfo("movie")
    info.add_tag("title", "Example")
    info.length = 12.5
    other = info.copy()
    other.add_tag("artist", "Someone")
    other.length = 99.0
    assert info.tags == {"title": "Example"}
    assert info.length == 12.5
    assert other.tags["title"] == "Example"


# cropping


def test_crop_string_parsed():
    info = MediaInfo()
    info.set_crop_string("100:50:10:5")
    assert info.crop == CropRect(left=10, top=5, width=100, height=50)
    assert info.crop_left == 10
    assert info.crop_top == 5
    assert info.cropped_width == 100
    assert info.cropped_height == 50


def test_crop_margins_add_up_to_frame():
    info = MediaInfo()
    info.set_size(200, 100)
    info.set_crop_string("100:50:10:5")
    assert info.crop_left + info.cropped_width + info.crop_right == info.width
    assert info.crop_top + info.cropped_height + info.crop_bottom == info.height


def test_crop_without_size_has_no_right_margin():
    info = MediaInfo()
    info.set_crop(100, 50, 10, 5)
    assert info.crop_right == 0
    assert info.crop_bottom == 0


def test_no_crop_uses_full_frame():
    info = MediaInfo()
    info.set_size(320, 240)
    assert info.crop is None
    assert info.crop_left == 0
    assert info.crop_right == 0
    assert info.cropped_width == 320
    assert info.cropped_height == 240


@pytest.mark.parametrize("text", ["", "garbage", "1:2:3", "-1:2:3:4"])
def test_empty_or_bad_crop_string_means_no_crop(text):
    info = MediaInfo()
    info.set_size(320, 240)
    info.set_crop_string(text)
    assert info.crop == CropRect(0, 0, 0, 0)
    assert info.cropped_width == 320
    assert info.cropped_height == 240
    assert info.crop_right == 0


def test_bad_crop_string_warns(caplog):
    info = MediaInfo()
    with caplog.at_level(logging.WARNING):
        info.set_crop_string("garbage")
    assert "garbage" in caplog.text


@pytest.mark.parametrize(
    "width, height, left, top",
    [
        (0, 50, 0, 0),
        (50, 0, 0, 0),
        (50, 50, -1, 0),
        (50, 50, 0, -1),
        (200, 50, 0, 0),
        (50, 200, 0, 0),
        (80, 50, 30, 0),
        (50, 80, 0, 30),
    ],
)
def test_invalid_crop_raises(width, height, left, top):
    info = MediaInfo()
    info.set_size(100, 100)
    with pytest.raises(MediaInfoError):
        info.set_crop(width, height, left, top)


# aspect ratio


def test_default_par_is_one():
    info = MediaInfo()
    info.set_size(720, 576)
    assert info.has_aspect_ratio() is False
    assert info.par == 1.0


def test_dar_without_aspect_uses_integer_ratio():
    info = MediaInfo()
    info.set_size(1920, 1080)
    assert info.dar == 1.0


@pytest.mark.parametrize("bad", [0.0005, 101.0])
def test_aspect_out_of_range(bad):
    info = MediaInfo()
    with pytest.raises(MediaInfoError):
        info.set_dar(bad)
    with pytest.raises(MediaInfoError):
        info.set_par(bad)


def test_dar_par_round_trip():
    info = MediaInfo()
    info.set_size(720, 576)
    info.set_dar(16 / 9)
    assert info.has_aspect_ratio() is True
    other = MediaInfo()
    other.set_size(720, 576)
    other.set_par(info.par)
    assert other.dar == pytest.approx(16 / 9)


def test_consistent_dar_and_par_accepted():
    info = MediaInfo()
    info.set_size(720, 576)
    info.set_dar(16 / 9)
    info.set_par(info.par)
    assert info.dar == pytest.approx(16 / 9)


def test_inconsistent_dar_and_par_raise():
    info = MediaInfo()
    info.set_size(720, 576)
    info.set_dar(16 / 9)
    assert info.dar == pytest.approx(16 / 9)
    assert info.has_aspect_ratio() is True
    info.set_par(3.0)
    with pytest.raises(MediaInfoError):
        _ = info.dar
    with pytest.raises(MediaInfoError):
        _ = info.par


def test_display_size_square_pixels():
    info = MediaInfo()
    info.set_size(640, 480)
    assert info.display_size() == info.size


def test_display_size_wide_pixels():
    info = MediaInfo()
    info.set_size(100, 50)
    info.set_par(2.0)
    assert info.display_size() == (200, 50)


# languages


def test_audio_languages():
    info = MediaInfo()
    info.add_alang(1, "eng")
    info.add_alang(2, "ger")
    info.add_alang(3, "eng")
    info.finalize()
    assert info.alang_to_aid("eng") == 1
    assert info.alang_to_aid("ger") == 2
    assert info.alang_to_aid("fra") == -1
    assert info.aid_to_alang(3) == "eng"
    assert info.aid_to_alang(-1) == "MUTE"
    assert info.aid_to_alang(9) == "UNKNOWN"
    assert info.highest_aid() == 3


def test_alang_lookup_requires_finalized():
    info = MediaInfo()
    info.add_alang(0, "eng")
    with pytest.raises(MediaInfoError):
        info.alang_to_aid("eng")


def test_add_language_after_finalize_raises():
    info = MediaInfo()
    info.finalize()
    with pytest.raises(MediaInfoError):
        info.add_alang(0, "eng")
    with pytest.raises(MediaInfoError):
        info.add_slang(0, "eng")


def test_highest_aid_without_tracks_raises():
    with pytest.raises(MediaInfoError):
        MediaInfo().highest_aid()


def test_subtitle_languages():
    info = MediaInfo()
    info.add_slang(4, "eng")
    info.add_slang(5, "eng")
    with pytest.raises(MediaInfoError):
        info.slang_to_sid("eng")
    info.finalize()
    assert info.slang_to_sid("eng") == 4
    assert info.slang_to_sid("ger") == -1