import re

import pytest

from mpslave.mediainfo import MediaInfo, MediaInfoError
from mpslave.parser import (
    LineSplitter,
    OutputParser,
    ParseEvents,
    default_ignore_pattern,
    is_noise,
    is_statusline,
)
from mpslave.state import MpState


@pytest.fixture
def media():
    return MediaInfo("movie")


@pytest.fixture
def parser(media):
    return OutputParser(media)


def test_splitter_keeps_partial_line():
    splitter = LineSplitter()
    assert splitter.feed(b"abc\ndef") == ["abc"]
    assert splitter.pending == b"def"
    assert splitter.feed(b"\r\n") == ["def"]
    assert splitter.pending == b""


def test_splitter_skips_empty_lines_and_splits_on_cr():
    splitter = LineSplitter()
    assert splitter.feed(b"one\r\r\ntwo\n\nthree\n") == ["one", "two", "three"]


def test_splitter_flush_returns_rest():
    splitter = LineSplitter()
    splitter.feed(b"first\nsecond")
    assert splitter.flush() == ["second"]
    assert splitter.flush() == []


def test_splitter_decodes_utf8():
    splitter = LineSplitter()
    assert splitter.feed("Größe\n".encode()) == ["Größe"]


def test_noise_and_statusline_detection():
    assert is_noise("Fontconfig warning: ignoring UTF-8")
    assert is_noise("FLIP_PAGE VID:3")
    assert not is_noise("IDENTIFY: ID_LENGTH=10")
    assert is_statusline("STATUSLINE: A: 913.6 V: 897.9 A-V: 15.733")
    assert not is_statusline("CPLAYER: Starting playback...")


def test_default_ignore_pattern_matches_both():
    rx = re.compile(default_ignore_pattern())
    assert rx.search("STATUSLINE: A: 1.0") is not None
    assert rx.search("VIDEOOUT: DRAW_OSD") is not None
    assert rx.search("GLOBAL: EOF code: 1") is None


def test_media_info_lines(parser, media):
    parser.parse_lines(
        [
            "IDENTIFY: ID_VIDEO_FORMAT=H264",
            "IDENTIFY: ID_VIDEO_WIDTH=1920",
            "IDENTIFY: ID_VIDEO_HEIGHT=1080",
            "IDENTIFY: ID_VIDEO_FPS=25.000",
            "IDENTIFY: ID_LENGTH=5400.50",
            "IDENTIFY: ID_SEEKABLE=1",
            "IDENTIFY: ID_AUDIO_NCH=2",
            "IDENTIFY: ID_AUDIO_RATE=48000",
        ],
        MpState.LOADING,
    )
    assert media.video_format == "H264"
    assert media.size == (1920, 1080)
    assert media.frames_per_second == 25.0
    assert media.length == 5400.5
    assert media.seekable is True
    assert media.num_channels == 2
    assert media.sample_rate == 48000


def test_languages_and_tags(parser, media):
    for line in [
        "ID_AID_0_LANG=ger",
        "ID_AID_1_LANG=eng",
        "ID_AID_2_LANG=ger",
        "ID_SID_3_LANG=eng",
        "ID_CLIP_INFO_NAME0=title",
        "ID_CLIP_INFO_VALUE0=Big Movie",
    ]:
        parser.parse_media_info("IDENTIFY: " + line)
    assert media.tags == {"title": "Big Movie"}
    assert media.highest_aid() == 2
    media.finalize()
    assert media.alang_to_aid("ger") == 0
    assert media.alang_to_aid("eng") == 1
    assert media.slang_to_sid("eng") == 3


def test_bad_aspect_is_ignored_good_is_set(parser, media):
    parser.parse_media_info("IDENTIFY: ID_VIDEO_ASPECT=0.0000")
    assert not media.has_aspect_ratio()
    parser.parse_media_info("IDENTIFY: ID_VIDEO_ASPECT=1.7778")
    assert media.dar == pytest.approx(1.7778)


def test_audio_values_ignored_after_finalize(parser, media):
    media.finalize()
    parser.parse_media_info("IDENTIFY: ID_AUDIO_FORMAT=mp3")
    assert not media._values["audio_format"].isset()
    with pytest.raises(MediaInfoError):
        parser.parse_media_info("IDENTIFY: ID_VIDEO_WIDTH=640")


def test_bad_number_raises(parser):
    with pytest.raises(ValueError):
        parser.parse_media_info("IDENTIFY: ID_VIDEO_WIDTH=wide")
    with pytest.raises(ValueError):
        parser.parse_lines(["GLOBAL: ANS_speed=fast"], MpState.PLAYING)


def test_pause_answers_depend_on_state(parser):
    events = parser.parse_lines(["GLOBAL: ANS_pause=yes"], MpState.PLAYING)
    assert events.new_states == [MpState.PAUSED]
    events = parser.parse_lines(["GLOBAL: ANS_pause=yes"], MpState.PAUSED)
    assert events.new_states == []
    events = parser.parse_lines(["GLOBAL: ANS_pause=no"], MpState.PAUSED)
    assert events.new_states == [MpState.PLAYING]


def test_misc_answers(parser):
    events = parser.parse_lines(
        [
            "GLOBAL: ANS_mute=yes",
            "GLOBAL: ANS_switch_audio=2",
            "GLOBAL: ANS_speed=2.00",
            "GLOBAL: ANS_time_pos=12.5",
            "STATUSLINE: A: 10.0 V: 10.1 A-V: 0.1",
            "CPLAYER: Starting playback...",
        ],
        MpState.PLAYING,
    )
    assert events.muted is True
    assert events.audio_id == 2
    assert events.speeds == [2.0]
    assert events.position_lines == [
        "GLOBAL: ANS_time_pos=12.5",
        "STATUSLINE: A: 10.0 V: 10.1 A-V: 0.1",
    ]
    assert events.ask_for_metadata


def test_errors_and_stop(parser):
    events = parser.parse_lines(
        ["File not found: 'x.mkv'", "IDENTIFY: ID_SIGNAL=11", "IDENTIFY: ID_EXIT=EOF"],
        MpState.LOADING,
    )
    assert events.error_reasons == ["File not found: 'x.mkv'", "IDENTIFY: ID_SIGNAL=11"]
    assert events.new_states == [MpState.STOPPED]


def test_metadata_finalizes_once(parser, media):
    events = parser.parse_lines(["GLOBAL: ANS_metadata=title,x"], MpState.LOADING)
    assert media.finalized
    assert events.load_done
    assert events.new_states == [MpState.PLAYING]
    again = parser.parse_lines(["GLOBAL: ANS_metadata=title,x"], MpState.PLAYING)
    assert again == ParseEvents()


def test_disabled_parser_ignores_everything(media):
    parser = OutputParser(media, enabled=False)
    events = parser.parse_lines(
        ["IDENTIFY: ID_EXIT=EOF", "IDENTIFY: ID_LENGTH=10"], MpState.PLAYING
    )
    assert events == ParseEvents()
    assert not media.has_length()