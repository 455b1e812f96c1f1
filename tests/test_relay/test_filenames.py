"""Tests for Drive file naming."""

from reelrelay.relay.filenames import (
    build_drive_file_name,
    declared_extension,
    format_file_name,
    safe_channel_name,
    sanitize_file_name,
)


class TestSanitizeFileName:
    def test_replaces_unsafe_characters(self):
        assert sanitize_file_name('My: video/clip?') == "My_video_clip"

    def test_collapses_whitespace_and_underscores(self):
        assert sanitize_file_name("  a   b__c  ") == "a_b_c"

    def test_truncates_to_120(self):
        assert len(sanitize_file_name("x" * 300)) == 120

    def test_empty_falls_back(self):
        assert sanitize_file_name("") == "video"
        assert sanitize_file_name(None) == "video"
        assert sanitize_file_name('???') == "video"

    def test_keeps_unicode(self):
        assert sanitize_file_name("Кот и пёс") == "Кот_и_пёс"


class TestFormatFileName:
    def test_appends_mp4(self):
        assert format_file_name("Morning routine") == "Morning_routine.mp4"

    def test_replaces_existing_video_extension(self):
        assert format_file_name("clip.MOV") == "clip.mp4"
        assert format_file_name("clip.mp4") == "clip.mp4"

    def test_keeps_other_dots(self):
        assert format_file_name("v1.2 final") == "v1.2_final.mp4"


class TestChannelFallbackName:
    def test_non_word_runs_become_underscore(self):
        assert safe_channel_name("Cats & Dogs!", "c1") == "Cats_Dogs_"

    def test_truncates_to_50(self):
        assert len(safe_channel_name("a" * 80, "c1")) == 50

    def test_empty_name_uses_channel_id(self):
        assert safe_channel_name("", "c1") == "channel_c1"
        assert safe_channel_name(None, "c1") == "channel_c1"


class TestBuildDriveFileName:
    def test_uses_title_when_given(self):
        assert build_drive_file_name("My clip", "Cats", "c1", now_ms=1) == "My_clip.mp4"

    def test_falls_back_to_channel_name_and_timestamp(self):
        assert build_drive_file_name(None, "Cats & Dogs", "c1", now_ms=1700000000000) == "Cats_Dogs_1700000000000.mp4"

    def test_blank_title_falls_back(self):
        assert build_drive_file_name("   ", None, "c9", now_ms=5) == "channel_c9_5.mp4"


class TestDeclaredExtension:
    def test_extension_from_name(self):
        assert declared_extension("clip.MOV") == ".mov"

    def test_defaults_to_mp4(self):
        assert declared_extension(None) == ".mp4"
        assert declared_extension("noext") == ".mp4"
