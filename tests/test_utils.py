"""Tests for utils: is_within, sanitize_filename, human_size."""

from modcrate.core.utils import human_size, is_within, sanitize_filename, short_path


class TestIsWithin:
    def test_child(self, tmp_path):
        assert is_within(tmp_path / "a" / "b", tmp_path)

    def test_self(self, tmp_path):
        assert is_within(tmp_path, tmp_path)

    def test_sibling_prefix_is_not_within(self, tmp_path):
        assert not is_within(tmp_path / "plugins-old", tmp_path / "plugins")

    def test_dot_dot_escape(self, tmp_path):
        assert not is_within(tmp_path / "a" / ".." / "..", tmp_path)


class TestSanitizeFilename:
    def test_keeps_safe_chars(self):
        assert sanitize_filename("Team-Cool_Mod.1") == "Team-Cool_Mod.1"

    def test_replaces_unsafe(self):
        assert sanitize_filename("Team/Cool Mod") == "Team_Cool_Mod"

    def test_strips_leading_dots(self):
        assert sanitize_filename("../evil") == "evil"

    def test_empty_fallback(self):
        assert sanitize_filename("///") == "unnamed"


class TestHumanSize:
    def test_bytes(self):
        assert human_size(0) == "0B"
        assert human_size(512) == "512B"

    def test_kb(self):
        assert "KB" in human_size(1024)

    def test_mb(self):
        assert "MB" in human_size(1024 * 1024)


class TestShortPath:
    def test_relative(self, tmp_path):
        assert short_path(tmp_path / "BepInEx" / "plugins", tmp_path) == "BepInEx/plugins"

    def test_outside(self, tmp_path):
        assert short_path(tmp_path, tmp_path / "x") == str(tmp_path)
