"""Tests for permissive version comparison."""

import pytest

from modcrate.catalog.versions import clean_version, is_newer, versions_equal


class TestCleanVersion:
    def test_strips_v_prefix(self):
        assert clean_version("v1.2.3") == "1.2.3"
        assert clean_version("V2") == "2"

    def test_strips_build_suffix(self):
        assert clean_version("1.4.2-patch1") == "1.4.2"

    def test_empty(self):
        assert clean_version("") == "0.0.0"
        assert clean_version(None) == "0.0.0"


class TestIsNewer:
    @pytest.mark.parametrize("version", ["1.0.0", "v2", "0.0.1-beta", "release", ""])
    def test_never_newer_than_itself(self, version):
        assert is_newer(version, version) is False

    def test_patch_bump(self):
        assert is_newer("1.0.0", "1.0.1") is True

    def test_older(self):
        assert is_newer("1.0.1", "1.0.0") is False

    def test_build_suffix_ignored(self):
        assert is_newer("v2.0-beta", "2.0.0") is False
        assert is_newer("2.0.0", "v2.0-beta") is False

    def test_zero_padding(self):
        assert is_newer("1.2", "1.2.0") is False
        assert is_newer("1.2", "1.2.1") is True

    def test_numeric_not_lexicographic(self):
        assert is_newer("1.9.0", "1.10.0") is True

    def test_free_text_segments_count_as_zero(self):
        assert is_newer("latest", "0.0.1") is True
        assert is_newer("1.0.0", "stable") is False


class TestVersionsEqual:
    def test_normalized_equality(self):
        assert versions_equal("v1.2.0", "1.2")
        assert versions_equal("2.0.0-rc1", "2.0.0")

    def test_different(self):
        assert not versions_equal("1.9.0", "2.0.0")
