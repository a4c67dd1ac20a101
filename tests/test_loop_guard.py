"""Tests for UpdateLoopGuard and the drifted-id heuristics."""

import json

import pytest

from modcrate.plugins.loop_guard import UpdateLoopGuard, find_heuristic_match, is_acronym
from modcrate.plugins.models import LocalPlugin


@pytest.fixture
def guard(tmp_path):
    return UpdateLoopGuard(tmp_path / "loop.json")


class TestAcronym:
    @pytest.mark.parametrize(
        "acronym,name",
        [
            ("RPP", "RemovePlayerPlacements"),
            ("rpp", "remove-player-placements"),
            ("MRM", "more_rounds mod"),
        ],
    )
    def test_matches(self, acronym, name):
        assert is_acronym(acronym, name)

    def test_must_be_shorter(self):
        assert not is_acronym("ABC", "ABC")

    def test_mismatch(self):
        assert not is_acronym("XYZ", "RemovePlayerPlacements")


class TestHeuristicMatch:
    def test_acronym_tail(self):
        plugin = LocalPlugin(id="com.new.removeplayerplacements", name="RemovePlayerPlacements")
        assert find_heuristic_match("com.old.rpp", [plugin]) is plugin

    def test_name_containment(self):
        plugin = LocalPlugin(id="other.id", name="Better Chat Plus")
        assert find_heuristic_match("author.BetterChat", [plugin]) is plugin

    def test_short_tails_not_contained(self):
        plugin = LocalPlugin(id="b.other", name="Other")
        assert find_heuristic_match("a.zzzz", [plugin]) is None


class TestVerify:
    def test_failed_update_is_ignored(self, guard):
        guard.register_pending_install("x", "2.0.0")
        added = guard.verify([LocalPlugin(id="x", name="X", version="1.9.0")])

        assert added == ["x|2.0.0"]
        assert guard.ignored == ["x|2.0.0"]
        assert guard.pending == []
        assert guard.is_version_ignored("X", "v2.0")

    def test_successful_update_clears_pending(self, guard):
        guard.register_pending_install("x", "2.0.0")
        assert guard.verify([LocalPlugin(id="x", name="X", version="2.0.0")]) == []
        assert guard.pending == []
        assert guard.ignored == []

    def test_missing_plugin_is_not_ignored(self, guard):
        guard.register_pending_install("gone", "2.0.0")
        assert guard.verify([]) == []
        assert guard.ignored == []
        assert guard.pending == []

    def test_drifted_id_found_heuristically(self, guard):
        guard.register_pending_install("com.old.rpp", "1.1.0")
        plugin = LocalPlugin(id="com.new.removeplayerplacements", name="RemovePlayerPlacements", version="1.1.0")
        assert guard.verify([plugin]) == []
        assert guard.ignored == []

    def test_ignored_entry_heals(self, guard):
        guard.ignored = ["x|2.0.0"]
        guard.save()
        guard.verify([LocalPlugin(id="x", name="X", version="2.0.0")])
        assert guard.ignored == []
        assert not guard.is_version_ignored("x", "2.0.0")

    def test_ignored_entry_kept_while_old_version_loaded(self, guard):
        guard.ignored = ["x|2.0.0"]
        guard.verify([LocalPlugin(id="x", name="X", version="1.9.0")])
        assert guard.ignored == ["x|2.0.0"]

    def test_other_versions_not_ignored(self, guard):
        guard.ignored = ["x|2.0.0"]
        assert not guard.is_version_ignored("x", "2.0.1")
        assert not guard.is_version_ignored("y", "2.0.0")


class TestPersistence:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "loop.json"
        first = UpdateLoopGuard(path)
        first.register_pending_install("a", "1.0.0")
        first.ignored.append("b|2.0.0")
        first.save()

        data = json.loads(path.read_text())
        assert data == {"pendingInstalls": ["a|1.0.0"], "ignoredVersions": ["b|2.0.0"], "pendingUninstalls": []}
        second = UpdateLoopGuard(path)
        assert second.pending == ["a|1.0.0"]
        assert second.ignored == ["b|2.0.0"]

    def test_register_is_idempotent(self, guard):
        guard.register_pending_install("a", "1.0.0")
        guard.register_pending_install("a", "1.0.0")
        assert guard.pending == ["a|1.0.0"]

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "loop.json"
        path.write_text("{not json")
        guard = UpdateLoopGuard(path)
        assert guard.pending == []
        assert guard.ignored == []

    def test_pending_uninstalls_survive_reload(self, tmp_path):
        path = tmp_path / "loop.json"
        UpdateLoopGuard(path).register_pending_uninstall("Com.Gone")
        reloaded = UpdateLoopGuard(path)
        assert reloaded.pending_uninstalls == ["Com.Gone"]
        assert reloaded.is_pending_uninstall("com.gone")
        assert not reloaded.is_pending_uninstall("com.other")

    def test_verify_clears_pending_uninstalls(self, guard):
        guard.register_pending_uninstall("gone")
        guard.verify([])
        assert guard.pending_uninstalls == []
        assert UpdateLoopGuard(guard.path).pending_uninstalls == []
