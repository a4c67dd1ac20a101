"""Tests for identity matching: scoring signals, ambiguity, manual mapping."""

from modcrate.catalog.models import Package, PackageVersion
from modcrate.plugins.matcher import (
    MIN_MATCH_SCORE,
    find_best_match,
    match_all,
    normalize,
    rank_candidates,
    score_match,
    tokenize,
)
from modcrate.plugins.models import LocalPlugin, MatchReport


def _pkg(full_name, website_url=""):
    return Package(
        name=full_name.split("-", 1)[1],
        full_name=full_name,
        latest=PackageVersion(version_number="1.0.0"),
        website_url=website_url,
    )


def _fixed(scores):
    def scorer(pkg, local_id, local_name):
        report = MatchReport()
        report.add(scores[pkg.full_name], "fixed")
        return report

    return scorer


def _reasons(report):
    return [reason for _, reason in report.items]


class TestNormalize:
    def test_strips_and_lowercases(self):
        assert normalize("Cool-Mod_v2.0!") == "coolmodv20"

    def test_none(self):
        assert normalize(None) == ""


class TestTokenize:
    def test_camel_case(self):
        assert tokenize("MoreRoundsMod") == {"more", "rounds", "mod"}

    def test_separators_and_short_tokens(self):
        assert tokenize("my-cool_mod.v2") == {"cool", "mod"}

    def test_empty(self):
        assert tokenize("") == set()


class TestScoreMatch:
    def test_namespace_and_name_in_id(self):
        report = score_match(_pkg("Author-CoolMod"), "com.author.coolmod", "Cool Mod")
        assert (70, "exact name match") in report.items
        assert (100, "id contains namespace and name") in report.items
        assert report.total == 70 + 100 + 75

    def test_id_equals_package_name(self):
        report = score_match(_pkg("Team-Jumper"), "Jumper", "Something Else")
        assert (80, "id equals package name") in report.items

    def test_long_name_containment_in_id(self):
        report = score_match(_pkg("Team-BetterSpectating"), "spectre.betterspectating", "x")
        assert (65, "id contains long package name") in report.items

    def test_package_without_namespace_gets_no_namespace_bonus(self):
        pkg = Package(name="Gadget", full_name="Gadget", latest=PackageVersion("1.0.0"))
        report = score_match(pkg, "org.gadget", "Widget")
        assert (50, "id contains package name") in report.items
        assert "id contains namespace and name" not in _reasons(report)
        assert not any(score < 0 for score, _ in report.items)

    def test_namespace_penalty(self):
        report = score_match(_pkg("Other-ModX"), "com.author.modx", "ModX")
        penalties = [p for p, _ in report.items if p < 0]
        assert penalties == [-100]
        without_penalty = sum(p for p, _ in report.items if p > 0)
        assert report.total <= without_penalty - 100

    def test_no_penalty_for_plain_id(self):
        report = score_match(_pkg("Other-ModX"), "modx", "ModX")
        assert all(p > 0 for p, _ in report.items)

    def test_common_prefix(self):
        report = score_match(_pkg("Team-SuperJumpModV2"), "x", "SuperJumpMod")
        assert (60, "common name prefix") in report.items

    def test_name_containment(self):
        report = score_match(_pkg("Team-SuperJumpMod"), "x", "JumpMod")
        assert (50, "name containment") in report.items

    def test_short_names_skip_fuzzy_name_rules(self):
        report = score_match(_pkg("Team-Guns"), "x", "Gun")
        assert "name containment" not in _reasons(report)

    def test_single_shared_token_needs_small_sets(self):
        report = score_match(_pkg("Team-ChatTweaks"), "x", "Better Chat Filter")
        assert not any(r.startswith("token overlap") for r in _reasons(report))

    def test_website_segment_exact(self):
        pkg = _pkg("Team-Whatever", website_url="https://github.com/someone/SuperJump/")
        report = score_match(pkg, "x", "Super Jump")
        assert (70, "website matches name") in report.items

    def test_website_containment_needs_longer_name(self):
        pkg = _pkg("Team-Whatever", website_url="https://github.com/someone/GunMod")
        assert "website contains name" not in _reasons(score_match(pkg, "x", "Gun"))
        assert "website contains name" in _reasons(score_match(pkg, "x", "GunMo"))

    def test_report_lines(self):
        report = MatchReport()
        report.add(70, "exact name match")
        report.add(-100, "penalty")
        assert report.lines() == ["+70: exact name match", "-100: penalty"]
        assert report.total == -30


class TestFindBestMatch:
    def test_close_scores_are_ambiguous(self):
        candidates = [_pkg("A-One"), _pkg("B-Two")]
        scorer = _fixed({"A-One": 61, "B-Two": 64})
        assert find_best_match("id", "name", candidates, scorer) is None

    def test_clear_winner(self):
        candidates = [_pkg("A-One"), _pkg("B-Two")]
        scorer = _fixed({"A-One": 90, "B-Two": 40})
        assert find_best_match("id", "name", candidates, scorer).full_name == "A-One"

    def test_threshold_boundary(self):
        candidates = [_pkg("A-One"), _pkg("B-Two")]
        assert find_best_match("id", "n", candidates, _fixed({"A-One": 70, "B-Two": 65})) is None
        assert find_best_match("id", "n", candidates, _fixed({"A-One": 70, "B-Two": 64})).full_name == "A-One"

    def test_below_floor(self):
        scorer = _fixed({"A-One": MIN_MATCH_SCORE - 1})
        assert find_best_match("id", "n", [_pkg("A-One")], scorer) is None

    def test_ineligible_runner_up_does_not_block(self):
        scorer = _fixed({"A-One": 62, "B-Two": 58})
        assert find_best_match("id", "n", [_pkg("A-One"), _pkg("B-Two")], scorer).full_name == "A-One"

    def test_same_package_twice_is_not_ambiguous(self):
        scorer = _fixed({"A-One": 90})
        assert find_best_match("id", "n", [_pkg("A-One"), _pkg("A-One")], scorer) is not None

    def test_no_candidates(self):
        assert find_best_match("id", "n", []) is None

    def test_real_scorer(self):
        candidates = [_pkg("Someone-OtherThing"), _pkg("Author-CoolMod")]
        best = find_best_match("com.author.coolmod", "Cool Mod", candidates)
        assert best.full_name == "Author-CoolMod"

    def test_rank_orders_best_first(self):
        scorer = _fixed({"A-One": 10, "B-Two": 99})
        ranked = rank_candidates("id", "n", [_pkg("A-One"), _pkg("B-Two")], scorer)
        assert [p.full_name for p, _ in ranked] == ["B-Two", "A-One"]


class TestMatchAll:
    def test_manual_mapping_wins(self):
        plugins = [LocalPlugin(id="a.b", name="Foo")]
        packages = [_pkg("Team-Bar")]
        results = match_all(plugins, packages, mod_map={"A.B": "team-bar"})
        assert results["a.b"].package.full_name == "Team-Bar"
        assert results["a.b"].pinned

    def test_unknown_mapping_falls_back_to_scoring(self):
        plugins = [LocalPlugin(id="com.author.coolmod", name="Cool Mod")]
        packages = [_pkg("Author-CoolMod")]
        results = match_all(plugins, packages, mod_map={"com.author.coolmod": "Nobody-Missing"})
        assert results["com.author.coolmod"].package.full_name == "Author-CoolMod"
        assert not results["com.author.coolmod"].pinned

    def test_unmatched_plugins_absent(self):
        plugins = [LocalPlugin(id="zz.qq", name="Qq")]
        assert match_all(plugins, [_pkg("Author-CoolMod")]) == {}
