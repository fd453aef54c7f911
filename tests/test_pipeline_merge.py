import json

import pytest

from report_enricher.errors import FragmentParseError
from report_enricher.pipeline_merge import FragmentMerger, derive_fragment_name


def _fragment(tests, passes, spec="cypress/e2e/login.cy.js", **stats):
    stats.update({"tests": tests, "passes": passes})
    return {
        "stats": stats,
        "results": [{"title": "", "file": spec, "tests": [], "suites": [{"title": spec}]}],
        "meta": {"spec": spec},
    }


def _write(directory, name, payload):
    path = directory / name
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return path


def test_two_fragment_scenario(tmp_path):
    """5/5 and 1/3 merge to tests=8, passes=6, passPercent=75."""
    _write(tmp_path, "a_results.json", _fragment(5, 5))
    _write(tmp_path, "b_results.json", _fragment(3, 1))
    master = FragmentMerger(tmp_path).run()
    assert master["stats"]["tests"] == 8
    assert master["stats"]["passes"] == 6
    assert master["stats"]["passPercent"] == 75.0


def test_percentages_recomputed_not_averaged(tmp_path):
    """Percentages come from the summed counters, not fragment percentages."""
    _write(tmp_path, "a_results.json", _fragment(1, 1, testsRegistered=1, passPercent=100, pending=0))
    _write(tmp_path, "b_results.json", _fragment(9, 0, testsRegistered=10, passPercent=0, pending=1))
    stats = FragmentMerger(tmp_path).run()["stats"]
    assert stats["testsRegistered"] == 11
    assert stats["passPercent"] == pytest.approx(1 / 11 * 100)
    assert stats["pendingPercent"] == pytest.approx(1 / 11 * 100)


def test_zero_registered_gives_zero_percent(tmp_path):
    """An empty run reports 0 percent instead of dividing by zero."""
    _write(tmp_path, "a_results.json", _fragment(0, 0, testsRegistered=0))
    stats = FragmentMerger(tmp_path).run()["stats"]
    assert stats["passPercent"] == 0
    assert stats["pendingPercent"] == 0


def test_all_additive_counters_are_summed(tmp_path):
    """Every additive counter is the sum across fragments."""
    common = dict(suites=2, pending=1, failures=1, duration=1500, skipped=1, other=0)
    _write(tmp_path, "a_results.json", _fragment(4, 2, testsRegistered=4, **common))
    _write(tmp_path, "b_results.json", _fragment(6, 4, testsRegistered=6, **common))
    stats = FragmentMerger(tmp_path).run()["stats"]
    assert stats["suites"] == 4
    assert stats["pending"] == 2
    assert stats["failures"] == 2
    assert stats["duration"] == 3000
    assert stats["skipped"] == 2
    assert stats["hasSkipped"] is True
    assert stats["hasOther"] is False


def test_results_concatenated_and_last_meta_kept(tmp_path):
    """Suites keep discovery order and meta comes from the last fragment."""
    _write(tmp_path, "a_results.json", _fragment(1, 1, spec="a.cy.js"))
    _write(tmp_path, "b_results.json", _fragment(1, 1, spec="b.cy.js"))
    master = FragmentMerger(tmp_path).run()
    assert [entry["file"] for entry in master["results"]] == ["a.cy.js", "b.cy.js"]
    assert master["meta"] == {"spec": "b.cy.js"}


def test_missing_stats_contributes_zero(tmp_path):
    """A fragment without stats adds nothing but its results still merge."""
    _write(tmp_path, "a_results.json", _fragment(2, 2))
    _write(tmp_path, "b_results.json", {"results": [{"title": "orphan"}]})
    master = FragmentMerger(tmp_path).run()
    assert master["stats"]["tests"] == 2
    assert len(master["results"]) == 2


def test_start_and_end_window(tmp_path):
    """The merged window spans the earliest start and the latest end."""
    _write(tmp_path, "a_results.json", _fragment(1, 1, start="2024-01-01T10:00:00.000Z", end="2024-01-01T10:05:00.000Z"))
    _write(tmp_path, "b_results.json", _fragment(1, 1, start="2024-01-01T09:00:00.000Z", end="2024-01-01T11:00:00.000Z"))
    stats = FragmentMerger(tmp_path).run()["stats"]
    assert stats["start"] == "2024-01-01T09:00:00.000Z"
    assert stats["end"] == "2024-01-01T11:00:00.000Z"


def test_unparsable_fragment_aborts_merge(tmp_path):
    """An invalid fragment is fatal for the whole merge."""
    _write(tmp_path, "a_results.json", _fragment(1, 1))
    _write(tmp_path, "b_results.json", "{not json")
    with pytest.raises(FragmentParseError) as excinfo:
        FragmentMerger(tmp_path).run()
    assert "b_results.json" in str(excinfo.value)


def test_non_object_fragment_aborts_merge(tmp_path):
    """A JSON document that is not a report object is rejected."""
    _write(tmp_path, "a_results.json", [1, 2, 3])
    with pytest.raises(FragmentParseError):
        FragmentMerger(tmp_path).run()


def test_fallback_report_used_when_no_fragments(tmp_path):
    """The well-known fallback path is merged when the directory is empty."""
    reports_dir = tmp_path / "parts"
    reports_dir.mkdir()
    fallback = _write(tmp_path, "results.json", _fragment(3, 3))
    merger = FragmentMerger(reports_dir, fallback)
    assert merger.discover() == [fallback]
    assert merger.run()["stats"]["tests"] == 3


def test_nothing_found_returns_none(tmp_path):
    """No fragments and no fallback yields no report."""
    assert FragmentMerger(tmp_path / "missing", tmp_path / "nope.json").run() is None


def test_merged_report_persisted(tmp_path):
    """The master report is written when an output path is given."""
    reports_dir = tmp_path / "parts"
    reports_dir.mkdir()
    _write(reports_dir, "a_results.json", _fragment(2, 1))
    output = tmp_path / "out" / "results.json"
    FragmentMerger(reports_dir).run(output)
    assert json.loads(output.read_text(encoding="utf-8"))["stats"]["tests"] == 2


def test_derive_fragment_name_variants():
    """Spec path, then title, then 'unknown' name the fragment."""
    assert derive_fragment_name(_fragment(1, 1, spec="cypress/e2e/Login Page.cy.js")) == "login_page_results.json"
    assert derive_fragment_name(_fragment(1, 1, spec="C:\\specs\\cart.cy.ts")) == "cart_results.json"
    assert derive_fragment_name({"results": [{"title": "Checkout-Flow"}]}) == "checkout_flow_results.json"
    assert derive_fragment_name({"results": []}) == "unknown_results.json"
    assert derive_fragment_name([]) == "unknown_results.json"


def test_rename_generic_fragments(tmp_path):
    """Generic names become spec-derived; other files are left alone."""
    _write(tmp_path, "results_123.json", _fragment(1, 1, spec="cypress/e2e/login.cy.js"))
    _write(tmp_path, "results.json", _fragment(1, 1, spec="cypress/e2e/cart.cy.js"))
    _write(tmp_path, "custom.json", _fragment(1, 1, spec="cypress/e2e/other.cy.js"))
    FragmentMerger(tmp_path).rename_fragments()
    assert sorted(p.name for p in tmp_path.iterdir()) == [
        "cart_results.json",
        "custom.json",
        "login_results.json",
    ]


def test_rename_is_idempotent_and_never_overwrites(tmp_path):
    """A second pass changes nothing and an existing target is preserved."""
    existing = _write(tmp_path, "login_results.json", _fragment(7, 7, spec="cypress/e2e/login.cy.js"))
    _write(tmp_path, "results_1.json", _fragment(1, 1, spec="cypress/e2e/login.cy.js"))
    merger = FragmentMerger(tmp_path)
    merger.rename_fragments()
    first = sorted(p.name for p in tmp_path.iterdir())
    merger.rename_fragments()
    assert sorted(p.name for p in tmp_path.iterdir()) == first == ["login_results.json", "results_1.json"]
    assert json.loads(existing.read_text(encoding="utf-8"))["stats"]["tests"] == 7


def test_rename_skips_unreadable_fragment(tmp_path):
    """A broken generic file is left in place during renaming."""
    _write(tmp_path, "results_9.json", "{broken")
    assert FragmentMerger(tmp_path).rename_fragments() == []
    assert (tmp_path / "results_9.json").exists()
