from __future__ import annotations

from typing import Any, Dict, Iterator, List, Set


def classify_status(test: Dict) -> str:
    """Normalise explicit ``status``/``state`` fields and legacy boolean flags."""
    for key in ("status", "state"):
        value = test.get(key)
        if isinstance(value, str) and value.strip():
            value = value.strip().lower()
            if value in ("passed", "failed", "pending", "skipped"):
                return value
    if test.get("fail") is True:
        return "failed"
    if test.get("pass") is True:
        return "passed"
    if test.get("pending") is True:
        return "pending"
    return "skipped"


def is_failed(test: Dict) -> bool:
    return classify_status(test) == "failed"


def iter_tests(report: Dict[str, Any]) -> Iterator[Dict]:
    """Depth-first walk over every test of ``report``.

    Each result entry contributes its own tests first, then its nested suites.
    Suites and tests already visited are skipped, so looping or shared
    references in malformed input are walked once.
    """
    seen_suites: Set[int] = set()
    seen_tests: Set[int] = set()
    results = report.get("results") if isinstance(report, dict) else None
    if not isinstance(results, list):
        return

    stack: List[Dict] = [entry for entry in reversed(results) if isinstance(entry, dict)]
    while stack:
        suite = stack.pop()
        if id(suite) in seen_suites:
            continue
        seen_suites.add(id(suite))
        tests = suite.get("tests")
        for test in tests if isinstance(tests, list) else []:
            if isinstance(test, dict) and id(test) not in seen_tests:
                seen_tests.add(id(test))
                yield test
        children = suite.get("suites")
        if isinstance(children, list):
            stack.extend(child for child in reversed(children) if isinstance(child, dict))


def iter_candidates(report: Dict[str, Any]) -> Iterator[Dict]:
    for test in iter_tests(report):
        if is_failed(test) and not test.get("ai"):
            yield test


def find_candidates(report: Dict[str, Any]) -> List[Dict]:
    return list(iter_candidates(report))
