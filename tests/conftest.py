import json
from typing import Dict, List, Optional

import pytest

from report_enricher.adapters.llm_base import GenerationOptions, LLMResponse
from report_enricher.errors import ProviderFailure


VALID_INSIGHT = {
    "summary": "Login button click produced no navigation to the dashboard page",
    "humanError": "The dashboard never appeared after signing in.",
    "testRootCause": "Test logic appears sound.",
    "productRootCause": "The login handler ignored the submit action.",
    "bugEffect": "Users cannot sign in.",
    "inferredExpected": "The login form should redirect to the dashboard.",
    "recommendation": "Fix the Product: trace the submit handler and confirm the redirect fires after a successful login.",
    "severity": "high",
    "confidence": 0.8,
    "tags": ["auth", "navigation"],
}


class ScriptedAdapter:
    """Adapter returning queued outcomes per model; exceptions in the queue are raised."""

    name = "scripted"

    def __init__(self, script: Dict[str, List[object]]):
        self.script = {model: list(outcomes) for model, outcomes in script.items()}
        self.calls: List[str] = []

    def complete(self, prompt: str, model: str, options: GenerationOptions) -> LLMResponse:
        self.calls.append(model)
        outcomes = self.script.get(model) or [ProviderFailure(f"{model}: not scripted")]
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return LLMResponse(raw_text=outcome, model=model)


def make_test(title: str, state: str = "passed", error: Optional[str] = None, **extra) -> Dict:
    test = {
        "title": title,
        "fullTitle": f"Suite {title}",
        "duration": 120,
        "state": state,
        "pass": state == "passed",
        "fail": state == "failed",
        "pending": state == "pending",
    }
    if error is not None:
        test["err"] = {"message": error, "stack": f"Error: {error}\n    at a.js:1\n    at b.js:2\n    at c.js:3"}
    test.update(extra)
    return test


def make_report(tests: List[Dict], nested: Optional[List[Dict]] = None, stats: Optional[Dict] = None) -> Dict:
    return {
        "stats": stats if stats is not None else {"tests": len(tests), "passes": 0},
        "results": [
            {
                "title": "",
                "file": "cypress/e2e/login.cy.js",
                "tests": [],
                "suites": [{"title": "Suite", "tests": tests, "suites": nested or []}],
            }
        ],
        "meta": {"mochawesome": {"version": "7.1.3"}},
    }


@pytest.fixture
def valid_insight_text() -> str:
    return json.dumps(VALID_INSIGHT)


@pytest.fixture
def write_report(tmp_path):
    def _write(name: str, payload) -> object:
        path = tmp_path / name
        if isinstance(payload, str):
            path.write_text(payload, encoding="utf-8")
        else:
            path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write
