from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Dict

from report_enricher.errors import ProviderFailure

from .llm_base import GenerationOptions, LLMAdapter, LLMResponse


@dataclass
class MockAdapter(LLMAdapter):
    """Offline adapter returning canned responses; ``scenario`` selects the shape."""

    scenario: str = "default"
    name: str = "mock"

    def complete(self, prompt: str, model: str, options: GenerationOptions) -> LLMResponse:
        if self.scenario == "empty":
            raise ProviderFailure(f"{model}: empty response")
        if self.scenario == "malformed":
            return LLMResponse(raw_text="I could not analyse this failure, sorry.", model=model)
        payload = self._build_payload(prompt)
        if self.scenario == "wrapped":
            raw = f"Here is the analysis:\n```json\n{json.dumps(payload, indent=2)}\n```\nHope it helps!"
        else:
            raw = json.dumps(payload)
        return LLMResponse(raw_text=raw, model=model)

    def _build_payload(self, prompt: str) -> Dict:
        match = re.search(r'^- Test Name: "(.*)"$', prompt, flags=re.MULTILINE)
        title = match.group(1) if match else "the test"
        return {
            "summary": f"Mock analysis for {title}",
            "humanError": "The page did not show the expected element in time.",
            "testRootCause": "Test logic appears sound.",
            "productRootCause": "The application did not respond to the user action.",
            "bugEffect": "Users cannot complete the flow covered by this test.",
            "inferredExpected": "The component should respond to the action within the timeout.",
            "recommendation": (
                "Fix the Product: investigate why the action produced no visible side effect "
                "and add monitoring around the affected endpoint."
            ),
            "severity": "high",
            "confidence": 0.7,
            "tags": ["mock", "product"],
        }
