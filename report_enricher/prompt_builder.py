from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict

from report_enricher.utils.io import read_text

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
TEMPLATE_NAME = "insight_analysis.md"

MAX_STACK_LINES = 3
MAX_CODE_CHARS = 500

_PLACEHOLDER = re.compile(r"{{([A-Z_]+)}}")


def load_template(name: str = TEMPLATE_NAME) -> str:
    return read_text(PROMPTS_DIR / name).strip()


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def prompt_context(test: Dict) -> Dict[str, str]:
    """The bounded slice of a failing test that is shown to the model."""
    err = test.get("err") if isinstance(test.get("err"), dict) else {}
    stack = _text(err.get("stack")) or _text(err.get("estack"))
    duration = test.get("duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        duration = 0
    return {
        "TITLE": _text(test.get("fullTitle")) or _text(test.get("title")),
        "ERROR": _text(err.get("message")) or "Unknown error",
        "STACK": " ".join(stack.split("\n")[:MAX_STACK_LINES]),
        "CODE": _text(test.get("code"))[:MAX_CODE_CHARS],
        "DURATION": str(duration),
    }


def render_prompt(template: str, context: Dict[str, str]) -> str:
    # Single pass so placeholder-like text inside test data is left alone.
    return _PLACEHOLDER.sub(lambda match: context.get(match.group(1), match.group(0)), template)


def build_prompt(test: Dict, template: str | None = None) -> str:
    return render_prompt(template if template is not None else load_template(), prompt_context(test))
