from __future__ import annotations

import json
import re
from typing import Dict, List

from report_enricher.errors import MalformedResponse


def _strip_code_fences(text: str) -> str:
    fenced = re.findall(r"```(?:json)?\s*(.*?)```", text, flags=re.DOTALL | re.IGNORECASE)
    if fenced:
        return "\n".join(fenced)
    return text


def _iter_json_candidates(text: str) -> List[str]:
    candidates: List[str] = []
    stripped = _strip_code_fences(text)
    sources = [stripped] if stripped == text else [stripped, text]
    for source in sources:
        for match in re.finditer(r"{", source):
            candidates.append(source[match.start():])
    return candidates


def extract_json(raw_text: str) -> Dict:
    """Return the first balanced JSON object embedded in ``raw_text``."""
    if not raw_text or not raw_text.strip():
        raise MalformedResponse("Malformed JSON response: empty text.")

    decoder = json.JSONDecoder()
    for candidate in _iter_json_candidates(raw_text):
        try:
            parsed, _ = decoder.raw_decode(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    snippet = raw_text.strip().replace("\n", " ")
    snippet = (snippet[:200] + "...") if len(snippet) > 200 else snippet
    raise MalformedResponse(f"Malformed JSON response: no JSON object found. Snippet: {snippet}")
