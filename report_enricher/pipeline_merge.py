from __future__ import annotations

import json
import logging
import math
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import ValidationError, validate

from report_enricher.errors import FragmentParseError
from report_enricher.utils.io import read_json, read_text, write_json
from report_enricher.utils.time import utc_iso

logger = logging.getLogger(__name__)

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"

ADDITIVE_COUNTERS = (
    "suites",
    "tests",
    "passes",
    "pending",
    "failures",
    "duration",
    "testsRegistered",
    "skipped",
    "other",
)
GENERIC_NAME = "results.json"
GENERIC_PREFIX = "results_"
FRAGMENT_SUFFIX = "_results.json"
SPEC_EXTENSIONS = re.compile(r"(\.cy)?\.(js|ts|jsx|tsx)$", flags=re.IGNORECASE)


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if math.isnan(value) or math.isinf(value):
        return 0
    return value


def _percent(part: float, whole: float) -> float:
    if whole <= 0:
        return 0
    return part / whole * 100


def is_generic_name(name: str) -> bool:
    return name == GENERIC_NAME or name.startswith(GENERIC_PREFIX)


def derive_fragment_name(fragment: Dict) -> str:
    """Stable ``<spec>_results.json`` name for a fragment with a generic filename."""
    results = fragment.get("results") if isinstance(fragment, dict) else None
    first = results[0] if isinstance(results, list) and results and isinstance(results[0], dict) else {}
    spec_file = first.get("file") or first.get("fullFile") or ""
    if isinstance(spec_file, str) and spec_file:
        spec_name = SPEC_EXTENSIONS.sub("", re.split(r"[\\/]", spec_file)[-1])
    else:
        title = first.get("title")
        spec_name = title if isinstance(title, str) and title else "unknown"
    spec_name = re.sub(r"[^a-z0-9]", "_", spec_name, flags=re.IGNORECASE).lower()
    return f"{spec_name}{FRAGMENT_SUFFIX}"


def empty_stats() -> Dict[str, Any]:
    stats: Dict[str, Any] = {key: 0 for key in ADDITIVE_COUNTERS}
    stats.update(
        {
            "start": None,
            "end": None,
            "passPercent": 0,
            "pendingPercent": 0,
            "hasOther": False,
            "hasSkipped": False,
        }
    )
    return stats


class FragmentMerger:
    def __init__(self, reports_dir: Path, fallback_report: Optional[Path] = None) -> None:
        self.reports_dir = Path(reports_dir)
        self.fallback_report = Path(fallback_report) if fallback_report else None
        self._schema: Optional[Dict] = None

    def run(self, output_path: Optional[Path] = None) -> Optional[Dict]:
        self.rename_fragments()
        paths = self.discover()
        if not paths:
            logger.warning(
                "[merge] No report parts found. Pattern used: %s", self.reports_dir / "*.json"
            )
            return None
        logger.info("[merge] Found %d report part(s). Merging...", len(paths))
        master = self.merge(paths)
        if output_path is not None:
            write_json(Path(output_path), master)
            logger.info("[merge] Master JSON saved at: %s", output_path)
        return master

    def rename_fragments(self) -> List[Path]:
        """Give generic fragment files a spec-derived name; returns the new paths."""
        renamed: List[Path] = []
        if not self.reports_dir.is_dir():
            return renamed
        for path in sorted(self.reports_dir.glob("*.json")):
            if not is_generic_name(path.name):
                continue
            try:
                target = path.with_name(derive_fragment_name(read_json(path)))
            except (OSError, ValueError) as exc:
                logger.warning("[merge] Failed to rename %s: %s", path, exc)
                continue
            if target == path or target.exists():
                continue
            try:
                path.rename(target)
            except OSError as exc:
                logger.warning("[merge] Failed to rename %s: %s", path, exc)
                continue
            logger.info("[merge] Renamed report %s -> %s", path.name, target.name)
            renamed.append(target)
        return renamed

    def discover(self) -> List[Path]:
        files: List[Path] = []
        if self.reports_dir.is_dir():
            files = sorted(path for path in self.reports_dir.glob("*.json") if path.is_file())
        if not files and self.fallback_report is not None and self.fallback_report.is_file():
            files = [self.fallback_report]
        return files

    def load_fragment(self, path: Path) -> Dict:
        try:
            data = json.loads(read_text(path))
        except (OSError, UnicodeDecodeError) as exc:
            raise FragmentParseError(str(path), f"unreadable ({exc})") from exc
        except json.JSONDecodeError as exc:
            raise FragmentParseError(str(path), f"invalid JSON ({exc})") from exc
        try:
            validate(instance=data, schema=self._fragment_schema())
        except ValidationError as exc:
            raise FragmentParseError(str(path), exc.message) from exc
        return data

    def merge(self, paths: List[Path]) -> Dict:
        master: Dict[str, Any] = {"stats": empty_stats(), "results": [], "meta": {}}
        stats = master["stats"]
        starts: List[str] = []
        ends: List[str] = []
        for path in paths:
            data = self.load_fragment(path)
            fragment_stats = data.get("stats") or {}
            for key in ADDITIVE_COUNTERS:
                value = fragment_stats.get(key)
                if key == "testsRegistered" and key not in fragment_stats:
                    value = fragment_stats.get("tests")
                stats[key] += _number(value)
            if isinstance(fragment_stats.get("start"), str):
                starts.append(fragment_stats["start"])
            if isinstance(fragment_stats.get("end"), str):
                ends.append(fragment_stats["end"])
            master["results"].extend(data.get("results") or [])
            if "meta" in data:
                master["meta"] = data["meta"]

        now = utc_iso()
        stats["start"] = min(starts) if starts else now
        stats["end"] = max(ends) if ends else now
        stats["passPercent"] = _percent(stats["passes"], stats["testsRegistered"])
        stats["pendingPercent"] = _percent(stats["pending"], stats["testsRegistered"])
        stats["hasOther"] = stats["other"] > 0
        stats["hasSkipped"] = stats["skipped"] > 0
        return master

    def _fragment_schema(self) -> Dict:
        if self._schema is None:
            self._schema = json.loads(read_text(SCHEMAS_DIR / "report_fragment.schema.json"))
        return self._schema
