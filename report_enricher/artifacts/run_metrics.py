from __future__ import annotations

import json
import logging
import math
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from report_enricher.candidates import classify_status, iter_tests
from report_enricher.utils.io import read_text, write_json
from report_enricher.utils.time import utc_iso

logger = logging.getLogger(__name__)


def _safe_read_json(path: Path) -> Optional[Any]:
    try:
        return json.loads(read_text(path))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        logger.warning("[metrics] Ignoring unreadable file %s: %s", path, exc)
        return None


def _num(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0
    return value


def extract_run_metrics(report: Optional[Dict]) -> Dict[str, Any]:
    if not isinstance(report, dict):
        return {
            "tests": 0,
            "passes": 0,
            "failures": 0,
            "pending": 0,
            "durationSec": 0,
            "passRate": 0,
            "passedTests": [],
            "failedTests": [],
        }
    stats = report.get("stats") if isinstance(report.get("stats"), dict) else {}
    tests = _num(stats.get("tests"))
    passes = _num(stats.get("passes"))
    passed_tests: List[str] = []
    failed_tests: List[str] = []
    for test in iter_tests(report):
        status = classify_status(test)
        if status == "passed":
            passed_tests.append(test.get("title"))
        elif status == "failed":
            failed_tests.append(test.get("title"))
    return {
        "tests": tests,
        "passes": passes,
        "failures": _num(stats.get("failures")),
        "pending": _num(stats.get("pending")),
        "durationSec": max(0, round(_num(stats.get("duration")) / 1000)),
        "passRate": round(passes / tests * 100) if tests > 0 else 0,
        "passedTests": passed_tests,
        "failedTests": failed_tests,
    }


def record_run(report_path: Path, runs_path: Path, max_runs: int = 31) -> Dict[str, Any]:
    """Append a compact record of the merged report to the run history file."""
    run: Dict[str, Any] = {
        "ts": utc_iso(),
        "sha": os.getenv("GITHUB_SHA", ""),
        "runId": os.getenv("GITHUB_RUN_ID", ""),
        "repo": os.getenv("GITHUB_REPOSITORY", ""),
    }
    run.update(extract_run_metrics(_safe_read_json(Path(report_path))))

    existing = _safe_read_json(Path(runs_path))
    runs = existing if isinstance(existing, list) else []
    runs.append(run)
    trimmed = runs[-max_runs:] if max_runs > 0 else runs
    write_json(Path(runs_path), trimmed)
    logger.info(
        "[metrics] tests=%s passes=%s failures=%s passRate=%s%% duration=%ss",
        run["tests"],
        run["passes"],
        run["failures"],
        run["passRate"],
        run["durationSec"],
    )
    return run
