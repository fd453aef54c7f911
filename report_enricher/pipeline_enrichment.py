from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from report_enricher.candidates import find_candidates
from report_enricher.errors import EnrichmentError, PersistError
from report_enricher.gates.insight_validator import fallback_insight
from report_enricher.invoker import InferenceInvoker
from report_enricher.pipeline_merge import FragmentMerger
from report_enricher.utils.io import read_text, write_json

logger = logging.getLogger(__name__)


@dataclass
class FileOutcome:
    path: Path
    candidates: int = 0
    enriched: int = 0
    fallbacks: int = 0
    persisted: bool = False
    skipped_reason: Optional[str] = None


class EnrichmentPipeline:
    """Attach insights to the failing tests of every report file, one file at a time.

    Per file: load, extract candidates, enrich each candidate, persist. A
    candidate whose inference fails gets the fallback insight, and a file that
    cannot be written is reported and skipped; neither stops the run.
    """

    def __init__(self, invoker: InferenceInvoker, merger: FragmentMerger) -> None:
        self.invoker = invoker
        self.merger = merger

    def run(self, paths: Optional[Iterable[Path]] = None) -> List[FileOutcome]:
        logger.info("[enrich] Starting AI enrichment pipeline (batch mode)...")
        if paths is None:
            self.merger.rename_fragments()
            report_paths = self.merger.discover()
        else:
            report_paths = [Path(path) for path in paths]
        if not report_paths:
            logger.warning("[enrich] No report files found under %s.", self.merger.reports_dir)
            return []

        logger.info("[enrich] Found %d report part(s) to process.", len(report_paths))
        outcomes = [self.process_file(path) for path in report_paths]
        logger.info("[enrich] AI enrichment pipeline complete.")
        return outcomes

    def process_file(self, path: Path) -> FileOutcome:
        outcome = FileOutcome(path=path)
        logger.info("[enrich] --- Processing report: %s ---", path.name)
        report = self._load(path)
        if report is None:
            outcome.skipped_reason = "invalid report"
            return outcome

        candidates = find_candidates(report)
        outcome.candidates = len(candidates)
        if not candidates:
            logger.info("[enrich] No failed tests requiring enrichment in %s.", path.name)
            outcome.skipped_reason = "no candidates"
            return outcome

        logger.info("[enrich] Found %d failed tests to enrich.", len(candidates))
        for test in candidates:
            if self.enrich_test(test):
                outcome.enriched += 1
            else:
                outcome.fallbacks += 1

        try:
            self._persist(path, report)
            outcome.persisted = True
            logger.info("[enrich] Saved enriched report to %s", path)
        except PersistError as exc:
            logger.error("[enrich] %s", exc)
        return outcome

    def enrich_test(self, test: Dict) -> bool:
        """Attach ``ai`` to ``test``; returns False when the fallback insight was used."""
        logger.info('  > Analyzing failure: "%s"', test.get("fullTitle") or test.get("title"))
        try:
            test["ai"] = self.invoker.invoke(test)
        except EnrichmentError as exc:
            logger.warning("    [WARN] Enrichment failed, converting to fallback: %s", exc)
        except Exception:
            logger.exception("    [WARN] Unexpected enrichment error, converting to fallback.")
        else:
            logger.info("    [SUCCESS] Injected AI insights (%s)", test["ai"]["modelUsed"])
            return True
        test["ai"] = fallback_insight(test)
        return False

    def _load(self, path: Path) -> Optional[Dict]:
        try:
            report = json.loads(read_text(path))
        except (OSError, ValueError) as exc:
            logger.warning("[enrich] Skipping unreadable report %s: %s", path, exc)
            return None
        if not isinstance(report, dict) or not isinstance(report.get("results"), list):
            logger.warning("[enrich] Skipping invalid report: %s", path)
            return None
        return report

    def _persist(self, path: Path, report: Dict) -> None:
        try:
            write_json(path, report)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistError(str(path), str(exc)) from exc
