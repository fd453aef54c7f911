from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from report_enricher.artifacts.run_metrics import record_run
from report_enricher.config import EnricherConfig, load_config
from report_enricher.errors import FragmentParseError
from report_enricher.invoker import InferenceInvoker
from report_enricher.pipeline_enrichment import EnrichmentPipeline
from report_enricher.pipeline_merge import FragmentMerger

logger = logging.getLogger("report_enricher")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Merge sharded test reports and enrich failing tests with model insight"
    )
    parser.add_argument("--config", type=Path, help="YAML file overriding environment settings")
    parser.add_argument("--reports-dir", type=Path, help="Directory holding the report fragments")
    parser.add_argument("--fallback-report", type=Path, help="Report used when no fragment exists")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    merge = subparsers.add_parser("merge", help="Merge report fragments into one master report")
    merge.add_argument("--output", type=Path, help="Where to write the merged report")

    enrich = subparsers.add_parser("enrich", help="Attach insights to failing tests in place")
    enrich.add_argument("--mode", choices=["mock", "live"], default="live")
    enrich.add_argument("--provider", choices=["huggingface", "openai", "gemini"])
    enrich.add_argument("--model", action="append", dest="models", help="Model to try, in priority order")
    enrich.add_argument("--max-output-tokens", type=int, dest="max_tokens")
    enrich.add_argument("--temperature", type=float)
    enrich.add_argument("--timeout", type=float, dest="timeout_seconds")
    enrich.add_argument("--cooldown", type=float, dest="cooldown_seconds")
    enrich.add_argument("reports", nargs="*", type=Path, help="Explicit report files to enrich")

    metrics = subparsers.add_parser("metrics", help="Append the merged report to the run history")
    metrics.add_argument("--report", type=Path, help="Merged report to summarise")
    metrics.add_argument("--output", type=Path, help="Run history JSON file")
    metrics.add_argument("--max-runs", type=int)
    return parser


def _config_from_args(args: argparse.Namespace) -> EnricherConfig:
    config = load_config(args.config)
    overrides = {
        "reports_dir": args.reports_dir,
        "fallback_report": args.fallback_report,
    }
    if args.command == "enrich":
        overrides.update(
            provider=args.provider,
            models=args.models,
            max_tokens=args.max_tokens,
            temperature=args.temperature,
            timeout_seconds=args.timeout_seconds,
            cooldown_seconds=args.cooldown_seconds,
        )
    if args.command == "metrics":
        overrides.update(max_runs=args.max_runs)
    return config.with_overrides(**overrides)


def run(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    load_dotenv(Path.cwd() / ".env")

    try:
        config = _config_from_args(args)
        merger = FragmentMerger(config.reports_dir, config.fallback_report)
        if args.command == "merge":
            master = merger.run(args.output or config.merged_report)
            if master is None:
                logger.error("No report fragments found. Run tests first.")
        elif args.command == "enrich":
            invoker = InferenceInvoker.from_config(config, mode=args.mode)
            pipeline = EnrichmentPipeline(invoker, merger)
            pipeline.run(args.reports or None)
        else:
            record_run(
                args.report or config.merged_report,
                args.output or config.metrics_file,
                config.max_runs,
            )
    except FragmentParseError as exc:
        logger.error("[merge] %s", exc)
        return 1
    except Exception:
        logger.exception("[FATAL] Pipeline error")
        return 1
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
