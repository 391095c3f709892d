"""
SQL Insight - Entry Point

Runs a batch of SQL scripts through AI tuning or code review analysis.

Exit codes:
    0  every script succeeded
    1  at least one script failed
    2  the batch could not start
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

EXIT_OK = 0
EXIT_ITEM_FAILURES = 1
EXIT_NOT_STARTED = 2


def _analysis_type(value: str):
    from sqlinsight.core.constants import AnalysisType
    try:
        return AnalysisType.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _plan_mode(value: str):
    from sqlinsight.core.constants import PlanMode
    try:
        return PlanMode.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    from sqlinsight import __app_name__, __version__
    from sqlinsight.core.constants import AnalysisType, PlanMode

    parser = argparse.ArgumentParser(
        prog="sqlinsight",
        description="AI-assisted SQL Server query tuning and code review",
    )
    parser.add_argument(
        "sources", nargs="*", metavar="PATH",
        help=".sql file or folder of .sql files",
    )
    parser.add_argument(
        "--sql", action="append", default=[], metavar="TEXT",
        help="literal SQL text to analyze (repeatable)",
    )
    parser.add_argument(
        "-t", "--type", dest="analysis_type", type=_analysis_type,
        default=AnalysisType.TUNING, help="Tuning (default) or CodeReview",
    )
    parser.add_argument(
        "-p", "--plan-mode", type=_plan_mode, default=PlanMode.ESTIMATED,
        help="Estimated (default, compile only) or Actual (executes the script)",
    )
    parser.add_argument("-m", "--model", help="model name, overrides settings")
    parser.add_argument("--template", help="prompt template name")
    parser.add_argument("-o", "--output", type=Path, help="output root directory")
    parser.add_argument("-c", "--config", type=Path, help="settings JSON file")
    parser.add_argument("-S", "--server", help="SQL Server instance, overrides settings")
    parser.add_argument("-d", "--database", help="database name, overrides settings")
    parser.add_argument(
        "--strict-plan-merge", action="store_true",
        help="fail the script instead of writing a wrapped plan when merging fails",
    )
    parser.add_argument("--log-level", help="console log level, overrides settings")
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    return parser


def apply_overrides(settings, args: argparse.Namespace) -> None:
    """Command line values win over settings file and environment"""
    if args.server:
        settings.database.server = args.server
    if args.database:
        settings.database.database = args.database
    if args.model:
        settings.ai.model = args.model
    if args.output:
        settings.pipeline.output_root = args.output
    if args.strict_plan_merge:
        settings.pipeline.strict_plan_merge = True
    if args.log_level:
        settings.logging.level = args.log_level.upper()


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    from sqlinsight import __app_name__, __version__
    from sqlinsight.core.config import Settings, set_settings
    from sqlinsight.core.exceptions import SQLInsightError
    from sqlinsight.core.logger import get_logger, log_exception, setup_logging
    from sqlinsight.services.batch_service import BatchOrchestrator, RunOptions
    from sqlinsight.services.script_loader import ScriptLoader

    try:
        settings = set_settings(Settings.load(args.config))
    except SQLInsightError as e:
        print(f"{__app_name__}: {e}", file=sys.stderr)
        return EXIT_NOT_STARTED

    apply_overrides(settings, args)
    setup_logging(
        level=settings.logging.level,
        log_dir=settings.logs_dir,
        file_enabled=settings.logging.file_enabled,
        retention_days=settings.logging.retention_days,
    )

    logger = get_logger('main')
    logger.info(f"Starting {__app_name__} v{__version__}")

    try:
        scripts = ScriptLoader().load(paths=args.sources, texts=args.sql)
        if not scripts:
            logger.error("No scripts to analyze")
            return EXIT_NOT_STARTED

        orchestrator = BatchOrchestrator(settings)
        report = orchestrator.run(
            scripts,
            RunOptions(
                analysis_type=args.analysis_type,
                plan_mode=args.plan_mode,
                model=args.model,
                template_name=args.template,
                output_root=settings.pipeline.output_root,
            ),
        )
    except SQLInsightError as e:
        log_exception(logger, e, "Batch could not start")
        return EXIT_NOT_STARTED

    logger.info(f"Output: {report.batch_dir}")
    return EXIT_OK if report.all_succeeded else EXIT_ITEM_FAILURES


if __name__ == "__main__":
    sys.exit(main())
