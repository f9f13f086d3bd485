#!/usr/bin/env python3
"""
CLI for running CMA and flip analyses.

Usage:
    python -m reporting.cli cma <request_json> [--arv] [--pdf]
    python -m reporting.cli flip <request_json> [--pdf]

Examples:
    # Comparative market analysis, JSON to stdout
    python -m reporting.cli cma requests/subject_cma.json

    # Flip analysis with a PDF summary in REPORTS_DIR
    python -m reporting.cli flip requests/subject_flip.json --pdf
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as SchemaError

from utils.config import Config
from valuation.cma import CmaReport, CmaReportService
from valuation.errors import ValuationError
from valuation.flip import FlipAnalysis, FlipAnalyzer
from valuation.policy import EnginePolicy
from valuation.schemas import CmaRequest, FlipRequest

from .pdf_generator import ReportGenerator


logger = logging.getLogger(__name__)


def parse_cma_request(data: dict) -> CmaRequest:
    """
    Parse a JSON dictionary into a CmaRequest.

    Raises:
        pydantic.ValidationError: If required fields are missing or malformed
    """
    return CmaRequest.model_validate(data)


def parse_flip_request(data: dict) -> FlipRequest:
    """
    Parse a JSON dictionary into a FlipRequest.

    Raises:
        pydantic.ValidationError: If required fields are missing or malformed
    """
    return FlipRequest.model_validate(data)


def run_cma(request: CmaRequest, base_policy: EnginePolicy = None) -> CmaReport:
    """Run a CMA for a parsed request."""
    service = CmaReportService(
        policy=request.policy_record(base_policy),
        reference_date=request.reference_date,
    )
    return service.generate_report(
        request.subject_record(),
        request.pool(),
        filters=request.filters_record(),
        arv_mode=request.arv_mode,
    )


def run_flip(request: FlipRequest, base_policy: EnginePolicy = None) -> FlipAnalysis:
    """Run a flip analysis for a parsed request."""
    analyzer = FlipAnalyzer(
        policy=request.policy_record(base_policy),
        reference_date=request.reference_date,
    )
    return analyzer.analyze(
        request.subject_record(),
        request.pool(),
        market=request.market_record(),
        rehab_cost=request.rehab_cost,
        hold_months=request.hold_months,
        filters=request.filters_record(),
    )


def _load_json(path_str: str) -> Optional[dict]:
    input_path = Path(path_str)

    if not input_path.exists():
        print(f"Error: File not found: {input_path}", file=sys.stderr)
        return None

    try:
        with open(input_path, "r") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}", file=sys.stderr)
        return None


def _emit(payload: dict, output: Optional[str]) -> None:
    text = json.dumps(payload, indent=2)
    if output:
        Path(output).write_text(text)
        print(f"Result written: {output}")
    else:
        print(text)


def cmd_cma(args, config: Config):
    """Run a comparative market analysis from a JSON request file."""
    data = _load_json(args.request_file)
    if data is None:
        return 1
    if args.arv:
        data["arv_mode"] = True

    try:
        request = parse_cma_request(data)
        report = run_cma(request, config.load_policy())
    except SchemaError as e:
        print(f"Error: Invalid request: {e}", file=sys.stderr)
        return 1
    except ValuationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _emit(report.to_dict(), args.output)

    if args.pdf:
        result = ReportGenerator(Path(config.reports_dir)).generate_cma_report(report)
        print(f"Report generated: {result.path}")
    return 0


def cmd_flip(args, config: Config):
    """Run a flip analysis from a JSON request file."""
    data = _load_json(args.request_file)
    if data is None:
        return 1

    try:
        request = parse_flip_request(data)
        analysis = run_flip(request, config.load_policy())
    except SchemaError as e:
        print(f"Error: Invalid request: {e}", file=sys.stderr)
        return 1
    except ValuationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _emit(analysis.to_dict(), args.output)

    if args.pdf:
        result = ReportGenerator(Path(config.reports_dir)).generate_flip_report(analysis)
        print(f"Report generated: {result.path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="BMN Valuation Engine - CMA and flip analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m reporting.cli cma requests/subject_cma.json
    python -m reporting.cli flip requests/subject_flip.json --pdf

Environment:
    LOG_LEVEL, DEBUG, POLICY_FILE, REPORTS_DIR
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # CMA command
    cma_parser = subparsers.add_parser(
        "cma",
        help="Run a comparative market analysis",
    )
    cma_parser.add_argument("request_file", help="Path to JSON request file")
    cma_parser.add_argument("--arv", action="store_true", help="Value as after-repair")
    cma_parser.add_argument("--pdf", action="store_true", help="Also write a PDF report")
    cma_parser.add_argument("--output", "-o", help="Write JSON here instead of stdout")
    cma_parser.set_defaults(func=cmd_cma)

    # Flip command
    flip_parser = subparsers.add_parser(
        "flip",
        help="Run a flip, rental and BRRRR analysis",
    )
    flip_parser.add_argument("request_file", help="Path to JSON request file")
    flip_parser.add_argument("--pdf", action="store_true", help="Also write a PDF report")
    flip_parser.add_argument("--output", "-o", help="Write JSON here instead of stdout")
    flip_parser.set_defaults(func=cmd_flip)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    config = Config.load()
    config.configure_logging()

    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
