"""
Manager Dashboard Report Script

Builds the sales/inventory report against the configured data provider and
prints the headline figures and tables.

Usage: python run_report.py [--scope "Frozen Goods"] [--from 2024-01-01 --to 2024-01-31]
"""

import argparse
import json
import logging
import sys

import pandas as pd
from dotenv import load_dotenv

from sales_engine.api_client import DataProviderClient, DataProviderError
from sales_engine.config import OVERVIEW, ReportConfig
from sales_engine.export import report_to_frames, summary_frame
from sales_engine.pipeline import build_report

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Build the manager dashboard report")
    parser.add_argument("--scope", default=OVERVIEW, help='Division name or "Overview"')
    parser.add_argument("--from", dest="date_from", help="Start date (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", help="End date (YYYY-MM-DD)")
    parser.add_argument("--debug", action="store_true", help="Include the diagnostics block")
    parser.add_argument("--json", action="store_true", help="Print the raw report as JSON")
    return parser.parse_args(argv)


def print_report(report):
    """Print the report sections as tables"""
    pd.set_option("display.width", 160)

    print("\n" + "=" * 80)
    print(f"MANAGER DASHBOARD - {report['division'].upper()}")
    print("=" * 80)
    print(summary_frame(report).to_string(index=False))

    for name, frame in report_to_frames(report).items():
        print(f"\n--- {name.replace('_', ' ').title()} ({len(frame)} rows) ---")
        if frame.empty:
            print("  (none)")
        else:
            print(frame.head(20).to_string(index=False))

    if "diagnostics" in report:
        print("\n--- Diagnostics ---")
        print(json.dumps(report["diagnostics"], indent=2, default=str))


def main(argv=None):
    load_dotenv()
    args = parse_args(argv)

    try:
        report = build_report(
            scope=args.scope,
            date_from=args.date_from,
            date_to=args.date_to,
            client=DataProviderClient(),
            config=ReportConfig.from_env(),
            include_diagnostics=args.debug
        )
    except DataProviderError as e:
        logger.error(f"Report aborted: {e}")
        print(json.dumps(e.as_dict(), indent=2))
        return 1
    except ValueError as e:
        logger.error(f"Report not built: {e}")
        return 2

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print_report(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
