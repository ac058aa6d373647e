#!/usr/bin/env python3
"""
Longitudinal History Runner

Reads a Canonical Record JSON file, generates the patient's longitudinal
history and writes it in the requested format. A JSON file holding a list of
records produces a population summary instead.

Usage:
    longitudinal-history patient.json --format markdown --output patient.md
    longitudinal-history cohort.json --config config/engine_config.yaml --workers 4
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from ..lib.date_resolution import parse_date
from ..lib.exception_handling import FatalError, MalformedDateError, UnsupportedExportFormatError
from ..lib.export_adapter import EXPORTERS, export_history
from ..lib.structured_logging import setup_root_logging
from ..orchestration.engine_config import load_engine_config
from ..orchestration.longitudinal_history import generate_longitudinal_history
from ..orchestration.population_summary import population_dataframe, summarize_population

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Generate a longitudinal clinical history from a Canonical Record'
    )
    parser.add_argument(
        'record',
        type=str,
        help='Canonical Record JSON file (a list of records runs a population summary)'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Engine configuration YAML (defaults used when omitted)'
    )
    parser.add_argument(
        '--as-of',
        type=str,
        default=None,
        help='Reference date (YYYY-MM-DD) for period labels, ongoing courses and age'
    )
    parser.add_argument(
        '--format',
        type=str,
        default='json',
        choices=sorted(EXPORTERS),
        help='Output format'
    )
    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Output file (stdout when omitted)'
    )
    parser.add_argument(
        '--workers',
        type=int,
        default=None,
        help='Worker processes for population runs (overrides config max_workers)'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Debug logging'
    )
    return parser.parse_args(argv)


def render_population(summary, fmt: str) -> str:
    if fmt == 'csv':
        return population_dataframe(summary).to_csv(index=False)
    if fmt != 'json':
        raise UnsupportedExportFormatError(fmt, ['csv', 'json'])
    return json.dumps(summary, indent=2, default=str)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_root_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = load_engine_config(args.config)
        as_of = parse_date(args.as_of, '--as-of') if args.as_of else None
        with open(args.record, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError, ValueError, MalformedDateError) as e:
        logger.error(f"Invalid arguments: {e}")
        return 2

    try:
        if isinstance(data, list):
            summary = summarize_population(data, config, max_workers=args.workers, as_of=as_of)
            text = render_population(summary, args.format)
        else:
            history = generate_longitudinal_history(data, config, as_of)
            text = export_history(history, args.format)
    except FatalError as e:
        logger.error(str(e))
        return 1
    except UnsupportedExportFormatError as e:
        logger.error(str(e))
        return 2

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text)
        logger.info(f"Wrote {args.format} output to {output_path}")
    else:
        sys.stdout.write(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
