# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for Controlling Core.

The CLI is intentionally thin: it reads CSV inputs, loads the analysis
configuration, calls one engine and writes the result as JSON. It does not
implement any controlling logic itself.

Subcommands
-----------

    compare       prior vs. current period (two-period deviation analysis)
    triple        prior year vs. plan vs. actual
    contribution  contribution margin DB I to DB V
    root-cause    root-cause clustering for one or more accounts

Inputs
------
``compare`` and ``root-cause`` accept either two files (``--prev`` and
``--curr``) or one file plus a year (``--transactions`` and ``--year``); in
the latter case the year and the year before are cut out of the same file.

Configuration
-------------
By default, ``controlling_config.toml`` in the current directory is read when
it exists. Use ``--config PATH`` to point to another file. The materiality
thresholds can be overridden per run with ``--materiality-abs`` and
``--materiality-pct``.

Output
------
JSON on stdout, or in the file given with ``--output``.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .aggregation import DIMENSIONS
from .config import DEFAULT_CONFIG, AnalysisConfig, load_analysis_config
from .contribution import calculate_contribution_margin
from .io import read_plan_table, read_transactions
from .periods import (
    custom_period,
    filter_transactions_by_period,
    period_of,
    period_year,
    previous_year,
    split_by_periods,
)
from .root_cause import analyze_root_causes
from .transactions import Transaction
from .triple import analyze_triple
from .variance import analyze_periods
from .views import to_json

DEFAULT_CONFIG_FILE = "controlling_config.toml"


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m controlling_core.cli",
        description=(
            "Controlling Core - Deviation & root-cause analytics for controlling "
            "teams. Reads normalized transactions, compares periods and sources, "
            "and writes structured results as JSON."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of controlling_core and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. If omitted, "
            f"'{DEFAULT_CONFIG_FILE}' in the current directory is used when present."
        ),
    )
    ap.add_argument(
        "--output",
        dest="output_path",
        help="Write the JSON result to this file instead of stdout.",
    )
    ap.add_argument(
        "--materiality-abs",
        type=float,
        help="Override the absolute materiality threshold.",
    )
    ap.add_argument(
        "--materiality-pct",
        type=float,
        help="Override the percentage materiality threshold.",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # compare
    compare = subparsers.add_parser(
        "compare", help="Compare a prior and a current period."
    )
    _add_period_inputs(compare)

    # triple
    triple = subparsers.add_parser(
        "triple", help="Reconcile prior year, plan and actual."
    )
    triple.add_argument("--vj", required=True, help="Prior-year transactions CSV.")
    triple.add_argument("--plan", required=True, help="Plan table (CSV, ',' or ';').")
    triple.add_argument("--ist", required=True, help="Actual transactions CSV.")

    # contribution
    contribution = subparsers.add_parser(
        "contribution", help="Compute the contribution margin DB I to DB V."
    )
    contribution.add_argument(
        "--transactions", required=True, help="Transactions CSV."
    )
    contribution.add_argument(
        "--dimension",
        choices=DIMENSIONS,
        help="Roll-up dimension (overrides the configured one).",
    )
    contribution.add_argument(
        "--from", dest="from_date", help="Start date (YYYY-MM-DD)."
    )
    contribution.add_argument("--to", dest="to_date", help="End date (YYYY-MM-DD).")

    # root-cause
    root_cause = subparsers.add_parser(
        "root-cause", help="Explain the variance of one or more accounts."
    )
    _add_period_inputs(root_cause)
    root_cause.add_argument(
        "--account",
        dest="accounts",
        type=int,
        action="append",
        required=True,
        help="Account to analyse (repeatable).",
    )

    return ap


def _add_period_inputs(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--prev", help="Prior-period transactions CSV.")
    parser.add_argument("--curr", help="Current-period transactions CSV.")
    parser.add_argument(
        "--transactions",
        help="Single transactions CSV covering both periods (use with --year).",
    )
    parser.add_argument(
        "--year",
        type=int,
        help="Current calendar year when --transactions is used.",
    )


def _existing(parser: argparse.ArgumentParser, raw: str, what: str) -> Path:
    path = Path(raw)
    if not path.is_file():
        parser.error(f"{what} not found: {path}")
    return path


def _load_config(parser: argparse.ArgumentParser, args: argparse.Namespace) -> AnalysisConfig:
    if args.config_path:
        config = load_analysis_config(str(_existing(parser, args.config_path, "Config file")))
    elif Path(DEFAULT_CONFIG_FILE).is_file():
        config = load_analysis_config(DEFAULT_CONFIG_FILE)
    else:
        config = DEFAULT_CONFIG

    overrides = {}
    if args.materiality_abs is not None:
        overrides["materiality_abs"] = args.materiality_abs
    if args.materiality_pct is not None:
        overrides["materiality_pct"] = args.materiality_pct
    return config.with_overrides(**overrides) if overrides else config


def _load_prev_curr(
    parser: argparse.ArgumentParser, args: argparse.Namespace
) -> tuple[list[Transaction], list[Transaction]]:
    if not (args.prev and args.curr) and not (args.transactions and args.year):
        parser.error("Provide either --prev and --curr, or --transactions and --year.")

    if args.prev and args.curr:
        prev = read_transactions(_existing(parser, args.prev, "Transactions file"))
        curr = read_transactions(_existing(parser, args.curr, "Transactions file"))
        return prev, curr

    items = read_transactions(_existing(parser, args.transactions, "Transactions file"))
    current = period_year(args.year)
    return split_by_periods(items, previous_year(current), current)


def _emit(text: str, output_path: Optional[str]) -> None:
    if output_path:
        Path(output_path).write_text(text, encoding="utf-8")
        print(f"Result written to {output_path}")
    else:
        print(text)


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the Controlling Core CLI.

    Parses the command-line arguments, loads the configuration and the
    input files, runs the selected engine and writes its JSON result.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"controlling_core version {__version__}")
        return

    if not args.command:
        parser.print_help()
        return

    try:
        config = _load_config(parser, args)

        if args.command == "compare":
            prev, curr = _load_prev_curr(parser, args)
            result = analyze_periods(prev, curr, config)

        elif args.command == "triple":
            vj = read_transactions(_existing(parser, args.vj, "Transactions file"))
            plan = read_plan_table(_existing(parser, args.plan, "Plan file"))
            ist = read_transactions(_existing(parser, args.ist, "Transactions file"))
            if not plan:
                print(
                    "Warning: plan table is empty, prior year is used as plan.",
                    file=sys.stderr,
                )
            result = analyze_triple(vj, plan, ist, config)

        elif args.command == "contribution":
            items = read_transactions(
                _existing(parser, args.transactions, "Transactions file")
            )
            label = None
            covered = period_of(items)
            if covered is not None and (args.from_date or args.to_date):
                period = custom_period(args.from_date, args.to_date, covered)
                items = filter_transactions_by_period(items, period)
                label = period.label
            result = calculate_contribution_margin(
                items, config, dimension=args.dimension, period_label=label
            )

        else:
            prev, curr = _load_prev_curr(parser, args)
            period = period_year(args.year) if args.year else None
            result = analyze_root_causes(prev, curr, args.accounts, config, period)

    except ValueError as exc:
        raise SystemExit(f"Error: {exc}") from exc

    _emit(to_json(result), args.output_path)


if __name__ == "__main__":
    main()
