"""
UVJONES Command Line Interface.

Commands:
    uvjones run <config.yaml>   Run pipeline from config
    uvjones info <table.h5>     Summarise a Jones solution table
"""

import argparse
import logging
import os
import sys


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="UVJONES - MWA visibility preprocessing core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Phase rotate, calibrate and average as configured
    uvjones run preprocess.yaml -v

    # Inspect a solution table
    uvjones info solutions.h5
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    run_parser = subparsers.add_parser("run", help="Run pipeline from config")
    run_parser.add_argument("config", help="YAML configuration file")
    run_parser.add_argument("-v", "--verbose", action="store_true")
    run_parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Library log level (default: WARNING)"
    )

    info_parser = subparsers.add_parser("info", help="Summarise a Jones table")
    info_parser.add_argument("table", help="HDF5 solution table")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "run":
        _run_pipeline(args)
    elif args.command == "info":
        _run_info(args)


def _run_pipeline(args):
    """Run config-based pipeline."""
    from uvjones.errors import UVJonesError
    from uvjones.pipeline.runner import run_pipeline

    if not os.path.exists(args.config):
        print(f"ERROR: Config file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        summary = run_pipeline(config_path=args.config, verbose=args.verbose)
    except UVJonesError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    if summary.blocks_failed:
        print(f"WARNING: {summary.blocks_failed} block(s) skipped", file=sys.stderr)
        sys.exit(2)


def _run_info(args):
    """Print the terms of a Jones table."""
    from uvjones.io.table_io import get_table_info

    if not os.path.exists(args.table):
        print(f"ERROR: Table not found: {args.table}", file=sys.stderr)
        sys.exit(1)

    info = get_table_info(args.table)
    if not info:
        print(f"{args.table}: no Jones terms")
        return
    print(f"{args.table}:")
    for term, meta in info.items():
        print(
            f"  {term}: {meta['n_time']} times x {meta['n_ant']} antennas x "
            f"{meta['n_freq']} channels, {100 * meta['fraction_valid']:.1f}% valid"
            + (f", created {meta['created']}" if meta["created"] else "")
        )


if __name__ == "__main__":
    main()
