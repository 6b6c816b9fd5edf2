#!/usr/bin/env python3
"""
SchedPool Command-Line Interface.

Runs every line of a command file as an independent shell job:

    schedpool -p 8 -t 30m -r 2000000000 commands.txt
"""

import argparse
import logging
import sys
from pathlib import Path

from schedpool.core.scheduler import ExitCode, Session
from schedpool.core.service import SchedulerService

EPILOG = """\
Each non-blank line of COMMAND_FILE is run with bash as a separate job.
Jobs are started in file order, at most --parallel-workers at a time.

Exit codes:
  0    all jobs were run (whatever their own exit status)
  1    bad usage
  17   aborted because free memory dropped below --safety-free-ram
  130  aborted by an interrupt signal
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schedpool",
        description="SchedPool - run a file of shell commands on a local worker pool",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "command_file",
        nargs="*",
        metavar="COMMAND_FILE",
        help="File with one shell command per line",
    )
    parser.add_argument(
        "--parallel-workers",
        "-p",
        type=int,
        default=0,
        help="Number of jobs to run at once (default: 0, chosen from the core count)",
    )
    parser.add_argument(
        "--timeout",
        "-t",
        default="1d",
        help="Per-job timeout in `timeout` syntax, e.g. 30m, 2h, 1d (default: 1d)",
    )
    parser.add_argument(
        "--safety-free-ram",
        "-r",
        type=int,
        default=-1,
        help="Abort the run if free memory drops below this many bytes (default: disabled)",
    )
    parser.add_argument(
        "--script-dir",
        type=Path,
        help="Directory for temporary job scripts (default: current directory)",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Only log errors",
    )
    return parser


def bad_usage(parser: argparse.ArgumentParser, message: str):
    parser.print_usage(sys.stderr)
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(int(ExitCode.USAGE))


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if len(args.command_file) != 1:
        bad_usage(parser, "exactly one command file is required")
    if args.parallel_workers < 0:
        bad_usage(parser, "--parallel-workers must be >= 0")

    command_file = Path(args.command_file[0])
    if not command_file.is_file():
        bad_usage(parser, f"command file {command_file} not found")

    if args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    try:
        session = Session(
            command_file,
            parallel_workers=args.parallel_workers,
            timeout=args.timeout,
            safety_free_ram=args.safety_free_ram,
            script_dir=args.script_dir,
        )
        exit_code = SchedulerService(session).start()
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(int(ExitCode.INTERRUPTED))
    except Exception as ex:
        print(f"Error: {ex}", file=sys.stderr)
        sys.exit(1)

    sys.exit(int(exit_code))


if __name__ == "__main__":
    main()
