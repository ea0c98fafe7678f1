import argparse
import sys
from typing import Optional, Sequence

from ..config import Session, load_profile
from ..logging_config import configure_logging, get_logger
from ..supervisor import SessionSupervisor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ramdb",
        description="Run a throwaway MySQL server on a RAM disk; Ctrl+C discards it.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "-s",
        "--size",
        type=int,
        default=None,
        metavar="SIZE",
        help="RAM disk size in megabytes (default: $RAMDB_SIZE or 1024)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        session = Session.from_args(verbose=args.verbose, size=args.size)
    except ValueError as exc:
        raise SystemExit(f"ramdb: {exc}")

    configure_logging(session.verbose)
    logger = get_logger("ramdb")

    # Fail fast on a broken profile before anything is spawned
    try:
        load_profile()
    except (OSError, ValueError) as exc:
        raise SystemExit(f"ramdb: {exc}")

    supervisor = SessionSupervisor(session, logger=logger)
    return supervisor.run()


if __name__ == "__main__":
    sys.exit(main())
