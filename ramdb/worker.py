"""Worker side of a ramdb session: ``python -m ramdb.worker -s SIZE [-v]``."""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from .config import Profile, Session, load_profile
from .controller import LifecycleController
from .logging_config import configure_logging, get_logger

INTERRUPTED_EXIT_CODE = 130


def run_worker(session: Session, *, profile: Optional[Profile] = None) -> int:
    """Run the lifecycle controller in this process until stopped."""
    configure_logging(session.verbose)
    logger = get_logger("ramdb.worker")
    profile = profile or load_profile()
    controller = LifecycleController(session, profile=profile, logger=logger)
    try:
        return asyncio.run(controller.run())
    except KeyboardInterrupt:
        logger.info("Session terminated")
        return INTERRUPTED_EXIT_CODE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m ramdb.worker", description="ramdb session worker")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-s", "--size", type=int, default=None)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    session = Session.from_args(verbose=args.verbose, size=args.size)
    return run_worker(session)


if __name__ == "__main__":
    sys.exit(main())
