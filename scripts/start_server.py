#!/usr/bin/env python3
"""
Serve the tally API with uvicorn.

Without --db, tallies live only in memory and vanish on restart. With
--db, every completed tally is also written to the DuckDB file.
"""

import argparse
import logging
import socket
import sys
from pathlib import Path

import uvicorn

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from web.main import app, set_database_path  # noqa: E402

logger = logging.getLogger("start_server")

LOG_LEVELS = ["debug", "info", "warning", "error"]


def port_is_free(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def pick_port(host: str, preferred: int, search: int) -> int:
    """Return the first free port in [preferred, preferred + search)."""
    for candidate in range(preferred, preferred + search):
        if port_is_free(host, candidate):
            return candidate
    raise SystemExit(f"No free port in {preferred}-{preferred + search - 1} on {host}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve the quest vote tally API")
    parser.add_argument("--db", type=Path, help="DuckDB file to persist tally results")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--auto-port",
        type=int,
        nargs="?",
        const=10,
        default=0,
        metavar="N",
        help="Try up to N ports after --port if it is taken (default N: 10)",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="info")
    return parser


def main():
    args = build_parser().parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.db:
        db_file = args.db.resolve()
        if not db_file.parent.is_dir():
            raise SystemExit(f"Directory for {db_file} does not exist")
        set_database_path(str(db_file))
        logger.info(f"Persisting results to {db_file}")
    else:
        logger.info("No --db given; results are kept in memory only")

    port = args.port
    if args.auto_port:
        port = pick_port(args.host, args.port, args.auto_port)
        if port != args.port:
            logger.warning(f"Port {args.port} is busy, using {port}")

    logger.info(f"Health check: http://{args.host}:{port}/api/health")
    uvicorn.run(app, host=args.host, port=port, log_level=args.log_level)


if __name__ == "__main__":
    main()
