#!/usr/bin/env python3
"""Resumable, batched SQL dump importer for MySQL."""

from __future__ import annotations

import json
import logging
import sys
import time

from bigsql.args import parse_args
from bigsql.checkpoint import to_response
from bigsql.importer import format_summary, run_session, run_single_batch
from bigsql.types import BatchStatus, ParseError


def setup_logging(stream=None) -> logging.StreamHandler:
    # This code here sets up default logging; stderr when stdout carries JSON.
    handler = logging.StreamHandler(stream)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[handler],
    )
    return handler


def add_log_file(log_file: str | None) -> None:
    # This code here adds an optional log file handler.
    if not log_file:
        return
    handler = logging.FileHandler(log_file)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    logging.getLogger().addHandler(handler)


def main(argv: list[str]) -> int:
    # This code here is the CLI entrypoint.
    # Config loading logs before the mode is known, so start on stderr.
    console = setup_logging(sys.stderr)
    started = time.time()
    try:
        opts = parse_args(argv)
        if not opts.single_batch:
            console.setStream(sys.stdout)
        add_log_file(opts.log_file)
        logging.info(
            "Mode: %s",
            "DRY RUN (no DB connection)" if opts.dry_run else "LIVE IMPORT",
        )
        logging.info(
            "Settings: dump=%s target_db=%s host=%s port=%s user=%s ssl=%s",
            opts.dump_file,
            opts.target_db,
            opts.host,
            opts.port,
            opts.user,
            "disabled" if opts.ssl_disabled else ("on" if opts.ssl_ca else "default"),
        )
        logging.info(
            "Settings: lines_per_batch=%d max_exec_seconds=%.1f resume=%s resume_file=%s",
            opts.lines_per_batch,
            opts.max_exec_seconds,
            opts.resume,
            opts.resume_file,
        )
        if opts.single_batch:
            result = run_single_batch(opts)
            sys.stdout.write(json.dumps(to_response(result)) + "\n")
        else:
            result = run_session(opts)
            logging.info(format_summary(result, started))
            for stat in result.table_stats:
                logging.info("  table=%s rows=%d size=%.2fMB", stat.name, stat.rows, stat.size_mb)

        if result.status is BatchStatus.ERROR:
            return 1
        if opts.fail_on_error and result.checkpoint and result.checkpoint.total_errors > 0:
            return 2
        return 0
    except ParseError as err:
        logging.error("Parsing failed: %s", err)
        return 3
    except Exception as err:
        logging.error("Fatal error: %s", err)
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
