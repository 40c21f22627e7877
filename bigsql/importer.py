from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import os
import time
from typing import Callable, Optional

from .checkpoint import load_checkpoint, save_checkpoint
from .db import DRIVER_ERRORS, build_connection, error_message, fetch_table_stats
from .executor import ErrorPolicy, StatementExecutor, write_log
from .parser import StatementAssembler, decode_line
from .source import LineSource
from .types import (
    BatchResult,
    BatchStatus,
    ImportCheckpoint,
    ImportOptions,
    ParseError,
    SessionError,
    TableStat,
)

# Reported for compressed dumps, where the uncompressed size is unknown.
UNKNOWN_SIZE_PCT = 99.0
# A paused batch never claims to be done, even when it stopped on the last byte.
MAX_CONTINUE_PCT = 99.99

TRUNCATED_REPORT = "report"
TRUNCATED_DROP = "drop"


def default_error_log(dump_file: str) -> str:
    # This code here names one error log per session, next to the dump.
    name = "import_log_" + dt.datetime.now().strftime("%Y-%m-%d_%H-%M-%S") + ".txt"
    return os.path.join(os.path.dirname(os.path.abspath(dump_file)), name)


def new_checkpoint(opts: ImportOptions) -> ImportCheckpoint:
    return ImportCheckpoint(
        file_path=opts.dump_file,
        log_file=opts.error_log or default_error_log(opts.dump_file),
    )


def estimate_progress(offset: int, total_size: Optional[int], status: BatchStatus) -> float:
    if status is BatchStatus.FINISHED:
        return 100.0
    if not total_size or total_size <= 0:
        return UNKNOWN_SIZE_PCT
    pct = round(offset / total_size * 100, 2)
    return min(pct, MAX_CONTINUE_PCT)


def _connect(opts: ImportOptions, connect: Callable):
    try:
        return connect(opts)
    except DRIVER_ERRORS + (RuntimeError, OSError) as err:
        logging.error("Database connection failed: %s", err)
        raise SessionError(f"Database Connection Failed: {error_message(err)}") from err


def _open_error_log(path: str):
    try:
        return open(path, "a", encoding="utf-8")
    except OSError as err:
        raise SessionError(f"Could not open log file {path}: {err}") from err


def _gather_table_stats(conn, log_fp) -> list[TableStat]:
    # This code here is best-effort; a failure never changes the batch status.
    try:
        return fetch_table_stats(conn)
    except DRIVER_ERRORS as err:
        write_log(log_fp, "Warning: Could not fetch final table stats.")
        logging.warning("Could not fetch final table stats: %s", err)
        return []


def _process(
    checkpoint: ImportCheckpoint,
    opts: ImportOptions,
    source: LineSource,
    conn,
    log_fp,
    log_file: str,
    clock: Callable[[], float],
) -> BatchResult:
    start = clock()
    assembler = StatementAssembler(checkpoint.delimiter)
    executor = StatementExecutor(
        conn,
        log_fp,
        dump_name=os.path.basename(checkpoint.file_path),
        policy=ErrorPolicy(opts.non_fatal_codes),
        collation_fixes=opts.collation_fixes,
        total_statements=checkpoint.total_statements,
        total_errors=checkpoint.total_errors,
    )
    line_number = checkpoint.line_number
    lines_this_batch = 0
    reached_eof = False

    try:
        source.seek(checkpoint.byte_offset)
        while True:
            # Atomic breaking: budgets only count once no statement is half built.
            # Every batch consumes at least one line so a slow start still moves on.
            if (
                lines_this_batch > 0
                and assembler.is_empty()
                and (
                    lines_this_batch >= opts.lines_per_batch
                    or clock() - start > opts.max_exec_seconds
                )
            ):
                break

            raw = source.read_line()
            if not raw:
                reached_eof = True
                break

            line = decode_line(
                raw,
                opts.encoding,
                strip_bom=checkpoint.byte_offset == 0 and line_number == 0,
            )
            stmt = assembler.feed(line, line_number + 1)
            line_number += 1
            lines_this_batch += 1
            if stmt is not None:
                executor.execute(stmt)

        if reached_eof and not assembler.is_empty():
            if opts.truncated_statement == TRUNCATED_REPORT:
                executor.record_truncated(
                    assembler.table_context, line_number, assembler.pending()
                )
            assembler.reset()

        new_offset = source.position()
    finally:
        executor.close()

    status = BatchStatus.FINISHED if reached_eof else BatchStatus.CONTINUE
    pct = estimate_progress(new_offset, source.size(), status)

    table_stats: list[TableStat] = []
    if status is BatchStatus.FINISHED and conn is not None:
        table_stats = _gather_table_stats(conn, log_fp)

    logging.info(
        "Batch done: lines %d-%d offset=%d queries=%d errors=%d %.2f%% (%s)",
        checkpoint.line_number + 1 if lines_this_batch else checkpoint.line_number,
        line_number,
        new_offset,
        executor.total_statements,
        executor.total_errors,
        pct,
        status.value,
    )

    return BatchResult(
        status=status,
        checkpoint=dataclasses.replace(
            checkpoint,
            byte_offset=new_offset,
            line_number=line_number,
            total_statements=executor.total_statements,
            total_errors=executor.total_errors,
            status=status,
            delimiter=assembler.delimiter,
            log_file=log_file,
        ),
        pct_complete=pct,
        batch_log=executor.batch_log,
        log_file=log_file,
        table_stats=table_stats,
    )


def run_batch(
    checkpoint: ImportCheckpoint,
    opts: ImportOptions,
    connect: Callable = build_connection,
    clock: Callable[[], float] = time.monotonic,
) -> BatchResult:
    """
    Run one bounded batch starting at the checkpoint.

    Opens its own connection, dump handle and error log and closes all of
    them before returning, so the returned checkpoint is the only state a
    later batch needs. Session-fatal problems come back as an ERROR result
    carrying just a message.
    """
    if checkpoint.byte_offset < 0 or checkpoint.line_number < 0:
        return BatchResult.error("Invalid checkpoint: offset and line must be >= 0")

    log_file = checkpoint.log_file or opts.error_log or default_error_log(checkpoint.file_path)
    conn = None
    try:
        if not opts.dry_run:
            conn = _connect(opts, connect)
        with LineSource.open(checkpoint.file_path, opts.max_line_bytes) as source:
            log_fp = _open_error_log(log_file)
            try:
                return _process(checkpoint, opts, source, conn, log_fp, log_file, clock)
            finally:
                log_fp.close()
    except SessionError as err:
        return BatchResult.error(str(err))
    finally:
        if conn is not None:
            conn.close()


def log_batch(result: BatchResult) -> None:
    # This code here echoes the short per-batch diagnostics to the process log.
    for line in result.batch_log:
        logging.warning("%s", line)
    if result.checkpoint is None:
        return
    cp = result.checkpoint
    logging.info(
        "Progress: %.2f%% line=%d offset=%d queries=%d errors=%d",
        result.pct_complete,
        cp.line_number,
        cp.byte_offset,
        cp.total_statements,
        cp.total_errors,
    )


def starting_checkpoint(opts: ImportOptions) -> ImportCheckpoint:
    if not (opts.resume or opts.single_batch) or not os.path.exists(opts.resume_file):
        return new_checkpoint(opts)
    checkpoint = load_checkpoint(opts.resume_file)
    if os.path.abspath(checkpoint.file_path) != os.path.abspath(opts.dump_file):
        raise ParseError(
            f"Resume file {opts.resume_file} belongs to {checkpoint.file_path}, not {opts.dump_file}"
        )
    logging.info(
        "Resuming %s at line %d (offset %d)",
        checkpoint.file_path,
        checkpoint.line_number,
        checkpoint.byte_offset,
    )
    return checkpoint


def run_session(
    opts: ImportOptions,
    connect: Callable = build_connection,
    clock: Callable[[], float] = time.monotonic,
    max_batches: Optional[int] = None,
) -> BatchResult:
    # This code here plays the caller: keep asking for batches until one says stop.
    checkpoint = starting_checkpoint(opts)
    if checkpoint.status is not BatchStatus.CONTINUE:
        logging.info("Resume file says %s already %s", checkpoint.file_path, checkpoint.status.value)
        return BatchResult(
            status=checkpoint.status,
            checkpoint=checkpoint,
            pct_complete=100.0 if checkpoint.status is BatchStatus.FINISHED else 0.0,
            log_file=checkpoint.log_file,
        )

    batches = 0
    while True:
        result = run_batch(checkpoint, opts, connect=connect, clock=clock)
        batches += 1
        if result.status is BatchStatus.ERROR:
            logging.error("Import stopped: %s", result.message)
            return result
        save_checkpoint(opts.resume_file, result.checkpoint)
        log_batch(result)
        if result.status is not BatchStatus.CONTINUE:
            return result
        if max_batches is not None and batches >= max_batches:
            return result
        checkpoint = result.checkpoint


def run_single_batch(
    opts: ImportOptions,
    connect: Callable = build_connection,
    clock: Callable[[], float] = time.monotonic,
) -> BatchResult:
    checkpoint = starting_checkpoint(opts)
    result = run_batch(checkpoint, opts, connect=connect, clock=clock)
    if result.checkpoint is not None:
        save_checkpoint(opts.resume_file, result.checkpoint)
    return result


def format_summary(result: BatchResult, started: float) -> str:
    elapsed = time.time() - started
    if result.status is BatchStatus.ERROR or result.checkpoint is None:
        return f"Import failed: {result.message} runtime={elapsed:.1f}s"
    cp = result.checkpoint
    return (
        f"Import {result.status.value}: "
        f"queries={cp.total_statements} "
        f"errors={cp.total_errors} "
        f"lines={cp.line_number} "
        f"bytes={cp.byte_offset} "
        f"runtime={elapsed:.1f}s "
        f"log={result.log_file}"
    )
