"""In-memory stand-ins for a MySQL server, plus option/driver helpers for tests."""

from __future__ import annotations

from bigsql.executor import DEFAULT_COLLATION_FIXES, DEFAULT_NON_FATAL_CODES
from bigsql.importer import run_batch
from bigsql.types import BatchStatus, ImportCheckpoint, ImportOptions


def make_opts(**overrides) -> ImportOptions:
    base = dict(
        dump_file="/tmp/x.sql",
        host="127.0.0.1",
        port=3306,
        user="root",
        password="secret",
        target_db="shop",
        lines_per_batch=3000,
        max_exec_seconds=25.0,
        max_line_bytes=40960,
        non_fatal_codes=DEFAULT_NON_FATAL_CODES,
        collation_fixes=dict(DEFAULT_COLLATION_FIXES),
        truncated_statement="report",
        encoding="utf-8",
        force_charset="utf8mb4",
        error_log=None,
        log_file=None,
        resume=False,
        resume_file="import.resume.json",
        single_batch=False,
        fail_on_error=False,
        dry_run=False,
        ssl_ca=None,
        ssl_cert=None,
        ssl_key=None,
        ssl_disabled=False,
    )
    base.update(overrides)
    return ImportOptions(**base)


class FakeCursor:
    def __init__(self, server: "FakeServer") -> None:
        self.server = server
        self.description = None
        self._rows: list[tuple] = []
        self.closed = False

    def execute(self, sql: str) -> None:
        if sql == "SHOW TABLE STATUS":
            if self.server.stats_error is not None:
                raise self.server.stats_error
            self.description = [(name,) for name in ("Name", "Engine", "Rows", "Data_length", "Index_length")]
            self._rows = list(self.server.table_status)
            return
        for needle, err in self.server.failures.items():
            if needle in sql:
                self.server.failed.append(sql)
                raise err
        self.server.executed.append(sql)

    def fetchall(self) -> list[tuple]:
        return self._rows

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, server: "FakeServer") -> None:
        self.server = server
        self.closed = False
        self.cursors: list[FakeCursor] = []

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self.server)
        self.cursors.append(cursor)
        return cursor

    def close(self) -> None:
        self.closed = True


class FakeServer:
    """Records every statement across connections; `failures` maps a substring to the error it raises."""

    def __init__(self, failures=None, table_status=None, stats_error=None, connect_error=None) -> None:
        self.failures = dict(failures or {})
        self.table_status = list(table_status or [])
        self.stats_error = stats_error
        self.connect_error = connect_error
        self.executed: list[str] = []
        self.failed: list[str] = []
        self.connections: list[FakeConnection] = []

    def connect(self, opts) -> FakeConnection:
        if self.connect_error is not None:
            raise self.connect_error
        conn = FakeConnection(self)
        self.connections.append(conn)
        return conn


class StepClock:
    # Each call moves time forward by `step` seconds.
    def __init__(self, step: float) -> None:
        self.step = step
        self.now = 0.0

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def drive(opts: ImportOptions, server: FakeServer, clock=None, max_batches: int = 1000):
    """Play the polling front end: feed each checkpoint back until the status is terminal."""
    checkpoint = ImportCheckpoint(file_path=opts.dump_file, log_file=opts.error_log)
    starts = []
    results = []
    kwargs = {"connect": server.connect}
    if clock is not None:
        kwargs["clock"] = clock
    for _ in range(max_batches):
        starts.append(checkpoint.byte_offset)
        result = run_batch(checkpoint, opts, **kwargs)
        results.append(result)
        if result.status is not BatchStatus.CONTINUE:
            return starts, results
        checkpoint = result.checkpoint
    raise AssertionError("import did not finish")
