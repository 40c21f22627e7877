from __future__ import annotations

import dataclasses
import enum
from typing import Optional


DEFAULT_DELIMITER = ";"


class BatchStatus(str, enum.Enum):
    CONTINUE = "continue"
    FINISHED = "finished"
    ERROR = "error"


@dataclasses.dataclass
class ImportCheckpoint:
    # This code here is everything a later batch needs to pick up where we stopped.
    file_path: str
    byte_offset: int = 0
    line_number: int = 0
    total_statements: int = 0
    total_errors: int = 0
    status: BatchStatus = BatchStatus.CONTINUE
    delimiter: str = DEFAULT_DELIMITER
    log_file: Optional[str] = None


@dataclasses.dataclass
class TableStat:
    name: str
    rows: int
    size_mb: float


@dataclasses.dataclass
class BatchResult:
    # This code here is what one batch hands back to the caller.
    status: BatchStatus
    checkpoint: Optional[ImportCheckpoint] = None
    pct_complete: float = 0.0
    batch_log: list[str] = dataclasses.field(default_factory=list)
    log_file: Optional[str] = None
    table_stats: list[TableStat] = dataclasses.field(default_factory=list)
    message: Optional[str] = None

    @classmethod
    def error(cls, message: str) -> "BatchResult":
        return cls(status=BatchStatus.ERROR, message=message)


@dataclasses.dataclass
class ImportOptions:
    # This code here is the full config blob for the importer.
    dump_file: str
    host: str
    port: int
    user: str
    password: Optional[str]
    target_db: str
    lines_per_batch: int
    max_exec_seconds: float
    max_line_bytes: int
    non_fatal_codes: frozenset[int]
    collation_fixes: dict[str, str]
    truncated_statement: str
    encoding: str
    force_charset: Optional[str]
    error_log: Optional[str]
    log_file: Optional[str]
    resume: bool
    resume_file: str
    single_batch: bool
    fail_on_error: bool
    dry_run: bool
    ssl_ca: Optional[str]
    ssl_cert: Optional[str]
    ssl_key: Optional[str]
    ssl_disabled: bool


class ParseError(Exception):
    pass


class SessionError(Exception):
    # Raised when a batch cannot even start: dump not openable or DB unreachable.
    pass
