from __future__ import annotations

import datetime as dt
import enum
from typing import Iterable, Mapping, Optional

from .db import DRIVER_ERRORS, error_code, error_message
from .parser import CompletedStatement

# Collations MySQL 8 writes into dumps that MariaDB and MySQL 5.x reject.
DEFAULT_COLLATION_FIXES: dict[str, str] = {
    "utf8mb4_0900_ai_ci": "utf8mb4_unicode_ci",
    "utf8mb4_0900_as_ci": "utf8mb4_unicode_ci",
    "utf8mb4_0900_as_cs": "utf8mb4_bin",
    "utf8mb4_0900_bin": "utf8mb4_bin",
}

# Server errors meaning "already there"; expected when re-running an import.
DEFAULT_NON_FATAL_CODES: frozenset[int] = frozenset(
    {
        1007,  # ER_DB_CREATE_EXISTS
        1022,  # ER_DUP_KEY
        1050,  # ER_TABLE_EXISTS_ERROR
        1060,  # ER_DUP_FIELDNAME
        1061,  # ER_DUP_KEYNAME
        1062,  # ER_DUP_ENTRY
        1068,  # ER_MULTIPLE_PRI_KEY
        1069,  # ER_TOO_MANY_KEYS
        1304,  # ER_SP_ALREADY_EXISTS
        1359,  # ER_TRG_ALREADY_EXISTS
        1826,  # ER_FK_DUP_NAME
    }
)

SNIPPET_CHARS = 150
DIAGNOSTIC_CHARS = 50
SEPARATOR = "-" * 50


class Severity(enum.Enum):
    NON_FATAL = "non_fatal"
    FATAL = "fatal"


class ErrorPolicy:
    def __init__(self, non_fatal_codes: Iterable[int] = DEFAULT_NON_FATAL_CODES) -> None:
        self.non_fatal_codes = frozenset(non_fatal_codes)

    def classify(self, code: Optional[int]) -> Severity:
        if code is not None and code in self.non_fatal_codes:
            return Severity.NON_FATAL
        return Severity.FATAL


def apply_collation_fixes(statement: str, fixes: Mapping[str, str]) -> str:
    for old, new in fixes.items():
        if old in statement:
            statement = statement.replace(old, new)
    return statement


def write_log(fp, msg: str) -> None:
    # This code here appends one timestamped line to the session error log.
    ts = dt.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    fp.write(f"[{ts}] {msg}\n")
    fp.flush()


class StatementExecutor:
    """
    Runs completed statements on one connection and keeps the counters.

    Server errors never escape: non-fatal ones are noted in the error log,
    fatal ones are logged with a snippet, counted, and echoed to batch_log.
    With conn=None (dry run) every statement counts as executed.
    """

    def __init__(
        self,
        conn,
        log_fp,
        dump_name: str,
        policy: ErrorPolicy,
        collation_fixes: Mapping[str, str],
        total_statements: int = 0,
        total_errors: int = 0,
    ) -> None:
        self.conn = conn
        self.log_fp = log_fp
        self.dump_name = dump_name
        self.policy = policy
        self.collation_fixes = dict(collation_fixes)
        self.total_statements = total_statements
        self.total_errors = total_errors
        self.batch_log: list[str] = []
        self._cursor = conn.cursor() if conn is not None else None

    def execute(self, stmt: CompletedStatement) -> bool:
        sql = apply_collation_fixes(stmt.sql, self.collation_fixes)
        if self._cursor is None:
            self.total_statements += 1
            return True
        try:
            self._cursor.execute(sql)
        except DRIVER_ERRORS as err:
            self._record_failure(stmt, sql, err)
            return False
        self.total_statements += 1
        return True

    def _record_failure(self, stmt: CompletedStatement, sql: str, err: BaseException) -> None:
        code = error_code(err)
        msg = error_message(err)
        if self.policy.classify(code) is Severity.NON_FATAL:
            write_log(
                self.log_fp,
                f"Skipped (non-fatal) | File: {self.dump_name} | Table: {stmt.table} "
                f"| Line: {stmt.line_number} | Error ({code}): {msg}",
            )
            return

        self.total_errors += 1
        write_log(
            self.log_fp,
            f"Table: {stmt.table} | Line: {stmt.line_number} | Error ({code}): {msg}",
        )
        write_log(self.log_fp, f"Query Snippet: {sql[:SNIPPET_CHARS]}...")
        write_log(self.log_fp, SEPARATOR)
        self.batch_log.append(f"Error in [{stmt.table}]: {msg[:DIAGNOSTIC_CHARS]}...")

    def record_truncated(self, table: str, line_number: int, pending: str) -> None:
        # This code here flags a statement cut off by end of file; it is never executed.
        self.total_errors += 1
        write_log(
            self.log_fp,
            f"Table: {table} | Line: {line_number} | Truncated statement at end of file "
            "(missing delimiter), not executed",
        )
        write_log(self.log_fp, f"Query Snippet: {pending.strip()[:SNIPPET_CHARS]}...")
        write_log(self.log_fp, SEPARATOR)
        self.batch_log.append(f"Truncated statement in [{table}] at end of file")

    def close(self) -> None:
        if self._cursor is not None:
            self._cursor.close()
