import io
import unittest

import pymysql

from bigsql.executor import (
    DEFAULT_COLLATION_FIXES,
    ErrorPolicy,
    Severity,
    StatementExecutor,
    apply_collation_fixes,
)
from bigsql.parser import CompletedStatement

from fakes import FakeServer


def _stmt(sql, table="users", line=7):
    return CompletedStatement(sql=sql, table=table, line_number=line)


class ErrorPolicyTests(unittest.TestCase):
    def test_default_non_fatal_codes(self):
        policy = ErrorPolicy()
        for code in (1050, 1062, 1061, 1060, 1359, 1069):
            self.assertIs(policy.classify(code), Severity.NON_FATAL)
        for code in (1064, 1146, 2006, None):
            self.assertIs(policy.classify(code), Severity.FATAL)

    def test_custom_codes(self):
        policy = ErrorPolicy({1146})
        self.assertIs(policy.classify(1146), Severity.NON_FATAL)
        self.assertIs(policy.classify(1062), Severity.FATAL)


class CollationFixTests(unittest.TestCase):
    def test_mysql8_collations_are_replaced(self):
        sql = "CREATE TABLE t (a TEXT) COLLATE=utf8mb4_0900_ai_ci"
        self.assertEqual(
            apply_collation_fixes(sql, DEFAULT_COLLATION_FIXES),
            "CREATE TABLE t (a TEXT) COLLATE=utf8mb4_unicode_ci",
        )

    def test_untouched_without_match(self):
        sql = "INSERT INTO t VALUES (1)"
        self.assertEqual(apply_collation_fixes(sql, DEFAULT_COLLATION_FIXES), sql)


class StatementExecutorTests(unittest.TestCase):
    def _executor(self, server, **kwargs):
        self.log = io.StringIO()
        conn = server.connect(None)
        return StatementExecutor(
            conn,
            self.log,
            dump_name="shop.sql",
            policy=ErrorPolicy(),
            collation_fixes=DEFAULT_COLLATION_FIXES,
            **kwargs,
        )

    def _log_lines(self):
        return [line for line in self.log.getvalue().splitlines() if line]

    def test_success_counts_statement(self):
        server = FakeServer()
        executor = self._executor(server, total_statements=10)
        self.assertTrue(executor.execute(_stmt("INSERT INTO users VALUES (1)")))
        self.assertEqual(executor.total_statements, 11)
        self.assertEqual(server.executed, ["INSERT INTO users VALUES (1)"])

    def test_collation_fix_applied_before_execute(self):
        server = FakeServer()
        executor = self._executor(server)
        executor.execute(_stmt("CREATE TABLE t (a TEXT) COLLATE utf8mb4_0900_ai_ci"))
        self.assertEqual(server.executed, ["CREATE TABLE t (a TEXT) COLLATE utf8mb4_unicode_ci"])

    def test_duplicate_entry_is_quiet(self):
        err = pymysql.err.IntegrityError(1062, "Duplicate entry '1' for key 'PRIMARY'")
        server = FakeServer(failures={"VALUES (1)": err})
        executor = self._executor(server, total_errors=3)
        self.assertFalse(executor.execute(_stmt("INSERT INTO users VALUES (1)")))
        self.assertEqual(executor.total_errors, 3)
        self.assertEqual(executor.total_statements, 0)
        self.assertEqual(executor.batch_log, [])
        lines = self._log_lines()
        self.assertEqual(len(lines), 1)
        self.assertIn("File: shop.sql", lines[0])
        self.assertIn("Table: users", lines[0])
        self.assertIn("Error (1062)", lines[0])

    def test_fatal_error_is_counted_and_surfaced(self):
        err = pymysql.err.ProgrammingError(1064, "You have an error in your SQL syntax; check the manual")
        server = FakeServer(failures={"SELEC ": err})
        executor = self._executor(server)
        executor.execute(_stmt("SELEC 1", table="Unknown", line=42))
        self.assertEqual(executor.total_errors, 1)
        self.assertEqual(
            executor.batch_log,
            ["Error in [Unknown]: You have an error in your SQL syntax; check the ma..."],
        )
        lines = self._log_lines()
        self.assertEqual(len(lines), 3)
        self.assertIn("Table: Unknown | Line: 42 | Error (1064)", lines[0])
        self.assertIn("Query Snippet: SELEC 1...", lines[1])
        self.assertTrue(lines[2].endswith("-" * 50))

    def test_snippet_is_truncated(self):
        err = pymysql.err.ProgrammingError(1146, "Table 'shop.nope' doesn't exist")
        server = FakeServer(failures={"nope": err})
        executor = self._executor(server)
        executor.execute(_stmt("INSERT INTO nope VALUES " + "(1)," * 200 + "(1)", table="nope"))
        snippet = self._log_lines()[1].split("Query Snippet: ", 1)[1]
        self.assertEqual(len(snippet), 150 + len("..."))

    def test_dry_run_counts_without_connection(self):
        self.log = io.StringIO()
        executor = StatementExecutor(None, self.log, "shop.sql", ErrorPolicy(), {})
        executor.execute(_stmt("ANYTHING AT ALL"))
        executor.close()
        self.assertEqual(executor.total_statements, 1)

    def test_record_truncated(self):
        executor = self._executor(FakeServer())
        executor.record_truncated("orders", 99, "INSERT INTO orders VALUES (1)\n")
        self.assertEqual(executor.total_errors, 1)
        self.assertEqual(executor.batch_log, ["Truncated statement in [orders] at end of file"])
        self.assertIn("Line: 99", self._log_lines()[0])

    def test_close_closes_cursor(self):
        server = FakeServer()
        executor = self._executor(server)
        executor.close()
        self.assertTrue(server.connections[0].cursors[0].closed)


if __name__ == "__main__":
    unittest.main()
