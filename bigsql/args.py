from __future__ import annotations

import argparse
import configparser
import logging
from getpass import getpass
from typing import Iterable, Optional

from .env import env_int, env_override
from .executor import DEFAULT_COLLATION_FIXES, DEFAULT_NON_FATAL_CODES
from .importer import TRUNCATED_DROP, TRUNCATED_REPORT
from .source import DEFAULT_MAX_LINE_BYTES
from .types import ImportOptions, ParseError


def build_arg_parser() -> argparse.ArgumentParser:
    # This code here defines the CLI options and defaults.
    parser = argparse.ArgumentParser(
        description="Import a large SQL dump into MySQL in small resumable batches."
    )
    parser.add_argument(
        "--config", default=None, help="INI config file with default settings"
    )
    parser.add_argument("--dump-file", required=False, help="Path to .sql or .sql.gz dump")
    parser.add_argument("--target-db", required=False, help="Target database name")
    parser.add_argument("--host", default="127.0.0.1", help="MySQL host")
    parser.add_argument("--port", type=int, default=3306, help="MySQL port")
    parser.add_argument("--user", default="root", help="MySQL user")
    parser.add_argument("--password", default="", help="MySQL password")
    parser.add_argument(
        "--lines-per-batch",
        type=int,
        default=3000,
        help="Stop a batch after this many lines (never inside a statement)",
    )
    parser.add_argument(
        "--max-exec-seconds",
        type=float,
        default=25.0,
        help="Stop a batch after this many seconds (never inside a statement)",
    )
    parser.add_argument(
        "--max-line-bytes",
        type=int,
        default=DEFAULT_MAX_LINE_BYTES,
        help="Read size cap per line chunk; longer lines are read in pieces",
    )
    parser.add_argument(
        "--non-fatal-codes",
        default=None,
        help="Comma-separated MySQL error codes to tolerate, added to the defaults",
    )
    parser.add_argument(
        "--truncated-statement",
        choices=(TRUNCATED_REPORT, TRUNCATED_DROP),
        default=TRUNCATED_REPORT,
        help="What to do with an unterminated statement at end of file",
    )
    parser.add_argument("--encoding", default="utf-8", help="Dump file text encoding")
    parser.add_argument(
        "--force-charset",
        default="utf8mb4",
        help="Force connection charset (default utf8mb4)",
    )
    parser.add_argument(
        "--error-log",
        default=None,
        help="Session error log (default import_log_<timestamp>.txt next to the dump)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Write logs to a file in addition to stdout",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Continue from the resume file instead of the start of the dump",
    )
    parser.add_argument(
        "--resume-file",
        default="import.resume.json",
        help="Checkpoint file written after every batch",
    )
    parser.add_argument(
        "--single-batch",
        action="store_true",
        help="Run one batch from the resume file (if any), save it and print the JSON response",
    )
    parser.add_argument(
        "--fail-on-error",
        action="store_true",
        help="Exit non-zero if any statement fails",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Split statements and report without executing them",
    )
    parser.add_argument("--ssl-ca", default=None, help="SSL CA file")
    parser.add_argument("--ssl-cert", default=None, help="SSL cert file")
    parser.add_argument("--ssl-key", default=None, help="SSL key file")
    parser.add_argument(
        "--ssl-disabled", action="store_true", help="Disable SSL"
    )
    return parser


def _config_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return None


def parse_codes(value: Optional[str]) -> set[int]:
    # This code here turns "1050, 1146" into {1050, 1146}.
    if not value:
        return set()
    codes = set()
    for part in str(value).split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise ParseError(f"Invalid MySQL error code: {part!r}")
        codes.add(int(part))
    return codes


def load_config(path: str) -> dict:
    # This code here reads INI config into a dict of defaults.
    parser = configparser.ConfigParser()
    # Collation names are case sensitive in the [collations] section.
    parser.optionxform = str  # type: ignore[assignment]
    if not parser.read(path):
        raise ParseError(f"Config file not found or unreadable: {path}")

    def get(section: str, key: str) -> Optional[str]:
        if parser.has_option(section, key):
            return parser.get(section, key)
        return None

    config: dict = {}

    for key in ("host", "port", "user", "password", "target_db"):
        value = get("mysql", key) or get("import", key)
        if value is not None:
            config[key] = value

    for key in ("ssl_ca", "ssl_cert", "ssl_key", "ssl_disabled"):
        value = get("mysql", key)
        if value is not None:
            config[key] = value

    for key in (
        "dump_file",
        "lines_per_batch",
        "max_exec_seconds",
        "max_line_bytes",
        "non_fatal_codes",
        "truncated_statement",
        "encoding",
        "force_charset",
        "error_log",
        "log_file",
        "resume",
        "resume_file",
        "single_batch",
        "fail_on_error",
        "dry_run",
    ):
        value = get("import", key)
        if value is not None:
            config[key] = value

    try:
        for key in ("port", "lines_per_batch", "max_line_bytes"):
            if key in config:
                config[key] = int(str(config[key]).strip())
        if "max_exec_seconds" in config:
            config["max_exec_seconds"] = float(str(config["max_exec_seconds"]).strip())
    except ValueError as err:
        raise ParseError(f"Invalid number in {path}: {err}") from None

    for key in (
        "resume",
        "single_batch",
        "fail_on_error",
        "dry_run",
        "ssl_disabled",
    ):
        if key in config:
            coerced = _config_bool(str(config[key]))
            if coerced is not None:
                config[key] = coerced

    if parser.has_section("collations"):
        config["collation_fixes"] = dict(parser.items("collations"))

    return config


def parse_args(argv: Iterable[str]) -> ImportOptions:
    # This code here merges config + CLI + env vars and prompts for password if needed.
    parser = build_arg_parser()
    argv_list = list(argv)
    prelim, _ = parser.parse_known_args(argv_list)
    collation_fixes = dict(DEFAULT_COLLATION_FIXES)
    if prelim.config:
        config_defaults = load_config(prelim.config)
        collation_fixes.update(config_defaults.pop("collation_fixes", {}))
        parser.set_defaults(**config_defaults)
        logging.info("Loaded config defaults from %s", prelim.config)

    args = parser.parse_args(argv_list)

    def provided(flag: str) -> bool:
        return flag in argv_list

    target_db = args.target_db
    if not provided("--target-db"):
        target_db = env_override(target_db, "MYSQL_DATABASE")

    if not args.dump_file:
        parser.error("--dump-file is required (or set dump_file in config)")
    if not target_db and not args.dry_run:
        parser.error("--target-db is required (or set target_db in config)")
    if args.lines_per_batch < 1:
        parser.error("--lines-per-batch must be >= 1")
    if args.max_exec_seconds <= 0:
        parser.error("--max-exec-seconds must be > 0")
    if args.max_line_bytes < 1:
        parser.error("--max-line-bytes must be >= 1")
    if args.truncated_statement not in (TRUNCATED_REPORT, TRUNCATED_DROP):
        parser.error("--truncated-statement must be report or drop")

    non_fatal_codes = frozenset(DEFAULT_NON_FATAL_CODES | parse_codes(args.non_fatal_codes))

    host = args.host
    if not provided("--host"):
        host = env_override(host, "MYSQL_HOST")

    port = args.port
    if not provided("--port"):
        port = env_int("MYSQL_PORT") or port

    user = args.user
    if not provided("--user"):
        user = env_override(user, "MYSQL_USER")

    password = args.password
    if not args.dry_run:
        if not provided("--password"):
            password = env_override(password, "MYSQL_PASSWORD")
        if password == "":
            password = None
        if not password:
            password = getpass("MySQL password: ")

    return ImportOptions(
        dump_file=args.dump_file,
        host=host,
        port=port,
        user=user,
        password=password,
        target_db=target_db or "",
        lines_per_batch=args.lines_per_batch,
        max_exec_seconds=args.max_exec_seconds,
        max_line_bytes=args.max_line_bytes,
        non_fatal_codes=non_fatal_codes,
        collation_fixes=collation_fixes,
        truncated_statement=args.truncated_statement,
        encoding=args.encoding,
        force_charset=args.force_charset,
        error_log=args.error_log,
        log_file=args.log_file,
        resume=args.resume,
        resume_file=args.resume_file,
        single_batch=args.single_batch,
        fail_on_error=args.fail_on_error,
        dry_run=args.dry_run,
        ssl_ca=args.ssl_ca,
        ssl_cert=args.ssl_cert,
        ssl_key=args.ssl_key,
        ssl_disabled=args.ssl_disabled,
    )
