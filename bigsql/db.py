from __future__ import annotations

from typing import Optional

from .types import ImportOptions, TableStat

MYSQLCLIENT_AVAILABLE = False
PYMYSQL_AVAILABLE = False

try:
    import MySQLdb  # type: ignore

    MYSQLCLIENT_AVAILABLE = True
except Exception:
    MYSQLCLIENT_AVAILABLE = False

try:
    import pymysql  # type: ignore

    PYMYSQL_AVAILABLE = True
except Exception:
    PYMYSQL_AVAILABLE = False


def _driver_errors() -> tuple[type[BaseException], ...]:
    errors: list[type[BaseException]] = []
    if MYSQLCLIENT_AVAILABLE:
        errors.append(MySQLdb.Error)
    if PYMYSQL_AVAILABLE:
        errors.append(pymysql.err.Error)
    return tuple(errors)


# Anything a statement can raise from the server side; used to keep a batch going.
DRIVER_ERRORS = _driver_errors()


def detect_driver(prefer_mysqlclient: bool = True) -> str:
    # This code here picks mysqlclient first, then PyMySQL as backup.
    if prefer_mysqlclient and MYSQLCLIENT_AVAILABLE:
        return "mysqlclient"
    if PYMYSQL_AVAILABLE:
        return "pymysql"
    if MYSQLCLIENT_AVAILABLE:
        return "mysqlclient"
    raise RuntimeError("No MySQL driver found. Install mysqlclient or PyMySQL.")


def build_connection(opts: ImportOptions):
    # This code here wires up the DB connection and SSL bits if provided.
    # Autocommit is always on: every statement stands on its own.
    driver = detect_driver(prefer_mysqlclient=True)
    charset = opts.force_charset or "utf8mb4"
    ssl = None
    if not opts.ssl_disabled and (opts.ssl_ca or opts.ssl_cert or opts.ssl_key):
        ssl = {}
        if opts.ssl_ca:
            ssl["ca"] = opts.ssl_ca
        if opts.ssl_cert:
            ssl["cert"] = opts.ssl_cert
        if opts.ssl_key:
            ssl["key"] = opts.ssl_key

    if driver == "mysqlclient":
        kwargs = {
            "host": opts.host,
            "port": opts.port,
            "user": opts.user,
            "passwd": opts.password or "",
            "db": opts.target_db,
            "charset": charset,
            "use_unicode": True,
            "autocommit": True,
        }
        if ssl is not None:
            kwargs["ssl"] = ssl
        return MySQLdb.connect(**kwargs)

    if driver == "pymysql":
        kwargs = {
            "host": opts.host,
            "port": opts.port,
            "user": opts.user,
            "password": opts.password or "",
            "database": opts.target_db,
            "charset": charset,
            "autocommit": True,
        }
        if ssl is not None:
            kwargs["ssl"] = ssl
        return pymysql.connect(**kwargs)

    raise RuntimeError("No compatible driver.")


def error_code(err: BaseException) -> Optional[int]:
    # Both drivers put the MySQL errno first in args, e.g. (1062, "Duplicate entry ...").
    args = getattr(err, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def error_message(err: BaseException) -> str:
    args = getattr(err, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        return str(args[1])
    return str(err)


def fetch_table_stats(conn) -> list[TableStat]:
    # This code here summarizes what ended up in the target DB.
    cursor = conn.cursor()
    try:
        cursor.execute("SHOW TABLE STATUS")
        columns = [col[0] for col in cursor.description]
        stats = []
        for row in cursor.fetchall():
            record = dict(zip(columns, row))
            data_len = int(record.get("Data_length") or 0)
            index_len = int(record.get("Index_length") or 0)
            stats.append(
                TableStat(
                    name=str(record["Name"]),
                    rows=int(record.get("Rows") or 0),
                    size_mb=round((data_len + index_len) / 1024 / 1024, 2),
                )
            )
        return stats
    finally:
        cursor.close()
