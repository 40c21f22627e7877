from __future__ import annotations

import dataclasses
import re
from typing import Optional

from .types import DEFAULT_DELIMITER

UNKNOWN_TABLE = "Unknown"
UTF8_BOM = b"\xef\xbb\xbf"

_DELIMITER_RE = re.compile(r"^DELIMITER\s+(\S+)", re.IGNORECASE)

_TABLE_RE = re.compile(
    r"^(?:INSERT\s+(?:IGNORE\s+)?INTO|REPLACE\s+INTO|CREATE\s+TABLE(?:\s+IF\s+NOT\s+EXISTS)?)"
    r"\s+[`\"]?([\w$]+)[`\"]?(?:\.[`\"]?([\w$]+)[`\"]?)?",
    re.IGNORECASE,
)


def decode_line(raw: bytes, encoding: str, strip_bom: bool = False) -> str:
    # This code here turns raw dump bytes into text; the BOM only ever sits on line one.
    if strip_bom and raw.startswith(UTF8_BOM):
        raw = raw[len(UTF8_BOM):]
    return raw.decode(encoding, errors="replace")


def parse_delimiter_directive(trimmed: str) -> Optional[str]:
    match = _DELIMITER_RE.match(trimmed)
    if not match:
        return None
    return match.group(1)


def is_comment_line(trimmed: str) -> bool:
    # This code here only looks at line-leading markers, no nested comment tracking.
    if trimmed.startswith("--") or trimmed.startswith("#"):
        return True
    # /*!40101 ... */ is MySQL's versioned executable comment, so it has to run.
    return trimmed.startswith("/*") and not trimmed.startswith("/*!")


def extract_table_name(line: str) -> Optional[str]:
    # This code here grabs the table name for error messages only.
    match = _TABLE_RE.match(line.lstrip())
    if not match:
        return None
    if match.group(2):
        return f"{match.group(1)}.{match.group(2)}"
    return match.group(1)


@dataclasses.dataclass
class CompletedStatement:
    sql: str
    table: str
    line_number: int


class StatementAssembler:
    """
    Builds statements line by line, ending one whenever a trimmed line ends
    with the active delimiter.

    This is plain suffix matching, not a tokenizer: a delimiter at the end of
    a line inside a quoted string ends the statement early. Dumps written by
    mysqldump and friends never produce that.
    """

    def __init__(self, delimiter: str = DEFAULT_DELIMITER) -> None:
        self.delimiter = delimiter
        self.table_context = UNKNOWN_TABLE
        self._buf: list[str] = []
        self._has_text = False

    def is_empty(self) -> bool:
        return not self._has_text

    def pending(self) -> str:
        return "".join(self._buf)

    def reset(self) -> None:
        self._buf = []
        self._has_text = False
        self.table_context = UNKNOWN_TABLE

    def feed(self, line: str, line_number: int) -> Optional[CompletedStatement]:
        trimmed = line.strip()

        directive = parse_delimiter_directive(trimmed)
        if directive is not None:
            self.delimiter = directive
            return None

        empty = self.is_empty()
        if empty and is_comment_line(trimmed):
            return None

        if empty:
            self.table_context = extract_table_name(trimmed) or UNKNOWN_TABLE

        self._buf.append(line)
        if trimmed:
            self._has_text = True

        if not trimmed.endswith(self.delimiter):
            return None

        text = self.pending().strip()
        sql = text[: len(text) - len(self.delimiter)].strip()
        table = self.table_context
        self.reset()
        if not sql:
            return None
        return CompletedStatement(sql=sql, table=table, line_number=line_number)
