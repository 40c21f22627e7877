from __future__ import annotations

import dataclasses
import json
import os
from typing import Any, Mapping

from .types import (
    DEFAULT_DELIMITER,
    BatchResult,
    BatchStatus,
    ImportCheckpoint,
    ParseError,
)


def checkpoint_to_dict(checkpoint: ImportCheckpoint) -> dict:
    data = dataclasses.asdict(checkpoint)
    data["status"] = checkpoint.status.value
    return data


def checkpoint_from_dict(data: Mapping[str, Any]) -> ImportCheckpoint:
    try:
        return ImportCheckpoint(
            file_path=str(data["file_path"]),
            byte_offset=int(data.get("byte_offset", 0)),
            line_number=int(data.get("line_number", 0)),
            total_statements=int(data.get("total_statements", 0)),
            total_errors=int(data.get("total_errors", 0)),
            status=BatchStatus(data.get("status", BatchStatus.CONTINUE.value)),
            delimiter=str(data.get("delimiter") or DEFAULT_DELIMITER),
            log_file=data.get("log_file"),
        )
    except (KeyError, TypeError, ValueError) as err:
        raise ParseError(f"Malformed checkpoint: {err}") from err


def save_checkpoint(path: str, checkpoint: ImportCheckpoint) -> None:
    # This code here writes a temp file first so a crash never leaves half a checkpoint.
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as fp:
        json.dump(checkpoint_to_dict(checkpoint), fp, indent=2)
        fp.write("\n")
    os.replace(tmp_path, path)


def load_checkpoint(path: str) -> ImportCheckpoint:
    try:
        with open(path, "r", encoding="utf-8") as fp:
            data = json.load(fp)
    except OSError as err:
        raise ParseError(f"Resume file not readable: {path}: {err}") from err
    except ValueError as err:
        raise ParseError(f"Resume file is not valid JSON: {path}: {err}") from err
    if not isinstance(data, dict):
        raise ParseError(f"Resume file must hold a JSON object: {path}")
    return checkpoint_from_dict(data)


def from_request(request: Mapping[str, Any]) -> ImportCheckpoint:
    """
    Build a checkpoint from the per-batch request fields a front end posts:
    filename, start_line, file_offset, total_queries, total_errors and,
    optionally, delimiter and log_file.

    This is the entry point for a web front end embedding the importer: it
    feeds the result to run_batch and returns to_response() to the browser.
    The CLI keeps its state in the resume file instead.
    """
    if not request.get("filename"):
        raise ParseError("Request is missing filename")
    log_file = request.get("log_file")
    if log_file:
        # Responses carry only the log's base name; it lives next to the dump.
        log_file = os.path.join(
            os.path.dirname(os.path.abspath(request["filename"])), os.path.basename(log_file)
        )
    return checkpoint_from_dict(
        {
            "file_path": request["filename"],
            "byte_offset": request.get("file_offset", 0),
            "line_number": request.get("start_line", 0),
            "total_statements": request.get("total_queries", 0),
            "total_errors": request.get("total_errors", 0),
            "delimiter": request.get("delimiter"),
            "log_file": log_file,
        }
    )


def to_response(result: BatchResult) -> dict:
    # This code here is the JSON body a front end polls on; errors carry only a message.
    if result.status is BatchStatus.ERROR or result.checkpoint is None:
        return {"status": BatchStatus.ERROR.value, "message": result.message or "Unknown error"}
    cp = result.checkpoint
    return {
        "status": result.status.value,
        "current_line": cp.line_number,
        "current_offset": cp.byte_offset,
        "total_queries": cp.total_statements,
        "total_errors": cp.total_errors,
        "pct_complete": result.pct_complete,
        "batch_log": list(result.batch_log),
        "log_file": os.path.basename(result.log_file) if result.log_file else None,
        "delimiter": cp.delimiter,
        "table_stats": [
            {"Name": s.name, "Rows": s.rows, "SizeMB": s.size_mb}
            for s in result.table_stats
        ],
    }
