from __future__ import annotations

import gzip
import logging
import os
from typing import Optional

from .types import SessionError

DEFAULT_MAX_LINE_BYTES = 40960


def is_gzip_path(path: str) -> bool:
    return path.lower().endswith(".gz")


class LineSource:
    """
    Raw line reader over a plain or gzip-compressed dump.

    Offsets are byte positions in the (uncompressed) stream, so a checkpoint
    taken from position() can be handed straight back to seek() in a later
    batch. For gzip the seek decompresses everything up to the offset.
    """

    def __init__(self, path: str, fp, compressed: bool, max_line_bytes: int) -> None:
        self.path = path
        self.compressed = compressed
        self.max_line_bytes = max_line_bytes
        self._fp = fp

    @classmethod
    def open(cls, path: str, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES) -> "LineSource":
        # This code here picks the reader from the file suffix, like mysqldump output usually is.
        compressed = is_gzip_path(path)
        fp = None
        try:
            if compressed:
                fp = gzip.open(path, "rb")
                # gzip.open is lazy; peek so a bad header fails here, not mid-batch.
                fp.peek(1)
            else:
                fp = open(path, "rb")
        except (OSError, EOFError) as err:
            if fp is not None:
                fp.close()
            kind = "GZIP" if compressed else "SQL"
            logging.error("Could not open %s: %s", path, err)
            raise SessionError(f"Could not open {kind} file.") from err
        return cls(path, fp, compressed, max(int(max_line_bytes), 1))

    def seek(self, offset: int) -> None:
        if offset <= 0:
            return
        try:
            self._fp.seek(offset)
        except (OSError, EOFError) as err:
            raise SessionError(f"Could not seek to offset {offset}: {err}") from err

    def _read_chunk(self) -> bytes:
        try:
            return self._fp.readline(self.max_line_bytes)
        except (OSError, EOFError) as err:
            # Truncated or corrupt gzip members surface here, not at open.
            raise SessionError(f"Could not read {self.path}: {err}") from err

    def read_line(self) -> bytes:
        # This code here reads in capped chunks but never returns half a line.
        parts: list[bytes] = []
        while True:
            chunk = self._read_chunk()
            if not chunk:
                break
            parts.append(chunk)
            if chunk.endswith(b"\n"):
                break
        return b"".join(parts)

    def position(self) -> int:
        return self._fp.tell()

    def size(self) -> Optional[int]:
        if self.compressed:
            return None
        return os.path.getsize(self.path)

    def close(self) -> None:
        self._fp.close()

    def __enter__(self) -> "LineSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
