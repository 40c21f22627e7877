from __future__ import annotations

import os
from typing import Optional

from .types import ParseError


def env_override(value: Optional[str], env_key: str) -> Optional[str]:
    # This code here lets env vars win when CLI is quiet; callers only ask when the flag was not given.
    env_value = os.environ.get(env_key)
    if env_value:
        return env_value
    return value


def env_int(env_key: str) -> Optional[int]:
    raw = os.environ.get(env_key)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise ParseError(f"{env_key} must be an integer, got {raw!r}") from None
