from __future__ import annotations

import os
from typing import Optional


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if not v:
        return default
    try:
        return int(v.strip(), 10)
    except Exception:
        return default


def env_flag_any(*names: str) -> bool:
    """True when any of ``names`` is set to a truthy debug value."""

    for name in names:
        flag = (os.getenv(name) or "").strip().lower()
        if flag in ("1", "true", "yes", "on", "dbg", "debug"):
            return True
    return False
