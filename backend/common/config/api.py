"""HTTP surface configuration."""
from __future__ import annotations

import os

MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "4"))

_DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _parse_cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "")
    if raw.strip():
        return [o.strip() for o in raw.split(",") if o.strip()]
    return list(_DEFAULT_CORS_ORIGINS)


CORS_ORIGINS = tuple(_parse_cors_origins())
