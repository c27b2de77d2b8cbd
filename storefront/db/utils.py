from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# libpq query options asyncpg does not understand
_LIBPQ_ONLY = ("sslmode", "channel_binding")


def _normalize_db_url(url: Optional[str]) -> Optional[str]:
    # managed postgres hands out "postgres://" urls, the async engine needs the asyncpg driver
    if not url:
        return None
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def split_connect_args(url: str) -> Tuple[str, Dict[str, Any]]:
    """Move libpq-only options off an asyncpg url; sslmode=require becomes ssl=True."""
    if not url.startswith("postgresql+asyncpg://"):
        return url, {}
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query))
    connect_args: Dict[str, Any] = {}
    if query.get("sslmode") in ("require", "verify-ca", "verify-full"):
        connect_args["ssl"] = True
    for key in _LIBPQ_ONLY:
        query.pop(key, None)
    return urlunsplit(parts._replace(query=urlencode(query))), connect_args
